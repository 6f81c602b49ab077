"""Tests for LayerRegistry and LayerSpec."""
import pytest

from layerloom.core.layer.registry import LayerRegistry, is_merge_type, is_special_type
from layerloom.core.layer.spec import AuxPortSpec, LayerSpec, MIRROR, PASS


def test_builtin_catalogue() -> None:
    layers = LayerRegistry.list_layers()
    for name in ("LayerDense", "LayerActivation", "LayerParallelSum", "LayerSimpleRNN", "LayerRouter"):
        assert name in layers
    assert layers == sorted(layers)


def test_special_and_merge_flags_come_from_specs() -> None:
    assert is_special_type("LayerLSTM")
    assert is_special_type("LayerStacked")
    assert not is_special_type("LayerDense")
    assert is_merge_type("LayerParallelAverage")
    assert not is_merge_type("LayerDense")
    # unknown tags are plain, whatever they are called
    assert not is_special_type("MyRNNLayer")
    assert not is_merge_type("MyParallelThing")


def test_unknown_type_strict_lookup_suggests() -> None:
    with pytest.raises(KeyError, match="Did you mean"):
        LayerRegistry.get("LayerDence", strict=True)
    spec = LayerRegistry.get("LayerDence")
    assert spec.layer_type == "LayerDence"
    assert not spec.is_special and not spec.merge


def test_register_custom_special_type(graph) -> None:
    LayerRegistry.register(
        LayerSpec("MyBlock", auxiliary_ports=(MIRROR, AuxPortSpec("side", is_input=True), PASS))
    )
    node = graph.add_node("MyBlock")
    assert node.is_special
    assert [p.name for p in node.auxiliary_ports] == ["IN mirror", "side", "OUT pass"]
    LayerRegistry.unregister("MyBlock")
    assert not LayerRegistry.get("MyBlock").is_special


def test_register_rejects_empty_type() -> None:
    with pytest.raises(ValueError):
        LayerRegistry.register(LayerSpec(" "))


def test_resolve_reduction() -> None:
    assert LayerRegistry.get("LayerParallelSum").resolve_reduction() == "sum"
    assert LayerRegistry.get("LayerParallelConcat").resolve_reduction(["Max"]) == "concat"
    parallel = LayerRegistry.get("LayerParallel")
    assert parallel.resolve_reduction(["Average"]) == "average"
    assert parallel.resolve_reduction([]) == "sum"
    assert LayerRegistry.get("LayerDense").resolve_reduction(["sum"]) is None


def test_usage_lines() -> None:
    assert LayerRegistry.get("LayerDense").usage() == "LayerDense\nweight initializer\nunits"
    assert LayerRegistry.get("LayerRouter").usage().split("\n")[2] == "experts;top k"
    assert LayerRegistry.get("LayerSoftmax").usage() == "LayerSoftmax\n\n"


def test_reset_restores_builtins() -> None:
    LayerRegistry.unregister("LayerDense")
    assert "LayerDense" not in LayerRegistry.list_layers()
    LayerRegistry.reset()
    assert "LayerDense" in LayerRegistry.list_layers()
