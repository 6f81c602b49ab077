"""Tests for the Mermaid visualizer and the config-driven runner."""
import pytest

from layerloom.core.graph.compiler import compile_graph
from layerloom.core.graph.serialization import save_graph
from layerloom.tools.graph_visualizer import forest_to_mermaid, graph_to_mermaid


@pytest.fixture
def rnn_graph(graph, helpers):
    x = graph.add_node("LayerDense", numeric_params=[3], name="x")
    rnn = graph.add_node("LayerSimpleRNN", numeric_params=[4], name="rnn")
    out = graph.add_node("LayerDense", numeric_params=[1], name="out")
    cell = graph.add_node("LayerDense", numeric_params=[4], name="cell")
    helpers.chain(graph, x, rnn, out)
    helpers.wire_body(graph, rnn, cell)
    return graph


# ==================== MERMAID ====================

def test_graph_to_mermaid(rnn_graph) -> None:
    text = graph_to_mermaid(rnn_graph)
    lines = text.split("\n")
    assert lines[0] == "graph TB"
    assert "        n1[[rnn<br/>LayerSimpleRNN]]" in lines
    assert "        n0 --> n1" in lines
    assert "        n1 -.->|IN mirror| n3" in lines
    assert "        n3 -.->|OUT pass| n1" in lines


def test_forest_to_mermaid(rnn_graph) -> None:
    text = forest_to_mermaid(compile_graph(rnn_graph), title="net")
    assert "subgraph net [net]" in text
    assert "-.->|body|" in text
    assert text.count("[cell]") == 1


# ==================== RUNNER ====================

def test_runner_validate(rnn_graph, tmp_path) -> None:
    pytest.importorskip("torch")
    from layerloom.runner import Runner

    path = save_graph(rnn_graph, tmp_path / "graph.yaml")
    report = Runner.validate(path)
    assert report["valid"], report["errors"]
    assert report["info"]["inputs"] == ["x"]
    assert report["info"]["outputs"] == ["out"]
    assert report["info"]["summary"][0] == "x (LayerDense) -> rnn"


def test_runner_validate_missing_file(tmp_path) -> None:
    from layerloom.runner import Runner

    report = Runner.validate(tmp_path / "missing.yaml", with_engine=False)
    assert not report["valid"]
    assert report["errors"][0].startswith("GraphLoadError")


def test_runner_main_modes(rnn_graph, tmp_path, capsys) -> None:
    pytest.importorskip("torch")
    from layerloom.runner import main

    path = str(save_graph(rnn_graph, tmp_path / "graph.json"))
    assert main([path, "--compile"]) == 0
    assert "LayerSimpleRNN" in capsys.readouterr().out
    assert main([path, "--mermaid"]) == 0
    assert capsys.readouterr().out.startswith("graph TB")
    assert main([path]) == 0
    assert "is valid" in capsys.readouterr().out


def test_runner_main_reports_errors(graph, tmp_path, capsys) -> None:
    pytest.importorskip("torch")
    from layerloom.runner import main

    graph.add_node("LayerDense", name="lonely")
    path = str(save_graph(graph, tmp_path / "graph.yaml"))
    assert main([path, "--validate"]) == 1
    assert "Node 'lonely' is disconnected" in capsys.readouterr().out


@pytest.mark.parametrize("mode", [["--compile"], ["--mermaid", "--compiled"]])
def test_runner_compile_modes_report_errors(graph, tmp_path, capsys, mode) -> None:
    from layerloom.runner import main

    graph.add_node("LayerDense", name="lonely")
    path = str(save_graph(graph, tmp_path / "graph.yaml"))
    assert main([path] + mode) == 1
    out = capsys.readouterr().out
    assert "Graph has errors:" in out
    assert "  - Node 'lonely' is disconnected" in out

    assert main([str(tmp_path / "missing.yaml")] + mode) == 1
    assert "GraphLoadError" in capsys.readouterr().out


def test_runner_train(tmp_path) -> None:
    pytest.importorskip("torch")
    from layerloom.core.graph.graph import ConnectionGraph
    from layerloom.runner import Runner, main

    graph = ConnectionGraph("xor")
    hidden = graph.add_node("LayerDense", numeric_params=[8])
    act = graph.add_node("LayerActivation", string_params=["Tanh"])
    out = graph.add_node("LayerDense", numeric_params=[1])
    assert graph.connect(hidden.output_port, act.input_port)
    assert graph.connect(act.output_port, out.input_port)
    graph_path = save_graph(graph, tmp_path / "xor.yaml")

    data_path = tmp_path / "data.yaml"
    data_path.write_text(
        "inputs: [[0, 0], [0, 1], [1, 0], [1, 1]]\n"
        "targets: [[0], [1], [1], [0]]\n"
        "training:\n  epochs: 5\n  optimizer: SGD\n",
        encoding="utf-8",
    )
    trainer = Runner.train(graph_path, data_path, device="cpu", seed=0)
    assert trainer.epoch == 5
    assert trainer.config.optimizer == "SGD"
    assert main([str(graph_path), "--train", str(data_path), "--epochs", "2", "--device", "cpu"]) == 0
