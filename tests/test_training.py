"""Tests for TrainingConfig and NetworkTrainer."""
import numpy as np
import pytest

torch = pytest.importorskip("torch")

from layerloom.engine.base import EngineError  # noqa: E402
from layerloom.engine.lowering import build_network  # noqa: E402
from layerloom.training.config import TrainingConfig  # noqa: E402
from layerloom.training.trainer import NetworkTrainer  # noqa: E402

X = np.linspace(-1, 1, 32, dtype=np.float32).reshape(-1, 1)
Y = 2 * X + 1


@pytest.fixture
def linear(graph, engine):
    dense = graph.add_node("LayerDense", numeric_params=[1], name="dense")
    bias = graph.add_node("LayerBias", name="bias")
    assert graph.connect(dense.output_port, bias.input_port)
    build_network(graph, engine)
    return engine


# ==================== CONFIG ====================

def test_config_defaults_and_from_dict() -> None:
    cfg = TrainingConfig.from_dict({"epochs": 5, "optimizer": "SGD", "unknown": 1})
    assert cfg.epochs == 5 and cfg.optimizer == "SGD"
    assert cfg.loss == "MeanSquaredError"
    assert cfg.to_dict()["batch_size"] == 32


@pytest.mark.parametrize(
    "kwargs",
    [{"epochs": 0}, {"batch_size": 0}, {"validation_split": 1.0}, {"validation_split": -0.1}],
)
def test_config_rejects_bad_values(kwargs) -> None:
    with pytest.raises(ValueError):
        TrainingConfig(**kwargs)


def test_config_yaml_round_trip(tmp_path) -> None:
    cfg = TrainingConfig(epochs=7, learning_rate=0.01, seed=3)
    path = tmp_path / "cfg" / "training.yaml"
    cfg.to_yaml(path)
    assert TrainingConfig.from_yaml(path) == cfg


def test_config_yaml_training_section(tmp_path) -> None:
    path = tmp_path / "data.yaml"
    path.write_text("inputs: [[0]]\ntargets: [[1]]\ntraining:\n  epochs: 3\n  loss: Huber\n", encoding="utf-8")
    cfg = TrainingConfig.from_yaml(path)
    assert cfg.epochs == 3 and cfg.loss == "Huber"


# ==================== FIT ====================

def test_fit_reduces_loss(linear) -> None:
    trainer = linear.fit(X, Y, {"epochs": 60, "learning_rate": 0.05, "batch_size": 8, "seed": 0})
    assert isinstance(trainer, NetworkTrainer)
    assert trainer.epoch == 60
    assert len(trainer.train_losses) == 60
    assert trainer.train_losses[-1] < trainer.train_losses[0]
    assert not trainer.is_training
    prediction = linear.predict([[0.5]])
    assert prediction.shape == (1, 1)


def test_validation_split_records_validation_losses(linear) -> None:
    trainer = NetworkTrainer(linear, TrainingConfig(epochs=4, validation_split=0.25, seed=1))
    history = trainer.fit(X, Y)
    assert len(history["train"]) == 4
    assert len(history["validation"]) == 4


def test_keep_best_tracks_lowest_loss(linear) -> None:
    trainer = NetworkTrainer(linear, TrainingConfig(epochs=10, keep_best=True, learning_rate=0.05, seed=0))
    trainer.fit(X, Y)
    assert trainer.best_loss == min(trainer.train_losses)


@pytest.mark.parametrize("optimizer", ["SGD", "Momentum", "Nesterov", "AdamW", "RMSProp", "Adagrad"])
def test_every_optimizer_runs(linear, optimizer) -> None:
    trainer = NetworkTrainer(linear, TrainingConfig(epochs=2, optimizer=optimizer, regularizer="L2",
                                                    regularizer_param=0.01))
    trainer.fit(X, Y)
    assert len(trainer.train_losses) == 2


def test_unknown_loss_and_optimizer(linear) -> None:
    with pytest.raises(EngineError, match="Loss function"):
        NetworkTrainer(linear, TrainingConfig(epochs=1, loss="Nope")).fit(X, Y)
    with pytest.raises(EngineError, match="Optimizer"):
        NetworkTrainer(linear, TrainingConfig(epochs=1, optimizer="Nope")).fit(X, Y)


def test_row_mismatch(linear) -> None:
    with pytest.raises(EngineError, match="rows"):
        NetworkTrainer(linear, TrainingConfig(epochs=1)).fit(X, Y[:-1])


def test_empty_network_cannot_train(engine) -> None:
    with pytest.raises(EngineError, match="empty"):
        NetworkTrainer(engine, TrainingConfig(epochs=1)).fit(X, Y)


def test_cross_entropy_with_class_column(graph, engine) -> None:
    dense = graph.add_node("LayerDense", numeric_params=[3])
    act = graph.add_node("LayerActivation", string_params=["Linear"])
    assert graph.connect(dense.output_port, act.input_port)
    build_network(graph, engine)
    labels = (np.arange(32) % 3).reshape(-1, 1)
    trainer = engine.fit(X, labels, {"epochs": 2, "loss": "CrossEntropy"})
    assert len(trainer.train_losses) == 2


# ==================== BACKGROUND ====================

def test_background_training_can_be_stopped(linear) -> None:
    trainer = NetworkTrainer(linear, TrainingConfig(epochs=100000, batch_size=1))
    trainer.start(X, Y)
    assert trainer.is_training
    trainer.stop()
    trainer.join(timeout=30)
    assert not trainer.is_training
    assert trainer.epoch < 100000
    assert not trainer.stop_requested


def test_stop_before_start_is_ignored(linear) -> None:
    trainer = NetworkTrainer(linear, TrainingConfig(epochs=3))
    trainer.stop()
    trainer.fit(X, Y)
    assert trainer.epoch == 3


def test_background_error_is_reraised_on_join(linear) -> None:
    trainer = NetworkTrainer(linear, TrainingConfig(epochs=1, loss="Nope"))
    trainer.start(X, Y)
    with pytest.raises(EngineError):
        trainer.join(timeout=30)
    assert not trainer.is_training
