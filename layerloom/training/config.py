# layerloom/training/config.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from omegaconf import OmegaConf


@dataclass
class TrainingConfig:
    """Training settings handed to the engine's fit loop."""
    epochs: int = 100
    batch_size: int = 32

    # Loss / optimizer, by engine name
    loss: str = "MeanSquaredError"
    optimizer: str = "Adam"
    learning_rate: float = 1e-3
    momentum: float = 0.9
    decay: float = 0.0

    # Regularization: "None", "L1", "L2"
    regularizer: str = "None"
    regularizer_param: float = 0.0

    # Fraction of rows held out for validation losses
    validation_split: float = 0.0
    random_batch_order: bool = True
    keep_best: bool = False
    seed: Optional[int] = None

    def __post_init__(self):
        if self.epochs < 1:
            raise ValueError(f"epochs must be >= 1, got {self.epochs}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if not 0.0 <= self.validation_split < 1.0:
            raise ValueError(f"validation_split must be in [0, 1), got {self.validation_split}")

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> TrainingConfig:
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> TrainingConfig:
        cfg = OmegaConf.load(path)
        data = OmegaConf.to_container(cfg, resolve=True)
        # Training settings may sit under a "training" key next to other sections.
        if isinstance(data, dict) and isinstance(data.get("training"), dict):
            data = data["training"]
        return cls.from_dict(data or {})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_yaml(self, path: Union[str, Path]) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        OmegaConf.save(OmegaConf.structured(self), path)
