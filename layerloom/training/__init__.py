"""Training of lowered networks."""

from .config import TrainingConfig
from .trainer import NetworkTrainer

__all__ = ["NetworkTrainer", "TrainingConfig"]
