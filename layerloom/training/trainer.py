# layerloom/training/trainer.py
"""NetworkTrainer — mini-batch fit loop over an engine's network.

Progress is read pull-based from another thread: ``train_losses``,
``validation_losses``, ``epoch`` and ``is_training`` are plain attributes
updated once per epoch, and ``stop()`` asks the loop to finish after the
current batch.
"""
from __future__ import annotations

import copy
import logging
import threading
import time
from typing import Any, Dict, List, Optional, Union

import torch

from ..engine.base import EngineError
from .config import TrainingConfig

logger = logging.getLogger(__name__)


class NetworkTrainer:
    """Trains the network held by a ``TorchEngine``.

    Usage::

        trainer = NetworkTrainer(engine, TrainingConfig(epochs=20))
        trainer.fit(x, y)
        trainer.train_losses[-1]
    """

    def __init__(self, engine, config: Optional[Union[TrainingConfig, Dict[str, Any]]] = None):
        self.engine = engine
        self.config = config if isinstance(config, TrainingConfig) else TrainingConfig.from_dict(config or {})

        self.train_losses: List[float] = []
        self.validation_losses: List[float] = []
        self.epoch = 0
        self.is_training = False
        self.best_loss: Optional[float] = None

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.error: Optional[BaseException] = None

    def stop(self) -> None:
        if self.is_training:
            self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    # ==================== SETUP ====================

    def _split(self, x: torch.Tensor, y: torch.Tensor, generator: torch.Generator):
        n_val = int(round(x.shape[0] * self.config.validation_split))
        if n_val <= 0 or n_val >= x.shape[0]:
            return x, y, None, None
        perm = torch.randperm(x.shape[0], generator=generator).to(x.device)
        val_idx, train_idx = perm[:n_val], perm[n_val:]
        return x[train_idx], y[train_idx], x[val_idx], y[val_idx]

    @staticmethod
    def _prepare_targets(loss_fn, y: torch.Tensor) -> torch.Tensor:
        if isinstance(loss_fn, torch.nn.CrossEntropyLoss) and y.dim() == 2 and y.shape[-1] == 1:
            return y.squeeze(-1).long()
        return y

    # ==================== MAIN LOOP ====================

    def fit(self, inputs: Any, targets: Any, rows: Optional[int] = None,
            input_cols: Optional[int] = None, target_cols: Optional[int] = None) -> Dict[str, List[float]]:
        """Run the training loop.

        Returns:
            Dict with ``train`` and ``validation`` loss histories.
        """
        cfg = self.config
        network = self.engine.network
        if not len(network):
            raise EngineError("Network is empty; build it before training")

        loss_fn = self.engine.build_loss(cfg.loss)
        x = self.engine.as_tensor(inputs, rows, input_cols)
        y = self._prepare_targets(loss_fn, self.engine.as_tensor(targets, rows, target_cols))
        if x.shape[0] != y.shape[0]:
            raise EngineError(f"Got {x.shape[0]} input rows but {y.shape[0]} target rows")

        generator = torch.Generator()
        if cfg.seed is not None:
            generator.manual_seed(int(cfg.seed))
            torch.manual_seed(int(cfg.seed))

        x_train, y_train, x_val, y_val = self._split(x, y, generator)
        self.engine.materialize(x_train)
        optimizer = self.engine.build_optimizer(
            cfg.optimizer, network.parameters(), cfg.learning_rate, cfg.momentum, cfg.decay
        )

        self.is_training = True
        best_state = None
        start_time = time.time()
        n = x_train.shape[0]
        try:
            for epoch in range(cfg.epochs):
                network.train()
                order = torch.randperm(n, generator=generator) if cfg.random_batch_order else torch.arange(n)
                order = order.to(x_train.device)
                epoch_loss = 0.0
                seen = 0
                for start in range(0, n, cfg.batch_size):
                    if self._stop.is_set():
                        break
                    idx = order[start:start + cfg.batch_size]
                    optimizer.zero_grad()
                    loss = loss_fn(network(x_train[idx]), y_train[idx])
                    total = loss + self.engine.regularization(cfg.regularizer, cfg.regularizer_param)
                    total.backward()
                    optimizer.step()
                    epoch_loss += loss.item() * len(idx)
                    seen += len(idx)

                if seen:
                    self.train_losses.append(epoch_loss / seen)
                if x_val is not None:
                    self.validation_losses.append(self._evaluate(loss_fn, x_val, y_val))
                self.epoch = epoch + 1

                if cfg.keep_best and seen:
                    current = self.validation_losses[-1] if x_val is not None else self.train_losses[-1]
                    if self.best_loss is None or current < self.best_loss:
                        self.best_loss = current
                        best_state = copy.deepcopy(network.state_dict())

                logger.debug(
                    f"[Epoch {self.epoch}/{cfg.epochs}] loss={self.train_losses[-1] if self.train_losses else float('nan'):.6f}"
                    + (f" val={self.validation_losses[-1]:.6f}" if x_val is not None else "")
                )
                if self._stop.is_set():
                    logger.info(f"Training stopped at epoch {self.epoch}")
                    break
        finally:
            self.is_training = False
            self._stop.clear()

        if best_state is not None:
            network.load_state_dict(best_state)
        logger.info(
            f"Training finished: {self.epoch} epoch(s) in {time.time() - start_time:.1f}s, "
            f"final loss {self.train_losses[-1] if self.train_losses else float('nan'):.6f}"
        )
        return {"train": list(self.train_losses), "validation": list(self.validation_losses)}

    def _evaluate(self, loss_fn, x: torch.Tensor, y: torch.Tensor) -> float:
        network = self.engine.network
        network.eval()
        with torch.no_grad():
            return loss_fn(network(x), y).item()

    # ==================== BACKGROUND ====================

    def start(self, inputs: Any, targets: Any, **kwargs) -> threading.Thread:
        """Run ``fit`` on a daemon thread. Errors are kept in ``self.error``."""
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("Training is already running")

        def _run():
            try:
                self.fit(inputs, targets, **kwargs)
            except Exception as e:
                logger.error(f"Training failed: {e}")
                self.error = e
            finally:
                self.is_training = False
                self._stop.clear()

        self.is_training = True
        self._thread = threading.Thread(target=_run, name="layerloom-trainer", daemon=True)
        self._thread.start()
        return self._thread

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)
        if self.error is not None:
            raise self.error
