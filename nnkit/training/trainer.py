"""Epoch/chunk training loop driving the optimizer steps."""

from __future__ import annotations

import logging
import math
from typing import Callable, Iterator, List, Mapping, MutableSequence, Sequence

import numpy as np

from ..core.network import Network
from ..core.types import RunResult, Sample, as_sample
from .optimizers import STEPS, Hyperparameters, OptimizerKind, StepFn

logger = logging.getLogger(__name__)

Callback = Callable[[int, Mapping[str, float]], None]


class Trainer:
    """Train a network over a mutable list of samples.

    The trainer owns no persisted state: counters and moment buffers live on
    the network, so a new trainer can pick up where a saved network left off.
    ``sample_size=None`` uses the whole sample list per optimizer step;
    otherwise the list is split into contiguous chunks of that size.  When
    ``shuffle`` is on, the list itself is permuted in place before every
    epoch with the trainer's generator.
    """

    def __init__(
        self,
        network: Network,
        samples: MutableSequence[Sample | tuple],
        *,
        learning_rate: float = 0.001,
        beta: float = 0.9,
        beta1: float = 0.9,
        beta2: float = 0.999,
        epsilon: float = 1e-8,
        sample_size: int | None = None,
        shuffle: bool = True,
        seed: int | None = None,
        rng: np.random.Generator | None = None,
        callbacks: Sequence[object] | None = None,
        on_iteration: Callback | None = None,
        on_epoch: Callback | None = None,
    ) -> None:
        self.network = network
        self.samples = samples
        self.hyperparameters = Hyperparameters(
            learning_rate=learning_rate,
            beta=beta,
            beta1=beta1,
            beta2=beta2,
            epsilon=epsilon,
        )
        self.sample_size = sample_size
        self.shuffle = shuffle
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.callbacks = list(callbacks or [])
        self.on_iteration = on_iteration
        self.on_epoch = on_epoch

    @property
    def learning_rate(self) -> float:
        return self.hyperparameters.learning_rate

    @learning_rate.setter
    def learning_rate(self, value: float) -> None:
        self.hyperparameters.learning_rate = float(value)

    def train(self, optimizer: str | OptimizerKind, epochs: int) -> RunResult:
        """Run ``epochs`` passes over the samples with the chosen optimizer."""

        kind = OptimizerKind.from_name(optimizer)
        if epochs < 0:
            raise ValueError(f"epochs must be non-negative, got {epochs}")
        if not self.samples:
            raise ValueError("Trainer needs at least one sample")
        if self.sample_size is not None and self.sample_size <= 0:
            raise ValueError(f"sample_size must be positive, got {self.sample_size}")
        self.network.validate()
        step_fn = STEPS[kind]

        logger.info(
            "Training with %s for %d epochs on %d samples (chunk size %s)",
            kind.value,
            epochs,
            len(self.samples),
            self.sample_size or len(self.samples),
        )

        history: List[float] = []
        steps = 0
        for _ in range(epochs):
            if self.shuffle:
                self.rng.shuffle(self.samples)
            losses: List[float] = []
            for chunk in self._chunks():
                loss = self._step(step_fn, chunk)
                steps += 1
                losses.append(loss)
                logger.debug("Step %d loss %.6f", self.network.iterations_trained, loss)
                self._emit_step(
                    self.network.iterations_trained,
                    {
                        "loss": loss,
                        "iteration": float(self.network.iterations_trained),
                        "epoch": float(self.network.epochs_trained + 1),
                    },
                )
            self.network.epochs_trained += 1
            epoch_loss = float(np.mean(losses))
            history.append(epoch_loss)
            if math.isnan(epoch_loss):
                logger.warning("Loss became NaN at epoch %d", self.network.epochs_trained)
            logger.debug("Epoch %d loss %.6f", self.network.epochs_trained, epoch_loss)
            self._emit_epoch(
                self.network.epochs_trained,
                {
                    "loss": epoch_loss,
                    "iteration": float(self.network.iterations_trained),
                    "epoch": float(self.network.epochs_trained),
                },
            )

        return RunResult(
            steps=steps,
            epochs=epochs,
            final_loss=history[-1] if history else float("nan"),
            history=history,
        )

    # ------------------------------------------------------------------
    # Internal helpers

    def _chunks(self) -> Iterator[List[Sample]]:
        total = len(self.samples)
        size = total if self.sample_size is None else int(self.sample_size)
        for start in range(0, total, size):
            yield [as_sample(item) for item in self.samples[start : start + size]]

    def _step(self, step_fn: StepFn, chunk: Sequence[Sample]) -> float:
        averaged = self.network.average_gradients(chunk)
        step_fn(self.network, averaged.grads, self.hyperparameters)
        self.network.iterations_trained += 1
        return averaged.loss

    def _emit_step(self, iteration: int, metrics: Mapping[str, float]) -> None:
        if self.on_iteration is not None:
            self.on_iteration(iteration, metrics)
        for callback in self.callbacks:
            if hasattr(callback, "on_step"):
                callback.on_step(iteration, metrics)  # type: ignore[attr-defined]

    def _emit_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        if self.on_epoch is not None:
            self.on_epoch(epoch, metrics)
        for callback in self.callbacks:
            if hasattr(callback, "on_epoch"):
                callback.on_epoch(epoch, metrics)  # type: ignore[attr-defined]
            elif callable(callback) and not hasattr(callback, "on_step"):
                callback(epoch, metrics)


__all__ = ["Trainer"]
