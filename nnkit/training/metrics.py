"""Evaluation metrics computed from network predictions."""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Sequence

import numpy as np

from ..core.losses import Loss, LossFunction, get_loss
from ..core.network import Network
from ..core.types import Array, Sample, as_sample


def default_metrics(loss: str | LossFunction | Loss) -> List[str]:
    kind = get_loss(loss).kind
    if kind is LossFunction.CCE:
        return ["loss", "accuracy"]
    return ["loss", "mae", "rmse", "accuracy"]


def _accuracy(predictions: Array, targets: Array) -> float:
    # predictions and targets are stacked as (samples, outputs)
    if predictions.shape[1] > 1:
        hits = np.argmax(predictions, axis=1) == np.argmax(targets, axis=1)
    else:
        hits = (predictions[:, 0] >= 0.5) == (targets[:, 0] >= 0.5)
    return float(np.mean(hits))


def compute_metric(
    name: str, predictions: Array, targets: Array, losses: Sequence[float]
) -> float:
    key = name.lower()
    if key == "loss":
        return float(np.mean(losses))
    if key == "mae":
        return float(np.mean(np.abs(predictions - targets)))
    if key == "rmse":
        return float(np.sqrt(np.mean((predictions - targets) ** 2)))
    if key == "accuracy":
        return _accuracy(predictions, targets)
    raise KeyError(f"Unknown metric: {name}")


def evaluate(
    network: Network,
    samples: Iterable[Sample | tuple],
    names: Iterable[str] | None = None,
) -> Mapping[str, float]:
    """Run every sample through ``network`` and score the predictions.

    Inference uses :meth:`Network.run`, so layer forward state is untouched.
    """

    batch = [as_sample(item) for item in samples]
    if not batch:
        raise ValueError("evaluate needs at least one sample")
    names = list(names) if names is not None else default_metrics(network.loss)

    preds: List[Array] = []
    targs: List[Array] = []
    losses: List[float] = []
    for sample in batch:
        predicted = network.run(sample.inputs)
        losses.append(network.loss_value(predicted, sample.targets))
        preds.append(predicted.to_array()[:, 0])
        targs.append(sample.targets.to_array()[:, 0])
    predictions = np.stack(preds)
    targets = np.stack(targs)

    results: Dict[str, float] = {}
    for name in names:
        results[name.lower()] = compute_metric(name, predictions, targets, losses)
    return results


__all__ = ["compute_metric", "default_metrics", "evaluate"]
