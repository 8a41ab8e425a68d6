"""Evaluation metrics looked up by name."""

import torch
from typing import Dict, List, Optional, Sequence, Union

from .losses import LOSSES, LossFunction, normalize_name


def accuracy(prediction: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    """Per-sample hit (1.0) or miss (0.0).

    Multi-column outputs compare argmax indices; single-column outputs are
    thresholded at 0.5.
    """
    prediction = prediction.reshape(prediction.shape[0], -1)
    target = target.reshape(target.shape[0], -1)

    if prediction.shape[1] == 1:
        return ((prediction[:, 0] > 0.5) == (target[:, 0] > 0.5)).to(prediction.dtype)

    if target.shape[1] == 1:
        target_classes = target[:, 0].long()
    else:
        target_classes = target.argmax(dim=1)
    return (prediction.argmax(dim=1) == target_classes).to(prediction.dtype)


def binary_accuracy(prediction: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    hits = ((prediction > 0.5) == (target > 0.5)).to(prediction.dtype)
    return hits.reshape(hits.shape[0], -1).mean(dim=1)


def top_k_accuracy(prediction: torch.Tensor, target: torch.Tensor, k: int = 5) -> torch.Tensor:
    prediction = prediction.reshape(prediction.shape[0], -1)
    target = target.reshape(target.shape[0], -1)
    target_classes = target[:, 0].long() if target.shape[1] == 1 else target.argmax(dim=1)

    k = min(k, prediction.shape[1])
    top_k = prediction.topk(k, dim=1).indices
    return (top_k == target_classes.unsqueeze(1)).any(dim=1).to(prediction.dtype)


METRICS: Dict[str, LossFunction] = {
    'accuracy': accuracy,
    'binary_accuracy': binary_accuracy,
    'top_k_accuracy': top_k_accuracy,
}

METRIC_ALIASES = {
    'acc': 'accuracy',
    'categorical_accuracy': 'accuracy',
    'top5': 'top_k_accuracy',
}


def get_metric(name: Union[str, LossFunction]) -> LossFunction:
    """Look up a per-sample metric by name; every loss name is a valid metric.

    Args:
        name: Metric or loss name, or a callable returned unchanged

    Returns:
        Metric function
    """
    if callable(name):
        return name

    key = normalize_name(name)
    key = METRIC_ALIASES.get(key, key)
    if key in METRICS:
        return METRICS[key]
    if key in LOSSES:
        return LOSSES[key]
    raise ValueError(f"Unknown metric: {name}. Supported: {supported_metrics()}")


def supported_metrics() -> List[str]:
    return sorted(set(METRICS) | set(LOSSES))


class MetricsCalculator:
    """Averages named metrics over a set of predictions."""

    def __init__(self, metric_names: Optional[Sequence[str]] = None):
        """Initialize MetricsCalculator.

        Args:
            metric_names: Metric names to compute (default: mse and mae)
        """
        self.metric_names = list(metric_names) if metric_names else ['mse', 'mae']
        self.metric_functions = {name: get_metric(name) for name in self.metric_names}

    def calculate_metrics(self, predictions: torch.Tensor, targets: torch.Tensor) -> Dict[str, float]:
        """Calculate every configured metric as a mean over samples."""
        if predictions.shape[0] != targets.shape[0]:
            raise ValueError(
                f"Predictions and targets must have the same number of samples. "
                f"Got {predictions.shape[0]} vs {targets.shape[0]}"
            )

        with torch.no_grad():
            return {
                name: float(function(predictions, targets).mean().item())
                for name, function in self.metric_functions.items()
            }

    @staticmethod
    def format_metrics(metrics: Dict[str, float], precision: int = 6) -> str:
        """Format metrics for logging.

        Args:
            metrics: Dictionary of metrics
            precision: Number of decimal places

        Returns:
            Formatted string of metrics
        """
        formatted_parts = []
        for key, value in metrics.items():
            if isinstance(value, float):
                formatted_parts.append(f"{key}: {value:.{precision}f}")
            else:
                formatted_parts.append(f"{key}: {value}")

        return ", ".join(formatted_parts)
