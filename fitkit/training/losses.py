"""Loss functions looked up by name.

Every loss takes ``(prediction, target)`` tensors whose first axis is the
sample axis and returns one value per sample. Callers average the vector
to get the minibatch loss.
"""

from typing import Callable, Dict, List, Union

import torch
import torch.nn.functional as F


LossFunction = Callable[[torch.Tensor, torch.Tensor], torch.Tensor]

EPSILON = 1e-7


def _per_sample(values: torch.Tensor) -> torch.Tensor:
    """Average every axis but the sample axis."""
    if values.dim() == 0:
        return values.reshape(1)
    return values.reshape(values.shape[0], -1).mean(dim=1)


def _flatten(values: torch.Tensor) -> torch.Tensor:
    return values.reshape(values.shape[0], -1)


def mean_squared_error(prediction: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    return _per_sample((prediction - target) ** 2)


def mean_absolute_error(prediction: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    return _per_sample(torch.abs(prediction - target))


def mean_absolute_percentage_error(prediction: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    return 100.0 * _per_sample(torch.abs(target - prediction) / torch.clamp(torch.abs(target), min=EPSILON))


def mean_squared_logarithmic_error(prediction: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    log_prediction = torch.log1p(torch.clamp(prediction, min=0.0))
    log_target = torch.log1p(torch.clamp(target, min=0.0))
    return _per_sample((log_prediction - log_target) ** 2)


def cross_entropy(prediction: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    """Softmax cross entropy; ``prediction`` holds unnormalized scores."""
    return -(_flatten(target) * F.log_softmax(_flatten(prediction), dim=1)).sum(dim=1)


def sparse_cross_entropy(prediction: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    """Softmax cross entropy against integer class indices."""
    return F.cross_entropy(_flatten(prediction), target.reshape(-1).long(), reduction='none')


def binary_cross_entropy(prediction: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    """Binary cross entropy; ``prediction`` holds probabilities."""
    probabilities = torch.clamp(prediction, EPSILON, 1.0 - EPSILON)
    return _per_sample(F.binary_cross_entropy(probabilities, target, reduction='none'))


def kullback_leibler_divergence(prediction: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    target = torch.clamp(_flatten(target), EPSILON, 1.0)
    prediction = torch.clamp(_flatten(prediction), EPSILON, 1.0)
    return (target * torch.log(target / prediction)).sum(dim=1)


def poisson(prediction: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    return _per_sample(prediction - target * torch.log(prediction + EPSILON))


def cosine_proximity(prediction: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    return -F.cosine_similarity(_flatten(prediction), _flatten(target), dim=1, eps=EPSILON)


def hinge(prediction: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    return _per_sample(torch.clamp(1.0 - target * prediction, min=0.0))


def squared_hinge(prediction: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    return _per_sample(torch.clamp(1.0 - target * prediction, min=0.0) ** 2)


def huber(prediction: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    return _per_sample(F.huber_loss(prediction, target, reduction='none', delta=1.0))


LOSSES: Dict[str, LossFunction] = {
    'mean_squared_error': mean_squared_error,
    'mean_absolute_error': mean_absolute_error,
    'mean_absolute_percentage_error': mean_absolute_percentage_error,
    'mean_squared_logarithmic_error': mean_squared_logarithmic_error,
    'cross_entropy': cross_entropy,
    'sparse_cross_entropy': sparse_cross_entropy,
    'binary_cross_entropy': binary_cross_entropy,
    'kullback_leibler_divergence': kullback_leibler_divergence,
    'poisson': poisson,
    'cosine_proximity': cosine_proximity,
    'hinge': hinge,
    'squared_hinge': squared_hinge,
    'huber': huber,
}

ALIASES: Dict[str, str] = {
    'mse': 'mean_squared_error',
    'mae': 'mean_absolute_error',
    'l1': 'mean_absolute_error',
    'mape': 'mean_absolute_percentage_error',
    'msle': 'mean_squared_logarithmic_error',
    'categorical_crossentropy': 'cross_entropy',
    'crossentropy': 'cross_entropy',
    'sparse_categorical_crossentropy': 'sparse_cross_entropy',
    'binary_crossentropy': 'binary_cross_entropy',
    'kld': 'kullback_leibler_divergence',
    'cosine': 'cosine_proximity',
}


def normalize_name(name: str) -> str:
    """Lower-case a loss/metric name and resolve aliases."""
    key = name.strip().lower().replace('-', '_').replace(' ', '_')
    return ALIASES.get(key, key)


def get_loss(name: Union[str, LossFunction]) -> LossFunction:
    """Look up a per-sample loss function by name.

    Args:
        name: Loss name or alias, or a callable returned unchanged

    Returns:
        Loss function
    """
    if callable(name):
        return name

    key = normalize_name(name)
    if key not in LOSSES:
        raise ValueError(f"Unknown loss function: {name}. Supported: {supported_losses()}")
    return LOSSES[key]


def supported_losses() -> List[str]:
    return sorted(LOSSES)
