"""Config-built graphs and the registry that maps ``model_type`` to a class."""

import torch
import torch.nn as nn
from abc import ABC, abstractmethod
from typing import Dict, Any, Callable, Optional, Type
import logging


_MODEL_REGISTRY: Dict[str, Type['BaseModel']] = {}


def register_model(name: str) -> Callable[[Type['BaseModel']], Type['BaseModel']]:
    """Class decorator registering a model type for config-driven construction."""
    def decorator(cls):
        _MODEL_REGISTRY[name.lower()] = cls
        cls.registered_name = name.lower()
        return cls
    return decorator


def is_registered(model_type) -> bool:
    return isinstance(model_type, str) and model_type.lower() in _MODEL_REGISTRY


def registered_class(model_type) -> Optional[Type['BaseModel']]:
    """Class registered under ``model_type``, or None."""
    if not isinstance(model_type, str):
        return None
    return _MODEL_REGISTRY.get(model_type.lower())


def build_model(config: Dict[str, Any]) -> 'BaseModel':
    """Create a model from its configuration.

    Args:
        config: Model configuration; 'model_type' selects the class (default 'mlp')

    Returns:
        Model instance
    """
    model_type = str(config.get('model_type', 'mlp')).lower()
    if model_type not in _MODEL_REGISTRY:
        raise ValueError(f"Unknown model type: {model_type}. Supported: {sorted(_MODEL_REGISTRY)}")
    return _MODEL_REGISTRY[model_type](config)


class BaseModel(nn.Module, ABC):
    """Graph described entirely by a configuration dictionary.

    The configuration (with ``model_type`` filled in) is what gets saved
    next to the weights, so a registered subclass can be rebuilt from it.
    """

    registered_name = None

    def __init__(self, config: Dict[str, Any]):
        super().__init__()
        self.config = dict(config)
        self.logger = logging.getLogger('fitkit')

        self.input_dim = self.config.get('input_dim')
        self.output_dim = self.config.get('output_dim')
        self.model_type = self.config.setdefault('model_type', self.registered_name or 'base')

    @abstractmethod
    def forward(self, x: torch.Tensor) -> torch.Tensor:
        pass

    def get_model_summary(self) -> Dict[str, Any]:
        """Type, widths, parameter counts and configuration of the model."""
        counts = self.count_parameters()
        bytes_per_param = next(self.parameters()).element_size() if counts['total'] else 4

        return {
            'model_type': self.model_type,
            'input_dim': self.input_dim,
            'output_dim': self.output_dim,
            'total_parameters': counts['total'],
            'trainable_parameters': counts['trainable'],
            'model_size_mb': counts['total'] * bytes_per_param / (1024 * 1024),
            'config': self.config
        }

    def count_parameters(self) -> Dict[str, int]:
        total = sum(p.numel() for p in self.parameters())
        trainable = sum(p.numel() for p in self.parameters() if p.requires_grad)
        return {'total': total, 'trainable': trainable, 'non_trainable': total - trainable}

    def validate_input(self, x: torch.Tensor) -> None:
        """Check that ``x`` is a (batch, input_dim) matrix.

        Raises:
            ValueError: On any other shape
        """
        if x.dim() != 2 or x.size(1) != self.input_dim:
            raise ValueError(
                f"Expected input of shape (batch, {self.input_dim}), got {tuple(x.shape)}"
            )

    def init_weights(self) -> None:
        """Subclasses initialize their own parameters."""
