"""Fully connected feed-forward graph built from a config dictionary."""

import torch
import torch.nn as nn
from typing import Dict, Any, List

from .base_model import BaseModel, register_model


ACTIVATIONS = {
    'relu': nn.ReLU,
    'tanh': nn.Tanh,
    'sigmoid': nn.Sigmoid,
    'leaky_relu': lambda: nn.LeakyReLU(0.01),
    'gelu': nn.GELU,
    'swish': nn.SiLU,
    'softmax': lambda: nn.Softmax(dim=-1),
}

HIDDEN_ACTIVATIONS = tuple(name for name in ACTIVATIONS if name != 'softmax')


@register_model('mlp')
class MLP(BaseModel):
    """Multilayer perceptron: ``Linear`` blocks with optional batch norm and dropout."""

    def __init__(self, config: Dict[str, Any]):
        """Build the perceptron.

        Args:
            config: Model configuration with keys
                - input_dim, output_dim: Feature and output widths
                - hidden_dims: Hidden widths, in order (default [64, 32]; empty gives a linear model)
                - activation: Hidden activation, one of HIDDEN_ACTIVATIONS (default 'relu')
                - output_activation: Activation after the last layer (default none)
                - dropout_rate: Dropout after each hidden activation (default 0.0)
                - use_batch_norm: BatchNorm1d before each hidden activation (default False)
                - use_bias: Bias in the linear layers (default True)
        """
        super().__init__(config)

        self.hidden_dims = list(config.get('hidden_dims', [64, 32]))
        self.activation_name = config.get('activation', 'relu')
        self.output_activation_name = config.get('output_activation')
        self.dropout_rate = config.get('dropout_rate', 0.0)
        self.use_batch_norm = config.get('use_batch_norm', False)
        self.use_bias = config.get('use_bias', True)

        self._check_options()

        widths = [self.input_dim] + self.hidden_dims
        blocks = []
        for in_features, out_features in zip(widths[:-1], widths[1:]):
            blocks.extend(self._hidden_block(in_features, out_features))
        blocks.append(nn.Linear(widths[-1], self.output_dim, bias=self.use_bias))
        if self.output_activation_name is not None:
            blocks.append(ACTIVATIONS[self.output_activation_name]())

        self.network = nn.Sequential(*blocks)
        self.init_weights()

        self.logger.debug(f"Built MLP {self.describe()}")

    def _check_options(self) -> None:
        for name, value in (('input_dim', self.input_dim), ('output_dim', self.output_dim)):
            if value is None or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value}")

        if any(width <= 0 for width in self.hidden_dims):
            raise ValueError(f"hidden_dims must all be positive, got {self.hidden_dims}")

        if not 0 <= self.dropout_rate < 1:
            raise ValueError(f"dropout_rate must be in range [0, 1), got {self.dropout_rate}")

        if self.activation_name not in HIDDEN_ACTIVATIONS:
            raise ValueError(f"activation must be one of {list(HIDDEN_ACTIVATIONS)}")

        if self.output_activation_name is not None and self.output_activation_name not in ACTIVATIONS:
            raise ValueError(f"output_activation must be one of {list(ACTIVATIONS)}")

    def _hidden_block(self, in_features: int, out_features: int) -> List[nn.Module]:
        block = [nn.Linear(in_features, out_features, bias=self.use_bias)]
        # normalize pre-activation so ReLU sees zero-centred inputs
        if self.use_batch_norm:
            block.append(nn.BatchNorm1d(out_features))
        block.append(ACTIVATIONS[self.activation_name]())
        if self.dropout_rate > 0:
            block.append(nn.Dropout(self.dropout_rate))
        return block

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        self.validate_input(x)
        return self.network(x)

    def init_weights(self) -> None:
        """Kaiming normal for ReLU-family activations, Xavier normal otherwise; zero biases."""
        relu_family = self.activation_name in ('relu', 'leaky_relu')

        for module in self.network:
            if isinstance(module, nn.Linear):
                if relu_family:
                    nn.init.kaiming_normal_(module.weight, mode='fan_in', nonlinearity='relu')
                else:
                    nn.init.xavier_normal_(module.weight)
                if module.bias is not None:
                    nn.init.zeros_(module.bias)
            elif isinstance(module, nn.BatchNorm1d):
                nn.init.ones_(module.weight)
                nn.init.zeros_(module.bias)

    def describe(self) -> str:
        """Widths joined by arrows, e.g. ``8 -> 64 -> 1 [Dropout(0.1)]``."""
        text = " -> ".join(str(width) for width in [self.input_dim] + self.hidden_dims + [self.output_dim])

        extras = []
        if self.use_batch_norm:
            extras.append("BatchNorm")
        if self.dropout_rate > 0:
            extras.append(f"Dropout({self.dropout_rate})")
        if self.output_activation_name:
            extras.append(f"Output({self.output_activation_name})")

        return f"{text} [{', '.join(extras)}]" if extras else text

    def get_layer_info(self) -> List[Dict[str, Any]]:
        """Type, parameter count and widths of every layer of the network."""
        layer_info = []

        for index, layer in enumerate(self.network):
            info = {
                'index': index,
                'type': type(layer).__name__,
                'parameters': sum(p.numel() for p in layer.parameters()),
            }
            if isinstance(layer, nn.Linear):
                info['input_features'] = layer.in_features
                info['output_features'] = layer.out_features
            elif isinstance(layer, nn.Dropout):
                info['dropout_rate'] = layer.p
            layer_info.append(info)

        return layer_info
