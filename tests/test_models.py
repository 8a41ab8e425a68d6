"""Unit tests for model implementations and the registry."""

import pytest
import torch
import torch.nn as nn

from fitkit.models import MLP, BaseModel, build_model, is_registered, register_model, registered_class


class TestMLP:
    """Test the multi-layer perceptron."""

    def test_forward(self):
        model = MLP({'input_dim': 5, 'output_dim': 2, 'hidden_dims': [16, 8]})
        output = model(torch.randn(4, 5))
        assert output.shape == (4, 2)

    def test_no_hidden_layers(self):
        model = MLP({'input_dim': 5, 'output_dim': 2, 'hidden_dims': []})
        linear_layers = [layer for layer in model.network if isinstance(layer, nn.Linear)]
        assert len(linear_layers) == 1

    def test_output_activation(self):
        model = MLP({'input_dim': 3, 'output_dim': 4, 'hidden_dims': [8], 'output_activation': 'softmax'})
        output = model(torch.randn(6, 3))
        assert torch.allclose(output.sum(dim=1), torch.ones(6), atol=1e-6)

    def test_batch_norm_and_dropout(self):
        model = MLP({
            'input_dim': 3, 'output_dim': 1, 'hidden_dims': [8],
            'use_batch_norm': True, 'dropout_rate': 0.2
        })
        layer_types = [info['type'] for info in model.get_layer_info()]
        assert layer_types == ['Linear', 'BatchNorm1d', 'ReLU', 'Dropout', 'Linear']

    def test_describe(self):
        model = MLP({'input_dim': 8, 'output_dim': 1, 'hidden_dims': [64], 'dropout_rate': 0.1})
        assert model.describe() == "8 -> 64 -> 1 [Dropout(0.1)]"

    def test_wrong_input_width(self):
        model = MLP({'input_dim': 5, 'output_dim': 2})
        with pytest.raises(ValueError):
            model(torch.randn(4, 3))

    @pytest.mark.parametrize("config", [
        {'input_dim': 0, 'output_dim': 1},
        {'input_dim': 3},
        {'input_dim': 3, 'output_dim': 1, 'hidden_dims': [0]},
        {'input_dim': 3, 'output_dim': 1, 'dropout_rate': 1.0},
        {'input_dim': 3, 'output_dim': 1, 'activation': 'softmax'},
        {'input_dim': 3, 'output_dim': 1, 'output_activation': 'exp'},
    ])
    def test_invalid_config(self, config):
        with pytest.raises(ValueError):
            MLP(config)

    def test_model_summary(self):
        model = MLP({'input_dim': 3, 'output_dim': 1, 'hidden_dims': [4]})
        summary = model.get_model_summary()

        assert summary['model_type'] == 'mlp'
        assert summary['total_parameters'] == 3 * 4 + 4 + 4 + 1
        assert summary['trainable_parameters'] == summary['total_parameters']
        assert summary['config']['model_type'] == 'mlp'


class TestRegistry:
    """Test config-driven model construction."""

    def test_build_default_mlp(self):
        model = build_model({'input_dim': 3, 'output_dim': 1})
        assert isinstance(model, MLP)

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            build_model({'model_type': 'transformer', 'input_dim': 3, 'output_dim': 1})

    def test_register_custom_model(self):
        @register_model('scaled_identity')
        class ScaledIdentity(BaseModel):
            def __init__(self, config):
                super().__init__(config)
                self.scale = nn.Parameter(torch.tensor(float(config.get('scale', 1.0))))

            def forward(self, x):
                return x * self.scale

        assert is_registered('scaled_identity')
        model = build_model({'model_type': 'scaled_identity', 'input_dim': 2, 'output_dim': 2, 'scale': 3.0})

        assert isinstance(model, ScaledIdentity)
        assert model.model_type == 'scaled_identity'
        assert torch.equal(model(torch.ones(1, 2)), torch.full((1, 2), 3.0))

    def test_is_registered(self):
        assert is_registered('MLP')
        assert not is_registered(None)

    def test_registered_class(self):
        assert registered_class('MLP') is MLP
        assert registered_class('unknown') is None
        assert registered_class(None) is None
