"""Unit tests for losses, metrics, optimizers and the minibatch trainer."""

import pytest
import torch
import torch.nn as nn
import torch.nn.functional as F
import torch.optim.lr_scheduler as lr_scheduler

from fitkit.training.losses import get_loss, supported_losses, mean_squared_error, cross_entropy
from fitkit.training.metrics import MetricsCalculator, accuracy, get_metric, top_k_accuracy
from fitkit.training.optimizers import OptimizerFactory, Regularizers, SchedulerFactory
from fitkit.training.trainer import MinibatchTrainer


class TestLosses:
    """Test per-sample loss functions."""

    def test_mean_squared_error_per_sample(self):
        prediction = torch.tensor([[1.0, 2.0], [3.0, 4.0]])
        losses = get_loss('mean_squared_error')(prediction, torch.zeros(2, 2))
        assert torch.allclose(losses, torch.tensor([2.5, 12.5]))

    def test_mean_absolute_error_per_sample(self):
        prediction = torch.tensor([[1.0, -2.0], [3.0, 4.0]])
        losses = get_loss('mae')(prediction, torch.zeros(2, 2))
        assert torch.allclose(losses, torch.tensor([1.5, 3.5]))

    def test_cross_entropy_matches_torch(self):
        logits = torch.tensor([[2.0, 0.5, -1.0], [0.1, 0.2, 3.0]])
        classes = torch.tensor([0, 2])
        one_hot = F.one_hot(classes, 3).float()

        expected = F.cross_entropy(logits, classes, reduction='none')
        assert torch.allclose(get_loss('cross_entropy')(logits, one_hot), expected)
        assert torch.allclose(get_loss('sparse_cross_entropy')(logits, classes.float().unsqueeze(1)), expected)

    def test_binary_cross_entropy(self):
        prediction = torch.tensor([[0.9], [0.2]])
        target = torch.tensor([[1.0], [0.0]])
        losses = get_loss('binary_crossentropy')(prediction, target)
        expected = torch.tensor([-torch.log(torch.tensor(0.9)), -torch.log(torch.tensor(0.8))])
        assert torch.allclose(losses, expected, atol=1e-6)

    def test_higher_rank_outputs_reduce_to_samples(self):
        losses = mean_squared_error(torch.ones(3, 2, 2), torch.zeros(3, 2, 2))
        assert losses.shape == (3,)

    def test_aliases_and_case(self):
        assert get_loss('MSE') is mean_squared_error
        assert get_loss('categorical_crossentropy') is cross_entropy

    def test_callable_passes_through(self):
        def custom(prediction, target):
            return (prediction - target).abs().sum(dim=1)
        assert get_loss(custom) is custom

    def test_unknown_loss(self):
        with pytest.raises(ValueError):
            get_loss('not_a_loss')

    def test_supported_losses(self):
        assert 'mean_squared_error' in supported_losses()
        assert 'huber' in supported_losses()


class TestMetrics:
    """Test evaluation metrics."""

    def test_accuracy_one_hot_and_indices(self):
        prediction = torch.tensor([[0.1, 0.9], [0.8, 0.2]])
        one_hot = torch.tensor([[0.0, 1.0], [0.0, 1.0]])
        indices = torch.tensor([[1.0], [1.0]])

        assert torch.equal(accuracy(prediction, one_hot), torch.tensor([1.0, 0.0]))
        assert torch.equal(accuracy(prediction, indices), torch.tensor([1.0, 0.0]))

    def test_accuracy_single_column_threshold(self):
        prediction = torch.tensor([[0.7], [0.3], [0.6]])
        target = torch.tensor([[1.0], [1.0], [0.0]])
        assert torch.equal(accuracy(prediction, target), torch.tensor([1.0, 0.0, 0.0]))

    def test_top_k_accuracy(self):
        prediction = torch.tensor([[0.5, 0.3, 0.2], [0.5, 0.3, 0.2]])
        target = torch.tensor([[1.0], [2.0]])
        assert torch.equal(top_k_accuracy(prediction, target, k=2), torch.tensor([1.0, 0.0]))

    def test_losses_are_metrics(self):
        assert get_metric('mse') is mean_squared_error
        assert get_metric('acc') is accuracy

    def test_unknown_metric(self):
        with pytest.raises(ValueError):
            get_metric('not_a_metric')

    def test_metrics_calculator(self):
        calculator = MetricsCalculator()
        metrics = calculator.calculate_metrics(torch.ones(4, 1), torch.zeros(4, 1))
        assert metrics == pytest.approx({'mse': 1.0, 'mae': 1.0})

    def test_metrics_calculator_sample_mismatch(self):
        with pytest.raises(ValueError):
            MetricsCalculator(['mse']).calculate_metrics(torch.ones(4, 1), torch.zeros(3, 1))

    def test_format_metrics(self):
        formatted = MetricsCalculator.format_metrics({'loss': 0.5, 'epoch': 3}, precision=2)
        assert formatted == "loss: 0.50, epoch: 3"


class TestOptimizers:
    """Test optimizer, regularizer and scheduler construction."""

    @pytest.fixture
    def model(self):
        return nn.Linear(3, 1)

    def test_create_from_name(self, model):
        optimizer = OptimizerFactory().create_optimizer(model.parameters(), 'adam')
        assert isinstance(optimizer, torch.optim.Adam)
        assert optimizer.param_groups[0]['lr'] == pytest.approx(1e-3)

    def test_create_from_config(self, model):
        optimizer = OptimizerFactory().create_optimizer(
            model.parameters(), {'type': 'sgd', 'learning_rate': 0.5, 'weight_decay': 0.1}
        )
        assert isinstance(optimizer, torch.optim.SGD)
        assert optimizer.param_groups[0]['lr'] == pytest.approx(0.5)
        assert optimizer.param_groups[0]['weight_decay'] == pytest.approx(0.1)

    def test_momentum_variants(self, model):
        factory = OptimizerFactory()
        momentum = factory.create_optimizer(model.parameters(), 'momentum')
        nesterov = factory.create_optimizer(model.parameters(), 'nesterov')

        assert momentum.param_groups[0]['momentum'] == pytest.approx(0.9)
        assert not momentum.param_groups[0]['nesterov']
        assert nesterov.param_groups[0]['nesterov']

    @pytest.mark.parametrize("name", ['adamw', 'adamax', 'adagrad', 'adadelta', 'rmsprop'])
    def test_supported_optimizers(self, model, name):
        optimizer = OptimizerFactory().create_optimizer(model.parameters(), name)
        assert isinstance(optimizer, torch.optim.Optimizer)

    def test_unknown_optimizer(self, model):
        with pytest.raises(ValueError):
            OptimizerFactory().create_optimizer(model.parameters(), 'lbfgs2')

    def test_regularizer_penalty(self):
        param = nn.Parameter(torch.tensor([1.0, -2.0]))
        penalty = Regularizers(l1=0.5, l2=0.1).penalty([param])
        assert penalty.item() == pytest.approx(2.0)

    def test_regularizer_validation(self):
        with pytest.raises(ValueError):
            Regularizers(l1=-1.0)
        assert Regularizers.from_config(None) is None
        assert not Regularizers().enabled
        assert Regularizers.from_config({'l2': 0.01}).enabled

    def test_schedulers(self, model):
        optimizer = OptimizerFactory().create_optimizer(model.parameters(), 'sgd')
        factory = SchedulerFactory()

        assert factory.create_scheduler(optimizer, None) is None
        assert factory.create_scheduler(optimizer, {'type': 'none'}) is None
        assert isinstance(factory.create_scheduler(optimizer, {'type': 'step'}), lr_scheduler.StepLR)

        plateau = factory.create_scheduler(optimizer, {'type': 'reduce_on_plateau'})
        assert factory.requires_metric(plateau)

    def test_unknown_scheduler(self, model):
        optimizer = OptimizerFactory().create_optimizer(model.parameters(), 'sgd')
        with pytest.raises(ValueError):
            SchedulerFactory().create_scheduler(optimizer, {'type': 'warmup'})


class TestMinibatchTrainer:
    """Test one optimizer step per minibatch."""

    @pytest.fixture
    def batch(self):
        torch.manual_seed(0)
        features = torch.randn(8, 3)
        labels = features.sum(dim=1, keepdim=True)
        return features, labels

    def make_trainer(self, model, regularizers=None, gradient_clipping=None):
        optimizer = OptimizerFactory().create_optimizer(model.parameters(), {'type': 'sgd', 'learning_rate': 0.1})
        return MinibatchTrainer(
            model, get_loss('mse'), get_metric('mae'), optimizer,
            regularizers=regularizers, gradient_clipping=gradient_clipping
        )

    def test_train_minibatch(self, batch):
        features, labels = batch
        model = nn.Linear(3, 1)
        trainer = self.make_trainer(model)

        with torch.no_grad():
            expected_loss = ((model(features) - labels) ** 2).mean().item()
            expected_metric = (model(features) - labels).abs().mean().item()
        weights_before = model.weight.detach().clone()

        outputs = trainer.train_minibatch(features, labels)

        assert outputs.shape == (8, 1)
        assert not outputs.requires_grad
        assert trainer.previous_minibatch_loss_average == pytest.approx(expected_loss, rel=1e-5)
        assert trainer.previous_minibatch_evaluation_average == pytest.approx(expected_metric, rel=1e-5)
        assert trainer.previous_minibatch_sample_count == 8
        assert not torch.equal(model.weight, weights_before)

    def test_samples_accumulate(self, batch):
        features, labels = batch
        trainer = self.make_trainer(nn.Linear(3, 1))

        trainer.train_minibatch(features, labels)
        trainer.train_minibatch(features[:5], labels[:5])

        assert trainer.previous_minibatch_sample_count == 5
        assert trainer.total_number_of_samples_seen == 13

    def test_penalty_not_reported_in_loss(self, batch):
        features, labels = batch
        model = nn.Linear(3, 1)
        trainer = self.make_trainer(model, regularizers=Regularizers(l2=100.0))

        with torch.no_grad():
            expected_loss = ((model(features) - labels) ** 2).mean().item()

        trainer.train_minibatch(features, labels)
        assert trainer.previous_minibatch_loss_average == pytest.approx(expected_loss, rel=1e-5)

    def test_disabled_regularizers_are_dropped(self):
        trainer = self.make_trainer(nn.Linear(3, 1), regularizers=Regularizers())
        assert trainer.regularizers is None

    def test_gradient_clipping(self, batch):
        features, labels = batch
        model = nn.Linear(3, 1)
        trainer = self.make_trainer(model, gradient_clipping=1e-3)

        weights_before = model.weight.detach().clone()
        trainer.train_minibatch(features, labels * 1000)

        # one SGD step of lr 0.1 on a gradient of norm <= 1e-3
        assert (model.weight - weights_before).norm().item() <= 1e-4 + 1e-7

    def test_learning_rate(self):
        assert self.make_trainer(nn.Linear(3, 1)).learning_rate == pytest.approx(0.1)
