"""Optimizer, regularizer and learning rate scheduler factories."""

import torch
import torch.optim as optim
import torch.optim.lr_scheduler as lr_scheduler
from typing import Dict, Any, Iterable, Optional, Union
import logging


DEFAULT_LEARNING_RATES = {
    'sgd': 0.01,
    'momentum': 0.01,
    'nesterov': 0.01,
    'adam': 1e-3,
    'adamw': 1e-3,
    'adamax': 2e-3,
    'adagrad': 0.01,
    'adadelta': 1.0,
    'rmsprop': 1e-3,
}


class Regularizers:
    """L1/L2 weight penalties added to the training objective."""

    def __init__(self, l1: float = 0.0, l2: float = 0.0):
        if l1 < 0 or l2 < 0:
            raise ValueError(f"Regularization weights must be non-negative, got l1={l1}, l2={l2}")
        self.l1 = l1
        self.l2 = l2

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]]) -> Optional['Regularizers']:
        if not config:
            return None
        return cls(l1=config.get('l1', 0.0), l2=config.get('l2', 0.0))

    @property
    def enabled(self) -> bool:
        return self.l1 > 0 or self.l2 > 0

    def penalty(self, parameters: Iterable[torch.nn.Parameter]) -> torch.Tensor:
        """Weighted L1 plus L2 norm of the trainable parameters."""
        total = torch.zeros(())
        for param in parameters:
            if not param.requires_grad:
                continue
            total = total.to(param.device, param.dtype)
            if self.l1 > 0:
                total = total + self.l1 * param.abs().sum()
            if self.l2 > 0:
                total = total + self.l2 * (param ** 2).sum()
        return total

    def __repr__(self) -> str:
        return f"Regularizers(l1={self.l1}, l2={self.l2})"


class OptimizerFactory:
    """Factory class for creating optimizers."""

    def __init__(self):
        self.logger = logging.getLogger('fitkit')

    def create_optimizer(
        self,
        model_parameters,
        optimizer_config: Union[str, Dict[str, Any]]
    ) -> torch.optim.Optimizer:
        """Create optimizer from a name or configuration.

        Args:
            model_parameters: Model parameters to optimize
            optimizer_config: Optimizer name, or dictionary with 'type' and options

        Returns:
            Configured optimizer
        """
        if isinstance(optimizer_config, str):
            optimizer_config = {'type': optimizer_config}

        optimizer_type = optimizer_config.get('type', 'adam').lower()
        if optimizer_type not in DEFAULT_LEARNING_RATES:
            raise ValueError(f"Unknown optimizer type: {optimizer_type}. Supported: {self.get_supported_optimizers()}")

        learning_rate = optimizer_config.get('learning_rate', DEFAULT_LEARNING_RATES[optimizer_type])
        weight_decay = optimizer_config.get('weight_decay', 0.0)

        self.logger.info(f"Creating {optimizer_type} optimizer with lr={learning_rate}, wd={weight_decay}")

        if optimizer_type in ('adam', 'adamw', 'adamax'):
            betas = (optimizer_config.get('beta1', 0.9), optimizer_config.get('beta2', 0.999))
            eps = optimizer_config.get('eps', 1e-8)

            if optimizer_type == 'adamax':
                return optim.Adamax(model_parameters, lr=learning_rate, betas=betas, eps=eps,
                                    weight_decay=weight_decay)

            optimizer_class = optim.Adam if optimizer_type == 'adam' else optim.AdamW
            return optimizer_class(
                model_parameters,
                lr=learning_rate,
                betas=betas,
                eps=eps,
                weight_decay=weight_decay,
                amsgrad=optimizer_config.get('amsgrad', False)
            )

        elif optimizer_type in ('sgd', 'momentum', 'nesterov'):
            default_momentum = 0.0 if optimizer_type == 'sgd' else 0.9
            return optim.SGD(
                model_parameters,
                lr=learning_rate,
                momentum=optimizer_config.get('momentum', default_momentum),
                weight_decay=weight_decay,
                nesterov=optimizer_type == 'nesterov'
            )

        elif optimizer_type == 'rmsprop':
            return optim.RMSprop(
                model_parameters,
                lr=learning_rate,
                alpha=optimizer_config.get('alpha', 0.99),
                eps=optimizer_config.get('eps', 1e-8),
                weight_decay=weight_decay,
                momentum=optimizer_config.get('momentum', 0.0),
                centered=optimizer_config.get('centered', False)
            )

        elif optimizer_type == 'adagrad':
            return optim.Adagrad(
                model_parameters,
                lr=learning_rate,
                lr_decay=optimizer_config.get('lr_decay', 0.0),
                weight_decay=weight_decay,
                eps=optimizer_config.get('eps', 1e-10)
            )

        # adadelta
        return optim.Adadelta(
            model_parameters,
            lr=learning_rate,
            rho=optimizer_config.get('rho', 0.9),
            eps=optimizer_config.get('eps', 1e-6),
            weight_decay=weight_decay
        )

    def get_supported_optimizers(self) -> list:
        return sorted(DEFAULT_LEARNING_RATES)


class SchedulerFactory:
    """Factory class for creating learning rate schedulers."""

    def __init__(self):
        self.logger = logging.getLogger('fitkit')

    def create_scheduler(
        self,
        optimizer: torch.optim.Optimizer,
        scheduler_config: Optional[Dict[str, Any]]
    ):
        """Create learning rate scheduler from configuration.

        Args:
            optimizer: Optimizer to schedule
            scheduler_config: Scheduler configuration dictionary

        Returns:
            Configured scheduler or None if no scheduler specified
        """
        if not scheduler_config or scheduler_config.get('type', 'none') == 'none':
            return None

        scheduler_type = scheduler_config['type'].lower()

        self.logger.info(f"Creating {scheduler_type} scheduler")

        if scheduler_type == 'step':
            return lr_scheduler.StepLR(
                optimizer,
                step_size=scheduler_config.get('step_size', 30),
                gamma=scheduler_config.get('gamma', 0.1)
            )

        elif scheduler_type == 'multistep':
            return lr_scheduler.MultiStepLR(
                optimizer,
                milestones=scheduler_config.get('milestones', [30, 60, 90]),
                gamma=scheduler_config.get('gamma', 0.1)
            )

        elif scheduler_type == 'exponential':
            return lr_scheduler.ExponentialLR(optimizer, gamma=scheduler_config.get('gamma', 0.95))

        elif scheduler_type == 'cosine':
            return lr_scheduler.CosineAnnealingLR(
                optimizer,
                T_max=scheduler_config.get('T_max', 100),
                eta_min=scheduler_config.get('eta_min', 0)
            )

        elif scheduler_type == 'reduce_on_plateau':
            return lr_scheduler.ReduceLROnPlateau(
                optimizer,
                mode=scheduler_config.get('mode', 'min'),
                factor=scheduler_config.get('factor', 0.1),
                patience=scheduler_config.get('patience', 10),
                threshold=scheduler_config.get('threshold', 1e-4),
                min_lr=scheduler_config.get('min_lr', 0)
            )

        raise ValueError(f"Unknown scheduler type: {scheduler_type}")

    def requires_metric(self, scheduler) -> bool:
        """Whether ``scheduler.step`` expects the monitored loss."""
        return isinstance(scheduler, lr_scheduler.ReduceLROnPlateau)
