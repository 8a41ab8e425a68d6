"""Minibatch trainer driving one optimizer step per call."""

import logging
from typing import Optional

import torch
import torch.nn as nn

from .losses import LossFunction
from .optimizers import Regularizers


class MinibatchTrainer:
    """Runs forward, backward and optimizer step for one minibatch at a time.

    After each call the averages of the last minibatch and the running
    sample count are available, so callers never touch the graph directly.
    """

    def __init__(
        self,
        model: nn.Module,
        loss_fn: LossFunction,
        metric_fn: LossFunction,
        optimizer: torch.optim.Optimizer,
        regularizers: Optional[Regularizers] = None,
        gradient_clipping: Optional[float] = None
    ):
        """Initialize MinibatchTrainer.

        Args:
            model: Graph being trained
            loss_fn: Per-sample loss
            metric_fn: Per-sample evaluation metric
            optimizer: Optimizer over the model parameters
            regularizers: Optional weight penalties added to the objective
            gradient_clipping: Maximum gradient norm (no clipping when None)
        """
        self.model = model
        self.loss_fn = loss_fn
        self.metric_fn = metric_fn
        self.optimizer = optimizer
        self.regularizers = regularizers if regularizers is not None and regularizers.enabled else None
        self.gradient_clipping = gradient_clipping
        self.logger = logging.getLogger('fitkit')

        self.previous_minibatch_loss_average = 0.0
        self.previous_minibatch_evaluation_average = 0.0
        self.previous_minibatch_sample_count = 0
        self.total_number_of_samples_seen = 0

    def train_minibatch(self, features: torch.Tensor, labels: torch.Tensor) -> torch.Tensor:
        """Train on one minibatch.

        Args:
            features: Input batch
            labels: Expected output batch

        Returns:
            Model outputs for the batch (detached)
        """
        self.model.train()
        self.optimizer.zero_grad()

        outputs = self.model(features)
        losses = self.loss_fn(outputs, labels)
        loss = losses.mean()

        objective = loss
        if self.regularizers is not None:
            objective = objective + self.regularizers.penalty(self.model.parameters())

        objective.backward()

        if self.gradient_clipping is not None:
            torch.nn.utils.clip_grad_norm_(self.model.parameters(), self.gradient_clipping)

        self.optimizer.step()

        with torch.no_grad():
            metric = self.metric_fn(outputs, labels).mean()

        self.previous_minibatch_loss_average = float(loss.item())
        self.previous_minibatch_evaluation_average = float(metric.item())
        self.previous_minibatch_sample_count = int(features.shape[0])
        self.total_number_of_samples_seen += self.previous_minibatch_sample_count

        return outputs.detach()

    @property
    def learning_rate(self) -> float:
        return self.optimizer.param_groups[0]['lr']
