"""Training pipeline: losses, metrics, optimizers, minibatch trainer and callbacks."""

from .trainer import MinibatchTrainer
from .optimizers import OptimizerFactory, SchedulerFactory, Regularizers
from .losses import get_loss, supported_losses
from .metrics import MetricsCalculator, get_metric, supported_metrics
from .callbacks import (
    Callback, CallbackManager, LambdaCallback, History, EarlyStoppingCallback,
    CheckpointCallback, LoggingCallback, SchedulerCallback, TrainingCurvesCallback
)

__all__ = [
    "MinibatchTrainer", "OptimizerFactory", "SchedulerFactory", "Regularizers",
    "get_loss", "supported_losses", "MetricsCalculator", "get_metric", "supported_metrics",
    "Callback", "CallbackManager", "LambdaCallback", "History", "EarlyStoppingCallback",
    "CheckpointCallback", "LoggingCallback", "SchedulerCallback", "TrainingCurvesCallback",
]
