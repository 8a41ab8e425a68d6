"""Training callbacks hooked into the compiled model lifecycle."""

import logging
from abc import ABC
from pathlib import Path
from typing import Callable, Dict, List, Optional

import matplotlib.pyplot as plt

from .events import (
    BatchEndEvent, BatchStartEvent, EpochEndEvent, EpochStartEvent, TrainingEndEvent
)
from .metrics import MetricsCalculator
from ..utils.checkpoints import CheckpointManager
from ..utils.logging import ExperimentLogger


MONITORS = ('loss', 'metric', 'validation_loss', 'validation_metric')


def monitored_value(model, event: EpochEndEvent, monitor: str) -> float:
    """Read a monitored quantity, using training values when nothing is validated."""
    if monitor not in MONITORS:
        raise ValueError(f"Unknown monitor '{monitor}'. Choose one of {MONITORS}")
    if monitor.startswith('validation_') and not getattr(model, 'is_validating', False):
        monitor = monitor[len('validation_'):]
    return getattr(event, monitor)


class Callback(ABC):
    """Base callback class for training hooks.

    ``model`` is the CompiledModel being fitted.
    """

    def on_training_start(self, model) -> None:
        pass

    def on_epoch_start(self, model, event: EpochStartEvent) -> None:
        pass

    def on_batch_start(self, model, event: BatchStartEvent) -> None:
        pass

    def on_batch_end(self, model, event: BatchEndEvent) -> None:
        pass

    def on_epoch_end(self, model, event: EpochEndEvent) -> None:
        pass

    def on_training_end(self, model, event: TrainingEndEvent) -> None:
        pass


class LambdaCallback(Callback):
    """Callback built from plain functions, one per lifecycle event."""

    def __init__(
        self,
        on_training_start: Optional[Callable] = None,
        on_epoch_start: Optional[Callable] = None,
        on_batch_start: Optional[Callable] = None,
        on_batch_end: Optional[Callable] = None,
        on_epoch_end: Optional[Callable] = None,
        on_training_end: Optional[Callable] = None
    ):
        self._handlers = {
            'on_training_start': on_training_start,
            'on_epoch_start': on_epoch_start,
            'on_batch_start': on_batch_start,
            'on_batch_end': on_batch_end,
            'on_epoch_end': on_epoch_end,
            'on_training_end': on_training_end,
        }

    def _fire(self, name: str, *args) -> None:
        handler = self._handlers[name]
        if handler is not None:
            handler(*args)

    def on_training_start(self, model) -> None:
        self._fire('on_training_start', model)

    def on_epoch_start(self, model, event: EpochStartEvent) -> None:
        self._fire('on_epoch_start', model, event)

    def on_batch_start(self, model, event: BatchStartEvent) -> None:
        self._fire('on_batch_start', model, event)

    def on_batch_end(self, model, event: BatchEndEvent) -> None:
        self._fire('on_batch_end', model, event)

    def on_epoch_end(self, model, event: EpochEndEvent) -> None:
        self._fire('on_epoch_end', model, event)

    def on_training_end(self, model, event: TrainingEndEvent) -> None:
        self._fire('on_training_end', model, event)


class History(Callback):
    """Records per-epoch results of a fit."""

    def __init__(self):
        self.history: Dict[str, list] = {}

    def on_training_start(self, model) -> None:
        self.history = {
            'epoch': [],
            'samples_seen': [],
            'loss': [],
            'metric': [],
            'validation_loss': [],
            'validation_metric': [],
            'learning_rate': [],
        }

    def on_epoch_end(self, model, event: EpochEndEvent) -> None:
        for key, value in event.as_dict().items():
            self.history[key].append(value)
        self.history['learning_rate'].append(model.learning_rate)


def _check_direction(mode: str, monitor: str) -> None:
    if mode not in ('min', 'max'):
        raise ValueError(f"mode must be 'min' or 'max', got {mode}")
    if monitor not in MONITORS:
        raise ValueError(f"Unknown monitor '{monitor}'. Choose one of {MONITORS}")


def improves(score: float, best: Optional[float], mode: str, min_delta: float = 0.0) -> bool:
    """Whether ``score`` beats ``best`` by more than ``min_delta`` in direction ``mode``."""
    if best is None:
        return True
    if mode == 'max':
        return score - best > min_delta
    return best - score > min_delta


class EarlyStoppingCallback(Callback):
    """Requests a stop once ``monitor`` has not improved for ``patience`` epochs.

    With ``restore_best_weights`` the graph is rolled back to the weights of
    the best epoch when the stop is requested.
    """

    def __init__(
        self,
        patience: int = 10,
        min_delta: float = 0.0,
        mode: str = 'min',
        restore_best_weights: bool = True,
        monitor: str = 'validation_loss'
    ):
        _check_direction(mode, monitor)
        self.patience = patience
        self.min_delta = min_delta
        self.mode = mode
        self.restore_best_weights = restore_best_weights
        self.monitor = monitor
        self.logger = logging.getLogger('fitkit')
        self.on_training_start(None)

    def on_training_start(self, model) -> None:
        self.best_score = None
        self.best_epoch = 0
        self.epochs_without_improvement = 0
        self.should_stop = False
        self._best_weights = None

    def on_epoch_end(self, model, event: EpochEndEvent) -> None:
        score = monitored_value(model, event, self.monitor)

        if not improves(score, self.best_score, self.mode, self.min_delta):
            self.epochs_without_improvement += 1
            if self.epochs_without_improvement >= self.patience:
                self._stop(model)
            return

        self.best_score, self.best_epoch = score, event.epoch
        self.epochs_without_improvement = 0
        if self.restore_best_weights:
            self._best_weights = {
                name: tensor.detach().clone() for name, tensor in model.model.state_dict().items()
            }

    def _stop(self, model) -> None:
        self.logger.info(
            f"No improvement in {self.monitor} for {self.patience} epochs; "
            f"best was {self.best_score:.6f} at epoch {self.best_epoch}"
        )
        if self._best_weights is not None:
            model.model.load_state_dict(self._best_weights)
            self.logger.info(f"Weights rolled back to epoch {self.best_epoch}")
        self.should_stop = True


class CheckpointCallback(Callback):
    """Writes the compiled model through a CheckpointManager after each epoch."""

    def __init__(
        self,
        checkpoint_dir: str = 'checkpoints',
        max_checkpoints: int = 5,
        monitor: str = 'validation_loss',
        mode: str = 'min',
        save_best_only: bool = True
    ):
        """Initialize CheckpointCallback.

        Args:
            checkpoint_dir: Where checkpoints and ``best_model.pt`` are written
            max_checkpoints: Numbered checkpoints kept on disk
            monitor: Value deciding the best checkpoint
            mode: Whether ``monitor`` should be minimized or maximized
            save_best_only: Skip epochs that do not improve ``monitor``
        """
        _check_direction(mode, monitor)
        self.checkpoint_manager = CheckpointManager(checkpoint_dir, max_checkpoints)
        self.monitor = monitor
        self.mode = mode
        self.save_best_only = save_best_only
        self.best_score = None

    def on_training_start(self, model) -> None:
        self.best_score = None

    def on_epoch_end(self, model, event: EpochEndEvent) -> None:
        score = monitored_value(model, event, self.monitor)
        is_best = improves(score, self.best_score, self.mode)
        if is_best:
            self.best_score = score
        if is_best or not self.save_best_only:
            self.checkpoint_manager.save_checkpoint(model, event.epoch, event.as_dict(), is_best)


class LoggingCallback(Callback):
    """Reports progress through the package logger and optionally MLflow."""

    def __init__(
        self,
        log_every_n_batches: int = 10,
        experiment_name: Optional[str] = None,
        use_mlflow: bool = False,
        tracking_uri: Optional[str] = None
    ):
        """Initialize LoggingCallback.

        Args:
            log_every_n_batches: Log every N batches (at DEBUG level)
            experiment_name: MLflow experiment name
            use_mlflow: Whether to mirror each fit to its own MLflow run
            tracking_uri: MLflow tracking URI
        """
        self.log_every_n_batches = max(1, log_every_n_batches)
        self.experiment_name = experiment_name or 'default'
        self.use_mlflow = use_mlflow
        self.tracking_uri = tracking_uri
        self.experiment_logger = None
        self.logger = logging.getLogger('fitkit')

    def on_training_start(self, model) -> None:
        self.logger.info(f"Training {model.model.__class__.__name__} on {model.device}")
        if self.use_mlflow:
            if self.experiment_logger is not None:
                self.experiment_logger.close()
            self.experiment_logger = ExperimentLogger(self.experiment_name, self.tracking_uri)
            summary = model.summary()
            config = summary.pop('config', None)
            self.experiment_logger.log_hyperparameters(summary)
            if config:
                self.experiment_logger.log_config(config, 'model_config.yaml')

    def on_batch_end(self, model, event: BatchEndEvent) -> None:
        if event.batch % self.log_every_n_batches == 0:
            self.logger.debug(
                f"Epoch {event.epoch}, Batch {event.batch}: Loss = {event.loss:.6f}, Metric = {event.metric:.6f}"
            )

    def on_epoch_end(self, model, event: EpochEndEvent) -> None:
        log_msg = f"Epoch {event.epoch:4d}: Loss = {event.loss:.6f}, Metric = {event.metric:.6f}"
        if getattr(model, 'is_validating', False):
            log_msg += f", Val Loss = {event.validation_loss:.6f}, Val Metric = {event.validation_metric:.6f}"
        log_msg += f", LR = {model.learning_rate:.2e}"
        self.logger.info(log_msg)

        if self.experiment_logger is not None:
            values = event.as_dict()
            step = values.pop('epoch')
            self.experiment_logger.log_scalars(values, step)

    def on_training_end(self, model, event: TrainingEndEvent) -> None:
        self.logger.info(f"Training finished: {MetricsCalculator.format_metrics(event.as_dict())}")
        if self.experiment_logger is not None:
            self.experiment_logger.close()


class SchedulerCallback(Callback):
    """Steps a learning rate scheduler at the end of every epoch."""

    def __init__(self, scheduler, monitor: str = 'validation_loss', requires_metric: bool = False):
        self.scheduler = scheduler
        self.monitor = monitor
        self.requires_metric = requires_metric

    def on_epoch_end(self, model, event: EpochEndEvent) -> None:
        if self.requires_metric:
            self.scheduler.step(monitored_value(model, event, self.monitor))
        else:
            self.scheduler.step()


class TrainingCurvesCallback(Callback):
    """Plots loss and metric curves with matplotlib."""

    def __init__(self, plot_dir: str = 'plots', update_frequency: Optional[int] = None):
        """Initialize TrainingCurvesCallback.

        Args:
            plot_dir: Directory to save plots
            update_frequency: Save intermediate plots every N epochs (only at the end when None)
        """
        self.plot_dir = Path(plot_dir)
        self.update_frequency = update_frequency
        self.curves: Dict[str, List[float]] = {}
        self.logger = logging.getLogger('fitkit')

    def on_training_start(self, model) -> None:
        self.plot_dir.mkdir(parents=True, exist_ok=True)
        self.curves = {key: [] for key in ('epoch',) + MONITORS}
        self.validating = getattr(model, 'is_validating', False)

    def on_epoch_end(self, model, event: EpochEndEvent) -> None:
        values = event.as_dict()
        for key in self.curves:
            self.curves[key].append(values[key])

        if self.update_frequency and event.epoch % self.update_frequency == 0:
            self._save_plot(self.plot_dir / f'training_curves_epoch_{event.epoch:04d}.png')

    def on_training_end(self, model, event: TrainingEndEvent) -> None:
        if self.curves.get('epoch'):
            self._save_plot(self.plot_dir / 'training_curves.png')

    def _save_plot(self, path: Path) -> None:
        fig, axes = plt.subplots(2, 1, figsize=(10, 8), sharex=True)
        epochs = self.curves['epoch']

        for ax, name in zip(axes, ('loss', 'metric')):
            ax.plot(epochs, self.curves[name], 'b-', label=f'Training {name}', linewidth=2)
            if self.validating:
                ax.plot(epochs, self.curves[f'validation_{name}'], 'r-', label=f'Validation {name}', linewidth=2)
            ax.set_ylabel(name.capitalize())
            ax.grid(True, alpha=0.3)
            ax.legend()

        axes[-1].set_xlabel('Epoch')
        fig.suptitle('Training Curves')
        fig.savefig(path, dpi=150, bbox_inches='tight')
        plt.close(fig)
        self.logger.info(f"Saved training curves to {path}")


class CallbackManager:
    """Manager for organizing and executing callbacks."""

    def __init__(self, callbacks: Optional[List[Callback]] = None):
        self.callbacks = list(callbacks) if callbacks else []

    def append(self, callback: Callback) -> None:
        self.callbacks.append(callback)

    def on_training_start(self, model) -> None:
        for callback in self.callbacks:
            callback.on_training_start(model)

    def on_epoch_start(self, model, event: EpochStartEvent) -> None:
        for callback in self.callbacks:
            callback.on_epoch_start(model, event)

    def on_batch_start(self, model, event: BatchStartEvent) -> None:
        for callback in self.callbacks:
            callback.on_batch_start(model, event)

    def on_batch_end(self, model, event: BatchEndEvent) -> None:
        for callback in self.callbacks:
            callback.on_batch_end(model, event)

    def on_epoch_end(self, model, event: EpochEndEvent) -> None:
        for callback in self.callbacks:
            callback.on_epoch_end(model, event)

    def on_training_end(self, model, event: TrainingEndEvent) -> None:
        for callback in self.callbacks:
            callback.on_training_end(model, event)

    def should_stop_training(self) -> bool:
        """Check if any callback indicates training should stop."""
        return any(getattr(callback, 'should_stop', False) for callback in self.callbacks)
