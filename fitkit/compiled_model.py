"""Training, evaluation and prediction facade around a computation graph."""

import gc
import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import torch
import torch.nn as nn

from .data.frame import XYFrame, FrameLike, as_frame, to_value_batch
from .training.callbacks import Callback, CallbackManager, History, SchedulerCallback
from .training.events import (
    BatchEndEvent, BatchStartEvent, EpochEndEvent, EpochStartEvent, TrainingEndEvent
)
from .training.losses import get_loss
from .training.metrics import get_metric
from .training.optimizers import OptimizerFactory, Regularizers, SchedulerFactory
from .training.trainer import MinibatchTrainer
from .utils.checkpoints import ModelSource, ModelTarget, load_model, save_model
from .utils.device import current_device, get_device


Shape = Tuple[int, ...]


def _as_shape(value) -> Optional[Shape]:
    if value is None:
        return None
    if isinstance(value, (int, np.integer)):
        return (int(value),)
    return tuple(int(dim) for dim in value)


class CompiledModel:
    """Wraps a ``torch.nn.Module`` with fit / evaluate / predict / save / load.

    The feature shape is taken from ``input_shape`` or the module's
    ``input_dim``; the label shape from ``output_shape`` or ``output_dim``.
    Shapes still unknown are inferred from the first batch that flows
    through the graph.

    Callbacks registered through ``add_callback`` receive every lifecycle
    event of every ``fit`` call; callbacks passed to ``fit`` only see that
    call.
    """

    def __init__(
        self,
        model: nn.Module,
        input_shape: Optional[Union[int, Sequence[int]]] = None,
        output_shape: Optional[Union[int, Sequence[int]]] = None,
        device: Optional[Union[str, torch.device]] = None
    ):
        if isinstance(device, str):
            device = get_device(device)
        self.device = device if device is not None else current_device()
        self.logger = logging.getLogger('fitkit')

        self.model = model.to(self.device)
        self._input_shape = _as_shape(input_shape if input_shape is not None else getattr(model, 'input_dim', None))
        self._output_shape = _as_shape(output_shape if output_shape is not None else getattr(model, 'output_dim', None))

        self.callbacks = CallbackManager()
        self.is_validating = False
        self._trainer: Optional[MinibatchTrainer] = None
        self._closed = False

    def __repr__(self) -> str:
        name = self.model.__class__.__name__ if self.model is not None else 'closed'
        return f"CompiledModel({name}, input_shape={self._input_shape}, output_shape={self._output_shape}, device={self.device})"

    def __enter__(self) -> 'CompiledModel':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    @property
    def input_shape(self) -> Optional[Shape]:
        return self._input_shape

    @property
    def output_shape(self) -> Optional[Shape]:
        return self._output_shape

    @property
    def learning_rate(self) -> Optional[float]:
        """Learning rate of the running fit, None outside of training."""
        if self._trainer is None:
            return None
        return self._trainer.learning_rate

    @property
    def samples_seen(self) -> int:
        return self._trainer.total_number_of_samples_seen if self._trainer is not None else 0

    def add_callback(self, callback: Callback) -> None:
        self.callbacks.append(callback)

    def close(self) -> None:
        """Release the graph; the instance is unusable afterwards."""
        if self._closed:
            return
        self._trainer = None
        self.model = None
        self._closed = True
        gc.collect()
        if torch.cuda.is_available():
            torch.cuda.empty_cache()

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("CompiledModel has been closed")

    @classmethod
    def load(cls, source: ModelSource, device: Optional[Union[str, torch.device]] = None) -> 'CompiledModel':
        """Load a model saved with :meth:`save`.

        Args:
            source: File path, raw bytes, or readable binary stream
            device: Device to place the graph on (process default when None)

        Returns:
            CompiledModel around the restored graph
        """
        if isinstance(device, str):
            device = get_device(device)
        if device is None:
            device = current_device()

        model, input_shape, output_shape = load_model(source, device)
        return cls(model, input_shape, output_shape, device)

    def save(self, target: ModelTarget, additional_state: Optional[Dict[str, Any]] = None) -> None:
        """Save the graph to a file path or a writable binary stream."""
        self._check_open()
        save_model(self.model, target, self._input_shape, self._output_shape, additional_state)

    def _features(self, frame: FrameLike) -> torch.Tensor:
        features = to_value_batch(frame, shape=self._input_shape, device=self.device)
        if self._input_shape is None:
            self._input_shape = tuple(features.shape[1:])
        return features

    def _labels(self, frame: FrameLike) -> torch.Tensor:
        frame = as_frame(frame)
        shape = self._output_shape
        # class-index labels keep their own width
        if shape is not None and int(np.prod(shape)) != frame.shape[1]:
            shape = None
        return to_value_batch(frame, shape=shape, device=self.device)

    def _forward(self, frame: FrameLike) -> torch.Tensor:
        outputs = self.model(self._features(frame))
        if self._output_shape is None:
            self._output_shape = tuple(outputs.shape[1:])
        return outputs

    def fit(
        self,
        train: XYFrame,
        epochs: int,
        batch_size: int,
        optimizer: Union[str, Dict[str, Any]] = 'adam',
        loss: str = 'mean_squared_error',
        metric: Optional[str] = None,
        regularizer: Optional[Union[Regularizers, Dict[str, float]]] = None,
        validation: Optional[XYFrame] = None,
        shuffle: bool = False,
        callbacks: Optional[List[Callback]] = None,
        scheduler: Optional[Dict[str, Any]] = None,
        gradient_clipping: Optional[float] = None
    ) -> Dict[str, list]:
        """Fit the model for a fixed number of epochs.

        Args:
            train: Training frame
            epochs: Number of training epochs
            batch_size: Rows per minibatch
            optimizer: Optimizer name or configuration dictionary
            loss: Loss function name
            metric: Metric name (the loss is reported as metric when None)
            regularizer: L1/L2 weight penalties
            validation: Frame evaluated after every epoch
            shuffle: Shuffle the training frame before every epoch
            callbacks: Callbacks for this call only
            scheduler: Learning rate scheduler configuration
            gradient_clipping: Maximum gradient norm

        Returns:
            Per-epoch history (epoch, samples_seen, loss, metric,
            validation_loss, validation_metric, learning_rate)
        """
        self._check_open()
        if epochs < 0:
            raise ValueError(f"epochs must be non-negative, got {epochs}")
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if len(train) == 0:
            raise ValueError("Training frame is empty")
        if validation is not None and len(validation) == 0:
            raise ValueError("Validation frame is empty")

        if isinstance(regularizer, dict):
            regularizer = Regularizers.from_config(regularizer)

        metric_name = metric if metric else loss
        optimizer_instance = OptimizerFactory().create_optimizer(self.model.parameters(), optimizer)
        trainer = MinibatchTrainer(
            self.model,
            get_loss(loss),
            get_metric(metric_name),
            optimizer_instance,
            regularizers=regularizer,
            gradient_clipping=gradient_clipping
        )

        history = History()
        manager = CallbackManager([history] + self.callbacks.callbacks + list(callbacks or []))

        scheduler_factory = SchedulerFactory()
        lr_scheduler = scheduler_factory.create_scheduler(optimizer_instance, scheduler)
        if lr_scheduler is not None:
            manager.append(SchedulerCallback(
                lr_scheduler,
                monitor=scheduler.get('monitor', 'validation_loss'),
                requires_metric=scheduler_factory.requires_metric(lr_scheduler)
            ))

        self._trainer = trainer
        self.is_validating = validation is not None

        last_loss = last_metric = 0.0
        last_validation_loss = last_validation_metric = 0.0
        training_start_time = time.time()

        try:
            manager.on_training_start(self)

            for epoch in range(1, epochs + 1):
                if shuffle:
                    train.shuffle()

                manager.on_epoch_start(self, EpochStartEvent(epoch))

                epoch_losses = []
                epoch_metrics = []
                batch = 1
                while train.to_batch(batch, batch_size):
                    manager.on_batch_start(self, BatchStartEvent(epoch, batch))

                    features = self._features(train.current_batch.x_frame)
                    labels = self._labels(train.current_batch.y_frame)
                    outputs = trainer.train_minibatch(features, labels)
                    if self._output_shape is None:
                        self._output_shape = tuple(outputs.shape[1:])

                    batch_loss = trainer.previous_minibatch_loss_average
                    batch_metric = trainer.previous_minibatch_evaluation_average
                    epoch_losses.append(batch_loss)
                    epoch_metrics.append(batch_metric)

                    manager.on_batch_end(self, BatchEndEvent(
                        epoch, batch, trainer.total_number_of_samples_seen, batch_loss, batch_metric
                    ))
                    batch += 1

                last_loss = float(np.mean(epoch_losses))
                last_metric = float(np.mean(epoch_metrics))

                if validation is not None:
                    last_validation_loss, last_validation_metric = self.evaluate(
                        validation, batch_size, loss, metric
                    )

                manager.on_epoch_end(self, EpochEndEvent(
                    epoch, trainer.total_number_of_samples_seen, last_loss,
                    last_validation_loss, last_metric, last_validation_metric
                ))

                if manager.should_stop_training():
                    self.logger.info(f"Training stopped early at epoch {epoch}")
                    break
        finally:
            self._trainer = None
            del trainer, optimizer_instance
            gc.collect()

        self.logger.debug(f"Training completed in {time.time() - training_start_time:.2f} seconds")

        manager.on_training_end(self, TrainingEndEvent(
            last_loss, last_validation_loss, last_metric, last_validation_metric
        ))

        return history.history

    def evaluate(
        self,
        validation: XYFrame,
        batch_size: int,
        loss: str,
        metric: Optional[str] = None
    ) -> Tuple[float, float]:
        """Average loss and metric of the model over a frame.

        Each batch contributes the mean of its per-sample values; the result
        is the mean over batches.

        Args:
            validation: Frame to evaluate on
            batch_size: Rows per batch
            loss: Loss function name
            metric: Metric name (the loss is reported as metric when None)

        Returns:
            Tuple of (loss, metric)
        """
        self._check_open()
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if len(validation) == 0:
            raise ValueError("Cannot evaluate on an empty frame")

        loss_fn = get_loss(loss)
        metric_fn = get_metric(metric) if metric else None

        losses = []
        metrics = []

        self.model.eval()
        with torch.no_grad():
            for batch in validation.batches(batch_size):
                actual = self._forward(batch.x_frame)
                expected = self._labels(batch.y_frame)

                losses.append(float(loss_fn(actual, expected).mean().item()))
                if metric_fn is not None:
                    metrics.append(float(metric_fn(actual, expected).mean().item()))

        loss_value = float(np.mean(losses))
        metric_value = float(np.mean(metrics)) if metrics else loss_value
        return loss_value, metric_value

    def predict(self, data: Union[FrameLike, XYFrame], batch_size: Optional[int] = None) -> np.ndarray:
        """Model output for every row of ``data``.

        Args:
            data: Feature rows (the features of an XYFrame are used)
            batch_size: Rows per forward pass (all rows at once when None)

        Returns:
            Array of shape (rows, *output_shape)
        """
        self._check_open()
        frame = data.x_frame if isinstance(data, XYFrame) else as_frame(data)
        if batch_size is not None and batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        if len(frame) == 0:
            return np.empty((0,) + (self._output_shape or ()), dtype=np.float32)

        step = batch_size or len(frame)
        outputs = []

        self.model.eval()
        with torch.no_grad():
            for start in range(0, len(frame), step):
                outputs.append(self._forward(frame.iloc[start:start + step]).cpu())

        return torch.cat(outputs, dim=0).numpy()

    def summary(self) -> Dict[str, Any]:
        """Model summary with the shapes known to the facade."""
        self._check_open()
        if hasattr(self.model, 'get_model_summary'):
            info = dict(self.model.get_model_summary())
        else:
            parameters = list(self.model.parameters())
            info = {
                'model_type': self.model.__class__.__name__,
                'total_parameters': sum(p.numel() for p in parameters),
                'trainable_parameters': sum(p.numel() for p in parameters if p.requires_grad),
            }
        info['input_shape'] = self._input_shape
        info['output_shape'] = self._output_shape
        info['device'] = str(self.device)
        return info
