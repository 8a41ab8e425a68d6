"""Model serialization and checkpoint management."""

import io
import os
import torch
import logging
from typing import Dict, Any, Optional, Tuple, Union, BinaryIO
from pathlib import Path

from ..models import BaseModel, build_model, registered_class


FORMAT_VERSION = 1

ModelSource = Union[str, os.PathLike, bytes, bytearray, BinaryIO]
ModelTarget = Union[str, os.PathLike, BinaryIO]


def _is_path(value) -> bool:
    return isinstance(value, (str, os.PathLike))


def build_payload(
    model: torch.nn.Module,
    input_shape: Optional[Tuple[int, ...]] = None,
    output_shape: Optional[Tuple[int, ...]] = None,
    additional_state: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Describe a model so that it can be restored without its source config.

    Registered ``BaseModel`` graphs are stored as config plus state dict;
    any other module is stored whole.
    """
    payload = {
        'format_version': FORMAT_VERSION,
        'input_shape': tuple(input_shape) if input_shape is not None else None,
        'output_shape': tuple(output_shape) if output_shape is not None else None,
    }

    if isinstance(model, BaseModel) and registered_class(model.model_type) is type(model):
        payload['model_type'] = model.model_type
        payload['model_config'] = model.config
        payload['model_state_dict'] = model.state_dict()
    else:
        payload['model'] = model

    if additional_state:
        payload.update(additional_state)

    return payload


def save_model(
    model: torch.nn.Module,
    target: ModelTarget,
    input_shape: Optional[Tuple[int, ...]] = None,
    output_shape: Optional[Tuple[int, ...]] = None,
    additional_state: Optional[Dict[str, Any]] = None
) -> None:
    """Save a model to a file path or a writable binary stream.

    Args:
        model: Module to save
        target: File path or binary stream
        input_shape: Per-sample feature shape
        output_shape: Per-sample label shape
        additional_state: Extra entries stored alongside the model
    """
    payload = build_payload(model, input_shape, output_shape, additional_state)

    if _is_path(target):
        path = Path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        torch.save(payload, path)
    elif hasattr(target, 'write'):
        torch.save(payload, target)
    else:
        raise ValueError(f"Cannot save model to object of type {type(target).__name__}")


def model_to_bytes(
    model: torch.nn.Module,
    input_shape: Optional[Tuple[int, ...]] = None,
    output_shape: Optional[Tuple[int, ...]] = None
) -> bytes:
    buffer = io.BytesIO()
    save_model(model, buffer, input_shape, output_shape)
    return buffer.getvalue()


def read_payload(source: ModelSource, device: Optional[torch.device] = None) -> Dict[str, Any]:
    """Read a saved model description from a path, raw bytes or a stream.

    Args:
        source: File path, bytes, or readable binary stream
        device: Device to map tensors onto

    Returns:
        The stored payload dictionary
    """
    if device is None:
        device = torch.device('cpu')

    if _is_path(source):
        if not os.path.exists(source):
            raise FileNotFoundError(f"Model file not found: {source}")
        # whole-module payloads need full unpickling
        return torch.load(source, map_location=device, weights_only=False)

    if isinstance(source, (bytes, bytearray)):
        buffer = io.BytesIO(bytes(source))
    elif hasattr(source, 'read'):
        buffer = io.BytesIO(source.read())
    else:
        raise ValueError(f"Cannot load model from object of type {type(source).__name__}")

    return torch.load(buffer, map_location=device, weights_only=False)


def restore_model(payload: Dict[str, Any], device: Optional[torch.device] = None) -> torch.nn.Module:
    """Rebuild the module described by a payload and move it to ``device``."""
    if 'model' in payload:
        model = payload['model']
    elif 'model_type' in payload:
        model = build_model(payload['model_config'])
        model.load_state_dict(payload['model_state_dict'])
    else:
        raise ValueError("Saved payload does not describe a model")

    if device is not None:
        model.to(device)
    return model


def load_model(
    source: ModelSource,
    device: Optional[torch.device] = None
) -> Tuple[torch.nn.Module, Optional[Tuple[int, ...]], Optional[Tuple[int, ...]]]:
    """Load a model saved by :func:`save_model`.

    Returns:
        Tuple of (module, input_shape, output_shape)
    """
    payload = read_payload(source, device)
    model = restore_model(payload, device)
    logging.getLogger('fitkit').debug(f"Restored {model.__class__.__name__}")
    return model, payload.get('input_shape'), payload.get('output_shape')


class CheckpointManager:
    """Keeps the last ``max_checkpoints`` epoch snapshots plus ``best_model.pt``.

    Snapshots are named ``checkpoint_epoch_NNNN.pt`` and hold the same
    payload as ``CompiledModel.save`` with the epoch and its metrics added.
    """

    CHECKPOINT_PATTERN = "checkpoint_epoch_*.pt"

    def __init__(self, checkpoint_dir: str, max_checkpoints: int = 5):
        self.checkpoint_dir = Path(checkpoint_dir)
        self.max_checkpoints = max_checkpoints
        self.logger = logging.getLogger('fitkit')

        self.checkpoint_dir.mkdir(parents=True, exist_ok=True)

    @property
    def best_model_path(self) -> Path:
        return self.checkpoint_dir / "best_model.pt"

    def save_checkpoint(
        self,
        compiled_model,
        epoch: int,
        metrics: Dict[str, float],
        is_best: bool = False
    ) -> str:
        """Snapshot ``compiled_model`` for ``epoch`` and prune older snapshots.

        Returns:
            Path of the numbered snapshot
        """
        extra = {'epoch': epoch, 'metrics': dict(metrics)}
        targets = [self.checkpoint_dir / f"checkpoint_epoch_{epoch:04d}.pt"]
        if is_best:
            targets.append(self.best_model_path)

        for target in targets:
            compiled_model.save(target, additional_state=extra)
            self.logger.info(f"Epoch {epoch} written to {target}")

        self._prune()
        return str(targets[0])

    def load_checkpoint(self, checkpoint_path: str, device: Optional[torch.device] = None) -> Dict[str, Any]:
        """Read a snapshot back.

        Returns:
            Dictionary with the restored 'model', its shapes, 'epoch' and 'metrics'
        """
        payload = read_payload(checkpoint_path, device)
        checkpoint = {
            'model': restore_model(payload, device),
            'input_shape': payload.get('input_shape'),
            'output_shape': payload.get('output_shape'),
            'epoch': payload.get('epoch', 0),
            'metrics': payload.get('metrics', {}),
        }
        self.logger.info(f"Restored epoch {checkpoint['epoch']} from {checkpoint_path}")
        return checkpoint

    def list_checkpoints(self) -> list:
        """Numbered snapshots, oldest epoch first."""
        def epoch_of(path):
            return int(path.stem.rsplit('_', 1)[-1])

        return [str(path) for path in sorted(self.checkpoint_dir.glob(self.CHECKPOINT_PATTERN), key=epoch_of)]

    def get_latest_checkpoint(self) -> Optional[str]:
        checkpoints = self.list_checkpoints()
        return checkpoints[-1] if checkpoints else None

    def _prune(self) -> None:
        stale = self.list_checkpoints()[:-self.max_checkpoints] if self.max_checkpoints > 0 else []
        for path in stale:
            try:
                Path(path).unlink()
            except OSError as e:
                self.logger.warning(f"Could not delete {path}: {e}")
            else:
                self.logger.debug(f"Deleted {path}")
