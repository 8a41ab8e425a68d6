"""Utility functions and classes."""

from .config import ConfigManager
from .logging import setup_logging, ExperimentLogger
from .checkpoints import CheckpointManager, save_model, load_model
from .device import get_device, set_device, current_device, set_seed

__all__ = [
    "ConfigManager", "setup_logging", "ExperimentLogger", "CheckpointManager",
    "save_model", "load_model", "get_device", "set_device", "current_device", "set_seed"
]
