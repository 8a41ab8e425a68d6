"""Process-wide device selection and seeding."""

import random
import logging
from typing import Optional, Union

import numpy as np
import torch


_current_device: Optional[torch.device] = None


def get_device(device: str = "auto") -> torch.device:
    """Resolve a device preference to a torch device.

    Args:
        device: Device preference ('auto', 'cuda', 'cuda:1', 'mps', 'cpu')

    Returns:
        PyTorch device
    """
    if device == "auto":
        if torch.cuda.is_available():
            return torch.device("cuda")
        elif hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
            return torch.device("mps")
        else:
            return torch.device("cpu")

    resolved = torch.device(device)
    if resolved.type == "cuda" and not torch.cuda.is_available():
        logging.getLogger('fitkit').warning("CUDA not available, falling back to CPU")
        return torch.device("cpu")
    return resolved


def set_device(device: Union[str, torch.device]) -> torch.device:
    """Set the default device used by compiled models.

    Args:
        device: Device or device preference string

    Returns:
        The resolved device
    """
    global _current_device
    if isinstance(device, torch.device):
        _current_device = device
    else:
        _current_device = get_device(device)
    logging.getLogger('fitkit').info(f"Default device set to: {_current_device}")
    return _current_device


def current_device() -> torch.device:
    """Default device, resolved from 'auto' on first use."""
    global _current_device
    if _current_device is None:
        _current_device = get_device("auto")
    return _current_device


def set_seed(seed: int = 42) -> None:
    """Set random seeds for reproducibility.

    Args:
        seed: Random seed
    """
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    if torch.cuda.is_available():
        torch.cuda.manual_seed_all(seed)
