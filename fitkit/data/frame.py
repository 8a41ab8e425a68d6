"""Paired feature/label frames and their conversion to engine values."""

import numpy as np
import pandas as pd
import torch
from typing import Iterator, Optional, Sequence, Tuple, Union

from ..utils.device import current_device


FrameLike = Union[pd.DataFrame, np.ndarray, Sequence]


def as_frame(data: FrameLike) -> pd.DataFrame:
    """Wrap arrays and nested sequences as a DataFrame, one row per sample."""
    if isinstance(data, pd.DataFrame):
        return data
    if isinstance(data, pd.Series):
        return data.to_frame()
    if isinstance(data, torch.Tensor):
        data = data.detach().cpu().numpy()

    array = np.asarray(data)
    if array.ndim == 1:
        array = array.reshape(-1, 1)
    elif array.ndim > 2:
        array = array.reshape(array.shape[0], -1)
    return pd.DataFrame(array)


def to_value_batch(
    frame: FrameLike,
    shape: Optional[Tuple[int, ...]] = None,
    device: Optional[torch.device] = None,
    dtype: Optional[torch.dtype] = None
) -> torch.Tensor:
    """Convert a frame to a tensor on the target device.

    Args:
        frame: Rows of samples
        shape: Per-sample shape each row is reshaped to (rows stay flat when None)
        device: Target device (process default when None)
        dtype: Tensor dtype (torch default dtype when None)

    Returns:
        Tensor of shape (rows, *shape)
    """
    frame = as_frame(frame)
    values = frame.to_numpy(dtype=np.float64)

    tensor = torch.tensor(
        values,
        dtype=dtype if dtype is not None else torch.get_default_dtype(),
        device=device if device is not None else current_device()
    )

    if shape is not None and tuple(shape) != tuple(tensor.shape[1:]):
        if int(np.prod(shape)) != tensor.shape[1]:
            raise ValueError(f"Rows of width {tensor.shape[1]} cannot be reshaped to {tuple(shape)}")
        tensor = tensor.reshape(len(frame), *shape)

    return tensor


class XYFrame:
    """Feature frame and label frame with the same rows.

    Batches are addressed by 1-based batch number; ``to_batch`` exposes the
    selected rows through ``current_batch``.
    """

    def __init__(self, x_frame: FrameLike, y_frame: FrameLike):
        self.x_frame = as_frame(x_frame).reset_index(drop=True)
        self.y_frame = as_frame(y_frame).reset_index(drop=True)

        if len(self.x_frame) != len(self.y_frame):
            raise ValueError(
                f"Feature and label frames must have the same number of rows. "
                f"Got {len(self.x_frame)} vs {len(self.y_frame)}"
            )

        self.current_batch: Optional['XYFrame'] = None

    @classmethod
    def from_arrays(cls, x: FrameLike, y: FrameLike) -> 'XYFrame':
        return cls(x, y)

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame, target_columns: Sequence[str]) -> 'XYFrame':
        """Split a DataFrame into features and the named target columns."""
        target_columns = list(target_columns)
        missing = [column for column in target_columns if column not in df.columns]
        if missing:
            raise ValueError(f"Target columns not found: {missing}")
        return cls(df.drop(columns=target_columns), df[target_columns])

    def __len__(self) -> int:
        return len(self.x_frame)

    def __repr__(self) -> str:
        return f"XYFrame(rows={len(self)}, features={self.x_frame.shape[1]}, labels={self.y_frame.shape[1]})"

    @property
    def feature_names(self) -> list:
        return list(self.x_frame.columns)

    @property
    def target_names(self) -> list:
        return list(self.y_frame.columns)

    def shuffle(self, seed: Optional[int] = None) -> None:
        """Permute the rows of both frames with the same permutation."""
        permutation = np.random.default_rng(seed).permutation(len(self))
        self.x_frame = self.x_frame.iloc[permutation].reset_index(drop=True)
        self.y_frame = self.y_frame.iloc[permutation].reset_index(drop=True)

    def to_batch(self, batch_number: int, batch_size: int) -> bool:
        """Select a batch into ``current_batch``.

        Args:
            batch_number: 1-based batch index
            batch_size: Rows per batch; the final batch may be shorter

        Returns:
            False when the batch starts past the last row
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if batch_number < 1:
            raise ValueError(f"batch_number is 1-based, got {batch_number}")

        start = (batch_number - 1) * batch_size
        if start >= len(self):
            return False

        end = min(start + batch_size, len(self))
        self.current_batch = XYFrame(self.x_frame.iloc[start:end], self.y_frame.iloc[start:end])
        return True

    def batches(self, batch_size: int) -> Iterator['XYFrame']:
        batch_number = 1
        while self.to_batch(batch_number, batch_size):
            yield self.current_batch
            batch_number += 1

    def split(self, fraction: float, shuffle: bool = True, seed: Optional[int] = None) -> Tuple['XYFrame', 'XYFrame']:
        """Split rows into two frames.

        Args:
            fraction: Share of rows in the second (held-out) frame
            shuffle: Whether to draw the rows randomly
            seed: Random seed for the draw

        Returns:
            Tuple of (remaining, held_out)
        """
        if not 0 <= fraction < 1:
            raise ValueError("fraction must be in range [0, 1)")

        indices = np.arange(len(self))
        if shuffle:
            indices = np.random.default_rng(seed).permutation(len(self))

        n_held_out = int(round(fraction * len(self)))
        kept, held_out = indices[:len(self) - n_held_out], indices[len(self) - n_held_out:]

        return (
            XYFrame(self.x_frame.iloc[kept], self.y_frame.iloc[kept]),
            XYFrame(self.x_frame.iloc[held_out], self.y_frame.iloc[held_out])
        )
