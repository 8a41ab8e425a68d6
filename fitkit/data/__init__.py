"""Frames, batching, loading and preprocessing."""

from .frame import XYFrame, as_frame, to_value_batch
from .loading import load_frame, load_features, read_table
from .preprocessing import DataPreprocessor

__all__ = [
    "XYFrame", "as_frame", "to_value_batch",
    "load_frame", "load_features", "read_table", "DataPreprocessor"
]
