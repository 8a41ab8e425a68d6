"""Reading tabular datasets from disk into frames."""

import os
import logging
from typing import Optional, Sequence

import pandas as pd

from .frame import XYFrame


HDF5_EXTENSIONS = ('.h5', '.hdf5', '.hdf')


def read_table(path: str, key: Optional[str] = None, limit_nsamples: Optional[int] = None) -> pd.DataFrame:
    """Read a CSV or HDF5 table.

    Args:
        path: File path
        key: HDF5 group key (ignored for CSV)
        limit_nsamples: Read at most this many rows

    Returns:
        Loaded DataFrame
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Data file not found: {path}")

    extension = os.path.splitext(path)[1].lower()
    logger = logging.getLogger('fitkit')
    logger.info(f"Loading data from {path}")

    if extension == '.csv':
        return pd.read_csv(path, nrows=limit_nsamples)
    elif extension in HDF5_EXTENSIONS:
        return pd.read_hdf(path, key=key, stop=limit_nsamples)
    else:
        raise ValueError(f"Unsupported data file format: {extension}")


def load_frame(
    path: str,
    target_columns: Optional[Sequence[str]] = None,
    target_count: Optional[int] = None,
    key: Optional[str] = None,
    limit_nsamples: Optional[int] = None
) -> XYFrame:
    """Load a table and split it into features and targets.

    Args:
        path: CSV or HDF5 file
        target_columns: Names of the target columns
        target_count: Number of trailing columns used as targets (when no names given)
        key: HDF5 group key
        limit_nsamples: Read at most this many rows

    Returns:
        XYFrame of features and targets
    """
    df = read_table(path, key=key, limit_nsamples=limit_nsamples)

    if target_columns:
        frame = XYFrame.from_dataframe(df, target_columns)
    elif target_count:
        if not 0 < target_count < df.shape[1]:
            raise ValueError(f"target_count must be between 1 and {df.shape[1] - 1}, got {target_count}")
        frame = XYFrame(df.iloc[:, :-target_count], df.iloc[:, -target_count:])
    else:
        raise ValueError("Either target_columns or target_count must be given")

    logging.getLogger('fitkit').info(f"Loaded {frame}")
    return frame


def load_features(path: str, key: Optional[str] = None, drop_columns: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """Load a feature-only table for prediction."""
    df = read_table(path, key=key)
    if drop_columns:
        df = df.drop(columns=[column for column in drop_columns if column in df.columns])
    return df
