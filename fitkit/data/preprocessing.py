"""Data preprocessing utilities."""

import pickle
import logging
from typing import Dict, Any, Optional

import numpy as np
import pandas as pd
from sklearn.preprocessing import StandardScaler, MinMaxScaler, RobustScaler

from .frame import XYFrame, FrameLike, as_frame


SCALERS = {
    'standard': StandardScaler,
    'minmax': MinMaxScaler,
    'robust': RobustScaler,
}


class DataPreprocessor:
    """Scales features and labels with scikit-learn scalers fitted on training rows."""

    _PICKLED = ('method', 'scale_outputs', 'input_scaler', 'output_scaler', 'is_fitted')

    def __init__(self, method: str = 'standard', scale_outputs: bool = True):
        """Initialize DataPreprocessor.

        Args:
            method: Preprocessing method ('standard', 'minmax', 'robust', 'none')
            scale_outputs: Whether labels are scaled too (disable for class labels)
        """
        if method != 'none' and method not in SCALERS:
            raise ValueError(f"Unknown preprocessing method: {method}")

        self.method = method
        self.scale_outputs = scale_outputs
        self.input_scaler = SCALERS[method]() if method != 'none' else None
        self.output_scaler = SCALERS[method]() if method != 'none' and scale_outputs else None
        self.is_fitted = False
        self.logger = logging.getLogger('fitkit')

    def fit(self, input_data: FrameLike, output_data: Optional[FrameLike] = None) -> 'DataPreprocessor':
        """Learn scaling statistics from training rows.

        Returns:
            Self for method chaining
        """
        for name, scaler, data in (('input', self.input_scaler, input_data),
                                   ('output', self.output_scaler, output_data)):
            if scaler is None or data is None:
                continue
            values = as_frame(data).to_numpy(dtype=np.float64)
            scaler.fit(values)
            self.logger.info(f"{self.method} scaling of {name} fitted on {values.shape[0]} rows x {values.shape[1]} columns")

        self.is_fitted = True
        return self

    def _apply(self, scaler, data: FrameLike, inverse: bool = False) -> pd.DataFrame:
        frame = as_frame(data)
        if len(frame) == 0:
            return frame

        if not self.is_fitted:
            raise ValueError("Preprocessor not fitted. Call fit() first.")

        if scaler is None:
            return frame

        values = frame.to_numpy(dtype=np.float64)
        transformed = scaler.inverse_transform(values) if inverse else scaler.transform(values)
        return pd.DataFrame(transformed, columns=frame.columns, index=frame.index)

    def transform_input(self, input_data: FrameLike) -> pd.DataFrame:
        return self._apply(self.input_scaler, input_data)

    def transform_output(self, output_data: FrameLike) -> pd.DataFrame:
        return self._apply(self.output_scaler, output_data)

    def inverse_transform_input(self, input_data: FrameLike) -> pd.DataFrame:
        return self._apply(self.input_scaler, input_data, inverse=True)

    def inverse_transform_output(self, output_data: FrameLike) -> pd.DataFrame:
        return self._apply(self.output_scaler, output_data, inverse=True)

    def transform(self, frame: XYFrame) -> XYFrame:
        """Scale both halves of an XYFrame."""
        return XYFrame(self.transform_input(frame.x_frame), self.transform_output(frame.y_frame))

    def fit_transform(self, frame: XYFrame) -> XYFrame:
        """Fit on an XYFrame and return it scaled."""
        self.fit(frame.x_frame, frame.y_frame)
        return self.transform(frame)

    def get_scaler_info(self) -> Dict[str, Any]:
        """Get information about fitted scalers."""
        info = {'method': self.method, 'scale_outputs': self.scale_outputs, 'fitted': self.is_fitted}

        if not self.is_fitted:
            return info

        for prefix, scaler in (('input', self.input_scaler), ('output', self.output_scaler)):
            if scaler is None:
                continue
            if hasattr(scaler, 'mean_'):
                info[f'{prefix}_mean'] = scaler.mean_
                info[f'{prefix}_std'] = scaler.scale_
            elif hasattr(scaler, 'data_min_'):
                info[f'{prefix}_min'] = scaler.data_min_
                info[f'{prefix}_max'] = scaler.data_max_
            elif hasattr(scaler, 'center_'):
                info[f'{prefix}_center'] = scaler.center_
                info[f'{prefix}_scale'] = scaler.scale_

        return info

    def save_scalers(self, filepath: str) -> None:
        """Pickle the fitted scalers so that inference can reuse them."""
        if not self.is_fitted:
            raise ValueError("Preprocessor not fitted. Call fit() first.")

        state = {key: getattr(self, key) for key in self._PICKLED}
        with open(filepath, 'wb') as f:
            pickle.dump(state, f)
        self.logger.info(f"Scalers written to {filepath}")

    @classmethod
    def load_scalers(cls, filepath: str) -> 'DataPreprocessor':
        """Restore a preprocessor written by :meth:`save_scalers`."""
        with open(filepath, 'rb') as f:
            state = pickle.load(f)

        preprocessor = cls(state['method'], state.get('scale_outputs', True))
        for key in cls._PICKLED:
            if key in state:
                setattr(preprocessor, key, state[key])

        preprocessor.logger.info(f"Scalers read from {filepath}")
        return preprocessor
