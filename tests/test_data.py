"""Unit tests for frames, loading and preprocessing."""

import warnings

import numpy as np
import pandas as pd
import pytest
import torch

from fitkit.data.frame import XYFrame, as_frame, to_value_batch
from fitkit.data.loading import load_features, load_frame, read_table
from fitkit.data.preprocessing import DataPreprocessor


def paired_frame(rows=5):
    """Row i holds features [2i, 2i + 1] and label i."""
    return XYFrame(np.arange(rows * 2).reshape(rows, 2), np.arange(rows))


class TestAsFrame:
    """Test conversion of array-likes to frames."""

    def test_one_dimensional_becomes_column(self):
        frame = as_frame(np.arange(4))
        assert frame.shape == (4, 1)

    def test_higher_rank_is_flattened(self):
        frame = as_frame(np.zeros((3, 2, 2)))
        assert frame.shape == (3, 4)

    def test_dataframe_passes_through(self):
        df = pd.DataFrame({'a': [1, 2]})
        assert as_frame(df) is df

    def test_tensor(self):
        frame = as_frame(torch.ones(2, 3))
        assert frame.shape == (2, 3)


class TestToValueBatch:
    """Test frame to tensor conversion."""

    def test_flat_rows(self):
        tensor = to_value_batch(np.ones((4, 3)))
        assert tensor.shape == (4, 3)
        assert tensor.dtype == torch.get_default_dtype()
        assert tensor.device.type == 'cpu'

    def test_reshape_to_sample_shape(self):
        tensor = to_value_batch(np.arange(8).reshape(2, 4), shape=(2, 2))
        assert tensor.shape == (2, 2, 2)
        assert tensor[1, 1, 0].item() == 6

    def test_tensor_owns_its_values(self):
        frame = pd.DataFrame({'a': [1.0, 2.0], 'b': [3.0, 4.0]})
        with warnings.catch_warnings():
            warnings.simplefilter('error')
            tensor = to_value_batch(frame, dtype=torch.float64)

        tensor[0, 0] = 10.0
        assert frame.iloc[0, 0] == 1.0

    def test_incompatible_shape_raises(self):
        with pytest.raises(ValueError):
            to_value_batch(np.ones((2, 4)), shape=(3,))

    def test_explicit_dtype(self):
        tensor = to_value_batch(np.ones((2, 2)), dtype=torch.float64)
        assert tensor.dtype == torch.float64


class TestXYFrame:
    """Test paired frames and batching."""

    def test_construction(self):
        frame = paired_frame()
        assert len(frame) == 5
        assert frame.x_frame.shape == (5, 2)
        assert frame.y_frame.shape == (5, 1)

    def test_row_mismatch_raises(self):
        with pytest.raises(ValueError):
            XYFrame(np.ones((4, 2)), np.ones(3))

    def test_from_dataframe(self):
        df = pd.DataFrame({'a': [1.0, 2.0], 'b': [3.0, 4.0], 'y': [0.0, 1.0]})
        frame = XYFrame.from_dataframe(df, ['y'])
        assert frame.feature_names == ['a', 'b']
        assert frame.target_names == ['y']

    def test_from_dataframe_missing_target(self):
        df = pd.DataFrame({'a': [1.0], 'b': [2.0]})
        with pytest.raises(ValueError):
            XYFrame.from_dataframe(df, ['y'])

    def test_to_batch(self):
        frame = paired_frame()

        assert frame.to_batch(1, 2)
        assert len(frame.current_batch) == 2
        assert frame.current_batch.y_frame.iloc[0, 0] == 0

        assert frame.to_batch(3, 2)
        assert len(frame.current_batch) == 1
        assert frame.current_batch.y_frame.iloc[0, 0] == 4

        assert not frame.to_batch(4, 2)

    def test_to_batch_rejects_invalid_arguments(self):
        frame = paired_frame()
        with pytest.raises(ValueError):
            frame.to_batch(0, 2)
        with pytest.raises(ValueError):
            frame.to_batch(1, 0)

    def test_batches(self):
        sizes = [len(batch) for batch in paired_frame().batches(2)]
        assert sizes == [2, 2, 1]

    def test_shuffle_keeps_rows_paired(self):
        frame = paired_frame(20)
        frame.shuffle(seed=3)

        x = frame.x_frame.to_numpy()
        y = frame.y_frame.to_numpy()[:, 0]
        assert np.array_equal(x[:, 0], 2 * y)
        assert not np.array_equal(y, np.arange(20))

    def test_split(self):
        frame = paired_frame(10)
        remaining, held_out = frame.split(0.2, seed=0)

        assert len(remaining) == 8
        assert len(held_out) == 2
        labels = set(remaining.y_frame.iloc[:, 0]) | set(held_out.y_frame.iloc[:, 0])
        assert labels == set(range(10))

    def test_split_without_shuffle(self):
        remaining, held_out = paired_frame(10).split(0.3, shuffle=False)
        assert list(held_out.y_frame.iloc[:, 0]) == [7, 8, 9]

    def test_split_rejects_full_fraction(self):
        with pytest.raises(ValueError):
            paired_frame().split(1.0)


class TestLoading:
    """Test reading tables from disk."""

    @pytest.fixture
    def csv_path(self, tmp_path):
        df = pd.DataFrame({
            'a': np.arange(10, dtype=float),
            'b': np.arange(10, dtype=float) * 2,
            'y': np.arange(10, dtype=float) * 3,
        })
        path = tmp_path / 'data.csv'
        df.to_csv(path, index=False)
        return str(path)

    def test_load_frame_by_column_names(self, csv_path):
        frame = load_frame(csv_path, target_columns=['y'])
        assert frame.feature_names == ['a', 'b']
        assert frame.target_names == ['y']
        assert len(frame) == 10

    def test_load_frame_by_target_count(self, csv_path):
        frame = load_frame(csv_path, target_count=2)
        assert frame.feature_names == ['a']
        assert frame.target_names == ['b', 'y']

    def test_load_frame_needs_targets(self, csv_path):
        with pytest.raises(ValueError):
            load_frame(csv_path)

    def test_limit_nsamples(self, csv_path):
        assert len(read_table(csv_path, limit_nsamples=4)) == 4

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_table(str(tmp_path / 'missing.csv'))

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / 'data.txt'
        path.write_text('a,b\n1,2\n')
        with pytest.raises(ValueError):
            read_table(str(path))

    def test_load_features_drops_columns(self, csv_path):
        features = load_features(csv_path, drop_columns=['y', 'not_there'])
        assert list(features.columns) == ['a', 'b']


class TestDataPreprocessor:
    """Test scaling of features and labels."""

    def test_fit_transform_standardizes(self, regression_frame):
        preprocessor = DataPreprocessor('standard')
        scaled = preprocessor.fit_transform(regression_frame)

        x = scaled.x_frame.to_numpy()
        np.testing.assert_allclose(x.mean(axis=0), 0.0, atol=1e-10)
        np.testing.assert_allclose(x.std(axis=0), 1.0, atol=1e-10)

    def test_inverse_transform(self, regression_frame):
        preprocessor = DataPreprocessor('minmax')
        scaled = preprocessor.fit_transform(regression_frame)

        restored = preprocessor.inverse_transform_output(scaled.y_frame)
        np.testing.assert_allclose(restored.to_numpy(), regression_frame.y_frame.to_numpy())

    def test_unfitted_raises(self, regression_frame):
        with pytest.raises(ValueError):
            DataPreprocessor().transform_input(regression_frame.x_frame)

    def test_unknown_method(self):
        with pytest.raises(ValueError):
            DataPreprocessor('quantile')

    def test_outputs_left_unscaled(self, regression_frame):
        preprocessor = DataPreprocessor('standard', scale_outputs=False)
        scaled = preprocessor.fit_transform(regression_frame)
        np.testing.assert_allclose(scaled.y_frame.to_numpy(), regression_frame.y_frame.to_numpy())

    def test_save_and_load(self, regression_frame, tmp_path):
        preprocessor = DataPreprocessor('robust')
        preprocessor.fit(regression_frame.x_frame, regression_frame.y_frame)

        path = str(tmp_path / 'scalers.pkl')
        preprocessor.save_scalers(path)
        restored = DataPreprocessor.load_scalers(path)

        assert restored.method == 'robust'
        np.testing.assert_allclose(
            restored.transform_input(regression_frame.x_frame).to_numpy(),
            preprocessor.transform_input(regression_frame.x_frame).to_numpy()
        )

    def test_scaler_info(self, regression_frame):
        preprocessor = DataPreprocessor('standard').fit(regression_frame.x_frame, regression_frame.y_frame)
        info = preprocessor.get_scaler_info()
        assert info['fitted']
        assert len(info['input_mean']) == 3
        assert len(info['output_mean']) == 1
