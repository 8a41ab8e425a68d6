#!/usr/bin/env python3
"""Inference script for making predictions with trained models."""

import argparse
import sys
import traceback
from pathlib import Path

import numpy as np
import pandas as pd

from fitkit.compiled_model import CompiledModel
from fitkit.data.loading import load_features
from fitkit.data.preprocessing import DataPreprocessor
from fitkit.utils.device import get_device
from fitkit.utils.logging import setup_logging


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Make predictions with a trained model')

    parser.add_argument(
        '--model-path', '-m',
        type=str,
        required=True,
        help='Path to trained model file'
    )

    parser.add_argument(
        '--input-file', '-i',
        type=str,
        required=True,
        help='Path to input data file (CSV or HDF5)'
    )

    parser.add_argument(
        '--output-file', '-o',
        type=str,
        required=True,
        help='Path to save predictions (.csv or .json)'
    )

    parser.add_argument(
        '--preprocessor-path', '-p',
        type=str,
        default=None,
        help='Path to saved preprocessor'
    )

    parser.add_argument(
        '--drop-columns',
        type=str,
        nargs='*',
        default=None,
        help='Columns of the input file that are not features (e.g. targets)'
    )

    parser.add_argument(
        '--batch-size', '-b',
        type=int,
        default=256,
        help='Batch size for inference'
    )

    parser.add_argument(
        '--device',
        type=str,
        default='auto',
        help='Device to use (auto, cpu, cuda, cuda:0, mps)'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level'
    )

    return parser.parse_args(argv)


def predictions_to_frame(predictions: np.ndarray) -> pd.DataFrame:
    """One column per output value."""
    flat = predictions.reshape(predictions.shape[0], -1)
    if flat.shape[1] == 1:
        return pd.DataFrame({'prediction': flat[:, 0]})
    return pd.DataFrame(flat, columns=[f'prediction_{i}' for i in range(flat.shape[1])])


def save_predictions(predictions: pd.DataFrame, filepath: str) -> None:
    """Save predictions as CSV or JSON records, chosen by extension."""
    extension = Path(filepath).suffix.lower()
    Path(filepath).parent.mkdir(parents=True, exist_ok=True)

    if extension == '.csv':
        predictions.to_csv(filepath, index=False)
    elif extension == '.json':
        predictions.to_json(filepath, orient='records', indent=2)
    else:
        raise ValueError(f"Unsupported output format: {extension}")


def main(argv=None):
    """Main inference function."""
    args = parse_arguments(argv)

    logger = setup_logging(args.log_level)
    logger.info("Starting inference")

    try:
        device = get_device(args.device)
        logger.info(f"Using device: {device}")

        input_data = load_features(args.input_file, drop_columns=args.drop_columns)
        logger.info(f"Loaded data: {input_data.shape}")

        preprocessor = None
        if args.preprocessor_path:
            preprocessor = DataPreprocessor.load_scalers(args.preprocessor_path)
            input_data = preprocessor.transform_input(input_data)

        logger.info(f"Loading model from: {args.model_path}")
        with CompiledModel.load(args.model_path, device=device) as compiled:
            logger.info(f"Model: {compiled}")
            predictions = compiled.predict(input_data, batch_size=args.batch_size)

        predictions_df = predictions_to_frame(predictions)
        if preprocessor is not None and preprocessor.output_scaler is not None:
            predictions_df = pd.DataFrame(
                preprocessor.inverse_transform_output(predictions_df).to_numpy(),
                columns=predictions_df.columns
            )

        logger.info(f"Generated predictions: {predictions_df.shape}")
        save_predictions(predictions_df, args.output_file)
        logger.info(f"Saved predictions to: {args.output_file}")

    except Exception as e:
        logger.error(f"Inference failed with error: {str(e)}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        sys.exit(1)


if __name__ == '__main__':
    main()
