#!/usr/bin/env python3
"""Train a model described by a YAML configuration file."""

import argparse
import sys
import traceback
from datetime import datetime
from pathlib import Path

from fitkit.compiled_model import CompiledModel
from fitkit.data.loading import load_frame
from fitkit.data.preprocessing import DataPreprocessor
from fitkit.models import build_model
from fitkit.training.callbacks import (
    CheckpointCallback, EarlyStoppingCallback, LoggingCallback, TrainingCurvesCallback
)
from fitkit.utils.config import ConfigManager
from fitkit.utils.device import set_device, set_seed
from fitkit.utils.logging import setup_logging


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Train a model from a YAML configuration')

    parser.add_argument(
        '--config', '-c',
        type=str,
        required=True,
        help='Path to configuration file'
    )

    parser.add_argument(
        '--resume',
        type=str,
        default=None,
        help='Saved model or checkpoint to continue training from'
    )

    parser.add_argument(
        '--override',
        type=str,
        nargs='*',
        default=[],
        help='Configuration overrides as key=value (e.g. training.epochs=5)'
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

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Setup everything but do not start training'
    )

    parser.add_argument(
        '--output-dir',
        type=str,
        default='experiments',
        help='Root directory for experiment outputs'
    )

    parser.add_argument(
        '--experiment-name',
        type=str,
        default=None,
        help='Experiment name (defaults to a timestamp)'
    )

    return parser.parse_args(argv)


def create_callbacks(training_config: dict, experiment_dir: Path, experiment_name: str) -> list:
    """Create the callbacks enabled in the training configuration.

    Every key of a callback section other than ``enabled`` is passed to the
    callback as a keyword argument.
    """
    def section(name, enabled_by_default):
        options = dict(training_config.get(name) or {})
        return options if options.pop('enabled', enabled_by_default) else None

    callbacks = []

    options = section('logging', True)
    if options is not None:
        callbacks.append(LoggingCallback(experiment_name=experiment_name, **options))

    options = section('early_stopping', False)
    if options is not None:
        callbacks.append(EarlyStoppingCallback(**options))

    options = section('checkpointing', True)
    if options is not None:
        callbacks.append(CheckpointCallback(checkpoint_dir=str(experiment_dir / 'checkpoints'), **options))

    options = section('training_curves', False)
    if options is not None:
        callbacks.append(TrainingCurvesCallback(plot_dir=str(experiment_dir / 'plots'), **options))

    return callbacks


def main(argv=None):
    """Main training function."""
    args = parse_arguments(argv)

    experiment_name = args.experiment_name or f"experiment_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
    experiment_dir = Path(args.output_dir) / experiment_name

    logger = setup_logging(args.log_level, str(experiment_dir / 'logs'), experiment_name)
    logger.info("Starting training")

    try:
        logger.info(f"Loading configuration from: {args.config}")
        config = ConfigManager(args.config)
        if args.override:
            config.apply_overrides(args.override)
        data_config = config.get_data_config()
        training_config = config.get_training_config()

        device = set_device(args.device)
        set_seed(config.get('experiment.random_seed', 42))

        frame = load_frame(
            data_config['train_file'],
            target_columns=data_config.get('target_columns'),
            target_count=data_config.get('target_count'),
            key=data_config.get('key'),
            limit_nsamples=data_config.get('limit_nsamples')
        )

        test_split = data_config.get('test_split', 0.0)
        val_split = data_config.get('val_split', 0.1)
        seed = data_config.get('random_seed', 42)

        test = None
        if test_split > 0:
            frame, test = frame.split(test_split, shuffle=True, seed=seed)
        train, validation = frame, None
        if val_split > 0:
            train, validation = frame.split(val_split / (1.0 - test_split), shuffle=True, seed=seed)

        if test is not None and len(test) == 0:
            logger.warning(f"test_split={test_split} leaves no rows; skipping test evaluation")
            test = None
        if validation is not None and len(validation) == 0:
            logger.warning(f"val_split={val_split} leaves no rows; training without validation")
            validation = None

        preprocessor = None
        preprocessing_config = data_config.get('preprocessing', {})
        if preprocessing_config.get('method', 'none') != 'none':
            preprocessor = DataPreprocessor(
                method=preprocessing_config['method'],
                scale_outputs=preprocessing_config.get('scale_outputs', True)
            )
            train = preprocessor.fit_transform(train)
            validation = preprocessor.transform(validation) if validation is not None else None
            test = preprocessor.transform(test) if test is not None else None

        logger.info(f"Data: train={len(train)}, "
                    f"validation={len(validation) if validation is not None else 0}, "
                    f"test={len(test) if test is not None else 0}")

        model_config = config.get_model_config().copy()
        if model_config.get('input_dim') is None:
            model_config['input_dim'] = train.x_frame.shape[1]
        if model_config.get('output_dim') is None:
            model_config['output_dim'] = train.y_frame.shape[1]

        if args.resume:
            logger.info(f"Resuming from: {args.resume}")
            compiled = CompiledModel.load(args.resume, device=device)
        else:
            compiled = CompiledModel(build_model(model_config), device=device)
        logger.info(f"Model: {compiled}")

        if args.dry_run:
            logger.info("Dry run complete. Exiting without training.")
            return

        experiment_dir.mkdir(parents=True, exist_ok=True)
        config.save_config(str(experiment_dir / 'config.yaml'))
        if preprocessor is not None:
            preprocessor.save_scalers(str(experiment_dir / 'preprocessor.pkl'))

        with compiled:
            history = compiled.fit(
                train,
                epochs=training_config['epochs'],
                batch_size=training_config['batch_size'],
                optimizer=training_config.get('optimizer', 'adam'),
                loss=training_config['loss'],
                metric=training_config.get('metric'),
                regularizer=training_config.get('regularizer'),
                validation=validation,
                shuffle=training_config.get('shuffle', True),
                callbacks=create_callbacks(training_config, experiment_dir, experiment_name),
                scheduler=training_config.get('scheduler'),
                gradient_clipping=training_config.get('gradient_clipping')
            )
            logger.info(f"Trained for {len(history['epoch'])} epochs")

            if test is not None:
                test_loss, test_metric = compiled.evaluate(
                    test, training_config['batch_size'], training_config['loss'], training_config.get('metric')
                )
                logger.info(f"Test Loss: {test_loss:.6f}, Test Metric: {test_metric:.6f}")

            model_path = experiment_dir / 'model.pt'
            compiled.save(model_path)
            logger.info(f"Saved model to {model_path}")

    except Exception as e:
        logger.error(f"Training failed with error: {str(e)}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        sys.exit(1)


if __name__ == '__main__':
    main()
