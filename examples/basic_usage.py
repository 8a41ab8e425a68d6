#!/usr/bin/env python3
"""Basic usage example of the fitkit training facade."""

import io

import numpy as np

from fitkit import CompiledModel, XYFrame
from fitkit.data.preprocessing import DataPreprocessor
from fitkit.models import build_model
from fitkit.training.callbacks import EarlyStoppingCallback, LambdaCallback, LoggingCallback
from fitkit.utils.device import set_device, set_seed
from fitkit.utils.logging import setup_logging


def make_regression_data(n_samples: int = 1000, n_features: int = 8, seed: int = 0):
    """Noisy linear targets with one quadratic term."""
    rng = np.random.default_rng(seed)
    x = rng.normal(size=(n_samples, n_features))
    weights = rng.normal(size=(n_features, 2))
    y = x @ weights
    y[:, 1] += 0.5 * x[:, 0] ** 2
    y += 0.05 * rng.normal(size=y.shape)
    return x, y


def main():
    """Basic usage example."""
    logger = setup_logging('INFO')
    logger.info("Basic Usage Example")

    set_device('cpu')
    set_seed(42)

    # 1. Data
    logger.info("=== Data ===")

    x, y = make_regression_data()
    frame = XYFrame(x, y)
    train, test = frame.split(0.2, seed=42)
    train, validation = train.split(0.2, seed=42)
    logger.info(f"Train: {train}, Validation: {validation}, Test: {test}")

    preprocessor = DataPreprocessor(method='standard')
    train = preprocessor.fit_transform(train)
    validation = preprocessor.transform(validation)
    test = preprocessor.transform(test)

    # 2. Model
    logger.info("=== Model ===")

    model = build_model({
        'model_type': 'mlp',
        'input_dim': x.shape[1],
        'output_dim': y.shape[1],
        'hidden_dims': [64, 32],
        'activation': 'relu',
    })
    compiled = CompiledModel(model)
    logger.info(f"Summary: {compiled.summary()['total_parameters']} parameters")

    # 3. Training
    logger.info("=== Training ===")

    compiled.add_callback(LoggingCallback(log_every_n_batches=10))
    batch_losses = []

    history = compiled.fit(
        train,
        epochs=30,
        batch_size=32,
        optimizer={'type': 'adam', 'learning_rate': 0.01},
        loss='mse',
        metric='mae',
        regularizer={'l2': 1e-5},
        validation=validation,
        shuffle=True,
        callbacks=[
            EarlyStoppingCallback(patience=5),
            LambdaCallback(on_batch_end=lambda model, event: batch_losses.append(event.loss)),
        ],
        scheduler={'type': 'step', 'step_size': 10, 'gamma': 0.5},
    )

    logger.info(f"Trained {len(history['epoch'])} epochs over {len(batch_losses)} batches")

    # 4. Evaluation and prediction
    logger.info("=== Evaluation ===")

    test_loss, test_mae = compiled.evaluate(test, batch_size=64, loss='mse', metric='mae')
    logger.info(f"Test MSE: {test_loss:.6f}, Test MAE: {test_mae:.6f}")

    predictions = compiled.predict(test, batch_size=64)
    predictions = preprocessor.inverse_transform_output(predictions).to_numpy()
    logger.info(f"Predictions shape: {predictions.shape}")

    # 5. Save and reload
    logger.info("=== Save and Load ===")

    buffer = io.BytesIO()
    compiled.save(buffer)
    with CompiledModel.load(buffer.getvalue()) as restored:
        restored_predictions = restored.predict(test, batch_size=64)
    logger.info(f"Reloaded model reproduces predictions: "
                f"{np.allclose(compiled.predict(test), restored_predictions, atol=1e-6)}")

    compiled.close()
    logger.info("=== Example Completed ===")


if __name__ == '__main__':
    main()
