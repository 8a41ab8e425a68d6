"""Package logger setup and optional MLflow experiment tracking."""

import os
import logging
import sys
from datetime import datetime
from typing import Optional, Dict, Any

try:
    import mlflow
    MLFLOW_AVAILABLE = True
except ImportError:
    MLFLOW_AVAILABLE = False


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    experiment_name: Optional[str] = None
) -> logging.Logger:
    """Configure the ``fitkit`` logger.

    Replaces any existing handlers with a stdout handler and, when
    ``log_dir`` is given, a file ``<experiment_name>_<timestamp>.log``.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for the log file
        experiment_name: Log file prefix (default 'training')

    Returns:
        The configured logger
    """
    level = getattr(logging, log_level.upper())
    logger = logging.getLogger('fitkit')
    logger.setLevel(level)
    logger.handlers.clear()

    handlers = [logging.StreamHandler(sys.stdout)]

    log_filepath = None
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        log_filepath = os.path.join(log_dir, f"{experiment_name or 'training'}_{timestamp}.log")
        handlers.append(logging.FileHandler(log_filepath))

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    if log_filepath:
        logger.info(f"Logging to file: {log_filepath}")

    return logger


class ExperimentLogger:
    """Mirrors training results to an MLflow run.

    Every method is a no-op when MLflow is disabled or not installed.
    """

    def __init__(
        self,
        experiment_name: str,
        tracking_uri: Optional[str] = None,
        use_mlflow: bool = True
    ):
        """Initialize ExperimentLogger.

        Args:
            experiment_name: MLflow experiment to log into
            tracking_uri: Tracking store (local 'mlruns' directory when None)
            use_mlflow: Whether to start a run at all
        """
        self.experiment_name = experiment_name
        self.logger = logging.getLogger('fitkit')
        self.run = None

        if not use_mlflow:
            return
        if not MLFLOW_AVAILABLE:
            self.logger.warning("MLflow requested but not installed; tracking disabled")
            return

        mlflow.set_tracking_uri(tracking_uri or "mlruns")
        mlflow.set_experiment(experiment_name)
        self.run = mlflow.start_run()
        self.logger.info(f"MLflow run started: {self.run.info.run_id}")

    @property
    def enabled(self) -> bool:
        return self.run is not None

    def log_scalars(self, metrics: Dict[str, float], step: int) -> None:
        if self.enabled:
            mlflow.log_metrics({key: float(value) for key, value in metrics.items()}, step=step)

    def log_hyperparameters(self, params: Dict[str, Any]) -> None:
        if self.enabled:
            mlflow.log_params(params)

    def log_config(self, config: Dict[str, Any], artifact_file: str = "config.yaml") -> None:
        """Store the configuration dictionary as a YAML artifact of the run."""
        if self.enabled:
            mlflow.log_dict(config, artifact_file)

    def get_run_id(self) -> Optional[str]:
        return self.run.info.run_id if self.enabled else None

    def close(self) -> None:
        """End the run, if one was started."""
        if self.enabled:
            mlflow.end_run()
            self.run = None
