"""YAML experiment configuration."""

import os
import yaml
from typing import Dict, Any, Iterable, Optional


REQUIRED_SECTIONS = ('data', 'model', 'training')
REQUIRED_TRAINING_KEYS = ('epochs', 'batch_size', 'loss')


class ConfigManager:
    """Loads, validates and queries an experiment configuration.

    Nested keys are addressed with dots, e.g. ``training.optimizer.type``.
    """

    def __init__(self, config_path: Optional[str] = None, config: Optional[Dict[str, Any]] = None):
        """Initialize ConfigManager.

        Args:
            config_path: YAML file to load
            config: Configuration dictionary used when no path is given
        """
        self.config_path = config_path
        self.config: Dict[str, Any] = {}

        if config_path:
            self.load_config(config_path)
        elif config is not None:
            self.config = config
            self._validate_config()

    def load_config(self, config_path: str) -> Dict[str, Any]:
        """Read and validate a YAML file.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If required sections or keys are missing
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            self.config = yaml.safe_load(f) or {}

        self._validate_config()
        return self.config

    def get(self, key: str, default: Any = None) -> Any:
        """Value at a dotted key, or ``default`` when any part is missing."""
        node = self.config
        for part in key.split('.'):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key: str, value: Any) -> None:
        """Assign a dotted key, creating intermediate sections."""
        *parents, leaf = key.split('.')
        node = self.config
        for part in parents:
            node = node.setdefault(part, {})
        node[leaf] = value

    def apply_overrides(self, overrides: Iterable[str]) -> None:
        """Apply ``key=value`` strings; values are parsed as YAML scalars or lists.

        The configuration is validated again afterwards.
        """
        for override in overrides:
            key, separator, raw_value = override.partition('=')
            if not separator or not key:
                raise ValueError(f"Override must look like key=value, got '{override}'")
            self.set(key.strip(), yaml.safe_load(raw_value))

        self._validate_config()

    def save_config(self, output_path: str) -> None:
        """Write the configuration as YAML, creating parent directories."""
        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(output_path, 'w') as f:
            yaml.dump(self.config, f, default_flow_style=False, indent=2)

    def _validate_config(self) -> None:
        missing = [section for section in REQUIRED_SECTIONS if section not in self.config]
        if missing:
            raise ValueError(f"Missing required configuration section(s): {missing}")

        data_config = self.get_data_config()
        if 'train_file' not in data_config:
            raise ValueError("Missing 'data.train_file' in configuration")
        if 'target_columns' not in data_config and 'target_count' not in data_config:
            raise ValueError("Configuration needs 'data.target_columns' or 'data.target_count'")

        training_config = self.get_training_config()
        for key in REQUIRED_TRAINING_KEYS:
            if key not in training_config:
                raise ValueError(f"Missing 'training.{key}' in configuration")

    def get_data_config(self) -> Dict[str, Any]:
        return self.config.get('data', {})

    def get_model_config(self) -> Dict[str, Any]:
        return self.config.get('model', {})

    def get_training_config(self) -> Dict[str, Any]:
        return self.config.get('training', {})
