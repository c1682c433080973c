#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
BundleWeaver v0.1.0

Configuration parser: YAML loading, environment substitution, CLI overrides
and validation.

Author: BundleWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import copy
import os
import re
import yaml
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..exceptions import ConfigValidationError
from .schema import DEFAULT_CONFIG, _deep_merge, validate_config


class ConfigParser:
    """
    Parse and validate BundleWeaver configuration files.

    Features:
    - Load YAML configuration files
    - Merge with default values
    - Environment variable substitution (${VAR} and ${VAR:-default})
    - CLI parameter overrides
    - Dotted notation access (e.g., config.get('shimmer.k'))
    """

    def __init__(self, config_file: Optional[Union[str, Path]] = None):
        """
        Initialize configuration parser.

        Args:
            config_file: Path to YAML configuration file (optional)
        """
        self.config_file = Path(config_file) if config_file else None
        self._config: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_file:
            self._load_user_config()

    def _load_user_config(self):
        """Load and merge user configuration file."""
        if not self.config_file.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {self.config_file}"
            )

        try:
            with open(self.config_file, 'r') as f:
                user_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigValidationError(
                f"Invalid YAML in config file {self.config_file}: {e}"
            ) from e

        if user_config is None:
            return
        if not isinstance(user_config, dict):
            raise ConfigValidationError(
                f"Config file {self.config_file} must contain a mapping"
            )

        user_config = self._substitute_env_vars(user_config)
        self._config = _deep_merge(self._config, user_config)

    def _substitute_env_vars(self, config: Any) -> Any:
        """
        Recursively substitute environment variables in configuration.

        Values that become purely numeric after substitution are converted
        back to int/float so that `k: ${BW_K:-31}` behaves like `k: 31`.
        """
        if isinstance(config, dict):
            return {k: self._substitute_env_vars(v) for k, v in config.items()}

        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]

        elif isinstance(config, str):
            pattern = r'\$\{([^}:]+)(?::-(.*?))?\}'

            def replace_var(match):
                var_name = match.group(1)
                default_value = match.group(2)
                return os.environ.get(var_name, default_value or '')

            substituted = re.sub(pattern, replace_var, config)
            if substituted != config:
                for cast in (int, float):
                    try:
                        return cast(substituted)
                    except ValueError:
                        pass
            return substituted

        else:
            return config

    def merge_cli_overrides(self, overrides: Dict[str, Any]):
        """
        Merge command-line overrides into configuration.

        Args:
            overrides: Dictionary of override values. Keys use dotted
                      notation (e.g., 'shimmer.k'); None values are skipped.
        """
        for key, value in overrides.items():
            if value is None:
                continue
            keys = key.split('.')

            target = self._config
            for k in keys[:-1]:
                if k not in target or not isinstance(target[k], dict):
                    target[k] = {}
                target = target[k]

            target[keys[-1]] = value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key.

        Args:
            key: Configuration key (e.g., 'bundle.repeat_threshold')
            default: Default value if key not found
        """
        value = self._config

        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as a deep copy."""
        return copy.deepcopy(self._config)

    def validate(self) -> bool:
        """
        Validate the merged configuration.

        Raises:
            ConfigValidationError: If validation fails; all problems are
                listed in the exception's ``errors`` attribute.
        """
        errors = validate_config(self._config)
        if errors:
            raise ConfigValidationError(
                "Configuration validation failed: " + "; ".join(errors),
                errors=errors,
            )
        return True

    def __repr__(self) -> str:
        return f"ConfigParser(config_file={self.config_file})"

# BundleWeaver v0.1.0
# Any usage is subject to this software's license.
