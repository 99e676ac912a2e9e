"""
Configuration for the IMU/lidar error-state Kalman filter.

Configuration files are JSON or YAML documents with the sections::

    earth:
      gravity_magnitude: 9.80943
      rotation_speed: 7.292115e-5
      latitude: 48.98          # degrees
    covariance:
      prior:       {pos: ..., vel: ..., orientation: ..., epsilon: ..., delta: ...}
      process:     {gyro: ..., accel: ...}
      measurement: {pos: ..., orientation: ...}
"""

import copy
import json
import logging
import math
import os
from dataclasses import dataclass
from typing import Dict, Any, Optional

import yaml

from .math.constants import (
    GRAVITY_MS2, EARTH_ROTATION_RAD_S, DEG_TO_RAD, DEFAULT_LATITUDE_DEG,
    MAX_INNOVATION_CONDITION,
    PRIOR_POS, PRIOR_VEL, PRIOR_ORIENTATION, PRIOR_EPSILON, PRIOR_DELTA,
    PROCESS_GYRO, PROCESS_ACCEL,
    MEASUREMENT_POS, MEASUREMENT_ORIENTATION,
)

logger = logging.getLogger(__name__)

_YAML_EXTENSIONS = ('.yaml', '.yml')


class ConfigError(ValueError):
    """Raised for missing, malformed or unreadable configuration."""


class Config:
    """Dotted-key configuration store merged over defaults."""

    DEFAULT_CONFIG = {
        "earth": {
            "gravity_magnitude": GRAVITY_MS2,
            "rotation_speed": EARTH_ROTATION_RAD_S,
            "latitude": DEFAULT_LATITUDE_DEG
        },

        "covariance": {
            "prior": {
                "pos": PRIOR_POS,
                "vel": PRIOR_VEL,
                "orientation": PRIOR_ORIENTATION,
                "epsilon": PRIOR_EPSILON,
                "delta": PRIOR_DELTA
            },
            "process": {
                "gyro": PROCESS_GYRO,
                "accel": PROCESS_ACCEL
            },
            "measurement": {
                "pos": MEASUREMENT_POS,
                "orientation": MEASUREMENT_ORIENTATION
            }
        },

        "filter": {
            "max_innovation_condition": MAX_INNOVATION_CONDITION
        }
    }

    def __init__(self, config_file: Optional[str] = None,
                 overrides: Optional[Dict[str, Any]] = None,
                 use_defaults: bool = True):
        """
        Initialize configuration.

        Args:
            config_file: Path to a JSON or YAML configuration file
            overrides: Nested dictionary merged on top of defaults and file
            use_defaults: Start from DEFAULT_CONFIG instead of an empty store
        """
        self.config_file = config_file
        self.config = copy.deepcopy(self.DEFAULT_CONFIG) if use_defaults else {}

        if config_file is not None:
            if os.path.exists(config_file):
                self.load_config()
            else:
                logger.warning("Config file %s not found, using defaults", config_file)

        if overrides:
            self._merge_config(self.config, overrides)

    @classmethod
    def from_dict(cls, values: Dict[str, Any], use_defaults: bool = False) -> 'Config':
        """Build a configuration from a nested dictionary."""
        return cls(overrides=values, use_defaults=use_defaults)

    def _is_yaml(self) -> bool:
        return self.config_file.lower().endswith(_YAML_EXTENSIONS)

    def load_config(self):
        """
        Load configuration from file, overriding the current values.

        Raises:
            ConfigError: If the file cannot be read or parsed
        """
        try:
            with open(self.config_file, 'r') as f:
                if self._is_yaml():
                    file_config = yaml.safe_load(f)
                else:
                    file_config = json.load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config {self.config_file}: {e}") from e

        if file_config is None:
            file_config = {}
        if not isinstance(file_config, dict):
            raise ConfigError(f"Config {self.config_file} must contain a mapping at top level")

        self._merge_config(self.config, file_config)
        logger.info("Configuration loaded from %s", self.config_file)

    def save_config(self, config_file: Optional[str] = None):
        """
        Save current configuration to file, in YAML or JSON by extension.

        Args:
            config_file: Destination path, defaults to the loaded file
        """
        if config_file is not None:
            self.config_file = config_file
        if self.config_file is None:
            raise ConfigError("No config file path to save to")

        with open(self.config_file, 'w') as f:
            if self._is_yaml():
                yaml.safe_dump(self.config, f, default_flow_style=False)
            else:
                json.dump(self.config, f, indent=2)

        logger.info("Configuration saved to %s", self.config_file)

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]):
        """Recursively merge configuration dictionaries."""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._merge_config(base[key], value)
            else:
                base[key] = copy.deepcopy(value)

    def get(self, key: str, default=None):
        """Get configuration value with optional default."""
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def require(self, key: str):
        """Get a configuration value that must be present."""
        missing = object()
        value = self.get(key, missing)
        if value is missing:
            raise ConfigError(f"Missing required configuration key: {key}")
        return value

    def set(self, key: str, value: Any):
        """Set configuration value."""
        keys = key.split('.')
        config = self.config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def dump(self) -> str:
        """Current configuration as indented JSON."""
        return json.dumps(self.config, indent=2)


@dataclass
class ESKFConfig:
    """Parameters of the error-state Kalman filter.

    Attributes:
    gravity_magnitude: float
        Gravity magnitude (m/s^2), applied along navigation z.
    rotation_speed: float
        Earth rotation speed (rad/s).
    latitude: float
        Site latitude (degrees).
    prior_pos, prior_vel, prior_orientation: float
        Prior variances of the position, velocity and orientation errors.
    prior_epsilon, prior_delta: float
        Prior variances of the gyro and accelerometer bias errors.
    process_gyro, process_accel: float
        Gyro and accelerometer process noise variances.
    measurement_pos, measurement_orientation: float
        Relative pose measurement noise variances.
    max_innovation_condition: float
        Corrections whose innovation covariance is worse conditioned are rejected.
    """
    gravity_magnitude: float = GRAVITY_MS2
    rotation_speed: float = EARTH_ROTATION_RAD_S
    latitude: float = DEFAULT_LATITUDE_DEG
    prior_pos: float = PRIOR_POS
    prior_vel: float = PRIOR_VEL
    prior_orientation: float = PRIOR_ORIENTATION
    prior_epsilon: float = PRIOR_EPSILON
    prior_delta: float = PRIOR_DELTA
    process_gyro: float = PROCESS_GYRO
    process_accel: float = PROCESS_ACCEL
    measurement_pos: float = MEASUREMENT_POS
    measurement_orientation: float = MEASUREMENT_ORIENTATION
    max_innovation_condition: float = MAX_INNOVATION_CONDITION

    # field name -> configuration key
    KEYS = {
        "gravity_magnitude": "earth.gravity_magnitude",
        "rotation_speed": "earth.rotation_speed",
        "latitude": "earth.latitude",
        "prior_pos": "covariance.prior.pos",
        "prior_vel": "covariance.prior.vel",
        "prior_orientation": "covariance.prior.orientation",
        "prior_epsilon": "covariance.prior.epsilon",
        "prior_delta": "covariance.prior.delta",
        "process_gyro": "covariance.process.gyro",
        "process_accel": "covariance.process.accel",
        "measurement_pos": "covariance.measurement.pos",
        "measurement_orientation": "covariance.measurement.orientation",
    }

    VARIANCES = (
        "prior_pos", "prior_vel", "prior_orientation", "prior_epsilon", "prior_delta",
        "process_gyro", "process_accel", "measurement_pos", "measurement_orientation",
    )

    def __post_init__(self):
        for name in list(self.KEYS) + ["max_innovation_condition"]:
            value = getattr(self, name)
            try:
                value = float(value)
            except (TypeError, ValueError):
                raise ConfigError(f"{name} must be a number, got {value!r}") from None
            if not math.isfinite(value):
                raise ConfigError(f"{name} must be finite, got {value}")
            setattr(self, name, value)

        for name in self.VARIANCES:
            if getattr(self, name) < 0.0:
                raise ConfigError(f"{name} must be non-negative, got {getattr(self, name)}")
        if self.max_innovation_condition <= 1.0:
            raise ConfigError("max_innovation_condition must be greater than 1")

    @property
    def latitude_rad(self) -> float:
        return self.latitude * DEG_TO_RAD

    @classmethod
    def from_config(cls, config: Config) -> 'ESKFConfig':
        """
        Read filter parameters from a Config.

        Raises:
            ConfigError: If a recognized key is missing or invalid
        """
        values = {name: config.require(key) for name, key in cls.KEYS.items()}
        values["max_innovation_condition"] = config.get(
            "filter.max_innovation_condition", MAX_INNOVATION_CONDITION)
        return cls(**values)

    @classmethod
    def from_file(cls, config_file: str) -> 'ESKFConfig':
        """Load filter parameters from a JSON or YAML file."""
        if not os.path.exists(config_file):
            raise ConfigError(f"Config file not found: {config_file}")
        return cls.from_config(Config(config_file, use_defaults=False))

    def to_dict(self) -> Dict[str, Any]:
        """Nested dictionary in configuration-file layout."""
        config = Config(use_defaults=False)
        for name, key in self.KEYS.items():
            config.set(key, getattr(self, name))
        config.set("filter.max_innovation_condition", self.max_innovation_condition)
        return config.config
