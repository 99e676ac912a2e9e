"""
IMU/lidar odometry fusion with an error-state Kalman filter.

This package provides:
- Error-state Kalman filter fusing IMU samples with lidar relative poses
- Inertial sample containers and a synthetic sensor simulator
- Rotation and rigid-transform utilities
- Filter configuration loading (JSON/YAML)
"""

__version__ = "1.0.0"
__author__ = "DR Vehicle Team"

from .config import Config, ConfigError, ESKFConfig
from .eskf import ErrorStateKalmanFilter, FilterNotInitializedError
from .sensors import InertialSample
from .math import make_transform, orthonormalize

__all__ = [
    "Config",
    "ConfigError",
    "ESKFConfig",
    "ErrorStateKalmanFilter",
    "FilterNotInitializedError",
    "InertialSample",
    "make_transform",
    "orthonormalize"
]
