"""
Error-state Kalman filter for IMU/lidar odometry.
"""

from .eskf import ErrorStateKalmanFilter, FilterNotInitializedError
from .state import NominalState, ErrorState, ErrorStateIndex
from .models import ProcessModel, MeasurementModel

__all__ = [
    "ErrorStateKalmanFilter", "FilterNotInitializedError",
    "NominalState", "ErrorState", "ErrorStateIndex",
    "ProcessModel", "MeasurementModel",
]
