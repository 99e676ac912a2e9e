"""
Sensor data containers and simulation.
"""

from .imu import InertialSample, InertialBuffer
from .simulator import GroundTruth, SensorSimulator

__all__ = ["InertialSample", "InertialBuffer", "GroundTruth", "SensorSimulator"]
