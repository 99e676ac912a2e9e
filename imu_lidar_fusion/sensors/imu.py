"""
Inertial measurement containers consumed by the error-state filter.
"""

import numpy as np
from collections import deque
from dataclasses import dataclass
from typing import Optional

from ..math.utils import as_vector3, quat_normalize, quat_to_rotmat


@dataclass
class InertialSample:
    """
    One timestamped IMU measurement.

    Attributes:
        timestamp: Measurement time in seconds
        angular_velocity: Gyroscope reading in body frame (rad/s)
        linear_acceleration: Accelerometer reading (specific force) in body frame (m/s²)
        orientation: Optional body->navigation quaternion [w, x, y, z]
    """

    timestamp: float
    angular_velocity: np.ndarray
    linear_acceleration: np.ndarray
    orientation: Optional[np.ndarray] = None

    def __post_init__(self):
        self.timestamp = float(self.timestamp)
        self.angular_velocity = as_vector3(self.angular_velocity, "angular_velocity")
        self.linear_acceleration = as_vector3(self.linear_acceleration, "linear_acceleration")
        if self.orientation is not None:
            q = np.asarray(self.orientation, dtype=np.float64).reshape(-1)
            if q.shape != (4,):
                raise ValueError(f"orientation must be a quaternion [w, x, y, z], got {q.size} elements")
            self.orientation = quat_normalize(q)

    @property
    def rotation(self) -> Optional[np.ndarray]:
        """Body->navigation rotation matrix, or None without orientation."""
        if self.orientation is None:
            return None
        return quat_to_rotmat(self.orientation)

    def __str__(self) -> str:
        w = self.angular_velocity
        a = self.linear_acceleration
        return (
            f"InertialSample(t={self.timestamp:.4f}, "
            f"gyro=[{w[0]:.4f}, {w[1]:.4f}, {w[2]:.4f}], "
            f"accel=[{a[0]:.3f}, {a[1]:.3f}, {a[2]:.3f}])"
        )


class InertialBuffer:
    """
    Sliding window over the two most recent inertial samples.

    Holds [previous, current] between a push and the following pop so the
    midpoint integration can see both ends of the interval.
    """

    MAX_SIZE = 2

    def __init__(self):
        self._samples = deque(maxlen=self.MAX_SIZE)

    def reset(self, sample: InertialSample):
        """Clear the window and seed it with a single sample."""
        self._samples.clear()
        self._samples.append(sample)

    def push(self, sample: InertialSample):
        self._samples.append(sample)

    def pop_oldest(self) -> InertialSample:
        return self._samples.popleft()

    @property
    def previous(self) -> InertialSample:
        if len(self._samples) < 2:
            raise IndexError("Buffer holds fewer than two samples")
        return self._samples[0]

    @property
    def current(self) -> InertialSample:
        if not self._samples:
            raise IndexError("Buffer is empty")
        return self._samples[-1]

    def __len__(self) -> int:
        return len(self._samples)
