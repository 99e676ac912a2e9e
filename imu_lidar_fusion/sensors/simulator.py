"""
simulator.py

Synthetic ground truth and sensor data for exercising the filter.
A planar vehicle model integrates acceleration and yaw rate commands
into a trajectory on a flat plane (z = 0). The sensor simulator turns
that trajectory into IMU samples (specific force and angular velocity
in body frame, with optional bias, white noise and bias random walk)
and lidar pose observations at a fixed rate.

Classes:
GroundTruth:
    True pose, velocity and kinematics of the simulated vehicle.
SensorSimulator:
    Generates InertialSample objects and noisy lidar poses.
"""

from __future__ import annotations

import numpy as np
from dataclasses import dataclass, field
from typing import Optional, Tuple

from ..math.constants import GRAVITY_MS2
from ..math.utils import make_transform, quat_from_rotvec, quat_mult, quat_rotate, quat_to_rotmat
from .imu import InertialSample


def yaw_to_quaternion(yaw: float) -> np.ndarray:
    """Quaternion (w, x, y, z) of a rotation by yaw about the navigation z axis."""
    return np.array([np.cos(yaw / 2), 0.0, 0.0, np.sin(yaw / 2)])


@dataclass
class GroundTruth:
    """Ground truth state for a planar vehicle.

    Attributes:
        x (float): X position in meters.
        y (float): Y position in meters.
        yaw (float): Heading angle in radians.
        v (float): Forward speed in meters per second.
        t (float): Time in seconds.
    """
    x: float = 0.0
    y: float = 0.0
    yaw: float = 0.0
    v: float = 0.0
    t: float = 0.0

    @property
    def position(self) -> np.ndarray:
        return np.array([self.x, self.y, 0.0])

    @property
    def velocity(self) -> np.ndarray:
        return np.array([self.v * np.cos(self.yaw), self.v * np.sin(self.yaw), 0.0])

    @property
    def orientation(self) -> np.ndarray:
        return yaw_to_quaternion(self.yaw)

    @property
    def pose(self) -> np.ndarray:
        return make_transform(quat_to_rotmat(self.orientation), self.position)

    def kinematics(self, acc_cmd: float, yaw_rate_cmd: float) -> Tuple[np.ndarray, np.ndarray]:
        """
        Instantaneous acceleration and angular velocity in world frame.

        Args:
            acc_cmd (float): Forward acceleration (m/s^2).
            yaw_rate_cmd (float): Yaw rate (rad/s).

        Returns:
            accel_world (np.ndarray): Translational acceleration, gravity excluded.
            gyro_world (np.ndarray): Angular velocity, only z is non-zero.
        """
        heading = np.array([np.cos(self.yaw), np.sin(self.yaw), 0.0])
        lateral = np.array([-np.sin(self.yaw), np.cos(self.yaw), 0.0])
        accel_world = acc_cmd * heading + self.v * yaw_rate_cmd * lateral
        gyro_world = np.array([0.0, 0.0, yaw_rate_cmd])
        return accel_world, gyro_world

    def update(self, acc_cmd: float, yaw_rate_cmd: float, dt: float) -> Tuple[np.ndarray, np.ndarray]:
        """
        Advance the vehicle by dt using commanded acceleration and yaw rate.

        Speed is clamped to be non-negative. Position uses trapezoidal
        integration of the velocity.

        Returns:
            Kinematics at the new time (see kinematics()).
        """
        vel_old = self.velocity
        self.v = max(self.v + acc_cmd * dt, 0.0)
        self.yaw += yaw_rate_cmd * dt
        vel_new = self.velocity
        self.x += 0.5 * (vel_old[0] + vel_new[0]) * dt
        self.y += 0.5 * (vel_old[1] + vel_new[1]) * dt
        self.t += dt
        return self.kinematics(acc_cmd, yaw_rate_cmd)


@dataclass
class SensorSimulator:
    """Simulate IMU samples and lidar poses from ground truth motion.

    Parameters:
        accel_bias (np.ndarray): Initial accelerometer bias in body coordinates (3,).
        gyro_bias (np.ndarray): Initial gyroscope bias in body coordinates (3,).
        accel_noise_std (float): Accelerometer white noise standard deviation (m/s^2).
        gyro_noise_std (float): Gyroscope white noise standard deviation (rad/s).
        accel_bias_rw (float): Accelerometer bias random walk (m/s^2/sqrt(s)).
        gyro_bias_rw (float): Gyroscope bias random walk (rad/s/sqrt(s)).
        lidar_pos_noise_std (float): Lidar position noise per axis (m).
        lidar_ori_noise_std (float): Lidar orientation noise per axis (rad).
        lidar_rate (float): Lidar pose rate in Hz; zero disables lidar poses.
        gravity_magnitude (float): Gravity along navigation z (m/s^2).
        with_orientation (bool): Attach the true orientation to each IMU sample.
        random_state (Optional[np.random.Generator]): Random number generator for
            reproducibility. If None, a new default generator is created.
    """
    accel_bias: np.ndarray = field(default_factory=lambda: np.zeros(3))
    gyro_bias: np.ndarray = field(default_factory=lambda: np.zeros(3))
    accel_noise_std: float = 0.0
    gyro_noise_std: float = 0.0
    accel_bias_rw: float = 0.0
    gyro_bias_rw: float = 0.0
    lidar_pos_noise_std: float = 0.0
    lidar_ori_noise_std: float = 0.0
    lidar_rate: float = 10.0
    gravity_magnitude: float = GRAVITY_MS2
    with_orientation: bool = True
    random_state: Optional[np.random.Generator] = field(default=None)

    def __post_init__(self):
        self.accel_bias = np.asarray(self.accel_bias, dtype=float).copy()
        self.gyro_bias = np.asarray(self.gyro_bias, dtype=float).copy()
        if self.random_state is None:
            self.rng = np.random.default_rng()
        else:
            self.rng = self.random_state
        self.lidar_interval: float = 1.0 / self.lidar_rate if self.lidar_rate > 0 else float('inf')
        self._lidar_timer: float = 0.0

    def _update_biases(self, dt: float) -> None:
        """Evolve sensor biases using a random walk over time dt."""
        self.accel_bias += self.rng.normal(scale=self.accel_bias_rw * np.sqrt(dt), size=3)
        self.gyro_bias += self.rng.normal(scale=self.gyro_bias_rw * np.sqrt(dt), size=3)

    def measure_imu(self, truth: GroundTruth, acc_world: np.ndarray, gyro_world: np.ndarray,
                    dt: float = 0.0) -> InertialSample:
        """
        Generate a synthetic IMU sample at the ground truth time.

        Args:
            truth (GroundTruth): Ground truth at the sample time.
            acc_world (np.ndarray): Translational acceleration in world frame (3,).
            gyro_world (np.ndarray): Angular velocity in world frame (3,).
            dt (float): Time since the previous sample, drives the bias random walk.

        Returns:
            InertialSample with specific force and angular rate in body frame.
        """
        if dt > 0:
            self._update_biases(dt)
        q = truth.orientation
        q_conj = np.array([q[0], -q[1], -q[2], -q[3]])

        # accelerometer senses specific force: acceleration plus gravity reaction
        specific_force_world = np.asarray(acc_world, dtype=float) + np.array([0.0, 0.0, self.gravity_magnitude])
        specific_force_body = quat_rotate(q_conj, specific_force_world)
        accel_meas = (specific_force_body + self.accel_bias +
                      self.rng.normal(scale=self.accel_noise_std, size=3))

        gyro_body = quat_rotate(q_conj, gyro_world)
        gyro_meas = (gyro_body + self.gyro_bias +
                     self.rng.normal(scale=self.gyro_noise_std, size=3))

        return InertialSample(
            timestamp=truth.t,
            angular_velocity=gyro_meas,
            linear_acceleration=accel_meas,
            orientation=q if self.with_orientation else None
        )

    def measure_lidar(self, truth: GroundTruth, dt: float) -> Optional[np.ndarray]:
        """
        Generate a lidar pose if a lidar period has elapsed.

        Args:
            truth (GroundTruth): Ground truth at the current time.
            dt (float): Time since the previous call in seconds.

        Returns:
            Noisy 4x4 pose in navigation frame, or None if no scan is due.
        """
        self._lidar_timer += dt
        if self._lidar_timer + 1e-9 < self.lidar_interval:
            return None
        self._lidar_timer -= self.lidar_interval

        dq = quat_from_rotvec(self.rng.normal(scale=self.lidar_ori_noise_std, size=3))
        q = quat_mult(dq, truth.orientation)
        p = truth.position + self.rng.normal(scale=self.lidar_pos_noise_std, size=3)
        return make_transform(quat_to_rotmat(q), p)
