"""
Error-state Kalman filter fusing IMU samples with lidar relative poses.
"""

import logging
import numpy as np
from typing import Optional, Dict, Any, Tuple

from ..config import ESKFConfig
from ..math.constants import ERROR_STATE_DIM, NOISE_DIM, MEASUREMENT_DIM
from ..math.utils import (
    as_transform, as_vector3, hat, orthonormalize,
    quat_from_rotvec, quat_mult, quat_normalize, quat_to_rotmat, rotmat_to_quat,
)
from ..sensors.imu import InertialSample, InertialBuffer
from .models import ProcessModel, MeasurementModel, NOISE_GYRO, NOISE_ACCEL, MEAS_POS, MEAS_ORI
from .state import NominalState, ErrorState, POS, VEL, ORI, GYRO, ACCEL

logger = logging.getLogger(__name__)


class FilterNotInitializedError(RuntimeError):
    """Raised when the filter is used before init()."""


class ErrorStateKalmanFilter:
    """
    Error-state Kalman filter for IMU/lidar odometry.

    The nominal pose and velocity are propagated by strapdown integration
    of every IMU sample. A 15-dimensional error state
    [dp, dv, dtheta, gyro bias, accel bias] and its covariance are
    propagated alongside and corrected by relative poses from the lidar
    front end. After each correction the position, velocity and
    orientation errors are folded into the nominal state and reset; the
    bias blocks keep the running sensor bias estimate.

    All calls must come from one timeline in time order. Samples or
    observations not newer than the filter clock are rejected.
    """

    def __init__(self, config: Optional[ESKFConfig] = None):
        """
        Initialize the filter constants from configuration.

        Args:
            config: Filter parameters (defaults if None)
        """
        self.config = config or ESKFConfig()
        cfg = self.config

        # Earth constants
        self.g = np.array([0.0, 0.0, cfg.gravity_magnitude])
        latitude = cfg.latitude_rad
        self.w = np.array([
            0.0,
            cfg.rotation_speed * np.cos(latitude),
            cfg.rotation_speed * np.sin(latitude)
        ])

        # Noise
        self.P0 = self._initialize_covariance()
        self.Q = np.zeros((NOISE_DIM, NOISE_DIM))
        self.Q[NOISE_GYRO, NOISE_GYRO] = cfg.process_gyro * np.eye(3)
        self.Q[NOISE_ACCEL, NOISE_ACCEL] = cfg.process_accel * np.eye(3)
        self.R = np.zeros((MEASUREMENT_DIM, MEASUREMENT_DIM))
        self.R[MEAS_POS, MEAS_POS] = cfg.measurement_pos * np.eye(3)
        self.R[MEAS_ORI, MEAS_ORI] = cfg.measurement_orientation * np.eye(3)

        # Models
        self.process_model = ProcessModel(self.w)
        self.measurement_model = MeasurementModel()

        # State
        self.nominal = NominalState()
        self.error = ErrorState(P=self.P0.copy())
        self.imu_buffer = InertialBuffer()
        self._time: Optional[float] = None

        # Statistics
        self.update_count = 0
        self.correction_count = 0
        self.rejected_update_count = 0
        self.rejected_correction_count = 0
        self.ill_conditioned_count = 0

        logger.info(
            "IMU-lidar Kalman filter params: gravity magnitude %.5f, earth rotation speed %.6e, "
            "latitude %.6f rad; prior cov pos %.3e vel %.3e ori %.3e epsilon %.3e delta %.3e; "
            "process noise gyro %.3e accel %.3e; measurement noise pos %.3e orientation %.3e",
            cfg.gravity_magnitude, cfg.rotation_speed, latitude,
            cfg.prior_pos, cfg.prior_vel, cfg.prior_orientation, cfg.prior_epsilon, cfg.prior_delta,
            cfg.process_gyro, cfg.process_accel,
            cfg.measurement_pos, cfg.measurement_orientation
        )

    def _initialize_covariance(self) -> np.ndarray:
        """Block-diagonal prior error covariance."""
        cfg = self.config
        P = np.zeros((ERROR_STATE_DIM, ERROR_STATE_DIM))
        P[POS, POS] = cfg.prior_pos * np.eye(3)
        P[VEL, VEL] = cfg.prior_vel * np.eye(3)
        P[ORI, ORI] = cfg.prior_orientation * np.eye(3)
        P[GYRO, GYRO] = cfg.prior_epsilon * np.eye(3)
        P[ACCEL, ACCEL] = cfg.prior_delta * np.eye(3)
        return P

    def init(self, pose: np.ndarray, velocity: np.ndarray, sample: InertialSample):
        """
        Initialize the filter.

        Args:
            pose: Initial pose, 4x4 transform body->navigation
            velocity: Initial velocity in navigation frame (m/s)
            sample: First IMU sample, sets the filter clock
        """
        self.nominal = NominalState(pose=as_transform(pose), velocity=as_vector3(velocity, "velocity"))

        self.imu_buffer.reset(sample)
        self._time = sample.timestamp

        # process equation in case a correction comes before the first update
        self._update_process_equation(sample)

        p = self.nominal.position
        v = self.nominal.velocity
        logger.info(
            "Kalman filter initialized at %.3f, position [%.3f, %.3f, %.3f], velocity [%.3f, %.3f, %.3f]",
            self._time, p[0], p[1], p[2], v[0], v[1], v[2]
        )

    def update(self, sample: InertialSample) -> bool:
        """
        Propagate the filter with a new IMU sample.

        Args:
            sample: IMU sample

        Returns:
            True if absorbed, False if the sample is not newer than the filter clock
        """
        self._check_initialized()

        if not self._time < sample.timestamp:
            self.rejected_update_count += 1
            logger.debug("Rejected IMU sample at %.6f, filter time %.6f", sample.timestamp, self._time)
            return False

        # nominal state
        self.imu_buffer.push(sample)
        self._update_odom_estimation()
        self.imu_buffer.pop_oldest()

        # error state
        self._update_error_estimation(sample)

        self._time = sample.timestamp
        self.update_count += 1

        p = self.nominal.position
        logger.debug("Kalman filter updated at %.6f, position [%.3f, %.3f, %.3f]",
                     self._time, p[0], p[1], p[2])
        return True

    def correct(self, sample: InertialSample, observation_time: float,
                relative_pose: np.ndarray) -> bool:
        """
        Correct the filter with a lidar pose observation.

        Args:
            sample: Latest IMU sample, used for the process equation
            observation_time: Observation timestamp (s)
            relative_pose: Observed pose in navigation frame, 4x4 transform

        Returns:
            True if applied. False if the observation is not newer than the
            filter clock (no state change) or the innovation covariance is
            ill-conditioned (prediction kept, correction dropped).
        """
        self._check_initialized()
        relative_pose = as_transform(relative_pose)

        if not self._time < observation_time:
            self.rejected_correction_count += 1
            logger.debug("Rejected observation at %.6f, filter time %.6f", observation_time, self._time)
            return False

        # predict
        T = observation_time - self._time
        self._update_process_equation(sample)
        self.process_model.propagate(self.error, self.Q, T)

        # observe
        Y = self.measurement_model.innovation(self.nominal.pose, relative_pose)
        G = self.measurement_model.G
        K = self._kalman_gain()
        if K is None:
            return self._reject_ill_conditioned(observation_time)

        # correct
        X = self.error.X + K @ (Y - G @ self.error.X)
        P = (np.eye(ERROR_STATE_DIM) - K @ G) @ self.error.P
        if not (np.all(np.isfinite(X)) and np.all(np.isfinite(P))):
            return self._reject_ill_conditioned(observation_time)

        self.error.X = X
        self.error.P = P
        self.error.symmetrize()

        self._eliminate_error()
        self.error.reset_transient()

        self.correction_count += 1
        logger.debug("Kalman filter corrected at %.6f, innovation norm %.3e",
                     observation_time, np.linalg.norm(Y))
        return True

    def get_odometry(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Get the error-corrected pose and velocity.

        Returns:
            (pose, velocity): 4x4 transform and navigation-frame velocity,
            both new arrays
        """
        self._check_initialized()

        pose = self.nominal.pose.copy()
        pose[:3, 3] -= self.error.position
        velocity = self.nominal.velocity - self.error.velocity
        C_nn = np.eye(3) - hat(self.error.orientation)
        pose[:3, :3] = orthonormalize(C_nn.T @ pose[:3, :3])

        return pose, velocity

    def get_unbiased_angular_vel(self, angular_vel: np.ndarray) -> np.ndarray:
        """Angular velocity in body frame with the gyro bias estimate removed."""
        return as_vector3(angular_vel, "angular_vel") - self.error.gyro_bias

    def get_unbiased_linear_acc(self, linear_acc: np.ndarray, R: np.ndarray) -> np.ndarray:
        """
        Linear acceleration in navigation frame.

        Args:
            linear_acc: Accelerometer measurement in body frame
            R: Orientation body->navigation at the measurement

        Returns:
            R (linear_acc - accel bias) - g
        """
        return np.asarray(R) @ (as_vector3(linear_acc, "linear_acc") - self.error.accel_bias) - self.g

    def _check_initialized(self):
        if self._time is None:
            raise FilterNotInitializedError("Kalman filter used before init()")

    def _get_angular_delta(self) -> np.ndarray:
        """Midpoint rotation increment between the buffered samples."""
        curr = self.imu_buffer.current
        prev = self.imu_buffer.previous
        delta_t = curr.timestamp - prev.timestamp

        angular_vel_curr = self.get_unbiased_angular_vel(curr.angular_velocity)
        angular_vel_prev = self.get_unbiased_angular_vel(prev.angular_velocity)

        return 0.5 * delta_t * (angular_vel_curr + angular_vel_prev)

    def _get_velocity_delta(self, R_curr: np.ndarray, R_prev: np.ndarray) -> Tuple[float, np.ndarray]:
        """Midpoint velocity increment between the buffered samples."""
        curr = self.imu_buffer.current
        prev = self.imu_buffer.previous
        T = curr.timestamp - prev.timestamp

        linear_acc_curr = self.get_unbiased_linear_acc(curr.linear_acceleration, R_curr)
        linear_acc_prev = self.get_unbiased_linear_acc(prev.linear_acceleration, R_prev)

        return T, 0.5 * T * (linear_acc_curr + linear_acc_prev)

    def _update_orientation(self, angular_delta: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Rotate the nominal orientation by angular_delta.

        Returns:
            (R_curr, R_prev): orientation after and before the update
        """
        dq = quat_from_rotvec(angular_delta)
        q = rotmat_to_quat(self.nominal.rotation)
        q = quat_normalize(quat_mult(q, dq))

        R_prev = self.nominal.rotation.copy()
        self.nominal.rotation = quat_to_rotmat(q)
        R_curr = self.nominal.rotation.copy()
        return R_curr, R_prev

    def _update_position(self, T: float, velocity_delta: np.ndarray):
        self.nominal.position = self.nominal.position + T * self.nominal.velocity + 0.5 * T * velocity_delta
        self.nominal.velocity = self.nominal.velocity + velocity_delta

    def _update_odom_estimation(self):
        """Strapdown integration over the buffered interval."""
        angular_delta = self._get_angular_delta()
        R_curr, R_prev = self._update_orientation(angular_delta)
        T, velocity_delta = self._get_velocity_delta(R_curr, R_prev)
        self._update_position(T, velocity_delta)

    def _get_process_input(self, sample: InertialSample) -> Tuple[np.ndarray, np.ndarray]:
        """
        Rotation body->navigation and specific force in navigation frame.

        The sample's own orientation is used when present, otherwise the
        nominal orientation.
        """
        C_nb = sample.rotation
        if C_nb is None:
            C_nb = self.nominal.rotation.copy()
        f_n = C_nb @ sample.linear_acceleration
        return C_nb, f_n

    def _update_process_equation(self, sample: InertialSample):
        C_nb, f_n = self._get_process_input(sample)
        self.process_model.set_process_equation(C_nb, f_n)

    def _update_error_estimation(self, sample: InertialSample):
        T = sample.timestamp - self._time
        self._update_process_equation(sample)
        self.process_model.propagate(self.error, self.Q, T)

    def _kalman_gain(self) -> Optional[np.ndarray]:
        """
        K = P G^T S^-1 via a linear solve.

        Returns:
            Gain matrix, or None if S is not finite or too poorly conditioned
        """
        P = self.error.P
        G = self.measurement_model.G
        S = self.measurement_model.innovation_covariance(P, self.R)

        if not np.all(np.isfinite(S)):
            return None
        condition = np.linalg.cond(S)
        if not np.isfinite(condition) or condition > self.config.max_innovation_condition:
            logger.debug("Innovation covariance condition number %.3e", condition)
            return None

        try:
            # S and P are symmetric: K^T = S^-1 G P
            K = np.linalg.solve(S, G @ P).T
        except np.linalg.LinAlgError:
            return None

        if not np.all(np.isfinite(K)):
            return None
        return K

    def _reject_ill_conditioned(self, observation_time: float) -> bool:
        self.ill_conditioned_count += 1
        logger.warning(
            "Ill-conditioned innovation covariance at %.6f, correction dropped", observation_time
        )
        return False

    def _eliminate_error(self):
        """Fold position, velocity and orientation errors into the nominal state."""
        self.nominal.position = self.nominal.position - self.error.position
        self.nominal.velocity = self.nominal.velocity - self.error.velocity
        C_nn = np.eye(3) - hat(self.error.orientation)
        self.nominal.rotation = orthonormalize(C_nn.T @ self.nominal.rotation)

    @property
    def is_initialized(self) -> bool:
        return self._time is not None

    @property
    def time(self) -> Optional[float]:
        """Timestamp of the last absorbed IMU sample."""
        return self._time

    @property
    def pose(self) -> np.ndarray:
        """Nominal pose (copy), without error correction."""
        return self.nominal.pose.copy()

    @property
    def velocity(self) -> np.ndarray:
        """Nominal velocity (copy), without error correction."""
        return self.nominal.velocity.copy()

    @property
    def error_state(self) -> np.ndarray:
        return self.error.X.copy()

    @property
    def covariance(self) -> np.ndarray:
        return self.error.P.copy()

    @property
    def gravity(self) -> np.ndarray:
        return self.g.copy()

    @property
    def earth_rotation(self) -> np.ndarray:
        return self.w.copy()

    def get_uncertainty(self) -> np.ndarray:
        """Standard deviation of every error state component."""
        return np.sqrt(np.clip(np.diag(self.error.P), 0.0, None))

    def get_position_uncertainty(self) -> float:
        """Position uncertainty (3D RMS error)."""
        return float(np.sqrt(max(np.trace(self.error.P[POS, POS]), 0.0)))

    def reset(self, pose: np.ndarray, velocity: np.ndarray, sample: InertialSample):
        """Reset filter to the prior and re-initialize it."""
        self.error = ErrorState(P=self.P0.copy())

        self.update_count = 0
        self.correction_count = 0
        self.rejected_update_count = 0
        self.rejected_correction_count = 0
        self.ill_conditioned_count = 0

        self.init(pose, velocity, sample)

    def get_statistics(self) -> Dict[str, Any]:
        """Get filter statistics."""
        return {
            'updates': self.update_count,
            'corrections': self.correction_count,
            'rejected_updates': self.rejected_update_count,
            'rejected_corrections': self.rejected_correction_count,
            'ill_conditioned_corrections': self.ill_conditioned_count,
            'position_uncertainty': self.get_position_uncertainty(),
            'state_uncertainty': self.get_uncertainty().tolist(),
            'time': self._time
        }
