"""
Process and measurement models for the error-state Kalman filter.
"""

import numpy as np
from typing import Tuple

from ..math.constants import ERROR_STATE_DIM, MEASUREMENT_DIM, NOISE_DIM
from ..math.utils import hat, vee, split_transform
from .state import ErrorState, ErrorStateIndex, POS, VEL, ORI, GYRO, ACCEL

NOISE_GYRO = ErrorStateIndex.block(ErrorStateIndex.NOISE_GYRO)
NOISE_ACCEL = ErrorStateIndex.block(ErrorStateIndex.NOISE_ACCEL)
MEAS_POS = ErrorStateIndex.block(ErrorStateIndex.MEAS_POS)
MEAS_ORI = ErrorStateIndex.block(ErrorStateIndex.MEAS_ORI)


class ProcessModel:
    """
    Linearized continuous-time error dynamics: dX/dt = F X + B w.

    Error state: [dp, dv, dtheta, gyro bias, accel bias]
    Process noise w: [gyro noise, accel noise]
    """

    def __init__(self, earth_rotation: np.ndarray):
        """
        Initialize the constant blocks of F.

        Args:
            earth_rotation: Earth rotation vector in navigation frame (rad/s)
        """
        self.F = np.zeros((ERROR_STATE_DIM, ERROR_STATE_DIM))
        self.B = np.zeros((ERROR_STATE_DIM, NOISE_DIM))

        # d(dp)/dt = dv
        self.F[POS, VEL] = np.eye(3)
        # Earth-rate coupling is set once and not re-linearized around the
        # current attitude.
        self.F[ORI, ORI] = hat(-np.asarray(earth_rotation, dtype=np.float64))

    def set_process_equation(self, C_nb: np.ndarray, f_n: np.ndarray):
        """
        Refresh the sample-dependent blocks of F and B.

        Args:
            C_nb: Rotation matrix, body frame -> navigation frame
            f_n: Specific force in navigation frame (m/s²)
        """
        # velocity error
        self.F[VEL, ORI] = hat(f_n)
        self.F[VEL, ACCEL] = C_nb
        self.B[VEL, NOISE_ACCEL] = C_nb
        # orientation error
        self.F[ORI, GYRO] = -C_nb
        self.B[ORI, NOISE_GYRO] = -C_nb

    def discretize(self, T: float) -> Tuple[np.ndarray, np.ndarray]:
        """First-order Euler discretization over T seconds: (I + T F, T B)."""
        F_d = np.eye(ERROR_STATE_DIM) + T * self.F
        B_d = T * self.B
        return F_d, B_d

    def propagate(self, error_state: ErrorState, Q: np.ndarray, T: float):
        """
        Propagate error mean and covariance in place.

        Args:
            error_state: Error state to update
            Q: 6x6 process noise covariance
            T: Elapsed time in seconds
        """
        F_d, B_d = self.discretize(T)
        error_state.X = F_d @ error_state.X
        error_state.P = F_d @ error_state.P @ F_d.T + B_d @ Q @ B_d.T
        error_state.symmetrize()


class MeasurementModel:
    """
    Relative pose observation of the position and orientation errors.

    Y = G X + C v, with v the [position, orientation] measurement noise.
    """

    def __init__(self):
        self.G = np.zeros((MEASUREMENT_DIM, ERROR_STATE_DIM))
        self.G[MEAS_POS, POS] = np.eye(3)
        self.G[MEAS_ORI, ORI] = np.eye(3)

        self.C = np.zeros((MEASUREMENT_DIM, MEASUREMENT_DIM))
        self.C[MEAS_POS, MEAS_POS] = np.eye(3)
        self.C[MEAS_ORI, MEAS_ORI] = np.eye(3)

    @staticmethod
    def innovation(pose: np.ndarray, observed_pose: np.ndarray) -> np.ndarray:
        """
        Residual between the filter pose and an observed pose.

        The orientation residual vee(I - R R_obs^T) is a first-order
        approximation, valid for small misalignment.

        Args:
            pose: Filter nominal pose (4x4)
            observed_pose: Observed pose in navigation frame (4x4)

        Returns:
            6D innovation [position residual, orientation residual]
        """
        R, t = split_transform(pose)
        R_obs, t_obs = split_transform(observed_pose)

        Y = np.zeros(MEASUREMENT_DIM)
        Y[MEAS_POS] = t - t_obs
        C_nn_obs = R @ R_obs.T
        Y[MEAS_ORI] = vee(np.eye(3) - C_nn_obs)
        return Y

    def innovation_covariance(self, P: np.ndarray, R: np.ndarray) -> np.ndarray:
        """S = G P G^T + C R C^T"""
        return self.G @ P @ self.G.T + self.C @ R @ self.C.T
