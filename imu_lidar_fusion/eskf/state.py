"""
Nominal and error state representation for the ESKF.
"""

import numpy as np
from dataclasses import dataclass, field

from ..math.constants import BLOCK_SIZE, ERROR_STATE_DIM
from ..math.utils import as_transform, as_vector3


class ErrorStateIndex:
    """
    Offsets of the five 3-blocks in the 15-dimensional error state.

    Layout: [position, velocity, orientation, gyro bias, accel bias]
    """

    POS = 0
    VEL = 3
    ORI = 6
    GYRO = 9
    ACCEL = 12
    DIM = ERROR_STATE_DIM

    # Columns of the 6-dimensional process noise
    NOISE_GYRO = 0
    NOISE_ACCEL = 3

    # Rows of the 6-dimensional measurement
    MEAS_POS = 0
    MEAS_ORI = 3

    @staticmethod
    def block(offset: int) -> slice:
        """Slice covering the 3-block starting at offset."""
        return slice(offset, offset + BLOCK_SIZE)


POS = ErrorStateIndex.block(ErrorStateIndex.POS)
VEL = ErrorStateIndex.block(ErrorStateIndex.VEL)
ORI = ErrorStateIndex.block(ErrorStateIndex.ORI)
GYRO = ErrorStateIndex.block(ErrorStateIndex.GYRO)
ACCEL = ErrorStateIndex.block(ErrorStateIndex.ACCEL)


@dataclass
class NominalState:
    """
    Best-estimate vehicle state.

    - pose: 4x4 transform, rotation body->navigation, translation in navigation frame (m)
    - velocity: navigation frame velocity (m/s)
    """

    pose: np.ndarray = field(default_factory=lambda: np.eye(4))
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        self.pose = as_transform(self.pose).copy()
        self.velocity = as_vector3(self.velocity, "velocity").copy()

    @property
    def rotation(self) -> np.ndarray:
        """Rotation block (view into pose)."""
        return self.pose[:3, :3]

    @rotation.setter
    def rotation(self, R: np.ndarray):
        self.pose[:3, :3] = R

    @property
    def position(self) -> np.ndarray:
        """Translation block (view into pose)."""
        return self.pose[:3, 3]

    @position.setter
    def position(self, p: np.ndarray):
        self.pose[:3, 3] = p

    def copy(self) -> 'NominalState':
        return NominalState(pose=self.pose.copy(), velocity=self.velocity.copy())

    def __str__(self) -> str:
        p = self.position
        v = self.velocity
        return (
            f"NominalState(pos=[{p[0]:.3f}, {p[1]:.3f}, {p[2]:.3f}], "
            f"vel=[{v[0]:.3f}, {v[1]:.3f}, {v[2]:.3f}])"
        )


@dataclass
class ErrorState:
    """
    Error state mean X (15,) and covariance P (15, 15).

    The position, velocity and orientation blocks are folded into the
    nominal state and zeroed after every correction. The bias blocks are
    the running sensor bias estimate and are never reset.
    """

    X: np.ndarray = field(default_factory=lambda: np.zeros(ERROR_STATE_DIM))
    P: np.ndarray = field(default_factory=lambda: np.zeros((ERROR_STATE_DIM, ERROR_STATE_DIM)))

    @property
    def position(self) -> np.ndarray:
        return self.X[POS]

    @property
    def velocity(self) -> np.ndarray:
        return self.X[VEL]

    @property
    def orientation(self) -> np.ndarray:
        return self.X[ORI]

    @property
    def gyro_bias(self) -> np.ndarray:
        return self.X[GYRO]

    @property
    def accel_bias(self) -> np.ndarray:
        return self.X[ACCEL]

    def reset_transient(self):
        """Zero the position, velocity and orientation error blocks."""
        self.X[POS] = 0.0
        self.X[VEL] = 0.0
        self.X[ORI] = 0.0

    def symmetrize(self):
        self.P = 0.5 * (self.P + self.P.T)

    def copy(self) -> 'ErrorState':
        return ErrorState(X=self.X.copy(), P=self.P.copy())
