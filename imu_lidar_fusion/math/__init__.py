"""
Mathematical utilities for strapdown integration and error-state filtering.
"""

from .utils import (
    hat, vee,
    quat_from_rotvec, quat_mult, quat_normalize, quat_rotate,
    quat_to_rotmat, rotmat_to_quat,
    orthonormalize, is_rotation,
    make_transform, split_transform,
)
from .constants import *

__all__ = [
    "hat", "vee",
    "quat_from_rotvec", "quat_mult", "quat_normalize", "quat_rotate",
    "quat_to_rotmat", "rotmat_to_quat",
    "orthonormalize", "is_rotation",
    "make_transform", "split_transform",
]
