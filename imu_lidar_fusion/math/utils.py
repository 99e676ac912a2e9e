"""
Mathematical utility functions for rotations and rigid transforms.

Quaternions are numpy arrays in [w, x, y, z] order and represent the
rotation from body to navigation frame.
"""

import numpy as np

from .constants import SMALL_ANGLE_RAD


def hat(v):
    """
    Map a 3-vector to its skew-symmetric matrix.

    Args:
        v: 3D vector

    Returns:
        np.ndarray: 3x3 matrix such that hat(v) @ u == cross(v, u)
    """
    x, y, z = np.asarray(v, dtype=np.float64).reshape(3)
    return np.array([
        [0.0, -z, y],
        [z, 0.0, -x],
        [-y, x, 0.0]
    ])


def vee(M):
    """
    Inverse of hat: read the vector from a (nearly) skew-symmetric matrix.

    Args:
        M: 3x3 matrix

    Returns:
        np.ndarray: [M[2, 1], M[0, 2], M[1, 0]]
    """
    M = np.asarray(M, dtype=np.float64)
    return np.array([M[2, 1], M[0, 2], M[1, 0]])


def quat_from_rotvec(rv):
    """Convert a rotation vector (axis * angle) to a quaternion.

    Args:
        rv: 3D rotation vector in radians. Its norm is the rotation angle.

    Returns:
        np.ndarray: Quaternion [w, x, y, z]. Near zero angle the
        first-order approximation is returned, which is not exactly unit.
    """
    rv = np.asarray(rv, dtype=np.float64)
    angle = np.linalg.norm(rv)
    if angle < SMALL_ANGLE_RAD:
        return np.array([1.0, 0.5*rv[0], 0.5*rv[1], 0.5*rv[2]])
    axis = rv / angle
    half_angle = 0.5 * angle
    s = np.sin(half_angle)
    return np.array([np.cos(half_angle), axis[0]*s, axis[1]*s, axis[2]*s])


def quat_mult(q, r):
    """Hamilton product q * r of two quaternions."""
    w1, x1, y1, z1 = q
    w2, x2, y2, z2 = r
    return np.array([
        w1*w2 - x1*x2 - y1*y2 - z1*z2,
        w1*x2 + x1*w2 + y1*z2 - z1*y2,
        w1*y2 - x1*z2 + y1*w2 + z1*x2,
        w1*z2 + x1*y2 - y1*x2 + z1*w2
    ])


def quat_normalize(q):
    """Scale a quaternion to unit norm."""
    q = np.asarray(q, dtype=np.float64)
    norm = np.linalg.norm(q)
    if norm == 0.0:
        raise ValueError("Cannot normalize a zero quaternion")
    return q / norm


def quat_to_rotmat(q):
    """
    Convert a quaternion to a rotation matrix.

    Args:
        q: Quaternion [w, x, y, z], normalized internally

    Returns:
        np.ndarray: 3x3 rotation matrix
    """
    w, x, y, z = quat_normalize(q)
    return np.array([
        [1 - 2*(y**2 + z**2), 2*(x*y - z*w), 2*(x*z + y*w)],
        [2*(x*y + z*w), 1 - 2*(x**2 + z**2), 2*(y*z - x*w)],
        [2*(x*z - y*w), 2*(y*z + x*w), 1 - 2*(x**2 + y**2)]
    ])


def rotmat_to_quat(R):
    """
    Convert a rotation matrix to a unit quaternion with w >= 0.

    Uses Shepperd's method: the largest of the four diagonal combinations
    is used as pivot to keep the division well conditioned.
    """
    R = np.asarray(R, dtype=np.float64)
    trace = np.trace(R)
    candidates = [trace, R[0, 0], R[1, 1], R[2, 2]]
    pivot = int(np.argmax(candidates))

    if pivot == 0:
        s = 2.0 * np.sqrt(1.0 + trace)
        q = np.array([
            0.25 * s,
            (R[2, 1] - R[1, 2]) / s,
            (R[0, 2] - R[2, 0]) / s,
            (R[1, 0] - R[0, 1]) / s
        ])
    elif pivot == 1:
        s = 2.0 * np.sqrt(1.0 + R[0, 0] - R[1, 1] - R[2, 2])
        q = np.array([
            (R[2, 1] - R[1, 2]) / s,
            0.25 * s,
            (R[0, 1] + R[1, 0]) / s,
            (R[0, 2] + R[2, 0]) / s
        ])
    elif pivot == 2:
        s = 2.0 * np.sqrt(1.0 + R[1, 1] - R[0, 0] - R[2, 2])
        q = np.array([
            (R[0, 2] - R[2, 0]) / s,
            (R[0, 1] + R[1, 0]) / s,
            0.25 * s,
            (R[1, 2] + R[2, 1]) / s
        ])
    else:
        s = 2.0 * np.sqrt(1.0 + R[2, 2] - R[0, 0] - R[1, 1])
        q = np.array([
            (R[1, 0] - R[0, 1]) / s,
            (R[0, 2] + R[2, 0]) / s,
            (R[1, 2] + R[2, 1]) / s,
            0.25 * s
        ])

    if q[0] < 0:
        q = -q
    return quat_normalize(q)


def quat_rotate(q, v):
    """Rotate a body-frame vector into the navigation frame: q * [0, v] * conj(q)."""
    q = np.asarray(q, dtype=np.float64)
    v = np.asarray(v, dtype=np.float64)
    v_q = np.array([0.0, v[0], v[1], v[2]])
    q_conj = np.array([q[0], -q[1], -q[2], -q[3]])
    return quat_mult(quat_mult(q, v_q), q_conj)[1:]


def orthonormalize(R):
    """
    Project a 3x3 matrix onto the nearest rotation matrix.

    Args:
        R: Approximately orthonormal 3x3 matrix

    Returns:
        np.ndarray: Rotation matrix with R.T @ R == I and det(R) == +1
    """
    U, _, Vt = np.linalg.svd(np.asarray(R, dtype=np.float64))
    D = np.eye(3)
    D[2, 2] = np.sign(np.linalg.det(U @ Vt))
    return U @ D @ Vt


def is_rotation(R, atol=1e-9):
    """Check that R is orthonormal with determinant +1."""
    R = np.asarray(R, dtype=np.float64)
    if R.shape != (3, 3):
        return False
    return (np.allclose(R.T @ R, np.eye(3), atol=atol)
            and abs(np.linalg.det(R) - 1.0) < atol * 10)


def make_transform(R, t):
    """
    Build a 4x4 homogeneous transform.

    Args:
        R: 3x3 rotation matrix
        t: 3D translation

    Returns:
        np.ndarray: 4x4 transform [[R, t], [0, 1]]
    """
    T = np.eye(4)
    T[:3, :3] = np.asarray(R, dtype=np.float64)
    T[:3, 3] = np.asarray(t, dtype=np.float64).reshape(3)
    return T


def split_transform(T):
    """Return (rotation, translation) copies from a 4x4 transform."""
    T = as_transform(T)
    return T[:3, :3].copy(), T[:3, 3].copy()


def as_transform(T):
    """Validate and convert a 4x4 homogeneous transform to float64."""
    T = np.asarray(T, dtype=np.float64)
    if T.shape != (4, 4):
        raise ValueError(f"Transform must be 4x4, got shape {T.shape}")
    return T


def as_vector3(v, name="vector"):
    """Validate and convert a 3-vector to a flat float64 array."""
    v = np.asarray(v, dtype=np.float64).reshape(-1)
    if v.shape != (3,):
        raise ValueError(f"{name} must have 3 elements, got {v.size}")
    return v
