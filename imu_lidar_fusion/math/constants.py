"""
Mathematical and physical constants for inertial navigation.
"""

import math

# Mathematical constants
PI = math.pi
TWO_PI = 2 * math.pi

# Earth parameters
GRAVITY_MS2 = 9.80665             # Standard gravity in m/s²
EARTH_ROTATION_RAD_S = 7.292115e-5  # Earth rotation rate in rad/s

# Conversion factors
DEG_TO_RAD = math.pi / 180.0
RAD_TO_DEG = 180.0 / math.pi

# Error state layout: five contiguous 3-blocks
ERROR_STATE_DIM = 15
BLOCK_SIZE = 3
NOISE_DIM = 6        # gyro noise, accel noise
MEASUREMENT_DIM = 6  # position, orientation

# Below this angle (rad) rotation vectors use the first-order quaternion
SMALL_ANGLE_RAD = 1e-8

# Innovation covariances worse conditioned than this are rejected
MAX_INNOVATION_CONDITION = 1e12

# Default filter parameters (variances)
PRIOR_POS = 1.0e-6
PRIOR_VEL = 1.0e-6
PRIOR_ORIENTATION = 1.0e-6
PRIOR_EPSILON = 1.0e-6   # gyro bias
PRIOR_DELTA = 1.0e-6     # accel bias

PROCESS_GYRO = 1.0e-4
PROCESS_ACCEL = 2.5e-3

MEASUREMENT_POS = 1.0e-4
MEASUREMENT_ORIENTATION = 1.0e-4

# Default site latitude (degrees)
DEFAULT_LATITUDE_DEG = 48.9827703173
