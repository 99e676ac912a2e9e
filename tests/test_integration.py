#!/usr/bin/env python3
"""
Integration tests running the filter on simulated IMU and lidar data.
"""

import unittest
import numpy as np
import sys
import os

# Add package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from imu_lidar_fusion import ESKFConfig, ErrorStateKalmanFilter
from imu_lidar_fusion.math import is_rotation
from imu_lidar_fusion.sensors import GroundTruth, SensorSimulator

DT = 0.01


def rotation_error(R_est, R_true):
    cos_angle = (np.trace(R_true.T @ R_est) - 1.0) / 2.0
    return float(np.arccos(np.clip(cos_angle, -1.0, 1.0)))


class TestSimulatedDrive(unittest.TestCase):
    """Closed-loop runs on simulated sensors."""

    def run_drive(self, simulator, duration, use_lidar=True, yaw_rate=0.2, speed=3.0):
        truth = GroundTruth(v=speed)
        eskf = ErrorStateKalmanFilter(ESKFConfig())

        acc_world, gyro_world = truth.kinematics(0.0, yaw_rate)
        eskf.init(truth.pose, truth.velocity, simulator.measure_imu(truth, acc_world, gyro_world))

        max_position_error = 0.0
        max_correction_angle = 0.0
        while truth.t < duration - 1e-9:
            acc_world, gyro_world = truth.update(0.0, yaw_rate, DT)
            sample = simulator.measure_imu(truth, acc_world, gyro_world, DT)
            self.assertTrue(eskf.update(sample))

            lidar_pose = simulator.measure_lidar(truth, DT)
            if use_lidar and lidar_pose is not None:
                R_before = eskf.pose[:3, :3]
                self.assertTrue(eskf.correct(sample, sample.timestamp + 1e-3, lidar_pose))
                max_correction_angle = max(max_correction_angle,
                                           rotation_error(eskf.pose[:3, :3], R_before))
                self.assertTrue(is_rotation(eskf.pose[:3, :3], atol=1e-9))

            pose, _ = eskf.get_odometry()
            max_position_error = max(max_position_error,
                                     np.linalg.norm(pose[:3, 3] - truth.position))

        return eskf, truth, max_position_error, max_correction_angle

    def test_noise_free_dead_reckoning(self):
        simulator = SensorSimulator(lidar_rate=0.0, random_state=np.random.default_rng(1))
        eskf, truth, max_error, _ = self.run_drive(simulator, duration=5.0, use_lidar=False)

        pose, velocity = eskf.get_odometry()
        self.assertLess(max_error, 0.05)
        np.testing.assert_allclose(velocity, truth.velocity, atol=0.01)
        self.assertLess(rotation_error(pose[:3, :3], truth.pose[:3, :3]), 1e-6)
        self.assertEqual(eskf.get_statistics()['updates'], 500)

    def test_lidar_bounds_biased_drift(self):
        simulator = SensorSimulator(
            accel_bias=[0.02, -0.01, 0.01],
            gyro_bias=[0.0005, -0.0005, 0.001],
            accel_noise_std=0.02,
            gyro_noise_std=0.001,
            lidar_pos_noise_std=0.01,
            lidar_ori_noise_std=0.001,
            lidar_rate=10.0,
            random_state=np.random.default_rng(42)
        )
        eskf, truth, max_error, max_angle = self.run_drive(simulator, duration=20.0)

        stats = eskf.get_statistics()
        self.assertGreaterEqual(stats['corrections'], 195)
        self.assertEqual(stats['ill_conditioned_corrections'], 0)
        self.assertLess(max_error, 0.2)
        # injected orientation corrections stay in the small-angle regime
        self.assertLess(max_angle, 0.02)

        np.testing.assert_array_equal(eskf.error_state[:9], np.zeros(9))
        self.assertTrue(np.all(np.isfinite(eskf.covariance)))
        self.assertGreater(np.min(np.linalg.eigvalsh(eskf.covariance)), -1e-12)

    def test_unaided_drift_is_larger_than_aided(self):
        def simulator():
            return SensorSimulator(accel_bias=[0.1, 0.0, 0.0], lidar_rate=10.0,
                                   random_state=np.random.default_rng(3))

        _, _, aided_error, _ = self.run_drive(simulator(), duration=10.0, use_lidar=True)
        _, _, unaided_error, _ = self.run_drive(simulator(), duration=10.0, use_lidar=False)
        self.assertLess(aided_error, unaided_error)
        # a rotating 0.1 m/s^2 bias drifts metres within 10 s
        self.assertGreater(unaided_error, 1.0)

    def test_samples_without_orientation(self):
        simulator = SensorSimulator(with_orientation=False, lidar_rate=5.0,
                                    random_state=np.random.default_rng(5))
        eskf, _, max_error, _ = self.run_drive(simulator, duration=5.0)
        self.assertLess(max_error, 0.05)


if __name__ == '__main__':
    unittest.main()
