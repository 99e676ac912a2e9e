#!/usr/bin/env python3
"""
Basic usage example of the IMU/lidar error-state Kalman filter.

This example drives the filter with simulated IMU samples at 100 Hz and
lidar pose observations at 10 Hz, without any hardware or transport layer.
"""

import argparse
import logging
import os
import sys

import numpy as np

# Add package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from imu_lidar_fusion import Config, ESKFConfig, ErrorStateKalmanFilter
from imu_lidar_fusion.sensors import GroundTruth, SensorSimulator


def simulate_vehicle_motion(duration=30.0, dt=0.01, seed=0):
    """
    Simulate a vehicle accelerating and then driving a circle.

    Args:
        duration: Simulation duration in seconds
        dt: IMU period in seconds
        seed: Random seed for sensor noise

    Yields:
        (truth, imu_sample, lidar_pose) tuples, lidar_pose is None between scans
    """
    truth = GroundTruth(v=2.0)
    simulator = SensorSimulator(
        accel_bias=[0.02, -0.01, 0.03],
        gyro_bias=[0.0005, -0.0003, 0.0002],
        accel_noise_std=0.01,
        gyro_noise_std=0.0005,
        lidar_pos_noise_std=0.01,
        lidar_ori_noise_std=0.002,
        lidar_rate=10.0,
        random_state=np.random.default_rng(seed)
    )

    acc_world, gyro_world = truth.kinematics(0.0, 0.0)
    yield truth, simulator.measure_imu(truth, acc_world, gyro_world), None

    while truth.t < duration:
        # accelerate for 5 s, then hold speed on a constant turn
        acc_cmd = 0.5 if truth.t < 5.0 else 0.0
        yaw_rate_cmd = 0.0 if truth.t < 5.0 else 0.2
        acc_world, gyro_world = truth.update(acc_cmd, yaw_rate_cmd, dt)
        sample = simulator.measure_imu(truth, acc_world, gyro_world, dt)
        yield truth, sample, simulator.measure_lidar(truth, dt)


def print_status(eskf: ErrorStateKalmanFilter, truth: GroundTruth):
    """Print current filter status against ground truth."""
    pose, velocity = eskf.get_odometry()
    position = pose[:3, 3]
    error = np.linalg.norm(position - truth.position)

    print(f"Time: {eskf.time:.1f}s")
    print(f"  Position: [{position[0]:7.2f}, {position[1]:7.2f}, {position[2]:6.2f}] m")
    print(f"  Velocity: [{velocity[0]:6.2f}, {velocity[1]:6.2f}, {velocity[2]:6.2f}] m/s")
    print(f"  Error:    {error:6.3f} m")
    print(f"  Uncertainty: {eskf.get_position_uncertainty():.4f} m")
    print()


def main():
    """Main example function."""
    parser = argparse.ArgumentParser(description="IMU/lidar ESKF example")
    parser.add_argument("--config", help="JSON or YAML filter configuration")
    parser.add_argument("--duration", type=float, default=30.0, help="Simulation duration (s)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(name)s %(levelname)s: %(message)s")

    print("IMU/Lidar Error-State Kalman Filter - Basic Usage Example")
    print("=" * 58)

    config = ESKFConfig.from_config(Config(args.config))
    eskf = ErrorStateKalmanFilter(config)

    last_print_time = 0.0
    print_interval = 5.0

    for truth, sample, lidar_pose in simulate_vehicle_motion(duration=args.duration):
        if not eskf.is_initialized:
            eskf.init(truth.pose, truth.velocity, sample)
            continue

        eskf.update(sample)

        if lidar_pose is not None:
            # observation slightly after the IMU sample it was matched to
            eskf.correct(sample, sample.timestamp + 1e-3, lidar_pose)

        if eskf.time - last_print_time >= print_interval:
            print_status(eskf, truth)
            last_print_time = eskf.time

    print("Simulation completed!")

    stats = eskf.get_statistics()
    print("\n=== Final Statistics ===")
    print(f"IMU Updates: {stats['updates']}")
    print(f"Lidar Corrections: {stats['corrections']}")
    print(f"Rejected Corrections: {stats['rejected_corrections'] + stats['ill_conditioned_corrections']}")
    print(f"Gyro Bias Estimate:  {np.array2string(eskf.error.gyro_bias, precision=5)}")
    print(f"Accel Bias Estimate: {np.array2string(eskf.error.accel_bias, precision=4)}")
    print(f"Final Position Uncertainty: {stats['position_uncertainty']:.4f} m")


if __name__ == "__main__":
    main()
