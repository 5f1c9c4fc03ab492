"""Localization module for swerve drivetrain pose estimation.

This module fuses wheel odometry with delayed, asynchronous vision pose
measurements:
- Odometry updates every control cycle (dead-reckoning, never stale)
- Vision corrections whenever a camera pipeline produces a pose, possibly
  late or out of order
- A bounded history of odometry poses lets a late measurement be compared
  against where odometry thought the robot was at capture time
- Corrections are weighted by a per-axis Kalman gain built from the
  odometry and vision standard deviations
"""

import bisect
import logging
import math
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from .buffer import TimeInterpolatableBuffer
from .errors import ConstructionError
from .geometry import Pose2d, Rotation2d, Translation2d, Twist2d
from .model import ModulePosition, SwerveDriveKinematics
from .odometry import SwerveDriveOdometry


@dataclass(frozen=True)
class VisionMeasurement:
    """A field pose reported by an external vision pipeline.

    Attributes:
        pose: Measured robot pose in the field frame.
        timestamp: Capture time (seconds), on the estimator's clock.
        std_devs: Optional [x (m), y (m), theta (rad)] standard deviations.
            None means use the estimator's configured default.
    """

    pose: Pose2d
    timestamp: float
    std_devs: Optional[Sequence[float]] = None


@dataclass(frozen=True)
class VisionUpdate:
    """A fused vision correction and the odometry pose it was applied at."""

    vision_pose: Pose2d
    odometry_pose: Pose2d

    def compensate(self, pose: Pose2d) -> Pose2d:
        """Carry the correction forward to a later odometry pose.

        Applies the odometry motion since the correction on top of the
        corrected pose.
        """
        delta = pose - self.odometry_pose
        return self.vision_pose + delta


class SwerveDrivePoseEstimator:
    """Pose estimator fusing swerve odometry with vision measurements.

    State:
        - Internal odometry, advanced every cycle exactly like
          SwerveDriveOdometry
        - Estimated pose, the externally visible result
        - Odometry pose history over `buffer_duration` seconds
        - Vision updates keyed by timestamp, each pairing a corrected pose
          with the odometry pose at that time

    Sensor weighting:
        Q: odometry (state) variances, from state std devs
        R: vision variances, from vision std devs
        Gain per axis: k = q / (q + sqrt(q * r)); larger vision std devs give
        a smaller correction.

    All public methods take one lock, so vision measurements from another
    thread cannot interleave with a cycle update.
    """

    def __init__(
        self,
        kinematics: SwerveDriveKinematics,
        gyro_angle: Rotation2d,
        module_positions: Sequence[ModulePosition],
        initial_pose: Optional[Pose2d] = None,
        state_std_devs: Optional[Sequence[float]] = None,
        vision_std_devs: Optional[Sequence[float]] = None,
        buffer_duration: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
        config=None,
    ):
        """Initialize the pose estimator.

        Args:
            kinematics: Shared kinematics for the drivetrain.
            gyro_angle: Current raw gyro angle.
            module_positions: Current module positions.
            initial_pose: Starting field pose. Default: origin.
            state_std_devs: Odometry std devs [x, y, theta]. Default from config.
            vision_std_devs: Default vision std devs [x, y, theta]. Default
                from config.
            buffer_duration: Odometry history window (seconds). Default from config.
            clock: Function returning the current time in seconds, used by
                `update`. Default: time.monotonic.
            config: Configuration module or object. If None, uses
                swerve_control.config.

        Raises:
            ConstructionError: If the std devs are not three finite values.
        """
        if config is None:
            from swerve_control import config as cfg
        else:
            cfg = config

        if clock is None:
            import time

            clock = time.monotonic
        self._clock = clock

        self._lock = threading.RLock()

        self._odometry = SwerveDriveOdometry(kinematics, gyro_angle, module_positions, initial_pose)

        state = np.asarray(
            state_std_devs if state_std_devs is not None else cfg.STATE_STD_DEVS, dtype=float
        )
        if state.shape != (3,) or not np.all(np.isfinite(state)):
            raise ConstructionError(f"State std devs must be 3 finite values, got {state_std_devs}")
        self._q = np.square(state)

        # Default vision variances (R) and the gains they produce
        default_vision = np.asarray(
            vision_std_devs if vision_std_devs is not None else cfg.VISION_STD_DEVS, dtype=float
        )
        if default_vision.shape != (3,) or not np.all(np.isfinite(default_vision)):
            raise ConstructionError(f"Vision std devs must be 3 finite values, got {vision_std_devs}")
        self._default_r = np.square(default_vision)
        self._vision_k = self._compute_gains(self._default_r)

        self.buffer_duration = (
            buffer_duration if buffer_duration is not None else cfg.POSE_BUFFER_DURATION
        )
        self._odometry_pose_buffer: TimeInterpolatableBuffer[Pose2d] = TimeInterpolatableBuffer(
            self.buffer_duration
        )

        # Vision updates sorted by timestamp
        self._vision_timestamps: List[float] = []
        self._vision_updates: List[VisionUpdate] = []

        self._pose_estimate = self._odometry.pose

        # Diagnostics
        self.vision_measurements_accepted = 0
        self.stale_measurements_ignored = 0
        self.invalid_measurements_ignored = 0
        self.last_correction = Twist2d()

    def _compute_gains(self, r: np.ndarray) -> np.ndarray:
        k = np.zeros(3)
        for i in range(3):
            if self._q[i] == 0.0:
                k[i] = 0.0
            else:
                k[i] = self._q[i] / (self._q[i] + math.sqrt(self._q[i] * r[i]))
        return k

    def _vision_variances(self, std_devs: Sequence[float]) -> np.ndarray:
        """Turn measurement std devs into variances, falling back per axis.

        Entries that are not finite fall back to the default vision variance.
        A malformed vector falls back entirely.
        """
        try:
            values = np.asarray(std_devs, dtype=float)
        except (TypeError, ValueError):
            values = None

        if values is None or values.shape != (3,):
            logging.warning(f"Ignoring malformed vision std devs {std_devs}, using defaults")
            return self._default_r.copy()

        r = np.square(values)
        invalid = ~np.isfinite(r)
        if np.any(invalid):
            logging.warning(f"Non-finite vision std devs {std_devs}, using defaults for those axes")
            r[invalid] = self._default_r[invalid]
        return r

    def set_vision_measurement_std_devs(self, std_devs: Sequence[float]) -> None:
        """Change the default vision std devs used when none are supplied.

        Args:
            std_devs: [x (m), y (m), theta (rad)] standard deviations.
        """
        with self._lock:
            self._default_r = self._vision_variances(std_devs)
            self._vision_k = self._compute_gains(self._default_r)

    @property
    def vision_gains(self) -> np.ndarray:
        with self._lock:
            return self._vision_k.copy()

    @property
    def estimated_pose(self) -> Pose2d:
        with self._lock:
            return self._pose_estimate

    def get_estimated_position(self) -> Pose2d:
        return self.estimated_pose

    @property
    def odometry_pose(self) -> Pose2d:
        with self._lock:
            return self._odometry.pose

    def update(self, gyro_angle: Rotation2d, module_positions: Sequence[ModulePosition]) -> Pose2d:
        """Advance the estimate with one odometry sample at the current time.

        Args:
            gyro_angle: Current raw gyro angle.
            module_positions: Current cumulative module positions.

        Returns:
            The updated estimated pose.
        """
        return self.update_with_time(self._clock(), gyro_angle, module_positions)

    def update_with_time(
        self,
        timestamp: float,
        gyro_angle: Rotation2d,
        module_positions: Sequence[ModulePosition],
    ) -> Pose2d:
        """Advance the estimate with one odometry sample at `timestamp`.

        Without a vision correction, the estimate equals the odometry pose.
        With one, the estimate moves by exactly the odometry motion since the
        most recent correction.

        Args:
            timestamp: Sample time (seconds).
            gyro_angle: Current raw gyro angle.
            module_positions: Current cumulative module positions.

        Returns:
            The updated estimated pose.
        """
        with self._lock:
            odometry_estimate = self._odometry.update(gyro_angle, module_positions)

            if math.isfinite(timestamp):
                self._odometry_pose_buffer.add_sample(timestamp, odometry_estimate)
            else:
                logging.warning(f"Odometry sample with non-finite timestamp {timestamp} not buffered")

            if not self._vision_updates:
                self._pose_estimate = odometry_estimate
            else:
                self._pose_estimate = self._vision_updates[-1].compensate(odometry_estimate)

            return self._pose_estimate

    def add_vision_measurement(
        self,
        vision_pose: Pose2d,
        timestamp: float,
        std_devs: Optional[Sequence[float]] = None,
    ) -> bool:
        """Fuse a vision pose measurement captured at `timestamp`.

        The estimate at capture time is found from the odometry history, the
        discrepancy to the measured pose is scaled by the Kalman gain, and the
        correction is stored so every later odometry delta is applied on top
        of it. Measurements older than the history window are ignored.

        Args:
            vision_pose: Measured robot pose in the field frame.
            timestamp: Capture time (seconds), on the estimator's clock.
            std_devs: Optional [x, y, theta] std devs for this measurement.
                Default: the configured vision std devs.

        Returns:
            True if the measurement was fused, False if it was ignored.
        """
        with self._lock:
            if not (
                math.isfinite(timestamp)
                and math.isfinite(vision_pose.x)
                and math.isfinite(vision_pose.y)
                and math.isfinite(vision_pose.rotation.radians)
            ):
                self.invalid_measurements_ignored += 1
                logging.warning(f"Ignoring non-finite vision measurement {vision_pose} at {timestamp}")
                return False

            newest = self._odometry_pose_buffer.newest_timestamp
            if newest is None or newest - self.buffer_duration > timestamp:
                self.stale_measurements_ignored += 1
                logging.debug(
                    f"Vision measurement at t={timestamp:.3f} is outside the odometry history, ignoring"
                )
                return False

            self._clean_up_vision_updates()

            odometry_sample = self._odometry_pose_buffer.get_sample(timestamp)
            if odometry_sample is None:
                return False

            vision_sample = self._sample_at_locked(timestamp)
            if vision_sample is None:
                return False

            if std_devs is None:
                k = self._vision_k
            else:
                k = self._compute_gains(self._vision_variances(std_devs))

            # Discrepancy between the estimate at capture time and the measurement
            twist = vision_sample.log(vision_pose)
            scaled_twist = Twist2d(
                float(k[0] * twist.dx), float(k[1] * twist.dy), float(k[2] * twist.dtheta)
            )

            vision_update = VisionUpdate(vision_sample.exp(scaled_twist), odometry_sample)
            self._insert_vision_update(timestamp, vision_update)

            self._pose_estimate = vision_update.compensate(self._odometry.pose)

            self.vision_measurements_accepted += 1
            self.last_correction = scaled_twist
            return True

    def add_measurement(self, measurement: VisionMeasurement) -> bool:
        return self.add_vision_measurement(
            measurement.pose, measurement.timestamp, measurement.std_devs
        )

    def _insert_vision_update(self, timestamp: float, vision_update: VisionUpdate) -> None:
        """Store an update and drop every update after it.

        Later updates were computed against a history that no longer holds
        once this correction is in place.
        """
        index = bisect.bisect_left(self._vision_timestamps, timestamp)
        del self._vision_timestamps[index:]
        del self._vision_updates[index:]
        self._vision_timestamps.append(timestamp)
        self._vision_updates.append(vision_update)

    def _clean_up_vision_updates(self) -> None:
        """Drop vision updates that can no longer affect any buffered sample.

        Keeps the newest update at or before the oldest odometry sample, since
        it still applies to that sample.
        """
        oldest_odometry_timestamp = self._odometry_pose_buffer.oldest_timestamp
        if oldest_odometry_timestamp is None or not self._vision_timestamps:
            return
        if oldest_odometry_timestamp < self._vision_timestamps[0]:
            return

        index = bisect.bisect_right(self._vision_timestamps, oldest_odometry_timestamp) - 1
        del self._vision_timestamps[:index]
        del self._vision_updates[:index]

    def sample_at(self, timestamp: float) -> Optional[Pose2d]:
        """Return the estimated pose at a past `timestamp`.

        Args:
            timestamp: Time to sample (seconds). Clamped to the buffered range.

        Returns:
            Estimated pose at that time, or None if no odometry is buffered.
        """
        with self._lock:
            return self._sample_at_locked(timestamp)

    def _sample_at_locked(self, timestamp: float) -> Optional[Pose2d]:
        oldest = self._odometry_pose_buffer.oldest_timestamp
        newest = self._odometry_pose_buffer.newest_timestamp
        if oldest is None or newest is None:
            return None

        timestamp = max(oldest, min(timestamp, newest))

        odometry_estimate = self._odometry_pose_buffer.get_sample(timestamp)
        if odometry_estimate is None:
            return None

        if not self._vision_updates or timestamp < self._vision_timestamps[0]:
            return odometry_estimate

        index = bisect.bisect_right(self._vision_timestamps, timestamp) - 1
        return self._vision_updates[index].compensate(odometry_estimate)

    def _reset_history(self) -> None:
        self._odometry_pose_buffer.clear()
        self._vision_timestamps.clear()
        self._vision_updates.clear()
        self._pose_estimate = self._odometry.pose

    def reset_position(
        self,
        gyro_angle: Rotation2d,
        module_positions: Sequence[ModulePosition],
        pose: Pose2d,
    ) -> None:
        """Re-baseline odometry and estimate to `pose` and clear all history.

        Args:
            gyro_angle: Current raw gyro angle.
            module_positions: Current cumulative module positions.
            pose: New field pose.
        """
        with self._lock:
            self._odometry.reset_position(gyro_angle, module_positions, pose)
            self._reset_history()

    def reset_pose(self, pose: Pose2d) -> None:
        with self._lock:
            self._odometry.reset_pose(pose)
            self._reset_history()

    def reset_translation(self, translation: Translation2d) -> None:
        with self._lock:
            self._odometry.reset_translation(translation)
            self._reset_history()

    def reset_rotation(self, rotation: Rotation2d) -> None:
        with self._lock:
            self._odometry.reset_rotation(rotation)
            self._reset_history()

    def get_diagnostics(self) -> Dict[str, Any]:
        """Get estimator diagnostic information for logging and tuning.

        Returns:
            Dictionary containing:
                - buffer_size: Number of buffered odometry samples
                - vision_updates: Number of stored vision corrections
                - accepted: Total vision measurements fused
                - stale_ignored: Measurements older than the history window
                - invalid_ignored: Measurements with non-finite values
                - correction_norm: Translation size of the last correction (m)
                - correction_theta: Rotation of the last correction (rad)
                - k_x, k_y, k_theta: Default vision gains
        """
        with self._lock:
            return {
                "buffer_size": len(self._odometry_pose_buffer),
                "vision_updates": len(self._vision_updates),
                "accepted": self.vision_measurements_accepted,
                "stale_ignored": self.stale_measurements_ignored,
                "invalid_ignored": self.invalid_measurements_ignored,
                "correction_norm": math.hypot(self.last_correction.dx, self.last_correction.dy),
                "correction_theta": self.last_correction.dtheta,
                "k_x": float(self._vision_k[0]),
                "k_y": float(self._vision_k[1]),
                "k_theta": float(self._vision_k[2]),
            }
