"""Time-indexed reference follower for a holonomic drivetrain.

This module implements a minimal trajectory controller for simulation runs:
- Feeds the reference field-relative velocity forward
- Adds proportional correction toward the reference position
- Converts the command into the robot frame using the estimated heading

It talks to the drivetrain only through the callbacks handed over by
`SwerveDrivetrain.configure_trajectory_controller`.
"""

import math
from typing import Callable, Optional

from . import path
from .geometry import Pose2d
from .model import ChassisSpeeds


class HolonomicFollower:
    """Feedforward + proportional follower of the reference path.

    Attributes:
        k_translation: Proportional gain on position error (1/s).
        max_correction: Limit on the feedback velocity magnitude (m/s).
        omega: Constant spin rate commanded while following (rad/s).
    """

    def __init__(
        self,
        k_translation: float = 2.0,
        max_correction: float = 1.0,
        omega: float = 0.0,
    ):
        """Initialize the follower.

        Args:
            k_translation: Proportional gain on position error. Default: 2.0.
            max_correction: Clamp on the feedback velocity (m/s). Default: 1.0.
            omega: Spin rate while following (rad/s). Default: 0.0.
        """
        self.k_translation = k_translation
        self.max_correction = max_correction
        self.omega = omega

        self._pose_supplier: Optional[Callable[[], Pose2d]] = None
        self._reset_pose: Optional[Callable[[Pose2d], None]] = None
        self._speeds_supplier: Optional[Callable[[], ChassisSpeeds]] = None
        self._output: Optional[Callable[[ChassisSpeeds], None]] = None

        # Robot-relative speeds measured at the start of the last follow() call.
        # Read by the simulation runner for its speed report; not used as feedback.
        self.measured_speeds = ChassisSpeeds()

    def configure(
        self,
        pose_supplier: Callable[[], Pose2d],
        reset_pose: Callable[[Pose2d], None],
        robot_relative_speeds_supplier: Callable[[], ChassisSpeeds],
        output: Callable[[ChassisSpeeds], None],
    ) -> None:
        self._pose_supplier = pose_supplier
        self._reset_pose = reset_pose
        self._speeds_supplier = robot_relative_speeds_supplier
        self._output = output

    @property
    def is_configured(self) -> bool:
        return self._output is not None

    def start(self, start_pose: Optional[Pose2d] = None) -> None:
        """Reset the drivetrain pose to the start of the path."""
        if self._reset_pose is None:
            raise RuntimeError("Follower used before configure()")
        if start_pose is None:
            x0, y0 = path.reference_position(0.0)
            start_pose = Pose2d.from_xy(x0, y0)
        self._reset_pose(start_pose)

    def compute_control(self, pose: Pose2d, elapsed_time: float) -> ChassisSpeeds:
        """Compute a robot-relative command for the current pose.

        Args:
            pose: Current estimated field pose.
            elapsed_time: Time since the path started (seconds).

        Returns:
            Robot-relative ChassisSpeeds.
        """
        reference = path.reference_speeds(elapsed_time, self.omega)
        x_ref, y_ref = path.reference_position(elapsed_time)

        error_x = x_ref - pose.x
        error_y = y_ref - pose.y
        correction_x = self.k_translation * error_x
        correction_y = self.k_translation * error_y

        # Clamp feedback so a large vision jump cannot cause a velocity spike
        correction_norm = math.hypot(correction_x, correction_y)
        if correction_norm > self.max_correction:
            scale = self.max_correction / correction_norm
            correction_x *= scale
            correction_y *= scale

        field_speeds = ChassisSpeeds(
            reference.vx + correction_x, reference.vy + correction_y, reference.omega
        )
        return ChassisSpeeds.from_field_relative(field_speeds, pose.rotation)

    def follow(self, elapsed_time: float) -> ChassisSpeeds:
        """Compute and send one command through the configured output."""
        if self._pose_supplier is None or self._output is None:
            raise RuntimeError("Follower used before configure()")

        if self._speeds_supplier is not None:
            self.measured_speeds = self._speeds_supplier()

        speeds = self.compute_control(self._pose_supplier(), elapsed_time)
        self._output(speeds)
        return speeds
