"""Dead-reckoning pose tracking for a swerve drivetrain.

Integrates module distance deltas and gyro heading into a running field pose.
No external correction is applied here; see `localizer` for vision fusion.
"""

from typing import Optional, Sequence, Tuple

from .geometry import Pose2d, Rotation2d, Translation2d, Twist2d
from .model import ModulePosition, SwerveDriveKinematics


class SwerveDriveOdometry:
    """Pure odometry integrator.

    Each update differences the cumulative module distances against the
    previous sample, solves the chassis displacement through the kinematics,
    and composes it onto the pose along a constant-curvature arc. The heading
    always comes from the gyro (plus the offset captured at the last reset),
    never from the wheels.
    """

    def __init__(
        self,
        kinematics: SwerveDriveKinematics,
        gyro_angle: Rotation2d,
        module_positions: Optional[Sequence[ModulePosition]] = None,
        initial_pose: Optional[Pose2d] = None,
    ):
        """Initialize the odometry.

        Args:
            kinematics: Shared kinematics for the drivetrain.
            gyro_angle: Current raw gyro angle.
            module_positions: Current module positions. If None, the first
                call to `update` only records a baseline (zero displacement).
            initial_pose: Starting field pose. Default: origin.
        """
        self._kinematics = kinematics
        self._pose = initial_pose if initial_pose is not None else Pose2d()

        self._gyro_offset = self._pose.rotation - gyro_angle
        self._previous_angle = self._pose.rotation
        self._previous_positions: Optional[Tuple[ModulePosition, ...]] = (
            self._copy_positions(module_positions) if module_positions is not None else None
        )

    def _copy_positions(self, module_positions: Sequence[ModulePosition]) -> Tuple[ModulePosition, ...]:
        positions = tuple(module_positions)
        if len(positions) != self._kinematics.num_modules:
            raise ValueError(
                f"Number of modules is not consistent with number of module locations "
                f"provided in constructor (expected {self._kinematics.num_modules}, got {len(positions)})"
            )
        return positions

    @property
    def pose(self) -> Pose2d:
        return self._pose

    def update(self, gyro_angle: Rotation2d, module_positions: Sequence[ModulePosition]) -> Pose2d:
        """Integrate one sample of module positions and gyro angle.

        Args:
            gyro_angle: Current raw gyro angle.
            module_positions: Current cumulative module positions.

        Returns:
            The updated field pose.
        """
        positions = self._copy_positions(module_positions)
        angle = gyro_angle + self._gyro_offset

        if self._previous_positions is None:
            # First sample: nothing to difference against yet
            twist = Twist2d(0.0, 0.0, (angle - self._previous_angle).radians)
        else:
            twist = self._kinematics.to_twist2d(self._previous_positions, positions)
            twist = Twist2d(twist.dx, twist.dy, (angle - self._previous_angle).radians)

        new_pose = self._pose.exp(twist)

        self._previous_positions = positions
        self._previous_angle = angle
        self._pose = Pose2d(new_pose.translation, angle)

        return self._pose

    def reset_position(
        self,
        gyro_angle: Rotation2d,
        module_positions: Sequence[ModulePosition],
        pose: Pose2d,
    ) -> None:
        """Replace the pose and re-baseline gyro offset and module positions.

        The stored previous module positions are replaced together with the
        pose, so the next update computes a delta from these readings rather
        than from stale ones.

        Args:
            gyro_angle: Current raw gyro angle.
            module_positions: Current cumulative module positions.
            pose: New field pose.
        """
        self._previous_positions = self._copy_positions(module_positions)
        self._pose = pose
        self._previous_angle = pose.rotation
        self._gyro_offset = pose.rotation - gyro_angle

    def reset_pose(self, pose: Pose2d) -> None:
        """Replace the pose, keeping the current module baseline."""
        self._gyro_offset = self._gyro_offset + (pose.rotation - self._pose.rotation)
        self._pose = pose
        self._previous_angle = pose.rotation

    def reset_translation(self, translation: Translation2d) -> None:
        self._pose = Pose2d(translation, self._pose.rotation)

    def reset_rotation(self, rotation: Rotation2d) -> None:
        self._gyro_offset = self._gyro_offset + (rotation - self._pose.rotation)
        self._pose = Pose2d(self._pose.translation, rotation)
        self._previous_angle = rotation
