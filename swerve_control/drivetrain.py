"""Swerve drivetrain: ties hardware readings to kinematics and estimation.

The drivetrain is built once at startup with explicit collaborators and then
handed by reference to whatever needs it (trajectory controller, vision
client, telemetry). There is no global instance.

Per cycle (`periodic`):
    gyro + module positions -> pose estimator and plain odometry -> telemetry

Commands:
    ChassisSpeeds -> discretize -> kinematics -> desaturate -> modules
"""

import logging
import math
import threading
from typing import Callable, List, Optional, Protocol, Sequence

from .config import DrivetrainConfig, load_drivetrain_config
from .errors import ConstructionError
from .geometry import Pose2d, Rotation2d, Translation2d
from .localizer import SwerveDrivePoseEstimator, VisionMeasurement
from .model import (
    ChassisSpeeds,
    ModulePosition,
    ModuleState,
    SwerveDriveKinematics,
    desaturate_wheel_speeds,
    discretize,
    peak_module_speed,
)
from .odometry import SwerveDriveOdometry

# Module speeds below this are treated as "stopped" and keep their angle
ZERO_SPEED_THRESHOLD = 1e-6


class SwerveModuleIO(Protocol):
    """One steerable wheel assembly, as seen by the drivetrain."""

    def get_position(self) -> ModulePosition: ...

    def get_state(self) -> ModuleState: ...

    def set_desired_state(self, state: ModuleState) -> None: ...


class GyroIO(Protocol):
    """Heading sensor reporting yaw in degrees, counter-clockwise positive."""

    def get_yaw_degrees(self) -> float: ...

    def set_yaw_degrees(self, degrees: float) -> None: ...

    def reset(self) -> None: ...


class TelemetrySink(Protocol):
    """One-way receiver for per-cycle pose and number values."""

    def put_pose(self, key: str, pose: Pose2d) -> None: ...

    def put_number(self, key: str, value: float) -> None: ...


class TrajectoryController(Protocol):
    """External path follower that drives the robot through callbacks."""

    def configure(
        self,
        pose_supplier: Callable[[], Pose2d],
        reset_pose: Callable[[Pose2d], None],
        robot_relative_speeds_supplier: Callable[[], ChassisSpeeds],
        output: Callable[[ChassisSpeeds], None],
    ) -> None: ...


class SwerveDrivetrain:
    """Four-module swerve drivetrain.

    Module order is left front, right front, right rear, left rear, matching
    the order of `DrivetrainConfig.module_translations`.

    Attributes:
        kinematics: Shared, immutable kinematics.
        pose_estimator: Authoritative pose (odometry + vision).
        odometry: Plain dead-reckoning pose, kept for comparison.
        saturation_events: Number of commands scaled down by desaturation.
    """

    def __init__(
        self,
        modules: Sequence[SwerveModuleIO],
        gyro: GyroIO,
        config: Optional[DrivetrainConfig] = None,
        telemetry: Optional[TelemetrySink] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        """Build the drivetrain.

        Args:
            modules: The four module IOs, in module order.
            gyro: Heading sensor.
            config: Drivetrain parameters. If None, loaded from
                swerve_control.config.
            telemetry: Optional sink receiving pose and heading every cycle.
            clock: Function returning the current time in seconds. Default:
                time.monotonic. Vision timestamps must use the same clock.

        Raises:
            ConstructionError: If the config cannot be loaded, the module
                count is wrong, or the module geometry is degenerate.
        """
        if config is None:
            config = load_drivetrain_config()
        config.validate()
        self.config = config

        if len(modules) != len(config.module_translations):
            raise ConstructionError(
                f"Expected {len(config.module_translations)} swerve modules, got {len(modules)}"
            )

        self.modules: List[SwerveModuleIO] = list(modules)
        self.gyro = gyro
        self.telemetry = telemetry
        self.max_module_speed = config.max_module_speed
        self.discretize_dt = config.discretize_dt

        self.kinematics = SwerveDriveKinematics(
            *(Translation2d(x, y) for x, y in config.module_translations)
        )

        self._lock = threading.RLock()

        self.gyro.reset()
        yaw = self.get_gyro_yaw()
        positions = self.get_module_positions()

        self.odometry = SwerveDriveOdometry(self.kinematics, yaw, positions, Pose2d())
        self.pose_estimator = SwerveDrivePoseEstimator(
            self.kinematics,
            yaw,
            positions,
            Pose2d(),
            state_std_devs=config.state_std_devs,
            vision_std_devs=config.vision_std_devs,
            clock=clock,
        )

        self.saturation_events = 0

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def drive(self, translation: Translation2d, rotation: float, field_relative: bool) -> None:
        """Drive with a translation velocity and rotation rate.

        Args:
            translation: Desired (vx, vy) velocity (m/s).
            rotation: Desired angular velocity (rad/s).
            field_relative: If True, `translation` is in the field frame and
                is rotated into the robot frame using the gyro heading.
        """
        speeds = ChassisSpeeds(translation.x, translation.y, rotation)
        if field_relative:
            speeds = ChassisSpeeds.from_field_relative(speeds, self.get_gyro_yaw())

        self.set_module_states(self.kinematics.to_module_states(speeds))

    def drive_robot_relative(self, robot_relative_speeds: ChassisSpeeds) -> None:
        """Command sink for trajectory controllers (robot-relative speeds)."""
        target_speeds = discretize(robot_relative_speeds, self.discretize_dt)
        self.set_module_states(self.kinematics.to_module_states(target_speeds))

    def set_module_states(self, desired_states: Sequence[ModuleState]) -> None:
        """Desaturate and send module states to the hardware.

        A module commanded to zero speed keeps its current steering angle
        rather than snapping back to 0.

        Args:
            desired_states: One state per module, in module order.

        Raises:
            ValueError: If the number of states is wrong.
        """
        if len(desired_states) != len(self.modules):
            raise ValueError(f"desired_states must have length {len(self.modules)}")

        peak = peak_module_speed(desired_states)
        if peak > self.max_module_speed:
            self.saturation_events += 1
            logging.debug(
                f"Desaturating module speeds: peak {peak:.3f} m/s > {self.max_module_speed:.3f} m/s"
            )
        states = desaturate_wheel_speeds(desired_states, self.max_module_speed)

        for module, state in zip(self.modules, states):
            if not math.isfinite(state.speed) or abs(state.speed) < ZERO_SPEED_THRESHOLD:
                state = ModuleState(0.0, module.get_state().angle)
            module.set_desired_state(state)

    def stop(self) -> None:
        self.set_module_states([ModuleState() for _ in self.modules])

    # ------------------------------------------------------------------
    # Sensors
    # ------------------------------------------------------------------

    def get_gyro_yaw(self) -> Rotation2d:
        return Rotation2d.from_degrees(self.gyro.get_yaw_degrees())

    def set_gyro_yaw(self, yaw: Rotation2d) -> None:
        self.gyro.set_yaw_degrees(yaw.degrees)

    def get_module_positions(self) -> List[ModulePosition]:
        return [module.get_position() for module in self.modules]

    def get_module_states(self) -> List[ModuleState]:
        return [module.get_state() for module in self.modules]

    def get_robot_relative_speeds(self) -> ChassisSpeeds:
        """Measured chassis velocity in the robot frame."""
        return self.kinematics.to_chassis_speeds(self.get_module_states())

    def get_field_relative_speeds(self) -> ChassisSpeeds:
        """Measured chassis velocity rotated into the field frame by the gyro heading."""
        return ChassisSpeeds.from_robot_relative(
            self.get_robot_relative_speeds(), self.get_gyro_yaw()
        )

    # ------------------------------------------------------------------
    # Pose
    # ------------------------------------------------------------------

    def get_pose(self) -> Pose2d:
        """Best-estimate field pose (odometry fused with vision)."""
        return self.pose_estimator.estimated_pose

    def set_pose(self, pose: Pose2d) -> None:
        """Reset both the estimator and plain odometry to `pose`."""
        with self._lock:
            yaw = self.get_gyro_yaw()
            positions = self.get_module_positions()
            self.pose_estimator.reset_position(yaw, positions, pose)
            self.odometry.reset_position(yaw, positions, pose)

    def get_odometry_pose(self) -> Pose2d:
        return self.odometry.pose

    def set_odometry_pose(self, pose: Pose2d) -> None:
        with self._lock:
            self.odometry.reset_position(self.get_gyro_yaw(), self.get_module_positions(), pose)

    def add_vision_measurement(
        self,
        vision_pose: Pose2d,
        timestamp: float,
        std_devs: Optional[Sequence[float]] = None,
    ) -> bool:
        """Forward a vision measurement to the pose estimator.

        Safe to call from another thread between cycles.

        Returns:
            True if the measurement was fused, False if it was ignored.
        """
        return self.pose_estimator.add_vision_measurement(vision_pose, timestamp, std_devs)

    def add_measurement(self, measurement: VisionMeasurement) -> bool:
        return self.pose_estimator.add_measurement(measurement)

    def configure_trajectory_controller(self, controller: TrajectoryController) -> None:
        """Hand an external trajectory controller the drivetrain callbacks."""
        controller.configure(
            self.get_pose,
            self.set_pose,
            self.get_robot_relative_speeds,
            self.drive_robot_relative,
        )

    # ------------------------------------------------------------------
    # Control cycle
    # ------------------------------------------------------------------

    def periodic(self) -> Pose2d:
        """Run one control cycle: update estimation and publish telemetry.

        Returns:
            The updated estimated pose.
        """
        with self._lock:
            yaw = self.get_gyro_yaw()
            positions = self.get_module_positions()

            estimated_pose = self.pose_estimator.update(yaw, positions)
            odometry_pose = self.odometry.update(yaw, positions)

        if self.telemetry is not None:
            self.telemetry.put_pose("Field", estimated_pose)
            self.telemetry.put_number("gyro (deg)", yaw.degrees)
            self.telemetry.put_number("swerve odometry x", odometry_pose.x)
            self.telemetry.put_number("swerve odometry y", odometry_pose.y)

        return estimated_pose
