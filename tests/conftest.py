"""Shared fixtures for the swerve control tests."""

from typing import Dict, List

import pytest

from swerve_control import config
from swerve_control.config import DrivetrainConfig
from swerve_control.drivetrain import SwerveDrivetrain
from swerve_control.geometry import Pose2d, Rotation2d, Translation2d
from swerve_control.model import ModulePosition, SwerveDriveKinematics
from swerve_control.sim import SimChassis, SimClock

DT = 0.02


class RecordingTelemetry:
    """Telemetry sink that keeps the last value published under each key."""

    def __init__(self) -> None:
        self.poses: Dict[str, Pose2d] = {}
        self.numbers: Dict[str, float] = {}

    def put_pose(self, key: str, pose: Pose2d) -> None:
        self.poses[key] = pose

    def put_number(self, key: str, value: float) -> None:
        self.numbers[key] = value


class SimRig:
    """Drivetrain wired to simulated hardware, advanced one cycle at a time."""

    def __init__(self, drivetrain_config: DrivetrainConfig) -> None:
        self.clock = SimClock()
        self.chassis = SimChassis(drivetrain_config.module_translations)
        self.telemetry = RecordingTelemetry()
        self.drivetrain = SwerveDrivetrain(
            self.chassis.modules,
            self.chassis.gyro,
            drivetrain_config,
            telemetry=self.telemetry,
            clock=self.clock,
        )

    def cycle(self, count: int = 1) -> Pose2d:
        pose = self.drivetrain.get_pose()
        for _ in range(count):
            self.chassis.step(DT)
            self.clock.advance(DT)
            pose = self.drivetrain.periodic()
        return pose


def module_positions(distance: float = 0.0, angle: Rotation2d = None) -> List[ModulePosition]:
    angle = angle if angle is not None else Rotation2d()
    return [ModulePosition(distance, angle) for _ in range(4)]


@pytest.fixture
def kinematics() -> SwerveDriveKinematics:
    return SwerveDriveKinematics(*(Translation2d(x, y) for x, y in config.MODULE_TRANSLATIONS))


@pytest.fixture
def drivetrain_config() -> DrivetrainConfig:
    return DrivetrainConfig()


@pytest.fixture
def rig(drivetrain_config: DrivetrainConfig) -> SimRig:
    return SimRig(drivetrain_config)
