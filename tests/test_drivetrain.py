"""Tests for the drivetrain facade, run against simulated hardware."""

import math

import pytest

from swerve_control import config
from swerve_control.config import DrivetrainConfig
from swerve_control.drivetrain import SwerveDrivetrain
from swerve_control.errors import ConstructionError
from swerve_control.geometry import Pose2d, Rotation2d, Translation2d
from swerve_control.model import ChassisSpeeds, ModuleState
from tests.conftest import DT

MODULE_RADIUS = math.hypot(config.WHEEL_BASE / 2.0, config.TRACK_WIDTH / 2.0)


class RecordingController:
    def configure(self, pose_supplier, reset_pose, robot_relative_speeds_supplier, output):
        self.pose_supplier = pose_supplier
        self.reset_pose = reset_pose
        self.speeds_supplier = robot_relative_speeds_supplier
        self.output = output


class TestConstruction:
    def test_wrong_module_count(self, rig, drivetrain_config):
        with pytest.raises(ConstructionError):
            SwerveDrivetrain(rig.chassis.modules[:3], rig.chassis.gyro, drivetrain_config)

    def test_degenerate_geometry(self, rig):
        degenerate = DrivetrainConfig(module_translations=((0.0, 0.0),) * 4)
        with pytest.raises(ConstructionError):
            SwerveDrivetrain(rig.chassis.modules, rig.chassis.gyro, degenerate)

    def test_non_positive_speed_limit(self, rig):
        with pytest.raises(ConstructionError):
            SwerveDrivetrain(
                rig.chassis.modules, rig.chassis.gyro, DrivetrainConfig(max_module_speed=0.0)
            )

    def test_starts_at_origin_with_gyro_reset(self, rig, drivetrain_config):
        rig.chassis.gyro.set_yaw_degrees(45.0)
        drivetrain = SwerveDrivetrain(rig.chassis.modules, rig.chassis.gyro, drivetrain_config)

        assert drivetrain.get_pose() == Pose2d()
        assert drivetrain.get_gyro_yaw() == Rotation2d()


class TestDriving:
    def test_forward_one_cycle(self, rig):
        rig.drivetrain.drive_robot_relative(ChassisSpeeds(1.0, 0.0, 0.0))
        pose = rig.cycle()

        assert pose.x == pytest.approx(0.02)
        assert pose.y == pytest.approx(0.0)
        assert pose.rotation.radians == pytest.approx(0.0)

    def test_pure_rotation_modules(self, rig):
        rig.drivetrain.drive_robot_relative(ChassisSpeeds(0.0, 0.0, 1.0))

        states = rig.drivetrain.get_module_states()
        for state in states:
            assert abs(state.speed) == pytest.approx(MODULE_RADIUS)

        pose = rig.cycle()
        assert pose.translation.norm == pytest.approx(0.0, abs=1e-9)
        assert pose.rotation.radians == pytest.approx(DT)

    def test_robot_relative_speeds_match_command(self, rig):
        rig.drivetrain.drive(Translation2d(1.0, -0.5), 0.0, field_relative=False)
        speeds = rig.drivetrain.get_robot_relative_speeds()

        assert speeds.vx == pytest.approx(1.0)
        assert speeds.vy == pytest.approx(-0.5)
        assert speeds.omega == pytest.approx(0.0)

    def test_field_relative_drive_uses_gyro(self, rig):
        rig.drivetrain.set_gyro_yaw(Rotation2d.from_degrees(90.0))
        rig.drivetrain.drive(Translation2d(1.0, 0.0), 0.0, field_relative=True)

        robot = rig.drivetrain.get_robot_relative_speeds()
        assert robot.vx == pytest.approx(0.0, abs=1e-9)
        assert robot.vy == pytest.approx(-1.0)

        field = rig.drivetrain.get_field_relative_speeds()
        assert field.vx == pytest.approx(1.0)
        assert field.vy == pytest.approx(0.0, abs=1e-9)

    def test_desaturates_and_counts(self, rig, drivetrain_config):
        rig.drivetrain.drive_robot_relative(ChassisSpeeds(10.0, 0.0, 0.0))

        assert rig.drivetrain.saturation_events == 1
        for state in rig.drivetrain.get_module_states():
            assert state.speed == pytest.approx(drivetrain_config.max_module_speed)

    def test_within_limit_is_not_counted(self, rig):
        rig.drivetrain.drive_robot_relative(ChassisSpeeds(1.0, 0.0, 0.0))
        assert rig.drivetrain.saturation_events == 0

    def test_wrong_state_count_raises(self, rig):
        with pytest.raises(ValueError):
            rig.drivetrain.set_module_states([ModuleState()] * 3)

    def test_stopped_module_keeps_angle(self, rig):
        rig.drivetrain.drive_robot_relative(ChassisSpeeds(0.0, 1.0, 0.0))
        rig.drivetrain.stop()

        for state in rig.drivetrain.get_module_states():
            assert state.speed == 0.0
            assert abs(state.angle.degrees) == pytest.approx(90.0)

    def test_non_finite_speed_is_stopped(self, rig):
        states = [ModuleState(1.0, Rotation2d())] * 3 + [ModuleState(math.nan, Rotation2d())]
        rig.drivetrain.set_module_states(states)
        assert rig.drivetrain.get_module_states()[3].speed == 0.0

    def test_non_finite_speed_does_not_hide_saturation(self, rig):
        states = [ModuleState(math.nan, Rotation2d())] + [ModuleState(10.0, Rotation2d())] * 3
        rig.drivetrain.set_module_states(states)

        sent = rig.drivetrain.get_module_states()
        assert sent[0].speed == 0.0
        for state in sent[1:]:
            assert state.speed == pytest.approx(rig.drivetrain.max_module_speed)
        assert rig.drivetrain.saturation_events == 1

    def test_infinite_rotation_command_does_not_raise(self, rig):
        rig.drivetrain.drive_robot_relative(ChassisSpeeds(1.0, 0.0, math.inf))
        for state in rig.drivetrain.get_module_states():
            assert math.isfinite(state.speed)

    def test_infinite_gyro_reading_does_not_raise(self, rig):
        rig.chassis.gyro.set_yaw_degrees(math.inf)
        rig.drivetrain.periodic()
        assert rig.drivetrain.get_gyro_yaw() == Rotation2d()

    def test_discretizes_commands_while_rotating(self, rig):
        rig.drivetrain.drive_robot_relative(ChassisSpeeds(2.0, 0.0, 3.0))
        speeds = rig.drivetrain.get_robot_relative_speeds()

        assert speeds.omega == pytest.approx(3.0)
        assert speeds.vy < 0.0


class TestPose:
    def test_set_pose_resets_estimate_and_odometry(self, rig):
        rig.drivetrain.drive_robot_relative(ChassisSpeeds(1.0, 0.0, 0.0))
        rig.cycle(5)

        target = Pose2d.from_xy(1.0, 2.0, Rotation2d.from_degrees(90.0))
        rig.drivetrain.set_pose(target)

        assert rig.drivetrain.get_pose() == target
        assert rig.drivetrain.get_odometry_pose() == target

        # Forward in the robot frame is field +y after the reset
        pose = rig.cycle()
        assert pose.x == pytest.approx(1.0)
        assert pose.y == pytest.approx(2.02)
        assert pose.rotation.degrees == pytest.approx(90.0)

    def test_set_odometry_pose_leaves_estimate(self, rig):
        rig.drivetrain.set_odometry_pose(Pose2d.from_xy(5.0, 0.0))
        assert rig.drivetrain.get_odometry_pose().x == pytest.approx(5.0)
        assert rig.drivetrain.get_pose() == Pose2d()

    def test_vision_measurement_moves_estimate_only(self, rig):
        rig.cycle(10)

        accepted = rig.drivetrain.add_vision_measurement(
            Pose2d.from_xy(1.0, 0.0), rig.clock() - 0.05, [0.01, 0.01, 0.01]
        )
        pose = rig.cycle()

        assert accepted
        assert pose.x > 0.5
        assert rig.drivetrain.get_odometry_pose().x == pytest.approx(0.0)

    def test_stale_vision_measurement_is_ignored(self, rig):
        rig.cycle(100)
        assert not rig.drivetrain.add_vision_measurement(Pose2d.from_xy(1.0, 0.0), 0.0)
        assert rig.drivetrain.get_pose() == Pose2d()


class TestIntegration:
    def test_periodic_publishes_telemetry(self, rig):
        rig.drivetrain.drive_robot_relative(ChassisSpeeds(1.0, 0.0, 0.0))
        rig.cycle()

        assert set(rig.telemetry.poses) == {"Field"}
        assert set(rig.telemetry.numbers) == {
            "gyro (deg)",
            "swerve odometry x",
            "swerve odometry y",
        }
        assert rig.telemetry.numbers["swerve odometry x"] == pytest.approx(0.02)

    def test_configure_trajectory_controller(self, rig):
        controller = RecordingController()
        rig.drivetrain.configure_trajectory_controller(controller)

        controller.reset_pose(Pose2d.from_xy(0.5, 0.5))
        assert controller.pose_supplier() == Pose2d.from_xy(0.5, 0.5)

        controller.output(ChassisSpeeds(1.0, 0.0, 0.0))
        assert controller.speeds_supplier().vx == pytest.approx(1.0)

        rig.cycle()
        assert controller.pose_supplier().x == pytest.approx(0.52)

    def test_odometry_matches_ground_truth_on_an_arc(self, rig):
        rig.drivetrain.drive_robot_relative(ChassisSpeeds(1.0, 0.5, 0.8))
        rig.cycle(50)

        truth = rig.chassis.true_pose
        estimate = rig.drivetrain.get_pose()
        assert estimate.translation.distance(truth.translation) < 1e-6
        assert abs((estimate.rotation - truth.rotation).radians) < 1e-6
