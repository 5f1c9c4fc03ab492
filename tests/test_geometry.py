"""Tests for the planar geometry value types."""

import math

import pytest

from swerve_control.geometry import Pose2d, Rotation2d, Transform2d, Translation2d, Twist2d


class TestRotation2d:
    def test_plus_and_minus_180_are_equal(self):
        assert Rotation2d(math.pi) == Rotation2d(-math.pi)

    def test_composition_wraps_past_180(self):
        rotation = Rotation2d.from_degrees(170.0) + Rotation2d.from_degrees(20.0)
        assert rotation.degrees == pytest.approx(-170.0)

    def test_from_components_normalizes(self):
        rotation = Rotation2d.from_components(3.0, 3.0)
        assert rotation.degrees == pytest.approx(45.0)
        assert math.hypot(rotation.cos, rotation.sin) == pytest.approx(1.0)

    @pytest.mark.parametrize("x, y", [(0.0, 0.0), (float("nan"), 1.0)])
    def test_from_components_without_direction_is_zero(self, x, y):
        rotation = Rotation2d.from_components(x, y)
        assert rotation.radians == 0.0
        assert rotation.cos == 1.0

    @pytest.mark.parametrize("radians", [math.inf, -math.inf, math.nan])
    def test_non_finite_angle_is_zero(self, radians):
        rotation = Rotation2d(radians)
        assert rotation.radians == 0.0
        assert rotation.cos == 1.0

    def test_infinite_degrees_is_zero(self):
        assert Rotation2d.from_degrees(math.inf) == Rotation2d()

    def test_interpolate_takes_shortest_arc(self):
        start = Rotation2d.from_degrees(170.0)
        end = Rotation2d.from_degrees(-170.0)
        assert abs(start.interpolate(end, 0.5).degrees) == pytest.approx(180.0)


class TestTranslation2d:
    def test_rotate_by_quarter_turn(self):
        rotated = Translation2d(1.0, 0.0).rotate_by(Rotation2d.from_degrees(90.0))
        assert rotated == Translation2d(0.0, 1.0)

    def test_norm_and_distance(self):
        assert Translation2d(3.0, 4.0).norm == pytest.approx(5.0)
        assert Translation2d(1.0, 1.0).distance(Translation2d(4.0, 5.0)) == pytest.approx(5.0)


class TestPose2d:
    def test_exp_straight_line(self):
        pose = Pose2d().exp(Twist2d(0.02, 0.0, 0.0))
        assert pose.x == pytest.approx(0.02)
        assert pose.y == pytest.approx(0.0)
        assert pose.rotation.radians == pytest.approx(0.0)

    def test_exp_quarter_circle(self):
        # Arc of radius 1 through a quarter turn ends at (1, 1)
        pose = Pose2d().exp(Twist2d(math.pi / 2.0, 0.0, math.pi / 2.0))
        assert pose.x == pytest.approx(1.0)
        assert pose.y == pytest.approx(1.0)
        assert pose.rotation.degrees == pytest.approx(90.0)

    @pytest.mark.parametrize(
        "twist",
        [
            Twist2d(0.3, -0.1, 0.0),
            Twist2d(0.5, 0.2, 0.7),
            Twist2d(-1.0, 0.4, -2.0),
            Twist2d(0.0, 0.0, 1e-12),
        ],
    )
    def test_log_inverts_exp(self, twist):
        start = Pose2d.from_xy(1.0, -2.0, Rotation2d(0.3))
        recovered = start.log(start.exp(twist))
        assert recovered.dx == pytest.approx(twist.dx, abs=1e-9)
        assert recovered.dy == pytest.approx(twist.dy, abs=1e-9)
        assert recovered.dtheta == pytest.approx(twist.dtheta, abs=1e-9)

    def test_relative_to(self):
        pose = Pose2d.from_xy(2.0, 1.0, Rotation2d.from_degrees(90.0))
        origin = Pose2d.from_xy(1.0, 1.0, Rotation2d.from_degrees(90.0))
        relative = pose.relative_to(origin)
        assert relative.x == pytest.approx(0.0)
        assert relative.y == pytest.approx(-1.0)
        assert relative.rotation == Rotation2d()

    def test_difference_then_add_round_trips(self):
        a = Pose2d.from_xy(1.0, 2.0, Rotation2d(0.5))
        b = Pose2d.from_xy(-0.5, 3.0, Rotation2d(-1.2))
        assert a + (b - a) == b

    def test_transform_inverse(self):
        transform = Transform2d(Translation2d(1.0, 2.0), Rotation2d(0.4))
        pose = Pose2d.from_xy(3.0, -1.0, Rotation2d(1.0))
        assert pose + transform + transform.inverse() == pose

    def test_interpolate_endpoints(self):
        a = Pose2d()
        b = Pose2d.from_xy(1.0, 0.0)
        assert a.interpolate(b, 0.0) == a
        assert a.interpolate(b, 1.0) == b
        assert a.interpolate(b, 0.5).x == pytest.approx(0.5)
