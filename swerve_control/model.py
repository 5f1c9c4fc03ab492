"""
Swerve drive kinematic model.

This module provides the kinematics for a four-module swerve drivetrain:
converting whole-chassis velocities into per-module (speed, angle) commands
and recovering chassis motion from module readings.

For a module mounted at offset r = (x_i, y_i) from the chassis center, the
module velocity is the chassis velocity plus the tangential velocity induced
by rotation (v_module = v_chassis + ω × r):
    vx_i = vx - ω * y_i
    vy_i = vy + ω * x_i

Stacking all modules gives an 8×3 linear map. The inverse direction (module
readings → chassis motion) is over-determined, so it is solved in the
least-squares sense with the pseudo-inverse of that map, computed once.

Post-processing helpers:
- `desaturate_wheel_speeds`: uniform scale-down to a module speed ceiling
- `discretize`: compensate a held velocity command for arc motion over dt
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from .errors import ConstructionError
from .geometry import Pose2d, Rotation2d, Translation2d, Twist2d

NUM_MODULES = 4


@dataclass(frozen=True)
class ChassisSpeeds:
    """Whole-chassis velocity.

    The type does not record its frame; callers track whether a value is
    robot-relative or field-relative.

    Attributes:
        vx: Forward (or field +x) velocity (m/s).
        vy: Leftward (or field +y) velocity (m/s).
        omega: Angular velocity (rad/s), counter-clockwise positive.
    """

    vx: float = 0.0
    vy: float = 0.0
    omega: float = 0.0

    @classmethod
    def from_field_relative(cls, speeds: "ChassisSpeeds", robot_angle: Rotation2d) -> "ChassisSpeeds":
        """Convert field-relative speeds into the robot frame.

        Args:
            speeds: Field-relative chassis speeds.
            robot_angle: Current robot heading in the field frame.

        Returns:
            Robot-relative chassis speeds.
        """
        rotated = Translation2d(speeds.vx, speeds.vy).rotate_by(-robot_angle)
        return cls(rotated.x, rotated.y, speeds.omega)

    @classmethod
    def from_robot_relative(cls, speeds: "ChassisSpeeds", robot_angle: Rotation2d) -> "ChassisSpeeds":
        """Convert robot-relative speeds into the field frame."""
        rotated = Translation2d(speeds.vx, speeds.vy).rotate_by(robot_angle)
        return cls(rotated.x, rotated.y, speeds.omega)

    def discretize(self, dt: float) -> "ChassisSpeeds":
        return discretize(self, dt)

    def __add__(self, other: "ChassisSpeeds") -> "ChassisSpeeds":
        return ChassisSpeeds(self.vx + other.vx, self.vy + other.vy, self.omega + other.omega)

    def __sub__(self, other: "ChassisSpeeds") -> "ChassisSpeeds":
        return ChassisSpeeds(self.vx - other.vx, self.vy - other.vy, self.omega - other.omega)

    def __neg__(self) -> "ChassisSpeeds":
        return ChassisSpeeds(-self.vx, -self.vy, -self.omega)

    def __mul__(self, scalar: float) -> "ChassisSpeeds":
        return ChassisSpeeds(self.vx * scalar, self.vy * scalar, self.omega * scalar)

    def __truediv__(self, scalar: float) -> "ChassisSpeeds":
        return ChassisSpeeds(self.vx / scalar, self.vy / scalar, self.omega / scalar)


@dataclass(frozen=True)
class ModuleState:
    """Instantaneous velocity of one module in its own steering frame.

    Attributes:
        speed: Wheel linear speed (m/s). Negative means driving backwards.
        angle: Steering angle relative to the chassis.
    """

    speed: float = 0.0
    angle: Rotation2d = field(default_factory=Rotation2d)

    def optimize(self, current_angle: Rotation2d) -> "ModuleState":
        """Minimize steering travel from `current_angle`.

        If reaching the target angle needs more than 90° of steering, the
        wheel is pointed the opposite way and driven backwards instead.

        Args:
            current_angle: Measured steering angle of the module.

        Returns:
            Equivalent ModuleState with at most 90° of steering change.
        """
        delta = self.angle - current_angle
        if abs(delta.radians) > math.pi / 2.0:
            return ModuleState(-self.speed, self.angle.rotate_by(Rotation2d(math.pi)))
        return self


@dataclass(frozen=True)
class ModulePosition:
    """Cumulative odometry reading of one module.

    Attributes:
        distance: Total wheel travel since power-on (m). Never reset per cycle.
        angle: Steering angle relative to the chassis.
    """

    distance: float = 0.0
    angle: Rotation2d = field(default_factory=Rotation2d)

    def interpolate(self, end: "ModulePosition", t: float) -> "ModulePosition":
        t = max(0.0, min(1.0, t))
        return ModulePosition(
            self.distance + (end.distance - self.distance) * t,
            self.angle.interpolate(end.angle, t),
        )


class SwerveDriveKinematics:
    """Transform between chassis velocity and the four module vectors.

    The geometry is fixed at construction and never mutated, so one instance
    can be shared read-only by the drivetrain, odometry and pose estimator.

    Attributes:
        module_translations: Module offsets from chassis center, in order.
    """

    def __init__(self, *module_translations: Translation2d):
        """Initialize the kinematics for a fixed module geometry.

        Args:
            *module_translations: Offsets of the four modules from the chassis
                center (meters). Order defines module numbering.

        Raises:
            ConstructionError: If there are not exactly four modules, or the
                offsets all lie on one line through the chassis center
                (including all at the center).
        """
        if len(module_translations) != NUM_MODULES:
            raise ConstructionError(
                f"Swerve kinematics requires {NUM_MODULES} modules, got {len(module_translations)}"
            )

        self.module_translations = tuple(module_translations)

        offsets = np.array([[t.x, t.y] for t in self.module_translations])
        if np.linalg.matrix_rank(offsets) < 2:
            raise ConstructionError(
                "Degenerate module geometry: module offsets must not all be collinear through the center"
            )

        # Inverse kinematics matrix (8×3), for rotation about the chassis center
        self._inverse_kinematics = self._build_inverse_matrix(Translation2d())

        # Forward kinematics: least-squares solve, fixed per geometry
        self._forward_kinematics = np.linalg.pinv(self._inverse_kinematics)

    @property
    def num_modules(self) -> int:
        return len(self.module_translations)

    def _build_inverse_matrix(self, center_of_rotation: Translation2d) -> np.ndarray:
        matrix = np.zeros((self.num_modules * 2, 3))
        for i, translation in enumerate(self.module_translations):
            x = translation.x - center_of_rotation.x
            y = translation.y - center_of_rotation.y
            matrix[i * 2, :] = [1.0, 0.0, -y]
            matrix[i * 2 + 1, :] = [0.0, 1.0, x]
        return matrix

    def to_module_states(
        self,
        chassis_speeds: ChassisSpeeds,
        center_of_rotation: Optional[Translation2d] = None,
    ) -> List[ModuleState]:
        """Compute module states from a robot-relative chassis velocity.

        Args:
            chassis_speeds: Desired robot-relative chassis speeds.
            center_of_rotation: Point the chassis rotates about, relative to
                the chassis center. Default: the chassis center.

        Returns:
            One ModuleState per module, in module order. Speeds are never
            negative; a module with no velocity reports angle 0.
        """
        if center_of_rotation is None or center_of_rotation == Translation2d():
            matrix = self._inverse_kinematics
        else:
            matrix = self._build_inverse_matrix(center_of_rotation)

        chassis_vector = np.array([chassis_speeds.vx, chassis_speeds.vy, chassis_speeds.omega])
        module_vector = matrix @ chassis_vector

        states = []
        for i in range(self.num_modules):
            x = float(module_vector[i * 2])
            y = float(module_vector[i * 2 + 1])
            states.append(ModuleState(math.hypot(x, y), Rotation2d.from_components(x, y)))
        return states

    def to_chassis_speeds(self, module_states: Sequence[ModuleState]) -> ChassisSpeeds:
        """Recover the best-fit robot-relative chassis velocity.

        Args:
            module_states: Measured module states, in module order.

        Returns:
            Least-squares ChassisSpeeds consistent with the readings.

        Raises:
            ValueError: If the number of states does not match the geometry.
        """
        self._check_count(module_states)

        module_vector = np.zeros(self.num_modules * 2)
        for i, state in enumerate(module_states):
            module_vector[i * 2] = state.speed * state.angle.cos
            module_vector[i * 2 + 1] = state.speed * state.angle.sin

        vx, vy, omega = self._forward_kinematics @ module_vector
        return ChassisSpeeds(float(vx), float(vy), float(omega))

    def to_twist2d(
        self,
        start_positions: Sequence[ModulePosition],
        end_positions: Sequence[ModulePosition],
    ) -> Twist2d:
        """Recover the chassis displacement between two module samples.

        The per-module distance deltas are treated as displacements along the
        end-sample steering angle and solved like a velocity.

        Args:
            start_positions: Module positions at the start of the interval.
            end_positions: Module positions at the end of the interval.

        Returns:
            Least-squares Twist2d in the robot frame.

        Raises:
            ValueError: If either sequence does not match the geometry.
        """
        self._check_count(start_positions)
        self._check_count(end_positions)

        module_vector = np.zeros(self.num_modules * 2)
        for i, (start, end) in enumerate(zip(start_positions, end_positions)):
            delta = end.distance - start.distance
            module_vector[i * 2] = delta * end.angle.cos
            module_vector[i * 2 + 1] = delta * end.angle.sin

        dx, dy, dtheta = self._forward_kinematics @ module_vector
        return Twist2d(float(dx), float(dy), float(dtheta))

    def _check_count(self, items: Sequence) -> None:
        if len(items) != self.num_modules:
            raise ValueError(
                f"Number of modules is not consistent with number of module locations "
                f"provided in constructor (expected {self.num_modules}, got {len(items)})"
            )


def peak_module_speed(module_states: Sequence[ModuleState]) -> float:
    """Largest finite module speed magnitude, 0 if there is none.

    Non-finite speeds are skipped so one bad module cannot hide another that
    is over the limit.
    """
    return max(
        (abs(state.speed) for state in module_states if math.isfinite(state.speed)),
        default=0.0,
    )


def desaturate_wheel_speeds(
    module_states: Sequence[ModuleState], max_speed: float
) -> List[ModuleState]:
    """Scale module speeds down uniformly so none exceeds `max_speed`.

    All modules are scaled by the same ratio, so the commanded motion keeps its
    shape (direction and curvature) while respecting the hardware limit.
    Angles are never changed. Applying it twice gives the same result as once.

    Args:
        module_states: Module states to limit.
        max_speed: Maximum attainable module speed (m/s).

    Returns:
        New list of module states. Unchanged when already within the limit.
    """
    states = list(module_states)
    if not states or not max_speed > 0.0:
        return states

    real_max_speed = peak_module_speed(states)
    if real_max_speed > max_speed:
        # speed / peak is exactly ±1 for the peak module, keeping this idempotent
        return [
            ModuleState(state.speed / real_max_speed * max_speed, state.angle) for state in states
        ]
    return states


def desaturate_wheel_speeds_with_limits(
    module_states: Sequence[ModuleState],
    desired_chassis_speeds: ChassisSpeeds,
    attainable_max_module_speed: float,
    attainable_max_translational_speed: float,
    attainable_max_rotational_speed: float,
) -> List[ModuleState]:
    """Scale module speeds against both module and chassis-level limits.

    Useful when the drivetrain cannot reach full module speed while also
    translating and rotating at full rate.

    Args:
        module_states: Module states to limit.
        desired_chassis_speeds: Chassis speeds the states were computed from.
        attainable_max_module_speed: Module speed ceiling (m/s).
        attainable_max_translational_speed: Chassis translation ceiling (m/s).
        attainable_max_rotational_speed: Chassis rotation ceiling (rad/s).

    Returns:
        New list of module states.
    """
    states = list(module_states)
    if not states:
        return states

    real_max_speed = peak_module_speed(states)
    if (
        attainable_max_translational_speed == 0.0
        or attainable_max_rotational_speed == 0.0
        or real_max_speed == 0.0
    ):
        return states

    translational_k = (
        math.hypot(desired_chassis_speeds.vx, desired_chassis_speeds.vy)
        / attainable_max_translational_speed
    )
    rotational_k = abs(desired_chassis_speeds.omega) / attainable_max_rotational_speed
    k = max(translational_k, rotational_k)

    scale = min(k * attainable_max_module_speed / real_max_speed, 1.0)
    return [ModuleState(state.speed * scale, state.angle) for state in states]


def discretize(chassis_speeds: ChassisSpeeds, dt: float) -> ChassisSpeeds:
    """Compensate a velocity command held for `dt` for arc motion.

    A command held constant while rotating traces an arc, not a line, so the
    robot drifts sideways. This builds the pose reached by a straight-line
    displacement (vx*dt, vy*dt, ω*dt) and returns the twist that reaches it,
    divided by dt. The translation is rotated back by half the angular
    displacement (-ω*dt/2) and stretched by the arc/chord ratio.

    Reduces to the identity when ω = 0.

    Args:
        chassis_speeds: Continuous robot-relative chassis speeds.
        dt: Duration the command is held (seconds).

    Returns:
        Discretized ChassisSpeeds. Returned unchanged if dt is not positive or
        the displacement is not finite.
    """
    if not dt > 0.0 or not math.isfinite(dt):
        logging.debug(f"Skipping discretization for non-positive dt={dt}")
        return chassis_speeds
    if not all(
        math.isfinite(value * dt)
        for value in (chassis_speeds.vx, chassis_speeds.vy, chassis_speeds.omega)
    ):
        logging.debug(f"Skipping discretization for non-finite speeds {chassis_speeds}")
        return chassis_speeds

    desired_delta_pose = Pose2d(
        Translation2d(chassis_speeds.vx * dt, chassis_speeds.vy * dt),
        Rotation2d(chassis_speeds.omega * dt),
    )
    twist = Pose2d().log(desired_delta_pose)

    return ChassisSpeeds(twist.dx / dt, twist.dy / dt, twist.dtheta / dt)
