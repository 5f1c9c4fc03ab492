"""Planar geometry value types for the swerve control system.

Headings are stored as unit vectors (cos, sin) so composing rotations never
sees a discontinuity at ±180°. The radian value is kept alongside and only
matters at the boundary (logging, telemetry, degrees for the gyro).

Frame conventions:
    +x forward, +y left, counter-clockwise rotation positive.

All types are immutable; every operation returns a new object.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Optional

_EPSILON = 1e-9


class Rotation2d:
    """A heading represented as a point on the unit circle.

    Attributes:
        radians: Angle in radians. Rotations built by composition (`+`, `-`,
            `from_components`) are wrapped to (-π, π]; the constructor,
            `times` and unary minus keep the value as given. A non-finite
            angle is replaced by 0.
        degrees: Angle in degrees.
        cos: Cosine of the angle.
        sin: Sine of the angle.
    """

    __slots__ = ("_value", "_cos", "_sin")

    def __init__(self, value: float = 0.0) -> None:
        value = float(value)
        if not math.isfinite(value):
            logging.debug(f"Non-finite Rotation2d angle {value}, using angle 0")
            value = 0.0
        self._value = value
        self._cos = math.cos(value)
        self._sin = math.sin(value)

    @classmethod
    def from_radians(cls, radians: float) -> "Rotation2d":
        return cls(radians)

    @classmethod
    def from_degrees(cls, degrees: float) -> "Rotation2d":
        return cls(math.radians(degrees))

    @classmethod
    def from_components(cls, x: float, y: float) -> "Rotation2d":
        """Build a rotation pointing along the vector (x, y).

        A vector too short to have a direction (or one containing NaN) yields
        angle 0 instead of raising, so callers on the control loop never see
        an exception from a zero-speed module.

        Args:
            x: X component of the direction vector.
            y: Y component of the direction vector.

        Returns:
            Rotation2d whose unit vector is (x, y) normalized.
        """
        magnitude = math.hypot(x, y)
        if magnitude > 1e-6 and math.isfinite(magnitude):
            cos, sin = x / magnitude, y / magnitude
        else:
            logging.debug(f"x and y components of Rotation2d are zero ({x}, {y}), using angle 0")
            cos, sin = 1.0, 0.0

        rotation = cls.__new__(cls)
        rotation._cos = cos
        rotation._sin = sin
        rotation._value = math.atan2(sin, cos)
        return rotation

    @property
    def radians(self) -> float:
        return self._value

    @property
    def degrees(self) -> float:
        return math.degrees(self._value)

    @property
    def cos(self) -> float:
        return self._cos

    @property
    def sin(self) -> float:
        return self._sin

    @property
    def tan(self) -> float:
        return self._sin / self._cos

    def rotate_by(self, other: "Rotation2d") -> "Rotation2d":
        """Compose two rotations (complex multiplication)."""
        return Rotation2d.from_components(
            self._cos * other._cos - self._sin * other._sin,
            self._cos * other._sin + self._sin * other._cos,
        )

    def plus(self, other: "Rotation2d") -> "Rotation2d":
        return self.rotate_by(other)

    def minus(self, other: "Rotation2d") -> "Rotation2d":
        return self.rotate_by(-other)

    def unary_minus(self) -> "Rotation2d":
        return Rotation2d(-self._value)

    def times(self, scalar: float) -> "Rotation2d":
        return Rotation2d(self._value * scalar)

    def interpolate(self, end: "Rotation2d", t: float) -> "Rotation2d":
        """Interpolate along the shortest arc towards `end`.

        Args:
            end: Rotation at t = 1.
            t: Interpolation parameter, clamped to [0, 1].
        """
        t = max(0.0, min(1.0, t))
        return self + (end - self) * t

    def __add__(self, other: "Rotation2d") -> "Rotation2d":
        return self.plus(other)

    def __sub__(self, other: "Rotation2d") -> "Rotation2d":
        return self.minus(other)

    def __neg__(self) -> "Rotation2d":
        return self.unary_minus()

    def __mul__(self, scalar: float) -> "Rotation2d":
        return self.times(scalar)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Rotation2d):
            return NotImplemented
        return math.hypot(self._cos - other._cos, self._sin - other._sin) < _EPSILON

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Rotation2d(radians={self._value:.6f}, degrees={self.degrees:.2f})"


@dataclass(frozen=True, eq=False)
class Translation2d:
    """A displacement or fixed offset in the plane (meters)."""

    x: float = 0.0
    y: float = 0.0

    @property
    def norm(self) -> float:
        return math.hypot(self.x, self.y)

    @property
    def angle(self) -> Rotation2d:
        return Rotation2d.from_components(self.x, self.y)

    def rotate_by(self, rotation: Rotation2d) -> "Translation2d":
        return Translation2d(
            self.x * rotation.cos - self.y * rotation.sin,
            self.x * rotation.sin + self.y * rotation.cos,
        )

    def distance(self, other: "Translation2d") -> float:
        return math.hypot(other.x - self.x, other.y - self.y)

    def interpolate(self, end: "Translation2d", t: float) -> "Translation2d":
        t = max(0.0, min(1.0, t))
        return Translation2d(self.x + (end.x - self.x) * t, self.y + (end.y - self.y) * t)

    def __add__(self, other: "Translation2d") -> "Translation2d":
        return Translation2d(self.x + other.x, self.y + other.y)

    def __sub__(self, other: "Translation2d") -> "Translation2d":
        return Translation2d(self.x - other.x, self.y - other.y)

    def __neg__(self) -> "Translation2d":
        return Translation2d(-self.x, -self.y)

    def __mul__(self, scalar: float) -> "Translation2d":
        return Translation2d(self.x * scalar, self.y * scalar)

    def __truediv__(self, scalar: float) -> "Translation2d":
        return Translation2d(self.x / scalar, self.y / scalar)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Translation2d):
            return NotImplemented
        return abs(self.x - other.x) < _EPSILON and abs(self.y - other.y) < _EPSILON

    __hash__ = None  # type: ignore[assignment]


@dataclass(frozen=True)
class Twist2d:
    """Differential motion along a constant-curvature arc.

    Attributes:
        dx: Forward displacement (m).
        dy: Leftward displacement (m).
        dtheta: Change in heading (rad).
    """

    dx: float = 0.0
    dy: float = 0.0
    dtheta: float = 0.0

    def __mul__(self, scalar: float) -> "Twist2d":
        return Twist2d(self.dx * scalar, self.dy * scalar, self.dtheta * scalar)


@dataclass(frozen=True, eq=False)
class Transform2d:
    """A rigid transformation from one pose to another."""

    translation: Translation2d = field(default_factory=Translation2d)
    rotation: Rotation2d = field(default_factory=Rotation2d)

    @classmethod
    def between(cls, initial: "Pose2d", final: "Pose2d") -> "Transform2d":
        """Transform that maps `initial` onto `final`, expressed in `initial`'s frame."""
        return cls(
            (final.translation - initial.translation).rotate_by(-initial.rotation),
            final.rotation - initial.rotation,
        )

    @property
    def x(self) -> float:
        return self.translation.x

    @property
    def y(self) -> float:
        return self.translation.y

    def inverse(self) -> "Transform2d":
        return Transform2d((-self.translation).rotate_by(-self.rotation), -self.rotation)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Transform2d):
            return NotImplemented
        return self.translation == other.translation and self.rotation == other.rotation

    __hash__ = None  # type: ignore[assignment]


@dataclass(frozen=True, eq=False)
class Pose2d:
    """Position and heading on the field.

    Attributes:
        translation: Position in the field frame (m).
        rotation: Heading in the field frame.
    """

    translation: Translation2d = field(default_factory=Translation2d)
    rotation: Rotation2d = field(default_factory=Rotation2d)

    @classmethod
    def from_xy(cls, x: float, y: float, rotation: Optional[Rotation2d] = None) -> "Pose2d":
        return cls(Translation2d(x, y), rotation if rotation is not None else Rotation2d())

    @property
    def x(self) -> float:
        return self.translation.x

    @property
    def y(self) -> float:
        return self.translation.y

    def transform_by(self, transform: Transform2d) -> "Pose2d":
        return Pose2d(
            self.translation + transform.translation.rotate_by(self.rotation),
            transform.rotation + self.rotation,
        )

    def relative_to(self, other: "Pose2d") -> "Pose2d":
        """Express this pose in the frame of `other`."""
        transform = Transform2d.between(other, self)
        return Pose2d(transform.translation, transform.rotation)

    def exp(self, twist: Twist2d) -> "Pose2d":
        """Apply a twist (constant-curvature motion) to this pose.

        Uses the SE(2) exponential map, with a Taylor expansion near zero
        rotation to avoid dividing by a vanishing angle.

        Args:
            twist: Motion expressed in this pose's frame.

        Returns:
            The pose reached after following the arc.
        """
        dx, dy, dtheta = twist.dx, twist.dy, twist.dtheta

        sin_theta = math.sin(dtheta)
        cos_theta = math.cos(dtheta)

        if abs(dtheta) < _EPSILON:
            s = 1.0 - dtheta * dtheta / 6.0
            c = 0.5 * dtheta
        else:
            s = sin_theta / dtheta
            c = (1.0 - cos_theta) / dtheta

        transform = Transform2d(
            Translation2d(dx * s - dy * c, dx * c + dy * s),
            Rotation2d.from_components(cos_theta, sin_theta),
        )
        return self + transform

    def log(self, end: "Pose2d") -> Twist2d:
        """Return the twist that takes this pose to `end` (inverse of `exp`).

        Args:
            end: Target pose.

        Returns:
            Twist2d in this pose's frame.
        """
        transform = end.relative_to(self)
        dtheta = transform.rotation.radians
        half_dtheta = dtheta / 2.0

        cos_minus_one = transform.rotation.cos - 1.0

        if abs(cos_minus_one) < _EPSILON:
            half_theta_by_tan_of_half_dtheta = 1.0 - dtheta * dtheta / 12.0
        else:
            half_theta_by_tan_of_half_dtheta = -(half_dtheta * transform.rotation.sin) / cos_minus_one

        translation_part = transform.translation.rotate_by(
            Rotation2d.from_components(half_theta_by_tan_of_half_dtheta, -half_dtheta)
        ) * math.hypot(half_theta_by_tan_of_half_dtheta, half_dtheta)

        return Twist2d(translation_part.x, translation_part.y, dtheta)

    def interpolate(self, end: "Pose2d", t: float) -> "Pose2d":
        """Interpolate along the twist between this pose and `end`."""
        if t <= 0.0:
            return self
        if t >= 1.0:
            return end
        return self.exp(self.log(end) * t)

    def __add__(self, transform: Transform2d) -> "Pose2d":
        return self.transform_by(transform)

    def __sub__(self, other: "Pose2d") -> Transform2d:
        pose = self.relative_to(other)
        return Transform2d(pose.translation, pose.rotation)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Pose2d):
            return NotImplemented
        return self.translation == other.translation and self.rotation == other.rotation

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Pose2d(x={self.x:.4f}, y={self.y:.4f}, degrees={self.rotation.degrees:.2f})"
