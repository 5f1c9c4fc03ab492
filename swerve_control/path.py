"""Reference path for simulation runs.

This module defines a Lemniscate of Gerono (figure-eight) that a swerve
drivetrain can track without turning: position and field-relative velocity
are both available in closed form, so the simulation runner can feed the
velocity forward and correct position error on top of it.
"""

import numpy as np
import numpy.typing as npt

from .model import ChassisSpeeds

PATH_PERIOD = 20.0
"""Time to complete one figure-eight (seconds)."""


def compute_k(t: float) -> float:
    """Compute the path parameter k based on time t.

    Args:
        t: Time in seconds

    Returns:
        Path parameter k in radians
    """
    k = np.pi * t / (PATH_PERIOD / 2.0) - np.pi / 2.0 if t < PATH_PERIOD else 3.0 * np.pi / 2.0
    return k


def reference_position(t: float) -> tuple[float, float]:
    """Compute reference position (x, y) for the Lemniscate of Gerono at time t.

    The curve is defined by:
        x = -2 * sin(k) * cos(k)
        y = 2 * (sin(k) + 1)

    It starts and ends at the origin.

    Args:
        t: Time in seconds

    Returns:
        Tuple of (x_ref, y_ref) in meters
    """
    k = compute_k(t)
    x_ref = -2.0 * np.sin(k) * np.cos(k)
    y_ref = 2.0 * (np.sin(k) + 1.0)
    return float(x_ref), float(y_ref)


def reference_velocity(t: float) -> tuple[float, float]:
    """Compute field-relative reference velocity (vx, vy) at time t.

    Uses the chain rule on the parametric equations:
        x = -sin(2k)       ->  dx/dk = -2 * cos(2k)
        y = 2 * (sin(k)+1) ->  dy/dk = 2 * cos(k)

    Args:
        t: Time in seconds

    Returns:
        Tuple of (vx_ref, vy_ref) in m/s. Zero once the path is complete.
    """
    if t >= PATH_PERIOD:
        return 0.0, 0.0

    k = compute_k(t)
    dk_dt = np.pi / (PATH_PERIOD / 2.0)
    vx_ref = -2.0 * np.cos(2.0 * k) * dk_dt
    vy_ref = 2.0 * np.cos(k) * dk_dt
    return float(vx_ref), float(vy_ref)


def reference_speeds(t: float, omega: float = 0.0) -> ChassisSpeeds:
    """Field-relative reference ChassisSpeeds at time t.

    Args:
        t: Time in seconds
        omega: Constant spin rate to add (rad/s). Default: no rotation.
    """
    vx, vy = reference_velocity(t)
    return ChassisSpeeds(vx, vy, omega if t < PATH_PERIOD else 0.0)


def path_trajectory(t_max: float = PATH_PERIOD, dt: float = 0.1) -> dict[str, npt.NDArray[np.float64]]:
    """Generate the sampled reference path.

    Args:
        t_max: Maximum time in seconds (default: PATH_PERIOD)
        dt: Time step in seconds (default: 0.1)

    Returns:
        Dictionary containing:
            't': Time array in seconds
            'x': X position array in meters
            'y': Y position array in meters
    """
    t_array = np.arange(0.0, t_max + dt, dt)
    x_array = np.zeros_like(t_array)
    y_array = np.zeros_like(t_array)

    for i, t in enumerate(t_array):
        x_array[i], y_array[i] = reference_position(t)

    return {
        "t": t_array,
        "x": x_array,
        "y": y_array,
    }
