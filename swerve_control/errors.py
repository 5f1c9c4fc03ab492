"""Exceptions raised by the swerve control package.

Only construction-time problems are fatal. Conditions met during the control
loop (stale vision data, desaturated commands) are counted and logged by the
component that sees them instead of being raised.
"""


class ConstructionError(RuntimeError):
    """Raised once at startup when the drivetrain cannot be built.

    Covers malformed module geometry and configuration that cannot be loaded.
    """
