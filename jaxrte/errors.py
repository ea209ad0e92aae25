"""Exceptions raised by the radiative transfer core.

All of them are raised eagerly, at container construction or at solver entry,
before any jitted kernel runs.
"""


class RteError(ValueError):
    """Base class for malformed radiative transfer inputs."""


class ShapeMismatchError(RteError):
    """Operand extents or band structures disagree."""


class InvalidDimensionError(RteError):
    """A column, layer, g-point or angle count is out of range."""


class DomainViolationError(RteError):
    """A field holds values outside its physical domain."""
