"""Eager input checks shared by the optics containers and the solvers."""

import jax
import numpy as np

from jaxrte.errors import DomainViolationError, InvalidDimensionError, ShapeMismatchError


def is_concrete(*arrays) -> bool:
    """False when any of `arrays` is an abstract tracer inside `jax.jit`."""
    for x in arrays:
        try:
            np.asarray(x)
        except (jax.errors.TracerArrayConversionError, jax.errors.ConcretizationTypeError):
            return False
    return True


def check_dims(**dims):
    """Raise if any named extent is negative."""
    for name, n in dims.items():
        if n < 0:
            raise InvalidDimensionError(f'{name} must be non-negative, got {n}')


def check_shape(name, field, expected):
    if tuple(field.shape) != tuple(expected):
        raise ShapeMismatchError(
            f'{name} has shape {tuple(field.shape)}, expected {tuple(expected)}'
        )


def check_range(name, field, lower=None, upper=None):
    """Raise `DomainViolationError` if a concrete field leaves [lower, upper].

    NaNs count as violations. Skipped under tracing.
    """
    if field is None or not is_concrete(field):
        return
    values = np.asarray(field)
    if values.size == 0:
        return
    if np.any(np.isnan(values)):
        raise DomainViolationError(f'{name} contains NaN')
    if lower is not None and np.min(values) < lower:
        raise DomainViolationError(f'{name} has values below {lower}: min={np.min(values)}')
    if upper is not None and np.max(values) > upper:
        raise DomainViolationError(f'{name} has values above {upper}: max={np.max(values)}')


def check_column_range(col_start, col_end, n_col):
    if not 0 <= col_start <= col_end <= n_col:
        raise InvalidDimensionError(
            f'column range [{col_start}, {col_end}) outside [0, {n_col})'
        )
