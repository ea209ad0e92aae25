"""
Helpers shared by the longwave and shortwave solvers

Layer recurrences run along axis 1 of (column, layer, g-point) fields and are
carried across (column, g-point) slabs, so every column and g-point advances
together.
"""

import jax
import jax.numpy as jnp

from jaxrte.errors import ShapeMismatchError


def layer_recurrence(step, init, xs, reverse=False, use_scan=True):
    """
    Run `step` over the layer axis of every field in `xs`.

    Args:
        step: `(carry, x) -> (carry, y)` on (column, g-point) slabs
        init: Initial carry (column, g-point)
        xs: Tuple of (column, layer, g-point) fields
        reverse: March from the last layer to the first
        use_scan: Use `jax.lax.scan`; otherwise unroll a Python loop

    Returns:
        Tuple of (final carry, outputs stacked to (column, layer, g-point))
    """
    xs = tuple(jnp.moveaxis(x, 1, 0) for x in xs)
    if use_scan:
        carry, ys = jax.lax.scan(step, init, xs, reverse=reverse)
    else:
        n_lay = xs[0].shape[0]
        indices = range(n_lay - 1, -1, -1) if reverse else range(n_lay)
        carry = init
        outputs = [None] * n_lay
        for i in indices:
            carry, outputs[i] = step(carry, tuple(x[i] for x in xs))
        ys = jax.tree_util.tree_map(lambda *y: jnp.stack(y), *outputs)
    return carry, jax.tree_util.tree_map(lambda y: jnp.moveaxis(y, 0, 1), ys)


def flip_levels(x):
    """Reverse the layer (or level) axis of a (column, layer, ...) field."""
    return jnp.flip(x, axis=1)


def expand_to_gpoints(name, field, disc, n_col, n_gpt):
    """
    Broadcast a per-(column, band) boundary condition to (column, g-point).

    Fields already given per g-point pass through unchanged.
    """
    field = jnp.asarray(field)
    if field.ndim == 2 and field.shape[0] == n_col:
        if field.shape[1] == n_gpt:
            return field
        if field.shape[1] == disc.n_band:
            return disc.expand(field, n_gpt)
    raise ShapeMismatchError(
        f'{name} has shape {tuple(field.shape)}, expected ({n_col}, {disc.n_band}) '
        f'per band or ({n_col}, {n_gpt}) per g-point'
    )
