"""
Type definitions for the radiative transfer solvers

Fluxes are defined on levels: (column, level, g-point) for spectral output,
(column, level) once reduced to broadband.
"""

import jax.numpy as jnp
from typing import NamedTuple, Optional, Protocol


class SpectralFluxes(NamedTuple):
    """Solver output"""

    flux_up: jnp.ndarray                       # Upward flux [W/m²]
    flux_dn: jnp.ndarray                       # Downward flux, direct included [W/m²]
    flux_dn_dir: Optional[jnp.ndarray] = None  # Downward direct-beam flux (SW only)
    flux_up_jac: Optional[jnp.ndarray] = None  # d(flux_up)/d(T_sfc) (LW only)


class KernelObserver(Protocol):
    """Instrumentation hook called before each solver kernel runs."""

    def __call__(self, kernel_name: str, n_col: int, n_lay: int, n_gpt: int) -> None:
        ...


def notify(context: Optional[KernelObserver], kernel_name: str, n_col, n_lay, n_gpt):
    if context is not None:
        context(kernel_name, n_col, n_lay, n_gpt)
