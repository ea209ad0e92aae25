"""
Reduction of spectral fluxes to broadband and per-band totals

Spectral fluxes are (column, level, g-point). Broadband results are
(column, level) and per-band results (column, level, band). Net fluxes are
always formed as down minus up from the reduced fields, so the identity holds
exactly at every aggregation level.
"""

from typing import Optional

import jax
import jax.numpy as jnp
import tree_math

from jaxrte.constants import CP_DRY_AIR, GRAVITY
from jaxrte.errors import ShapeMismatchError
from jaxrte.optics.optical_props import SpectralDisc
from jaxrte.utils import is_concrete


def sum_broadband(spectral_flux: jnp.ndarray) -> jnp.ndarray:
    """Unweighted sum over g-points."""
    return jnp.sum(spectral_flux, axis=-1)


def net_broadband(flux_dn: jnp.ndarray, flux_up: jnp.ndarray) -> jnp.ndarray:
    return flux_dn - flux_up


def sum_byband(spectral_flux: jnp.ndarray, spectral_disc: SpectralDisc) -> jnp.ndarray:
    """Sum g-points within each band, (..., ngpt) -> (..., nband)."""
    n_gpt = spectral_flux.shape[-1]
    gpt_to_band = spectral_disc.gpt_to_band(n_gpt)
    by_gpt = jnp.moveaxis(spectral_flux, -1, 0)
    by_band = jax.ops.segment_sum(
        by_gpt, gpt_to_band, num_segments=spectral_disc.n_band, indices_are_sorted=True
    )
    return jnp.moveaxis(by_band, 0, -1)


def net_byband(flux_dn_byband: jnp.ndarray, flux_up_byband: jnp.ndarray) -> jnp.ndarray:
    return flux_dn_byband - flux_up_byband


def _check_spectral(spectral_disc, *fields):
    """Shape checks only; band limits traced under `jax.jit` are not read."""
    shape = fields[0].shape
    n_gpt = shape[-1]
    if spectral_disc is not None and is_concrete(spectral_disc.band_lims_gpt):
        n_gpt = spectral_disc.n_gpt
    for field in fields:
        if field is None:
            continue
        if field.shape != shape or field.ndim != 3 or field.shape[-1] != n_gpt:
            raise ShapeMismatchError(
                f'spectral fluxes must share a (column, level, {n_gpt}) shape, '
                f'got {field.shape} and {shape}'
            )


@tree_math.struct
class FluxesBroadband:
    """Broadband fluxes on levels (ncol, nlev)"""

    flux_up: jnp.ndarray
    flux_dn: jnp.ndarray
    flux_net: jnp.ndarray
    flux_dn_dir: Optional[jnp.ndarray] = None
    flux_up_jac: Optional[jnp.ndarray] = None

    @classmethod
    def reduce(
        cls, flux_up, flux_dn, spectral_disc: SpectralDisc = None, flux_dn_dir=None, flux_up_jac=None,
    ):
        """
        Reduce spectral fluxes, or wrap fluxes the solver already reduced.

        Two-dimensional inputs are taken as broadband. A broadband sum needs
        no band map, so `spectral_disc` only adds a g-point count check and
        may be omitted.
        """
        if flux_up.ndim == 3:
            _check_spectral(spectral_disc, flux_up, flux_dn, flux_dn_dir, flux_up_jac)
            flux_up = sum_broadband(flux_up)
            flux_dn = sum_broadband(flux_dn)
            if flux_dn_dir is not None:
                flux_dn_dir = sum_broadband(flux_dn_dir)
            if flux_up_jac is not None:
                flux_up_jac = sum_broadband(flux_up_jac)
        elif flux_up.shape != flux_dn.shape or flux_up.ndim != 2:
            raise ShapeMismatchError(
                f'broadband fluxes must share a (column, level) shape, got '
                f'{flux_up.shape} and {flux_dn.shape}'
            )
        return cls(
            flux_up=flux_up,
            flux_dn=flux_dn,
            flux_net=net_broadband(flux_dn, flux_up),
            flux_dn_dir=flux_dn_dir,
            flux_up_jac=flux_up_jac,
        )


@tree_math.struct
class FluxesByband:
    """Broadband fluxes plus per-band fluxes on levels (ncol, nlev, nband)"""

    broadband: FluxesBroadband
    bnd_flux_up: jnp.ndarray
    bnd_flux_dn: jnp.ndarray
    bnd_flux_net: jnp.ndarray
    bnd_flux_dn_dir: Optional[jnp.ndarray] = None

    @classmethod
    def reduce(cls, flux_up, flux_dn, spectral_disc: SpectralDisc, flux_dn_dir=None, flux_up_jac=None):
        """Reduce spectral fluxes to broadband and per-band totals."""
        _check_spectral(spectral_disc, flux_up, flux_dn, flux_dn_dir, flux_up_jac)
        bnd_flux_up = sum_byband(flux_up, spectral_disc)
        bnd_flux_dn = sum_byband(flux_dn, spectral_disc)
        bnd_flux_dn_dir = None
        if flux_dn_dir is not None:
            bnd_flux_dn_dir = sum_byband(flux_dn_dir, spectral_disc)
        return cls(
            broadband=FluxesBroadband.reduce(
                flux_up, flux_dn, spectral_disc, flux_dn_dir, flux_up_jac
            ),
            bnd_flux_up=bnd_flux_up,
            bnd_flux_dn=bnd_flux_dn,
            bnd_flux_net=net_byband(bnd_flux_dn, bnd_flux_up),
            bnd_flux_dn_dir=bnd_flux_dn_dir,
        )

    @property
    def flux_up(self):
        return self.broadband.flux_up

    @property
    def flux_dn(self):
        return self.broadband.flux_dn

    @property
    def flux_net(self):
        return self.broadband.flux_net

    @property
    def flux_dn_dir(self):
        return self.broadband.flux_dn_dir

    @property
    def flux_up_jac(self):
        return self.broadband.flux_up_jac


def heating_rate(
    flux_up: jnp.ndarray,
    flux_dn: jnp.ndarray,
    p_lev: jnp.ndarray,
    g: float = GRAVITY,
    cp: float = CP_DRY_AIR,
) -> jnp.ndarray:
    """
    Convert flux divergence to heating rate.

    dT/dt = -g/cp * dF/dp

    Args:
        flux_up: Upward flux on levels [W/m²] (ncol, nlev)
        flux_dn: Downward flux on levels [W/m²] (ncol, nlev)
        p_lev: Pressure on levels [Pa] (ncol, nlev), either orientation
        g: Gravitational acceleration [m/s²]
        cp: Specific heat capacity [J/kg/K]

    Returns:
        Heating rate [K/s] (ncol, nlay)
    """
    if flux_up.shape != flux_dn.shape or p_lev.shape != flux_up.shape:
        raise ShapeMismatchError(
            f'fluxes {flux_up.shape}, {flux_dn.shape} and pressure {p_lev.shape} '
            'must share a shape'
        )
    flux_div = jnp.diff(net_broadband(flux_dn, flux_up), axis=1)
    dp = jnp.diff(p_lev, axis=1)
    return (g / cp) * (-flux_div) / dp
