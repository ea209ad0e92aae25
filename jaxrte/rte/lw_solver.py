"""
Longwave radiative transfer without scattering

Integrates emission and absorption along a small number of Gaussian quadrature
angles through each column. Each layer emits with a source that is linear in
optical depth between its two edges (Clough et al. 1992), which stays finite
as the optical depth goes to zero.

Sources and incident fluxes are in flux units [W/m²]; angle contributions are
combined with quadrature weights that sum to one.
"""

from functools import partial
from typing import Optional, Tuple

import jax
import jax.numpy as jnp
import numpy as np

from jaxrte.constants import GAUSS_DS, GAUSS_WTS, MAX_GAUSS_PTS, TAU_THRESH
from jaxrte.errors import InvalidDimensionError, ShapeMismatchError
from jaxrte.optics.optical_props import OpticalProps1scl, OpticalProps2str
from jaxrte.rte.rte_types import KernelObserver, SpectralFluxes, notify
from jaxrte.rte.rte_utils import expand_to_gpoints, flip_levels, layer_recurrence
from jaxrte.rte.source_functions import SourceFuncLW
from jaxrte.utils import check_range, check_shape


def gauss_quadrature(n_angles: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Secants and weights for `n_angles` quadrature angles.

    One angle uses the diffusivity secant 1.66; two to four use Gaussian
    angles. Weights are normalised to sum to one.

    Raises:
        InvalidDimensionError: Fewer than one or more than four angles
    """
    if not 1 <= n_angles <= MAX_GAUSS_PTS:
        raise InvalidDimensionError(
            f'tabulated quadrature supports 1 to {MAX_GAUSS_PTS} angles, got {n_angles}'
        )
    secants = GAUSS_DS[n_angles - 1, :n_angles]
    weights = GAUSS_WTS[n_angles - 1, :n_angles]
    return secants, weights / weights.sum()


def lw_source_noscat(tau_loc, trans, lay_source, lev_source_up, lev_source_dn):
    """
    Directional emission of each layer along one angle.

    Args:
        tau_loc: Slant optical depth
        trans: Transmissivity exp(-tau_loc)
        lay_source: Layer source
        lev_source_up: Source at the edge upward radiation leaves through
        lev_source_dn: Source at the edge downward radiation leaves through

    Returns:
        Tuple of (source_up, source_dn)
    """
    safe_tau = jnp.where(tau_loc > TAU_THRESH, tau_loc, 1.0)
    fact = jnp.where(
        tau_loc > TAU_THRESH,
        (1.0 - trans) / safe_tau - trans,
        tau_loc * (0.5 - tau_loc / 3.0),
    )
    source_dn = (1.0 - trans) * lev_source_dn + 2.0 * fact * (lay_source - lev_source_dn)
    source_up = (1.0 - trans) * lev_source_up + 2.0 * fact * (lay_source - lev_source_up)
    return source_up, source_dn


def _lw_one_angle(
    tau, lay_source, lev_source_inc, lev_source_dec,
    sfc_emis, sfc_source, sfc_source_jac, inc_flux, secant,
    do_jacobians, use_scan,
):
    """Up/down radiances along one angle in a top-first column."""
    tau_loc = tau * secant[:, jnp.newaxis, :]
    trans = jnp.exp(-tau_loc)
    # Top-first: downward radiation leaves a layer through its higher-index edge.
    source_up, source_dn = lw_source_noscat(
        tau_loc, trans, lay_source, lev_source_dec, lev_source_inc
    )

    def step(carry, x):
        t, s = x
        carry = t * carry + s
        return carry, carry

    dn_sfc, dn_below = layer_recurrence(step, inc_flux, (trans, source_dn), use_scan=use_scan)
    radn_dn = jnp.concatenate([inc_flux[:, jnp.newaxis], dn_below], axis=1)

    up_sfc = dn_sfc * (1.0 - sfc_emis) + sfc_emis * sfc_source
    _, up_above = layer_recurrence(step, up_sfc, (trans, source_up), reverse=True, use_scan=use_scan)
    radn_up = jnp.concatenate([up_above, up_sfc[:, jnp.newaxis]], axis=1)

    radn_up_jac = None
    if do_jacobians:
        jac_sfc = sfc_emis * sfc_source_jac
        _, jac_above = layer_recurrence(
            step, jac_sfc, (trans, jnp.zeros_like(trans)), reverse=True, use_scan=use_scan
        )
        radn_up_jac = jnp.concatenate([jac_above, jac_sfc[:, jnp.newaxis]], axis=1)
    return radn_up, radn_dn, radn_up_jac


@partial(jax.jit, static_argnames=('top_at_first', 'do_broadband', 'do_jacobians', 'use_scan'))
def lw_solver_noscat(
    tau: jnp.ndarray,
    lay_source: jnp.ndarray,
    lev_source_inc: jnp.ndarray,
    lev_source_dec: jnp.ndarray,
    sfc_emis: jnp.ndarray,
    sfc_source: jnp.ndarray,
    sfc_source_jac: jnp.ndarray,
    inc_flux: jnp.ndarray,
    secants: jnp.ndarray,
    weights: jnp.ndarray,
    top_at_first: bool = True,
    do_broadband: bool = False,
    do_jacobians: bool = False,
    use_scan: bool = True,
) -> SpectralFluxes:
    """
    Longwave fluxes from absorption and emission only.

    Args:
        tau: Absorption optical depth (ncol, nlay, ngpt)
        lay_source, lev_source_inc, lev_source_dec: Sources (ncol, nlay, ngpt)
        sfc_emis: Surface emissivity per g-point (ncol, ngpt)
        sfc_source, sfc_source_jac: Surface source and its Jacobian (ncol, ngpt)
        inc_flux: Incident flux at the top of the domain (ncol, ngpt)
        secants: Secant of every angle (ncol, ngpt, nang)
        weights: Quadrature weights summing to one (nang,)
        top_at_first: Level 0 is the top of the domain
        do_broadband: Sum over g-points before returning
        do_jacobians: Also return d(flux_up)/d(T_sfc)
        use_scan: Use `jax.lax.scan` for the layer recurrences

    Returns:
        `SpectralFluxes` on levels (ncol, nlay+1[, ngpt])
    """
    if not top_at_first:
        # Solving on the flipped column swaps which edge each level source sits on.
        tau, lay_source = flip_levels(tau), flip_levels(lay_source)
        lev_source_inc, lev_source_dec = flip_levels(lev_source_dec), flip_levels(lev_source_inc)

    flux_up = 0.0
    flux_dn = 0.0
    flux_up_jac = 0.0 if do_jacobians else None
    for iang in range(secants.shape[-1]):
        radn_up, radn_dn, radn_up_jac = _lw_one_angle(
            tau, lay_source, lev_source_inc, lev_source_dec,
            sfc_emis, sfc_source, sfc_source_jac, inc_flux, secants[..., iang],
            do_jacobians, use_scan,
        )
        flux_up = flux_up + weights[iang] * radn_up
        flux_dn = flux_dn + weights[iang] * radn_dn
        if do_jacobians:
            flux_up_jac = flux_up_jac + weights[iang] * radn_up_jac

    if not top_at_first:
        flux_up, flux_dn = flip_levels(flux_up), flip_levels(flux_dn)
        if do_jacobians:
            flux_up_jac = flip_levels(flux_up_jac)

    if do_broadband:
        flux_up, flux_dn = flux_up.sum(axis=-1), flux_dn.sum(axis=-1)
        if do_jacobians:
            flux_up_jac = flux_up_jac.sum(axis=-1)
    return SpectralFluxes(flux_up=flux_up, flux_dn=flux_dn, flux_up_jac=flux_up_jac)


def _boundary_fluxes(
    n_lay, sfc_emis, sfc_source, sfc_source_jac, inc_flux, weights, do_broadband, do_jacobians,
):
    """Fluxes with no layers between the top of the domain and the surface."""
    n_col, n_gpt = inc_flux.shape
    shape = (n_col, n_lay + 1, n_gpt)
    total_weight = jnp.sum(weights)
    on_levels = lambda x: jnp.broadcast_to(total_weight * x[:, jnp.newaxis], shape)

    flux_dn = on_levels(inc_flux)
    flux_up = on_levels(inc_flux * (1.0 - sfc_emis) + sfc_emis * sfc_source)
    flux_up_jac = on_levels(sfc_emis * sfc_source_jac) if do_jacobians else None
    if do_broadband:
        flux_up, flux_dn = flux_up.sum(axis=-1), flux_dn.sum(axis=-1)
        if do_jacobians:
            flux_up_jac = flux_up_jac.sum(axis=-1)
    return SpectralFluxes(flux_up=flux_up, flux_dn=flux_dn, flux_up_jac=flux_up_jac)


def solve_longwave(
    optical_props,
    sources: SourceFuncLW,
    sfc_emis,
    inc_flux=None,
    n_angles: int = 1,
    secants=None,
    weights=None,
    top_at_first: bool = True,
    do_broadband: bool = False,
    do_jacobians: bool = False,
    use_scan: bool = True,
    context: Optional[KernelObserver] = None,
) -> SpectralFluxes:
    """
    Check the inputs and run the no-scattering longwave solver.

    Two-stream optical properties are solved with their absorption optical
    depth. Zero columns or layers return the boundary fluxes without running a
    kernel: the incident flux downward and the surface emission plus its
    reflection upward.

    Args:
        optical_props: `OpticalProps1scl` or `OpticalProps2str`
        sources: Sources on the same grid as `optical_props`
        sfc_emis: Surface emissivity per band (ncol, nband) or g-point (ncol, ngpt)
        inc_flux: Incident flux at the top of the domain (ncol, ngpt); zero if None
        n_angles: Number of quadrature angles
        secants: Explicit secants (nang,) or (ncol, ngpt, nang); tabulated if None
        weights: Explicit weights (nang,); equal weights if None
        top_at_first: Level 0 is the top of the domain
        do_broadband: Return g-point sums
        do_jacobians: Return the upward flux Jacobian
        use_scan: Use `jax.lax.scan` for the layer recurrences
        context: Called with the kernel name and extents before the kernel runs

    Raises:
        ShapeMismatchError: Extents disagree, including angle counts
        InvalidDimensionError: Unsupported number of angles
        DomainViolationError: Emissivity outside [0, 1] or secants below 1
    """
    if not isinstance(optical_props, (OpticalProps1scl, OpticalProps2str)):
        raise TypeError(f'unsupported optical properties {type(optical_props).__name__}')
    optical_props.validate()
    tau = optical_props.absorption_tau()
    n_col, n_lay, n_gpt = tau.shape
    sources.validate_against(optical_props)

    sfc_emis = expand_to_gpoints('sfc_emis', sfc_emis, optical_props.disc, n_col, n_gpt)
    check_range('sfc_emis', sfc_emis, lower=0.0, upper=1.0)
    if inc_flux is None:
        inc_flux = jnp.zeros((n_col, n_gpt))
    inc_flux = jnp.asarray(inc_flux)
    check_shape('inc_flux', inc_flux, (n_col, n_gpt))
    check_range('inc_flux', inc_flux, lower=0.0)

    if n_angles < 1:
        raise InvalidDimensionError(f'at least one quadrature angle is needed, got {n_angles}')
    if secants is None:
        secants, default_weights = gauss_quadrature(n_angles)
    else:
        default_weights = np.full(n_angles, 1.0 / n_angles)
    secants = jnp.asarray(secants)
    weights = jnp.asarray(default_weights if weights is None else weights)
    if secants.shape[-1] != n_angles or weights.shape != (n_angles,):
        raise ShapeMismatchError(
            f'{n_angles} angles requested but got secants of shape {tuple(secants.shape)} '
            f'and weights of shape {tuple(weights.shape)}'
        )
    if secants.ndim == 1:
        secants = jnp.broadcast_to(secants, (n_col, n_gpt, n_angles))
    check_shape('secants', secants, (n_col, n_gpt, n_angles))
    check_range('secants', secants, lower=1.0)

    if n_col == 0 or n_lay == 0:
        return _boundary_fluxes(
            n_lay, sfc_emis, sources.sfc_source, sources.sfc_source_jac, inc_flux, weights,
            do_broadband, do_jacobians,
        )

    notify(context, 'lw_solver_noscat', n_col, n_lay, n_gpt)
    return lw_solver_noscat(
        tau,
        sources.lay_source,
        sources.lev_source_inc,
        sources.lev_source_dec,
        sfc_emis,
        sources.sfc_source,
        sources.sfc_source_jac,
        inc_flux,
        secants,
        weights,
        top_at_first=top_at_first,
        do_broadband=do_broadband,
        do_jacobians=do_jacobians,
        use_scan=use_scan,
    )
