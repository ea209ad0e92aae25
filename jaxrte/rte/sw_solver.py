"""
Shortwave two-stream radiative transfer

Layer reflectance and transmittance follow Meador and Weaver (1980) with the
exchange coefficients of Zdunkowski et al. (1980). Layers are combined with
the adding method of Shonk and Hogan (2008): albedo and diffuse source are
accumulated from the surface upward, then fluxes are recovered from the top
down. The direct beam is attenuated separately by Beer's law.
"""

from functools import partial
from typing import Optional

import jax
import jax.numpy as jnp

from jaxrte.constants import EPSILON, K_MIN_SQUARED
from jaxrte.errors import ShapeMismatchError
from jaxrte.optics.optical_props import OpticalProps2str
from jaxrte.rte.rte_types import KernelObserver, SpectralFluxes, notify
from jaxrte.rte.rte_utils import expand_to_gpoints, flip_levels, layer_recurrence
from jaxrte.utils import check_range, check_shape


def sw_two_stream(tau, ssa, g, mu0):
    """
    Layer reflectance and transmittance.

    Args:
        tau, ssa, g: Optical properties (ncol, nlay, ngpt)
        mu0: Cosine of the solar zenith angle, positive (ncol,)

    Returns:
        Tuple of (r_dif, t_dif, r_dir, t_dir, t_noscat). `t_dir` excludes the
        unscattered beam, which is `t_noscat`.
    """
    mu0 = mu0[:, jnp.newaxis, jnp.newaxis]

    gamma1 = 0.25 * (8.0 - ssa * (5.0 + 3.0 * g))
    gamma2 = 0.75 * ssa * (1.0 - g)
    gamma3 = 0.25 * (2.0 - 3.0 * mu0 * g)
    gamma4 = 1.0 - gamma3
    alpha1 = gamma1 * gamma4 + gamma2 * gamma3
    alpha2 = gamma1 * gamma3 + gamma2 * gamma4

    k = jnp.sqrt(jnp.maximum((gamma1 - gamma2) * (gamma1 + gamma2), K_MIN_SQUARED))
    exp_minusktau = jnp.exp(-k * tau)
    exp_minus2ktau = exp_minusktau * exp_minusktau

    # Refactored to avoid rounding errors when k and gamma1 differ in magnitude.
    rt_term = 1.0 / (k * (1.0 + exp_minus2ktau) + gamma1 * (1.0 - exp_minus2ktau))
    r_dif = rt_term * gamma2 * (1.0 - exp_minus2ktau)
    t_dif = rt_term * 2.0 * k * exp_minusktau

    t_noscat = jnp.exp(-tau / mu0)

    k_mu = k * mu0
    one_minus_kmu2 = 1.0 - k_mu * k_mu
    rt_term = ssa * rt_term / jnp.where(jnp.abs(one_minus_kmu2) >= EPSILON, one_minus_kmu2, EPSILON)
    k_gamma3 = k * gamma3
    k_gamma4 = k * gamma4

    r_dir = rt_term * (
        (1.0 - k_mu) * (alpha2 + k_gamma3)
        - (1.0 + k_mu) * (alpha2 - k_gamma3) * exp_minus2ktau
        - 2.0 * (k_gamma3 - alpha2 * k_mu) * exp_minusktau * t_noscat
    )
    t_dir = -rt_term * (
        (1.0 + k_mu) * (alpha1 + k_gamma4) * t_noscat
        - (1.0 - k_mu) * (alpha1 - k_gamma4) * exp_minus2ktau * t_noscat
        - 2.0 * (k_gamma4 + alpha1 * k_mu) * exp_minusktau
    )

    # The beam is reflected, transmitted unscattered, or transmitted scattered.
    r_dir = jnp.clip(r_dir, 0.0, 1.0 - t_noscat)
    t_dir = jnp.clip(t_dir, 0.0, 1.0 - t_noscat - r_dir)
    return r_dif, t_dif, r_dir, t_dir, t_noscat


def _direct_beam(t_noscat, inc_flux_dir, mu0, use_scan):
    """Direct flux on levels (ncol, nlev, ngpt)."""
    flux_top = inc_flux_dir * jnp.maximum(mu0, 0.0)[:, jnp.newaxis]

    def step(carry, x):
        (t,) = x
        carry = t * carry
        return carry, carry

    _, flux_below = layer_recurrence(step, flux_top, (t_noscat,), use_scan=use_scan)
    return jnp.concatenate([flux_top[:, jnp.newaxis], flux_below], axis=1)


def adding(r_dif, t_dif, src_up, src_dn, sfc_alb_dif, sfc_src, inc_flux_dif, use_scan=True):
    """
    Diffuse fluxes of a layer stack by the adding method.

    Args:
        r_dif, t_dif: Diffuse reflectance and transmittance (ncol, nlay, ngpt)
        src_up, src_dn: Diffuse sources from the direct beam (ncol, nlay, ngpt)
        sfc_alb_dif: Surface diffuse albedo (ncol, ngpt)
        sfc_src: Surface reflection of the direct beam (ncol, ngpt)
        inc_flux_dif: Diffuse flux entering the top (ncol, ngpt)

    Returns:
        Tuple of (flux_up, flux_dn) diffuse fluxes on levels
    """

    def up_step(carry, x):
        albedo_below, src_below = carry
        rdif, tdif, sup, sdn = x
        denom = 1.0 / (1.0 - rdif * albedo_below)
        albedo = rdif + tdif * tdif * albedo_below * denom
        src = sup + tdif * denom * (src_below + albedo_below * sdn)
        return (albedo, src), (albedo, src, denom)

    _, (albedo, src, denom) = layer_recurrence(
        up_step, (sfc_alb_dif, sfc_src), (r_dif, t_dif, src_up, src_dn),
        reverse=True, use_scan=use_scan,
    )
    albedo = jnp.concatenate([albedo, sfc_alb_dif[:, jnp.newaxis]], axis=1)
    src = jnp.concatenate([src, sfc_src[:, jnp.newaxis]], axis=1)

    def dn_step(flux_above, x):
        rdif, tdif, sdn, d, src_below = x
        flux_below = (tdif * flux_above + rdif * src_below + sdn) * d
        return flux_below, flux_below

    _, flux_below = layer_recurrence(
        dn_step, inc_flux_dif, (r_dif, t_dif, src_dn, denom, src[:, 1:]), use_scan=use_scan,
    )
    flux_dn = jnp.concatenate([inc_flux_dif[:, jnp.newaxis], flux_below], axis=1)
    flux_up = flux_dn * albedo + src
    return flux_up, flux_dn


@partial(jax.jit, static_argnames=('top_at_first', 'do_broadband', 'use_scan'))
def sw_solver_2stream(
    tau: jnp.ndarray,
    ssa: jnp.ndarray,
    g: jnp.ndarray,
    mu0: jnp.ndarray,
    sfc_alb_dir: jnp.ndarray,
    sfc_alb_dif: jnp.ndarray,
    inc_flux_dir: jnp.ndarray,
    inc_flux_dif: jnp.ndarray,
    top_at_first: bool = True,
    do_broadband: bool = False,
    use_scan: bool = True,
) -> SpectralFluxes:
    """
    Shortwave fluxes with two-stream scattering.

    Args:
        tau, ssa, g: Optical properties (ncol, nlay, ngpt)
        mu0: Cosine of the solar zenith angle (ncol,)
        sfc_alb_dir, sfc_alb_dif: Surface albedos per g-point (ncol, ngpt)
        inc_flux_dir: Incident direct flux normal to the beam (ncol, ngpt)
        inc_flux_dif: Incident diffuse flux (ncol, ngpt)
        top_at_first: Level 0 is the top of the domain
        do_broadband: Sum over g-points before returning
        use_scan: Use `jax.lax.scan` for the layer recurrences

    Returns:
        `SpectralFluxes` with total `flux_dn` and direct `flux_dn_dir`
    """
    if not top_at_first:
        tau, ssa, g = flip_levels(tau), flip_levels(ssa), flip_levels(g)

    # Dark columns get a harmless zenith angle; their beam is zeroed at the top.
    mu0_safe = jnp.where(mu0 > 0.0, mu0, 1.0)
    r_dif, t_dif, r_dir, t_dir, t_noscat = sw_two_stream(tau, ssa, g, mu0_safe)

    flux_dir = _direct_beam(t_noscat, inc_flux_dir, mu0, use_scan)
    src_up = r_dir * flux_dir[:, :-1]
    src_dn = t_dir * flux_dir[:, :-1]
    sfc_src = flux_dir[:, -1] * sfc_alb_dir

    flux_up, flux_dn = adding(
        r_dif, t_dif, src_up, src_dn, sfc_alb_dif, sfc_src, inc_flux_dif, use_scan=use_scan
    )
    flux_dn = flux_dn + flux_dir

    if not top_at_first:
        flux_up, flux_dn, flux_dir = flip_levels(flux_up), flip_levels(flux_dn), flip_levels(flux_dir)
    if do_broadband:
        flux_up, flux_dn, flux_dir = flux_up.sum(axis=-1), flux_dn.sum(axis=-1), flux_dir.sum(axis=-1)
    return SpectralFluxes(flux_up=flux_up, flux_dn=flux_dn, flux_dn_dir=flux_dir)


def _boundary_fluxes(n_lay, mu0, sfc_alb_dir, sfc_alb_dif, inc_flux_dir, inc_flux_dif, do_broadband):
    """Fluxes with no layers between the top of the domain and the surface."""
    n_col, n_gpt = inc_flux_dir.shape
    shape = (n_col, n_lay + 1, n_gpt)
    on_levels = lambda x: jnp.broadcast_to(x[:, jnp.newaxis], shape)

    flux_dir = inc_flux_dir * jnp.maximum(mu0, 0.0)[:, jnp.newaxis]
    flux_up = on_levels(sfc_alb_dir * flux_dir + sfc_alb_dif * inc_flux_dif)
    flux_dn = on_levels(flux_dir + inc_flux_dif)
    flux_dir = on_levels(flux_dir)
    if do_broadband:
        flux_up, flux_dn, flux_dir = flux_up.sum(axis=-1), flux_dn.sum(axis=-1), flux_dir.sum(axis=-1)
    return SpectralFluxes(flux_up=flux_up, flux_dn=flux_dn, flux_dn_dir=flux_dir)


def solve_shortwave(
    optical_props: OpticalProps2str,
    mu0,
    sfc_alb_dir,
    sfc_alb_dif,
    inc_flux_dir,
    inc_flux_dif=None,
    top_at_first: bool = True,
    do_broadband: bool = False,
    use_scan: bool = True,
    context: Optional[KernelObserver] = None,
) -> SpectralFluxes:
    """
    Check the inputs and run the two-stream shortwave solver.

    Args:
        optical_props: Two-stream optical properties
        mu0: Cosine of the solar zenith angle (ncol,); columns with mu0 <= 0
            receive no direct beam
        sfc_alb_dir, sfc_alb_dif: Surface albedos per band (ncol, nband) or
            g-point (ncol, ngpt)
        inc_flux_dir: Incident direct flux normal to the beam (ncol, ngpt)
        inc_flux_dif: Incident diffuse flux (ncol, ngpt); zero if None
        top_at_first: Level 0 is the top of the domain
        do_broadband: Return g-point sums
        use_scan: Use `jax.lax.scan` for the layer recurrences
        context: Called with the kernel name and extents before the kernel runs

    Raises:
        ShapeMismatchError: Extents disagree or the optics lack scattering
        DomainViolationError: mu0 outside [-1, 1], albedo outside [0, 1],
            negative incident flux or invalid optical properties
    """
    if not isinstance(optical_props, OpticalProps2str):
        raise ShapeMismatchError(
            f'the shortwave solver needs two-stream optical properties, got '
            f'{type(optical_props).__name__}'
        )
    optical_props.validate()
    n_col, n_lay, n_gpt = optical_props.tau.shape
    disc = optical_props.disc

    mu0 = jnp.asarray(mu0)
    check_shape('mu0', mu0, (n_col,))
    check_range('mu0', mu0, lower=-1.0, upper=1.0)
    sfc_alb_dir = expand_to_gpoints('sfc_alb_dir', sfc_alb_dir, disc, n_col, n_gpt)
    sfc_alb_dif = expand_to_gpoints('sfc_alb_dif', sfc_alb_dif, disc, n_col, n_gpt)
    check_range('sfc_alb_dir', sfc_alb_dir, lower=0.0, upper=1.0)
    check_range('sfc_alb_dif', sfc_alb_dif, lower=0.0, upper=1.0)

    inc_flux_dir = jnp.asarray(inc_flux_dir)
    check_shape('inc_flux_dir', inc_flux_dir, (n_col, n_gpt))
    check_range('inc_flux_dir', inc_flux_dir, lower=0.0)
    if inc_flux_dif is None:
        inc_flux_dif = jnp.zeros((n_col, n_gpt))
    inc_flux_dif = jnp.asarray(inc_flux_dif)
    check_shape('inc_flux_dif', inc_flux_dif, (n_col, n_gpt))
    check_range('inc_flux_dif', inc_flux_dif, lower=0.0)

    if n_col == 0 or n_lay == 0:
        return _boundary_fluxes(
            n_lay, mu0, sfc_alb_dir, sfc_alb_dif, inc_flux_dir, inc_flux_dif, do_broadband
        )

    notify(context, 'sw_solver_2stream', n_col, n_lay, n_gpt)
    return sw_solver_2stream(
        optical_props.tau,
        optical_props.ssa,
        optical_props.g,
        mu0,
        sfc_alb_dir,
        sfc_alb_dif,
        inc_flux_dir,
        inc_flux_dif,
        top_at_first=top_at_first,
        do_broadband=do_broadband,
        use_scan=use_scan,
    )
