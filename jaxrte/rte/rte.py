"""
Radiative transfer drivers

`rte_lw` and `rte_sw` check their inputs, expand band boundary conditions to
g-points, run the matching solver and reduce the spectral result. Settings not
passed explicitly come from `RteParameters`.
"""

import logging
from typing import Optional, Union

from jaxrte.optics.optical_props import OpticalProps2str
from jaxrte.params import RteParameters
from jaxrte.rte.fluxes import FluxesBroadband, FluxesByband
from jaxrte.rte.lw_solver import solve_longwave
from jaxrte.rte.rte_types import KernelObserver, SpectralFluxes
from jaxrte.rte.source_functions import SourceFuncLW
from jaxrte.rte.sw_solver import solve_shortwave

logger = logging.getLogger(__name__)

BROADBAND = 'broadband'
BYBAND = 'byband'
SPECTRAL = 'spectral'
_OUTPUTS = (BROADBAND, BYBAND, SPECTRAL)

Fluxes = Union[FluxesBroadband, FluxesByband, SpectralFluxes]


def _resolve(value, default):
    return default if value is None else value


def _output_kind(fluxes, params):
    if fluxes is None:
        fluxes = BROADBAND if params.do_broadband else BYBAND
    if fluxes not in _OUTPUTS:
        raise ValueError(f'fluxes must be one of {_OUTPUTS}, got {fluxes!r}')
    return fluxes


def _reduce(spectral: SpectralFluxes, kind: str, disc) -> Fluxes:
    if kind == SPECTRAL:
        return spectral
    if kind == BROADBAND:
        # The solver already summed over g-points.
        return FluxesBroadband.reduce(
            spectral.flux_up, spectral.flux_dn,
            flux_dn_dir=spectral.flux_dn_dir, flux_up_jac=spectral.flux_up_jac,
        )
    return FluxesByband.reduce(
        spectral.flux_up, spectral.flux_dn, disc,
        flux_dn_dir=spectral.flux_dn_dir, flux_up_jac=spectral.flux_up_jac,
    )


def rte_lw(
    optical_props,
    sources: SourceFuncLW,
    sfc_emis,
    inc_flux=None,
    top_at_first: Optional[bool] = None,
    n_gauss_angles: Optional[int] = None,
    fluxes: Optional[str] = None,
    do_jacobians: Optional[bool] = None,
    secants=None,
    weights=None,
    params: Optional[RteParameters] = None,
    context: Optional[KernelObserver] = None,
) -> Fluxes:
    """
    Longwave fluxes through absorbing and emitting layers.

    Args:
        optical_props: `OpticalProps1scl`, or `OpticalProps2str` whose
            absorption optical depth is used
        sources: Emission sources on the same grid
        sfc_emis: Surface emissivity (ncol, nband) or (ncol, ngpt)
        inc_flux: Incident flux at the top of the domain (ncol, ngpt)
        top_at_first: Level 0 is the top of the domain
        n_gauss_angles: Number of quadrature angles
        fluxes: 'broadband', 'byband' or 'spectral'
        do_jacobians: Also compute d(flux_up)/d(T_sfc)
        secants, weights: Explicit quadrature, see `solve_longwave`
        params: Defaults for the arguments left as None
        context: Observer called before the solver kernel

    Returns:
        `FluxesBroadband`, `FluxesByband` or `SpectralFluxes`
    """
    params = params or RteParameters.default()
    kind = _output_kind(fluxes, params)
    top_at_first = _resolve(top_at_first, params.top_at_first)
    n_gauss_angles = _resolve(n_gauss_angles, params.n_gauss_angles)
    do_jacobians = _resolve(do_jacobians, params.do_jacobians)

    if isinstance(optical_props, OpticalProps2str):
        logger.debug('Solving longwave with the absorption optical depth of two-stream optics')
    logger.debug(
        'rte_lw: %d columns, %d layers, %d g-points, %d angles, output %s',
        *optical_props.tau.shape, n_gauss_angles, kind,
    )
    spectral = solve_longwave(
        optical_props,
        sources,
        sfc_emis,
        inc_flux=inc_flux,
        n_angles=n_gauss_angles,
        secants=secants,
        weights=weights,
        top_at_first=top_at_first,
        do_broadband=kind == BROADBAND,
        do_jacobians=do_jacobians,
        use_scan=params.use_scan,
        context=context,
    )
    return _reduce(spectral, kind, optical_props.disc)


def rte_sw(
    optical_props: OpticalProps2str,
    mu0,
    inc_flux_dir,
    sfc_alb_dir,
    sfc_alb_dif,
    inc_flux_dif=None,
    top_at_first: Optional[bool] = None,
    fluxes: Optional[str] = None,
    params: Optional[RteParameters] = None,
    context: Optional[KernelObserver] = None,
) -> Fluxes:
    """
    Shortwave fluxes with two-stream scattering.

    Args:
        optical_props: Two-stream optical properties
        mu0: Cosine of the solar zenith angle (ncol,)
        inc_flux_dir: Incident direct flux normal to the beam (ncol, ngpt)
        sfc_alb_dir, sfc_alb_dif: Surface albedos (ncol, nband) or (ncol, ngpt)
        inc_flux_dif: Incident diffuse flux (ncol, ngpt)
        top_at_first: Level 0 is the top of the domain
        fluxes: 'broadband', 'byband' or 'spectral'
        params: Defaults for the arguments left as None
        context: Observer called before the solver kernel

    Returns:
        `FluxesBroadband`, `FluxesByband` or `SpectralFluxes`, all carrying
        the direct-beam flux
    """
    params = params or RteParameters.default()
    kind = _output_kind(fluxes, params)
    top_at_first = _resolve(top_at_first, params.top_at_first)

    logger.debug(
        'rte_sw: %d columns, %d layers, %d g-points, output %s',
        *optical_props.tau.shape, kind,
    )
    spectral = solve_shortwave(
        optical_props,
        mu0,
        sfc_alb_dir,
        sfc_alb_dif,
        inc_flux_dir,
        inc_flux_dif=inc_flux_dif,
        top_at_first=top_at_first,
        do_broadband=kind == BROADBAND,
        use_scan=params.use_scan,
        context=context,
    )
    return _reduce(spectral, kind, optical_props.disc)
