"""
Unit tests for the longwave and shortwave drivers
"""

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from jaxrte.errors import ShapeMismatchError
from jaxrte.optics.optical_props import OpticalProps1scl, OpticalProps2str, SpectralDisc
from jaxrte.params import RteParameters
from jaxrte.rte.fluxes import FluxesBroadband, FluxesByband
from jaxrte.rte.lw_solver import solve_longwave
from jaxrte.rte.rte import rte_lw, rte_sw
from jaxrte.rte.rte_types import SpectralFluxes
from jaxrte.rte.source_functions import SourceFuncLW
from jaxrte.rte.sw_solver import solve_shortwave

_DISC = SpectralDisc.create([[10.0, 500.0], [500.0, 1000.0]], [[0, 1], [2, 3]])
_N_COL, _N_LAY, _N_GPT = 5, 4, 4


def _grid():
    col = np.arange(_N_COL)[:, None, None]
    lay = np.arange(_N_LAY)[None, :, None]
    gpt = np.arange(_N_GPT)[None, None, :]
    return col, lay, gpt


def _longwave():
    col, lay, gpt = _grid()
    tau = jnp.asarray(0.1 + 0.4 * lay + 0.3 * gpt + 0.05 * col)
    optics = OpticalProps1scl.create(tau, _DISC)
    planck = jnp.asarray(np.broadcast_to(60.0 + 4.0 * lay + gpt + col, tau.shape), dtype=float)
    sfc = jnp.full((_N_COL, _N_GPT), 90.0)
    sources = SourceFuncLW.from_arrays(
        planck, planck - 1.5, planck + 1.5, sfc, optics, sfc_source_jac=jnp.full((_N_COL, _N_GPT), 1.2)
    )
    emis = jnp.full((_N_COL, _DISC.n_band), 0.95)
    return optics, sources, emis


def _shortwave():
    col, lay, gpt = _grid()
    shape = (_N_COL, _N_LAY, _N_GPT)
    tau = jnp.asarray(0.05 + 0.3 * lay * (1 + gpt) + 0.1 * col)
    ssa = jnp.asarray(np.broadcast_to(0.95 - 0.1 * gpt, shape), dtype=float)
    g = jnp.asarray(np.broadcast_to(0.8 - 0.05 * lay, shape), dtype=float)
    optics = OpticalProps2str.create(tau, ssa, g, _DISC)
    mu0 = jnp.linspace(-0.2, 1.0, _N_COL)
    alb = jnp.full((_N_COL, _DISC.n_band), 0.2)
    inc_dir = jnp.full((_N_COL, _N_GPT), 350.0)
    return optics, mu0, inc_dir, alb


def test_lw_output_kinds_are_consistent():
    """Broadband, per-band and spectral output describe the same solution"""
    optics, sources, emis = _longwave()

    spectral = rte_lw(optics, sources, emis, fluxes='spectral')
    by_band = rte_lw(optics, sources, emis, fluxes='byband')
    broadband = rte_lw(optics, sources, emis, fluxes='broadband')

    assert isinstance(spectral, SpectralFluxes)
    assert isinstance(by_band, FluxesByband)
    assert isinstance(broadband, FluxesBroadband)
    np.testing.assert_allclose(by_band.flux_up, spectral.flux_up.sum(-1), rtol=1e-12)
    np.testing.assert_allclose(broadband.flux_dn, by_band.flux_dn, rtol=1e-12)
    np.testing.assert_allclose(by_band.bnd_flux_dn.sum(-1), broadband.flux_dn, rtol=1e-10)
    np.testing.assert_array_equal(broadband.flux_net, broadband.flux_dn - broadband.flux_up)
    assert broadband.flux_dn_dir is None


def test_lw_matches_solver():
    """The driver adds nothing to the spectral solve"""
    optics, sources, emis = _longwave()

    spectral = rte_lw(optics, sources, emis, n_gauss_angles=3, fluxes='spectral')
    direct = solve_longwave(optics, sources, emis, n_angles=3)

    np.testing.assert_array_equal(spectral.flux_up, direct.flux_up)
    np.testing.assert_array_equal(spectral.flux_dn, direct.flux_dn)


def test_lw_jacobian_in_broadband_output():
    """The surface Jacobian is reduced along with the fluxes"""
    optics, sources, emis = _longwave()

    spectral = rte_lw(optics, sources, emis, do_jacobians=True, fluxes='spectral')
    broadband = rte_lw(optics, sources, emis, do_jacobians=True, fluxes='broadband')

    assert broadband.flux_up_jac.shape == (_N_COL, _N_LAY + 1)
    np.testing.assert_allclose(broadband.flux_up_jac, spectral.flux_up_jac.sum(-1), rtol=1e-12)
    assert jnp.all(broadband.flux_up_jac > 0.0)


def test_params_supply_defaults():
    """Unset arguments come from the parameters, explicit ones win"""
    optics, sources, emis = _longwave()
    params = RteParameters.default().copy(do_broadband=True, n_gauss_angles=2)

    from_params = rte_lw(optics, sources, emis, params=params)
    explicit = rte_lw(optics, sources, emis, n_gauss_angles=2, fluxes='broadband')
    overridden = rte_lw(optics, sources, emis, n_gauss_angles=1, params=params)
    one_angle = rte_lw(optics, sources, emis, fluxes='broadband')

    assert isinstance(from_params, FluxesBroadband)
    np.testing.assert_array_equal(from_params.flux_up, explicit.flux_up)
    np.testing.assert_array_equal(overridden.flux_up, one_angle.flux_up)


def test_params_orientation():
    """A bottom-first parameter set solves the flipped column"""
    optics, sources, emis = _longwave()
    flipped_optics = optics.copy(tau=optics.tau[:, ::-1])
    flipped_sources = sources.copy(
        lay_source=sources.lay_source[:, ::-1],
        lev_source_inc=sources.lev_source_dec[:, ::-1],
        lev_source_dec=sources.lev_source_inc[:, ::-1],
    )
    params = RteParameters.default().copy(top_at_first=False)

    top_first = rte_lw(optics, sources, emis, fluxes='spectral')
    bottom_first = rte_lw(flipped_optics, flipped_sources, emis, fluxes='spectral', params=params)

    np.testing.assert_allclose(bottom_first.flux_up, top_first.flux_up[:, ::-1], rtol=1e-12)
    np.testing.assert_allclose(bottom_first.flux_dn, top_first.flux_dn[:, ::-1], rtol=1e-12)


def test_lw_column_blocks_reproduce_full_solve():
    """Solving blocks of columns gives the same fluxes as one solve"""
    optics, sources, emis = _longwave()

    full = rte_lw(optics, sources, emis, fluxes='byband', do_jacobians=True)
    blocks = [
        rte_lw(
            optics.subset(start, end), sources.subset(start, end), emis[start:end],
            fluxes='byband', do_jacobians=True,
        )
        for start, end in ((0, 2), (2, 3), (3, _N_COL))
    ]

    for name in ('flux_up', 'flux_dn', 'flux_up_jac', 'bnd_flux_up', 'bnd_flux_net'):
        joined = jnp.concatenate([getattr(b, name) for b in blocks], axis=0)
        np.testing.assert_allclose(joined, getattr(full, name), rtol=1e-14, atol=0.0)


def test_sw_output_kinds_carry_direct_beam():
    """Every shortwave output kind reports the direct-beam flux"""
    optics, mu0, inc_dir, alb = _shortwave()

    spectral = rte_sw(optics, mu0, inc_dir, alb, alb, fluxes='spectral')
    by_band = rte_sw(optics, mu0, inc_dir, alb, alb)
    broadband = rte_sw(optics, mu0, inc_dir, alb, alb, fluxes='broadband')

    direct = solve_shortwave(optics, mu0, alb, alb, inc_dir)
    np.testing.assert_array_equal(spectral.flux_dn_dir, direct.flux_dn_dir)
    assert by_band.bnd_flux_dn_dir.shape == (_N_COL, _N_LAY + 1, _DISC.n_band)
    np.testing.assert_allclose(by_band.flux_dn_dir, spectral.flux_dn_dir.sum(-1), rtol=1e-12)
    np.testing.assert_allclose(broadband.flux_dn_dir, by_band.flux_dn_dir, rtol=1e-12)
    # Sun below the horizon in the first column.
    np.testing.assert_array_equal(broadband.flux_dn_dir[0], 0.0)


def test_sw_column_blocks_reproduce_full_solve():
    """Solving blocks of columns gives the same fluxes as one solve"""
    optics, mu0, inc_dir, alb = _shortwave()

    full = rte_sw(optics, mu0, inc_dir, alb, alb, fluxes='spectral')
    blocks = [
        rte_sw(
            optics.subset(start, end), mu0[start:end], inc_dir[start:end],
            alb[start:end], alb[start:end], fluxes='spectral',
        )
        for start, end in ((0, 1), (1, 4), (4, _N_COL))
    ]

    for i in range(3):
        joined = jnp.concatenate([b[i] for b in blocks], axis=0)
        np.testing.assert_allclose(joined, full[i], rtol=1e-14, atol=0.0)


def test_drivers_trace_under_jit():
    """Optics and sources passed as jit arguments give the eager per-band result"""
    optics, sources, emis = _longwave()
    sw_optics, mu0, inc_dir, alb = _shortwave()

    lw = jax.jit(lambda o, s: rte_lw(o, s, emis))(optics, sources)
    sw = jax.jit(lambda o: rte_sw(o, mu0, inc_dir, alb, alb))(sw_optics)

    lw_eager = rte_lw(optics, sources, emis)
    sw_eager = rte_sw(sw_optics, mu0, inc_dir, alb, alb)
    assert isinstance(lw, FluxesByband)
    np.testing.assert_allclose(lw.bnd_flux_up, lw_eager.bnd_flux_up, rtol=1e-12)
    np.testing.assert_allclose(lw.flux_net, lw_eager.flux_net, rtol=1e-12)
    np.testing.assert_allclose(sw.bnd_flux_dn, sw_eager.bnd_flux_dn, rtol=1e-12)
    np.testing.assert_allclose(sw.bnd_flux_dn_dir, sw_eager.bnd_flux_dn_dir, rtol=1e-12)


def test_sw_rejects_absorption_only_optics():
    """The shortwave solver needs scattering properties"""
    optics, mu0, inc_dir, alb = _shortwave()

    with pytest.raises(ShapeMismatchError):
        rte_sw(OpticalProps1scl.create(optics.tau, _DISC), mu0, inc_dir, alb, alb)


def test_unknown_output_kind_raises():
    optics, sources, emis = _longwave()

    with pytest.raises(ValueError, match='fluxes must be one of'):
        rte_lw(optics, sources, emis, fluxes='per_gpoint')


def test_observer_is_forwarded():
    """The context observer reaches the shortwave kernel"""
    optics, mu0, inc_dir, alb = _shortwave()
    calls = []

    rte_sw(optics, mu0, inc_dir, alb, alb, context=lambda *args: calls.append(args))

    assert calls == [('sw_solver_2stream', _N_COL, _N_LAY, _N_GPT)]
