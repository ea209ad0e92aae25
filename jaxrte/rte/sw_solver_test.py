"""
Unit tests for the two-stream shortwave solver
"""

import jax.numpy as jnp
import numpy as np
import pytest

from jaxrte.errors import DomainViolationError, ShapeMismatchError
from jaxrte.optics.optical_props import OpticalProps1scl, OpticalProps2str, SpectralDisc
from jaxrte.rte.sw_solver import solve_shortwave, sw_two_stream

_DISC = SpectralDisc.create([[800.0, 2600.0], [2600.0, 50000.0]], [[0, 0], [1, 2]])


def _optics(tau, ssa, g):
    tau = jnp.asarray(tau, dtype=float)
    return OpticalProps2str.create(
        tau,
        jnp.broadcast_to(jnp.asarray(ssa, dtype=float), tau.shape),
        jnp.broadcast_to(jnp.asarray(g, dtype=float), tau.shape),
        _DISC,
    )


def _cloudy_column(n_col=3, n_lay=5):
    """Optical depth, albedo and asymmetry that vary with layer and g-point"""
    lay_idx = np.arange(n_lay)[None, :, None]
    gpt_idx = np.arange(3)[None, None, :]
    col_idx = np.arange(n_col)[:, None, None]
    tau = 0.02 + 0.4 * lay_idx * (1 + gpt_idx) + 0.1 * col_idx
    ssa = np.broadcast_to(0.99 - 0.1 * gpt_idx - 0.02 * lay_idx, tau.shape)
    g = np.broadcast_to(0.85 - 0.05 * lay_idx, tau.shape)
    return _optics(tau, ssa, g)


def test_transparent_layer_coefficients():
    """A layer with zero optical depth has reflectance 0 and transmittance 1"""
    tau = jnp.zeros((2, 1, 3))
    ssa = jnp.full((2, 1, 3), 0.5)
    g = jnp.full((2, 1, 3), 0.3)

    r_dif, t_dif, r_dir, t_dir, t_noscat = sw_two_stream(tau, ssa, g, jnp.array([0.5, 1.0]))

    np.testing.assert_allclose(r_dif, 0.0, atol=1e-15)
    np.testing.assert_allclose(t_dif, 1.0, rtol=1e-12)
    np.testing.assert_allclose(r_dir, 0.0, atol=1e-15)
    np.testing.assert_allclose(t_dir, 0.0, atol=1e-15)
    np.testing.assert_allclose(t_noscat, 1.0)


def test_layer_coefficients_are_physical():
    """Reflectance and transmittance stay in [0, 1] and conserve energy"""
    tau_values = jnp.array([1e-4, 0.01, 0.1, 1.0, 10.0, 100.0, 1000.0])
    tau = jnp.broadcast_to(tau_values[None, :, None], (1, 7, 3))
    ssa = jnp.broadcast_to(jnp.array([0.0, 0.5, 0.999999])[None, None, :], tau.shape)
    g = jnp.full(tau.shape, 0.85)

    r_dif, t_dif, r_dir, t_dir, t_noscat = sw_two_stream(tau, ssa, g, jnp.array([0.6]))

    for field in (r_dif, t_dif, r_dir, t_dir):
        assert not jnp.any(jnp.isnan(field))
        assert jnp.all(field >= 0.0)
    assert jnp.all(r_dif + t_dif <= 1.0 + 1e-12)
    assert jnp.all(r_dir + t_dir + t_noscat <= 1.0 + 1e-12)


def test_transparent_column_passes_fluxes_through():
    """Zero optical depth leaves the direct and diffuse fluxes unchanged"""
    optics = _optics(jnp.zeros((2, 4, 3)), 0.5, 0.3)
    mu0 = jnp.array([0.5, 1.0])

    fluxes = solve_shortwave(
        optics, mu0, jnp.full((2, 2), 0.2), jnp.full((2, 2), 0.3),
        inc_flux_dir=jnp.full((2, 3), 100.0), inc_flux_dif=jnp.full((2, 3), 10.0),
    )

    direct = 100.0 * mu0[:, None, None]
    np.testing.assert_allclose(fluxes.flux_dn_dir, jnp.broadcast_to(direct, (2, 5, 3)), rtol=1e-12)
    np.testing.assert_allclose(fluxes.flux_dn, jnp.broadcast_to(direct + 10.0, (2, 5, 3)), rtol=1e-12)
    np.testing.assert_allclose(
        fluxes.flux_up, jnp.broadcast_to(0.2 * direct + 0.3 * 10.0, (2, 5, 3)), rtol=1e-12
    )


def test_pure_absorber_follows_beer_law():
    """Without scattering or surface reflection only the direct beam survives"""
    tau = jnp.broadcast_to(jnp.array([0.1, 0.2, 0.3])[None, :, None], (1, 3, 3))
    optics = _optics(tau, 0.0, 0.0)
    mu0 = 0.5

    fluxes = solve_shortwave(
        optics, jnp.array([mu0]), jnp.zeros((1, 2)), jnp.zeros((1, 2)),
        inc_flux_dir=jnp.full((1, 3), 1000.0),
    )

    cumulative_tau = np.array([0.0, 0.1, 0.3, 0.6])[None, :, None]
    expected = 1000.0 * mu0 * np.exp(-cumulative_tau / mu0)
    np.testing.assert_allclose(fluxes.flux_dn_dir, np.broadcast_to(expected, (1, 4, 3)), rtol=1e-12)
    np.testing.assert_allclose(fluxes.flux_dn, fluxes.flux_dn_dir, rtol=1e-12)
    np.testing.assert_allclose(fluxes.flux_up, 0.0, atol=1e-12)


def test_single_layer_adding():
    """Diffuse illumination of one layer over a reflecting surface"""
    optics = _optics(jnp.full((1, 1, 3), 0.7), 0.9, 0.5)
    albedo = 0.4

    fluxes = solve_shortwave(
        optics, jnp.array([0.7]), jnp.zeros((1, 3)), jnp.full((1, 3), albedo),
        inc_flux_dir=jnp.zeros((1, 3)), inc_flux_dif=jnp.full((1, 3), 1.0),
    )

    r_dif, t_dif, _, _, _ = sw_two_stream(optics.tau, optics.ssa, optics.g, jnp.array([0.7]))
    r, t = r_dif[0, 0], t_dif[0, 0]
    multiple = 1.0 / (1.0 - r * albedo)
    np.testing.assert_allclose(fluxes.flux_up[0, 0], r + t * t * albedo * multiple, rtol=1e-12)
    np.testing.assert_allclose(fluxes.flux_dn[0, 1], t * multiple, rtol=1e-12)
    np.testing.assert_allclose(fluxes.flux_up[0, 1], albedo * t * multiple, rtol=1e-12)


@pytest.mark.parametrize("mu0", [0.0, -0.3])
def test_dark_column_has_no_direct_beam(mu0):
    """A sun at or below the horizon yields zero direct flux and no NaNs"""
    optics = _cloudy_column(n_col=2)

    fluxes = solve_shortwave(
        optics, jnp.array([mu0, 0.8]), jnp.full((2, 2), 0.3), jnp.full((2, 2), 0.3),
        inc_flux_dir=jnp.full((2, 3), 500.0), inc_flux_dif=jnp.full((2, 3), 20.0),
    )

    for field in fluxes[:3]:
        assert not jnp.any(jnp.isnan(field))
    np.testing.assert_array_equal(fluxes.flux_dn_dir[0], 0.0)
    assert jnp.all(fluxes.flux_dn_dir[1] > 0.0)
    np.testing.assert_allclose(fluxes.flux_dn[0, 0], 20.0)
    assert jnp.all(fluxes.flux_dn[0, 1:] > 0.0)


def test_fluxes_respect_energy_bounds():
    """Reflected flux never exceeds the incoming flux and no flux is negative"""
    optics = _cloudy_column()
    mu0 = jnp.array([0.2, 0.6, 1.0])
    inc_dir = jnp.full((3, 3), 400.0)

    fluxes = solve_shortwave(
        optics, mu0, jnp.full((3, 2), 0.15), jnp.full((3, 2), 0.25), inc_flux_dir=inc_dir
    )

    incoming = inc_dir * mu0[:, None]
    assert jnp.all(fluxes.flux_up[:, 0] <= incoming + 1e-9)
    assert jnp.all(fluxes.flux_up >= -1e-12)
    assert jnp.all(fluxes.flux_dn >= fluxes.flux_dn_dir - 1e-12)
    # Net downward flux cannot grow with depth in an absorbing column.
    net = fluxes.flux_dn - fluxes.flux_up
    assert jnp.all(jnp.diff(net, axis=1) <= 1e-9)


def test_orientation_is_mirror_image():
    """Solving the flipped column gives the flipped fluxes"""
    optics = _cloudy_column()
    flipped = optics.copy(tau=optics.tau[:, ::-1], ssa=optics.ssa[:, ::-1], g=optics.g[:, ::-1])
    args = (jnp.array([0.3, 0.5, 0.9]), jnp.full((3, 2), 0.1), jnp.full((3, 2), 0.2))
    kwargs = dict(inc_flux_dir=jnp.full((3, 3), 300.0), inc_flux_dif=jnp.full((3, 3), 5.0))

    top_first = solve_shortwave(optics, *args, **kwargs)
    bottom_first = solve_shortwave(flipped, *args, top_at_first=False, **kwargs)

    for a, b in zip(top_first[:3], bottom_first[:3]):
        np.testing.assert_allclose(b, a[:, ::-1], rtol=1e-12)


def test_broadband_and_loop_variants_agree():
    """Fused reduction and unrolled loops reproduce the default solve"""
    optics = _cloudy_column()
    args = (jnp.array([0.3, 0.5, 0.9]), jnp.full((3, 2), 0.1), jnp.full((3, 2), 0.2))
    inc_dir = jnp.full((3, 3), 300.0)

    spectral = solve_shortwave(optics, *args, inc_flux_dir=inc_dir)
    broadband = solve_shortwave(optics, *args, inc_flux_dir=inc_dir, do_broadband=True)
    unrolled = solve_shortwave(optics, *args, inc_flux_dir=inc_dir, use_scan=False)

    for a, b, c in zip(spectral[:3], broadband[:3], unrolled[:3]):
        np.testing.assert_allclose(b, a.sum(-1), rtol=1e-12)
        np.testing.assert_allclose(c, a, rtol=1e-12)


def test_zero_layers_keep_boundary_fluxes():
    """Without layers the surface sees the incident beams directly"""
    optics = _optics(jnp.zeros((2, 0, 3)), 0.5, 0.3)
    mu0 = jnp.array([0.5, -0.1])

    fluxes = solve_shortwave(
        optics, mu0, jnp.full((2, 2), 0.2), jnp.full((2, 2), 0.4),
        inc_flux_dir=jnp.full((2, 3), 100.0), inc_flux_dif=jnp.full((2, 3), 7.0),
    )

    assert fluxes.flux_dn.shape == (2, 1, 3)
    np.testing.assert_allclose(fluxes.flux_dn_dir[:, 0], [[50.0] * 3, [0.0] * 3])
    np.testing.assert_allclose(fluxes.flux_dn[:, 0], [[57.0] * 3, [7.0] * 3], rtol=1e-12)
    np.testing.assert_allclose(
        fluxes.flux_up[:, 0], [[0.2 * 50.0 + 0.4 * 7.0] * 3, [0.4 * 7.0] * 3], rtol=1e-12
    )

    empty = solve_shortwave(
        _optics(jnp.zeros((0, 4, 3)), 0.5, 0.3), jnp.zeros((0,)), jnp.zeros((0, 2)),
        jnp.zeros((0, 2)), inc_flux_dir=jnp.zeros((0, 3)), do_broadband=True,
    )
    assert empty.flux_up.shape == (0, 5)


def test_input_checks():
    """Malformed inputs are rejected before solving"""
    optics = _cloudy_column(n_col=1)
    alb = jnp.full((1, 2), 0.2)
    inc = jnp.full((1, 3), 100.0)

    with pytest.raises(ShapeMismatchError):
        solve_shortwave(OpticalProps1scl.create(optics.tau, _DISC), jnp.array([0.5]), alb, alb, inc)
    with pytest.raises(DomainViolationError):
        solve_shortwave(optics, jnp.array([1.5]), alb, alb, inc)
    with pytest.raises(DomainViolationError):
        solve_shortwave(optics, jnp.array([0.5]), alb + 1.0, alb, inc)
    with pytest.raises(DomainViolationError):
        solve_shortwave(optics, jnp.array([0.5]), alb, alb, -inc)
    with pytest.raises(ShapeMismatchError):
        solve_shortwave(optics, jnp.array([0.5, 0.5]), alb, alb, inc)
    with pytest.raises(ShapeMismatchError):
        solve_shortwave(optics, jnp.array([0.5]), alb, alb, inc[:, :2])
