"""
Aerosol optics from a humidity-binned lookup table

Each of the eleven aerosol species contributes an optical depth
`mmr * dpg * mext` per band, where hydrophilic species read their
coefficients from the humidity bin of the local relative humidity. The
contributions are summed as tau, tau*ssa and tau*ssa*g and then normalised
into a two-stream optical properties container with one g-point per band.
"""

import jax
import jax.numpy as jnp
import numpy as np
from typing import Optional, Sequence, Tuple, TypeAlias

from jaxrte.constants import EPSILON
from jaxrte.errors import DomainViolationError, ShapeMismatchError
from jaxrte.optics.lookup_aerosol_optics import (
    AerosolSpecies,
    Hygroscopicity,
    LookupAerosolOptics,
    N_SPECIES,
    SPECIES_TABLE_COLUMN,
)
from jaxrte.optics.optical_props import OpticalProps2str
from jaxrte.utils import check_range, is_concrete

Array: TypeAlias = jax.Array


def rh_class(rel_hum: Array, rh_upper: Array) -> Array:
    """
    Humidity bin of each relative humidity value.

    The bin is the first one, scanning upward, whose upper bound is not less
    than the humidity. Humidities above every bound fall in the last bin.

    Args:
        rel_hum: Relative humidity, any shape
        rh_upper: Ascending upper bounds of the humidity bins [n_rh]

    Returns:
        Integer bin index with the shape of `rel_hum`
    """
    rh_upper = jnp.asarray(rh_upper)
    ihum = jnp.searchsorted(rh_upper, jnp.asarray(rel_hum), side='left')
    return jnp.minimum(ihum, rh_upper.shape[0] - 1)


def _species_coefficients(species, ihum, table_arrays):
    """Per-band (mext, ssa, g) of one species, shaped to broadcast against (ncol, nlay, nbnd)."""
    mext_phobic, ssa_phobic, g_phobic, mext_philic, ssa_philic, g_philic = table_arrays
    kind, column = SPECIES_TABLE_COLUMN[species]
    if kind is Hygroscopicity.HYDROPHOBIC:
        return (
            mext_phobic[:, column],
            ssa_phobic[:, column],
            g_phobic[:, column],
        )
    # (nbnd, n_rh) -> (n_rh, nbnd), gathered by bin -> (ncol, nlay, nbnd)
    return (
        mext_philic[:, :, column].T[ihum],
        ssa_philic[:, :, column].T[ihum],
        g_philic[:, :, column].T[ihum],
    )


@jax.jit
def _compute_from_table(mmr, rel_hum, dpg, rh_upper, table_arrays):
    ihum = rh_class(rel_hum, rh_upper)
    n_col, n_lay = rel_hum.shape
    n_band = table_arrays[0].shape[0]

    tau = jnp.zeros((n_col, n_lay, n_band))
    taussa = jnp.zeros((n_col, n_lay, n_band))
    taussag = jnp.zeros((n_col, n_lay, n_band))
    for species in AerosolSpecies:
        mext, ssa, g = _species_coefficients(species, ihum, table_arrays)
        local_od = (mmr[species] * dpg)[:, :, jnp.newaxis] * mext
        tau = tau + local_od
        taussa = taussa + local_od * ssa
        taussag = taussag + local_od * ssa * g
    return tau, taussa, taussag


def compute_two_stream_optics(
    mixing_ratios: Sequence[Array],
    rel_hum: Array,
    dpg: Array,
    table: LookupAerosolOptics,
) -> Tuple[Array, Array, Array]:
    """
    Accumulate the aerosol optical depth and its scattering moments.

    Args:
        mixing_ratios: Eleven mass mixing ratio fields [kg/kg] (ncol, nlay),
            ordered as `AerosolSpecies`
        rel_hum: Relative humidity [1] (ncol, nlay)
        dpg: Dry air mass path, pressure thickness over gravity [kg/m²] (ncol, nlay)
        table: Aerosol optics lookup table

    Returns:
        Tuple of (tau, tau*ssa, tau*ssa*g), each (ncol, nlay, nbnd)

    Raises:
        ShapeMismatchError: Wrong number of species or disagreeing extents
        DomainViolationError: Negative mixing ratio or dry air path, or
            non-finite humidity
    """
    if len(mixing_ratios) != N_SPECIES:
        raise ShapeMismatchError(
            f'expected {N_SPECIES} aerosol mixing ratio fields, got {len(mixing_ratios)}'
        )
    rel_hum = jnp.asarray(rel_hum)
    dpg = jnp.asarray(dpg)
    mmr = jnp.stack([jnp.asarray(m) for m in mixing_ratios])
    if rel_hum.ndim != 2:
        raise ShapeMismatchError(f'relative humidity must be (ncol, nlay), got {rel_hum.shape}')
    if dpg.shape != rel_hum.shape or mmr.shape[1:] != rel_hum.shape:
        raise ShapeMismatchError(
            f'mixing ratios {mmr.shape[1:]}, humidity {rel_hum.shape} and dry air '
            f'path {dpg.shape} must share a shape'
        )
    if is_concrete(rel_hum) and not np.all(np.isfinite(np.asarray(rel_hum))):
        raise DomainViolationError('relative humidity must be finite to select a humidity bin')
    check_range('aerosol mixing ratio', mmr, lower=0.0)
    check_range('dry air mass path', dpg, lower=0.0)

    table_arrays = (
        table.mext_phobic, table.ssa_phobic, table.g_phobic,
        table.mext_philic, table.ssa_philic, table.g_philic,
    )
    return _compute_from_table(mmr, rel_hum, dpg, table.rh_upper, table_arrays)


def aerosol_optics(
    mixing_ratios: Sequence[Array],
    rel_hum: Array,
    dpg: Array,
    table: LookupAerosolOptics,
    optical_props: Optional[OpticalProps2str] = None,
) -> OpticalProps2str:
    """
    Two-stream aerosol optical properties per band.

    The result overwrites `optical_props` when given (its extents must be
    (ncol, nlay, nbnd) on the table's bands); combining with gas optics is
    left to the caller via `increment`.
    """
    tau, taussa, taussag = compute_two_stream_optics(mixing_ratios, rel_hum, dpg, table)

    if optical_props is None:
        optical_props = OpticalProps2str.zeros(tau.shape[0], tau.shape[1], table.spectral_disc)
    elif optical_props.tau.shape != tau.shape:
        raise ShapeMismatchError(
            f'aerosol optics are {tau.shape}, target container is {optical_props.tau.shape}'
        )
    elif not optical_props.disc.bands_are_equal(table.spectral_disc):
        raise ShapeMismatchError('target container has different bands than the aerosol table')

    return optical_props.copy(
        tau=tau,
        ssa=taussa / jnp.maximum(tau, EPSILON),
        g=taussag / jnp.maximum(taussa, EPSILON),
    )
