"""Dataclass for loading and accessing aerosol optics."""

import dataclasses
import enum
from collections.abc import Mapping
from typing import TypeAlias

import jax
import jax.numpy as jnp
import numpy as np
from etils import epath

from jaxrte.errors import DomainViolationError, InvalidDimensionError, ShapeMismatchError
from jaxrte.optics import dataloader_base
from jaxrte.optics.optical_props import SpectralDisc

Array: TypeAlias = jax.Array


class Hygroscopicity(enum.Enum):
	"""Which sub-table a species reads its coefficients from."""
	# Coefficients indexed by (band, species).
	HYDROPHOBIC = 0
	# Coefficients indexed by (band, humidity bin, species).
	HYDROPHILIC = 1


class AerosolSpecies(enum.IntEnum):
	"""The eleven aerosol species, valued by their mixing-ratio field index."""
	SS1 = 0   # Sea salt, fine
	SS2 = 1   # Sea salt, medium
	SS3 = 2   # Sea salt, coarse
	DU1 = 3   # Dust, fine
	DU2 = 4   # Dust, medium
	DU3 = 5   # Dust, coarse
	OM2 = 6   # Organic matter, hydrophilic
	OM1 = 7   # Organic matter, hydrophobic
	BC1 = 8   # Black carbon, hydrophilic mode
	BC2 = 9   # Black carbon, hydrophobic mode
	SU = 10   # Sulphate


N_SPECIES = len(AerosolSpecies)

# Species -> (sub-table, column in that sub-table).
SPECIES_TABLE_COLUMN: dict[AerosolSpecies, tuple[Hygroscopicity, int]] = {
	AerosolSpecies.SS1: (Hygroscopicity.HYDROPHILIC, 0),
	AerosolSpecies.SS2: (Hygroscopicity.HYDROPHILIC, 1),
	AerosolSpecies.SS3: (Hygroscopicity.HYDROPHILIC, 2),
	AerosolSpecies.DU1: (Hygroscopicity.HYDROPHOBIC, 0),
	AerosolSpecies.DU2: (Hygroscopicity.HYDROPHOBIC, 7),
	AerosolSpecies.DU3: (Hygroscopicity.HYDROPHOBIC, 5),
	AerosolSpecies.OM2: (Hygroscopicity.HYDROPHILIC, 3),
	AerosolSpecies.OM1: (Hygroscopicity.HYDROPHOBIC, 9),
	AerosolSpecies.BC1: (Hygroscopicity.HYDROPHOBIC, 10),
	AerosolSpecies.BC2: (Hygroscopicity.HYDROPHOBIC, 10),
	AerosolSpecies.SU: (Hygroscopicity.HYDROPHILIC, 4),
}


@dataclasses.dataclass(frozen=True)
class LookupAerosolOptics:
	"""Dataclass for lookup table of aerosol optical properties."""
	# Band limits in wavenumber (`nbnd, 2`) in cm⁻¹.
	band_lims_wvn: Array
	# Upper bounds of the relative humidity bins (`n_rh`), ascending.
	rh_upper: Array

	# Hydrophobic mass extinction coefficient (`nbnd, n_phobic`) in m²/kg.
	mext_phobic: Array
	# Hydrophobic single-scattering albedo (`nbnd, n_phobic`).
	ssa_phobic: Array
	# Hydrophobic asymmetry parameter (`nbnd, n_phobic`).
	g_phobic: Array

	# Hydrophilic mass extinction coefficient (`nbnd, n_rh, n_philic`) in m²/kg.
	mext_philic: Array
	# Hydrophilic single-scattering albedo (`nbnd, n_rh, n_philic`).
	ssa_philic: Array
	# Hydrophilic asymmetry parameter (`nbnd, n_rh, n_philic`).
	g_philic: Array

	@property
	def n_band(self) -> int:
		return self.band_lims_wvn.shape[0]

	@property
	def n_rh(self) -> int:
		return self.rh_upper.shape[0]

	@property
	def spectral_disc(self) -> SpectralDisc:
		"""One g-point per band."""
		return SpectralDisc.from_band_lims_wvn(self.band_lims_wvn)


def create(
    band_lims_wvn,
    rh_upper,
    mext_phobic,
    ssa_phobic,
    g_phobic,
    mext_philic,
    ssa_philic,
    g_philic,
) -> LookupAerosolOptics:
	"""Build a `LookupAerosolOptics` after checking its extents.

	Raises:
	  ShapeMismatchError: If the sub-tables disagree on the number of bands or
	    humidity bins, or lack a column that a species maps to.
	  InvalidDimensionError: If there are no humidity bins.
	  DomainViolationError: If the humidity thresholds are not ascending.
	"""
	band_lims_wvn = jnp.asarray(band_lims_wvn, dtype=float)
	rh_upper = jnp.asarray(rh_upper, dtype=float)
	phobic = [jnp.asarray(a) for a in (mext_phobic, ssa_phobic, g_phobic)]
	philic = [jnp.asarray(a) for a in (mext_philic, ssa_philic, g_philic)]

	n_band = band_lims_wvn.shape[0]
	if rh_upper.ndim != 1 or rh_upper.shape[0] < 1:
		raise InvalidDimensionError('rh_upper must hold at least one humidity bin')
	if np.any(np.diff(np.asarray(rh_upper)) < 0):
		raise DomainViolationError('rh_upper must be ascending')

	for a in phobic:
		if a.ndim != 2 or a.shape[0] != n_band or a.shape != phobic[0].shape:
			raise ShapeMismatchError(
				f'hydrophobic tables must be ({n_band}, n_phobic), got {a.shape}'
			)
	for a in philic:
		if a.ndim != 3 or a.shape[:2] != (n_band, rh_upper.shape[0]) or a.shape != philic[0].shape:
			raise ShapeMismatchError(
				f'hydrophilic tables must be ({n_band}, {rh_upper.shape[0]}, n_philic), got {a.shape}'
			)

	n_phobic, n_philic = phobic[0].shape[1], philic[0].shape[2]
	for species, (kind, column) in SPECIES_TABLE_COLUMN.items():
		n_columns = n_phobic if kind is Hygroscopicity.HYDROPHOBIC else n_philic
		if column >= n_columns:
			raise ShapeMismatchError(
				f'{species.name} needs column {column} of the {kind.name.lower()} '
				f'table, which has {n_columns}'
			)

	return LookupAerosolOptics(
		band_lims_wvn=band_lims_wvn,
		rh_upper=rh_upper,
		mext_phobic=phobic[0],
		ssa_phobic=phobic[1],
		g_phobic=phobic[2],
		mext_philic=philic[0],
		ssa_philic=philic[1],
		g_philic=philic[2],
	)


def _load_data(tables: Mapping[str, Array]) -> dict[str, Array]:
	"""Pick the aerosol optics variables out of a parsed netCDF file.

	Args:
	  tables: The extracted lookup tables and other parameters as a dictionary.

	Returns:
	  Keyword arguments for `create`.
	"""
	data = {}
	data['band_lims_wvn'] = tables['bnd_limits_wavenumber']
	data['rh_upper'] = tables['rh_upper']
	data['mext_phobic'] = tables['mext_phobic']
	data['ssa_phobic'] = tables['ssa_phobic']
	data['g_phobic'] = tables['asy_phobic']
	data['mext_philic'] = tables['mext_philic']
	data['ssa_philic'] = tables['ssa_philic']
	data['g_philic'] = tables['asy_philic']
	return data


def from_nc_file(path: epath.PathLike) -> LookupAerosolOptics:
	"""Instantiate a `LookupAerosolOptics` object from a netCDF file.

	The netCDF file should contain the mass extinction coefficient,
	single-scattering albedo and asymmetry factor of the hydrophobic
	(`band, hydrophobic`) and hydrophilic (`band, rh, hydrophilic`) species,
	the ascending humidity bin upper bounds (`rh`) and the band limits
	(`band, pair`).

	Args:
	  path: The full path of the netCDF file containing the aerosol optics lookup
	    tables.

	Returns:
	  A `LookupAerosolOptics` instance.
	"""
	ds, tables, _ = dataloader_base.parse_nc_file(path)
	ds.close()
	return create(**_load_data(tables))
