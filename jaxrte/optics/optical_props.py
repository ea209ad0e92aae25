"""
Optical properties containers

Holds per-(column, layer, g-point) optical depth, single-scattering albedo and
asymmetry factor for absorption-only (`OpticalProps1scl`, longwave) and
two-stream (`OpticalProps2str`, shortwave) problems, together with the
spectral discretization that maps g-points to bands.

Arrays are 0-based and row-major with dimension order (column, layer, g-point).
All containers are `tree_math.struct`s so they can be passed through `jax.jit`;
"in place" combination returns a new container.
"""

import jax
import jax.numpy as jnp
import numpy as np
import tree_math
from typing import Optional, TypeAlias

from jaxrte.constants import EPSILON
from jaxrte.errors import InvalidDimensionError, ShapeMismatchError
from jaxrte.utils import check_column_range, check_dims, check_range, is_concrete

Array: TypeAlias = jax.Array


@tree_math.struct
class SpectralDisc:
    """Band structure shared by all optical properties on the same spectral grid"""

    band_lims_wvn: jnp.ndarray   # Band limits in wavenumber [cm⁻¹] (nbnd, 2)
    band_lims_gpt: jnp.ndarray   # Inclusive first/last g-point per band (nbnd, 2)

    @classmethod
    def create(cls, band_lims_wvn, band_lims_gpt=None) -> 'SpectralDisc':
        """Build a validated discretization.

        Without `band_lims_gpt` every band holds a single g-point, which is the
        layout used by per-band optics such as aerosols.
        """
        band_lims_wvn = np.asarray(band_lims_wvn, dtype=float)
        if band_lims_wvn.ndim != 2 or band_lims_wvn.shape[1] != 2:
            raise ShapeMismatchError(
                f'band_lims_wvn must have shape (nbnd, 2), got {band_lims_wvn.shape}'
            )
        n_band = band_lims_wvn.shape[0]
        if n_band < 1:
            raise InvalidDimensionError('a spectral discretization needs at least one band')

        if band_lims_gpt is None:
            band_lims_gpt = np.stack([np.arange(n_band)] * 2, axis=1)
        band_lims_gpt = np.asarray(band_lims_gpt, dtype=np.int32)
        if band_lims_gpt.shape != band_lims_wvn.shape:
            raise ShapeMismatchError(
                f'band_lims_gpt has shape {band_lims_gpt.shape}, '
                f'band_lims_wvn has shape {band_lims_wvn.shape}'
            )

        # Bands must tile the g-points contiguously from 0.
        if band_lims_gpt[0, 0] != 0:
            raise ShapeMismatchError('the first band must start at g-point 0')
        if np.any(band_lims_gpt[:, 1] < band_lims_gpt[:, 0]):
            raise InvalidDimensionError('every band must hold at least one g-point')
        if np.any(band_lims_gpt[1:, 0] != band_lims_gpt[:-1, 1] + 1):
            raise ShapeMismatchError('band g-point limits must be contiguous and ascending')

        return cls(
            band_lims_wvn=jnp.asarray(band_lims_wvn),
            band_lims_gpt=jnp.asarray(band_lims_gpt),
        )

    @classmethod
    def from_band_lims_wvn(cls, band_lims_wvn) -> 'SpectralDisc':
        return cls.create(band_lims_wvn)

    @property
    def n_band(self) -> int:
        return self.band_lims_gpt.shape[0]

    @property
    def n_gpt(self) -> int:
        """Number of g-points; needs concrete band limits."""
        return int(np.asarray(self.band_lims_gpt)[-1, 1]) + 1

    def gpt_to_band(self, n_gpt: Optional[int] = None) -> Array:
        """Band index of every g-point, shape (n_gpt,)."""
        if n_gpt is None:
            n_gpt = self.n_gpt
        return jnp.searchsorted(self.band_lims_gpt[:, 1], jnp.arange(n_gpt), side='left')

    def expand(self, per_band: Array, n_gpt: Optional[int] = None) -> Array:
        """Broadcast a (..., n_band) field to (..., n_gpt)."""
        per_band = jnp.asarray(per_band)
        if per_band.shape[-1] != self.n_band:
            raise ShapeMismatchError(
                f'expected {self.n_band} bands in the last dimension, got {per_band.shape[-1]}'
            )
        return jnp.take(per_band, self.gpt_to_band(n_gpt), axis=-1)

    def bands_are_equal(self, other: 'SpectralDisc') -> bool:
        if self.band_lims_wvn.shape != other.band_lims_wvn.shape:
            return False
        if not is_concrete(self.band_lims_wvn, other.band_lims_wvn):
            return True
        return bool(np.allclose(self.band_lims_wvn, other.band_lims_wvn))

    def gpoints_are_equal(self, other: 'SpectralDisc') -> bool:
        if self.band_lims_gpt.shape != other.band_lims_gpt.shape:
            return False
        if not is_concrete(self.band_lims_gpt, other.band_lims_gpt):
            return True
        return bool(np.array_equal(self.band_lims_gpt, other.band_lims_gpt))


def _check_same_grid(op_in, op_io):
    if op_in.tau.shape != op_io.tau.shape:
        raise ShapeMismatchError(
            f'cannot combine optical properties of shape {op_in.tau.shape} '
            f'into {op_io.tau.shape}'
        )
    if not (op_in.disc.bands_are_equal(op_io.disc) and op_in.disc.gpoints_are_equal(op_io.disc)):
        raise ShapeMismatchError('optical properties have different band structures')


def _check_extents(tau, disc):
    if tau.ndim != 3:
        raise InvalidDimensionError(
            f'optical depth must be (column, layer, g-point), got {tau.ndim} dimensions'
        )
    if is_concrete(disc.band_lims_gpt) and tau.shape[-1] != disc.n_gpt:
        raise ShapeMismatchError(
            f'optical depth has {tau.shape[-1]} g-points, the spectral '
            f'discretization has {disc.n_gpt}'
        )


@tree_math.struct
class OpticalProps1scl:
    """Absorption-only optical properties (optical depth only)"""

    tau: jnp.ndarray          # Optical depth (ncol, nlay, ngpt)
    disc: SpectralDisc

    @classmethod
    def zeros(cls, n_col: int, n_lay: int, disc: SpectralDisc) -> 'OpticalProps1scl':
        check_dims(n_col=n_col, n_lay=n_lay)
        return cls(tau=jnp.zeros((n_col, n_lay, disc.n_gpt)), disc=disc)

    @classmethod
    def create(cls, tau, disc: SpectralDisc) -> 'OpticalProps1scl':
        """Wrap an existing optical depth field after checking it."""
        tau = jnp.asarray(tau)
        _check_extents(tau, disc)
        out = cls(tau=tau, disc=disc)
        out.validate()
        return out

    @property
    def n_col(self) -> int:
        return self.tau.shape[0]

    @property
    def n_lay(self) -> int:
        return self.tau.shape[1]

    @property
    def n_gpt(self) -> int:
        return self.tau.shape[2]

    def validate(self):
        check_range('tau', self.tau, lower=0.0)

    def subset(self, col_start: int, col_end: int) -> 'OpticalProps1scl':
        """Columns [col_start, col_end)."""
        check_column_range(col_start, col_end, self.n_col)
        return self.copy(tau=self.tau[col_start:col_end])

    def absorption_tau(self) -> Array:
        return self.tau

    def increment(self, other) -> 'OpticalProps1scl':
        """Add `other` into these properties.

        A two-stream contributor only adds its absorption optical depth.
        """
        _check_same_grid(other, self)
        return self.copy(tau=self.tau + other.absorption_tau())

    def copy(self, **kwargs) -> 'OpticalProps1scl':
        new_data = {'tau': self.tau, 'disc': self.disc}
        new_data.update(kwargs)
        return OpticalProps1scl(**new_data)


@tree_math.struct
class OpticalProps2str:
    """Two-stream optical properties"""

    tau: jnp.ndarray          # Optical depth (ncol, nlay, ngpt)
    ssa: jnp.ndarray          # Single-scattering albedo (ncol, nlay, ngpt)
    g: jnp.ndarray            # Asymmetry factor (ncol, nlay, ngpt)
    disc: SpectralDisc

    @classmethod
    def zeros(cls, n_col: int, n_lay: int, disc: SpectralDisc) -> 'OpticalProps2str':
        check_dims(n_col=n_col, n_lay=n_lay)
        shape = (n_col, n_lay, disc.n_gpt)
        return cls(tau=jnp.zeros(shape), ssa=jnp.zeros(shape), g=jnp.zeros(shape), disc=disc)

    @classmethod
    def create(cls, tau, ssa, g, disc: SpectralDisc) -> 'OpticalProps2str':
        """Wrap existing fields after checking extents and domains."""
        tau, ssa, g = jnp.asarray(tau), jnp.asarray(ssa), jnp.asarray(g)
        _check_extents(tau, disc)
        if ssa.shape != tau.shape or g.shape != tau.shape:
            raise ShapeMismatchError(
                f'tau {tau.shape}, ssa {ssa.shape} and g {g.shape} must share a shape'
            )
        out = cls(tau=tau, ssa=ssa, g=g, disc=disc)
        out.validate()
        return out

    @property
    def n_col(self) -> int:
        return self.tau.shape[0]

    @property
    def n_lay(self) -> int:
        return self.tau.shape[1]

    @property
    def n_gpt(self) -> int:
        return self.tau.shape[2]

    def validate(self):
        check_range('tau', self.tau, lower=0.0)
        check_range('ssa', self.ssa, lower=0.0, upper=1.0)
        check_range('g', self.g, lower=-1.0, upper=1.0)

    def subset(self, col_start: int, col_end: int) -> 'OpticalProps2str':
        """Columns [col_start, col_end)."""
        check_column_range(col_start, col_end, self.n_col)
        sl = slice(col_start, col_end)
        return self.copy(tau=self.tau[sl], ssa=self.ssa[sl], g=self.g[sl])

    def absorption_tau(self) -> Array:
        return self.tau * (1.0 - self.ssa)

    def increment(self, other) -> 'OpticalProps2str':
        """Add `other` into these properties.

        Optical depths add; ssa and g become scattering-weighted means.
        An absorption-only contributor carries no scattering.
        """
        _check_same_grid(other, self)
        tau = self.tau + other.tau
        if isinstance(other, OpticalProps2str):
            taussa = self.tau * self.ssa + other.tau * other.ssa
            taussag = self.tau * self.ssa * self.g + other.tau * other.ssa * other.g
            g = taussag / jnp.maximum(taussa, EPSILON)
        else:
            taussa = self.tau * self.ssa
            g = self.g
        return self.copy(tau=tau, ssa=taussa / jnp.maximum(tau, EPSILON), g=g)

    def delta_scale(self, forward_fraction: Optional[Array] = None) -> 'OpticalProps2str':
        """Delta-scale the properties, by default with f = g²."""
        f = self.g * self.g if forward_fraction is None else jnp.asarray(forward_fraction)
        if f.shape != self.tau.shape:
            raise ShapeMismatchError(
                f'forward fraction has shape {f.shape}, expected {self.tau.shape}'
            )
        check_range('forward_fraction', f, lower=0.0, upper=1.0)
        wf = self.ssa * f
        return self.copy(
            tau=(1.0 - wf) * self.tau,
            ssa=(self.ssa - wf) / jnp.maximum(1.0 - wf, EPSILON),
            g=(self.g - f) / jnp.maximum(1.0 - f, EPSILON),
        )

    def copy(self, **kwargs) -> 'OpticalProps2str':
        new_data = {'tau': self.tau, 'ssa': self.ssa, 'g': self.g, 'disc': self.disc}
        new_data.update(kwargs)
        return OpticalProps2str(**new_data)
