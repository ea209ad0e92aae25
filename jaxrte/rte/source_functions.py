"""
Longwave source functions

Planck-like emission terms consumed by the no-scattering longwave solver.
Layer fields are (column, layer, g-point) and surface fields (column, g-point),
sized against the optical properties they are used with.

`lev_source_inc` is the source at the layer edge in the direction of
increasing layer index, `lev_source_dec` the one in the direction of
decreasing layer index. Both are stored per layer.
"""

import jax.numpy as jnp
import tree_math

from jaxrte.errors import ShapeMismatchError
from jaxrte.optics.optical_props import SpectralDisc
from jaxrte.utils import check_column_range, check_dims, check_range

_LAYER_FIELDS = ('lay_source', 'lev_source_inc', 'lev_source_dec')
_SURFACE_FIELDS = ('sfc_source', 'sfc_source_jac')


@tree_math.struct
class SourceFuncLW:
    """Longwave emission sources on one spectral grid"""

    lay_source: jnp.ndarray       # Layer source (ncol, nlay, ngpt)
    lev_source_inc: jnp.ndarray   # Level source, increasing-index edge (ncol, nlay, ngpt)
    lev_source_dec: jnp.ndarray   # Level source, decreasing-index edge (ncol, nlay, ngpt)
    sfc_source: jnp.ndarray       # Surface source (ncol, ngpt)
    sfc_source_jac: jnp.ndarray   # d(sfc_source)/d(T_sfc) (ncol, ngpt)
    disc: SpectralDisc

    @classmethod
    def zeros(cls, n_col: int, n_lay: int, optical_props) -> 'SourceFuncLW':
        """Zero sources sized like `optical_props`, which must hold n_col x n_lay."""
        check_dims(n_col=n_col, n_lay=n_lay)
        if (n_col, n_lay) != tuple(optical_props.tau.shape[:2]):
            raise ShapeMismatchError(
                f'sources of {n_col} columns and {n_lay} layers do not match optical '
                f'properties of shape {optical_props.tau.shape}'
            )
        n_gpt = optical_props.n_gpt
        lay = jnp.zeros((n_col, n_lay, n_gpt))
        sfc = jnp.zeros((n_col, n_gpt))
        return cls(
            lay_source=lay,
            lev_source_inc=lay,
            lev_source_dec=lay,
            sfc_source=sfc,
            sfc_source_jac=sfc,
            disc=optical_props.disc,
        )

    @classmethod
    def from_arrays(
        cls,
        lay_source,
        lev_source_inc,
        lev_source_dec,
        sfc_source,
        optical_props,
        sfc_source_jac=None,
    ) -> 'SourceFuncLW':
        """
        Wrap filled source arrays after checking them against `optical_props`.

        Args:
            lay_source, lev_source_inc, lev_source_dec: (ncol, nlay, ngpt)
            sfc_source: (ncol, ngpt)
            optical_props: Optical properties the sources will be solved with
            sfc_source_jac: (ncol, ngpt); zeros when omitted

        Raises:
            ShapeMismatchError: Any field disagrees with the optical properties
            DomainViolationError: Negative or NaN sources
        """
        sfc_source = jnp.asarray(sfc_source)
        if sfc_source_jac is None:
            sfc_source_jac = jnp.zeros_like(sfc_source)
        sources = cls(
            lay_source=jnp.asarray(lay_source),
            lev_source_inc=jnp.asarray(lev_source_inc),
            lev_source_dec=jnp.asarray(lev_source_dec),
            sfc_source=sfc_source,
            sfc_source_jac=jnp.asarray(sfc_source_jac),
            disc=optical_props.disc,
        )
        sources.validate_against(optical_props)
        for name in _LAYER_FIELDS + ('sfc_source',):
            check_range(name, getattr(sources, name), lower=0.0)
        return sources

    @property
    def n_col(self) -> int:
        return self.lay_source.shape[0]

    @property
    def n_lay(self) -> int:
        return self.lay_source.shape[1]

    @property
    def n_gpt(self) -> int:
        return self.lay_source.shape[2]

    def validate_against(self, optical_props):
        """Raise `ShapeMismatchError` unless the extents match `optical_props`."""
        layer_shape = tuple(optical_props.tau.shape)
        surface_shape = (layer_shape[0], layer_shape[2])
        for name in _LAYER_FIELDS:
            shape = tuple(getattr(self, name).shape)
            if shape != layer_shape:
                raise ShapeMismatchError(
                    f'{name} has shape {shape}, optical properties are {layer_shape}'
                )
        for name in _SURFACE_FIELDS:
            shape = tuple(getattr(self, name).shape)
            if shape != surface_shape:
                raise ShapeMismatchError(
                    f'{name} has shape {shape}, expected {surface_shape}'
                )
        if not (self.disc.bands_are_equal(optical_props.disc)
                and self.disc.gpoints_are_equal(optical_props.disc)):
            raise ShapeMismatchError('sources and optical properties have different band structures')

    def subset(self, col_start: int, col_end: int) -> 'SourceFuncLW':
        """Columns [col_start, col_end)."""
        check_column_range(col_start, col_end, self.n_col)
        sl = slice(col_start, col_end)
        return self.copy(**{
            name: getattr(self, name)[sl] for name in _LAYER_FIELDS + _SURFACE_FIELDS
        })

    def copy(self, **kwargs) -> 'SourceFuncLW':
        new_data = {name: getattr(self, name) for name in _LAYER_FIELDS + _SURFACE_FIELDS}
        new_data['disc'] = self.disc
        new_data.update(kwargs)
        return SourceFuncLW(**new_data)
