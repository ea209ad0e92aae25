"""
Radiative transfer core in JAX

Optical properties containers, aerosol optics from humidity-binned lookup
tables, and longwave (no-scattering) and shortwave (two-stream) solvers with
broadband and per-band flux reduction.

Arrays are 0-based with dimension order (column, layer, g-point).
"""

from jaxrte.errors import (
    DomainViolationError,
    InvalidDimensionError,
    RteError,
    ShapeMismatchError,
)
from jaxrte.optics.optical_props import OpticalProps1scl, OpticalProps2str, SpectralDisc
from jaxrte.optics.lookup_aerosol_optics import AerosolSpecies, LookupAerosolOptics
from jaxrte.optics.aerosol_optics import aerosol_optics, compute_two_stream_optics, rh_class
from jaxrte.params import RteParameters
from jaxrte.rte.fluxes import FluxesBroadband, FluxesByband, heating_rate
from jaxrte.rte.rte import rte_lw, rte_sw
from jaxrte.rte.rte_types import KernelObserver, SpectralFluxes
from jaxrte.rte.source_functions import SourceFuncLW

__version__ = '0.1.0'
