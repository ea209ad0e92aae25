"""Helpers for reading optics lookup tables from netCDF files."""

import logging
import os
from typing import TypeAlias

import jax
import jax.numpy as jnp
import netCDF4 as nc
import numpy as np
from etils import epath

Array: TypeAlias = jax.Array

logger = logging.getLogger(__name__)


def parse_nc_file(
    path: epath.PathLike,
) -> tuple[nc.Dataset, dict[str, Array], dict[str, int]]:
    """Read every numeric variable and every dimension of a netCDF file.

    Args:
        path: Full path of the netCDF file.

    Returns:
        A tuple of the open `Dataset`, its numeric variables as `Array`s keyed by
        variable name, and the dimension sizes keyed by dimension name. The
        caller closes the dataset; it is already closed if reading fails.
    """
    path = epath.Path(path)
    logger.info('Reading lookup table %s', path)
    ds = nc.Dataset(os.fspath(path), 'r')
    try:
        dims = {name: len(dim) for name, dim in ds.dimensions.items()}
        tables = {}
        for name, var in ds.variables.items():
            values = var[:]
            if not np.issubdtype(values.dtype, np.number):
                continue
            tables[name] = jnp.asarray(np.ma.getdata(values))
    except Exception:
        ds.close()
        raise
    logger.debug('Loaded %d variables over dimensions %s', len(tables), dims)
    return ds, tables, dims
