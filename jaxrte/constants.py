"""Constants and common keys in the radiative transfer core."""

import numpy as np

# Floor used in the weighted averages of ssa and g.
EPSILON = float(np.finfo(np.float64).eps)
# Below this optical depth the linear-in-tau source uses its Taylor expansion.
TAU_THRESH = float(np.sqrt(np.finfo(np.float64).eps))
# Floor of the squared two-stream eigenvalue.
K_MIN_SQUARED = 1e-12

# Diffusivity secant used with a single longwave angle (Fu et al. 1997).
LW_DIFFUSIVE_FACTOR = 1.66

# Gaussian quadrature secants and weights, one row per number of angles.
# The first row is the diffusivity approximation, not a Gaussian angle.
# Weights are normalised so that each row sums to one.
GAUSS_DS = np.array([
    [1.66, 0.0, 0.0, 0.0],
    [1.18350343, 2.81649655, 0.0, 0.0],
    [1.09719858, 1.69338507, 4.70941630, 0.0],
    [1.06056257, 1.38282560, 2.40148179, 7.15513024],
])
GAUSS_WTS = 2.0 * np.array([
    [0.5, 0.0, 0.0, 0.0],
    [0.3180413817, 0.1819586183, 0.0, 0.0],
    [0.2009319137, 0.2292411064, 0.0698269799, 0.0],
    [0.1355069134, 0.2034645680, 0.1298475476, 0.0311809710],
])
MAX_GAUSS_PTS = GAUSS_DS.shape[0]

GRAVITY = 9.81  # m/s²
CP_DRY_AIR = 1004.0  # J/kg/K
