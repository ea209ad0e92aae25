"""
Configuration parameters for the radiative transfer drivers

Explicit keyword arguments passed to `rte_lw` / `rte_sw` take precedence
over the values held here.
"""

import dataclasses


@dataclasses.dataclass(frozen=True)
class RteParameters:
    """Solver configuration shared by `rte_lw` and `rte_sw`"""

    n_gauss_angles: int = 1      # Gaussian quadrature angles (longwave)
    top_at_first: bool = True    # Level 0 is the top of the domain
    do_broadband: bool = False   # Reduce to broadband inside the solver
    do_jacobians: bool = False   # Upward flux Jacobian wrt surface temperature
    use_scan: bool = True        # lax.scan recurrences; Python loops otherwise

    @classmethod
    def default(cls) -> 'RteParameters':
        """Return default solver parameters"""
        return cls()

    def copy(self, **kwargs) -> 'RteParameters':
        return dataclasses.replace(self, **kwargs)
