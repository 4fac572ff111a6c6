from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Tuple

import numpy as np

from fit_errors import InvalidInputError


def default_kappa_grid() -> Tuple[float, ...]:
    """Matérn smoothness candidates 0.3, 0.4, ..., 5.0 (48 values)."""
    return tuple(float(k) for k in np.round(np.arange(3, 51) / 10.0, 1))


@dataclass(frozen=True)
class FitConfig:
    """
    Solver and selection settings shared by every fit of a VariogramFitter.

    Parameters
    ----------
    max_nfev : int
        Upper bound on objective evaluations per least-squares run. Reaching
        it marks the run as not converged.
    ftol, xtol, gtol : float
        Termination tolerances handed to scipy.optimize.least_squares.
    default_kappa : float
        Matérn smoothness used when a template leaves kappa unset.
    range_floor_ratio : float
        Lower bound of the range parameter, as a fraction of the largest lag.
    flat_tolerance : float
        Relative spread below which a sample curve is treated as a pure
        nugget effect.
    tie_rtol, tie_atol : float
        Residuals closer than this are ties; the earlier candidate wins.
    n_jobs : int
        Worker threads for candidate / kappa evaluation (1 = sequential).
    """

    max_nfev: int = 2000
    ftol: float = 1e-10
    xtol: float = 1e-10
    gtol: float = 1e-10
    default_kappa: float = 0.5
    range_floor_ratio: float = 1e-6
    flat_tolerance: float = 1e-10
    tie_rtol: float = 1e-9
    tie_atol: float = 1e-12
    n_jobs: int = 1

    def __post_init__(self):
        if self.max_nfev < 1:
            raise InvalidInputError("max_nfev must be >= 1.")
        if self.default_kappa <= 0:
            raise InvalidInputError("default_kappa must be > 0.")
        if not (0 < self.range_floor_ratio < 1):
            raise InvalidInputError("range_floor_ratio must lie in (0, 1).")
        if self.n_jobs == 0:
            raise InvalidInputError("n_jobs must be non-zero (use -1 for all cores).")

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "FitConfig":
        """Build a config from a plain dict (e.g. parsed from TOML/JSON)."""
        known = {f.name for f in fields(cls)}
        unknown = set(options) - known
        if unknown:
            raise InvalidInputError(f"Unknown FitConfig option(s): {sorted(unknown)}")
        return cls(**dict(options))

    def with_overrides(self, **overrides) -> "FitConfig":
        return replace(self, **overrides)
