"""
Theoretical variogram models.

Every model is written as

    gamma(h) = nugget + partial_sill * g(h / range)

with g(0) = 0, so the curve starts at the nugget (right limit at the origin)
and levels off at nugget + partial_sill. Kinds use the gstat short names.
"""
import enum
from dataclasses import dataclass, replace
from typing import Optional

import numpy as np
import pandas as pd
import gstools as gs
from scipy.special import kv, gamma as sp_gamma

from fit_errors import InvalidInputError


class ModelKind(str, enum.Enum):
    NUGGET = "Nug"
    SPHERICAL = "Sph"
    EXPONENTIAL = "Exp"
    GAUSSIAN = "Gau"
    MATERN = "Mat"
    STEIN = "Ste"

    @property
    def is_matern_family(self) -> bool:
        return self in (ModelKind.MATERN, ModelKind.STEIN)


# ---- unit-sill shapes g(t), t = h / range ------------------------------
def _spherical(t: np.ndarray) -> np.ndarray:
    return np.where(t < 1.0, 1.5 * t - 0.5 * t**3, 1.0)

def _exponential(t: np.ndarray) -> np.ndarray:
    return 1.0 - np.exp(-t)

def _gaussian(t: np.ndarray) -> np.ndarray:
    return 1.0 - np.exp(-(t**2))

def _matern(t: np.ndarray, kappa: float) -> np.ndarray:
    """1 - 2^(1-k)/Gamma(k) t^k K_k(t), with the t -> 0 limit taken as 0."""
    positive = t > 0
    t_safe = np.where(positive, t, 1.0)
    with np.errstate(over="ignore", invalid="ignore", under="ignore"):
        cor = (2.0 ** (1.0 - kappa) / sp_gamma(kappa)) * t_safe**kappa * kv(kappa, t_safe)
    # kv overflows for tiny t and underflows for huge t
    cor = np.where(np.isfinite(cor), cor, np.where(t_safe < 1.0, 1.0, 0.0))
    return np.where(positive, 1.0 - np.clip(cor, 0.0, 1.0), 0.0)

def _stein(t: np.ndarray, kappa: float) -> np.ndarray:
    return _matern(2.0 * np.sqrt(kappa) * t, kappa)


def unit_shape(kind: ModelKind, t: np.ndarray, kappa: Optional[float] = None) -> np.ndarray:
    """Evaluate the unit-sill shape g(t) of a model kind."""
    t = np.asarray(t, dtype=float)
    if kind is ModelKind.NUGGET:
        return np.zeros_like(t)
    if kind is ModelKind.SPHERICAL:
        return _spherical(t)
    if kind is ModelKind.EXPONENTIAL:
        return _exponential(t)
    if kind is ModelKind.GAUSSIAN:
        return _gaussian(t)
    if kappa is None:
        raise InvalidInputError(f"{kind.value} model needs kappa.")
    if kind is ModelKind.MATERN:
        return _matern(t, kappa)
    return _stein(t, kappa)


@dataclass(frozen=True)
class ModelSpec:
    """
    A (possibly partially specified) theoretical variogram model.

    Numeric fields left as None are estimated by the fitter. Values that are
    set serve as starting values, unless the matching ``fit_*`` flag is False,
    in which case they are held fixed.

    Parameters
    ----------
    kind : ModelKind or str
        Model shape, e.g. ModelKind.SPHERICAL or "Sph".
    nugget : float, optional
        Value at the origin (>= 0).
    partial_sill : float, optional
        Sill minus nugget (>= 0). Always 0 for the pure nugget model.
    range : float, optional
        Distance parameter (> 0).
    kappa : float, optional
        Matérn smoothness (> 0), only meaningful for Mat / Ste.
    fit_nugget, fit_partial_sill, fit_range : bool
        False holds the supplied value fixed during fitting.
    """

    kind: ModelKind
    nugget: Optional[float] = None
    partial_sill: Optional[float] = None
    range: Optional[float] = None
    kappa: Optional[float] = None
    fit_nugget: bool = True
    fit_partial_sill: bool = True
    fit_range: bool = True

    def __post_init__(self):
        try:
            kind = ModelKind(self.kind)
        except ValueError as exc:
            raise InvalidInputError(f"Unknown model kind {self.kind!r}.") from exc
        object.__setattr__(self, "kind", kind)

        for name in ("nugget", "partial_sill", "range", "kappa"):
            value = getattr(self, name)
            if value is None:
                continue
            value = float(value)
            if not np.isfinite(value):
                raise InvalidInputError(f"{name} must be finite, got {value}.")
            object.__setattr__(self, name, value)

        if self.nugget is not None and self.nugget < 0:
            raise InvalidInputError("nugget must be >= 0.")
        if self.partial_sill is not None and self.partial_sill < 0:
            raise InvalidInputError("partial_sill must be >= 0.")
        if self.range is not None and self.range <= 0:
            raise InvalidInputError("range must be > 0.")
        if self.kappa is not None and self.kappa <= 0:
            raise InvalidInputError("kappa must be > 0.")

        for name in ("nugget", "partial_sill", "range"):
            if not getattr(self, f"fit_{name}") and getattr(self, name) is None:
                raise InvalidInputError(f"fit_{name}=False requires a value for {name}.")

        if kind is ModelKind.NUGGET:
            if self.partial_sill not in (None, 0.0):
                raise InvalidInputError("The pure nugget model has no partial sill.")
            object.__setattr__(self, "partial_sill", 0.0)
            object.__setattr__(self, "fit_partial_sill", False)

    @property
    def is_resolved(self) -> bool:
        core = (self.nugget, self.partial_sill, self.range)
        if any(v is None for v in core):
            return False
        return self.kappa is not None or not self.kind.is_matern_family

    @property
    def sill(self) -> float:
        return float(self.nugget) + float(self.partial_sill)

    def evolve(self, **changes) -> "ModelSpec":
        """Return a copy with some fields replaced."""
        return replace(self, **changes)

    def variogram(self, h) -> np.ndarray:
        """Semivariance of a fully resolved model at distance(s) h."""
        if not self.is_resolved:
            raise InvalidInputError(f"Model {self} has unresolved parameters.")
        h = np.asarray(h, dtype=float)
        g = unit_shape(self.kind, h / self.range, self.kappa)
        return self.nugget + self.partial_sill * g

    def __str__(self) -> str:
        parts = [f"{self.kind.value}(nugget={self.nugget}, psill={self.partial_sill}, range={self.range}"]
        if self.kind.is_matern_family:
            parts.append(f", kappa={self.kappa}")
        return "".join(parts) + ")"


def variogram_line(model: ModelSpec, max_dist: float, n: int = 200, min_dist: float = 0.0) -> pd.DataFrame:
    """
    Tabulate a resolved model on a regular distance grid.

    Returns a DataFrame with columns ``dist`` and ``gamma``.
    """
    if max_dist <= min_dist:
        raise InvalidInputError("max_dist must exceed min_dist.")
    if n < 2:
        raise InvalidInputError("n must be >= 2.")
    dist = np.linspace(float(min_dist), float(max_dist), int(n))
    return pd.DataFrame({"dist": dist, "gamma": model.variogram(dist)})


def to_gstools(model: ModelSpec, dim: int = 2) -> gs.CovModel:
    """
    Convert a resolved model to the equivalent gstools covariance model.

    gstools scales distances differently per model, so the range is mapped
    to the matching ``len_scale``.
    """
    if not model.is_resolved:
        raise InvalidInputError(f"Model {model} has unresolved parameters.")
    common = {"dim": dim, "var": model.partial_sill, "nugget": model.nugget}
    kind, r = model.kind, model.range
    if kind is ModelKind.SPHERICAL:
        return gs.Spherical(len_scale=r, **common)
    if kind is ModelKind.EXPONENTIAL:
        return gs.Exponential(len_scale=r, **common)
    if kind is ModelKind.GAUSSIAN:
        # gstools: exp(-(pi/4) (h/len_scale)^2)
        return gs.Gaussian(len_scale=r * np.sqrt(np.pi) / 2.0, **common)
    if kind is ModelKind.MATERN:
        # gstools: argument sqrt(nu) h / len_scale
        return gs.Matern(len_scale=r * np.sqrt(model.kappa), nu=model.kappa, **common)
    if kind is ModelKind.STEIN:
        return gs.Matern(len_scale=r / 2.0, nu=model.kappa, **common)
    raise ValueError("The pure nugget model has no gstools counterpart.")
