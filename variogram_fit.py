"""
Automatic fitting of theoretical variogram models to a sample variogram.

Starting values follow the gstat heuristic (range = max lag / 3, nugget =
mean of the first three points, partial sill = mean of the last five),
parameters are then refined by weighted nonlinear least squares and the best
of several candidate models is kept.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, List, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from scipy.optimize import least_squares

from fit_config import FitConfig, default_kappa_grid
from fit_errors import (
    FitDivergenceError,
    InsufficientDataError,
    InvalidInputError,
    NoConvergentModelError,
)
from variogram_models import ModelKind, ModelSpec, unit_shape

log = logging.getLogger(__name__)

# nugget, partial sill and range cannot be identified from fewer points
MIN_FIT_POINTS = 3

_PARAMS = ("nugget", "partial_sill", "range")


# ---- data containers ---------------------------------------------------
@dataclass(frozen=True, eq=False)
class SampleCurve:
    """
    Sample (empirical) variogram: lag distances, semivariances and weights.

    Points are sorted by lag distance on construction; duplicate lags,
    negative lags or weights and non-finite entries are rejected. Weights
    default to 1. The stored arrays are read-only.
    """

    lags: np.ndarray
    values: np.ndarray
    weights: Optional[np.ndarray] = None

    def __post_init__(self):
        lags = np.array(self.lags, dtype=float).ravel()
        values = np.array(self.values, dtype=float).ravel()
        if self.weights is None:
            weights = np.ones_like(lags)
        else:
            weights = np.array(self.weights, dtype=float).ravel()

        if not (lags.size == values.size == weights.size):
            raise InvalidInputError(
                f"lags, values and weights differ in length ({lags.size}, {values.size}, {weights.size})."
            )
        for name, arr in (("lags", lags), ("values", values), ("weights", weights)):
            if not np.all(np.isfinite(arr)):
                raise InvalidInputError(f"{name} must be finite.")
        if np.any(lags < 0):
            raise InvalidInputError("lag distances must be >= 0.")
        if np.any(weights < 0):
            raise InvalidInputError("weights must be >= 0.")

        order = np.argsort(lags, kind="stable")
        lags, values, weights = lags[order], values[order], weights[order]
        if np.any(np.diff(lags) <= 0):
            raise InvalidInputError("lag distances must be strictly increasing (duplicate lag found).")

        for name, arr in (("lags", lags), ("values", values), ("weights", weights)):
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    @classmethod
    def from_frame(cls, df: pd.DataFrame, *, dist: str = "dist", gamma: str = "gamma",
                   weight: Optional[str] = "np") -> "SampleCurve":
        """Build a curve from a table with gstat-style columns (dist, gamma, np)."""
        weights = df[weight].to_numpy() if weight is not None and weight in df else None
        return cls(df[dist].to_numpy(), df[gamma].to_numpy(), weights)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"dist": self.lags, "gamma": self.values, "np": self.weights})

    def __len__(self) -> int:
        return int(self.lags.size)


class InitialParameters(NamedTuple):
    nugget: float
    partial_sill: float
    range: float


@dataclass(frozen=True)
class Fixed:
    """Do not fit kappa: use the template's value or the configured default."""


@dataclass(frozen=True)
class GridSearch:
    """Fit every kappa in ``values`` independently and keep the best."""

    values: Tuple[float, ...] = field(default_factory=default_kappa_grid)

    def __post_init__(self):
        values = tuple(float(v) for v in self.values)
        if not values:
            raise InvalidInputError("kappa grid must not be empty.")
        if not all(np.isfinite(v) and v > 0 for v in values):
            raise InvalidInputError("kappa grid values must be finite and > 0.")
        object.__setattr__(self, "values", values)


FitKappaPolicy = Union[Fixed, GridSearch]


@dataclass(frozen=True)
class FitResult:
    model: ModelSpec
    sum_squared_weighted_residuals: float
    converged: bool
    n_evaluations: int = 0
    message: str = ""

    def as_row(self) -> dict:
        m = self.model
        return {
            "model": m.kind.value,
            "nugget": m.nugget,
            "partial_sill": m.partial_sill,
            "range": m.range,
            "sill": m.sill,
            "kappa": m.kappa if m.kind.is_matern_family else np.nan,
            "ssr": self.sum_squared_weighted_residuals,
            "converged": self.converged,
            "n_evaluations": self.n_evaluations,
        }


def results_frame(results: Sequence[FitResult]) -> pd.DataFrame:
    """One row per fit result, in the given order."""
    return pd.DataFrame([r.as_row() for r in results])


def weighted_ssr(curve: SampleCurve, model: ModelSpec) -> float:
    resid = curve.values - model.variogram(curve.lags)
    return float(np.sum(curve.weights * resid**2))


# ---- fitter ------------------------------------------------------------
class VariogramFitter:
    """
    Fit theoretical variogram models to a SampleCurve.

    Parameters
    ----------
    config : FitConfig, optional
        Solver limits, tolerances and parallelism. Defaults to FitConfig().
    """

    def __init__(self, config: Optional[FitConfig] = None):
        self.config = config if config is not None else FitConfig()

    def initialize_parameters(self, curve: SampleCurve) -> InitialParameters:
        """
        Starting values independent of the model kind.

        range = max lag / 3, nugget = mean of the first 3 values, partial sill
        = mean of the last 5 values (windows shrink for short curves).
        """
        if len(curve) == 0:
            raise InsufficientDataError("sample curve is empty.")
        max_lag = float(curve.lags[-1])
        if max_lag <= 0:
            raise InsufficientDataError("largest lag distance is 0; no spatial information.")
        return InitialParameters(
            nugget=float(np.mean(curve.values[:3])),
            partial_sill=float(np.mean(curve.values[-5:])),
            range=max_lag / 3.0,
        )

    def fit_one(self, curve: SampleCurve, model_template: ModelSpec,
                fit_kappa: FitKappaPolicy = Fixed()) -> FitResult:
        """
        Fit a single model template.

        Under GridSearch, Matérn-family templates are fitted once per kappa
        and the lowest residual wins (earlier kappa on ties); if no kappa
        converges FitDivergenceError is raised. Other kinds ignore the policy.
        A failed single fit is returned with ``converged=False``.
        """
        self._check_template(model_template)
        self._check_policy(fit_kappa)
        init = self._checked_init(curve)

        if model_template.kind.is_matern_family and isinstance(fit_kappa, GridSearch):
            attempts = self._map(
                lambda k: self._fit_single(curve, model_template, init, k), fit_kappa.values
            )
            best = self._select_best(attempts)
            if best is None:
                raise FitDivergenceError(
                    f"{model_template.kind.value}: none of {len(attempts)} kappa values converged."
                )
            log.debug("%s: best kappa %.2f (ssr=%.6g)", model_template.kind.value,
                      best.model.kappa, best.sum_squared_weighted_residuals)
            return best

        return self._fit_single(curve, model_template, init, self._fixed_kappa(model_template))

    def fit_all(self, curve: SampleCurve, candidates: Sequence[ModelSpec],
                fit_kappa: FitKappaPolicy = Fixed()) -> List[FitResult]:
        """Fit every candidate; results come back in candidate order."""
        candidates = list(candidates)
        if not candidates:
            raise InvalidInputError("at least one candidate model is required.")
        for c in candidates:
            self._check_template(c)
        self._check_policy(fit_kappa)
        init = self._checked_init(curve)

        def one(template: ModelSpec) -> FitResult:
            try:
                return self.fit_one(curve, template, fit_kappa)
            except FitDivergenceError as exc:
                log.warning("%s", exc)
                start = self._start_model(template, init, self._fixed_kappa(template), curve)
                return FitResult(start, weighted_ssr(curve, start), False, message=str(exc))

        return self._map(one, candidates)

    def fit_best(self, curve: SampleCurve, candidates: Sequence[ModelSpec],
                 fit_kappa: FitKappaPolicy = Fixed()) -> FitResult:
        """
        Fit all candidates and return the converged result with the smallest
        weighted residual sum of squares. Ties go to the earlier candidate.
        """
        return self.best_of(self.fit_all(curve, candidates, fit_kappa))

    def best_of(self, results: Sequence[FitResult]) -> FitResult:
        """Select from results already computed, e.g. by ``fit_all``."""
        best = self._select_best(results)
        if best is None:
            raise NoConvergentModelError(
                f"none of the {len(results)} candidate models converged."
            )
        log.info("selected %s (ssr=%.6g)", best.model, best.sum_squared_weighted_residuals)
        return best

    # ---- internals ---------------------------------------------------
    def _checked_init(self, curve: SampleCurve) -> InitialParameters:
        if not isinstance(curve, SampleCurve):
            raise InvalidInputError("curve must be a SampleCurve.")
        init = self.initialize_parameters(curve)
        n_used = int(np.count_nonzero(curve.weights > 0))
        if n_used == 0:
            raise InsufficientDataError("all weights are zero.")
        if n_used < MIN_FIT_POINTS:
            raise InsufficientDataError(
                f"{n_used} positive-weight points; at least {MIN_FIT_POINTS} are needed to fit a model."
            )
        return init

    @staticmethod
    def _check_template(template) -> None:
        if not isinstance(template, ModelSpec):
            raise InvalidInputError(f"expected a ModelSpec, got {type(template).__name__}.")

    @staticmethod
    def _check_policy(policy) -> None:
        if not isinstance(policy, (Fixed, GridSearch)):
            raise InvalidInputError(f"unknown kappa policy {policy!r}.")

    def _fixed_kappa(self, template: ModelSpec) -> Optional[float]:
        if not template.kind.is_matern_family:
            return None
        return template.kappa if template.kappa is not None else self.config.default_kappa

    def _start_model(self, template: ModelSpec, init: InitialParameters,
                     kappa: Optional[float], curve: SampleCurve) -> ModelSpec:
        """Template with unset values filled from ``init``, clipped into bounds."""
        floor = self.config.range_floor_ratio * float(curve.lags[-1])
        nugget = template.nugget if template.nugget is not None else max(init.nugget, 0.0)
        psill = template.partial_sill if template.partial_sill is not None else max(init.partial_sill, 0.0)
        rng = template.range if template.range is not None else max(init.range, floor)
        return template.evolve(nugget=nugget, partial_sill=psill, range=rng, kappa=kappa)

    def _is_flat(self, curve: SampleCurve) -> bool:
        v = curve.values[curve.weights > 0]
        scale = max(float(np.max(np.abs(v))), np.finfo(float).tiny)
        return float(np.ptp(v)) <= self.config.flat_tolerance * scale

    def _fit_single(self, curve: SampleCurve, template: ModelSpec,
                    init: InitialParameters, kappa: Optional[float]) -> FitResult:
        cfg = self.config
        start = self._start_model(template, init, kappa, curve)
        free = [p for p in _PARAMS if getattr(template, f"fit_{p}")]
        if template.kind is ModelKind.NUGGET and "range" in free:
            free.remove("range")

        # pure nugget effect: the range is not identifiable
        if self._is_flat(curve) and "nugget" in free and (
                "partial_sill" in free or template.kind is ModelKind.NUGGET):
            level = max(float(np.average(curve.values, weights=curve.weights)), 0.0)
            model = start.evolve(nugget=level, partial_sill=0.0)
            log.debug("%s: flat sample curve, pure nugget %.6g", template.kind.value, level)
            return FitResult(model, weighted_ssr(curve, model), True, 0, "flat sample curve")

        if not free:
            return FitResult(start, weighted_ssr(curve, start), True, 0, "no free parameters")

        floor = cfg.range_floor_ratio * float(curve.lags[-1])
        lower = {"nugget": 0.0, "partial_sill": 0.0, "range": floor}
        lb = np.array([lower[p] for p in free])
        ub = np.full(len(free), np.inf)
        x0 = np.array([getattr(start, p) for p in free], dtype=float)
        x0 = np.where(x0 <= lb, lb + 1e-8 * np.maximum(1.0, np.abs(lb)), x0)

        fixed = {p: getattr(start, p) for p in _PARAMS}
        sqrt_w = np.sqrt(curve.weights)
        kind = template.kind

        def residuals(x):
            p = dict(fixed, **dict(zip(free, x)))
            pred = p["nugget"] + p["partial_sill"] * unit_shape(kind, curve.lags / p["range"], kappa)
            return sqrt_w * (curve.values - pred)

        try:
            sol = least_squares(
                residuals, x0, bounds=(lb, ub), method="trf", x_scale="jac",
                ftol=cfg.ftol, xtol=cfg.xtol, gtol=cfg.gtol, max_nfev=cfg.max_nfev,
            )
        except (ValueError, np.linalg.LinAlgError, FloatingPointError) as exc:
            log.warning("%s (kappa=%s): solver failed: %s", kind.value, kappa, exc)
            return FitResult(start, weighted_ssr(curve, start), False, 0, str(exc))

        if not (np.all(np.isfinite(sol.x)) and np.isfinite(sol.cost)):
            log.warning("%s (kappa=%s): non-finite solution", kind.value, kappa)
            return FitResult(start, weighted_ssr(curve, start), False, int(sol.nfev), "non-finite solution")

        fitted = {p: float(v) for p, v in zip(free, sol.x)}
        for p in ("nugget", "partial_sill"):
            if p in fitted:
                fitted[p] = max(fitted[p], 0.0)
        model = start.evolve(**fitted)
        converged = bool(sol.status > 0)
        if not converged:
            log.warning("%s (kappa=%s): no convergence after %d evaluations",
                        kind.value, kappa, sol.nfev)
        ssr = weighted_ssr(curve, model)
        log.debug("%s (kappa=%s): ssr=%.6g status=%d", kind.value, kappa, ssr, sol.status)
        return FitResult(model, ssr, converged, int(sol.nfev), str(sol.message))

    def _select_best(self, results: Sequence[FitResult]) -> Optional[FitResult]:
        best = None
        for r in results:
            ssr = r.sum_squared_weighted_residuals
            if not r.converged or not np.isfinite(ssr):
                continue
            if best is None:
                best = r
                continue
            best_ssr = best.sum_squared_weighted_residuals
            if ssr < best_ssr and not np.isclose(ssr, best_ssr,
                                                 rtol=self.config.tie_rtol, atol=self.config.tie_atol):
                best = r
        return best

    def _map(self, func: Callable, items: Sequence) -> list:
        if self.config.n_jobs == 1 or len(items) < 2:
            return [func(item) for item in items]
        return Parallel(n_jobs=self.config.n_jobs, prefer="threads")(
            delayed(func)(item) for item in items
        )
