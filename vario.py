import logging
from typing import List, Literal, Optional, Sequence

import numpy as np
import pandas as pd
import gstools as gs

from fit_errors import InsufficientDataError, VariogramFitError
from variogram_fit import Fixed, FitKappaPolicy, SampleCurve, VariogramFitter
from variogram_models import ModelSpec

log = logging.getLogger(__name__)

Weighting = Literal["npairs", "npairs_over_h2", "equal"]


# -------- binning helpers ------------------------------------------------
def default_max_lag(pos) -> float:
    """One third of the bounding-box diagonal of the sample locations."""
    coords = np.atleast_2d(np.asarray(pos, dtype=float))
    extent = coords.max(axis=1) - coords.min(axis=1)
    return float(np.sqrt(np.sum(extent**2)) / 3.0)

def linear_bin_edges(max_lag: float, n_lags: int = 15) -> np.ndarray:
    if max_lag <= 0:
        raise ValueError("max_lag must be > 0.")
    if n_lags < 1:
        raise ValueError("n_lags must be >= 1.")
    return np.linspace(0.0, float(max_lag), int(n_lags) + 1)

def pair_weights(lags: np.ndarray, counts: np.ndarray, weighting: Weighting = "npairs") -> np.ndarray:
    """
    Fitting weights per lag bin.
    - 'npairs':          N_j
    - 'npairs_over_h2':  N_j / h_j^2 (zero lag gets weight 0)
    - 'equal':           1
    """
    lags = np.asarray(lags, dtype=float)
    counts = np.asarray(counts, dtype=float)
    if weighting == "npairs":
        return counts.copy()
    if weighting == "npairs_over_h2":
        out = np.zeros_like(counts)
        np.divide(counts, lags**2, out=out, where=lags > 0)
        return out
    if weighting == "equal":
        return np.ones_like(counts)
    raise ValueError("weighting must be one of {'npairs','npairs_over_h2','equal'}")


# -------- empirical variogram --------------------------------------------
def empirical_variogram(
    pos,
    field: np.ndarray,
    bin_edges: Optional[np.ndarray] = None,
    *,
    max_lag: Optional[float] = None,
    n_lags: int = 15,
    weighting: Weighting = "npairs",
    mesh_type: str = "unstructured",
    estimator: str = "matheron",
) -> SampleCurve:
    """
    Isotropic sample variogram of a field, as a SampleCurve.

    Bins without point pairs are dropped. Weights follow ``weighting``.
    For structured meshes ``pos`` holds the axes, for unstructured meshes
    the point coordinates.
    """
    if bin_edges is None:
        if max_lag is None:
            if mesh_type == "structured":
                spans = [float(np.ptp(np.asarray(a, dtype=float))) for a in pos]
                max_lag = float(np.sqrt(np.sum(np.square(spans))) / 3.0)
            else:
                max_lag = default_max_lag(pos)
        bin_edges = linear_bin_edges(max_lag, n_lags)

    bc, gamma, counts = gs.vario_estimate(
        pos, field, bin_edges,
        mesh_type=mesh_type,
        estimator=estimator,
        return_counts=True,
    )
    keep = counts > 0
    if not np.any(keep):
        raise InsufficientDataError("no point pairs fall into any lag bin.")
    if not np.all(keep):
        log.debug("dropping %d empty lag bins", int(np.sum(~keep)))
    bc, gamma, counts = bc[keep], gamma[keep], counts[keep]
    return SampleCurve(bc, gamma, pair_weights(bc, counts, weighting))


# -------- ensemble fitting -----------------------------------------------
def fit_ensemble(
    fields: Sequence[np.ndarray],
    pos,
    candidates: Sequence[ModelSpec],
    *,
    fit_kappa: FitKappaPolicy = Fixed(),
    fitter: Optional[VariogramFitter] = None,
    bin_edges: Optional[np.ndarray] = None,
    n_lags: int = 15,
    weighting: Weighting = "npairs",
    mesh_type: str = "unstructured",
) -> pd.DataFrame:
    """
    Fit the best of ``candidates`` to every field of an ensemble.

    Returns one row per realization with the recovered parameters. A
    realization that cannot be fitted is kept with NaN parameters and
    ``converged=False``.
    """
    fitter = fitter if fitter is not None else VariogramFitter()
    rows: List[dict] = []
    for i, field in enumerate(fields):
        curve = empirical_variogram(pos, field, bin_edges, n_lags=n_lags,
                                    weighting=weighting, mesh_type=mesh_type)
        try:
            row = fitter.fit_best(curve, candidates, fit_kappa).as_row()
        except VariogramFitError as exc:
            log.warning("realization %d: %s", i, exc)
            row = {"model": None, "nugget": np.nan, "partial_sill": np.nan, "range": np.nan, "sill": np.nan,
                   "kappa": np.nan, "ssr": np.nan, "converged": False, "n_evaluations": 0}
        row["realization"] = i
        rows.append(row)
    df = pd.DataFrame(rows)
    return df[["realization"] + [c for c in df.columns if c != "realization"]]
