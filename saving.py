import os
from typing import List, Sequence

import h5py
import numpy as np

from variogram_fit import FitResult, SampleCurve
from variogram_models import ModelSpec

_FLAGS = ("fit_nugget", "fit_partial_sill", "fit_range")

def save_fit_h5(
    fpath: str,
    curve: SampleCurve,
    results: Sequence[FitResult] = (),
) -> str:
    """
    Save a sample variogram and its fit results to an HDF5 file:

        "dist", "gamma", "np"  : float64 datasets of the sample curve
        "fits/<i>"             : one empty group per result, parameters as attributes

    Parameters
    ----------
    fpath : str
        Output file path (.h5).
    curve : SampleCurve
        The sample variogram that was fitted.
    results : sequence of FitResult
        Fit results, stored in order.
    """
    os.makedirs(os.path.dirname(fpath) or ".", exist_ok=True)
    with h5py.File(fpath, "w") as h5:
        h5.create_dataset("dist",  data=np.asarray(curve.lags, dtype=np.float64))
        h5.create_dataset("gamma", data=np.asarray(curve.values, dtype=np.float64))
        h5.create_dataset("np",    data=np.asarray(curve.weights, dtype=np.float64))
        fits = h5.create_group("fits")
        for i, r in enumerate(results):
            g = fits.create_group(f"{i:04d}")
            m = r.model
            g.attrs["kind"] = m.kind.value
            # NaN marks an unset parameter (kappa of non-Matérn models)
            for name in ("nugget", "partial_sill", "range", "kappa"):
                value = getattr(m, name)
                g.attrs[name] = np.nan if value is None else float(value)
            for name in _FLAGS:
                g.attrs[name] = bool(getattr(m, name))
            g.attrs["ssr"] = float(r.sum_squared_weighted_residuals)
            g.attrs["converged"] = bool(r.converged)
            g.attrs["n_evaluations"] = int(r.n_evaluations)
            g.attrs["message"] = str(r.message)
    return fpath

def load_curve_h5(fpath: str) -> SampleCurve:
    with h5py.File(fpath, "r") as h5:
        return SampleCurve(h5["dist"][()], h5["gamma"][()], h5["np"][()])

def load_results_h5(fpath: str) -> List[FitResult]:
    results: List[FitResult] = []
    with h5py.File(fpath, "r") as h5:
        if "fits" not in h5:
            return results
        for key in sorted(h5["fits"].keys()):
            a = h5["fits"][key].attrs
            values = {name: float(a[name]) for name in ("nugget", "partial_sill", "range", "kappa")}
            model = ModelSpec(
                kind=str(a["kind"]),
                **{name: None if np.isnan(v) else v for name, v in values.items()},
                **{name: bool(a[name]) for name in _FLAGS},
            )
            results.append(FitResult(
                model=model,
                sum_squared_weighted_residuals=float(a["ssr"]),
                converged=bool(a["converged"]),
                n_evaluations=int(a["n_evaluations"]),
                message=str(a["message"]),
            ))
    return results
