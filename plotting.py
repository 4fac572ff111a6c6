# plotting.py
import os
from typing import Optional, Sequence

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from variogram_fit import FitResult, SampleCurve
from variogram_models import variogram_line


def save_variogram_data(
    curve: SampleCurve,
    *,
    out_path: str,
    result: Optional[FitResult] = None,
    n_model: int = 200,
    metadata: dict | None = None,
):
    """
    Save the sample variogram (and the fitted model) to disk. Format inferred
    from file extension:
      - '.csv' -> CSV with columns (dist, gamma, np[, gamma_model])
      - '.npz' -> NumPy npz with arrays, the dense model line and metadata
    """
    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    line = None
    if result is not None:
        line = variogram_line(result.model, max_dist=float(np.max(curve.lags)), n=n_model)

    if out_path.lower().endswith(".csv"):
        df = curve.to_frame()
        if result is not None:
            df["gamma_model"] = result.model.variogram(curve.lags)
        df.to_csv(out_path, index=False)
    elif out_path.lower().endswith(".npz"):
        meta = dict(metadata or {})
        if result is not None:
            meta.update(result.as_row())
        np.savez(
            out_path,
            dist=curve.lags,
            gamma=curve.values,
            np=curve.weights,
            h_model=(line["dist"].to_numpy() if line is not None else np.array([])),
            gamma_model=(line["gamma"].to_numpy() if line is not None else np.array([])),
            metadata=meta,
        )
    else:
        raise ValueError("Unsupported variogram data format. Use .csv or .npz")
    return out_path


def plot_fit(
    curve: SampleCurve,
    result: FitResult,
    *,
    others: Sequence[FitResult] = (),
    title: str = "Sample variogram and fitted model",
    out_plot_path: str | None = None,
    out_data_path: str | None = None,
    dpi: int = 300,
):
    """
    Plot the sample variogram (marker area ~ weight) with the fitted model,
    plus any other converged candidates as thin lines, and optionally SAVE:
      - the figure (PNG/PDF) via `out_plot_path`
      - the variogram arrays (CSV/NPZ) via `out_data_path`
    """
    max_dist = float(np.max(curve.lags))
    w = curve.weights
    sizes = 15.0 + 60.0 * (w / w.max()) if w.max() > 0 else np.full_like(w, 15.0)

    fig, ax = plt.subplots(figsize=(6.6, 4.2))
    ax.scatter(curve.lags, curve.values, s=sizes, color="tab:blue", label="Sample variogram", zorder=3)
    for other in others:
        if other is result or not other.converged:
            continue
        line = variogram_line(other.model, max_dist)
        ax.plot(line["dist"], line["gamma"], "-", lw=0.8, alpha=0.6,
                label=f"{other.model.kind.value} (ssr={other.sum_squared_weighted_residuals:.3g})")
    line = variogram_line(result.model, max_dist)
    ax.plot(line["dist"], line["gamma"], "k-", lw=1.8, label=f"{result.model} (best)")
    ax.set_xlabel("Lag h"); ax.set_ylabel("Semivariance γ(h)")
    ax.set_xlim(left=0.0); ax.set_ylim(bottom=0.0)
    ax.set_title(title); ax.legend(fontsize=7); ax.grid(alpha=0.3)
    fig.tight_layout()

    if out_plot_path is not None:
        os.makedirs(os.path.dirname(out_plot_path) or ".", exist_ok=True)
        fig.savefig(out_plot_path, dpi=dpi, bbox_inches="tight")

    if out_data_path is not None:
        save_variogram_data(curve, out_path=out_data_path, result=result,
                            metadata={"title": title})

    plt.close(fig)
    return out_plot_path


def plot_ensemble_parameters(df_params: pd.DataFrame, truth: dict | None = None, *,
                             out_plot_path: str | None = None, dpi: int = 300):
    """Histograms of recovered nugget / partial sill / range across an ensemble."""
    cols = ["nugget", "partial_sill", "range"]
    fig, axes = plt.subplots(1, len(cols), figsize=(3.4 * len(cols), 2.8))
    for ax, col in zip(axes, cols):
        vals = df_params[col].dropna().to_numpy(dtype=float)
        ax.hist(vals, bins=15, color="steelblue", alpha=0.8)
        if truth and col in truth:
            ax.axvline(truth[col], color="r", ls="--", lw=1)
        ax.set_title(col, fontsize=9)
    fig.tight_layout()
    if out_plot_path is not None:
        os.makedirs(os.path.dirname(out_plot_path) or ".", exist_ok=True)
        fig.savefig(out_plot_path, dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    return out_plot_path
