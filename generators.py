# generators.py
import numpy as np
import gstools as gs
from typing import List, Optional, Tuple
from gstools.random import MasterRNG

from variogram_fit import SampleCurve
from variogram_models import ModelSpec, to_gstools

# ---- noise-free / noisy sample curves from a known model ----------------
def synthetic_curve(model: ModelSpec, lags: np.ndarray, weights: Optional[np.ndarray] = None,
                    *, noise_sd: float = 0.0, seed: Optional[int] = None) -> SampleCurve:
    """
    Evaluate a resolved model at ``lags`` and optionally add Gaussian noise.
    Used to check that fitting recovers the generating parameters.
    """
    lags = np.asarray(lags, dtype=float)
    values = model.variogram(lags)
    if noise_sd > 0:
        rng = np.random.default_rng(seed)
        values = values + rng.normal(0.0, noise_sd, size=values.shape)
    return SampleCurve(lags, values, weights)

# ---- scattered-point random fields (gstools SRF) ------------------------
def random_locations(n_points: int, extent: Tuple[float, float] = (1000.0, 1000.0),
                     *, seed: Optional[int] = None) -> Tuple[np.ndarray, np.ndarray]:
    rng = np.random.default_rng(seed)
    x = rng.uniform(0.0, extent[0], int(n_points))
    y = rng.uniform(0.0, extent[1], int(n_points))
    return x, y

def simulate_field(model: ModelSpec, n_points: int = 400, *,
                   extent: Tuple[float, float] = (1000.0, 1000.0),
                   mean: float = 0.0, seed: int = 20170519):
    """
    One Gaussian random field realization of ``model`` at random locations.

    Returns
    -------
    pos : (x, y)
        Sample coordinates.
    field : ndarray
        Field values at ``pos``.
    """
    pos = random_locations(n_points, extent, seed=seed)
    srf = gs.SRF(to_gstools(model, dim=2), mean=mean, seed=seed)
    return pos, srf(pos)

def simulate_ensemble(model: ModelSpec, n_realizations: int, n_points: int = 400, *,
                      extent: Tuple[float, float] = (1000.0, 1000.0),
                      mean: float = 0.0, master_seed: int = 20170519):
    """
    Ensemble of realizations sharing one set of locations.

    Per-draw seeds come from gstools' MasterRNG so the ensemble is
    reproducible from ``master_seed``.
    """
    master = MasterRNG(master_seed)
    pos = random_locations(n_points, extent, seed=master())
    srf = gs.SRF(to_gstools(model, dim=2), mean=mean)
    srf.set_pos(pos)

    fields: List[np.ndarray] = []
    seeds: List[int] = []
    for _ in range(int(n_realizations)):
        seed = master(); seeds.append(seed)
        fields.append(np.array(srf(seed=seed), copy=True))
    return pos, fields, seeds
