"""Shared fixtures: synthetic sample variograms with known generating models."""
import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from fit_config import FitConfig
from generators import synthetic_curve
from variogram_fit import VariogramFitter
from variogram_models import ModelSpec

SPHERICAL_TRUTH = ModelSpec("Sph", nugget=0.05, partial_sill=0.6, range=900.0)
MATERN_TRUTH = ModelSpec("Mat", nugget=0.1, partial_sill=1.0, range=100.0, kappa=2.0)
EXPONENTIAL_TRUTH = ModelSpec("Exp", nugget=0.1, partial_sill=1.0, range=200.0)


@pytest.fixture
def fitter():
    return VariogramFitter(FitConfig())


@pytest.fixture
def spherical_curve():
    """15 lags, 0..1400 step 100, spherical model plus small noise."""
    return synthetic_curve(SPHERICAL_TRUTH, np.arange(0.0, 1500.0, 100.0), noise_sd=0.001, seed=42)


@pytest.fixture
def matern_curve():
    return synthetic_curve(MATERN_TRUTH, np.arange(25.0, 1025.0, 25.0))


@pytest.fixture
def exponential_curve():
    return synthetic_curve(EXPONENTIAL_TRUTH, np.arange(20.0, 1020.0, 20.0))


@pytest.fixture
def flat_curve():
    lags = np.arange(1.0, 11.0) * 50.0
    return synthetic_curve(ModelSpec("Nug", nugget=0.3, range=1.0), lags)


@pytest.fixture
def spherical_truth():
    return SPHERICAL_TRUTH


@pytest.fixture
def matern_truth():
    return MATERN_TRUTH


@pytest.fixture
def exponential_truth():
    return EXPONENTIAL_TRUTH
