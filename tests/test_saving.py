import h5py
import numpy as np

from saving import load_curve_h5, load_results_h5, save_fit_h5
from variogram_fit import FitResult, SampleCurve
from variogram_models import ModelKind, ModelSpec


def _results():
    return [
        FitResult(ModelSpec("Sph", nugget=0.05, partial_sill=0.6, range=900.0), 0.01, True, 42, "ok"),
        FitResult(ModelSpec("Mat", nugget=0.1, partial_sill=1.0, range=100.0, kappa=2.0), 0.2, False, 7),
        FitResult(ModelSpec("Exp", nugget=0.0, partial_sill=0.8, range=250.0, fit_nugget=False), 0.05, True, 19),
        FitResult(ModelSpec("Nug", nugget=0.3), 0.0, True, 1),
    ]


def test_layout(tmp_path):
    curve = SampleCurve([100.0, 200.0, 300.0], [0.2, 0.4, 0.5], [10, 20, 30])
    path = save_fit_h5(str(tmp_path / "sub" / "fit.h5"), curve, _results())
    with h5py.File(path, "r") as h5:
        assert set(h5.keys()) == {"dist", "gamma", "np", "fits"}
        assert h5["dist"].dtype == np.float64
        assert sorted(h5["fits"].keys()) == ["0000", "0001", "0002", "0003"]
        assert np.isnan(h5["fits"]["0000"].attrs["kappa"])


def test_round_trip(tmp_path):
    curve = SampleCurve([100.0, 200.0, 300.0], [0.2, 0.4, 0.5], [10, 20, 30])
    path = save_fit_h5(str(tmp_path / "fit.h5"), curve, _results())

    loaded = load_curve_h5(path)
    np.testing.assert_array_equal(loaded.lags, curve.lags)
    np.testing.assert_array_equal(loaded.values, curve.values)
    np.testing.assert_array_equal(loaded.weights, curve.weights)

    results = load_results_h5(path)
    assert results == _results()
    assert results[0].model.kind is ModelKind.SPHERICAL
    assert results[1].model.kappa == 2.0


def test_curve_only(tmp_path):
    curve = SampleCurve([1.0, 2.0], [0.1, 0.2])
    path = save_fit_h5(str(tmp_path / "curve.h5"), curve)
    assert load_results_h5(path) == []


def test_fixed_parameter_flags_survive(tmp_path):
    curve = SampleCurve([100.0, 200.0, 300.0], [0.2, 0.4, 0.5])
    path = save_fit_h5(str(tmp_path / "fit.h5"), curve, _results())
    with h5py.File(path, "r") as h5:
        assert not h5["fits"]["0002"].attrs["fit_nugget"]
        assert h5["fits"]["0002"].attrs["fit_range"]

    exp = load_results_h5(path)[2].model
    assert exp.fit_nugget is False
    assert exp.fit_partial_sill is True
    assert exp.fit_range is True
    assert exp == ModelSpec("Exp", nugget=0.0, partial_sill=0.8, range=250.0, fit_nugget=False)


def test_unset_parameters_load_as_none(tmp_path):
    curve = SampleCurve([100.0, 200.0, 300.0], [0.2, 0.4, 0.5])
    path = save_fit_h5(str(tmp_path / "fit.h5"), curve, _results())
    nug = load_results_h5(path)[3].model
    assert nug.range is None
    assert nug.partial_sill == 0.0
    assert nug.fit_partial_sill is False
