import main
from saving import load_results_h5


def test_demo_run(tmp_path):
    out = tmp_path / "out"
    assert main.main(["--out", str(out), "--fixed-kappa", "--seed", "3"]) == 0
    assert (out / "variogram_fit.png").exists()
    assert (out / "variogram_fit.csv").exists()
    results = load_results_h5(str(out / "variogram_fit.h5"))
    assert [r.model.kind.value for r in results] == ["Sph", "Exp", "Gau", "Mat"]
