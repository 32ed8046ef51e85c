"""Smoke tests for the example scripts and the comparison helpers."""

import numpy as np
import pytest

from varpro import config
from varpro.examples import common, ex1_simple, ex2_bounds, ex3_regularized
from varpro.utils import match_vectors, relative_error


class TestMatchVectors:
    """Tests for match_vectors."""

    def test_reorders_to_target(self):
        target = np.array([1j, -3j, 0.5j])
        found = np.array([-2.99j, 0.51j, 1.01j])
        indices = match_vectors(found, target)
        np.testing.assert_array_equal(indices, [2, 0, 1])
        np.testing.assert_allclose(found[indices], target, atol=0.02)

    def test_identity(self):
        values = np.array([3.0, 1.0, 2.0])
        np.testing.assert_array_equal(match_vectors(values, values), [0, 1, 2])

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="same length"):
            match_vectors(np.ones(2), np.ones(3))

    def test_relative_error(self):
        assert relative_error(np.array([3.0, 4.0]), np.array([3.0, 0.0])) == pytest.approx(4 / 3)


class TestOutputDir:
    """Tests for config.prepare_output_dir."""

    def test_clears_existing_contents(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config, "RESULTS_DIR", tmp_path.resolve())
        out = tmp_path / "run"
        out.mkdir()
        (out / "stale.txt").write_text("old")

        assert config.prepare_output_dir(out) == out
        assert out.is_dir()
        assert not (out / "stale.txt").exists()

    def test_refuses_results_root(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config, "RESULTS_DIR", tmp_path.resolve())
        with pytest.raises(ValueError, match="Refusing"):
            config.prepare_output_dir(tmp_path)

    def test_refuses_outside_results(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config, "RESULTS_DIR", (tmp_path / "results").resolve())
        with pytest.raises(ValueError, match="must be under"):
            config.prepare_output_dir(tmp_path / "elsewhere")

    def test_default_example_location(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config, "RESULTS_DIR", tmp_path.resolve())
        assert common.resolve_output_dir("ex", None) == tmp_path.resolve() / "ex"


class TestExampleData:
    """Tests for the synthetic data generator."""

    def test_shapes_and_reproducibility(self):
        first = common.make_data(np.array([1.0, -2.0, 1j]), 1.0)
        second = common.make_data(np.array([1.0, -2.0, 1j]), 1.0)

        assert first.data.shape == (common.N_T, common.N_X)
        assert first.alpha_init.shape == (3,)
        np.testing.assert_array_equal(first.data, second.data)
        np.testing.assert_array_equal(first.alpha_init, second.alpha_init)

    def test_noise_free(self):
        data = common.make_data(np.array([-1.0]), 1.0, sigma=0.0)
        np.testing.assert_array_equal(data.data, data.clean)


@pytest.mark.parametrize(
    "module, names",
    [
        (ex1_simple, ["full_jacobian", "kaufman"]),
        (ex2_bounds, ["unconstrained", "constrained"]),
        (ex3_regularized, ["none", "small", "large"]),
    ],
    ids=["ex1", "ex2", "ex3"],
)
def test_example_runs(module, names, tmp_path, capsys):
    results = module.main(output_dir=tmp_path)

    assert list(results) == names
    assert (tmp_path / "eigenvalues.png").exists()
    for name, result in results.items():
        assert (tmp_path / f"history_{name}.csv").exists()
        assert np.all(np.isfinite(result.alpha))
        assert result.niter >= 1
    assert "summary" in capsys.readouterr().out


def test_constrained_example_stays_in_left_half_plane(tmp_path):
    results = ex2_bounds.main(output_dir=tmp_path)
    assert np.max(np.real(results["constrained"].alpha)) <= 1e-8
