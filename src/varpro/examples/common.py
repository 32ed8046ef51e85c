"""Shared data generation and reporting for the example scripts.

Every example fits data built from three spatial modes, each carrying
exponential time dynamics:

    Y = Φ(e, t) @ [sin(x); cos(x); tanh(x)],   Φ_ij = exp(e_j t_i)

plus Gaussian noise, starting from a random (deliberately poor) initial
guess for the exponents e.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from varpro import config
from varpro.basis import exp_basis, exp_basis_derivative
from varpro.monitor import VarProResult
from varpro.utils import match_vectors, relative_error


# =============================================================================
# Example Parameters
# =============================================================================

SEED = 8675309

# Spatial grid for the modes
X_RANGE = (0.0, np.pi)
N_X = 200

# Number of time samples
N_T = 100

# Additive noise level
NOISE_SIGMA = 1e-4


@dataclass
class ExampleData:
    """Synthetic data for one example.

    Attributes:
        t: Sample times (length N_T)
        x: Spatial grid (length N_X)
        modes: 3×N_X spatial modes
        evals: Planted exponents
        clean: Noise-free data, N_T×N_X
        data: Noisy data
        alpha_init: Random initial guess
    """

    t: np.ndarray
    x: np.ndarray
    modes: np.ndarray
    evals: np.ndarray
    clean: np.ndarray
    data: np.ndarray
    alpha_init: np.ndarray


def make_data(
    evals: np.ndarray,
    t1: float,
    sigma: float = NOISE_SIGMA,
    seed: int = SEED,
) -> ExampleData:
    """Generate synthetic mode data with exponents ``evals`` on [0, t1]."""
    rng = np.random.default_rng(seed)
    evals = np.asarray(evals, dtype=complex)
    x = np.linspace(*X_RANGE, N_X)
    modes = np.vstack([np.sin(x), np.cos(x), np.tanh(x)])
    t = np.linspace(0.0, t1, N_T)
    clean = exp_basis(evals, t) @ modes
    data = clean + sigma * rng.standard_normal(clean.shape)
    alpha_init = rng.standard_normal(evals.size)
    return ExampleData(
        t=t,
        x=x,
        modes=modes,
        evals=evals,
        clean=clean,
        data=data,
        alpha_init=alpha_init,
    )


PHI = exp_basis
DPHI = exp_basis_derivative


def summarize_fit(name: str, result: VarProResult, data: ExampleData) -> dict:
    """Reconstruction and eigenvalue errors for one fit."""
    res = data.data - PHI(result.alpha, data.t) @ result.b
    indices = match_vectors(result.alpha, data.evals)
    return {
        "Run": name,
        "Status": result.status.name,
        "Iterations": result.niter,
        "Reconstruction err": f"{np.linalg.norm(res) / np.linalg.norm(data.data):.3e}",
        "Eigenvalue err": f"{relative_error(result.alpha[indices], data.evals):.3e}",
        "|alpha|": f"{np.linalg.norm(result.alpha):.4f}",
    }


def print_summary(title: str, rows: list[dict]) -> None:
    """Print a summary table for a list of fits."""
    print("=" * 70)
    print(title)
    print("=" * 70)
    print(pd.DataFrame(rows).to_string(index=False))
    print()


def plot_eigenvalues(
    results: dict[str, VarProResult],
    evals: np.ndarray,
    title: str,
) -> plt.Figure:
    """Scatter fitted exponents in the complex plane against the planted ones."""
    fig, ax = plt.subplots(figsize=(6, 5))
    ax.scatter(
        evals.real, evals.imag, s=120, facecolors="none", edgecolors="black",
        label="true",
    )
    markers = ["o", "x", "s", "^", "d"]
    for i, (name, result) in enumerate(results.items()):
        alpha = np.asarray(result.alpha, dtype=complex)
        ax.scatter(alpha.real, alpha.imag, marker=markers[i % len(markers)], label=name)
    ax.axhline(0, color="gray", linestyle="--", alpha=0.5)
    ax.axvline(0, color="gray", linestyle="--", alpha=0.5)
    ax.set_xlabel("Re(α)")
    ax.set_ylabel("Im(α)")
    ax.set_title(title)
    ax.legend(fontsize=8)
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    return fig


def save_outputs(
    output_dir: Path,
    results: dict[str, VarProResult],
    fig: plt.Figure,
) -> None:
    """Save the eigenvalue figure and one history CSV per run."""
    fig_path = output_dir / "eigenvalues.png"
    fig.savefig(fig_path, dpi=150, bbox_inches="tight", facecolor="white")
    print(f"Saved: {fig_path}")
    plt.close(fig)

    for name, result in results.items():
        csv_path = output_dir / f"history_{name}.csv"
        result.history_frame().to_csv(csv_path, index=False)
        print(f"Saved: {csv_path}")


def resolve_output_dir(name: str, output_dir: Path | None) -> Path:
    """Use ``output_dir`` if given, else a fresh RESULTS_DIR/<name>."""
    if output_dir is not None:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        return output_dir
    return config.prepare_output_dir(config.RESULTS_DIR / name)
