"""Example 2: Box constraints keeping the exponents in the left half-plane.

The planted exponents are purely imaginary, so an unconstrained fit of
noisy data can drift to slightly positive real parts (growing modes).
Bounding the real parts above by zero rules that out.  For complex
parameters the bounds act on [Re α; Im α], so ``ub`` has 2p entries.
The constrained run starts from the same guess with its real parts clipped
to the bound.
"""

from pathlib import Path

import numpy as np

from varpro.examples.common import (
    DPHI,
    PHI,
    make_data,
    plot_eigenvalues,
    print_summary,
    resolve_output_dir,
    save_outputs,
    summarize_fit,
)
from varpro.options import DEFAULT_OPTIONS, ConstraintOptions
from varpro.solver import varpro2

EVALS = np.array([1j, -3j, 0.5j])
T_END = 2 * np.pi


def left_half_plane(n_params: int) -> ConstraintOptions:
    """Bounds Re(α) <= 0 with the imaginary parts left free."""
    lb = np.full(2 * n_params, -np.inf)
    ub = np.concatenate([np.zeros(n_params), np.full(n_params, np.inf)])
    return ConstraintOptions(lb=lb, ub=ub, real=False)


def feasible_start(alpha: np.ndarray) -> np.ndarray:
    """Clip the real parts of alpha to the left half-plane."""
    return np.minimum(alpha.real, 0.0) + 1j * alpha.imag


def main(output_dir: Path | None = None):
    """Run Example 2: unconstrained vs. left half-plane constrained fits."""
    print("=" * 70)
    print("Example 2: Exponential fit with bounds")
    print("=" * 70)

    output_dir = resolve_output_dir("ex2_bounds", output_dir)
    data = make_data(EVALS, T_END)
    n_params = EVALS.size

    results = {
        "unconstrained": varpro2(
            data.data, data.t, PHI, DPHI, data.alpha_init, DEFAULT_OPTIONS
        ),
        "constrained": varpro2(
            data.data,
            data.t,
            PHI,
            DPHI,
            feasible_start(data.alpha_init),
            DEFAULT_OPTIONS.replace(maxiter=200),
            constraints=left_half_plane(n_params),
        ),
    }

    rows = [summarize_fit(name, result, data) for name, result in results.items()]
    print_summary("Example 2 summary", rows)

    max_real = np.max(np.real(results["constrained"].alpha))
    print(f"Largest real part with constraints: {max_real:+.3e}")

    fig = plot_eigenvalues(results, data.evals, "Example 2: fitted exponents")
    save_outputs(output_dir, results, fig)

    print("\nExample 2 complete.")
    return results


if __name__ == "__main__":
    main()
