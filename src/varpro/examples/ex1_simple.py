"""Example 1: Fitting exponential mode dynamics with default options.

Three spatial modes with growing, decaying and oscillating dynamics are
fit from a random initial guess, once with the default options and once
with Kaufman's approximate Jacobian for comparison.
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
from varpro.options import DEFAULT_OPTIONS
from varpro.solver import varpro2

EVALS = np.array([1.0, -2.0, 1j])
T_END = 1.0


def main(output_dir: Path | None = None):
    """Run Example 1: default options vs. approximate Jacobian."""
    print("=" * 70)
    print("Example 1: Exponential fit with default options")
    print("=" * 70)

    output_dir = resolve_output_dir("ex1_simple", output_dir)
    data = make_data(EVALS, T_END)

    runs = {
        "full_jacobian": DEFAULT_OPTIONS,
        "kaufman": DEFAULT_OPTIONS.replace(iffulljac=False),
    }
    results = {}
    for name, opts in runs.items():
        results[name] = varpro2(data.data, data.t, PHI, DPHI, data.alpha_init, opts)

    rows = [summarize_fit(name, result, data) for name, result in results.items()]
    print_summary("Example 1 summary", rows)

    fig = plot_eigenvalues(results, data.evals, "Example 1: fitted exponents")
    save_outputs(output_dir, results, fig)

    print("\nExample 1 complete.")
    return results


if __name__ == "__main__":
    main()
