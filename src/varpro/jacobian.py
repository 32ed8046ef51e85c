"""Jacobian of the variable projection residual.

The residual after eliminating B is r(α) = P⊥(α) Y, with P⊥ the projector
onto the orthogonal complement of range Φ(α).  Following Golub & Pereyra,
column j of the (negated) Jacobian is

    (I − P) ∂Φ/∂α_j B  +  (Φ⁺)ᴴ (∂Φ/∂α_j)ᴴ R

The second term is optional: dropping it gives Kaufman's cheaper
approximation, which often converges in a similar number of iterations.

References:
    G. H. Golub and V. Pereyra, "The differentiation of pseudo-inverses and
    nonlinear least squares problems whose variables separate", SIAM J.
    Numer. Anal. 10(2), 1973.
    D. P. O'Leary and B. W. Rust, "Variable projection for nonlinear least
    squares problems", Comput. Optim. Appl. 54(3), 2013.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import numpy as np

from varpro.basis import as_basis
from varpro.linalg import FitState, TruncatedSVD

# Marquardt column scales are clipped to this range
MIN_SCALE = 1e-6
MAX_SCALE = 1.0


@dataclass(frozen=True)
class JacobianSystem:
    """The linearized problem for one outer iteration.

    Attributes:
        jac: Jacobian, (m·s [+ p]) × p
        rhs: Residual vector matching the rows of ``jac``
        scales: Per-parameter Marquardt scales (length p)
    """

    jac: np.ndarray
    rhs: np.ndarray
    scales: np.ndarray


def marquardt_scale(column: np.ndarray, ifmarq: bool) -> float:
    """Damping scale for one Jacobian column: 1, or its norm clipped to [1e-6, 1]."""
    if not ifmarq:
        return 1.0
    return float(np.clip(np.linalg.norm(column), MIN_SCALE, MAX_SCALE))


def assemble_jacobian(
    state: FitState,
    svd: TruncatedSVD,
    t: np.ndarray,
    dphi: Callable,
    gamma: np.ndarray | None = None,
    iffulljac: bool = True,
    ifmarq: bool = True,
) -> JacobianSystem:
    """Build the Jacobian, residual vector and column scales at ``state``.

    Args:
        state: Current fit (α, Φ, B, R)
        svd: Truncated SVD of ``state.phi``
        t: Sample grid
        dphi: ``dphi(alpha, t, j)`` returning ∂Φ/∂α_j
        gamma: p×p regularization matrix, or None
        iffulljac: Include the implicit dependence of B on α
        ifmarq: Use adaptive per-column damping scales

    Returns:
        JacobianSystem.  When ``gamma`` is given its rows are appended to
        the Jacobian and −Γα to the residual vector.
    """
    alpha = state.alpha
    n_params = alpha.size
    columns = []
    scales = np.ones(n_params)

    for j in range(n_params):
        dphitemp = as_basis(dphi(alpha, t, j))
        dphi_b = dphitemp.dot(state.b)
        col = dphi_b - svd.project(dphi_b)
        if iffulljac:
            col = col + svd.pinv_adjoint(dphitemp.hdot(state.res))
        col = col.ravel(order="F")
        columns.append(col)
        scales[j] = marquardt_scale(col, ifmarq)

    jac = np.column_stack(columns)
    rhs = state.res.ravel(order="F")

    if gamma is not None:
        jac = np.vstack([jac, gamma])
        rhs = np.concatenate([rhs, -(gamma @ alpha)])

    return JacobianSystem(jac=jac, rhs=rhs, scales=scales)
