"""Levenberg-Marquardt step from a column-pivoted QR of the Jacobian.

The damped problem

    min ‖J Δ − r‖² + λ² ‖D Δ‖²

is solved through the QR factorization J P = Q R.  Everything except the
damping rows λ·D is independent of λ, so the factorization is computed once
per outer iteration and reused for each damping value tried.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import scipy.linalg as sl

from varpro.constrained import constrained_step
from varpro.jacobian import JacobianSystem
from varpro.options import ConstraintOptions


@dataclass(frozen=True)
class TrustRegionStep:
    """Precomputed pieces of the damped step system.

    Attributes:
        rtop: p×p upper-triangular factor (columns in pivoted order)
        rhs: Transformed right-hand side [Qᴴ r; 0] (length 2p)
        jpvt: Column pivot, ``rtop[:, k]`` belongs to parameter ``jpvt[k]``
        scales: Marquardt scales permuted to pivoted order
        alpha: Parameter vector the step is taken from
        constraints: Optional constraints on α + Δα
    """

    rtop: np.ndarray
    rhs: np.ndarray
    jpvt: np.ndarray
    scales: np.ndarray
    alpha: np.ndarray
    constraints: ConstraintOptions | None = None

    @classmethod
    def from_jacobian(
        cls,
        system: JacobianSystem,
        alpha: np.ndarray,
        constraints: ConstraintOptions | None = None,
    ) -> TrustRegionStep:
        n_params = alpha.size
        Q, R, jpvt = sl.qr(system.jac, mode="economic", pivoting=True)

        # Fewer residual rows than parameters leaves R short; pad with zeros
        rtop = np.zeros((n_params, n_params), dtype=R.dtype)
        k = min(R.shape[0], n_params)
        rtop[:k] = np.triu(R[:k])

        qtr = Q.conj().T @ system.rhs
        rhs = np.zeros(2 * n_params, dtype=np.result_type(qtr, rtop))
        rhs[:k] = qtr[:k]

        return cls(
            rtop=rtop,
            rhs=rhs,
            jpvt=jpvt,
            scales=system.scales[jpvt],
            alpha=alpha,
            constraints=constraints,
        )

    @property
    def inverse_pivot(self) -> np.ndarray:
        ijpvt = np.empty_like(self.jpvt)
        ijpvt[self.jpvt] = np.arange(self.jpvt.size)
        return ijpvt

    def damped_matrix(self, lam: float) -> np.ndarray:
        """The 2p×p stacked system [R; λ·diag(scales)]."""
        return np.vstack([self.rtop, lam * np.diag(self.scales)])

    def solve(self, lam: float) -> np.ndarray:
        """Return the step Δα for damping ``lam``, in original parameter order.

        Raises:
            InfeasibleStepError: If the constrained subproblem has no solution
        """
        rjac = self.damped_matrix(lam)
        if self.constraints is None:
            delta, _, _, _ = sl.lstsq(rjac, self.rhs)
        else:
            delta = constrained_step(
                rjac, self.rhs, self.alpha, self.jpvt, self.constraints
            )
        return delta[self.inverse_pivot]
