"""Constrained least-squares steps.

The trust-region subproblem is an ordinary least-squares problem in the
step Δα.  When the parameters carry linear constraints, the constraints are
first rewritten for the step (shifted by the current α) and permuted into
the pivoted coordinates of the QR factorization, then handed to scipy.

Complex problems are solved as real problems of twice the size: the
unknown becomes [Re Δα; Im Δα], the matrix becomes [[Re M, −Im M],
[Im M, Re M]] and the right-hand side [Re r; Im r].  Real problems go
through the same code path with a single block.
"""

from __future__ import annotations

import enum

import numpy as np
from scipy.optimize import Bounds, LinearConstraint, lsq_linear, minimize

from varpro.options import ConstraintOptions
from varpro.status import InfeasibleStepError

# Maximum constraint violation accepted from an unsuccessful SLSQP run
FEASIBILITY_TOL = 1e-8


class NumericDomain(enum.Enum):
    """Number of real blocks used to represent one parameter."""

    REAL = 1
    COMPLEX = 2

    @classmethod
    def for_constraints(cls, constraints: ConstraintOptions) -> NumericDomain:
        return cls.REAL if constraints.real else cls.COMPLEX

    def to_real_system(
        self, mat: np.ndarray, rhs: np.ndarray
    ) -> tuple[np.ndarray, np.ndarray]:
        """Return the real least-squares system equivalent to (mat, rhs)."""
        if self is NumericDomain.REAL:
            if np.any(mat.imag) or np.any(rhs.imag):
                raise InfeasibleStepError(
                    "Real-valued constraints were given but the step "
                    "problem is complex; set real=False"
                )
            return np.real(mat), np.real(rhs)
        mat_r = np.block([[mat.real, -mat.imag], [mat.imag, mat.real]])
        rhs_r = np.concatenate([rhs.real, rhs.imag])
        return mat_r, rhs_r

    def stack(self, vec: np.ndarray) -> np.ndarray:
        """Real representation of a parameter-sized vector."""
        if self is NumericDomain.REAL:
            return np.real(vec)
        return np.concatenate([vec.real, vec.imag])

    def unstack(self, vec: np.ndarray) -> np.ndarray:
        """Inverse of ``stack``."""
        if self is NumericDomain.REAL:
            return vec
        half = vec.size // 2
        return vec[:half] + 1j * vec[half:]

    def pivot(self, jpvt: np.ndarray) -> np.ndarray:
        """Column permutation of the real representation for pivot ``jpvt``."""
        n_params = jpvt.size
        return np.concatenate([jpvt + k * n_params for k in range(self.value)])


def _violation(x, A, b, Aeq, beq, lb, ub) -> float:
    """Largest constraint violation at x."""
    return max(
        np.max(lb - x, initial=0.0),
        np.max(x - ub, initial=0.0),
        np.max(A @ x - b, initial=0.0) if A is not None else 0.0,
        np.max(np.abs(Aeq @ x - beq), initial=0.0) if Aeq is not None else 0.0,
    )


def _solve_free(mat, rhs, A, b, Aeq, beq, lb, ub, lsq_linear_options, slsqp_options):
    """Solve the problem in the unknowns whose bounds leave room to move."""
    n = mat.shape[1]
    if A is None and Aeq is None:
        result = lsq_linear(mat, rhs, bounds=(lb, ub), **lsq_linear_options)
        if result.status < 0:
            raise InfeasibleStepError(f"lsq_linear failed: {result.message}")
        return result.x

    constraints = []
    if A is not None:
        constraints.append(LinearConstraint(A, -np.inf, b))
    if Aeq is not None:
        constraints.append(LinearConstraint(Aeq, beq, beq))

    def objective(x):
        r = mat @ x - rhs
        return 0.5 * float(r @ r), mat.T @ r

    x0 = np.clip(np.zeros(n), lb, ub)
    result = minimize(
        objective,
        x0=x0,
        jac=True,
        method="SLSQP",
        bounds=Bounds(lb, ub),
        constraints=constraints,
        options=slsqp_options,
    )

    x = result.x
    violation = _violation(x, A, b, Aeq, beq, lb, ub)
    if not result.success and violation > FEASIBILITY_TOL * (1 + np.abs(x).max()):
        raise InfeasibleStepError(
            f"Constrained step failed: {result.message} (violation {violation:.2e})"
        )
    return x


def solve_constrained_lsq(
    mat: np.ndarray,
    rhs: np.ndarray,
    A: np.ndarray | None = None,
    b: np.ndarray | None = None,
    Aeq: np.ndarray | None = None,
    beq: np.ndarray | None = None,
    lb: np.ndarray | None = None,
    ub: np.ndarray | None = None,
    lsq_linear_options: dict | None = None,
    slsqp_options: dict | None = None,
) -> np.ndarray:
    """Solve min ‖mat @ x − rhs‖ subject to linear and box constraints.

    Box-only problems use ``scipy.optimize.lsq_linear``; problems with
    linear inequality or equality rows use SLSQP.  Entries with
    ``lb == ub`` are pinned to that value and removed from the problem
    before either solver runs.

    Args:
        mat: Real system matrix
        rhs: Real right-hand side
        A, b: Inequality rows ``A @ x <= b``
        Aeq, beq: Equality rows ``Aeq @ x == beq``
        lb, ub: Bounds on x; None means unbounded
        lsq_linear_options: Keyword arguments for ``lsq_linear``
        slsqp_options: The ``options`` mapping for SLSQP

    Raises:
        InfeasibleStepError: If the bounds are inconsistent or the solver
            cannot find a point satisfying the constraints
    """
    n = mat.shape[1]
    lb = np.full(n, -np.inf) if lb is None else np.asarray(lb, dtype=float)
    ub = np.full(n, np.inf) if ub is None else np.asarray(ub, dtype=float)
    lsq_linear_options = dict(lsq_linear_options or {})
    slsqp_options = dict(slsqp_options or {})

    if np.any(lb > ub):
        raise InfeasibleStepError("Lower bounds exceed upper bounds.")

    # lsq_linear needs lb < ub strictly
    fixed = (lb == ub) & np.isfinite(lb)
    if not np.any(fixed):
        return _solve_free(
            mat, rhs, A, b, Aeq, beq, lb, ub, lsq_linear_options, slsqp_options
        )

    free = ~fixed
    x = np.zeros(n)
    x[fixed] = lb[fixed]
    rhs = rhs - mat[:, fixed] @ x[fixed]
    if A is not None:
        b = b - A[:, fixed] @ x[fixed]
        A = A[:, free]
    if Aeq is not None:
        beq = beq - Aeq[:, fixed] @ x[fixed]
        Aeq = Aeq[:, free]

    if np.any(free):
        x[free] = _solve_free(
            mat[:, free],
            rhs,
            A,
            b,
            Aeq,
            beq,
            lb[free],
            ub[free],
            lsq_linear_options,
            slsqp_options,
        )
    elif _violation(np.zeros(0), A, b, Aeq, beq, lb[free], ub[free]) > FEASIBILITY_TOL:
        raise InfeasibleStepError("Pinned values violate the linear constraints.")
    return x


def constrained_step(
    rjac: np.ndarray,
    rhs: np.ndarray,
    alpha: np.ndarray,
    jpvt: np.ndarray,
    constraints: ConstraintOptions,
) -> np.ndarray:
    """Solve the damped step system under the constraints on α + Δα.

    Args:
        rjac: 2p×p damped triangular system, columns in pivoted order
        rhs: Transformed right-hand side (length 2p)
        alpha: Current parameter vector (original order)
        jpvt: QR column pivot, ``rjac[:, k]`` belongs to ``alpha[jpvt[k]]``
        constraints: Constraints on α in original order

    Returns:
        Step in pivoted order, complex when ``constraints.real`` is False
    """
    domain = NumericDomain.for_constraints(constraints)
    mat_r, rhs_r = domain.to_real_system(rjac, rhs)
    alpha_r = domain.stack(alpha)
    perm = domain.pivot(np.asarray(jpvt[: alpha.size]))

    A = b = Aeq = beq = lb = ub = None
    if constraints.A is not None:
        b = constraints.b - constraints.A @ alpha_r
        A = constraints.A[:, perm]
    if constraints.Aeq is not None:
        beq = constraints.beq - constraints.Aeq @ alpha_r
        Aeq = constraints.Aeq[:, perm]
    if constraints.lb is not None:
        lb = (constraints.lb - alpha_r)[perm]
    if constraints.ub is not None:
        ub = (constraints.ub - alpha_r)[perm]

    delta_r = solve_constrained_lsq(
        mat_r,
        rhs_r,
        A,
        b,
        Aeq,
        beq,
        lb,
        ub,
        lsq_linear_options=constraints.lsq_linear_options,
        slsqp_options=constraints.slsqp_options,
    )
    return domain.unstack(delta_r)
