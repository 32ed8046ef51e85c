"""Tests for the pivoted-QR step solver and the constrained collaborator."""

import numpy as np
import pytest

from varpro.constrained import NumericDomain, constrained_step, solve_constrained_lsq
from varpro.jacobian import JacobianSystem
from varpro.options import ConstraintOptions
from varpro.status import InfeasibleStepError
from varpro.step import TrustRegionStep


def _system(n_rows=20, n_params=4, complex_=False, seed=0):
    rng = np.random.default_rng(seed)
    jac = rng.standard_normal((n_rows, n_params))
    rhs = rng.standard_normal(n_rows)
    if complex_:
        jac = jac + 1j * rng.standard_normal((n_rows, n_params))
        rhs = rhs + 1j * rng.standard_normal(n_rows)
    # Badly scaled columns so that pivoting actually reorders them
    jac = jac * np.array([0.01, 10.0, 1.0, 0.1])[:n_params]
    scales = rng.uniform(0.1, 1.0, n_params)
    return JacobianSystem(jac=jac, rhs=rhs, scales=scales)


def _damped_reference(system, lam):
    """Direct least-squares solve of [J; λD] Δ = [r; 0]."""
    n_params = system.jac.shape[1]
    mat = np.vstack([system.jac, lam * np.diag(system.scales)])
    rhs = np.concatenate([system.rhs, np.zeros(n_params)])
    delta, *_ = np.linalg.lstsq(mat, rhs, rcond=None)
    return delta


class TestTrustRegionStep:
    """Tests for the unconstrained damped step."""

    @pytest.mark.parametrize("complex_", [False, True], ids=["real", "complex"])
    @pytest.mark.parametrize("lam", [1e-8, 0.5, 100.0])
    def test_matches_direct_damped_solve(self, complex_, lam):
        system = _system(complex_=complex_)
        alpha = np.zeros(4)
        step = TrustRegionStep.from_jacobian(system, alpha)

        delta = step.solve(lam)

        np.testing.assert_allclose(delta, _damped_reference(system, lam), atol=1e-10)

    def test_pivot_is_a_permutation(self):
        system = _system()
        step = TrustRegionStep.from_jacobian(system, np.zeros(4))
        assert sorted(step.jpvt) == [0, 1, 2, 3]
        np.testing.assert_array_equal(step.jpvt[step.inverse_pivot], np.arange(4))
        np.testing.assert_array_equal(step.scales, system.scales[step.jpvt])

    def test_damping_shrinks_step(self):
        system = _system()
        step = TrustRegionStep.from_jacobian(system, np.zeros(4))
        norms = [np.linalg.norm(step.solve(lam)) for lam in (0.01, 1.0, 100.0)]
        assert norms[0] > norms[1] > norms[2]

    def test_short_jacobian(self):
        """Fewer residual rows than parameters still gives a damped step."""
        system = _system(n_rows=2, n_params=4)
        step = TrustRegionStep.from_jacobian(system, np.zeros(4))
        np.testing.assert_allclose(
            step.solve(1.0), _damped_reference(system, 1.0), atol=1e-10
        )

    def test_inactive_bounds_match_unconstrained(self):
        system = _system()
        alpha = np.zeros(4)
        copts = ConstraintOptions(lb=np.full(4, -1e6), ub=np.full(4, 1e6), real=True)

        free = TrustRegionStep.from_jacobian(system, alpha).solve(1.0)
        bounded = TrustRegionStep.from_jacobian(system, alpha, copts).solve(1.0)

        np.testing.assert_allclose(bounded, free, atol=1e-8)

    def test_active_bounds_respected_in_original_order(self):
        """Bounds apply to alpha + delta, indexed in original parameter order."""
        system = _system()
        alpha = np.array([0.5, -0.5, 0.2, 0.0])
        free = TrustRegionStep.from_jacobian(system, alpha).solve(1e-3)
        # Cap every parameter below where the free step would take it
        ub = alpha + free - 0.1 * np.abs(free) - 1e-3
        copts = ConstraintOptions(ub=ub, real=True)

        delta = TrustRegionStep.from_jacobian(system, alpha, copts).solve(1e-3)

        assert np.all(alpha + delta <= ub + 1e-9)

    def test_complex_bounds_on_real_parts(self):
        system = _system(complex_=True)
        alpha = np.array([-0.1 + 1j, -0.2, -0.3 - 1j, -0.4])
        n = alpha.size
        lb = np.full(2 * n, -np.inf)
        ub = np.concatenate([np.zeros(n), np.full(n, np.inf)])
        copts = ConstraintOptions(lb=lb, ub=ub, real=False)

        delta = TrustRegionStep.from_jacobian(system, alpha, copts).solve(1e-3)

        assert np.iscomplexobj(delta)
        assert np.all((alpha + delta).real <= 1e-9)

    def test_complex_unbounded_matches_unconstrained(self):
        system = _system(complex_=True)
        alpha = np.zeros(4, dtype=complex)
        copts = ConstraintOptions(lb=np.full(8, -np.inf), ub=np.full(8, np.inf))

        free = TrustRegionStep.from_jacobian(system, alpha).solve(0.3)
        bounded = TrustRegionStep.from_jacobian(system, alpha, copts).solve(0.3)

        np.testing.assert_allclose(bounded, free, atol=1e-8)


class TestNumericDomain:
    """Tests for the real-doubling transform."""

    def test_doubled_system_is_equivalent(self):
        rng = np.random.default_rng(7)
        mat = rng.standard_normal((5, 3)) + 1j * rng.standard_normal((5, 3))
        x = rng.standard_normal(3) + 1j * rng.standard_normal(3)
        domain = NumericDomain.COMPLEX

        mat_r, rhs_r = domain.to_real_system(mat, mat @ x)

        assert mat_r.shape == (10, 6)
        np.testing.assert_allclose(mat_r @ domain.stack(x), rhs_r, atol=1e-12)
        np.testing.assert_allclose(domain.unstack(domain.stack(x)), x)

    def test_pivot_permutes_both_blocks(self):
        jpvt = np.array([2, 0, 1])
        np.testing.assert_array_equal(NumericDomain.REAL.pivot(jpvt), [2, 0, 1])
        np.testing.assert_array_equal(
            NumericDomain.COMPLEX.pivot(jpvt), [2, 0, 1, 5, 3, 4]
        )

    def test_real_domain_rejects_complex_problem(self):
        """A complex step problem under real constraints has no real step."""
        with pytest.raises(InfeasibleStepError, match="real=False"):
            NumericDomain.REAL.to_real_system(np.eye(2) * 1j, np.ones(2))

    def test_real_constraints_shift_by_alpha(self):
        """Real bounds are shifted by alpha itself before the solve."""
        rjac = np.vstack([np.eye(2), np.zeros((2, 2))])
        rhs = np.array([5.0, 5.0, 0.0, 0.0])
        alpha = np.array([1.0, 2.0])
        copts = ConstraintOptions(
            ub=np.array([3.0, 10.0]),
            real=True,
            lsq_linear_options={"method": "bvls"},
        )

        delta = constrained_step(rjac, rhs, alpha, np.array([0, 1]), copts)

        np.testing.assert_allclose(delta, [2.0, 5.0], atol=1e-8)


class TestSolveConstrainedLsq:
    """Tests for the constrained least-squares collaborator."""

    def test_box_only(self):
        x = solve_constrained_lsq(
            np.eye(2),
            np.array([2.0, -2.0]),
            lb=[-1, -1],
            ub=[1, 1],
            lsq_linear_options={"method": "bvls"},
        )
        np.testing.assert_allclose(x, [1.0, -1.0], atol=1e-8)

    def test_inequality(self):
        x = solve_constrained_lsq(
            np.eye(2), np.array([1.0, 1.0]), A=np.array([[1.0, 1.0]]), b=np.array([1.0])
        )
        np.testing.assert_allclose(x, [0.5, 0.5], atol=1e-5)

    def test_equality(self):
        x = solve_constrained_lsq(
            np.eye(2),
            np.array([1.0, 1.0]),
            Aeq=np.array([[1.0, -1.0]]),
            beq=np.array([0.4]),
        )
        np.testing.assert_allclose(x, [1.2, 0.8], atol=1e-5)

    def test_inconsistent_bounds(self):
        with pytest.raises(InfeasibleStepError):
            solve_constrained_lsq(np.eye(2), np.ones(2), lb=[1, 1], ub=[0, 0])

    def test_incompatible_inequalities(self):
        with pytest.raises(InfeasibleStepError):
            solve_constrained_lsq(
                np.eye(2),
                np.ones(2),
                A=np.array([[1.0, 0.0], [-1.0, 0.0]]),
                b=np.array([-1.0, -1.0]),
            )

    def test_pinned_entries(self):
        """Equal lower and upper bounds fix an entry; the rest stay free."""
        x = solve_constrained_lsq(
            np.eye(3),
            np.array([1.0, 2.0, 3.0]),
            lb=[-np.inf, 0.5, 0.0],
            ub=[np.inf, 0.5, 2.0],
        )
        assert x[1] == 0.5
        np.testing.assert_allclose(x, [1.0, 0.5, 2.0], atol=1e-6)

    def test_pinned_entries_with_coupled_columns(self):
        """Pinned columns move to the right-hand side of the free problem."""
        mat = np.array([[1.0, 1.0], [0.0, 1.0], [1.0, 0.0]])
        rhs = np.array([3.0, 1.0, 2.0])
        x = solve_constrained_lsq(mat, rhs, lb=[-np.inf, 1.0], ub=[np.inf, 1.0])
        # min (x0 + 1 - 3)^2 + (x0 - 2)^2 gives x0 = 2
        np.testing.assert_allclose(x, [2.0, 1.0], atol=1e-8)

    def test_pinned_entries_with_inequality(self):
        x = solve_constrained_lsq(
            np.eye(2),
            np.array([1.0, 1.0]),
            A=np.array([[1.0, 1.0]]),
            b=np.array([1.2]),
            lb=[-np.inf, 0.5],
            ub=[np.inf, 0.5],
        )
        np.testing.assert_allclose(x, [0.7, 0.5], atol=1e-5)

    def test_all_entries_pinned(self):
        x = solve_constrained_lsq(np.eye(2), np.ones(2), lb=[0.2, 0.3], ub=[0.2, 0.3])
        np.testing.assert_array_equal(x, [0.2, 0.3])

    def test_pinned_entries_violating_rows(self):
        with pytest.raises(InfeasibleStepError):
            solve_constrained_lsq(
                np.eye(2),
                np.ones(2),
                A=np.array([[1.0, 1.0]]),
                b=np.array([0.0]),
                lb=[1.0, 1.0],
                ub=[1.0, 1.0],
            )

    def test_options_reach_their_own_solver(self):
        """lsq_linear keywords never reach SLSQP and vice versa."""
        lsq_opts = {"method": "bvls"}
        slsqp_opts = {"ftol": 1e-12, "maxiter": 200}

        boxed = solve_constrained_lsq(
            np.eye(2),
            np.array([2.0, 0.0]),
            lb=[-1, -1],
            ub=[1, 1],
            lsq_linear_options=lsq_opts,
            slsqp_options=slsqp_opts,
        )
        linear = solve_constrained_lsq(
            np.eye(2),
            np.array([1.0, 1.0]),
            A=np.array([[1.0, 1.0]]),
            b=np.array([1.0]),
            lsq_linear_options=lsq_opts,
            slsqp_options=slsqp_opts,
        )

        np.testing.assert_allclose(boxed, [1.0, 0.0], atol=1e-8)
        np.testing.assert_allclose(linear, [0.5, 0.5], atol=1e-6)
