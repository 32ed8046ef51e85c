"""Variable projection for multivariate separable nonlinear least squares.

Fits the columns of a data matrix Y (m×s) as linear combinations of the
columns of a basis Φ(α, t) (m×n) depending nonlinearly on α (length p):

    min_{α, B}  ‖Y − Φ(α) B‖²_F  +  ‖Γ α‖²

optionally subject to linear constraints on α.  For any α the best B is a
linear least-squares solution, so only α is searched, with a
Levenberg-Marquardt method on the projected residual.

Each outer iteration:

1. Factor Φ(α) with a rank-truncated SVD (linalg.TruncatedSVD)
2. Build the Jacobian of the projected residual (jacobian.assemble_jacobian)
3. Factor the Jacobian with column-pivoted QR (step.TrustRegionStep)
4. Choose the damping and accept a step (damping.DampingController)
5. Record the error and check for termination (monitor.ConvergenceMonitor)

Example:

    >>> from varpro.basis import exp_basis, exp_basis_derivative
    >>> result = varpro2(y, t, exp_basis, exp_basis_derivative, alpha_init)
    >>> result.alpha, result.b, result.status
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Callable, Union

import numpy as np
from rich.console import Console

from varpro.damping import DampingController
from varpro.jacobian import assemble_jacobian
from varpro.linalg import FitState, TruncatedSVD, evaluate_fit
from varpro.monitor import ConvergenceMonitor, VarProResult
from varpro.options import (
    ConstraintOptions,
    VarProOptions,
    resolve_constraints,
    resolve_options,
)
from varpro.status import ConfigError, NonFiniteFitError
from varpro.step import TrustRegionStep


def _prepare_gamma(gamma, n_params: int) -> np.ndarray | None:
    """Return Γ as a p×p matrix, or None when there is no regularization."""
    if gamma is None:
        return None
    gamma = np.asarray(gamma)
    if gamma.size == 1:
        gamma = gamma.item() * np.eye(n_params)
    elif gamma.shape != (n_params, n_params):
        raise ConfigError(
            f"Tikhonov regularization matrix of incorrect size: expected "
            f"({n_params}, {n_params}) or a scalar, got {gamma.shape}"
        )
    # An all-zero Γ is the same problem as no regularization
    if not np.any(gamma):
        return None
    return gamma


def _prepare_inputs(
    y, t, alpha_init
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    y = np.asarray(y)
    if y.ndim == 1:
        y = y[:, np.newaxis]
    if y.ndim != 2:
        raise ConfigError(f"y must be 1D or 2D, got shape {y.shape}")
    if not np.issubdtype(y.dtype, np.inexact):
        y = y.astype(float)
    if not np.all(np.isfinite(y)):
        raise ConfigError("y contains non-finite values (NaN or Inf)")
    t = np.asarray(t)
    if t.ndim == 0 or t.shape[0] != y.shape[0]:
        raise ConfigError(
            f"t must have one entry per row of y ({y.shape[0]}), got shape {t.shape}"
        )
    alpha = np.array(alpha_init, copy=True).ravel()
    if alpha.size == 0:
        raise ConfigError("alpha_init must have at least one entry")
    if not np.issubdtype(alpha.dtype, np.inexact):
        alpha = alpha.astype(float)
    return y, t, alpha


def varpro2(
    y: np.ndarray,
    t: np.ndarray,
    phi: Callable,
    dphi: Callable,
    alpha_init: np.ndarray,
    options: Union[VarProOptions, Mapping, None] = None,
    *,
    constraints: Union[ConstraintOptions, Mapping, None] = None,
    gamma: Union[float, np.ndarray, None] = None,
    console: Console | None = None,
) -> VarProResult:
    """Fit y ≈ phi(alpha, t) @ b by variable projection.

    Args:
        y: m×s data matrix (real or complex); a 1D array is one column
        t: Sample grid with m entries, passed through to phi/dphi
        phi: ``phi(alpha, t)`` returning the m×n basis, dense or sparse
        dphi: ``dphi(alpha, t, i)`` returning ∂phi/∂alpha[i] (m×n, 0-based i)
        alpha_init: Initial guess for alpha (length p); not modified
        options: VarProOptions, a mapping of option values, or None for
            DEFAULT_OPTIONS
        constraints: Linear/box constraints on alpha (see ConstraintOptions)
        gamma: Tikhonov regularization, a scalar (Γ = gamma·I) or p×p matrix
        console: Rich console for progress output when ``ifprint`` is set

    Returns:
        VarProResult.  Stalls, exhausted iterations and failed step searches
        are reported via ``VarProResult.status`` rather than exceptions;
        the best iterate found is always returned.

    Raises:
        ConfigError: If inputs or options are malformed (wrong shapes,
            unknown or invalid options, wrong-sized regularization matrix)
        MissingFieldError: If an option has no value and no default
        NonFiniteFitError: If the fit at alpha_init is NaN or Inf
    """
    opts = resolve_options(options)
    y, t, alpha = _prepare_inputs(y, t, alpha_init)
    n_params = alpha.size

    gamma_mat = _prepare_gamma(gamma, n_params)
    gamma_err = gamma_mat if gamma_mat is not None else np.zeros((n_params, n_params))

    constraints = resolve_constraints(constraints)
    if constraints is not None:
        constraints.check_width(n_params)
        if constraints.real and (np.any(alpha.imag) or np.any(y.imag)):
            raise ConfigError("real=True constraints require real alpha_init and y")

    res_scale = float(np.linalg.norm(y))
    if res_scale == 0:
        raise ConfigError("y is identically zero; the relative error is undefined")

    def evaluate(alpha_trial: np.ndarray) -> FitState:
        return evaluate_fit(alpha_trial, y, t, phi, gamma_err, res_scale)

    state = evaluate(alpha)
    if not np.isfinite(state.err):
        raise NonFiniteFitError(f"Fit at alpha_init is not finite (err={state.err})")

    damping = DampingController.from_options(opts)
    monitor = ConvergenceMonitor(opts, console=console)

    while monitor.status is None:
        svd = TruncatedSVD.from_basis(state.phi)
        system = assemble_jacobian(
            state,
            svd,
            t,
            dphi,
            gamma=gamma_mat,
            iffulljac=opts.iffulljac,
            ifmarq=opts.ifmarq,
        )
        step = TrustRegionStep.from_jacobian(system, state.alpha, constraints)

        candidate = damping.search(step, evaluate, state.err)
        if candidate is None:
            monitor.fail(state.alpha, state.err)
            break

        state = candidate
        monitor.record(state.alpha, state.err, damping.lam)

    return monitor.finish(state)
