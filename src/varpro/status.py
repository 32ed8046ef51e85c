"""Fit status codes and exceptions shared across the solver."""

import enum


class FitStatus(enum.IntEnum):
    """Outcome of a variable projection run.

    Every status other than CONVERGED still comes with a complete, usable
    result (coefficients, parameters, error history).  The integer values are
    the classic ``imode`` failure-mode codes, so ``int(status)`` can be
    compared against code written for them.
    """

    CONVERGED = 0
    """Relative residual dropped below ``tol``."""

    MAX_ITER = 1
    """``maxiter`` iterations completed without meeting ``tol``."""

    NO_DIRECTION = 4
    """No damping value in the escalation schedule produced a step that
    reduced the error.  The best iterate found so far is returned."""

    STALL = 8
    """The error decreased by less than ``eps_stall`` times its previous
    value between two consecutive iterations."""


class VarProError(Exception):
    """Base class for hard failures raised by this package."""


class ConfigError(VarProError, ValueError):
    """Options or input arrays are malformed.  Raised before iterating."""


class MissingFieldError(ConfigError):
    """An option is absent from both the user options and the defaults."""


class InfeasibleStepError(VarProError):
    """The constrained least-squares subproblem has no feasible solution.

    The damping controller treats this as a rejected candidate step rather
    than aborting the run.
    """


class NonFiniteFitError(VarProError):
    """The initial fit produced NaN or Inf, so no result can be built."""
