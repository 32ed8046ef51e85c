"""Levenberg-Marquardt damping schedule.

Small λ gives Gauss-Newton steps (fast near a good fit); large λ gives
short gradient-descent-like steps (slow but robust).  Each outer iteration
first tries the current λ.  If that improves the error it also tries
λ / lamdown and keeps the better of the two; otherwise λ is multiplied by
lamup until a step improves the error or ``maxlam`` attempts are used up.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable

import numpy as np

from varpro.linalg import FitState
from varpro.options import VarProOptions
from varpro.status import InfeasibleStepError
from varpro.step import TrustRegionStep


class DampingState(enum.Enum):
    TRY_CURRENT = "try_current"
    TRY_SMALLER = "try_smaller"
    ESCALATE = "escalate"
    ACCEPTED = "accepted"
    FAILED = "failed"


@dataclass
class DampingController:
    """Damping parameter that persists and adapts across outer iterations.

    Attributes:
        lam: Current damping value, always positive
        lamup: Escalation factor
        lamdown: Reduction factor
        maxlam: Escalation attempts per iteration
        state: Where the last ``search`` ended
        attempts: Number of trial steps evaluated by the last ``search``
    """

    lam: float
    lamup: float
    lamdown: float
    maxlam: int
    state: DampingState = field(default=DampingState.TRY_CURRENT)
    attempts: int = 0

    @classmethod
    def from_options(cls, opts: VarProOptions) -> DampingController:
        return cls(
            lam=opts.lambda0,
            lamup=opts.lamup,
            lamdown=opts.lamdown,
            maxlam=opts.maxlam,
        )

    def _trial(
        self,
        step: TrustRegionStep,
        lam: float,
        evaluate: Callable[[np.ndarray], FitState],
    ) -> FitState | None:
        """Evaluate the fit after the step for ``lam``; None if no step exists."""
        self.attempts += 1
        try:
            delta = step.solve(lam)
        except InfeasibleStepError:
            return None
        return evaluate(step.alpha + delta)

    def search(
        self,
        step: TrustRegionStep,
        evaluate: Callable[[np.ndarray], FitState],
        errlast: float,
    ) -> FitState | None:
        """Find a step that lowers the error below ``errlast``.

        Args:
            step: Factored step system at the current iterate
            evaluate: Maps a parameter vector to its FitState
            errlast: Error at the current iterate

        Returns:
            The accepted FitState, or None when every damping value tried
            failed to improve the error (``state`` is then FAILED)
        """
        self.attempts = 0
        self.state = DampingState.TRY_CURRENT
        fit0 = self._trial(step, self.lam, evaluate)

        if fit0 is not None and fit0.err < errlast:
            self.state = DampingState.TRY_SMALLER
            lam1 = self.lam / self.lamdown
            fit1 = self._trial(step, lam1, evaluate)
            self.state = DampingState.ACCEPTED
            if fit1 is not None and fit1.err < fit0.err:
                self.lam = lam1
                return fit1
            return fit0

        self.state = DampingState.ESCALATE
        for _ in range(self.maxlam):
            self.lam *= self.lamup
            fit0 = self._trial(step, self.lam, evaluate)
            if fit0 is not None and fit0.err < errlast:
                self.state = DampingState.ACCEPTED
                return fit0

        self.state = DampingState.FAILED
        return None
