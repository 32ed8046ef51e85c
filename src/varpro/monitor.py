"""Iteration history, termination checks, and the result container."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd
from rich.console import Console

from varpro.linalg import FitState
from varpro.options import VarProOptions
from varpro.status import FitStatus


@dataclass
class VarProResult:
    """Results from a variable projection fit.

    Attributes:
        b: n×s coefficient matrix for the best fit
        alpha: Parameter vector for the best fit
        niter: Number of completed iterations
        err: Error per iteration (length maxiter; entries past ``niter``
            stay zero)
        alphas: p×maxiter parameter trajectory (columns past ``niter``
            stay zero)
        status: Outcome of the run (see FitStatus)
        status_message: Human-readable detail when status is not CONVERGED
    """

    b: np.ndarray
    alpha: np.ndarray
    niter: int
    err: np.ndarray
    alphas: np.ndarray
    status: FitStatus = FitStatus.CONVERGED
    status_message: str = ""

    @property
    def converged(self) -> bool:
        return self.status == FitStatus.CONVERGED

    @property
    def imode(self) -> int:
        """Failure mode as an integer code (0, 1, 4 or 8)."""
        return int(self.status)

    @property
    def final_error(self) -> float:
        return float(self.err[self.niter - 1]) if self.niter else float("nan")

    def history_frame(self) -> pd.DataFrame:
        """Error and parameter trajectory of the completed iterations."""
        data = {
            "iteration": np.arange(1, self.niter + 1),
            "err": self.err[: self.niter],
        }
        for i, row in enumerate(self.alphas[:, : self.niter]):
            data[f"alpha_{i}"] = row
        return pd.DataFrame(data)


class ConvergenceMonitor:
    """Owns the iteration history of one run and decides when to stop.

    Checks run once per completed iteration in a fixed priority: no
    direction (signalled through ``fail``), tolerance met, stall, then the
    iteration cap.
    """

    def __init__(self, opts: VarProOptions, console: Console | None = None):
        self.opts = opts
        self.console = console if console is not None else Console()
        self._errors: list[float] = []
        self._alphas: list[np.ndarray] = []
        self.status: FitStatus | None = None
        self.status_message = ""

    @property
    def niter(self) -> int:
        return len(self._errors)

    def _print(self, message: str) -> None:
        if self.opts.ifprint:
            self.console.print(message, markup=False, highlight=False)

    def _append(self, alpha: np.ndarray, err: float) -> None:
        if self.niter >= self.opts.maxiter:
            raise RuntimeError("Iteration history is full")
        self._alphas.append(np.array(alpha, copy=True))
        self._errors.append(err)

    def record(self, alpha: np.ndarray, err: float, lam: float) -> FitStatus | None:
        """Record an accepted iteration and return a status if the run should stop."""
        self._append(alpha, err)
        it = self.niter
        if it % self.opts.ptf == 0:
            self._print(f"step {it} err {err:e} lambda {lam:e}")

        if err < self.opts.tol:
            return self._stop(FitStatus.CONVERGED, "")

        if it > 1:
            err_prev = self._errors[-2]
            if err_prev - err < self.opts.eps_stall * err_prev:
                return self._stop(
                    FitStatus.STALL,
                    f"stall detected: residual reduced by less than "
                    f"{self.opts.eps_stall:e} times residual at previous step. "
                    f"iteration {it}. current residual {err:e}",
                )

        if it >= self.opts.maxiter:
            return self._stop(
                FitStatus.MAX_ITER,
                f"failed to reach tolerance after maxiter = {self.opts.maxiter} "
                f"iterations. current residual {err:e}",
            )
        return None

    def fail(self, alpha: np.ndarray, err: float) -> FitStatus:
        """Record an iteration that found no improving step."""
        self._append(alpha, err)
        return self._stop(
            FitStatus.NO_DIRECTION,
            f"failed to find appropriate step length at iteration {self.niter}. "
            f"current residual {err:e}",
        )

    def _stop(self, status: FitStatus, message: str) -> FitStatus:
        self.status = status
        self.status_message = message
        if message:
            self._print(message)
        return status

    def finish(self, state: FitState) -> VarProResult:
        """Freeze the history into a VarProResult for the final iterate."""
        if self.status is None:
            raise RuntimeError("finish() called before a termination condition")
        maxiter = self.opts.maxiter
        err = np.zeros(maxiter)
        err[: self.niter] = self._errors
        dtype = np.result_type(state.alpha, *self._alphas)
        alphas = np.zeros((state.alpha.size, maxiter), dtype=dtype)
        for i, alpha in enumerate(self._alphas):
            alphas[:, i] = alpha
        return VarProResult(
            b=state.b,
            alpha=state.alpha,
            niter=self.niter,
            err=err,
            alphas=alphas,
            status=self.status,
            status_message=self.status_message,
        )
