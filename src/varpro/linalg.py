"""Rank-truncated projector and the inner linear least-squares solve.

For a fixed parameter vector α the coefficients B solve an ordinary linear
least-squares problem in closed form.  The truncated SVD of Φ(α) is kept
separately; it is only used to project derivative matrices onto the column
space of Φ when building the Jacobian.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import numpy as np
import scipy.linalg as sl

from varpro.basis import Basis, as_basis


@dataclass(frozen=True)
class TruncatedSVD:
    """Economy SVD Φ = U S Vᴴ truncated to the numerical rank.

    Singular values at or below ``m * eps * s[0]`` are discarded.  If every
    singular value is discarded the projector is zero; this is not treated
    as an error but makes the next step unreliable.

    Attributes:
        U: m×r orthonormal basis for the column space of Φ
        s: The r retained singular values, descending
        Vh: r×n conjugate-transposed right singular vectors
    """

    U: np.ndarray
    s: np.ndarray
    Vh: np.ndarray

    @classmethod
    def from_basis(cls, phi: Basis) -> TruncatedSVD:
        phi = as_basis(phi)
        m = phi.shape[0]
        U, s, Vh = sl.svd(phi.dense(), full_matrices=False)
        if s.size == 0:
            irank = 0
        else:
            tolrank = m * np.finfo(s.dtype).eps
            irank = int(np.sum(s > tolrank * s[0]))
        return cls(U=U[:, :irank], s=s[:irank], Vh=Vh[:irank, :])

    @property
    def rank(self) -> int:
        return self.s.size

    def project(self, X: np.ndarray) -> np.ndarray:
        """Orthogonal projection U Uᴴ X onto the truncated column space."""
        return self.U @ (self.U.conj().T @ X)

    def pinv_adjoint(self, X: np.ndarray) -> np.ndarray:
        """Apply (Φ⁺)ᴴ = U S⁻¹ Vᴴ to X (X has n rows)."""
        return self.U @ ((self.Vh @ X) / self.s[:, np.newaxis])


def solve_coefficients(phi: Basis, y: np.ndarray) -> np.ndarray:
    """Solve B = argmin ‖Y − ΦB‖_F on the full, untruncated Φ."""
    phi = as_basis(phi)
    b, _, _, _ = sl.lstsq(phi.dense(), y)
    return b


def fit_error(
    res: np.ndarray, gamma: np.ndarray, alpha: np.ndarray, res_scale: float
) -> float:
    """Relative, regularization-aware error sqrt(‖R‖² + ‖Γα‖²) / ‖Y‖."""
    return float(
        np.sqrt(np.linalg.norm(res) ** 2 + np.linalg.norm(gamma @ alpha) ** 2)
        / res_scale
    )


@dataclass(frozen=True)
class FitState:
    """Everything derived from one parameter vector.

    Attributes:
        alpha: Parameter vector
        phi: Basis matrix Φ(alpha)
        b: Least-squares coefficients for this Φ
        res: Residual Y − ΦB
        err: Relative error including the regularization term
    """

    alpha: np.ndarray
    phi: Basis
    b: np.ndarray
    res: np.ndarray
    err: float


def evaluate_fit(
    alpha: np.ndarray,
    y: np.ndarray,
    t: np.ndarray,
    phi: Callable,
    gamma: np.ndarray,
    res_scale: float,
) -> FitState:
    """Evaluate Φ(α), solve for B, and compute the residual and error."""
    phimat = as_basis(phi(alpha, t))
    if phimat.shape[0] != y.shape[0]:
        raise ValueError(
            f"phi returned {phimat.shape[0]} rows but the data has {y.shape[0]}"
        )
    if not np.all(np.isfinite(phimat.dense())):
        # Overflowing trial steps are rejected through an infinite error
        n = phimat.shape[1]
        dtype = np.result_type(phimat.dtype, y.dtype)
        return FitState(
            alpha=alpha,
            phi=phimat,
            b=np.full((n, y.shape[1]), np.nan, dtype=dtype),
            res=np.full(y.shape, np.nan, dtype=dtype),
            err=np.inf,
        )
    b = solve_coefficients(phimat, y)
    res = y - phimat.dot(b)
    return FitState(
        alpha=alpha,
        phi=phimat,
        b=b,
        res=res,
        err=fit_error(res, gamma, alpha, res_scale),
    )
