"""Basis matrices: a storage-independent wrapper and the exponential basis.

User basis functions may return dense arrays or ``scipy.sparse`` matrices.
``as_basis`` wraps either in a ``Basis`` so the solver only ever multiplies
by the matrix or its conjugate transpose and never branches on storage.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
import scipy.sparse as sp


@dataclass(frozen=True)
class Basis:
    """An m×n basis matrix behind a multiply / adjoint-multiply interface."""

    matrix: Any

    @property
    def shape(self) -> tuple[int, int]:
        return self.matrix.shape

    @property
    def dtype(self) -> np.dtype:
        return self.matrix.dtype

    @property
    def is_sparse(self) -> bool:
        return sp.issparse(self.matrix)

    def dot(self, x: np.ndarray) -> np.ndarray:
        """Return Φ @ x as a dense array."""
        return np.asarray(self.matrix @ x)

    def hdot(self, x: np.ndarray) -> np.ndarray:
        """Return Φᴴ @ x as a dense array."""
        return np.asarray(self.matrix.conj().T @ x)

    def dense(self) -> np.ndarray:
        """Return the matrix as a dense 2D array."""
        if self.is_sparse:
            return self.matrix.toarray()
        return np.asarray(self.matrix)


def as_basis(matrix: Any) -> Basis:
    """Wrap a dense array, sparse matrix, or Basis as a 2D Basis."""
    if isinstance(matrix, Basis):
        return matrix
    if not sp.issparse(matrix):
        matrix = np.asarray(matrix)
        if matrix.ndim == 1:
            matrix = matrix[:, np.newaxis]
    if matrix.ndim != 2:
        raise ValueError(f"Basis matrix must be 2D, got shape {matrix.shape}")
    return Basis(matrix)


def exp_basis(alpha: np.ndarray, t: np.ndarray) -> np.ndarray:
    """Exponential basis Φ_ij = exp(α_j t_i).

    Args:
        alpha: Exponents (length p, real or complex)
        t: Sample times (length m)

    Returns:
        m×p matrix
    """
    alpha = np.asarray(alpha).ravel()
    t = np.asarray(t).ravel()
    return np.exp(np.outer(t, alpha))


def exp_basis_derivative(alpha: np.ndarray, t: np.ndarray, i: int) -> sp.csc_matrix:
    """Derivative of ``exp_basis`` with respect to ``alpha[i]``.

    Only column ``i`` depends on ``alpha[i]``, so the result is a sparse m×p
    matrix whose single non-zero column is ``t * exp(alpha[i] * t)``.
    """
    alpha = np.asarray(alpha).ravel()
    t = np.asarray(t).ravel()
    m, p = len(t), len(alpha)
    col = t * np.exp(alpha[i] * t)
    rows = np.arange(m)
    cols = np.full(m, i)
    return sp.csc_matrix((col, (rows, cols)), shape=(m, p))
