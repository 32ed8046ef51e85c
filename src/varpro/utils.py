"""Helpers for comparing fitted parameters against known values."""

import numpy as np
from scipy.optimize import linear_sum_assignment


def match_vectors(found: np.ndarray, target: np.ndarray) -> np.ndarray:
    """Order ``found`` to best match ``target`` entry by entry.

    Fitted exponents come back in arbitrary order.  This solves the
    assignment problem on the pairwise distances |found_i - target_j| so
    that ``found[match_vectors(found, target)]`` lines up with ``target``.

    Args:
        found: Vector of fitted values (length p)
        target: Vector of reference values (length p)

    Returns:
        Index array of length p
    """
    found = np.asarray(found).ravel()
    target = np.asarray(target).ravel()
    if found.size != target.size:
        raise ValueError(
            f"found and target must have the same length, got {found.size} and {target.size}"
        )
    cost = np.abs(target[:, np.newaxis] - found[np.newaxis, :])
    rows, cols = linear_sum_assignment(cost)
    return cols[np.argsort(rows)]


def relative_error(estimate: np.ndarray, truth: np.ndarray) -> float:
    """‖estimate − truth‖ / ‖truth‖ (Frobenius norm for matrices)."""
    return float(np.linalg.norm(np.asarray(estimate) - truth) / np.linalg.norm(truth))
