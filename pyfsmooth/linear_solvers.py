from __future__ import annotations

import logging
import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class SolverError(RuntimeError):
    """The weighted least-squares system is singular or produced a non-finite solution."""


def solve_weighted_least_squares(A, w: np.ndarray, b: np.ndarray, *, verbose: bool = False) -> np.ndarray:
    """Minimise sum_i w_i * (A x - b)_i^2.

    Solves the normal equations

        (A^T W A) x = A^T W b

    with W = diag(w), using a sparse LU factorization.

    Parameters
    ----------
    A : (m,n) sparse matrix
    w : (m,) non-negative row weights
    b : (m,) right hand side

    Returns
    -------
    x : (n,) float array

    Raises
    ------
    SolverError
        If the normal matrix is singular or the solution is not finite.
    """
    A = sp.csr_matrix(A, dtype=np.float64)
    w = np.asarray(w, dtype=np.float64).ravel()
    b = np.asarray(b, dtype=np.float64).ravel()
    m, n = A.shape
    if w.shape[0] != m or b.shape[0] != m:
        raise ValueError(f"weights and rhs must have length {m} (rows of A)")
    if np.any(w < 0):
        raise ValueError("weights must be non-negative")
    if n == 0:
        return np.zeros(0, dtype=np.float64)

    At = (A.T @ sp.diags(w, format="csr")).tocsr()
    N = (At @ A).tocsc()
    rhs = At @ b
    if verbose:
        logger.info("WLS: %d rows, %d unknowns, normal matrix nnz=%d", m, n, N.nnz)

    try:
        solver = spla.factorized(N)
    except RuntimeError as e:
        raise SolverError(f"weighted least squares system is singular: {e}") from e

    x = np.asarray(solver(rhs), dtype=np.float64)
    if not np.all(np.isfinite(x)):
        raise SolverError("weighted least squares solve produced non-finite values")
    return x
