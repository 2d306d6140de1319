from __future__ import annotations

import logging
import numpy as np
import scipy.sparse as sp

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

LAPLACIAN_MODES = ("uniform", "cotangent", "mean_value")


def _edge_lengths(V: np.ndarray, F: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    # edge lengths opposite to vertices 0,1,2
    a = np.linalg.norm(V[F[:, 1]] - V[F[:, 2]], axis=1)
    b = np.linalg.norm(V[F[:, 2]] - V[F[:, 0]], axis=1)
    c = np.linalg.norm(V[F[:, 0]] - V[F[:, 1]], axis=1)
    return a, b, c


def _cot_angles_from_edges(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    # Heron's formula for area
    s = 0.5 * (a + b + c)
    area = np.sqrt(np.maximum(s * (s - a) * (s - b) * (s - c), 1e-32))
    # cot(alpha) opposite edge a, etc. Using 4A in denominator (since |u x v| = 2A)
    cot_alpha = (b * b + c * c - a * a) / (4.0 * area)
    cot_beta = (c * c + a * a - b * b) / (4.0 * area)
    cot_gamma = (a * a + b * b - c * c) / (4.0 * area)
    return cot_alpha, cot_beta, cot_gamma


def _angles_from_edges(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Return angles at the triangle vertices given opposite edge lengths.

    For a triangle with vertex indices (i0, i1, i2), we define:
    - a opposite i0 (edge length |v1-v2|)
    - b opposite i1 (edge length |v2-v0|)
    - c opposite i2 (edge length |v0-v1|)
    Returns (alpha, beta, gamma) corresponding to angles at (i0,i1,i2).
    """
    def acos_clipped(x: np.ndarray) -> np.ndarray:
        return np.arccos(np.clip(x, -1.0, 1.0))

    eps = 1e-16
    alpha = acos_clipped((b * b + c * c - a * a) / np.maximum(2.0 * b * c, eps))
    beta = acos_clipped((c * c + a * a - b * b) / np.maximum(2.0 * c * a, eps))
    gamma = acos_clipped((a * a + b * b - c * c) / np.maximum(2.0 * a * b, eps))
    return alpha, beta, gamma


def _assemble_from_weights(I: list, J: list, W: list, n: int) -> sp.csr_matrix:
    # Off-diagonal -w_ij, diagonal set so that rows sum to zero
    Wmat = sp.coo_matrix((np.asarray(W, dtype=float), (np.asarray(I, dtype=np.int64), np.asarray(J, dtype=np.int64))), shape=(n, n)).tocsr()
    Wsym = 0.5 * (Wmat + Wmat.T)
    L = -Wsym
    diag = -np.array(L.sum(axis=1)).ravel()
    L = L + sp.diags(diag, format="csr")
    return L.tocsr()


def uniform_laplacian(V: np.ndarray, F: np.ndarray, *, verbose: bool = False) -> sp.csr_matrix:
    """Graph (umbrella) Laplacian: L(i,j) = -1 for every mesh edge, L(i,i) = valence(i)."""
    n = V.shape[0]
    if verbose:
        logger.info("Building uniform Laplacian for %d vertices, %d faces", n, F.shape[0])
    if F.shape[0] == 0:
        return sp.csr_matrix((n, n), dtype=float)

    # Each undirected edge only once, regardless of how many faces share it
    E = np.concatenate([F[:, [0, 1]], F[:, [1, 2]], F[:, [2, 0]]], axis=0)
    E = np.unique(np.sort(E, axis=1), axis=0)
    I = np.concatenate([E[:, 0], E[:, 1]])
    J = np.concatenate([E[:, 1], E[:, 0]])
    A = sp.coo_matrix((np.ones(I.shape[0], dtype=float), (I, J)), shape=(n, n)).tocsr()
    deg = np.array(A.sum(axis=1)).ravel()
    L = sp.diags(deg, format="csr") - A
    if verbose:
        logger.info("Uniform Laplacian built: nnz=%d", L.nnz)
    return L.tocsr()


def cotangent_laplacian(V: np.ndarray, F: np.ndarray, *, secure: bool = False, verbose: bool = False) -> sp.csr_matrix:
    """Build symmetric cotangent Laplacian L for a triangle mesh.

    L(i,i) = -sum_{j!=i} L(i,j)
    L(i,j) = -(cot alpha + cot beta)/2 for edge (i,j).

    Parameters
    ----------
    V : (n,3) float array
    F : (m,3) int array (triangles)
    secure : bool, default False
        Clamp negative cotangent weights (obtuse triangles) to zero so that
        all off-diagonal entries are non-positive.

    Returns
    -------
    L : (n,n) csr_matrix
    """
    n = V.shape[0]
    if verbose:
        logger.info("Building cotangent Laplacian for %d vertices, %d faces", n, F.shape[0])
    a, b, c = _edge_lengths(V, F)
    cot_a, cot_b, cot_c = _cot_angles_from_edges(a, b, c)
    if secure:
        cot_a = np.maximum(cot_a, 0.0)
        cot_b = np.maximum(cot_b, 0.0)
        cot_c = np.maximum(cot_c, 0.0)

    I = []
    J = []
    W = []

    i0, i1, i2 = F[:, 0], F[:, 1], F[:, 2]

    for (ii, jj, w) in [
        (i1, i2, cot_a),  # opposite i0
        (i2, i0, cot_b),  # opposite i1
        (i0, i1, cot_c),  # opposite i2
    ]:
        I.extend(ii)
        J.extend(jj)
        W.extend(w)
        I.extend(jj)
        J.extend(ii)
        W.extend(w)

    C = sp.coo_matrix((np.array(W, dtype=float), (np.array(I, dtype=np.int64), np.array(J, dtype=np.int64))), shape=(n, n)).tocsr()

    L = -0.5 * C
    diag = -np.array(L.sum(axis=1)).ravel()
    L = L + sp.diags(diag, format="csr")
    if verbose:
        logger.info("Laplacian built: nnz=%d", L.nnz)
    return L.tocsr()


def mean_value_laplacian(V: np.ndarray, F: np.ndarray, *, verbose: bool = False) -> sp.csr_matrix:
    """Build symmetric mean value Laplacian L for a triangle mesh.

    Based on Floater (2003). For an interior edge (i,j) shared by two triangles,
    the weight is w_ij = sum_t tan(theta_t/2) / ||vi - vj||, where theta_t is the
    angle opposite the edge in triangle t. We accumulate contributions per triangle
    and symmetrize. Diagonal is set s.t. row sums are zero.
    """
    n = V.shape[0]
    if verbose:
        logger.info("Building mean value Laplacian for %d vertices, %d faces", n, F.shape[0])

    a, b, c = _edge_lengths(V, F)
    alpha, beta, gamma = _angles_from_edges(a, b, c)

    i0, i1, i2 = F[:, 0], F[:, 1], F[:, 2]

    # a, b, c are exactly the lengths of edges (i1,i2), (i2,i0), (i0,i1)
    eps = 1e-16
    w_12 = np.tan(alpha / 2.0) / np.maximum(a, eps)
    w_20 = np.tan(beta / 2.0) / np.maximum(b, eps)
    w_01 = np.tan(gamma / 2.0) / np.maximum(c, eps)

    I: list[int] = []
    J: list[int] = []
    W: list[float] = []

    def add_edge(ii: np.ndarray, jj: np.ndarray, ww: np.ndarray) -> None:
        I.extend(ii)
        J.extend(jj)
        W.extend(ww)
        I.extend(jj)
        J.extend(ii)
        W.extend(ww)

    add_edge(i1, i2, w_12)
    add_edge(i2, i0, w_20)
    add_edge(i0, i1, w_01)

    L = _assemble_from_weights(I, J, W, n)
    if verbose:
        logger.info("Mean value Laplacian built: nnz=%d", L.nnz)
    return L


def laplacian_matrix(V: np.ndarray, F: np.ndarray, mode: str = "uniform", *, secure: bool = False, verbose: bool = False) -> sp.csr_matrix:
    """Return the (n,n) Laplacian selected by ``mode`` ("uniform", "cotangent" or "mean_value").

    ``secure`` only affects the cotangent Laplacian (negative weights clamped to zero).
    """
    if mode == "uniform":
        return uniform_laplacian(V, F, verbose=verbose)
    elif mode == "cotangent":
        return cotangent_laplacian(V, F, secure=secure, verbose=verbose)
    elif mode == "mean_value":
        return mean_value_laplacian(V, F, verbose=verbose)
    raise ValueError(f"Unknown laplacian mode: {mode}")


def laplacian_matrix_entries(
    V: np.ndarray,
    F: np.ndarray,
    mode: str = "uniform",
    n_blocks: int = 3,
    *,
    secure: bool = False,
    verbose: bool = False,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Sparse entries of a block-diagonal Laplacian, one block per coordinate axis.

    Block ``b`` occupies rows and columns ``[b*n, (b+1)*n)``, so with
    ``n_blocks=3`` the x, y and z coordinates of all vertices are smoothed
    independently and never coupled across axes.

    Returns
    -------
    rows, cols, vals : 1-D arrays of equal length
        Triplets describing an ``(n_blocks*n, n_blocks*n)`` matrix.
    """
    if n_blocks < 1:
        raise ValueError("n_blocks must be >= 1")
    n = V.shape[0]
    L = laplacian_matrix(V, F, mode, secure=secure, verbose=verbose).tocoo()
    offsets = np.repeat(np.arange(n_blocks, dtype=np.int64) * n, L.nnz)
    rows = np.tile(L.row.astype(np.int64), n_blocks) + offsets
    cols = np.tile(L.col.astype(np.int64), n_blocks) + offsets
    vals = np.tile(L.data.astype(float), n_blocks)
    return rows, cols, vals
