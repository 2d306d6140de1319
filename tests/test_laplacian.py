import numpy as np
import pytest
import scipy.sparse as sp
import trimesh as tm

from pyfsmooth.laplacian import (
    cotangent_laplacian,
    laplacian_matrix,
    laplacian_matrix_entries,
    mean_value_laplacian,
    uniform_laplacian,
)


def test_laplacian_basic_properties():
    # Create a simple sphere mesh
    mesh = tm.primitives.Sphere(radius=1.0, subdivisions=2)
    V = np.asarray(mesh.vertices)
    F = np.asarray(mesh.faces)

    L = cotangent_laplacian(V, F)
    assert sp.isspmatrix_csr(L)

    # Row-sum should be ~0
    rowsum = np.array(L.sum(axis=1)).ravel()
    assert np.allclose(rowsum, 0.0, atol=1e-8)

    # Symmetry
    assert abs(L - L.T).max() < 1e-12


def test_mean_value_laplacian_properties():
    mesh = tm.primitives.Sphere(radius=1.0, subdivisions=2)
    V = np.asarray(mesh.vertices)
    F = np.asarray(mesh.faces)

    L = mean_value_laplacian(V, F)
    # CSR and symmetric
    assert sp.isspmatrix_csr(L)
    assert abs(L - L.T).max() < 1e-12
    # Row-sum should be ~0
    rowsum = np.array(L.sum(axis=1)).ravel()
    assert np.allclose(rowsum, 0.0, atol=1e-8)


def test_uniform_laplacian_valence():
    mesh = tm.primitives.Sphere(radius=1.0, subdivisions=1)
    V = np.asarray(mesh.vertices)
    F = np.asarray(mesh.faces)

    L = uniform_laplacian(V, F)
    assert sp.isspmatrix_csr(L)
    assert (L - L.T).nnz == 0
    assert np.allclose(np.array(L.sum(axis=1)).ravel(), 0.0)

    # Diagonal equals vertex valence, off-diagonals are -1 on edges
    valence = np.array([len(nb) for nb in mesh.vertex_neighbors])
    assert np.array_equal(L.diagonal(), valence)
    e = mesh.edges_unique[0]
    assert L[e[0], e[1]] == -1.0


def test_laplacian_matrix_unknown_mode():
    mesh = tm.primitives.Sphere(radius=1.0, subdivisions=1)
    with pytest.raises(ValueError):
        laplacian_matrix(np.asarray(mesh.vertices), np.asarray(mesh.faces), "harmonic")


@pytest.mark.parametrize("mode", ["uniform", "cotangent", "mean_value"])
def test_laplacian_entries_are_block_diagonal(mode):
    mesh = tm.primitives.Sphere(radius=1.0, subdivisions=1)
    V = np.asarray(mesh.vertices)
    F = np.asarray(mesh.faces)
    n = V.shape[0]

    rows, cols, vals = laplacian_matrix_entries(V, F, mode, 3)
    assert rows.shape == cols.shape == vals.shape
    B = sp.coo_matrix((vals, (rows, cols)), shape=(3 * n, 3 * n)).tocsr()

    L = laplacian_matrix(V, F, mode)
    expected = sp.block_diag([L, L, L], format="csr")
    assert abs(B - expected).max() < 1e-12

    # No coupling between coordinate axes
    assert np.all(rows // n == cols // n)
