import logging

import numpy as np
import pytest
import scipy.sparse as sp

from pyfsmooth.features import FeatureTopologyError, label_features
from pyfsmooth.laplacian import uniform_laplacian
from pyfsmooth.mesh import FeatureMesh, VertexLabel, example_mesh
from pyfsmooth.system import SystemBuilder, build_system, hold_corner, smooth_on_tangent_line


def _ring(n=8):
    return [(i, (i + 1) % n) for i in range(n)]


def _expected_rows(m, labels):
    n_regular_faces = sum(len(m.adj_v2p(v)) for v in range(m.num_verts) if labels[v] == VertexLabel.REGULAR)
    n_feature = int(np.count_nonzero(labels == VertexLabel.FEATURE))
    n_corner = int(np.count_nonzero(labels == VertexLabel.CORNER))
    return 3 * m.num_verts + n_regular_faces + 4 * n_feature + 3 * n_corner


def test_tetrahedron_system_shape():
    m = example_mesh("tetrahedron")
    labels = label_features(m)
    b = build_system(m, labels)
    A, w, rhs = b.to_system()
    # 12 Laplacian rows + 3 faces per vertex
    assert A.shape == (24, 12)
    assert w.shape == (24,)
    assert rhs.shape == (24,)
    assert b.feature_data == {}


def test_fan_row_and_column_counts():
    m = example_mesh("fan", apex=0.4)
    m.mark_edges(_ring())
    labels = label_features(m)
    b = build_system(m, labels)
    A, _w, _rhs = b.to_system()
    assert A.shape == (27 + 8 + 4 * 8, 27 + 8)
    assert A.shape[0] == _expected_rows(m, labels)
    assert sorted(col for _d, col in b.feature_data.values()) == list(range(27, 35))


def test_mixed_labels_row_count():
    m = example_mesh("fan", apex=0.4)
    m.mark_edges([(0, 1), (1, 2), (8, 4), (8, 5), (8, 6)])
    labels = label_features(m)
    assert labels[1] == VertexLabel.FEATURE
    assert labels[8] == VertexLabel.CORNER
    b = build_system(m, labels)
    A, _w, _rhs = b.to_system()
    assert A.shape == (_expected_rows(m, labels), 3 * 9 + 1)


def test_laplacian_block_and_weights():
    m = example_mesh("fan", apex=0.4)
    labels = label_features(m)
    b = build_system(m, labels, w_laplace=0.25, w_regular=2.0)
    A, w, rhs = b.to_system()
    L = uniform_laplacian(m.vertices, m.faces)
    top = A[:27, :27]
    assert abs(top - sp.block_diag([L, L, L])).max() < 1e-12
    assert np.allclose(w[:27], 0.25)
    assert np.allclose(rhs[:27], 0.0)
    assert np.allclose(w[27:], 2.0)


def test_tangent_plane_rows_satisfied_at_current_positions():
    m = example_mesh("fan", apex=0.4)
    labels = label_features(m)
    b = build_system(m, labels)
    A, _w, rhs = b.to_system()
    V = m.vertices
    x = np.concatenate([V[:, 0], V[:, 1], V[:, 2]])
    r = A @ x - rhs
    assert np.allclose(r[27:], 0.0, atol=1e-12)


def test_feature_rows_layout():
    m = example_mesh("fan", apex=0.4)
    m.mark_edges(_ring())
    labels = label_features(m)
    b = build_system(m, labels, w_feature=5.0)
    A, w, rhs = b.to_system()
    A = A.tolil()

    d, col_t = b.feature_data[0]
    assert col_t == 27
    # Vertex 0 is visited first, right after the 27 Laplacian rows
    for axis in range(3):
        r = 27 + axis
        assert A[r, axis * 9] == 1.0
        assert A[r, col_t] == pytest.approx(-d[axis])
        assert w[r] == 5.0
        assert rhs[r] == pytest.approx(m.vert(0)[axis])
    # Regularisation of t
    assert A[30, col_t] == 1.0
    assert w[30] == 1.0
    assert rhs[30] == 0.0


def test_corner_rows():
    m = example_mesh("tetrahedron")
    b = SystemBuilder(n_verts=4)
    hold_corner(b, m, 3, 7.0)
    A, w, rhs = b.to_system()
    assert A.shape == (3, 12)
    assert A[0, 3] == 1.0 and A[1, 7] == 1.0 and A[2, 11] == 1.0
    assert np.allclose(w, 7.0)
    assert np.allclose(rhs, m.vert(3))


def test_columns_are_deterministic():
    m = example_mesh("fan", apex=0.4)
    m.mark_edges(_ring())
    labels = label_features(m)
    b1 = build_system(m, labels)
    b2 = build_system(m, labels)
    assert {v: c for v, (_d, c) in b1.feature_data.items()} == {v: c for v, (_d, c) in b2.feature_data.items()}
    A1, _, _ = b1.to_system()
    A2, _, _ = b2.to_system()
    assert (A1 != A2).nnz == 0


def test_feature_vertex_recorded_once():
    m = example_mesh("fan")
    m.mark_edges(_ring())
    b = SystemBuilder(n_verts=9)
    smooth_on_tangent_line(b, m, 3, 1.0)
    assert b.feature_data[3][1] == 27
    with pytest.raises(ValueError):
        smooth_on_tangent_line(b, m, 3, 1.0)


def test_unknown_label_is_fatal():
    m = example_mesh("tetrahedron")
    labels = np.array([0, 0, 7, 0])
    with pytest.raises(ValueError, match="unknown vertex label"):
        build_system(m, labels)


def test_feature_label_without_two_marked_edges_is_fatal():
    m = example_mesh("fan")
    labels = np.full(9, VertexLabel.REGULAR)
    labels[3] = VertexLabel.FEATURE
    with pytest.raises(FeatureTopologyError):
        build_system(m, labels)


def test_degenerate_normals_warn_but_keep_rows(caplog):
    m = example_mesh("tetrahedron")
    m.set_vert(3, m.vert(0))
    labels = label_features(m)
    with caplog.at_level(logging.WARNING, logger="pyfsmooth.system"):
        b = build_system(m, labels)
    A, _w, _rhs = b.to_system()
    assert A.shape == (24, 12)
    # Two collapsed faces, each seen from its three corners
    assert len(b.warnings) == 6
    assert any("zero length face normal" in r.getMessage() for r in caplog.records)


def test_degenerate_tangent_warns_but_keeps_rows():
    m = example_mesh("fan")
    m.mark_edges(_ring())
    m.set_vert(2, m.vert(0))
    labels = label_features(m)
    b = build_system(m, labels)
    A, _w, _rhs = b.to_system()
    assert A.shape[0] == _expected_rows(m, labels)
    assert any("zero length tangent" in msg for msg in b.warnings)


def test_build_system_secure_cotangent():
    # Obtuse angle at vertex 2, opposite edge (0,1)
    m = FeatureMesh([[0.0, 0.0, 0.0], [2.0, 0.0, 0.0], [1.0, 0.1, 0.0]], [[0, 1, 2]])
    A, _w, _b = build_system(m, laplacian_mode="cotangent").to_system()
    As, _w, _b = build_system(m, laplacian_mode="cotangent", laplacian_secure=True).to_system()
    assert A.shape == As.shape
    assert A[0, 1] > 0
    assert As[0, 1] == 0.0
