from __future__ import annotations

import logging
import numpy as np

from .mesh import FeatureMesh, VertexLabel

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class FeatureTopologyError(ValueError):
    """A FEATURE vertex does not have exactly two marked neighbours."""


def label_features(mesh: FeatureMesh) -> np.ndarray:
    """Classify every vertex by the number of marked edges incident to it.

    0 marked edges -> REGULAR, exactly 2 -> FEATURE, anything else (a line
    endpoint, a branch point) -> CORNER. The labels are stored on
    ``mesh.labels`` and also returned.
    """
    counts = mesh.marked_count()
    labels = np.full(mesh.num_verts, VertexLabel.CORNER, dtype=np.int64)
    labels[counts == 0] = VertexLabel.REGULAR
    labels[counts == 2] = VertexLabel.FEATURE
    mesh.labels = labels
    return labels


def allocate_feature_columns(labels: np.ndarray, n_verts: int) -> dict[int, int]:
    """Assign one auxiliary column per FEATURE vertex.

    FEATURE vertices are visited in increasing id order and receive the
    columns ``3*n_verts, 3*n_verts + 1, ...``, so the mapping only depends
    on the labels.
    """
    labels = np.asarray(labels)
    if labels.shape[0] != n_verts:
        raise ValueError("labels length must match n_verts")
    fids = np.flatnonzero(labels == VertexLabel.FEATURE)
    base = 3 * int(n_verts)
    return {int(vid): base + k for k, vid in enumerate(fids)}


def feature_neighbors(mesh: FeatureMesh, vid: int) -> list[int]:
    """Vertices connected to ``vid`` through marked edges, in edge order."""
    return [mesh.vert_opposite_to(int(eid), vid) for eid in mesh.adj_v2e(vid) if mesh.edge_marked[eid]]


def feature_direction(mesh: FeatureMesh, vid: int, V: np.ndarray | None = None) -> tuple[np.ndarray, bool]:
    """Unit tangent of the feature line through ``vid``.

    The tangent is the normalised difference of the two marked neighbours.
    Returns ``(direction, degenerate)``; when the neighbours coincide the
    direction is the zero vector and ``degenerate`` is True.

    Raises
    ------
    FeatureTopologyError
        If ``vid`` does not have exactly two marked neighbours.
    """
    nbrs = feature_neighbors(mesh, vid)
    if len(nbrs) != 2:
        raise FeatureTopologyError(
            f"feature vertex {vid} has {len(nbrs)} marked neighbours, expected exactly 2"
        )
    if V is None:
        V = mesh.vertices
    d = V[nbrs[0]] - V[nbrs[1]]
    norm = float(np.linalg.norm(d))
    if norm == 0.0:
        return np.zeros(3, dtype=np.float64), True
    return d / norm, False
