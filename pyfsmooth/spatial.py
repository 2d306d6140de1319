"""Nearest-point queries used to reproject smoothed vertices.

Both indices are built once and are read-only afterwards.
"""
from __future__ import annotations

import logging
import numpy as np
import trimesh as tm
from scipy.spatial import cKDTree

from .mesh import FeatureMesh

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def closest_points_on_segments(P: np.ndarray, A: np.ndarray, B: np.ndarray) -> np.ndarray:
    """Closest point to P[i] on segment (A[i], B[i]) for each row i.

    Zero-length segments collapse to their first endpoint.
    """
    AB = B - A
    denom = np.einsum("ij,ij->i", AB, AB)
    t = np.einsum("ij,ij->i", P - A, AB) / np.where(denom > 0, denom, 1.0)
    t = np.clip(np.where(denom > 0, t, 0.0), 0.0, 1.0)
    return A + t[:, None] * AB


class SurfaceIndex:
    """Closest point on the faces of a reference mesh."""

    def __init__(self, mesh):
        if isinstance(mesh, FeatureMesh):
            mesh = mesh.to_trimesh()
        if not isinstance(mesh, tm.Trimesh):
            raise TypeError("SurfaceIndex expects a FeatureMesh or trimesh.Trimesh")
        if len(mesh.faces) == 0:
            raise ValueError("SurfaceIndex needs a mesh with at least one face")
        self.mesh = mesh
        self.query = mesh.nearest

    def closest_points(self, P: np.ndarray) -> np.ndarray:
        P = np.atleast_2d(np.asarray(P, dtype=np.float64))
        if P.shape[0] == 0:
            return P.reshape(0, 3)
        closest, _dist, _tid = self.query.on_surface(P)
        return np.asarray(closest, dtype=np.float64)

    def closest_point(self, p) -> np.ndarray:
        return self.closest_points(np.asarray(p, dtype=np.float64).reshape(1, 3))[0]


class SegmentIndex:
    """Closest point on a set of 3D segments (the reference feature curves).

    A KD-tree over segment midpoints gives an upper bound on the distance;
    every segment whose midpoint lies within that bound plus the longest
    half-length is then tested exactly.
    """

    def __init__(self, segments: np.ndarray):
        S = np.asarray(segments, dtype=np.float64)
        if S.size == 0:
            S = S.reshape(0, 2, 3)
        if S.ndim != 3 or S.shape[1:] != (2, 3):
            raise ValueError("segments must have shape (m,2,3)")
        self.A = S[:, 0].copy()
        self.B = S[:, 1].copy()
        self.mid = 0.5 * (self.A + self.B)
        half = 0.5 * np.linalg.norm(self.B - self.A, axis=1)
        self.max_half = float(half.max()) if len(half) else 0.0
        self.tree = cKDTree(self.mid) if len(self.mid) else None

    def __len__(self) -> int:
        return int(self.A.shape[0])

    def closest_point(self, p) -> np.ndarray:
        if self.tree is None:
            raise ValueError("SegmentIndex is empty")
        p = np.asarray(p, dtype=np.float64).reshape(3)

        _d, i0 = self.tree.query(p)
        q0 = closest_points_on_segments(p[None, :], self.A[i0:i0 + 1], self.B[i0:i0 + 1])[0]
        bound = float(np.linalg.norm(q0 - p)) + self.max_half
        cand = np.asarray(self.tree.query_ball_point(p, bound * (1.0 + 1e-12) + 1e-15), dtype=np.int64)
        if cand.size == 0:
            return q0
        P = np.broadcast_to(p, (cand.size, 3))
        Q = closest_points_on_segments(P, self.A[cand], self.B[cand])
        d2 = np.einsum("ij,ij->i", Q - P, Q - P)
        return Q[int(np.argmin(d2))]

    def closest_points(self, P: np.ndarray) -> np.ndarray:
        P = np.atleast_2d(np.asarray(P, dtype=np.float64))
        out = np.empty_like(P)
        for i, p in enumerate(P):
            out[i] = self.closest_point(p)
        return out
