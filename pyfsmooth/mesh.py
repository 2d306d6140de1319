"""
Feature-aware mesh container
"""

import logging
from enum import IntEnum
from typing import Iterable, Optional

import numpy as np
import trimesh

# Module-level logger
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class VertexLabel(IntEnum):
    """Role of a vertex during feature-preserving smoothing."""

    REGULAR = 0
    FEATURE = 1
    CORNER = 2


def example_mesh(
    kind: str = "fan",
    *,
    # Fan params
    apex: float = 0.0,
    size: float = 2.0,
    # Cylinder params
    radius: float = 0.5,
    height: float = 2.0,
    sections: int | None = 32,
) -> "FeatureMesh":
    """Create a small demo mesh with no marked edges.

    Parameters
    ----------
    kind : {"fan", "tetrahedron", "cube", "cylinder"}
        Type of mesh to generate. Default "fan".
    apex : float
        Height of the centre vertex of the fan above the z=0 plane. Default 0.0.
    size : float
        Side length of the fan square. Default 2.0.
    radius, height, sections : float, float, int or None
        Cylinder parameters (when kind="cylinder").

    Returns
    -------
    FeatureMesh

    Notes
    -----
    The fan is a planar square whose boundary is a ring of 8 vertices
    (ids 0..7, counter-clockwise starting at the origin corner) connected to
    a single centre vertex (id 8) by 8 triangles.

    Examples
    --------
    >>> m = example_mesh("fan", apex=0.3)
    >>> m.mark_edges([(i, (i + 1) % 8) for i in range(8)])
    """
    k = (kind or "fan").lower()
    if k == "fan":
        s = float(size)
        h = 0.5 * s
        ring = np.array(
            [
                [0.0, 0.0, 0.0],
                [h, 0.0, 0.0],
                [s, 0.0, 0.0],
                [s, h, 0.0],
                [s, s, 0.0],
                [h, s, 0.0],
                [0.0, s, 0.0],
                [0.0, h, 0.0],
            ],
            dtype=float,
        )
        V = np.vstack([ring, [[h, h, float(apex)]]])
        F = np.array([[i, (i + 1) % 8, 8] for i in range(8)], dtype=np.int64)
        return FeatureMesh(V, F)
    elif k == "tetrahedron":
        V = np.array(
            [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]],
            dtype=float,
        )
        F = np.array([[0, 2, 1], [0, 1, 3], [0, 3, 2], [1, 2, 3]], dtype=np.int64)
        return FeatureMesh(V, F)
    elif k == "cube":
        return FeatureMesh.from_trimesh(trimesh.creation.box(extents=(1.0, 1.0, 1.0)))
    elif k == "cylinder":
        return FeatureMesh.from_trimesh(
            trimesh.creation.cylinder(
                radius=float(radius),
                height=float(height),
                sections=None if sections is None else int(sections),
            )
        )
    else:
        raise ValueError("example_mesh kind must be 'fan', 'tetrahedron', 'cube' or 'cylinder'")


class FeatureMesh:
    """
    Triangle mesh with per-edge feature marks and per-vertex labels.

    Connectivity is fixed at construction; only vertex positions change.
    The underlying ``trimesh.Trimesh`` is built with ``process=False`` so
    vertex and face ids are never renumbered.
    """

    def __init__(
        self,
        vertices: np.ndarray,
        faces: np.ndarray,
        marked_edges: Optional[Iterable[tuple[int, int]]] = None,
    ):
        V = np.asarray(vertices, dtype=np.float64)
        F = np.asarray(faces, dtype=np.int64)
        if V.ndim != 2 or V.shape[1] != 3:
            raise ValueError("vertices must have shape (n,3)")
        if F.size == 0:
            F = F.reshape(0, 3)
        if F.ndim != 2 or F.shape[1] != 3:
            raise ValueError("faces must have shape (m,3)")
        if F.size and (F.min() < 0 or F.max() >= V.shape[0]):
            raise ValueError("faces reference vertex ids out of range")

        self.mesh = trimesh.Trimesh(vertices=V.copy(), faces=F, process=False)
        self._build_adjacency()

        self.edge_marked = np.zeros(len(self.edges), dtype=bool)
        self.labels = np.full(self.num_verts, VertexLabel.REGULAR, dtype=np.int64)
        if marked_edges is not None:
            self.mark_edges(marked_edges)

    # =================================================================
    # CONSTRUCTION AND I/O
    # =================================================================

    @classmethod
    def from_trimesh(cls, mesh: trimesh.Trimesh, marked_edges=None) -> "FeatureMesh":
        if not isinstance(mesh, trimesh.Trimesh):
            raise TypeError("from_trimesh expects a trimesh.Trimesh")
        return cls(np.asarray(mesh.vertices), np.asarray(mesh.faces), marked_edges)

    @classmethod
    def load(cls, filepath: str, file_format: Optional[str] = None) -> "FeatureMesh":
        """
        Load a mesh from file.

        Args:
            filepath: Path to mesh file
            file_format: Optional format specification (auto-detected if None)

        Returns:
            FeatureMesh with no marked edges
        """
        try:
            if file_format:
                mesh = trimesh.load(filepath, file_type=file_format, process=False)
            else:
                mesh = trimesh.load(filepath, process=False)
        except Exception as e:
            raise ValueError(f"Failed to load mesh from {filepath}: {str(e)}") from e

        # Ensure we have a single mesh
        if isinstance(mesh, trimesh.Scene):
            geometries = list(mesh.geometry.values())
            if not geometries:
                raise ValueError("No geometry found in mesh scene")
            mesh = geometries[0]

        if not isinstance(mesh, trimesh.Trimesh):
            raise ValueError(f"Loaded object is not a mesh: {type(mesh)}")

        logger.info("Loaded mesh: %d vertices, %d faces", len(mesh.vertices), len(mesh.faces))
        return cls.from_trimesh(mesh)

    def export(self, filepath, file_format="obj"):
        self.mesh.export(filepath, file_type=file_format)

    def copy(self) -> "FeatureMesh":
        other = FeatureMesh(self.vertices, self.faces)
        other.edge_marked = self.edge_marked.copy()
        other.labels = self.labels.copy()
        return other

    def to_trimesh(self) -> trimesh.Trimesh:
        return self.mesh.copy()

    # =================================================================
    # ELEMENT ACCESS
    # =================================================================

    @property
    def num_verts(self) -> int:
        return int(len(self.mesh.vertices))

    @property
    def num_edges(self) -> int:
        return int(len(self.edges))

    @property
    def num_faces(self) -> int:
        return int(len(self.mesh.faces))

    @property
    def vertices(self) -> np.ndarray:
        return np.array(self.mesh.vertices, dtype=np.float64)

    @vertices.setter
    def vertices(self, V: np.ndarray) -> None:
        V = np.asarray(V, dtype=np.float64)
        if V.shape != (self.num_verts, 3):
            raise ValueError(f"vertices must have shape ({self.num_verts},3)")
        # Assignment invalidates trimesh's cached normals
        self.mesh.vertices = V.copy()

    @property
    def faces(self) -> np.ndarray:
        return np.asarray(self.mesh.faces, dtype=np.int64)

    @property
    def face_normals(self) -> np.ndarray:
        """Unit face normals for the current positions; degenerate faces get [0,0,0]."""
        if self.num_faces == 0:
            return np.zeros((0, 3), dtype=np.float64)
        return np.asarray(self.mesh.face_normals, dtype=np.float64)

    def vert(self, vid: int) -> np.ndarray:
        return np.array(self.mesh.vertices[vid], dtype=np.float64)

    def set_vert(self, vid: int, p) -> None:
        V = self.vertices
        V[vid] = np.asarray(p, dtype=np.float64)
        self.vertices = V

    # =================================================================
    # ADJACENCY
    # =================================================================

    def _build_adjacency(self) -> None:
        n = self.num_verts
        F = self.faces
        if len(F):
            self.edges = np.asarray(self.mesh.edges_unique, dtype=np.int64)
        else:
            self.edges = np.zeros((0, 2), dtype=np.int64)
        self._edge_index = {(int(a), int(b)): eid for eid, (a, b) in enumerate(self.edges)}

        v2e: list[list[int]] = [[] for _ in range(n)]
        for eid, (a, b) in enumerate(self.edges):
            v2e[int(a)].append(eid)
            v2e[int(b)].append(eid)
        self._v2e = [np.asarray(e, dtype=np.int64) for e in v2e]

        v2p: list[list[int]] = [[] for _ in range(n)]
        for pid, face in enumerate(F):
            for vid in face:
                v2p[int(vid)].append(pid)
        self._v2p = [np.asarray(p, dtype=np.int64) for p in v2p]

    def adj_v2e(self, vid: int) -> np.ndarray:
        """Ids of the edges incident to vertex ``vid``."""
        return self._v2e[vid]

    def adj_v2p(self, vid: int) -> np.ndarray:
        """Ids of the faces incident to vertex ``vid``."""
        return self._v2p[vid]

    def vert_opposite_to(self, eid: int, vid: int) -> int:
        a, b = (int(x) for x in self.edges[eid])
        if vid == a:
            return b
        if vid == b:
            return a
        raise ValueError(f"vertex {vid} is not an endpoint of edge {eid}")

    def edge_id(self, u: int, v: int) -> int:
        key = (min(int(u), int(v)), max(int(u), int(v)))
        try:
            return self._edge_index[key]
        except KeyError:
            raise ValueError(f"({u}, {v}) is not an edge of the mesh") from None

    # =================================================================
    # FEATURE MARKS
    # =================================================================

    def mark_edges(self, pairs: Iterable[tuple[int, int]], marked: bool = True) -> None:
        """Set the feature flag on the edges given as vertex pairs."""
        # All pairs are resolved before any flag changes
        eids = [self.edge_id(u, v) for u, v in pairs]
        self.edge_marked[np.asarray(eids, dtype=np.int64)] = bool(marked)

    def clear_marks(self) -> None:
        self.edge_marked[:] = False

    def marked_edges(self) -> np.ndarray:
        """(k,2) vertex pairs of the marked edges."""
        return self.edges[self.edge_marked]

    def marked_segments(self) -> np.ndarray:
        """(k,2,3) endpoint coordinates of the marked edges at the current positions."""
        E = self.marked_edges()
        if len(E) == 0:
            return np.zeros((0, 2, 3), dtype=np.float64)
        return self.vertices[E]

    def marked_count(self) -> np.ndarray:
        """Number of marked edges incident to each vertex."""
        counts = np.zeros(self.num_verts, dtype=np.int64)
        E = self.marked_edges()
        np.add.at(counts, E[:, 0], 1)
        np.add.at(counts, E[:, 1], 1)
        return counts

    def feature_summary(self) -> dict:
        """Counts of marked edges and of vertices per label, for diagnostics."""
        labels = np.asarray(self.labels)
        return {
            "vertex_count": self.num_verts,
            "face_count": self.num_faces,
            "edge_count": self.num_edges,
            "marked_edge_count": int(np.count_nonzero(self.edge_marked)),
            "regular_count": int(np.count_nonzero(labels == VertexLabel.REGULAR)),
            "feature_count": int(np.count_nonzero(labels == VertexLabel.FEATURE)),
            "corner_count": int(np.count_nonzero(labels == VertexLabel.CORNER)),
        }
