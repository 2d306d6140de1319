from __future__ import annotations

from dataclasses import dataclass, field

import logging
import numpy as np
import scipy.sparse as sp

from .features import allocate_feature_columns, feature_direction
from .laplacian import laplacian_matrix_entries
from .mesh import FeatureMesh, VertexLabel

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass
class SystemBuilder:
    """Accumulates the rows of one weighted least-squares system.

    Unknowns are laid out as all x coordinates, then all y, then all z,
    followed by one scalar per FEATURE vertex (its offset along the
    feature tangent). ``rows``/``cols``/``vals`` are parallel triplet
    lists; ``w`` and ``rhs`` hold one value per row.
    """

    n_verts: int
    rows: list = field(default_factory=list)
    cols: list = field(default_factory=list)
    vals: list = field(default_factory=list)
    w: list = field(default_factory=list)
    rhs: list = field(default_factory=list)
    row: int = 0
    feature_data: dict = field(default_factory=dict)  # vid -> (dir, col_t)
    warnings: list = field(default_factory=list)

    def cols_xyz(self, vid: int) -> tuple[int, int, int]:
        nv = self.n_verts
        return vid, nv + vid, 2 * nv + vid

    def add_entry(self, row: int, col: int, value: float) -> None:
        self.rows.append(int(row))
        self.cols.append(int(col))
        self.vals.append(float(value))

    def add_row(self, weight: float, rhs: float) -> int:
        """Close the current row; returns its index."""
        r = self.row
        self.w.append(float(weight))
        self.rhs.append(float(rhs))
        self.row += 1
        return r

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    @property
    def n_rows(self) -> int:
        return self.row

    @property
    def n_cols(self) -> int:
        return 3 * self.n_verts + len(self.feature_data)

    def to_system(self) -> tuple[sp.csr_matrix, np.ndarray, np.ndarray]:
        """Return ``(A, w, b)`` with A of shape (n_rows, n_cols); duplicate entries are summed."""
        if len(self.w) != self.row or len(self.rhs) != self.row:
            raise ValueError("weights and right hand side must hold one value per row")
        rows = np.asarray(self.rows, dtype=np.int64)
        cols = np.asarray(self.cols, dtype=np.int64)
        vals = np.asarray(self.vals, dtype=np.float64)
        if rows.size and (rows.max() >= self.n_rows or cols.max() >= self.n_cols):
            raise ValueError("system entry outside of the (rows x cols) range")
        A = sp.coo_matrix((vals, (rows, cols)), shape=(self.n_rows, self.n_cols)).tocsr()
        return A, np.asarray(self.w, dtype=np.float64), np.asarray(self.rhs, dtype=np.float64)


def laplacian_term(
    builder: SystemBuilder,
    mesh: FeatureMesh,
    mode: str,
    weight: float,
    V: np.ndarray | None = None,
    *,
    secure: bool = False,
) -> None:
    """Append the 3*|V| rows of the per-axis Laplacian, all with target 0."""
    if V is None:
        V = mesh.vertices
    L_rows, L_cols, L_vals = laplacian_matrix_entries(V, mesh.faces, mode, 3, secure=secure)
    offset = builder.row
    builder.rows.extend((L_rows + offset).tolist())
    builder.cols.extend(L_cols.tolist())
    builder.vals.extend(L_vals.tolist())
    extra_rows = 3 * mesh.num_verts
    builder.w.extend([float(weight)] * extra_rows)
    builder.rhs.extend([0.0] * extra_rows)
    builder.row += extra_rows


def smooth_on_tangent_space(
    builder: SystemBuilder,
    mesh: FeatureMesh,
    vid: int,
    weight: float,
    V: np.ndarray | None = None,
    normals: np.ndarray | None = None,
) -> None:
    """Keep a REGULAR vertex on the tangent planes of its incident faces.

    One row ``n . p_new = n . p`` per incident face. Face orientation is not
    assumed to be consistent, so face normals are used instead of a vertex
    normal. High valence vertices therefore get more rows than low valence ones.
    """
    if V is None:
        V = mesh.vertices
    if normals is None:
        normals = mesh.face_normals
    col_x, col_y, col_z = builder.cols_xyz(vid)
    p = V[vid]
    for pid in mesh.adj_v2p(vid):
        n = normals[pid]
        if float(n @ n) == 0.0:
            builder.warn(f"zero length face normal (face {int(pid)}, vertex {vid})")
        r = builder.row
        builder.add_entry(r, col_x, n[0])
        builder.add_entry(r, col_y, n[1])
        builder.add_entry(r, col_z, n[2])
        builder.add_row(weight, float(n @ p))


def smooth_on_tangent_line(
    builder: SystemBuilder,
    mesh: FeatureMesh,
    vid: int,
    weight: float,
    V: np.ndarray | None = None,
    col_t: int | None = None,
) -> None:
    """Let a FEATURE vertex slide along its feature line.

    Energy: weight * |p_new - (p + t*dir)|^2 + t^2, with ``t`` a new unknown
    in column ``col_t`` (next free auxiliary column when not given).
    """
    if vid in builder.feature_data:
        raise ValueError(f"feature vertex {vid} already has an auxiliary unknown")
    if V is None:
        V = mesh.vertices
    direction, degenerate = feature_direction(mesh, vid, V)
    if degenerate:
        builder.warn(f"zero length tangent curve (vertex {vid})")

    if col_t is None:
        col_t = 3 * builder.n_verts + len(builder.feature_data)
    builder.feature_data[vid] = (direction, int(col_t))

    p = V[vid]
    for axis, col in enumerate(builder.cols_xyz(vid)):
        r = builder.row
        builder.add_entry(r, col, 1.0)
        builder.add_entry(r, col_t, -direction[axis])
        builder.add_row(weight, p[axis])

    # Tikhonov term on t
    builder.add_entry(builder.row, col_t, 1.0)
    builder.add_row(1.0, 0.0)


def hold_corner(builder: SystemBuilder, mesh: FeatureMesh, vid: int, weight: float, V: np.ndarray | None = None) -> None:
    """Pin each coordinate of a CORNER vertex to its current value."""
    if V is None:
        V = mesh.vertices
    p = V[vid]
    for axis, col in enumerate(builder.cols_xyz(vid)):
        builder.add_entry(builder.row, col, 1.0)
        builder.add_row(weight, p[axis])


def build_system(
    mesh: FeatureMesh,
    labels: np.ndarray | None = None,
    *,
    laplacian_mode: str = "uniform",
    laplacian_secure: bool = False,
    w_laplace: float = 1.0,
    w_regular: float = 1.0,
    w_feature: float = 1.0,
    w_corner: float = 1.0,
) -> SystemBuilder:
    """Build all rows of one smoothing iteration from the current positions.

    The Laplacian term comes first, then each vertex in increasing id order
    contributes the rows of its label. Auxiliary columns of FEATURE vertices
    are reserved up front by :func:`allocate_feature_columns`.
    """
    if labels is None:
        labels = mesh.labels
    labels = np.asarray(labels)
    nv = mesh.num_verts
    if labels.shape[0] != nv:
        raise ValueError("labels length must match the number of vertices")

    V = mesh.vertices
    normals = mesh.face_normals
    feature_cols = allocate_feature_columns(labels, nv)

    builder = SystemBuilder(n_verts=nv)
    laplacian_term(builder, mesh, laplacian_mode, w_laplace, V, secure=laplacian_secure)

    for vid in range(nv):
        label = labels[vid]
        if label == VertexLabel.REGULAR:
            smooth_on_tangent_space(builder, mesh, vid, w_regular, V, normals)
        elif label == VertexLabel.FEATURE:
            smooth_on_tangent_line(builder, mesh, vid, w_feature, V, feature_cols[vid])
        elif label == VertexLabel.CORNER:
            hold_corner(builder, mesh, vid, w_corner, V)
        else:
            raise ValueError(f"unknown vertex label {label!r} for vertex {vid}")

    return builder
