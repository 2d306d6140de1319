from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

import logging
import numpy as np

from .features import label_features
from .laplacian import LAPLACIAN_MODES
from .linear_solvers import solve_weighted_least_squares
from .mesh import FeatureMesh, VertexLabel
from .spatial import SegmentIndex, SurfaceIndex
from .system import build_system

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass
class SmootherOptions:
    n_iters: int = 10
    laplacian_mode: str = "uniform"
    laplacian_secure: bool = False
    w_laplace: float = 1.0
    w_regular: float = 1.0
    w_feature: float = 1.0
    w_corner: float = 1.0
    reproject_on_target: bool = False

    def __post_init__(self):
        if isinstance(self.n_iters, bool) or int(self.n_iters) != self.n_iters or self.n_iters < 1:
            raise ValueError("n_iters must be a positive integer")
        self.n_iters = int(self.n_iters)
        if self.laplacian_mode not in LAPLACIAN_MODES:
            raise ValueError(f"Unknown laplacian_mode: {self.laplacian_mode}")
        for name in ("w_laplace", "w_regular", "w_feature", "w_corner"):
            value = float(getattr(self, name))
            if not np.isfinite(value) or value < 0:
                raise ValueError(f"{name} must be a finite non-negative number")
            setattr(self, name, value)
        self.laplacian_secure = bool(self.laplacian_secure)
        self.reproject_on_target = bool(self.reproject_on_target)


@dataclass
class SmoothResult:
    vertices: np.ndarray  # (n,3) final vertex positions
    labels: np.ndarray  # (n,) VertexLabel values used for the run
    iterations: int = 0
    warnings: list[str] = field(default_factory=list)
    history: Optional[Sequence[np.ndarray]] = None  # optional list of intermediate vertices


def _updated_positions(
    V: np.ndarray,
    labels: np.ndarray,
    x: np.ndarray,
    feature_data: dict,
    surface: SurfaceIndex | None,
    curves: SegmentIndex | None,
) -> np.ndarray:
    nv = V.shape[0]
    V_new = np.column_stack([x[:nv], x[nv:2 * nv], x[2 * nv:3 * nv]])

    fids = np.flatnonzero(labels == VertexLabel.FEATURE)
    for vid in fids:
        direction, col_t = feature_data[int(vid)]
        V_new[vid] = V[vid] + direction * x[col_t]

    if surface is not None:
        rids = np.flatnonzero(labels != VertexLabel.FEATURE)
        if rids.size:
            V_new[rids] = surface.closest_points(V_new[rids])
        if curves is not None and len(curves) > 0 and fids.size:
            V_new[fids] = curves.closest_points(V_new[fids])
    return V_new


def mesh_smoother(
    mesh: FeatureMesh,
    target: FeatureMesh | None = None,
    options: SmootherOptions | None = None,
    *,
    record_history: bool = False,
    verbose: bool = False,
    log: Optional[logging.Logger] = None,
    **kwargs,
) -> SmoothResult:
    """Feature-preserving smoothing of ``mesh`` in place.

    Each iteration solves one weighted least-squares problem whose rows are

    - a per-axis Laplacian with target 0 (weight ``w_laplace``),
    - for REGULAR vertices, one tangent-plane row per incident face (``w_regular``),
    - for FEATURE vertices, ``p_new = p + t*dir`` with a new unknown ``t``
      (``w_feature``) plus ``t = 0`` (weight 1),
    - for CORNER vertices, ``p_new = p`` (``w_corner``).

    Labels come from the marked edges and are computed once, before the
    first iteration. All rows read the positions of the previous iteration;
    the new positions are written only after the solve.

    Parameters
    ----------
    mesh : FeatureMesh
        Mesh to smooth. Its vertices are overwritten after each iteration.
    target : FeatureMesh, optional
        Reference surface for reprojection. Defaults to a copy of ``mesh``
        taken before the first iteration. Only used when
        ``options.reproject_on_target`` is True.
    options : SmootherOptions, optional
        Smoothing parameters. Keyword arguments matching ``SmootherOptions``
        fields may be given instead (e.g. ``n_iters=5``).
    record_history : bool, default False
        If True, return a list of vertices after each step in ``SmoothResult.history``.
    verbose : bool, default False
        If True, log basic progress information.
    log : logging.Logger, optional
        Custom logger. If None, use module logger.

    Returns
    -------
    SmoothResult

    Raises
    ------
    FeatureTopologyError
        If a FEATURE vertex does not have exactly two marked neighbours.
    SolverError
        If an iteration's system cannot be solved. The mesh keeps the
        positions of the last completed iteration.
    """
    if not isinstance(mesh, FeatureMesh):
        raise TypeError("mesh_smoother expects a FeatureMesh")
    if options is None:
        options = SmootherOptions(**kwargs)
    elif kwargs:
        raise TypeError("pass either options or keyword overrides, not both")

    _log = log or logger

    surface = None
    curves = None
    # Reprojection indices are built once, from the input geometry
    if options.reproject_on_target:
        surface = SurfaceIndex(target if target is not None else mesh.copy())
        curves = SegmentIndex(mesh.marked_segments())
        if verbose:
            _log.info("Smoother: reprojection indices built (%d feature segments)", len(curves))

    labels = label_features(mesh)
    if verbose:
        s = mesh.feature_summary()
        _log.info(
            "Smoother: %d vertices (%d regular, %d feature, %d corner), iters=%d, mode=%s",
            s["vertex_count"], s["regular_count"], s["feature_count"], s["corner_count"],
            options.n_iters, options.laplacian_mode,
        )

    warnings: list[str] = []
    hist: list[np.ndarray] | None = [] if record_history else None

    for k in range(options.n_iters):
        builder = build_system(
            mesh,
            labels,
            laplacian_mode=options.laplacian_mode,
            laplacian_secure=options.laplacian_secure,
            w_laplace=options.w_laplace,
            w_regular=options.w_regular,
            w_feature=options.w_feature,
            w_corner=options.w_corner,
        )
        warnings.extend(builder.warnings)

        A, w, b = builder.to_system()
        x = solve_weighted_least_squares(A, w, b, verbose=verbose)

        V_new = _updated_positions(mesh.vertices, labels, x, builder.feature_data, surface, curves)
        mesh.vertices = V_new

        if hist is not None:
            hist.append(V_new.copy())
        if verbose:
            _log.info("Smoother: iter %d/%d, system %dx%d", k + 1, options.n_iters, A.shape[0], A.shape[1])

    return SmoothResult(
        vertices=mesh.vertices,
        labels=labels.copy(),
        iterations=options.n_iters,
        warnings=warnings,
        history=hist,
    )
