"""pyfsmooth: Feature-preserving smoothing for triangle meshes.

Public API:
- FeatureMesh(vertices, faces, marked_edges=None), example_mesh(kind)
- label_features(mesh)
- build_system(mesh, labels, laplacian_mode="uniform", w_laplace=1.0, ...)
- solve_weighted_least_squares(A, w, b)
- mesh_smoother(mesh, target=None, options=SmootherOptions(...))

"""
from .features import FeatureTopologyError, allocate_feature_columns, label_features
from .laplacian import cotangent_laplacian, laplacian_matrix_entries, mean_value_laplacian, uniform_laplacian
from .linear_solvers import SolverError, solve_weighted_least_squares
from .mesh import FeatureMesh, VertexLabel, example_mesh
from .smoother import SmootherOptions, SmoothResult, mesh_smoother
from .spatial import SegmentIndex, SurfaceIndex
from .system import SystemBuilder, build_system

__all__ = [
    "FeatureMesh",
    "VertexLabel",
    "example_mesh",
    "label_features",
    "allocate_feature_columns",
    "FeatureTopologyError",
    "uniform_laplacian",
    "cotangent_laplacian",
    "mean_value_laplacian",
    "laplacian_matrix_entries",
    "SystemBuilder",
    "build_system",
    "solve_weighted_least_squares",
    "SolverError",
    "SurfaceIndex",
    "SegmentIndex",
    "SmootherOptions",
    "SmoothResult",
    "mesh_smoother",
]
