"""Surface cluster detection: a connected triangle patch near a query point.

The seed triangle is the one closest to the query point (exact
point-to-triangle distance) or a manually chosen index.  The patch grows
breadth-first over edge-sharing neighbours; within one ring, triangles
whose centroid is nearer the seed centroid come first, so repeated builds
pick the same patch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from numpy.typing import NDArray
from scipy.sparse.csgraph import shortest_path

from surfaceattach.constants import AREA_EPSILON
from surfaceattach.core.math_utils import Vec3, as_vec3, normalize
from surfaceattach.core.mesh import BlendshapeMesh
from surfaceattach.errors import InputValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class SurfaceCluster:
    """Ordered triangle anchors with area weights, seed first."""
    triangles: NDArray[np.int64]
    areas: NDArray[np.float64]
    weights: NDArray[np.float64]
    center: Vec3
    normal: Vec3
    seed_distance: float = 0.0

    @property
    def seed_triangle(self) -> int:
        return int(self.triangles[0])

    @property
    def size(self) -> int:
        return len(self.triangles)

    def __len__(self) -> int:
        return len(self.triangles)


# ── Triangle geometry ────────────────────────────────────────────────

def triangle_vertices(positions: NDArray, triangles: NDArray) -> tuple[NDArray, NDArray, NDArray]:
    return (
        positions[triangles[:, 0]],
        positions[triangles[:, 1]],
        positions[triangles[:, 2]],
    )


def triangle_areas(positions: NDArray, triangles: NDArray) -> NDArray[np.float64]:
    a, b, c = triangle_vertices(positions, triangles)
    return 0.5 * np.linalg.norm(np.cross(b - a, c - a), axis=1)


def triangle_normals(positions: NDArray, triangles: NDArray) -> NDArray[np.float64]:
    """Unit face normals; zero rows for collapsed triangles."""
    a, b, c = triangle_vertices(positions, triangles)
    n = np.cross(b - a, c - a)
    lengths = np.linalg.norm(n, axis=1, keepdims=True)
    return np.where(lengths > 1e-10, n / np.maximum(lengths, 1e-30), 0.0)


def triangle_centroids(positions: NDArray, triangles: NDArray) -> NDArray[np.float64]:
    return positions[triangles].mean(axis=1)


def closest_points_on_triangles(p: Vec3, A: NDArray, B: NDArray, C: NDArray) -> NDArray:
    """Closest point on each of N triangles to a single query point.

    Vectorized Ericson region test (Real-Time Collision Detection, 5.1.5).
    A, B, C are (N, 3); returns (N, 3).
    """
    P = np.broadcast_to(p, A.shape)
    ab = B - A
    ac = C - A
    ap = P - A
    d1 = np.sum(ab * ap, axis=1)
    d2 = np.sum(ac * ap, axis=1)

    bp = P - B
    d3 = np.sum(ab * bp, axis=1)
    d4 = np.sum(ac * bp, axis=1)

    cp = P - C
    d5 = np.sum(ab * cp, axis=1)
    d6 = np.sum(ac * cp, axis=1)

    reg_a = (d1 <= 0) & (d2 <= 0)
    reg_b = (d3 >= 0) & (d4 <= d3)
    reg_c = (d6 >= 0) & (d5 <= d6)

    vc = d1 * d4 - d3 * d2
    reg_ab = (vc <= 0) & (d1 >= 0) & (d3 <= 0)
    v_ab = d1 / _safe(d1 - d3)

    vb = d5 * d2 - d1 * d6
    reg_ac = (vb <= 0) & (d2 >= 0) & (d6 <= 0)
    w_ac = d2 / _safe(d2 - d6)

    va = d3 * d6 - d5 * d4
    reg_bc = (va <= 0) & ((d4 - d3) >= 0) & ((d5 - d6) >= 0)
    w_bc = (d4 - d3) / _safe((d4 - d3) + (d5 - d6))

    denom = _safe(va + vb + vc)
    result = A + (vb / denom)[:, None] * ab + (vc / denom)[:, None] * ac

    # Later assignments win: vertices over edges over interior
    result = np.where(reg_bc[:, None], B + w_bc[:, None] * (C - B), result)
    result = np.where(reg_ac[:, None], A + w_ac[:, None] * ac, result)
    result = np.where(reg_ab[:, None], A + v_ab[:, None] * ab, result)
    result = np.where(reg_c[:, None], C, result)
    result = np.where(reg_b[:, None], B, result)
    result = np.where(reg_a[:, None], A, result)
    return result


def _safe(denom: NDArray) -> NDArray:
    return np.where(np.abs(denom) < 1e-30, 1.0, denom)


def point_triangle_distances(mesh: BlendshapeMesh, point: Vec3) -> NDArray[np.float64]:
    """Distance from ``point`` to every triangle of the rest mesh."""
    A, B, C = triangle_vertices(mesh.positions, mesh.triangles)
    closest = closest_points_on_triangles(as_vec3(point), A, B, C)
    return np.linalg.norm(closest - as_vec3(point), axis=1)


def find_closest_triangle(
    mesh: BlendshapeMesh,
    point: Vec3,
    search_radius: float = 0.0,
) -> int:
    """Index of the nearest triangle, or -1 if none lies within ``search_radius``.

    ``search_radius <= 0`` means unlimited.  Ties resolve to the lowest index.
    """
    if mesh.triangle_count == 0:
        return -1
    dists = point_triangle_distances(mesh, point)
    best = int(np.argmin(dists))
    if search_radius > 0 and dists[best] > search_radius:
        return -1
    return best


# ── Cluster detection ────────────────────────────────────────────────

def detect_cluster(
    mesh: Optional[BlendshapeMesh],
    query_point: Vec3,
    target_triangle_count: int,
    search_radius: float = 0.0,
    manual_triangle_index: int = -1,
) -> Optional[SurfaceCluster]:
    """Find the connected triangle patch nearest ``query_point`` (mesh-local).

    Returns ``None`` when no triangle lies within ``search_radius``.  A
    connected component smaller than ``target_triangle_count`` yields a
    partial cluster.
    """
    if mesh is None:
        raise InputValidationError("Cannot detect a surface cluster without a mesh")
    if mesh.triangle_count == 0:
        raise InputValidationError(f"Mesh '{mesh.name}' has no triangles")
    if target_triangle_count < 1:
        raise InputValidationError("Cluster must contain at least one triangle")

    point = as_vec3(query_point)
    distances = point_triangle_distances(mesh, point)

    if 0 <= manual_triangle_index < mesh.triangle_count:
        seed = int(manual_triangle_index)
        logger.debug("Using manual seed triangle %d", seed)
    else:
        if manual_triangle_index >= mesh.triangle_count:
            logger.warning(
                "Manual triangle index %d out of range for '%s' (%d triangles); auto-detecting",
                manual_triangle_index, mesh.name, mesh.triangle_count,
            )
        seed = int(np.argmin(distances))
        if search_radius > 0 and distances[seed] > search_radius:
            logger.warning(
                "No triangle of '%s' within %.4f of %s (nearest %.4f)",
                mesh.name, search_radius, np.round(point, 4), distances[seed],
            )
            return None

    triangles = _grow(mesh, seed, target_triangle_count)
    cluster = _build_cluster(mesh, triangles, float(distances[seed]))
    logger.debug(
        "Cluster on '%s': %d triangles around seed %d (distance %.4f)",
        mesh.name, cluster.size, seed, cluster.seed_distance,
    )
    return cluster


def _grow(mesh: BlendshapeMesh, seed: int, count: int) -> NDArray[np.int64]:
    """Breadth-first ring order from ``seed``, nearest centroids first in a ring."""
    hops = shortest_path(
        mesh.triangle_adjacency(), directed=False, unweighted=True, indices=seed,
    )
    reachable = np.flatnonzero(np.isfinite(hops))

    centroids = triangle_centroids(mesh.positions, mesh.triangles)
    centroid_dist = np.linalg.norm(centroids[reachable] - centroids[seed], axis=1)

    # lexsort: last key is primary -> (hop, centroid distance, index)
    order = np.lexsort((reachable, centroid_dist, hops[reachable]))
    return reachable[order][:count].astype(np.int64)


def _build_cluster(mesh: BlendshapeMesh, triangles: NDArray, seed_distance: float) -> SurfaceCluster:
    tris = mesh.triangles[triangles]
    areas = triangle_areas(mesh.positions, tris)
    weights = area_weights(areas)
    centroids = triangle_centroids(mesh.positions, tris)
    face_normals = triangle_normals(mesh.positions, tris)
    return SurfaceCluster(
        triangles=np.asarray(triangles, dtype=np.int64),
        areas=areas,
        weights=weights,
        center=weights @ centroids,
        normal=normalize(areas @ face_normals),
        seed_distance=seed_distance,
    )


def area_weights(areas: NDArray) -> NDArray[np.float64]:
    """Normalize areas to sum 1, uniform if the patch has collapsed."""
    total = float(np.sum(areas))
    if total < AREA_EPSILON:
        return np.full(len(areas), 1.0 / len(areas))
    return areas / total
