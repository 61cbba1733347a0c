"""Pose sampling: evaluate a cluster's surface frame across a channel's weights."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Optional

import numpy as np
from numpy.typing import NDArray

from surfaceattach.attach.cluster import (
    SurfaceCluster,
    area_weights,
    triangle_areas,
    triangle_centroids,
)
from surfaceattach.constants import WEIGHT_MAX, WEIGHT_MIN
from surfaceattach.core.math_utils import Vec3, normalize, project_onto_plane
from surfaceattach.core.mesh import BlendshapeMesh
from surfaceattach.errors import InputValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class PoseSample:
    """Cluster position/normal/tangent at one channel weight (mesh-local).

    ``tangent`` is a raw candidate; sign and drift are resolved by the
    frame builder.
    """
    weight: float
    position: Vec3
    normal: Vec3
    tangent: Vec3


def weight_schedule(sample_count: int) -> NDArray[np.float64]:
    """``sample_count`` evenly spaced weights from 0 to 100 inclusive.

    A single sample sits at full weight.
    """
    if sample_count < 1:
        raise InputValidationError(f"sample_count must be >= 1, got {sample_count}")
    if sample_count == 1:
        return np.array([WEIGHT_MAX])
    return np.linspace(WEIGHT_MIN, WEIGHT_MAX, sample_count)


def evaluate_cluster(
    cluster: SurfaceCluster,
    positions: NDArray,
    triangles: NDArray,
) -> tuple[Vec3, Vec3, Vec3]:
    """Area-weighted centroid, normal and seed-edge tangent of the cluster.

    Areas are measured on the given (deformed) positions.  A collapsed
    normal or tangent comes back as a zero vector.
    """
    tris = triangles[cluster.triangles]
    areas = triangle_areas(positions, tris)
    centroids = triangle_centroids(positions, tris)
    position = area_weights(areas) @ centroids

    a = positions[tris[:, 0]]
    b = positions[tris[:, 1]]
    c = positions[tris[:, 2]]
    # |cross| = 2 * area, so summing raw cross products is the area-weighted sum
    normal = normalize(np.cross(b - a, c - a).sum(axis=0))

    seed = tris[0]
    edge = positions[seed[1]] - positions[seed[0]]
    tangent = normalize(project_onto_plane(edge, normal))
    return position, normal, tangent


def sample_at_weight(
    mesh: BlendshapeMesh,
    channel_name: str,
    cluster: SurfaceCluster,
    weight: float,
) -> PoseSample:
    pose = mesh.evaluate(channel_name, float(weight))
    position, normal, tangent = evaluate_cluster(cluster, pose.positions, mesh.triangles)
    return PoseSample(float(weight), position, normal, tangent)


def sample_rest(mesh: BlendshapeMesh, cluster: SurfaceCluster) -> PoseSample:
    """The cluster on the undeformed mesh (every channel at zero)."""
    position, normal, tangent = evaluate_cluster(cluster, mesh.positions, mesh.triangles)
    return PoseSample(WEIGHT_MIN, position, normal, tangent)


def sample_channel(
    mesh: Optional[BlendshapeMesh],
    channel_name: str,
    cluster: SurfaceCluster,
    sample_count: int,
) -> Iterator[PoseSample]:
    """Yield the cluster frame at evenly spaced weights of one channel.

    Weights strictly increase.  The generator is single-pass; call again
    to resample.
    """
    if mesh is None:
        raise InputValidationError("Cannot sample without a mesh")
    if not mesh.has_channel(channel_name):
        raise InputValidationError(
            f"Blendshape '{channel_name}' not found on mesh '{mesh.name}'"
        )
    for weight in weight_schedule(sample_count):
        yield sample_at_weight(mesh, channel_name, cluster, weight)


def sample_all_channels_at_weight(
    mesh: BlendshapeMesh,
    cluster: SurfaceCluster,
    weight: float = WEIGHT_MAX,
) -> dict[str, Vec3]:
    """Cluster displacement from rest for every channel at ``weight``."""
    base = sample_rest(mesh, cluster).position
    results: dict[str, Vec3] = {}
    for name in mesh.channel_names:
        deformed = sample_at_weight(mesh, name, cluster, weight).position
        results[name] = deformed - base
    return results


def has_blendshapes(mesh: Optional[BlendshapeMesh]) -> bool:
    return mesh is not None and len(mesh.channels) > 0


def get_all_blendshape_names(mesh: Optional[BlendshapeMesh]) -> list[str]:
    if mesh is None:
        return []
    return mesh.channel_names
