"""Blendshape solver: place an attached object on a deformed surface frame.

Every policy shares one ``solve`` signature.  Cluster data arrives in
mesh-local space and is lifted to world space through the mesh node's
rest transform; the result is the object's new world transform.

Policies
--------
RigidPolicy
    Keeps the object's offset from the rest frame (weight 0) fixed and
    carries it along with the deformed frame.
RigidNormalOffsetPolicy
    Rigid, then pushed along the deformed normal by a constant distance.
AffinePolicy
    Applies the rotational delta between a base sample's frame and the
    deformed frame.  Shear and scale are ignored.  Identical to Rigid when
    the base sample is the rest sample.
CageRBFPolicy
    With a single cluster the radial-basis blend has one driver and reduces
    to Rigid, which is what this policy does.  Its driver settings are
    carried for callers but do not change the result.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

import numpy as np

from surfaceattach.attach.frames import LocalFrame, frame_from_vectors
from surfaceattach.attach.sampler import PoseSample
from surfaceattach.constants import (
    DEFAULT_NORMAL_OFFSET,
    DEFAULT_RBF_DRIVER_POINT_COUNT,
    DEFAULT_RBF_RADIUS_MULTIPLIER,
    EPSILON,
)
from surfaceattach.core.math_utils import (
    Quat, Vec3, as_vec3, clamp, normalize, quat_conjugate, quat_multiply,
    quat_normalize, quat_rotate_vec3, quat_slerp,
)
from surfaceattach.core.scene_graph import TransformNode
from surfaceattach.errors import DegenerateGeometryError

logger = logging.getLogger(__name__)


class SolverMode(Enum):
    RIGID = "rigid"
    RIGID_NORMAL_OFFSET = "rigid_normal_offset"
    AFFINE = "affine"
    CAGE_RBF = "cage_rbf"


@dataclass(frozen=True, eq=False)
class SolverResult:
    """World transform of the attached object, or a failure.

    ``tangent`` is the continuity-resolved world tangent of the deformed
    frame, to be passed as ``previous_tangent`` for the next sample.
    """
    success: bool
    position: Vec3
    rotation: Quat
    tangent: Optional[Vec3] = None
    error: str = ""

    @classmethod
    def failure(cls, message: str, object_node: TransformNode) -> "SolverResult":
        return cls(
            success=False,
            position=object_node.world_position,
            rotation=object_node.world_rotation,
            error=message,
        )


@dataclass(frozen=True, eq=False)
class SolvedSample:
    """One successfully solved keyframe source."""
    weight: float
    position: Vec3
    rotation: Quat


def world_frame(
    position: Vec3,
    normal: Vec3,
    tangent: Vec3,
    mesh_node: TransformNode,
    previous_tangent: Optional[Vec3] = None,
) -> LocalFrame:
    """Lift a mesh-local surface sample to a world-space frame."""
    return frame_from_vectors(
        mesh_node.transform_point(position),
        mesh_node.transform_normal(normal),
        normalize(mesh_node.transform_direction(tangent)),
        previous_tangent,
    )


class SolvePolicy(ABC):
    """Base class: validates input, builds the deformed frame, smooths rotation.

    Subclasses implement ``place``.
    """

    mode: SolverMode = SolverMode.RIGID

    def solve(
        self,
        cluster_position: Vec3,
        cluster_normal: Vec3,
        cluster_tangent: Vec3,
        object_node: TransformNode,
        mesh_node: TransformNode,
        align_rotation: bool,
        previous_tangent: Optional[Vec3] = None,
        previous_rotation: Optional[Quat] = None,
        smoothing_factor: float = 0.0,
    ) -> SolverResult:
        normal = as_vec3(cluster_normal)
        tangent = as_vec3(cluster_tangent)
        if np.linalg.norm(normal) < EPSILON:
            return SolverResult.failure("Degenerate cluster normal", object_node)
        if np.linalg.norm(tangent) < EPSILON:
            return SolverResult.failure("Degenerate cluster tangent", object_node)

        try:
            frame = world_frame(cluster_position, normal, tangent, mesh_node, previous_tangent)
            position, rotation = self.place(frame, object_node, mesh_node, align_rotation)
        except DegenerateGeometryError as e:
            return SolverResult.failure(f"{self.mode.value} solver failed: {e}", object_node)

        factor = clamp(float(smoothing_factor), 0.0, 1.0)
        if align_rotation and previous_rotation is not None and factor > 0.0:
            rotation = quat_slerp(rotation, np.asarray(previous_rotation, dtype=np.float64), factor)

        return SolverResult(
            success=True,
            position=position,
            rotation=quat_normalize(rotation),
            tangent=frame.tangent,
        )

    @abstractmethod
    def place(
        self,
        frame: LocalFrame,
        object_node: TransformNode,
        mesh_node: TransformNode,
        align_rotation: bool,
    ) -> tuple[Vec3, Quat]:
        """World position/rotation of the object for a deformed world frame."""


class RigidPolicy(SolvePolicy):
    """Fixed rest-frame offset carried by the deformed frame."""

    mode = SolverMode.RIGID

    def __init__(self, rest_sample: PoseSample):
        self.rest_sample = rest_sample

    def reference_frame(self, mesh_node: TransformNode) -> LocalFrame:
        s = self.rest_sample
        return world_frame(s.position, s.normal, s.tangent, mesh_node)

    def place(self, frame, object_node, mesh_node, align_rotation):
        rest = self.reference_frame(mesh_node)
        object_rotation = object_node.world_rotation

        offset = rest.to_local(object_node.world_position)
        position = frame.to_world(offset)

        if not align_rotation:
            return position, object_rotation
        relative = quat_multiply(quat_conjugate(rest.rotation), object_rotation)
        return position, quat_multiply(frame.rotation, relative)


class RigidNormalOffsetPolicy(RigidPolicy):
    """Rigid placement lifted off the surface along the deformed normal."""

    mode = SolverMode.RIGID_NORMAL_OFFSET

    def __init__(self, rest_sample: PoseSample, normal_offset: float = DEFAULT_NORMAL_OFFSET):
        super().__init__(rest_sample)
        self.normal_offset = float(normal_offset)

    def place(self, frame, object_node, mesh_node, align_rotation):
        position, rotation = super().place(frame, object_node, mesh_node, align_rotation)
        return position + frame.normal * self.normal_offset, rotation


class AffinePolicy(SolvePolicy):
    """Rotational delta between a base frame and the deformed frame."""

    mode = SolverMode.AFFINE

    def __init__(self, base_sample: PoseSample):
        self.base_sample = base_sample

    def place(self, frame, object_node, mesh_node, align_rotation):
        s = self.base_sample
        base = world_frame(s.position, s.normal, s.tangent, mesh_node)
        delta = quat_normalize(quat_multiply(frame.rotation, quat_conjugate(base.rotation)))

        object_rotation = object_node.world_rotation
        position = frame.origin + quat_rotate_vec3(delta, object_node.world_position - base.origin)
        if not align_rotation:
            return position, object_rotation
        return position, quat_multiply(delta, object_rotation)


class CageRBFPolicy(RigidPolicy):
    """Single-cluster radial-basis placement, i.e. Rigid."""

    mode = SolverMode.CAGE_RBF

    def __init__(
        self,
        rest_sample: PoseSample,
        driver_point_count: int = DEFAULT_RBF_DRIVER_POINT_COUNT,
        radius_multiplier: float = DEFAULT_RBF_RADIUS_MULTIPLIER,
    ):
        super().__init__(rest_sample)
        self.driver_point_count = int(driver_point_count)
        self.radius_multiplier = float(radius_multiplier)


def make_policy(
    mode: SolverMode | str,
    rest_sample: PoseSample,
    base_sample: Optional[PoseSample] = None,
    normal_offset: float = DEFAULT_NORMAL_OFFSET,
    driver_point_count: int = DEFAULT_RBF_DRIVER_POINT_COUNT,
    radius_multiplier: float = DEFAULT_RBF_RADIUS_MULTIPLIER,
) -> SolvePolicy:
    """Instantiate the policy for ``mode``.

    ``base_sample`` only matters for Affine and defaults to ``rest_sample``.
    """
    mode = SolverMode(mode)
    if mode is SolverMode.RIGID:
        return RigidPolicy(rest_sample)
    if mode is SolverMode.RIGID_NORMAL_OFFSET:
        return RigidNormalOffsetPolicy(rest_sample, normal_offset)
    if mode is SolverMode.AFFINE:
        return AffinePolicy(base_sample if base_sample is not None else rest_sample)
    logger.debug(
        "Cage/RBF with one cluster (%d drivers requested) solves as rigid",
        driver_point_count,
    )
    return CageRBFPolicy(rest_sample, driver_point_count, radius_multiplier)


def solve_samples(
    policy: SolvePolicy,
    samples: Iterable[PoseSample],
    object_node: TransformNode,
    mesh_node: TransformNode,
    align_rotation: bool,
    smoothing_factor: float = 0.0,
) -> list[SolvedSample]:
    """Solve a weight-ordered sample sequence, dropping degenerate samples.

    Previous tangent and rotation are threaded from one successful sample
    to the next and start empty on every call.
    """
    solved: list[SolvedSample] = []
    previous_tangent: Optional[Vec3] = None
    previous_rotation: Optional[Quat] = None
    for sample in samples:
        result = policy.solve(
            sample.position,
            sample.normal,
            sample.tangent,
            object_node,
            mesh_node,
            align_rotation,
            previous_tangent=previous_tangent,
            previous_rotation=previous_rotation,
            smoothing_factor=smoothing_factor,
        )
        if not result.success:
            logger.debug("Dropping sample at weight %.2f: %s", sample.weight, result.error)
            continue
        solved.append(SolvedSample(sample.weight, result.position, result.rotation))
        previous_tangent = result.tangent
        previous_rotation = result.rotation
    return solved
