"""Local surface frames with tangent-continuity tracking.

A frame is (tangent, bitangent, normal) anchored at the cluster position.
The candidate tangent from the sampler is only defined up to sign, so each
frame is compared with the previous sample's resolved tangent and flipped
when they point apart.  Samples must be folded in increasing-weight order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np

from surfaceattach.attach.sampler import PoseSample
from surfaceattach.constants import EPSILON, WORLD_FORWARD, WORLD_UP
from surfaceattach.core.math_utils import (
    Mat3, Quat, Vec3, as_vec3, normalize, project_onto_plane, quat_from_basis,
)
from surfaceattach.errors import DegenerateGeometryError


@dataclass(frozen=True, eq=False)
class LocalFrame:
    """Orthonormal right-handed frame: X = tangent, Y = bitangent, Z = normal."""
    origin: Vec3
    tangent: Vec3
    bitangent: Vec3
    normal: Vec3

    @property
    def matrix(self) -> Mat3:
        return np.column_stack([self.tangent, self.bitangent, self.normal])

    @property
    def rotation(self) -> Quat:
        return quat_from_basis(self.tangent, self.bitangent, self.normal)

    def to_local(self, p: Vec3) -> Vec3:
        """World point -> frame coordinates."""
        return self.matrix.T @ (as_vec3(p) - self.origin)

    def to_world(self, p: Vec3) -> Vec3:
        return self.origin + self.matrix @ as_vec3(p)


def orthogonal_tangent(normal: Vec3, candidate: Vec3) -> Vec3:
    """Gram-Schmidt ``candidate`` against ``normal``, falling back to world axes."""
    tangent = project_onto_plane(as_vec3(candidate), normal)
    if np.linalg.norm(tangent) >= EPSILON:
        return normalize(tangent)
    for axis in (WORLD_UP, WORLD_FORWARD):
        tangent = project_onto_plane(as_vec3(axis), normal)
        if np.linalg.norm(tangent) >= EPSILON:
            return normalize(tangent)
    # Unreachable for a unit normal: up and forward cannot both be parallel
    raise DegenerateGeometryError("No tangent direction orthogonal to normal")


def frame_from_vectors(
    origin: Vec3,
    normal: Vec3,
    tangent: Vec3,
    previous_tangent: Optional[Vec3] = None,
) -> LocalFrame:
    """Orthonormal frame from a raw normal/tangent pair.

    Raises ``DegenerateGeometryError`` for a (near) zero normal.
    """
    n = as_vec3(normal)
    length = np.linalg.norm(n)
    if length < EPSILON:
        raise DegenerateGeometryError(f"Normal has near-zero length ({length:.3g})")
    n = n / length

    t = orthogonal_tangent(n, tangent)
    if previous_tangent is not None and np.dot(t, as_vec3(previous_tangent)) < 0:
        t = -t
    b = np.cross(n, t)
    return LocalFrame(origin=as_vec3(origin), tangent=t, bitangent=b, normal=n)


def build_frame(sample: PoseSample, previous_tangent: Optional[Vec3] = None) -> LocalFrame:
    """Frame at a pose sample, sign-matched to ``previous_tangent`` if given."""
    return frame_from_vectors(sample.position, sample.normal, sample.tangent, previous_tangent)


def resolve_frames(samples: Iterable[PoseSample]) -> list[LocalFrame]:
    """Fold a weight-ordered sample sequence into continuity-resolved frames.

    The previous tangent is the only carried state and starts empty on
    every call.  Raises ``ValueError`` if weights do not strictly increase.
    """
    frames: list[LocalFrame] = []
    previous_tangent: Optional[Vec3] = None
    previous_weight: Optional[float] = None
    for sample in samples:
        if previous_weight is not None and sample.weight <= previous_weight:
            raise ValueError(
                f"Samples out of order: weight {sample.weight} after {previous_weight}"
            )
        frame = build_frame(sample, previous_tangent)
        frames.append(frame)
        previous_tangent = frame.tangent
        previous_weight = sample.weight
    return frames
