"""Transform hierarchy used as the rest-pose transform provider.

Each node holds a local position / quaternion / scale.  World matrix =
parent.world_matrix @ local_matrix, recomputed on demand so a node built
in any order always reports its current rest transform.
"""

from typing import Optional

import numpy as np

from surfaceattach.core.math_utils import (
    Mat4, Quat, Vec3,
    as_vec3, mat4_compose, mat4_inverse, quat_conjugate, quat_identity,
    quat_multiply, quat_normalize, quat_rotate_vec3, transform_direction,
    transform_normal, transform_point, vec3,
)
from surfaceattach.errors import DegenerateGeometryError


class TransformNode:
    """A named node carrying a TRS transform and a parent link."""

    def __init__(
        self,
        name: str = "",
        position=None,
        quaternion=None,
        scale=None,
    ):
        self.name = name
        self.parent: Optional["TransformNode"] = None
        self.children: list["TransformNode"] = []

        self.position: Vec3 = as_vec3(position) if position is not None else vec3()
        self.quaternion: Quat = (
            quat_normalize(np.asarray(quaternion, dtype=np.float64))
            if quaternion is not None else quat_identity()
        )
        self.scale: Vec3 = as_vec3(scale) if scale is not None else vec3(1, 1, 1)

    def add(self, child: "TransformNode") -> "TransformNode":
        """Add a child node. Removes from previous parent if any."""
        if child.parent is not None:
            child.parent.remove(child)
        child.parent = self
        self.children.append(child)
        return self

    def remove(self, child: "TransformNode") -> "TransformNode":
        if child in self.children:
            self.children.remove(child)
            child.parent = None
        return self

    def set_position(self, x: float, y: float, z: float) -> "TransformNode":
        self.position = vec3(x, y, z)
        return self

    def set_quaternion(self, q: Quat) -> "TransformNode":
        self.quaternion = quat_normalize(np.asarray(q, dtype=np.float64))
        return self

    def set_scale(self, x: float, y: float, z: float) -> "TransformNode":
        self.scale = vec3(x, y, z)
        return self

    # ------------------------------------------------------------------
    # Matrices
    # ------------------------------------------------------------------

    @property
    def local_matrix(self) -> Mat4:
        return mat4_compose(self.position, self.quaternion, self.scale)

    @property
    def world_matrix(self) -> Mat4:
        if self.parent is None:
            return self.local_matrix
        return self.parent.world_matrix @ self.local_matrix

    def _inverse_world_matrix(self) -> Mat4:
        try:
            return mat4_inverse(self.world_matrix)
        except np.linalg.LinAlgError as e:
            raise DegenerateGeometryError(f"{self.name!r} has a singular world transform") from e

    @property
    def world_position(self) -> Vec3:
        return self.world_matrix[:3, 3].copy()

    @property
    def world_rotation(self) -> Quat:
        """Accumulated rotation, ignoring scale (as the host reports it)."""
        if self.parent is None:
            return self.quaternion.copy()
        return quat_normalize(quat_multiply(self.parent.world_rotation, self.quaternion))

    # ------------------------------------------------------------------
    # Space conversion
    # ------------------------------------------------------------------

    def transform_point(self, p: Vec3) -> Vec3:
        """Local -> world."""
        return transform_point(self.world_matrix, as_vec3(p))

    def inverse_transform_point(self, p: Vec3) -> Vec3:
        """World -> local.  Raises ``DegenerateGeometryError`` for a singular transform."""
        return transform_point(self._inverse_world_matrix(), as_vec3(p))

    def transform_direction(self, d: Vec3) -> Vec3:
        """Local -> world direction (rotation and scale, no translation)."""
        return transform_direction(self.world_matrix, as_vec3(d))

    def transform_normal(self, n: Vec3) -> Vec3:
        try:
            return transform_normal(self.world_matrix, as_vec3(n))
        except np.linalg.LinAlgError as e:
            raise DegenerateGeometryError(f"{self.name!r} has a singular world transform") from e

    def rotate_to_world(self, v: Vec3) -> Vec3:
        """Rotate a local vector to world without scaling it."""
        return quat_rotate_vec3(self.world_rotation, as_vec3(v))

    def world_to_local_rotation(self, q: Quat) -> Quat:
        """Express a world rotation relative to this node."""
        return quat_normalize(quat_multiply(quat_conjugate(self.world_rotation), q))

    # ------------------------------------------------------------------
    # Hierarchy queries
    # ------------------------------------------------------------------

    def find(self, name: str) -> Optional["TransformNode"]:
        """Find first descendant with given name."""
        if self.name == name:
            return self
        for child in self.children:
            found = child.find(name)
            if found is not None:
                return found
        return None

    def root(self) -> "TransformNode":
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    def relative_path(self, root: Optional["TransformNode"] = None) -> str:
        """Slash-joined names from (but excluding) ``root`` down to this node.

        ``root`` defaults to the top of the hierarchy.  Returns "" when the
        node is the root itself.
        """
        if root is None:
            root = self.root()
        parts: list[str] = []
        node: Optional[TransformNode] = self
        while node is not None and node is not root:
            parts.insert(0, node.name)
            node = node.parent
        return "/".join(parts)

    def __repr__(self) -> str:
        return f"TransformNode({self.name!r})"
