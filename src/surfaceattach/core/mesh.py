"""Blendshape mesh data structures and the black-box mesh evaluator."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
from numpy.typing import NDArray
from scipy.sparse import csr_matrix

from surfaceattach.constants import WEIGHT_MAX


@dataclass(frozen=True, eq=False)
class BlendshapeChannel:
    """A named displacement field, fully applied at weight 100.

    delta_positions: (V, 3) per-vertex offset at weight 100
    delta_normals: optional (V, 3) per-vertex normal offset at weight 100
    """
    name: str
    delta_positions: NDArray[np.float64]
    delta_normals: Optional[NDArray[np.float64]] = None


@dataclass(frozen=True, eq=False)
class MeshPose:
    """Evaluated vertex data at one channel weight."""
    positions: NDArray[np.float64]
    normals: NDArray[np.float64]


@dataclass(eq=False)
class BlendshapeMesh:
    """Immutable triangle mesh with named blendshape channels.

    positions: (V, 3) rest vertex positions (mesh-local space)
    normals: (V, 3) rest vertex normals
    triangles: (F, 3) vertex indices per triangle
    channels: ordered name -> BlendshapeChannel

    ``evaluate`` is the only deformation entry point the solver uses.
    Hosts with their own skinning/baking can subclass and override it.
    """
    name: str
    positions: NDArray[np.float64]
    triangles: NDArray[np.int64]
    normals: Optional[NDArray[np.float64]] = None
    channels: dict[str, BlendshapeChannel] = field(default_factory=dict)

    def __post_init__(self):
        self.positions = np.asarray(self.positions, dtype=np.float64).reshape(-1, 3)
        self.triangles = np.asarray(self.triangles, dtype=np.int64).reshape(-1, 3)
        if len(self.triangles) and (self.triangles.min() < 0
                                    or self.triangles.max() >= len(self.positions)):
            raise ValueError(f"Mesh '{self.name}' has out-of-range triangle indices")
        if self.normals is None:
            self.normals = compute_vertex_normals(self.positions, self.triangles)
        else:
            self.normals = np.asarray(self.normals, dtype=np.float64).reshape(-1, 3)
        for channel in self.channels.values():
            if channel.delta_positions.shape != self.positions.shape:
                raise ValueError(
                    f"Channel '{channel.name}' has {len(channel.delta_positions)} deltas "
                    f"for {len(self.positions)} vertices"
                )
        self._adjacency: Optional[csr_matrix] = None

    @classmethod
    def from_deltas(
        cls,
        name: str,
        positions,
        triangles,
        deltas: dict[str, object],
        normals=None,
    ) -> "BlendshapeMesh":
        """Build a mesh from a ``{channel name: (V, 3) deltas}`` mapping."""
        channels = {
            key: BlendshapeChannel(key, np.asarray(d, dtype=np.float64).reshape(-1, 3))
            for key, d in deltas.items()
        }
        return cls(name=name, positions=positions, triangles=triangles,
                   normals=normals, channels=channels)

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def triangle_count(self) -> int:
        return len(self.triangles)

    @property
    def channel_names(self) -> list[str]:
        return list(self.channels.keys())

    def has_channel(self, name: str) -> bool:
        return name in self.channels

    def rest_pose(self) -> MeshPose:
        return MeshPose(self.positions.copy(), self.normals.copy())

    def evaluate(self, channel_name: str, weight: float) -> MeshPose:
        """Vertex positions/normals with one channel at ``weight`` (0..100).

        All other channels are held at zero.  Raises ``KeyError`` for an
        unknown channel.
        """
        channel = self.channels[channel_name]
        t = weight / WEIGHT_MAX
        positions = self.positions + channel.delta_positions * t
        if channel.delta_normals is not None:
            normals = self.normals + channel.delta_normals * t
            lengths = np.maximum(np.linalg.norm(normals, axis=1, keepdims=True), 1e-10)
            normals = normals / lengths
        else:
            normals = self.normals.copy()
        return MeshPose(positions, normals)

    def triangle_adjacency(self) -> csr_matrix:
        """(F, F) sparse graph linking triangles that share an edge."""
        if self._adjacency is None:
            self._adjacency = build_triangle_adjacency(self.triangles)
        return self._adjacency


def compute_vertex_normals(positions: NDArray, triangles: NDArray) -> NDArray[np.float64]:
    """Area-weighted vertex normals from face normals."""
    norms = np.zeros_like(positions, dtype=np.float64)
    if len(triangles) == 0:
        return norms
    v0 = positions[triangles[:, 0]]
    v1 = positions[triangles[:, 1]]
    v2 = positions[triangles[:, 2]]
    face = np.cross(v1 - v0, v2 - v0)
    for corner in range(3):
        np.add.at(norms, triangles[:, corner], face)
    lengths = np.maximum(np.linalg.norm(norms, axis=1, keepdims=True), 1e-10)
    return norms / lengths


def build_triangle_adjacency(triangles: NDArray) -> csr_matrix:
    """Edge-sharing adjacency between triangles as a symmetric CSR matrix."""
    tri_count = len(triangles)
    edge_owners: dict[tuple[int, int], list[int]] = defaultdict(list)
    for ti, (a, b, c) in enumerate(triangles):
        for u, v in ((a, b), (b, c), (c, a)):
            key = (int(u), int(v)) if u < v else (int(v), int(u))
            edge_owners[key].append(ti)

    rows: list[int] = []
    cols: list[int] = []
    for owners in edge_owners.values():
        for i in range(len(owners)):
            for j in range(i + 1, len(owners)):
                rows.extend((owners[i], owners[j]))
                cols.extend((owners[j], owners[i]))

    data = np.ones(len(rows), dtype=np.float64)
    graph = csr_matrix(
        (data, (np.asarray(rows, dtype=np.int64), np.asarray(cols, dtype=np.int64))),
        shape=(tri_count, tri_count),
    )
    # Duplicate pairs (triangles sharing two edges) collapse to weight 1
    graph.data[:] = 1.0
    return graph
