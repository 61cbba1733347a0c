"""Per-attachment orchestration: detect -> sample -> solve -> synthesize -> bind.

Failures are scoped to the smallest unit that can absorb them.  A
degenerate sample is dropped inside ``solve_samples``, a channel with no
valid samples is skipped with a warning, and an attachment that fails
validation or cluster detection is skipped by ``process_attachments``
while the rest of the batch continues.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

import numpy as np

from surfaceattach.attach.cluster import SurfaceCluster, detect_cluster
from surfaceattach.attach.curves import AnimationSink, CurveSet, synthesize_curves
from surfaceattach.attach.sampler import PoseSample, has_blendshapes, sample_channel, sample_rest
from surfaceattach.attach.solver import (
    SolvedSample, SolvePolicy, SolverMode, make_policy, solve_samples,
)
from surfaceattach.attach.tracking import select_channels
from surfaceattach.constants import EPSILON, WEIGHT_MIN
from surfaceattach.core.config_loader import AttachmentSettings
from surfaceattach.core.mesh import BlendshapeMesh
from surfaceattach.core.scene_graph import TransformNode
from surfaceattach.errors import AttachmentError, CurveSynthesisError, InputValidationError

logger = logging.getLogger(__name__)


@dataclass
class Attachment:
    """An object to glue onto a blendshape mesh surface."""
    name: str
    object_node: TransformNode
    mesh: Optional[BlendshapeMesh]
    mesh_node: TransformNode
    settings: AttachmentSettings = field(default_factory=AttachmentSettings)
    root: Optional[TransformNode] = None


@dataclass
class AttachmentReport:
    """Outcome of one attachment's solve pass."""
    name: str
    cluster: Optional[SurfaceCluster] = None
    tracked_channels: list[str] = field(default_factory=list)
    clip_names: list[str] = field(default_factory=list)
    skipped_channels: list[str] = field(default_factory=list)
    error: str = ""

    @property
    def success(self) -> bool:
        return not self.error and bool(self.clip_names)


def validate_attachment(attachment: Attachment) -> None:
    """Raise ``InputValidationError`` when the attachment cannot be solved."""
    if attachment.mesh is None:
        raise InputValidationError(f"'{attachment.name}': target mesh is not set")
    if attachment.mesh.triangle_count == 0:
        raise InputValidationError(f"'{attachment.name}': target mesh has no triangles")
    if not has_blendshapes(attachment.mesh):
        raise InputValidationError(f"'{attachment.name}': target mesh has no blendshapes")
    attachment.settings.validate()


def clip_name_for(attachment: Attachment, channel: str) -> str:
    safe = channel.replace("/", "_").replace("\\", "_")
    return f"AttachBlendshape_{attachment.name}_{safe}"


def to_parent_space(node: TransformNode, samples: list[SolvedSample]) -> list[SolvedSample]:
    """Re-express world-space solutions relative to the object's parent."""
    parent = node.parent
    if parent is None:
        return samples
    return [
        SolvedSample(
            s.weight,
            parent.inverse_transform_point(s.position),
            parent.world_to_local_rotation(s.rotation),
        )
        for s in samples
    ]


def build_policy(
    settings: AttachmentSettings,
    rest_sample: PoseSample,
    base_sample: Optional[PoseSample] = None,
) -> SolvePolicy:
    return make_policy(
        SolverMode(settings.solver_mode),
        rest_sample,
        base_sample=base_sample,
        normal_offset=settings.normal_offset,
        driver_point_count=settings.rbf_driver_point_count,
        radius_multiplier=settings.rbf_radius_multiplier,
    )


def affine_base(samples: list[PoseSample], rest_sample: PoseSample) -> PoseSample:
    """The channel's own weight-0 sample, or the rest sample when none was taken."""
    if samples and samples[0].weight == WEIGHT_MIN:
        return samples[0]
    return rest_sample


def solve_channel(
    attachment: Attachment,
    cluster: SurfaceCluster,
    channel: str,
    rest_sample: PoseSample,
) -> CurveSet:
    """Curves for one channel.  Raises ``CurveSynthesisError`` if every sample fails."""
    settings = attachment.settings
    samples = list(sample_channel(
        attachment.mesh, channel, cluster, settings.samples_per_blendshape,
    ))
    policy = build_policy(settings, rest_sample, base_sample=affine_base(samples, rest_sample))

    solved = solve_samples(
        policy,
        samples,
        attachment.object_node,
        attachment.mesh_node,
        settings.align_rotation,
        settings.smoothing_factor,
    )
    dropped = len(samples) - len(solved)
    if dropped:
        logger.debug("'%s'/%s: dropped %d of %d samples",
                     attachment.name, channel, dropped, len(samples))
    return synthesize_curves(to_parent_space(attachment.object_node, solved))


def process_attachment(attachment: Attachment, sink: AnimationSink) -> AttachmentReport:
    """Solve every tracked channel of one attachment and bind the curves.

    Raises ``InputValidationError`` for an unusable attachment and
    ``DegenerateGeometryError`` when a node transform is singular (e.g. a
    zero-scale node).  Returns a report with an error message when no
    surface is in reach.
    """
    validate_attachment(attachment)
    settings = attachment.settings
    mesh = attachment.mesh
    report = AttachmentReport(name=attachment.name)

    local_point = attachment.mesh_node.inverse_transform_point(
        attachment.object_node.world_position
    )
    cluster = detect_cluster(
        mesh,
        local_point,
        settings.cluster_triangle_count,
        settings.search_radius,
        settings.manual_triangle_index,
    )
    if cluster is None:
        report.error = "no surface within search radius"
        logger.warning("'%s': failed to detect surface cluster", attachment.name)
        return report
    report.cluster = cluster

    rest = sample_rest(mesh, cluster)
    if np.linalg.norm(rest.normal) < EPSILON:
        raise InputValidationError(f"'{attachment.name}': rest surface patch is degenerate")

    channels = select_channels(
        mesh,
        cluster,
        settings.tracking_mode,
        specific=settings.specific_blendshapes,
        threshold=settings.smart_detection_threshold,
    )
    if not channels:
        raise InputValidationError(f"'{attachment.name}': no blendshapes to track")
    report.tracked_channels = list(channels)

    target_path = attachment.object_node.relative_path(attachment.root)
    for channel in channels:
        try:
            curves = solve_channel(attachment, cluster, channel, rest)
        except CurveSynthesisError:
            logger.warning("'%s': no valid keyframes for blendshape %s", attachment.name, channel)
            report.skipped_channels.append(channel)
            continue
        name = clip_name_for(attachment, channel)
        sink.bind(name, target_path, curves)
        report.clip_names.append(name)
        logger.debug("'%s': generated %s with %d keyframes", attachment.name, name, curves.key_count)

    logger.info(
        "Processed '%s': %d animations, %d triangle cluster",
        attachment.name, len(report.clip_names), cluster.size,
    )
    return report


def process_attachments(
    attachments: Iterable[Attachment],
    sink: AnimationSink,
) -> list[AttachmentReport]:
    """Process a batch; one failing attachment never blocks the others."""
    reports = []
    for attachment in attachments:
        try:
            reports.append(process_attachment(attachment, sink))
        except AttachmentError as e:
            logger.error("Error processing '%s': %s", attachment.name, e)
            reports.append(AttachmentReport(name=attachment.name, error=str(e)))
    return reports
