"""Surface attachment solving: keep an object glued to a deforming mesh."""

from surfaceattach.attach.cluster import SurfaceCluster, detect_cluster
from surfaceattach.attach.curves import AnimationClip, ClipLibrary, CurveSet, synthesize_curves
from surfaceattach.attach.frames import LocalFrame, build_frame, resolve_frames
from surfaceattach.attach.pipeline import Attachment, process_attachment, process_attachments
from surfaceattach.attach.sampler import PoseSample, sample_channel
from surfaceattach.attach.solver import SolverMode, SolverResult, make_policy, solve_samples

__all__ = [
    "AnimationClip",
    "Attachment",
    "ClipLibrary",
    "CurveSet",
    "LocalFrame",
    "PoseSample",
    "SolverMode",
    "SolverResult",
    "SurfaceCluster",
    "build_frame",
    "detect_cluster",
    "make_policy",
    "process_attachment",
    "process_attachments",
    "resolve_frames",
    "sample_channel",
    "solve_samples",
    "synthesize_curves",
]
