"""Choosing which blendshape channels an attachment should follow."""

from __future__ import annotations

import logging
from enum import Enum

import numpy as np

from surfaceattach.attach.cluster import SurfaceCluster
from surfaceattach.attach.sampler import get_all_blendshape_names, sample_all_channels_at_weight
from surfaceattach.constants import DEFAULT_SMART_DETECTION_THRESHOLD, WEIGHT_MAX
from surfaceattach.core.mesh import BlendshapeMesh
from surfaceattach.errors import InputValidationError

logger = logging.getLogger(__name__)


class TrackingMode(Enum):
    ALL = "all"
    SPECIFIC = "specific"
    VISEMES = "visemes"
    SMART = "smart"

    @classmethod
    def parse(cls, value: "TrackingMode | str") -> "TrackingMode":
        if isinstance(value, cls):
            return value
        key = str(value).lower()
        if key in ("visemes_only", "visems_only"):
            key = "visemes"
        return cls(key)


STANDARD_VISEME_NAMES = (
    "vrc.v_sil", "vrc.v_pp", "vrc.v_ff", "vrc.v_th", "vrc.v_dd",
    "vrc.v_kk", "vrc.v_ch", "vrc.v_ss", "vrc.v_nn", "vrc.v_rr",
    "vrc.v_aa", "vrc.v_e", "vrc.v_i", "vrc.v_o", "vrc.v_u",
)

VISEME_ALIASES: dict[str, tuple[str, ...]] = {
    "sil": ("sil", "silence", "neutral"),
    "pp": ("pp", "p", "b", "m"),
    "ff": ("ff", "f", "v"),
    "th": ("th",),
    "dd": ("dd", "d", "t"),
    "kk": ("kk", "k", "g", "n", "ng"),
    "ch": ("ch", "sh", "j", "zh"),
    "ss": ("ss", "s", "z"),
    "nn": ("nn", "n", "l"),
    "rr": ("rr", "r"),
    "aa": ("aa", "ah"),
    "e": ("e", "eh"),
    "i": ("i", "ih"),
    "o": ("o", "oh"),
    "u": ("u", "ou"),
}


def is_viseme_name(name: str) -> bool:
    """Whether a blendshape name follows a viseme naming convention."""
    if not name:
        return False
    lower = name.lower()
    if any(standard in lower for standard in STANDARD_VISEME_NAMES):
        return True
    for aliases in VISEME_ALIASES.values():
        for alias in aliases:
            if (lower == alias
                    or f"_{alias}" in lower
                    or f".{alias}" in lower
                    or lower.startswith(f"{alias}_")):
                return True
    return False


def detect_active_channels(
    mesh: BlendshapeMesh,
    cluster: SurfaceCluster,
    threshold: float = DEFAULT_SMART_DETECTION_THRESHOLD,
) -> list[str]:
    """Channels that move the cluster by at least ``threshold`` at full weight."""
    displacements = sample_all_channels_at_weight(mesh, cluster, WEIGHT_MAX)
    active = []
    for name, offset in displacements.items():
        magnitude = float(np.linalg.norm(offset))
        if magnitude >= threshold:
            active.append(name)
        else:
            logger.debug("Channel %s moves cluster %.6f, below threshold", name, magnitude)
    return active


def select_channels(
    mesh: BlendshapeMesh,
    cluster: SurfaceCluster,
    mode: TrackingMode | str,
    specific: list[str] | None = None,
    threshold: float = DEFAULT_SMART_DETECTION_THRESHOLD,
) -> list[str]:
    """Resolve the tracking mode to an ordered list of channel names."""
    mode = TrackingMode.parse(mode)
    names = get_all_blendshape_names(mesh)

    if mode is TrackingMode.ALL:
        selected = names
    elif mode is TrackingMode.SPECIFIC:
        if not specific:
            raise InputValidationError("Specific tracking requires at least one blendshape name")
        selected = [n for n in specific if mesh.has_channel(n)]
        missing = [n for n in specific if not mesh.has_channel(n)]
        if missing:
            logger.warning("Blendshapes not found on '%s': %s", mesh.name, ", ".join(missing))
    elif mode is TrackingMode.VISEMES:
        selected = [n for n in names if is_viseme_name(n)]
    else:
        selected = detect_active_channels(mesh, cluster, threshold)

    logger.info("%s mode: tracking %d blendshapes", mode.value, len(selected))
    return selected
