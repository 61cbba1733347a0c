"""JSON settings loading for attachment solving."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from surfaceattach.constants import (
    DEFAULT_CLUSTER_TRIANGLE_COUNT,
    DEFAULT_NORMAL_OFFSET,
    DEFAULT_RBF_DRIVER_POINT_COUNT,
    DEFAULT_RBF_RADIUS_MULTIPLIER,
    DEFAULT_SAMPLES_PER_BLENDSHAPE,
    DEFAULT_SEARCH_RADIUS,
    DEFAULT_SMART_DETECTION_THRESHOLD,
    DEFAULT_SMOOTHING_FACTOR,
)
from surfaceattach.errors import InputValidationError

logger = logging.getLogger(__name__)

SOLVER_MODES = ("rigid", "rigid_normal_offset", "affine", "cage_rbf")
TRACKING_MODES = ("all", "specific", "visemes", "visemes_only", "visems_only", "smart")


def load_json(path: Path) -> Any:
    """Load and return parsed JSON from a file."""
    with open(path) as f:
        return json.load(f)


@dataclass
class AttachmentSettings:
    """Per-attachment solver configuration.

    ``solver_mode`` and ``tracking_mode`` are stored as lower-case strings
    ("rigid", "rigid_normal_offset", "affine", "cage_rbf" and "all",
    "specific", "visemes", "smart") and resolved to enums by the pipeline.
    """
    cluster_triangle_count: int = DEFAULT_CLUSTER_TRIANGLE_COUNT
    search_radius: float = DEFAULT_SEARCH_RADIUS
    manual_triangle_index: int = -1

    solver_mode: str = "rigid"
    align_rotation: bool = True
    normal_offset: float = DEFAULT_NORMAL_OFFSET
    smoothing_factor: float = DEFAULT_SMOOTHING_FACTOR

    samples_per_blendshape: int = DEFAULT_SAMPLES_PER_BLENDSHAPE

    tracking_mode: str = "smart"
    specific_blendshapes: list[str] = field(default_factory=list)
    smart_detection_threshold: float = DEFAULT_SMART_DETECTION_THRESHOLD

    rbf_driver_point_count: int = DEFAULT_RBF_DRIVER_POINT_COUNT
    rbf_radius_multiplier: float = DEFAULT_RBF_RADIUS_MULTIPLIER

    def __post_init__(self):
        self.solver_mode = _snake(str(self.solver_mode))
        self.tracking_mode = _snake(str(self.tracking_mode))
        self.validate()

    def validate(self) -> None:
        """Raise ``InputValidationError`` for out-of-range values."""
        problems = []
        if self.cluster_triangle_count < 1:
            problems.append("cluster_triangle_count must be >= 1")
        if self.search_radius < 0:
            problems.append("search_radius must be >= 0 (0 = unlimited)")
        if self.samples_per_blendshape < 1:
            problems.append("samples_per_blendshape must be >= 1")
        if not 0.0 <= self.smoothing_factor <= 1.0:
            problems.append("smoothing_factor must be within [0, 1]")
        if self.normal_offset < 0:
            problems.append("normal_offset must be >= 0")
        if self.smart_detection_threshold <= 0:
            problems.append("smart_detection_threshold must be > 0")
        if self.rbf_driver_point_count < 1:
            problems.append("rbf_driver_point_count must be >= 1")
        if self.rbf_radius_multiplier <= 0:
            problems.append("rbf_radius_multiplier must be > 0")
        if self.solver_mode not in SOLVER_MODES:
            problems.append(f"unknown solver_mode '{self.solver_mode}'")
        if self.tracking_mode not in TRACKING_MODES:
            problems.append(f"unknown tracking_mode '{self.tracking_mode}'")
        if problems:
            raise InputValidationError("; ".join(problems))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AttachmentSettings":
        """Build settings from a dict with snake_case or camelCase keys."""
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _snake(key)
            name = _ALIASES.get(name, name)
            if name not in known:
                logger.warning("Ignoring unknown attachment setting: %s", key)
                continue
            kwargs[name] = value
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def load_settings(path: Path) -> AttachmentSettings:
    """Load ``AttachmentSettings`` from a JSON object file."""
    data = load_json(Path(path))
    if not isinstance(data, dict):
        raise InputValidationError(f"Settings file {path} must contain a JSON object")
    return AttachmentSettings.from_dict(data)


def load_settings_table(path: Path) -> dict[str, AttachmentSettings]:
    """Load ``{"attachments": {name: settings, ...}}`` keyed by attachment name.

    A top-level ``"defaults"`` object is merged under every entry.
    """
    data = load_json(Path(path))
    defaults = data.get("defaults", {})
    table = {}
    for name, entry in data.get("attachments", {}).items():
        merged = dict(defaults)
        merged.update(entry)
        table[name] = AttachmentSettings.from_dict(merged)
    return table


# Field names used by the editor component
_ALIASES = {
    "align_rotation_to_surface": "align_rotation",
    "rotation_smoothing_factor": "smoothing_factor",
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def _snake(name: str) -> str:
    """``alignRotationToSurface`` / ``RigidNormalOffset`` -> snake_case."""
    return _CAMEL_BOUNDARY.sub("_", name).replace("-", "_").lower()
