"""Curve synthesis: solved samples -> per-axis animation curves.

Seven scalar curves (position x/y/z, rotation x/y/z/w) keyed by the
normalized blendshape weight.  How a host interpolates between keys is
up to the host; ``AnimationCurve.evaluate`` is plain linear.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Protocol

import numpy as np

from surfaceattach.constants import CURVE_PROPERTIES, WEIGHT_MAX
from surfaceattach.core.math_utils import as_vec3, quat_normalize, quat_same_hemisphere
from surfaceattach.errors import CurveSynthesisError

logger = logging.getLogger(__name__)


# ── Data classes ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class CurveKey:
    time: float
    value: float


@dataclass
class AnimationCurve:
    """Scalar keys with strictly increasing time."""

    keys: list[CurveKey] = field(default_factory=list)

    def add_key(self, time: float, value: float) -> None:
        if self.keys and time <= self.keys[-1].time:
            raise ValueError(f"Key time {time} does not follow {self.keys[-1].time}")
        self.keys.append(CurveKey(float(time), float(value)))

    @property
    def times(self) -> list[float]:
        return [k.time for k in self.keys]

    @property
    def values(self) -> list[float]:
        return [k.value for k in self.keys]

    def evaluate(self, t: float) -> float:
        """Linear interpolation, clamped to the first/last key."""
        if not self.keys:
            return 0.0
        return float(np.interp(t, self.times, self.values))

    def __len__(self) -> int:
        return len(self.keys)


@dataclass
class CurveSet:
    """The seven transform curves of one attachment/channel pair."""

    curves: dict[str, AnimationCurve] = field(
        default_factory=lambda: {name: AnimationCurve() for name in CURVE_PROPERTIES}
    )

    def __getitem__(self, prop: str) -> AnimationCurve:
        return self.curves[prop]

    @property
    def properties(self) -> list[str]:
        return list(self.curves.keys())

    @property
    def key_count(self) -> int:
        return len(next(iter(self.curves.values()))) if self.curves else 0

    def evaluate(self, t: float) -> tuple[np.ndarray, np.ndarray]:
        """(position, rotation) at normalized weight ``t``."""
        position = np.array([self.curves[p].evaluate(t) for p in CURVE_PROPERTIES[:3]])
        rotation = quat_normalize(
            np.array([self.curves[p].evaluate(t) for p in CURVE_PROPERTIES[3:]])
        )
        return position, rotation


@dataclass
class AnimationClip:
    """Curves bound to a target path, as handed to an animation sink."""

    name: str = ""
    target_path: str = ""
    curves: CurveSet = field(default_factory=CurveSet)

    @property
    def duration(self) -> float:
        curve = next(iter(self.curves.curves.values()), None)
        if curve is None or not curve.keys:
            return 0.0
        return curve.keys[-1].time

    @property
    def keyframe_count(self) -> int:
        return self.curves.key_count


# ── Synthesis ────────────────────────────────────────────────────────

def synthesize_curves(samples: Iterable) -> CurveSet:
    """Build seven curves from ``(weight, position, rotation)`` samples.

    ``weight`` is on the 0..100 scale and must strictly increase; keys are
    placed at ``weight / 100``.  Each rotation is sign-matched to the one
    before it so component-wise interpolation stays on the short arc.
    Raises ``CurveSynthesisError`` when there are no samples.
    """
    curve_set = CurveSet()
    previous_rotation = None
    count = 0
    for sample in samples:
        weight, position, rotation = _unpack(sample)
        rotation = quat_normalize(np.asarray(rotation, dtype=np.float64))
        if previous_rotation is not None:
            rotation = quat_same_hemisphere(rotation, previous_rotation)
        previous_rotation = rotation

        t = float(weight) / WEIGHT_MAX
        values = np.concatenate([as_vec3(position), rotation])
        for prop, value in zip(CURVE_PROPERTIES, values):
            curve_set[prop].add_key(t, value)
        count += 1

    if count == 0:
        raise CurveSynthesisError("No valid samples to synthesize curves from")
    return curve_set


def _unpack(sample) -> tuple:
    if hasattr(sample, "weight"):
        return sample.weight, sample.position, sample.rotation
    weight, position, rotation = sample
    return weight, position, rotation


# ── Animation sink ───────────────────────────────────────────────────

class AnimationSink(Protocol):
    """Receives synthesized curves for a target path."""

    def bind(self, clip_name: str, target_path: str, curves: CurveSet) -> None:
        ...


class ClipLibrary:
    """In-memory sink collecting one ``AnimationClip`` per bind call."""

    def __init__(self) -> None:
        self._clips: dict[str, AnimationClip] = {}

    def bind(self, clip_name: str, target_path: str, curves: CurveSet) -> None:
        if clip_name in self._clips:
            logger.info("Replacing existing clip %s", clip_name)
        self._clips[clip_name] = AnimationClip(name=clip_name, target_path=target_path, curves=curves)

    def get(self, clip_name: str) -> AnimationClip | None:
        return self._clips.get(clip_name)

    @property
    def clips(self) -> list[AnimationClip]:
        return list(self._clips.values())

    @property
    def names(self) -> list[str]:
        return list(self._clips.keys())

    def __contains__(self, clip_name: str) -> bool:
        return clip_name in self._clips

    def __len__(self) -> int:
        return len(self._clips)
