"""Tests for curve synthesis and the clip library sink."""

import numpy as np
import pytest

from surfaceattach.attach.curves import (
    AnimationClip, AnimationCurve, ClipLibrary, CurveSet, synthesize_curves,
)
from surfaceattach.attach.solver import SolvedSample
from surfaceattach.constants import CURVE_PROPERTIES
from surfaceattach.core.math_utils import quat_from_axis_angle, quat_identity, vec3
from surfaceattach.errors import CurveSynthesisError


def _make_samples(weights, axis=(0, 1, 0)):
    return [
        SolvedSample(w, vec3(w / 100.0, 0.0, 0.0), quat_from_axis_angle(vec3(*axis), w / 100.0))
        for w in weights
    ]


class TestAnimationCurve:
    def test_keys_must_increase(self):
        curve = AnimationCurve()
        curve.add_key(0.0, 1.0)
        curve.add_key(0.5, 2.0)
        with pytest.raises(ValueError):
            curve.add_key(0.5, 3.0)
        with pytest.raises(ValueError):
            curve.add_key(0.2, 3.0)
        assert len(curve) == 2

    def test_evaluate_linear(self):
        curve = AnimationCurve()
        curve.add_key(0.0, 0.0)
        curve.add_key(1.0, 10.0)
        assert curve.evaluate(0.25) == pytest.approx(2.5)

    def test_evaluate_clamps(self):
        curve = AnimationCurve()
        curve.add_key(0.2, 1.0)
        curve.add_key(0.8, 3.0)
        assert curve.evaluate(0.0) == pytest.approx(1.0)
        assert curve.evaluate(1.0) == pytest.approx(3.0)

    def test_empty_evaluates_zero(self):
        assert AnimationCurve().evaluate(0.5) == 0.0


class TestSynthesizeCurves:
    def test_seven_curves(self):
        curves = synthesize_curves(_make_samples([0, 50, 100]))
        assert curves.properties == list(CURVE_PROPERTIES)

    def test_key_per_sample_at_normalized_weight(self):
        curves = synthesize_curves(_make_samples([0, 25, 50, 75, 100]))
        for prop in CURVE_PROPERTIES:
            assert curves[prop].times == pytest.approx([0.0, 0.25, 0.5, 0.75, 1.0])
        assert curves.key_count == 5

    def test_values(self):
        curves = synthesize_curves(_make_samples([0, 100]))
        assert curves["position.x"].values == pytest.approx([0.0, 1.0])
        q = quat_from_axis_angle(vec3(0, 1, 0), 1.0)
        assert curves["rotation.y"].values[-1] == pytest.approx(q[1])
        assert curves["rotation.w"].values[-1] == pytest.approx(q[3])

    def test_accepts_tuples(self):
        curves = synthesize_curves([
            (0.0, [0, 0, 0], quat_identity()),
            (100.0, [0, 1, 0], quat_identity()),
        ])
        assert curves["position.y"].values == pytest.approx([0.0, 1.0])

    def test_empty_raises(self):
        with pytest.raises(CurveSynthesisError):
            synthesize_curves([])

    def test_gap_in_weights_is_kept(self):
        curves = synthesize_curves(_make_samples([0, 10, 20, 30, 40, 50, 60, 80, 90, 100]))
        assert curves.key_count == 10
        assert 0.7 not in curves["position.x"].times

    def test_non_increasing_weights_rejected(self):
        with pytest.raises(ValueError):
            synthesize_curves(_make_samples([0, 50, 50]))

    def test_hemisphere_continuity(self):
        q0 = quat_from_axis_angle(vec3(0, 0, 1), 0.2)
        q1 = quat_from_axis_angle(vec3(0, 0, 1), 0.3)
        curves = synthesize_curves([
            (0.0, vec3(), q0),
            (100.0, vec3(), -q1),
        ])
        rot = np.array([[curves[p].values[i] for p in CURVE_PROPERTIES[3:]] for i in range(2)])
        assert np.dot(rot[0], rot[1]) > 0
        np.testing.assert_array_almost_equal(rot[1], q1)

    def test_rotations_normalized(self):
        curves = synthesize_curves([(0.0, vec3(), np.array([0.0, 0.0, 0.0, 2.0]))])
        assert curves["rotation.w"].values == pytest.approx([1.0])

    def test_evaluate_curve_set(self):
        curves = synthesize_curves(_make_samples([0, 100]))
        position, rotation = curves.evaluate(0.5)
        np.testing.assert_array_almost_equal(position, [0.5, 0, 0])
        assert np.linalg.norm(rotation) == pytest.approx(1.0)


class TestClipLibrary:
    def test_bind_and_get(self):
        library = ClipLibrary()
        curves = synthesize_curves(_make_samples([0, 50, 100]))
        library.bind("AttachBlendshape_Earring_Smile", "Head/Earring", curves)
        clip = library.get("AttachBlendshape_Earring_Smile")
        assert isinstance(clip, AnimationClip)
        assert clip.target_path == "Head/Earring"
        assert clip.keyframe_count == 3
        assert clip.duration == pytest.approx(1.0)
        assert "AttachBlendshape_Earring_Smile" in library
        assert len(library) == 1

    def test_rebind_replaces(self):
        library = ClipLibrary()
        library.bind("clip", "a", synthesize_curves(_make_samples([0, 100])))
        library.bind("clip", "b", synthesize_curves(_make_samples([0, 50, 100])))
        assert len(library) == 1
        assert library.get("clip").target_path == "b"
        assert library.names == ["clip"]

    def test_missing_clip(self):
        assert ClipLibrary().get("nothing") is None


def test_empty_clip_duration():
    clip = AnimationClip(name="empty", curves=CurveSet())
    assert clip.duration == 0.0
    assert clip.keyframe_count == 0
