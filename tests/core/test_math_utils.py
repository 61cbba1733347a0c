"""Tests for math_utils module."""

import numpy as np
import pytest

from surfaceattach.core.math_utils import (
    vec3, mat4_identity, mat4_translation, mat4_compose, mat4_inverse,
    mat3_from_quaternion, mat3_to_quat, quat_from_basis,
    quat_identity, quat_from_axis_angle, quat_multiply, quat_conjugate,
    quat_normalize, quat_slerp, quat_rotate_vec3, quat_same_hemisphere, quat_angle,
    normalize, project_onto_plane, clamp, transform_point, transform_direction,
    transform_normal,
)


def test_vec3():
    v = vec3(1, 2, 3)
    assert v.shape == (3,)
    np.testing.assert_array_equal(v, [1, 2, 3])


def test_mat4_translation():
    m = mat4_translation(1, 2, 3)
    p = transform_point(m, vec3(0, 0, 0))
    np.testing.assert_array_almost_equal(p, [1, 2, 3])


def test_mat4_compose_uniform_scale():
    m = mat4_compose(vec3(1, 2, 3), quat_identity(), vec3(2, 2, 2))
    p = transform_point(m, vec3(1, 0, 0))
    np.testing.assert_array_almost_equal(p, [3, 2, 3])


def test_mat4_compose_scales_before_rotating():
    q = quat_from_axis_angle(vec3(0, 0, 1), np.pi / 2)
    m = mat4_compose(vec3(0, 0, 0), q, vec3(2, 1, 1))
    p = transform_point(m, vec3(1, 0, 0))
    np.testing.assert_array_almost_equal(p, [0, 2, 0], decimal=10)


def test_mat4_inverse():
    m = mat4_translation(5, 10, 15)
    np.testing.assert_array_almost_equal(m @ mat4_inverse(m), mat4_identity(), decimal=10)


def test_transform_direction_ignores_translation():
    m = mat4_translation(5, 5, 5)
    np.testing.assert_array_almost_equal(transform_direction(m, vec3(0, 1, 0)), [0, 1, 0])


def test_transform_normal_under_nonuniform_scale():
    m = mat4_compose(vec3(0, 0, 0), quat_identity(), vec3(1, 4, 1))
    # A 45-degree slope in XY; scaling Y stretches the surface, the normal tilts toward X
    n = transform_normal(m, normalize(vec3(1, 1, 0)))
    tangent = transform_direction(m, normalize(vec3(1, -1, 0)))
    assert abs(np.dot(n, tangent)) < 1e-10
    assert abs(np.linalg.norm(n) - 1.0) < 1e-10


@pytest.mark.parametrize("axis, angle", [
    ((1, 0, 0), 0.3),
    ((0, 1, 0), 2.0),
    ((1, 0, 0), np.pi),
    ((0, 1, 0), np.pi),
    ((0, 0, 1), np.pi),
    ((1, 2, 3), 1.1),
])
def test_mat3_to_quat_matches_source(axis, angle):
    q = quat_from_axis_angle(vec3(*axis), angle)
    back = mat3_to_quat(mat3_from_quaternion(q))
    assert quat_angle(q, back) < 1e-6


def test_quat_from_basis_identity():
    q = quat_from_basis(vec3(1, 0, 0), vec3(0, 1, 0), vec3(0, 0, 1))
    np.testing.assert_array_almost_equal(q, quat_identity())


def test_quat_from_basis_maps_axes():
    t = normalize(vec3(1, 0, 1))
    n = vec3(0, 1, 0)
    b = np.cross(n, t)
    q = quat_from_basis(t, b, n)
    np.testing.assert_array_almost_equal(quat_rotate_vec3(q, vec3(1, 0, 0)), t)
    np.testing.assert_array_almost_equal(quat_rotate_vec3(q, vec3(0, 0, 1)), n)


def test_quat_from_axis_angle():
    q = quat_from_axis_angle(vec3(0, 1, 0), np.pi / 2)
    v = quat_rotate_vec3(q, vec3(0, 0, 1))
    np.testing.assert_array_almost_equal(v, [1, 0, 0], decimal=10)


def test_quat_multiply_identity():
    q = quat_from_axis_angle(vec3(1, 0, 0), 0.5)
    np.testing.assert_array_almost_equal(quat_multiply(q, quat_identity()), q)


def test_quat_conjugate_inverts():
    q = quat_from_axis_angle(vec3(1, 1, 0), 0.7)
    np.testing.assert_array_almost_equal(quat_multiply(q, quat_conjugate(q)), quat_identity())


def test_quat_normalize_zero():
    np.testing.assert_array_equal(quat_normalize(np.zeros(4)), quat_identity())


def test_quat_slerp_endpoints():
    a = quat_identity()
    b = quat_from_axis_angle(vec3(0, 1, 0), np.pi / 2)
    np.testing.assert_array_almost_equal(quat_slerp(a, b, 0.0), a)
    np.testing.assert_array_almost_equal(quat_slerp(a, b, 1.0), b)


def test_quat_slerp_midpoint():
    a = quat_identity()
    b = quat_from_axis_angle(vec3(0, 1, 0), np.pi)
    mid = quat_slerp(a, b, 0.5)
    v = quat_rotate_vec3(mid, vec3(0, 0, 1))
    np.testing.assert_array_almost_equal(v, [1, 0, 0], decimal=5)


def test_quat_same_hemisphere():
    q = quat_from_axis_angle(vec3(0, 0, 1), 0.4)
    np.testing.assert_array_equal(quat_same_hemisphere(-q, q), q)
    np.testing.assert_array_equal(quat_same_hemisphere(q, q), q)


def test_quat_angle():
    a = quat_identity()
    b = quat_from_axis_angle(vec3(1, 0, 0), 0.5)
    assert abs(quat_angle(a, b) - 0.5) < 1e-9
    assert quat_angle(b, -b) < 1e-6


def test_normalize():
    np.testing.assert_array_almost_equal(normalize(vec3(3, 0, 0)), [1, 0, 0])


def test_normalize_zero():
    np.testing.assert_array_equal(normalize(vec3(0, 0, 0)), [0, 0, 0])


def test_project_onto_plane():
    v = project_onto_plane(vec3(1, 2, 3), vec3(0, 1, 0))
    np.testing.assert_array_almost_equal(v, [1, 0, 3])


def test_clamp():
    assert clamp(5, 0, 10) == 5
    assert clamp(-1, 0, 10) == 0
    assert clamp(15, 0, 10) == 10
