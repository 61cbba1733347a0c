"""Tests for scene graph module."""

import numpy as np
import pytest

from surfaceattach.core.scene_graph import TransformNode
from surfaceattach.core.math_utils import (
    vec3, quat_identity, quat_from_axis_angle, quat_angle, quat_multiply,
)
from surfaceattach.errors import DegenerateGeometryError


def _make_chain():
    root = TransformNode(name="Avatar")
    body = TransformNode(name="Body", position=(0, 1, 0))
    head = TransformNode(name="Head", position=(0, 0.5, 0),
                         quaternion=quat_from_axis_angle(vec3(0, 1, 0), np.pi / 2))
    root.add(body)
    body.add(head)
    return root, body, head


def test_node_hierarchy():
    parent = TransformNode(name="parent")
    child = TransformNode(name="child")
    parent.add(child)
    assert child.parent is parent
    assert child in parent.children


def test_node_remove():
    parent = TransformNode(name="parent")
    child = TransformNode(name="child")
    parent.add(child)
    parent.remove(child)
    assert child.parent is None
    assert child not in parent.children


def test_node_reparent():
    p1 = TransformNode(name="p1")
    p2 = TransformNode(name="p2")
    child = TransformNode(name="child")
    p1.add(child)
    p2.add(child)  # Should remove from p1
    assert child.parent is p2
    assert child not in p1.children
    assert child in p2.children


def test_find():
    root, body, head = _make_chain()
    assert root.find("Head") is head
    assert root.find("missing") is None


def test_root():
    root, body, head = _make_chain()
    assert head.root() is root
    assert root.root() is root


class TestRelativePath:
    def test_default_root(self):
        root, body, head = _make_chain()
        assert head.relative_path() == "Body/Head"

    def test_explicit_root(self):
        root, body, head = _make_chain()
        assert head.relative_path(body) == "Head"

    def test_root_itself(self):
        root, _, _ = _make_chain()
        assert root.relative_path() == ""


class TestWorldTransform:
    def test_world_position_accumulates(self):
        _, _, head = _make_chain()
        np.testing.assert_array_almost_equal(head.world_position, [0, 1.5, 0])

    def test_world_rotation_composes(self):
        root, body, head = _make_chain()
        body.set_quaternion(quat_from_axis_angle(vec3(1, 0, 0), 0.3))
        expected = quat_multiply(body.quaternion, head.quaternion)
        assert quat_angle(head.world_rotation, expected) < 1e-6

    def test_transform_point_roundtrip(self):
        _, body, head = _make_chain()
        body.set_scale(2, 1, 0.5)
        p = vec3(0.3, -0.2, 0.7)
        world = head.transform_point(p)
        np.testing.assert_array_almost_equal(head.inverse_transform_point(world), p)

    def test_transform_point_rotates(self):
        _, _, head = _make_chain()
        # 90 degrees about Y maps local +Z to world +X
        np.testing.assert_array_almost_equal(
            head.transform_point(vec3(0, 0, 1)), [1, 1.5, 0], decimal=10,
        )

    def test_transform_direction_ignores_translation(self):
        node = TransformNode(name="n", position=(5, 5, 5), scale=(2, 2, 2))
        np.testing.assert_array_almost_equal(node.transform_direction(vec3(1, 0, 0)), [2, 0, 0])

    def test_transform_normal_stays_unit(self):
        node = TransformNode(name="n", scale=(1, 3, 1))
        n = node.transform_normal(vec3(0, 1, 0))
        np.testing.assert_array_almost_equal(n, [0, 1, 0])

    def test_rotate_to_world_ignores_scale(self):
        node = TransformNode(name="n", scale=(4, 4, 4),
                             quaternion=quat_from_axis_angle(vec3(0, 0, 1), np.pi / 2))
        np.testing.assert_array_almost_equal(node.rotate_to_world(vec3(1, 0, 0)), [0, 1, 0])

    def test_world_to_local_rotation(self):
        _, body, head = _make_chain()
        body.set_quaternion(quat_from_axis_angle(vec3(0, 0, 1), 0.4))
        local = body.world_to_local_rotation(head.world_rotation)
        assert quat_angle(local, head.quaternion) < 1e-6


def test_setters_return_self():
    node = TransformNode(name="n")
    assert node.set_position(1, 2, 3) is node
    assert node.set_scale(1, 1, 1) is node
    assert node.set_quaternion(quat_identity()) is node
    np.testing.assert_array_equal(node.position, [1, 2, 3])


def test_quaternion_normalized_on_set():
    node = TransformNode(name="n", quaternion=(0, 0, 0, 2))
    np.testing.assert_array_almost_equal(node.quaternion, quat_identity())


def test_repr():
    assert repr(TransformNode(name="Earring")) == "TransformNode('Earring')"


class TestSingularTransform:
    def test_inverse_of_zero_scale_node(self):
        node = TransformNode(name="Hidden", scale=(0, 0, 0))
        with pytest.raises(DegenerateGeometryError, match="Hidden"):
            node.inverse_transform_point(vec3(1, 2, 3))

    def test_inverse_under_zero_scale_parent(self):
        parent = TransformNode(name="Toggle", scale=(1, 0, 1))
        child = TransformNode(name="Child", position=(0, 1, 0))
        parent.add(child)
        with pytest.raises(DegenerateGeometryError):
            child.inverse_transform_point(vec3(0, 0, 0))

    def test_normal_of_zero_scale_node(self):
        node = TransformNode(name="Hidden", scale=(0, 0, 0))
        with pytest.raises(DegenerateGeometryError):
            node.transform_normal(vec3(0, 1, 0))

    def test_forward_transforms_still_work(self):
        node = TransformNode(name="Hidden", position=(1, 2, 3), scale=(0, 0, 0))
        np.testing.assert_array_almost_equal(node.transform_point(vec3(5, 5, 5)), [1, 2, 3])
