"""Tests for keyframe curves, tracks and animation clips."""
import math
import os
import sys

import numpy as np
import pyrr
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pure3d.animation import Animation, KeyframeCurve, Track
from pure3d.math3d import (
    matrix_from_quaternion,
    quaternion_from_matrix,
    quaternion_slerp,
    unpack_colour,
)


def three_key_curve():
    curve = KeyframeCurve.vector()
    curve.add(0.0, pyrr.Vector3([0.0, 0.0, 0.0]))
    curve.add(1.0, pyrr.Vector3([1.0, 0.0, 0.0]))
    curve.add(2.0, pyrr.Vector3([2.0, 0.0, 0.0]))
    return curve


def z_rotation(degrees):
    half = math.radians(degrees) / 2.0
    return pyrr.Quaternion([0.0, 0.0, math.sin(half), math.cos(half)])


def test_interior_sample_wraps():
    """Should wrap 2.5 to 0.5 and interpolate between the first two keys."""
    np.testing.assert_allclose(np.asarray(three_key_curve().evaluate(2.5)), [0.5, 0.0, 0.0])


def test_sample_at_last_key_wraps_to_first():
    """Should return key 0 at exactly the last key time."""
    np.testing.assert_allclose(np.asarray(three_key_curve().evaluate(2.0)), [0.0, 0.0, 0.0])


def test_sample_on_a_key():
    """Should return the key value when the time lands on it."""
    np.testing.assert_allclose(np.asarray(three_key_curve().evaluate(1.0)), [1.0, 0.0, 0.0])
    np.testing.assert_allclose(np.asarray(three_key_curve().evaluate(1.25)), [1.25, 0.0, 0.0])


def test_single_key():
    """Should return the only value for any time."""
    curve = KeyframeCurve.vector()
    value = pyrr.Vector3([3.0, 4.0, 5.0])
    curve.add(0.0, value)
    for time in (0.0, 0.5, 7.0, -3.0):
        np.testing.assert_allclose(np.asarray(curve.evaluate(time)), np.asarray(value))


def test_keys_all_at_frame_zero_return_first():
    """Should return the first key when every key sits at frame 0."""
    curve = KeyframeCurve.vector()
    curve.add(0.0, pyrr.Vector3([1.0, 0.0, 0.0]))
    curve.add(0.0, pyrr.Vector3([2.0, 0.0, 0.0]))
    curve.add(0.0, pyrr.Vector3([3.0, 0.0, 0.0]))
    for time in (0.0, 0.5, 4.0, -1.0):
        np.testing.assert_allclose(np.asarray(curve.evaluate(time)), [1.0, 0.0, 0.0])


def test_empty_curve_returns_default():
    """Should hand back the caller's default when there are no keys."""
    default = pyrr.Vector3([9.0, 9.0, 9.0])
    assert KeyframeCurve.vector().evaluate(1.0, default) is default
    assert KeyframeCurve.vector().evaluate(1.0) is None


def test_negative_time_clamps_to_first_key():
    """Should keep the dividend's sign when wrapping, then clamp to key 0."""
    curve = KeyframeCurve.vector()
    curve.add(1.0, pyrr.Vector3([1.0, 0.0, 0.0]))
    curve.add(3.0, pyrr.Vector3([3.0, 0.0, 0.0]))
    np.testing.assert_allclose(np.asarray(curve.evaluate(-0.5)), [1.0, 0.0, 0.0])
    np.testing.assert_allclose(np.asarray(curve.evaluate(0.5)), [1.0, 0.0, 0.0])


def test_duplicate_key_times():
    """Should interpolate from the last of several keys sharing a time."""
    curve = KeyframeCurve.vector()
    curve.add(0.0, pyrr.Vector3([0.0, 0.0, 0.0]))
    curve.add(1.0, pyrr.Vector3([1.0, 0.0, 0.0]))
    curve.add(1.0, pyrr.Vector3([5.0, 0.0, 0.0]))
    curve.add(2.0, pyrr.Vector3([6.0, 0.0, 0.0]))
    np.testing.assert_allclose(np.asarray(curve.evaluate(1.5)), [5.5, 0.0, 0.0])
    np.testing.assert_allclose(np.asarray(curve.evaluate(0.5)), [0.5, 0.0, 0.0])


def test_rotation_curve_slerps():
    """Should slerp rotations so the halfway point is a 45 degree turn."""
    curve = KeyframeCurve.rotation()
    curve.add(0.0, z_rotation(0.0))
    curve.add(10.0, z_rotation(90.0))
    curve.add(20.0, z_rotation(0.0))
    np.testing.assert_allclose(np.asarray(curve.evaluate(5.0)), np.asarray(z_rotation(45.0)), atol=1e-6)


def test_slerp_takes_shortest_arc():
    """Should flip the target when the quaternions are in opposite hemispheres."""
    a = z_rotation(10.0)
    b = -np.asarray(z_rotation(30.0))
    result = quaternion_slerp(a, b, 0.5)
    np.testing.assert_allclose(np.asarray(result), np.asarray(z_rotation(20.0)), atol=1e-6)
    assert np.linalg.norm(np.asarray(result)) == pytest.approx(1.0)


def test_slerp_close_rotations_in_opposite_hemispheres():
    """Should stay on the short arc and return a unit quaternion for nearly equal rotations."""
    a = z_rotation(10.0)
    b = -np.asarray(z_rotation(12.0))
    result = quaternion_slerp(a, b, 0.5)
    np.testing.assert_allclose(np.asarray(result), np.asarray(z_rotation(11.0)), atol=1e-5)
    assert np.linalg.norm(np.asarray(result)) == pytest.approx(1.0)


def test_slerp_end_points():
    """Should return the end quaternions at fractions 0 and 1."""
    a = z_rotation(0.0)
    b = z_rotation(90.0)
    np.testing.assert_allclose(np.asarray(quaternion_slerp(a, b, 0.0)), np.asarray(a), atol=1e-6)
    np.testing.assert_allclose(np.asarray(quaternion_slerp(a, b, 1.0)), np.asarray(b), atol=1e-6)


def test_quaternion_matrix_round_trip():
    """Should rotate row vectors the right way and recover the quaternion."""
    quat = z_rotation(90.0)
    m = matrix_from_quaternion(quat)
    # +X turns into +Y for a positive turn about Z
    np.testing.assert_allclose(np.array([1.0, 0.0, 0.0, 1.0]) @ m, [0.0, 1.0, 0.0, 1.0], atol=1e-6)
    np.testing.assert_allclose(np.asarray(quaternion_from_matrix(m)), np.asarray(quat), atol=1e-6)


def test_rotation_about_diagonal_axis():
    """Should cycle the axes X to Y to Z for a 120 degree turn about (1, 1, 1)."""
    half = math.radians(120.0) / 2.0
    axis = np.array([1.0, 1.0, 1.0]) / math.sqrt(3.0)
    quat = np.append(axis * math.sin(half), math.cos(half))
    m = matrix_from_quaternion(quat)
    np.testing.assert_allclose(np.array([1.0, 0.0, 0.0, 1.0]) @ m, [0.0, 1.0, 0.0, 1.0], atol=1e-6)
    np.testing.assert_allclose(np.array([0.0, 1.0, 0.0, 1.0]) @ m, [0.0, 0.0, 1.0, 1.0], atol=1e-6)


def test_general_axis_round_trip():
    """Should recover a quaternion about an arbitrary axis from its matrix."""
    half = math.radians(60.0) / 2.0
    axis = np.array([1.0, 2.0, 3.0]) / math.sqrt(14.0)
    quat = np.append(axis * math.sin(half), math.cos(half))
    m = matrix_from_quaternion(quat)
    np.testing.assert_allclose(np.asarray(quaternion_from_matrix(m)), quat, atol=1e-6)
    # the axis is fixed by its own rotation
    np.testing.assert_allclose(np.append(axis, 1.0) @ m, np.append(axis, 1.0), atol=1e-6)


def test_matrix_from_unnormalised_quaternion():
    """Should normalise the quaternion before building the matrix."""
    quat = z_rotation(90.0)
    np.testing.assert_allclose(
        matrix_from_quaternion(np.asarray(quat) * 3.0), matrix_from_quaternion(quat), atol=1e-6
    )


def test_quaternion_from_scaled_matrix():
    """Should strip per-axis scale before reading the rotation."""
    quat = z_rotation(60.0)
    m = matrix_from_quaternion(quat)
    m[:3, :3] *= np.array([[2.0], [3.0], [0.5]])
    np.testing.assert_allclose(np.asarray(quaternion_from_matrix(m)), np.asarray(quat), atol=1e-6)


def test_unpack_colour():
    """Should treat the low byte as red."""
    assert unpack_colour(0xFF0000FF) == (1.0, 0.0, 0.0, 1.0)
    assert unpack_colour(0x0000FF00) == (0.0, 1.0, 0.0, 0.0)


def test_track_local_transform_rotates_then_translates():
    """Should apply the rotation before the translation."""
    track = Track("hip")
    track.position.add(0.0, pyrr.Vector3([5.0, 0.0, 0.0]))
    track.rotation.add(0.0, z_rotation(90.0))
    m = track.local_transform(0.0)
    np.testing.assert_allclose(np.array([1.0, 0.0, 0.0, 1.0]) @ m, [5.0, 1.0, 0.0, 1.0], atol=1e-6)


def test_track_ignores_scale():
    """Should sample scale without folding it into the matrix."""
    track = Track("hip")
    track.scale.add(0.0, pyrr.Vector3([2.0, 2.0, 2.0]))
    _, _, scale = track.sample(0.0)
    np.testing.assert_allclose(np.asarray(scale), [2.0, 2.0, 2.0])
    np.testing.assert_allclose(track.local_transform(0.0), np.identity(4))


def test_animation_length_and_frames():
    """Should derive the length in seconds and convert seconds to frames."""
    clip = Animation("walk", frame_count=30, frame_rate=15.0)
    assert clip.length == 2.0
    assert clip.frame_at(0.5) == 7.5
    assert Animation("still", frame_count=10, frame_rate=0.0).length == 0.0
