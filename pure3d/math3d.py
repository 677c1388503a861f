"""Vector, quaternion and 4x4 matrix helpers shared by the animation code.

Matrices follow the row-vector convention used throughout the package: a
point transforms as ``p @ M``, translation lives in row 3, and ``A @ B``
applies ``A`` first. Quaternions are pyrr-style ``(x, y, z, w)``.
"""
from typing import Sequence, Tuple

import numpy as np
import pyrr


def vector_lerp(a, b, fraction: float) -> pyrr.Vector3:
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    return pyrr.Vector3(a * (1.0 - fraction) + b * fraction)


def quaternion_slerp(a, b, fraction: float) -> pyrr.Quaternion:
    """Shortest-arc spherical interpolation, result normalised."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    # pyrr's near-parallel lerp branch does not flip b
    if np.dot(a, b) < 0.0:
        b = -b

    result = np.asarray(pyrr.quaternion.slerp(a, b, fraction), dtype=np.float64)
    if pyrr.vector.length(result) > 0:
        result = pyrr.quaternion.normalize(result)
    return pyrr.Quaternion(result)


def matrix_from_quaternion(quat) -> np.ndarray:
    """Row-vector rotation matrix, p @ M rotates p by `quat`."""
    quat = np.asarray(quat, dtype=np.float64)
    if pyrr.vector.length(quat) > 0:
        quat = pyrr.quaternion.normalize(quat)
    # pyrr's create_from_quaternion is the column-vector form
    return pyrr.matrix44.create_from_inverse_of_quaternion(quat)


def quaternion_from_matrix(matrix) -> pyrr.Quaternion:
    """Rotation part of a row-vector matrix, any per-axis scale removed."""
    rows = np.array(matrix, dtype=np.float64)[:3, :3]
    lengths = np.linalg.norm(rows, axis=1)
    lengths[lengths == 0.0] = 1.0
    rotation = (rows / lengths[:, None]).T
    quat = np.asarray(pyrr.quaternion.create_from_matrix(rotation), dtype=np.float64)
    return pyrr.Quaternion(pyrr.quaternion.normalize(quat))


def translation_matrix(vec) -> np.ndarray:
    return pyrr.matrix44.create_from_translation(np.asarray(vec, dtype=np.float64))


def extract_translation(matrix) -> pyrr.Vector3:
    return pyrr.Vector3(np.array(matrix, dtype=np.float64)[3, :3])


def inverse_or_identity(matrix) -> np.ndarray:
    matrix = np.asarray(matrix, dtype=np.float64)
    if np.linalg.det(matrix) == 0:
        return pyrr.matrix44.create_identity(dtype=np.float64)
    return pyrr.matrix44.inverse(matrix)


def unpack_colour(packed: int) -> Tuple[float, float, float, float]:
    """Packed u32 colour, red in the low byte, to floats in [0, 1]."""
    return (
        (packed & 255) / 255.0,
        ((packed >> 8) & 255) / 255.0,
        ((packed >> 16) & 255) / 255.0,
        ((packed >> 24) & 255) / 255.0,
    )


def as_vector3(values: Sequence[float]) -> pyrr.Vector3:
    return pyrr.Vector3(np.asarray(values, dtype=np.float64))


def as_quaternion(values: Sequence[float]) -> pyrr.Quaternion:
    return pyrr.Quaternion(np.asarray(values, dtype=np.float64))
