import bisect
import math
from dataclasses import dataclass, field
from typing import Callable, List

import numpy as np
import pyrr

from pure3d.math3d import (
    matrix_from_quaternion,
    quaternion_slerp,
    translation_matrix,
    vector_lerp,
)


class KeyframeCurve:
    """Sparse (time, value) keys sampled with a wrapping, clamped lookup.

    Times are frame numbers. Sampling wraps the time by the last key time,
    so a curve loops on its own length.
    """

    def __init__(self, interpolate: Callable = vector_lerp):
        self.interpolate = interpolate
        self.times: List[float] = []
        self.values: List = []

    @classmethod
    def vector(cls) -> "KeyframeCurve":
        return cls(vector_lerp)

    @classmethod
    def rotation(cls) -> "KeyframeCurve":
        return cls(quaternion_slerp)

    def __len__(self):
        return len(self.times)

    def add(self, time: float, value):
        self.times.append(float(time))
        self.values.append(value)

    def evaluate(self, time: float, default=None):
        if not self.times:
            return default

        last_time = self.times[-1]
        if last_time == 0:
            # every key sits at frame 0
            return self.values[0]
        time = math.fmod(time, last_time)

        if time < self.times[0]:
            return self.values[0]
        if time >= last_time:
            return self.values[-1]

        prev_idx = bisect.bisect_right(self.times, time) - 1
        next_idx = prev_idx + 1

        prev_time = self.times[prev_idx]
        next_time = self.times[next_idx]
        if next_time == prev_time:
            return self.values[prev_idx]

        factor = (time - prev_time) / (next_time - prev_time)
        factor = min(max(factor, 0.0), 1.0)
        return self.interpolate(self.values[prev_idx], self.values[next_idx], factor)


@dataclass
class Track:
    """Keyframes driving one bone."""

    name: str
    position: KeyframeCurve = field(default_factory=KeyframeCurve.vector)
    rotation: KeyframeCurve = field(default_factory=KeyframeCurve.rotation)
    scale: KeyframeCurve = field(default_factory=KeyframeCurve.vector)

    def sample(self, frame: float):
        """Returns (position, rotation, scale) at `frame`."""
        position = self.position.evaluate(frame, pyrr.Vector3([0.0, 0.0, 0.0]))
        rotation = self.rotation.evaluate(frame, pyrr.Quaternion([0.0, 0.0, 0.0, 1.0]))
        scale = self.scale.evaluate(frame, pyrr.Vector3([1.0, 1.0, 1.0]))
        return position, rotation, scale

    def local_transform(self, frame: float) -> np.ndarray:
        # scale is sampled for completeness but never baked into the matrix
        position, rotation, _scale = self.sample(frame)
        return matrix_from_quaternion(rotation) @ translation_matrix(position)


@dataclass
class Animation:
    """A named clip, one track per model bone in bone order."""

    name: str
    frame_count: int = 0
    frame_rate: float = 0.0
    cyclic: bool = False
    tracks: List[Track] = field(default_factory=list)

    @property
    def length(self) -> float:
        """Clip length in seconds."""
        if self.frame_rate == 0:
            return 0.0
        return self.frame_count / self.frame_rate

    def frame_at(self, seconds: float) -> float:
        return seconds * self.frame_rate
