from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from pure3d.animation import Animation
from pure3d.math3d import inverse_or_identity


@dataclass
class Bone:
    """One skeleton joint. The root points at itself."""

    name: str
    parent_index: int
    rest_pose: np.ndarray = field(default_factory=lambda: np.identity(4, dtype=np.float32))
    bind_world_transform: Optional[np.ndarray] = None


def _check_parent(bones: Sequence[Bone], index: int) -> int:
    parent = bones[index].parent_index
    if parent > index or parent < 0:
        raise ValueError(
            f"Bone {index} ({bones[index].name}) has parent {parent}, "
            f"parents must come first."
        )
    return parent


def compute_bind_world_transforms(bones: Sequence[Bone]) -> np.ndarray:
    """Accumulates rest poses down the hierarchy, parents before children."""
    world = np.zeros((len(bones), 4, 4), dtype=np.float64)
    for i, bone in enumerate(bones):
        parent = _check_parent(bones, i)
        rest = np.asarray(bone.rest_pose, dtype=np.float64)
        if parent == i:
            world[i] = rest
        else:
            world[i] = rest @ world[parent]
    return world


def compute_pose(animation: Animation, time: float, bones: Sequence[Bone]) -> np.ndarray:
    """
    Skinning matrices for every bone of `animation` at `time`.

    `time` is in frames, use Animation.frame_at to convert from seconds.
    Each matrix is inverse(bind world) @ posed world, row-vector convention,
    so a vertex at bind position p ends up at p @ skin[i].

    Returns:
        (n, 4, 4) float32 array, one matrix per bone.
    """
    if len(animation.tracks) != len(bones):
        raise ValueError(
            f"Animation '{animation.name}' has {len(animation.tracks)} tracks "
            f"but the skeleton has {len(bones)} bones."
        )

    if any(bone.bind_world_transform is None for bone in bones):
        bind_world = compute_bind_world_transforms(bones)
    else:
        bind_world = np.array([bone.bind_world_transform for bone in bones], dtype=np.float64)

    posed = np.zeros((len(bones), 4, 4), dtype=np.float64)
    skin = np.zeros((len(bones), 4, 4), dtype=np.float32)
    for i, track in enumerate(animation.tracks):
        parent = _check_parent(bones, i)
        local = track.local_transform(time)
        if parent == i:
            posed[i] = local
        else:
            posed[i] = local @ posed[parent]
        skin[i] = inverse_or_identity(bind_world[i]) @ posed[i]
    return skin

