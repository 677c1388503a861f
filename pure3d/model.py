from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pyrr

from pure3d.animation import Animation, Track
from pure3d.chunk_types import Animation as AnimationChunk
from pure3d.chunk_types import (
    AnimationGroup,
    AnimationGroupList,
    ColourList,
    CompressedQuaternionChannel,
    IndexList,
    MatrixList,
    MatrixPalette,
    Mesh,
    NormalList,
    PositionList,
    PrimitiveGroup,
    PrimitiveType,
    QuaternionChannel,
    Shader,
    ShaderTextureParam,
    Skeleton,
    SkeletonJoint,
    UVList,
    Vector2Channel,
    Vector3Channel,
    WeightList,
)
from pure3d.debug_stub import DebugConsole
from pure3d.math3d import (
    as_quaternion,
    as_vector3,
    extract_translation,
    quaternion_from_matrix,
    unpack_colour,
)
from pure3d.p3d_file import Chunk, FormatError, P3dFile, load_p3d
from pure3d.pose import Bone, compute_bind_world_transforms

# Interleaved vertex layout, 80 bytes per vertex
VERTEX_DTYPE = np.dtype(
    [
        ("position", np.float32, 3),
        ("normal", np.float32, 3),
        ("uv", np.float32, 2),
        ("colour", np.float32, 4),
        ("weights", np.float32, 4),
        ("bone_indices", np.int32, 4),
    ]
)

DEFAULT_NORMAL = (0.0, 1.0, 0.0)
DEFAULT_COLOUR = (1.0, 1.0, 1.0, 1.0)
DEFAULT_WEIGHTS = (1.0, 0.0, 0.0, 0.0)


@dataclass
class Model:
    """Renderable geometry plus skeleton and clips, detached from the chunk tree."""

    vertices: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=VERTEX_DTYPE))
    indices: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.uint32))
    bones: List[Bone] = field(default_factory=list)
    sub_meshes: List[Dict] = field(
        default_factory=list
    )  # { "shader_name": str, "texture_name": str, "index_start": int, "index_count": int }
    animations: List[Animation] = field(default_factory=list)

    def vertex_buffer(self) -> bytes:
        return np.ascontiguousarray(self.vertices, dtype=VERTEX_DTYPE).tobytes()

    def index_buffer(self) -> bytes:
        return np.ascontiguousarray(self.indices, dtype=np.uint32).tobytes()

    def get_animation(self, name: str) -> Optional[Animation]:
        return next((a for a in self.animations if a.name == name), None)


# ==========================================================================
# Primitive assembly
# ==========================================================================
def expand_primitive_indices(
    primitive_type: int, indices: Sequence[int], vertex_offset: int = 0
) -> np.ndarray:
    """
    Turns a group's index list into a flat triangle list.

    Strips alternate winding on odd triangles and drop degenerate ones.
    Line primitives produce no triangles.
    """
    if primitive_type == PrimitiveType.TriangleList:
        return np.asarray(indices, dtype=np.uint32) + np.uint32(vertex_offset)

    if primitive_type == PrimitiveType.TriangleStrip:
        triangles = []
        for i in range(len(indices) - 2):
            a = indices[i] + vertex_offset
            if i % 2 == 0:
                b = indices[i + 1] + vertex_offset
                c = indices[i + 2] + vertex_offset
            else:
                b = indices[i + 2] + vertex_offset
                c = indices[i + 1] + vertex_offset
            if a == b or b == c or a == c:
                continue
            triangles.extend((a, b, c))
        return np.array(triangles, dtype=np.uint32)

    return np.zeros(0, dtype=np.uint32)


def _fill(target: np.ndarray, values, count: int):
    values = np.asarray(values, dtype=np.float32)
    if len(values) == 0:
        return
    n = min(count, len(values))
    target[:n] = values[:n]


def _build_vertices(
    p3d_file: P3dFile, group_chunk: Chunk, positions: Sequence, bone_count: int
) -> np.ndarray:
    count = len(positions)
    vertices = np.zeros(count, dtype=VERTEX_DTYPE)
    vertices["position"] = np.asarray(positions, dtype=np.float32).reshape(-1, 3)
    vertices["normal"] = DEFAULT_NORMAL
    vertices["colour"] = DEFAULT_COLOUR
    vertices["weights"] = DEFAULT_WEIGHTS

    normal_chunk = p3d_file.get_first_child(group_chunk, NormalList)
    if normal_chunk:
        _fill(vertices["normal"], normal_chunk.payload.normals, count)

    uv_chunk = next(
        (c for c in p3d_file.get_children(group_chunk, UVList) if c.payload.channel == 0),
        None,
    )
    if uv_chunk and uv_chunk.payload.uvs:
        uvs = np.asarray(uv_chunk.payload.uvs, dtype=np.float32).copy()
        uvs[:, 1] = 1.0 - uvs[:, 1]
        _fill(vertices["uv"], uvs, count)

    colour_chunk = p3d_file.get_first_child(group_chunk, ColourList)
    if colour_chunk:
        _fill(vertices["colour"], [unpack_colour(c) for c in colour_chunk.payload.colours], count)

    weight_chunk = p3d_file.get_first_child(group_chunk, WeightList)
    if weight_chunk and weight_chunk.payload.weights:
        weights = np.zeros((len(weight_chunk.payload.weights), 4), dtype=np.float32)
        weights[:, :3] = weight_chunk.payload.weights
        _fill(vertices["weights"], weights, count)

    matrix_chunk = p3d_file.get_first_child(group_chunk, MatrixList)
    palette_chunk = p3d_file.get_first_child(group_chunk, MatrixPalette)
    if matrix_chunk and palette_chunk:
        _resolve_bone_indices(
            vertices, matrix_chunk.payload.matrices, palette_chunk.payload.matrices, bone_count
        )
    return vertices


def _resolve_bone_indices(
    vertices: np.ndarray, matrices: Sequence[Tuple[int, ...]], palette: Sequence[int], bone_count: int
):
    """Maps each vertex's palette slots to joints, last byte into the first slot."""
    invalid = 0
    for i in range(min(len(vertices), len(matrices))):
        slots = matrices[i]
        for j, slot in enumerate(reversed(slots)):
            joint = palette[slot] if slot < len(palette) else bone_count
            if joint >= bone_count:
                # out of the skeleton, make the influence harmless
                vertices["bone_indices"][i, j] = 0
                vertices["weights"][i, j] = 0.0
                invalid += 1
            else:
                vertices["bone_indices"][i, j] = joint
    if invalid:
        DebugConsole.warn(
            f"{invalid} bone influences reference joints outside the "
            f"{bone_count}-bone skeleton. Clamped to 0."
        )


def _assemble_geometry(p3d_file: P3dFile, bone_count: int):
    root = p3d_file.root
    shaders = {}
    for shader_chunk in p3d_file.get_children(root, Shader):
        shaders.setdefault(shader_chunk.payload.name, shader_chunk)

    vertex_parts = []
    index_parts = []
    sub_meshes = []
    vertex_offset = 0
    index_offset = 0

    # Skin chunks are Mesh payloads too
    for mesh_chunk in p3d_file.get_children(root, Mesh):
        mesh_name = mesh_chunk.payload.name
        for group_chunk in p3d_file.get_children(mesh_chunk, PrimitiveGroup):
            group = group_chunk.payload
            if group.primitive_type not in (PrimitiveType.TriangleList, PrimitiveType.TriangleStrip):
                DebugConsole.log(
                    f"Skipping primitive group of type {group.primitive_type} in mesh '{mesh_name}'"
                )
                continue

            position_chunk = p3d_file.get_first_child(group_chunk, PositionList)
            index_chunk = p3d_file.get_first_child(group_chunk, IndexList)
            if position_chunk is None or index_chunk is None:
                DebugConsole.log(
                    f"Skipping primitive group '{group.shader_name}' in mesh '{mesh_name}': "
                    f"missing {'positions' if position_chunk is None else 'indices'}"
                )
                continue

            positions = position_chunk.payload.positions
            vertex_parts.append(_build_vertices(p3d_file, group_chunk, positions, bone_count))
            triangles = expand_primitive_indices(
                group.primitive_type, index_chunk.payload.indices, vertex_offset
            )
            index_parts.append(triangles)

            texture_name = None
            shader_chunk = shaders.get(group.shader_name)
            if shader_chunk:
                texture_param = p3d_file.get_first_child(shader_chunk, ShaderTextureParam)
                if texture_param:
                    texture_name = texture_param.payload.value

            sub_meshes.append(
                {
                    "shader_name": group.shader_name,
                    "texture_name": texture_name,
                    "index_start": index_offset,
                    "index_count": len(triangles),
                }
            )
            vertex_offset += len(positions)
            index_offset += len(triangles)

    vertices = np.concatenate(vertex_parts) if vertex_parts else np.zeros(0, dtype=VERTEX_DTYPE)
    indices = np.concatenate(index_parts).astype(np.uint32) if index_parts else np.zeros(0, dtype=np.uint32)
    return vertices, indices, sub_meshes


# ==========================================================================
# Skeleton and animation
# ==========================================================================
def build_bones(p3d_file: P3dFile) -> List[Bone]:
    """Bones from the first top-level skeleton, or a lone identity root."""
    skeleton_chunk = p3d_file.get_first_child(p3d_file.root, Skeleton)
    joints = p3d_file.get_children(skeleton_chunk, SkeletonJoint) if skeleton_chunk else []

    if not joints:
        identity = np.identity(4, dtype=np.float32)
        return [Bone("root", 0, rest_pose=identity, bind_world_transform=identity.copy())]

    bones = []
    for i, joint_chunk in enumerate(joints):
        joint = joint_chunk.payload
        if joint.parent > i:
            raise FormatError(
                f"Joint {i} ({joint.name}) references parent {joint.parent}, "
                f"which comes after it."
            )
        bones.append(Bone(joint.name, joint.parent, rest_pose=np.array(joint.rest_pose, dtype=np.float32)))

    for bone, world in zip(bones, compute_bind_world_transforms(bones)):
        bone.bind_world_transform = world.astype(np.float32)
    return bones


def _has_keys(chunk: Optional[Chunk]) -> bool:
    return chunk is not None and len(chunk.payload.frames) > 0


def _build_track(p3d_file: P3dFile, bone: Bone, group_chunk: Optional[Chunk]) -> Track:
    track = Track(bone.name)
    rest_position = extract_translation(bone.rest_pose)
    rest_rotation = quaternion_from_matrix(bone.rest_pose)
    track.scale.add(0, pyrr.Vector3([1.0, 1.0, 1.0]))

    if group_chunk is None:
        DebugConsole.log(f"No animation group for bone '{bone.name}', holding its rest pose")
        track.position.add(0, rest_position)
        track.rotation.add(0, rest_rotation)
        return track

    vector3 = p3d_file.get_first_child(group_chunk, Vector3Channel)
    vector2 = p3d_file.get_first_child(group_chunk, Vector2Channel)
    if _has_keys(vector3):
        for frame, value in zip(vector3.payload.frames, vector3.payload.values):
            track.position.add(frame, as_vector3(value))
    elif _has_keys(vector2):
        cx, cy, cz = vector2.payload.constants
        for frame, (x, y) in zip(vector2.payload.frames, vector2.payload.values):
            track.position.add(frame, as_vector3((cx + x, cy, cz + y)))
    else:
        track.position.add(0, rest_position)

    compressed = p3d_file.get_first_child(group_chunk, CompressedQuaternionChannel)
    quaternion = p3d_file.get_first_child(group_chunk, QuaternionChannel)
    rotation_channel = compressed if _has_keys(compressed) else quaternion
    if _has_keys(rotation_channel):
        for frame, value in zip(rotation_channel.payload.frames, rotation_channel.payload.values):
            track.rotation.add(frame, as_quaternion(value))
    else:
        track.rotation.add(0, rest_rotation)
    return track


def load_animation(model: Model, p3d_file: P3dFile, animation_chunk: Chunk) -> Animation:
    """One track per model bone, matched to animation groups by bone name."""
    header = animation_chunk.payload
    group_list = p3d_file.get_first_child(animation_chunk, AnimationGroupList)

    tracks = []
    for bone in model.bones:
        group_chunk = None
        if group_list:
            matches = p3d_file.get_children_by_name(group_list, AnimationGroup, bone.name)
            group_chunk = matches[0] if matches else None
        tracks.append(_build_track(p3d_file, bone, group_chunk))

    animation = Animation(
        name=header.name,
        frame_count=int(header.num_frames),
        frame_rate=header.frame_rate,
        cyclic=bool(header.cyclic),
        tracks=tracks,
    )
    DebugConsole.log(
        f"Loaded animation '{animation.name}': {animation.frame_count} frames "
        f"@ {animation.frame_rate:g} fps, {len(tracks)} tracks"
    )
    return animation


def build_model(model_file: P3dFile, animation_file: Optional[P3dFile] = None) -> Model:
    """
    Assembles a Model from a decoded P3D file.

    Geometry comes from every top-level Mesh and Skin, bones from the first
    Skeleton. If `animation_file` is given, each of its top-level Animation
    chunks becomes a clip bound to those bones.
    """
    if model_file.root is None:
        raise ValueError("P3D file has not been loaded.")

    bones = build_bones(model_file)
    vertices, indices, sub_meshes = _assemble_geometry(model_file, len(bones))
    model = Model(vertices=vertices, indices=indices, bones=bones, sub_meshes=sub_meshes)

    if animation_file is not None and animation_file.root is not None:
        for chunk in animation_file.get_children(animation_file.root, AnimationChunk):
            model.animations.append(load_animation(model, animation_file, chunk))

    DebugConsole.log(
        f"Built model: {len(vertices)} vertices, {len(indices)} indices, "
        f"{len(bones)} bones, {len(model.animations)} animations"
    )
    return model


def load_model(model_path, animation_path=None) -> Model:
    model_file = load_p3d(model_path)
    animation_file = load_p3d(animation_path) if animation_path else None
    return build_model(model_file, animation_file)
