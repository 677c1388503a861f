from dataclasses import dataclass, field
from enum import IntEnum, IntFlag
from typing import ClassVar, Dict, List, Optional, Tuple, Type

import numpy as np

from pure3d.binary_reader import BinaryReader


# ==========================================================================
# 1. ENUMS and IDs
# ==========================================================================
class FileTag:
    Pure3D = 0xFF443350  # "P3D\xff"
    CompressedPure3D = 0x5A443350  # "P3DZ"
    RZ = 0x00005A52  # "RZ", zlib deflate


class P3dChunk:
    Skeleton = 0x00004500
    SkeletonJoint = 0x00004501
    CompositeDrawable = 0x00004512
    CompositeDrawablePropList = 0x00004514
    CompositeDrawableProp = 0x00004516
    Mesh = 0x00010000
    Skin = 0x00010001
    PrimitiveGroup = 0x00010002
    BoundingBox = 0x00010003
    BoundingSphere = 0x00010004
    PositionList = 0x00010005
    NormalList = 0x00010006
    UVList = 0x00010007
    ColourList = 0x00010008
    IndexList = 0x0001000A
    MatrixList = 0x0001000B
    WeightList = 0x0001000C
    MatrixPalette = 0x0001000D
    VertexShader = 0x00010011
    Shader = 0x00011000
    ShaderTextureParam = 0x00011002
    ShaderIntParam = 0x00011003
    ShaderFloatParam = 0x00011004
    ShaderColourParam = 0x00011005
    Texture = 0x00019000
    Image = 0x00019001
    ImageData = 0x00019002
    Animation = 0x00121000
    AnimationGroup = 0x00121001
    AnimationGroupList = 0x00121002
    AnimationSize = 0x00121004
    Vector1Channel = 0x00121102
    Vector2Channel = 0x00121103
    Vector3Channel = 0x00121104
    QuaternionChannel = 0x00121105
    ChannelInterpolationMode = 0x00121110
    CompressedQuaternionChannel = 0x00121111


class PrimitiveType(IntEnum):
    TriangleList = 0
    TriangleStrip = 1
    LineList = 2
    LineStrip = 3


class VertexFormat(IntFlag):
    UVs = 1
    UVs2 = 2
    UVs3 = 4
    UVs4 = 8
    Normals = 16
    Colours = 32
    Matrices = 128
    Weights = 256
    Unknown = 8192


# ==========================================================================
# 2. Payload variants
# ==========================================================================
@dataclass
class ChunkPayload:
    """Typed header of one chunk, read from exactly `length` bytes."""

    type_id: ClassVar[Optional[int]] = None

    @classmethod
    def read(cls, reader: BinaryReader, length: int) -> "ChunkPayload":
        return cls()

    def describe(self) -> str:
        return type(self).__name__


@dataclass
class Root(ChunkPayload):
    type_id: ClassVar[Optional[int]] = FileTag.Pure3D

    def describe(self) -> str:
        return "Root"


@dataclass
class Opaque(ChunkPayload):
    """Catch-all for ids nobody registered, keeps the payload bytes as-is."""

    data: bytes = b""

    @classmethod
    def read(cls, reader, length):
        return cls(data=reader.read_bytes(length) if length > 0 else b"")

    def describe(self) -> str:
        return f"Unknown Chunk (Len: {len(self.data)})"


@dataclass
class Named(ChunkPayload):
    name: str = ""

    @classmethod
    def read(cls, reader, length):
        return cls(name=reader.read_string())

    def describe(self) -> str:
        return f"Named Chunk: {self.name}"


@dataclass
class VersionNamed(Named):
    version: int = 0

    @classmethod
    def read(cls, reader, length):
        version = reader.read_u32()
        return cls(version=version, name=reader.read_string())

    def describe(self) -> str:
        return f"Named Chunk: {self.name}, Version {self.version}"


# --- Skeleton ---------------------------------------------------------------
@dataclass
class Skeleton(Named):
    type_id: ClassVar[Optional[int]] = P3dChunk.Skeleton
    version: int = 0
    num_joints: int = 0

    @classmethod
    def read(cls, reader, length):
        return cls(
            name=reader.read_string(),
            version=reader.read_u32(),
            num_joints=reader.read_u32(),
        )

    def describe(self) -> str:
        return f"Skeleton: {self.name} ({self.num_joints} Joints)"


@dataclass
class SkeletonJoint(Named):
    type_id: ClassVar[Optional[int]] = P3dChunk.SkeletonJoint
    parent: int = 0
    dof: int = 0
    free_axis: int = 0
    primary_axis: int = 0
    secondary_axis: int = 0
    twist_axis: int = 0
    rest_pose: np.ndarray = field(default_factory=lambda: np.identity(4, dtype=np.float32))

    @classmethod
    def read(cls, reader, length):
        return cls(
            name=reader.read_string(),
            parent=reader.read_u32(),
            dof=reader.read_i32(),
            free_axis=reader.read_i32(),
            primary_axis=reader.read_i32(),
            secondary_axis=reader.read_i32(),
            twist_axis=reader.read_i32(),
            rest_pose=reader.read_matrix(),
        )

    def describe(self) -> str:
        return f"Skeleton Joint: {self.name} (Parent: {self.parent})"


@dataclass
class CompositeDrawable(Named):
    type_id: ClassVar[Optional[int]] = P3dChunk.CompositeDrawable
    skeleton_name: str = ""

    @classmethod
    def read(cls, reader, length):
        return cls(name=reader.read_string(), skeleton_name=reader.read_string())

    def describe(self) -> str:
        return f"Composite Drawable: {self.name} (Skeleton: {self.skeleton_name})"


@dataclass
class CompositeDrawablePropList(ChunkPayload):
    type_id: ClassVar[Optional[int]] = P3dChunk.CompositeDrawablePropList
    num_elements: int = 0

    @classmethod
    def read(cls, reader, length):
        return cls(num_elements=reader.read_u32())

    def describe(self) -> str:
        return f"Composite Drawable Prop List (Elements: {self.num_elements})"


@dataclass
class CompositeDrawableProp(Named):
    type_id: ClassVar[Optional[int]] = P3dChunk.CompositeDrawableProp
    is_translucent: int = 0
    skeleton_joint_id: int = 0

    @classmethod
    def read(cls, reader, length):
        return cls(
            name=reader.read_string(),
            is_translucent=reader.read_u32(),
            skeleton_joint_id=reader.read_u32(),
        )

    def describe(self) -> str:
        return f"Composite Drawable Prop: {self.name}"


# --- Geometry ---------------------------------------------------------------
@dataclass
class Mesh(Named):
    type_id: ClassVar[Optional[int]] = P3dChunk.Mesh
    version: int = 0
    num_prim_groups: int = 0

    @classmethod
    def read(cls, reader, length):
        return cls(
            name=reader.read_string(),
            version=reader.read_u32(),
            num_prim_groups=reader.read_u32(),
        )

    def describe(self) -> str:
        return f"Mesh: {self.name} ({self.num_prim_groups} Prim Groups)"


@dataclass
class Skin(Mesh):
    type_id: ClassVar[Optional[int]] = P3dChunk.Skin
    skeleton_name: str = ""

    @classmethod
    def read(cls, reader, length):
        return cls(
            name=reader.read_string(),
            version=reader.read_u32(),
            skeleton_name=reader.read_string(),
            num_prim_groups=reader.read_u32(),
        )

    def describe(self) -> str:
        return (
            f"Skin: {self.name} (Skeleton: {self.skeleton_name}) "
            f"({self.num_prim_groups} Prim Groups)"
        )


@dataclass
class PrimitiveGroup(ChunkPayload):
    type_id: ClassVar[Optional[int]] = P3dChunk.PrimitiveGroup
    version: int = 0
    shader_name: str = ""
    primitive_type: int = PrimitiveType.TriangleList
    vertex_format: int = 0
    num_vertices: int = 0
    num_indices: int = 0
    num_matrices: int = 0

    @classmethod
    def read(cls, reader, length):
        version = reader.read_u32()
        shader_name = reader.read_string()
        primitive_type = reader.read_u32()
        try:
            primitive_type = PrimitiveType(primitive_type)
        except ValueError:
            pass  # kept as a raw int, assembly skips it
        return cls(
            version=version,
            shader_name=shader_name,
            primitive_type=primitive_type,
            vertex_format=VertexFormat(reader.read_u32()),
            num_vertices=reader.read_u32(),
            num_indices=reader.read_u32(),
            num_matrices=reader.read_u32(),
        )

    def describe(self) -> str:
        return f"Primitive Group {self.shader_name}"


@dataclass
class BoundingBox(ChunkPayload):
    type_id: ClassVar[Optional[int]] = P3dChunk.BoundingBox
    low: Tuple[float, ...] = (0.0, 0.0, 0.0)
    high: Tuple[float, ...] = (0.0, 0.0, 0.0)

    @classmethod
    def read(cls, reader, length):
        return cls(low=reader.read_vec3(), high=reader.read_vec3())

    def describe(self) -> str:
        return "Bounding Box"


@dataclass
class BoundingSphere(ChunkPayload):
    type_id: ClassVar[Optional[int]] = P3dChunk.BoundingSphere
    centre: Tuple[float, ...] = (0.0, 0.0, 0.0)
    radius: float = 0.0

    @classmethod
    def read(cls, reader, length):
        return cls(centre=reader.read_vec3(), radius=reader.read_f32())

    def describe(self) -> str:
        return "Bounding Sphere"


@dataclass
class PositionList(ChunkPayload):
    type_id: ClassVar[Optional[int]] = P3dChunk.PositionList
    positions: List[Tuple[float, ...]] = field(default_factory=list)

    @classmethod
    def read(cls, reader, length):
        count = reader.read_u32()
        return cls(positions=[reader.read_vec3() for _ in range(count)])

    def describe(self) -> str:
        return f"Position List ({len(self.positions)})"


@dataclass
class NormalList(ChunkPayload):
    type_id: ClassVar[Optional[int]] = P3dChunk.NormalList
    normals: List[Tuple[float, ...]] = field(default_factory=list)

    @classmethod
    def read(cls, reader, length):
        count = reader.read_u32()
        return cls(normals=[reader.read_vec3() for _ in range(count)])

    def describe(self) -> str:
        return f"Normal List ({len(self.normals)})"


@dataclass
class UVList(ChunkPayload):
    type_id: ClassVar[Optional[int]] = P3dChunk.UVList
    channel: int = 0
    uvs: List[Tuple[float, ...]] = field(default_factory=list)

    @classmethod
    def read(cls, reader, length):
        count = reader.read_u32()
        channel = reader.read_u32()
        return cls(channel=channel, uvs=[reader.read_vec2() for _ in range(count)])

    def describe(self) -> str:
        return f"UV List (Channel: {self.channel} - {len(self.uvs)})"


@dataclass
class ColourList(ChunkPayload):
    type_id: ClassVar[Optional[int]] = P3dChunk.ColourList
    colours: List[int] = field(default_factory=list)  # packed RGBA, red in the low byte

    @classmethod
    def read(cls, reader, length):
        count = reader.read_u32()
        return cls(colours=reader.read_array("I", count, 4))

    def describe(self) -> str:
        return f"Colour List ({len(self.colours)})"


@dataclass
class IndexList(ChunkPayload):
    type_id: ClassVar[Optional[int]] = P3dChunk.IndexList
    indices: List[int] = field(default_factory=list)

    @classmethod
    def read(cls, reader, length):
        count = reader.read_u32()
        return cls(indices=reader.read_array("I", count, 4))

    def describe(self) -> str:
        return f"Indices List ({len(self.indices)})"


@dataclass
class MatrixList(ChunkPayload):
    """Four matrix palette slots per vertex."""

    type_id: ClassVar[Optional[int]] = P3dChunk.MatrixList
    matrices: List[Tuple[int, ...]] = field(default_factory=list)

    @classmethod
    def read(cls, reader, length):
        count = reader.read_u32()
        return cls(matrices=[reader.read_struct("4B", 4) for _ in range(count)])

    def describe(self) -> str:
        return f"Matrix List ({len(self.matrices)})"


@dataclass
class WeightList(ChunkPayload):
    type_id: ClassVar[Optional[int]] = P3dChunk.WeightList
    weights: List[Tuple[float, ...]] = field(default_factory=list)

    @classmethod
    def read(cls, reader, length):
        count = reader.read_u32()
        return cls(weights=[reader.read_vec3() for _ in range(count)])

    def describe(self) -> str:
        return f"Weight List ({len(self.weights)})"


@dataclass
class MatrixPalette(ChunkPayload):
    """Maps palette slots to skeleton joint indices."""

    type_id: ClassVar[Optional[int]] = P3dChunk.MatrixPalette
    matrices: List[int] = field(default_factory=list)

    @classmethod
    def read(cls, reader, length):
        count = reader.read_u32()
        return cls(matrices=reader.read_array("I", count, 4))

    def describe(self) -> str:
        return f"Matrix Palette ({len(self.matrices)})"


@dataclass
class VertexShader(ChunkPayload):
    type_id: ClassVar[Optional[int]] = P3dChunk.VertexShader
    vertex_shader_name: str = ""

    @classmethod
    def read(cls, reader, length):
        return cls(vertex_shader_name=reader.read_string())

    def describe(self) -> str:
        return f"Vertex Shader {self.vertex_shader_name}"


# --- Shaders ----------------------------------------------------------------
@dataclass
class Shader(Named):
    type_id: ClassVar[Optional[int]] = P3dChunk.Shader
    version: int = 0
    pddi_shader_name: str = ""
    has_translucency: int = 0
    vertex_needs: int = 0
    vertex_mask: int = 0
    num_params: int = 0

    @classmethod
    def read(cls, reader, length):
        return cls(
            name=reader.read_string(),
            version=reader.read_u32(),
            pddi_shader_name=reader.read_string(),
            has_translucency=reader.read_u32(),
            vertex_needs=reader.read_u32(),
            vertex_mask=reader.read_u32(),
            num_params=reader.read_u32(),
        )

    def describe(self) -> str:
        return f"Shader: {self.name} ({self.pddi_shader_name})"


@dataclass
class ShaderParam(ChunkPayload):
    param: str = ""

    def describe(self) -> str:
        return f"Shader Parameter: {self.param} = {getattr(self, 'value', '')}"


@dataclass
class ShaderTextureParam(ShaderParam):
    type_id: ClassVar[Optional[int]] = P3dChunk.ShaderTextureParam
    value: str = ""

    @classmethod
    def read(cls, reader, length):
        return cls(param=reader.read_fourcc(), value=reader.read_string())


@dataclass
class ShaderIntParam(ShaderParam):
    type_id: ClassVar[Optional[int]] = P3dChunk.ShaderIntParam
    value: int = 0

    @classmethod
    def read(cls, reader, length):
        return cls(param=reader.read_fourcc(), value=reader.read_u32())


@dataclass
class ShaderFloatParam(ShaderParam):
    type_id: ClassVar[Optional[int]] = P3dChunk.ShaderFloatParam
    value: float = 0.0

    @classmethod
    def read(cls, reader, length):
        return cls(param=reader.read_fourcc(), value=reader.read_f32())


@dataclass
class ShaderColourParam(ShaderParam):
    type_id: ClassVar[Optional[int]] = P3dChunk.ShaderColourParam
    value: int = 0

    @classmethod
    def read(cls, reader, length):
        return cls(param=reader.read_fourcc(), value=reader.read_u32())


# --- Textures ---------------------------------------------------------------
@dataclass
class Texture(Named):
    type_id: ClassVar[Optional[int]] = P3dChunk.Texture
    version: int = 0
    width: int = 0
    height: int = 0
    bpp: int = 0
    alpha_depth: int = 0
    num_mip_maps: int = 0
    texture_type: int = 0
    usage: int = 0
    priority: int = 0

    @classmethod
    def read(cls, reader, length):
        return cls(
            name=reader.read_string(),
            version=reader.read_u32(),
            width=reader.read_u32(),
            height=reader.read_u32(),
            bpp=reader.read_u32(),
            alpha_depth=reader.read_u32(),
            num_mip_maps=reader.read_u32(),
            texture_type=reader.read_u32(),
            usage=reader.read_u32(),
            priority=reader.read_u32(),
        )

    def describe(self) -> str:
        return f"Texture: {self.name} ({self.width}x{self.height})"


@dataclass
class Image(Named):
    type_id: ClassVar[Optional[int]] = P3dChunk.Image
    version: int = 0
    width: int = 0
    height: int = 0
    bpp: int = 0
    palettized: int = 0
    has_alpha: int = 0
    format: int = 0

    @classmethod
    def read(cls, reader, length):
        return cls(
            name=reader.read_string(),
            version=reader.read_u32(),
            width=reader.read_u32(),
            height=reader.read_u32(),
            bpp=reader.read_u32(),
            palettized=reader.read_u32(),
            has_alpha=reader.read_u32(),
            format=reader.read_u32(),
        )

    def describe(self) -> str:
        return f"Image: {self.name} ({self.width}x{self.height}, format {self.format})"


@dataclass
class ImageData(ChunkPayload):
    type_id: ClassVar[Optional[int]] = P3dChunk.ImageData
    data: bytes = b""

    @classmethod
    def read(cls, reader, length):
        size = reader.read_u32()
        return cls(data=reader.read_bytes(size) if size > 0 else b"")

    def describe(self) -> str:
        magic = " ".join(f"{b:X}" for b in self.data[:4])
        return f"Image Data (Header: {magic}) (Len: {len(self.data)})"


# --- Animation --------------------------------------------------------------
@dataclass
class Animation(VersionNamed):
    type_id: ClassVar[Optional[int]] = P3dChunk.Animation
    animation_type: str = ""
    num_frames: float = 0.0
    frame_rate: float = 0.0
    cyclic: int = 0

    @classmethod
    def read(cls, reader, length):
        return cls(
            version=reader.read_u32(),
            name=reader.read_string(),
            animation_type=reader.read_fourcc(),
            num_frames=reader.read_f32(),
            frame_rate=reader.read_f32(),
            cyclic=reader.read_u32(),
        )

    def describe(self) -> str:
        return (
            f"Animation: {self.name} ({self.animation_type}, "
            f"{self.num_frames:g} Frames @ {self.frame_rate:g})"
        )


@dataclass
class AnimationGroup(VersionNamed):
    type_id: ClassVar[Optional[int]] = P3dChunk.AnimationGroup
    group_id: int = 0
    num_channels: int = 0

    @classmethod
    def read(cls, reader, length):
        return cls(
            version=reader.read_u32(),
            name=reader.read_string(),
            group_id=reader.read_u32(),
            num_channels=reader.read_u32(),
        )

    def describe(self) -> str:
        return f"Animation Group: {self.name} ({self.num_channels} Channels)"


@dataclass
class AnimationGroupList(ChunkPayload):
    type_id: ClassVar[Optional[int]] = P3dChunk.AnimationGroupList
    version: int = 0
    num_groups: int = 0

    @classmethod
    def read(cls, reader, length):
        return cls(version=reader.read_u32(), num_groups=reader.read_u32())

    def describe(self) -> str:
        return f"Animation Group List: {self.num_groups}"


@dataclass
class AnimationSize(ChunkPayload):
    type_id: ClassVar[Optional[int]] = P3dChunk.AnimationSize
    version: int = 0
    pc: int = 0
    ps2: int = 0
    xbox: int = 0
    gamecube: int = 0

    @classmethod
    def read(cls, reader, length):
        return cls(
            version=reader.read_u32(),
            pc=reader.read_u32(),
            ps2=reader.read_u32(),
            xbox=reader.read_u32(),
            gamecube=reader.read_u32(),
        )

    def describe(self) -> str:
        return (
            f"Animation Size: Version {self.version}, PC {self.pc}, PS2 {self.ps2}, "
            f"Xbox {self.xbox}, GameCube {self.gamecube}"
        )


@dataclass
class ChannelInterpolationMode(ChunkPayload):
    type_id: ClassVar[Optional[int]] = P3dChunk.ChannelInterpolationMode
    version: int = 0
    mode: int = 0

    @classmethod
    def read(cls, reader, length):
        return cls(version=reader.read_u32(), mode=reader.read_u32())

    def describe(self) -> str:
        return f"Channel Interpolation Mode: {self.mode}"


@dataclass
class Channel(ChunkPayload):
    """Sparse keys: frames[i] is the frame number of values[i]."""

    version: int = 0
    parameter: str = ""
    frames: List[int] = field(default_factory=list)
    values: List = field(default_factory=list)

    def describe(self) -> str:
        return f"{type(self).__name__}: {self.parameter}, {len(self.frames)} Frames"


@dataclass
class Vector1Channel(Channel):
    type_id: ClassVar[Optional[int]] = P3dChunk.Vector1Channel
    mapping: int = 0
    constants: Tuple[float, ...] = (0.0, 0.0, 0.0)

    @classmethod
    def read(cls, reader, length):
        version = reader.read_u32()
        parameter = reader.read_fourcc()
        mapping = reader.read_u16()
        constants = reader.read_vec3()
        count = reader.read_u32()
        frames = reader.read_array("H", count, 2)
        return cls(
            version=version,
            parameter=parameter,
            mapping=mapping,
            constants=constants,
            frames=frames,
            values=reader.read_array("f", count, 4),
        )


@dataclass
class Vector2Channel(Channel):
    type_id: ClassVar[Optional[int]] = P3dChunk.Vector2Channel
    mapping: int = 0
    constants: Tuple[float, ...] = (0.0, 0.0, 0.0)

    @classmethod
    def read(cls, reader, length):
        version = reader.read_u32()
        parameter = reader.read_fourcc()
        mapping = reader.read_u16()
        constants = reader.read_vec3()
        count = reader.read_u32()
        frames = reader.read_array("H", count, 2)
        return cls(
            version=version,
            parameter=parameter,
            mapping=mapping,
            constants=constants,
            frames=frames,
            values=[reader.read_vec2() for _ in range(count)],
        )


@dataclass
class Vector3Channel(Channel):
    type_id: ClassVar[Optional[int]] = P3dChunk.Vector3Channel

    @classmethod
    def read(cls, reader, length):
        version = reader.read_u32()
        parameter = reader.read_fourcc()
        count = reader.read_u32()
        frames = reader.read_array("H", count, 2)
        return cls(
            version=version,
            parameter=parameter,
            frames=frames,
            values=[reader.read_vec3() for _ in range(count)],
        )


@dataclass
class QuaternionChannel(Channel):
    """Values are stored w first on disk, kept here as (x, y, z, w)."""

    type_id: ClassVar[Optional[int]] = P3dChunk.QuaternionChannel

    @classmethod
    def read(cls, reader, length):
        version = reader.read_u32()
        parameter = reader.read_fourcc()
        count = reader.read_u32()
        frames = reader.read_array("H", count, 2)
        values = []
        for _ in range(count):
            w, x, y, z = reader.read_struct("4f", 16)
            values.append((x, y, z, w))
        return cls(version=version, parameter=parameter, frames=frames, values=values)


@dataclass
class CompressedQuaternionChannel(Channel):
    """Like QuaternionChannel with each component packed as int16 / 32767."""

    type_id: ClassVar[Optional[int]] = P3dChunk.CompressedQuaternionChannel
    SCALE: ClassVar[float] = 32767.0

    @classmethod
    def read(cls, reader, length):
        version = reader.read_u32()
        parameter = reader.read_fourcc()
        count = reader.read_u32()
        frames = reader.read_array("H", count, 2)
        values = []
        for _ in range(count):
            w, x, y, z = reader.read_struct("4h", 8)
            values.append((x / cls.SCALE, y / cls.SCALE, z / cls.SCALE, w / cls.SCALE))
        return cls(version=version, parameter=parameter, frames=frames, values=values)


# ==========================================================================
# 3. Registry
# ==========================================================================
_payload_types: Optional[Dict[int, Type[ChunkPayload]]] = None


def _iter_payload_types(cls):
    for sub in cls.__subclasses__():
        yield sub
        yield from _iter_payload_types(sub)


def _build_registry() -> Dict[int, Type[ChunkPayload]]:
    registry = {}
    for payload_type in _iter_payload_types(ChunkPayload):
        # only ids declared on the class itself, not inherited ones
        type_id = payload_type.__dict__.get("type_id")
        if type_id is not None:
            registry[type_id] = payload_type
    return registry


def resolve_payload_type(type_id: int) -> Type[ChunkPayload]:
    """Returns the payload class for a chunk type id, Opaque if unknown."""
    global _payload_types
    if _payload_types is None:
        _payload_types = _build_registry()
    return _payload_types.get(type_id, Opaque)


def register_payload_type(payload_type: Type[ChunkPayload]) -> Type[ChunkPayload]:
    """Class decorator for payload variants defined outside this module."""
    global _payload_types
    if payload_type.__dict__.get("type_id") is None:
        raise ValueError(f"{payload_type.__name__} does not declare a type_id")
    if _payload_types is None:
        _payload_types = _build_registry()
    _payload_types[payload_type.type_id] = payload_type
    return payload_type
