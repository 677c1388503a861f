import io
import os
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator, List, Optional, Type, TypeVar, Union

from pure3d.binary_reader import BinaryReader
from pure3d.chunk_types import ChunkPayload, FileTag, Named, Opaque, resolve_payload_type
from pure3d.debug_stub import DebugConsole

# type id + header size + chunk size
CHUNK_HEADER_SIZE = 12

P = TypeVar("P", bound=ChunkPayload)


class FormatError(ValueError):
    """Malformed P3D data, the whole decode is abandoned."""


class UnsupportedVariantError(FormatError):
    """A recognised P3D container encoding this decoder does not implement."""


@dataclass
class Chunk:
    type_id: int
    index: int
    parent_index: Optional[int]
    payload: ChunkPayload
    start: int = 0
    header_size: int = 0
    size: int = 0
    children: List[int] = field(default_factory=list)

    @property
    def is_root(self) -> bool:
        return self.parent_index is None

    @property
    def end(self) -> int:
        return self.start + self.size

    def describe(self) -> str:
        if isinstance(self.payload, Opaque):
            return (
                f"Unknown Chunk (TypeID: 0x{self.type_id:08X}) "
                f"(Len: {len(self.payload.data)})"
            )
        return self.payload.describe()


class P3dFile:
    """A decoded P3D container: every chunk lives in `chunks`, the root first."""

    def __init__(self):
        self.chunks: List[Chunk] = []

    @property
    def root(self) -> Optional[Chunk]:
        return self.chunks[0] if self.chunks else None

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    def load(self, source: Union[str, os.PathLike, BinaryIO, bytes]) -> "P3dFile":
        if isinstance(source, (bytes, bytearray)):
            return self._load_stream(io.BytesIO(source))
        if isinstance(source, (str, os.PathLike)):
            if not os.path.exists(source):
                raise FileNotFoundError(f"File not found: {source}")
            with open(source, "rb") as f:
                return self._load_stream(f)
        return self._load_stream(source)

    def _load_stream(self, stream: BinaryIO) -> "P3dFile":
        reader = BinaryReader(stream)
        stream_end = reader.size()
        try:
            file_tag = reader.read_u32()
        except EOFError as e:
            raise FormatError("File is too small to be a valid P3D file.") from e

        if file_tag == FileTag.RZ:
            raise UnsupportedVariantError("RZ (deflate) P3D files are not supported.")
        if file_tag == FileTag.CompressedPure3D:
            raise UnsupportedVariantError("Compressed P3DZ files are not supported.")
        if file_tag != FileTag.Pure3D:
            raise FormatError(f"Invalid P3D file tag: 0x{file_tag:08X}")

        chunks: List[Chunk] = []
        try:
            self._read_chunk(reader, chunks, file_tag, None, stream_end)
        except EOFError as e:
            raise FormatError(f"Unexpected end of data: {e}") from e

        self.chunks = chunks
        DebugConsole.log(f"Decoded {len(chunks)} chunks ({stream_end} bytes)")
        return self

    def _read_chunk(
        self,
        reader: BinaryReader,
        chunks: List[Chunk],
        type_id: int,
        parent_index: Optional[int],
        parent_end: int,
    ) -> Chunk:
        chunk_start = reader.tell() - 4
        payload_type = resolve_payload_type(type_id)
        header_size = reader.read_u32()
        chunk_size = reader.read_u32()

        if header_size > chunk_size:
            raise FormatError(
                f"Header size {header_size} greater than chunk size {chunk_size} "
                f"at offset {chunk_start}."
            )
        if reader.tell() + chunk_size - CHUNK_HEADER_SIZE > parent_end:
            raise FormatError(
                f"Chunk at offset {chunk_start} ({chunk_size} bytes) overruns "
                f"its parent, which ends at {parent_end}."
            )
        if header_size < CHUNK_HEADER_SIZE:
            raise FormatError(f"Header size {header_size} too small at offset {chunk_start}.")

        chunk_end = chunk_start + chunk_size
        chunk = Chunk(
            type_id=type_id,
            index=len(chunks),
            parent_index=parent_index,
            payload=None,
            start=chunk_start,
            header_size=header_size,
            size=chunk_size,
        )
        chunks.append(chunk)
        chunk.payload = self._read_payload(reader, payload_type, header_size - CHUNK_HEADER_SIZE)

        while chunk_end - reader.tell() >= CHUNK_HEADER_SIZE:
            child_type = reader.read_u32()
            child = self._read_chunk(reader, chunks, child_type, chunk.index, chunk_end)
            chunk.children.append(child.index)

        if reader.tell() != chunk_end:
            raise FormatError(
                f"Stream position expected {chunk_end} but is {reader.tell()} "
                f"(chunk 0x{type_id:08X} at offset {chunk_start})."
            )
        return chunk

    def _read_payload(self, reader: BinaryReader, payload_type: Type[ChunkPayload], length: int):
        payload_start = reader.tell()
        payload = payload_type.read(reader, length)
        consumed = reader.tell() - payload_start
        if consumed > length:
            raise FormatError(
                f"{payload_type.__name__} header read {consumed} bytes, "
                f"only {length} declared."
            )
        if consumed < length:
            DebugConsole.log(
                f"Skipping {length - consumed} unread header bytes of {payload_type.__name__}"
            )
            reader.read_bytes(length - consumed)
        if isinstance(payload, Opaque):
            DebugConsole.log(f"Kept unknown chunk opaque ({length} bytes)")
        return payload

    # ------------------------------------------------------------------
    # Tree queries
    # ------------------------------------------------------------------
    def parent(self, chunk: Chunk) -> Optional[Chunk]:
        if chunk.parent_index is None:
            return None
        return self.chunks[chunk.parent_index]

    def children(self, chunk: Chunk) -> List[Chunk]:
        return [self.chunks[i] for i in chunk.children]

    def get_children(self, chunk: Chunk, payload_type: Type[P]) -> List[Chunk]:
        """Direct children whose payload is a `payload_type` (subclasses included)."""
        return [c for c in self.children(chunk) if isinstance(c.payload, payload_type)]

    def get_first_child(self, chunk: Chunk, payload_type: Type[P]) -> Optional[Chunk]:
        return next(iter(self.get_children(chunk, payload_type)), None)

    def get_children_by_name(self, chunk: Chunk, payload_type: Type[P], name: str) -> List[Chunk]:
        return [
            c
            for c in self.get_children(chunk, payload_type)
            if isinstance(c.payload, Named) and c.payload.name == name
        ]

    def walk(self, chunk: Optional[Chunk] = None, depth: int = 0) -> Iterator:
        """Yields (depth, chunk) in stream order."""
        chunk = chunk if chunk is not None else self.root
        if chunk is None:
            return
        stack = [(depth, chunk)]
        while stack:
            level, current = stack.pop()
            yield level, current
            for child_index in reversed(current.children):
                stack.append((level + 1, self.chunks[child_index]))

    def format_hierarchy(self) -> str:
        return "\n".join("\t" * depth + chunk.describe() for depth, chunk in self.walk())


def load_p3d(source) -> P3dFile:
    return P3dFile().load(source)
