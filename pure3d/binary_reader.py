import os
import struct
from typing import List, Tuple

import numpy as np


def zero_terminate(text: str) -> str:
    """Cuts a string at its first NUL, fixed-size buffers are padded with them."""
    end = text.find("\0")
    return text if end == -1 else text[:end]


class BinaryReader:
    """Sequential little-endian reader over a seekable stream.

    One reader is threaded through the whole recursive chunk decode, its
    position is the only cursor.
    """

    def __init__(self, stream, endian="<"):
        self.stream = stream
        self.endian = endian

    def read_bytes(self, num_bytes):
        data = self.stream.read(num_bytes)
        if len(data) < num_bytes:
            raise EOFError(
                f"Tried to read {num_bytes} bytes, but only got {len(data)}."
            )
        return data

    def read_struct(self, fmt, num_bytes):
        return struct.unpack(self.endian + fmt, self.read_bytes(num_bytes))

    def read_u8(self):
        return self.read_struct("B", 1)[0]

    def read_i16(self):
        return self.read_struct("h", 2)[0]

    def read_u16(self):
        return self.read_struct("H", 2)[0]

    def read_u32(self):
        return self.read_struct("I", 4)[0]

    def read_i32(self):
        return self.read_struct("i", 4)[0]

    def read_f32(self):
        return self.read_struct("f", 4)[0]

    def read_string(self):
        length = self.read_u8()
        if length == 0:
            return ""
        return zero_terminate(self.read_bytes(length).decode("ascii", errors="replace"))

    def read_fourcc(self):
        return zero_terminate(self.read_bytes(4).decode("ascii", errors="replace"))

    def read_vec2(self) -> Tuple[float, ...]:
        return self.read_struct("ff", 8)

    def read_vec3(self) -> Tuple[float, ...]:
        return self.read_struct("fff", 12)

    def read_matrix(self) -> np.ndarray:
        # M11..M44, row by row
        return np.array(self.read_struct("16f", 64), dtype=np.float32).reshape(4, 4)

    def read_array(self, fmt, count, item_size) -> List:
        if count == 0:
            return []
        return list(self.read_struct(f"{count}{fmt}", count * item_size))

    def tell(self):
        return self.stream.tell()

    def size(self):
        current_pos = self.tell()
        self.stream.seek(0, os.SEEK_END)
        end_pos = self.stream.tell()
        self.stream.seek(current_pos, os.SEEK_SET)
        return end_pos

    def is_eof(self):
        return self.tell() >= self.size()
