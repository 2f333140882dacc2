"""
Lightweight BLP header reader.

Only the fixed-size header is read (width, height, alpha depth, compression), so a
recommendation can be made before any pixel data is decoded.

Layouts (little-endian):
- BLP0/BLP1: magic(4) compression u32 (0 = JPEG, 1 = palette) alpha_bits u32
  width u32 height u32 picture_type u32 has_mips u32
- BLP2: magic(4) type u32 compression u8 (1 = palette, 2 = DXT, 3 = uncompressed)
  alpha_depth u8 alpha_encoding u8 (0 = DXT1, 1 = DXT3, 7 = DXT5) has_mips u8
  width u32 height u32
"""

from __future__ import annotations

import struct

from blpconvert.core.errors import HeaderError
from blpconvert.core.models import SourceMetadata


BLP1_HEADER = struct.Struct("<4sIIIIII")
BLP2_HEADER = struct.Struct("<4sIBBBBII")

COMPRESSION_JPEG = 0
COMPRESSION_PALETTE = 1
COMPRESSION_DXT = 2
COMPRESSION_UNCOMPRESSED = 3

# BLP2 alpha_encoding values
ALPHA_ENCODING_DXT1 = 0
ALPHA_ENCODING_DXT3 = 1
ALPHA_ENCODING_DXT5 = 7


def read_blp_metadata(data: bytes) -> SourceMetadata:
    """
    Parse a BLP header.

    Raises:
        HeaderError: if the buffer is too short or does not start with a BLP magic.
    """
    if len(data) < 4:
        raise HeaderError("Buffer too short for a BLP header")

    magic = bytes(data[:4])
    if magic in (b"BLP0", b"BLP1"):
        if len(data) < BLP1_HEADER.size:
            raise HeaderError(f"Truncated {magic.decode()} header ({len(data)} bytes)")
        _, compression, alpha_bits, width, height, _picture_type, has_mips = BLP1_HEADER.unpack_from(data)
        return SourceMetadata(
            has_alpha_channel=alpha_bits > 0,
            width=width,
            height=height,
            alpha_depth=alpha_bits,
            compression=compression,
            preferred_format=None,
            has_mipmaps=bool(has_mips),
            version=magic.decode(),
        )

    if magic == b"BLP2":
        if len(data) < BLP2_HEADER.size:
            raise HeaderError(f"Truncated BLP2 header ({len(data)} bytes)")
        _, _type, compression, alpha_depth, alpha_encoding, has_mips, width, height = BLP2_HEADER.unpack_from(data)
        return SourceMetadata(
            has_alpha_channel=alpha_depth > 0,
            width=width,
            height=height,
            alpha_depth=alpha_depth,
            compression=compression,
            preferred_format=alpha_encoding,
            has_mipmaps=bool(has_mips),
            version="BLP2",
        )

    raise HeaderError(f"Not a BLP file (magic {magic!r})")


def dxt_variant(meta: SourceMetadata) -> str:
    """DXT flavour of a DXT-compressed BLP2 source, or '' for any other encoding."""
    if meta.version != "BLP2" or meta.compression != COMPRESSION_DXT:
        return ""
    if meta.preferred_format == ALPHA_ENCODING_DXT3:
        return "DXT3"
    if meta.preferred_format == ALPHA_ENCODING_DXT5:
        return "DXT5"
    return "DXT1"
