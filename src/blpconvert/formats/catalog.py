from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional, Tuple, Union

from blpconvert.core.models import ConversionDirection


class PngColorType(IntEnum):
    # PNG IHDR color type codes
    GRAYSCALE = 0
    RGB = 2
    PALETTE = 3
    GRAYSCALE_ALPHA = 4
    RGBA = 6


class BlpCompression(IntEnum):
    PALETTE = 1
    DXT = 2
    ARGB8888 = 3


class BlpPixelFormat(IntEnum):
    DXT1 = 0
    DXT3 = 1
    ARGB8888 = 2
    DXT5 = 7


class ResizeMode(Enum):
    FORCE = "force"
    PAD = "pad"
    PAD_CENTER = "pad_center"


@dataclass(frozen=True)
class PngParams:
    color_type: PngColorType
    bit_depth: int


@dataclass(frozen=True)
class BlpParams:
    compression: BlpCompression
    preferred_format: BlpPixelFormat
    alpha_depth: int
    generate_mipmaps: bool = True
    resize_mode: ResizeMode = ResizeMode.PAD_CENTER
    auto_resize: bool = True


CodecParams = Union[PngParams, BlpParams]


@dataclass(frozen=True)
class FormatCandidate:
    """
    One selectable encoding configuration.

    id:
        Stable key, unique within its catalog.
    params:
        Handed to the codec as-is.
    recommended / reason:
        Filled in by the recommendation engine on derived copies.
    """
    id: str
    name: str
    description: str
    params: CodecParams
    recommended: bool = False
    reason: Optional[str] = None


RASTER_EXPORT_CATALOG: Tuple[FormatCandidate, ...] = (
    FormatCandidate(
        id="rgba-8",
        name="RGBA (8-bit)",
        description="Full color with alpha channel",
        params=PngParams(PngColorType.RGBA, 8),
    ),
    FormatCandidate(
        id="rgb-8",
        name="RGB (8-bit)",
        description="Full color without alpha",
        params=PngParams(PngColorType.RGB, 8),
    ),
    FormatCandidate(
        id="grayscale-8",
        name="Grayscale (8-bit)",
        description="Black and white",
        params=PngParams(PngColorType.GRAYSCALE, 8),
    ),
    FormatCandidate(
        id="grayscale-4",
        name="Grayscale (4-bit)",
        description="16 shades of gray",
        params=PngParams(PngColorType.GRAYSCALE, 4),
    ),
    FormatCandidate(
        id="palette-8",
        name="Palette (8-bit)",
        description="256 colors with automatic reduction",
        params=PngParams(PngColorType.PALETTE, 8),
    ),
    FormatCandidate(
        id="palette-4",
        name="Palette (4-bit)",
        description="16 colors with automatic reduction",
        params=PngParams(PngColorType.PALETTE, 4),
    ),
    FormatCandidate(
        id="grayscale-alpha-8",
        name="Grayscale + Alpha (8-bit)",
        description="Grayscale with transparency",
        params=PngParams(PngColorType.GRAYSCALE_ALPHA, 8),
    ),
)


COMPRESSED_EXPORT_CATALOG: Tuple[FormatCandidate, ...] = (
    FormatCandidate(
        id="dxt1",
        name="DXT1 (No Alpha)",
        description="DXT1 compression without alpha channel. Best for opaque textures.",
        params=BlpParams(BlpCompression.DXT, BlpPixelFormat.DXT1, alpha_depth=0),
        recommended=True,
        reason="Most common format for opaque textures",
    ),
    FormatCandidate(
        id="dxt3",
        name="DXT3 (Sharp Alpha)",
        description="DXT3 compression with sharp alpha channel. Good for textures with binary transparency.",
        params=BlpParams(BlpCompression.DXT, BlpPixelFormat.DXT3, alpha_depth=4),
        reason="Good for textures with sharp alpha edges",
    ),
    FormatCandidate(
        id="dxt5",
        name="DXT5 (Smooth Alpha)",
        description="DXT5 compression with smooth alpha channel. Best for textures with gradient transparency.",
        params=BlpParams(BlpCompression.DXT, BlpPixelFormat.DXT5, alpha_depth=8),
        recommended=True,
        reason="Best for textures with smooth alpha gradients",
    ),
    FormatCandidate(
        id="palette-8",
        name="Palette (8-bit Alpha)",
        description="Palettized compression with 8-bit alpha. Good for textures with limited colors.",
        params=BlpParams(BlpCompression.PALETTE, BlpPixelFormat.DXT1, alpha_depth=8),
        reason="Good for textures with limited color palette",
    ),
    FormatCandidate(
        id="palette-1",
        name="Palette (1-bit Alpha)",
        description="Palettized compression with 1-bit alpha. Good for textures with binary transparency.",
        params=BlpParams(BlpCompression.PALETTE, BlpPixelFormat.DXT1, alpha_depth=1),
        reason="Good for textures with binary transparency",
    ),
    FormatCandidate(
        id="uncompressed",
        name="Uncompressed (ARGB8888)",
        description="Uncompressed ARGB8888 format. Largest file size but highest quality.",
        params=BlpParams(BlpCompression.ARGB8888, BlpPixelFormat.ARGB8888, alpha_depth=8),
        reason="Highest quality but largest file size",
    ),
)


def get_catalog(direction: ConversionDirection) -> Tuple[FormatCandidate, ...]:
    if direction is ConversionDirection.TO_RASTER:
        return RASTER_EXPORT_CATALOG
    return COMPRESSED_EXPORT_CATALOG


def find_candidate(candidates, candidate_id: str) -> Optional[FormatCandidate]:
    for c in candidates:
        if c.id == candidate_id:
            return c
    return None
