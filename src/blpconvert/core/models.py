from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np


class ConversionDirection(Enum):
    TO_RASTER = "to_raster"  # BLP -> PNG
    TO_COMPRESSED = "to_compressed"  # PNG -> BLP


@dataclass(frozen=True)
class Raster:
    """
    A decoded image as a flat RGBA8 buffer.

    width, height:
        Dimensions in pixels.
    pixels:
        R, G, B, A bytes per pixel, row-major. Length must be exactly 4 * width * height.
    """
    width: int
    height: int
    pixels: bytes

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError(f"Invalid raster dimensions: {self.width}x{self.height}")
        expected = 4 * self.width * self.height
        if len(self.pixels) != expected:
            raise ValueError(
                f"RGBA buffer holds {len(self.pixels)} bytes, expected {expected} "
                f"for {self.width}x{self.height}"
            )

    @property
    def total_pixels(self) -> int:
        return self.width * self.height

    def as_array(self) -> np.ndarray:
        """Read-only (N, 4) uint8 view of the pixel buffer."""
        return np.frombuffer(self.pixels, dtype=np.uint8).reshape(-1, 4)


@dataclass(frozen=True)
class Histogram:
    r: Tuple[int, ...]
    g: Tuple[int, ...]
    b: Tuple[int, ...]
    a: Tuple[int, ...]

    def channel(self, name: str) -> Tuple[int, ...]:
        if name not in ("r", "g", "b", "a"):
            raise ValueError(f"Unknown channel: {name!r}")
        return getattr(self, name)


@dataclass(frozen=True)
class AlphaStatistics:
    """
    Transparency summary of a raster.

    alpha_pixels counts pixels with alpha < 255; avg_alpha is the mean of all alpha values.
    """
    has_alpha: bool
    alpha_pixels: int
    total_pixels: int
    avg_alpha: float

    @property
    def coverage(self) -> float:
        """Percentage of pixels that are not fully opaque."""
        if self.total_pixels <= 0:
            return 0.0
        return self.alpha_pixels / self.total_pixels * 100


@dataclass(frozen=True)
class CompressionMetrics:
    compression_ratio: float  # compressed / original, percent
    size_savings: float  # (original - compressed) / original, percent


@dataclass(frozen=True)
class AnalysisResult:
    histogram: Histogram
    alpha_stats: AlphaStatistics
    compression: CompressionMetrics
    width: int
    height: int


@dataclass(frozen=True)
class SourceMetadata:
    """Header-level facts about a source asset, available before any pixel is decoded."""
    has_alpha_channel: bool
    width: int
    height: int
    alpha_depth: int = 0
    compression: Optional[int] = None
    preferred_format: Optional[int] = None
    has_mipmaps: bool = False
    version: str = ""


@dataclass(frozen=True)
class SessionSettings:
    """
    Knobs for a ConversionSession.

    analysis_timeout:
        Seconds an analysis pass may take before it fails with AnalysisTimeout. Default 10.
    eager_analysis:
        If True, a BLP -> PNG load analyses the first preview right away and may upgrade
        the default format.
    small_grayscale_max / small_palette_max:
        Largest width/height for which 4-bit grayscale / 4-bit palette output is suggested.
    """
    analysis_timeout: float = 10.0
    eager_analysis: bool = True
    small_grayscale_max: int = 32
    small_palette_max: int = 48
