from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from blpconvert.analysis.metrics import compute_compression_metrics
from blpconvert.analysis.statistics import collect_pixel_statistics
from blpconvert.core.errors import AnalysisTimeout
from blpconvert.core.models import AnalysisResult, Raster

logger = logging.getLogger(__name__)

RasterDecoder = Callable[[bytes], Awaitable[Raster]]

ANALYSIS_TIMEOUT_SECONDS = 10.0


def analyze_raster(raster: Raster, original_size: int, compressed_size: int) -> AnalysisResult:
    """Histogram, alpha statistics and size comparison for one raster and one size pair."""
    histogram, alpha_stats = collect_pixel_statistics(raster)
    return AnalysisResult(
        histogram=histogram,
        alpha_stats=alpha_stats,
        compression=compute_compression_metrics(original_size, compressed_size),
        width=raster.width,
        height=raster.height,
    )


async def _decode_and_analyze(
    decode: RasterDecoder, data: bytes, original_size: int, compressed_size: int
) -> AnalysisResult:
    raster = await decode(data)
    return analyze_raster(raster, original_size, compressed_size)


async def generate_analysis(
    decode: RasterDecoder,
    data: bytes,
    original_size: int,
    compressed_size: int,
    timeout: float = ANALYSIS_TIMEOUT_SECONDS,
) -> AnalysisResult:
    """
    Decode an encoded preview and analyse it, bounded by `timeout` seconds.

    On timeout the pending decode is cancelled before AnalysisTimeout is raised.
    Decoder errors propagate unchanged.
    """
    try:
        return await asyncio.wait_for(
            _decode_and_analyze(decode, data, original_size, compressed_size),
            timeout=timeout,
        )
    except asyncio.TimeoutError as exc:
        logger.warning("Image analysis timed out after %.1fs", timeout)
        raise AnalysisTimeout(f"Image analysis timed out after {timeout:g}s") from exc
