from __future__ import annotations

import math
from typing import List, Sequence, Tuple

import numpy as np

from blpconvert.core.models import AlphaStatistics, Histogram, Raster


DISPLAY_BUCKETS = 64


def _channel_counts(values: np.ndarray) -> Tuple[int, ...]:
    return tuple(int(c) for c in np.bincount(values, minlength=256))


def collect_pixel_statistics(raster: Raster) -> Tuple[Histogram, AlphaStatistics]:
    """
    Per-channel histograms and alpha summary for an RGBA raster.

    Each pixel contributes once to every channel's 256-bin histogram. A pixel counts as
    an alpha pixel when its alpha is below 255. avg_alpha is 0 for an empty raster.
    """
    px = raster.as_array()
    total = raster.total_pixels

    histogram = Histogram(
        r=_channel_counts(px[:, 0]),
        g=_channel_counts(px[:, 1]),
        b=_channel_counts(px[:, 2]),
        a=_channel_counts(px[:, 3]),
    )

    alpha = px[:, 3]
    alpha_sum = int(alpha.sum(dtype=np.uint64))
    alpha_pixels = int(np.count_nonzero(alpha < 255))
    avg_alpha = alpha_sum / total if total else 0.0

    stats = AlphaStatistics(
        has_alpha=alpha_pixels > 0,
        alpha_pixels=alpha_pixels,
        total_pixels=total,
        avg_alpha=avg_alpha,
    )
    return histogram, stats


def bucket_histogram(
    counts: Sequence[int],
    domain_size: int = 256,
    buckets: int = DISPLAY_BUCKETS,
) -> List[int]:
    """
    Fold the first `domain_size` bins of a histogram into `buckets` display buckets.

    bucket = floor(value / (domain_size / buckets)). A domain that does not divide evenly
    gives a fractional bucket size and buckets of unequal width.
    """
    bucket_size = domain_size / buckets
    out = [0] * buckets
    for value in range(domain_size):
        out[math.floor(value / bucket_size)] += counts[value]
    return out


def rgb_display_buckets(histogram: Histogram, channel: str) -> List[int]:
    return bucket_histogram(histogram.channel(channel), domain_size=256)


def alpha_display_buckets(histogram: Histogram) -> List[int]:
    # Fully opaque (255) is left out; bucket size is 255/64.
    return bucket_histogram(histogram.a, domain_size=255)


def bucket_heights(bucket_counts: Sequence[int]) -> List[float]:
    """Bar heights in percent of the tallest bucket."""
    peak = max(bucket_counts, default=0)
    if peak <= 0:
        return [0.0] * len(bucket_counts)
    return [count / peak * 100 for count in bucket_counts]
