from __future__ import annotations

from blpconvert.core.models import CompressionMetrics


def compute_compression_metrics(original_size: int, compressed_size: int) -> CompressionMetrics:
    """Size comparison in percent. Both values are 0 when original_size <= 0."""
    if original_size <= 0:
        return CompressionMetrics(compression_ratio=0.0, size_savings=0.0)
    ratio = compressed_size / original_size * 100
    savings = (original_size - compressed_size) / original_size * 100
    return CompressionMetrics(compression_ratio=ratio, size_savings=savings)
