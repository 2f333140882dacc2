from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

import numpy as np

from blpconvert.core.errors import RecommendationFailure
from blpconvert.core.models import AnalysisResult, Histogram, Raster, SessionSettings, SourceMetadata
from blpconvert.formats.catalog import FormatCandidate

logger = logging.getLogger(__name__)


def _is_grayscale(histogram: Histogram) -> bool:
    """True when the R, G and B histograms match bin for bin."""
    return histogram.r == histogram.g == histogram.b


def _flag(
    candidates: List[FormatCandidate], candidate_id: str, recommended: bool, reason: Optional[str]
) -> None:
    for i, c in enumerate(candidates):
        if c.id == candidate_id:
            candidates[i] = replace(c, recommended=recommended, reason=reason)
            return


def _static_raster_recommendation(
    catalog: Sequence[FormatCandidate], metadata: Optional[SourceMetadata]
) -> List[FormatCandidate]:
    out = list(catalog)
    if metadata is None:
        _flag(out, "rgba-8", True, "Default: preserves all channels")
    elif metadata.has_alpha_channel:
        _flag(out, "rgba-8", True, "Source has alpha channel")
    else:
        _flag(out, "rgb-8", True, "No alpha channel in source")
    return out


def _analysis_raster_recommendation(
    catalog: Sequence[FormatCandidate],
    analysis: AnalysisResult,
    metadata: Optional[SourceMetadata],
    settings: SessionSettings,
) -> List[FormatCandidate]:
    out = [replace(c, recommended=False, reason=None) for c in catalog]

    stats = analysis.alpha_stats
    if stats.total_pixels <= 0:
        raise RecommendationFailure("Analysis covers an empty raster")
    coverage = stats.alpha_pixels / stats.total_pixels * 100
    has_alpha = coverage > 0
    has_color = not _is_grayscale(analysis.histogram)

    if metadata is not None:
        width, height = metadata.width, metadata.height
    else:
        width, height = analysis.width, analysis.height

    # Rule: alpha
    if has_alpha:
        _flag(out, "rgba-8", True, f"Alpha coverage: {coverage:.1f}% (preserving transparency)")
    else:
        _flag(out, "rgb-8", True, "No alpha content (RGB recommended)")

    # Rule: very small textures
    small_gray = settings.small_grayscale_max
    small_pal = settings.small_palette_max
    if width <= small_gray and height <= small_gray and not has_alpha and not has_color:
        _flag(out, "grayscale-4", True, "Very small grayscale image - 4-bit grayscale recommended")
    elif width <= small_pal and height <= small_pal and not has_alpha and has_color:
        _flag(out, "palette-4", True, "Small colored image - palette compression recommended")

    return out


def recommend_raster_export(
    catalog: Sequence[FormatCandidate],
    analysis: Optional[AnalysisResult] = None,
    metadata: Optional[SourceMetadata] = None,
    settings: Optional[SessionSettings] = None,
) -> List[FormatCandidate]:
    """
    Flag PNG export candidates for a decoded BLP.

    Without pixel analysis only the source header is consulted. With analysis all flags
    are recomputed from the measured alpha coverage and channel histograms; more than one
    candidate may come back recommended. Catalog order is kept.

    Never raises: failures are logged and the header-based recommendation is returned.
    """
    settings = settings or SessionSettings()
    if analysis is None:
        return _static_raster_recommendation(catalog, metadata)
    try:
        return _analysis_raster_recommendation(catalog, analysis, metadata, settings)
    except Exception:
        logger.exception("Analysis-based PNG recommendation failed; using header defaults")
        return _static_raster_recommendation(catalog, metadata)


def _alpha_profile(raster: Raster) -> Dict[str, bool]:
    alpha = raster.as_array()[:, 3]
    return {
        "has_alpha": bool(np.any(alpha < 255)),
        "has_partial_alpha": bool(np.any((alpha > 0) & (alpha < 255))),
    }


def _alpha_aware_blp_recommendation(
    catalog: Sequence[FormatCandidate], raster: Raster
) -> List[FormatCandidate]:
    profile = _alpha_profile(raster)
    has_alpha = profile["has_alpha"]
    has_partial_alpha = profile["has_partial_alpha"]

    verdicts: Dict[str, tuple] = {}
    if has_alpha:
        if has_partial_alpha:
            verdicts["dxt5"] = (True, "Image has smooth alpha gradients - DXT5 provides best quality")
        else:
            verdicts["dxt5"] = (True, "Image has transparency - DXT5 recommended for alpha support")
            verdicts["dxt3"] = (True, "Image has binary transparency - DXT3 is more efficient")
        verdicts["dxt1"] = (False, "DXT1 doesn't support alpha - not suitable for transparent images")
    else:
        verdicts["dxt1"] = (True, "Opaque image - DXT1 provides best compression")
        verdicts["dxt5"] = (False, "No alpha needed - DXT1 would be more efficient")

    out: List[FormatCandidate] = []
    for c in catalog:
        recommended, reason = verdicts.get(c.id, (False, c.reason))
        out.append(replace(c, recommended=recommended, reason=reason))

    # sorted() is stable, so catalog order survives within each group
    return sorted(out, key=lambda c: not c.recommended)


def recommend_compressed_export(
    catalog: Sequence[FormatCandidate], raster: Raster
) -> List[FormatCandidate]:
    """
    Rank BLP export candidates by the alpha content of a decoded PNG.

    Recommended candidates come first. Never raises: on failure the catalog's static
    recommendations are returned unchanged.
    """
    try:
        return _alpha_aware_blp_recommendation(catalog, raster)
    except Exception:
        logger.exception("Error analyzing PNG for smart recommendations; using static list")
        return list(catalog)


def default_candidate(candidates: Sequence[FormatCandidate]) -> FormatCandidate:
    """First recommended candidate, or the first candidate when none is recommended."""
    for c in candidates:
        if c.recommended:
            return c
    if not candidates:
        raise ValueError("No format candidates to choose from")
    return candidates[0]


def format_recommendations_text(candidates: Sequence[FormatCandidate]) -> str:
    lines: List[str] = []
    lines.append("Export formats")
    lines.append("-" * 32)
    for c in candidates:
        mark = "*" if c.recommended else " "
        line = f"{mark} {c.id:<18} {c.name}"
        if c.recommended and c.reason:
            line += f"  ({c.reason})"
        lines.append(line)
    return "\n".join(lines)
