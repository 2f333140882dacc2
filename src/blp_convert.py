#!/usr/bin/env python3
"""
blp_convert.py

Inspect BLP/PNG textures and convert between them with an automatically chosen format:
- Reads the BLP header and decodes pixels (Pillow)
- Measures alpha coverage, color histograms and the size of the converted output
- Ranks the export formats and explains the choice

Usage:
  python blp_convert.py analyze texture.blp
  python blp_convert.py analyze icon.png
  python blp_convert.py convert texture.blp texture.png
  python blp_convert.py convert texture.blp texture.png --format palette-8
  python blp_convert.py convert icon.png icon.blp --format palette-1

Notes:
- PNG -> BLP is written with Pillow's BLP writer, which stores palettized BLP only.
  When a DXT or ARGB8888 format ranks first, the best palettized format is used instead.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import math
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Sequence

from blpconvert.analysis.analyzer import analyze_raster
from blpconvert.analysis.metrics import compute_compression_metrics
from blpconvert.analysis.statistics import alpha_display_buckets, bucket_heights, rgb_display_buckets
from blpconvert.app.state import ConversionSession
from blpconvert.app.temp_paths import TempPreviewStore
from blpconvert.codecs.pillow_codec import PillowCodec
from blpconvert.core.blp_header import dxt_variant, read_blp_metadata
from blpconvert.core.models import AnalysisResult, ConversionDirection, Histogram, SessionSettings
from blpconvert.formats.catalog import FormatCandidate, find_candidate, get_catalog
from blpconvert.formats.recommend import (
    default_candidate,
    format_recommendations_text,
    recommend_compressed_export,
    recommend_raster_export,
)

# Low to high; index 0 is an empty bucket
_BAR_RAMP = " .:-=+*#%@"


def _direction_for(path: Path) -> ConversionDirection:
    if path.suffix.lower() == ".blp":
        return ConversionDirection.TO_RASTER
    return ConversionDirection.TO_COMPRESSED


def _histogram_bar(heights: Sequence[float]) -> str:
    top = len(_BAR_RAMP) - 1
    return "".join(_BAR_RAMP[min(top, math.ceil(h / 100 * top))] for h in heights)


def _format_histograms(histogram: Histogram) -> List[str]:
    rows = [
        ("Red", rgb_display_buckets(histogram, "r")),
        ("Green", rgb_display_buckets(histogram, "g")),
        ("Blue", rgb_display_buckets(histogram, "b")),
        ("Alpha", alpha_display_buckets(histogram)),
    ]
    lines = ["Histograms (64 buckets, 0 -> 255, scaled to the tallest bucket; alpha omits 255)"]
    for label, buckets in rows:
        lines.append(f"  {label:<6}|{_histogram_bar(bucket_heights(buckets))}|")
    return lines


def _format_analysis(analysis: AnalysisResult) -> List[str]:
    stats = analysis.alpha_stats
    return [
        f"Size:           {analysis.width}x{analysis.height}",
        f"Has alpha:      {'Yes' if stats.has_alpha else 'No'}",
        f"Alpha pixels:   {stats.alpha_pixels:,} / {stats.total_pixels:,} (alpha < 255)",
        f"Alpha coverage: {stats.coverage:.1f}%",
        f"Average alpha:  {stats.avg_alpha:.1f}",
    ]


def _format_compression(
    analysis: AnalysisResult, source_size: int, output_size: int, chosen: FormatCandidate
) -> List[str]:
    metrics = analysis.compression
    return [
        f"Output:         {chosen.name}, {source_size:,} -> {output_size:,} bytes",
        f"Compression:    {metrics.compression_ratio:.1f}%",
        f"Size savings:   {metrics.size_savings:.1f}%",
    ]


def _pillow_blp_choice(codec: PillowCodec, candidates: Sequence[FormatCandidate]) -> FormatCandidate:
    """Best-ranked candidate that Pillow can write."""
    for c in candidates:
        if codec.can_encode_blp(c.params):
            return c
    raise ValueError("No BLP format in the catalog can be written with Pillow")


async def _analyze(path: Path) -> str:
    data = path.read_bytes()
    codec = PillowCodec()
    direction = _direction_for(path)
    raster = await codec.decode(data)
    # Pixel statistics first; the size comparison needs the chosen output
    analysis = analyze_raster(raster, len(data), len(data))

    lines: List[str] = [f"File: {path}"]
    if direction is ConversionDirection.TO_RASTER:
        meta = read_blp_metadata(data)
        lines.append(f"BLP:            {meta.version} compression={meta.compression} "
                     f"alpha={meta.alpha_depth}-bit {dxt_variant(meta)}".rstrip())
        candidates = recommend_raster_export(get_catalog(direction), analysis, meta)
        chosen = default_candidate(candidates)
        output = await codec.encode_png(raster, chosen.params)
    else:
        candidates = recommend_compressed_export(get_catalog(direction), raster)
        chosen = _pillow_blp_choice(codec, candidates)
        output = await codec.encode_blp(raster, chosen.params)
    analysis = replace(analysis, compression=compute_compression_metrics(len(data), len(output)))

    lines.extend(_format_analysis(analysis))
    lines.extend(_format_compression(analysis, len(data), len(output), chosen))
    lines.append("")
    lines.extend(_format_histograms(analysis.histogram))
    lines.append("")
    lines.append(format_recommendations_text(candidates))
    return "\n".join(lines)


async def _convert_to_png(src: Path, dst: Path, format_id: Optional[str], settings: SessionSettings) -> str:
    codec = PillowCodec()
    store = TempPreviewStore.default()
    session = ConversionSession(
        direction=ConversionDirection.TO_RASTER,
        decode_source=codec.decode,
        encode=codec.encode_png,
        previews=store,
        settings=settings,
    )
    try:
        await session.load(src.read_bytes())
        if format_id:
            await session.select_candidate(format_id)
        dst.write_bytes(session.preview_bytes)
        chosen = session.selected_candidate
        reason = f" ({chosen.reason})" if chosen.recommended and chosen.reason else ""
        return f"Saved: {dst} as {chosen.name}{reason}"
    finally:
        session.close()


async def _convert_to_blp(src: Path, dst: Path, format_id: Optional[str]) -> str:
    codec = PillowCodec()
    raster = await codec.decode(src.read_bytes())
    candidates = recommend_compressed_export(get_catalog(ConversionDirection.TO_COMPRESSED), raster)

    note = ""
    if format_id:
        chosen = find_candidate(candidates, format_id)
        if chosen is None:
            raise ValueError(f"Unknown BLP format: {format_id}")
    else:
        chosen = _pillow_blp_choice(codec, candidates)
        best = default_candidate(candidates)
        if best.id != chosen.id:
            note = f"; {best.name} ranks first but needs an external BLP encoder"

    dst.write_bytes(await codec.encode_blp(raster, chosen.params))
    return f"Saved: {dst} as {chosen.name}{note}"


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Analyze BLP/PNG textures and convert between them.")
    p.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    a = sub.add_parser("analyze", help="Print alpha statistics, histograms and ranked export formats")
    a.add_argument("input", help="Path to a .blp or .png file")

    c = sub.add_parser("convert", help="Convert BLP -> PNG, or PNG -> palettized BLP")
    c.add_argument("input", help="Path to input .blp or .png")
    c.add_argument("output", help="Path to output .png or .blp")
    c.add_argument("--format", "-f", dest="format_id", default=None,
                   help="Export format id (default: recommended, e.g. rgba-8, rgb-8, palette-4, palette-1)")
    c.add_argument("--timeout", type=float, default=SessionSettings.analysis_timeout,
                   help="Analysis time limit in seconds (default: 10)")
    c.add_argument("--no-eager-analysis", action="store_true",
                   help="Use header-based recommendation only; skip the pixel analysis pass")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "analyze":
            out = asyncio.run(_analyze(Path(args.input)))
        elif _direction_for(Path(args.input)) is ConversionDirection.TO_COMPRESSED:
            out = asyncio.run(_convert_to_blp(Path(args.input), Path(args.output), args.format_id))
        else:
            settings = replace(
                SessionSettings(),
                analysis_timeout=args.timeout,
                eager_analysis=not args.no_eager_analysis,
            )
            out = asyncio.run(_convert_to_png(Path(args.input), Path(args.output), args.format_id, settings))
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    print(out)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
