import unittest
from unittest.mock import MagicMock

from tests._test_path import SRC  # noqa: F401

from blpconvert.analysis.analyzer import analyze_raster
from blpconvert.core.models import Raster, SourceMetadata
from blpconvert.formats.catalog import COMPRESSED_EXPORT_CATALOG, RASTER_EXPORT_CATALOG
from blpconvert.formats import recommend as rec


def _solid(rgba, width, height) -> Raster:
    return Raster(width=width, height=height, pixels=bytes(rgba) * (width * height))


def _from_alpha(alphas, rgb=(200, 100, 50)) -> Raster:
    return Raster(width=len(alphas), height=1, pixels=b"".join(bytes((*rgb, a)) for a in alphas))


def _recommended_ids(candidates):
    return [c.id for c in candidates if c.recommended]


def _by_id(candidates, cid):
    for c in candidates:
        if c.id == cid:
            return c
    raise AssertionError(f"Candidate not found: {cid}")


class TestRasterExportRecommendation(unittest.TestCase):
    def test_header_only_with_alpha(self):
        meta = SourceMetadata(has_alpha_channel=True, width=256, height=256, alpha_depth=8)
        out = rec.recommend_raster_export(RASTER_EXPORT_CATALOG, None, meta)
        self.assertEqual(_recommended_ids(out), ["rgba-8"])
        self.assertEqual(_by_id(out, "rgba-8").reason, "Source has alpha channel")

    def test_header_only_without_alpha(self):
        meta = SourceMetadata(has_alpha_channel=False, width=256, height=256)
        out = rec.recommend_raster_export(RASTER_EXPORT_CATALOG, None, meta)
        self.assertEqual(_recommended_ids(out), ["rgb-8"])
        self.assertEqual(_by_id(out, "rgb-8").reason, "No alpha channel in source")

    def test_opaque_pixels_pick_rgb_even_if_header_has_alpha(self):
        meta = SourceMetadata(has_alpha_channel=True, width=64, height=64, alpha_depth=8)
        analysis = analyze_raster(_solid((10, 20, 30, 255), 64, 64), 5000, 4000)
        out = rec.recommend_raster_export(RASTER_EXPORT_CATALOG, analysis, meta)
        self.assertEqual(_recommended_ids(out), ["rgb-8"])
        self.assertEqual(_by_id(out, "rgb-8").reason, "No alpha content (RGB recommended)")

    def test_alpha_coverage_reason(self):
        # 1 of 8 pixels translucent -> 12.5%
        analysis = analyze_raster(_from_alpha([255] * 7 + [100]), 100, 100)
        out = rec.recommend_raster_export(RASTER_EXPORT_CATALOG, analysis)
        self.assertEqual(_recommended_ids(out), ["rgba-8"])
        self.assertEqual(_by_id(out, "rgba-8").reason, "Alpha coverage: 12.5% (preserving transparency)")

    def test_small_grayscale_adds_grayscale_4(self):
        analysis = analyze_raster(_solid((90, 90, 90, 255), 32, 32), 100, 100)
        out = rec.recommend_raster_export(RASTER_EXPORT_CATALOG, analysis)
        self.assertEqual(_recommended_ids(out), ["rgb-8", "grayscale-4"])

    def test_small_color_adds_palette_4(self):
        analysis = analyze_raster(_solid((90, 10, 200, 255), 48, 48), 100, 100)
        out = rec.recommend_raster_export(RASTER_EXPORT_CATALOG, analysis)
        self.assertEqual(_recommended_ids(out), ["rgb-8", "palette-4"])
        self.assertEqual(rec.default_candidate(out).id, "rgb-8")

    def test_metadata_dimensions_take_precedence(self):
        analysis = analyze_raster(_solid((90, 10, 200, 255), 8, 8), 100, 100)
        meta = SourceMetadata(has_alpha_channel=False, width=512, height=512)
        out = rec.recommend_raster_export(RASTER_EXPORT_CATALOG, analysis, meta)
        self.assertEqual(_recommended_ids(out), ["rgb-8"])

    def test_small_image_with_alpha_gets_no_size_bonus(self):
        analysis = analyze_raster(_from_alpha([0, 255, 255, 255]), 100, 100)
        out = rec.recommend_raster_export(RASTER_EXPORT_CATALOG, analysis)
        self.assertEqual(_recommended_ids(out), ["rgba-8"])

    def test_keeps_catalog_order_and_does_not_touch_templates(self):
        analysis = analyze_raster(_solid((1, 2, 3, 255), 4, 4), 100, 100)
        out = rec.recommend_raster_export(RASTER_EXPORT_CATALOG, analysis)
        self.assertEqual([c.id for c in out], [c.id for c in RASTER_EXPORT_CATALOG])
        self.assertFalse(any(c.recommended for c in RASTER_EXPORT_CATALOG))

    def test_deterministic(self):
        analysis = analyze_raster(_from_alpha([0, 128, 255]), 300, 200)
        a = rec.recommend_raster_export(RASTER_EXPORT_CATALOG, analysis)
        b = rec.recommend_raster_export(RASTER_EXPORT_CATALOG, analysis)
        self.assertEqual(a, b)

    def test_failure_falls_back_to_header_recommendation(self):
        broken = MagicMock()
        broken.alpha_stats.total_pixels = 0  # empty analysis cannot be ranked
        meta = SourceMetadata(has_alpha_channel=False, width=4, height=4)
        with self.assertLogs("blpconvert.formats.recommend", level="ERROR"):
            out = rec.recommend_raster_export(RASTER_EXPORT_CATALOG, broken, meta)
        self.assertEqual(_recommended_ids(out), ["rgb-8"])


class TestCompressedExportRecommendation(unittest.TestCase):
    def test_opaque_prefers_dxt1(self):
        out = rec.recommend_compressed_export(COMPRESSED_EXPORT_CATALOG, _solid((1, 2, 3, 255), 4, 4))
        self.assertEqual(_recommended_ids(out), ["dxt1"])
        self.assertEqual(out[0].id, "dxt1")
        self.assertEqual(out[0].reason, "Opaque image - DXT1 provides best compression")
        dxt5 = _by_id(out, "dxt5")
        self.assertFalse(dxt5.recommended)
        self.assertEqual(dxt5.reason, "No alpha needed - DXT1 would be more efficient")

    def test_binary_alpha_prefers_sharp_alpha(self):
        out = rec.recommend_compressed_export(COMPRESSED_EXPORT_CATALOG, _from_alpha([0, 255, 0, 255]))
        self.assertEqual(_recommended_ids(out), ["dxt3", "dxt5"])
        self.assertEqual(_by_id(out, "dxt3").reason, "Image has binary transparency - DXT3 is more efficient")
        self.assertEqual(_by_id(out, "dxt5").reason, "Image has transparency - DXT5 recommended for alpha support")
        self.assertEqual(rec.default_candidate(out).id, "dxt3")

    def test_partial_alpha_prefers_smooth_alpha(self):
        out = rec.recommend_compressed_export(COMPRESSED_EXPORT_CATALOG, _from_alpha([0, 64, 255]))
        self.assertEqual(_recommended_ids(out), ["dxt5"])
        self.assertEqual(rec.default_candidate(out).id, "dxt5")
        self.assertEqual(_by_id(out, "dxt5").reason, "Image has smooth alpha gradients - DXT5 provides best quality")
        self.assertFalse(_by_id(out, "dxt3").recommended)

    def test_alpha_marks_dxt1_unsuitable(self):
        out = rec.recommend_compressed_export(COMPRESSED_EXPORT_CATALOG, _from_alpha([10, 255]))
        dxt1 = _by_id(out, "dxt1")
        self.assertFalse(dxt1.recommended)
        self.assertIn("doesn't support alpha", dxt1.reason)

    def test_stable_sort_recommended_first(self):
        out = rec.recommend_compressed_export(COMPRESSED_EXPORT_CATALOG, _from_alpha([0, 255]))
        self.assertEqual(
            [c.id for c in out], ["dxt3", "dxt5", "dxt1", "palette-8", "palette-1", "uncompressed"]
        )
        # untouched entries keep their catalog reason
        self.assertEqual(_by_id(out, "uncompressed").reason, "Highest quality but largest file size")

    def test_failure_returns_static_list(self):
        broken = MagicMock()
        broken.as_array.side_effect = ValueError("malformed raster")
        with self.assertLogs("blpconvert.formats.recommend", level="ERROR"):
            out = rec.recommend_compressed_export(COMPRESSED_EXPORT_CATALOG, broken)
        self.assertEqual(out, list(COMPRESSED_EXPORT_CATALOG))

    def test_deterministic(self):
        r = _from_alpha([0, 17, 255])
        self.assertEqual(
            rec.recommend_compressed_export(COMPRESSED_EXPORT_CATALOG, r),
            rec.recommend_compressed_export(COMPRESSED_EXPORT_CATALOG, r),
        )


class TestHelpers(unittest.TestCase):
    def test_default_candidate_falls_back_to_first(self):
        self.assertEqual(rec.default_candidate(RASTER_EXPORT_CATALOG).id, "rgba-8")

    def test_default_candidate_empty(self):
        with self.assertRaises(ValueError):
            rec.default_candidate([])

    def test_format_recommendations_text(self):
        out = rec.recommend_compressed_export(COMPRESSED_EXPORT_CATALOG, _from_alpha([0, 64]))
        txt = rec.format_recommendations_text(out)
        self.assertIn("Export formats", txt)
        self.assertIn("* dxt5", txt)
        self.assertIn("smooth alpha gradients", txt)
