import asyncio
import unittest

from tests._test_path import SRC  # noqa: F401

from blpconvert.analysis.analyzer import analyze_raster, generate_analysis
from blpconvert.core.errors import AnalysisTimeout, DecodeFailure
from blpconvert.core.models import Raster


RASTER = Raster(
    width=2,
    height=2,
    pixels=bytes([255, 0, 0, 255, 0, 255, 0, 128, 0, 0, 255, 0, 255, 255, 255, 255]),
)


class TestAnalyzeRaster(unittest.TestCase):
    def test_aggregates_statistics_and_sizes(self):
        result = analyze_raster(RASTER, 100000, 25000)
        self.assertEqual((result.width, result.height), (2, 2))
        self.assertEqual(result.alpha_stats.alpha_pixels, 2)
        self.assertAlmostEqual(result.alpha_stats.avg_alpha, 159.5)
        self.assertAlmostEqual(result.compression.compression_ratio, 25.0)
        self.assertAlmostEqual(result.compression.size_savings, 75.0)

    def test_idempotent(self):
        self.assertEqual(analyze_raster(RASTER, 10, 5), analyze_raster(RASTER, 10, 5))


class TestGenerateAnalysis(unittest.IsolatedAsyncioTestCase):
    async def test_decodes_then_analyses(self):
        seen = []

        async def decode(data):
            seen.append(data)
            return RASTER

        result = await generate_analysis(decode, b"png", 400, 100)
        self.assertEqual(seen, [b"png"])
        self.assertAlmostEqual(result.compression.compression_ratio, 25.0)

    async def test_timeout_raises_and_cancels_decoder(self):
        cancelled = asyncio.Event()

        async def slow_decode(_data):
            try:
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return RASTER

        with self.assertLogs("blpconvert.analysis.analyzer", level="WARNING"):
            with self.assertRaises(AnalysisTimeout):
                await generate_analysis(slow_decode, b"x", 1, 1, timeout=0.01)
        self.assertTrue(cancelled.is_set())

    async def test_decoder_errors_propagate(self):
        async def bad_decode(_data):
            raise DecodeFailure("broken")

        with self.assertRaises(DecodeFailure):
            await generate_analysis(bad_decode, b"x", 1, 1)
