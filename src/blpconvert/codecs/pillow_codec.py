from __future__ import annotations

import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from blpconvert.core.errors import DecodeFailure, EncodeFailure, RasterContextUnavailable
from blpconvert.core.models import Raster
from blpconvert.formats.catalog import BlpCompression, BlpParams, PngColorType, PngParams

logger = logging.getLogger(__name__)


def raster_from_pil(img: Image.Image) -> Raster:
    """RGBA8 Raster from any PIL image."""
    try:
        rgba = img if img.mode == "RGBA" else img.convert("RGBA")
        return Raster(width=rgba.width, height=rgba.height, pixels=rgba.tobytes())
    except (OSError, ValueError) as exc:
        raise RasterContextUnavailable(f"Could not read pixels from {img.mode} image: {exc}") from exc


def raster_to_pil(raster: Raster) -> Image.Image:
    return Image.frombytes("RGBA", (raster.width, raster.height), raster.pixels)


class PillowCodec:
    """
    Raster side of the conversion, backed by Pillow.

    decode() accepts anything Pillow can open, including BLP1/BLP2 through Pillow's BLP
    plugin. encode_png() writes PNG for the raster-export catalog.

    encode_blp() covers the palettized BLP candidates only: Pillow's BLP writer stores
    uncompressed palette data (BLP2, no mipmaps). DXT and ARGB8888 output need an
    external encoder.
    """

    async def decode(self, data: bytes) -> Raster:
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                return raster_from_pil(img)
        except UnidentifiedImageError as exc:
            raise DecodeFailure("Data is not a recognised image") from exc
        except (OSError, SyntaxError, ValueError, NotImplementedError) as exc:
            # Pillow signals malformed headers with SyntaxError in some plugins, and
            # unsupported BLP encodings with BLPFormatError (a NotImplementedError)
            raise DecodeFailure(f"Could not decode image: {exc}") from exc

    async def encode_png(self, raster: Raster, params: PngParams) -> bytes:
        if raster.total_pixels == 0:
            raise EncodeFailure("Cannot encode an empty raster")
        img = raster_to_pil(raster)
        save_kwargs = {"format": "PNG", "optimize": True}

        ct = params.color_type
        if ct is PngColorType.RGBA:
            out = img
        elif ct is PngColorType.RGB:
            out = img.convert("RGB")
        elif ct is PngColorType.GRAYSCALE:
            out = img.convert("L")
            if params.bit_depth < 8:
                # 16 gray levels; Pillow still stores grayscale as 8-bit samples
                out = ImageOps.posterize(out, params.bit_depth)
        elif ct is PngColorType.GRAYSCALE_ALPHA:
            out = img.convert("LA")
        elif ct is PngColorType.PALETTE:
            colors = 1 << params.bit_depth
            out = img.quantize(colors=colors, method=Image.Quantize.FASTOCTREE)
            save_kwargs["bits"] = params.bit_depth
        else:
            raise EncodeFailure(f"Unsupported PNG color type: {ct!r}")

        buf = io.BytesIO()
        try:
            out.save(buf, **save_kwargs)
        except (OSError, ValueError) as exc:
            raise EncodeFailure(f"PNG encoding failed: {exc}") from exc
        logger.debug("Encoded %dx%d PNG (%s, %d-bit): %d bytes",
                     raster.width, raster.height, ct.name, params.bit_depth, buf.tell())
        return buf.getvalue()

    @staticmethod
    def can_encode_blp(params: BlpParams) -> bool:
        return params.compression is BlpCompression.PALETTE

    async def encode_blp(self, raster: Raster, params: BlpParams) -> bytes:
        if not self.can_encode_blp(params):
            raise EncodeFailure(
                f"{params.compression.name} BLP output needs an external encoder; "
                "Pillow writes palettized BLP only"
            )
        if raster.total_pixels == 0:
            raise EncodeFailure("Cannot encode an empty raster")
        img = raster_to_pil(raster)

        if params.alpha_depth == 0:
            img = img.convert("RGB")
        elif params.alpha_depth == 1:
            img.putalpha(img.getchannel("A").point(lambda v: 255 if v >= 128 else 0))
        # 256 palette entries; an RGBA palette carries the alpha values
        out = img.quantize(colors=256, method=Image.Quantize.FASTOCTREE)

        buf = io.BytesIO()
        try:
            out.save(buf, format="BLP")
        except (OSError, ValueError) as exc:
            raise EncodeFailure(f"BLP encoding failed: {exc}") from exc
        logger.debug("Encoded %dx%d palettized BLP (%d-bit alpha): %d bytes",
                     raster.width, raster.height, params.alpha_depth, buf.tell())
        return buf.getvalue()
