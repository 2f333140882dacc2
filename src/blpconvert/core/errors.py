from __future__ import annotations


class ConversionError(Exception):
    """Base class for failures raised by blpconvert."""


class DecodeFailure(ConversionError):
    """Source bytes are malformed or use an unsupported encoding."""


class HeaderError(DecodeFailure):
    """A BLP header could not be parsed."""


class EncodeFailure(ConversionError):
    """The codec could not produce output for the requested parameters."""


class RasterContextUnavailable(ConversionError):
    """The host could not produce an RGBA pixel buffer for an image."""


class AnalysisTimeout(ConversionError):
    """An analysis pass did not finish within its time box."""


class RecommendationFailure(ConversionError):
    """Internal error while ranking format candidates. Always caught by the engine."""
