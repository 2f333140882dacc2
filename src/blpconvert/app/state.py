from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from blpconvert.analysis.analyzer import RasterDecoder, generate_analysis
from blpconvert.app.temp_paths import PreviewStore
from blpconvert.core.blp_header import read_blp_metadata
from blpconvert.core.errors import ConversionError, DecodeFailure, EncodeFailure
from blpconvert.core.models import (
    AnalysisResult,
    ConversionDirection,
    Raster,
    SessionSettings,
    SourceMetadata,
)
from blpconvert.formats.catalog import CodecParams, FormatCandidate, find_candidate, get_catalog
from blpconvert.formats.recommend import (
    default_candidate,
    recommend_compressed_export,
    recommend_raster_export,
)

logger = logging.getLogger(__name__)

RasterEncoder = Callable[[Raster, CodecParams], Awaitable[bytes]]
MetadataReader = Callable[[bytes], SourceMetadata]

ROLE_SOURCE = "source"
ROLE_CONVERTED = "converted"

_SUFFIXES = {
    ConversionDirection.TO_RASTER: (".blp", ".png"),
    ConversionDirection.TO_COMPRESSED: (".png", ".blp"),
}


class SessionState(Enum):
    IDLE = "idle"
    LOADING = "loading"
    DECODING = "decoding"
    ENCODING_DEFAULT = "encoding_default"
    READY = "ready"
    ANALYZING = "analyzing"
    ERROR = "error"


@dataclass
class ConversionSession:
    """
    Live state for one uploaded asset.

    Callers drive it with load(), select_candidate(), set_analysis_visible() and close();
    the session sequences decode -> default encode -> (analysis) -> re-encode and keeps
    one preview handle per role. Every await is followed by a generation check, so work
    started for a replaced asset never lands in the current state.
    """
    direction: ConversionDirection
    decode_source: RasterDecoder
    encode: RasterEncoder
    previews: PreviewStore
    decode_preview: Optional[RasterDecoder] = None
    read_metadata: MetadataReader = read_blp_metadata
    settings: SessionSettings = field(default_factory=SessionSettings)

    # Derived state
    state: SessionState = field(default=SessionState.IDLE, init=False)
    generation: int = field(default=0, init=False)
    source_bytes: Optional[bytes] = field(default=None, init=False)
    source_raster: Optional[Raster] = field(default=None, init=False)
    metadata: Optional[SourceMetadata] = field(default=None, init=False)
    candidates: List[FormatCandidate] = field(default_factory=list, init=False)
    selected_id: Optional[str] = field(default=None, init=False)
    preview_bytes: Optional[bytes] = field(default=None, init=False)
    preview_revision: int = field(default=0, init=False)
    show_analysis: bool = field(default=False, init=False)
    analysis: Optional[AnalysisResult] = field(default=None, init=False)
    analysis_error: Optional[str] = field(default=None, init=False)
    error: Optional[ConversionError] = field(default=None, init=False)

    def __post_init__(self) -> None:
        self._handles: Dict[str, Path] = {}
        self._applied_id: Optional[str] = None
        self._loading = False
        self._encoding = False
        self._retryable = False
        self._analysis_in_flight: Optional[Tuple[int, int]] = None
        self._last_analyzed_key: Optional[Tuple[int, int]] = None

    # ---------- read-only views ----------

    @property
    def catalog(self) -> Tuple[FormatCandidate, ...]:
        return get_catalog(self.direction)

    @property
    def selected_candidate(self) -> Optional[FormatCandidate]:
        if self.selected_id is None:
            return None
        return find_candidate(self.candidates, self.selected_id)

    @property
    def applied_candidate_id(self) -> Optional[str]:
        """Id of the candidate the current preview was encoded with."""
        return self._applied_id

    @property
    def is_encoding(self) -> bool:
        return self._encoding

    @property
    def is_analyzing(self) -> bool:
        return self._analysis_in_flight is not None

    def preview_handle(self, role: str) -> Optional[Path]:
        return self._handles.get(role)

    # ---------- transitions ----------

    async def load(self, data: bytes) -> None:
        """
        Accept a new source asset and produce its default preview.

        Raises:
            DecodeFailure / EncodeFailure: the session is left in ERROR until the next load().
        """
        self._reset_derived()
        self.generation += 1
        gen = self.generation
        self.source_bytes = data
        self._loading = True
        self._set_state(SessionState.LOADING)
        try:
            await self._load(gen, data)
        except ConversionError as exc:
            if gen != self.generation:
                logger.debug("Dropping failure of superseded load (generation %d): %s", gen, exc)
                return
            self._fail(exc)
            raise
        finally:
            if gen == self.generation:
                self._loading = False

        if gen == self.generation and self.show_analysis:
            await self._maybe_analyze()

    async def select_candidate(self, candidate_id: str) -> None:
        """
        Switch the output format and re-encode the preview once.

        Requests that arrive while an encode is running only move the target; the running
        encode then re-encodes for the latest selection and results for older selections
        are dropped.
        """
        if find_candidate(self.candidates, candidate_id) is None:
            raise KeyError(candidate_id)
        if not self._accepts_selection():
            logger.debug("Ignoring format change to %s in state %s", candidate_id, self.state.value)
            return

        self.selected_id = candidate_id
        if self._encoding:
            return
        if candidate_id == self._applied_id and self.state is not SessionState.ERROR:
            return
        await self._encode_selection()

    async def set_analysis_visible(self, visible: bool) -> None:
        self.show_analysis = visible
        if not visible:
            self.analysis = None
            self.analysis_error = None
            self._last_analyzed_key = None
            if self.state is SessionState.ANALYZING and not self._loading:
                self._set_state(SessionState.READY)
            return
        if self.state is SessionState.READY and self._analysis_in_flight == self._preview_key():
            # The pass still running covers this preview; its result is kept when it lands.
            self._set_state(SessionState.ANALYZING)
            return
        await self._maybe_analyze()

    def close(self) -> None:
        """Release every preview handle and forget the asset."""
        self._reset_derived()
        self.generation += 1
        self._set_state(SessionState.IDLE)

    # ---------- internals ----------

    def _set_state(self, state: SessionState) -> None:
        if state is not self.state:
            logger.debug("Session %s -> %s (generation %d)", self.state.value, state.value, self.generation)
        self.state = state

    def _fail(self, exc: ConversionError) -> None:
        logger.error("Conversion failed: %s", exc)
        self.error = exc
        self._set_state(SessionState.ERROR)

    def _reset_derived(self) -> None:
        for role in list(self._handles):
            self.previews.release(self._handles.pop(role))
        self.source_bytes = None
        self.source_raster = None
        self.metadata = None
        self.candidates = []
        self.selected_id = None
        self.preview_bytes = None
        self.preview_revision = 0
        self.analysis = None
        self.analysis_error = None
        self.error = None
        self._applied_id = None
        self._loading = False
        self._encoding = False
        self._retryable = False
        self._analysis_in_flight = None
        self._last_analyzed_key = None

    def _preview_key(self) -> Tuple[int, int]:
        return (self.generation, self.preview_revision)

    def _replace_handle(self, role: str, data: bytes, suffix: str) -> None:
        new = self.previews.publish(role, data, suffix)
        old = self._handles.get(role)
        self._handles[role] = new
        if old is not None:
            self.previews.release(old)

    def _apply_preview(self, candidate_id: str, data: bytes) -> None:
        self.preview_bytes = data
        self.preview_revision += 1
        self._applied_id = candidate_id
        self._replace_handle(ROLE_CONVERTED, data, _SUFFIXES[self.direction][1])

    def _accepts_selection(self) -> bool:
        if self._loading or self.source_raster is None:
            return False
        if self.state is SessionState.ERROR:
            return self._retryable
        return self.state in (SessionState.READY, SessionState.ANALYZING)

    async def _decode(self, decoder: RasterDecoder, data: bytes) -> Raster:
        try:
            return await decoder(data)
        except ConversionError:
            raise
        except Exception as exc:
            raise DecodeFailure(f"Could not decode image: {exc}") from exc

    async def _encode(self, raster: Raster, candidate: FormatCandidate) -> bytes:
        try:
            return await self.encode(raster, candidate.params)
        except ConversionError:
            raise
        except Exception as exc:
            raise EncodeFailure(f"Could not encode {candidate.id}: {exc}") from exc

    async def _load(self, gen: int, data: bytes) -> None:
        if self.direction is ConversionDirection.TO_RASTER:
            try:
                self.metadata = self.read_metadata(data)
            except ConversionError:
                raise
            except Exception as exc:
                raise DecodeFailure(f"Could not read source header: {exc}") from exc
        self._replace_handle(ROLE_SOURCE, data, _SUFFIXES[self.direction][0])

        self._set_state(SessionState.DECODING)
        raster = await self._decode(self.decode_source, data)
        if gen != self.generation:
            return
        self.source_raster = raster

        if self.direction is ConversionDirection.TO_RASTER:
            self.candidates = recommend_raster_export(self.catalog, None, self.metadata, self.settings)
        else:
            self.candidates = recommend_compressed_export(self.catalog, raster)
        default = default_candidate(self.candidates)
        self.selected_id = default.id

        self._set_state(SessionState.ENCODING_DEFAULT)
        encoded = await self._encode(raster, default)
        if gen != self.generation:
            return
        self._apply_preview(default.id, encoded)

        if self.direction is ConversionDirection.TO_RASTER and self.settings.eager_analysis:
            await self._upgrade_default(gen)
        if gen == self.generation:
            self._set_state(SessionState.READY)

    async def _upgrade_default(self, gen: int) -> None:
        """Analyse the first preview and re-encode once if the analysis picks another format."""
        key = self._preview_key()
        self._analysis_in_flight = key
        self._set_state(SessionState.ANALYZING)
        try:
            result = await self._run_analysis()
        except ConversionError as exc:
            if gen == self.generation:
                logger.warning("Analysis failed: %s", exc)
                self.analysis_error = str(exc)
                self._last_analyzed_key = key
            return
        finally:
            if self._analysis_in_flight == key:
                self._analysis_in_flight = None
        if gen != self.generation:
            return

        self.analysis = result
        self._last_analyzed_key = key
        self.candidates = recommend_raster_export(self.catalog, result, self.metadata, self.settings)
        best = default_candidate(self.candidates)
        if best.id == self.selected_id:
            return

        logger.info("Analysis recommends %s over %s; re-encoding", best.id, self.selected_id)
        self._set_state(SessionState.ENCODING_DEFAULT)
        encoded = await self._encode(self.source_raster, best)
        if gen != self.generation:
            return
        self.selected_id = best.id
        self._apply_preview(best.id, encoded)

    async def _encode_selection(self) -> None:
        gen = self.generation
        self._encoding = True
        try:
            while True:
                target = find_candidate(self.candidates, self.selected_id)
                stamp = (gen, target.id)
                encoded = await self._encode(self.source_raster, target)
                if gen != self.generation:
                    logger.debug("Dropping %s preview of superseded asset", target.id)
                    return
                if stamp != (self.generation, self.selected_id):
                    logger.debug("Dropping stale %s preview; selection is now %s", target.id, self.selected_id)
                    if self.selected_id == self._applied_id:
                        return
                    continue
                self._apply_preview(target.id, encoded)
                break
        except ConversionError as exc:
            if gen != self.generation:
                logger.debug("Dropping encode failure of superseded asset: %s", exc)
                return
            self._retryable = True
            self._fail(exc)
            raise
        finally:
            if gen == self.generation:
                self._encoding = False

        if self.state is SessionState.ERROR:
            self.error = None
            self._retryable = False
            self._set_state(SessionState.READY)
        if self.show_analysis:
            await self._maybe_analyze()

    async def _source_raster(self, _data: bytes) -> Raster:
        return self.source_raster

    async def _run_analysis(self) -> AnalysisResult:
        if self.direction is ConversionDirection.TO_RASTER:
            decoder = self.decode_preview or self.decode_source
        else:
            # The PNG source is already decoded; the BLP preview is only compared by size.
            decoder = self._source_raster

        async def decode(data: bytes) -> Raster:
            return await self._decode(decoder, data)

        return await generate_analysis(
            decode,
            self.preview_bytes,
            len(self.source_bytes),
            len(self.preview_bytes),
            timeout=self.settings.analysis_timeout,
        )

    def _wants(self, key: Tuple[int, int]) -> bool:
        return self.show_analysis and key == self._preview_key()

    async def _maybe_analyze(self) -> None:
        while True:
            if self.preview_bytes is None or self.state is not SessionState.READY:
                return
            key = self._preview_key()
            if self._analysis_in_flight is not None or key == self._last_analyzed_key:
                return

            self._analysis_in_flight = key
            self.analysis_error = None
            self._set_state(SessionState.ANALYZING)
            try:
                result = await self._run_analysis()
            except ConversionError as exc:
                logger.warning("Analysis failed: %s", exc)
                if self._wants(key):
                    self.analysis = None
                    self.analysis_error = str(exc)
                    self._last_analyzed_key = key
                return
            finally:
                if self._analysis_in_flight == key:
                    self._analysis_in_flight = None
                if key[0] == self.generation and self.state is SessionState.ANALYZING:
                    self._set_state(SessionState.READY)

            if self._wants(key):
                self.analysis = result
                self._last_analyzed_key = key
                return
            logger.debug("Dropping analysis of superseded preview %s", key)
            if not self.show_analysis or key[0] != self.generation:
                return
