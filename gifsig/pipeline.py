"""
Request-scoped signature pipeline.

    fetch --> GifDecoder --> Canvas --> PreparedOverlay --> Quantizer --> GifEncoder --> sink

``SignaturePipeline`` only holds immutable settings (limits, layout,
fonts) and can serve concurrent requests.  Every request gets its own
``SignatureJob`` owning the decoder, canvas and quantizer state.

Failure model
-------------
Everything that can be checked up front is checked before the first byte
is produced: required overlay fields and the QR raster (before the source
is even fetched), then the whole bitstream structure and the resource
limits.  Once bytes have been written, only a sink failure or a corrupt
LZW stream in a later frame can stop the job.  Those errors are logged
and re-raised; the caller must treat the output as incomplete.

Frames move through the stages one at a time.  A slow sink blocks the
producer, and ``stream()`` only computes the next frame when the consumer
asks for it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator

from gifsig.canvas import Canvas
from gifsig.config import ResolvedFonts
from gifsig.decoder import GifDecoder
from gifsig.encoder import ByteSink, GifEncoder
from gifsig.exceptions import FetchError, GifSigError, MissingRequiredInput, SinkWriteError
from gifsig.overlay import OverlayLayout, OverlayRenderer, PreparedOverlay
from gifsig.quantize import MedianCutQuantizer
from gifsig.types import DisposalMethod, OutputFrame, OverlayPayload, PipelineConfig, Variant

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("display_name", "title", "phone")


@dataclass
class RenderResult:
    """Summary of one finished (or cancelled) request."""
    frame_count: int
    bytes_written: int
    duration_cs: int
    width: int
    height: int
    cancelled: bool = False


def validate_payload(payload: OverlayPayload, variant: Variant) -> None:
    """Reject requests that cannot be rendered, before any work is done."""
    for name in REQUIRED_FIELDS:
        value = getattr(payload, name)
        if not value or not value.strip():
            raise MissingRequiredInput(name)
    if variant is Variant.WITH_QR and payload.qr_image is None:
        raise MissingRequiredInput(
            "qr_image", "QR raster is required for the with_qr variant"
        )
    if not (0 < payload.width <= 0xFFFF and 0 < payload.height <= 0xFFFF):
        raise ValueError(f"invalid output size {payload.width}x{payload.height}")


def fetch_source(fetch: Callable[[], bytes]) -> bytes:
    """Call the fetch collaborator and normalise its failures."""
    try:
        data = fetch()
    except OSError as exc:
        raise FetchError(f"could not obtain source image: {exc}") from exc
    if not data:
        raise FetchError("source image is empty")
    return bytes(data)


def file_fetcher(path: str | Path) -> Callable[[], bytes]:
    """Fetch callable reading a local file."""
    return lambda: Path(path).read_bytes()


class _ChunkBuffer:
    """In-memory sink drained once per frame by ``SignatureJob.chunks``."""

    def __init__(self) -> None:
        self._parts: list[bytes] = []

    def write(self, data: bytes) -> int:
        self._parts.append(data)
        return len(data)

    def drain(self) -> bytes:
        data = b"".join(self._parts)
        self._parts.clear()
        return data


class SignatureJob:
    """All mutable state for a single request."""

    def __init__(self, decoder: GifDecoder, overlay: PreparedOverlay,
                 config: PipelineConfig, variant: Variant) -> None:
        self.decoder = decoder
        self.overlay = overlay
        self.config = config
        self.variant = variant
        self.canvas = Canvas(decoder.screen)
        self.quantizer = MedianCutQuantizer(
            max_colors=config.max_colors,
            quality=config.quality,
            reuse_palette=config.reuse_palette,
        )
        self._closed = False

    @property
    def loop_count(self) -> int:
        if self.config.loop_count is not None:
            return self.config.loop_count
        if self.decoder.screen.loop_count is not None:
            return self.decoder.screen.loop_count
        return 0

    def output_frames(self) -> Iterator[OutputFrame]:
        """Decode, composite, overlay and quantize, one frame at a time."""
        for frame in self.decoder.frames():
            composited = self.canvas.apply(frame)
            raster = self.overlay.compose(composited)
            indices, palette, transparent = self.quantizer.quantize(raster)
            disposal = (DisposalMethod.RESTORE_BACKGROUND if transparent is not None
                        else DisposalMethod.DO_NOT_DISPOSE)
            yield OutputFrame(
                indices=indices,
                palette=palette,
                delay_cs=frame.delay_cs,
                disposal=disposal,
                transparent_index=transparent,
            )

    def _steps(self, encoder: GifEncoder) -> Iterator[int]:
        """Drive the encoder, yielding after every frame written."""
        frames = self.output_frames()
        try:
            first = next(frames)
            encoder.write_header(
                self.overlay.width,
                self.overlay.height,
                global_palette=self.quantizer.frozen_palette,
                loop_count=self.loop_count,
            )
            encoder.write_frame(first)
            yield 1
            for number, frame in enumerate(frames, start=2):
                encoder.write_frame(frame)
                yield number
            encoder.write_trailer()
        finally:
            frames.close()

    def write_to(self, sink: ByteSink,
                 cancelled: Callable[[], bool] | None = None,
                 on_frame: Callable[[int], None] | None = None) -> RenderResult:
        """Push the whole signature into *sink*.

        *cancelled* is polled at every boundary with a frame still to come;
        when it returns True the job stops without writing further frames.
        """
        encoder = GifEncoder(sink, min_delay_cs=self.config.min_delay_cs)
        steps = self._steps(encoder)
        total = len(self.decoder)
        stopped = False
        try:
            for number in steps:
                if on_frame is not None:
                    on_frame(number)
                if number < total and cancelled is not None and cancelled():
                    logger.warning(
                        "Consumer cancelled after %d of %d frames; stopping.",
                        number, total,
                    )
                    stopped = True
                    break
        except GifSigError as exc:
            self._report(encoder, exc)
            raise
        finally:
            steps.close()
            self.close()

        result = RenderResult(
            frame_count=encoder.frames_written,
            bytes_written=encoder.bytes_written,
            duration_cs=encoder.total_delay_cs,
            width=self.overlay.width,
            height=self.overlay.height,
            cancelled=stopped,
        )
        if not stopped:
            logger.info(
                "Signature done: %d frames, %d bytes, %d cs.",
                result.frame_count, result.bytes_written, result.duration_cs,
            )
        return result

    def chunks(self) -> Iterator[bytes]:
        """Pull-based variant of ``write_to``: one chunk per frame.

        Closing the generator (e.g. on client disconnect) stops decoding
        and releases the canvas.
        """
        buffer = _ChunkBuffer()
        encoder = GifEncoder(buffer, min_delay_cs=self.config.min_delay_cs)
        steps = self._steps(encoder)
        try:
            for _ in steps:
                yield buffer.drain()
            tail = buffer.drain()
            if tail:
                yield tail
        except GifSigError as exc:
            self._report(encoder, exc)
            raise
        finally:
            steps.close()
            self.close()

    def _report(self, encoder: GifEncoder, exc: GifSigError) -> None:
        if encoder.bytes_written or isinstance(exc, SinkWriteError):
            logger.error(
                "Signature stream aborted after %d frames (%d bytes): %s",
                encoder.frames_written, encoder.bytes_written, exc,
            )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.canvas.release()


class SignaturePipeline:
    """Builds animated signatures; safe to share between requests."""

    def __init__(self, config: PipelineConfig | None = None,
                 layout: OverlayLayout | None = None,
                 fonts: ResolvedFonts | None = None,
                 renderer: OverlayRenderer | None = None) -> None:
        self.config = config or PipelineConfig()
        self.renderer = renderer or OverlayRenderer(layout, fonts)

    def open(self, source: bytes, payload: OverlayPayload,
             variant: Variant = Variant.STANDARD) -> SignatureJob:
        """Validate and parse everything that can fail before output starts."""
        validate_payload(payload, variant)
        decoder = GifDecoder(source, self.config)
        overlay = self.renderer.prepare(payload, variant)
        logger.info(
            "Rendering %s signature %dx%d from a %d-frame %dx%d source.",
            variant.value, payload.width, payload.height, len(decoder),
            decoder.screen.width, decoder.screen.height,
        )
        return SignatureJob(decoder, overlay, self.config, variant)

    def run(self, fetch: Callable[[], bytes], payload: OverlayPayload,
            variant: Variant, sink: ByteSink,
            cancelled: Callable[[], bool] | None = None,
            on_frame: Callable[[int], None] | None = None) -> RenderResult:
        """Validate, fetch, decode and stream the signature into *sink*."""
        validate_payload(payload, variant)
        source = fetch_source(fetch)
        job = self.open(source, payload, variant)
        return job.write_to(sink, cancelled=cancelled, on_frame=on_frame)

    def stream(self, source: bytes, payload: OverlayPayload,
               variant: Variant = Variant.STANDARD) -> Iterator[bytes]:
        """Return a chunk iterator; validation errors raise immediately."""
        return self.open(source, payload, variant).chunks()
