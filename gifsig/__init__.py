"""
gifsig -- Animated e-mail signature generator.

Decodes an animated GIF logo, composites every frame, paints the
signature text (and optional QR code) next to it, and re-encodes the
result as a streaming GIF with the source's timing and loop behaviour.
"""

__version__ = "0.1.0"

from gifsig.pipeline import RenderResult, SignatureJob, SignaturePipeline
from gifsig.types import (
    DisposalMethod,
    OutputFrame,
    OverlayPayload,
    PipelineConfig,
    ScreenInfo,
    SourceFrame,
    Variant,
)

__all__ = [
    "DisposalMethod",
    "OutputFrame",
    "OverlayPayload",
    "PipelineConfig",
    "RenderResult",
    "ScreenInfo",
    "SignatureJob",
    "SignaturePipeline",
    "SourceFrame",
    "Variant",
]
