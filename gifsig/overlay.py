"""
Signature overlay rendering.

Output layout (default 635x215)::

    +--------------------+--+-----------------------------+---------+
    |                    |  | Name (bold)                 |         |
    |   animated logo    |  | Department                  |   QR    |
    |  (contain, never   |  | Title                       | (with_qr|
    |    upscaled)       |  | Phone (bold)                |  only)  |
    |                    |  | Email                       |         |
    |                    |  | Address (small, wrapped)    |         |
    +--------------------+--+-----------------------------+---------+
                      divider

Everything except the logo is identical across frames, so
``OverlayRenderer.prepare`` paints it once into a layer that is opaque
outside the logo box, and
``PreparedOverlay.compose`` only scales the composited frame into the
logo box and stacks the layer on top.  Both are deterministic functions
of the payload, the variant and the output size.
"""

from __future__ import annotations

import io
import math
from dataclasses import dataclass, field
from typing import Callable

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from gifsig.config import ResolvedFonts, resolve_fonts
from gifsig.exceptions import MissingRequiredInput
from gifsig.types import OverlayPayload, Variant


# ---------------------------------------------------------------------------
# Styling
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FieldStyle:
    """Typography for one text field."""
    size: int
    line_height: int
    bold: bool = False
    gap_before: int = 0
    gap_after: int = 0
    role: str = "body"        # "name" | "body" | "subtle"


DEFAULT_FIELD_STYLES: dict[str, FieldStyle] = {
    "display_name": FieldStyle(16, 19, bold=True, gap_after=6, role="name"),
    "department": FieldStyle(13, 19),
    "title": FieldStyle(13, 19),
    "phone": FieldStyle(13, 19, bold=True, gap_before=2),
    "email": FieldStyle(13, 19, gap_before=2),
    "address": FieldStyle(11, 15, gap_before=6, role="subtle"),
}


@dataclass(frozen=True)
class OverlayTheme:
    name_color: str
    body_color: str
    subtle_color: str = "#777777"
    divider_color: str = "#005A9C"
    background: str = "#FFFFFF"
    qr_mat: str = "#FFFFFF"

    def color_for(self, role: str) -> str:
        return {
            "name": self.name_color,
            "body": self.body_color,
            "subtle": self.subtle_color,
        }[role]


STANDARD_THEME = OverlayTheme(name_color="#003366", body_color="#555555")
WITH_QR_THEME = OverlayTheme(name_color="#0E2923", body_color="#0E2923")

THEMES: dict[Variant, OverlayTheme] = {
    Variant.STANDARD: STANDARD_THEME,
    Variant.WITH_QR: WITH_QR_THEME,
}


@dataclass(frozen=True)
class OverlayLayout:
    """Geometry of the signature, in output pixels."""
    padding: int = 16
    left_column_width: int = 220
    divider_width: int = 2
    text_gap: int = 12            # Divider to text column
    qr_max_size: int = 110
    qr_mat: int = 6               # White border around the QR code
    qr_gap: int = 12              # QR mat to text column
    min_text_width: int = 40
    field_styles: dict[str, FieldStyle] = field(
        default_factory=lambda: dict(DEFAULT_FIELD_STYLES)
    )


# ---------------------------------------------------------------------------
# Geometry helpers
# ---------------------------------------------------------------------------

def _round(value: float) -> int:
    """Round half up, matching browser canvas arithmetic."""
    return int(math.floor(value + 0.5))


def fit_contain(src_w: int, src_h: int, box_x: int, box_y: int,
                box_w: int, box_h: int) -> tuple[int, int, int, int]:
    """Centre a source inside a box, shrinking to fit but never enlarging.

    Returns (x, y, width, height) of the destination rectangle.
    """
    scale = min(1.0, box_w / src_w, box_h / src_h)
    dw = max(1, _round(src_w * scale))
    dh = max(1, _round(src_h * scale))
    dx = _round(box_x + (box_w - dw) / 2)
    dy = _round(box_y + (box_h - dh) / 2)
    return dx, dy, dw, dh


def wrap_text(text: str, max_width: float,
              measure: Callable[[str], float]) -> list[str]:
    """Greedy word wrap.

    Words are appended while the measured line fits *max_width*.  A word
    is never split: one that is wider than the column on its own gets a
    line to itself.
    """
    lines: list[str] = []
    line = ""
    for word in text.split():
        candidate = f"{line} {word}" if line else word
        if line and measure(candidate) > max_width:
            lines.append(line)
            line = word
        else:
            line = candidate
    if line:
        lines.append(line)
    return lines


def load_qr_image(data: bytes | None) -> Image.Image:
    """Decode a QR raster supplied as encoded image bytes."""
    if not data:
        raise MissingRequiredInput("qr_image", "QR raster is required for this variant")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise MissingRequiredInput(
            "qr_image", f"QR raster could not be decoded: {exc}"
        ) from exc
    return img.convert("RGBA")


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TextLine:
    text: str
    x: int
    y: int
    field: str


@dataclass
class PreparedOverlay:
    """Static signature layer plus the box the logo is fitted into."""
    width: int
    height: int
    background: str
    logo_box: tuple[int, int, int, int]
    layer: Image.Image

    def compose(self, raster: np.ndarray) -> np.ndarray:
        """Place a composited RGBA frame as the logo and return the output."""
        out = Image.new("RGBA", (self.width, self.height), self.background)
        logo = Image.fromarray(np.ascontiguousarray(raster, dtype=np.uint8), "RGBA")
        x, y, w, h = fit_contain(logo.width, logo.height, *self.logo_box)
        if (w, h) != logo.size:
            logo = logo.resize((w, h), Image.Resampling.NEAREST)
        out.alpha_composite(logo, (x, y))
        out.alpha_composite(self.layer)
        return np.array(out, dtype=np.uint8)


class OverlayRenderer:
    """Paints payload text, divider and QR code next to the logo."""

    def __init__(self, layout: OverlayLayout | None = None,
                 fonts: ResolvedFonts | None = None) -> None:
        self.layout = layout or OverlayLayout()
        self.fonts = fonts if fonts is not None else resolve_fonts()
        self._faces = {
            (style.size, style.bold): self._load_face(style.size, style.bold)
            for style in self.layout.field_styles.values()
        }

    def _load_face(self, size: int, bold: bool):
        path = self.fonts.bold if bold else self.fonts.regular
        if path is None:
            return ImageFont.load_default(size=size)
        return ImageFont.truetype(str(path), size)

    def face(self, field_name: str):
        style = self.layout.field_styles[field_name]
        return self._faces[(style.size, style.bold)]

    def measure(self, text: str, field_name: str) -> float:
        return float(self.face(field_name).getlength(text))

    # ---- layout ----------------------------------------------------------

    def qr_rect(self, payload: OverlayPayload) -> tuple[int, int, int] | None:
        """(x, y, size) of the QR square, or None without a QR image."""
        if payload.qr_image is None:
            return None
        lay = self.layout
        size = min(lay.qr_max_size, payload.height - 2 * lay.padding)
        x = payload.width - lay.padding - size
        y = _round((payload.height - size) / 2)
        return x, y, size

    def text_column(self, payload: OverlayPayload) -> tuple[int, int]:
        """(left edge, usable width) of the text column."""
        lay = self.layout
        left = lay.left_column_width + lay.text_gap
        right = payload.width - lay.padding
        qr = self.qr_rect(payload)
        if qr is not None:
            right = qr[0] - lay.qr_gap
        return left, max(lay.min_text_width, right - left)

    def text_layout(self, payload: OverlayPayload) -> list[TextLine]:
        left, width = self.text_column(payload)
        y = self.layout.padding
        lines: list[TextLine] = []
        for name, text in payload.text_fields():
            style = self.layout.field_styles[name]
            y += style.gap_before
            face = self.face(name)
            for chunk in wrap_text(text, width, face.getlength):
                lines.append(TextLine(chunk, left, y, name))
                y += style.line_height
            y += style.gap_after
        return lines

    # ---- painting --------------------------------------------------------

    def prepare(self, payload: OverlayPayload,
                variant: Variant = Variant.STANDARD) -> PreparedOverlay:
        """Paint everything but the logo into a reusable layer."""
        lay = self.layout
        theme = THEMES[variant]
        w, h = payload.width, payload.height
        box = (lay.padding, lay.padding,
               lay.left_column_width - 2 * lay.padding, h - 2 * lay.padding)
        if box[2] <= 0 or box[3] <= 0 or w <= lay.left_column_width:
            raise ValueError(f"output size {w}x{h} too small for the layout")

        # Opaque everywhere except the logo box, so text antialiases
        # against the real background colour.
        layer = Image.new("RGBA", (w, h), theme.background)
        layer.paste((0, 0, 0, 0), (box[0], box[1], box[0] + box[2], box[1] + box[3]))
        draw = ImageDraw.Draw(layer)

        divider_x = lay.left_column_width
        draw.rectangle(
            [divider_x, lay.padding,
             divider_x + lay.divider_width - 1, h - lay.padding - 1],
            fill=theme.divider_color,
        )

        qr = self.qr_rect(payload)
        if qr is not None:
            qx, qy, size = qr
            draw.rectangle(
                [qx - lay.qr_mat, qy - lay.qr_mat,
                 qx + size + lay.qr_mat - 1, qy + size + lay.qr_mat - 1],
                fill=theme.qr_mat,
            )
            code = payload.qr_image.convert("RGBA").resize(
                (size, size), Image.Resampling.NEAREST,
            )
            layer.alpha_composite(code, (qx, qy))

        for line in self.text_layout(payload):
            role = lay.field_styles[line.field].role
            draw.text((line.x, line.y), line.text, font=self.face(line.field),
                      fill=theme.color_for(role))

        return PreparedOverlay(
            width=w,
            height=h,
            background=theme.background,
            logo_box=box,
            layer=layer,
        )

    def render(self, raster: np.ndarray, payload: OverlayPayload,
               variant: Variant = Variant.STANDARD) -> np.ndarray:
        """Render one output frame of size payload.width x payload.height."""
        return self.prepare(payload, variant).compose(raster)
