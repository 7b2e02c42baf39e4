"""
Shared fixtures for the gifsig test suite.
"""

from __future__ import annotations

import pytest

from gifbuild import RecordingSink, build_gif, solid
from gifsig.overlay import OverlayRenderer
from gifsig.types import OverlayPayload


@pytest.fixture(scope="session")
def renderer() -> OverlayRenderer:
    """One renderer for the session; font discovery walks the filesystem."""
    return OverlayRenderer()


@pytest.fixture
def payload() -> OverlayPayload:
    return OverlayPayload(
        display_name="Jane Doe",
        title="Support Engineer",
        phone="+55 61 5555-0100",
    )


@pytest.fixture
def three_frame_gif() -> bytes:
    """100x100, disposals [background, keep, none], 10 cs each."""
    return build_gif(100, 100, [
        solid(100, 100, 1, disposal=2, delay_cs=10),
        solid(50, 50, 2, left=25, top=25, disposal=1, delay_cs=10),
        solid(20, 20, 3, left=0, top=0, disposal=0, delay_cs=10),
    ])


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
