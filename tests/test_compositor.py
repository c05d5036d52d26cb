"""Local composite fallback rendering."""

from __future__ import annotations

import asyncio
import base64
import threading
from io import BytesIO

import pytest
from PIL import Image

from closet.core import compositor
from closet.core.compositor import (
    CANVAS_HEIGHT,
    CANVAS_WIDTH,
    TOP_SHARE,
    OutfitCompositor,
    compose_outfit,
)
from closet.core.errors import CompositeFallbackFailed
from closet.core.image_inputs import ImageInput


def _png(color, size=(200, 100)) -> ImageInput:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return ImageInput.from_bytes(buffer.getvalue(), "image/png")


def test_top_is_stacked_above_bottom() -> None:
    payload = compose_outfit(_png((255, 0, 0)), _png((0, 0, 255)))
    canvas = Image.open(BytesIO(payload))

    assert canvas.size == (CANVAS_WIDTH, CANVAS_HEIGHT)
    split = int(CANVAS_HEIGHT * TOP_SHARE)
    center = CANVAS_WIDTH // 2
    assert canvas.getpixel((center, split - 5))[:3] == (255, 0, 0)
    assert canvas.getpixel((center, split + 5))[:3] == (0, 0, 255)
    # background stays white outside the garments
    assert canvas.getpixel((center, 0))[:3] == (255, 255, 255)


def test_create_composite_returns_png_data_url() -> None:
    url = asyncio.run(OutfitCompositor().create_composite(_png("green"), _png("black")))

    prefix = "data:image/png;base64,"
    assert url.startswith(prefix)
    decoded = Image.open(BytesIO(base64.b64decode(url[len(prefix):])))
    assert decoded.format == "PNG"


def test_undecodable_image_raises() -> None:
    broken = ImageInput(mime_type="image/png", data=base64.b64encode(b"not an image").decode())

    with pytest.raises(CompositeFallbackFailed) as excinfo:
        asyncio.run(OutfitCompositor().create_composite(_png("red"), broken))
    assert "bottom" in excinfo.value.message


def test_rendering_runs_off_the_event_loop_thread(monkeypatch) -> None:
    threads = []

    def recording_compose(top, bottom):
        threads.append(threading.get_ident())
        return b"png"

    monkeypatch.setattr(compositor, "compose_outfit", recording_compose)
    url = asyncio.run(OutfitCompositor().create_composite(_png("red"), _png("blue")))

    assert url == "data:image/png;base64," + base64.b64encode(b"png").decode()
    assert threads and threads[0] != threading.get_ident()
