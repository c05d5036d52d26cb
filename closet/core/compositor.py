"""Local, non-AI composite used when Gemini cannot dress the mannequin."""

import asyncio
import base64
from io import BytesIO

from PIL import Image, UnidentifiedImageError

from closet.config import logger
from closet.core.errors import CompositeFallbackFailed
from closet.core.image_inputs import ImageInput

CANVAS_WIDTH = 512
CANVAS_HEIGHT = 768
BACKGROUND = (255, 255, 255)
# share of canvas height given to the top garment
TOP_SHARE = 0.45


def _open(image: ImageInput, label: str) -> Image.Image:
    try:
        opened = Image.open(BytesIO(image.to_bytes()))
        opened.load()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise CompositeFallbackFailed(f"Cannot decode {label} image: {exc}") from exc
    return opened.convert("RGBA")


def _fit(image: Image.Image, width: int, height: int) -> Image.Image:
    fitted = image.copy()
    fitted.thumbnail((width, height))
    return fitted


def compose_outfit(top: ImageInput, bottom: ImageInput) -> bytes:
    """Stack the top above the bottom on a white canvas and return PNG bytes."""
    top_img = _open(top, "top")
    bottom_img = _open(bottom, "bottom")

    top_height = int(CANVAS_HEIGHT * TOP_SHARE)
    bottom_height = CANVAS_HEIGHT - top_height

    canvas = Image.new("RGBA", (CANVAS_WIDTH, CANVAS_HEIGHT), BACKGROUND + (255,))

    fitted_top = _fit(top_img, CANVAS_WIDTH, top_height)
    fitted_bottom = _fit(bottom_img, CANVAS_WIDTH, bottom_height)

    canvas.alpha_composite(
        fitted_top, ((CANVAS_WIDTH - fitted_top.width) // 2, top_height - fitted_top.height)
    )
    canvas.alpha_composite(
        fitted_bottom, ((CANVAS_WIDTH - fitted_bottom.width) // 2, top_height)
    )

    buffer = BytesIO()
    canvas.convert("RGB").save(buffer, format="PNG")
    return buffer.getvalue()


class OutfitCompositor:
    async def create_composite(self, top: ImageInput, bottom: ImageInput) -> str:
        """Return the composite as a PNG data URL."""
        try:
            # CPU bound
            payload = await asyncio.to_thread(compose_outfit, top, bottom)
        except CompositeFallbackFailed:
            raise
        except Exception as exc:
            raise CompositeFallbackFailed(f"Composite rendering failed: {exc}") from exc

        logger.info(f"Composite fallback rendered ({len(payload)} bytes)")
        return "data:image/png;base64," + base64.b64encode(payload).decode("utf-8")


__all__ = ["OutfitCompositor", "compose_outfit"]
