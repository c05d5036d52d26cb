"""Normalise image references into inline payloads for Gemini requests."""

import base64
import binascii
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

from closet.config import logger
from closet.core.errors import ReferenceImageError

DEFAULT_MIME_TYPE = "image/png"
FETCH_TIMEOUT_SECONDS = 60.0


@dataclass(frozen=True)
class ImageInput:
    """A reference image ready to be sent inline: mime type + raw base64."""

    mime_type: str
    data: str

    @classmethod
    def from_bytes(cls, payload: bytes, mime_type: Optional[str] = None) -> "ImageInput":
        return cls(
            mime_type=mime_type or DEFAULT_MIME_TYPE,
            data=base64.b64encode(payload).decode("utf-8"),
        )

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.data)

    def to_part(self) -> dict:
        return {"inline_data": {"mime_type": self.mime_type, "data": self.data}}


def _is_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


def _is_file(path: Path) -> bool:
    # long base64 strings can overflow the filesystem's name limit
    try:
        return path.is_file()
    except (OSError, ValueError):
        return False


def _guess_mime_type(reference: str) -> str:
    guessed, _ = mimetypes.guess_type(reference)
    if guessed and guessed.startswith("image/"):
        return guessed
    return DEFAULT_MIME_TYPE


def parse_data_url(reference: str) -> ImageInput:
    """Split a `data:<mime>;base64,<payload>` string."""
    header, sep, payload = reference.partition(",")
    if not sep or not payload:
        raise ReferenceImageError("Invalid data URI provided for image input")

    mime_type = header[len("data:"):].split(";", 1)[0] or DEFAULT_MIME_TYPE
    return ImageInput(mime_type=mime_type, data=payload)


async def load_image_input(
    reference: str,
    label: str = "image",
    transport: Optional[httpx.AsyncBaseTransport] = None,
    allow_local: bool = False,
) -> ImageInput:
    """
    Resolve an image reference to an ImageInput.

    Args:
        reference: http(s) URL, data URI, raw base64 string, or (with
            allow_local) a local file path
        label: Human readable name used in logs and errors
        transport: Optional httpx transport (used for testing)
        allow_local: Read local files. Only for server configured paths,
            never for client supplied references.

    Returns:
        ImageInput with the image's mime type and base64 payload

    Raises:
        ReferenceImageError: If the reference cannot be fetched or decoded
    """
    if not reference or not reference.strip():
        raise ReferenceImageError(f"Empty reference provided for {label}")

    if _is_url(reference):
        logger.info(f"Fetching {label} from URL: {reference}")
        try:
            async with httpx.AsyncClient(
                timeout=FETCH_TIMEOUT_SECONDS, transport=transport
            ) as client:
                response = await client.get(reference)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ReferenceImageError(
                f"Failed to fetch {label} from {reference}: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.RequestError as exc:
            raise ReferenceImageError(
                f"Network error fetching {label} from {reference}: {exc}"
            ) from exc

        content_type = response.headers.get("content-type", "").split(";", 1)[0]
        if not content_type.startswith("image/"):
            content_type = _guess_mime_type(reference)
        return ImageInput.from_bytes(response.content, content_type)

    if reference.startswith("data:"):
        logger.info(f"Using data URI provided for {label}")
        return parse_data_url(reference)

    path = Path(reference)
    if allow_local and _is_file(path):
        logger.info(f"Reading {label} from file: {path}")
        try:
            payload = path.read_bytes()
        except OSError as exc:
            raise ReferenceImageError(f"Failed to read {label} from {path}: {exc}") from exc
        return ImageInput.from_bytes(payload, _guess_mime_type(reference))

    cleaned = reference.strip()
    try:
        base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ReferenceImageError(
            f"{label} must be an http(s) URL, a data URI or base64 image data"
        ) from exc

    logger.info(f"Using base64 payload provided for {label}")
    return ImageInput(mime_type=DEFAULT_MIME_TYPE, data=cleaned)


__all__ = ["ImageInput", "load_image_input", "parse_data_url", "DEFAULT_MIME_TYPE"]
