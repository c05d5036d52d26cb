import asyncio
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from closet.config import GEMINI_IMAGE_MODEL, GEMINI_KEY, logger
from closet.core.errors import NoImageReturned, QuotaExceeded, RemoteCallFailed
from closet.core.image_inputs import ImageInput

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
GENERATION_TIMEOUT_SECONDS = 120.0

MAX_ATTEMPTS = 3
FALLBACK_RETRY_DELAY_MS = 20000
QUOTA_STATUS = "RESOURCE_EXHAUSTED"

_RETRY_DELAY_RE = re.compile(r"^(\d+)(?:\.(\d+))?s$")

logger.info(f"Gemini module initialized with API key: {bool(GEMINI_KEY)}")


class GeminiAPIError(Exception):
    """A failed generateContent call, decoded from the HTTP error body."""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        status: Optional[str] = None,
        retry_delay_ms: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status
        self.retry_delay_ms = retry_delay_ms

    @property
    def is_quota_error(self) -> bool:
        return self.code == 429 or self.status == QUOTA_STATUS

    @classmethod
    def from_response(cls, response: httpx.Response) -> "GeminiAPIError":
        try:
            body = response.json()
        except ValueError:
            body = None

        error = body.get("error") if isinstance(body, dict) else None
        if not isinstance(error, dict):
            return cls(
                f"Gemini API HTTP error: {response.status_code} - {response.text}",
                code=response.status_code,
            )

        code = error.get("code")
        if not isinstance(code, int):
            code = response.status_code

        retry_delay_ms = None
        for detail in error.get("details") or []:
            if isinstance(detail, dict) and "RetryInfo" in str(detail.get("@type", "")):
                retry_delay_ms = parse_retry_delay(detail.get("retryDelay"))
                break

        message = error.get("message") or response.text
        return cls(
            f"Gemini API HTTP error: {code} - {message}",
            code=code,
            status=error.get("status"),
            retry_delay_ms=retry_delay_ms,
        )


def parse_retry_delay(value: Any) -> Optional[int]:
    """Parse a protobuf duration string such as "2.5s" into milliseconds."""
    if not isinstance(value, str):
        return None

    match = _RETRY_DELAY_RE.match(value.strip())
    if not match:
        return None

    seconds = int(match.group(1))
    fraction = match.group(2) or ""
    millis = int(fraction[:3].ljust(3, "0")) if fraction else 0
    return seconds * 1000 + millis


@dataclass(frozen=True)
class GeneratedImage:
    mime_type: str
    base64_data: str

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64_data}"


def extract_image(api_result: Dict[str, Any]) -> GeneratedImage:
    """Pull the first inline image out of a generateContent response."""
    candidates = api_result.get("candidates") or []
    parts: List[Dict[str, Any]] = []
    if candidates:
        parts = (candidates[0].get("content") or {}).get("parts") or []

    for part in parts:
        # Check both camelCase and snake_case formats
        inline = part.get("inlineData") or part.get("inline_data")
        if inline and inline.get("data"):
            mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
            return GeneratedImage(mime_type=mime_type, base64_data=inline["data"])

    raise NoImageReturned([part.get("text", "") for part in parts if "text" in part])


class RetryingGeminiCaller:
    """
    Calls the Gemini image model, retrying quota errors with exponential backoff.

    Only quota errors (HTTP/code 429 or RESOURCE_EXHAUSTED) are retried, up to
    `max_attempts` total attempts. The wait before retry k is
    base * 2^(k-1), where base comes from the error's RetryInfo hint or
    falls back to 20 seconds.
    """

    def __init__(
        self,
        api_key: Optional[str] = GEMINI_KEY,
        model: str = GEMINI_IMAGE_MODEL,
        max_attempts: int = MAX_ATTEMPTS,
        fallback_delay_ms: int = FALLBACK_RETRY_DELAY_MS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.max_attempts = max_attempts
        self.fallback_delay_ms = fallback_delay_ms
        self._sleep = sleep
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def build_payload(self, prompt: str, images: Sequence[ImageInput]) -> Dict[str, Any]:
        parts: List[Dict[str, Any]] = [{"text": prompt}]
        parts.extend(image.to_part() for image in images)
        return {
            "contents": [{"parts": parts}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{GEMINI_BASE_URL}/{self.model}:generateContent"
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["x-goog-api-key"] = self.api_key

        try:
            async with httpx.AsyncClient(
                timeout=GENERATION_TIMEOUT_SECONDS, transport=self._transport
            ) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.RequestError as exc:
            raise RemoteCallFailed(f"Network error calling Gemini API: {exc}") from exc

        if response.is_error:
            raise GeminiAPIError.from_response(response)

        try:
            return response.json()
        except ValueError as exc:
            raise RemoteCallFailed("Gemini API returned a non-JSON response") from exc

    def backoff_ms(self, error: GeminiAPIError, retry_number: int) -> int:
        base = error.retry_delay_ms
        if base is None:
            base = self.fallback_delay_ms
        return round(base * 2 ** (retry_number - 1))

    async def generate(self, prompt: str, images: Sequence[ImageInput]) -> GeneratedImage:
        """
        Generate one image from a prompt and 1-3 reference images.

        Raises:
            QuotaExceeded: quota errors persisted through every attempt
            RemoteCallFailed: any other remote or network failure
            NoImageReturned: the response carried no inline image
        """
        if not 1 <= len(images) <= 3:
            raise ValueError("Gemini generation expects between 1 and 3 reference images")

        payload = self.build_payload(prompt, images)

        attempt = 0
        while True:
            attempt += 1
            try:
                api_result = await self._post(payload)
                break
            except GeminiAPIError as exc:
                if not exc.is_quota_error:
                    logger.error(f"Gemini call failed (attempt {attempt}): {exc.message}")
                    raise RemoteCallFailed(f"Gemini API error. {exc.message}") from exc

                if attempt >= self.max_attempts:
                    logger.error(
                        f"Gemini quota still exhausted after {attempt} attempts: {exc.message}"
                    )
                    raise QuotaExceeded(f"Gemini API error. {exc.message}") from exc

                wait_ms = self.backoff_ms(exc, attempt)
                logger.warning(
                    f"Gemini quota hit (attempt {attempt}/{self.max_attempts}). "
                    f"Waiting {wait_ms} ms before retry..."
                )
                await self._sleep(wait_ms / 1000)

        image = extract_image(api_result)
        logger.info(f"Gemini returned a {image.mime_type} image after {attempt} attempt(s)")
        return image


__all__ = [
    "GeminiAPIError",
    "GeneratedImage",
    "RetryingGeminiCaller",
    "extract_image",
    "parse_retry_delay",
    "MAX_ATTEMPTS",
    "FALLBACK_RETRY_DELAY_MS",
]
