"""Error taxonomy for outfit generation."""

from typing import List, Optional


class GenerationError(Exception):
    """Base class for every failure an outfit generation can report."""

    user_message = "Failed to generate outfit. Please try again."

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(GenerationError):
    """The Gemini API key is missing; no network call is attempted."""


class RateLimited(GenerationError):
    """Local rate limiter refused the call. The caller must wait and retry."""

    def __init__(self, reason: str, wait_time_ms: Optional[int] = None):
        message = f"Rate limit exceeded: {reason}"
        if wait_time_ms is not None:
            message += f" (retry in {wait_time_ms} ms)"
        super().__init__(message)
        self.reason = reason
        self.wait_time_ms = wait_time_ms


class QuotaExceeded(GenerationError):
    """Remote quota errors persisted through every retry attempt."""


class RemoteCallFailed(GenerationError):
    """The remote call failed with a non-quota error."""


class NoImageReturned(GenerationError):
    """The remote response was well formed but carried no image data."""

    def __init__(self, text_parts: Optional[List[str]] = None):
        self.text_parts = [text for text in (text_parts or []) if text]
        detail = "\n".join(self.text_parts) or "No image data returned"
        super().__init__(f"Gemini did not return an image. {detail}")


class ReferenceImageError(GenerationError):
    """A reference image could not be fetched or decoded."""


class PersistenceFailed(GenerationError):
    """Saving a generated image to durable storage failed."""


class CompositeFallbackFailed(GenerationError):
    """AI generation and the local composite fallback both failed."""


__all__ = [
    "GenerationError",
    "ConfigurationError",
    "RateLimited",
    "QuotaExceeded",
    "RemoteCallFailed",
    "NoImageReturned",
    "ReferenceImageError",
    "PersistenceFailed",
    "CompositeFallbackFailed",
]
