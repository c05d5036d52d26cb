"""Outfit generation orchestration: cache tiers, rate limiting and Gemini calls."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from closet.config import BODY_IMAGE_PATH, TRANSFER_CACHE_CONTENT_HASH, logger
from closet.core.cache import (
    NANO_MODE,
    SELECT_MODE,
    TRANSFER_MODE,
    CacheEntry,
    TieredCache,
    anonymous_select_key,
    nano_key,
    pair_key,
    sha256_hex,
    transfer_key,
)
from closet.core.compositor import OutfitCompositor
from closet.core.errors import (
    CompositeFallbackFailed,
    ConfigurationError,
    GenerationError,
    NoImageReturned,
    PersistenceFailed,
    QuotaExceeded,
    RateLimited,
    RemoteCallFailed,
)
from closet.core.gemini import GeneratedImage, RetryingGeminiCaller
from closet.core.image_inputs import ImageInput, load_image_input
from closet.core.prompt_templates import (
    build_nano_prompt,
    build_select_prompt,
    build_transfer_prompt,
)
from closet.core.rate_limit import RateLimiter

ImageLoader = Callable[..., Awaitable[ImageInput]]

COMPOSITE_NOTICE = "Using composite image (AI generation unavailable)"
MISSING_KEY_MESSAGE = "Set GEMINI_KEY and enable billing for image generation."


def _log(level: int, message: str, **context: Any) -> None:
    """Helper to emit structured logs with contextual metadata."""
    logger.log(level, "%s | context=%s", message, context)


@dataclass(slots=True)
class GarmentRef:
    """A garment to dress the mannequin with: image reference plus optional item id."""

    image_url: str
    id: Optional[str] = None


@dataclass(slots=True)
class InspirationImage:
    """A user supplied photo whose outfit should be transferred."""

    file_name: str
    content: bytes
    content_type: str = "image/png"

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(slots=True)
class GenerationResult:
    success: bool
    image_url: Optional[str] = None
    is_composite: bool = False
    source: Optional[str] = None
    cached: bool = False
    error: Optional[str] = None
    error_type: Optional[str] = None
    notice: Optional[str] = None
    wait_time_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class GenerationOrchestrator:
    """
    Runs the three generation modes behind one in-flight guard.

    Per call: guard -> key check -> memory tier -> durable composite lookup
    (paired selection with ids) -> rate limit check -> load references ->
    record call -> Gemini -> persist + memory. Paired selections fall back to
    a local composite when Gemini fails. Every failure is returned as a
    GenerationResult; a call made while another is in flight returns None.
    """

    def __init__(
        self,
        caller: RetryingGeminiCaller,
        cache: TieredCache,
        rate_limiter: RateLimiter,
        compositor: Optional[OutfitCompositor] = None,
        image_loader: ImageLoader = load_image_input,
        body_image_path: str = BODY_IMAGE_PATH,
        transfer_content_hash: bool = TRANSFER_CACHE_CONTENT_HASH,
    ):
        self.caller = caller
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.compositor = compositor
        self._load_image = image_loader
        self.body_image_path = body_image_path
        self.transfer_content_hash = transfer_content_hash
        self._in_flight = False

    @property
    def is_generating(self) -> bool:
        return self._in_flight

    # -------------------------
    # Public operations
    # -------------------------
    async def generate_outfit(
        self, top: GarmentRef, bottom: GarmentRef
    ) -> Optional[GenerationResult]:
        """Dress the mannequin in a selected top and bottom."""
        if not self._acquire(SELECT_MODE):
            return None
        try:
            return await self._generate_select(top, bottom)
        except GenerationError as exc:
            return self._failure(SELECT_MODE, exc)
        except Exception as exc:
            return self._unexpected(SELECT_MODE, exc)
        finally:
            self._release(SELECT_MODE)

    async def generate_nano_outfit(self, occasion: str) -> Optional[GenerationResult]:
        """Let the model pick an outfit for a free-text occasion."""
        if not self._acquire(NANO_MODE):
            return None
        try:
            return await self._generate_nano(occasion)
        except GenerationError as exc:
            return self._failure(NANO_MODE, exc)
        except Exception as exc:
            return self._unexpected(NANO_MODE, exc)
        finally:
            self._release(NANO_MODE)

    async def generate_outfit_transfer(
        self, inspiration: InspirationImage
    ) -> Optional[GenerationResult]:
        """Transplant the outfit of an inspiration photo onto the mannequin."""
        if not self._acquire(TRANSFER_MODE):
            return None
        try:
            return await self._generate_transfer(inspiration)
        except GenerationError as exc:
            return self._failure(TRANSFER_MODE, exc)
        except Exception as exc:
            return self._unexpected(TRANSFER_MODE, exc)
        finally:
            self._release(TRANSFER_MODE)

    def clear_cache(self) -> None:
        self.cache.clear()

    def cache_size(self) -> int:
        return self.cache.size()

    def rate_limit_status(self) -> Dict[str, Any]:
        return self.rate_limiter.get_status()

    # -------------------------
    # Mode implementations
    # -------------------------
    async def _generate_select(self, top: GarmentRef, bottom: GarmentRef) -> GenerationResult:
        self._require_api_key()

        prompt = build_select_prompt()
        has_ids = bool(top.id and bottom.id)
        if has_ids:
            key = pair_key(top.id, bottom.id)
        else:
            key = anonymous_select_key(
                self.caller.model,
                top.image_url,
                bottom.image_url,
                self.body_image_path,
                prompt,
            )

        cached = self._from_memory(SELECT_MODE, key)
        if cached:
            return cached

        if has_ids:
            entry = await self.cache.lookup_composite(top.id, bottom.id)
            if entry:
                return GenerationResult(
                    success=True, image_url=entry.url, source=SELECT_MODE, cached=True
                )

        self._check_rate_limit()

        top_img, bottom_img, body_img = await asyncio.gather(
            self._load_image(top.image_url, "top image"),
            self._load_image(bottom.image_url, "bottom image"),
            self._load_image(self.body_image_path, "body image", allow_local=True),
        )

        self._record_call(SELECT_MODE)
        try:
            image = await self.caller.generate(prompt, [top_img, bottom_img, body_img])
        except (QuotaExceeded, RemoteCallFailed, NoImageReturned) as exc:
            return await self._composite_fallback(key, exc, top_img, bottom_img)

        url = image.data_url
        if has_ids:
            url = await self._store(
                SELECT_MODE, image, f"{top.id}_{bottom.id}", top.id, bottom.id
            )

        self.cache.put(key, CacheEntry(url=url, is_composite=False))
        _log(logging.INFO, "outfit_generated", mode=SELECT_MODE, key=key)
        return GenerationResult(success=True, image_url=url, source=SELECT_MODE)

    async def _generate_nano(self, occasion: str) -> GenerationResult:
        self._require_api_key()

        if not occasion or not occasion.strip():
            raise GenerationError("An occasion description is required for nano styling.")

        occasion = occasion.strip()
        key = nano_key(occasion)
        cached = self._from_memory(NANO_MODE, key)
        if cached:
            return cached

        self._check_rate_limit()

        body_img = await self._load_image(self.body_image_path, "body image", allow_local=True)
        self._record_call(NANO_MODE)
        image = await self.caller.generate(build_nano_prompt(occasion), [body_img])

        url = await self._store(
            NANO_MODE, image, sha256_hex(occasion.encode("utf-8"))[:12]
        )
        self.cache.put(key, CacheEntry(url=url, is_composite=False))
        _log(logging.INFO, "outfit_generated", mode=NANO_MODE, key=key)
        return GenerationResult(success=True, image_url=url, source=NANO_MODE)

    async def _generate_transfer(self, inspiration: InspirationImage) -> GenerationResult:
        self._require_api_key()

        if not inspiration.content:
            raise GenerationError("The inspiration image is empty.")

        key = transfer_key(
            inspiration.file_name,
            inspiration.size,
            inspiration.content if self.transfer_content_hash else None,
        )
        cached = self._from_memory(TRANSFER_MODE, key)
        if cached:
            return cached

        self._check_rate_limit()

        body_img = await self._load_image(self.body_image_path, "body image", allow_local=True)
        inspiration_img = ImageInput.from_bytes(inspiration.content, inspiration.content_type)
        self._record_call(TRANSFER_MODE)
        image = await self.caller.generate(
            build_transfer_prompt(), [body_img, inspiration_img]
        )

        url = await self._store(TRANSFER_MODE, image, sha256_hex(key.encode("utf-8"))[:12])
        self.cache.put(key, CacheEntry(url=url, is_composite=False))
        _log(logging.INFO, "outfit_generated", mode=TRANSFER_MODE, key=key)
        return GenerationResult(success=True, image_url=url, source=TRANSFER_MODE)

    # -------------------------
    # Shared steps
    # -------------------------
    def _acquire(self, mode: str) -> bool:
        # no await between the check and the set
        if self._in_flight:
            _log(logging.WARNING, "generation_already_in_flight", mode=mode)
            return False
        self._in_flight = True
        return True

    def _release(self, mode: str) -> None:
        self._in_flight = False
        _log(logging.DEBUG, "generation_completed", mode=mode)

    def _require_api_key(self) -> None:
        if not self.caller.is_configured:
            raise ConfigurationError(MISSING_KEY_MESSAGE)

    def _from_memory(self, mode: str, key: str) -> Optional[GenerationResult]:
        entry = self.cache.get(key)
        if entry is None:
            return None

        _log(logging.INFO, "memory_cache_hit", mode=mode, key=key)
        return GenerationResult(
            success=True,
            image_url=entry.url,
            is_composite=entry.is_composite,
            source=mode,
            cached=True,
        )

    def _check_rate_limit(self) -> None:
        decision = self.rate_limiter.can_make_call()
        if not decision.allowed:
            raise RateLimited(decision.reason or "rate limit", decision.wait_time_ms)

    def _record_call(self, mode: str) -> None:
        # only once the references are loaded and the remote call is certain
        self.rate_limiter.record_call()
        _log(
            logging.INFO,
            "generation_call_recorded",
            mode=mode,
            status=self.rate_limiter.get_status(),
        )

    async def _store(
        self,
        mode: str,
        image: GeneratedImage,
        fragment: str,
        top_id: Optional[str] = None,
        bottom_id: Optional[str] = None,
    ) -> str:
        """Persist to the durable tiers; fall back to the data URL on failure."""
        try:
            return await self.cache.persist(mode, image, fragment, top_id, bottom_id)
        except PersistenceFailed as exc:
            _log(logging.ERROR, "persistence_failed", mode=mode, error=exc.message)
            return image.data_url

    async def _composite_fallback(
        self,
        key: str,
        cause: GenerationError,
        top_img: ImageInput,
        bottom_img: ImageInput,
    ) -> GenerationResult:
        _log(logging.WARNING, "ai_generation_failed_using_composite", error=cause.message)

        if self.compositor is None:
            raise CompositeFallbackFailed(
                f"{cause.message}; no composite fallback is configured"
            ) from cause

        try:
            url = await self.compositor.create_composite(top_img, bottom_img)
        except Exception as exc:
            raise CompositeFallbackFailed(
                f"{cause.message}; composite fallback failed: {exc}"
            ) from exc

        self.cache.put(key, CacheEntry(url=url, is_composite=True))
        return GenerationResult(
            success=True,
            image_url=url,
            is_composite=True,
            source=SELECT_MODE,
            notice=COMPOSITE_NOTICE,
        )

    def _failure(self, mode: str, exc: GenerationError) -> GenerationResult:
        level = logging.WARNING if isinstance(exc, RateLimited) else logging.ERROR
        _log(
            level,
            "generation_failed",
            mode=mode,
            error_type=type(exc).__name__,
            error=exc.message,
        )
        return GenerationResult(
            success=False,
            source=mode,
            error=exc.message,
            error_type=type(exc).__name__,
            wait_time_ms=getattr(exc, "wait_time_ms", None),
        )

    def _unexpected(self, mode: str, exc: Exception) -> GenerationResult:
        logger.error(f"Unexpected error during {mode} generation", exc_info=True)
        return GenerationResult(
            success=False,
            source=mode,
            error=f"{GenerationError.user_message} ({exc})",
            error_type=type(exc).__name__,
        )


__all__ = [
    "GarmentRef",
    "InspirationImage",
    "GenerationResult",
    "GenerationOrchestrator",
]
