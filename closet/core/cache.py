"""
Three-tier cache for generated outfits.

1. memory: GenerationKey -> CacheEntry, lives as long as this object
2. durable composite lookup: generated_outfits row for a (top, bottom) pair
3. blob storage + generation record, written after a fresh generation
"""

import base64
import hashlib
import mimetypes
import re
import time
from dataclasses import dataclass
from typing import Dict, Optional

from closet.config import logger
from closet.core.database_ops import ClosetDatabase
from closet.core.errors import PersistenceFailed
from closet.core.gemini import GeneratedImage
from closet.core.prompt_templates import PROMPT_VERSION
from closet.core.storage_ops import GENERATED_BUCKET, ClosetStorage

SELECT_MODE = "select"
NANO_MODE = "nano"
TRANSFER_MODE = "transfer"

PAIR_DELIMITER = "__"
KEY_DELIMITER = ":"


def _escape(part: str) -> str:
    return part.replace("%", "%25").replace("_", "%5F").replace(":", "%3A")


def pair_key(top_id: str, bottom_id: str) -> str:
    """Directional key for a (top, bottom) pair: swapping ids gives another key."""
    return f"{_escape(top_id)}{PAIR_DELIMITER}{_escape(bottom_id)}"


def make_key(mode: str, *parts: str) -> str:
    return KEY_DELIMITER.join([mode, *(_escape(str(part)) for part in parts)])


def sha256_hex(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


def anonymous_select_key(
    model: str, top_path: str, bottom_path: str, body_path: str, prompt: str
) -> str:
    """Weaker key for selections made from bare image references without ids."""
    return make_key(
        "outfit", model, top_path, bottom_path, body_path, f"{PROMPT_VERSION}-{len(prompt)}"
    )


def nano_key(occasion: str) -> str:
    return make_key(NANO_MODE, PROMPT_VERSION, sha256_hex(occasion.strip().encode("utf-8")))


def transfer_key(
    file_name: str, size: int, content: Optional[bytes] = None
) -> str:
    """
    Key for an outfit transfer.

    Uses file name + size unless `content` is given, in which case the
    key is a sha256 of the image bytes.
    """
    if content is not None:
        return make_key(TRANSFER_MODE, PROMPT_VERSION, "sha256", sha256_hex(content))
    return make_key(TRANSFER_MODE, PROMPT_VERSION, file_name, str(size))


def _extension_for(mime_type: str) -> str:
    guessed = mimetypes.guess_extension(mime_type or "")
    return guessed.lstrip(".") if guessed else "png"


def _safe_fragment(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9-]+", "-", value).strip("-") or "item"


@dataclass
class CacheEntry:
    url: str
    is_composite: bool = False


class TieredCache:
    """Memory map in front of the durable composite rows and blob storage."""

    def __init__(
        self,
        database: Optional[ClosetDatabase] = None,
        storage: Optional[ClosetStorage] = None,
    ):
        self.database = database or ClosetDatabase()
        self.storage = storage or ClosetStorage()
        self._memory: Dict[str, CacheEntry] = {}

    # --- tier 1 ---
    def get(self, key: str) -> Optional[CacheEntry]:
        return self._memory.get(key)

    def put(self, key: str, entry: CacheEntry) -> None:
        self._memory[key] = entry

    def clear(self) -> None:
        self._memory.clear()
        logger.info("In-memory generation cache cleared")

    def size(self) -> int:
        return len(self._memory)

    # --- tier 2 ---
    async def lookup_composite(self, top_id: str, bottom_id: str) -> Optional[CacheEntry]:
        """
        Check the durable composite row for a pair.

        A hit is copied into the memory tier. Lookup failures are logged
        and reported as a miss.
        """
        try:
            url = await self.database.get_cached_composite(top_id, bottom_id)
        except Exception as exc:
            logger.warning(f"Composite lookup failed for {top_id}/{bottom_id}: {exc}")
            return None

        if not url:
            return None

        entry = CacheEntry(url=url, is_composite=False)
        self.put(pair_key(top_id, bottom_id), entry)
        logger.info(f"Durable composite hit for {top_id}/{bottom_id}")
        return entry

    # --- tier 3 ---
    def build_file_name(self, mode: str, fragment: str, mime_type: str) -> str:
        timestamp = int(time.time() * 1000)
        return f"{mode}_{_safe_fragment(fragment)}_{timestamp}.{_extension_for(mime_type)}"

    async def persist(
        self,
        mode: str,
        image: GeneratedImage,
        fragment: str,
        top_id: Optional[str] = None,
        bottom_id: Optional[str] = None,
    ) -> str:
        """
        Upload a generated image and record it.

        Select-mode composites are upserted by (top, bottom) pair; nano and
        transfer results are appended.

        Returns:
            Public URL of the stored image

        Raises:
            PersistenceFailed: If the upload or the database write fails
        """
        file_name = self.build_file_name(mode, fragment, image.mime_type)

        try:
            url = await self.storage.upload(
                GENERATED_BUCKET,
                file_name,
                base64.b64decode(image.base64_data),
                image.mime_type,
            )

            if mode == SELECT_MODE and top_id and bottom_id:
                await self.database.save_cached_composite(top_id, bottom_id, url)
            else:
                await self.database.save_generated_outfit(
                    generated_image_url=url,
                    generator_source=mode,
                    top_id=top_id,
                    bottom_id=bottom_id,
                )
        except Exception as exc:
            raise PersistenceFailed(f"Failed to persist {mode} result {file_name}: {exc}") from exc

        return url


__all__ = [
    "CacheEntry",
    "TieredCache",
    "SELECT_MODE",
    "NANO_MODE",
    "TRANSFER_MODE",
    "pair_key",
    "make_key",
    "anonymous_select_key",
    "nano_key",
    "transfer_key",
    "sha256_hex",
]
