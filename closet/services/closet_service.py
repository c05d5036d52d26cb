"""Clothing item management: upload, listing and cascading deletion."""

import time
from typing import Any, Dict, List, Optional

from closet.config import logger
from closet.core.database_ops import CATEGORIES, ClosetDatabase
from closet.core.storage_ops import CLOTHING_BUCKET, ClosetStorage, file_name_from_url


class ClosetService:
    def __init__(
        self,
        database: Optional[ClosetDatabase] = None,
        storage: Optional[ClosetStorage] = None,
    ):
        self.database = database or ClosetDatabase()
        self.storage = storage or ClosetStorage()

    async def list_items(self, category: str) -> List[Dict[str, Any]]:
        return await self.database.get_clothing_items(category)

    async def add_item(
        self,
        name: str,
        category: str,
        file_bytes: bytes,
        filename: str,
        content_type: str = "image/png",
    ) -> Dict[str, Any]:
        """
        Upload a clothing photo and create its clothing_items row.

        The blob is named `<category>_<timestamp>.<ext>`. If the row cannot be
        created the uploaded blob is removed again.

        Raises:
            ValueError: If category is unknown or the file is empty
            Exception: If upload or insert fails
        """
        if category not in CATEGORIES:
            raise ValueError(f"Unknown clothing category: {category}")
        if not file_bytes:
            raise ValueError("Uploaded image is empty")

        file_extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else "png"
        file_name = f"{category}_{int(time.time() * 1000)}.{file_extension}"

        image_url = await self.storage.upload(
            CLOTHING_BUCKET, file_name, file_bytes, content_type
        )

        try:
            return await self.database.add_clothing_item(name, category, image_url)
        except Exception:
            logger.warning(f"Removing orphaned upload {file_name} after failed insert")
            try:
                await self.storage.delete(CLOTHING_BUCKET, file_name)
            except Exception as cleanup_exc:
                logger.warning(f"Failed to cleanup {file_name}: {cleanup_exc}")
            raise

    async def delete_item(self, item_id: str) -> bool:
        """
        Delete a clothing item and its backing image.

        Returns:
            False when the item does not exist, True otherwise
        """
        item = await self.database.get_clothing_item(item_id)
        if not item:
            return False

        image_url = item.get("image_url")
        if image_url:
            await self.storage.delete(CLOTHING_BUCKET, file_name_from_url(image_url))

        await self.database.delete_clothing_item(item_id)
        logger.info(f"Deleted clothing item {item_id}")
        return True
