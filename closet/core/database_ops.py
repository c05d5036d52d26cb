"""
Database operations module for the Supabase closet tables.
Handles clothing_items and generated_outfits records.
"""

from typing import Any, Dict, List, Optional

from supabase import Client

from closet.config import logger
from closet.db import get_supabase_client

CLOTHING_TABLE = "clothing_items"
OUTFITS_TABLE = "generated_outfits"

CATEGORIES = ("top", "bottom")
GENERATOR_SOURCES = ("select", "nano", "transfer")


class ClosetDatabase:
    """Thin wrapper over the Supabase tables used by the closet."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    # -------------------------
    # Composite lookup tier
    # -------------------------
    async def get_cached_composite(self, top_id: str, bottom_id: str) -> Optional[str]:
        """
        Look up a previously generated composite for a (top, bottom) pair.

        Returns:
            The stored image URL, or None when the pair has not been generated
        """
        try:
            response = (
                self.client.table(OUTFITS_TABLE)
                .select("generated_image_url")
                .eq("top_id", top_id)
                .eq("bottom_id", bottom_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error fetching cached composite {top_id}/{bottom_id}: {e}")
            raise

        if response.data:
            return response.data[0].get("generated_image_url")
        return None

    async def save_cached_composite(
        self, top_id: str, bottom_id: str, generated_image_url: str
    ) -> Dict[str, Any]:
        """Upsert the composite row for a pair. Last write wins."""
        record_data = {
            "top_id": top_id,
            "bottom_id": bottom_id,
            "generated_image_url": generated_image_url,
            "generator_source": "select",
        }

        try:
            response = (
                self.client.table(OUTFITS_TABLE)
                .upsert(record_data, on_conflict="top_id,bottom_id")
                .execute()
            )
        except Exception as e:
            logger.error(f"Error saving cached composite {top_id}/{bottom_id}: {e}")
            raise

        logger.info(f"Saved composite for pair {top_id}/{bottom_id}")
        return response.data[0] if response.data else record_data

    # -------------------------
    # Generated outfits
    # -------------------------
    async def save_generated_outfit(
        self,
        generated_image_url: str,
        generator_source: str,
        top_id: Optional[str] = None,
        bottom_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Append a generation record.

        Args:
            generated_image_url: Public URL of the stored image
            generator_source: One of 'select', 'nano', 'transfer'
            top_id: Optional clothing item id of the top
            bottom_id: Optional clothing item id of the bottom

        Returns:
            Dict containing the created record

        Raises:
            ValueError: If generator_source is unknown
            Exception: If database operation fails
        """
        if generator_source not in GENERATOR_SOURCES:
            raise ValueError(f"Unknown generator source: {generator_source}")

        record_data = {
            "top_id": top_id,
            "bottom_id": bottom_id,
            "generated_image_url": generated_image_url,
            "generator_source": generator_source,
        }

        try:
            response = self.client.table(OUTFITS_TABLE).insert(record_data).execute()
        except Exception as e:
            logger.error(f"Error saving generated outfit: {e}")
            raise

        if response.data:
            record = response.data[0]
            logger.info(f"Saved generated outfit {record.get('id')} ({generator_source})")
            return record

        error_msg = "Failed to save generated outfit: No data returned"
        logger.error(error_msg)
        raise Exception(error_msg)

    async def set_generated_outfit_liked(self, outfit_id: str, is_liked: bool) -> Dict[str, Any]:
        try:
            response = (
                self.client.table(OUTFITS_TABLE)
                .update({"is_liked": is_liked})
                .eq("id", outfit_id)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error updating is_liked for outfit {outfit_id}: {e}")
            raise

        if response.data:
            return response.data[0]

        error_msg = f"Generated outfit {outfit_id} not found"
        logger.warning(error_msg)
        raise LookupError(error_msg)

    async def list_generated_outfits(
        self,
        limit: int = 20,
        offset: int = 0,
        liked_only: bool = False,
        generator_source: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Return generated outfits, newest first."""
        try:
            query = self.client.table(OUTFITS_TABLE).select("*")
            if liked_only:
                query = query.eq("is_liked", True)
            if generator_source:
                query = query.eq("generator_source", generator_source)

            response = (
                query.order("created_at", desc=True)
                .range(offset, offset + limit - 1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error listing generated outfits: {e}")
            raise

        return response.data or []

    # -------------------------
    # Clothing items
    # -------------------------
    async def get_clothing_items(self, category: str) -> List[Dict[str, Any]]:
        """Return the clothing items of a category, newest first."""
        if category not in CATEGORIES:
            raise ValueError(f"Unknown clothing category: {category}")

        try:
            response = (
                self.client.table(CLOTHING_TABLE)
                .select("*")
                .eq("category", category)
                .order("created_at", desc=True)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error fetching clothing items ({category}): {e}")
            raise

        return response.data or []

    async def get_clothing_item(self, item_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = (
                self.client.table(CLOTHING_TABLE)
                .select("*")
                .eq("id", item_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error fetching clothing item {item_id}: {e}")
            raise

        if response.data:
            return response.data[0]

        logger.warning(f"Clothing item {item_id} not found")
        return None

    async def add_clothing_item(self, name: str, category: str, image_url: str) -> Dict[str, Any]:
        if category not in CATEGORIES:
            raise ValueError(f"Unknown clothing category: {category}")

        record_data = {"name": name, "category": category, "image_url": image_url}

        try:
            response = self.client.table(CLOTHING_TABLE).insert(record_data).execute()
        except Exception as e:
            logger.error(f"Error adding clothing item: {e}")
            raise

        if response.data:
            record = response.data[0]
            logger.info(f"Added clothing item {record.get('id')} ({category})")
            return record

        error_msg = "Failed to add clothing item: No data returned"
        logger.error(error_msg)
        raise Exception(error_msg)

    async def delete_clothing_item(self, item_id: str) -> bool:
        try:
            response = self.client.table(CLOTHING_TABLE).delete().eq("id", item_id).execute()
        except Exception as e:
            logger.error(f"Error deleting clothing item {item_id}: {e}")
            raise

        return bool(response.data)


__all__ = [
    "ClosetDatabase",
    "CATEGORIES",
    "GENERATOR_SOURCES",
    "CLOTHING_TABLE",
    "OUTFITS_TABLE",
]
