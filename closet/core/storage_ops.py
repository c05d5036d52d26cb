"""
Storage operations module for Supabase Storage.
Handles uploads and deletions for clothing photos and generated outfits.
"""

from typing import Optional

from supabase import Client

from closet.config import logger
from closet.db import get_supabase_client


# Storage bucket names
CLOTHING_BUCKET = "clothing-images"
GENERATED_BUCKET = "generated-outfits"


def file_name_from_url(url: str) -> str:
    """Return the trailing object name of a public storage URL."""
    return url.rstrip("/").split("?", 1)[0].split("/")[-1]


class ClosetStorage:
    """Blob storage for the closet's two buckets."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    def get_public_url(self, bucket: str, file_name: str) -> str:
        """
        Generate a public URL for a file in Supabase Storage.

        Args:
            bucket: Storage bucket name
            file_name: Object name inside the bucket

        Returns:
            str: Public URL to access the file
        """
        try:
            public_url = self.client.storage.from_(bucket).get_public_url(file_name)
            logger.debug(f"Generated public URL for {bucket}/{file_name}")
            return public_url
        except Exception as e:
            logger.error(f"Error generating public URL for {bucket}/{file_name}: {e}")
            raise

    async def upload(
        self,
        bucket: str,
        file_name: str,
        file_bytes: bytes,
        content_type: str = "image/png",
    ) -> str:
        """
        Upload a file, overwriting any object with the same name.

        Returns:
            str: Public URL of the uploaded file

        Raises:
            Exception: If upload fails
        """
        try:
            logger.info(f"Uploading {bucket}/{file_name} ({len(file_bytes)} bytes)")

            self.client.storage.from_(bucket).upload(
                path=file_name,
                file=file_bytes,
                file_options={
                    "content-type": content_type,
                    "cache-control": "3600",
                    "upsert": "true",
                },
            )

            public_url = self.get_public_url(bucket, file_name)
            logger.info(f"Successfully uploaded {bucket}/{file_name} to: {public_url}")
            return public_url

        except Exception as e:
            logger.error(f"Error uploading {bucket}/{file_name}: {e}")
            raise

    async def delete(self, bucket: str, file_name: str) -> bool:
        """
        Delete a file from Supabase Storage.

        Returns:
            bool: True if deletion was successful

        Raises:
            Exception: If deletion fails
        """
        try:
            logger.info(f"Deleting file: {bucket}/{file_name}")
            self.client.storage.from_(bucket).remove([file_name])
            logger.info(f"Successfully deleted file: {bucket}/{file_name}")
            return True

        except Exception as e:
            logger.error(f"Error deleting file {bucket}/{file_name}: {e}")
            raise


__all__ = ["ClosetStorage", "CLOTHING_BUCKET", "GENERATED_BUCKET", "file_name_from_url"]
