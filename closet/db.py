from typing import Optional

from supabase import Client, create_client

from closet.config import logger
from closet.config import SUPABASE_KEY, SUPABASE_SERVICE_KEY, SUPABASE_URL


# Shared Supabase client
_supabase_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """
    Get or create the Supabase client instance.

    Prefers the service key and falls back to the anon key.

    Returns:
        Client: Supabase client instance

    Raises:
        ValueError: If SUPABASE_URL or a Supabase key is not configured
    """
    global _supabase_client

    if _supabase_client is None:
        key = SUPABASE_SERVICE_KEY or SUPABASE_KEY
        if not SUPABASE_URL or not key:
            error_msg = "SUPABASE_URL or SUPABASE_SERVICE_KEY is not configured"
            logger.error(error_msg)
            raise ValueError(error_msg)

        try:
            _supabase_client = create_client(SUPABASE_URL, key)
            logger.info("Supabase client connected successfully!")
        except Exception as e:
            logger.error(f"Failed to create Supabase client: {e}")
            raise

    return _supabase_client
