"""Supabase client construction."""

import logging
from typing import Optional

from supabase import AsyncClient, acreate_client

from app.core.config import settings

logger = logging.getLogger("TeamMemory.Database")


async def create_supabase_client(
    url: Optional[str] = None,
    key: Optional[str] = None,
) -> AsyncClient:
    """
    Create the Supabase async client used for the process lifetime.

    Called once from the application lifespan; the resulting handle is
    passed into the datastore adapter explicitly.

    Raises:
        ValueError: If the URL or service key is not configured
    """
    url = url or settings.SUPABASE_URL
    key = key or settings.SUPABASE_KEY
    if not url or not key:
        raise ValueError("Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY environment variables")

    client = await acreate_client(url, key)
    logger.info("Supabase client initialized")
    return client
