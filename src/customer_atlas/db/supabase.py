"""Supabase access for the customer and product tables."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from supabase import Client, create_client

from ..config import settings

logger = logging.getLogger(__name__)


@lru_cache()
def get_supabase_client() -> Optional[Client]:
    """Cached client, or None when ``ATLAS_SUPABASE_URL``/``ATLAS_SUPABASE_KEY`` are unset.

    Creating the client does not contact the server; queries may still fail.
    """
    if not settings.supabase_url or not settings.supabase_key:
        logger.info(f"Supabase not configured, customers are read from {settings.customer_file}")
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        logger.error(f"Failed to create Supabase client: {e}")
        return None


def fetch_table(client: Client, table: str, *, order: str | None = None) -> list[dict]:
    """Every row of ``table``. Query errors propagate to the caller."""
    query = client.table(table).select("*")
    if order:
        query = query.order(order)
    response = query.execute()
    return list(response.data or [])


def table_status(client: Client, table: str) -> dict:
    """Reachability and row count of ``table`` for health reporting."""
    try:
        response = client.table(table).select("id", count="exact").limit(1).execute()
    except Exception as e:
        logger.warning(f"Supabase table '{table}' is not reachable: {e}")
        return {"connected": False, "error": str(e)}
    count = response.count if response.count is not None else len(response.data or [])
    return {"connected": True, "row_count": count}
