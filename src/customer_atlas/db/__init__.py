"""Database clients and utilities."""

from .supabase import fetch_table, get_supabase_client, table_status

__all__ = ["fetch_table", "get_supabase_client", "table_status"]
