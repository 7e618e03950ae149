"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...config import settings
from ...db.supabase import get_supabase_client, table_status
from ...services.geocoding.client import GeocoderClient, get_geocoder_client

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/geocoder", status_code=status.HTTP_200_OK)
async def health_geocoder(geocoder: GeocoderClient = Depends(get_geocoder_client)) -> dict:
    """Check that the postal-code geocoder answers."""
    try:
        healthy = await geocoder.check_health()
        return {"service": "geocoder", "url": geocoder.base_url, "healthy": healthy}
    except Exception as e:
        return {"service": "geocoder", "url": geocoder.base_url, "healthy": False, "error": str(e)}


@router.get("/health/database", status_code=status.HTTP_200_OK)
def check_database() -> dict:
    """Check database configuration and the customer table."""
    supabase = get_supabase_client()
    if not supabase:
        return {
            "configured": False,
            "message": "Supabase not configured. Set ATLAS_SUPABASE_URL and ATLAS_SUPABASE_KEY environment variables.",
            "customer_file": str(settings.customer_file),
        }

    return {
        "configured": True,
        "customers_table": settings.customers_table,
        **table_status(supabase, settings.customers_table),
    }
