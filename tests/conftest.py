import pytest

from customer_atlas.data import customers_repository
from customer_atlas.db.supabase import get_supabase_client
from customer_atlas.services.geocoding.client import get_geocoder_client


@pytest.fixture(autouse=True)
def clear_caches():
    customers_repository.clear_caches()
    get_supabase_client.cache_clear()
    get_geocoder_client.cache_clear()
    yield
    customers_repository.clear_caches()
    get_supabase_client.cache_clear()
    get_geocoder_client.cache_clear()
