from .client import GeocodeResult, GeocoderClient, GeocodingError, clean_postal_code, get_geocoder_client

__all__ = ["GeocodeResult", "GeocoderClient", "GeocodingError", "clean_postal_code", "get_geocoder_client"]
