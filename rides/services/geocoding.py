"""
Google Geocoding API service for resolving place names to coordinates.
"""

import logging
from typing import Optional

import requests
from django.conf import settings

from .exceptions import InvalidGeometryError
from .geo import GeoPoint

logger = logging.getLogger(__name__)


class GeocodingAPIError(Exception):
    """Exception raised for Google Geocoding API errors."""
    pass


class GoogleGeocodingService:
    """
    Service for interacting with Google Geocoding API.

    A place name with no result is not an error: geocode() returns None.
    """

    BASE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

    def __init__(self, api_key: Optional[str] = None, timeout: Optional[float] = None):
        self.api_key = api_key if api_key is not None else settings.GOOGLE_MAPS_API_KEY
        self.timeout = timeout if timeout is not None else getattr(
            settings, 'MAPS_API_TIMEOUT_SECONDS', 10
        )

    def geocode(self, place_name: str) -> Optional[GeoPoint]:
        """
        Resolve a place name to coordinates.

        Args:
            place_name: Free-form address or place name

        Returns:
            GeoPoint of the first result, or None if nothing was found

        Raises:
            GeocodingAPIError: If the API is unreachable or rejects the request
        """
        if not place_name or not place_name.strip():
            return None

        if not self.api_key:
            raise GeocodingAPIError("Google Maps API key is not configured")

        params = {'address': place_name.strip(), 'key': self.api_key}

        try:
            response = requests.get(self.BASE_URL, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise GeocodingAPIError(f"API request failed: {str(e)}")

        data = response.json()
        status = data.get('status')

        if status == 'ZERO_RESULTS':
            logger.info("No geocoding result for %r", place_name)
            return None
        if status != 'OK':
            error_message = data.get('error_message', status or 'Unknown error')
            raise GeocodingAPIError(f"Geocoding API error: {error_message}")

        results = data.get('results', [])
        if not results:
            return None

        location = results[0].get('geometry', {}).get('location', {})
        try:
            return GeoPoint.from_lat_lon(location['lat'], location['lng'])
        except (KeyError, TypeError, ValueError, InvalidGeometryError) as e:
            raise GeocodingAPIError(f"Malformed geocoding result: {e}")
