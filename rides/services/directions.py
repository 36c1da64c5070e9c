"""
Google Directions API service for fetching route geometry.
"""

import logging
from typing import Optional

import requests
from django.conf import settings

from .exceptions import InvalidGeometryError
from .geo import GeoPoint, Polyline

logger = logging.getLogger(__name__)


class DirectionsAPIError(Exception):
    """Exception raised for Google Directions API errors."""
    pass


class GoogleDirectionsService:
    """
    Service for interacting with Google Directions API.

    Responsibilities:
    - Fetch the driving route polyline between two points
    - Raise DirectionsAPIError for every failure so callers can fall back
    """

    BASE_URL = "https://maps.googleapis.com/maps/api/directions/json"

    def __init__(self, api_key: Optional[str] = None, timeout: Optional[float] = None):
        self.api_key = api_key if api_key is not None else settings.GOOGLE_MAPS_API_KEY
        self.timeout = timeout if timeout is not None else getattr(
            settings, 'MAPS_API_TIMEOUT_SECONDS', 10
        )

    def get_route_polyline(self, origin: GeoPoint, destination: GeoPoint) -> Polyline:
        """
        Fetch the driving route between two points.

        Args:
            origin: Route start
            destination: Route end

        Returns:
            Decoded route Polyline

        Raises:
            DirectionsAPIError: If the API request fails or no usable route is found
        """
        if not self.api_key:
            raise DirectionsAPIError("Google Maps API key is not configured")

        params = {
            'origin': f"{origin.latitude},{origin.longitude}",
            'destination': f"{destination.latitude},{destination.longitude}",
            'key': self.api_key,
            'mode': 'driving',
        }

        try:
            response = requests.get(self.BASE_URL, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise DirectionsAPIError(f"API request failed: {str(e)}")

        data = response.json()

        if data.get('status') != 'OK':
            error_message = data.get('error_message', data.get('status', 'Unknown error'))
            raise DirectionsAPIError(f"Directions API error: {error_message}")

        routes = data.get('routes', [])
        if not routes:
            raise DirectionsAPIError("No route found between the specified coordinates")

        encoded = routes[0].get('overview_polyline', {}).get('points', '')
        if not encoded:
            raise DirectionsAPIError("No polyline data in the response")

        try:
            route = Polyline.from_encoded(encoded)
        except InvalidGeometryError as e:
            raise DirectionsAPIError(f"Unusable route geometry: {e}")

        logger.info("Fetched route geometry with %d points", len(route))
        return route
