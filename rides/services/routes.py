"""
Route geometry resolution for posted rides.

Geometry comes from, in order of preference: the Directions API, a stored
polyline, or a synthetic polyline between the ride's endpoints.
"""

import logging
from typing import Dict, Optional, Tuple

from django.conf import settings

from .directions import DirectionsAPIError, GoogleDirectionsService
from .exceptions import InvalidGeometryError
from .geo import GeoPoint, Polyline
from .geocoding import GeocodingAPIError, GoogleGeocodingService

logger = logging.getLogger(__name__)


class RouteGeometryResolver:
    """
    Resolves ride endpoints and route polylines.

    Geocoding results are memoised per instance, so create one resolver per
    request to geocode each place name at most once.
    """

    def __init__(
        self,
        directions_service: Optional[GoogleDirectionsService] = None,
        geocoding_service: Optional[GoogleGeocodingService] = None,
        synthetic_waypoints: Optional[int] = None
    ):
        self.directions_service = directions_service or GoogleDirectionsService()
        self.geocoding_service = geocoding_service or GoogleGeocodingService()
        self.synthetic_waypoints = synthetic_waypoints or settings.ROUTE_MATCHING_SYNTHETIC_WAYPOINTS
        self._geocoded: Dict[str, Optional[GeoPoint]] = {}

    def geocode(self, place_name: str) -> Optional[GeoPoint]:
        """Geocode a place name, treating provider failures as no result."""
        key = (place_name or '').strip().lower()
        if not key:
            return None
        if key not in self._geocoded:
            try:
                self._geocoded[key] = self.geocoding_service.geocode(place_name)
            except GeocodingAPIError as e:
                logger.warning("Geocoding %r failed: %s", place_name, e)
                self._geocoded[key] = None
        return self._geocoded[key]

    def resolve_endpoints(self, ride) -> Tuple[Optional[GeoPoint], Optional[GeoPoint]]:
        """Stored endpoint coordinates of a ride, geocoding names where missing."""
        origin = ride.origin_point or self.geocode(ride.source)
        destination = ride.destination_point or self.geocode(ride.destination)
        return origin, destination

    def synthesize(self, origin: GeoPoint, destination: GeoPoint) -> Optional[Polyline]:
        try:
            return Polyline.synthesize(origin, destination, self.synthetic_waypoints)
        except InvalidGeometryError as e:
            logger.warning("Cannot synthesize route: %s", e)
            return None

    def build_route(
        self,
        origin: Optional[GeoPoint],
        destination: Optional[GeoPoint]
    ) -> Tuple[Optional[Polyline], str]:
        """
        Build the geometry to store for a newly posted or edited ride.

        Returns:
            (route, geometry source) where source is 'DIRECTIONS' or
            'SYNTHETIC'; (None, '') if the endpoints are unknown or identical
        """
        if origin is None or destination is None:
            logger.warning("Ride endpoints could not be resolved, storing no route geometry")
            return None, ''

        try:
            return self.directions_service.get_route_polyline(origin, destination), 'DIRECTIONS'
        except DirectionsAPIError as e:
            logger.warning("Directions lookup failed, using synthetic route: %s", e)

        route = self.synthesize(origin, destination)
        if route is None:
            return None, ''
        return route, 'SYNTHETIC'

    def search_polyline(self, ride) -> Optional[Polyline]:
        """
        Geometry to match a ride against during search.

        Stored geometry wins; otherwise a synthetic route is built from the
        ride's endpoints. None means the ride cannot be route-matched.
        """
        route = ride.stored_polyline()
        if route is not None:
            return route

        origin, destination = self.resolve_endpoints(ride)
        if origin is None or destination is None:
            logger.info("Ride %s has no geometry and unresolvable endpoints", ride.id)
            return None

        logger.debug("Ride %s has no stored geometry, synthesizing", ride.id)
        return self.synthesize(origin, destination)
