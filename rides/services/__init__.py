"""Services module for ride geometry, route matching and search."""

from .directions import GoogleDirectionsService
from .distance import DistanceService
from .geo import GeoPoint, Polyline
from .geocoding import GoogleGeocodingService
from .matching import MatchConfig, MatchQuery, MatchReason, MatchResult, RouteMatchingService

__all__ = [
    'GoogleDirectionsService',
    'GoogleGeocodingService',
    'DistanceService',
    'GeoPoint',
    'Polyline',
    'MatchConfig',
    'MatchQuery',
    'MatchReason',
    'MatchResult',
    'RouteMatchingService',
]
