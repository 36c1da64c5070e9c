"""
Ride search: coarse candidate filtering followed by partial-route matching.
"""

import datetime
import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from django.conf import settings
from django.utils import timezone

from ..models import Ride, SEARCHABLE_STATUSES
from .distance import DistanceService
from .exceptions import InvalidGeometryError, RouteMatchingError
from .geo import GeoPoint
from .matching import MatchQuery, MatchResult, RouteMatchingService
from .routes import RouteGeometryResolver

logger = logging.getLogger(__name__)

MATCH_TYPE_ROUTE = 'ROUTE'
MATCH_TYPE_TEXT = 'TEXT'


@dataclass(frozen=True)
class RideSearchQuery:
    """A passenger's search; coordinates are optional and geocoded if absent."""
    source: str
    destination: str
    ride_date: datetime.date
    source_latitude: Optional[float] = None
    source_longitude: Optional[float] = None
    destination_latitude: Optional[float] = None
    destination_longitude: Optional[float] = None
    seats_required: int = 1


@dataclass
class RideSearchHit:
    """A ride returned by search, with route diagnostics when route-matched."""
    ride: Ride
    match_type: str
    match: Optional[MatchResult] = None
    passenger_route_distance_meters: Optional[float] = None
    estimated_pickup_minutes: Optional[float] = None


@dataclass
class RideSearchResult:
    hits: List[RideSearchHit]
    passenger_points_resolved: bool


def normalize_place_name(name: str) -> str:
    return re.sub(r'\s+', ' ', (name or '').strip().lower())


def core_place_name(name: str) -> str:
    """Place name without trailing region/country parts ("Pune, MH" -> "pune")."""
    return normalize_place_name(name).split(',')[0].strip()


def place_names_match(searched: str, posted: str) -> bool:
    searched = normalize_place_name(searched)
    posted = normalize_place_name(posted)
    if not searched or not posted:
        return False
    return (
        searched in posted
        or posted in searched
        or core_place_name(searched) == core_place_name(posted)
    )


def _query_point(latitude: Optional[float], longitude: Optional[float]) -> Optional[GeoPoint]:
    if latitude is None or longitude is None:
        return None
    # Clients send (0, 0) for a location that was never picked
    if latitude == 0 and longitude == 0:
        return None
    try:
        return GeoPoint.from_lat_lon(latitude, longitude)
    except InvalidGeometryError:
        return None


class RideSearchService:
    """
    Finds rides a passenger can join.

    A ride is returned if its place names match the search text, or if the
    passenger's trip lies along its route. All geocoding and geometry
    lookups happen before matching, which then runs concurrently over the
    candidates.
    """

    def __init__(
        self,
        matching_service: Optional[RouteMatchingService] = None,
        resolver: Optional[RouteGeometryResolver] = None,
        average_speed_kmh: Optional[float] = None
    ):
        self.matching_service = matching_service or RouteMatchingService()
        self.resolver = resolver or RouteGeometryResolver(
            synthetic_waypoints=self.matching_service.config.synthetic_waypoints
        )
        self.average_speed_kmh = average_speed_kmh or settings.DEFAULT_AVERAGE_SPEED_KMH

    def candidate_rides(self, query: RideSearchQuery) -> List[Ride]:
        """Active rides on the requested date with enough seats that have not left yet."""
        rides = Ride.objects.filter(
            ride_date=query.ride_date,
            status__in=SEARCHABLE_STATUSES,
            available_seats__gte=query.seats_required,
        )
        now = timezone.now()
        return [ride for ride in rides if ride.departs_at > now]

    def resolve_passenger_query(self, query: RideSearchQuery) -> MatchQuery:
        source = _query_point(query.source_latitude, query.source_longitude)
        if source is None:
            source = self.resolver.geocode(query.source)

        destination = _query_point(query.destination_latitude, query.destination_longitude)
        if destination is None:
            destination = self.resolver.geocode(query.destination)

        return MatchQuery(source=source, destination=destination)

    def search(self, query: RideSearchQuery) -> RideSearchResult:
        rides = self.candidate_rides(query)
        logger.info("Ride search %r -> %r on %s: %d candidates",
                    query.source, query.destination, query.ride_date, len(rides))

        match_query = self.resolve_passenger_query(query)
        resolved = match_query.source is not None and match_query.destination is not None
        if not resolved:
            logger.warning("Passenger points unresolved, route matching skipped for %r -> %r",
                           query.source, query.destination)

        route_hits = self._route_matches(match_query, rides) if resolved else []
        matched_ids = {hit.ride.id for hit in route_hits}

        text_hits = [
            RideSearchHit(ride=ride, match_type=MATCH_TYPE_TEXT)
            for ride in rides
            if ride.id not in matched_ids
            and place_names_match(query.source, ride.source)
            and place_names_match(query.destination, ride.destination)
        ]

        route_hits.sort(key=lambda hit: (hit.match.total_detour_meters, hit.ride.departs_at))
        text_hits.sort(key=lambda hit: hit.ride.departs_at)

        logger.info("Ride search found %d route matches and %d text matches",
                    len(route_hits), len(text_hits))
        return RideSearchResult(hits=route_hits + text_hits, passenger_points_resolved=resolved)

    def _route_matches(self, match_query: MatchQuery, rides: List[Ride]) -> List[RideSearchHit]:
        routes = {}
        candidates = []
        for ride in rides:
            route = self.resolver.search_polyline(ride)
            if route is None:
                continue
            routes[ride.id] = route
            candidates.append((ride, route))

        try:
            results = self.matching_service.match_candidates(match_query, candidates)
        except RouteMatchingError as e:
            logger.warning("Route matching declined: %s", e)
            return []

        hits = []
        for ride, result in results:
            if not result.matched:
                logger.debug("Ride %s not matched: %s", ride.id, result.reason.value)
                continue
            route = routes[ride.id]
            pickup_along = DistanceService.distance_along_route(route, result.source_nearest)
            hits.append(RideSearchHit(
                ride=ride,
                match_type=MATCH_TYPE_ROUTE,
                match=result,
                passenger_route_distance_meters=DistanceService.distance_between_located_points(
                    route, result.source_nearest, result.destination_nearest
                ),
                estimated_pickup_minutes=round(
                    DistanceService.calculate_eta_minutes(pickup_along, self.average_speed_kmh), 2
                ),
            ))
        return hits
