"""
Route matching service for deciding whether a passenger trip lies along a
driver's route.
"""

import enum
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Hashable, Iterable, List, Optional, Tuple

from django.conf import settings

from .distance import DistanceService, NearestPointResult
from .exceptions import IncompleteQueryError
from .geo import GeoPoint, Polyline

logger = logging.getLogger(__name__)


DEFAULT_MAX_DISTANCE_METERS = 75000.0
DEFAULT_ORDER_TOLERANCE_METERS = 500.0
DEFAULT_ORDER_INDEX_WINDOW = 1
DEFAULT_SYNTHETIC_WAYPOINTS = 15
DEFAULT_MAX_WORKERS = 8


class MatchReason(str, enum.Enum):
    MATCHED = 'MATCHED'
    SOURCE_TOO_FAR = 'SOURCE_TOO_FAR'
    DEST_TOO_FAR = 'DEST_TOO_FAR'
    INVALID_ORDER = 'INVALID_ORDER'


@dataclass(frozen=True)
class MatchConfig:
    """Tunable matching thresholds."""
    max_distance_meters: float = DEFAULT_MAX_DISTANCE_METERS
    order_tolerance_meters: float = DEFAULT_ORDER_TOLERANCE_METERS
    # Segment indices at most this far apart are compared by along-route distance
    order_index_window: int = DEFAULT_ORDER_INDEX_WINDOW
    synthetic_waypoints: int = DEFAULT_SYNTHETIC_WAYPOINTS
    max_workers: int = DEFAULT_MAX_WORKERS

    @classmethod
    def from_settings(cls, **overrides) -> 'MatchConfig':
        """Build a config from Django settings, with keyword overrides."""
        values = {
            'max_distance_meters': getattr(
                settings, 'ROUTE_MATCHING_MAX_DISTANCE_METERS', DEFAULT_MAX_DISTANCE_METERS
            ),
            'order_tolerance_meters': getattr(
                settings, 'ROUTE_MATCHING_ORDER_TOLERANCE_METERS', DEFAULT_ORDER_TOLERANCE_METERS
            ),
            'order_index_window': getattr(
                settings, 'ROUTE_MATCHING_ORDER_INDEX_WINDOW', DEFAULT_ORDER_INDEX_WINDOW
            ),
            'synthetic_waypoints': getattr(
                settings, 'ROUTE_MATCHING_SYNTHETIC_WAYPOINTS', DEFAULT_SYNTHETIC_WAYPOINTS
            ),
            'max_workers': getattr(settings, 'ROUTE_MATCHING_MAX_WORKERS', DEFAULT_MAX_WORKERS),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass(frozen=True)
class MatchQuery:
    """Passenger trip endpoints, either of which may still be unresolved."""
    source: Optional[GeoPoint]
    destination: Optional[GeoPoint]


@dataclass(frozen=True)
class OrderingResult:
    valid: bool
    used_distance_tiebreak: bool
    source_along_meters: Optional[float] = None
    destination_along_meters: Optional[float] = None


@dataclass(frozen=True)
class MatchResult:
    """Outcome of matching one passenger query against one route."""
    matched: bool
    reason: MatchReason
    source_nearest: NearestPointResult
    destination_nearest: NearestPointResult
    valid_order: bool
    ordering: Optional[OrderingResult] = None

    @property
    def total_detour_meters(self) -> float:
        return self.source_nearest.distance_meters + self.destination_nearest.distance_meters


class RouteMatchingService:
    """
    Service for matching a passenger trip against driver routes.

    A route qualifies as a match if:
    1. Source proximity: the passenger source is within the maximum
       distance of some segment of the route
    2. Destination proximity: the same holds for the passenger destination
    3. Direction: the source comes before the destination along the route

    The service holds only its configuration, so one instance may be shared
    between threads.
    """

    def __init__(self, config: Optional[MatchConfig] = None):
        self.config = config or MatchConfig.from_settings()

    def match_route(self, query: MatchQuery, route: Polyline) -> MatchResult:
        """
        Decide whether the passenger trip lies along the route.

        The distance threshold is inclusive: a point exactly
        max_distance_meters from the route passes.

        Raises:
            IncompleteQueryError: If the source or destination is missing
        """
        if query.source is None or query.destination is None:
            raise IncompleteQueryError("Passenger source and destination are both required")

        source_nearest = DistanceService.find_nearest_point_on_route(query.source, route)
        destination_nearest = DistanceService.find_nearest_point_on_route(query.destination, route)

        max_distance = self.config.max_distance_meters
        if source_nearest.distance_meters > max_distance:
            reason = MatchReason.SOURCE_TOO_FAR
            ordering = None
        elif destination_nearest.distance_meters > max_distance:
            reason = MatchReason.DEST_TOO_FAR
            ordering = None
        else:
            ordering = self.validate_order(route, source_nearest, destination_nearest)
            reason = MatchReason.MATCHED if ordering.valid else MatchReason.INVALID_ORDER

        logger.debug(
            "Route match %s: source %.1fm @%d, destination %.1fm @%d, limit %.1fm",
            reason.value,
            source_nearest.distance_meters, source_nearest.index,
            destination_nearest.distance_meters, destination_nearest.index,
            max_distance,
        )

        return MatchResult(
            matched=reason is MatchReason.MATCHED,
            reason=reason,
            source_nearest=source_nearest,
            destination_nearest=destination_nearest,
            valid_order=ordering is not None and ordering.valid,
            ordering=ordering,
        )

    def validate_order(
        self,
        route: Polyline,
        source_nearest: NearestPointResult,
        destination_nearest: NearestPointResult
    ) -> OrderingResult:
        """
        Check that the passenger travels in the route's direction.

        Segment indices further apart than the index window are compared
        directly. Closer indices are ambiguous on coarse polylines, so the
        along-route distances to both projected points decide instead,
        allowing the source to sit up to the tolerance past the destination.
        """
        index_gap = abs(source_nearest.index - destination_nearest.index)
        if index_gap > self.config.order_index_window:
            return OrderingResult(
                valid=source_nearest.index < destination_nearest.index,
                used_distance_tiebreak=False,
            )

        source_along = DistanceService.distance_along_route(route, source_nearest)
        destination_along = DistanceService.distance_along_route(route, destination_nearest)
        return OrderingResult(
            valid=source_along < destination_along + self.config.order_tolerance_meters,
            used_distance_tiebreak=True,
            source_along_meters=source_along,
            destination_along_meters=destination_along,
        )

    def match_candidates(
        self,
        query: MatchQuery,
        candidates: Iterable[Tuple[Hashable, Polyline]]
    ) -> List[Tuple[Hashable, MatchResult]]:
        """
        Match one query against many routes concurrently.

        A candidate whose route cannot be evaluated is logged and left out;
        the others are unaffected.

        Args:
            query: Passenger trip, fully resolved
            candidates: (key, route) pairs, typically ride id and geometry

        Returns:
            (key, MatchResult) pairs in input order, failed candidates omitted
        """
        if query.source is None or query.destination is None:
            raise IncompleteQueryError("Passenger source and destination are both required")

        candidates = list(candidates)
        if not candidates:
            return []

        workers = max(1, min(self.config.max_workers, len(candidates)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(
                lambda candidate: self._match_one(query, *candidate),
                candidates,
            ))

        return [
            (key, result)
            for (key, _), result in zip(candidates, results)
            if result is not None
        ]

    def _match_one(self, query: MatchQuery, key: Hashable, route: Polyline) -> Optional[MatchResult]:
        try:
            return self.match_route(query, route)
        except Exception as e:
            logger.warning("Route matching failed for candidate %r: %s", key, e)
            return None
