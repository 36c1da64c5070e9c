"""
Distance calculation utilities using the Haversine formula.

Point-to-segment distances use a local equirectangular projection centred
on the segment. Route segments between consecutive waypoints are short
inter-city spans, where the approximation holds; it degrades for segments
hundreds of kilometres long and near the poles, and is wrong for segments
that cross the 180th meridian, where the longitude difference is taken the
long way around.
"""

import math
from typing import Sequence, Union
from dataclasses import dataclass

from .exceptions import InvalidGeometryError
from .geo import GeoPoint, Polyline


@dataclass(frozen=True)
class SegmentProjection:
    """Closest point on a segment to a query point."""
    point: GeoPoint
    fraction: float  # clamped projection parameter in [0, 1]
    distance_meters: float


@dataclass(frozen=True)
class NearestPointResult:
    """Result of finding the nearest point on a route."""
    index: int  # start vertex of the nearest segment
    distance_meters: float  # from the query point to the route
    point: GeoPoint  # projected point on the nearest segment
    fraction: float  # position of that point along the segment


class DistanceService:
    """
    Service for distance and ETA calculations.

    Uses the Haversine formula for calculating distances between coordinates.
    """

    EARTH_RADIUS_METERS = 6371008.8  # IUGG mean Earth radius
    METERS_PER_DEGREE = math.pi * EARTH_RADIUS_METERS / 180

    @classmethod
    def haversine_distance(cls, a: GeoPoint, b: GeoPoint) -> float:
        """
        Calculate the great-circle distance between two points.

        Args:
            a, b: Points to measure between

        Returns:
            Distance in meters
        """
        if a == b:
            return 0.0

        lat1_rad = math.radians(a.latitude)
        lat2_rad = math.radians(b.latitude)
        delta_lat = math.radians(b.latitude - a.latitude)
        delta_lon = math.radians(b.longitude - a.longitude)

        h = (math.sin(delta_lat / 2) ** 2 +
             math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2)
        # Rounding can push h just past 1 for near-antipodal points
        h = min(1.0, h)
        c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

        return cls.EARTH_RADIUS_METERS * c

    @classmethod
    def project_onto_segment(
        cls,
        point: GeoPoint,
        seg_start: GeoPoint,
        seg_end: GeoPoint
    ) -> SegmentProjection:
        """
        Project a point onto a segment in a local planar frame.

        The projection parameter is clamped to [0, 1] so the result is the
        nearest point on the segment, not on the infinite line through it.
        """
        mean_lat = math.radians((seg_start.latitude + seg_end.latitude) / 2.0)
        lon_scale = cls.METERS_PER_DEGREE * math.cos(mean_lat)
        lat_scale = cls.METERS_PER_DEGREE

        seg_dx = (seg_end.longitude - seg_start.longitude) * lon_scale
        seg_dy = (seg_end.latitude - seg_start.latitude) * lat_scale
        pt_dx = (point.longitude - seg_start.longitude) * lon_scale
        pt_dy = (point.latitude - seg_start.latitude) * lat_scale

        length_sq = seg_dx * seg_dx + seg_dy * seg_dy
        if length_sq == 0:
            return SegmentProjection(
                point=seg_start,
                fraction=0.0,
                distance_meters=cls.haversine_distance(point, seg_start),
            )

        t = max(0.0, min(1.0, (seg_dx * pt_dx + seg_dy * pt_dy) / length_sq))

        if t == 0.0:
            closest = seg_start
        elif t == 1.0:
            closest = seg_end
        else:
            closest = GeoPoint(
                longitude=seg_start.longitude + t * (seg_end.longitude - seg_start.longitude),
                latitude=seg_start.latitude + t * (seg_end.latitude - seg_start.latitude),
            )

        return SegmentProjection(
            point=closest,
            fraction=t,
            distance_meters=cls.haversine_distance(point, closest),
        )

    @classmethod
    def point_to_segment_distance(
        cls,
        point: GeoPoint,
        seg_start: GeoPoint,
        seg_end: GeoPoint
    ) -> float:
        """Distance in meters from a point to the nearest point on a segment."""
        return cls.project_onto_segment(point, seg_start, seg_end).distance_meters

    @classmethod
    def find_nearest_point_on_route(
        cls,
        query: GeoPoint,
        route: Union[Polyline, Sequence[GeoPoint]]
    ) -> NearestPointResult:
        """
        Find the nearest point on a route to a given query point.

        Every segment is checked, so the distance is to the route itself and
        not only to its vertices. Ties keep the earliest segment.

        Args:
            query: The query point
            route: Polyline, or a sequence of at least 2 points

        Returns:
            NearestPointResult for the closest segment

        Raises:
            InvalidGeometryError: If the route has fewer than 2 points
        """
        if not isinstance(route, Polyline):
            if len(route) < 2:
                raise InvalidGeometryError(
                    f"A route needs at least 2 points, got {len(route)}"
                )
            route = Polyline(tuple(route))

        best = None
        best_index = 0
        for i, (seg_start, seg_end) in enumerate(route.segments()):
            projection = cls.project_onto_segment(query, seg_start, seg_end)
            if best is None or projection.distance_meters < best.distance_meters:
                best = projection
                best_index = i

        return NearestPointResult(
            index=best_index,
            distance_meters=best.distance_meters,
            point=best.point,
            fraction=best.fraction,
        )

    @classmethod
    def calculate_route_distance_between_points(
        cls,
        route: Polyline,
        start_index: int,
        end_index: int
    ) -> float:
        """
        Calculate the distance along a route between two vertex indices.

        Returns:
            Distance in meters along the route, 0 if end is not after start
        """
        if start_index >= end_index:
            return 0.0

        total_distance = 0.0
        for i in range(start_index, end_index):
            total_distance += cls.haversine_distance(route[i], route[i + 1])

        return total_distance

    @classmethod
    def route_length(cls, route: Polyline) -> float:
        """Total length of a route in meters."""
        return cls.calculate_route_distance_between_points(route, 0, len(route) - 1)

    @classmethod
    def distance_along_route(cls, route: Polyline, nearest: NearestPointResult) -> float:
        """
        Distance in meters from the route origin to a located point.

        Sums whole segments up to the nearest segment, then adds the part of
        that segment before the projected point.
        """
        along = cls.calculate_route_distance_between_points(route, 0, nearest.index)
        along += cls.haversine_distance(route[nearest.index], nearest.point)
        return along

    @classmethod
    def distance_between_located_points(
        cls,
        route: Polyline,
        start: NearestPointResult,
        end: NearestPointResult
    ) -> float:
        """Along-route distance between two located points, 0 if end precedes start."""
        return max(
            0.0,
            cls.distance_along_route(route, end) - cls.distance_along_route(route, start)
        )

    @staticmethod
    def calculate_eta_minutes(distance_meters: float, speed_kmh: float = 30.0) -> float:
        """
        Calculate estimated time of arrival.

        Args:
            distance_meters: Distance in meters
            speed_kmh: Average speed in km/h (default 30)

        Returns:
            ETA in minutes
        """
        if speed_kmh <= 0:
            return 0.0

        speed_mpm = (speed_kmh * 1000) / 60  # meters per minute
        return distance_meters / speed_mpm
