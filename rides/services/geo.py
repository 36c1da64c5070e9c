"""
Immutable geographic value types used by the route matching engine.
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Tuple

import polyline as polyline_codec

from .exceptions import InvalidGeometryError


@dataclass(frozen=True)
class GeoPoint:
    """A (longitude, latitude) pair in decimal degrees, WGS84."""
    longitude: float
    latitude: float

    def __post_init__(self):
        if not -90 <= self.latitude <= 90:
            raise InvalidGeometryError(f"Latitude must be between -90 and 90, got {self.latitude}")
        if not -180 <= self.longitude <= 180:
            raise InvalidGeometryError(f"Longitude must be between -180 and 180, got {self.longitude}")

    @classmethod
    def from_lat_lon(cls, latitude: float, longitude: float) -> 'GeoPoint':
        return cls(longitude=float(longitude), latitude=float(latitude))

    def as_lat_lon(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass(frozen=True)
class Polyline:
    """
    Ordered route geometry from route origin to route destination.

    Insertion order is traversal order. A polyline always holds at least
    two points.
    """
    points: Tuple[GeoPoint, ...]

    def __post_init__(self):
        # Accept any sequence but always store a tuple
        object.__setattr__(self, 'points', tuple(self.points))
        if len(self.points) < 2:
            raise InvalidGeometryError(
                f"A polyline needs at least 2 points, got {len(self.points)}"
            )

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[GeoPoint]:
        return iter(self.points)

    def __getitem__(self, index: int) -> GeoPoint:
        return self.points[index]

    @property
    def origin(self) -> GeoPoint:
        return self.points[0]

    @property
    def destination(self) -> GeoPoint:
        return self.points[-1]

    def segments(self) -> Iterator[Tuple[GeoPoint, GeoPoint]]:
        """Yield consecutive (start, end) point pairs in traversal order."""
        return zip(self.points, self.points[1:])

    @classmethod
    def from_lat_lon_pairs(cls, pairs: Iterable[Tuple[float, float]]) -> 'Polyline':
        return cls(tuple(GeoPoint.from_lat_lon(lat, lon) for lat, lon in pairs))

    @classmethod
    def from_encoded(cls, encoded: str) -> 'Polyline':
        """
        Decode a Google encoded polyline string.

        Raises:
            InvalidGeometryError: If the string cannot be decoded or yields
                fewer than 2 points
        """
        try:
            pairs = polyline_codec.decode(encoded)
        except (ValueError, IndexError, TypeError) as e:
            raise InvalidGeometryError(f"Could not decode route geometry: {e}") from e
        return cls.from_lat_lon_pairs(pairs)

    def encode(self) -> str:
        """Encode as a Google encoded polyline string (precision 5)."""
        return polyline_codec.encode(self.as_lat_lon_pairs())

    def as_lat_lon_pairs(self) -> List[Tuple[float, float]]:
        return [p.as_lat_lon() for p in self.points]

    @classmethod
    def synthesize(
        cls,
        origin: GeoPoint,
        destination: GeoPoint,
        waypoints: int = 15
    ) -> 'Polyline':
        """
        Build a fallback route when no stored geometry exists.

        Points are linearly interpolated in (longitude, latitude) space at
        fractions i/N for i = 0..N, so the result has N+1 points. This is a
        straight chord between the endpoints, not a road path.

        Args:
            origin: Route start
            destination: Route end, must differ from origin
            waypoints: N, the number of intervals

        Returns:
            Polyline with waypoints + 1 points
        """
        if waypoints < 1:
            raise InvalidGeometryError(f"Waypoint count must be at least 1, got {waypoints}")
        if origin == destination:
            raise InvalidGeometryError("Cannot synthesize a route with identical endpoints")

        d_lon = destination.longitude - origin.longitude
        d_lat = destination.latitude - origin.latitude
        points = [origin]
        for i in range(1, waypoints):
            fraction = i / waypoints
            points.append(GeoPoint(
                longitude=origin.longitude + d_lon * fraction,
                latitude=origin.latitude + d_lat * fraction,
            ))
        points.append(destination)
        return cls(tuple(points))
