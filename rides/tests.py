"""
Tests for the rides application.

Covers:
- Geometry value types and distance primitives
- Route matching and ordering
- Route geometry resolution and ride search
- Ride and search API endpoints
"""

import datetime
import math
from unittest.mock import patch, MagicMock

from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APITestCase
from rest_framework import status

from .models import Ride, RideStatus
from .services.directions import GoogleDirectionsService, DirectionsAPIError
from .services.distance import DistanceService
from .services.exceptions import IncompleteQueryError, InvalidGeometryError
from .services.geo import GeoPoint, Polyline
from .services.geocoding import GoogleGeocodingService, GeocodingAPIError
from .services.matching import (
    MatchConfig,
    MatchQuery,
    MatchReason,
    RouteMatchingService,
)
from .services.routes import RouteGeometryResolver
from .services.search import RideSearchQuery, RideSearchService, place_names_match


# Straight route along the equator, one degree per segment
EQUATOR_ROUTE = Polyline((
    GeoPoint(0, 0),
    GeoPoint(1, 0),
    GeoPoint(2, 0),
    GeoPoint(3, 0),
))

# Meters in one degree of arc on the mean-radius sphere
ONE_DEGREE_METERS = 111195.08


def tomorrow():
    return timezone.localdate() + datetime.timedelta(days=1)


def make_ride(**kwargs):
    fields = {
        'driver_id': 1,
        'source': 'Alpha',
        'destination': 'Delta',
        'source_latitude': 0.0,
        'source_longitude': 0.0,
        'destination_latitude': 0.0,
        'destination_longitude': 3.0,
        'ride_date': tomorrow(),
        'ride_time': datetime.time(10, 0),
        'total_seats': 3,
        'available_seats': 3,
        'route_geometry': EQUATOR_ROUTE.encode(),
        'route_geometry_source': 'DIRECTIONS',
    }
    fields.update(kwargs)
    return Ride.objects.create(**fields)


def offline_resolver(geocode_result=None):
    """Resolver whose mapping providers are mocks."""
    geocoding_service = MagicMock()
    geocoding_service.geocode.return_value = geocode_result
    directions_service = MagicMock()
    directions_service.get_route_polyline.side_effect = DirectionsAPIError("offline")
    return RouteGeometryResolver(
        directions_service=directions_service,
        geocoding_service=geocoding_service,
        synthetic_waypoints=15,
    )


class GeoModelTests(TestCase):
    """Tests for GeoPoint and Polyline."""

    def test_geopoint_rejects_out_of_range(self):
        with self.assertRaises(InvalidGeometryError):
            GeoPoint(longitude=10, latitude=95)
        with self.assertRaises(InvalidGeometryError):
            GeoPoint(longitude=181, latitude=0)

    def test_geopoint_from_lat_lon(self):
        point = GeoPoint.from_lat_lon(6.5244, 3.3792)
        self.assertEqual(point.latitude, 6.5244)
        self.assertEqual(point.longitude, 3.3792)

    def test_polyline_requires_two_points(self):
        with self.assertRaises(InvalidGeometryError):
            Polyline((GeoPoint(0, 0),))

    def test_polyline_is_immutable(self):
        with self.assertRaises(AttributeError):
            EQUATOR_ROUTE.points = ()

    def test_polyline_stores_tuple(self):
        route = Polyline([GeoPoint(0, 0), GeoPoint(1, 1)])
        self.assertIsInstance(route.points, tuple)
        self.assertEqual(route.origin, GeoPoint(0, 0))
        self.assertEqual(route.destination, GeoPoint(1, 1))

    def test_encoded_polyline_decodes_to_same_points(self):
        decoded = Polyline.from_encoded(EQUATOR_ROUTE.encode())
        self.assertEqual(decoded, EQUATOR_ROUTE)

    def test_empty_encoded_polyline_is_invalid(self):
        with self.assertRaises(InvalidGeometryError):
            Polyline.from_encoded('')


class SyntheticPolylineTests(TestCase):
    """Tests for synthetic route generation."""

    def test_point_count_and_endpoints(self):
        origin = GeoPoint.from_lat_lon(6.5244, 3.3792)
        destination = GeoPoint.from_lat_lon(7.3775, 3.9470)

        for waypoints in (1, 5, 15):
            route = Polyline.synthesize(origin, destination, waypoints)
            self.assertEqual(len(route), waypoints + 1)
            self.assertEqual(route.origin, origin)
            self.assertEqual(route.destination, destination)

    def test_default_waypoints(self):
        route = Polyline.synthesize(GeoPoint(0, 0), GeoPoint(3, 0))
        self.assertEqual(len(route), 16)

    def test_points_are_evenly_spaced(self):
        route = Polyline.synthesize(GeoPoint(0, 0), GeoPoint(3, 6), 3)
        self.assertAlmostEqual(route[1].longitude, 1.0)
        self.assertAlmostEqual(route[1].latitude, 2.0)
        self.assertAlmostEqual(route[2].longitude, 2.0)
        self.assertAlmostEqual(route[2].latitude, 4.0)

    def test_identical_endpoints_rejected(self):
        with self.assertRaises(InvalidGeometryError):
            Polyline.synthesize(GeoPoint(1, 1), GeoPoint(1, 1))

    def test_zero_waypoints_rejected(self):
        with self.assertRaises(InvalidGeometryError):
            Polyline.synthesize(GeoPoint(0, 0), GeoPoint(1, 1), 0)


class DistanceServiceTests(TestCase):
    """Tests for distance calculation service."""

    def test_haversine_distance_same_point(self):
        """Test distance between same point is zero."""
        point = GeoPoint.from_lat_lon(6.5244, 3.3792)
        self.assertEqual(DistanceService.haversine_distance(point, point), 0)

    def test_haversine_distance_is_symmetric(self):
        lagos = GeoPoint.from_lat_lon(6.5244, 3.3792)
        ibadan = GeoPoint.from_lat_lon(7.3775, 3.9470)
        self.assertEqual(
            DistanceService.haversine_distance(lagos, ibadan),
            DistanceService.haversine_distance(ibadan, lagos),
        )

    def test_haversine_distance_known_points(self):
        """Test distance calculation with known points."""
        # Lagos to Ibadan is approximately 113km in a straight line
        distance = DistanceService.haversine_distance(
            GeoPoint.from_lat_lon(6.5244, 3.3792),
            GeoPoint.from_lat_lon(7.3775, 3.9470),
        )
        self.assertGreater(distance, 100000)
        self.assertLess(distance, 150000)

    def test_one_degree_along_equator(self):
        distance = DistanceService.haversine_distance(GeoPoint(0, 0), GeoPoint(1, 0))
        self.assertAlmostEqual(distance, ONE_DEGREE_METERS, delta=1)

    def test_antipodal_points(self):
        """Rounding near the antipode must not leave the haversine domain."""
        distance = DistanceService.haversine_distance(
            GeoPoint(-79.22916, 4.58399), GeoPoint(100.77084, -4.58399)
        )
        self.assertAlmostEqual(distance, math.pi * DistanceService.EARTH_RADIUS_METERS, delta=10)

    def test_antipodal_point_to_segment(self):
        distance = DistanceService.point_to_segment_distance(
            GeoPoint(-79.22916, 4.58399), GeoPoint(100.77084, -4.58399), GeoPoint(101.5, -3.0)
        )
        self.assertGreater(distance, 19000000)

    def test_segment_midpoint_distance_is_zero(self):
        distance = DistanceService.point_to_segment_distance(
            GeoPoint(0.5, 0), GeoPoint(0, 0), GeoPoint(1, 0)
        )
        self.assertEqual(distance, 0)

    def test_segment_perpendicular_distance(self):
        distance = DistanceService.point_to_segment_distance(
            GeoPoint(0.5, 0.1), GeoPoint(0, 0), GeoPoint(1, 0)
        )
        self.assertAlmostEqual(distance, ONE_DEGREE_METERS / 10, delta=1)

    def test_segment_projection_is_clamped(self):
        """A point past the segment end measures to the end, not the line."""
        projection = DistanceService.project_onto_segment(
            GeoPoint(2, 0), GeoPoint(0, 0), GeoPoint(1, 0)
        )
        self.assertEqual(projection.fraction, 1.0)
        self.assertEqual(projection.point, GeoPoint(1, 0))
        self.assertAlmostEqual(projection.distance_meters, ONE_DEGREE_METERS, delta=1)

    def test_zero_length_segment(self):
        distance = DistanceService.point_to_segment_distance(
            GeoPoint(1, 0), GeoPoint(0, 0), GeoPoint(0, 0)
        )
        self.assertAlmostEqual(distance, ONE_DEGREE_METERS, delta=1)

    def test_nearest_point_at_midpoint(self):
        route = Polyline((GeoPoint(0, 0), GeoPoint(1, 0)))
        result = DistanceService.find_nearest_point_on_route(GeoPoint(0.5, 0), route)
        self.assertEqual(result.index, 0)
        self.assertEqual(result.distance_meters, 0)
        self.assertEqual(result.fraction, 0.5)

    def test_nearest_point_uses_segments_not_vertices(self):
        result = DistanceService.find_nearest_point_on_route(GeoPoint(2.5, 0.01), EQUATOR_ROUTE)
        self.assertEqual(result.index, 2)
        self.assertAlmostEqual(result.distance_meters, ONE_DEGREE_METERS / 100, delta=1)

    def test_nearest_point_tie_keeps_earliest_index(self):
        """A point on a shared vertex belongs to the earlier segment."""
        result = DistanceService.find_nearest_point_on_route(GeoPoint(1, 0), EQUATOR_ROUTE)
        self.assertEqual(result.index, 0)
        self.assertEqual(result.distance_meters, 0)

    def test_nearest_point_accepts_point_sequence(self):
        result = DistanceService.find_nearest_point_on_route(
            GeoPoint(0.5, 0), [GeoPoint(0, 0), GeoPoint(1, 0)]
        )
        self.assertEqual(result.index, 0)

    def test_nearest_point_short_route_fails(self):
        with self.assertRaises(InvalidGeometryError):
            DistanceService.find_nearest_point_on_route(GeoPoint(0, 0), [GeoPoint(1, 1)])

    def test_distance_along_route(self):
        nearest = DistanceService.find_nearest_point_on_route(GeoPoint(2.5, 0), EQUATOR_ROUTE)
        along = DistanceService.distance_along_route(EQUATOR_ROUTE, nearest)
        self.assertAlmostEqual(along, 2.5 * ONE_DEGREE_METERS, delta=5)

    def test_route_length(self):
        length = DistanceService.route_length(EQUATOR_ROUTE)
        self.assertAlmostEqual(length, 3 * ONE_DEGREE_METERS, delta=5)

    def test_calculate_route_distance(self):
        """Test route distance calculation."""
        distance = DistanceService.calculate_route_distance_between_points(EQUATOR_ROUTE, 0, 2)
        self.assertAlmostEqual(distance, 2 * ONE_DEGREE_METERS, delta=5)
        self.assertEqual(
            DistanceService.calculate_route_distance_between_points(EQUATOR_ROUTE, 2, 0), 0.0
        )

    def test_calculate_eta(self):
        """Test ETA calculation."""
        # 30 km at 30 km/h should take 60 minutes
        eta = DistanceService.calculate_eta_minutes(30000, 30.0)
        self.assertAlmostEqual(eta, 60.0, places=1)


class RouteMatchingServiceTests(TestCase):
    """Tests for route matching service."""

    def setUp(self):
        self.service = RouteMatchingService(MatchConfig())

    def test_default_config(self):
        config = MatchConfig()
        self.assertEqual(config.max_distance_meters, 75000)
        self.assertEqual(config.order_tolerance_meters, 500)
        self.assertEqual(config.synthetic_waypoints, 15)

    def test_passenger_along_route_matches(self):
        result = self.service.match_route(
            MatchQuery(source=GeoPoint(0.5, 0), destination=GeoPoint(2.5, 0)),
            EQUATOR_ROUTE,
        )
        self.assertTrue(result.matched)
        self.assertEqual(result.reason, MatchReason.MATCHED)
        self.assertEqual(result.source_nearest.index, 0)
        self.assertEqual(result.destination_nearest.index, 2)
        self.assertTrue(result.valid_order)

    def test_destination_too_far(self):
        result = self.service.match_route(
            MatchQuery(source=GeoPoint(0.5, 0), destination=GeoPoint(10, 0)),
            EQUATOR_ROUTE,
        )
        self.assertFalse(result.matched)
        self.assertEqual(result.reason, MatchReason.DEST_TOO_FAR)
        self.assertGreater(result.destination_nearest.distance_meters, 700000)

    def test_source_too_far(self):
        result = self.service.match_route(
            MatchQuery(source=GeoPoint(1.5, 5), destination=GeoPoint(10, 0)),
            EQUATOR_ROUTE,
        )
        self.assertFalse(result.matched)
        self.assertEqual(result.reason, MatchReason.SOURCE_TOO_FAR)
        self.assertFalse(result.valid_order)
        self.assertIsNone(result.ordering)

    def test_antipodal_source_is_too_far(self):
        route = Polyline((GeoPoint(100.77084, -4.58399), GeoPoint(101.5, -3.0)))
        result = self.service.match_route(
            MatchQuery(source=GeoPoint(-79.22916, 4.58399), destination=GeoPoint(101.5, -3.0)),
            route,
        )
        self.assertFalse(result.matched)
        self.assertEqual(result.reason, MatchReason.SOURCE_TOO_FAR)

    def test_reversed_passenger_is_invalid_order(self):
        result = self.service.match_route(
            MatchQuery(source=GeoPoint(2.5, 0), destination=GeoPoint(0.5, 0)),
            EQUATOR_ROUTE,
        )
        self.assertFalse(result.matched)
        self.assertEqual(result.reason, MatchReason.INVALID_ORDER)
        self.assertFalse(result.valid_order)

    def test_threshold_is_inclusive(self):
        source = GeoPoint(0.5, 0.3)
        destination = GeoPoint(2.5, 0)
        distance = DistanceService.find_nearest_point_on_route(source, EQUATOR_ROUTE).distance_meters
        query = MatchQuery(source=source, destination=destination)

        at_limit = RouteMatchingService(MatchConfig(max_distance_meters=distance))
        self.assertTrue(at_limit.match_route(query, EQUATOR_ROUTE).matched)

        under_limit = RouteMatchingService(MatchConfig(max_distance_meters=distance - 0.001))
        result = under_limit.match_route(query, EQUATOR_ROUTE)
        self.assertFalse(result.matched)
        self.assertEqual(result.reason, MatchReason.SOURCE_TOO_FAR)

    def test_zero_threshold_only_matches_points_on_route(self):
        service = RouteMatchingService(MatchConfig(max_distance_meters=0))
        on_route = MatchQuery(source=GeoPoint(0.5, 0), destination=GeoPoint(2.5, 0))
        off_route = MatchQuery(source=GeoPoint(0.5, 0.001), destination=GeoPoint(2.5, 0))
        self.assertTrue(service.match_route(on_route, EQUATOR_ROUTE).matched)
        self.assertFalse(service.match_route(off_route, EQUATOR_ROUTE).matched)

    def test_missing_passenger_point_raises(self):
        with self.assertRaises(IncompleteQueryError):
            self.service.match_route(MatchQuery(source=None, destination=GeoPoint(1, 0)), EQUATOR_ROUTE)
        with self.assertRaises(IncompleteQueryError):
            self.service.match_route(MatchQuery(source=GeoPoint(1, 0), destination=None), EQUATOR_ROUTE)

    def test_match_is_idempotent(self):
        query = MatchQuery(source=GeoPoint(0.5, 0.2), destination=GeoPoint(2.5, -0.1))
        first = self.service.match_route(query, EQUATOR_ROUTE)
        second = self.service.match_route(query, EQUATOR_ROUTE)
        self.assertEqual(first, second)

    def test_total_detour(self):
        result = self.service.match_route(
            MatchQuery(source=GeoPoint(0.5, 0.1), destination=GeoPoint(2.5, 0.1)),
            EQUATOR_ROUTE,
        )
        self.assertAlmostEqual(result.total_detour_meters, ONE_DEGREE_METERS / 5, delta=2)

    def test_match_along_synthetic_route(self):
        route = Polyline.synthesize(GeoPoint(0, 0), GeoPoint(3, 0), 15)
        result = self.service.match_route(
            MatchQuery(source=GeoPoint(0.5, 0.01), destination=GeoPoint(2.5, 0.01)),
            route,
        )
        self.assertTrue(result.matched)
        self.assertLess(result.source_nearest.index, result.destination_nearest.index)

    @override_settings(
        ROUTE_MATCHING_MAX_DISTANCE_METERS=1000,
        ROUTE_MATCHING_ORDER_TOLERANCE_METERS=50,
        ROUTE_MATCHING_ORDER_INDEX_WINDOW=3,
    )
    def test_config_from_settings(self):
        config = MatchConfig.from_settings()
        self.assertEqual(config.max_distance_meters, 1000)
        self.assertEqual(config.order_tolerance_meters, 50)
        self.assertEqual(config.order_index_window, 3)

        overridden = MatchConfig.from_settings(max_distance_meters=250, order_tolerance_meters=None)
        self.assertEqual(overridden.max_distance_meters, 250)
        self.assertEqual(overridden.order_tolerance_meters, 50)


class OrderingValidatorTests(TestCase):
    """Tests for direction-of-travel validation."""

    def setUp(self):
        self.service = RouteMatchingService(MatchConfig())
        # A -> B -> C -> D heading north-east
        self.route = Polyline((
            GeoPoint.from_lat_lon(6.0, 3.0),
            GeoPoint.from_lat_lon(6.3, 3.3),
            GeoPoint.from_lat_lon(6.6, 3.6),
            GeoPoint.from_lat_lon(6.9, 3.9),
        ))
        self.near_a = GeoPoint.from_lat_lon(6.0, 3.01)
        self.near_d = GeoPoint.from_lat_lon(6.89, 3.9)

    def _order(self, source, destination, route=None):
        route = route or self.route
        return self.service.validate_order(
            route,
            DistanceService.find_nearest_point_on_route(source, route),
            DistanceService.find_nearest_point_on_route(destination, route),
        )

    def test_forward_is_valid(self):
        ordering = self._order(self.near_a, self.near_d)
        self.assertTrue(ordering.valid)
        self.assertFalse(ordering.used_distance_tiebreak)

    def test_backward_is_invalid(self):
        ordering = self._order(self.near_d, self.near_a)
        self.assertFalse(ordering.valid)
        self.assertFalse(ordering.used_distance_tiebreak)

    def test_forward_match_result(self):
        result = self.service.match_route(
            MatchQuery(source=self.near_a, destination=self.near_d), self.route
        )
        self.assertTrue(result.valid_order)
        self.assertTrue(result.matched)

        reverse = self.service.match_route(
            MatchQuery(source=self.near_d, destination=self.near_a), self.route
        )
        self.assertFalse(reverse.valid_order)
        self.assertEqual(reverse.reason, MatchReason.INVALID_ORDER)

    def test_same_segment_uses_distance_tiebreak(self):
        route = Polyline((GeoPoint(0, 0), GeoPoint(1, 0)))
        ordering = self._order(GeoPoint(0.2, 0), GeoPoint(0.8, 0), route)
        self.assertTrue(ordering.used_distance_tiebreak)
        self.assertTrue(ordering.valid)
        self.assertLess(ordering.source_along_meters, ordering.destination_along_meters)

    def test_same_segment_backward_is_invalid(self):
        route = Polyline((GeoPoint(0, 0), GeoPoint(1, 0)))
        ordering = self._order(GeoPoint(0.8, 0), GeoPoint(0.2, 0), route)
        self.assertTrue(ordering.used_distance_tiebreak)
        self.assertFalse(ordering.valid)

    def test_tiebreak_tolerance(self):
        """A source slightly past the destination is accepted within tolerance."""
        route = Polyline((GeoPoint(0, 0), GeoPoint(1, 0)))
        # About 111m apart, source after destination
        ordering = self._order(GeoPoint(0.501, 0), GeoPoint(0.5, 0), route)
        self.assertTrue(ordering.valid)

        # About 1.1km apart
        ordering = self._order(GeoPoint(0.51, 0), GeoPoint(0.5, 0), route)
        self.assertFalse(ordering.valid)

    def test_adjacent_segments_use_tiebreak(self):
        ordering = self._order(GeoPoint(0.9, 0), GeoPoint(1.1, 0), EQUATOR_ROUTE)
        self.assertTrue(ordering.used_distance_tiebreak)
        self.assertTrue(ordering.valid)

    def test_wider_window(self):
        service = RouteMatchingService(MatchConfig(order_index_window=5))
        ordering = service.validate_order(
            EQUATOR_ROUTE,
            DistanceService.find_nearest_point_on_route(GeoPoint(0.5, 0), EQUATOR_ROUTE),
            DistanceService.find_nearest_point_on_route(GeoPoint(2.5, 0), EQUATOR_ROUTE),
        )
        self.assertTrue(ordering.used_distance_tiebreak)
        self.assertTrue(ordering.valid)


class MatchCandidatesTests(TestCase):
    """Tests for concurrent matching over several routes."""

    def test_results_keep_input_order(self):
        service = RouteMatchingService(MatchConfig(max_workers=4))
        far_route = Polyline((GeoPoint(0, 40), GeoPoint(3, 40)))
        reverse_route = Polyline(tuple(reversed(EQUATOR_ROUTE.points)))
        candidates = [
            ('equator', EQUATOR_ROUTE),
            ('far', far_route),
            ('reverse', reverse_route),
            ('synthetic', Polyline.synthesize(GeoPoint(0, 0), GeoPoint(3, 0))),
        ]
        query = MatchQuery(source=GeoPoint(0.5, 0), destination=GeoPoint(2.5, 0))

        results = service.match_candidates(query, candidates)

        self.assertEqual([key for key, _ in results], ['equator', 'far', 'reverse', 'synthetic'])
        reasons = [result.reason for _, result in results]
        self.assertEqual(reasons, [
            MatchReason.MATCHED,
            MatchReason.SOURCE_TOO_FAR,
            MatchReason.INVALID_ORDER,
            MatchReason.MATCHED,
        ])
        for key, route in candidates:
            self.assertIn((key, service.match_route(query, route)), results)

    def test_no_candidates(self):
        service = RouteMatchingService(MatchConfig())
        query = MatchQuery(source=GeoPoint(0.5, 0), destination=GeoPoint(2.5, 0))
        self.assertEqual(service.match_candidates(query, []), [])

    def test_failing_candidate_is_skipped(self):
        """One candidate raising does not affect the others."""
        service = RouteMatchingService(MatchConfig(max_workers=4))
        broken_route = Polyline((GeoPoint(0, 40), GeoPoint(3, 40)))
        match_route = service.match_route

        def flaky_match(query, route):
            if route == broken_route:
                raise ValueError("math domain error")
            return match_route(query, route)

        query = MatchQuery(source=GeoPoint(0.5, 0), destination=GeoPoint(2.5, 0))
        candidates = [('before', EQUATOR_ROUTE), ('broken', broken_route), ('after', EQUATOR_ROUTE)]

        with patch.object(service, 'match_route', side_effect=flaky_match):
            results = service.match_candidates(query, candidates)

        self.assertEqual([key for key, _ in results], ['before', 'after'])
        self.assertTrue(all(result.matched for _, result in results))

    def test_invalid_geometry_candidate_is_skipped(self):
        service = RouteMatchingService(MatchConfig())
        match_route = service.match_route

        def flaky_match(query, route):
            if len(route) == 2:
                raise InvalidGeometryError("bad route")
            return match_route(query, route)

        query = MatchQuery(source=GeoPoint(0.5, 0), destination=GeoPoint(2.5, 0))
        candidates = [('short', Polyline((GeoPoint(0, 0), GeoPoint(3, 0)))), ('equator', EQUATOR_ROUTE)]

        with patch.object(service, 'match_route', side_effect=flaky_match):
            results = service.match_candidates(query, candidates)

        self.assertEqual([key for key, _ in results], ['equator'])

    def test_incomplete_query_raises(self):
        service = RouteMatchingService(MatchConfig())
        with self.assertRaises(IncompleteQueryError):
            service.match_candidates(MatchQuery(source=None, destination=None), [('a', EQUATOR_ROUTE)])


class RideModelTests(TestCase):
    """Tests for the Ride model."""

    def test_create_ride(self):
        ride = make_ride()
        self.assertIsNotNone(ride.id)
        self.assertEqual(ride.status, RideStatus.POSTED)
        self.assertIsNotNone(ride.date_added)
        self.assertIn("Alpha", str(ride))

    def test_stored_polyline(self):
        ride = make_ride()
        self.assertEqual(ride.stored_polyline(), EQUATOR_ROUTE)

    def test_blank_geometry(self):
        ride = make_ride(route_geometry='', route_geometry_source='')
        self.assertIsNone(ride.stored_polyline())

    def test_endpoint_points(self):
        ride = make_ride()
        self.assertEqual(ride.origin_point, GeoPoint(0, 0))
        self.assertEqual(ride.destination_point, GeoPoint(3, 0))

        ride.source_latitude = None
        self.assertIsNone(ride.origin_point)

    def test_set_route(self):
        ride = make_ride(route_geometry='', route_geometry_source='')
        ride.set_route(EQUATOR_ROUTE, 'SYNTHETIC')
        self.assertEqual(ride.route_geometry_source, 'SYNTHETIC')
        self.assertEqual(ride.stored_polyline(), EQUATOR_ROUTE)

        ride.set_route(None)
        self.assertEqual(ride.route_geometry, '')
        self.assertEqual(ride.route_geometry_source, '')

    def test_departs_at_is_aware(self):
        ride = make_ride()
        self.assertTrue(timezone.is_aware(ride.departs_at))


class GoogleDirectionsServiceTests(TestCase):
    """Tests for Google Directions API service."""

    @patch('rides.services.directions.requests.get')
    def test_get_route_polyline_success(self, mock_get):
        """Test successful route geometry fetch."""
        mock_response = MagicMock()
        mock_response.json.return_value = {
            'status': 'OK',
            'routes': [{
                'overview_polyline': {
                    'points': EQUATOR_ROUTE.encode()
                }
            }]
        }
        mock_response.raise_for_status = MagicMock()
        mock_get.return_value = mock_response

        service = GoogleDirectionsService(api_key='test-key')
        route = service.get_route_polyline(GeoPoint(0, 0), GeoPoint(3, 0))

        self.assertEqual(route, EQUATOR_ROUTE)
        params = mock_get.call_args.kwargs['params']
        self.assertEqual(params['origin'], '0,0')
        self.assertEqual(params['destination'], '0,3')

    @patch('rides.services.directions.requests.get')
    def test_get_route_polyline_no_route(self, mock_get):
        """Test handling of no route found."""
        mock_response = MagicMock()
        mock_response.json.return_value = {
            'status': 'ZERO_RESULTS',
        }
        mock_response.raise_for_status = MagicMock()
        mock_get.return_value = mock_response

        service = GoogleDirectionsService(api_key='test-key')

        with self.assertRaises(DirectionsAPIError):
            service.get_route_polyline(GeoPoint(0, 0), GeoPoint(1, 1))

    def test_missing_api_key(self):
        """Test handling of missing API key."""
        service = GoogleDirectionsService(api_key='')

        with self.assertRaises(DirectionsAPIError) as context:
            service.get_route_polyline(GeoPoint(0, 0), GeoPoint(1, 1))

        self.assertIn("not configured", str(context.exception))


class GoogleGeocodingServiceTests(TestCase):
    """Tests for Google Geocoding API service."""

    def _response(self, payload):
        mock_response = MagicMock()
        mock_response.json.return_value = payload
        mock_response.raise_for_status = MagicMock()
        return mock_response

    @patch('rides.services.geocoding.requests.get')
    def test_geocode_success(self, mock_get):
        mock_get.return_value = self._response({
            'status': 'OK',
            'results': [{'geometry': {'location': {'lat': 6.5244, 'lng': 3.3792}}}],
        })

        point = GoogleGeocodingService(api_key='test-key').geocode('Lagos')

        self.assertEqual(point, GeoPoint.from_lat_lon(6.5244, 3.3792))

    @patch('rides.services.geocoding.requests.get')
    def test_geocode_no_result(self, mock_get):
        mock_get.return_value = self._response({'status': 'ZERO_RESULTS', 'results': []})
        self.assertIsNone(GoogleGeocodingService(api_key='test-key').geocode('Nowhere'))

    @patch('rides.services.geocoding.requests.get')
    def test_geocode_api_error(self, mock_get):
        mock_get.return_value = self._response({
            'status': 'REQUEST_DENIED',
            'error_message': 'The provided API key is invalid.',
        })
        with self.assertRaises(GeocodingAPIError):
            GoogleGeocodingService(api_key='test-key').geocode('Lagos')

    def test_blank_place_name(self):
        self.assertIsNone(GoogleGeocodingService(api_key='').geocode('  '))

    def test_missing_api_key(self):
        with self.assertRaises(GeocodingAPIError):
            GoogleGeocodingService(api_key='').geocode('Lagos')


class RouteGeometryResolverTests(TestCase):
    """Tests for route geometry resolution."""

    def test_build_route_prefers_directions(self):
        resolver = offline_resolver()
        resolver.directions_service.get_route_polyline.side_effect = None
        resolver.directions_service.get_route_polyline.return_value = EQUATOR_ROUTE

        route, source = resolver.build_route(GeoPoint(0, 0), GeoPoint(3, 0))

        self.assertEqual(route, EQUATOR_ROUTE)
        self.assertEqual(source, 'DIRECTIONS')

    def test_build_route_falls_back_to_synthetic(self):
        resolver = offline_resolver()

        route, source = resolver.build_route(GeoPoint(0, 0), GeoPoint(3, 0))

        self.assertEqual(source, 'SYNTHETIC')
        self.assertEqual(len(route), 16)

    def test_build_route_without_endpoints(self):
        resolver = offline_resolver()
        self.assertEqual(resolver.build_route(None, GeoPoint(3, 0)), (None, ''))

    def test_build_route_identical_endpoints(self):
        resolver = offline_resolver()
        self.assertEqual(resolver.build_route(GeoPoint(1, 1), GeoPoint(1, 1)), (None, ''))

    def test_search_polyline_uses_stored_geometry(self):
        resolver = offline_resolver()
        ride = make_ride()
        self.assertEqual(resolver.search_polyline(ride), EQUATOR_ROUTE)
        resolver.geocoding_service.geocode.assert_not_called()

    def test_search_polyline_synthesizes_from_endpoints(self):
        resolver = offline_resolver()
        ride = make_ride(route_geometry='', route_geometry_source='')

        route = resolver.search_polyline(ride)

        self.assertEqual(len(route), 16)
        self.assertEqual(route.origin, GeoPoint(0, 0))
        self.assertEqual(route.destination, GeoPoint(3, 0))

    def test_search_polyline_geocodes_missing_endpoints(self):
        resolver = offline_resolver(geocode_result=GeoPoint(3, 0))
        ride = make_ride(
            route_geometry='',
            route_geometry_source='',
            destination_latitude=None,
            destination_longitude=None,
        )

        route = resolver.search_polyline(ride)

        self.assertEqual(route.destination, GeoPoint(3, 0))
        resolver.geocoding_service.geocode.assert_called_once_with('Delta')

    def test_search_polyline_unresolvable(self):
        resolver = offline_resolver(geocode_result=None)
        ride = make_ride(
            route_geometry='',
            route_geometry_source='',
            source_latitude=None,
            source_longitude=None,
        )
        self.assertIsNone(resolver.search_polyline(ride))

    def test_geocode_is_memoised(self):
        resolver = offline_resolver(geocode_result=GeoPoint(1, 1))
        resolver.geocode('Lagos')
        resolver.geocode(' lagos ')
        resolver.geocoding_service.geocode.assert_called_once()

    def test_geocode_failure_is_no_result(self):
        resolver = offline_resolver()
        resolver.geocoding_service.geocode.side_effect = GeocodingAPIError("down")
        self.assertIsNone(resolver.geocode('Lagos'))


class PlaceNameMatchTests(TestCase):
    """Tests for search text matching."""

    def test_containment(self):
        self.assertTrue(place_names_match('pune', 'Pune Station'))
        self.assertTrue(place_names_match('Pune Station', 'pune'))

    def test_core_name(self):
        self.assertTrue(place_names_match('Pune, Maharashtra', 'pune,  MH'))

    def test_different_places(self):
        self.assertFalse(place_names_match('Mumbai', 'Pune'))
        self.assertFalse(place_names_match('', 'Pune'))


class RideSearchServiceTests(TestCase):
    """Tests for the ride search flow."""

    def _query(self, **kwargs):
        fields = {
            'source': 'Bravo',
            'destination': 'Charlie',
            'ride_date': tomorrow(),
            'source_latitude': 0.0,
            'source_longitude': 0.5,
            'destination_latitude': 0.0,
            'destination_longitude': 2.5,
        }
        fields.update(kwargs)
        return RideSearchQuery(**fields)

    def _service(self, geocode_result=None, **config):
        return RideSearchService(
            matching_service=RouteMatchingService(MatchConfig(**config)),
            resolver=offline_resolver(geocode_result),
            average_speed_kmh=60,
        )

    def test_partial_route_match(self):
        ride = make_ride()

        result = self._service().search(self._query())

        self.assertTrue(result.passenger_points_resolved)
        self.assertEqual(len(result.hits), 1)
        hit = result.hits[0]
        self.assertEqual(hit.ride, ride)
        self.assertEqual(hit.match_type, 'ROUTE')
        self.assertEqual(hit.match.source_nearest.index, 0)
        self.assertEqual(hit.match.destination_nearest.index, 2)
        self.assertAlmostEqual(hit.passenger_route_distance_meters, 2 * ONE_DEGREE_METERS, delta=5)
        # Half a degree at 60 km/h
        self.assertAlmostEqual(hit.estimated_pickup_minutes, ONE_DEGREE_METERS / 2 / 1000, delta=0.1)

    def test_reverse_direction_not_matched(self):
        make_ride()
        result = self._service().search(self._query(
            source_longitude=2.5, destination_longitude=0.5,
        ))
        self.assertEqual(result.hits, [])

    def test_ranked_by_detour(self):
        offset_route = Polyline(tuple(GeoPoint(p.longitude, 0.1) for p in EQUATOR_ROUTE))
        farther = make_ride(route_geometry=offset_route.encode())
        nearer = make_ride()

        result = self._service().search(self._query())

        self.assertEqual([hit.ride for hit in result.hits], [nearer, farther])

    def test_filters_candidates(self):
        make_ride(available_seats=0)
        make_ride(status=RideStatus.CANCELLED)
        make_ride(ride_date=tomorrow() + datetime.timedelta(days=1))
        make_ride(ride_date=timezone.localdate() - datetime.timedelta(days=1))

        result = self._service().search(self._query())

        self.assertEqual(result.hits, [])

    def test_seats_required(self):
        make_ride(available_seats=1)
        result = self._service().search(self._query(seats_required=2))
        self.assertEqual(result.hits, [])

    def test_ride_without_geometry_uses_synthetic_route(self):
        make_ride(route_geometry='', route_geometry_source='')
        result = self._service().search(self._query(source_latitude=0.01, destination_latitude=0.01))
        self.assertEqual(len(result.hits), 1)
        self.assertEqual(result.hits[0].match_type, 'ROUTE')

    def test_text_match_listed_after_route_matches(self):
        far_route = Polyline((GeoPoint(0, 40), GeoPoint(3, 40)))
        text_ride = make_ride(source='Bravo Town', destination='Charlie City',
                              route_geometry=far_route.encode())
        route_ride = make_ride()

        result = self._service().search(self._query())

        self.assertEqual([hit.ride for hit in result.hits], [route_ride, text_ride])
        self.assertEqual(result.hits[1].match_type, 'TEXT')
        self.assertIsNone(result.hits[1].match)

    def test_geocodes_passenger_points(self):
        make_ride()
        service = self._service()
        service.resolver.geocoding_service.geocode.side_effect = [GeoPoint(0.5, 0), GeoPoint(2.5, 0)]

        result = service.search(self._query(
            source_latitude=None, source_longitude=None,
            destination_latitude=0.0, destination_longitude=0.0,
        ))

        self.assertTrue(result.passenger_points_resolved)
        self.assertEqual(len(result.hits), 1)
        self.assertEqual(service.resolver.geocoding_service.geocode.call_count, 2)

    def test_unresolved_passenger_points_fall_back_to_text(self):
        make_ride()
        text_ride = make_ride(source='Bravo', destination='Charlie')

        result = self._service(geocode_result=None).search(self._query(
            source_latitude=None, source_longitude=None,
        ))

        self.assertFalse(result.passenger_points_resolved)
        self.assertEqual([hit.ride for hit in result.hits], [text_ride])

    def test_distance_override(self):
        make_ride()
        result = self._service(max_distance_meters=100).search(self._query(
            source_latitude=0.01, destination_latitude=0.01,
        ))
        self.assertEqual(result.hits, [])

    def test_ride_near_antipode_does_not_break_search(self):
        # First vertex is the antipode of the passenger pickup
        antipodal_route = Polyline((GeoPoint(-179.5, 0), GeoPoint(-179, 0.5)))
        make_ride(route_geometry=antipodal_route.encode())
        good = make_ride()

        result = self._service().search(self._query())

        self.assertEqual([hit.ride for hit in result.hits], [good])

    def test_failing_ride_excluded_from_search(self):
        broken = make_ride(route_geometry=Polyline((GeoPoint(0, 40), GeoPoint(3, 40))).encode())
        good = make_ride()
        service = self._service()
        match_route = service.matching_service.match_route
        broken_route = broken.stored_polyline()

        def flaky_match(query, route):
            if route == broken_route:
                raise ValueError("math domain error")
            return match_route(query, route)

        with patch.object(service.matching_service, 'match_route', side_effect=flaky_match):
            result = service.search(self._query())

        self.assertEqual([hit.ride for hit in result.hits], [good])


class RideAPITests(APITestCase):
    """Tests for Ride API endpoints."""

    def _payload(self, **kwargs):
        data = {
            'driver_id': 7,
            'source': 'Alpha',
            'destination': 'Delta',
            'source_latitude': 0.0,
            'source_longitude': 0.0,
            'destination_latitude': 0.0,
            'destination_longitude': 3.0,
            'ride_date': tomorrow().isoformat(),
            'ride_time': '10:00:00',
            'total_seats': 3,
        }
        data.update(kwargs)
        return data

    @patch.object(GoogleDirectionsService, 'get_route_polyline')
    def test_create_ride(self, mock_directions):
        """Test posting a ride via API."""
        mock_directions.return_value = EQUATOR_ROUTE

        response = self.client.post(reverse('ride-list'), self._payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Ride.objects.count(), 1)
        self.assertEqual(response.data['route_geometry'], EQUATOR_ROUTE.encode())
        self.assertEqual(response.data['route_geometry_source'], 'DIRECTIONS')
        self.assertEqual(response.data['available_seats'], 3)

    @patch.object(GoogleDirectionsService, 'get_route_polyline')
    def test_create_ride_directions_failure(self, mock_directions):
        """A Directions API failure falls back to a synthetic route."""
        mock_directions.side_effect = DirectionsAPIError("API Error")

        response = self.client.post(reverse('ride-list'), self._payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['route_geometry_source'], 'SYNTHETIC')
        ride = Ride.objects.get()
        self.assertEqual(len(ride.stored_polyline()), 16)

    @patch.object(GoogleGeocodingService, 'geocode')
    @patch.object(GoogleDirectionsService, 'get_route_polyline')
    def test_create_ride_geocodes_names(self, mock_directions, mock_geocode):
        mock_directions.return_value = EQUATOR_ROUTE
        mock_geocode.side_effect = [GeoPoint(0, 0), GeoPoint(3, 0)]
        payload = self._payload()
        for field in ('source_latitude', 'source_longitude',
                      'destination_latitude', 'destination_longitude'):
            payload.pop(field)

        response = self.client.post(reverse('ride-list'), payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['destination_longitude'], 3)
        mock_directions.assert_called_once_with(GeoPoint(0, 0), GeoPoint(3, 0))

    def test_create_ride_invalid_coordinates(self):
        """Test validation of invalid coordinates."""
        response = self.client.post(
            reverse('ride-list'), self._payload(source_latitude=100), format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_ride_too_many_available_seats(self):
        response = self.client.post(
            reverse('ride-list'), self._payload(available_seats=5), format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_rides(self):
        """Test listing rides."""
        make_ride()

        response = self.client.get(reverse('ride-list'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

    def test_retrieve_ride(self):
        """Test retrieving a single ride."""
        ride = make_ride()

        response = self.client.get(reverse('ride-detail', kwargs={'pk': ride.id}))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['id'], ride.id)

    @patch.object(GoogleDirectionsService, 'get_route_polyline')
    def test_update_ride_seats(self, mock_directions):
        """Test updating available seats (no route recompute)."""
        ride = make_ride()

        response = self.client.patch(
            reverse('ride-detail', kwargs={'pk': ride.id}), {'available_seats': 2}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['available_seats'], 2)
        mock_directions.assert_not_called()

    @patch.object(GoogleDirectionsService, 'get_route_polyline')
    def test_update_ride_coordinates(self, mock_directions):
        """Test updating coordinates triggers route recompute."""
        new_route = Polyline((GeoPoint(0, 0), GeoPoint(4, 0)))
        mock_directions.return_value = new_route
        ride = make_ride()

        response = self.client.patch(
            reverse('ride-detail', kwargs={'pk': ride.id}),
            {'destination_longitude': 4.0},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        mock_directions.assert_called_once()
        ride.refresh_from_db()
        self.assertEqual(ride.stored_polyline(), new_route)

    def test_update_seats_above_total(self):
        ride = make_ride()
        response = self.client.patch(
            reverse('ride-detail', kwargs={'pk': ride.id}), {'available_seats': 9}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_ride(self):
        """Test deleting a ride."""
        ride = make_ride()

        response = self.client.delete(reverse('ride-detail', kwargs={'pk': ride.id}))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Ride.objects.count(), 0)

    def test_delete_nonexistent_ride(self):
        """Test deleting a non-existent ride."""
        response = self.client.delete(reverse('ride-detail', kwargs={'pk': 9999}))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class RideSearchAPITests(APITestCase):
    """Tests for the ride search endpoint."""

    def setUp(self):
        self.ride = make_ride()
        self.params = {
            'source': 'Bravo',
            'destination': 'Charlie',
            'ride_date': tomorrow().isoformat(),
            'source_latitude': 0.0,
            'source_longitude': 0.5,
            'destination_latitude': 0.0,
            'destination_longitude': 2.5,
        }

    def test_search_missing_params(self):
        """Test search endpoint with missing parameters."""
        response = self.client.get(reverse('ride-search'))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_search_invalid_coordinates(self):
        self.params['source_latitude'] = 120
        response = self.client.get(reverse('ride-search'), self.params)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_search_route_match(self):
        response = self.client.get(reverse('ride-search'), self.params)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_matches'], 1)
        self.assertTrue(response.data['passenger_points_resolved'])
        match = response.data['matches'][0]
        self.assertEqual(match['ride']['id'], self.ride.id)
        self.assertEqual(match['match_type'], 'ROUTE')
        self.assertEqual(match['pickup_route_index'], 0)
        self.assertEqual(match['dropoff_route_index'], 2)
        self.assertEqual(match['total_detour_meters'], 0)

    def test_search_distance_override(self):
        self.params['source_latitude'] = 0.01
        self.params['max_distance_meters'] = 100

        response = self.client.get(reverse('ride-search'), self.params)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_matches'], 0)

    @patch.object(GoogleGeocodingService, 'geocode')
    def test_search_unresolved_points(self, mock_geocode):
        mock_geocode.return_value = None
        params = {
            'source': 'Alpha',
            'destination': 'Delta',
            'ride_date': tomorrow().isoformat(),
        }

        response = self.client.get(reverse('ride-search'), params)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['passenger_points_resolved'])
        self.assertEqual(response.data['total_matches'], 1)
        match = response.data['matches'][0]
        self.assertEqual(match['match_type'], 'TEXT')
        self.assertIsNone(match['pickup_distance_meters'])

    def test_search_response_structure(self):
        """Test that search response has correct structure."""
        response = self.client.get(reverse('ride-search'), self.params)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsInstance(response.data['total_matches'], int)
        self.assertIsInstance(response.data['matches'], list)
