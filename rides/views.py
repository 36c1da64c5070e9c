"""
API views for the rides application.
"""

import logging

from rest_framework import viewsets, status
from rest_framework.response import Response
from rest_framework.views import APIView
from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter
from drf_spectacular.types import OpenApiTypes

from .models import Ride
from .serializers import (
    RideSerializer,
    RideCreateSerializer,
    RideUpdateSerializer,
    RideSearchQuerySerializer,
    MatchedRideSerializer,
    RideSearchResponseSerializer,
)
from .services import MatchConfig, RouteMatchingService
from .services.routes import RouteGeometryResolver
from .services.search import RideSearchQuery, RideSearchService

logger = logging.getLogger(__name__)

ENDPOINT_FIELDS = (
    'source',
    'destination',
    'source_latitude',
    'source_longitude',
    'destination_latitude',
    'destination_longitude',
)


def refresh_route(ride: Ride, resolver: RouteGeometryResolver) -> None:
    """Resolve endpoints and store the ride's route geometry (not saved)."""
    origin, destination = resolver.resolve_endpoints(ride)
    if ride.origin_point is None and origin is not None:
        ride.source_latitude, ride.source_longitude = origin.latitude, origin.longitude
    if ride.destination_point is None and destination is not None:
        ride.destination_latitude, ride.destination_longitude = destination.latitude, destination.longitude

    route, geometry_source = resolver.build_route(origin, destination)
    ride.set_route(route, geometry_source)


@extend_schema_view(
    list=extend_schema(
        summary="List all rides",
        description="Retrieve a paginated list of all rides.",
        tags=['Rides']
    ),
    retrieve=extend_schema(
        summary="Get a ride",
        description="Retrieve details of a specific ride by ID.",
        tags=['Rides']
    ),
    create=extend_schema(
        summary="Post a ride",
        description=(
            "Post a new ride. The route geometry is fetched from the Google Directions API, "
            "falling back to a synthetic straight-line route if the API fails."
        ),
        tags=['Rides']
    ),
    update=extend_schema(
        summary="Update a ride",
        description="Update all fields of a ride. If endpoints change, route geometry is recomputed.",
        tags=['Rides']
    ),
    partial_update=extend_schema(
        summary="Partially update a ride",
        description="Update specific fields of a ride. If endpoints change, route geometry is recomputed.",
        tags=['Rides']
    ),
    destroy=extend_schema(
        summary="Delete a ride",
        description="Delete a ride by ID.",
        tags=['Rides']
    ),
)
class RideViewSet(viewsets.ModelViewSet):
    """
    ViewSet for Ride CRUD operations.

    Endpoints:
    - POST /api/rides/ - Post a ride
    - GET /api/rides/ - List all rides
    - GET /api/rides/{id}/ - Retrieve a ride
    - PUT /api/rides/{id}/ - Update a ride (full)
    - PATCH /api/rides/{id}/ - Update a ride (partial)
    - DELETE /api/rides/{id}/ - Delete a ride
    """

    queryset = Ride.objects.all()

    def get_serializer_class(self):
        if self.action == 'create':
            return RideCreateSerializer
        elif self.action in ['update', 'partial_update']:
            return RideUpdateSerializer
        return RideSerializer

    def create(self, request, *args, **kwargs):
        """Post a new ride and compute its route geometry."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        ride = Ride(**serializer.validated_data)
        refresh_route(ride, RouteGeometryResolver())
        ride.save()

        logger.info("Ride %s posted with %s route geometry",
                    ride.id, ride.route_geometry_source or 'no')
        response_serializer = RideSerializer(ride)
        return Response(response_serializer.data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        """Update a ride, recomputing route geometry if its endpoints change."""
        partial = kwargs.pop('partial', False)
        instance = self.get_object()
        serializer = self.get_serializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)

        data = serializer.validated_data

        endpoints_changed = any(
            field in data and data[field] != getattr(instance, field)
            for field in ENDPOINT_FIELDS
        )

        # Clear coordinates of a renamed place so they are geocoded again
        for name_field, coord_fields in (
            ('source', ('source_latitude', 'source_longitude')),
            ('destination', ('destination_latitude', 'destination_longitude')),
        ):
            if name_field in data and data[name_field] != getattr(instance, name_field):
                for coord_field in coord_fields:
                    data.setdefault(coord_field, None)

        for attr, value in data.items():
            setattr(instance, attr, value)

        if instance.available_seats > instance.total_seats:
            return Response(
                {'error': 'Available seats cannot exceed total seats'},
                status=status.HTTP_400_BAD_REQUEST
            )

        if endpoints_changed:
            refresh_route(instance, RouteGeometryResolver())

        instance.save()

        response_serializer = RideSerializer(instance)
        return Response(response_serializer.data)

    def destroy(self, request, *args, **kwargs):
        """Delete a ride."""
        instance = self.get_object()
        ride_id = instance.id
        instance.delete()
        return Response(
            {'message': f'Ride {ride_id} deleted successfully'},
            status=status.HTTP_200_OK
        )


def _hit_payload(hit):
    payload = {
        'ride': hit.ride,
        'match_type': hit.match_type,
        'pickup_distance_meters': None,
        'pickup_route_index': None,
        'dropoff_distance_meters': None,
        'dropoff_route_index': None,
        'total_detour_meters': None,
        'passenger_route_distance_meters': hit.passenger_route_distance_meters,
        'estimated_pickup_minutes': hit.estimated_pickup_minutes,
    }
    if hit.match is not None:
        payload.update({
            'pickup_distance_meters': hit.match.source_nearest.distance_meters,
            'pickup_route_index': hit.match.source_nearest.index,
            'dropoff_distance_meters': hit.match.destination_nearest.distance_meters,
            'dropoff_route_index': hit.match.destination_nearest.index,
            'total_detour_meters': hit.match.total_detour_meters,
        })
    return payload


def _coordinate_parameter(name, description):
    return OpenApiParameter(
        name=name,
        type=OpenApiTypes.FLOAT,
        location=OpenApiParameter.QUERY,
        required=False,
        description=description,
    )


class RideSearchView(APIView):
    """
    API view for searching rides a passenger can join.
    """

    @extend_schema(
        summary="Search rides",
        description="""
        Find rides on a date whose routes can accommodate a passenger's journey.

        A ride is returned if:
        1. **Route match**: the passenger's source and destination both lie within the
           maximum distance of the ride's route, and the source comes first along it; or
        2. **Text match**: the ride's place names match the searched ones.

        Coordinates are optional; place names are geocoded when they are missing.
        Route matches are ranked by total detour and listed before text matches.
        """,
        tags=['Search'],
        parameters=[
            OpenApiParameter(
                name='source',
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=True,
                description='Passenger starting place name'
            ),
            OpenApiParameter(
                name='destination',
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=True,
                description='Passenger destination place name'
            ),
            OpenApiParameter(
                name='ride_date',
                type=OpenApiTypes.DATE,
                location=OpenApiParameter.QUERY,
                required=True,
                description='Date of travel'
            ),
            _coordinate_parameter('source_latitude', 'Passenger pickup latitude'),
            _coordinate_parameter('source_longitude', 'Passenger pickup longitude'),
            _coordinate_parameter('destination_latitude', 'Passenger destination latitude'),
            _coordinate_parameter('destination_longitude', 'Passenger destination longitude'),
            OpenApiParameter(
                name='no_of_seats_required',
                type=OpenApiTypes.INT,
                location=OpenApiParameter.QUERY,
                required=False,
                default=1,
                description='Number of seats required (default: 1)'
            ),
            OpenApiParameter(
                name='max_distance_meters',
                type=OpenApiTypes.FLOAT,
                location=OpenApiParameter.QUERY,
                required=False,
                description='Maximum distance from the route in meters (default: 75000)'
            ),
        ],
        responses={200: RideSearchResponseSerializer},
    )
    def get(self, request):
        """Search rides matching the passenger's journey."""
        serializer = RideSearchQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)

        data = serializer.validated_data

        query = RideSearchQuery(
            source=data['source'],
            destination=data['destination'],
            ride_date=data['ride_date'],
            source_latitude=data.get('source_latitude'),
            source_longitude=data.get('source_longitude'),
            destination_latitude=data.get('destination_latitude'),
            destination_longitude=data.get('destination_longitude'),
            seats_required=data['no_of_seats_required'],
        )

        config = MatchConfig.from_settings(max_distance_meters=data.get('max_distance_meters'))
        search_service = RideSearchService(matching_service=RouteMatchingService(config))
        result = search_service.search(query)

        response_data = {
            'total_matches': len(result.hits),
            'passenger_points_resolved': result.passenger_points_resolved,
            'matches': MatchedRideSerializer(
                [_hit_payload(hit) for hit in result.hits], many=True
            ).data
        }

        return Response(response_data)
