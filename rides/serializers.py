"""
Serializers for the rides API.
"""

from rest_framework import serializers
from .models import Ride


class CoordinateValidationMixin:
    """Range checks shared by every serializer that accepts coordinates."""

    def _check_latitude(self, value):
        if value is not None and not -90 <= value <= 90:
            raise serializers.ValidationError("Latitude must be between -90 and 90")
        return value

    def _check_longitude(self, value):
        if value is not None and not -180 <= value <= 180:
            raise serializers.ValidationError("Longitude must be between -180 and 180")
        return value

    def validate_source_latitude(self, value):
        return self._check_latitude(value)

    def validate_source_longitude(self, value):
        return self._check_longitude(value)

    def validate_destination_latitude(self, value):
        return self._check_latitude(value)

    def validate_destination_longitude(self, value):
        return self._check_longitude(value)


class RideSerializer(serializers.ModelSerializer):
    """Serializer for Ride model - used for list and retrieve operations."""

    class Meta:
        model = Ride
        fields = [
            'id',
            'driver_id',
            'source',
            'destination',
            'source_latitude',
            'source_longitude',
            'destination_latitude',
            'destination_longitude',
            'ride_date',
            'ride_time',
            'total_seats',
            'available_seats',
            'status',
            'notes',
            'route_geometry',
            'route_geometry_source',
            'date_added',
            'date_last_updated',
        ]
        read_only_fields = [
            'id', 'route_geometry', 'route_geometry_source', 'date_added', 'date_last_updated'
        ]


class RideCreateSerializer(CoordinateValidationMixin, serializers.ModelSerializer):
    """Serializer for posting a new ride."""

    class Meta:
        model = Ride
        fields = [
            'driver_id',
            'source',
            'destination',
            'source_latitude',
            'source_longitude',
            'destination_latitude',
            'destination_longitude',
            'ride_date',
            'ride_time',
            'total_seats',
            'available_seats',
            'notes',
        ]
        extra_kwargs = {
            'available_seats': {'required': False},
        }

    def validate(self, attrs):
        total = attrs.get('total_seats', 1)
        available = attrs.setdefault('available_seats', total)
        if available > total:
            raise serializers.ValidationError(
                {'available_seats': "Available seats cannot exceed total seats"}
            )
        return attrs


class RideUpdateSerializer(CoordinateValidationMixin, serializers.ModelSerializer):
    """Serializer for updating a ride."""

    class Meta:
        model = Ride
        fields = [
            'source',
            'destination',
            'source_latitude',
            'source_longitude',
            'destination_latitude',
            'destination_longitude',
            'ride_date',
            'ride_time',
            'total_seats',
            'available_seats',
            'status',
            'notes',
        ]
        extra_kwargs = {field: {'required': False} for field in fields}


class RideSearchQuerySerializer(CoordinateValidationMixin, serializers.Serializer):
    """Serializer for ride search query parameters."""

    source = serializers.CharField(max_length=255)
    destination = serializers.CharField(max_length=255)
    ride_date = serializers.DateField()
    source_latitude = serializers.FloatField(required=False, allow_null=True, default=None)
    source_longitude = serializers.FloatField(required=False, allow_null=True, default=None)
    destination_latitude = serializers.FloatField(required=False, allow_null=True, default=None)
    destination_longitude = serializers.FloatField(required=False, allow_null=True, default=None)
    no_of_seats_required = serializers.IntegerField(default=1, min_value=1)
    max_distance_meters = serializers.FloatField(required=False, min_value=0)


class MatchedRideSerializer(serializers.Serializer):
    """Serializer for a single search hit."""

    ride = RideSerializer()
    match_type = serializers.ChoiceField(choices=['ROUTE', 'TEXT'])
    pickup_distance_meters = serializers.FloatField(allow_null=True)
    pickup_route_index = serializers.IntegerField(allow_null=True)
    dropoff_distance_meters = serializers.FloatField(allow_null=True)
    dropoff_route_index = serializers.IntegerField(allow_null=True)
    total_detour_meters = serializers.FloatField(allow_null=True)
    passenger_route_distance_meters = serializers.FloatField(allow_null=True)
    estimated_pickup_minutes = serializers.FloatField(allow_null=True)


class RideSearchResponseSerializer(serializers.Serializer):
    """Serializer for the complete search response."""

    total_matches = serializers.IntegerField()
    passenger_points_resolved = serializers.BooleanField()
    matches = MatchedRideSerializer(many=True)
