"""
Ride model for the ride-sharing application.
"""

import datetime
import logging
from typing import Optional

from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator
from django.utils import timezone

from .services.exceptions import InvalidGeometryError
from .services.geo import GeoPoint, Polyline

logger = logging.getLogger(__name__)


class RideStatus(models.TextChoices):
    POSTED = 'POSTED', 'Posted'
    BOOKED = 'BOOKED', 'Booked'
    IN_PROGRESS = 'IN_PROGRESS', 'In progress'
    COMPLETED = 'COMPLETED', 'Completed'
    CANCELLED = 'CANCELLED', 'Cancelled'


class RouteGeometrySource(models.TextChoices):
    DIRECTIONS = 'DIRECTIONS', 'Directions API'
    SYNTHETIC = 'SYNTHETIC', 'Synthetic'


# Rides in these states still show up in search
SEARCHABLE_STATUSES = (RideStatus.POSTED, RideStatus.BOOKED)


class Ride(models.Model):
    """
    A ride posted by a driver.

    The route_geometry field stores an encoded polyline string, either from
    the Google Directions API or synthesized between the endpoints when the
    API could not provide one. It is blank when neither was possible.
    """

    driver_id = models.PositiveIntegerField(help_text="Posting driver")
    source = models.CharField(max_length=255, help_text="Starting place name")
    destination = models.CharField(max_length=255, help_text="Destination place name")
    source_latitude = models.FloatField(
        null=True,
        blank=True,
        validators=[MinValueValidator(-90), MaxValueValidator(90)],
        help_text="Starting point latitude"
    )
    source_longitude = models.FloatField(
        null=True,
        blank=True,
        validators=[MinValueValidator(-180), MaxValueValidator(180)],
        help_text="Starting point longitude"
    )
    destination_latitude = models.FloatField(
        null=True,
        blank=True,
        validators=[MinValueValidator(-90), MaxValueValidator(90)],
        help_text="Destination latitude"
    )
    destination_longitude = models.FloatField(
        null=True,
        blank=True,
        validators=[MinValueValidator(-180), MaxValueValidator(180)],
        help_text="Destination longitude"
    )
    ride_date = models.DateField()
    ride_time = models.TimeField()
    total_seats = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    available_seats = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(0)],
        help_text="Number of available seats"
    )
    status = models.CharField(
        max_length=20,
        choices=RideStatus.choices,
        default=RideStatus.POSTED,
    )
    notes = models.TextField(blank=True, default='')
    route_geometry = models.TextField(
        blank=True,
        default='',
        help_text="Encoded polyline string of the driver's route"
    )
    route_geometry_source = models.CharField(
        max_length=20,
        choices=RouteGeometrySource.choices,
        blank=True,
        default='',
    )
    date_added = models.DateTimeField(auto_now_add=True)
    date_last_updated = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['ride_date', 'ride_time']
        verbose_name = 'Ride'
        verbose_name_plural = 'Rides'

    def __str__(self):
        return f"Ride {self.id}: {self.source} -> {self.destination} on {self.ride_date}"

    @property
    def origin_point(self) -> Optional[GeoPoint]:
        """Stored origin coordinates, or None if not known."""
        return _point_or_none(self.source_latitude, self.source_longitude)

    @property
    def destination_point(self) -> Optional[GeoPoint]:
        """Stored destination coordinates, or None if not known."""
        return _point_or_none(self.destination_latitude, self.destination_longitude)

    @property
    def departs_at(self) -> datetime.datetime:
        departure = datetime.datetime.combine(self.ride_date, self.ride_time)
        if timezone.is_naive(departure):
            departure = timezone.make_aware(departure)
        return departure

    def stored_polyline(self) -> Optional[Polyline]:
        """Decode the stored route geometry, or None if absent or unusable."""
        if not self.route_geometry:
            return None
        try:
            return Polyline.from_encoded(self.route_geometry)
        except InvalidGeometryError as e:
            logger.warning("Ride %s has unusable route geometry: %s", self.id, e)
            return None

    def set_route(self, route: Optional[Polyline], geometry_source: str = '') -> None:
        """Store a route polyline, or clear it when route is None."""
        if route is None:
            self.route_geometry = ''
            self.route_geometry_source = ''
        else:
            self.route_geometry = route.encode()
            self.route_geometry_source = geometry_source


def _point_or_none(latitude, longitude) -> Optional[GeoPoint]:
    if latitude is None or longitude is None:
        return None
    try:
        return GeoPoint.from_lat_lon(latitude, longitude)
    except InvalidGeometryError:
        return None
