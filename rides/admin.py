"""
Admin configuration for the rides app.
"""

from django.contrib import admin
from .models import Ride


@admin.register(Ride)
class RideAdmin(admin.ModelAdmin):
    list_display = [
        'id',
        'driver_id',
        'source',
        'destination',
        'ride_date',
        'ride_time',
        'available_seats',
        'status',
        'route_geometry_source',
    ]
    list_filter = ['status', 'route_geometry_source', 'ride_date']
    search_fields = ['source', 'destination']
    readonly_fields = ['date_added', 'date_last_updated', 'route_geometry', 'route_geometry_source']
    ordering = ['ride_date', 'ride_time']
