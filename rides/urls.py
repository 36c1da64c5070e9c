"""
URL configuration for the rides app.
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import RideViewSet, RideSearchView

router = DefaultRouter()
router.register(r'rides', RideViewSet, basename='ride')

urlpatterns = [
    path('rides/search/', RideSearchView.as_view(), name='ride-search'),
    path('', include(router.urls)),
]
