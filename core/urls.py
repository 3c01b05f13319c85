"""
URL configuration for core project.

Only the Django admin is routed; reporting data is served through the
management commands and the aggregation helpers in ``deliveryMetrics.utils``.
"""
from django.contrib import admin
from django.urls import path

urlpatterns = [
    path("admin/", admin.site.urls),
]
