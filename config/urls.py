from django.urls import path

from .health import health as health_view

# REST endpoints for orders, tables and menu live in their own service; this
# project only serves the realtime channel (see config.asgi) and health.
urlpatterns = [
    path("health/", health_view, name="health"),
]
