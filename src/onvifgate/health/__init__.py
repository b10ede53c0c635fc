"""Health check endpoint."""

from onvifgate.health.server import HealthServer

__all__ = ["HealthServer"]
