import redis
from django.conf import settings
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework import status
from channels.layers import get_channel_layer

from rides.models import Ride
from app_backend.celery import app as celery_app
from rides import tasks as ride_tasks  # noqa: F401  registers the ride tasks


@api_view(["GET"])
@permission_classes([AllowAny])
def health_check(request):
    """Health check endpoint for monitoring system status"""
    
    health_status = {
        "status": "healthy",
        "timestamp": timezone.now().isoformat(),
        "services": {}
    }

    # Database check
    try:
        overdue = Ride.objects.filter(
            status=Ride.REQUESTED,
            broadcast_deadline__lte=timezone.now(),
        ).count()
        health_status["services"]["database"] = "healthy"
        health_status["overdue_rides"] = overdue
    except Exception as e:
        health_status["services"]["database"] = f"unhealthy: {e}"
        health_status["status"] = "unhealthy"

    # Redis check
    try:
        redis_client = redis.Redis.from_url(settings.REDIS_URL, socket_timeout=3)
        redis_client.ping()
        health_status["services"]["redis"] = "healthy"
    except Exception as e:
        health_status["services"]["redis"] = f"unhealthy: {e}"
        health_status["status"] = "unhealthy"

    # Channel layer check
    try:
        channel_layer = get_channel_layer()
        if channel_layer is not None:
            health_status["services"]["channels"] = "healthy"
        else:
            health_status["services"]["channels"] = "unhealthy: no channel layer"
            health_status["status"] = "unhealthy"
    except Exception as e:
        health_status["services"]["channels"] = f"unhealthy: {e}"
        health_status["status"] = "unhealthy"

    # Celery check
    try:
        if "rides.tasks.ride_deadline_task" in celery_app.tasks:
            health_status["services"]["celery"] = "healthy"
        else:
            health_status["services"]["celery"] = "unhealthy: task not registered"
            health_status["status"] = "unhealthy"
    except Exception as e:
        health_status["services"]["celery"] = f"unhealthy: {e}"
        health_status["status"] = "unhealthy"

    status_code = (
        status.HTTP_200_OK
        if health_status["status"] == "healthy"
        else status.HTTP_503_SERVICE_UNAVAILABLE
    )

    return Response(health_status, status=status_code)
