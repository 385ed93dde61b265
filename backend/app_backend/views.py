from django.db import connection
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework import status
from channels.layers import get_channel_layer

from offers.tasks import sweep_offer_cache_task
from services.caching import get_offer_cache


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
        connection.ensure_connection()
        health_status["services"]["database"] = "healthy"
    except Exception as e:
        health_status["services"]["database"] = f"unhealthy: {e}"
        health_status["status"] = "unhealthy"

    # Cache backend check; a down cache only degrades reads
    cache = get_offer_cache()
    health_status["services"]["cache"] = "healthy" if cache.healthy() else "degraded"
    health_status["cache_stats"] = cache.stats()

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
        if sweep_offer_cache_task:
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
