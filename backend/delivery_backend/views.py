import redis
from django.conf import settings
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from channels.layers import get_channel_layer

from orders.models import Order, OrderOffer, OfferStatus


@api_view(["GET"])
@permission_classes([AllowAny])
def health_check(request):
    """Health check endpoint for monitoring system status"""

    health_status = {
        "status": "healthy",
        "timestamp": timezone.now().isoformat(),
        "services": {},
    }

    # Database check, plus the backlog the sweep job should be draining
    try:
        Order.objects.count()
        health_status["services"]["database"] = "healthy"
        health_status["lapsed_pending_offers"] = OrderOffer.objects.filter(
            status=OfferStatus.PENDING,
            expires_at__lt=timezone.now(),
        ).count()
    except Exception as e:
        health_status["services"]["database"] = f"unhealthy: {e}"
        health_status["status"] = "unhealthy"

    # Redis check (channel layer and Celery broker)
    try:
        redis_client = redis.Redis.from_url(settings.REDIS_URL, socket_timeout=3)
        redis_client.ping()
        health_status["services"]["redis"] = "healthy"
    except Exception as e:
        health_status["services"]["redis"] = f"unhealthy: {e}"
        health_status["status"] = "unhealthy"

    # Channel layer check
    if get_channel_layer() is not None:
        health_status["services"]["channels"] = "healthy"
    else:
        health_status["services"]["channels"] = "unhealthy: no channel layer"
        health_status["status"] = "unhealthy"

    status_code = (
        status.HTTP_200_OK
        if health_status["status"] == "healthy"
        else status.HTTP_503_SERVICE_UNAVAILABLE
    )

    return Response(health_status, status=status_code)
