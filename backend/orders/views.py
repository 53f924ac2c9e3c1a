import logging

from django.conf import settings
from django.utils import timezone
from django.utils.crypto import constant_time_compare
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from accounts.permissions import IsAdminRole, IsClient, IsDeliveryPerson
from services import order_management
from services.exceptions import (
    AddressNotFoundError,
    InvalidInputError,
    InvalidTransitionError,
    OfferAlreadyResolvedError,
    OfferForbiddenError,
    OfferNotFoundError,
    OrderForbiddenError,
    OrderNotFoundError,
    RouteNotFoundError,
    UpstreamUnavailableError,
)
from services.matching import (
    accept_offer,
    pending_offers_for,
    reject_offer,
    sweep_expired_offers,
)
from .serializers import (
    OrderCreateSerializer,
    OrderOfferSerializer,
    OrderSerializer,
    OrderStatusUpdateSerializer,
    QuoteRequestSerializer,
)

logger = logging.getLogger(__name__)

# Most specific first: AddressNotFoundError is also an InvalidInputError
ERROR_RESPONSES = (
    (AddressNotFoundError, status.HTTP_400_BAD_REQUEST, 'address_not_found'),
    (RouteNotFoundError, status.HTTP_400_BAD_REQUEST, 'route_not_found'),
    (InvalidInputError, status.HTTP_400_BAD_REQUEST, 'invalid_input'),
    (OrderNotFoundError, status.HTTP_404_NOT_FOUND, 'order_not_found'),
    (OfferNotFoundError, status.HTTP_404_NOT_FOUND, 'offer_not_found'),
    (OrderForbiddenError, status.HTTP_403_FORBIDDEN, 'forbidden'),
    (OfferForbiddenError, status.HTTP_403_FORBIDDEN, 'forbidden'),
    (OfferAlreadyResolvedError, status.HTTP_409_CONFLICT, 'offer_unavailable'),
    (InvalidTransitionError, status.HTTP_400_BAD_REQUEST, 'invalid_transition'),
    (UpstreamUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE, 'upstream_unavailable'),
)

HANDLED_ERRORS = tuple(exc_class for exc_class, _, _ in ERROR_RESPONSES)


def error_response(exc):
    for exc_class, status_code, code in ERROR_RESPONSES:
        if isinstance(exc, exc_class):
            return Response(
                {'success': False, 'error': code, 'message': str(exc)},
                status=status_code
            )
    raise exc


def _quote_data(quote):
    return {
        'origin': {'latitude': quote.origin.latitude, 'longitude': quote.origin.longitude},
        'destination': {'latitude': quote.destination.latitude, 'longitude': quote.destination.longitude},
        'distance_km': quote.distance_km,
        'duration_minutes': round(quote.route.duration_minutes),
        **quote.price.as_dict(),
    }


# ==================== Client Order APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def quote_order(request):
    """Price a route between two addresses without creating an order"""
    serializer = QuoteRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        quote = order_management.quote_order(
            serializer.validated_data['origin_address'],
            serializer.validated_data['destination_address'],
        )
    except HANDLED_ERRORS as exc:
        return error_response(exc)

    return Response({'success': True, 'quote': _quote_data(quote)})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def orders(request):
    """
    GET: orders visible to the caller (own orders, assigned orders, or all for admins)
    POST: create an order and start looking for a delivery person
    """
    if request.method == 'GET':
        qs = order_management.list_orders_for_user(request.user)
        status_filter = request.query_params.get('status')
        if status_filter:
            qs = qs.filter(status=status_filter)
        serializer = OrderSerializer(qs, many=True)
        return Response({'count': len(serializer.data), 'orders': serializer.data})

    if not IsClient().has_permission(request, None):
        return Response(
            {'success': False, 'error': 'forbidden', 'message': 'Only clients can create orders'},
            status=status.HTTP_403_FORBIDDEN
        )

    serializer = OrderCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        result = order_management.create_order(client=request.user, **serializer.validated_data)
    except HANDLED_ERRORS as exc:
        return error_response(exc)

    return Response({
        'success': True,
        'order': OrderSerializer(result.order).data,
        'message': result.message,
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def order_detail(request, order_id):
    try:
        order = order_management.get_order_for_user(request.user, order_id)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return Response(OrderSerializer(order).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cancel_order(request, order_id):
    """Cancel an order (client owner or admin)"""
    try:
        result = order_management.cancel_order(request.user, order_id)
    except HANDLED_ERRORS as exc:
        return error_response(exc)

    return Response({
        'success': True,
        'message': result.message,
        'order': OrderSerializer(result.order).data,
    })


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def update_order_status(request, order_id):
    """Report delivery progress: PICKED_UP, IN_TRANSIT, DELIVERED"""
    serializer = OrderStatusUpdateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        result = order_management.advance_order_status(
            request.user, order_id, serializer.validated_data['status']
        )
    except HANDLED_ERRORS as exc:
        return error_response(exc)

    return Response({
        'success': True,
        'message': result.message,
        'order': OrderSerializer(result.order).data,
    })


# ==================== Admin APIs ====================

@api_view(['POST'])
@permission_classes([IsAdminRole])
def confirm_payment(request, order_id):
    try:
        result = order_management.confirm_payment(order_id)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return Response({'success': True, 'message': result.message, 'order': OrderSerializer(result.order).data})


@api_view(['POST'])
@permission_classes([IsAdminRole])
def redispatch_order(request, order_id):
    """Put an order nobody took back into dispatch"""
    try:
        result = order_management.redispatch_order(order_id)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return Response({'success': True, 'message': result.message, 'order': OrderSerializer(result.order).data})


@api_view(['GET'])
@permission_classes([IsAdminRole])
def exhausted_orders(request):
    serializer = OrderSerializer(order_management.exhausted_orders(), many=True)
    return Response({'count': len(serializer.data), 'orders': serializer.data})


# ==================== Delivery Person Offer APIs ====================

@api_view(['GET'])
@permission_classes([IsDeliveryPerson])
def pending_offers(request):
    """
    Live offers for the caller (POLLING ENDPOINT)

    Countdown values come from the server clock: remaining_seconds per offer
    plus server_time for the app to correct its own clock.
    """
    now = timezone.now()
    offers = pending_offers_for(request.user.pk, now)
    serializer = OrderOfferSerializer(offers, many=True, context={'now': now})
    return Response({
        'server_time': now.isoformat(),
        'count': len(serializer.data),
        'offers': serializer.data,
    })


@api_view(['POST'])
@permission_classes([IsDeliveryPerson])
def accept_order_offer(request, offer_id):
    try:
        result = accept_offer(offer_id, request.user.pk)
    except HANDLED_ERRORS as exc:
        return error_response(exc)

    return Response({
        'success': True,
        'message': result.message,
        'order': OrderSerializer(result.order).data,
    })


@api_view(['POST'])
@permission_classes([IsDeliveryPerson])
def reject_order_offer(request, offer_id):
    try:
        result = reject_offer(offer_id, request.user.pk)
    except HANDLED_ERRORS as exc:
        return error_response(exc)

    return Response({
        'success': True,
        'message': result.message,
        'paused': result.paused,
    })


# ==================== Sweep trigger ====================

def _cron_authorized(request) -> bool:
    secret = settings.CRON_SECRET
    provided = request.headers.get('X-Cron-Secret', '')
    if secret and provided and constant_time_compare(secret, provided):
        return True
    user = request.user
    return bool(user and user.is_authenticated and user.is_admin_role)


@api_view(['POST'])
@permission_classes([AllowAny])
def sweep_offers(request):
    """
    Expire lapsed offers and redistribute their orders.

    Called by an external scheduler with the X-Cron-Secret header, or by an admin.
    """
    if not _cron_authorized(request):
        logger.warning("Rejected sweep trigger from %s", request.META.get('REMOTE_ADDR'))
        return Response(
            {'success': False, 'error': 'forbidden', 'message': 'Invalid cron secret'},
            status=status.HTTP_403_FORBIDDEN
        )

    result = sweep_expired_offers()
    return Response({
        'success': True,
        'expired_count': result.expired_count,
        'redistributed_order_ids': result.redistributed_order_ids,
        'dispatched_count': result.dispatched_count,
        'exhausted_count': result.exhausted_count,
        'stranded_count': result.stranded_count,
    })
