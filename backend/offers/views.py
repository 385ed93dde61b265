from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts.identity import actor_from_user
from services import offer_management as dispatch
from .models import Offer
from .serializers import (
    NearbySearchParamsSerializer,
    OfferCancelSerializer,
    OfferCreateSerializer,
    StatusNotesSerializer,
    StatusUpdateSerializer,
    serialize_offer,
)


def _ok(data, code=status.HTTP_200_OK, **extra):
    return Response({'success': True, 'data': data, **extra}, status=code)


# ==================== Offer Collection ====================

@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def offer_collection(request):
    """
    POST: business creates an offer.
    GET: business lists its own offers, rider lists its deliveries (?status=).
    """
    actor = actor_from_user(request.user)

    if request.method == 'POST':
        serializer = OfferCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        offer = dispatch.create_offer(actor, serializer.to_offer_fields())
        return _ok(serialize_offer(offer), status.HTTP_201_CREATED, message='Offer created successfully')

    status_filter = request.query_params.get('status') or None
    if actor.is_rider:
        offers = dispatch.list_rider_deliveries(actor, status_filter)
    else:
        offers = dispatch.list_business_offers(actor, status_filter)
    return _ok(offers, count=len(offers))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def nearby_offers(request):
    """Open offers around the rider's location"""
    serializer = NearbySearchParamsSerializer(data=request.query_params.dict())
    serializer.is_valid(raise_exception=True)
    result = dispatch.search_nearby(actor_from_user(request.user), **serializer.search_kwargs())
    return _ok(result)


# ==================== Single Offer ====================

@api_view(['GET'])
@permission_classes([IsAuthenticated])
def offer_detail(request, offer_id):
    offer = dispatch.get_offer(actor_from_user(request.user), offer_id)
    # History is only for the parties, like the history endpoint
    is_party = request.user.id in (offer.business_id, offer.accepted_by_id)
    return _ok(serialize_offer(offer, include_history=is_party))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def accept_offer(request, offer_id):
    """Rider claims an open offer"""
    offer = dispatch.accept_offer(actor_from_user(request.user), offer_id)
    return _ok(serialize_offer(offer), message='Offer accepted successfully')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def update_offer_status(request, offer_id):
    """Generic status change: {"status", "notes", "location"}"""
    serializer = StatusUpdateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    offer = dispatch.advance_status(
        actor_from_user(request.user),
        offer_id,
        data['status'],
        notes=data.get('notes', ''),
        location=data.get('location'),
    )
    return _ok(serialize_offer(offer), message=f"Offer is now {offer.status}")


def _status_shortcut(target):
    @api_view(['POST'])
    @permission_classes([IsAuthenticated])
    def view(request, offer_id):
        serializer = StatusNotesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        offer = dispatch.advance_status(
            actor_from_user(request.user),
            offer_id,
            target,
            notes=serializer.validated_data.get('notes', ''),
            location=serializer.validated_data.get('location'),
        )
        return _ok(serialize_offer(offer), message=f"Offer is now {offer.status}")

    view.__name__ = f"mark_{target}"
    return view


mark_picked_up = _status_shortcut(Offer.STATUS_PICKED_UP)
mark_in_transit = _status_shortcut(Offer.STATUS_IN_TRANSIT)
mark_delivered = _status_shortcut(Offer.STATUS_DELIVERED)
mark_completed = _status_shortcut(Offer.STATUS_COMPLETED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cancel_offer(request, offer_id):
    """Owning business cancels an in-flight offer"""
    serializer = OfferCancelSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    offer = dispatch.cancel_offer(
        actor_from_user(request.user),
        offer_id,
        serializer.validated_data.get('reason', ''),
    )
    return _ok(serialize_offer(offer), message='Offer cancelled')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def offer_history(request, offer_id):
    history = dispatch.get_status_history(actor_from_user(request.user), offer_id)
    return _ok(history, count=len(history))


# ==================== Dashboards ====================

@api_view(['GET'])
@permission_classes([IsAuthenticated])
def business_dashboard(request):
    return _ok(dispatch.business_dashboard(actor_from_user(request.user)))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def rider_dashboard(request):
    return _ok(dispatch.rider_dashboard(actor_from_user(request.user)))
