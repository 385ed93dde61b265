from rest_framework import serializers

from common.utils.geo import is_valid_coordinate
from .models import Offer


def _dt(value):
    return serializers.DateTimeField().to_representation(value) if value else None


class OfferSerializer(serializers.ModelSerializer):
    """Read-only offer payload (camelCase, grouped like the create input)"""
    business = serializers.SerializerMethodField()
    acceptedBy = serializers.IntegerField(source='accepted_by_id', read_only=True)
    pickup = serializers.SerializerMethodField()
    delivery = serializers.SerializerMethodField()
    package = serializers.SerializerMethodField()
    payment = serializers.SerializerMethodField()
    estimatedDistance = serializers.FloatField(source='estimated_distance', read_only=True)
    estimatedDuration = serializers.IntegerField(source='estimated_duration', read_only=True)
    cancellationReason = serializers.CharField(source='cancellation_reason', read_only=True)
    timestamps = serializers.SerializerMethodField()

    class Meta:
        model = Offer
        fields = ['id', 'title', 'description', 'status', 'business', 'acceptedBy',
                  'pickup', 'delivery', 'package', 'payment', 'estimatedDistance',
                  'estimatedDuration', 'cancellationReason', 'timestamps', 'version']
        read_only_fields = fields

    def get_business(self, obj):
        return {
            'id': obj.business_id,
            'name': obj.business.business_name or obj.business.username,
        }

    def get_pickup(self, obj):
        return {
            'address': obj.pickup_address,
            'coordinates': obj.pickup_coordinates,
            'contactName': obj.pickup_contact_name,
            'contactPhone': obj.pickup_contact_phone,
            'availableFrom': _dt(obj.pickup_available_from),
            'availableUntil': _dt(obj.pickup_available_until),
            'instructions': obj.pickup_instructions,
        }

    def get_delivery(self, obj):
        return {
            'address': obj.delivery_address,
            'coordinates': obj.delivery_coordinates,
            'contactName': obj.delivery_contact_name,
            'contactPhone': obj.delivery_contact_phone,
            'deliverBy': _dt(obj.deliver_by),
            'instructions': obj.delivery_instructions,
        }

    def get_package(self, obj):
        return {
            'weight': obj.package_weight,
            'dimensions': {
                'length': obj.package_length,
                'width': obj.package_width,
                'height': obj.package_height,
            },
            'volume': obj.package_volume,
            'fragile': obj.is_fragile,
            'temperatureClass': obj.temperature_class,
            'specialInstructions': obj.special_instructions,
        }

    def get_payment(self, obj):
        return {
            'amount': str(obj.payment_amount),
            'currency': obj.payment_currency,
            'method': obj.payment_method,
        }

    def get_timestamps(self, obj):
        return {
            'createdAt': _dt(obj.created_at),
            'acceptedAt': _dt(obj.accepted_at),
            'pickedUpAt': _dt(obj.picked_up_at),
            'inTransitAt': _dt(obj.in_transit_at),
            'deliveredAt': _dt(obj.delivered_at),
            'completedAt': _dt(obj.completed_at),
            'cancelledAt': _dt(obj.cancelled_at),
            'updatedAt': _dt(obj.updated_at),
        }


def serialize_offer(offer, include_history=False):
    """Plain-dict snapshot of an offer, safe to cache and to send over WebSockets."""
    data = dict(OfferSerializer(offer).data)
    if include_history:
        data['statusHistory'] = list(offer.status_history or [])
    return data


# ==================== Input ====================

class CoordinatesField(serializers.ListField):
    """[longitude, latitude] pair"""

    def __init__(self, **kwargs):
        kwargs.setdefault('child', serializers.FloatField())
        kwargs.setdefault('min_length', 2)
        kwargs.setdefault('max_length', 2)
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        if not is_valid_coordinate(value[0], value[1]):
            raise serializers.ValidationError(
                'Coordinates must be [longitude, latitude] within valid ranges.'
            )
        return value


class PickupInputSerializer(serializers.Serializer):
    address = serializers.CharField()
    coordinates = CoordinatesField(required=False, allow_null=True)
    contactName = serializers.CharField(required=False, allow_blank=True, max_length=100)
    contactPhone = serializers.CharField(required=False, allow_blank=True, max_length=20)
    availableFrom = serializers.DateTimeField(required=False, allow_null=True)
    availableUntil = serializers.DateTimeField(required=False, allow_null=True)
    instructions = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        start, end = attrs.get('availableFrom'), attrs.get('availableUntil')
        if start and end and start > end:
            raise serializers.ValidationError('availableFrom must be before availableUntil.')
        return attrs


class DeliveryInputSerializer(serializers.Serializer):
    address = serializers.CharField()
    coordinates = CoordinatesField(required=False, allow_null=True)
    contactName = serializers.CharField(required=False, allow_blank=True, max_length=100)
    contactPhone = serializers.CharField(required=False, allow_blank=True, max_length=20)
    deliverBy = serializers.DateTimeField(required=False, allow_null=True)
    instructions = serializers.CharField(required=False, allow_blank=True)


class DimensionsInputSerializer(serializers.Serializer):
    length = serializers.FloatField(required=False, allow_null=True, min_value=0)
    width = serializers.FloatField(required=False, allow_null=True, min_value=0)
    height = serializers.FloatField(required=False, allow_null=True, min_value=0)


class PackageInputSerializer(serializers.Serializer):
    weight = serializers.FloatField(required=False, allow_null=True, min_value=0)
    dimensions = DimensionsInputSerializer(required=False)
    fragile = serializers.BooleanField(required=False, default=False)
    temperatureClass = serializers.ChoiceField(choices=Offer.TEMPERATURE_CHOICES, required=False, default='ambient')
    specialInstructions = serializers.CharField(required=False, allow_blank=True)


class PaymentInputSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    currency = serializers.ChoiceField(choices=Offer.CURRENCY_CHOICES, required=False, default='USD')
    method = serializers.ChoiceField(choices=Offer.PAYMENT_METHOD_CHOICES, required=False, default='card')


class OfferCreateSerializer(serializers.Serializer):
    """Serializer for creating offers"""
    title = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True)
    pickup = PickupInputSerializer()
    delivery = DeliveryInputSerializer()
    package = PackageInputSerializer(required=False)
    payment = PaymentInputSerializer()

    def to_offer_fields(self):
        """Flatten validated input into Offer column values (coordinates may be None)."""
        data = self.validated_data
        pickup, delivery = data['pickup'], data['delivery']
        package = data.get('package') or {}
        dims = package.get('dimensions') or {}
        payment = data['payment']
        return {
            'title': data['title'],
            'description': data.get('description', ''),
            'pickup_address': pickup['address'],
            'pickup_coordinates': pickup.get('coordinates'),
            'pickup_contact_name': pickup.get('contactName', ''),
            'pickup_contact_phone': pickup.get('contactPhone', ''),
            'pickup_available_from': pickup.get('availableFrom'),
            'pickup_available_until': pickup.get('availableUntil'),
            'pickup_instructions': pickup.get('instructions', ''),
            'delivery_address': delivery['address'],
            'delivery_coordinates': delivery.get('coordinates'),
            'delivery_contact_name': delivery.get('contactName', ''),
            'delivery_contact_phone': delivery.get('contactPhone', ''),
            'deliver_by': delivery.get('deliverBy'),
            'delivery_instructions': delivery.get('instructions', ''),
            'package_weight': package.get('weight'),
            'package_length': dims.get('length'),
            'package_width': dims.get('width'),
            'package_height': dims.get('height'),
            'is_fragile': package.get('fragile', False),
            'temperature_class': package.get('temperatureClass', 'ambient'),
            'special_instructions': package.get('specialInstructions', ''),
            'payment_amount': payment['amount'],
            'payment_currency': payment.get('currency', 'USD'),
            'payment_method': payment.get('method', 'card'),
        }


class NearbySearchParamsSerializer(serializers.Serializer):
    """Query parameters of the nearby search"""
    lng = serializers.FloatField(required=False)
    lat = serializers.FloatField(required=False)
    minDistance = serializers.FloatField(required=False)
    maxDistance = serializers.FloatField(required=False)
    minPayment = serializers.DecimalField(max_digits=10, decimal_places=2, required=False)
    maxPayment = serializers.DecimalField(max_digits=10, decimal_places=2, required=False)
    paymentMethod = serializers.ChoiceField(choices=Offer.PAYMENT_METHOD_CHOICES, required=False)
    fragile = serializers.BooleanField(required=False, allow_null=True, default=None)
    maxWeight = serializers.FloatField(required=False, min_value=0)
    maxDimensions = serializers.CharField(required=False)
    availableFrom = serializers.DateTimeField(required=False)
    availableUntil = serializers.DateTimeField(required=False)
    deliverBy = serializers.DateTimeField(required=False)
    businessId = serializers.IntegerField(required=False)
    createdAfter = serializers.DateTimeField(required=False)
    createdBefore = serializers.DateTimeField(required=False)
    vehicleType = serializers.ChoiceField(choices=['bike', 'scooter', 'car', 'van'], required=False)
    sortBy = serializers.CharField(required=False)
    sortOrder = serializers.CharField(required=False)
    page = serializers.IntegerField(required=False, min_value=1)
    limit = serializers.IntegerField(required=False, min_value=1)

    def validate_maxDimensions(self, value):
        parts = [p.strip() for p in value.split(',')]
        if len(parts) != 3:
            raise serializers.ValidationError('Use "length,width,height" in cm.')
        try:
            return tuple(float(p) for p in parts)
        except ValueError:
            raise serializers.ValidationError('Dimensions must be numbers.')

    def search_kwargs(self):
        data = self.validated_data
        location = None
        if data.get('lng') is not None and data.get('lat') is not None:
            location = [data['lng'], data['lat']]
        return {
            'location': location,
            'min_distance': data.get('minDistance'),
            'max_distance': data.get('maxDistance'),
            'filters': {
                'min_payment': data.get('minPayment'),
                'max_payment': data.get('maxPayment'),
                'payment_method': data.get('paymentMethod'),
                'fragile': data.get('fragile'),
                'max_weight': data.get('maxWeight'),
                'max_dimensions': data.get('maxDimensions'),
                'available_from': data.get('availableFrom'),
                'available_until': data.get('availableUntil'),
                'deliver_by': data.get('deliverBy'),
                'business_id': data.get('businessId'),
                'created_after': data.get('createdAfter'),
                'created_before': data.get('createdBefore'),
                'vehicle_type': data.get('vehicleType'),
            },
            'sort_by': data.get('sortBy'),
            'sort_order': data.get('sortOrder'),
            'page': data.get('page'),
            'limit': data.get('limit'),
        }


class StatusUpdateSerializer(serializers.Serializer):
    """Serializer for status changes"""
    status = serializers.ChoiceField(choices=Offer.STATUS_CHOICES)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=500, default='')
    location = CoordinatesField(required=False, allow_null=True, default=None)


class StatusNotesSerializer(serializers.Serializer):
    """Body of the status shortcut endpoints"""
    notes = serializers.CharField(required=False, allow_blank=True, max_length=500, default='')
    location = CoordinatesField(required=False, allow_null=True, default=None)


class OfferCancelSerializer(serializers.Serializer):
    """Serializer for offer cancellation"""
    reason = serializers.CharField(required=False, allow_blank=True, max_length=500, default='')
