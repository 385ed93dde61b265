from django.conf import settings
from django.db import models
from django.db.models import Q


class Offer(models.Model):
    """Delivery request posted by a business and fulfilled by one rider"""

    STATUS_OPEN = 'open'
    STATUS_ACCEPTED = 'accepted'
    STATUS_PICKED_UP = 'picked_up'
    STATUS_IN_TRANSIT = 'in_transit'
    STATUS_DELIVERED = 'delivered'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_OPEN, 'Open'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_PICKED_UP, 'Picked Up'),
        (STATUS_IN_TRANSIT, 'In Transit'),
        (STATUS_DELIVERED, 'Delivered'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)

    # Timestamp set by the transition entering each status
    TIMESTAMP_FIELDS = {
        STATUS_ACCEPTED: 'accepted_at',
        STATUS_PICKED_UP: 'picked_up_at',
        STATUS_IN_TRANSIT: 'in_transit_at',
        STATUS_DELIVERED: 'delivered_at',
        STATUS_COMPLETED: 'completed_at',
        STATUS_CANCELLED: 'cancelled_at',
    }

    TEMPERATURE_CHOICES = [
        ('ambient', 'Ambient'),
        ('chilled', 'Chilled'),
        ('frozen', 'Frozen'),
    ]

    CURRENCY_CHOICES = [
        ('USD', 'US Dollar'),
        ('EUR', 'Euro'),
        ('GBP', 'British Pound'),
    ]

    PAYMENT_METHOD_CHOICES = [
        ('cash', 'Cash'),
        ('card', 'Card'),
        ('digital', 'Digital'),
    ]

    # Parties
    business = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='offers',
        limit_choices_to={'role': 'business'}
    )

    accepted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='deliveries',
        limit_choices_to={'role': 'rider'}
    )

    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)

    # Pickup
    pickup_address = models.TextField()
    pickup_latitude = models.DecimalField(max_digits=9, decimal_places=6)
    pickup_longitude = models.DecimalField(max_digits=9, decimal_places=6)
    pickup_contact_name = models.CharField(max_length=100, blank=True)
    pickup_contact_phone = models.CharField(max_length=20, blank=True)
    pickup_available_from = models.DateTimeField(null=True, blank=True)
    pickup_available_until = models.DateTimeField(null=True, blank=True)
    pickup_instructions = models.TextField(blank=True)

    # Delivery
    delivery_address = models.TextField()
    delivery_latitude = models.DecimalField(max_digits=9, decimal_places=6)
    delivery_longitude = models.DecimalField(max_digits=9, decimal_places=6)
    delivery_contact_name = models.CharField(max_length=100, blank=True)
    delivery_contact_phone = models.CharField(max_length=20, blank=True)
    deliver_by = models.DateTimeField(null=True, blank=True)
    delivery_instructions = models.TextField(blank=True)

    # Package (kg / cm)
    package_weight = models.FloatField(null=True, blank=True)
    package_length = models.FloatField(null=True, blank=True)
    package_width = models.FloatField(null=True, blank=True)
    package_height = models.FloatField(null=True, blank=True)
    is_fragile = models.BooleanField(default=False)
    temperature_class = models.CharField(max_length=10, choices=TEMPERATURE_CHOICES, default='ambient')
    special_instructions = models.TextField(blank=True)

    # Payment
    payment_amount = models.DecimalField(max_digits=10, decimal_places=2)
    payment_currency = models.CharField(max_length=3, choices=CURRENCY_CHOICES, default='USD')
    payment_method = models.CharField(max_length=10, choices=PAYMENT_METHOD_CHOICES, default='card')

    # Lifecycle
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_OPEN)
    status_history = models.JSONField(default=list, blank=True)
    version = models.PositiveIntegerField(default=0)
    cancellation_reason = models.TextField(blank=True)

    # Derived estimates
    estimated_distance = models.FloatField(null=True, blank=True)   # meters
    estimated_duration = models.IntegerField(null=True, blank=True)  # minutes

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    picked_up_at = models.DateTimeField(null=True, blank=True)
    in_transit_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'offers'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at'], name='offer_status_created_idx'),
            models.Index(fields=['status', 'pickup_latitude', 'pickup_longitude'], name='offer_status_pickup_idx'),
            models.Index(fields=['business', 'status'], name='offer_business_status_idx'),
            models.Index(fields=['accepted_by', 'status'], name='offer_rider_status_idx'),
        ]
        constraints = [
            # Open offers have no rider; every later status has exactly one
            models.CheckConstraint(
                condition=(
                    Q(status='open', accepted_by__isnull=True)
                    | (~Q(status='open') & Q(accepted_by__isnull=False))
                ),
                name='offer_open_iff_unassigned',
            ),
        ]

    def __str__(self):
        return f"Offer #{self.id} - {self.title} - {self.status}"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    @property
    def pickup_coordinates(self):
        return [float(self.pickup_longitude), float(self.pickup_latitude)]

    @property
    def delivery_coordinates(self):
        return [float(self.delivery_longitude), float(self.delivery_latitude)]

    @property
    def package_volume(self):
        """Volume in cm³, or None when no dimension was recorded."""
        dims = (self.package_length, self.package_width, self.package_height)
        if all(d is None for d in dims):
            return None
        length, width, height = (d or 0 for d in dims)
        return length * width * height
