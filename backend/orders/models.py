from django.db import models
from django.conf import settings
from django.db.models import Q


class OrderStatus(models.TextChoices):
    AWAITING_PAYMENT = 'AWAITING_PAYMENT', 'Awaiting Payment'
    PENDING = 'PENDING', 'Waiting for Delivery Person'
    ACCEPTED = 'ACCEPTED', 'Accepted'
    PICKED_UP = 'PICKED_UP', 'Picked Up'
    IN_TRANSIT = 'IN_TRANSIT', 'In Transit'
    DELIVERED = 'DELIVERED', 'Delivered'
    CANCELLED = 'CANCELLED', 'Cancelled'
    NO_COURIER_AVAILABLE = 'NO_COURIER_AVAILABLE', 'No Delivery Person Available'


# Orders that keep their delivery person busy
ACTIVE_ORDER_STATUSES = (
    OrderStatus.ACCEPTED,
    OrderStatus.PICKED_UP,
    OrderStatus.IN_TRANSIT,
)


class PaymentMethod(models.TextChoices):
    CREDIT_CARD = 'CREDIT_CARD', 'Credit Card'
    DEBIT_CARD = 'DEBIT_CARD', 'Debit Card'
    PIX = 'PIX', 'PIX'
    CASH = 'CASH', 'Cash'
    END_OF_DAY = 'END_OF_DAY', 'End of Day Billing'
    ON_DELIVERY = 'ON_DELIVERY', 'On Delivery'
    INVOICED = 'INVOICED', 'Invoiced'


# Paid outside the payment provider: the order can be dispatched right away
DIRECT_PAYMENT_METHODS = (
    PaymentMethod.CASH,
    PaymentMethod.END_OF_DAY,
    PaymentMethod.ON_DELIVERY,
    PaymentMethod.INVOICED,
)


class OfferStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    ACCEPTED = 'ACCEPTED', 'Accepted'
    REJECTED = 'REJECTED', 'Rejected'
    EXPIRED = 'EXPIRED', 'Expired'


class OfferFailureReason(models.TextChoices):
    REJECTED = 'REJECTED', 'Rejected by delivery person'
    TIMEOUT = 'TIMEOUT', 'No response before the offer window closed'
    ORDER_UNAVAILABLE = 'ORDER_UNAVAILABLE', 'Order cancelled or no longer available'


class Order(models.Model):
    """A delivery request between two addresses"""

    client = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='orders'
    )

    delivery_person = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_orders'
    )

    # Route
    origin_address = models.TextField()
    origin_latitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    origin_longitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    destination_address = models.TextField()
    destination_latitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    destination_longitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    distance_km = models.DecimalField(max_digits=8, decimal_places=2)
    duration_minutes = models.IntegerField(null=True, blank=True)
    notes = models.TextField(blank=True, default='')

    # Pricing
    delivery_fee = models.DecimalField(max_digits=10, decimal_places=2)
    platform_fee = models.DecimalField(max_digits=10, decimal_places=2)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.CREDIT_CARD,
    )

    status = models.CharField(max_length=30, choices=OrderStatus.choices, default=OrderStatus.PENDING)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    picked_up_at = models.DateTimeField(null=True, blank=True)
    in_transit_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'orders'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'delivery_person'], name='order_status_dp_idx'),
        ]

    def __str__(self):
        return f"Order #{self.id} - {self.client} - {self.status}"

    @property
    def has_origin_coordinates(self) -> bool:
        return self.origin_latitude is not None and self.origin_longitude is not None


class OrderOffer(models.Model):
    """One timed, exclusive proposal of an order to one delivery person."""

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='offers'
    )

    delivery_person = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='order_offers'
    )

    distance_to_pickup_km = models.FloatField(null=True, blank=True)
    attempt_number = models.PositiveIntegerField(default=1)

    status = models.CharField(max_length=20, choices=OfferStatus.choices, default=OfferStatus.PENDING)
    failure_reason = models.CharField(
        max_length=20,
        choices=OfferFailureReason.choices,
        null=True,
        blank=True,
    )

    offered_at = models.DateTimeField()
    # Set once at creation, never rewritten
    expires_at = models.DateTimeField()
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'order_offers'
        ordering = ['offered_at', 'id']
        indexes = [
            models.Index(fields=['status', 'expires_at'], name='offer_status_expiry_idx'),
            models.Index(fields=['delivery_person', 'status'], name='offer_dp_status_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['order'],
                condition=Q(status='PENDING'),
                name='unique_pending_offer_per_order',
            ),
        ]

    def __str__(self):
        return f"Offer #{self.id} - Order {self.order_id} -> {self.delivery_person_id} ({self.status})"


class SystemConfig(models.Model):
    """Key/value configuration store edited by administrators (rates, fees)."""

    key = models.CharField(max_length=64, unique=True)
    value = models.CharField(max_length=255)
    description = models.TextField(blank=True, default='')
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'system_config'
        ordering = ['key']

    def __str__(self):
        return f"{self.key}={self.value}"
