"""Tells what to show in the Django admin interface for the orders app"""

from django.contrib import admin
from .models import Order, OrderOffer, SystemConfig


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['id', 'client', 'delivery_person', 'status', 'price', 'payment_method', 'created_at', 'accepted_at']
    list_filter = ['status', 'payment_method', 'created_at']
    search_fields = ['client__username', 'delivery_person__username', 'origin_address', 'destination_address']
    readonly_fields = ['created_at', 'accepted_at', 'picked_up_at', 'in_transit_at', 'completed_at', 'cancelled_at']
    date_hierarchy = 'created_at'


@admin.register(OrderOffer)
class OrderOfferAdmin(admin.ModelAdmin):
    list_display = ("order", "delivery_person", "attempt_number", "status", "failure_reason", "offered_at", "expires_at")
    list_filter = ("status", "failure_reason")
    search_fields = ("order__id", "delivery_person__username")


@admin.register(SystemConfig)
class SystemConfigAdmin(admin.ModelAdmin):
    """Pricing rates (BASE_FEE, PRICE_PER_KM, PLATFORM_FEE_PERCENTAGE) live here"""
    list_display = ("key", "value", "updated_at")
    search_fields = ("key",)
