"""Tells what to show in the Django admin interface for offers app"""

from django.contrib import admin
from .models import Offer


@admin.register(Offer)
class OfferAdmin(admin.ModelAdmin):
    """Offer admin. Status fields are read-only: changes go through the state machine."""
    list_display = ['id', 'title', 'business', 'accepted_by', 'status', 'payment_amount', 'created_at', 'accepted_at', 'completed_at']
    list_filter = ['status', 'payment_method', 'is_fragile', 'created_at']
    search_fields = ['title', 'business__username', 'accepted_by__username', 'pickup_address', 'delivery_address']
    readonly_fields = ['status', 'accepted_by', 'status_history', 'version', 'created_at', 'accepted_at',
                       'picked_up_at', 'in_transit_at', 'delivered_at', 'completed_at', 'cancelled_at', 'updated_at']
    date_hierarchy = 'created_at'
