"""Tells what to show in the Django admin interface for rides app"""

from django.contrib import admin
from .models import Ride, RideNotification


class RideNotificationInline(admin.TabularInline):
    model = RideNotification
    extra = 0
    fields = ("driver", "distance_km", "status", "created_at", "expires_at", "responded_at")
    readonly_fields = fields
    can_delete = False


@admin.register(Ride)
class RideAdmin(admin.ModelAdmin):
    """Ride admin"""
    list_display = ['id', 'passenger', 'driver', 'status', 'requested_at', 'broadcast_deadline', 'accepted_at']
    list_filter = ['status', 'requested_at']
    search_fields = ['passenger__username', 'driver__username', 'pickup_address']
    readonly_fields = ['requested_at', 'broadcast_deadline', 'broadcast_at', 'accepted_at',
                       'started_at', 'completed_at', 'cancelled_at', 'expired_at']
    date_hierarchy = 'requested_at'
    inlines = [RideNotificationInline]


@admin.register(RideNotification)
class RideNotificationAdmin(admin.ModelAdmin):
    list_display = ("id", "ride", "driver", "distance_km", "status", "created_at", "expires_at", "responded_at")
    list_filter = ("status",)
    search_fields = ("ride__id", "driver__username")
