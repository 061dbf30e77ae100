from django.contrib import admin
from drivers.models import DriverLocation


@admin.register(DriverLocation)
class DriverLocationAdmin(admin.ModelAdmin):
    """Admin panel for live driver locations"""

    list_display = [
        "driver",
        "is_online",
        "latitude",
        "longitude",
        "last_update",
    ]

    list_filter = [
        "is_online",
        "last_update",
    ]

    search_fields = [
        "driver__username",
    ]

    readonly_fields = [
        "last_update",
    ]

    ordering = ("driver__username",)
