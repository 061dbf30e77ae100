from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from accounts.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin panel for custom User model"""

    list_display = [
        "username",
        "email",
        "role",
        "phone_number",
        "is_active",
        "is_staff",
    ]

    list_filter = [
        "role",
        "is_active",
        "is_staff",
        "date_joined",
    ]

    search_fields = [
        "username",
        "email",
        "phone_number",
    ]

    ordering = ("username",)

    # Extend default Django UserAdmin fieldsets
    fieldsets = BaseUserAdmin.fieldsets + (
        (
            "Dispatch Info",
            {
                "fields": (
                    "role",
                    "phone_number",
                )
            },
        ),
    )

    # For create user page in admin
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        (
            "Dispatch Info",
            {
                "fields": (
                    "role",
                    "phone_number",
                )
            },
        ),
    )
