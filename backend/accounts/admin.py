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
        "is_verified",
        "vehicle_type",
        "is_active",
        "is_staff",
    ]

    list_filter = [
        "role",
        "is_verified",
        "vehicle_type",
        "is_active",
        "date_joined",
    ]

    search_fields = [
        "username",
        "email",
        "phone_number",
        "business_name",
    ]

    ordering = ("username",)

    # Extend default Django UserAdmin fieldsets
    fieldsets = BaseUserAdmin.fieldsets + (
        (
            "Marketplace Info",
            {
                "fields": (
                    "role",
                    "phone_number",
                    "is_verified",
                    "business_name",
                    "vehicle_type",
                )
            },
        ),
    )

    # For create user page in admin
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        (
            "Marketplace Info",
            {
                "fields": (
                    "email",
                    "role",
                    "phone_number",
                    "vehicle_type",
                )
            },
        ),
    )
