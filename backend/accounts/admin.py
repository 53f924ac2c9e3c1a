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
        "completed_deliveries",
        "is_active",
    ]

    list_filter = [
        "role",
        "is_active",
        "date_joined",
    ]

    search_fields = [
        "username",
        "email",
        "phone_number",
    ]

    ordering = ("username",)

    fieldsets = BaseUserAdmin.fieldsets + (
        ("Marketplace", {"fields": ("role", "phone_number", "completed_deliveries")}),
    )

    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ("Marketplace", {"fields": ("role", "phone_number")}),
    )
