from rest_framework.permissions import BasePermission

from .models import UserRole


class _RolePermission(BasePermission):
    """Allows access only to authenticated users holding one of `roles`."""
    roles = ()

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False
        return getattr(user, "role", None) in self.roles


class IsClient(_RolePermission):
    roles = (UserRole.CLIENT, UserRole.ESTABLISHMENT)


class IsDeliveryPerson(_RolePermission):
    roles = (UserRole.DELIVERY_PERSON,)


class IsAdminRole(BasePermission):
    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        return bool(user and user.is_authenticated and user.is_admin_role)
