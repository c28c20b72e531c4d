"""Role-based DRF permissions shared by the marketplace apps."""

from rest_framework import permissions


def _user(request):
    user = getattr(request, 'user', None)
    if not user or not user.is_authenticated:
        return None
    return user


class IsBuyer(permissions.BasePermission):
    """
    Allow only buyer accounts (checkout, cart).
    """
    message = 'Only buyer accounts can perform this action.'

    def has_permission(self, request, view):
        user = _user(request)
        return bool(user and getattr(user, 'user_type', None) == 'buyer')


class IsDeliveryAgent(permissions.BasePermission):
    """Allow only delivery agents."""

    message = 'Only delivery agents can perform this action.'

    def has_permission(self, request, view):
        user = _user(request)
        return bool(user and getattr(user, 'user_type', None) == 'delivery')


class IsPlatformAdmin(permissions.BasePermission):
    """Allow marketplace administrators (role ``admin`` or Django staff)."""

    message = 'Administrator access required.'

    def has_permission(self, request, view):
        user = _user(request)
        return bool(user and getattr(user, 'is_platform_admin', False))


class IsDeliveryAgentOrAdmin(permissions.BasePermission):
    """Delivery agents act on their own deliveries; admins on any."""

    def has_permission(self, request, view):
        user = _user(request)
        if not user:
            return False
        return getattr(user, 'user_type', None) == 'delivery' or getattr(user, 'is_platform_admin', False)
