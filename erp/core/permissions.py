from rest_framework.permissions import BasePermission

from .utils import is_admin_user


class IsAdmin(BasePermission):
    """Allows access to staff, superusers and members of the Admin group"""
    message = 'Admin access required.'

    def has_permission(self, request, view):
        return is_admin_user(request.user)
