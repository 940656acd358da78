from rest_framework import permissions


class IsAuthenticatedUser(permissions.BasePermission):
    """
    Permission for any authenticated, active user. Finer checks are made by
    the permission gate inside each view.
    """
    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_active)
