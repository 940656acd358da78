"""
Coarse, role-only DRF permission classes.

Record-level decisions (ownership, agent assignment, manager grants) are made
by home.gate.PermissionGate inside the views and the orchestrator.
"""

from rest_framework import permissions


class IsAdminOrManager(permissions.BasePermission):
    """
    Permission for Admin and Manager roles.
    """
    def has_permission(self, request, view):
        user = request.user
        return (
            user
            and user.is_authenticated
            and (user.is_admin_user() or user.is_manager())
        )
