from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _
from .models import CustomUser as User, ManagerGrant


class ManagerGrantInline(admin.StackedInline):
    model = ManagerGrant
    can_delete = False
    extra = 0
    max_num = 1
    readonly_fields = ManagerGrant.GRANT_FIELDS + ('updated_at',)

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Custom admin interface for User model.
    Deletion is disabled here; users are removed through the API so the
    referential checks and the audit trail always apply.
    """
    list_display = [
        'email',
        'first_name',
        'last_name',
        'role',
        'is_active',
        'date_joined'
    ]
    list_filter = [
        'role',
        'is_active',
        'is_staff',
        'is_superuser',
        'date_joined'
    ]
    search_fields = ['email', 'first_name', 'last_name', 'phone']
    ordering = ['-date_joined']

    fieldsets = (
        (None, {
            'fields': ('email', 'password')
        }),
        (_('Personal Info'), {
            'fields': (
                'first_name',
                'last_name',
                'phone',
                'address',
            )
        }),
        (_('Role'), {
            'fields': ('role',)
        }),
        (_('Permissions'), {
            'fields': (
                'is_active',
                'is_staff',
                'is_superuser',
                'groups',
                'user_permissions'
            )
        }),
        (_('Important Dates'), {
            'fields': ('last_login', 'date_joined', 'updated_at')
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': (
                'email',
                'password1',
                'password2',
                'first_name',
                'last_name',
                'role',
                'is_active',
            ),
        }),
    )

    readonly_fields = ['date_joined', 'last_login', 'updated_at']

    def get_inlines(self, request, obj):
        if obj is not None and obj.role == User.MANAGER:
            return [ManagerGrantInline]
        return []

    def has_delete_permission(self, request, obj=None):
        return False
