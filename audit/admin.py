from django.contrib import admin

from .models import AuditLog


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    """
    Audit rows are browsable but can never be added, changed or removed here.
    """
    list_display = ['created_at', 'action', 'entity_type', 'entity_id', 'actor_email', 'ip_address']
    list_filter = ['action', 'entity_type', 'created_at']
    search_fields = ['actor_email', 'entity_id', 'remarks']
    ordering = ['-created_at']
    readonly_fields = [f.name for f in AuditLog._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
