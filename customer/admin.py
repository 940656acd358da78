from django.contrib import admin

from .models import AgentAssignment, Customer


class AgentAssignmentInline(admin.TabularInline):
    model = AgentAssignment
    extra = 0
    can_delete = False
    readonly_fields = ['agent', 'is_active', 'assigned_at', 'deactivated_at']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'kyc_status', 'date_of_birth', 'created_at']
    list_filter = ['kyc_status', 'created_at']
    search_fields = ['user__email', 'user__first_name', 'user__last_name', 'id_proof']
    readonly_fields = ['user', 'created_at', 'updated_at']
    inlines = [AgentAssignmentInline]

    def has_delete_permission(self, request, obj=None):
        return False
