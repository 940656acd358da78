from rest_framework import serializers

from .models import AuditLog


class AuditLogSerializer(serializers.ModelSerializer):
    """
    Read-only representation of an audit row.
    """
    action_display = serializers.CharField(source='get_action_display', read_only=True)

    class Meta:
        model = AuditLog
        fields = [
            'id',
            'actor_id',
            'actor_email',
            'action',
            'action_display',
            'entity_type',
            'entity_id',
            'before_data',
            'after_data',
            'ip_address',
            'user_agent',
            'remarks',
            'created_at',
        ]
        read_only_fields = fields
