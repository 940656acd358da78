from rest_framework import serializers
from .models import AgentAssignment, Customer


# =========== customer serializers ==========#


class AgentAssignmentSerializer(serializers.ModelSerializer):
    agent_email = serializers.EmailField(source='agent.email', read_only=True)
    agent_name = serializers.CharField(source='agent.get_full_name', read_only=True)

    class Meta:
        model = AgentAssignment
        fields = ['id', 'agent', 'agent_email', 'agent_name', 'is_active', 'assigned_at', 'deactivated_at']
        read_only_fields = fields


class CustomerSerializer(serializers.ModelSerializer):
    user_id = serializers.IntegerField(source='user.id', read_only=True)
    email = serializers.EmailField(source='user.email', read_only=True)
    first_name = serializers.CharField(source='user.first_name', read_only=True)
    last_name = serializers.CharField(source='user.last_name', read_only=True)
    phone = serializers.CharField(source='user.phone', read_only=True)
    address = serializers.CharField(source='user.address', read_only=True)
    assignments = AgentAssignmentSerializer(many=True, read_only=True)

    class Meta:
        model = Customer
        fields = [
            'id',
            'user_id',
            'email',
            'first_name',
            'last_name',
            'phone',
            'address',
            'kyc_status',
            'id_proof',
            'date_of_birth',
            'assignments',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class CustomerCreateSerializer(serializers.Serializer):
    """
    Input for creating a customer: the login user and the profile together.
    """
    email = serializers.EmailField()
    password = serializers.CharField(
        write_only=True,
        required=False,
        allow_blank=True,
        style={'input_type': 'password'}
    )
    first_name = serializers.CharField(max_length=150)
    last_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default='')
    phone = serializers.CharField(max_length=17, required=False, allow_blank=True, allow_null=True)
    address = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    kyc_status = serializers.ChoiceField(choices=Customer.KYC_STATUS_CHOICES, default=Customer.KYC_PENDING)
    id_proof = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    date_of_birth = serializers.DateField(required=False, allow_null=True)

    def validate_password(self, value):
        return value or None


class AgentAssignSerializer(serializers.Serializer):
    agent_id = serializers.IntegerField()


class CustomerUpdateSerializer(serializers.Serializer):
    """
    Partial profile update. ``kyc_status`` records the verification verdict.
    """
    first_name = serializers.CharField(max_length=150, required=False)
    last_name = serializers.CharField(max_length=150, required=False, allow_blank=True)
    phone = serializers.CharField(max_length=17, required=False, allow_blank=True, allow_null=True)
    address = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    kyc_status = serializers.ChoiceField(choices=Customer.KYC_STATUS_CHOICES, required=False)
    id_proof = serializers.CharField(max_length=100, required=False, allow_blank=True)
    date_of_birth = serializers.DateField(required=False, allow_null=True)
