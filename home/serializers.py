from rest_framework import serializers
from django.contrib.auth.password_validation import validate_password
from .models import CustomUser as User, ManagerGrant


class ManagerGrantSerializer(serializers.ModelSerializer):
    class Meta:
        model = ManagerGrant
        fields = ['can_delete_collections', 'can_delete_users', 'can_delete_customers', 'updated_at']
        read_only_fields = ['updated_at']


class UserSerializer(serializers.ModelSerializer):
    """
    Serializer for User model - used for user profile display.
    """
    full_name = serializers.CharField(source='get_full_name', read_only=True)
    grants = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id',
            'email',
            'first_name',
            'last_name',
            'full_name',
            'phone',
            'address',
            'role',
            'is_active',
            'grants',
            'date_joined'
        ]
        read_only_fields = fields

    def get_grants(self, obj):
        grants = obj.grants
        if grants is None:
            return None
        return ManagerGrantSerializer(grants).data


class UserCreateSerializer(serializers.Serializer):
    """
    Input for creating a back-office user or a bare customer-role user.
    """
    email = serializers.EmailField()
    password = serializers.CharField(
        write_only=True,
        required=True,
        validators=[validate_password],
        style={'input_type': 'password'}
    )
    password_confirm = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )
    first_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default='')
    last_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default='')
    phone = serializers.CharField(max_length=17, required=False, allow_blank=True, allow_null=True)
    address = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    role = serializers.ChoiceField(choices=User.ROLE_CHOICES, default=User.AGENT)

    def validate(self, attrs):
        """
        Verify that passwords match.
        """
        if attrs['password'] != attrs.pop('password_confirm'):
            raise serializers.ValidationError({
                "password_confirm": "Passwords do not match."
            })
        return attrs


class GrantUpdateSerializer(serializers.Serializer):
    """
    Partial update of a manager's delete grants. Omitted grants are unchanged.
    """
    can_delete_collections = serializers.BooleanField(required=False)
    can_delete_users = serializers.BooleanField(required=False)
    can_delete_customers = serializers.BooleanField(required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("At least one grant must be provided.")
        return attrs


class DeletionCheckSerializer(serializers.Serializer):
    allowed = serializers.BooleanField()
    reason = serializers.CharField()
    code = serializers.CharField()
    blocking_count = serializers.IntegerField(allow_null=True)
