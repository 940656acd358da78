from decimal import Decimal
from rest_framework import serializers
from .models import Borrowing, BorrowingRepayment, Collection, Loan


# ------------------------------
# Loan Serializers
# ------------------------------
class LoanSerializer(serializers.ModelSerializer):
    """
    Loan with its running balances. Balances are read-only; they only move
    through collections.
    """
    customer_name = serializers.CharField(source='customer.user.get_full_name', read_only=True)
    created_by_email = serializers.EmailField(source='created_by.email', read_only=True)

    class Meta:
        model = Loan
        fields = [
            # Identifiers
            'id',
            'loan_number',
            'customer',
            'customer_name',

            # Terms
            'principal',
            'interest_rate',
            'repayment_frequency',
            'tenure_installments',
            'start_date',

            # Balances
            'outstanding_principal',
            'outstanding_interest',
            'interest_accrued_through',
            'total_collected',

            # Lifecycle
            'status',
            'created_by',
            'created_by_email',
            'closed_at',
            'version',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class LoanCreateSerializer(serializers.Serializer):
    customer_id = serializers.IntegerField()
    principal = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.01'))
    interest_rate = serializers.DecimalField(max_digits=6, decimal_places=2, min_value=Decimal('0.00'))
    repayment_frequency = serializers.ChoiceField(choices=Loan.FREQUENCY_CHOICES, default=Loan.MONTHLY)
    tenure_installments = serializers.IntegerField(min_value=1)
    start_date = serializers.DateField(required=False)


class LoanActivateSerializer(serializers.Serializer):
    activated_on = serializers.DateField(required=False)


# ------------------------------
# Collection Serializers
# ------------------------------
class CollectionSerializer(serializers.ModelSerializer):
    loan_number = serializers.CharField(source='loan.loan_number', read_only=True)
    collected_by_email = serializers.EmailField(source='collected_by.email', read_only=True)

    class Meta:
        model = Collection
        fields = [
            'id',
            'loan',
            'loan_number',
            'amount',
            'principal_amount',
            'interest_amount',
            'payment_method',
            'receipt_number',
            'collection_date',
            'remarks',
            'collected_by',
            'collected_by_email',
            'created_at',
        ]
        read_only_fields = fields


class CollectionCreateSerializer(serializers.Serializer):
    """
    Input for posting a collection. ``principal_amount``/``interest_amount``
    are optional; when sent they must match the split the server computes.
    """
    loan_id = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    payment_method = serializers.ChoiceField(choices=Collection.PAYMENT_METHOD_CHOICES, default=Collection.CASH)
    receipt_number = serializers.CharField(max_length=64, required=False, allow_blank=True)
    collection_date = serializers.DateField(required=False)
    remarks = serializers.CharField(required=False, allow_blank=True, default='')
    principal_amount = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    interest_amount = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)


# ------------------------------
# Borrowing Serializers
# ------------------------------
class BorrowingRepaymentSerializer(serializers.ModelSerializer):
    recorded_by_email = serializers.EmailField(source='recorded_by.email', read_only=True)

    class Meta:
        model = BorrowingRepayment
        fields = ['id', 'borrowing', 'amount', 'repaid_on', 'remarks', 'recorded_by', 'recorded_by_email', 'created_at']
        read_only_fields = fields


class BorrowingSerializer(serializers.ModelSerializer):
    class Meta:
        model = Borrowing
        fields = [
            'id',
            'lender_name',
            'lender_phone',
            'lender_email',
            'amount',
            'interest_rate',
            'start_date',
            'end_date',
            'status',
            'outstanding',
            'total_repaid',
            'remarks',
            'created_by',
            'version',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class BorrowingCreateSerializer(serializers.Serializer):
    lender_name = serializers.CharField(max_length=200)
    lender_phone = serializers.CharField(max_length=20, required=False, allow_blank=True, default='')
    lender_email = serializers.EmailField(required=False, allow_blank=True, default='')
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.01'))
    interest_rate = serializers.DecimalField(max_digits=6, decimal_places=2, min_value=Decimal('0.00'), default=Decimal('0.00'))
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False, allow_null=True)
    remarks = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        start, end = attrs.get('start_date'), attrs.get('end_date')
        if start and end and end < start:
            raise serializers.ValidationError({"end_date": "End date cannot be before start date."})
        return attrs


class BorrowingRepaymentCreateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    repaid_on = serializers.DateField(required=False)
    remarks = serializers.CharField(required=False, allow_blank=True, default='')
