"""
Ledger models: loans, their repayment collections, and the borrowings that
fund the loan book.

Balances on Loan and Borrowing are only ever changed by finance.ledger, under
a row lock and a version compare-and-set. Collection and BorrowingRepayment
rows are immutable once written.
"""
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.db.models.functions import Round

ZERO = Decimal('0.00')


class ImmutableRecordError(Exception):
    """Raised when code tries to change or remove a posted ledger row."""


class ImmutableModel(models.Model):
    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableRecordError(f"{self.__class__.__name__} rows cannot be changed once posted.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError(f"{self.__class__.__name__} rows cannot be deleted.")


# ============================================================
# LOAN
# ============================================================
class Loan(models.Model):
    """
    A loan granted to one customer.

    Business Rules:
    - principal never changes after origination
    - 0 <= outstanding_principal <= principal
    - status becomes CLOSED only when outstanding_principal reaches zero
    """

    DAILY = 'DAILY'
    WEEKLY = 'WEEKLY'
    MONTHLY = 'MONTHLY'
    QUARTERLY = 'QUARTERLY'
    HALF_YEARLY = 'HALF_YEARLY'
    YEARLY = 'YEARLY'

    FREQUENCY_CHOICES = [
        (DAILY, 'Daily'),
        (WEEKLY, 'Weekly'),
        (MONTHLY, 'Monthly'),
        (QUARTERLY, 'Quarterly'),
        (HALF_YEARLY, 'Half Yearly'),
        (YEARLY, 'Yearly'),
    ]

    PERIODS_PER_YEAR = {
        DAILY: 365,
        WEEKLY: 52,
        MONTHLY: 12,
        QUARTERLY: 4,
        HALF_YEARLY: 2,
        YEARLY: 1,
    }

    PENDING = 'PENDING'
    ACTIVE = 'ACTIVE'
    CLOSED = 'CLOSED'

    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (ACTIVE, 'Active'),
        (CLOSED, 'Closed'),
    ]

    OPEN_STATUSES = (PENDING, ACTIVE)

    loan_number = models.CharField(max_length=40, unique=True)
    customer = models.ForeignKey(
        'customer.Customer',
        on_delete=models.PROTECT,
        related_name='loans'
    )

    principal = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    interest_rate = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        validators=[MinValueValidator(ZERO)],
        help_text="Annual interest rate in percent"
    )
    repayment_frequency = models.CharField(max_length=20, choices=FREQUENCY_CHOICES, default=MONTHLY)
    tenure_installments = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    start_date = models.DateField()

    outstanding_principal = models.DecimalField(max_digits=14, decimal_places=2)
    outstanding_interest = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=ZERO,
        help_text="Interest accrued and not yet paid"
    )
    interest_accrued_through = models.DateField(
        help_text="Interest has been accounted for up to this date"
    )
    total_collected = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='created_loans'
    )
    closed_at = models.DateTimeField(null=True, blank=True)
    version = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'loans'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['customer', 'status'], name='loans_customer_status_idx'),
            models.Index(fields=['status'], name='loans_status_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(outstanding_principal__gte=0) & Q(outstanding_principal__lte=F('principal')),
                name='loan_outstanding_within_principal',
            ),
            models.CheckConstraint(condition=Q(outstanding_interest__gte=0), name='loan_outstanding_interest_non_negative'),
            models.CheckConstraint(condition=Q(total_collected__gte=0), name='loan_total_collected_non_negative'),
        ]

    def __str__(self):
        return f"{self.loan_number} ({self.status})"

    @property
    def periods_per_year(self):
        return self.PERIODS_PER_YEAR[self.repayment_frequency]

    @property
    def is_open(self):
        return self.status in self.OPEN_STATUSES


# ============================================================
# COLLECTION
# ============================================================
class Collection(ImmutableModel):
    """
    One repayment against a loan. The split is computed by the ledger,
    interest first.
    """

    CASH = 'CASH'
    UPI = 'UPI'
    BANK_TRANSFER = 'BANK_TRANSFER'
    CHEQUE = 'CHEQUE'
    OTHER = 'OTHER'

    PAYMENT_METHOD_CHOICES = [
        (CASH, 'Cash'),
        (UPI, 'UPI'),
        (BANK_TRANSFER, 'Bank Transfer'),
        (CHEQUE, 'Cheque'),
        (OTHER, 'Other'),
    ]

    loan = models.ForeignKey(Loan, on_delete=models.PROTECT, related_name='collections')
    collected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='recorded_collections'
    )

    amount = models.DecimalField(max_digits=14, decimal_places=2)
    principal_amount = models.DecimalField(max_digits=14, decimal_places=2)
    interest_amount = models.DecimalField(max_digits=14, decimal_places=2)

    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, default=CASH)
    receipt_number = models.CharField(max_length=64, unique=True)
    collection_date = models.DateField()
    remarks = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'collections'
        ordering = ['-collection_date', '-id']
        indexes = [
            models.Index(fields=['loan', '-collection_date'], name='collections_loan_date_idx'),
            models.Index(fields=['collected_by'], name='collections_agent_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount=Round(F('principal_amount') + F('interest_amount'), 2)),
                name='collection_amount_equals_split',
            ),
            models.CheckConstraint(condition=Q(amount__gt=0), name='collection_amount_positive'),
            models.CheckConstraint(
                condition=Q(principal_amount__gte=0) & Q(interest_amount__gte=0),
                name='collection_split_non_negative',
            ),
        ]

    def __str__(self):
        return f"{self.receipt_number}: {self.amount} on {self.loan_id}"


# ============================================================
# BORROWING
# ============================================================
class Borrowing(models.Model):
    """
    Funds raised from a third-party lender.

    Business Rules:
    - outstanding = amount - total_repaid
    - outstanding never goes negative
    """

    ACTIVE = 'ACTIVE'
    CLOSED = 'CLOSED'
    DEFAULTED = 'DEFAULTED'

    STATUS_CHOICES = [
        (ACTIVE, 'Active'),
        (CLOSED, 'Closed'),
        (DEFAULTED, 'Defaulted'),
    ]

    REPAYABLE_STATUSES = (ACTIVE, DEFAULTED)

    lender_name = models.CharField(max_length=200)
    lender_phone = models.CharField(max_length=20, blank=True)
    lender_email = models.EmailField(blank=True)

    amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    interest_rate = models.DecimalField(max_digits=6, decimal_places=2, default=ZERO)
    start_date = models.DateField()
    end_date = models.DateField(null=True, blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=ACTIVE)
    outstanding = models.DecimalField(max_digits=14, decimal_places=2)
    total_repaid = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    remarks = models.TextField(blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='created_borrowings'
    )
    version = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'borrowings'
        ordering = ['-start_date', '-id']
        constraints = [
            models.CheckConstraint(
                condition=Q(outstanding=Round(F('amount') - F('total_repaid'), 2)),
                name='borrowing_outstanding_identity',
            ),
            models.CheckConstraint(condition=Q(outstanding__gte=0), name='borrowing_outstanding_non_negative'),
        ]

    def __str__(self):
        return f"{self.lender_name}: {self.outstanding}/{self.amount} ({self.status})"


class BorrowingRepayment(ImmutableModel):
    borrowing = models.ForeignKey(Borrowing, on_delete=models.PROTECT, related_name='repayments')
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    repaid_on = models.DateField()
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='recorded_borrowing_repayments'
    )
    remarks = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'borrowing_repayments'
        ordering = ['-repaid_on', '-id']
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name='borrowing_repayment_amount_positive'),
        ]

    def __str__(self):
        return f"{self.amount} on {self.repaid_on} for borrowing #{self.borrowing_id}"
