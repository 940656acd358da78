from django.contrib import admin

from .models import Borrowing, BorrowingRepayment, Collection, Loan


class ReadOnlyAdmin(admin.ModelAdmin):
    """
    Ledger rows change only through the API so every balance movement is
    locked, versioned and audited.
    """

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class CollectionInline(admin.TabularInline):
    model = Collection
    extra = 0
    can_delete = False
    fields = ['receipt_number', 'collection_date', 'amount', 'interest_amount', 'principal_amount', 'collected_by']
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Loan)
class LoanAdmin(ReadOnlyAdmin):
    list_display = [
        'loan_number',
        'customer',
        'principal',
        'outstanding_principal',
        'outstanding_interest',
        'status',
        'start_date',
    ]
    list_filter = ['status', 'repayment_frequency', 'start_date']
    search_fields = ['loan_number', 'customer__user__email', 'customer__user__first_name']
    inlines = [CollectionInline]


@admin.register(Collection)
class CollectionAdmin(ReadOnlyAdmin):
    list_display = ['receipt_number', 'loan', 'amount', 'payment_method', 'collection_date', 'collected_by']
    list_filter = ['payment_method', 'collection_date']
    search_fields = ['receipt_number', 'loan__loan_number']


class BorrowingRepaymentInline(admin.TabularInline):
    model = BorrowingRepayment
    extra = 0
    can_delete = False
    fields = ['amount', 'repaid_on', 'recorded_by', 'remarks']
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Borrowing)
class BorrowingAdmin(ReadOnlyAdmin):
    list_display = ['lender_name', 'amount', 'outstanding', 'total_repaid', 'status', 'start_date']
    list_filter = ['status']
    search_fields = ['lender_name', 'lender_email']
    inlines = [BorrowingRepaymentInline]
