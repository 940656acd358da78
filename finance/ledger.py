"""
Posting engine for loan collections and borrowing repayments.

Each posting locks the target row, recomputes the split on the server, and
writes the new balances with a compare-and-set on ``version`` so two postings
can never both succeed against the same starting balance. Every posting is its own
atomic unit; callers nest it in an outer ``transaction.atomic()`` to commit it
together with its audit row (see loanbook_backend.orchestrator).
"""
import logging
import secrets
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from loanbook_backend.exceptions import (
    ConflictError,
    NotFoundError,
    OverpaymentError,
    ValidationError,
)

from .interest import SimpleInterestPolicy, quantize
from .models import Borrowing, BorrowingRepayment, Collection, Loan

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


def to_money(value, field='amount'):
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a decimal number.", field=field)
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a decimal number.", field=field)
    return quantize(amount)


def generate_receipt_number(clock=timezone.now):
    prefix = getattr(settings, 'LOANBOOK', {}).get('RECEIPT_PREFIX', 'RCP')
    return f"{prefix}-{clock().strftime('%Y%m%d%H%M%S')}-{secrets.token_hex(3).upper()}"


def generate_loan_number(clock=timezone.now):
    prefix = getattr(settings, 'LOANBOOK', {}).get('LOAN_NUMBER_PREFIX', 'LN')
    return f"{prefix}-{clock().strftime('%Y%m%d')}-{secrets.token_hex(4).upper()}"


@dataclass
class Allocation:
    amount: Decimal
    accrued_interest: Decimal
    interest_portion: Decimal
    principal_portion: Decimal


@dataclass
class PostingResult:
    collection: Collection
    loan: Loan
    before: Loan
    allocation: Allocation


@dataclass
class RepaymentResult:
    repayment: BorrowingRepayment
    borrowing: Borrowing
    before: Borrowing


def allocate(amount, accrued_interest):
    """
    Interest first: as much of the amount as the accrued interest, the rest
    against principal.
    """
    interest_portion = min(amount, accrued_interest)
    return Allocation(
        amount=amount,
        accrued_interest=accrued_interest,
        interest_portion=interest_portion,
        principal_portion=amount - interest_portion,
    )


class LedgerEngine:
    """
    Applies repayments to loans and borrowings.

    ``policy`` supplies interest accrual and ``clock`` the current time; both
    can be replaced in tests.
    """

    def __init__(self, policy=None, clock=timezone.now):
        self.policy = policy or SimpleInterestPolicy()
        self.clock = clock

    # --------------------------------------------------------
    # Loan collections
    # --------------------------------------------------------
    @transaction.atomic
    def post_collection(self, loan_id, amount, payment_method, receipt_number=None,
                        collection_date=None, posted_by=None, remarks='',
                        claimed_split=None):
        amount = to_money(amount)
        if amount <= ZERO:
            raise ValidationError('Amount must be greater than zero.', field='amount')
        if payment_method not in dict(Collection.PAYMENT_METHOD_CHOICES):
            raise ValidationError(f"Unknown payment method '{payment_method}'.", field='payment_method')

        receipt_number = receipt_number or generate_receipt_number(self.clock)
        if Collection.objects.filter(receipt_number=receipt_number).exists():
            raise ConflictError(f"Receipt number {receipt_number} has already been used.", field='receipt_number')

        collection_date = collection_date or self.clock().date()

        loan = Loan.objects.select_for_update().filter(pk=loan_id).first()
        if loan is None:
            raise NotFoundError(f"Loan {loan_id} not found.")
        if not loan.is_open:
            raise ValidationError(f"Loan {loan.loan_number} is {loan.status} and cannot accept collections.", field='loan')

        accrued = self.policy.accrue(loan, collection_date)
        allocation = allocate(amount, accrued)
        self._check_claimed_split(allocation, claimed_split)

        if allocation.principal_portion > loan.outstanding_principal:
            excess = allocation.principal_portion - loan.outstanding_principal
            logger.warning(
                f"[LedgerEngine] Overpayment rejected on {loan.loan_number}: "
                f"amount={amount} outstanding={loan.outstanding_principal} excess={excess}"
            )
            raise OverpaymentError(excess=excess, outstanding=loan.outstanding_principal)

        new_outstanding = loan.outstanding_principal - allocation.principal_portion
        now = self.clock()
        changes = {
            'outstanding_principal': new_outstanding,
            'outstanding_interest': accrued - allocation.interest_portion,
            'interest_accrued_through': self.policy.accrued_through(loan, collection_date),
            'total_collected': loan.total_collected + amount,
            'updated_at': now,
        }
        if new_outstanding == ZERO:
            changes['status'] = Loan.CLOSED
            changes['closed_at'] = now

        updated = Loan.objects.filter(pk=loan.pk, version=loan.version).update(
            version=F('version') + 1, **changes
        )
        if updated != 1:
            logger.warning(f"[LedgerEngine] Version conflict on loan {loan.loan_number}")
            raise ConflictError()

        try:
            collection = Collection.objects.create(
                loan=loan,
                collected_by=posted_by,
                amount=amount,
                principal_amount=allocation.principal_portion,
                interest_amount=allocation.interest_portion,
                payment_method=payment_method,
                receipt_number=receipt_number,
                collection_date=collection_date,
                remarks=remarks or '',
            )
        except IntegrityError as exc:
            raise ConflictError(
                f"Receipt number {receipt_number} has already been used.", field='receipt_number'
            ) from exc

        before, loan = loan, Loan.objects.get(pk=loan.pk)
        logger.info(
            f"[LedgerEngine] Posted {amount} to {loan.loan_number} "
            f"(interest={allocation.interest_portion}, principal={allocation.principal_portion}, "
            f"outstanding={loan.outstanding_principal}, status={loan.status})"
        )
        return PostingResult(collection=collection, loan=loan, before=before, allocation=allocation)

    def _check_claimed_split(self, allocation, claimed_split):
        if not claimed_split:
            return
        claimed_principal = claimed_split.get('principal_amount')
        claimed_interest = claimed_split.get('interest_amount')
        mismatches = {}
        if claimed_principal is not None and to_money(claimed_principal, 'principal_amount') != allocation.principal_portion:
            mismatches['principal_amount'] = {
                'submitted': str(to_money(claimed_principal, 'principal_amount')),
                'computed': str(allocation.principal_portion),
            }
        if claimed_interest is not None and to_money(claimed_interest, 'interest_amount') != allocation.interest_portion:
            mismatches['interest_amount'] = {
                'submitted': str(to_money(claimed_interest, 'interest_amount')),
                'computed': str(allocation.interest_portion),
            }
        if mismatches:
            raise ValidationError(
                'Submitted principal/interest split does not match the computed allocation.',
                split=mismatches,
            )

    # --------------------------------------------------------
    # Borrowing repayments
    # --------------------------------------------------------
    @transaction.atomic
    def post_borrowing_repayment(self, borrowing_id, amount, repaid_on=None, recorded_by=None, remarks=''):
        amount = to_money(amount)
        if amount <= ZERO:
            raise ValidationError('Amount must be greater than zero.', field='amount')

        borrowing = Borrowing.objects.select_for_update().filter(pk=borrowing_id).first()
        if borrowing is None:
            raise NotFoundError(f"Borrowing {borrowing_id} not found.")
        if borrowing.status not in Borrowing.REPAYABLE_STATUSES:
            raise ValidationError(f"Borrowing is {borrowing.status} and cannot accept repayments.", field='borrowing')
        if amount > borrowing.outstanding:
            excess = amount - borrowing.outstanding
            logger.warning(
                f"[LedgerEngine] Borrowing overpayment rejected on #{borrowing.pk}: "
                f"amount={amount} outstanding={borrowing.outstanding} excess={excess}"
            )
            raise OverpaymentError(excess=excess, outstanding=borrowing.outstanding)

        new_outstanding = borrowing.outstanding - amount
        changes = {
            'outstanding': new_outstanding,
            'total_repaid': borrowing.total_repaid + amount,
            'updated_at': self.clock(),
        }
        if new_outstanding == ZERO:
            changes['status'] = Borrowing.CLOSED

        updated = Borrowing.objects.filter(pk=borrowing.pk, version=borrowing.version).update(
            version=F('version') + 1, **changes
        )
        if updated != 1:
            logger.warning(f"[LedgerEngine] Version conflict on borrowing #{borrowing.pk}")
            raise ConflictError()

        repayment = BorrowingRepayment.objects.create(
            borrowing=borrowing,
            amount=amount,
            repaid_on=repaid_on or self.clock().date(),
            recorded_by=recorded_by,
            remarks=remarks or '',
        )
        before, borrowing = borrowing, Borrowing.objects.get(pk=borrowing.pk)
        logger.info(
            f"[LedgerEngine] Repaid {amount} on borrowing #{borrowing.pk} "
            f"(outstanding={borrowing.outstanding}, status={borrowing.status})"
        )
        return RepaymentResult(repayment=repayment, borrowing=borrowing, before=before)
