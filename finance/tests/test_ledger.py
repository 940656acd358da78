from datetime import date
from decimal import Decimal

from unittest.mock import patch

import pytest
from django.db import IntegrityError
from django.db.models import F

from finance.interest import SimpleInterestPolicy
from finance.ledger import LedgerEngine, allocate
from finance.models import Collection, ImmutableRecordError, Loan
from loanbook_backend.exceptions import (
    ConflictError,
    NotFoundError,
    OverpaymentError,
    ValidationError,
)

LEDGER_DATE = date(2024, 1, 1)


class ConcurrentWriterPolicy(SimpleInterestPolicy):
    """Bumps the loan's version mid-posting, as a competing request would."""

    def accrue(self, loan, as_of):
        Loan.objects.filter(pk=loan.pk).update(version=F('version') + 1)
        return super().accrue(loan, as_of)


def test_allocate_is_interest_first():
    allocation = allocate(Decimal("300.00"), Decimal("200.00"))
    assert allocation.interest_portion == Decimal("200.00")
    assert allocation.principal_portion == Decimal("100.00")

    partial = allocate(Decimal("50.00"), Decimal("200.00"))
    assert partial.interest_portion == Decimal("50.00")
    assert partial.principal_portion == Decimal("0.00")


@pytest.mark.django_db
class TestPostCollection:

    @pytest.fixture
    def engine(self):
        return LedgerEngine()

    def post(self, engine, loan, amount, **kwargs):
        kwargs.setdefault("collection_date", LEDGER_DATE)
        return engine.post_collection(loan.pk, amount, Collection.CASH, posted_by=loan.created_by, **kwargs)

    def test_interest_first_split(self, engine, customer, make_loan):
        loan = make_loan(customer, principal="10000.00", outstanding_interest="200.00")

        result = self.post(engine, loan, "300.00")

        assert result.allocation.interest_portion == Decimal("200.00")
        assert result.allocation.principal_portion == Decimal("100.00")
        loan.refresh_from_db()
        assert loan.outstanding_principal == Decimal("9900.00")
        assert loan.outstanding_interest == Decimal("0.00")
        assert loan.total_collected == Decimal("300.00")
        assert loan.status == Loan.ACTIVE
        assert loan.version == 1

        collection = result.collection
        assert collection.amount == collection.principal_amount + collection.interest_amount
        assert collection.receipt_number.startswith("RCP-")
        assert result.before.outstanding_principal == Decimal("10000.00")

    def test_overpayment_is_rejected_without_changes(self, engine, customer, make_loan):
        loan = make_loan(customer, principal="1000.00", outstanding="100.00")

        with pytest.raises(OverpaymentError) as excinfo:
            self.post(engine, loan, "150.00")

        assert excinfo.value.excess == Decimal("50.00")
        assert excinfo.value.outstanding == Decimal("100.00")
        loan.refresh_from_db()
        assert loan.outstanding_principal == Decimal("100.00")
        assert loan.version == 0
        assert not Collection.objects.exists()

    def test_exact_payoff_closes_loan(self, engine, customer, make_loan):
        loan = make_loan(customer, principal="1000.00", outstanding="100.00")

        self.post(engine, loan, "100.00")

        loan.refresh_from_db()
        assert loan.outstanding_principal == Decimal("0.00")
        assert loan.status == Loan.CLOSED
        assert loan.closed_at is not None

    def test_second_posting_sees_updated_balance(self, engine, customer, make_loan):
        loan = make_loan(customer, principal="1000.00", outstanding="60.00")

        self.post(engine, loan, "50.00")
        with pytest.raises(OverpaymentError) as excinfo:
            self.post(engine, loan, "50.00")

        assert excinfo.value.excess == Decimal("40.00")
        loan.refresh_from_db()
        assert loan.outstanding_principal == Decimal("10.00")
        assert Collection.objects.filter(loan=loan).count() == 1

    def test_lost_version_race_conflicts(self, customer, make_loan):
        loan = make_loan(customer, principal="1000.00", outstanding="60.00")
        engine = LedgerEngine(policy=ConcurrentWriterPolicy())

        with pytest.raises(ConflictError):
            self.post(engine, loan, "50.00")

        loan.refresh_from_db()
        assert loan.outstanding_principal == Decimal("60.00")
        assert not Collection.objects.exists()

    def test_accrues_interest_up_to_collection_date(self, engine, customer, make_loan):
        loan = make_loan(customer, principal="10000.00", interest_rate="12.00")

        result = self.post(engine, loan, "250.00", collection_date=date(2024, 3, 10))

        assert result.allocation.accrued_interest == Decimal("200.00")
        assert result.allocation.principal_portion == Decimal("50.00")
        loan.refresh_from_db()
        assert loan.interest_accrued_through == date(2024, 3, 1)
        assert loan.outstanding_principal == Decimal("9950.00")

    def test_partial_interest_leaves_remainder(self, engine, customer, make_loan):
        loan = make_loan(customer, outstanding_interest="200.00")

        self.post(engine, loan, "80.00")

        loan.refresh_from_db()
        assert loan.outstanding_interest == Decimal("120.00")
        assert loan.outstanding_principal == Decimal("10000.00")

    def test_matching_claimed_split_is_accepted(self, engine, customer, make_loan):
        loan = make_loan(customer, outstanding_interest="200.00")
        result = self.post(
            engine, loan, "300.00",
            claimed_split={"principal_amount": "100.00", "interest_amount": "200.00"},
        )
        assert result.collection.principal_amount == Decimal("100.00")

    def test_mismatched_claimed_split_is_rejected(self, engine, customer, make_loan):
        loan = make_loan(customer, outstanding_interest="200.00")

        with pytest.raises(ValidationError) as excinfo:
            self.post(
                engine, loan, "300.00",
                claimed_split={"principal_amount": "300.00", "interest_amount": "0.00"},
            )

        split = excinfo.value.detail["split"]
        assert split["principal_amount"] == {"submitted": "300.00", "computed": "100.00"}
        assert not Collection.objects.exists()

    def test_duplicate_receipt_conflicts(self, engine, customer, make_loan):
        loan = make_loan(customer)
        self.post(engine, loan, "10.00", receipt_number="RCP-0001")

        with pytest.raises(ConflictError):
            self.post(engine, loan, "10.00", receipt_number="RCP-0001")

    @pytest.mark.parametrize("amount", ["0", "-5.00", "abc"])
    def test_invalid_amount(self, engine, customer, make_loan, amount):
        loan = make_loan(customer)
        with pytest.raises(ValidationError):
            self.post(engine, loan, amount)

    def test_closed_loan_rejects_collections(self, engine, customer, make_loan):
        loan = make_loan(customer, outstanding="0.00", status=Loan.CLOSED)
        with pytest.raises(ValidationError):
            self.post(engine, loan, "10.00")

    def test_failed_row_insert_rolls_back_balance(self, engine, customer, make_loan):
        loan = make_loan(customer, principal="10000.00")

        with patch("finance.ledger.Collection.objects.create", side_effect=IntegrityError("duplicate")):
            with pytest.raises(ConflictError):
                self.post(engine, loan, "300.00")

        loan.refresh_from_db()
        assert loan.outstanding_principal == Decimal("10000.00")
        assert loan.total_collected == Decimal("0.00")
        assert loan.version == 0

    def test_missing_loan(self, engine, admin_user):
        with pytest.raises(NotFoundError):
            engine.post_collection(999999, "10.00", Collection.CASH, posted_by=admin_user)

    def test_posted_collection_is_immutable(self, engine, customer, make_loan):
        loan = make_loan(customer)
        collection = self.post(engine, loan, "10.00").collection

        collection.remarks = "edited"
        with pytest.raises(ImmutableRecordError):
            collection.save()
        with pytest.raises(ImmutableRecordError):
            collection.delete()
