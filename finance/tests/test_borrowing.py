from datetime import date
from decimal import Decimal

from unittest.mock import patch

import pytest
from django.db import DatabaseError
from django.urls import reverse
from rest_framework import status

from audit.models import AuditLog
from finance.ledger import LedgerEngine
from finance.models import Borrowing, BorrowingRepayment
from loanbook_backend.exceptions import OverpaymentError, ValidationError


@pytest.mark.django_db
class TestBorrowingLedger:

    @pytest.fixture
    def engine(self):
        return LedgerEngine()

    def test_repayment_reduces_outstanding(self, engine, admin_user, make_borrowing):
        borrowing = make_borrowing(amount="5000.00")

        result = engine.post_borrowing_repayment(
            borrowing.pk, "1200.00", repaid_on=date(2024, 2, 1), recorded_by=admin_user
        )

        assert result.borrowing.outstanding == Decimal("3800.00")
        assert result.borrowing.total_repaid == Decimal("1200.00")
        assert result.borrowing.status == Borrowing.ACTIVE
        assert result.before.outstanding == Decimal("5000.00")
        assert result.repayment.repaid_on == date(2024, 2, 1)

    def test_full_repayment_closes_borrowing(self, engine, admin_user, make_borrowing):
        borrowing = make_borrowing(amount="500.00")
        result = engine.post_borrowing_repayment(borrowing.pk, "500.00", recorded_by=admin_user)
        assert result.borrowing.status == Borrowing.CLOSED
        assert result.borrowing.outstanding == Decimal("0.00")

    def test_overpayment_is_rejected(self, engine, admin_user, make_borrowing):
        borrowing = make_borrowing(amount="500.00")
        with pytest.raises(OverpaymentError) as excinfo:
            engine.post_borrowing_repayment(borrowing.pk, "650.00", recorded_by=admin_user)
        assert excinfo.value.excess == Decimal("150.00")
        assert not BorrowingRepayment.objects.exists()

    def test_closed_borrowing_rejects_repayment(self, engine, admin_user, make_borrowing):
        borrowing = make_borrowing(amount="500.00")
        engine.post_borrowing_repayment(borrowing.pk, "500.00", recorded_by=admin_user)
        with pytest.raises(ValidationError):
            engine.post_borrowing_repayment(borrowing.pk, "1.00", recorded_by=admin_user)


    def test_failed_repayment_insert_rolls_back_balance(self, engine, admin_user, make_borrowing):
        borrowing = make_borrowing(amount="500.00")

        with patch("finance.ledger.BorrowingRepayment.objects.create", side_effect=DatabaseError("disk full")):
            with pytest.raises(DatabaseError):
                engine.post_borrowing_repayment(borrowing.pk, "200.00", recorded_by=admin_user)

        borrowing.refresh_from_db()
        assert borrowing.outstanding == Decimal("500.00")
        assert borrowing.total_repaid == Decimal("0.00")
        assert borrowing.version == 0

@pytest.mark.django_db
class TestBorrowingAPI:

    def test_create_list_and_repay(self, api_client, manager_user):
        api_client.force_authenticate(user=manager_user)
        created = api_client.post(
            reverse("borrowing-list"),
            {"lender_name": "Harbour Finance", "amount": "20000.00", "interest_rate": "9.50", "start_date": "2024-01-15"},
            format="json",
        )
        assert created.status_code == status.HTTP_201_CREATED
        borrowing_id = created.data["data"]["id"]

        repaid = api_client.post(
            reverse("borrowing-repayments", args=[borrowing_id]), {"amount": "2500.00"}, format="json"
        )
        assert repaid.status_code == status.HTTP_201_CREATED
        assert repaid.data["data"]["borrowing"]["outstanding"] == "17500.00"

        listing = api_client.get(reverse("borrowing-list"))
        assert listing.data["count"] == 1
        assert Decimal(listing.data["totals"]["total_repaid"]) == Decimal("2500.00")

        history = api_client.get(reverse("borrowing-repayments", args=[borrowing_id]))
        assert len(history.data) == 1

        actions = list(AuditLog.objects.order_by("id").values_list("action", flat=True))
        assert actions == [AuditLog.BORROWING_CREATED, AuditLog.BORROWING_REPAYMENT_RECORDED]

    def test_end_date_before_start(self, api_client, admin_user):
        api_client.force_authenticate(user=admin_user)
        response = api_client.post(
            reverse("borrowing-list"),
            {"lender_name": "X", "amount": "100.00", "start_date": "2024-05-01", "end_date": "2024-04-01"},
            format="json",
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_agents_have_no_access(self, api_client, agent_user, make_borrowing):
        borrowing = make_borrowing()
        api_client.force_authenticate(user=agent_user)
        assert api_client.get(reverse("borrowing-list")).status_code == status.HTTP_403_FORBIDDEN
        response = api_client.post(
            reverse("borrowing-repayments", args=[borrowing.pk]), {"amount": "10.00"}, format="json"
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_repayment_overpayment_over_api(self, api_client, admin_user, make_borrowing):
        borrowing = make_borrowing(amount="100.00")
        api_client.force_authenticate(user=admin_user)
        response = api_client.post(
            reverse("borrowing-repayments", args=[borrowing.pk]), {"amount": "120.00"}, format="json"
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["excess"] == "20.00"
