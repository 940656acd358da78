from datetime import date
from unittest.mock import patch

import pytest
from django.urls import reverse
from rest_framework import status

from finance.ledger import LedgerEngine
from finance.models import Collection, Loan


@pytest.mark.django_db
class TestFinanceAnalytics:

    @pytest.fixture
    def book(self, admin_user, customer, make_customer, make_loan, make_borrowing):
        active = make_loan(customer, principal="10000.00")
        make_loan(customer, principal="2000.00", outstanding="0.00", status=Loan.CLOSED)
        make_loan(
            make_customer(email="pending@loanbook.test"), principal="5000.00",
            status=Loan.PENDING, accrued_through=date(2024, 3, 1),
        )
        engine = LedgerEngine()
        engine.post_collection(active.pk, "300.00", Collection.CASH, collection_date=date(2024, 1, 15), posted_by=admin_user)
        engine.post_collection(active.pk, "200.00", Collection.UPI, collection_date=date(2024, 2, 10), posted_by=admin_user)
        make_borrowing(amount="5000.00")
        return active

    def test_full_portfolio_summary(self, api_client, manager_user, book):
        api_client.force_authenticate(user=manager_user)
        response = api_client.get(reverse("finance-analytics"))

        assert response.status_code == status.HTTP_200_OK
        data = response.data
        assert data["period"] == "all"
        assert data["date_range"] is None
        assert data["loans"]["total"] == 3
        assert data["loans"]["by_status"] == {Loan.PENDING: 1, Loan.ACTIVE: 1, Loan.CLOSED: 1}

        portfolio = data["portfolio"]
        assert portfolio["total_disbursed"] == "12000.00"
        assert portfolio["outstanding_principal"] == "14500.00"
        assert portfolio["outstanding_interest"] == "0.00"
        assert portfolio["total_outstanding"] == "14500.00"
        assert portfolio["collection_rate"] == "4.17"

        collections = data["collections"]
        assert collections["count"] == 2
        assert collections["total_amount"] == "500.00"
        assert collections["total_principal"] == "500.00"
        assert [(row["month"], row["total_amount"]) for row in collections["monthly"]] == [
            ("2024-01", "300.00"),
            ("2024-02", "200.00"),
        ]

        assert data["borrowings"] == {"open": 1, "outstanding": "5000.00"}
        assert data["customers"] == 2
        assert data["active_agents"] == 1

    def test_explicit_date_range(self, api_client, admin_user, book):
        api_client.force_authenticate(user=admin_user)
        response = api_client.get(
            reverse("finance-analytics"), {"start_date": "2024-02-01", "end_date": "2024-12-31"}
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.data
        assert data["period"] == "custom"
        assert data["date_range"] == {"start": "2024-02-01", "end": "2024-12-31"}
        assert data["loans"]["total"] == 1
        assert data["loans"]["by_status"][Loan.PENDING] == 1
        assert data["collections"]["count"] == 1
        assert data["collections"]["total_amount"] == "200.00"

    def test_relative_period(self, api_client, manager_user, book):
        api_client.force_authenticate(user=manager_user)
        with patch("finance.views.timezone.localdate", return_value=date(2024, 2, 15)):
            response = api_client.get(reverse("finance-analytics"), {"period": "month"})

        assert response.status_code == status.HTTP_200_OK
        assert response.data["date_range"] == {"start": "2024-01-15", "end": "2024-02-15"}
        assert response.data["loans"]["total"] == 0
        assert response.data["collections"]["count"] == 2

    @pytest.mark.parametrize("params", [
        {"period": "decade"},
        {"start_date": "2024-13-01"},
        {"start_date": "2024-03-01", "end_date": "2024-01-01"},
    ])
    def test_invalid_window(self, api_client, admin_user, params):
        api_client.force_authenticate(user=admin_user)
        response = api_client.get(reverse("finance-analytics"), params)
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["kind"] == "validation_error"

    def test_agents_and_customers_are_denied(self, api_client, agent_user, customer):
        for user in (agent_user, customer.user):
            api_client.force_authenticate(user=user)
            response = api_client.get(reverse("finance-analytics"))
            assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_new_collection_refreshes_cached_summary(self, api_client, admin_user, book):
        api_client.force_authenticate(user=admin_user)
        url = reverse("finance-analytics")
        assert api_client.get(url).data["collections"]["count"] == 2

        LedgerEngine().post_collection(
            book.pk, "100.00", Collection.CASH, collection_date=date(2024, 3, 5), posted_by=admin_user
        )

        assert api_client.get(url).data["collections"]["count"] == 3
