import itertools
from datetime import date
from decimal import Decimal

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from customer.models import AgentAssignment, Customer
from finance.models import Borrowing, Loan
from home.models import CustomUser as User

PASSWORD = "S3cure-pass-123"
LEDGER_DATE = date(2024, 1, 1)

_loan_numbers = itertools.count(1)


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def admin_user(db):
    return User.objects.create_user(
        email="admin@loanbook.test", password=PASSWORD, first_name="Ada", role=User.ADMIN
    )


@pytest.fixture
def manager_user(db):
    """Manager with every delete grant switched off."""
    return User.objects.create_user(
        email="manager@loanbook.test", password=PASSWORD, first_name="Mani", role=User.MANAGER
    )


@pytest.fixture
def agent_user(db):
    return User.objects.create_user(
        email="agent@loanbook.test", password=PASSWORD, first_name="Arun", role=User.AGENT
    )


@pytest.fixture
def other_agent(db):
    return User.objects.create_user(
        email="agent2@loanbook.test", password=PASSWORD, first_name="Bina", role=User.AGENT
    )


@pytest.fixture
def make_customer(db):
    def _make(email="customer@loanbook.test", agent=None):
        user = User.objects.create_user(
            email=email, password=PASSWORD, first_name="Chitra", role=User.CUSTOMER
        )
        customer = Customer.objects.create(user=user, id_proof=f"ID-{user.pk}")
        if agent is not None:
            AgentAssignment.objects.create(customer=customer, agent=agent)
        return customer
    return _make


@pytest.fixture
def customer(make_customer, agent_user):
    """Customer actively assigned to ``agent_user``."""
    return make_customer(agent=agent_user)


@pytest.fixture
def make_loan(admin_user):
    def _make(customer, principal="10000.00", outstanding=None, outstanding_interest="0.00",
              interest_rate="0.00", status=Loan.ACTIVE, frequency=Loan.MONTHLY,
              accrued_through=LEDGER_DATE, created_by=None):
        principal = Decimal(principal)
        return Loan.objects.create(
            loan_number=f"LN-TEST-{next(_loan_numbers):05d}",
            customer=customer,
            principal=principal,
            interest_rate=Decimal(interest_rate),
            repayment_frequency=frequency,
            tenure_installments=12,
            start_date=accrued_through,
            outstanding_principal=Decimal(outstanding) if outstanding is not None else principal,
            outstanding_interest=Decimal(outstanding_interest),
            interest_accrued_through=accrued_through,
            status=status,
            created_by=created_by or admin_user,
        )
    return _make


@pytest.fixture
def make_borrowing(admin_user):
    def _make(amount="5000.00", status=Borrowing.ACTIVE):
        amount = Decimal(amount)
        return Borrowing.objects.create(
            lender_name="City Cooperative Bank",
            amount=amount,
            start_date=LEDGER_DATE,
            outstanding=amount,
            status=status,
            created_by=admin_user,
        )
    return _make
