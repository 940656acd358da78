import threading
from datetime import date
from decimal import Decimal

import pytest
from django.db import connection

from audit.models import AuditLog
from finance.models import Collection
from loanbook_backend.exceptions import ConflictError, OverpaymentError
from loanbook_backend.orchestrator import MutationOrchestrator


@pytest.mark.django_db(transaction=True)
def test_concurrent_postings_cannot_both_succeed(manager_user, customer, make_loan):
    loan = make_loan(customer, principal="100.00", outstanding="60.00")
    barrier = threading.Barrier(2)
    successes, failures = [], []

    def post():
        try:
            barrier.wait(timeout=10)
            result = MutationOrchestrator().post_collection(
                manager_user, loan.pk, "50.00", Collection.CASH, collection_date=date(2024, 1, 1)
            )
            successes.append(result)
        except Exception as exc:  # collected and asserted on below
            failures.append(exc)
        finally:
            connection.close()

    threads = [threading.Thread(target=post) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert len(successes) == 1, failures
    assert len(failures) == 1
    failure = failures[0]
    assert isinstance(failure, (OverpaymentError, ConflictError)), repr(failure)
    if isinstance(failure, OverpaymentError):
        assert failure.excess == Decimal("40.00")

    loan.refresh_from_db()
    assert loan.outstanding_principal == Decimal("10.00")
    assert loan.total_collected == Decimal("50.00")
    assert Collection.objects.filter(loan=loan).count() == 1
    assert AuditLog.objects.filter(action=AuditLog.COLLECTION_RECORDED).count() == 1
