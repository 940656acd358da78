"""
Referential checks run before a user or customer is removed.

Nothing in the ledger cascades on delete, so these counts are the only thing
standing between a delete request and orphaned or protected rows. The
orchestrator calls them inside the deleting transaction with ``lock=True``.
"""
import logging

from customer.models import Customer
from finance.models import Borrowing, BorrowingRepayment, Collection, Loan

from .gate import Decision
from .models import CustomUser

logger = logging.getLogger(__name__)


class DeletionGuard:

    def can_delete_user(self, actor, target_id, lock=False):
        if actor is not None and str(actor.pk) == str(target_id):
            return Decision.deny('self-deletion', 'self_deletion')

        users = CustomUser.objects.select_for_update() if lock else CustomUser.objects.all()
        target = users.filter(pk=target_id).first()
        if target is None:
            return Decision.deny('not found', 'not_found')

        if actor is not None and actor.role == CustomUser.MANAGER and target.role == CustomUser.ADMIN:
            return Decision.deny('manager cannot delete admin', 'manager_cannot_delete_admin')

        open_loans = Loan.objects.filter(customer__user=target, status__in=Loan.OPEN_STATUSES).count()
        if open_loans:
            return Decision.deny('active or pending loans exist', 'open_loans', open_loans)

        created_loans = Loan.objects.filter(created_by=target).count()
        if created_loans:
            return Decision.deny('user has created loans', 'created_loans', created_loans)

        collections = Collection.objects.filter(collected_by=target).count()
        if collections:
            return Decision.deny('agent has recorded collections', 'recorded_collections', collections)

        borrowings = (
            Borrowing.objects.filter(created_by=target).count()
            + BorrowingRepayment.objects.filter(recorded_by=target).count()
        )
        if borrowings:
            return Decision.deny('user has recorded borrowings', 'recorded_borrowings', borrowings)

        return Decision.allow()

    def can_delete_customer(self, actor, customer_id, lock=False):
        customers = Customer.objects.select_for_update() if lock else Customer.objects.all()
        customer = customers.filter(pk=customer_id).first()
        if customer is None:
            return Decision.deny('not found', 'not_found')
        return self.can_delete_user(actor, customer.user_id, lock=lock)
