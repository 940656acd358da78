"""
Role based authorization for every request that reads or changes ledger data.

``PermissionGate.authorize`` is a pure query: it never writes and never
audits. Rules are evaluated top to bottom and the first match decides.
"""
from dataclasses import dataclass
from typing import Optional

from customer.models import AgentAssignment, Customer
from finance.models import Collection, Loan

from .models import CustomUser


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ''
    code: str = ''
    blocking_count: Optional[int] = None

    @classmethod
    def allow(cls, reason='allowed'):
        return cls(True, reason, 'allowed')

    @classmethod
    def deny(cls, reason, code='denied', blocking_count=None):
        return cls(False, reason, code, blocking_count)

    def __bool__(self):
        return self.allowed


class Actions:
    # Users
    READ_USER = 'read_user'
    LIST_USERS = 'list_users'
    CREATE_USER = 'create_user'
    UPDATE_GRANTS = 'update_grants'
    DELETE_USER = 'delete_user'

    # Customers
    READ_CUSTOMER = 'read_customer'
    LIST_CUSTOMERS = 'list_customers'
    CREATE_CUSTOMER = 'create_customer'
    UPDATE_CUSTOMER = 'update_customer'
    DELETE_CUSTOMER = 'delete_customer'
    ASSIGN_AGENT = 'assign_agent'

    # Loans and collections
    READ_LOAN = 'read_loan'
    LIST_LOANS = 'list_loans'
    CREATE_LOAN = 'create_loan'
    ACTIVATE_LOAN = 'activate_loan'
    CREATE_COLLECTION = 'create_collection'
    READ_COLLECTION = 'read_collection'
    LIST_COLLECTIONS = 'list_collections'
    DELETE_COLLECTION = 'delete_collection'

    # Borrowings
    READ_BORROWING = 'read_borrowing'
    LIST_BORROWINGS = 'list_borrowings'
    CREATE_BORROWING = 'create_borrowing'
    RECORD_BORROWING_REPAYMENT = 'record_borrowing_repayment'

    READ_AUDIT_LOG = 'read_audit_log'
    READ_ANALYTICS = 'read_analytics'

    READS = frozenset({
        READ_USER, LIST_USERS, READ_CUSTOMER, LIST_CUSTOMERS, READ_LOAN, LIST_LOANS,
        READ_COLLECTION, LIST_COLLECTIONS, READ_BORROWING, LIST_BORROWINGS, READ_AUDIT_LOG,
        READ_ANALYTICS,
    })

    # delete action -> manager grant that unlocks it
    DELETE_GRANTS = {
        DELETE_USER: 'can_delete_users',
        DELETE_CUSTOMER: 'can_delete_customers',
        DELETE_COLLECTION: 'can_delete_collections',
    }

    USER_MANAGEMENT = frozenset({CREATE_USER, UPDATE_GRANTS, DELETE_USER, LIST_USERS})

    # Agents may do these for customers they are actively assigned to
    AGENT_CUSTOMER_SCOPED = frozenset({
        READ_CUSTOMER, UPDATE_CUSTOMER, READ_LOAN, READ_COLLECTION, CREATE_COLLECTION,
    })

    # Lists that views narrow down to the requester's own rows
    SCOPED_LISTS = frozenset({LIST_CUSTOMERS, LIST_LOANS, LIST_COLLECTIONS})


def owner_user_id(target):
    """
    Id of the user a record belongs to, or None when it has no owner.
    """
    if isinstance(target, CustomUser):
        return target.pk
    if isinstance(target, Customer):
        return target.user_id
    if isinstance(target, Loan):
        return target.customer.user_id
    if isinstance(target, Collection):
        return target.loan.customer.user_id
    return None


def customer_of(target):
    if isinstance(target, Customer):
        return target
    if isinstance(target, Loan):
        return target.customer
    if isinstance(target, Collection):
        return target.loan.customer
    if isinstance(target, CustomUser) and target.role == CustomUser.CUSTOMER:
        return Customer.objects.filter(user=target).first()
    return None


class PermissionGate:

    def authorize(self, actor, action, target=None):
        # 1. identity
        if actor is None or not getattr(actor, 'is_authenticated', False) or not actor.is_active:
            return Decision.deny('unauthenticated', 'unauthenticated')

        # 2. own data
        if action in Actions.READS and target is not None and owner_user_id(target) == actor.pk:
            return Decision.allow('own record')

        role = actor.role
        if role == CustomUser.ADMIN:
            return Decision.allow('admin')
        if role == CustomUser.MANAGER:
            return self._authorize_manager(actor, action)
        if role == CustomUser.AGENT:
            return self._authorize_agent(actor, action, target)
        if role == CustomUser.CUSTOMER:
            if action in (Actions.LIST_LOANS, Actions.LIST_COLLECTIONS) and target is None:
                return Decision.allow('own records')
            return Decision.deny('customers may only read their own records', 'insufficient_role')
        return Decision.deny('insufficient role', 'insufficient_role')

    def _authorize_manager(self, actor, action):
        if action in Actions.DELETE_GRANTS:
            grant_name = Actions.DELETE_GRANTS[action]
            grants = actor.grants
            if grants is not None and getattr(grants, grant_name):
                return Decision.allow(f'manager holds {grant_name}')
            return Decision.deny(f'manager lacks {grant_name}', 'missing_grant')
        if action == Actions.UPDATE_GRANTS:
            return Decision.deny('only admins can change manager grants', 'admin_only')
        return Decision.allow('manager')

    def _authorize_agent(self, actor, action, target):
        if action in Actions.DELETE_GRANTS or action in Actions.USER_MANAGEMENT:
            return Decision.deny('agents cannot delete records or manage users', 'insufficient_role')
        if action == Actions.CREATE_CUSTOMER or action in Actions.SCOPED_LISTS:
            return Decision.allow('agent')
        if action in Actions.AGENT_CUSTOMER_SCOPED:
            customer = customer_of(target)
            if customer is None:
                return Decision.deny('customer not assigned to agent', 'not_assigned')
            assigned = AgentAssignment.objects.filter(
                customer=customer, agent=actor, is_active=True
            ).exists()
            if assigned:
                return Decision.allow('assigned agent')
            return Decision.deny('customer not assigned to agent', 'not_assigned')
        return Decision.deny('insufficient role', 'insufficient_role')
