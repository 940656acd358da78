"""
Single entry point for every state-changing request.

Each operation runs the same pipeline: authenticate the actor, authorize the
action with the PermissionGate, run the DeletionGuard for deletes, apply the
change (through the LedgerEngine for postings) and append one audit row.

By default the audit row is written inside the same transaction as the change,
so either both persist or neither does. With ``LOANBOOK['AUDIT_IN_TRANSACTION']``
off, or on a database without transactions, the row is written right after
commit and a persistent failure is reported as a degraded success.
"""
import logging
from contextlib import contextmanager
from decimal import Decimal

from django.conf import settings
from django.db import DatabaseError, IntegrityError, connection, transaction
from django.db.models import F
from django.utils import timezone

from audit.models import AuditLog
from audit.recorder import AuditEntry, AuditRecorder
from audit.snapshots import (
    BorrowingSnapshot,
    CustomerSnapshot,
    GrantSnapshot,
    LoanSnapshot,
    UserSnapshot,
)
from audit.utils import NO_CLIENT
from customer.models import AgentAssignment, Customer
from finance.ledger import LedgerEngine, generate_loan_number, to_money
from finance.models import Borrowing, Collection, Loan
from home.deletion_guard import DeletionGuard
from home.gate import Actions, PermissionGate
from home.models import CustomUser, ManagerGrant

from .exceptions import (
    AuditPersistenceFailure,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ReferentialIntegrityError,
    StorageUnavailable,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULTS = {
    'AUDIT_IN_TRANSACTION': True,
    'AUDIT_WRITE_RETRIES': 1,
}

ZERO = Decimal('0.00')


@contextmanager
def storage_errors(operation):
    """Translate database failures into domain errors."""
    try:
        yield
    except IntegrityError as exc:
        logger.warning(f"[MutationOrchestrator] {operation} hit an integrity error: {exc}")
        raise ConflictError('The change conflicts with existing data. Please retry.') from exc
    except DatabaseError as exc:
        logger.error(f"[MutationOrchestrator] {operation} failed on storage: {exc}")
        raise StorageUnavailable() from exc


class MutationOrchestrator:

    def __init__(self, gate=None, guard=None, ledger=None, recorder=None, clock=timezone.now):
        self.gate = gate or PermissionGate()
        self.guard = guard or DeletionGuard()
        self.ledger = ledger or LedgerEngine(clock=clock)
        self.recorder = recorder or AuditRecorder(clock=clock)
        self.clock = clock

    # ========================================================
    # Pipeline helpers
    # ========================================================
    @property
    def config(self):
        return {**DEFAULTS, **getattr(settings, 'LOANBOOK', {})}

    def _authenticate(self, actor):
        if actor is None or not getattr(actor, 'is_authenticated', False):
            raise AuthenticationError()
        if not actor.is_active:
            raise AuthenticationError('This account is inactive.')

    def _authorize(self, actor, action, target=None):
        self._authenticate(actor)
        decision = self.gate.authorize(actor, action, target)
        if not decision.allowed:
            logger.info(f"[MutationOrchestrator] {action} denied for {actor.email}: {decision.reason}")
            raise AuthorizationError(decision.reason)
        return decision

    def _raise_guard_denial(self, decision):
        if decision.code == 'not_found':
            raise NotFoundError('Target not found.')
        if decision.code == 'manager_cannot_delete_admin':
            raise AuthorizationError(decision.reason)
        raise ReferentialIntegrityError(decision.reason, blocking_count=decision.blocking_count)

    def _audit_in_transaction(self):
        return bool(self.config['AUDIT_IN_TRANSACTION']) and connection.features.supports_transactions

    def _commit(self, operation, apply):
        """
        Run ``apply`` (returning ``(result, audit_entry)``) and persist the
        audit entry according to the configured mode.
        """
        if self._audit_in_transaction():
            try:
                with storage_errors(operation), transaction.atomic():
                    result, entry = apply()
                    self.recorder.record(entry)
            except AuditPersistenceFailure as exc:
                logger.error(f"[MutationOrchestrator] {operation} rolled back, audit write failed.")
                raise StorageUnavailable(
                    'The change was rolled back because its audit record could not be written.'
                ) from exc
            return result

        with storage_errors(operation), transaction.atomic():
            result, entry = apply()
        self._record_after_commit(entry, result)
        return result

    def _record_after_commit(self, entry, result):
        attempts = 1 + max(0, int(self.config['AUDIT_WRITE_RETRIES']))
        failure = None
        for attempt in range(1, attempts + 1):
            try:
                return self.recorder.record(entry)
            except AuditPersistenceFailure as exc:
                failure = exc
                logger.warning(
                    f"[MutationOrchestrator] Audit write attempt {attempt}/{attempts} failed "
                    f"for {entry.action} {entry.entity_type}#{entry.entity_id}"
                )
        logger.critical(
            f"[MutationOrchestrator] {entry.action} on {entry.entity_type}#{entry.entity_id} "
            f"committed WITHOUT an audit record. Operator attention required."
        )
        raise AuditPersistenceFailure(committed=True, result=result, entry=entry) from failure

    # ========================================================
    # Ledger postings
    # ========================================================
    def post_collection(self, actor, loan_id, amount, payment_method, receipt_number=None,
                        collection_date=None, remarks='', claimed_split=None, client=NO_CLIENT):
        self._authenticate(actor)
        loan = Loan.objects.select_related('customer').filter(pk=loan_id).first()
        if loan is None:
            raise NotFoundError(f"Loan {loan_id} not found.")
        self._authorize(actor, Actions.CREATE_COLLECTION, loan)

        def apply():
            result = self.ledger.post_collection(
                loan_id=loan.pk,
                amount=amount,
                payment_method=payment_method,
                receipt_number=receipt_number,
                collection_date=collection_date,
                posted_by=actor,
                remarks=remarks,
                claimed_split=claimed_split,
            )
            allocation = result.allocation
            entry = AuditEntry.build(
                actor, AuditLog.COLLECTION_RECORDED, 'Loan', result.loan.pk,
                before=LoanSnapshot.of(result.before),
                after=LoanSnapshot.of(result.loan),
                client=client,
                remarks=(
                    f"Receipt {result.collection.receipt_number}: amount={allocation.amount} "
                    f"interest={allocation.interest_portion} principal={allocation.principal_portion}"
                ),
            )
            return result, entry

        return self._commit('post_collection', apply)

    def record_borrowing_repayment(self, actor, borrowing_id, amount, repaid_on=None, remarks='',
                                   client=NO_CLIENT):
        self._authorize(actor, Actions.RECORD_BORROWING_REPAYMENT)

        def apply():
            result = self.ledger.post_borrowing_repayment(
                borrowing_id=borrowing_id,
                amount=amount,
                repaid_on=repaid_on,
                recorded_by=actor,
                remarks=remarks,
            )
            entry = AuditEntry.build(
                actor, AuditLog.BORROWING_REPAYMENT_RECORDED, 'Borrowing', result.borrowing.pk,
                before=BorrowingSnapshot.of(result.before),
                after=BorrowingSnapshot.of(result.borrowing),
                client=client,
                remarks=f"Repayment of {result.repayment.amount} on {result.repayment.repaid_on}",
            )
            return result, entry

        return self._commit('record_borrowing_repayment', apply)

    # ========================================================
    # Users and grants
    # ========================================================
    def create_user(self, actor, data, client=NO_CLIENT):
        self._authorize(actor, Actions.CREATE_USER)
        role = data.get('role') or CustomUser.AGENT
        if role not in dict(CustomUser.ROLE_CHOICES):
            raise ValidationError(f"Unknown role '{role}'.", field='role')
        if role == CustomUser.ADMIN and actor.role != CustomUser.ADMIN:
            raise AuthorizationError('only admins can create admins')
        email = CustomUser.objects.normalize_email(data.get('email') or '')
        if not email:
            raise ValidationError('Email is required.', field='email')
        if CustomUser.objects.filter(email__iexact=email).exists():
            raise ValidationError('A user with this email already exists.', field='email')

        def apply():
            user = CustomUser.objects.create_user(
                email=email,
                password=data.get('password'),
                first_name=data.get('first_name', ''),
                last_name=data.get('last_name', ''),
                phone=data.get('phone'),
                address=data.get('address'),
                role=role,
            )
            if role == CustomUser.CUSTOMER:
                Customer.objects.create(user=user)
            entry = AuditEntry.build(
                actor, AuditLog.USER_CREATED, 'User', user.pk,
                after=UserSnapshot.of(user),
                client=client,
                remarks=f"Created {role} {user.email}",
            )
            return user, entry

        return self._commit('create_user', apply)

    def update_manager_grants(self, actor, user_id, grants, client=NO_CLIENT):
        self._authorize(actor, Actions.UPDATE_GRANTS)
        unknown = set(grants) - set(ManagerGrant.GRANT_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown grants: {', '.join(sorted(unknown))}.", field='grants')

        def apply():
            target = CustomUser.objects.select_for_update().filter(pk=user_id).first()
            if target is None:
                raise NotFoundError(f"User {user_id} not found.")
            if target.role != CustomUser.MANAGER:
                raise ValidationError('Grants can only be set on managers.', field='user')
            grant, _ = ManagerGrant.objects.select_for_update().get_or_create(user=target)
            before = GrantSnapshot.of(grant)
            for name, value in grants.items():
                setattr(grant, name, bool(value))
            grant.save()
            after = GrantSnapshot.of(grant)
            entry = AuditEntry.build(
                actor, AuditLog.GRANTS_UPDATED, 'User', target.pk,
                before=before,
                after=after,
                client=client,
                remarks=f"Grants changed for {target.email}",
            )
            return grant, entry

        return self._commit('update_manager_grants', apply)

    def check_user_deletion(self, actor, user_id):
        self._authorize(actor, Actions.DELETE_USER)
        return self.guard.can_delete_user(actor, user_id)

    def delete_user(self, actor, user_id, client=NO_CLIENT):
        self._authorize(actor, Actions.DELETE_USER, CustomUser.objects.filter(pk=user_id).first())

        def apply():
            decision = self.guard.can_delete_user(actor, user_id, lock=True)
            if not decision.allowed:
                self._raise_guard_denial(decision)
            target = CustomUser.objects.get(pk=user_id)
            snapshot = UserSnapshot.of(target)
            snapshot.dependents = self._remove_user_dependents(target)
            target.delete()
            entry = AuditEntry.build(
                actor, AuditLog.USER_DELETED, 'User', user_id,
                before=snapshot,
                client=client,
                remarks=f"Deleted {snapshot.role} {snapshot.email}",
            )
            return snapshot, entry

        return self._commit('delete_user', apply)

    def _remove_user_dependents(self, user):
        removed = {}
        customer = Customer.objects.select_for_update().filter(user=user).first()
        if customer is not None:
            removed.update(self._remove_customer_records(customer))
        removed['manager_grants'], _ = ManagerGrant.objects.filter(user=user).delete()
        removed['agent_assignments'], _ = AgentAssignment.objects.filter(agent=user).delete()
        return removed

    def _remove_customer_records(self, customer):
        """
        Remove a customer's closed loans with their collections, its agent
        links and the profile itself. The guard has already ensured no open
        loans remain.
        """
        loan_ids = list(
            Loan.objects.select_for_update().filter(customer=customer, status=Loan.CLOSED)
            .values_list('pk', flat=True)
        )
        collections, _ = Collection.objects.filter(loan_id__in=loan_ids).delete()
        loans, _ = Loan.objects.filter(pk__in=loan_ids).delete()
        assignments, _ = AgentAssignment.objects.filter(customer=customer).delete()
        customer.delete()
        return {
            'closed_loans': loans,
            'collections': collections,
            'customer_assignments': assignments,
        }

    # ========================================================
    # Customers
    # ========================================================
    def create_customer(self, actor, data, client=NO_CLIENT):
        self._authorize(actor, Actions.CREATE_CUSTOMER)
        email = CustomUser.objects.normalize_email(data.get('email') or '')
        if not email:
            raise ValidationError('Email is required.', field='email')
        if CustomUser.objects.filter(email__iexact=email).exists():
            raise ValidationError('A user with this email already exists.', field='email')

        def apply():
            user = CustomUser.objects.create_user(
                email=email,
                password=data.get('password'),
                first_name=data.get('first_name', ''),
                last_name=data.get('last_name', ''),
                phone=data.get('phone'),
                address=data.get('address'),
                role=CustomUser.CUSTOMER,
            )
            customer = Customer.objects.create(
                user=user,
                kyc_status=data.get('kyc_status') or Customer.KYC_PENDING,
                id_proof=data.get('id_proof') or '',
                date_of_birth=data.get('date_of_birth'),
            )
            if actor.role == CustomUser.AGENT:
                AgentAssignment.objects.create(customer=customer, agent=actor)
            entry = AuditEntry.build(
                actor, AuditLog.CUSTOMER_CREATED, 'Customer', customer.pk,
                after=CustomerSnapshot.of(customer),
                client=client,
                remarks=f"Created customer {user.email}",
            )
            return customer, entry

        return self._commit('create_customer', apply)

    CUSTOMER_PROFILE_FIELDS = ('kyc_status', 'id_proof', 'date_of_birth')
    USER_PROFILE_FIELDS = ('first_name', 'last_name', 'phone', 'address')

    def update_customer(self, actor, customer_id, data, client=NO_CLIENT):
        """
        Partial update of a customer's profile, including the KYC verdict.
        Only the keys present in ``data`` are written.
        """
        self._authorize(
            actor, Actions.UPDATE_CUSTOMER, Customer.objects.filter(pk=customer_id).first()
        )
        kyc_status = data.get('kyc_status')
        if kyc_status is not None and kyc_status not in dict(Customer.KYC_STATUS_CHOICES):
            raise ValidationError(f"Unknown KYC status '{kyc_status}'.", field='kyc_status')

        def apply():
            customer = self._locked_customer(customer_id)
            before = CustomerSnapshot.of(customer)
            customer_fields = [name for name in self.CUSTOMER_PROFILE_FIELDS if name in data]
            user_fields = [name for name in self.USER_PROFILE_FIELDS if name in data]
            if not customer_fields and not user_fields:
                raise ValidationError('Nothing to update.')
            for name in customer_fields:
                setattr(customer, name, data[name])
            if customer_fields:
                customer.save(update_fields=customer_fields + ['updated_at'])
            for name in user_fields:
                setattr(customer.user, name, data[name])
            if user_fields:
                customer.user.save(update_fields=user_fields)
            changed = ', '.join(customer_fields + user_fields)
            entry = AuditEntry.build(
                actor, AuditLog.CUSTOMER_UPDATED, 'Customer', customer.pk,
                before=before,
                after=CustomerSnapshot.of(customer),
                client=client,
                remarks=f"Updated customer {customer.user.email}: {changed}",
            )
            return customer, entry

        return self._commit('update_customer', apply)

    def delete_customer(self, actor, customer_id, client=NO_CLIENT):
        self._authorize(
            actor, Actions.DELETE_CUSTOMER, Customer.objects.filter(pk=customer_id).first()
        )

        def apply():
            decision = self.guard.can_delete_customer(actor, customer_id, lock=True)
            if not decision.allowed:
                self._raise_guard_denial(decision)
            customer = Customer.objects.select_related('user').get(pk=customer_id)
            user = customer.user
            snapshot = CustomerSnapshot.of(customer)
            snapshot.dependents = self._remove_user_dependents(user)
            user.delete()
            entry = AuditEntry.build(
                actor, AuditLog.CUSTOMER_DELETED, 'Customer', customer_id,
                before=snapshot,
                client=client,
                remarks=f"Deleted customer {snapshot.email}",
            )
            return snapshot, entry

        return self._commit('delete_customer', apply)

    def assign_agent(self, actor, customer_id, agent_id, client=NO_CLIENT):
        self._authorize(actor, Actions.ASSIGN_AGENT)

        def apply():
            customer = self._locked_customer(customer_id)
            agent = CustomUser.objects.filter(pk=agent_id).first()
            if agent is None:
                raise NotFoundError(f"User {agent_id} not found.")
            if agent.role != CustomUser.AGENT:
                raise ValidationError('Only agents can be assigned to customers.', field='agent_id')
            before = CustomerSnapshot.of(customer)
            assignment, created = AgentAssignment.objects.select_for_update().get_or_create(
                customer=customer, agent=agent
            )
            if not created:
                assignment.activate()
                assignment.save()
            entry = AuditEntry.build(
                actor, AuditLog.AGENT_ASSIGNED, 'Customer', customer.pk,
                before=before,
                after=CustomerSnapshot.of(customer),
                client=client,
                remarks=f"Assigned agent {agent.email}",
            )
            return assignment, entry

        return self._commit('assign_agent', apply)

    def unassign_agent(self, actor, customer_id, agent_id, client=NO_CLIENT):
        self._authorize(actor, Actions.ASSIGN_AGENT)

        def apply():
            customer = self._locked_customer(customer_id)
            assignment = AgentAssignment.objects.select_for_update().filter(
                customer=customer, agent_id=agent_id, is_active=True
            ).first()
            if assignment is None:
                raise NotFoundError('No active assignment for this agent and customer.')
            before = CustomerSnapshot.of(customer)
            assignment.deactivate()
            assignment.save()
            entry = AuditEntry.build(
                actor, AuditLog.AGENT_UNASSIGNED, 'Customer', customer.pk,
                before=before,
                after=CustomerSnapshot.of(customer),
                client=client,
                remarks=f"Unassigned agent #{agent_id}",
            )
            return assignment, entry

        return self._commit('unassign_agent', apply)

    def _locked_customer(self, customer_id):
        customer = Customer.objects.select_for_update().select_related('user').filter(pk=customer_id).first()
        if customer is None:
            raise NotFoundError(f"Customer {customer_id} not found.")
        return customer

    # ========================================================
    # Loans and borrowings
    # ========================================================
    def create_loan(self, actor, data, client=NO_CLIENT):
        self._authorize(actor, Actions.CREATE_LOAN)
        principal = to_money(data.get('principal'), 'principal')
        if principal <= ZERO:
            raise ValidationError('Principal must be greater than zero.', field='principal')
        interest_rate = to_money(data.get('interest_rate', ZERO), 'interest_rate')
        if interest_rate < ZERO:
            raise ValidationError('Interest rate cannot be negative.', field='interest_rate')
        frequency = data.get('repayment_frequency') or Loan.MONTHLY
        if frequency not in Loan.PERIODS_PER_YEAR:
            raise ValidationError(f"Unknown repayment frequency '{frequency}'.", field='repayment_frequency')
        tenure = int(data.get('tenure_installments') or 0)
        if tenure < 1:
            raise ValidationError('Tenure must be at least one installment.', field='tenure_installments')
        start_date = data.get('start_date') or self.clock().date()

        def apply():
            customer = self._locked_customer(data.get('customer_id'))
            loan = Loan.objects.create(
                loan_number=generate_loan_number(self.clock),
                customer=customer,
                principal=principal,
                interest_rate=interest_rate,
                repayment_frequency=frequency,
                tenure_installments=tenure,
                start_date=start_date,
                outstanding_principal=principal,
                interest_accrued_through=start_date,
                status=Loan.PENDING,
                created_by=actor,
            )
            entry = AuditEntry.build(
                actor, AuditLog.LOAN_CREATED, 'Loan', loan.pk,
                after=LoanSnapshot.of(loan),
                client=client,
                remarks=f"Loan {loan.loan_number} of {principal} for customer #{customer.pk}",
            )
            return loan, entry

        return self._commit('create_loan', apply)

    def activate_loan(self, actor, loan_id, activated_on=None, client=NO_CLIENT):
        self._authorize(actor, Actions.ACTIVATE_LOAN)

        def apply():
            loan = Loan.objects.select_for_update().filter(pk=loan_id).first()
            if loan is None:
                raise NotFoundError(f"Loan {loan_id} not found.")
            if loan.status != Loan.PENDING:
                raise ValidationError(f"Loan {loan.loan_number} is {loan.status}, only PENDING loans can be activated.", field='status')
            anchor = activated_on or self.clock().date()
            updated = Loan.objects.filter(pk=loan.pk, version=loan.version).update(
                status=Loan.ACTIVE,
                start_date=anchor,
                interest_accrued_through=anchor,
                version=F('version') + 1,
                updated_at=self.clock(),
            )
            if updated != 1:
                raise ConflictError()
            activated = Loan.objects.get(pk=loan.pk)
            entry = AuditEntry.build(
                actor, AuditLog.LOAN_ACTIVATED, 'Loan', loan.pk,
                before=LoanSnapshot.of(loan),
                after=LoanSnapshot.of(activated),
                client=client,
                remarks=f"Loan {loan.loan_number} activated, interest accrues from {anchor}",
            )
            return activated, entry

        return self._commit('activate_loan', apply)

    def create_borrowing(self, actor, data, client=NO_CLIENT):
        self._authorize(actor, Actions.CREATE_BORROWING)
        amount = to_money(data.get('amount'))
        if amount <= ZERO:
            raise ValidationError('Amount must be greater than zero.', field='amount')
        interest_rate = to_money(data.get('interest_rate', ZERO), 'interest_rate')
        lender_name = (data.get('lender_name') or '').strip()
        if not lender_name:
            raise ValidationError('Lender name is required.', field='lender_name')

        def apply():
            borrowing = Borrowing.objects.create(
                lender_name=lender_name,
                lender_phone=data.get('lender_phone') or '',
                lender_email=data.get('lender_email') or '',
                amount=amount,
                interest_rate=interest_rate,
                start_date=data.get('start_date') or self.clock().date(),
                end_date=data.get('end_date'),
                outstanding=amount,
                total_repaid=ZERO,
                status=Borrowing.ACTIVE,
                remarks=data.get('remarks') or '',
                created_by=actor,
            )
            entry = AuditEntry.build(
                actor, AuditLog.BORROWING_CREATED, 'Borrowing', borrowing.pk,
                after=BorrowingSnapshot.of(borrowing),
                client=client,
                remarks=f"Borrowed {amount} from {lender_name}",
            )
            return borrowing, entry

        return self._commit('create_borrowing', apply)
