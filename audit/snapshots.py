"""
Typed audit payloads.

Each snapshot is a small dataclass serialised with a ``kind`` tag so a stored
``before_data``/``after_data`` blob can be turned back into the same object
with :func:`load_snapshot`. Money is stored as strings and dates as ISO text.
"""
from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

SNAPSHOT_KINDS = {}


def register(cls):
    SNAPSHOT_KINDS[cls.kind] = cls
    return cls


class Snapshot:
    kind = None
    DECIMAL_FIELDS = ()
    DATE_FIELDS = ()
    DATETIME_FIELDS = ()

    def to_dict(self):
        data = {'kind': self.kind}
        for key, value in asdict(self).items():
            if isinstance(value, Decimal):
                value = str(value)
            elif isinstance(value, (date, datetime)):
                value = value.isoformat()
            data[key] = value
        return data

    @classmethod
    def from_dict(cls, data):
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            if key not in known:
                continue
            if value is not None:
                if key in cls.DECIMAL_FIELDS:
                    value = Decimal(value)
                elif key in cls.DATE_FIELDS:
                    value = date.fromisoformat(value)
                elif key in cls.DATETIME_FIELDS:
                    value = datetime.fromisoformat(value)
            values[key] = value
        return cls(**values)


@register
@dataclass
class UserSnapshot(Snapshot):
    kind = 'user'

    id: int
    email: str
    first_name: str = ''
    last_name: str = ''
    role: str = ''
    is_active: bool = True
    dependents: dict = field(default_factory=dict)

    @classmethod
    def of(cls, user, dependents=None):
        return cls(
            id=user.pk,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            is_active=user.is_active,
            dependents=dict(dependents or {}),
        )


@register
@dataclass
class GrantSnapshot(Snapshot):
    kind = 'grant'

    user_id: int
    can_delete_collections: bool = False
    can_delete_users: bool = False
    can_delete_customers: bool = False

    @classmethod
    def of(cls, grant):
        return cls(
            user_id=grant.user_id,
            can_delete_collections=grant.can_delete_collections,
            can_delete_users=grant.can_delete_users,
            can_delete_customers=grant.can_delete_customers,
        )

    def apply_to(self, grant):
        """Copy the recorded flags onto a grant instance (not saved)."""
        grant.can_delete_collections = self.can_delete_collections
        grant.can_delete_users = self.can_delete_users
        grant.can_delete_customers = self.can_delete_customers
        return grant

    def flags(self):
        return {
            'can_delete_collections': self.can_delete_collections,
            'can_delete_users': self.can_delete_users,
            'can_delete_customers': self.can_delete_customers,
        }


@register
@dataclass
class CustomerSnapshot(Snapshot):
    kind = 'customer'
    DATE_FIELDS = ('date_of_birth',)

    id: int
    user_id: int
    email: str
    full_name: str = ''
    kyc_status: str = ''
    id_proof: str = ''
    date_of_birth: Optional[date] = None
    active_agent_ids: list = field(default_factory=list)
    dependents: dict = field(default_factory=dict)

    @classmethod
    def of(cls, customer, dependents=None):
        agent_ids = sorted(
            customer.assignments.filter(is_active=True).values_list('agent_id', flat=True)
        )
        return cls(
            id=customer.pk,
            user_id=customer.user_id,
            email=customer.user.email,
            full_name=customer.user.get_full_name(),
            kyc_status=customer.kyc_status,
            id_proof=customer.id_proof,
            date_of_birth=customer.date_of_birth,
            active_agent_ids=agent_ids,
            dependents=dict(dependents or {}),
        )


@register
@dataclass
class LoanSnapshot(Snapshot):
    kind = 'loan'
    DECIMAL_FIELDS = (
        'principal', 'interest_rate', 'outstanding_principal',
        'outstanding_interest', 'total_collected',
    )
    DATE_FIELDS = ('interest_accrued_through',)
    DATETIME_FIELDS = ('closed_at',)

    id: int
    loan_number: str
    customer_id: int
    status: str
    principal: Decimal
    interest_rate: Decimal
    outstanding_principal: Decimal
    outstanding_interest: Decimal
    total_collected: Decimal
    interest_accrued_through: Optional[date] = None
    closed_at: Optional[datetime] = None
    version: int = 0

    @classmethod
    def of(cls, loan):
        return cls(
            id=loan.pk,
            loan_number=loan.loan_number,
            customer_id=loan.customer_id,
            status=loan.status,
            principal=loan.principal,
            interest_rate=loan.interest_rate,
            outstanding_principal=loan.outstanding_principal,
            outstanding_interest=loan.outstanding_interest,
            total_collected=loan.total_collected,
            interest_accrued_through=loan.interest_accrued_through,
            closed_at=loan.closed_at,
            version=loan.version,
        )


@register
@dataclass
class BorrowingSnapshot(Snapshot):
    kind = 'borrowing'
    DECIMAL_FIELDS = ('amount', 'interest_rate', 'outstanding', 'total_repaid')

    id: int
    lender_name: str
    status: str
    amount: Decimal
    interest_rate: Decimal
    outstanding: Decimal
    total_repaid: Decimal
    version: int = 0

    @classmethod
    def of(cls, borrowing):
        return cls(
            id=borrowing.pk,
            lender_name=borrowing.lender_name,
            status=borrowing.status,
            amount=borrowing.amount,
            interest_rate=borrowing.interest_rate,
            outstanding=borrowing.outstanding,
            total_repaid=borrowing.total_repaid,
            version=borrowing.version,
        )


def load_snapshot(data):
    """
    Rebuild a snapshot from its stored dict. ``None`` stays ``None``.
    """
    if data is None:
        return None
    try:
        cls = SNAPSHOT_KINDS[data['kind']]
    except KeyError:
        raise ValueError(f"Unknown snapshot payload: {data!r}")
    return cls.from_dict(data)
