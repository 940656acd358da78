import logging
from dataclasses import dataclass
from typing import Optional

from django.db import DatabaseError
from django.utils import timezone

from loanbook_backend.exceptions import AuditPersistenceFailure

from .models import AuditLog
from .snapshots import Snapshot
from .utils import NO_CLIENT

logger = logging.getLogger(__name__)


@dataclass
class AuditEntry:
    actor_id: Optional[int]
    actor_email: str
    action: str
    entity_type: str
    entity_id: str
    before: Optional[Snapshot] = None
    after: Optional[Snapshot] = None
    ip_address: Optional[str] = None
    user_agent: str = ''
    remarks: str = ''

    @classmethod
    def build(cls, actor, action, entity_type, entity_id, before=None, after=None,
              client=NO_CLIENT, remarks=''):
        return cls(
            actor_id=getattr(actor, 'pk', None),
            actor_email=getattr(actor, 'email', '') or '',
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            before=before,
            after=after,
            ip_address=client.ip_address,
            user_agent=client.user_agent or '',
            remarks=remarks,
        )


class AuditRecorder:
    """
    Appends audit rows. There is no update or delete API.
    """

    def __init__(self, clock=timezone.now):
        self.clock = clock

    def record(self, entry):
        try:
            return AuditLog.objects.create(
                actor_id=entry.actor_id,
                actor_email=entry.actor_email,
                action=entry.action,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                before_data=entry.before.to_dict() if entry.before is not None else None,
                after_data=entry.after.to_dict() if entry.after is not None else None,
                ip_address=entry.ip_address,
                user_agent=entry.user_agent,
                remarks=entry.remarks,
                created_at=self.clock(),
            )
        except DatabaseError as exc:
            logger.error(
                f"[AuditRecorder] Failed to write {entry.action} for "
                f"{entry.entity_type}#{entry.entity_id}: {exc}"
            )
            raise AuditPersistenceFailure(entry=entry) from exc
