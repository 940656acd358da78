from django.db import models
from django.utils import timezone


class AuditLogImmutable(Exception):
    """Raised on any attempt to change or remove an audit row."""


class AuditLogQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise AuditLogImmutable('Audit log entries cannot be updated.')

    def delete(self):
        raise AuditLogImmutable('Audit log entries cannot be deleted.')


class AuditLog(models.Model):
    """
    Append-only record of every sensitive mutation.

    The actor is kept as plain id/email values rather than a foreign key so an
    entry is never touched when the acting user is later deleted.
    """

    USER_CREATED = 'USER_CREATED'
    GRANTS_UPDATED = 'GRANTS_UPDATED'
    USER_DELETED = 'USER_DELETED'
    CUSTOMER_CREATED = 'CUSTOMER_CREATED'
    CUSTOMER_UPDATED = 'CUSTOMER_UPDATED'
    CUSTOMER_DELETED = 'CUSTOMER_DELETED'
    AGENT_ASSIGNED = 'AGENT_ASSIGNED'
    AGENT_UNASSIGNED = 'AGENT_UNASSIGNED'
    LOAN_CREATED = 'LOAN_CREATED'
    LOAN_ACTIVATED = 'LOAN_ACTIVATED'
    COLLECTION_RECORDED = 'COLLECTION_RECORDED'
    BORROWING_CREATED = 'BORROWING_CREATED'
    BORROWING_REPAYMENT_RECORDED = 'BORROWING_REPAYMENT_RECORDED'

    ACTION_CHOICES = [
        (USER_CREATED, 'User Created'),
        (GRANTS_UPDATED, 'Manager Grants Updated'),
        (USER_DELETED, 'User Deleted'),
        (CUSTOMER_CREATED, 'Customer Created'),
        (CUSTOMER_UPDATED, 'Customer Updated'),
        (CUSTOMER_DELETED, 'Customer Deleted'),
        (AGENT_ASSIGNED, 'Agent Assigned'),
        (AGENT_UNASSIGNED, 'Agent Unassigned'),
        (LOAN_CREATED, 'Loan Created'),
        (LOAN_ACTIVATED, 'Loan Activated'),
        (COLLECTION_RECORDED, 'Collection Recorded'),
        (BORROWING_CREATED, 'Borrowing Created'),
        (BORROWING_REPAYMENT_RECORDED, 'Borrowing Repayment Recorded'),
    ]

    actor_id = models.BigIntegerField(null=True, blank=True)
    actor_email = models.EmailField(max_length=255, blank=True)

    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    entity_type = models.CharField(max_length=50)
    entity_id = models.CharField(max_length=64)

    before_data = models.JSONField(null=True, blank=True)
    after_data = models.JSONField(null=True, blank=True)

    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    remarks = models.TextField(blank=True)

    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    objects = AuditLogQuerySet.as_manager()

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['entity_type', 'entity_id'], name='audit_logs_entity__3f1c2a_idx'),
            models.Index(fields=['actor_id', '-created_at'], name='audit_logs_actor_i_8b7d41_idx'),
            models.Index(fields=['action'], name='audit_logs_action_5e9a07_idx'),
        ]

    def __str__(self):
        return f"{self.action} {self.entity_type}#{self.entity_id} by {self.actor_email or 'system'}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise AuditLogImmutable('Audit log entries cannot be updated.')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise AuditLogImmutable('Audit log entries cannot be deleted.')
