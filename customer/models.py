"""
Customer models for the loan servicing back office.

A Customer is the borrower-side profile of a CUSTOMER-role user. Field agents
are linked to customers through AgentAssignment rows that can be switched on
and off independently.
"""

from django.conf import settings
from django.db import models
from django.utils import timezone


# ========================================
# CUSTOMER MODEL
# ========================================

class Customer(models.Model):
    """
    Borrower profile.

    Business Rules:
    - Exactly one profile per CUSTOMER-role user
    - Loans reference the profile with PROTECT; removal is explicit
    """

    KYC_PENDING = 'PENDING'
    KYC_VERIFIED = 'VERIFIED'
    KYC_REJECTED = 'REJECTED'

    KYC_STATUS_CHOICES = [
        (KYC_PENDING, 'Pending'),
        (KYC_VERIFIED, 'Verified'),
        (KYC_REJECTED, 'Rejected'),
    ]

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='customer_profile',
        limit_choices_to={'role': 'customer'},
    )
    kyc_status = models.CharField(max_length=20, choices=KYC_STATUS_CHOICES, default=KYC_PENDING)
    id_proof = models.CharField(
        max_length=100,
        blank=True,
        help_text="Identity document number"
    )
    date_of_birth = models.DateField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'customers'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['kyc_status'], name='customers_kyc_status_idx'),
            models.Index(fields=['created_at'], name='customers_created_at_idx'),
        ]

    def __str__(self):
        return f"{self.user.get_full_name()} ({self.user.email})"

    def active_agents(self):
        return [a.agent for a in self.assignments.filter(is_active=True).select_related('agent')]

    def is_assigned_to(self, agent):
        return self.assignments.filter(agent=agent, is_active=True).exists()


# ========================================
# AGENT ASSIGNMENT MODEL
# ========================================

class AgentAssignment(models.Model):
    """
    Link between a field agent and a customer. Deactivating keeps the row
    so the history of who served the customer survives.
    """

    customer = models.ForeignKey(
        Customer,
        on_delete=models.PROTECT,
        related_name='assignments'
    )
    agent = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='agent_assignments',
        limit_choices_to={'role': 'agent'},
    )
    is_active = models.BooleanField(default=True)
    assigned_at = models.DateTimeField(default=timezone.now)
    deactivated_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'agent_assignments'
        ordering = ['-assigned_at']
        constraints = [
            models.UniqueConstraint(fields=['customer', 'agent'], name='unique_customer_agent_assignment'),
        ]

    def __str__(self):
        state = 'active' if self.is_active else 'inactive'
        return f"{self.agent.email} -> customer #{self.customer_id} ({state})"

    def activate(self):
        self.is_active = True
        self.deactivated_at = None
        self.assigned_at = timezone.now()

    def deactivate(self):
        self.is_active = False
        self.deactivated_at = timezone.now()
