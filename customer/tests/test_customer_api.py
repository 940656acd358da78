from datetime import date

import pytest
from django.urls import reverse
from rest_framework import status

from audit.models import AuditLog
from audit.snapshots import load_snapshot
from customer.models import AgentAssignment, Customer
from finance.ledger import LedgerEngine
from finance.models import Collection, Loan
from home.models import CustomUser as User


@pytest.mark.django_db
class TestCustomerCreation:

    def _payload(self, **overrides):
        payload = {
            "email": "ravi@loanbook.test",
            "first_name": "Ravi",
            "last_name": "Kumar",
            "phone": "+919876543210",
            "id_proof": "AADHAAR-1234",
        }
        payload.update(overrides)
        return payload

    def test_agent_creator_is_assigned(self, api_client, agent_user):
        api_client.force_authenticate(user=agent_user)
        response = api_client.post(reverse("customer-list"), self._payload(), format="json")

        assert response.status_code == status.HTTP_201_CREATED
        customer = Customer.objects.get(user__email="ravi@loanbook.test")
        assert customer.user.role == User.CUSTOMER
        assert customer.is_assigned_to(agent_user)
        assert response.data["data"]["assignments"][0]["agent"] == agent_user.pk

        entry = AuditLog.objects.get(action=AuditLog.CUSTOMER_CREATED)
        assert load_snapshot(entry.after_data).active_agent_ids == [agent_user.pk]

    def test_manager_creates_unassigned_customer(self, api_client, manager_user):
        api_client.force_authenticate(user=manager_user)
        response = api_client.post(reverse("customer-list"), self._payload(), format="json")
        assert response.status_code == status.HTTP_201_CREATED
        assert not AgentAssignment.objects.exists()

    def test_customer_cannot_create_customers(self, api_client, customer):
        api_client.force_authenticate(user=customer.user)
        response = api_client.post(reverse("customer-list"), self._payload(), format="json")
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_missing_first_name(self, api_client, admin_user):
        api_client.force_authenticate(user=admin_user)
        payload = self._payload()
        del payload["first_name"]
        response = api_client.post(reverse("customer-list"), payload, format="json")
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "first_name" in response.data["details"]


@pytest.mark.django_db
class TestCustomerVisibility:

    def test_agent_lists_only_assigned_customers(self, api_client, agent_user, customer, make_customer):
        make_customer(email="someone.else@loanbook.test")
        api_client.force_authenticate(user=agent_user)

        response = api_client.get(reverse("customer-list"))
        assert response.status_code == status.HTTP_200_OK
        assert response.data["count"] == 1
        assert response.data["results"][0]["id"] == customer.pk

    def test_admin_lists_everyone_and_searches(self, api_client, admin_user, customer, make_customer):
        make_customer(email="someone.else@loanbook.test")
        api_client.force_authenticate(user=admin_user)

        assert api_client.get(reverse("customer-list")).data["count"] == 2
        response = api_client.get(reverse("customer-list"), {"search": "someone.else"})
        assert response.data["count"] == 1

    def test_unassigned_agent_cannot_read_customer(self, api_client, other_agent, customer):
        api_client.force_authenticate(user=other_agent)
        response = api_client.get(reverse("customer-detail", args=[customer.pk]))
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_customer_reads_own_profile(self, api_client, customer):
        api_client.force_authenticate(user=customer.user)
        response = api_client.get(reverse("customer-detail", args=[customer.pk]))
        assert response.status_code == status.HTTP_200_OK
        assert response.data["email"] == customer.user.email


@pytest.mark.django_db
class TestCustomerUpdate:

    def test_manager_verifies_kyc(self, api_client, manager_user, customer):
        api_client.force_authenticate(user=manager_user)
        response = api_client.patch(
            reverse("customer-detail", args=[customer.pk]),
            {"kyc_status": Customer.KYC_VERIFIED, "id_proof": "PAN-ABCDE1234F"},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["data"]["kyc_status"] == Customer.KYC_VERIFIED
        customer.refresh_from_db()
        assert customer.kyc_status == Customer.KYC_VERIFIED
        assert customer.id_proof == "PAN-ABCDE1234F"

        entry = AuditLog.objects.get(action=AuditLog.CUSTOMER_UPDATED)
        assert entry.actor_id == manager_user.pk
        assert entry.entity_id == str(customer.pk)
        assert load_snapshot(entry.before_data).kyc_status == Customer.KYC_PENDING
        assert load_snapshot(entry.after_data).kyc_status == Customer.KYC_VERIFIED

    def test_assigned_agent_updates_contact_details(self, api_client, agent_user, customer):
        api_client.force_authenticate(user=agent_user)
        response = api_client.patch(
            reverse("customer-detail", args=[customer.pk]),
            {"phone": "+919800000001", "date_of_birth": "1990-05-17"},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        customer.refresh_from_db()
        assert customer.user.phone == "+919800000001"
        assert customer.date_of_birth == date(1990, 5, 17)
        assert customer.kyc_status == Customer.KYC_PENDING

    def test_unassigned_agent_cannot_update(self, api_client, other_agent, customer):
        api_client.force_authenticate(user=other_agent)
        response = api_client.patch(
            reverse("customer-detail", args=[customer.pk]),
            {"kyc_status": Customer.KYC_REJECTED},
            format="json",
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN
        customer.refresh_from_db()
        assert customer.kyc_status == Customer.KYC_PENDING
        assert not AuditLog.objects.exists()

    def test_customer_cannot_change_own_kyc(self, api_client, customer):
        api_client.force_authenticate(user=customer.user)
        response = api_client.patch(
            reverse("customer-detail", args=[customer.pk]),
            {"kyc_status": Customer.KYC_VERIFIED},
            format="json",
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_unknown_kyc_status(self, api_client, admin_user, customer):
        api_client.force_authenticate(user=admin_user)
        response = api_client.patch(
            reverse("customer-detail", args=[customer.pk]), {"kyc_status": "MAYBE"}, format="json"
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "kyc_status" in response.data["details"]

    def test_empty_update_is_rejected(self, api_client, admin_user, customer):
        api_client.force_authenticate(user=admin_user)
        response = api_client.patch(reverse("customer-detail", args=[customer.pk]), {}, format="json")
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert not AuditLog.objects.exists()

    def test_missing_customer(self, api_client, admin_user):
        api_client.force_authenticate(user=admin_user)
        response = api_client.patch(
            reverse("customer-detail", args=[999999]), {"kyc_status": Customer.KYC_REJECTED}, format="json"
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.django_db
class TestCustomerDeletion:

    def test_active_loan_blocks_until_closed(self, api_client, admin_user, customer, make_loan):
        loan = make_loan(customer, principal="500.00")
        api_client.force_authenticate(user=admin_user)
        url = reverse("user-detail", args=[customer.user_id])

        blocked = api_client.delete(url)
        assert blocked.status_code == status.HTTP_409_CONFLICT
        assert blocked.data["kind"] == "referential_integrity"
        assert blocked.data["blocking_count"] == 1
        assert User.objects.filter(pk=customer.user_id).exists()

        LedgerEngine().post_collection(
            loan.pk, "500.00", Collection.CASH, collection_date=date(2024, 1, 1), posted_by=admin_user
        )
        loan.refresh_from_db()
        assert loan.status == Loan.CLOSED

        response = api_client.delete(url)
        assert response.status_code == status.HTTP_200_OK
        assert response.data["data"]["dependents"]["closed_loans"] == 1
        assert response.data["data"]["dependents"]["collections"] == 1
        assert not Customer.objects.filter(pk=customer.pk).exists()
        assert not Loan.objects.filter(pk=loan.pk).exists()
        assert AuditLog.objects.filter(action=AuditLog.USER_DELETED).count() == 1

    def test_delete_customer_endpoint(self, api_client, admin_user, customer, agent_user):
        api_client.force_authenticate(user=admin_user)
        response = api_client.delete(reverse("customer-detail", args=[customer.pk]))

        assert response.status_code == status.HTTP_200_OK
        snapshot = load_snapshot(AuditLog.objects.get(action=AuditLog.CUSTOMER_DELETED).before_data)
        assert snapshot.active_agent_ids == [agent_user.pk]
        assert not User.objects.filter(email="customer@loanbook.test").exists()

    def test_manager_needs_customer_grant(self, api_client, manager_user, customer):
        api_client.force_authenticate(user=manager_user)
        response = api_client.delete(reverse("customer-detail", args=[customer.pk]))
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data["reason"] == "manager lacks can_delete_customers"


@pytest.mark.django_db
class TestAgentAssignment:

    def test_assign_and_unassign(self, api_client, manager_user, other_agent, customer):
        api_client.force_authenticate(user=manager_user)

        assigned = api_client.post(
            reverse("customer-agent-assign", args=[customer.pk]), {"agent_id": other_agent.pk}, format="json"
        )
        assert assigned.status_code == status.HTTP_200_OK
        assert customer.is_assigned_to(other_agent)

        removed = api_client.delete(reverse("customer-agent-unassign", args=[customer.pk, other_agent.pk]))
        assert removed.status_code == status.HTTP_200_OK
        assert removed.data["data"]["is_active"] is False
        assert not customer.is_assigned_to(other_agent)

        actions = list(AuditLog.objects.order_by('id').values_list('action', flat=True))
        assert actions == [AuditLog.AGENT_ASSIGNED, AuditLog.AGENT_UNASSIGNED]

    def test_only_agents_can_be_assigned(self, api_client, manager_user, admin_user, customer):
        api_client.force_authenticate(user=manager_user)
        response = api_client.post(
            reverse("customer-agent-assign", args=[customer.pk]), {"agent_id": admin_user.pk}, format="json"
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_unassigning_missing_assignment(self, api_client, manager_user, other_agent, customer):
        api_client.force_authenticate(user=manager_user)
        response = api_client.delete(reverse("customer-agent-unassign", args=[customer.pk, other_agent.pk]))
        assert response.status_code == status.HTTP_404_NOT_FOUND
