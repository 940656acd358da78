import pytest
from django.urls import reverse
from rest_framework import status

from audit.models import AuditLog
from audit.snapshots import load_snapshot
from customer.models import Customer
from home.models import CustomUser as User, ManagerGrant

PASSWORD = "S3cure-pass-123"


@pytest.mark.django_db
class TestUserCreation:

    def _payload(self, **overrides):
        payload = {
            "email": "new.agent@loanbook.test",
            "password": PASSWORD,
            "password_confirm": PASSWORD,
            "first_name": "Nila",
            "role": User.AGENT,
        }
        payload.update(overrides)
        return payload

    def test_admin_creates_manager_with_empty_grants(self, api_client, admin_user):
        api_client.force_authenticate(user=admin_user)
        response = api_client.post(
            reverse("user-list"), self._payload(email="m2@loanbook.test", role=User.MANAGER), format="json"
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["status"] == "success"
        user = User.objects.get(email="m2@loanbook.test")
        assert user.check_password(PASSWORD)
        grant = ManagerGrant.objects.get(user=user)
        assert not (grant.can_delete_users or grant.can_delete_customers or grant.can_delete_collections)
        assert AuditLog.objects.filter(action=AuditLog.USER_CREATED, entity_id=str(user.pk)).count() == 1

    def test_manager_cannot_create_admin(self, api_client, manager_user):
        api_client.force_authenticate(user=manager_user)
        response = api_client.post(reverse("user-list"), self._payload(role=User.ADMIN), format="json")

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data["kind"] == "authorization_error"
        assert not User.objects.filter(email="new.agent@loanbook.test").exists()

    def test_password_mismatch_is_rejected(self, api_client, admin_user):
        api_client.force_authenticate(user=admin_user)
        response = api_client.post(
            reverse("user-list"), self._payload(password_confirm="Different-pass-9"), format="json"
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "password_confirm" in response.data["details"]

    def test_duplicate_email_is_rejected(self, api_client, admin_user, agent_user):
        api_client.force_authenticate(user=admin_user)
        response = api_client.post(reverse("user-list"), self._payload(email=agent_user.email), format="json")
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["kind"] == "validation_error"

    def test_customer_role_gets_profile(self, api_client, admin_user):
        api_client.force_authenticate(user=admin_user)
        response = api_client.post(
            reverse("user-list"), self._payload(email="c@loanbook.test", role=User.CUSTOMER), format="json"
        )
        assert response.status_code == status.HTTP_201_CREATED
        assert Customer.objects.filter(user__email="c@loanbook.test").exists()

    def test_agent_cannot_list_users(self, api_client, agent_user):
        api_client.force_authenticate(user=agent_user)
        response = api_client.get(reverse("user-list"))
        assert response.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.django_db
class TestUserDeletion:

    def test_manager_needs_grant_then_deletes_with_one_audit_entry(self, api_client, admin_user, manager_user, agent_user):
        url = reverse("user-detail", args=[agent_user.pk])

        api_client.force_authenticate(user=manager_user)
        denied = api_client.delete(url)
        assert denied.status_code == status.HTTP_403_FORBIDDEN
        assert denied.data["kind"] == "authorization_error"
        assert User.objects.filter(pk=agent_user.pk).exists()

        api_client.force_authenticate(user=admin_user)
        granted = api_client.patch(
            reverse("user-grants", args=[manager_user.pk]), {"can_delete_users": True}, format="json"
        )
        assert granted.status_code == status.HTTP_200_OK
        assert granted.data["data"]["can_delete_users"] is True

        manager_user.refresh_from_db()
        api_client.force_authenticate(user=manager_user)
        response = api_client.delete(url)

        assert response.status_code == status.HTTP_200_OK
        assert response.data["data"]["email"] == "agent@loanbook.test"
        assert not User.objects.filter(pk=agent_user.pk).exists()
        entries = AuditLog.objects.filter(action=AuditLog.USER_DELETED)
        assert entries.count() == 1
        entry = entries.get()
        assert entry.actor_id == manager_user.pk
        assert entry.entity_id == str(agent_user.pk)
        assert load_snapshot(entry.before_data).email == "agent@loanbook.test"
        assert entry.after_data is None

    def test_manager_cannot_delete_admin_even_with_grant(self, api_client, admin_user, manager_user):
        manager_user.manager_grant.can_delete_users = True
        manager_user.manager_grant.save()
        api_client.force_authenticate(user=manager_user)

        response = api_client.delete(reverse("user-detail", args=[admin_user.pk]))
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert User.objects.filter(pk=admin_user.pk).exists()

    def test_self_deletion_is_blocked(self, api_client, admin_user):
        api_client.force_authenticate(user=admin_user)
        response = api_client.delete(reverse("user-detail", args=[admin_user.pk]))
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["reason"] == "self-deletion"
        assert not AuditLog.objects.filter(action=AuditLog.USER_DELETED).exists()

    def test_missing_user(self, api_client, admin_user):
        api_client.force_authenticate(user=admin_user)
        response = api_client.delete(reverse("user-detail", args=[999999]))
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_deletion_check_is_a_dry_run(self, api_client, admin_user, customer, make_loan):
        make_loan(customer)
        api_client.force_authenticate(user=admin_user)

        response = api_client.get(reverse("user-deletion-check", args=[customer.user_id]))
        assert response.status_code == status.HTTP_200_OK
        assert response.data["allowed"] is False
        assert response.data["code"] == "open_loans"
        assert response.data["blocking_count"] == 1
        assert User.objects.filter(pk=customer.user_id).exists()
        assert not AuditLog.objects.exists()

    def test_deleting_manager_removes_its_grant(self, api_client, admin_user, manager_user):
        api_client.force_authenticate(user=admin_user)
        response = api_client.delete(reverse("user-detail", args=[manager_user.pk]))
        assert response.status_code == status.HTTP_200_OK
        assert response.data["data"]["dependents"]["manager_grants"] == 1
        assert not ManagerGrant.objects.exists()


@pytest.mark.django_db
class TestManagerGrants:

    def test_only_admin_changes_grants(self, api_client, manager_user):
        api_client.force_authenticate(user=manager_user)
        response = api_client.patch(
            reverse("user-grants", args=[manager_user.pk]), {"can_delete_users": True}, format="json"
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN
        manager_user.manager_grant.refresh_from_db()
        assert manager_user.manager_grant.can_delete_users is False

    def test_grants_only_apply_to_managers(self, api_client, admin_user, agent_user):
        api_client.force_authenticate(user=admin_user)
        response = api_client.patch(
            reverse("user-grants", args=[agent_user.pk]), {"can_delete_users": True}, format="json"
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert not ManagerGrant.objects.filter(user=agent_user).exists()

    def test_grant_change_is_audited_and_replayable(self, api_client, admin_user, manager_user):
        api_client.force_authenticate(user=admin_user)
        api_client.patch(
            reverse("user-grants", args=[manager_user.pk]),
            {"can_delete_customers": True, "can_delete_collections": True},
            format="json",
        )

        entry = AuditLog.objects.get(action=AuditLog.GRANTS_UPDATED)
        before = load_snapshot(entry.before_data)
        after = load_snapshot(entry.after_data)
        assert before.flags() == {
            "can_delete_collections": False, "can_delete_users": False, "can_delete_customers": False,
        }
        assert after.flags() == {
            "can_delete_collections": True, "can_delete_users": False, "can_delete_customers": True,
        }

        grant = ManagerGrant.objects.get(user=manager_user)
        before.apply_to(grant)
        grant.save()
        grant.refresh_from_db()
        assert grant.can_delete_customers is False

    def test_empty_patch_is_rejected(self, api_client, admin_user, manager_user):
        api_client.force_authenticate(user=admin_user)
        response = api_client.patch(reverse("user-grants", args=[manager_user.pk]), {}, format="json")
        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestAuthentication:

    def test_token_carries_role(self, api_client, agent_user):
        response = api_client.post(
            reverse("token_obtain_pair"), {"email": agent_user.email, "password": PASSWORD}, format="json"
        )
        assert response.status_code == status.HTTP_200_OK
        assert "access" in response.data

    def test_anonymous_request_is_rejected(self, api_client):
        response = api_client.get(reverse("profile"))
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
