from io import StringIO

import pytest
from django.contrib.auth.models import AnonymousUser, User
from django.core.management import call_command
from django.test import RequestFactory
from django.urls import reverse

from users.audit import log_action
from users.models import AuditLog, Profile, is_admin, role_for


@pytest.mark.django_db
class TestRoles:

    def test_new_users_are_employees(self, cashier):
        assert cashier.profile.role == Profile.ROLE_EMPLOYEE
        assert is_admin(cashier) is False

    def test_superuser_is_admin(self, db):
        root = User.objects.create_superuser('root', 'root@example.com', 'root-pass-42')
        assert root.profile.role == Profile.ROLE_ADMIN
        assert role_for(root) == Profile.ROLE_ADMIN

    def test_anonymous_has_no_role(self):
        assert role_for(AnonymousUser()) is None
        assert is_admin(AnonymousUser()) is False

    def test_ensure_profiles(self, cashier):
        Profile.objects.filter(user=cashier).delete()
        root = User.objects.create_superuser('root', 'root@example.com', 'root-pass-42')
        Profile.objects.filter(user=root).update(role=Profile.ROLE_EMPLOYEE)

        out = StringIO()
        call_command('ensure_profiles', stdout=out)

        assert Profile.objects.get(user=cashier).role == Profile.ROLE_EMPLOYEE
        assert Profile.objects.get(user=root).role == Profile.ROLE_ADMIN
        assert 'Created 1 new profiles, promoted 1' in out.getvalue()


@pytest.mark.django_db
class TestAuditLog:

    def test_records_ip_from_forwarded_header(self, cashier):
        request = RequestFactory().get('/', HTTP_X_FORWARDED_FOR='10.0.0.7, 172.16.0.1')
        entry = log_action(cashier, 'CREATE', 'Product', 12, 'Product created', request=request)

        assert entry.ip_address == '10.0.0.7'
        assert entry.entity_id == '12'
        assert entry.user == cashier

    def test_system_action_has_no_user(self, db):
        entry = log_action(None, 'EXPIRE', 'ProductBatch', 3)
        assert entry.user is None
        assert entry.ip_address is None


@pytest.mark.django_db
class TestUserManagement:

    def test_admin_creates_user_with_role(self, manager_client):
        response = manager_client.post(reverse('users:user-add'), {
            'username': 'pharmacist',
            'first_name': 'Grace',
            'last_name': 'Njeri',
            'email': 'grace@example.com',
            'role': Profile.ROLE_ADMIN,
            'password1': 'Dispense-Safely-2024',
            'password2': 'Dispense-Safely-2024',
        })

        assert response.status_code == 302
        user = User.objects.get(username='pharmacist')
        assert user.profile.role == Profile.ROLE_ADMIN
        assert AuditLog.objects.filter(action='CREATE', entity_type='User', entity_id=str(user.pk)).exists()

    def test_admin_cannot_deactivate_self(self, manager_client, manager):
        manager_client.post(reverse('users:user-toggle', args=[manager.pk]))
        manager.refresh_from_db()
        assert manager.is_active is True

    def test_toggle_other_user(self, manager_client, cashier):
        manager_client.post(reverse('users:user-toggle', args=[cashier.pk]))
        cashier.refresh_from_db()
        assert cashier.is_active is False

    def test_self_registration_creates_employee(self, client):
        response = client.post(reverse('users:register'), {
            'username': 'newstaff',
            'first_name': 'Brian',
            'last_name': 'Ouma',
            'email': 'brian@example.com',
            'password1': 'Dispense-Safely-2024',
            'password2': 'Dispense-Safely-2024',
        })

        assert response.status_code == 302
        assert User.objects.get(username='newstaff').profile.role == Profile.ROLE_EMPLOYEE

    def test_role_change_reaches_session(self, cashier_client, cashier):
        cashier_client.get(reverse('dashboard'))
        assert cashier_client.session['role'] == Profile.ROLE_EMPLOYEE

        cashier.profile.role = Profile.ROLE_ADMIN
        cashier.profile.save()
        cashier_client.get(reverse('dashboard'))

        assert cashier_client.session['role'] == Profile.ROLE_ADMIN
