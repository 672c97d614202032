"""
Tests for authentication, organization users, audit logging and email helpers
"""
from django.core import mail
from django.core.exceptions import ValidationError
from django.test import TestCase, override_settings
from rest_framework import status
from rest_framework_simplejwt.tokens import AccessToken

from emr_admin.core.emails import EmailDeliveryError, get_sender_address, send_email
from emr_admin.core.models import AuditLog, Setting
from emr_admin.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from emr_admin.core.utils import create_audit_log


class LoginTests(TestCase):
    """Test JWT login and token claims"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.organization = TestDataFactory.create_organization()
        self.user = TestDataFactory.create_user(
            username='doctor1', password='testpass123', organization=self.organization, role='doctor'
        )

    def test_login_returns_tokens_and_user(self):
        response = self.client.post('/api/auth/login/', {'username': 'doctor1', 'password': 'testpass123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['username'], 'doctor1')

    def test_access_token_claims(self):
        response = self.client.post('/api/auth/login/', {'username': 'doctor1', 'password': 'testpass123'}, format='json')
        token = AccessToken(response.data['access'])
        self.assertEqual(token['role'], 'doctor')
        self.assertEqual(token['organization_id'], self.organization.id)
        self.assertFalse(token['is_saas_owner'])

    def test_wrong_password_rejected(self):
        response = self.client.post('/api/auth/login/', {'username': 'doctor1', 'password': 'wrong'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_disabled_user_rejected(self):
        self.user.is_active = False
        self.user.save()
        response = self.client.post('/api/auth/login/', {'username': 'doctor1', 'password': 'testpass123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_suspended_organization_rejected(self):
        self.organization.subscription_status = 'suspended'
        self.organization.save()
        response = self.client.post('/api/auth/login/', {'username': 'doctor1', 'password': 'testpass123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_refresh_token(self):
        login = self.client.post('/api/auth/login/', {'username': 'doctor1', 'password': 'testpass123'}, format='json')
        response = self.client.post('/api/auth/refresh/', {'refresh': login.data['refresh']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_me_includes_organization_and_flags(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['organization']['subdomain'], self.organization.subdomain)
        self.assertFalse(response.data['can_access_saas'])
        self.assertFalse(response.data['can_manage_users'])

    def test_me_requires_authentication(self):
        response = self.client.get('/api/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class OrganizationUserTests(TestCase):
    """Test user management scoped to an organization"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.organization = TestDataFactory.create_organization()
        self.admin = TestDataFactory.create_org_admin(organization=self.organization)
        self.other_org_user = TestDataFactory.create_user(organization=TestDataFactory.create_organization())
        self.client.authenticate_user(self.admin)

    def test_list_only_own_organization(self):
        TestDataFactory.create_user(organization=self.organization)
        response = self.client.get('/api/users/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        ids = {user['id'] for user in response.data}
        self.assertNotIn(self.other_org_user.id, ids)
        self.assertEqual(len(ids), 2)

    def test_create_user_in_admin_organization(self):
        response = self.client.post('/api/users/', {
            'username': 'nurse1',
            'email': 'nurse1@test.com',
            'password': 'Sup3r-Secret-Pass',
            'password_confirm': 'Sup3r-Secret-Pass',
            'role': 'nurse',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['organization'], self.organization.id)
        self.assertTrue(AuditLog.objects.filter(action='create', model_name='User').exists())

    def test_password_mismatch(self):
        response = self.client.post('/api/users/', {
            'username': 'nurse2',
            'password': 'Sup3r-Secret-Pass',
            'password_confirm': 'different-pass-1',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_non_admin_forbidden(self):
        staff = TestDataFactory.create_user(organization=self.organization, role='staff')
        self.client.authenticate_user(staff)
        response = self.client.get('/api/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_cannot_reach_other_organization_user(self):
        response = self.client.get(f'/api/users/{self.other_org_user.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_cannot_delete_self(self):
        response = self.client.delete(f'/api/users/{self.admin.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class AuditLogTests(TestCase):
    """Test audit log creation and listing"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.organization = TestDataFactory.create_organization()
        self.user = TestDataFactory.create_user(organization=self.organization)

    def test_create_audit_log_defaults_organization_from_user(self):
        log = create_audit_log(user=self.user, action='update', model_name='InventoryItem', object_id=5)
        self.assertEqual(log.organization, self.organization)
        self.assertEqual(log.object_id, '5')

    def test_create_audit_log_skips_missing_fields(self):
        self.assertIsNone(create_audit_log(user=self.user, action='update', model_name=None, object_id=1))
        self.assertEqual(AuditLog.objects.count(), 0)

    def test_list_is_scoped_to_organization(self):
        other = TestDataFactory.create_user(organization=TestDataFactory.create_organization())
        create_audit_log(user=self.user, action='create', model_name='Supplier', object_id=1)
        create_audit_log(user=other, action='create', model_name='Supplier', object_id=2)

        self.client.authenticate_user(self.user)
        response = self.client.get('/api/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['object_id'], '1')

    def test_saas_owner_sees_all(self):
        other = TestDataFactory.create_user(organization=TestDataFactory.create_organization())
        create_audit_log(user=self.user, action='create', model_name='Supplier', object_id=1)
        create_audit_log(user=other, action='create', model_name='Supplier', object_id=2)

        self.client.authenticate_user(TestDataFactory.create_saas_owner())
        response = self.client.get('/api/audit-logs/', {'model': 'Supplier'})
        self.assertEqual(response.data['count'], 2)


class EmailTests(TestCase):
    """Test the outbound email helper"""

    def test_send_email_html_with_text_alternative(self):
        send_email('someone@test.com', 'Hello', '<p>Hi <strong>there</strong></p>')
        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.body, 'Hi there')
        self.assertEqual(message.alternatives[0][1], 'text/html')
        self.assertEqual(message.from_email, 'noreply@test.local')

    def test_invalid_recipient(self):
        with self.assertRaises(ValidationError):
            send_email('not-an-email', 'Hello', '<p>Hi</p>')
        self.assertEqual(len(mail.outbox), 0)

    def test_sender_from_settings(self):
        Setting.objects.create(key='email', value={'from_email': 'billing@clinic.test', 'from_name': 'Billing'})
        self.assertEqual(get_sender_address(), 'Billing <billing@clinic.test>')

    @override_settings(EMAIL_BACKEND='django.core.mail.backends.smtp.EmailBackend', EMAIL_HOST='localhost', EMAIL_PORT=1)
    def test_backend_failure_raises_delivery_error(self):
        with self.assertRaises(EmailDeliveryError):
            send_email('someone@test.com', 'Hello', '<p>Hi</p>')
