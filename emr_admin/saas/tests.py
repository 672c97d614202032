"""
Test suite for the SaaS console
Tests: subscription periods, customers, billing, reminders, automation and endpoints
"""
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.core import mail
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status

from emr_admin.core.models import AuditLog, Setting
from emr_admin.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from emr_admin.saas import billing, customers, reminders
from emr_admin.saas.dashboard import dashboard_stats, system_alerts
from emr_admin.saas.models import Invoice, Payment, Subscription
from emr_admin.saas.periods import (
    add_months, calculate_period_end, cycle_months, days_remaining, format_days_left,
    grace_period_end, has_access, is_within_grace_period,
)
from emr_admin.tenants.models import Organization


def aware(*args):
    return datetime(*args, tzinfo=dt_timezone.utc)


class PeriodTests(TestCase):
    """Test subscription date arithmetic"""

    def test_cycle_months(self):
        self.assertEqual(cycle_months('monthly'), 1)
        self.assertEqual(cycle_months('half-yearly'), 6)
        self.assertEqual(cycle_months('3 years'), 36)
        self.assertEqual(cycle_months('fortnightly'), 1)

    def test_add_months_clamps_to_month_end(self):
        self.assertEqual(add_months(aware(2024, 1, 31), 1), aware(2024, 2, 29))
        self.assertEqual(add_months(aware(2023, 1, 31), 1), aware(2023, 2, 28))
        self.assertEqual(add_months(aware(2024, 11, 15), 3), aware(2025, 2, 15))

    def test_calculate_period_end(self):
        self.assertEqual(calculate_period_end(aware(2024, 3, 10), 'yearly'), aware(2025, 3, 10))
        self.assertEqual(calculate_period_end(aware(2024, 3, 10), '2 years'), aware(2026, 3, 10))

    def test_days_remaining_rounds_up(self):
        now = aware(2024, 5, 1, 12)
        self.assertEqual(days_remaining(now + timedelta(days=6, hours=1), now), 7)
        self.assertEqual(days_remaining(now + timedelta(days=7), now), 7)
        self.assertEqual(days_remaining(now - timedelta(days=2), now), -2)
        self.assertIsNone(days_remaining(None, now))

    def test_format_days_left(self):
        self.assertEqual(format_days_left(0), 'Expiring today')
        self.assertEqual(format_days_left(1), '1 day left')
        self.assertEqual(format_days_left(5), '5 days left')
        self.assertEqual(format_days_left(-1), '1 day overdue')
        self.assertEqual(format_days_left(-3), '3 days overdue')

    def test_grace_period(self):
        expires = aware(2024, 5, 1)
        self.assertEqual(grace_period_end(expires), aware(2024, 5, 8))
        self.assertFalse(is_within_grace_period(expires, aware(2024, 4, 30)))
        self.assertTrue(is_within_grace_period(expires, aware(2024, 5, 4)))
        self.assertTrue(is_within_grace_period(expires, aware(2024, 5, 8)))
        self.assertFalse(is_within_grace_period(expires, aware(2024, 5, 9)))

    def test_has_access(self):
        organization = TestDataFactory.create_organization()
        expires = aware(2024, 5, 1)
        subscription = TestDataFactory.create_subscription(organization, expires_at=expires)
        self.assertTrue(has_access(subscription, aware(2024, 4, 1)))
        self.assertTrue(has_access(subscription, aware(2024, 5, 5)))
        self.assertFalse(has_access(subscription, aware(2024, 5, 10)))

        subscription.status = 'suspended'
        self.assertFalse(has_access(subscription, aware(2024, 4, 1)))
        subscription.status = 'expired'
        self.assertTrue(has_access(subscription, aware(2024, 5, 5)))
        self.assertFalse(has_access(None))


class CustomerServiceTests(TestCase):
    """Test customer onboarding and status changes"""

    def setUp(self):
        self.package = TestDataFactory.create_package(billing_cycle='quarterly')

    def test_create_customer(self):
        organization, admin, email_sent = customers.create_customer(
            name='Hill Clinic', subdomain='Hill Clinic', admin_email='owner@hill.test', package=self.package
        )
        self.assertEqual(organization.subdomain, 'hill-clinic')
        self.assertEqual(admin.role, 'admin')
        self.assertEqual(admin.organization, organization)
        self.assertTrue(email_sent)
        self.assertEqual(mail.outbox[0].to, ['owner@hill.test'])

        subscription = organization.subscriptions.get()
        self.assertEqual(subscription.status, 'active')
        self.assertEqual(subscription.expires_at, add_months(subscription.current_period_start, 3))
        self.assertEqual(organization.subscription_status, 'active')

    def test_trial_customer(self):
        organization, _, _ = customers.create_customer(
            name='Trial Clinic', subdomain='trial', admin_email='a@trial.test', package=self.package, trial=True
        )
        subscription = organization.subscriptions.get()
        self.assertEqual(subscription.status, 'trial')
        self.assertEqual(subscription.expires_at - subscription.current_period_start, timedelta(days=customers.TRIAL_DAYS))

    def test_duplicate_subdomain(self):
        TestDataFactory.create_organization(subdomain='taken')
        with self.assertRaisesMessage(ValidationError, "Title 'taken' is already taken"):
            customers.create_customer(name='Again', subdomain='Taken', admin_email='x@test.com')

    def test_required_fields(self):
        with self.assertRaises(ValidationError):
            customers.create_customer(name='', subdomain='empty', admin_email='x@test.com')

    @override_settings(EMAIL_BACKEND='django.core.mail.backends.smtp.EmailBackend', EMAIL_HOST='localhost', EMAIL_PORT=1)
    def test_welcome_email_failure_does_not_fail_creation(self):
        organization, _, email_sent = customers.create_customer(
            name='Quiet Clinic', subdomain='quiet', admin_email='x@quiet.test'
        )
        self.assertFalse(email_sent)
        self.assertTrue(Organization.objects.filter(pk=organization.pk).exists())

    def test_suspend_sets_latest_subscription(self):
        organization = TestDataFactory.create_organization(subscription_status='active')
        subscription = TestDataFactory.create_subscription(organization)
        customers.update_customer_status(organization, 'suspended')
        subscription.refresh_from_db()
        self.assertEqual(organization.subscription_status, 'suspended')
        self.assertEqual(subscription.status, 'suspended')

    def test_invalid_status(self):
        organization = TestDataFactory.create_organization()
        with self.assertRaises(ValidationError):
            customers.update_customer_status(organization, 'deleted')


class BillingServiceTests(TestCase):
    """Test payments, overdue detection, MRR and suspension"""

    def setUp(self):
        self.now = timezone.now()
        self.organization = TestDataFactory.create_organization(subscription_status='active')

    def test_create_payment_defaults(self):
        payment = billing.create_payment(self.organization, '49.99', 'stripe', now=self.now)
        self.assertEqual(payment.currency, 'GBP')
        self.assertEqual(payment.payment_status, 'pending')
        self.assertIsNone(payment.payment_date)
        self.assertEqual(payment.due_date, self.now + timedelta(days=30))
        self.assertEqual(payment.period_end - payment.period_start, timedelta(days=30))
        self.assertRegex(payment.invoice_number, r'^INV-\d{8}-[0-9A-F]{8}$')

    def test_completed_payment_sets_payment_date(self):
        payment = billing.create_payment(self.organization, 10, 'cash', payment_status='completed', now=self.now)
        self.assertEqual(payment.payment_date, self.now)
        self.organization.refresh_from_db()
        self.assertEqual(self.organization.payment_status, 'paid')

    def test_invalid_amount_and_method(self):
        with self.assertRaises(ValidationError):
            billing.create_payment(self.organization, 0, 'cash')
        with self.assertRaises(ValidationError):
            billing.create_payment(self.organization, 10, 'cheque')

    def test_update_payment_status(self):
        payment = TestDataFactory.create_payment(self.organization)
        billing.update_payment_status(payment, 'completed', now=self.now)
        payment.refresh_from_db()
        self.assertEqual(payment.payment_status, 'completed')
        self.assertEqual(payment.payment_date, self.now)
        with self.assertRaises(ValidationError):
            billing.update_payment_status(payment, 'lost')

    def test_overdue_payments(self):
        overdue = TestDataFactory.create_payment(self.organization, due_date=self.now - timedelta(days=1))
        TestDataFactory.create_payment(self.organization, due_date=self.now + timedelta(days=1))
        TestDataFactory.create_payment(self.organization, payment_status='completed', due_date=self.now - timedelta(days=5))
        self.assertEqual(list(billing.get_overdue_payments(self.now)), [overdue])

    def test_monthly_recurring_revenue(self):
        monthly = TestDataFactory.create_package(price=Decimal('30.00'), billing_cycle='monthly')
        yearly = TestDataFactory.create_package(price=Decimal('120.00'), billing_cycle='yearly')
        TestDataFactory.create_subscription(self.organization, package=monthly)
        TestDataFactory.create_subscription(TestDataFactory.create_organization(), package=yearly)
        TestDataFactory.create_subscription(TestDataFactory.create_organization(), package=monthly, status='trial')
        self.assertEqual(billing.monthly_recurring_revenue(), Decimal('40.00'))

    def test_suspend_unpaid_after_grace_period(self):
        subscription = TestDataFactory.create_subscription(self.organization)
        TestDataFactory.create_payment(self.organization, due_date=self.now - timedelta(days=8))
        recent = TestDataFactory.create_organization(subscription_status='active')
        recent_subscription = TestDataFactory.create_subscription(recent)
        TestDataFactory.create_payment(recent, due_date=self.now - timedelta(days=3))

        self.assertEqual(billing.suspend_unpaid_subscriptions(self.now), 1)
        subscription.refresh_from_db()
        self.organization.refresh_from_db()
        recent_subscription.refresh_from_db()
        self.assertEqual(subscription.status, 'suspended')
        self.assertEqual(subscription.payment_status, 'unpaid')
        self.assertEqual(self.organization.subscription_status, 'suspended')
        self.assertEqual(self.organization.payment_status, 'unpaid')
        self.assertEqual(recent_subscription.status, 'active')

    def test_payment_lifts_suspension(self):
        subscription = TestDataFactory.create_subscription(self.organization)
        payment = TestDataFactory.create_payment(self.organization, due_date=self.now - timedelta(days=10))
        billing.suspend_unpaid_subscriptions(self.now)

        billing.update_payment_status(payment, 'completed', now=self.now)
        subscription.refresh_from_db()
        self.organization.refresh_from_db()
        self.assertEqual(subscription.status, 'active')
        self.assertEqual(self.organization.subscription_status, 'active')
        self.assertEqual(self.organization.payment_status, 'paid')

    def test_export_csv_quotes_every_field(self):
        TestDataFactory.create_payment(self.organization, amount=Decimal('12.50'), invoice_number='INV-1',
                                       description='Monthly plan')
        content = billing.export_payments_csv(Payment.objects.select_related('organization'))
        lines = content.strip().splitlines()
        self.assertEqual(lines[0], '"Invoice Number","Customer","Amount","Currency","Payment Method","Status","Created Date","Due Date","Description"')
        self.assertTrue(lines[1].startswith(f'"INV-1","{self.organization.name}","12.50","GBP"'))

    def test_share_payment_document(self):
        payment = TestDataFactory.create_payment(self.organization, invoice_number='INV-SHARE')
        user = TestDataFactory.create_saas_owner()
        billing.share_payment_document(payment, 'accounts@clinic.test', message='Please pay', shared_by=user)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn('INV-SHARE', mail.outbox[0].subject)
        payment.refresh_from_db()
        self.assertEqual(payment.metadata['shares'][0]['recipient'], 'accounts@clinic.test')

    def test_share_invalid_recipient(self):
        payment = TestDataFactory.create_payment(self.organization)
        with self.assertRaises(ValidationError):
            billing.share_payment_document(payment, 'nope')

    def test_create_invoice_defaults_to_draft(self):
        invoice = billing.create_invoice(self.organization, '75.00', now=self.now)
        self.assertEqual(invoice.status, 'draft')
        self.assertEqual(invoice.due_date, self.now + timedelta(days=30))
        self.assertEqual(len(invoice.line_items), 1)


class ReminderTests(TestCase):
    """Test expiry reminders and subscription expiry"""

    def setUp(self):
        self.now = timezone.now()
        self.organization = TestDataFactory.create_organization(email='office@clinic.test', subscription_status='active')
        self.admin = TestDataFactory.create_org_admin(organization=self.organization, email='admin@clinic.test')

    def test_seven_day_reminder_sent_once(self):
        subscription = TestDataFactory.create_subscription(self.organization, expires_at=self.now + timedelta(days=7))
        self.assertEqual(reminders.run_expiry_reminders(self.now), {'sent': 1, 'failed': 0})
        self.assertEqual(reminders.run_expiry_reminders(self.now), {'sent': 0, 'failed': 0})

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ['admin@clinic.test'])
        subscription.refresh_from_db()
        self.assertIn('reminder_7d', subscription.metadata['expiryReminders'])
        self.assertEqual(subscription.metadata['expiryAlertLevel'], 'reminder_7d')
        self.assertTrue(AuditLog.objects.filter(action='reminder_sent', object_id=str(subscription.id)).exists())

    def test_day_of_level_when_already_expired(self):
        subscription = TestDataFactory.create_subscription(self.organization, expires_at=self.now - timedelta(hours=2))
        level = reminders.due_reminder_level(subscription, self.now)
        self.assertEqual(level['key'], 'reminder_day_of')

    def test_no_level_between_thresholds(self):
        subscription = TestDataFactory.create_subscription(self.organization, expires_at=self.now + timedelta(days=4))
        self.assertIsNone(reminders.due_reminder_level(subscription, self.now))

    def test_recipient_is_newest_active_admin(self):
        newer = TestDataFactory.create_org_admin(organization=self.organization, email='newer@clinic.test')
        newer.date_joined = self.now + timedelta(minutes=1)
        newer.save()
        TestDataFactory.create_org_admin(organization=self.organization, email='gone@clinic.test', is_active=False)
        self.assertEqual(reminders.get_reminder_recipient(self.organization), 'newer@clinic.test')

    def test_recipient_falls_back_to_organization_email(self):
        self.admin.delete()
        self.assertEqual(reminders.get_reminder_recipient(self.organization), 'office@clinic.test')

    def test_no_recipient(self):
        self.admin.delete()
        self.organization.email = ''
        self.organization.save()
        with self.assertRaisesMessage(ValidationError, 'No admin email configured'):
            reminders.get_reminder_recipient(self.organization)

    def test_manual_reminder_unknown_level(self):
        subscription = TestDataFactory.create_subscription(self.organization)
        with self.assertRaises(ValidationError):
            reminders.send_manual_reminder(subscription, 'reminder_30d')

    def test_expire_subscriptions(self):
        lapsed = TestDataFactory.create_subscription(self.organization, expires_at=self.now - timedelta(minutes=1))
        current = TestDataFactory.create_subscription(TestDataFactory.create_organization(), expires_at=self.now + timedelta(days=1))
        self.assertEqual(reminders.expire_subscriptions(self.now), 1)
        lapsed.refresh_from_db()
        current.refresh_from_db()
        self.organization.refresh_from_db()
        self.assertEqual(lapsed.status, 'expired')
        self.assertEqual(current.status, 'active')
        self.assertEqual(self.organization.subscription_status, 'inactive')

    def test_automation_command(self):
        TestDataFactory.create_subscription(self.organization, expires_at=timezone.now() + timedelta(days=1))
        out = StringIO()
        call_command('run_saas_automation', stdout=out)
        self.assertIn('Reminders sent: 1', out.getvalue())
        self.assertEqual(mail.outbox[0].subject, 'Your subscription expires tomorrow')

    def test_expiry_keeps_payment_suspension(self):
        subscription = TestDataFactory.create_subscription(self.organization, expires_at=self.now + timedelta(days=1))
        TestDataFactory.create_payment(self.organization, due_date=self.now - timedelta(days=10))
        billing.suspend_unpaid_subscriptions(self.now)

        self.assertEqual(reminders.expire_subscriptions(self.now + timedelta(days=2)), 0)
        subscription.refresh_from_db()
        self.organization.refresh_from_db()
        self.assertEqual(subscription.status, 'suspended')
        self.assertEqual(self.organization.subscription_status, 'suspended')

        client = AuthenticatedAPIClient()
        response = client.post('/api/auth/login/', {'username': self.admin.username, 'password': 'testpass123'},
                               format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_expiry_keeps_organization_with_renewal_active(self):
        lapsed = TestDataFactory.create_subscription(self.organization, expires_at=self.now - timedelta(minutes=1))
        TestDataFactory.create_subscription(self.organization, expires_at=self.now + timedelta(days=30))

        self.assertEqual(reminders.expire_subscriptions(self.now), 1)
        lapsed.refresh_from_db()
        self.organization.refresh_from_db()
        self.assertEqual(lapsed.status, 'expired')
        self.assertEqual(self.organization.subscription_status, 'active')

    def test_long_lapsed_subscription_gets_no_reminder(self):
        TestDataFactory.create_subscription(self.organization, expires_at=self.now - timedelta(days=3))
        self.assertEqual(reminders.run_expiry_reminders(self.now), {'sent': 0, 'failed': 0})
        self.assertEqual(len(mail.outbox), 0)

    def test_automation_loop_survives_failed_run(self):
        command_module = 'emr_admin.saas.management.commands.run_saas_automation'
        with patch(f'{command_module}.run_expiry_reminders',
                   side_effect=[RuntimeError('database unavailable'), {'sent': 0, 'failed': 0}]) as run_reminders, \
                patch(f'{command_module}.time.sleep', side_effect=[None, KeyboardInterrupt]):
            with self.assertRaises(KeyboardInterrupt):
                call_command('run_saas_automation', '--loop', '--interval', '1', stdout=StringIO())
        self.assertEqual(run_reminders.call_count, 2)


class DashboardTests(TestCase):

    def setUp(self):
        cache.clear()
        self.now = timezone.now()

    def test_dashboard_stats(self):
        organization = TestDataFactory.create_organization(subscription_status='active')
        TestDataFactory.create_organization(subscription_status='trial')
        TestDataFactory.create_user(organization=organization)
        TestDataFactory.create_subscription(organization, package=TestDataFactory.create_package(price=Decimal('60.00')))
        TestDataFactory.create_payment(organization, payment_status='completed', payment_date=self.now, amount=Decimal('60.00'))
        TestDataFactory.create_payment(organization, due_date=self.now - timedelta(days=2), amount=Decimal('15.00'))

        stats = dashboard_stats()
        self.assertEqual(stats['total_customers'], 2)
        self.assertEqual(stats['active_customers'], 1)
        self.assertEqual(stats['trial_customers'], 1)
        self.assertEqual(stats['active_subscriptions'], 1)
        self.assertEqual(stats['total_users'], 1)
        self.assertEqual(stats['monthly_recurring_revenue'], Decimal('60.00'))
        self.assertEqual(stats['revenue_last_30_days'], Decimal('60.00'))
        self.assertEqual(stats['overdue_payments'], 1)
        self.assertEqual(stats['overdue_amount'], Decimal('15.00'))

    def test_system_alerts(self):
        expiring_org = TestDataFactory.create_organization(name='Expiring')
        TestDataFactory.create_subscription(expiring_org, expires_at=self.now + timedelta(days=3))
        grace_org = TestDataFactory.create_organization(name='Grace')
        TestDataFactory.create_subscription(grace_org, expires_at=self.now - timedelta(days=2))
        TestDataFactory.create_payment(grace_org, due_date=self.now - timedelta(days=1))
        TestDataFactory.create_organization(name='Suspended', subscription_status='suspended')

        types = [alert['type'] for alert in system_alerts(self.now)]
        self.assertEqual(types, ['subscription_expiring', 'grace_period', 'payment_overdue', 'organization_suspended'])


class SaaSAPITests(TestCase):
    """Test SaaS owner endpoints"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.owner = TestDataFactory.create_saas_owner()
        self.client.authenticate_user(self.owner)
        self.package = TestDataFactory.create_package(price=Decimal('99.00'), billing_cycle='monthly')

    def test_tenant_user_forbidden(self):
        self.client.authenticate_user(TestDataFactory.create_org_admin())
        response = self.client.get('/api/saas/customers/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_create_customer_endpoint(self):
        response = self.client.post('/api/saas/customers/', {
            'name': 'North Clinic',
            'subdomain': 'north',
            'admin_email': 'admin@north.test',
            'package_id': self.package.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['email_sent'])
        self.assertEqual(response.data['organization']['subdomain'], 'north')
        self.assertEqual(response.data['admin_user']['role'], 'admin')

        duplicate = self.client.post('/api/saas/customers/', {
            'name': 'North Again', 'subdomain': 'north', 'admin_email': 'x@north.test',
        }, format='json')
        self.assertEqual(duplicate.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(duplicate.data['error'], "Title 'north' is already taken")

    def test_customer_list_search_and_status(self):
        TestDataFactory.create_organization(name='Alpha Care', subscription_status='active')
        TestDataFactory.create_organization(name='Beta Health', subscription_status='suspended')
        response = self.client.get('/api/saas/customers/', {'search': 'alpha'})
        self.assertEqual([row['name'] for row in response.data['results']], ['Alpha Care'])
        response = self.client.get('/api/saas/customers/', {'status': 'suspended'})
        self.assertEqual([row['name'] for row in response.data['results']], ['Beta Health'])

    def test_customer_status_and_delete(self):
        organization = TestDataFactory.create_organization()
        response = self.client.post(f'/api/saas/customers/{organization.id}/status/', {'status': 'suspended'}, format='json')
        self.assertEqual(response.data['subscription_status'], 'suspended')
        response = self.client.post(f'/api/saas/customers/{organization.id}/status/', {'status': 'bogus'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.delete(f'/api/saas/customers/{organization.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Organization.objects.filter(pk=organization.id).exists())

    def test_organization_subscription(self):
        organization = TestDataFactory.create_organization()
        response = self.client.get(f'/api/saas/organizations/{organization.id}/subscription/')
        self.assertIsNone(response.data['subscription'])
        self.assertFalse(response.data['has_active_subscription'])

        TestDataFactory.create_subscription(organization, expires_at=timezone.now() + timedelta(days=10, hours=1))
        response = self.client.get(f'/api/saas/organizations/{organization.id}/subscription/')
        self.assertTrue(response.data['has_active_subscription'])
        self.assertEqual(response.data['days_remaining'], 11)

    def test_create_subscription_computes_period(self):
        organization = TestDataFactory.create_organization()
        yearly = TestDataFactory.create_package(billing_cycle='yearly')
        response = self.client.post('/api/saas/subscriptions/', {
            'organization_id': organization.id,
            'package_id': yearly.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        subscription = Subscription.objects.get(pk=response.data['id'])
        self.assertEqual(subscription.expires_at, add_months(subscription.current_period_start, 12))

    def test_create_subscription_requires_ids(self):
        response = self.client.post('/api/saas/subscriptions/', {'package_id': self.package.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_remind_endpoint(self):
        organization = TestDataFactory.create_organization(email='desk@clinic.test')
        subscription = TestDataFactory.create_subscription(organization, expires_at=timezone.now() + timedelta(days=1))
        response = self.client.post(f'/api/saas/subscriptions/{subscription.id}/remind/', {'level': 'reminder_1d'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['recipient'], 'desk@clinic.test')

    def test_package_delete_protected(self):
        TestDataFactory.create_subscription(TestDataFactory.create_organization(), package=self.package)
        response = self.client.delete(f'/api/saas/packages/{self.package.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_payment_endpoints(self):
        organization = TestDataFactory.create_organization()
        response = self.client.post('/api/saas/payments/', {
            'organization_id': organization.id,
            'amount': '25.00',
            'payment_method': 'bank_transfer',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        payment_id = response.data['id']
        self.assertEqual(response.data['payment_status'], 'pending')

        response = self.client.post(f'/api/saas/payments/{payment_id}/status/', {'status': 'completed'}, format='json')
        self.assertEqual(response.data['payment_status'], 'completed')
        self.assertIsNotNone(response.data['payment_date'])

        response = self.client.post(f'/api/saas/payments/{payment_id}/share/', {'email': 'bad'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.delete(f'/api/saas/payments/{payment_id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

    def test_payment_rejects_non_positive_amount(self):
        organization = TestDataFactory.create_organization()
        response = self.client.post('/api/saas/payments/', {
            'organization_id': organization.id, 'amount': '0', 'payment_method': 'cash',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_invoice_create_defaults(self):
        organization = TestDataFactory.create_organization()
        response = self.client.post('/api/saas/invoices/', {'organization_id': organization.id, 'amount': '10.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'draft')
        self.assertEqual(Invoice.objects.count(), 1)

    def test_billing_export(self):
        TestDataFactory.create_payment(TestDataFactory.create_organization())
        response = self.client.get('/api/saas/billing/export/', {'format': 'csv'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.content.decode().startswith('"Invoice Number"'))
        response = self.client.get('/api/saas/billing/export/', {'format': 'pdf'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_billing_mrr(self):
        TestDataFactory.create_subscription(TestDataFactory.create_organization(), package=self.package)
        response = self.client.get('/api/saas/billing/mrr/')
        self.assertEqual(response.data['monthlyRecurringRevenue'], Decimal('99.00'))
        self.assertEqual(response.data['currency'], 'GBP')

    def test_billing_analytics(self):
        organization = TestDataFactory.create_organization()
        TestDataFactory.create_payment(organization, payment_status='completed', payment_date=timezone.now(), amount=Decimal('40.00'))
        response = self.client.get('/api/saas/billing/analytics/', {'range': 30})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['paid_amount'], Decimal('40.00'))
        self.assertEqual(response.data['success_rate'], 100.0)

    def test_suspend_unpaid_endpoint(self):
        organization = TestDataFactory.create_organization(subscription_status='active')
        TestDataFactory.create_subscription(organization)
        TestDataFactory.create_payment(organization, due_date=timezone.now() - timedelta(days=30))
        response = self.client.post('/api/saas/billing/suspend-unpaid/')
        self.assertEqual(response.data, {'suspended': 1})

    def test_dashboard_endpoints(self):
        response = self.client.get('/api/saas/dashboard/stats/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('monthly_recurring_revenue', response.data)
        response = self.client.get('/api/saas/dashboard/activity/')
        self.assertIn('results', response.data)
        response = self.client.get('/api/saas/dashboard/alerts/')
        self.assertEqual(response.data['count'], 0)

    def test_settings_and_test_email(self):
        response = self.client.put('/api/saas/settings/', {'email': {'from_email': 'ops@cura.test', 'from_name': 'Cura'}}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Setting.objects.get(key='email').value['from_email'], 'ops@cura.test')

        response = self.client.post('/api/saas/settings/test-email/', {'email': 'me@cura.test'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(mail.outbox[0].from_email, 'Cura <ops@cura.test>')

    def test_public_packages(self):
        TestDataFactory.create_package(name='Public', show_on_website=True)
        TestDataFactory.create_package(name='Retired', show_on_website=True, is_active=False)
        self.client.logout()
        response = self.client.get('/api/website/packages/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['name'] for row in response.data], ['Public'])
