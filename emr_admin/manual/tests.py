"""
Tests for the in-app user manual
"""
from io import StringIO

from django.core.management import call_command
from django.test import TestCase
from rest_framework import status

from emr_admin.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from emr_admin.manual.management.commands.seed_user_manual import DEFAULT_SECTIONS
from emr_admin.manual.models import ManualSection


class ManualSectionAPITests(TestCase):

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.user = TestDataFactory.create_user(organization=TestDataFactory.create_organization())
        self.owner = TestDataFactory.create_saas_owner()
        ManualSection.objects.create(slug='roles-intro', tab='roles', title='Roles', body='Who can do what', order=1)
        ManualSection.objects.create(slug='welcome', tab='manual', title='Welcome', body='Start here', order=2)
        ManualSection.objects.create(slug='first-steps', tab='manual', title='First steps', body='Sign in', order=1)
        ManualSection.objects.create(slug='draft', tab='manual', title='Draft', body='Unfinished', is_published=False)

    def test_grouped_by_tab_in_tab_order(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/manual/sections/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 3)
        tabs = response.data['tabs']
        self.assertEqual([group['tab'] for group in tabs], ['manual', 'roles'])
        self.assertEqual([s['slug'] for s in tabs[0]['sections']], ['first-steps', 'welcome'])
        self.assertEqual(tabs[1]['label'], dict(ManualSection.TAB_CHOICES)['roles'])

    def test_owner_sees_unpublished(self):
        self.client.authenticate_user(self.owner)
        response = self.client.get('/api/manual/sections/', {'tab': 'manual'})
        self.assertEqual(response.data['count'], 3)

    def test_search(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/manual/sections/', {'search': 'sign in'})
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['tabs'][0]['sections'][0]['slug'], 'first-steps')

    def test_unpublished_detail_hidden(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/manual/sections/draft/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_tenant_user_cannot_write(self):
        self.client.authenticate_user(self.user)
        response = self.client.post('/api/manual/sections/', {
            'slug': 'new', 'tab': 'manual', 'title': 'New', 'body': 'Text',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.patch('/api/manual/sections/welcome/', {'title': 'Changed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_owner_crud(self):
        self.client.authenticate_user(self.owner)
        response = self.client.post('/api/manual/sections/', {
            'slug': 'stock-counts', 'tab': 'inventory', 'title': 'Stock counts', 'body': 'Count monthly',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['tab_display'], dict(ManualSection.TAB_CHOICES)['inventory'])

        response = self.client.patch('/api/manual/sections/stock-counts/', {'title': 'Stocktake'}, format='json')
        self.assertEqual(response.data['title'], 'Stocktake')

        response = self.client.delete('/api/manual/sections/stock-counts/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(ManualSection.objects.filter(slug='stock-counts').exists())

    def test_invalid_tab(self):
        self.client.authenticate_user(self.owner)
        response = self.client.post('/api/manual/sections/', {
            'slug': 'odd', 'tab': 'nowhere', 'title': 'Odd', 'body': 'x',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class SeedUserManualTests(TestCase):

    def test_seed_is_idempotent(self):
        out = StringIO()
        call_command('seed_user_manual', stdout=out)
        self.assertEqual(ManualSection.objects.count(), len(DEFAULT_SECTIONS))
        self.assertIn(f'created: {len(DEFAULT_SECTIONS)}', out.getvalue())

        out = StringIO()
        call_command('seed_user_manual', stdout=out)
        self.assertEqual(ManualSection.objects.count(), len(DEFAULT_SECTIONS))
        self.assertIn(f'updated: {len(DEFAULT_SECTIONS)}', out.getvalue())

    def test_reset_removes_custom_sections(self):
        ManualSection.objects.create(slug='custom', tab='manual', title='Custom', body='x')
        call_command('seed_user_manual', stdout=StringIO())
        self.assertTrue(ManualSection.objects.filter(slug='custom').exists())

        call_command('seed_user_manual', '--reset', stdout=StringIO())
        self.assertFalse(ManualSection.objects.filter(slug='custom').exists())
        self.assertEqual(ManualSection.objects.count(), len(DEFAULT_SECTIONS))
