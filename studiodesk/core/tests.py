"""
Test suite for the core module
Tests: authentication, role permissions, users, departments, activity log, error envelope
"""
from django.test import TestCase
from rest_framework import status
from studiodesk.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from studiodesk.core.models import ActivityLog, Department
from studiodesk.core.permissions import capabilities_for
from studiodesk.core.utils import create_activity_log


class AuthenticationTests(TestCase):
    """Test login, refresh and current user endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(username='alice', password='testpass123', role='reception')
        self.client = AuthenticatedAPIClient()

    def test_login_returns_tokens_and_user(self):
        response = self.client.post('/api/v1/auth/login/', {'username': 'alice', 'password': 'testpass123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['username'], 'alice')

    def test_login_with_wrong_password(self):
        response = self.client.post('/api/v1/auth/login/', {'username': 'alice', 'password': 'wrong'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data['success'])

    def test_refresh_token(self):
        login = self.client.post('/api/v1/auth/login/', {'username': 'alice', 'password': 'testpass123'}, format='json')
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': login.data['refresh']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_me_includes_capabilities(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['role'], 'reception')
        self.assertTrue(response.data['can_approve_checkouts'])
        self.assertFalse(response.data['can_manage_equipment'])
        self.assertTrue(response.data['can_view_reports'])
        self.assertFalse(response.data['can_send_system_notifications'])

    def test_unauthenticated_request_is_rejected(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data['success'])
        self.assertIn('message', response.data)


class RolePermissionTests(TestCase):
    """Test role capability table"""

    def test_superuser_counts_as_super_admin(self):
        user = TestDataFactory.create_user(is_superuser=True)
        self.assertEqual(user.effective_role, 'super_admin')
        self.assertTrue(capabilities_for(user)['is_admin'])

    def test_department_admin_capabilities(self):
        user = TestDataFactory.create_department_admin()
        capabilities = capabilities_for(user)
        self.assertTrue(capabilities['can_manage_equipment'])
        self.assertTrue(capabilities['can_add_maintenance'])
        self.assertFalse(capabilities['can_approve_checkouts'])

    def test_client_has_no_capabilities(self):
        user = TestDataFactory.create_user(role='client')
        self.assertFalse(any(capabilities_for(user).values()))


class UserManagementTests(TestCase):
    """Test user endpoints (super admin only)"""

    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.staff = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_staff_cannot_list_users(self):
        self.client.authenticate_user(self.staff)
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_users(self):
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 2)

    def test_create_user_logs_activity(self):
        department = TestDataFactory.create_department()
        data = {
            'username': 'newcomer',
            'email': 'newcomer@test.com',
            'password': 'Studio!Pass2024',
            'password_confirm': 'Studio!Pass2024',
            'role': 'reception',
            'department': department.id,
        }
        response = self.client.post('/api/v1/users/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['role'], 'reception')
        self.assertEqual(response.data['department_name'], department.name)
        self.assertTrue(ActivityLog.objects.filter(action='user_create', user=self.admin).exists())

    def test_create_user_password_mismatch(self):
        data = {
            'username': 'newcomer',
            'password': 'Studio!Pass2024',
            'password_confirm': 'Other!Pass2024',
        }
        response = self.client.post('/api/v1/users/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_user_deactivates(self):
        response = self.client.delete(f'/api/v1/users/{self.staff.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.staff.refresh_from_db()
        self.assertFalse(self.staff.is_active)

    def test_cannot_delete_self(self):
        response = self.client.delete(f'/api/v1/users/{self.admin.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.admin.refresh_from_db()
        self.assertTrue(self.admin.is_active)


class DepartmentTests(TestCase):
    """Test department endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.staff = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()

    def test_any_user_can_list_departments(self):
        TestDataFactory.create_department(name='Video')
        self.client.authenticate_user(self.staff)
        response = self.client.get('/api/v1/departments/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]['name'], 'Video')

    def test_staff_cannot_create_department(self):
        self.client.authenticate_user(self.staff)
        response = self.client.post('/api/v1/departments/', {'name': 'Audio'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_creates_and_deletes_department(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/departments/', {'name': 'Audio'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.delete(f"/api/v1/departments/{response.data['id']}/")
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Department.objects.filter(name='Audio').exists())

    def test_duplicate_department_name(self):
        TestDataFactory.create_department(name='Audio')
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/departments/', {'name': 'Audio'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ActivityLogTests(TestCase):
    """Test activity log helper and endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.staff = TestDataFactory.create_user()
        self.other = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.own = create_activity_log(action='view', resource='report', user=self.staff)
        self.foreign = create_activity_log(action='export', resource='report', user=self.other)

    def test_helper_skips_incomplete_entries(self):
        self.assertIsNone(create_activity_log(action='view', user=self.staff))

    def test_staff_sees_only_own_activity(self):
        self.client.authenticate_user(self.staff)
        response = self.client.get('/api/v1/activities/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['id'], self.own.id)

    def test_admin_sees_all_and_filters(self):
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/activities/')
        self.assertEqual(response.data['count'], 2)

        response = self.client.get('/api/v1/activities/', {'action': 'export'})
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['id'], self.foreign.id)

    def test_pagination_shape(self):
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/activities/', {'limit': 1})
        for key in ('results', 'count', 'next', 'previous', 'page', 'page_size', 'total_pages'):
            self.assertIn(key, response.data)
        self.assertEqual(response.data['total_pages'], 2)
        self.assertEqual(response.data['next'], 2)

    def test_detail_of_other_user_is_forbidden(self):
        self.client.authenticate_user(self.staff)
        response = self.client.get(f'/api/v1/activities/{self.foreign.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_summary_counts_actions(self):
        create_activity_log(action='view', resource='report', user=self.staff)
        self.client.authenticate_user(self.staff)
        response = self.client.get('/api/v1/activities/summary/', {'days': 7})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['user'], self.staff.id)
        self.assertEqual(response.data['actions'][0]['action'], 'view')
        self.assertEqual(response.data['actions'][0]['count'], 2)

    def test_summary_rejects_invalid_user(self):
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/activities/summary/', {'user': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
