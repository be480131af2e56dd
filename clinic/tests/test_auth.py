"""
Authentication, role gating and the public endpoints.
"""
import pytest
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from clinic.models import AuditEvent, User
from clinic.permissions import roles_for_path

from .conftest import PASSWORD


class LoginTests(APITestCase):
    def setUp(self) -> None:
        self.user = User.objects.create_user(username='nurse1', password=PASSWORD, role='nurse')

    def login(self, password=PASSWORD, **extra):
        return self.client.post('/api/auth/login', {'username': 'nurse1', 'password': password, **extra},
                                format='json')

    def test_login_returns_token_and_jwt_pair(self):
        r = self.login()
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertTrue(r.data['token'])
        self.assertTrue(r.data['jwt_access'])
        self.assertTrue(r.data['jwt_refresh'])
        self.assertEqual(r.data['role'], 'nurse')
        self.assertTrue(AuditEvent.objects.filter(action='login', user=self.user).exists())

    def test_wrong_password_is_rejected(self):
        r = self.login(password='nope')
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(r.data['ok'])
        event = AuditEvent.objects.get(action='login')
        self.assertEqual(event.detail['result'], 'fail')

    def test_role_in_payload_is_ignored(self):
        r = self.login(role='admin')
        self.assertEqual(r.data['role'], 'nurse')
        self.user.refresh_from_db()
        self.assertEqual(self.user.role, 'nurse')

    def test_me_with_token_and_bearer(self):
        r = self.login()
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Token {r.data['token']}")
        me = client.get('/api/auth/me')
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.data['data']['username'], 'nurse1')

        client.credentials(HTTP_AUTHORIZATION=f"Bearer {r.data['jwt_access']}")
        self.assertEqual(client.get('/api/auth/me').status_code, 200)

    def test_refresh_then_logout_blacklists(self):
        r = self.login()
        refresh = r.data['jwt_refresh']
        again = self.client.post('/api/auth/refresh', {'refresh': refresh}, format='json')
        self.assertEqual(again.status_code, 200)
        self.assertIn('jwt_access', again.data)

        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Token {r.data['token']}")
        out = client.post('/api/auth/logout', {'refresh': refresh}, format='json')
        self.assertEqual(out.status_code, 200)
        self.assertEqual(out.data['blacklisted'], 1)

        denied = self.client.post('/api/auth/refresh', {'refresh': refresh}, format='json')
        self.assertEqual(denied.status_code, status.HTTP_401_UNAUTHORIZED)
        # the legacy token went away with the session
        self.assertEqual(client.get('/api/auth/me').status_code, status.HTTP_401_UNAUTHORIZED)


def test_anonymous_requests_are_refused(db):
    client = APIClient()
    assert client.get('/api/patients').status_code == 401
    assert client.get('/api/dashboard/stats').status_code == 401


@pytest.mark.parametrize('role,path,expected', [
    ('reception', '/api/pharmacy/products', 403),
    ('pharmacy', '/api/pharmacy/products', 200),
    ('doctor', '/api/pharmacy/prescriptions', 200),
    ('doctor', '/api/pharmacy/pos/sales', 403),
    ('pharmacy', '/api/patients', 403),
    ('lab', '/api/lab/orders', 200),
    ('nurse', '/api/lab/orders', 403),
    ('nurse', '/api/users', 403),
    ('reception', '/api/audit', 403),
    ('admin', '/api/audit', 200),
    ('reception', '/api/physio/plans', 403),
    ('nurse', '/api/referrals', 200),
])
def test_route_gating(client_for, role, path, expected):
    assert client_for(role).get(path).status_code == expected


def test_doctor_cannot_register_patients(client_for):
    r = client_for('doctor').post('/api/patients', {}, format='json')
    assert r.status_code == 403


def test_department_writes_are_admin_only(client_for):
    assert client_for('nurse').get('/api/departments').status_code == 200
    r = client_for('doctor', username='doc').post('/api/departments', {'name': 'X', 'code': 'X'}, format='json')
    assert r.status_code == 403


def test_lab_catalog_writes_need_lab_admin():
    assert roles_for_path('/api/lab/catalog', 'GET') == frozenset({'admin', 'lab', 'lab_admin', 'doctor'})
    assert roles_for_path('/api/lab/catalog/3/parameters', 'POST') == frozenset({'admin', 'lab_admin'})
    assert roles_for_path('/api/unknown', 'GET') is None


def test_healthz_is_public(db):
    r = APIClient().get('/healthz')
    assert r.status_code == 200
    assert r.json() == {'ok': True, 'db': True}
