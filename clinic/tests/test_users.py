"""
Staff accounts, departments and rooms.
"""
import pytest

from clinic.models import AuditEvent, Department, Room, User

from .conftest import PASSWORD

pytestmark = pytest.mark.django_db

NEW_PASSWORD = 'Otra-Clave-2024!'


@pytest.fixture
def admin(client_for):
    return client_for('admin')


@pytest.fixture
def staff(make_user, department):
    return make_user('nurse', username='enfermera1', first_name='Lucía', last_name='Mora', department=department)


def test_create_user(admin, department):
    r = admin.post('/api/users', {
        'username': ' dr.gomez ', 'password': PASSWORD, 'first_name': 'Carlos', 'last_name': 'Gómez',
        'role': 'doctor', 'department': department.id, 'specialty': 'Cardiología',
    }, format='json')
    assert r.status_code == 201
    data = r.data['data']
    assert (data['username'], data['fullName'], data['role']) == ('dr.gomez', 'Carlos Gómez', 'doctor')
    assert (data['departmentId'], data['departmentName']) == (department.id, 'Medicina General')
    assert User.objects.get(username='dr.gomez').check_password(PASSWORD)
    assert AuditEvent.objects.filter(action='user_create', object_id=data['id']).exists()


def test_create_user_defaults_to_reception(admin):
    r = admin.post('/api/users', {'username': 'recepcion2', 'password': PASSWORD}, format='json')
    assert r.data['data']['role'] == 'reception'


@pytest.mark.parametrize('payload', [
    {'username': 'ab', 'password': PASSWORD},
    {'username': 'debil', 'password': '12345'},
    {'username': 'comun', 'password': 'password'},
])
def test_create_user_rejects_bad_input(admin, payload):
    assert admin.post('/api/users', payload, format='json').status_code == 400
    assert not User.objects.filter(username=payload['username'].strip()).exists()


def test_create_user_rejects_duplicate_username(admin, staff):
    r = admin.post('/api/users', {'username': 'enfermera1', 'password': PASSWORD}, format='json')
    assert r.status_code == 400
    assert User.objects.filter(username='enfermera1').count() == 1


def test_only_admins_manage_users(client_for, staff):
    client = client_for('doctor')
    assert client.get('/api/users').status_code == 403
    assert client.post(f'/api/users/{staff.id}/toggle-status').status_code == 403
    staff.refresh_from_db()
    assert staff.is_active


def test_list_filters(admin, staff, make_user, department):
    make_user('doctor', username='medico1', is_active=False)

    def usernames(**params):
        return [u['username'] for u in admin.get('/api/users', params).data['data']]

    assert usernames() == ['admin_user', 'enfermera1', 'medico1']
    assert usernames(role='nurse') == ['enfermera1']
    assert usernames(departmentId=department.id) == ['enfermera1']
    assert usernames(q='mora') == ['enfermera1']
    assert usernames(active='false') == ['medico1']


def test_update_user(admin, staff):
    r = admin.patch(f'/api/users/{staff.id}', {'role': 'doctor', 'specialty': 'Urgencias', 'department': None},
                    format='json')
    assert r.status_code == 200
    data = r.data['data']
    assert (data['role'], data['specialty'], data['departmentId']) == ('doctor', 'Urgencias', None)
    assert admin.get('/api/users/999').status_code == 404


def test_admin_cannot_change_own_role(admin):
    r = admin.patch(f'/api/users/{admin.user.id}', {'role': 'doctor'}, format='json')
    assert r.status_code == 403
    assert admin.patch(f'/api/users/{admin.user.id}', {'phone': '600000001'}, format='json').status_code == 200
    admin.user.refresh_from_db()
    assert admin.user.role == 'admin'


def test_delete_only_deactivates(admin, staff):
    assert admin.delete(f'/api/users/{staff.id}').status_code == 200
    staff.refresh_from_db()
    assert staff.is_active is False
    assert admin.get(f'/api/users/{staff.id}').data['data']['isActive'] is False


def test_toggle_status(admin, staff):
    url = f'/api/users/{staff.id}/toggle-status'
    assert admin.post(url).data['isActive'] is False
    assert admin.post(url).data['isActive'] is True


def test_admin_cannot_deactivate_or_delete_self(admin):
    assert admin.post(f'/api/users/{admin.user.id}/toggle-status').status_code == 403
    assert admin.delete(f'/api/users/{admin.user.id}').status_code == 403
    admin.user.refresh_from_db()
    assert admin.user.is_active


def test_set_password(admin, staff):
    url = f'/api/users/{staff.id}/password'
    assert admin.post(url, {'password': 'abc'}, format='json').status_code == 400
    assert admin.post(url, {'password': NEW_PASSWORD}, format='json').status_code == 200
    staff.refresh_from_db()
    assert staff.check_password(NEW_PASSWORD)


# ---------------------------------------------------------------------------
# Departments and rooms
# ---------------------------------------------------------------------------

def test_department_listing_hides_inactive(client_for, department):
    Department.objects.create(name='Antigua UCI', code='UCI0', is_active=False)
    client = client_for('reception')
    assert [d['code'] for d in client.get('/api/departments').data['data']] == ['MED']
    assert [d['code'] for d in client.get('/api/departments', {'all': '1'}).data['data']] == ['UCI0', 'MED']


def test_create_and_update_department(admin, department):
    r = admin.post('/api/departments', {'name': 'Cardiología', 'code': ' card ', 'phone_extension': '2101'},
                   format='json')
    assert r.status_code == 201
    assert r.data['data']['code'] == 'CARD'
    assert admin.post('/api/departments', {'name': 'Otra', 'code': 'med'}, format='json').status_code == 400

    dept_id = r.data['data']['id']
    r = admin.patch(f'/api/departments/{dept_id}', {'location': 'Planta 2', 'is_active': False}, format='json')
    assert (r.data['data']['location'], r.data['data']['isActive']) == ('Planta 2', False)
    assert admin.patch(f'/api/departments/{dept_id}', {'code': 'MED'}, format='json').status_code == 400


def test_department_writes_need_admin(client_for, department):
    client = client_for('doctor')
    assert client.post('/api/departments', {'name': 'X', 'code': 'X'}, format='json').status_code == 403
    assert client.patch(f'/api/departments/{department.id}', {'name': 'Y'}, format='json').status_code == 403
    assert client.get(f'/api/departments/{department.id}').status_code == 200


def test_rooms(admin, department):
    url = f'/api/departments/{department.id}/rooms'
    r = admin.post(url, {'room_number': '102', 'room_type': 'consulta'}, format='json')
    assert r.status_code == 201
    assert (r.data['data']['capacity'], r.data['data']['status']) == (1, 'available')
    admin.post(url, {'room_number': '101', 'capacity': 2}, format='json')
    assert admin.post(url, {'room_number': '101'}, format='json').status_code == 400

    assert [room['roomNumber'] for room in admin.get(url).data['data']] == ['101', '102']
    detail = admin.get(f'/api/departments/{department.id}').data['data']
    assert [room['roomNumber'] for room in detail['rooms']] == ['101', '102']
    assert Room.objects.filter(department=department).count() == 2
