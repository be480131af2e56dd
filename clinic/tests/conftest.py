from datetime import date
from decimal import Decimal

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from clinic.models import Department, InventoryItem, Patient, User

PASSWORD = 'Cl1nic-Pass!'


@pytest.fixture(autouse=True)
def _clear_cache():
    # stats caches and throttle counters live here
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def department(db):
    return Department.objects.create(name='Medicina General', code='MED')


@pytest.fixture
def make_user(db):
    def _make(role='admin', username=None, **extra):
        return User.objects.create_user(username=username or f'{role}_user', password=PASSWORD, role=role, **extra)
    return _make


@pytest.fixture
def client_for(make_user):
    """APIClient authenticated as a fresh user with ``role``."""
    def _client(role='admin', **extra):
        user = make_user(role, **extra)
        client = APIClient()
        client.force_authenticate(user=user)
        client.user = user
        return client
    return _client


@pytest.fixture
def patient(db):
    return Patient.objects.create(
        medical_record_number='MRN-20240101-0001', dni='12345678Z', first_name='Ana', last_name='Ruiz',
        phone='600111222', date_of_birth=date(1985, 5, 20), gender='female',
    )


@pytest.fixture
def item(db):
    return InventoryItem.objects.create(
        sku='MED-PARA-500', name='Paracetamol 500 mg', quantity=50, min_stock=10,
        unit_cost=Decimal('0.05'), unit_price=Decimal('2.00'), requires_prescription=True,
    )
