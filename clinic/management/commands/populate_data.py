"""
Management command to populate the database with demo data.
"""
import random
from datetime import date, timedelta
from decimal import Decimal

from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from clinic.models import (
    Appointment,
    Department,
    InventoryItem,
    LabCategory,
    LabParameter,
    LabTestCatalog,
    Patient,
    PhysioExercise,
    PhysioTreatmentType,
    Room,
    User,
)
from clinic.services.inventory import record_movement
from clinic.services.patients import next_medical_record_number

DEPARTMENTS = [
    ('MED', 'Medicina General', '101'),
    ('CAR', 'Cardiología', '102'),
    ('PED', 'Pediatría', '103'),
    ('TRA', 'Traumatología', '104'),
    ('FIS', 'Fisioterapia', '105'),
    ('LAB', 'Laboratorio', '106'),
    ('FAR', 'Farmacia', '107'),
]

LAB_TESTS = [
    ('HEM', 'Hematología', 'HEMO', 'Hemograma completo', Decimal('25.00'), [
        ('Hemoglobina', 'HGB', 'g/dL', '12', '17', '7', '20'),
        ('Leucocitos', 'WBC', '10^3/uL', '4', '11', '2', '30'),
        ('Plaquetas', 'PLT', '10^3/uL', '150', '450', '50', '1000'),
    ]),
    ('BIO', 'Bioquímica', 'GLU', 'Glucosa en ayunas', Decimal('8.50'), [
        ('Glucosa', 'GLU', 'mg/dL', '70', '100', '40', '400'),
    ]),
    ('BIO', 'Bioquímica', 'LIP', 'Perfil lipídico', Decimal('18.00'), [
        ('Colesterol total', 'CHOL', 'mg/dL', '0', '200', None, None),
        ('Triglicéridos', 'TG', 'mg/dL', '0', '150', None, '1000'),
    ]),
]

ITEMS = [
    ('MED-PARA-500', 'Paracetamol 500 mg', 'medication', 'comprimido', 200, 20, '0.05', '0.20', True),
    ('MED-IBU-400', 'Ibuprofeno 400 mg', 'medication', 'comprimido', 150, 20, '0.07', '0.25', True),
    ('MED-AMOX-500', 'Amoxicilina 500 mg', 'medication', 'cápsula', 8, 15, '0.15', '0.45', True),
    ('SUP-GASA-10', 'Gasa estéril 10x10', 'supplies', 'paquete', 80, 10, '0.30', '0.90', False),
    ('SUP-GUANTE-M', 'Guantes de nitrilo M', 'consumables', 'caja', 5, 10, '4.00', '7.50', False),
]

FIRST_NAMES = ['Lucía', 'Hugo', 'Martina', 'Mateo', 'Sofía', 'Leo', 'Valeria', 'Daniel']
LAST_NAMES = ['García', 'Martínez', 'López', 'Sánchez', 'Pérez', 'Gómez', 'Ruiz', 'Díaz']


class Command(BaseCommand):
    help = 'Populate database with demo data'

    def add_arguments(self, parser):
        parser.add_argument('--patients', type=int, default=8)

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write('Creando datos de demostración...')
        departments = self.create_departments()
        self.create_rooms(departments)
        doctors = self.create_staff(departments)
        self.create_lab_catalog()
        self.create_inventory(doctors[0])
        patients = self.create_patients(options['patients'])
        self.create_appointments(patients, doctors)
        self.create_physio_catalog()
        self.stdout.write(self.style.SUCCESS('Datos de demostración creados'))

    def create_departments(self):
        departments = {}
        for code, name, ext in DEPARTMENTS:
            dept, _ = Department.objects.get_or_create(code=code, defaults={'name': name, 'phone_extension': ext})
            departments[code] = dept
            self.stdout.write(f'Departamento: {dept.name}')
        return departments

    def create_rooms(self, departments):
        for code, dept in departments.items():
            for n in range(1, 3):
                Room.objects.get_or_create(
                    room_number=f'{code}-{n:02d}', department=dept,
                    defaults={'room_type': 'consulta', 'capacity': 1},
                )

    def create_staff(self, departments):
        doctors = []
        for i, code in enumerate(('MED', 'CAR', 'PED', 'TRA')):
            user, _ = User.objects.get_or_create(
                username=f'dr_{code.lower()}',
                defaults={
                    'password': make_password('Medsuite123'),
                    'role': 'doctor',
                    'department': departments[code],
                    'first_name': FIRST_NAMES[i],
                    'last_name': LAST_NAMES[i],
                    'license_number': f'COL-{1000 + i}',
                },
            )
            doctors.append(user)
            self.stdout.write(f'Médico: {user.username}')
        return doctors

    def create_lab_catalog(self):
        for cat_code, cat_name, code, name, price, params in LAB_TESTS:
            category, _ = LabCategory.objects.get_or_create(code=cat_code, defaults={'name': cat_name})
            test, created = LabTestCatalog.objects.get_or_create(
                code=code, defaults={'name': name, 'category': category, 'price': price},
            )
            if not created:
                continue
            for order, (pname, pcode, unit, lo, hi, crit_lo, crit_hi) in enumerate(params):
                LabParameter.objects.create(
                    test=test, name=pname, code=pcode, unit=unit, sort_order=order,
                    reference_min=Decimal(lo), reference_max=Decimal(hi),
                    critical_below=Decimal(crit_lo) if crit_lo else None,
                    critical_above=Decimal(crit_hi) if crit_hi else None,
                )
            self.stdout.write(f'Prueba de laboratorio: {test.name}')

    def create_inventory(self, user):
        today = timezone.localdate()
        for sku, name, category, unit, qty, min_stock, cost, price, rx in ITEMS:
            item, created = InventoryItem.objects.get_or_create(
                sku=sku,
                defaults={
                    'name': name, 'category': category, 'unit': unit, 'min_stock': min_stock,
                    'unit_cost': Decimal(cost), 'unit_price': Decimal(price), 'requires_prescription': rx,
                    'expiration_date': today + timedelta(days=random.choice([20, 180, 365])),
                },
            )
            if created:
                record_movement(user, item.id, 'in', qty, reference_type='initial_stock', notes='Carga inicial')
                self.stdout.write(f'Producto: {item.name} ({qty})')

    def create_patients(self, count):
        patients = []
        for i in range(count):
            dni = f'{10000000 + i}D'
            patient = Patient.objects.filter(dni=dni).first()
            if patient is None:
                patient = Patient.objects.create(
                    medical_record_number=next_medical_record_number(),
                    dni=dni,
                    first_name=FIRST_NAMES[i % len(FIRST_NAMES)],
                    last_name=random.choice(LAST_NAMES),
                    phone=f'6{random.randint(10000000, 99999999)}',
                    date_of_birth=date(random.randint(1940, 2015), random.randint(1, 12), random.randint(1, 28)),
                    gender=random.choice(['male', 'female']),
                    blood_type=random.choice(['A+', 'O+', 'B-', 'AB+']),
                )
                self.stdout.write(f'Paciente: {patient.full_name}')
            patients.append(patient)
        return patients

    def create_appointments(self, patients, doctors):
        start = timezone.now().replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
        for i, patient in enumerate(patients):
            if patient.appointments.exists():
                continue
            doctor = doctors[i % len(doctors)]
            begins = start + timedelta(hours=i)
            Appointment.objects.create(
                patient=patient, doctor=doctor, department=doctor.department, start_time=begins,
                end_time=begins + timedelta(minutes=30), reason='Revisión general',
            )

    def create_physio_catalog(self):
        types = [('ELEC', 'Electroterapia'), ('MANU', 'Terapia manual'), ('CINE', 'Cinesiterapia')]
        for code, name in types:
            PhysioTreatmentType.objects.get_or_create(code=code, defaults={'name': name})
        exercises = [('EJ-SQ', 'Sentadilla asistida', 'rodilla'), ('EJ-PEND', 'Péndulo de Codman', 'hombro')]
        for code, name, region in exercises:
            PhysioExercise.objects.get_or_create(code=code, defaults={'name': name, 'body_region': region})
