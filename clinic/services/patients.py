from typing import Optional

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from clinic.models import Patient, PatientNote
from clinic.services.audit import log_action

SEARCH_LIMIT = 20


def next_medical_record_number(today=None) -> str:
    today = today or timezone.localdate()
    prefix = f"MRN-{today:%Y%m%d}-"
    last = (Patient.objects.filter(medical_record_number__startswith=prefix)
            .order_by('-medical_record_number').values_list('medical_record_number', flat=True).first())
    seq = int(last.rsplit('-', 1)[1]) + 1 if last else 1
    return f"{prefix}{seq:04d}"


def serialize_patient(p: Patient, *, detail: bool = False) -> dict:
    data = {
        'id': p.id,
        'medicalRecordNumber': p.medical_record_number,
        'dni': p.dni,
        'firstName': p.first_name,
        'lastName': p.last_name,
        'fullName': p.full_name,
        'email': p.email,
        'phone': p.phone,
        'dateOfBirth': p.date_of_birth.isoformat(),
        'age': p.age(),
        'gender': p.gender,
        'bloodType': p.blood_type,
        'allergies': p.allergies,
        'isActive': p.is_active,
        'createdAt': p.created_at.isoformat() if p.created_at else None,
    }
    if detail:
        data.update({
            'address': p.address,
            'city': p.city,
            'emergencyContactName': p.emergency_contact_name,
            'emergencyContactPhone': p.emergency_contact_phone,
            'insuranceProvider': p.insurance_provider,
            'insuranceNumber': p.insurance_number,
            'notes': p.notes,
            'appointmentsCount': p.appointments.count(),
            'recordsCount': p.medical_records.count(),
        })
    return data


def create_patient(current_user, **fields) -> Patient:
    """Register a patient, generating the medical record number.

    ``dni`` must be unique; a duplicate raises ``ValueError``.
    """
    if Patient.objects.filter(dni=fields['dni']).exists():
        raise ValueError('Ya existe un paciente con ese DNI')
    # two registrations racing for the same daily number retry once
    for attempt in range(2):
        try:
            with transaction.atomic():
                patient = Patient.objects.create(
                    medical_record_number=next_medical_record_number(),
                    created_by=current_user if getattr(current_user, 'pk', None) else None,
                    **fields,
                )
            break
        except IntegrityError:
            if attempt:
                raise
    log_action(user=current_user, action='patient_create', object_type='patient', object_id=patient.id,
               detail={'mrn': patient.medical_record_number})
    return patient


def update_patient(current_user, patient: Patient, **fields) -> Patient:
    dni = fields.get('dni')
    if dni and Patient.objects.filter(dni=dni).exclude(id=patient.id).exists():
        raise ValueError('Ya existe un paciente con ese DNI')
    for k, v in fields.items():
        setattr(patient, k, v)
    patient.save()
    log_action(user=current_user, action='patient_update', object_type='patient', object_id=patient.id,
               detail={'fields': sorted(fields)})
    return patient


def deactivate_patient(current_user, patient: Patient) -> None:
    patient.is_active = False
    patient.save(update_fields=['is_active', 'updated_at'])
    log_action(user=current_user, action='patient_delete', object_type='patient', object_id=patient.id)


def list_patients(*, q: Optional[str] = None, include_inactive: bool = False,
                  page: int = 1, page_size: int = 20) -> tuple[list[dict], int]:
    qs = Patient.objects.all()
    if not include_inactive:
        qs = qs.filter(is_active=True)
    if q:
        qs = qs.filter(_search_filter(q))
    total = qs.count()
    start = (page - 1) * page_size
    items = qs.order_by('-created_at', '-id')[start:start + page_size]
    return [serialize_patient(p) for p in items], total


def _search_filter(q: str) -> Q:
    cond = (Q(first_name__icontains=q) | Q(last_name__icontains=q) | Q(phone__icontains=q)
            | Q(medical_record_number__icontains=q) | Q(dni__icontains=q))
    parts = q.split()
    if len(parts) >= 2:
        cond |= Q(first_name__icontains=parts[0], last_name__icontains=' '.join(parts[1:]))
    return cond


def search_patients(q: str) -> list[dict]:
    q = (q or '').strip()
    if not q:
        return []
    qs = Patient.objects.filter(is_active=True).filter(_search_filter(q)).order_by('last_name', 'first_name')
    return [serialize_patient(p) for p in qs[:SEARCH_LIMIT]]


def add_note(current_user, patient: Patient, content: str) -> PatientNote:
    if not content:
        raise ValueError('La nota no puede estar vacía')
    name = (current_user.get_full_name() or current_user.username) if current_user else ''
    note = PatientNote.objects.create(patient=patient, author=current_user, author_name=name, content=content)
    log_action(user=current_user, action='patient_note', object_type='patient', object_id=patient.id,
               detail={'noteId': note.id})
    return note


def serialize_note(n: PatientNote) -> dict:
    return {
        'id': n.id,
        'patientId': n.patient_id,
        'authorId': n.author_id,
        'authorName': n.author_name,
        'content': n.content,
        'createdAt': n.created_at.isoformat(),
    }
