from datetime import timedelta
from typing import Optional

from django.db import transaction
from django.utils import timezone

from clinic.models import Appointment, ClinicalReference
from clinic.services.audit import log_action
from clinic.services.realtime import broadcast


def serialize_referral(r: ClinicalReference) -> dict:
    return {
        'id': r.id,
        'patientId': r.patient_id,
        'patientName': r.patient.full_name,
        'referringDoctorId': r.referring_doctor_id,
        'referringDoctorName': (r.referring_doctor.get_full_name() or r.referring_doctor.username)
        if r.referring_doctor_id else None,
        'referringDepartmentId': r.referring_department_id,
        'targetDepartmentId': r.target_department_id,
        'targetDepartmentName': r.target_department.name,
        'referenceType': r.reference_type,
        'clinicalDiagnosis': r.clinical_diagnosis,
        'icd10Codes': r.icd10_codes,
        'reason': r.reason,
        'priority': r.priority,
        'notes': r.notes,
        'status': r.status,
        'appointmentId': r.appointment_id,
        'respondedBy': r.responded_by_id,
        'respondedAt': r.responded_at.isoformat() if r.responded_at else None,
        'responseNotes': r.response_notes,
        'createdAt': r.created_at.isoformat(),
    }


def list_referrals(*, status: Optional[str] = None, target_department_id: Optional[int] = None,
                   patient_id: Optional[int] = None, limit: int = 200) -> list[dict]:
    qs = ClinicalReference.objects.select_related('patient', 'referring_doctor', 'target_department')
    if status:
        qs = qs.filter(status=status)
    if target_department_id:
        qs = qs.filter(target_department_id=target_department_id)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    return [serialize_referral(r) for r in qs.order_by('-created_at', '-id')[:limit]]


def create_referral(current_user, **fields) -> ClinicalReference:
    fields.setdefault('referring_doctor', None)
    fields.setdefault('referring_department', None)
    if fields['referring_doctor'] is None:
        fields['referring_doctor'] = current_user
    if fields['referring_department'] is None:
        fields['referring_department'] = getattr(fields['referring_doctor'], 'department', None)
    origin = fields['referring_department']
    if origin is not None and origin.pk == fields['target_department'].pk:
        raise ValueError('El servicio destino debe ser distinto del servicio de origen')
    ref = ClinicalReference.objects.create(status='pending', **fields)
    log_action(user=current_user, action='referral_create', object_type='referral', object_id=ref.id,
               detail={'targetDepartmentId': ref.target_department_id, 'priority': ref.priority})
    broadcast('referral', {'id': ref.id, 'status': ref.status, 'targetDepartmentId': ref.target_department_id})
    return ref


def _respond(ref: ClinicalReference, current_user, status: str, notes: str) -> None:
    ref.status = status
    ref.responded_by = current_user
    ref.responded_at = timezone.now()
    if notes:
        ref.response_notes = notes
    ref.save()
    log_action(user=current_user, action=f'referral_{status}', object_type='referral', object_id=ref.id,
               detail={'appointmentId': ref.appointment_id})
    broadcast('referral', {'id': ref.id, 'status': ref.status, 'targetDepartmentId': ref.target_department_id})


@transaction.atomic
def accept(current_user, referral_id: int, notes: str = '', doctor=None) -> ClinicalReference:
    """Accept a pending referral and book the evaluation for tomorrow."""
    ref = ClinicalReference.objects.select_for_update().get(pk=referral_id)
    if ref.status != 'pending':
        raise ValueError('Solo se pueden aceptar derivaciones pendientes')
    start = timezone.now().replace(second=0, microsecond=0) + timedelta(days=1)
    appt = Appointment.objects.create(
        patient_id=ref.patient_id, doctor=doctor, department_id=ref.target_department_id,
        appointment_type='consultation', status='scheduled', start_time=start, end_time=start + timedelta(hours=1),
        reason=f'Evaluación derivada: {ref.clinical_diagnosis}', clinical_reference=ref, created_by=current_user,
    )
    ref.appointment = appt
    _respond(ref, current_user, 'accepted', notes)
    return ref


@transaction.atomic
def reject(current_user, referral_id: int, notes: str = '') -> ClinicalReference:
    ref = ClinicalReference.objects.select_for_update().get(pk=referral_id)
    if ref.status != 'pending':
        raise ValueError('Solo se pueden rechazar derivaciones pendientes')
    _respond(ref, current_user, 'cancelled', notes)
    return ref


@transaction.atomic
def complete(current_user, referral_id: int, notes: str = '') -> ClinicalReference:
    ref = ClinicalReference.objects.select_for_update().get(pk=referral_id)
    if ref.status != 'accepted':
        raise ValueError('Solo se pueden completar derivaciones aceptadas')
    _respond(ref, current_user, 'completed', notes)
    return ref
