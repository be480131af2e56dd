from datetime import date, datetime, time, timedelta
from typing import Optional

from django.db import transaction
from django.utils import timezone

from clinic.models import Appointment
from clinic.services.audit import log_action

TERMINAL = {'completed', 'cancelled', 'no_show'}


def _can_transition(current: str, new: str) -> bool:
    """Return True if an appointment may move from ``current`` to ``new``."""
    transitions = {
        'scheduled': ['in_progress', 'completed', 'cancelled', 'no_show'],
        'in_progress': ['completed', 'cancelled'],
        'completed': [],
        'cancelled': [],
        'no_show': [],
    }
    return new in transitions.get(current, [])


def day_bounds(day: date) -> tuple[datetime, datetime]:
    tz = timezone.get_current_timezone()
    start = timezone.make_aware(datetime.combine(day, time.min), tz)
    return start, start + timedelta(days=1)


def serialize_appointment(a: Appointment) -> dict:
    return {
        'id': a.id,
        'patientId': a.patient_id,
        'patientName': a.patient.full_name if a.patient_id else None,
        'doctorId': a.doctor_id,
        'doctorName': (a.doctor.get_full_name() or a.doctor.username) if a.doctor_id else None,
        'departmentId': a.department_id,
        'departmentName': a.department.name if a.department_id else None,
        'roomId': a.room_id,
        'appointmentType': a.appointment_type,
        'status': a.status,
        'startTime': a.start_time.isoformat(),
        'endTime': a.end_time.isoformat(),
        'reason': a.reason,
        'notes': a.notes,
        'reminderSent': a.reminder_sent,
        'clinicalReferenceId': a.clinical_reference_id,
    }


def list_appointments(*, day: Optional[date] = None, date_from: Optional[date] = None, date_to: Optional[date] = None,
                      doctor_id: Optional[int] = None, department_id: Optional[int] = None,
                      status: Optional[str] = None, patient_id: Optional[int] = None, limit: int = 200) -> list[dict]:
    qs = Appointment.objects.select_related('patient', 'doctor', 'department')
    if day:
        start, end = day_bounds(day)
        qs = qs.filter(start_time__gte=start, start_time__lt=end)
    if date_from:
        qs = qs.filter(start_time__gte=day_bounds(date_from)[0])
    if date_to:
        qs = qs.filter(start_time__lt=day_bounds(date_to)[1])
    if doctor_id:
        qs = qs.filter(doctor_id=doctor_id)
    if department_id:
        qs = qs.filter(department_id=department_id)
    if status:
        qs = qs.filter(status=status)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    return [serialize_appointment(a) for a in qs.order_by('start_time')[:limit]]


def create_appointment(current_user, **fields) -> Appointment:
    if fields['end_time'] <= fields['start_time']:
        raise ValueError('La hora de fin debe ser posterior a la de inicio')
    if fields.get('department') is None and fields.get('doctor') is not None:
        fields['department'] = fields['doctor'].department
    appt = Appointment.objects.create(status='scheduled', created_by=current_user, **fields)
    log_action(user=current_user, action='appointment_create', object_type='appointment', object_id=appt.id,
               detail={'patientId': appt.patient_id, 'start': appt.start_time.isoformat()})
    return appt


@transaction.atomic
def update_appointment(current_user, appointment_id: int, **fields) -> Appointment:
    appt = Appointment.objects.select_for_update().get(pk=appointment_id)
    new_status = fields.pop('status', None)
    if new_status and new_status != appt.status:
        if not _can_transition(appt.status, new_status):
            raise ValueError(f'Transición de estado no permitida: {appt.status} → {new_status}')
        appt.status = new_status
    for k, v in fields.items():
        setattr(appt, k, v)
    if appt.end_time <= appt.start_time:
        raise ValueError('La hora de fin debe ser posterior a la de inicio')
    appt.save()
    log_action(user=current_user, action='appointment_update', object_type='appointment', object_id=appt.id,
               detail={'status': appt.status, 'fields': sorted(fields)})
    return appt


def set_status(current_user, appointment_id: int, new_status: str) -> Appointment:
    return update_appointment(current_user, appointment_id, status=new_status)
