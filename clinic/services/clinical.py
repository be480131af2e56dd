from typing import Optional

from django.db import transaction

from clinic.models import Appointment, MedicalRecord, Patient
from clinic.services import appointments as appointment_svc
from clinic.services.audit import log_action

RECORD_FIELDS = (
    'record_type', 'chief_complaint', 'history_of_present_illness', 'physical_examination', 'vital_signs',
    'diagnosis', 'icd_codes', 'treatment_plan', 'prescriptions', 'recommendations', 'follow_up_required',
    'follow_up_date', 'private_notes',
)


def serialize_record(r: MedicalRecord) -> dict:
    return {
        'id': r.id,
        'patientId': r.patient_id,
        'patientName': r.patient.full_name,
        'appointmentId': r.appointment_id,
        'doctorId': r.doctor_id,
        'doctorName': (r.doctor.get_full_name() or r.doctor.username) if r.doctor_id else None,
        'departmentId': r.department_id,
        'recordType': r.record_type,
        'chiefComplaint': r.chief_complaint,
        'historyOfPresentIllness': r.history_of_present_illness,
        'physicalExamination': r.physical_examination,
        'vitalSigns': r.vital_signs,
        'diagnosis': r.diagnosis,
        'icdCodes': r.icd_codes,
        'treatmentPlan': r.treatment_plan,
        'prescriptions': r.prescriptions,
        'recommendations': r.recommendations,
        'followUpRequired': r.follow_up_required,
        'followUpDate': r.follow_up_date.isoformat() if r.follow_up_date else None,
        'privateNotes': r.private_notes,
        'createdAt': r.created_at.isoformat(),
        'updatedAt': r.updated_at.isoformat(),
    }


@transaction.atomic
def upsert_record(current_user, *, record_id: Optional[int] = None, patient: Optional[Patient] = None,
                  appointment: Optional[Appointment] = None, doctor=None, department=None,
                  **fields) -> tuple[MedicalRecord, bool]:
    """Create a record, or update it when ``record_id`` is given.

    Patient and department fall back to the appointment's, the doctor to
    the current user.  Returns ``(record, created)``.
    """
    if record_id:
        record = MedicalRecord.objects.select_for_update().get(pk=record_id)
        created = False
        if appointment is not None:
            record.appointment = appointment
    else:
        if patient is None and appointment is not None:
            patient = appointment.patient
        if patient is None:
            raise ValueError('Se requiere un paciente o una cita')
        if department is None and appointment is not None:
            department = appointment.department
        record = MedicalRecord(patient=patient, appointment=appointment,
                               doctor=doctor or current_user, department=department)
        created = True
    if not created:
        if doctor is not None:
            record.doctor = doctor
        if department is not None:
            record.department = department
    for k, v in fields.items():
        if k in RECORD_FIELDS:
            setattr(record, k, v)
    record.save()
    log_action(user=current_user, action='record_create' if created else 'record_update',
               object_type='medical_record', object_id=record.id, detail={'patientId': record.patient_id})
    return record, created


def records_for_patient(patient_id: int) -> list[dict]:
    qs = (MedicalRecord.objects.select_related('patient', 'doctor')
          .filter(patient_id=patient_id).order_by('-created_at', '-id'))
    return [serialize_record(r) for r in qs]


def record_for_appointment(appointment_id: int) -> Optional[MedicalRecord]:
    return (MedicalRecord.objects.select_related('patient', 'doctor')
            .filter(appointment_id=appointment_id).order_by('-created_at', '-id').first())


@transaction.atomic
def finalize_consultation(current_user, appointment_id: int, record_id: int) -> tuple[Appointment, MedicalRecord]:
    """Attach the record to the appointment and close the appointment."""
    record = MedicalRecord.objects.select_for_update().get(pk=record_id)
    appt = Appointment.objects.get(pk=appointment_id)
    if record.patient_id != appt.patient_id:
        raise ValueError('El registro no pertenece al paciente de la cita')
    if record.appointment_id != appt.id:
        record.appointment = appt
        record.save(update_fields=['appointment', 'updated_at'])
    if appt.status != 'completed':
        appt = appointment_svc.set_status(current_user, appt.id, 'completed')
    log_action(user=current_user, action='consultation_finalize', object_type='appointment', object_id=appt.id,
               detail={'recordId': record.id})
    return appt, record
