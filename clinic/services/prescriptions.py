import logging
from typing import Optional

from django.core.cache import cache
from django.db import transaction
from django.utils import timezone

from clinic.models import Appointment, InventoryItem, MedicalRecord, Patient, Prescription
from clinic.services import inventory
from clinic.services.audit import log_action
from clinic.services.realtime import broadcast

logger = logging.getLogger(__name__)

ITEM_FIELDS = ('medication', 'medication_name', 'dosage', 'frequency', 'duration', 'quantity_prescribed',
               'refills_allowed', 'instructions')


def serialize_prescription(p: Prescription) -> dict:
    return {
        'id': p.id,
        'medicalRecordId': p.medical_record_id,
        'patientId': p.patient_id,
        'patientName': p.patient.full_name,
        'doctorId': p.doctor_id,
        'doctorName': (p.doctor.get_full_name() or p.doctor.username) if p.doctor_id else None,
        'medicationId': p.medication_id,
        'medicationName': p.medication_name,
        'dosage': p.dosage,
        'frequency': p.frequency,
        'duration': p.duration,
        'quantityPrescribed': p.quantity_prescribed,
        'quantityDispensed': p.quantity_dispensed,
        'remaining': p.remaining,
        'refillsAllowed': p.refills_allowed,
        'refillsUsed': p.refills_used,
        'instructions': p.instructions,
        'status': p.status,
        'prescribedDate': p.prescribed_date.isoformat(),
        'dispensedDate': p.dispensed_date.isoformat() if p.dispensed_date else None,
    }


def list_prescriptions(*, status: Optional[str] = None, patient_id: Optional[int] = None,
                       doctor_id: Optional[int] = None, limit: int = 200) -> list[dict]:
    qs = Prescription.objects.select_related('patient', 'doctor')
    if status:
        qs = qs.filter(status=status)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if doctor_id:
        qs = qs.filter(doctor_id=doctor_id)
    return [serialize_prescription(p) for p in qs.order_by('-prescribed_date', '-id')[:limit]]


def _resolve_record(current_user, patient: Patient, doctor, appointment_id: Optional[int],
                    medical_record_id: Optional[int], medication_names: list[str]) -> MedicalRecord:
    if medical_record_id:
        return MedicalRecord.objects.get(pk=medical_record_id)

    if appointment_id:
        appt = Appointment.objects.select_related('patient').get(pk=appointment_id)
        if not appt.patient_id:
            raise ValueError('La cita no tiene un paciente asociado')
        record = appt.medical_records.order_by('-created_at', '-id').first()
        if record:
            return record
        record = MedicalRecord.objects.create(
            patient=appt.patient, appointment=appt, doctor=appt.doctor or doctor, department=appt.department,
            record_type='consultation', chief_complaint=appt.reason, prescriptions=medication_names,
        )
        log_action(user=current_user, action='record_create', object_type='medical_record', object_id=record.id,
                   detail={'source': 'prescription', 'appointmentId': appt.id})
        return record

    record = MedicalRecord.objects.create(
        patient=patient, doctor=doctor, department=getattr(doctor, 'department', None),
        record_type='consultation', prescriptions=medication_names,
    )
    log_action(user=current_user, action='record_create', object_type='medical_record', object_id=record.id,
               detail={'source': 'prescription'})
    return record


@transaction.atomic
def create_prescriptions(current_user, *, patient: Patient, items: list[dict], doctor=None,
                         appointment_id: Optional[int] = None,
                         medical_record_id: Optional[int] = None) -> tuple[MedicalRecord, list[Prescription]]:
    """Create one prescription per item, stitching a medical record in first.

    The record is the given one, else the appointment's, else a new
    consultation record for the patient.
    """
    if not items:
        raise ValueError('Debe indicar al menos un medicamento')
    doctor = doctor or current_user
    names = [i.get('medication_name') or (i['medication'].name if i.get('medication') else '') for i in items]
    record = _resolve_record(current_user, patient, doctor, appointment_id, medical_record_id, names)

    created = []
    for item, name in zip(items, names):
        if not name:
            raise ValueError('Cada medicamento necesita un nombre o un producto de inventario')
        fields = {k: v for k, v in item.items() if k in ITEM_FIELDS}
        fields['medication_name'] = name
        created.append(Prescription.objects.create(
            medical_record=record, patient=patient, doctor=doctor, status='pending', **fields
        ))
    log_action(user=current_user, action='prescription_create', object_type='medical_record', object_id=record.id,
               detail={'prescriptionIds': [p.id for p in created]})
    cache.delete(inventory.STATS_CACHE_KEY)
    return record, created


@transaction.atomic
def dispense(current_user, prescription_id: int, quantity: Optional[int] = None) -> Prescription:
    rx = Prescription.objects.select_for_update().select_related('patient').get(pk=prescription_id)
    if rx.status == 'cancelled':
        raise ValueError('La receta está cancelada')
    if rx.status == 'expired':
        raise ValueError('La receta está caducada')
    if rx.status == 'dispensed' or rx.remaining == 0:
        raise ValueError('La receta ya fue dispensada por completo')
    quantity = rx.remaining if quantity is None else quantity
    if quantity <= 0:
        raise ValueError('La cantidad debe ser mayor que cero')
    if quantity > rx.remaining:
        raise ValueError(f'La cantidad excede lo pendiente de dispensar ({rx.remaining})')

    item = None
    if rx.medication_id:
        item = InventoryItem.objects.select_for_update().get(pk=rx.medication_id)
        if item.quantity < quantity:
            raise ValueError(f'Stock insuficiente. Disponible: {item.quantity}, Solicitado: {quantity}')
        inventory.record_movement(current_user, item.id, 'prescription_dispense', quantity,
                                  reference_type='prescription', reference_id=rx.id,
                                  notes=f'Dispensación receta #{rx.id} ({rx.patient.full_name})')
        item.refresh_from_db()

    rx.quantity_dispensed += quantity
    rx.status = 'dispensed' if rx.quantity_dispensed >= rx.quantity_prescribed else 'partially_dispensed'
    rx.dispensed_date = timezone.now()
    rx.dispensed_by = current_user
    rx.save(update_fields=['quantity_dispensed', 'status', 'dispensed_date', 'dispensed_by'])
    log_action(user=current_user, action='prescription_dispense', object_type='prescription', object_id=rx.id,
               detail={'quantity': quantity, 'status': rx.status})

    if item is not None and item.is_low_stock:
        logger.info('item %s is low on stock after dispensing rx %s', item.sku, rx.id)
        broadcast('pharmacy.stock', {'itemId': item.id, 'name': item.name, 'quantity': item.quantity,
                                     'minStock': item.min_stock})
    return rx


@transaction.atomic
def cancel(current_user, prescription_id: int, reason: str = '') -> Prescription:
    rx = Prescription.objects.select_for_update().get(pk=prescription_id)
    if rx.status not in ('pending', 'partially_dispensed'):
        raise ValueError(f'No se puede cancelar una receta en estado {rx.status}')
    rx.status = 'cancelled'
    rx.save(update_fields=['status'])
    log_action(user=current_user, action='prescription_cancel', object_type='prescription', object_id=rx.id,
               detail={'reason': reason})
    cache.delete(inventory.STATS_CACHE_KEY)
    return rx
