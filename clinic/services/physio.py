"""
Physiotherapy treatment plans, SOAP sessions and the discharge summary.
"""
from typing import Optional

from django.db import transaction
from django.db.models import Max
from django.utils import timezone

from clinic.models import (
    PhysioDischargeSummary,
    PhysioEquipment,
    PhysioExercise,
    PhysioSession,
    PhysioTechnique,
    PhysioTreatmentPlan,
    PhysioTreatmentType,
)
from clinic.services.audit import log_action

CLOSED = {'completed', 'suspended', 'cancelled'}
PLAN_FIELDS = (
    'diagnosis', 'plan_type', 'objectives', 'sessions_per_week', 'total_sessions_prescribed', 'initial_vas',
    'baseline_rom', 'baseline_strength', 'baseline_functional', 'start_date', 'expected_end_date', 'status',
    'notes', 'physiotherapist', 'medical_record', 'referral',
)


def pain_improvement(initial_vas: Optional[int], final_vas: int) -> Optional[int]:
    """Percent drop in VAS pain score; None without a positive baseline."""
    if not initial_vas:
        return None
    return round((initial_vas - final_vas) / initial_vas * 100)


def serialize_session(s: PhysioSession) -> dict:
    return {
        'id': s.id,
        'planId': s.plan_id,
        'patientId': s.patient_id,
        'therapistId': s.therapist_id,
        'appointmentId': s.appointment_id,
        'sessionNumber': s.session_number,
        'sessionDate': s.session_date.isoformat(),
        'sessionTime': s.session_time.isoformat() if s.session_time else None,
        'durationMinutes': s.duration_minutes,
        'subjective': s.subjective,
        'objective': s.objective,
        'assessment': s.assessment,
        'planNotes': s.plan_notes,
        'painLevel': s.pain_level,
        'techniques': s.techniques,
        'exercises': s.exercises,
        'equipmentUsed': s.equipment_used,
        'observations': s.observations,
    }


def serialize_discharge(d: PhysioDischargeSummary) -> dict:
    return {
        'id': d.id,
        'finalVas': d.final_vas,
        'painImprovement': d.pain_improvement,
        'sessionsCompleted': d.sessions_completed,
        'finalRom': d.final_rom,
        'finalStrength': d.final_strength,
        'outcomeSummary': d.outcome_summary,
        'recommendations': d.recommendations,
        'homeProgram': d.home_program,
        'createdAt': d.created_at.isoformat(),
    }


def serialize_plan(p: PhysioTreatmentPlan, detail: bool = False) -> dict:
    data = {
        'id': p.id,
        'patientId': p.patient_id,
        'patientName': p.patient.full_name,
        'physiotherapistId': p.physiotherapist_id,
        'medicalRecordId': p.medical_record_id,
        'referralId': p.referral_id,
        'diagnosis': p.diagnosis,
        'planType': p.plan_type,
        'objectives': p.objectives,
        'sessionsPerWeek': p.sessions_per_week,
        'totalSessionsPrescribed': p.total_sessions_prescribed,
        'sessionsCompleted': p.sessions_completed,
        'initialVas': p.initial_vas,
        'baselineRom': p.baseline_rom,
        'baselineStrength': p.baseline_strength,
        'baselineFunctional': p.baseline_functional,
        'startDate': p.start_date.isoformat(),
        'expectedEndDate': p.expected_end_date.isoformat() if p.expected_end_date else None,
        'actualEndDate': p.actual_end_date.isoformat() if p.actual_end_date else None,
        'status': p.status,
        'notes': p.notes,
    }
    if detail:
        data['sessions'] = [serialize_session(s) for s in p.sessions.order_by('session_number')]
        discharge = PhysioDischargeSummary.objects.filter(plan=p).first()
        data['discharge'] = serialize_discharge(discharge) if discharge else None
    return data


def list_plans(*, patient_id: Optional[int] = None, status: Optional[str] = None,
               physiotherapist_id: Optional[int] = None) -> list[dict]:
    qs = PhysioTreatmentPlan.objects.select_related('patient')
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if status:
        qs = qs.filter(status=status)
    if physiotherapist_id:
        qs = qs.filter(physiotherapist_id=physiotherapist_id)
    return [serialize_plan(p) for p in qs.order_by('-created_at', '-id')]


def create_plan(current_user, *, patient, **fields) -> PhysioTreatmentPlan:
    if fields.get('physiotherapist') is None:
        fields['physiotherapist'] = current_user
    values = {k: v for k, v in fields.items() if k in PLAN_FIELDS and k != 'status'}
    plan = PhysioTreatmentPlan.objects.create(patient=patient, status='indicated', **values)
    log_action(user=current_user, action='physio_plan_create', object_type='physio_plan', object_id=plan.id,
               detail={'patientId': patient.id})
    return plan


def update_plan(current_user, plan: PhysioTreatmentPlan, **fields) -> PhysioTreatmentPlan:
    if plan.status == 'completed':
        raise ValueError('El plan ya está finalizado')
    if fields.get('status') == 'completed':
        raise ValueError('Use la finalización del plan para completarlo')
    for k, v in fields.items():
        if k in PLAN_FIELDS:
            setattr(plan, k, v)
    plan.save()
    log_action(user=current_user, action='physio_plan_update', object_type='physio_plan', object_id=plan.id,
               detail={'fields': sorted(fields)})
    return plan


def list_sessions(*, plan_id: Optional[int] = None, patient_id: Optional[int] = None) -> list[dict]:
    qs = PhysioSession.objects.all()
    if plan_id:
        qs = qs.filter(plan_id=plan_id)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    return [serialize_session(s) for s in qs.order_by('-session_date', '-session_number')]


@transaction.atomic
def add_session(current_user, plan_id: int, **fields) -> PhysioSession:
    """Record a session; the plan starts on the first and closes on the last."""
    plan = PhysioTreatmentPlan.objects.select_for_update().get(pk=plan_id)
    if plan.status in CLOSED:
        raise ValueError(f'No se pueden registrar sesiones en un plan {plan.status}')
    number = (plan.sessions.aggregate(n=Max('session_number'))['n'] or 0) + 1
    if fields.get('therapist') is None:
        fields['therapist'] = current_user
    session = PhysioSession.objects.create(plan=plan, patient_id=plan.patient_id, session_number=number, **fields)

    plan.sessions_completed += 1
    if plan.status == 'indicated':
        plan.status = 'in_progress'
    if plan.sessions_completed >= plan.total_sessions_prescribed:
        plan.status = 'completed'
        plan.actual_end_date = timezone.localdate()
    plan.save(update_fields=['sessions_completed', 'status', 'actual_end_date', 'updated_at'])
    log_action(user=current_user, action='physio_session', object_type='physio_plan', object_id=plan.id,
               detail={'sessionNumber': number, 'status': plan.status})
    return session


@transaction.atomic
def finalize_plan(current_user, plan_id: int, *, final_vas: int, **fields) -> PhysioDischargeSummary:
    plan = PhysioTreatmentPlan.objects.select_for_update().get(pk=plan_id)
    if plan.status == 'cancelled':
        raise ValueError('No se puede finalizar un plan cancelado')
    if PhysioDischargeSummary.objects.filter(plan=plan).exists():
        raise ValueError('El plan ya tiene un informe de alta')
    if not 0 <= final_vas <= 10:
        raise ValueError('La escala EVA debe estar entre 0 y 10')
    summary = PhysioDischargeSummary.objects.create(
        plan=plan, final_vas=final_vas, pain_improvement=pain_improvement(plan.initial_vas, final_vas),
        sessions_completed=plan.sessions_completed, discharged_by=current_user, **fields,
    )
    plan.status = 'completed'
    plan.actual_end_date = timezone.localdate()
    plan.save(update_fields=['status', 'actual_end_date', 'updated_at'])
    log_action(user=current_user, action='physio_plan_finalize', object_type='physio_plan', object_id=plan.id,
               detail={'painImprovement': summary.pain_improvement})
    return summary


# ---------------------------------------------------------------------------
# Catalogs
# ---------------------------------------------------------------------------

CATALOGS = {
    'treatment-types': (PhysioTreatmentType, ('description', 'category')),
    'techniques': (PhysioTechnique, ('treatment_type_id', 'description', 'parameters_schema',
                                     'default_duration_minutes', 'contraindications')),
    'exercises': (PhysioExercise, ('description', 'target_muscle_group', 'body_region', 'difficulty_level',
                                   'instructions', 'video_url', 'contraindications')),
    'equipment': (PhysioEquipment, ('treatment_type_id', 'brand', 'model', 'serial_number', 'parameters_template',
                                    'location', 'status', 'last_maintenance_date', 'next_maintenance_date')),
}


def _camel(name: str) -> str:
    first, *rest = name.split('_')
    return first + ''.join(p.title() for p in rest)


def serialize_catalog_entry(kind: str, obj) -> dict:
    data = {'id': obj.id, 'code': obj.code, 'name': obj.name, 'isActive': obj.is_active}
    for field in CATALOGS[kind][1]:
        value = getattr(obj, field)
        data[_camel(field)] = value.isoformat() if hasattr(value, 'isoformat') else value
    return data


def list_catalog(kind: str, treatment_type_id: Optional[int] = None) -> list[dict]:
    model = CATALOGS[kind][0]
    qs = model.objects.filter(is_active=True)
    if treatment_type_id and kind in ('techniques', 'equipment'):
        qs = qs.filter(treatment_type_id=treatment_type_id)
    return [serialize_catalog_entry(kind, o) for o in qs.order_by('name')]


def create_catalog_entry(current_user, kind: str, **fields):
    model = CATALOGS[kind][0]
    if model.objects.filter(code=fields['code']).exists():
        raise ValueError('Ya existe un elemento con ese código')
    obj = model.objects.create(**fields)
    log_action(user=current_user, action='physio_catalog_create', object_type=f'physio_{kind}', object_id=obj.id)
    return obj
