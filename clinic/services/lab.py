"""
Laboratory orders, results and the verification workflow.

Status moves of an order are checked against :func:`_can_transition` and
recorded as :class:`LabOrderTransition` rows together with an audit event
and a ``lab.order`` broadcast.  ``completed`` is reachable only through
:func:`complete_order`, which first checks that every result is in.
"""
import logging
import secrets
import string
from decimal import Decimal, InvalidOperation
from typing import Optional

from django.conf import settings
from django.core.cache import cache
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from clinic.models import (
    LabCategory,
    LabOrder,
    LabOrderDetail,
    LabOrderTransition,
    LabParameter,
    LabResult,
    LabTestCatalog,
)
from clinic.services.audit import log_action
from clinic.services.realtime import broadcast

logger = logging.getLogger(__name__)

STATS_CACHE_KEY = 'lab:stats'
ORDER_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
# LabResult.value_numeric is max_digits=14, decimal_places=4
NUMERIC_RESULT_LIMIT = Decimal(10) ** 10
NUMERIC_RESULT_STEP = Decimal('0.0001')


def _can_transition(current: str, new: str) -> bool:
    """Moves reachable through the plain ``status`` action."""
    transitions = {
        LabOrder.STATUS_PENDING: [LabOrder.STATUS_SAMPLES, LabOrder.STATUS_PROCESSING, LabOrder.STATUS_CANCELLED],
        LabOrder.STATUS_SAMPLES: [LabOrder.STATUS_PROCESSING, LabOrder.STATUS_CANCELLED],
        LabOrder.STATUS_PROCESSING: [LabOrder.STATUS_CANCELLED],
        LabOrder.STATUS_COMPLETED: [],
        LabOrder.STATUS_CANCELLED: [],
    }
    return new in transitions.get(current, [])


def normalize_priority(value: Optional[str]) -> str:
    return 'urgent' if (value or '').lower() in ('urgent', 'stat', 'emergency') else 'normal'


def next_order_number(today=None) -> str:
    """``LAB-YYYYMMDD-XXXX`` with a random suffix, retried until unused."""
    today = today or timezone.localdate()
    length = 4
    while True:
        suffix = ''.join(secrets.choice(ORDER_SUFFIX_ALPHABET) for _ in range(length))
        number = f"LAB-{today:%Y%m%d}-{suffix}"
        if not LabOrder.objects.filter(order_number=number).exists():
            return number
        length = 6


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------

def serialize_parameter(p: LabParameter) -> dict:
    return {
        'id': p.id,
        'testId': p.test_id,
        'name': p.name,
        'code': p.code,
        'unit': p.unit,
        'type': p.parameter_type,
        'options': p.options,
        'referenceMin': str(p.reference_min) if p.reference_min is not None else None,
        'referenceMax': str(p.reference_max) if p.reference_max is not None else None,
        'referenceText': p.reference_text,
        'criticalBelow': str(p.critical_below) if p.critical_below is not None else None,
        'criticalAbove': str(p.critical_above) if p.critical_above is not None else None,
        'method': p.method,
        'decimalPlaces': p.decimal_places,
        'sortOrder': p.sort_order,
        'isActive': p.is_active,
    }


def serialize_test(t: LabTestCatalog, with_parameters: bool = False) -> dict:
    data = {
        'id': t.id,
        'code': t.code,
        'name': t.name,
        'description': t.description,
        'categoryId': t.category_id,
        'categoryName': t.category.name if t.category_id else None,
        'sampleType': t.sample_type,
        'instructions': t.instructions,
        'preparationRequired': t.preparation_required,
        'durationHours': t.duration_hours,
        'price': str(t.price),
        'inventoryItemId': t.inventory_item_id,
        'isActive': t.is_active,
    }
    if with_parameters:
        data['parameters'] = [serialize_parameter(p) for p in t.parameters.filter(is_active=True)]
    return data


def serialize_result(r: LabResult) -> dict:
    return {
        'id': r.id,
        'orderDetailId': r.order_detail_id,
        'parameterId': r.parameter_id,
        'valueText': r.value_text,
        'valueNumeric': str(r.value_numeric) if r.value_numeric is not None else None,
        'isAbnormal': r.is_abnormal,
        'isCritical': r.is_critical,
        'status': r.status,
        'enteredBy': r.entered_by_id,
        'reviewedBy': r.reviewed_by_id,
        'reviewedAt': r.reviewed_at.isoformat() if r.reviewed_at else None,
        'notes': r.notes,
    }


def serialize_order(o: LabOrder, detail: bool = False) -> dict:
    data = {
        'id': o.id,
        'orderNumber': o.order_number,
        'patientId': o.patient_id,
        'patientName': o.patient.full_name,
        'doctorId': o.doctor_id,
        'doctorName': (o.doctor.get_full_name() or o.doctor.username) if o.doctor_id else None,
        'appointmentId': o.appointment_id,
        'status': o.status,
        'priority': o.priority,
        'notes': o.notes,
        'totalAmount': str(o.total_amount),
        'isPaid': o.is_paid,
        'completedAt': o.completed_at.isoformat() if o.completed_at else None,
        'cancelledAt': o.cancelled_at.isoformat() if o.cancelled_at else None,
        'cancelledReason': o.cancelled_reason,
        'createdAt': o.created_at.isoformat(),
    }
    if detail:
        data['internalNotes'] = o.internal_notes
        data['details'] = []
        for d in o.details.select_related('test').prefetch_related('results').order_by('id'):
            params = d.test.parameters.filter(is_active=True) if d.test_id else []
            data['details'].append({
                'id': d.id,
                'testId': d.test_id,
                'name': d.display_name,
                'isCustom': d.is_custom,
                'price': str(d.price),
                'sampleCollected': d.sample_collected,
                'sampleCollectedAt': d.sample_collected_at.isoformat() if d.sample_collected_at else None,
                'notes': d.notes,
                'parameters': [serialize_parameter(p) for p in params],
                'results': [serialize_result(r) for r in d.results.all()],
            })
        data['transitions'] = [{
            'from': t.from_status, 'to': t.to_status, 'operatorId': t.operator_id,
            'reason': t.reason, 'timestamp': t.timestamp.isoformat(),
        } for t in o.transitions.order_by('timestamp', 'id')]
    return data


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

def list_catalog(*, category_id: Optional[int] = None, include_inactive: bool = False) -> list[dict]:
    qs = LabTestCatalog.objects.select_related('category').prefetch_related('parameters')
    if not include_inactive:
        qs = qs.filter(is_active=True)
    if category_id:
        qs = qs.filter(category_id=category_id)
    return [serialize_test(t, with_parameters=True) for t in qs.order_by('name')]


def create_test(current_user, *, parameters: Optional[list[dict]] = None, **fields) -> LabTestCatalog:
    if LabTestCatalog.objects.filter(code=fields['code']).exists():
        raise ValueError('Ya existe una prueba con ese código')
    with transaction.atomic():
        test = LabTestCatalog.objects.create(**fields)
        for i, p in enumerate(parameters or []):
            p.setdefault('sort_order', i)
            LabParameter.objects.create(test=test, **p)
    log_action(user=current_user, action='lab_test_create', object_type='lab_test', object_id=test.id,
               detail={'code': test.code})
    return test


def add_parameter(current_user, test: LabTestCatalog, **fields) -> LabParameter:
    param = LabParameter.objects.create(test=test, **fields)
    log_action(user=current_user, action='lab_parameter_create', object_type='lab_test', object_id=test.id,
               detail={'parameterId': param.id})
    return param


def list_categories() -> list[dict]:
    return [{'id': c.id, 'name': c.name, 'code': c.code} for c in LabCategory.objects.order_by('name')]


def create_category(current_user, *, name: str, code: str) -> LabCategory:
    if LabCategory.objects.filter(code=code).exists():
        raise ValueError('Ya existe una categoría con ese código')
    category = LabCategory.objects.create(name=name, code=code)
    log_action(user=current_user, action='lab_category_create', object_type='lab_category', object_id=category.id)
    return category


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

def _record_transition(order: LabOrder, previous: Optional[str], operator, reason: str = '') -> None:
    LabOrderTransition.objects.create(order=order, from_status=previous, to_status=order.status,
                                      operator=operator, reason=reason)
    log_action(user=operator, action='lab_order_status', object_type='lab_order', object_id=order.id,
               detail={'from': previous, 'to': order.status, 'reason': reason})
    cache.delete(STATS_CACHE_KEY)
    broadcast('lab.order', {'id': order.id, 'orderNumber': order.order_number, 'status': order.status})


@transaction.atomic
def create_order(current_user, *, patient, test_ids: Optional[list[int]] = None,
                 custom_tests: Optional[list[dict]] = None, doctor=None, appointment=None,
                 priority: Optional[str] = None, notes: str = '') -> LabOrder:
    test_ids = list(dict.fromkeys(test_ids or []))
    custom_tests = custom_tests or []
    if not test_ids and not custom_tests:
        raise ValueError('Debe seleccionar al menos una prueba')
    tests = list(LabTestCatalog.objects.filter(pk__in=test_ids, is_active=True))
    if len(tests) != len(test_ids):
        raise ValueError('Alguna de las pruebas seleccionadas no existe o está inactiva')

    order = LabOrder.objects.create(
        order_number=next_order_number(), patient=patient, doctor=doctor or current_user,
        appointment=appointment, priority=normalize_priority(priority), notes=notes,
        status=LabOrder.STATUS_PENDING, created_by=current_user,
    )
    total = Decimal('0')
    for test in tests:
        LabOrderDetail.objects.create(order=order, test=test)
        total += test.price
    for custom in custom_tests:
        price = Decimal(custom.get('price') or 0)
        LabOrderDetail.objects.create(order=order, is_custom=True, custom_name=custom['name'], custom_price=price)
        total += price
    order.total_amount = total
    order.save(update_fields=['total_amount'])
    _record_transition(order, None, current_user, 'Orden creada')
    logger.info('lab order %s created with %s test(s)', order.order_number, len(tests) + len(custom_tests))
    return order


def list_orders(*, status: Optional[str] = None, priority: Optional[str] = None, patient_id: Optional[int] = None,
                day=None, page: int = 1, page_size: int = 20) -> tuple[list[dict], int]:
    qs = LabOrder.objects.select_related('patient', 'doctor')
    if status:
        qs = qs.filter(status=status)
    if priority:
        qs = qs.filter(priority=normalize_priority(priority))
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if day:
        qs = qs.filter(created_at__date=day)
    total = qs.count()
    start = (page - 1) * page_size
    return [serialize_order(o) for o in qs.order_by('-created_at', '-id')[start:start + page_size]], total


def orders_for_patient(patient_id: int) -> list[dict]:
    qs = LabOrder.objects.select_related('patient', 'doctor').filter(patient_id=patient_id)
    return [serialize_order(o) for o in qs.order_by('-created_at', '-id')]


def delete_order(current_user, order: LabOrder) -> None:
    order_id, number = order.id, order.order_number
    order.delete()
    log_action(user=current_user, action='lab_order_delete', object_type='lab_order', object_id=order_id,
               detail={'orderNumber': number})
    cache.delete(STATS_CACHE_KEY)


@transaction.atomic
def mark_sample_collected(current_user, detail_id: int, collected: bool = True) -> LabOrderDetail:
    detail = LabOrderDetail.objects.select_related('order').get(pk=detail_id)
    order = LabOrder.objects.select_for_update().get(pk=detail.order_id)
    if order.status in (LabOrder.STATUS_COMPLETED, LabOrder.STATUS_CANCELLED):
        raise ValueError('La orden ya está cerrada')
    detail.sample_collected = collected
    detail.sample_collected_at = timezone.now() if collected else None
    detail.collected_by = current_user if collected else None
    detail.save(update_fields=['sample_collected', 'sample_collected_at', 'collected_by'])
    if (order.status == LabOrder.STATUS_PENDING
            and not order.details.filter(sample_collected=False).exists()):
        previous = order.status
        order.status = LabOrder.STATUS_SAMPLES
        order.save(update_fields=['status', 'updated_at'])
        _record_transition(order, previous, current_user, 'Muestras recolectadas')
    return detail


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

def _parse_number(value) -> Optional[Decimal]:
    """Numeric reading of a result, or None when it is kept as text only."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip().replace(',', '.'))
    except (InvalidOperation, ValueError):
        return None
    # NaN/Infinity and values the column cannot hold stay free text
    if not number.is_finite() or abs(number) >= NUMERIC_RESULT_LIMIT:
        return None
    if abs(number.quantize(NUMERIC_RESULT_STEP)) >= NUMERIC_RESULT_LIMIT:
        return None
    return number


def evaluate(parameter: Optional[LabParameter], numeric: Optional[Decimal]) -> tuple[bool, bool]:
    """Return ``(is_abnormal, is_critical)`` for a numeric value."""
    if parameter is None or numeric is None:
        return False, False
    abnormal = ((parameter.reference_min is not None and numeric < parameter.reference_min)
                or (parameter.reference_max is not None and numeric > parameter.reference_max))
    critical = ((parameter.critical_below is not None and numeric < parameter.critical_below)
                or (parameter.critical_above is not None and numeric > parameter.critical_above))
    return bool(abnormal), bool(critical)


@transaction.atomic
def save_result(current_user, *, order_detail_id: int, parameter_id: Optional[int], value,
                notes: str = '') -> LabResult:
    """Insert or update the result of one parameter (or the general result)."""
    detail = LabOrderDetail.objects.get(pk=order_detail_id)
    order = LabOrder.objects.select_for_update().get(pk=detail.order_id)
    if order.status in (LabOrder.STATUS_COMPLETED, LabOrder.STATUS_CANCELLED):
        raise ValueError('No se pueden registrar resultados en una orden cerrada')
    parameter = None
    if parameter_id:
        parameter = LabParameter.objects.get(pk=parameter_id)
        if parameter.test_id != detail.test_id:
            raise ValueError('El parámetro no pertenece a la prueba')

    numeric = _parse_number(value)
    abnormal, critical = evaluate(parameter, numeric)
    result, _ = LabResult.objects.update_or_create(
        order_detail=detail, parameter=parameter,
        defaults={
            'value_text': '' if value is None else str(value).strip(),
            'value_numeric': numeric,
            'is_abnormal': abnormal,
            'is_critical': critical,
            'status': 'entered',
            'entered_by': current_user,
            'notes': notes,
        },
    )
    if critical:
        logger.warning('critical lab value on order %s: %s', order.order_number, value)
    if order.status in (LabOrder.STATUS_PENDING, LabOrder.STATUS_SAMPLES):
        previous = order.status
        order.status = LabOrder.STATUS_PROCESSING
        order.save(update_fields=['status', 'updated_at'])
        _record_transition(order, previous, current_user, 'Primer resultado registrado')
    return result


def review_result(current_user, result_id: int) -> LabResult:
    result = LabResult.objects.get(pk=result_id)
    if result.status == 'pending':
        raise ValueError('El resultado aún no ha sido registrado')
    result.status = 'reviewed'
    result.reviewed_by = current_user
    result.reviewed_at = timezone.now()
    result.save(update_fields=['status', 'reviewed_by', 'reviewed_at', 'updated_at'])
    log_action(user=current_user, action='lab_result_review', object_type='lab_result', object_id=result.id)
    return result


def count_missing_results(order: LabOrder) -> int:
    """Number of results still to be entered before the order can close.

    A parameter without its own result may be covered by one general
    (parameter-less) result of the same detail; each general result
    covers a single parameter.
    """
    details = list(order.details.select_related('test').prefetch_related('results'))
    if not details:
        raise ValueError('La orden no tiene pruebas')
    missing = 0
    for detail in details:
        results = list(detail.results.all())
        general = sum(1 for r in results if r.parameter_id is None)
        with_param = {r.parameter_id for r in results if r.parameter_id is not None}
        params = list(detail.test.parameters.filter(is_active=True)) if detail.test_id and not detail.is_custom else []
        if not params:
            missing += 0 if general else 1
            continue
        for p in params:
            if p.id in with_param:
                continue
            if general:
                general -= 1
                continue
            missing += 1
    return missing


def verify_results(order: LabOrder) -> None:
    missing = count_missing_results(order)
    if missing:
        raise ValueError(f'Faltan {missing} resultado(s) por registrar')


@transaction.atomic
def complete_order(current_user, order_id: int) -> LabOrder:
    order = LabOrder.objects.select_for_update().get(pk=order_id)
    if order.status in (LabOrder.STATUS_COMPLETED, LabOrder.STATUS_CANCELLED):
        raise ValueError(f'La orden ya está en estado {order.status}')
    verify_results(order)
    previous = order.status
    order.status = LabOrder.STATUS_COMPLETED
    order.completed_at = timezone.now()
    order.completed_by = current_user
    order.save(update_fields=['status', 'completed_at', 'completed_by', 'updated_at'])
    _record_transition(order, previous, current_user, 'Resultados verificados')
    return order


@transaction.atomic
def change_status(current_user, order_id: int, new_status: str, reason: str = '') -> LabOrder:
    order = LabOrder.objects.select_for_update().get(pk=order_id)
    if new_status == order.status:
        return order
    if not _can_transition(order.status, new_status):
        raise ValueError(f'Transición de estado no permitida: {order.status} → {new_status}')
    previous = order.status
    order.status = new_status
    fields = ['status', 'updated_at']
    if new_status == LabOrder.STATUS_CANCELLED:
        order.cancelled_at = timezone.now()
        order.cancelled_reason = reason
        fields += ['cancelled_at', 'cancelled_reason']
    order.save(update_fields=fields)
    _record_transition(order, previous, current_user, reason)
    return order


def lab_stats(use_cache: bool = True) -> dict:
    if use_cache:
        cached = cache.get(STATS_CACHE_KEY)
        if cached is not None:
            return cached
    today = timezone.localdate()
    completed_today = LabOrder.objects.filter(status=LabOrder.STATUS_COMPLETED, completed_at__date=today)
    revenue = completed_today.aggregate(v=Sum('total_amount'))['v'] or Decimal('0')
    payload = {
        'totalOrders': LabOrder.objects.count(),
        'pendingOrders': LabOrder.objects.filter(status=LabOrder.STATUS_PENDING).count(),
        'processingOrders': LabOrder.objects.filter(status=LabOrder.STATUS_PROCESSING).count(),
        'completedToday': completed_today.count(),
        'urgentOrders': LabOrder.objects.filter(
            priority='urgent', status__in=[LabOrder.STATUS_PENDING, LabOrder.STATUS_PROCESSING]).count(),
        'totalRevenue': str(revenue),
    }
    cache.set(STATS_CACHE_KEY, payload, settings.STATS_CACHE_SECONDS)
    return payload
