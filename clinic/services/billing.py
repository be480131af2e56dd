from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from clinic.models import Invoice
from clinic.services.audit import log_action

CENT = Decimal('0.01')
NUMBER_ATTEMPTS = 3


def next_invoice_number(today=None) -> str:
    """``INV-YYYYMMDD-NNNN`` with a per-day sequence, compared numerically."""
    today = today or timezone.localdate()
    prefix = f"INV-{today:%Y%m%d}-"
    numbers = Invoice.objects.filter(invoice_number__startswith=prefix).values_list('invoice_number', flat=True)
    seq = max((int(n.rsplit('-', 1)[1]) for n in numbers), default=0) + 1
    return f"{prefix}{seq:04d}"


def compute_totals(items: list[dict], tax=0, discount=0) -> dict:
    """Fill in line totals and return subtotal/tax/discount/total."""
    subtotal = Decimal('0')
    for item in items:
        line = (Decimal(str(item.get('unit_price') or 0)) * int(item.get('quantity') or 1)).quantize(CENT, ROUND_HALF_UP)
        item['total'] = str(line)
        subtotal += line
    tax = Decimal(str(tax or 0)).quantize(CENT, ROUND_HALF_UP)
    discount = Decimal(str(discount or 0)).quantize(CENT, ROUND_HALF_UP)
    total = subtotal - discount + tax
    if total < 0:
        raise ValueError('El descuento no puede superar el importe de la factura')
    return {'subtotal': subtotal, 'tax': tax, 'discount': discount, 'total': total}


def _jsonable(items: list[dict]) -> list[dict]:
    return [{k: (str(v) if isinstance(v, Decimal) else v) for k, v in item.items()} for item in items]


def serialize_invoice(i: Invoice) -> dict:
    return {
        'id': i.id,
        'invoiceNumber': i.invoice_number,
        'patientId': i.patient_id,
        'patientName': i.patient.full_name,
        'appointmentId': i.appointment_id,
        'status': i.status,
        'items': i.items,
        'subtotal': str(i.subtotal),
        'tax': str(i.tax),
        'discount': str(i.discount),
        'total': str(i.total),
        'amountPaid': str(i.amount_paid),
        'paymentMethod': i.payment_method,
        'issuedDate': i.issued_date.isoformat() if i.issued_date else None,
        'dueDate': i.due_date.isoformat() if i.due_date else None,
        'paidDate': i.paid_date.isoformat() if i.paid_date else None,
        'notes': i.notes,
    }


def list_invoices(*, status: Optional[str] = None, patient_id: Optional[int] = None, limit: int = 200) -> list[dict]:
    qs = Invoice.objects.select_related('patient')
    if status:
        qs = qs.filter(status=status)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    return [serialize_invoice(i) for i in qs.order_by('-created_at', '-id')[:limit]]


def _create_numbered_invoice(**fields) -> Invoice:
    for _ in range(NUMBER_ATTEMPTS - 1):
        try:
            with transaction.atomic():
                return Invoice.objects.create(invoice_number=next_invoice_number(), **fields)
        except IntegrityError:
            continue
    return Invoice.objects.create(invoice_number=next_invoice_number(), **fields)


@transaction.atomic
def create_invoice(current_user, *, patient, items: list[dict], tax=0, discount=0, appointment=None,
                   due_date=None, notes: str = '', payment_method: str = '') -> Invoice:
    if not items:
        raise ValueError('La factura debe tener al menos un concepto')
    totals = compute_totals(items, tax, discount)
    invoice = _create_numbered_invoice(
        patient=patient, appointment=appointment, items=_jsonable(items),
        due_date=due_date, notes=notes, payment_method=payment_method, created_by=current_user, **totals,
    )
    log_action(user=current_user, action='invoice_create', object_type='invoice', object_id=invoice.id,
               detail={'total': str(invoice.total)})
    return invoice


@transaction.atomic
def update_invoice(current_user, invoice_id: int, **fields) -> Invoice:
    invoice = Invoice.objects.select_for_update().get(pk=invoice_id)
    if invoice.status in ('paid', 'cancelled'):
        raise ValueError(f'No se puede modificar una factura en estado {invoice.status}')
    items = fields.pop('items', None)
    if items is not None or 'tax' in fields or 'discount' in fields:
        items = items if items is not None else [dict(i) for i in invoice.items]
        totals = compute_totals(items, fields.pop('tax', invoice.tax), fields.pop('discount', invoice.discount))
        invoice.items = _jsonable(items)
        for k, v in totals.items():
            setattr(invoice, k, v)
    for k in ('due_date', 'notes', 'payment_method'):
        if k in fields:
            setattr(invoice, k, fields[k])
    invoice.save()
    log_action(user=current_user, action='invoice_update', object_type='invoice', object_id=invoice.id)
    return invoice


@transaction.atomic
def cancel_invoice(current_user, invoice_id: int, reason: str = '') -> Invoice:
    invoice = Invoice.objects.select_for_update().get(pk=invoice_id)
    if invoice.status in ('paid', 'cancelled'):
        raise ValueError(f'No se puede cancelar una factura en estado {invoice.status}')
    invoice.status = 'cancelled'
    if reason:
        invoice.notes = f"{invoice.notes}\nCancelada: {reason}".strip()
    invoice.save(update_fields=['status', 'notes'])
    log_action(user=current_user, action='invoice_cancel', object_type='invoice', object_id=invoice.id,
               detail={'reason': reason})
    return invoice


def mark_overdue(today=None) -> int:
    """Move pending invoices past their due date to overdue."""
    today = today or timezone.localdate()
    return Invoice.objects.filter(status='pending', due_date__lt=today).update(status='overdue')
