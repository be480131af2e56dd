"""
Pharmacy point of sale.

A sale is one :class:`POSTransaction` with its lines; every line takes
stock out through a ``sale`` movement.  Cancelling a sale puts the stock
back with ``return`` movements.
"""
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from django.conf import settings
from django.core.cache import cache
from django.db import IntegrityError, transaction
from django.db.models import Avg, Count, Q, Sum
from django.utils import timezone

from clinic.models import InventoryItem, POSTransaction, POSTransactionItem
from clinic.services import inventory
from clinic.services.audit import log_action

CENT = Decimal('0.01')
STATS_CACHE_KEY = 'pos:stats'
NUMBER_ATTEMPTS = 3


def money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def next_transaction_number(today=None) -> str:
    """``POS-YYYY-MM-DD-NNNN`` with a per-day sequence.

    The suffix widens past 9999, so the highest number is found by value
    rather than by string order.
    """
    today = today or timezone.localdate()
    prefix = f"POS-{today:%Y-%m-%d}-"
    numbers = POSTransaction.objects.filter(transaction_number__startswith=prefix).values_list(
        'transaction_number', flat=True)
    seq = max((int(n.rsplit('-', 1)[1]) for n in numbers), default=0) + 1
    return f"{prefix}{seq:04d}"


def compute_totals(lines: list[dict], discount_total=0, tax_rate: Optional[Decimal] = None) -> dict:
    """Line subtotals, then tax on the discounted subtotal."""
    rate = settings.POS_TAX_RATE if tax_rate is None else Decimal(tax_rate)
    subtotal = Decimal('0')
    for line in lines:
        line['subtotal'] = money(Decimal(line['unit_price']) * line['quantity'] - Decimal(line.get('discount') or 0))
        subtotal += line['subtotal']
    discount_total = money(discount_total or 0)
    taxable = subtotal - discount_total
    if taxable < 0:
        raise ValueError('El descuento supera el subtotal de la venta')
    tax = money(taxable * rate)
    return {
        'subtotal': money(subtotal),
        'discount_total': discount_total,
        'tax_amount': tax,
        'total_amount': money(taxable + tax),
    }


def serialize_sale(t: POSTransaction, with_items: bool = True) -> dict:
    data = {
        'id': t.id,
        'transactionNumber': t.transaction_number,
        'paymentMethod': t.payment_method,
        'customerName': t.customer_name,
        'notes': t.notes,
        'subtotal': str(t.subtotal),
        'discountTotal': str(t.discount_total),
        'taxAmount': str(t.tax_amount),
        'totalAmount': str(t.total_amount),
        'itemsCount': t.items_count,
        'status': t.status,
        'cashier': t.cashier.username if t.cashier_id else None,
        'cancelledAt': t.cancelled_at.isoformat() if t.cancelled_at else None,
        'cancelReason': t.cancel_reason,
        'createdAt': t.created_at.isoformat(),
    }
    if with_items:
        data['items'] = [{
            'id': i.id,
            'inventoryId': i.item_id,
            'productName': i.product_name,
            'quantity': i.quantity,
            'unitPrice': str(i.unit_price),
            'discount': str(i.discount),
            'subtotal': str(i.subtotal),
        } for i in t.items.all()]
    return data


def _create_numbered_sale(**fields) -> POSTransaction:
    """Insert a sale, taking the next free number if a concurrent sale claimed ours."""
    for _ in range(NUMBER_ATTEMPTS - 1):
        try:
            with transaction.atomic():
                return POSTransaction.objects.create(transaction_number=next_transaction_number(), **fields)
        except IntegrityError:
            continue
    return POSTransaction.objects.create(transaction_number=next_transaction_number(), **fields)


@transaction.atomic
def create_sale(current_user, *, items: list[dict], payment_method: str, customer_name: str = '',
                notes: str = '', discount_total=0) -> POSTransaction:
    if not items:
        raise ValueError('La venta debe incluir al menos un producto')
    if payment_method not in {c[0] for c in POSTransaction.PAYMENT_CHOICES}:
        raise ValueError(f'Método de pago no válido: {payment_method}')

    lines = []
    products: dict[int, InventoryItem] = {}
    requested: dict[int, int] = {}
    for raw in items:
        qty = int(raw['quantity'])
        price = Decimal(raw['unit_price'])
        discount = Decimal(raw.get('discount') or 0)
        if qty < 1:
            raise ValueError('La cantidad debe ser al menos 1')
        if price < 0:
            raise ValueError('El precio unitario no puede ser negativo')
        if discount < 0 or discount > price * qty:
            raise ValueError('Descuento no válido')
        pk = int(raw['inventory_id'])
        if pk not in products:
            products[pk] = InventoryItem.objects.select_for_update().get(pk=pk)
        product = products[pk]
        # several lines may draw on the same product
        requested[pk] = requested.get(pk, 0) + qty
        if product.quantity < requested[pk]:
            raise ValueError(f'Stock insuficiente para {product.name}. '
                             f'Disponible: {product.quantity}, Solicitado: {requested[pk]}')
        lines.append({'product': product, 'quantity': qty, 'unit_price': price, 'discount': discount})

    totals = compute_totals(lines, discount_total)
    sale = _create_numbered_sale(
        payment_method=payment_method, customer_name=customer_name, notes=notes,
        items_count=sum(l['quantity'] for l in lines), cashier=current_user, status='COMPLETED', **totals,
    )
    for line in lines:
        product = line['product']
        POSTransactionItem.objects.create(
            transaction=sale, item=product, product_name=product.name, quantity=line['quantity'],
            unit_price=line['unit_price'], discount=line['discount'], subtotal=line['subtotal'],
        )
        inventory.record_movement(current_user, product.id, 'sale', line['quantity'],
                                  reference_type='pos_sale', reference_id=sale.transaction_number,
                                  notes=f'Venta {sale.transaction_number}')
    log_action(user=current_user, action='pos_sale', object_type='pos_transaction', object_id=sale.id,
               detail={'total': str(sale.total_amount), 'items': sale.items_count})
    cache.delete(STATS_CACHE_KEY)
    return sale


@transaction.atomic
def cancel_sale(current_user, sale_id: int, reason: str = '') -> POSTransaction:
    sale = POSTransaction.objects.select_for_update().get(pk=sale_id)
    if sale.status != 'COMPLETED':
        raise ValueError('Solo se pueden cancelar ventas completadas')
    for line in sale.items.all():
        inventory.record_movement(current_user, line.item_id, 'return', line.quantity,
                                  reference_type='pos_cancellation', reference_id=sale.transaction_number,
                                  notes=f'Cancelación {sale.transaction_number}')
    sale.status = 'CANCELLED'
    sale.cancelled_at = timezone.now()
    sale.cancel_reason = reason
    sale.save(update_fields=['status', 'cancelled_at', 'cancel_reason'])
    log_action(user=current_user, action='pos_cancel', object_type='pos_transaction', object_id=sale.id,
               detail={'reason': reason})
    cache.delete(STATS_CACHE_KEY)
    return sale


def pos_products(search: Optional[str] = None, limit: int = 100) -> list[dict]:
    qs = InventoryItem.objects.filter(is_active=True, quantity__gt=0)
    if search:
        qs = qs.filter(Q(name__icontains=search) | Q(sku__icontains=search))
    return [inventory.serialize_item(i) for i in qs.order_by('name')[:limit]]


def list_sales(*, status: Optional[str] = None, day=None, limit: int = 100) -> list[dict]:
    qs = POSTransaction.objects.select_related('cashier')
    if status:
        qs = qs.filter(status=status)
    if day:
        qs = qs.filter(created_at__date=day)
    return [serialize_sale(t, with_items=False) for t in qs.order_by('-created_at', '-id')[:limit]]


def pos_stats(use_cache: bool = True) -> dict:
    if use_cache:
        cached = cache.get(STATS_CACHE_KEY)
        if cached is not None:
            return cached
    today = POSTransaction.objects.filter(status='COMPLETED', created_at__date=timezone.localdate())
    agg = today.aggregate(total=Sum('total_amount'), count=Count('id'), avg=Avg('total_amount'))
    top = (POSTransactionItem.objects.filter(transaction__in=today)
           .values('item_id', 'product_name')
           .annotate(quantity=Sum('quantity'), revenue=Sum('subtotal'))
           .order_by('-quantity', 'product_name')[:5])
    payload = {
        'totalSalesToday': str(money(agg['total'] or 0)),
        'transactionCountToday': agg['count'] or 0,
        'averageTicket': str(money(agg['avg'] or 0)),
        'topProducts': [{'inventoryId': t['item_id'], 'productName': t['product_name'],
                         'quantity': t['quantity'], 'revenue': str(money(t['revenue'] or 0))} for t in top],
    }
    cache.set(STATS_CACHE_KEY, payload, settings.STATS_CACHE_SECONDS)
    return payload
