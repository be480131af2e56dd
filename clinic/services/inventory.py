"""
Pharmacy stock: items, movements and the threshold checks.

Every change of ``InventoryItem.quantity`` goes through
:func:`record_movement`, which locks the item row and stores the before and
after quantities so the movement log can be replayed.
"""
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.core.cache import cache
from django.db import transaction
from django.db.models import DecimalField, ExpressionWrapper, F, Q, Sum
from django.utils import timezone

from clinic.models import InventoryDocument, InventoryItem, InventoryTransaction, Prescription
from clinic.services.audit import log_action

logger = logging.getLogger(__name__)

STATS_CACHE_KEY = 'pharmacy:stats'

ADDING = {'in', 'return'}
SUBTRACTING = {'out', 'disposal', 'prescription_dispense', 'sale'}
MOVEMENT_TYPES = {c[0] for c in InventoryTransaction.TYPE_CHOICES}

ITEM_FIELDS = (
    'sku', 'name', 'description', 'category', 'subcategory', 'unit', 'quantity', 'min_stock', 'max_stock',
    'unit_cost', 'unit_price', 'supplier', 'manufacturer', 'expiration_date', 'batch_number',
    'storage_location', 'requires_prescription', 'is_active',
)


def serialize_item(i: InventoryItem) -> dict:
    return {
        'id': i.id,
        'sku': i.sku,
        'name': i.name,
        'description': i.description,
        'category': i.category,
        'subcategory': i.subcategory,
        'unit': i.unit,
        'quantity': i.quantity,
        'minStock': i.min_stock,
        'maxStock': i.max_stock,
        'unitCost': str(i.unit_cost),
        'unitPrice': str(i.unit_price),
        'supplier': i.supplier,
        'manufacturer': i.manufacturer,
        'expirationDate': i.expiration_date.isoformat() if i.expiration_date else None,
        'batchNumber': i.batch_number,
        'storageLocation': i.storage_location,
        'requiresPrescription': i.requires_prescription,
        'isActive': i.is_active,
        'isLowStock': i.is_low_stock,
    }


def serialize_movement(m: InventoryTransaction) -> dict:
    return {
        'id': m.id,
        'itemId': m.item_id,
        'itemName': m.item.name,
        'type': m.transaction_type,
        'quantity': m.quantity,
        'previousQuantity': m.previous_quantity,
        'newQuantity': m.new_quantity,
        'referenceType': m.reference_type,
        'referenceId': m.reference_id,
        'notes': m.notes,
        'performedBy': m.performed_by.username if m.performed_by_id else None,
        'documents': [{'id': d.id, 'fileName': d.file_name, 'fileUrl': d.file_url, 'documentType': d.document_type}
                      for d in m.documents.all()],
        'createdAt': m.created_at.isoformat(),
    }


def compute_new_quantity(current: int, movement_type: str, quantity: int) -> int:
    if movement_type in ADDING:
        return current + quantity
    if movement_type in SUBTRACTING:
        return max(0, current - quantity)
    if movement_type == 'adjustment':
        return quantity
    # transfers move stock between locations, the total is unchanged
    return current


def _check_quantity(movement_type: str, quantity: int) -> None:
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f'Tipo de movimiento no válido: {movement_type}')
    if quantity < 0:
        raise ValueError('La cantidad no puede ser negativa')
    if quantity == 0 and movement_type != 'adjustment':
        raise ValueError('La cantidad debe ser mayor que cero')


@transaction.atomic
def record_movement(current_user, item_id: int, movement_type: str, quantity: int, *,
                    reference_type: str = '', reference_id='', notes: str = '') -> InventoryTransaction:
    """Apply a stock movement to an item and log it."""
    _check_quantity(movement_type, quantity)
    item = InventoryItem.objects.select_for_update().get(pk=item_id)
    previous = item.quantity
    item.quantity = compute_new_quantity(previous, movement_type, quantity)
    item.save(update_fields=['quantity', 'updated_at'])
    movement = InventoryTransaction.objects.create(
        item=item, transaction_type=movement_type, quantity=quantity,
        previous_quantity=previous, new_quantity=item.quantity,
        reference_type=reference_type, reference_id=str(reference_id or ''), notes=notes,
        performed_by=current_user if getattr(current_user, 'pk', None) else None,
    )
    logger.info('stock %s %s x%s: %s -> %s', item.sku, movement_type, quantity, previous, item.quantity)
    cache.delete(STATS_CACHE_KEY)
    return movement


@transaction.atomic
def stock_entry(current_user, item_id: int, quantity: int, *, notes: str = '', batch_number: Optional[str] = None,
                expiration_date: Optional[date] = None, document: Optional[dict] = None) -> InventoryTransaction:
    """Receive goods: an ``in`` movement plus an optional entry voucher."""
    movement = record_movement(current_user, item_id, 'in', quantity, reference_type='stock_entry',
                               notes=notes or 'Entrada de inventario')
    item = movement.item
    changed = []
    if batch_number:
        item.batch_number = batch_number
        changed.append('batch_number')
    if expiration_date:
        item.expiration_date = expiration_date
        changed.append('expiration_date')
    if changed:
        item.save(update_fields=changed + ['updated_at'])
    if document and document.get('file_url'):
        InventoryDocument.objects.create(
            movement=movement,
            file_name=document.get('file_name') or document['file_url'].rsplit('/', 1)[-1],
            file_url=document['file_url'],
            document_type=document.get('document_type') or 'entry_voucher',
            uploaded_by=current_user,
        )
    log_action(user=current_user, action='stock_entry', object_type='inventory_item', object_id=item.id,
               detail={'quantity': quantity, 'movementId': movement.id})
    return movement


def list_items(*, category: Optional[str] = None, search: Optional[str] = None, low_stock: bool = False,
               include_inactive: bool = False) -> list[dict]:
    qs = InventoryItem.objects.all()
    if not include_inactive:
        qs = qs.filter(is_active=True)
    if category:
        qs = qs.filter(category=category)
    if search:
        qs = qs.filter(Q(name__icontains=search) | Q(sku__icontains=search) | Q(description__icontains=search))
    if low_stock:
        qs = qs.filter(quantity__lte=F('min_stock'))
    return [serialize_item(i) for i in qs.order_by('name')]


def create_item(current_user, **fields) -> InventoryItem:
    if InventoryItem.objects.filter(sku=fields['sku']).exists():
        raise ValueError('Ya existe un producto con ese SKU')
    initial = fields.pop('quantity', 0) or 0
    item = InventoryItem.objects.create(**{k: v for k, v in fields.items() if k in ITEM_FIELDS})
    if initial:
        record_movement(current_user, item.id, 'in', initial, reference_type='initial_stock',
                        notes='Stock inicial')
        item.refresh_from_db()
    log_action(user=current_user, action='item_create', object_type='inventory_item', object_id=item.id,
               detail={'sku': item.sku})
    cache.delete(STATS_CACHE_KEY)
    return item


def update_item(current_user, item: InventoryItem, **fields) -> InventoryItem:
    # quantity only moves through movements
    fields.pop('quantity', None)
    sku = fields.get('sku')
    if sku and sku != item.sku and InventoryItem.objects.filter(sku=sku).exists():
        raise ValueError('Ya existe un producto con ese SKU')
    for k, v in fields.items():
        if k in ITEM_FIELDS:
            setattr(item, k, v)
    item.save()
    log_action(user=current_user, action='item_update', object_type='inventory_item', object_id=item.id,
               detail={'fields': sorted(fields)})
    cache.delete(STATS_CACHE_KEY)
    return item


def deactivate_item(current_user, item: InventoryItem) -> None:
    item.is_active = False
    item.save(update_fields=['is_active', 'updated_at'])
    log_action(user=current_user, action='item_delete', object_type='inventory_item', object_id=item.id)
    cache.delete(STATS_CACHE_KEY)


def item_detail(item: InventoryItem, movements: int = 20) -> dict:
    data = serialize_item(item)
    qs = item.movements.select_related('item', 'performed_by').prefetch_related('documents')
    data['movements'] = [serialize_movement(m) for m in qs.order_by('-created_at', '-id')[:movements]]
    return data


def search_items(q: str, limit: int = 10) -> list[dict]:
    q = (q or '').strip()
    if not q:
        return []
    qs = InventoryItem.objects.filter(is_active=True).filter(
        Q(name__icontains=q) | Q(sku__icontains=q) | Q(description__icontains=q)
    )
    return [serialize_item(i) for i in qs.order_by('name')[:limit]]


def categories() -> list[str]:
    values = InventoryItem.objects.filter(is_active=True).values_list('category', flat=True).distinct()
    return sorted(set(values))


def low_stock_items():
    return InventoryItem.objects.filter(is_active=True, quantity__lte=F('min_stock')).order_by('quantity', 'name')


def expiring_items(days: Optional[int] = None):
    days = settings.EXPIRY_WARNING_DAYS if days is None else days
    today = timezone.localdate()
    return (InventoryItem.objects
            .filter(is_active=True, expiration_date__isnull=False,
                    expiration_date__gte=today, expiration_date__lte=today + timedelta(days=days))
            .order_by('expiration_date'))


def list_movements(*, item_id: Optional[int] = None, date_from: Optional[date] = None,
                   date_to: Optional[date] = None, movement_type: Optional[str] = None,
                   limit: int = 100) -> list[dict]:
    qs = InventoryTransaction.objects.select_related('item', 'performed_by').prefetch_related('documents')
    if item_id:
        qs = qs.filter(item_id=item_id)
    if date_from:
        qs = qs.filter(created_at__date__gte=date_from)
    if date_to:
        qs = qs.filter(created_at__date__lte=date_to)
    if movement_type:
        qs = qs.filter(transaction_type=movement_type)
    return [serialize_movement(m) for m in qs.order_by('-created_at', '-id')[:limit]]


def pharmacy_stats(use_cache: bool = True) -> dict:
    if use_cache:
        cached = cache.get(STATS_CACHE_KEY)
        if cached is not None:
            return cached
    active = InventoryItem.objects.filter(is_active=True)
    value = active.aggregate(v=Sum(ExpressionWrapper(F('quantity') * F('unit_cost'),
                                                     output_field=DecimalField(max_digits=18, decimal_places=2))))['v']
    payload = {
        'totalProducts': active.count(),
        'lowStockProducts': low_stock_items().count(),
        'pendingPrescriptions': Prescription.objects.filter(status__in=['pending', 'partially_dispensed']).count(),
        'dispensedToday': Prescription.objects.filter(dispensed_date__date=timezone.localdate()).count(),
        'totalInventoryValue': str((value or Decimal('0')).quantize(Decimal('0.01'))),
        'expiringProducts': expiring_items().count(),
    }
    cache.set(STATS_CACHE_KEY, payload, settings.STATS_CACHE_SECONDS)
    return payload
