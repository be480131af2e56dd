"""
Pharmacy views: inventory, stock movements, prescriptions and the point
of sale.
"""
from __future__ import annotations

from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import InventoryItem, POSTransaction, Prescription
from ..permissions import RouteRolePermission
from ..serializers.pharmacy import (
    CancelSerializer,
    DispenseSerializer,
    InventoryItemSerializer,
    InventoryListQuerySerializer,
    MovementListQuerySerializer,
    MovementSerializer,
    PrescriptionCreateSerializer,
    PrescriptionListQuerySerializer,
    SaleSerializer,
    StockEntrySerializer,
)
from ..services import inventory, pos, prescriptions


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------

@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def products(request):
    if request.method == 'POST':
        s = InventoryItemSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        item = inventory.create_item(request.user, **s.validated_data)
        return Response({'ok': True, 'data': inventory.serialize_item(item)}, status=201)

    q = InventoryListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    data = inventory.list_items(category=vd.get('category'), search=(vd.get('search') or '').strip() or None,
                                low_stock=vd['lowStock'], include_inactive=vd['includeInactive'])
    return Response({'ok': True, 'data': data, 'total': len(data)})


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def product_detail(request, pk: int):
    item = get_object_or_404(InventoryItem, pk=pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': inventory.item_detail(item)})
    if request.method == 'DELETE':
        inventory.deactivate_item(request.user, item)
        return Response({'ok': True})
    s = InventoryItemSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    item = inventory.update_item(request.user, item, **s.validated_data)
    return Response({'ok': True, 'data': inventory.serialize_item(item)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def product_search(request):
    return Response({'ok': True, 'data': inventory.search_items(request.query_params.get('q', ''))})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def product_categories(request):
    return Response({'ok': True, 'data': inventory.categories()})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def low_stock(request):
    return Response({'ok': True, 'data': [inventory.serialize_item(i) for i in inventory.low_stock_items()]})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def expiring(request):
    try:
        days = int(request.query_params.get('days')) if request.query_params.get('days') else None
    except ValueError:
        return Response({'ok': False, 'detail': 'days debe ser un número entero'}, status=400)
    return Response({'ok': True, 'data': [inventory.serialize_item(i) for i in inventory.expiring_items(days)]})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def movements(request):
    if request.method == 'POST':
        s = MovementSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        get_object_or_404(InventoryItem, pk=vd['item_id'])
        movement = inventory.record_movement(request.user, vd['item_id'], vd['transaction_type'], vd['quantity'],
                                             reference_type=vd['reference_type'], reference_id=vd['reference_id'],
                                             notes=vd['notes'])
        return Response({'ok': True, 'data': inventory.serialize_movement(movement)}, status=201)

    q = MovementListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    data = inventory.list_movements(item_id=vd.get('productId'), date_from=vd.get('dateFrom'),
                                    date_to=vd.get('dateTo'), movement_type=vd.get('type'))
    return Response({'ok': True, 'data': data})


@api_view(['POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def stock_entry(request):
    s = StockEntrySerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    get_object_or_404(InventoryItem, pk=vd['item_id'])
    movement = inventory.stock_entry(request.user, vd['item_id'], vd['quantity'], notes=vd['notes'],
                                     batch_number=vd.get('batch_number'), expiration_date=vd.get('expiration_date'),
                                     document=vd.get('document'))
    return Response({'ok': True, 'data': inventory.serialize_movement(movement)}, status=201)


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def pharmacy_stats(request):
    return Response({'ok': True, 'data': inventory.pharmacy_stats()})


# ---------------------------------------------------------------------------
# Prescriptions
# ---------------------------------------------------------------------------

@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def prescription_list(request):
    if request.method == 'POST':
        s = PrescriptionCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        record, created = prescriptions.create_prescriptions(
            request.user, patient=vd['patient'], items=vd['items'], doctor=vd.get('doctor'),
            appointment_id=vd.get('appointment_id'), medical_record_id=vd.get('medical_record_id'),
        )
        return Response({
            'ok': True,
            'message': f'{len(created)} receta(s) creada(s)',
            'prescription_ids': [p.id for p in created],
            'medical_record_id': record.id,
        }, status=201)

    q = PrescriptionListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    data = prescriptions.list_prescriptions(status=vd.get('status'), patient_id=vd.get('patientId'),
                                            doctor_id=vd.get('doctorId'))
    return Response({'ok': True, 'data': data})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def prescription_detail(request, pk: int):
    rx = get_object_or_404(Prescription.objects.select_related('patient', 'doctor'), pk=pk)
    return Response({'ok': True, 'data': prescriptions.serialize_prescription(rx)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def prescription_dispense(request, pk: int):
    get_object_or_404(Prescription, pk=pk)
    s = DispenseSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    try:
        rx = prescriptions.dispense(request.user, pk, s.validated_data.get('quantity'))
    except ValueError as e:
        return Response({'ok': False, 'detail': str(e)}, status=400)
    return Response({'ok': True, 'data': prescriptions.serialize_prescription(rx)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def prescription_cancel(request, pk: int):
    get_object_or_404(Prescription, pk=pk)
    s = CancelSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    rx = prescriptions.cancel(request.user, pk, s.validated_data['reason'])
    return Response({'ok': True, 'data': prescriptions.serialize_prescription(rx)})


# ---------------------------------------------------------------------------
# Point of sale
# ---------------------------------------------------------------------------

@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def pos_products(request):
    return Response({'ok': True, 'data': pos.pos_products((request.query_params.get('search') or '').strip()
                                                          or None)})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def pos_sales(request):
    if request.method == 'POST':
        s = SaleSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        try:
            sale = pos.create_sale(request.user, **s.validated_data)
        except InventoryItem.DoesNotExist:
            return Response({'ok': False, 'detail': 'Producto no encontrado'}, status=404)
        except ValueError as e:
            return Response({'ok': False, 'detail': str(e)}, status=400)
        return Response({'ok': True, 'data': pos.serialize_sale(sale)}, status=201)
    return Response({'ok': True, 'data': pos.list_sales(status=request.query_params.get('status') or None)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def pos_sale_detail(request, pk: int):
    sale = get_object_or_404(POSTransaction.objects.select_related('cashier'), pk=pk)
    return Response({'ok': True, 'data': pos.serialize_sale(sale)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def pos_sale_cancel(request, pk: int):
    get_object_or_404(POSTransaction, pk=pk)
    s = CancelSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    sale = pos.cancel_sale(request.user, pk, s.validated_data['reason'])
    return Response({'ok': True, 'data': pos.serialize_sale(sale)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def pos_stats(request):
    return Response({'ok': True, 'data': pos.pos_stats()})
