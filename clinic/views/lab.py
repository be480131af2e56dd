"""
Laboratory views.

Orders move through pending → samples_collected → processing and are
closed with the ``complete`` action once every result is entered.
"""
from __future__ import annotations

from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import LabOrder, LabOrderDetail, LabResult, LabTestCatalog, Patient
from ..permissions import RouteRolePermission
from ..serializers.lab import (
    LabCategorySerializer,
    LabOrderActionSerializer,
    LabOrderCreateSerializer,
    LabOrderListQuerySerializer,
    LabParameterSerializer,
    LabResultSerializer,
    LabTestSerializer,
    SampleSerializer,
)
from ..services import lab as svc
from ..services.lab_report import render_order_pdf


def _order(pk: int) -> LabOrder:
    return get_object_or_404(LabOrder.objects.select_related('patient', 'doctor'), pk=pk)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def catalog(request):
    if request.method == 'POST':
        s = LabTestSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        test = svc.create_test(request.user, **s.validated_data)
        return Response({'ok': True, 'data': svc.serialize_test(test, with_parameters=True)}, status=201)
    category = request.query_params.get('categoryId')
    data = svc.list_catalog(category_id=int(category) if category and category.isdigit() else None,
                            include_inactive=request.query_params.get('all') == '1')
    return Response({'ok': True, 'data': data})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def catalog_parameters(request, pk: int):
    test = get_object_or_404(LabTestCatalog, pk=pk)
    if request.method == 'POST':
        s = LabParameterSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        param = svc.add_parameter(request.user, test, **s.validated_data)
        return Response({'ok': True, 'data': svc.serialize_parameter(param)}, status=201)
    return Response({'ok': True, 'data': [svc.serialize_parameter(p) for p in test.parameters.all()]})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def categories(request):
    if request.method == 'POST':
        s = LabCategorySerializer(data=request.data)
        s.is_valid(raise_exception=True)
        category = svc.create_category(request.user, **s.validated_data)
        return Response({'ok': True, 'data': {'id': category.id, 'name': category.name, 'code': category.code}},
                        status=201)
    return Response({'ok': True, 'data': svc.list_categories()})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def orders(request):
    if request.method == 'POST':
        s = LabOrderCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        order = svc.create_order(
            request.user, patient=vd['patient'], test_ids=vd['test_ids'], custom_tests=vd['custom_tests'],
            doctor=vd.get('doctor'), appointment=vd.get('appointment'), priority=vd['priority'], notes=vd['notes'],
        )
        return Response({'ok': True, 'data': svc.serialize_order(order, detail=True)}, status=201)

    q = LabOrderListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    data, total = svc.list_orders(status=vd.get('status'), priority=vd.get('priority') or None,
                                  patient_id=vd.get('patientId'), day=vd.get('date'),
                                  page=vd['page'], page_size=vd['pageSize'])
    return Response({'ok': True, 'data': data,
                     'pagination': {'total': total, 'page': vd['page'], 'pageSize': vd['pageSize']}})


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def order_detail(request, pk: int):
    order = _order(pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': svc.serialize_order(order, detail=True)})
    if request.method == 'DELETE':
        svc.delete_order(request.user, order)
        return Response({'ok': True})

    s = LabOrderActionSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    try:
        if vd['action'] == 'complete':
            order = svc.complete_order(request.user, order.id)
        else:
            order = svc.change_status(request.user, order.id, vd['status'], vd['reason'])
    except ValueError as e:
        return Response({'ok': False, 'detail': str(e)}, status=400)
    return Response({'ok': True, 'data': svc.serialize_order(_order(order.id), detail=True)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def detail_sample(request, detail_id: int):
    get_object_or_404(LabOrderDetail, pk=detail_id)
    s = SampleSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    detail = svc.mark_sample_collected(request.user, detail_id, s.validated_data['collected'])
    return Response({'ok': True, 'data': svc.serialize_order(_order(detail.order_id), detail=True)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def results(request):
    s = LabResultSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    get_object_or_404(LabOrderDetail, pk=vd['order_detail_id'])
    result = svc.save_result(request.user, order_detail_id=vd['order_detail_id'],
                             parameter_id=vd.get('parameter_id'), value=vd['value'], notes=vd['notes'])
    return Response({'ok': True, 'data': svc.serialize_result(result)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def result_review(request, pk: int):
    get_object_or_404(LabResult, pk=pk)
    result = svc.review_result(request.user, pk)
    return Response({'ok': True, 'data': svc.serialize_result(result)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def order_verify(request, pk: int):
    order = _order(pk)
    missing = svc.count_missing_results(order)
    return Response({'ok': True, 'data': {'complete': missing == 0, 'missing': missing}})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def order_print(request, pk: int):
    order = _order(pk)
    pdf = render_order_pdf(order)
    resp = HttpResponse(pdf, content_type='application/pdf')
    resp['Content-Disposition'] = f'inline; filename="{order.order_number}.pdf"'
    return resp


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def patient_orders(request, patient_id: int):
    get_object_or_404(Patient, pk=patient_id)
    return Response({'ok': True, 'data': svc.orders_for_patient(patient_id)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def stats(request):
    return Response({'ok': True, 'data': svc.lab_stats()})
