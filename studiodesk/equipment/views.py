import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Prefetch
from django.shortcuts import get_object_or_404

from studiodesk.core.models import Department
from studiodesk.core.permissions import (
    EquipmentManagerOrReadOnly, IsCheckoutApprover, MaintenanceRoleOrReadOnly, can_approve_checkouts
)
from studiodesk.core.utils import create_activity_log, paginated_response
from .filters import EquipmentFilter, CheckoutFilter
from .models import Equipment, EquipmentCheckout, CheckoutItem
from .serializers import (
    EquipmentSerializer, EquipmentCheckoutSerializer, MaintenanceRecordSerializer,
    CheckoutRequestSerializer, CheckoutApprovalSerializer, CheckoutReturnSerializer,
    CheckoutCancelSerializer, ExtensionRequestSerializer, ExtensionDecisionSerializer,
    CheckoutExtensionSerializer,
)
from .services import CheckoutService, MaintenanceService

logger = logging.getLogger(__name__)


def checkout_queryset():
    return EquipmentCheckout.objects.select_related(
        'requester', 'department', 'approved_by', 'checked_out_by', 'returned_by'
    ).prefetch_related(
        Prefetch('items', queryset=CheckoutItem.objects.select_related('equipment').order_by('id')),
        'extensions__requested_by',
        'extensions__decided_by',
    )


def _checkout_response(checkout, status_code=status.HTTP_200_OK):
    checkout = checkout_queryset().get(pk=checkout.pk)
    return Response(EquipmentCheckoutSerializer(checkout).data, status=status_code)


# Equipment catalog views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, EquipmentManagerOrReadOnly])
def equipment_list_create(request):
    """List equipment with filters or create a new item"""
    if request.method == 'GET':
        queryset = Equipment.objects.select_related(
            'department', 'assigned_to', 'created_by'
        ).with_effective_maintenance()
        if request.query_params.get('include_inactive') != 'true':
            queryset = queryset.filter(is_active=True)

        filterset = EquipmentFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        queryset = filterset.qs.order_by('name', 'id')
        return paginated_response(request, queryset, EquipmentSerializer)
    else:
        serializer = EquipmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        equipment = serializer.save(created_by=request.user)
        MaintenanceService().refresh_status(equipment)
        create_activity_log(
            request=request,
            action='equipment_create',
            resource='equipment',
            resource_id=equipment.id,
            description=equipment.name,
            changes={'available_quantity': equipment.available_quantity, 'category': equipment.category},
        )
        logger.info(f"Equipment {equipment.id} created by user {request.user.id}")
        return Response(EquipmentSerializer(equipment).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, EquipmentManagerOrReadOnly])
def equipment_detail(request, pk):
    """Retrieve, update or soft delete an equipment item"""
    equipment = get_object_or_404(
        Equipment.objects.select_related('department', 'assigned_to', 'created_by'), pk=pk
    )

    if request.method == 'GET':
        return Response(EquipmentSerializer(equipment).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = EquipmentSerializer(equipment, data=request.data, partial=request.method == 'PATCH')
        serializer.is_valid(raise_exception=True)
        equipment = serializer.save()
        if 'next_maintenance_date' in serializer.validated_data:
            MaintenanceService().refresh_status(equipment)
        create_activity_log(
            request=request,
            action='equipment_update',
            resource='equipment',
            resource_id=equipment.id,
            description=equipment.name,
            changes={key: str(value) for key, value in serializer.validated_data.items()},
        )
        return Response(EquipmentSerializer(equipment).data)
    else:  # DELETE
        if equipment.current_quantity_out > 0:
            return Response(
                {'success': False,
                 'message': f"Cannot delete equipment with {equipment.current_quantity_out} units checked out"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        equipment.is_active = False
        equipment.save(update_fields=['is_active', 'updated_at'])
        create_activity_log(
            request=request,
            action='equipment_delete',
            resource='equipment',
            resource_id=equipment.id,
            description=equipment.name,
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def equipment_history(request, pk):
    """Checkouts and maintenance records for an item, newest first"""
    equipment = get_object_or_404(Equipment, pk=pk)
    checkouts = checkout_queryset().filter(items__equipment=equipment).distinct().order_by('-created_at', '-id')
    if not can_approve_checkouts(request.user):
        checkouts = checkouts.filter(requester=request.user)
    records = equipment.maintenance_records.select_related('performed_by', 'equipment').order_by('-performed_date', '-id')

    return Response({
        'equipment': EquipmentSerializer(equipment).data,
        'checkouts': EquipmentCheckoutSerializer(checkouts[:100], many=True).data,
        'maintenance': MaintenanceRecordSerializer(records, many=True).data,
    })


# Maintenance views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, MaintenanceRoleOrReadOnly])
def equipment_maintenance(request, pk):
    """List maintenance records for an item or append a new one"""
    equipment = get_object_or_404(Equipment, pk=pk)

    if request.method == 'GET':
        records = equipment.maintenance_records.select_related('performed_by', 'equipment').order_by('-performed_date', '-id')
        return Response(MaintenanceRecordSerializer(records, many=True).data)

    serializer = MaintenanceRecordSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    record = MaintenanceService().record_maintenance(equipment.id, request.user, **serializer.validated_data)
    create_activity_log(
        request=request,
        action='maintenance_create',
        resource='maintenance',
        resource_id=record.id,
        description=f"{equipment.name} - {record.maintenance_type}",
        changes={'status': record.status, 'cost': str(record.cost)},
    )
    equipment.refresh_from_db()
    return Response({
        'record': MaintenanceRecordSerializer(record).data,
        'equipment': EquipmentSerializer(equipment).data,
    }, status=status.HTTP_201_CREATED)


# Checkout views
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def checkout_request(request):
    """Request a checkout of one or more equipment items"""
    serializer = CheckoutRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    department = None
    if data.get('department'):
        department = get_object_or_404(Department, pk=data['department'])

    checkout = CheckoutService().request_checkout(
        requester=request.user,
        items=data['items'],
        purpose=data['purpose'],
        expected_return_date=data['expected_return_date'],
        department=department,
        project=data.get('project', ''),
        location=data.get('location', ''),
        request_notes=data.get('notes', ''),
    )
    create_activity_log(
        request=request,
        action='equipment_checkout_request',
        resource='equipment_checkout',
        resource_id=checkout.id,
        description=checkout.checkout_number,
        changes={'items': [{'equipment': line['equipment'], 'quantity': line['quantity']} for line in data['items']]},
    )
    return _checkout_response(checkout, status.HTTP_201_CREATED)


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsCheckoutApprover])
def checkout_approve(request, pk):
    """Approve (reserving units) or reject a pending checkout"""
    serializer = CheckoutApprovalSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    checkout = CheckoutService().approve_checkout(
        pk,
        approver=request.user,
        approved=data['approved'],
        notes=data.get('notes', ''),
        handoff=data['handoff'],
    )
    create_activity_log(
        request=request,
        action='equipment_checkout_approve' if data['approved'] else 'equipment_checkout_reject',
        resource='equipment_checkout',
        resource_id=checkout.id,
        description=checkout.checkout_number,
        changes={'status': checkout.status},
    )
    return _checkout_response(checkout)


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsCheckoutApprover])
def checkout_handoff(request, pk):
    """Hand approved equipment over to the requester"""
    checkout = CheckoutService().hand_off(pk, request.user)
    create_activity_log(
        request=request,
        action='equipment_handoff',
        resource='equipment_checkout',
        resource_id=checkout.id,
        description=checkout.checkout_number,
    )
    return _checkout_response(checkout)


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def checkout_cancel(request, pk):
    serializer = CheckoutCancelSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    checkout = CheckoutService().cancel_checkout(pk, request.user, notes=serializer.validated_data.get('notes', ''))
    create_activity_log(
        request=request,
        action='equipment_checkout_cancel',
        resource='equipment_checkout',
        resource_id=checkout.id,
        description=checkout.checkout_number,
    )
    return _checkout_response(checkout)


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsCheckoutApprover])
def checkout_return(request, pk):
    """Return every line of an active checkout, recording per-item condition"""
    serializer = CheckoutReturnSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    checkout = CheckoutService().return_equipment(
        pk,
        request.user,
        item_conditions=data.get('items', []),
        notes=data.get('notes', ''),
    )
    create_activity_log(
        request=request,
        action='equipment_return',
        resource='equipment_checkout',
        resource_id=checkout.id,
        description=checkout.checkout_number,
        changes={'items': [
            {'equipment': item['equipment'], 'condition': item['condition']} for item in data.get('items', [])
        ]},
    )
    return _checkout_response(checkout)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def checkout_extension_request(request, pk):
    serializer = ExtensionRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    extension = CheckoutService().request_extension(
        pk,
        request.user,
        new_return_date=serializer.validated_data['new_return_date'],
        reason=serializer.validated_data.get('reason', ''),
    )
    create_activity_log(
        request=request,
        action='equipment_extension_request',
        resource='equipment_checkout',
        resource_id=pk,
        description=extension.checkout.checkout_number,
        changes={'new_return_date': extension.new_return_date.isoformat()},
    )
    return Response(CheckoutExtensionSerializer(extension).data, status=status.HTTP_201_CREATED)


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsCheckoutApprover])
def checkout_extension_decide(request, pk, extension_pk):
    serializer = ExtensionDecisionSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    approved = serializer.validated_data['approved']

    extension = CheckoutService().decide_extension(
        pk,
        extension_pk,
        request.user,
        approved=approved,
        notes=serializer.validated_data.get('notes', ''),
    )
    create_activity_log(
        request=request,
        action='equipment_extension_approve' if approved else 'equipment_extension_reject',
        resource='equipment_checkout',
        resource_id=pk,
        description=extension.checkout.checkout_number,
    )
    return Response(CheckoutExtensionSerializer(extension).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def checkout_history(request):
    """Paginated checkout history; non-approvers only see their own requests"""
    queryset = checkout_queryset()
    if not can_approve_checkouts(request.user):
        queryset = queryset.filter(requester=request.user)

    filterset = CheckoutFilter(request.query_params, queryset=queryset)
    if not filterset.is_valid():
        return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
    queryset = filterset.qs.order_by('-created_at', '-id')
    return paginated_response(request, queryset, EquipmentCheckoutSerializer)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsCheckoutApprover])
def checkout_pending(request):
    """Checkouts waiting for approval, oldest first"""
    queryset = checkout_queryset().filter(status='pending_approval').order_by('created_at', 'id')
    return Response(EquipmentCheckoutSerializer(queryset, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def checkout_overdue(request):
    """Checkouts past their expected return date"""
    queryset = checkout_queryset().overdue()
    if not can_approve_checkouts(request.user):
        queryset = queryset.filter(requester=request.user)
    queryset = queryset.order_by('expected_return_date', 'id')
    return Response(EquipmentCheckoutSerializer(queryset, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def checkout_detail(request, pk):
    checkout = get_object_or_404(checkout_queryset(), pk=pk)
    if checkout.requester_id != request.user.id and not can_approve_checkouts(request.user):
        return Response({'success': False, 'message': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    return Response(EquipmentCheckoutSerializer(checkout).data)
