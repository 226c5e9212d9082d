from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from studiodesk.core.permissions import IsSuperAdmin
from studiodesk.core.utils import create_activity_log, positive_int, MAX_PAGE_SIZE
from .serializers import NotificationSerializer, SystemNotificationSerializer
from .services import get_notification_service


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def notification_list(request):
    """List the caller's notifications, newest first"""
    service = get_notification_service()
    page = positive_int(request.query_params.get('page'), 1)
    limit = min(positive_int(request.query_params.get('limit'), 20), MAX_PAGE_SIZE)
    unread_only = request.query_params.get('unread_only') == 'true'

    page_obj = service.list_for_user(request.user, page=page, limit=limit, unread_only=unread_only)
    serializer = NotificationSerializer(page_obj.object_list, many=True)
    return Response({
        'results': serializer.data,
        'count': page_obj.paginator.count,
        'next': page_obj.next_page_number() if page_obj.has_next() else None,
        'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
        'page': page_obj.number,
        'page_size': limit,
        'total_pages': page_obj.paginator.num_pages,
        'unread_count': service.unread_count(request.user),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def notification_unread_count(request):
    service = get_notification_service()
    return Response({'count': service.unread_count(request.user)})


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def notification_mark_read(request, pk):
    notification = get_notification_service().mark_read(pk, request.user)
    return Response(NotificationSerializer(notification).data)


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def notification_mark_unread(request, pk):
    notification = get_notification_service().mark_unread(pk, request.user)
    return Response(NotificationSerializer(notification).data)


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def notification_mark_all_read(request):
    updated = get_notification_service().mark_all_read(request.user)
    return Response({'success': True, 'updated': updated})


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
def notification_delete(request, pk):
    get_notification_service().delete(pk, request.user)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsSuperAdmin])
def notification_send_system(request):
    """Send a system notification to users, roles, or all super admins"""
    serializer = SystemNotificationSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    sent = get_notification_service().send_system_notification(
        title=data['title'],
        message=data['message'],
        recipients=data.get('recipients'),
        roles=data.get('roles'),
        priority=data['priority'],
        metadata=data.get('metadata'),
    )
    create_activity_log(
        request=request,
        action='notification_system',
        resource='notification',
        description=data['title'],
        changes={'recipients': sent},
    )
    return Response({'success': True, 'sent': sent}, status=status.HTTP_201_CREATED)
