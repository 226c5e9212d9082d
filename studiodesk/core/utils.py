"""Utility functions for activity logging and list pagination"""
import logging

from django.core.paginator import Paginator
from rest_framework.response import Response

from .models import ActivityLog

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def get_client_ip(request):
    """Extract client IP address from request"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


def create_activity_log(request=None, action=None, resource=None, resource_id=None,
                        changes=None, user=None, description=None, success=True):
    """
    Create an activity log entry

    Args:
        request: Django request object (for user, IP and user agent) - optional if user is provided
        action: Action type (equipment_create, equipment_return, ...)
        resource: Resource type (equipment, equipment_checkout, ...)
        resource_id: ID of the object acted upon
        changes: Dictionary of changes made
        user: Optional user override (defaults to request.user if request provided)
        description: Human-readable summary, e.g. a checkout number
        success: Whether the operation succeeded
    """
    try:
        audit_user = None
        if user:
            audit_user = user
        elif request and hasattr(request, 'user'):
            audit_user = request.user

        if not action or not resource:
            logger.warning(f"Activity log skipped: missing required fields (action={action}, resource={resource})")
            return None

        user_agent = ''
        if request is not None and hasattr(request, 'META'):
            user_agent = request.META.get('HTTP_USER_AGENT', '')[:255]

        return ActivityLog.objects.create(
            user=audit_user if audit_user and audit_user.is_authenticated else None,
            action=action,
            resource=resource,
            resource_id=str(resource_id) if resource_id is not None else '',
            description=(description or '')[:255],
            changes=changes or {},
            ip_address=get_client_ip(request) if request else None,
            user_agent=user_agent,
            success=success,
        )
    except Exception as e:
        # Don't fail the main operation if activity logging fails
        logger.error(f"Failed to create activity log: {str(e)}")
        return None


def positive_int(value, default):
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def paginated_response(request, queryset, serializer_class, default_limit=DEFAULT_PAGE_SIZE, context=None):
    """Paginate a queryset with `page`/`limit` query params and serialize the page"""
    page = positive_int(request.query_params.get('page'), 1)
    limit = min(positive_int(request.query_params.get('limit'), default_limit), MAX_PAGE_SIZE)

    paginator = Paginator(queryset, limit)
    page_obj = paginator.get_page(page)

    serializer = serializer_class(page_obj, many=True, context=context or {'request': request})
    return Response({
        'results': serializer.data,
        'count': paginator.count,
        'next': page_obj.next_page_number() if page_obj.has_next() else None,
        'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
        'page': page_obj.number,
        'page_size': limit,
        'total_pages': paginator.num_pages,
    })
