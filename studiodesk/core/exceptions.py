"""DRF exception handler giving every error response the same envelope"""
import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler, set_rollback

logger = logging.getLogger(__name__)


def _first_message(data):
    if isinstance(data, dict):
        if 'detail' in data:
            return str(data['detail'])
        for value in data.values():
            return _first_message(value)
        return ''
    if isinstance(data, (list, tuple)):
        return _first_message(data[0]) if data else ''
    return str(data)


def api_exception_handler(exc, context):
    """
    Wrap handled API errors as {"success": false, "message": ..., "errors": ...}.
    Anything DRF does not know about is logged and reported as a generic 500.
    """
    response = exception_handler(exc, context)

    if response is None:
        view = context.get('view')
        logger.error(
            f"Unhandled error in {view.__class__.__name__ if view else 'unknown view'}: {exc}",
            exc_info=exc,
        )
        set_rollback()
        return Response(
            {'success': False, 'message': 'An unexpected error occurred. Please try again.'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    errors = response.data
    response.data = {
        'success': False,
        'message': _first_message(errors),
        'errors': errors,
    }
    return response
