"""DRF exception handler rendering dispatch errors with stable codes."""

import logging

from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

from services.offer_management.exceptions import DispatchError

logger = logging.getLogger(__name__)


def dispatch_exception_handler(exc, context):
    """
    Turn DispatchError subclasses into ``{"success": false, "error": {...}}``.

    Serializer validation errors get the same envelope with the VALIDATION_ERROR
    code; everything else falls through to DRF's default handling.
    """
    if isinstance(exc, DispatchError):
        return Response(
            {"success": False, "error": exc.as_dict()},
            status=exc.status_code,
        )

    if isinstance(exc, ValidationError):
        return Response(
            {
                "success": False,
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Invalid request data",
                    "fields": exc.detail,
                },
            },
            status=status.HTTP_400_BAD_REQUEST,
        )

    response = exception_handler(exc, context)
    if response is None:
        logger.exception("Unhandled error in %s", context.get("view"))
    return response
