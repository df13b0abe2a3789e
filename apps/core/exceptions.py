import logging
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .errors import ServiceError, InputValidationError, ConflictError, PermissionDeniedError, RemoteError

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = [
    (InputValidationError, status.HTTP_400_BAD_REQUEST),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (ConflictError, status.HTTP_409_CONFLICT),
    (RemoteError, status.HTTP_502_BAD_GATEWAY),
]


def service_exception_handler(exc, context):
    """Map typed service errors onto API responses, defer everything else to DRF"""

    if not isinstance(exc, ServiceError):
        return exception_handler(exc, context)

    response_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_class, error_status in STATUS_BY_ERROR:
        if isinstance(exc, error_class):
            response_status = error_status
            break

    if exc.code == "NOT_FOUND":
        response_status = status.HTTP_404_NOT_FOUND

    body = exc.to_dict()
    if exc.details and isinstance(exc.details, dict):
        body["detail"] = exc.details

    if response_status >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    else:
        logger.info(f"{exc.code}: {exc.message}")

    return Response(body, status=response_status)
