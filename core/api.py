"""
CORE App - HTTP glue shared by the fleet and logistics APIs

Maps engine errors to DRF responses and holds the role permissions.
"""

import logging

from rest_framework import permissions, status
from rest_framework.response import Response

from core.exceptions import (
    ConflictError, FleetError, NotAssigned, NotFoundError, ValidationError,
)

logger = logging.getLogger(__name__)


ERROR_STATUS = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (NotAssigned, status.HTTP_403_FORBIDDEN),
)


def status_for(exc: FleetError) -> int:
    for error_class, http_status in ERROR_STATUS:
        if isinstance(exc, error_class):
            return http_status
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(exc: FleetError) -> Response:
    """{'error': message, 'code': code} with the matching status."""
    http_status = status_for(exc)
    if http_status >= 500:
        logger.error(f"[API] Unhandled engine error: {exc!r}")
    return Response(
        {'error': exc.message, 'code': exc.code},
        status=http_status
    )


class IsCourier(permissions.BasePermission):
    message = 'Reserved for couriers.'

    def has_permission(self, request, view):
        return bool(
            request.user and request.user.is_authenticated and request.user.is_courier
        )


class IsFleetAdmin(permissions.BasePermission):
    message = 'Reserved for fleet admins.'

    def has_permission(self, request, view):
        return bool(
            request.user and request.user.is_authenticated and request.user.is_fleet_admin
        )
