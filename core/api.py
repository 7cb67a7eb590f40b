"""
Shared API helpers for BALADI apps.

- Role permissions (DRF BasePermission)
- result_response(): Ok -> 200/201, Err -> mapped HTTP status
"""

from rest_framework import permissions, status
from rest_framework.response import Response

from .failures import (
    BusinessRuleFailure,
    NetworkFailure,
    NotFoundFailure,
    ServerFailure,
    ValidationFailure,
)
from .models import UserRole

FAILURE_STATUS = {
    ValidationFailure: status.HTTP_400_BAD_REQUEST,
    NotFoundFailure: status.HTTP_404_NOT_FOUND,
    BusinessRuleFailure: status.HTTP_409_CONFLICT,
    NetworkFailure: status.HTTP_503_SERVICE_UNAVAILABLE,
    ServerFailure: status.HTTP_503_SERVICE_UNAVAILABLE,
}


class IsAdminUser(permissions.BasePermission):
    """Permission for admin users only."""

    def has_permission(self, request, view):
        return request.user.is_authenticated and (
            request.user.role == UserRole.ADMIN or request.user.is_superuser
        )


class IsCustomer(permissions.BasePermission):
    """Permission for customer users only."""

    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.role == UserRole.CUSTOMER


def failure_response(failure):
    """Translate a DomainFailure into a DRF Response."""
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    for failure_class, mapped in FAILURE_STATUS.items():
        if isinstance(failure, failure_class):
            http_status = mapped
            break

    body = {'error': failure.message, 'code': failure.code}
    if getattr(failure, 'field_errors', None):
        body['fields'] = failure.field_errors
    return Response(body, status=http_status)


def result_response(result, serialize, success_status=status.HTTP_200_OK):
    """
    Render a Result: serialize(value) on Ok, failure_response on Err.
    """
    if result.ok:
        return Response(serialize(result.value), status=success_status)
    return failure_response(result.failure)
