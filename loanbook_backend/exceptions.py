"""
Domain error taxonomy shared by the ledger, the guards and the API layer.

Every error carries a machine-readable ``kind``, a human readable
``message``, the HTTP status it maps to, and optional extra ``detail`` that
is merged into the JSON payload (field errors, blocking counts, excess
amounts).
"""
from django.http import Http404
from rest_framework import status
from rest_framework import exceptions as drf_exceptions
from rest_framework.response import Response
from rest_framework.views import exception_handler


class LedgerError(Exception):
    kind = 'error'
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Request failed.'

    def __init__(self, message=None, **detail):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)

    def to_payload(self):
        payload = {'status': 'error', 'kind': self.kind, 'message': self.message}
        payload.update(self.detail)
        return payload


class ValidationError(LedgerError):
    kind = 'validation_error'
    default_message = 'Invalid input.'


class AuthenticationError(LedgerError):
    kind = 'authentication_error'
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = 'Authentication required.'


class AuthorizationError(LedgerError):
    kind = 'authorization_error'
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'You do not have permission to perform this action.'

    def __init__(self, reason, message=None):
        super().__init__(message or f'Permission denied: {reason}.', reason=reason)
        self.reason = reason


class NotFoundError(LedgerError):
    kind = 'not_found'
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Not found.'


class ReferentialIntegrityError(LedgerError):
    kind = 'referential_integrity'
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, reason, blocking_count=None, message=None):
        super().__init__(
            message or f'Deletion blocked: {reason}.',
            reason=reason,
            blocking_count=blocking_count,
        )
        self.reason = reason
        self.blocking_count = blocking_count


class OverpaymentError(LedgerError):
    kind = 'overpayment'

    def __init__(self, excess, outstanding, message=None):
        super().__init__(
            message or f'Payment exceeds the outstanding balance by {excess}.',
            excess=str(excess),
            outstanding=str(outstanding),
        )
        self.excess = excess
        self.outstanding = outstanding


class ConflictError(LedgerError):
    kind = 'conflict'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'The record was changed by another request. Please retry.'


class StorageUnavailable(LedgerError):
    kind = 'storage_unavailable'
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = 'Storage is unavailable. Please try again later.'


class AuditPersistenceFailure(LedgerError):
    """
    The audit row could not be written.

    ``committed`` tells whether the guarded effect had already been committed
    when the failure happened; ``result`` carries that effect's payload so the
    caller can still report it as a degraded success.
    """
    kind = 'audit_persistence_failure'
    status_code = status.HTTP_202_ACCEPTED
    default_message = 'The change was saved but its audit record could not be written. Operator attention required.'

    def __init__(self, message=None, committed=False, result=None, entry=None):
        super().__init__(message, committed=committed)
        self.committed = committed
        self.result = result
        self.entry = entry


def error_response(exc):
    return Response(exc.to_payload(), status=exc.status_code)


def validation_error_from_serializer(serializer):
    return ValidationError('Validation error.', details=serializer.errors)


def api_exception_handler(exc, context):
    """
    REST framework exception handler that renders domain errors and DRF's own
    exceptions in the same ``{"status": "error", "kind": ...}`` shape.
    """
    if isinstance(exc, LedgerError):
        return error_response(exc)

    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, drf_exceptions.ValidationError):
        kind, message = ValidationError.kind, 'Validation error.'
        payload = {'status': 'error', 'kind': kind, 'message': message, 'details': response.data}
    elif isinstance(exc, (drf_exceptions.NotAuthenticated, drf_exceptions.AuthenticationFailed)):
        payload = {'status': 'error', 'kind': AuthenticationError.kind, 'message': str(exc.detail)}
    elif isinstance(exc, drf_exceptions.PermissionDenied):
        payload = {'status': 'error', 'kind': AuthorizationError.kind, 'message': str(exc.detail)}
    elif isinstance(exc, (drf_exceptions.NotFound, Http404)):
        payload = {'status': 'error', 'kind': NotFoundError.kind, 'message': str(getattr(exc, 'detail', 'Not found.'))}
    else:
        payload = {'status': 'error', 'kind': 'error', 'message': str(getattr(exc, 'detail', exc))}
    response.data = payload
    return response


def degraded_response(exc, data=None):
    """
    The change committed but its audit row is missing: answer with 202 so
    clients can tell it apart from both success and failure.
    """
    return Response(
        {'status': 'degraded', 'kind': exc.kind, 'message': exc.message, 'data': data},
        status=exc.status_code,
    )


def server_error_response():
    return Response(
        {'status': 'error', 'message': 'Internal server error.'},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
