import logging

from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema
from rest_framework.views import APIView

from home.gate import Actions, PermissionGate
from loanbook_backend.exceptions import (
    AuthorizationError,
    LedgerError,
    ValidationError,
    error_response,
    server_error_response,
)
from loanbook_backend.pagination import StandardPagination

from .models import AuditLog
from .serializers import AuditLogSerializer

logger = logging.getLogger(__name__)


class AuditLogListView(APIView):
    """
    Paginated audit trail for admins and managers.
    """

    FILTERS = ('action', 'entity_type', 'entity_id', 'actor_id')

    @swagger_auto_schema(
        operation_summary="List Audit Log",
        manual_parameters=[
            openapi.Parameter(name, openapi.IN_QUERY, type=openapi.TYPE_STRING, required=False)
            for name in FILTERS
        ],
        responses={200: AuditLogSerializer(many=True), 403: "Forbidden"},
        tags=["Audit"]
    )
    def get(self, request):
        try:
            decision = PermissionGate().authorize(request.user, Actions.READ_AUDIT_LOG)
            if not decision.allowed:
                raise AuthorizationError(decision.reason)

            logs = AuditLog.objects.all()
            for name in self.FILTERS:
                value = request.query_params.get(name)
                if not value:
                    continue
                if name == "actor_id" and not value.isdigit():
                    raise ValidationError("actor_id must be a number.", field="actor_id")
                logs = logs.filter(**{name: value})

            paginator = StandardPagination()
            page = paginator.paginate_queryset(logs, request)
            serializer = AuditLogSerializer(page, many=True)
            return paginator.get_paginated_response(serializer.data)
        except LedgerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("[AuditLogListView] Error retrieving audit log.")
            return server_error_response()
