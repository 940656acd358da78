import logging

from django.shortcuts import get_object_or_404
from django.db.models import Q

from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status

from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi

from audit.utils import get_client_info
from home.gate import Actions, PermissionGate
from loanbook_backend.exceptions import (
    AuditPersistenceFailure,
    AuthorizationError,
    LedgerError,
    degraded_response,
    error_response,
    server_error_response,
    validation_error_from_serializer,
)
from loanbook_backend.orchestrator import MutationOrchestrator
from loanbook_backend.pagination import StandardPagination

from .models import Customer
from .permissions import IsAuthenticatedUser
from .serializers import (
    AgentAssignmentSerializer,
    AgentAssignSerializer,
    CustomerCreateSerializer,
    CustomerSerializer,
    CustomerUpdateSerializer,
)
from .utils import customers_visible_to

logger = logging.getLogger(__name__)


# =========== CUSTOMER LIST / CREATE ==========#

class CustomerListCreateView(APIView):
    """
    GET  → customers visible to the requester (paginated, searchable)
    POST → create a customer user and profile; an agent creator is assigned
    """
    permission_classes = [IsAuthenticatedUser]

    @swagger_auto_schema(
        operation_summary="List customers",
        manual_parameters=[
            openapi.Parameter(
                'search', openapi.IN_QUERY,
                description='Search by name, email, phone or id proof',
                type=openapi.TYPE_STRING
            ),
            openapi.Parameter(
                'kyc_status', openapi.IN_QUERY,
                description='Filter by KYC status',
                type=openapi.TYPE_STRING
            ),
        ],
        responses={200: CustomerSerializer(many=True)},
        tags=["customer"]
    )
    def get(self, request):
        try:
            decision = PermissionGate().authorize(request.user, Actions.LIST_CUSTOMERS)
            if not decision.allowed:
                raise AuthorizationError(decision.reason)

            customers = customers_visible_to(request.user)
            search = request.query_params.get('search')
            if search:
                customers = customers.filter(
                    Q(user__first_name__icontains=search) |
                    Q(user__last_name__icontains=search) |
                    Q(user__email__icontains=search) |
                    Q(user__phone__icontains=search) |
                    Q(id_proof__icontains=search)
                )
            kyc_status = request.query_params.get('kyc_status')
            if kyc_status:
                customers = customers.filter(kyc_status=kyc_status.upper())

            paginator = StandardPagination()
            page = paginator.paginate_queryset(customers, request)
            return paginator.get_paginated_response(CustomerSerializer(page, many=True).data)
        except LedgerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("[CustomerListCreateView] Error listing customers.")
            return server_error_response()

    @swagger_auto_schema(
        operation_summary="Create customer",
        request_body=CustomerCreateSerializer,
        responses={201: CustomerSerializer, 400: "Validation Error", 403: "Forbidden"},
        tags=["customer"]
    )
    def post(self, request):
        try:
            serializer = CustomerCreateSerializer(data=request.data)
            if not serializer.is_valid():
                raise validation_error_from_serializer(serializer)
            customer = MutationOrchestrator().create_customer(
                request.user, serializer.validated_data, client=get_client_info(request)
            )
            logger.info(f"[CustomerListCreateView] Customer #{customer.pk} created by {request.user.email}")
            return Response(
                {"status": "success", "message": "Customer created successfully.", "data": CustomerSerializer(customer).data},
                status=status.HTTP_201_CREATED,
            )
        except AuditPersistenceFailure as exc:
            return degraded_response(exc, CustomerSerializer(exc.result).data if exc.result else None)
        except LedgerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("[CustomerListCreateView] Error creating customer.")
            return server_error_response()


# =========== CUSTOMER DETAIL / DELETE ==========#

class CustomerDetailView(APIView):
    permission_classes = [IsAuthenticatedUser]

    @swagger_auto_schema(
        operation_summary="Retrieve customer",
        responses={200: CustomerSerializer, 403: "Forbidden", 404: "Customer not found"},
        tags=["customer"]
    )
    def get(self, request, customer_id):
        try:
            customer = get_object_or_404(Customer.objects.select_related('user'), pk=customer_id)
            decision = PermissionGate().authorize(request.user, Actions.READ_CUSTOMER, customer)
            if not decision.allowed:
                raise AuthorizationError(decision.reason)
            return Response(CustomerSerializer(customer).data, status=status.HTTP_200_OK)
        except LedgerError as exc:
            return error_response(exc)

    @swagger_auto_schema(
        operation_summary="Update customer",
        operation_description="Partial update of profile fields and the KYC status.",
        request_body=CustomerUpdateSerializer,
        responses={
            200: CustomerSerializer,
            202: "Updated, audit record missing",
            400: "Validation Error",
            403: "Forbidden",
            404: "Customer not found",
        },
        tags=["customer"]
    )
    def patch(self, request, customer_id):
        try:
            serializer = CustomerUpdateSerializer(data=request.data, partial=True)
            if not serializer.is_valid():
                raise validation_error_from_serializer(serializer)
            customer = MutationOrchestrator().update_customer(
                request.user, customer_id, serializer.validated_data, client=get_client_info(request)
            )
            logger.info(f"[CustomerDetailView] Customer #{customer_id} updated by {request.user.email}")
            return Response(
                {"status": "success", "message": "Customer updated successfully.", "data": CustomerSerializer(customer).data},
                status=status.HTTP_200_OK,
            )
        except AuditPersistenceFailure as exc:
            return degraded_response(exc, CustomerSerializer(exc.result).data if exc.result else None)
        except LedgerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("[CustomerDetailView] Error updating customer.")
            return server_error_response()

    @swagger_auto_schema(
        operation_summary="Delete customer",
        operation_description=(
            "Deletes the customer, its login user, its closed loans and their collections. "
            "Blocked while any loan is ACTIVE or PENDING."
        ),
        responses={
            200: "Customer deleted",
            202: "Deleted, audit record missing",
            403: "Forbidden",
            404: "Customer not found",
            409: "Deletion blocked by dependent records",
        },
        tags=["customer"]
    )
    def delete(self, request, customer_id):
        try:
            snapshot = MutationOrchestrator().delete_customer(
                request.user, customer_id, client=get_client_info(request)
            )
            logger.info(f"[CustomerDetailView] Customer #{customer_id} deleted by {request.user.email}")
            return Response(
                {"status": "success", "message": "Customer deleted successfully.", "data": snapshot.to_dict()},
                status=status.HTTP_200_OK,
            )
        except AuditPersistenceFailure as exc:
            return degraded_response(exc, exc.result.to_dict() if exc.result else None)
        except LedgerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("[CustomerDetailView] Error deleting customer.")
            return server_error_response()


# =========== AGENT ASSIGNMENTS ==========#

class CustomerAgentAssignView(APIView):
    permission_classes = [IsAuthenticatedUser]

    @swagger_auto_schema(
        operation_summary="Assign agent to customer",
        request_body=AgentAssignSerializer,
        responses={200: AgentAssignmentSerializer, 403: "Forbidden", 404: "Not found"},
        tags=["customer"]
    )
    def post(self, request, customer_id):
        try:
            serializer = AgentAssignSerializer(data=request.data)
            if not serializer.is_valid():
                raise validation_error_from_serializer(serializer)
            assignment = MutationOrchestrator().assign_agent(
                request.user, customer_id, serializer.validated_data['agent_id'],
                client=get_client_info(request)
            )
            return Response(
                {"status": "success", "message": "Agent assigned.", "data": AgentAssignmentSerializer(assignment).data},
                status=status.HTTP_200_OK,
            )
        except AuditPersistenceFailure as exc:
            return degraded_response(exc, AgentAssignmentSerializer(exc.result).data if exc.result else None)
        except LedgerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("[CustomerAgentAssignView] Error assigning agent.")
            return server_error_response()


class CustomerAgentUnassignView(APIView):
    permission_classes = [IsAuthenticatedUser]

    @swagger_auto_schema(
        operation_summary="Deactivate agent assignment",
        responses={200: AgentAssignmentSerializer, 403: "Forbidden", 404: "No active assignment"},
        tags=["customer"]
    )
    def delete(self, request, customer_id, agent_id):
        try:
            assignment = MutationOrchestrator().unassign_agent(
                request.user, customer_id, agent_id, client=get_client_info(request)
            )
            return Response(
                {"status": "success", "message": "Agent unassigned.", "data": AgentAssignmentSerializer(assignment).data},
                status=status.HTTP_200_OK,
            )
        except AuditPersistenceFailure as exc:
            return degraded_response(exc, AgentAssignmentSerializer(exc.result).data if exc.result else None)
        except LedgerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("[CustomerAgentUnassignView] Error unassigning agent.")
            return server_error_response()
