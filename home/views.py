# Django imports
from django.shortcuts import get_object_or_404

# Third-party imports
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.views import TokenObtainPairView

from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema

# Local imports
from audit.utils import get_client_info
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

from .gate import Actions, PermissionGate
from .models import CustomUser as User
from .permissions import IsAdminOrManager
from .serializers import (
    DeletionCheckSerializer,
    GrantUpdateSerializer,
    ManagerGrantSerializer,
    UserCreateSerializer,
    UserSerializer,
)

import logging
logger = logging.getLogger(__name__)


# ==================== AUTHENTICATION ====================
class MyTokenObtainPairSerializer(TokenObtainPairSerializer):
    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['email'] = user.email
        token['id'] = user.id
        token['first_name'] = user.first_name
        token['role'] = user.role
        return token


class MyTokenObtainPairView(TokenObtainPairView):
    serializer_class = MyTokenObtainPairSerializer


# ==================== USER PROFILE ====================
class UserProfileView(APIView):
    """
    The authenticated user's own profile.
    """
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Get User Profile",
        responses={200: UserSerializer},
        tags=['User Profile']
    )
    def get(self, request):
        serializer = UserSerializer(request.user)
        return Response(serializer.data, status=status.HTTP_200_OK)


# ==================== USER MANAGEMENT ====================
class UserListCreateView(APIView):
    """
    Admins and managers list users and create new ones.
    Managers cannot create admins.
    """
    permission_classes = [IsAdminOrManager]

    @swagger_auto_schema(
        operation_summary="List Users",
        manual_parameters=[
            openapi.Parameter('role', openapi.IN_QUERY, type=openapi.TYPE_STRING, required=False),
        ],
        responses={200: UserSerializer(many=True)},
        tags=['User Management']
    )
    def get(self, request):
        try:
            users = User.objects.all()
            role = request.query_params.get('role')
            if role:
                users = users.filter(role=role)
            paginator = StandardPagination()
            page = paginator.paginate_queryset(users, request)
            return paginator.get_paginated_response(UserSerializer(page, many=True).data)
        except Exception:
            logger.exception("[UserListCreateView] Error listing users.")
            return server_error_response()

    @swagger_auto_schema(
        operation_summary="Create User",
        request_body=UserCreateSerializer,
        responses={201: UserSerializer, 400: "Validation Error", 403: "Forbidden"},
        tags=['User Management']
    )
    def post(self, request):
        try:
            serializer = UserCreateSerializer(data=request.data)
            if not serializer.is_valid():
                raise validation_error_from_serializer(serializer)
            user = MutationOrchestrator().create_user(
                request.user, serializer.validated_data, client=get_client_info(request)
            )
            logger.info(f"[UserListCreateView] {request.user.email} created user {user.email} ({user.role})")
            return Response(
                {"status": "success", "message": "User created successfully.", "data": UserSerializer(user).data},
                status=status.HTTP_201_CREATED,
            )
        except AuditPersistenceFailure as exc:
            return degraded_response(exc, UserSerializer(exc.result).data if exc.result else None)
        except LedgerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("[UserListCreateView] Error creating user.")
            return server_error_response()


class UserDetailView(APIView):
    """
    Read or delete a single user. Deletion goes through the grant check and
    the referential checks before anything is removed.
    """
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Get User by ID",
        responses={200: UserSerializer, 403: "Forbidden", 404: "User not found"},
        tags=['User Management']
    )
    def get(self, request, user_id):
        try:
            user = get_object_or_404(User, id=user_id)
            decision = PermissionGate().authorize(request.user, Actions.READ_USER, user)
            if not decision.allowed:
                raise AuthorizationError(decision.reason)
            return Response(UserSerializer(user).data, status=status.HTTP_200_OK)
        except LedgerError as exc:
            return error_response(exc)

    @swagger_auto_schema(
        operation_summary="Delete User",
        operation_description=(
            "Deletes a user after permission and referential checks. "
            "A customer-role user's closed loans, collections and profile are removed with it."
        ),
        responses={
            200: "User deleted successfully",
            202: "Deleted, audit record missing",
            403: "Forbidden",
            404: "User not found",
            409: "Deletion blocked by dependent records",
        },
        tags=['User Management']
    )
    def delete(self, request, user_id):
        try:
            snapshot = MutationOrchestrator().delete_user(
                request.user, user_id, client=get_client_info(request)
            )
            logger.info(f"[UserDetailView] {request.user.email} deleted user #{user_id}")
            return Response(
                {"status": "success", "message": "User deleted successfully.", "data": snapshot.to_dict()},
                status=status.HTTP_200_OK,
            )
        except AuditPersistenceFailure as exc:
            return degraded_response(exc, exc.result.to_dict() if exc.result else None)
        except LedgerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("[UserDetailView] Error deleting user.")
            return server_error_response()


class ManagerGrantView(APIView):
    """
    Admins change a manager's delete grants.
    """
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Update Manager Grants",
        request_body=GrantUpdateSerializer,
        responses={200: ManagerGrantSerializer, 403: "Admins only", 404: "User not found"},
        tags=['User Management']
    )
    def patch(self, request, user_id):
        try:
            serializer = GrantUpdateSerializer(data=request.data)
            if not serializer.is_valid():
                raise validation_error_from_serializer(serializer)
            grant = MutationOrchestrator().update_manager_grants(
                request.user, user_id, serializer.validated_data, client=get_client_info(request)
            )
            return Response(
                {"status": "success", "message": "Grants updated.", "data": ManagerGrantSerializer(grant).data},
                status=status.HTTP_200_OK,
            )
        except AuditPersistenceFailure as exc:
            return degraded_response(exc, ManagerGrantSerializer(exc.result).data if exc.result else None)
        except LedgerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("[ManagerGrantView] Error updating grants.")
            return server_error_response()


class UserDeletionCheckView(APIView):
    """
    Dry run of the deletion checks; changes nothing.
    """
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Check User Deletion",
        responses={200: DeletionCheckSerializer, 403: "Forbidden"},
        tags=['User Management']
    )
    def get(self, request, user_id):
        try:
            decision = MutationOrchestrator().check_user_deletion(request.user, user_id)
            return Response(
                DeletionCheckSerializer({
                    'allowed': decision.allowed,
                    'reason': decision.reason,
                    'code': decision.code,
                    'blocking_count': decision.blocking_count,
                }).data,
                status=status.HTTP_200_OK,
            )
        except LedgerError as exc:
            return error_response(exc)
