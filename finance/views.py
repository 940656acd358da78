# ============================================================
# Standard Library Imports
# ============================================================
import logging

# swagger settup
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi

# ============================================================
# Django Imports
# ============================================================
from django.db.models import Count, Q, Sum
from django.db.models.functions import TruncMonth
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.utils.dateparse import parse_date

# ============================================================
# Third-Party Imports
# ============================================================
from dateutil.relativedelta import relativedelta
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status

# ============================================================
# Local Application Imports
# ============================================================
from audit.utils import get_client_info
from customer.models import Customer
from customer.permissions import IsAuthenticatedUser
from home.gate import Actions, PermissionGate
from home.models import CustomUser
from home.permissions import IsAdminOrManager
from loanbook_backend.exceptions import (
    AuditPersistenceFailure,
    AuthorizationError,
    LedgerError,
    ValidationError,
    degraded_response,
    error_response,
    server_error_response,
    validation_error_from_serializer,
)
from loanbook_backend.orchestrator import MutationOrchestrator
from loanbook_backend.pagination import StandardPagination
from .ledger import to_money
from .models import Borrowing, Collection, Loan
from .serializers import (
    BorrowingCreateSerializer,
    BorrowingRepaymentCreateSerializer,
    BorrowingRepaymentSerializer,
    BorrowingSerializer,
    CollectionCreateSerializer,
    CollectionSerializer,
    LoanActivateSerializer,
    LoanCreateSerializer,
    LoanSerializer,
)
from .utils.utils import cache_response, collections_visible_to, loans_visible_to

# ============================================================
# Logger Setup
# ============================================================
logger = logging.getLogger(__name__)


def require(user, action, target=None):
    decision = PermissionGate().authorize(user, action, target)
    if not decision.allowed:
        raise AuthorizationError(decision.reason)


# ============================================================
# Loans
# ============================================================
class LoanListCreateView(APIView):
    """
    GET  → loans visible to the requester
    POST → originate a PENDING loan (admin / manager)
    """
    permission_classes = [IsAuthenticatedUser]

    @swagger_auto_schema(
        operation_summary="List Loans",
        manual_parameters=[
            openapi.Parameter('status', openapi.IN_QUERY, type=openapi.TYPE_STRING, required=False),
            openapi.Parameter('customer_id', openapi.IN_QUERY, type=openapi.TYPE_INTEGER, required=False),
        ],
        responses={200: LoanSerializer(many=True)},
        tags=["Finance"]
    )
    @cache_response()
    def get(self, request):
        try:
            require(request.user, Actions.LIST_LOANS)
            loans = loans_visible_to(request.user)
            loan_status = request.query_params.get('status')
            if loan_status:
                loans = loans.filter(status=loan_status.upper())
            customer_id = request.query_params.get('customer_id')
            if customer_id and customer_id.isdigit():
                loans = loans.filter(customer_id=customer_id)

            paginator = StandardPagination()
            page = paginator.paginate_queryset(loans, request)
            return paginator.get_paginated_response(LoanSerializer(page, many=True).data)
        except LedgerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("[LoanListCreateView] Error retrieving loans.")
            return server_error_response()

    @swagger_auto_schema(
        operation_summary="Create Loan",
        request_body=LoanCreateSerializer,
        responses={201: LoanSerializer, 400: "Validation Error", 403: "Forbidden", 404: "Customer not found"},
        tags=["Finance"]
    )
    def post(self, request):
        try:
            serializer = LoanCreateSerializer(data=request.data)
            if not serializer.is_valid():
                raise validation_error_from_serializer(serializer)
            loan = MutationOrchestrator().create_loan(
                request.user, serializer.validated_data, client=get_client_info(request)
            )
            logger.info(f"[LoanListCreateView] Loan {loan.loan_number} created by {request.user.email}")
            return Response(
                {"status": "success", "message": "Loan created successfully.", "data": LoanSerializer(loan).data},
                status=status.HTTP_201_CREATED,
            )
        except AuditPersistenceFailure as exc:
            return degraded_response(exc, LoanSerializer(exc.result).data if exc.result else None)
        except LedgerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("[LoanListCreateView] Unexpected error creating loan.")
            return server_error_response()


class LoanDetailView(APIView):
    permission_classes = [IsAuthenticatedUser]

    @swagger_auto_schema(
        operation_summary="Get Loan",
        responses={200: LoanSerializer, 403: "Forbidden", 404: "Loan not found"},
        tags=["Finance"]
    )
    def get(self, request, loan_id):
        try:
            loan = get_object_or_404(Loan.objects.select_related('customer__user', 'created_by'), pk=loan_id)
            require(request.user, Actions.READ_LOAN, loan)
            data = LoanSerializer(loan).data
            data['collections'] = CollectionSerializer(loan.collections.all()[:50], many=True).data
            return Response(data, status=status.HTTP_200_OK)
        except LedgerError as exc:
            return error_response(exc)


class LoanActivateView(APIView):
    permission_classes = [IsAdminOrManager]

    @swagger_auto_schema(
        operation_summary="Activate Loan",
        operation_description="Moves a PENDING loan to ACTIVE; interest accrues from the activation date.",
        request_body=LoanActivateSerializer,
        responses={200: LoanSerializer, 400: "Loan not pending", 404: "Loan not found"},
        tags=["Finance"]
    )
    def post(self, request, loan_id):
        try:
            serializer = LoanActivateSerializer(data=request.data)
            if not serializer.is_valid():
                raise validation_error_from_serializer(serializer)
            loan = MutationOrchestrator().activate_loan(
                request.user, loan_id,
                activated_on=serializer.validated_data.get('activated_on'),
                client=get_client_info(request),
            )
            return Response(
                {"status": "success", "message": "Loan activated.", "data": LoanSerializer(loan).data},
                status=status.HTTP_200_OK,
            )
        except AuditPersistenceFailure as exc:
            return degraded_response(exc, LoanSerializer(exc.result).data if exc.result else None)
        except LedgerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("[LoanActivateView] Unexpected error activating loan.")
            return server_error_response()


# ============================================================
# Collections
# ============================================================
class CollectionListCreateView(APIView):
    """
    Handles both:
    - List collections visible to the requester, with totals
    - Post a new collection against a loan (interest first)
    """
    permission_classes = [IsAuthenticatedUser]

    @swagger_auto_schema(
        operation_summary="List Collections",
        manual_parameters=[
            openapi.Parameter('loan_id', openapi.IN_QUERY, type=openapi.TYPE_INTEGER, required=False),
            openapi.Parameter('start_date', openapi.IN_QUERY, type=openapi.TYPE_STRING, format=openapi.FORMAT_DATE, required=False),
            openapi.Parameter('end_date', openapi.IN_QUERY, type=openapi.TYPE_STRING, format=openapi.FORMAT_DATE, required=False),
        ],
        responses={200: CollectionSerializer(many=True)},
        tags=["Finance"]
    )
    @cache_response()
    def get(self, request):
        try:
            require(request.user, Actions.LIST_COLLECTIONS)
            collections = collections_visible_to(request.user)
            loan_id = request.query_params.get('loan_id')
            if loan_id and loan_id.isdigit():
                collections = collections.filter(loan_id=loan_id)
            start_date = request.query_params.get('start_date')
            if start_date:
                collections = collections.filter(collection_date__gte=start_date)
            end_date = request.query_params.get('end_date')
            if end_date:
                collections = collections.filter(collection_date__lte=end_date)

            totals = collections.aggregate(
                count=Count('id'),
                total_amount=Sum('amount'),
                total_principal=Sum('principal_amount'),
                total_interest=Sum('interest_amount'),
            )
            paginator = StandardPagination()
            page = paginator.paginate_queryset(collections, request)
            response = paginator.get_paginated_response(CollectionSerializer(page, many=True).data)
            response.data['totals'] = {key: str(value or 0) if key != 'count' else value for key, value in totals.items()}
            return response
        except LedgerError as exc:
            return error_response(exc)
        except Exception:
            logger.error("[CollectionListCreateView] Error fetching collections.", exc_info=True)
            return server_error_response()

    @swagger_auto_schema(
        operation_summary="Post Collection",
        operation_description=(
            "Records a repayment. The amount is applied to accrued interest first and the rest to principal. "
            "An amount whose principal part exceeds the outstanding principal is rejected in full."
        ),
        request_body=CollectionCreateSerializer,
        responses={
            201: CollectionSerializer,
            202: "Posted, audit record missing",
            400: "Validation error or overpayment",
            403: "Forbidden",
            404: "Loan not found",
            409: "Duplicate receipt or concurrent update",
        },
        tags=["Finance"]
    )
    def post(self, request):
        try:
            serializer = CollectionCreateSerializer(data=request.data)
            if not serializer.is_valid():
                raise validation_error_from_serializer(serializer)
            data = serializer.validated_data
            claimed_split = {
                key: data[key] for key in ('principal_amount', 'interest_amount') if key in data
            }
            result = MutationOrchestrator().post_collection(
                request.user,
                loan_id=data['loan_id'],
                amount=data['amount'],
                payment_method=data['payment_method'],
                receipt_number=data.get('receipt_number') or None,
                collection_date=data.get('collection_date'),
                remarks=data.get('remarks', ''),
                claimed_split=claimed_split or None,
                client=get_client_info(request),
            )
            return Response(
                {
                    "status": "success",
                    "message": "Collection recorded successfully.",
                    "data": {
                        "collection": CollectionSerializer(result.collection).data,
                        "loan": LoanSerializer(result.loan).data,
                    },
                },
                status=status.HTTP_201_CREATED,
            )
        except AuditPersistenceFailure as exc:
            data = None
            if exc.result is not None:
                data = {
                    "collection": CollectionSerializer(exc.result.collection).data,
                    "loan": LoanSerializer(exc.result.loan).data,
                }
            return degraded_response(exc, data)
        except LedgerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("[CollectionListCreateView] Unexpected error posting collection.")
            return server_error_response()


# ============================================================
# Borrowings
# ============================================================
class BorrowingListCreateView(APIView):
    permission_classes = [IsAdminOrManager]

    @swagger_auto_schema(
        operation_summary="List Borrowings",
        manual_parameters=[
            openapi.Parameter('status', openapi.IN_QUERY, type=openapi.TYPE_STRING, required=False),
        ],
        responses={200: BorrowingSerializer(many=True)},
        tags=["Finance"]
    )
    @cache_response()
    def get(self, request):
        try:
            require(request.user, Actions.LIST_BORROWINGS)
            borrowings = Borrowing.objects.all()
            borrowing_status = request.query_params.get('status')
            if borrowing_status:
                borrowings = borrowings.filter(status=borrowing_status.upper())
            totals = borrowings.aggregate(
                total_amount=Sum('amount'),
                total_outstanding=Sum('outstanding'),
                total_repaid=Sum('total_repaid'),
            )
            paginator = StandardPagination()
            page = paginator.paginate_queryset(borrowings, request)
            response = paginator.get_paginated_response(BorrowingSerializer(page, many=True).data)
            response.data['totals'] = {key: str(value or 0) for key, value in totals.items()}
            return response
        except LedgerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("[BorrowingListCreateView] Error retrieving borrowings.")
            return server_error_response()

    @swagger_auto_schema(
        operation_summary="Create Borrowing",
        request_body=BorrowingCreateSerializer,
        responses={201: BorrowingSerializer, 400: "Validation Error"},
        tags=["Finance"]
    )
    def post(self, request):
        try:
            serializer = BorrowingCreateSerializer(data=request.data)
            if not serializer.is_valid():
                raise validation_error_from_serializer(serializer)
            borrowing = MutationOrchestrator().create_borrowing(
                request.user, serializer.validated_data, client=get_client_info(request)
            )
            return Response(
                {"status": "success", "message": "Borrowing recorded.", "data": BorrowingSerializer(borrowing).data},
                status=status.HTTP_201_CREATED,
            )
        except AuditPersistenceFailure as exc:
            return degraded_response(exc, BorrowingSerializer(exc.result).data if exc.result else None)
        except LedgerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("[BorrowingListCreateView] Unexpected error creating borrowing.")
            return server_error_response()


class BorrowingRepaymentView(APIView):
    permission_classes = [IsAdminOrManager]

    @swagger_auto_schema(
        operation_summary="List Borrowing Repayments",
        responses={200: BorrowingRepaymentSerializer(many=True), 404: "Borrowing not found"},
        tags=["Finance"]
    )
    def get(self, request, borrowing_id):
        try:
            borrowing = get_object_or_404(Borrowing, pk=borrowing_id)
            require(request.user, Actions.READ_BORROWING, borrowing)
            repayments = borrowing.repayments.select_related('recorded_by')
            return Response(BorrowingRepaymentSerializer(repayments, many=True).data, status=status.HTTP_200_OK)
        except LedgerError as exc:
            return error_response(exc)

    @swagger_auto_schema(
        operation_summary="Record Borrowing Repayment",
        request_body=BorrowingRepaymentCreateSerializer,
        responses={
            201: BorrowingSerializer,
            400: "Validation error or overpayment",
            404: "Borrowing not found",
        },
        tags=["Finance"]
    )
    def post(self, request, borrowing_id):
        try:
            serializer = BorrowingRepaymentCreateSerializer(data=request.data)
            if not serializer.is_valid():
                raise validation_error_from_serializer(serializer)
            data = serializer.validated_data
            result = MutationOrchestrator().record_borrowing_repayment(
                request.user, borrowing_id,
                amount=data['amount'],
                repaid_on=data.get('repaid_on'),
                remarks=data.get('remarks', ''),
                client=get_client_info(request),
            )
            return Response(
                {
                    "status": "success",
                    "message": "Repayment recorded.",
                    "data": {
                        "repayment": BorrowingRepaymentSerializer(result.repayment).data,
                        "borrowing": BorrowingSerializer(result.borrowing).data,
                    },
                },
                status=status.HTTP_201_CREATED,
            )
        except AuditPersistenceFailure as exc:
            data = None
            if exc.result is not None:
                data = {
                    "repayment": BorrowingRepaymentSerializer(exc.result.repayment).data,
                    "borrowing": BorrowingSerializer(exc.result.borrowing).data,
                }
            return degraded_response(exc, data)
        except LedgerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("[BorrowingRepaymentView] Unexpected error recording repayment.")
            return server_error_response()


# ============================================================
# Portfolio Analytics
# ============================================================
ANALYTICS_PERIODS = {
    'all': None,
    'today': relativedelta(),
    'week': relativedelta(days=7),
    'month': relativedelta(months=1),
    'quarter': relativedelta(months=3),
    'half-year': relativedelta(months=6),
    'year': relativedelta(years=1),
}


def _query_date(params, name):
    raw = params.get(name)
    if not raw:
        return None
    try:
        value = parse_date(raw)
    except ValueError:
        value = None
    if value is None:
        raise ValidationError(f"{name} must be a date (YYYY-MM-DD).", field=name)
    return value


def analytics_window(params, today):
    """
    (period, start, end) for the request. An explicit start_date / end_date
    wins over ``period``; both ends are inclusive and either may be None.
    """
    start = _query_date(params, 'start_date')
    end = _query_date(params, 'end_date')
    if start or end:
        if start and end and start > end:
            raise ValidationError('start_date must not be after end_date.', field='start_date')
        return 'custom', start, end

    period = params.get('period') or 'all'
    if period not in ANALYTICS_PERIODS:
        raise ValidationError(
            f"Unknown period '{period}'. Use one of: {', '.join(ANALYTICS_PERIODS)}.", field='period'
        )
    lookback = ANALYTICS_PERIODS[period]
    if lookback is None:
        return period, None, None
    return period, today - lookback, today


def _money(value):
    return str(to_money(value or 0))


class FinanceAnalyticsView(APIView):
    """
    GET: Portfolio summary for the dashboard. Loans are windowed on their
    start date and collections on their collection date.
    """
    permission_classes = [IsAdminOrManager]

    @swagger_auto_schema(
        operation_summary="Get Portfolio Analytics",
        operation_description=(
            "Returns summarized analytics for the loan book, including:\n"
            "- Loan counts by status\n"
            "- Disbursed principal against what is still outstanding\n"
            "- Collections in the window, with a monthly breakdown\n"
            "- Borrowings still being repaid"
        ),
        manual_parameters=[
            openapi.Parameter(
                'period', openapi.IN_QUERY, type=openapi.TYPE_STRING, required=False,
                enum=list(ANALYTICS_PERIODS),
            ),
            openapi.Parameter('start_date', openapi.IN_QUERY, type=openapi.TYPE_STRING, format=openapi.FORMAT_DATE, required=False),
            openapi.Parameter('end_date', openapi.IN_QUERY, type=openapi.TYPE_STRING, format=openapi.FORMAT_DATE, required=False),
        ],
        responses={200: "Analytics payload", 400: "Invalid period or dates", 403: "Forbidden"},
        tags=["Finance"]
    )
    @cache_response()
    def get(self, request):
        try:
            require(request.user, Actions.READ_ANALYTICS)
            period, start, end = analytics_window(request.query_params, timezone.localdate())

            loans = Loan.objects.all()
            collections = Collection.objects.all()
            if start:
                loans = loans.filter(start_date__gte=start)
                collections = collections.filter(collection_date__gte=start)
            if end:
                loans = loans.filter(start_date__lte=end)
                collections = collections.filter(collection_date__lte=end)

            by_status = {code: 0 for code, _ in Loan.STATUS_CHOICES}
            for row in loans.values('status').annotate(count=Count('id')).order_by('status'):
                by_status[row['status']] = row['count']

            disbursed = Q(status__in=(Loan.ACTIVE, Loan.CLOSED))
            open_loans = Q(status__in=Loan.OPEN_STATUSES)
            loan_totals = loans.aggregate(
                total_disbursed=Sum('principal', filter=disbursed),
                outstanding_principal=Sum('outstanding_principal', filter=open_loans),
                outstanding_interest=Sum('outstanding_interest', filter=open_loans),
            )

            collection_totals = collections.aggregate(
                count=Count('id'),
                total_amount=Sum('amount'),
                total_principal=Sum('principal_amount'),
                total_interest=Sum('interest_amount'),
            )
            monthly = (
                collections.annotate(month=TruncMonth('collection_date'))
                .values('month')
                .annotate(count=Count('id'), total_amount=Sum('amount'),
                          total_principal=Sum('principal_amount'), total_interest=Sum('interest_amount'))
                .order_by('month')
            )

            borrowings = Borrowing.objects.filter(status__in=Borrowing.REPAYABLE_STATUSES).aggregate(
                count=Count('id'),
                outstanding=Sum('outstanding'),
            )

            total_disbursed = to_money(loan_totals['total_disbursed'] or 0)
            principal_collected = to_money(collection_totals['total_principal'] or 0)
            outstanding = to_money(loan_totals['outstanding_principal'] or 0) + to_money(loan_totals['outstanding_interest'] or 0)
            collection_rate = (
                to_money(principal_collected / total_disbursed * 100) if total_disbursed else to_money(0)
            )

            data = {
                "period": period,
                "date_range": {
                    "start": start.isoformat() if start else None,
                    "end": end.isoformat() if end else None,
                } if (start or end) else None,
                "loans": {
                    "total": sum(by_status.values()),
                    "by_status": by_status,
                },
                "portfolio": {
                    "total_disbursed": str(total_disbursed),
                    "outstanding_principal": _money(loan_totals['outstanding_principal']),
                    "outstanding_interest": _money(loan_totals['outstanding_interest']),
                    "total_outstanding": str(outstanding),
                    "collection_rate": str(collection_rate),
                },
                "collections": {
                    "count": collection_totals['count'],
                    "total_amount": _money(collection_totals['total_amount']),
                    "total_principal": str(principal_collected),
                    "total_interest": _money(collection_totals['total_interest']),
                    "monthly": [
                        {
                            "month": row['month'].strftime('%Y-%m'),
                            "count": row['count'],
                            "total_amount": _money(row['total_amount']),
                            "total_principal": _money(row['total_principal']),
                            "total_interest": _money(row['total_interest']),
                        }
                        for row in monthly
                    ],
                },
                "borrowings": {
                    "open": borrowings['count'],
                    "outstanding": _money(borrowings['outstanding']),
                },
                "customers": Customer.objects.count(),
                "active_agents": CustomUser.objects.filter(role=CustomUser.AGENT, is_active=True).count(),
            }
            return Response(data, status=status.HTTP_200_OK)
        except LedgerError as exc:
            return error_response(exc)
        except Exception:
            logger.error("[FinanceAnalyticsView] Error generating analytics.", exc_info=True)
            return server_error_response()
