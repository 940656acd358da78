from django.contrib import admin
from django.urls import path, include
from rest_framework_simplejwt.views import TokenRefreshView
from django.conf import settings
from django.conf.urls.static import static

from rest_framework import permissions
from drf_yasg.views import get_schema_view
from drf_yasg import openapi


# Swagger Configuration
schema_view = get_schema_view(
    openapi.Info(
        title="Loanbook Back-Office API",
        default_version='v1',
        description="""
        # Loanbook Back-Office API

        Loan ledger and back-office administration.

        ## Features
        - Role-based access control (admin, manager, agent, customer)
        - Loans with simple interest accrual and interest-first collections
        - Company borrowings and repayments
        - Guarded user and customer deletion
        - Append-only audit trail

        ## Authentication
        This API uses JWT (JSON Web Tokens) for authentication.

        ### Login Flow:
        1. Call /api/v1/users/token/ with email and password
        2. Receive access and refresh tokens
        3. Use access token in Authorization header: Bearer <token>

        ## User Roles
        - *Admin*: Full system access, manages manager grants
        - *Manager*: Day-to-day operations; deletes only with a grant
        - *Agent*: Works the customers assigned to them
        - *Customer*: Reads their own loans and collections
        """,
        contact=openapi.Contact(email="support@loanbook.local"),
        license=openapi.License(name="Proprietary"),
    ),
    public=True,
    permission_classes=(permissions.AllowAny,),
)

urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # API Documentation
    path('swagger/', schema_view.with_ui('swagger', cache_timeout=0), name='schema-swagger-ui'),
    path('redoc/', schema_view.with_ui('redoc', cache_timeout=0), name='schema-redoc'),
    path('swagger.json', schema_view.without_ui(cache_timeout=0), name='schema-json'),

    # API v1
    path('api/v1/users/', include('home.urls')),
    path('api/v1/customers/', include('customer.urls')),
    path('api/v1/finance/', include('finance.urls')),
    path('api/v1/audit/', include('audit.urls')),
    path('api/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
]


if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
    urlpatterns += static(settings.STATIC_URL, document_root=settings.STATIC_ROOT)
