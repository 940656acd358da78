# finance/utils/utils.py
import logging
from functools import wraps

from django.conf import settings
from django.core.cache import cache
from rest_framework.response import Response

from home.models import CustomUser
from finance.models import Collection, Loan

logger = logging.getLogger(__name__)

LEDGER_CACHE_VERSION_KEY = "ledger_cache_version"


def get_ledger_cache_version():
    version = cache.get(LEDGER_CACHE_VERSION_KEY)
    if version is None:
        cache.add(LEDGER_CACHE_VERSION_KEY, 1, timeout=None)
        version = cache.get(LEDGER_CACHE_VERSION_KEY, 1)
    return version


def bump_ledger_cache_version():
    """
    Invalidate every cached list response at once.
    """
    try:
        cache.incr(LEDGER_CACHE_VERSION_KEY)
    except ValueError:
        cache.set(LEDGER_CACHE_VERSION_KEY, 2, timeout=None)


def cache_response(timeout=None):
    """
    Decorator to cache DRF GET responses (stores only .data to avoid render issues).

    Keys are per user and full path, and include the ledger cache version so
    any ledger write makes earlier entries unreachable.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(self, request, *args, **kwargs):
            if request.method != "GET":
                return func(self, request, *args, **kwargs)

            ttl = timeout if timeout is not None else settings.LOANBOOK.get('LIST_CACHE_TIMEOUT', 60)
            cache_key = (
                f"api_cache:v{get_ledger_cache_version()}:"
                f"u{request.user.pk}:{request.get_full_path()}"
            )
            cached_data = cache.get(cache_key)
            if cached_data is not None:
                return Response(cached_data)

            response = func(self, request, *args, **kwargs)

            if isinstance(response, Response) and response.status_code == 200:
                cache.set(cache_key, response.data, ttl)
            return response
        return wrapper
    return decorator


# ========================================
# Role scoping for list endpoints
# ========================================
def loans_visible_to(user):
    loans = Loan.objects.select_related('customer__user', 'created_by')
    if user.role in (CustomUser.ADMIN, CustomUser.MANAGER):
        return loans
    if user.role == CustomUser.AGENT:
        return loans.filter(
            customer__assignments__agent=user,
            customer__assignments__is_active=True,
        ).distinct()
    return loans.filter(customer__user=user)


def collections_visible_to(user):
    collections = Collection.objects.select_related('loan', 'collected_by')
    if user.role in (CustomUser.ADMIN, CustomUser.MANAGER):
        return collections
    if user.role == CustomUser.AGENT:
        return collections.filter(collected_by=user)
    return collections.filter(loan__customer__user=user)
