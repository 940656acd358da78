from collections import namedtuple

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import validate_ipv46_address

ClientInfo = namedtuple('ClientInfo', ['ip_address', 'user_agent'])

NO_CLIENT = ClientInfo(None, '')


def _valid_ip(value):
    value = (value or '').strip()
    if not value:
        return None
    try:
        validate_ipv46_address(value)
    except ValidationError:
        return None
    return value


def get_client_ip(request):
    """
    Socket address of the caller. X-Forwarded-For is only read when the
    deployment sits behind a proxy that sets it (LOANBOOK['TRUST_X_FORWARDED_FOR']),
    and a first hop that is not an IP address is ignored.
    """
    if settings.LOANBOOK.get('TRUST_X_FORWARDED_FOR'):
        forwarded = request.META.get('HTTP_X_FORWARDED_FOR', '')
        client = _valid_ip(forwarded.split(',')[0])
        if client:
            return client
    return _valid_ip(request.META.get('REMOTE_ADDR'))


def get_client_info(request):
    if request is None:
        return NO_CLIENT
    return ClientInfo(
        ip_address=get_client_ip(request),
        user_agent=request.META.get('HTTP_USER_AGENT', ''),
    )
