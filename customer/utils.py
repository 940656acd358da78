from home.models import CustomUser

from .models import Customer


def customers_visible_to(user):
    """
    Customers a user may list: everyone for admins and managers, actively
    assigned customers for agents, and only themselves for customers.
    """
    customers = Customer.objects.select_related('user').prefetch_related('assignments__agent')
    if user.role in (CustomUser.ADMIN, CustomUser.MANAGER):
        return customers
    if user.role == CustomUser.AGENT:
        return customers.filter(assignments__agent=user, assignments__is_active=True).distinct()
    return customers.filter(user=user)
