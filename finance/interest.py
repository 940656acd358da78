"""
Interest policies used by the ledger.

A policy answers two questions about a loan on a given date: how much interest
is owed in total (``accrue``) and up to which date that figure accounts for
(``accrued_through``). Both are pure; nothing here touches the database.
"""
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from dateutil.relativedelta import relativedelta

from .models import Loan

CENT = Decimal('0.01')

# Length of one period for month based frequencies
MONTHS_PER_PERIOD = {
    Loan.MONTHLY: 1,
    Loan.QUARTERLY: 3,
    Loan.HALF_YEARLY: 6,
    Loan.YEARLY: 12,
}

DAYS_PER_PERIOD = {
    Loan.DAILY: 1,
    Loan.WEEKLY: 7,
}


def quantize(amount):
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


class SimpleInterestPolicy:
    """
    Simple interest on the current outstanding principal, charged once per
    whole repayment period elapsed since the accrual anchor.

    Period boundaries are counted from the loan's ``start_date``, not from the
    anchor, so a schedule started on Jan 31 falls on Feb 29 and then Mar 31.
    """

    def schedule_start(self, loan):
        return loan.start_date or loan.interest_accrued_through

    def periods_between(self, start, day, frequency):
        if day <= start:
            return 0
        if frequency in DAYS_PER_PERIOD:
            return (day - start).days // DAYS_PER_PERIOD[frequency]
        delta = relativedelta(day, start)
        return (delta.years * 12 + delta.months) // MONTHS_PER_PERIOD[frequency]

    def period_boundary(self, start, periods, frequency):
        if frequency in DAYS_PER_PERIOD:
            return start + timedelta(days=periods * DAYS_PER_PERIOD[frequency])
        return start + relativedelta(months=periods * MONTHS_PER_PERIOD[frequency])

    def periods_elapsed(self, loan, as_of):
        anchor = loan.interest_accrued_through
        if anchor is None or as_of <= anchor:
            return 0
        start = self.schedule_start(loan)
        frequency = loan.repayment_frequency
        elapsed = self.periods_between(start, as_of, frequency) - self.periods_between(start, anchor, frequency)
        return max(elapsed, 0)

    def interest_per_period(self, loan):
        return (
            loan.outstanding_principal
            * loan.interest_rate
            / Decimal('100')
            / Decimal(loan.periods_per_year)
        )

    def accrue(self, loan, as_of):
        periods = self.periods_elapsed(loan, as_of)
        fresh = quantize(self.interest_per_period(loan) * periods) if periods else Decimal('0.00')
        return quantize(loan.outstanding_interest + fresh)

    def accrued_through(self, loan, as_of):
        if not self.periods_elapsed(loan, as_of):
            return loan.interest_accrued_through
        start = self.schedule_start(loan)
        frequency = loan.repayment_frequency
        return self.period_boundary(start, self.periods_between(start, as_of, frequency), frequency)
