from django.db.models.signals import post_delete, post_save

from audit.models import AuditLog
from finance.models import Borrowing, BorrowingRepayment, Collection, Loan
from finance.utils.utils import bump_ledger_cache_version


# ============================================================
# SIGNAL: Invalidate cached list responses after ledger writes
# ============================================================
def clear_ledger_list_cache(sender, **kwargs):
    bump_ledger_cache_version()


# Balance updates go through queryset.update() and send no signal, so the
# audit row written for every mutation is watched as well.
for model in (Loan, Collection, Borrowing, BorrowingRepayment, AuditLog):
    post_save.connect(clear_ledger_list_cache, sender=model, dispatch_uid=f"ledger_cache_save_{model.__name__}")
    post_delete.connect(clear_ledger_list_cache, sender=model, dispatch_uid=f"ledger_cache_delete_{model.__name__}")
