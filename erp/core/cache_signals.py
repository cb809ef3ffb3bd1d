"""
Cache invalidation signals
Automatically invalidate report caches when the data behind them changes
"""
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging
import threading
from contextlib import contextmanager

from .cache_utils import invalidate_reports_cache

logger = logging.getLogger(__name__)

# Models feeding the dashboard, alerts and reports
REPORT_MODELS = {
    'core.BusinessProfile',
    'catalog.Category',
    'catalog.Product',
    'parties.Contact',
    'sales.SalesOrder',
    'sales.SalesItem',
    'sales.SalesPayment',
    'sales.SalesReturn',
    'purchasing.PurchaseOrder',
    'purchasing.PurchaseItem',
    'inventory.StockAdjustment',
    'expenses.ExpenseCategory',
    'expenses.Expense',
    'crm.Deal',
}

# Thread-local storage to track signal suspension
_thread_locals = threading.local()


@contextmanager
def suspend_cache_signals():
    """
    Context manager to temporarily suspend cache invalidation signals.
    Useful for bulk operations to prevent excessive cache clearing.
    The reports cache is invalidated once when the block exits.
    """
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = False
        invalidate_reports_cache()


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


@receiver(post_save)
@receiver(post_delete)
def invalidate_reports_on_change(sender, **kwargs):
    if is_suspended():
        return
    if sender._meta.label not in REPORT_MODELS:
        return
    try:
        invalidate_reports_cache()
    except Exception as e:
        logger.warning(f"Could not invalidate reports cache after {sender._meta.label} change: {str(e)}")
