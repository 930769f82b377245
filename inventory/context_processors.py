from inventory.models import ProductBatch, StockAdjustment
from inventory.services import low_stock_products, pharmacy_setting
from users.models import is_admin


def stock_alert_counts(request):
    """Badge counts for the navigation bar."""
    if not request.user.is_authenticated:
        return {}

    counts = {
        'expiring_count': ProductBatch.objects.expiring_within(pharmacy_setting('EXPIRY_ALERT_DAYS')).count(),
        'low_stock_count': len(low_stock_products()),
    }
    if is_admin(request.user):
        counts['pending_adjustment_count'] = StockAdjustment.objects.pending().count()
    return counts
