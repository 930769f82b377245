# sales/signals.py - STOCK RESTORE ON DELETE

from django.db.models import F
from django.db.models.signals import post_save, pre_delete
from django.dispatch import receiver
import logging

from inventory.models import ProductBatch
from sales.models import Customer, Sale, SaleItem

logger = logging.getLogger(__name__)


# ============================================
# SALE CREATION SIGNAL
# ============================================

@receiver(post_save, sender=SaleItem)
def log_sale_item(sender, instance, created, **kwargs):
    """Log every batch allocation for auditing."""
    if not created:
        return
    logger.info(
        f"[SALE MONITOR] Sale {instance.sale.invoice_number} | "
        f"Product: {instance.product.name} | Batch: {instance.batch.batch_number} | "
        f"Quantity Sold: {instance.quantity} | Total: {instance.total_price}"
    )


@receiver(post_save, sender=Customer)
def log_customer(sender, instance, created, **kwargs):
    if created:
        logger.info(f"Customer created: {instance.pk} - {instance.name} ({instance.contact_number})")


# ============================================
# SALE DELETION SIGNALS - RESTORE STOCK
# ============================================

@receiver(pre_delete, sender=SaleItem)
def restore_stock_on_item_deletion(sender, instance, **kwargs):
    """
    Put a deleted item's quantity back on the batch it came from.

    Runs for items removed directly and for items cascaded from a deleted
    Sale. The update is a single F() expression so concurrent sales on
    the same batch are not lost.
    """
    ProductBatch.objects.filter(pk=instance.batch_id).update(
        quantity_in_stock=F('quantity_in_stock') + instance.quantity
    )
    logger.info(
        f"[ITEM DELETE - RESTORE] Batch: {instance.batch.batch_number} | "
        f"Product: {instance.product.name} | Qty returned: {instance.quantity}"
    )


@receiver(pre_delete, sender=Sale)
def log_sale_deletion(sender, instance, **kwargs):
    logger.warning(
        f"[PRE-DELETE] Sale {instance.invoice_number} deleted | "
        f"Items to restore: {instance.items.count()} | Total: {instance.total_amount}"
    )


@receiver(post_save, sender=Sale)
def log_payment_status(sender, instance, created, **kwargs):
    if not created and instance.payment_status == Sale.PAYMENT_FAILED:
        logger.warning(f"[PAYMENT FAILED] Sale {instance.invoice_number} marked as failed")
