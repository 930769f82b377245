from django.conf import settings
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
from .models import Product, ProductBatch, StockAdjustment
import logging

logger = logging.getLogger(__name__)


# ============================================
# PRODUCT SIGNALS
# ============================================

@receiver(post_save, sender=Product)
def product_post_save(sender, instance, created, **kwargs):
    if created:
        logger.info(
            f"Product created: {instance.pk} - {instance.name} "
            f"(Generic: {instance.generic_name}, Category: {instance.category})"
        )
    else:
        logger.debug(f"Product updated: {instance.pk} - {instance.name} (Active: {instance.is_active})")


# ============================================
# BATCH SIGNALS
# ============================================

@receiver(post_save, sender=ProductBatch)
def batch_post_save(sender, instance, created, **kwargs):
    """
    Log batch creation and warn about stock that is already close to
    expiry when it is received.
    """
    if created:
        logger.info(
            f"Batch received: {instance.batch_number} - {instance.product.name} | "
            f"Quantity: {instance.quantity_in_stock} | Expires: {instance.expiry_date}"
        )
        if instance.days_until_expiry <= settings.PHARMACY_CONFIG['EXPIRY_ALERT_DAYS']:
            logger.warning(
                f"SHORT DATED BATCH: {instance.batch_number} ({instance.product.name}) "
                f"expires in {instance.days_until_expiry} days"
            )


@receiver(post_delete, sender=ProductBatch)
def log_batch_deletion(sender, instance, **kwargs):
    logger.warning(
        f"[AUDIT ALERT] Batch DELETED: "
        f"ID: {instance.id} | "
        f"Batch: {instance.batch_number} | "
        f"Quantity: {instance.quantity_in_stock}"
    )


# ============================================
# STOCK ADJUSTMENT SIGNALS
# ============================================

@receiver(post_save, sender=StockAdjustment)
def adjustment_post_save(sender, instance, created, **kwargs):
    if created:
        logger.info(
            f"[STOCK MOVEMENT] "
            f"Type: {instance.adjustment_type} | "
            f"Batch: {instance.batch.batch_number} | "
            f"Difference: {instance.quantity_difference:+d} | "
            f"User: {instance.user.username}"
        )
        product = instance.batch.product
        stock = product.total_stock
        if stock == 0:
            logger.error(f"OUT OF STOCK: {product.name} is out of stock")
        elif stock <= product.low_stock_threshold:
            logger.warning(f"LOW STOCK ALERT: {product.name} has only {stock} units remaining")
