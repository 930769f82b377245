from django.db.models.signals import post_save
from django.dispatch import receiver
from .models import Purchase, Supplier
import logging

logger = logging.getLogger(__name__)


@receiver(post_save, sender=Supplier)
def supplier_post_save(sender, instance, created, **kwargs):
    if created:
        logger.info(f"Supplier created: {instance.pk} - {instance.name} (Contact: {instance.contact_person})")


@receiver(post_save, sender=Purchase)
def purchase_post_save(sender, instance, created, **kwargs):
    if not created:
        logger.debug(
            f"Purchase updated: {instance.order_number} | Status: {instance.status} | "
            f"Payment: {instance.payment_status} ({instance.paid_amount}/{instance.total_amount})"
        )
    if instance.is_overdue:
        logger.warning(
            f"OVERDUE PURCHASE: {instance.order_number} from {instance.supplier.name} "
            f"was expected on {instance.expected_delivery_date}"
        )
