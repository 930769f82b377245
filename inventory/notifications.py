import logging

from django.conf import settings
from django.core.mail import send_mail

from .services import expiry_alerts, low_stock_products

logger = logging.getLogger(__name__)


def _enabled(notification):
    config = settings.PHARMACY_CONFIG
    if not config['ENABLE_EMAIL_ALERTS']:
        return False
    if not config['ALERT_EMAILS']:
        logger.warning(f"{notification} enabled but ALERT_EMAILS is empty")
        return False
    return config['NOTIFICATIONS'].get(notification, False)


def _send(subject, lines):
    message = "\n".join(lines)
    send_mail(
        subject=f"[{settings.PHARMACY_NAME}] {subject}",
        message=message,
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=settings.PHARMACY_CONFIG['ALERT_EMAILS'],
        fail_silently=False,
    )


def send_expiry_alerts():
    """
    Email the batches expiring within EXPIRY_ALERT_DAYS.

    Returns the number of alerts included, 0 when nothing was sent.
    """
    alerts = expiry_alerts()
    for alert in alerts:
        logger.warning(
            f"EXPIRY {alert.level.upper()}: {alert.product_name} batch {alert.batch_number} "
            f"expires {alert.expiry_date} ({alert.quantity} units)"
        )

    if not alerts or not _enabled('EXPIRY_ALERT'):
        return 0

    lines = [
        f"{a.level:<8} {a.product_name} | batch {a.batch_number} | {a.supplier_name} | "
        f"expires {a.expiry_date} ({a.days_until_expiry} days) | qty {a.quantity}"
        for a in alerts
    ]
    _send(f"{len(alerts)} batch(es) expiring soon", lines)
    logger.info(f"Expiry alert email sent with {len(alerts)} batches")
    return len(alerts)


def send_low_stock_alerts():
    products = low_stock_products()
    for product in products:
        logger.warning(
            f"LOW STOCK ALERT: {product.name} has only {product.stock} units remaining "
            f"(threshold {product.low_stock_threshold})"
        )

    if not products or not _enabled('LOW_STOCK_ALERT'):
        return 0

    lines = [
        f"{p.name} ({p.generic_name}): {p.stock} left, threshold {p.low_stock_threshold}"
        for p in products
    ]
    _send(f"{len(products)} product(s) low on stock", lines)
    logger.info(f"Low stock alert email sent with {len(products)} products")
    return len(products)
