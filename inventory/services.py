"""
Inventory business rules: products, batches, expiry alerts and stock
adjustments. Views and the API call into these functions; every write
goes through transaction.atomic() and leaves an AuditLog row behind.
"""
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from users.audit import log_action

from .models import Product, ProductBatch, StockAdjustment

logger = logging.getLogger(__name__)

LEVEL_CRITICAL = 'Critical'
LEVEL_WARNING = 'Warning'
LEVEL_INFO = 'Info'

PRODUCT_REQUIRED_FIELDS = ('name', 'generic_name', 'manufacturer', 'category')
PRODUCT_PRICE_FIELDS = ('unit_price', 'retail_price', 'wholesale_price')
PRODUCT_FIELDS = PRODUCT_REQUIRED_FIELDS + PRODUCT_PRICE_FIELDS + (
    'description', 'barcode', 'low_stock_threshold', 'requires_prescription', 'is_active',
)
BATCH_FIELDS = ('product', 'supplier', 'batch_number', 'expiry_date', 'quantity_in_stock', 'cost_price')


def pharmacy_setting(key):
    return settings.PHARMACY_CONFIG[key]


# ============================================
# PRODUCTS
# ============================================

def _validate_product(data, instance=None):
    errors = {}
    for field in PRODUCT_REQUIRED_FIELDS:
        if not str(data.get(field) or '').strip():
            errors[field] = f"{field.replace('_', ' ').capitalize()} is required."

    for field in PRODUCT_PRICE_FIELDS:
        value = data.get(field)
        if value is None or Decimal(value) <= 0:
            errors[field] = f"{field.replace('_', ' ').capitalize()} must be greater than 0."

    barcode = (data.get('barcode') or '').strip()
    if barcode:
        clash = Product.objects.filter(barcode=barcode)
        if instance is not None:
            clash = clash.exclude(pk=instance.pk)
        if clash.exists():
            errors['barcode'] = f"Barcode '{barcode}' is already assigned to another product."

    if errors:
        raise ValidationError(errors)


def create_product(data, user, request=None):
    _validate_product(data)
    product = Product(**{k: v for k, v in data.items() if k in PRODUCT_FIELDS})
    product.save()
    log_action(user, 'CREATE', 'Product', product.pk, f"Product {product.name} created", request=request)
    return product


def update_product(product, data, user, request=None):
    _validate_product(data, instance=product)
    for field, value in data.items():
        if field in PRODUCT_FIELDS:
            setattr(product, field, value)
    product.save()
    log_action(user, 'UPDATE', 'Product', product.pk, f"Product {product.name} updated", request=request)
    return product


def toggle_product_status(product, user, request=None):
    product.is_active = not product.is_active
    product.save(update_fields=['is_active', 'updated_at'])
    state = 'activated' if product.is_active else 'deactivated'
    log_action(user, 'TOGGLE_STATUS', 'Product', product.pk, f"Product {product.name} {state}", request=request)
    return product


def delete_product(product, user, request=None):
    """Delete a product with no history. Anything sold, purchased or in stock must be deactivated instead."""
    if product.sale_items.exists() or product.purchase_items.exists():
        raise ValidationError(
            f"Cannot delete '{product.name}': it has sales or purchase history. Deactivate it instead."
        )
    if product.batches.in_stock().exists():
        raise ValidationError(
            f"Cannot delete '{product.name}': batches still hold stock. Deactivate it instead."
        )

    pk, name = product.pk, product.name
    with transaction.atomic():
        product.batches.all().delete()
        product.delete()
    log_action(user, 'DELETE', 'Product', pk, f"Product {name} deleted", request=request)


def search_products(term):
    return Product.objects.search(term).with_stock()


def total_stock(product):
    return product.total_stock


def low_stock_products():
    """Active products with some stock left, at or under their threshold."""
    products = Product.objects.active().with_stock().filter(stock__gt=0)
    return [p for p in products if p.stock <= p.low_stock_threshold]


def out_of_stock_products():
    return Product.objects.active().with_stock().filter(stock=0)


# ============================================
# BATCHES
# ============================================

def _validate_batch(data, instance=None):
    errors = {}
    if not data.get('product'):
        errors['product'] = "Product is required."
    if not data.get('supplier'):
        errors['supplier'] = "Supplier is required."

    batch_number = (data.get('batch_number') or '').strip()
    if not batch_number:
        errors['batch_number'] = "Batch number is required."

    expiry_date = data.get('expiry_date')
    if not expiry_date:
        errors['expiry_date'] = "Expiry date is required."
    elif expiry_date <= timezone.localdate():
        errors['expiry_date'] = "Expiry date must be in the future."

    quantity = data.get('quantity_in_stock')
    if quantity is None or quantity < 0:
        errors['quantity_in_stock'] = "Quantity cannot be negative."

    cost_price = data.get('cost_price')
    if cost_price is not None and Decimal(cost_price) < 0:
        errors['cost_price'] = "Cost price cannot be negative."

    if batch_number and data.get('product'):
        clash = ProductBatch.objects.filter(product=data['product'], batch_number=batch_number)
        if instance is not None:
            clash = clash.exclude(pk=instance.pk)
        if clash.exists():
            errors['batch_number'] = f"Batch '{batch_number}' already exists for this product."

    if errors:
        raise ValidationError(errors)


def create_batch(data, user, request=None):
    _validate_batch(data)
    batch = ProductBatch(**{k: v for k, v in data.items() if k in BATCH_FIELDS})
    try:
        batch.save()
    except IntegrityError as e:
        raise ValidationError(f"Could not save batch: {e}")
    log_action(
        user, 'CREATE', 'ProductBatch', batch.pk,
        f"Batch {batch.batch_number} of {batch.product.name} created with {batch.quantity_in_stock} units",
        request=request,
    )
    return batch


def update_batch(batch, data, user, request=None):
    """
    Edit a batch's details. The stock count is not editable here: a change
    to ``quantity_in_stock`` must go through ``adjust_stock`` so it is
    recorded and reviewed.
    """
    if 'quantity_in_stock' in data and data['quantity_in_stock'] != batch.quantity_in_stock:
        raise ValidationError(
            f"Quantity of batch {batch.batch_number} can only be changed with a stock adjustment."
        )
    merged = {field: getattr(batch, field) for field in BATCH_FIELDS}
    merged.update({k: v for k, v in data.items() if k in BATCH_FIELDS})
    _validate_batch(merged, instance=batch)
    for field, value in merged.items():
        setattr(batch, field, value)
    batch.save()
    log_action(user, 'UPDATE', 'ProductBatch', batch.pk, f"Batch {batch.batch_number} updated", request=request)
    return batch


def delete_batch(batch, user, request=None):
    if batch.sale_items.exists():
        raise ValidationError(f"Cannot delete batch '{batch.batch_number}': it has been sold from.")
    pk, number = batch.pk, batch.batch_number
    batch.delete()
    log_action(user, 'DELETE', 'ProductBatch', pk, f"Batch {number} deleted", request=request)


def expiring_batches(days=None):
    if days is None:
        days = pharmacy_setting('EXPIRY_ALERT_DAYS')
    return ProductBatch.objects.expiring_within(days).select_related('product', 'supplier').order_by('expiry_date')


def expired_batches():
    return ProductBatch.objects.expired().select_related('product', 'supplier').order_by('expiry_date')


# ============================================
# EXPIRY ALERTS
# ============================================

@dataclass
class ExpiryAlert:
    product_name: str
    batch_number: str
    supplier_name: str
    expiry_date: date
    quantity: int
    days_until_expiry: int
    level: str
    batch_id: int = None
    product_id: int = None


def alert_level(days_until_expiry):
    if days_until_expiry <= 0:
        return LEVEL_CRITICAL
    if days_until_expiry <= pharmacy_setting('EXPIRY_WARNING_DAYS'):
        return LEVEL_WARNING
    return LEVEL_INFO


def expiry_alerts(days=None):
    today = timezone.localdate()
    alerts = []
    for batch in expiring_batches(days):
        remaining = (batch.expiry_date - today).days
        alerts.append(ExpiryAlert(
            product_name=batch.product.name,
            batch_number=batch.batch_number,
            supplier_name=batch.supplier.name,
            expiry_date=batch.expiry_date,
            quantity=batch.quantity_in_stock,
            days_until_expiry=remaining,
            level=alert_level(remaining),
            batch_id=batch.pk,
            product_id=batch.product_id,
        ))
    return sorted(alerts, key=lambda a: a.expiry_date)


# ============================================
# STOCK ADJUSTMENTS
# ============================================

def compute_adjusted_quantity(previous, adjustment_type, quantity):
    """
    Resulting batch quantity for an adjustment.

    Increase adds, Decrease subtracts, Correction sets the count outright.
    Raises ValidationError for a negative input, an unknown type, or a
    result below zero.
    """
    if quantity is None or quantity < 0:
        raise ValidationError("Adjustment quantity cannot be negative.")

    if adjustment_type == StockAdjustment.TYPE_INCREASE:
        new_quantity = previous + quantity
    elif adjustment_type == StockAdjustment.TYPE_DECREASE:
        new_quantity = previous - quantity
    elif adjustment_type == StockAdjustment.TYPE_CORRECTION:
        new_quantity = quantity
    else:
        raise ValidationError(f"Invalid adjustment type: {adjustment_type}")

    if new_quantity < 0:
        raise ValidationError(
            f"Adjustment would make stock negative ({previous} -> {new_quantity})."
        )
    return new_quantity


def adjust_stock(batch, adjustment_type, quantity, reason, user, request=None):
    if not (reason or '').strip():
        raise ValidationError("A reason is required for stock adjustments.")

    with transaction.atomic():
        batch = ProductBatch.objects.select_for_update().select_related('product').get(pk=batch.pk)
        previous = batch.quantity_in_stock
        new_quantity = compute_adjusted_quantity(previous, adjustment_type, quantity)

        batch.quantity_in_stock = new_quantity
        batch.save(update_fields=['quantity_in_stock'])

        adjustment = StockAdjustment.objects.create(
            batch=batch,
            previous_quantity=previous,
            adjusted_quantity=new_quantity,
            quantity_difference=new_quantity - previous,
            adjustment_type=adjustment_type,
            reason=reason.strip(),
            user=user,
            is_approved=False,
        )

        log_action(
            user, 'ADJUST', 'ProductBatch', batch.pk,
            f"Batch {batch.batch_number} adjusted from {previous} to {new_quantity}. Reason: {adjustment.reason}",
            request=request,
        )

    logger.info(
        f"[ADJUSTMENT] {adjustment_type} | Batch: {batch.batch_number} ({batch.product.name}) | "
        f"{previous} -> {new_quantity} | User: {user.username}"
    )
    return adjustment


def approve_adjustment(adjustment, admin, request=None):
    if adjustment.is_approved:
        raise ValidationError("This adjustment has already been approved.")
    if adjustment.approved_by_id:
        raise ValidationError("This adjustment has already been rejected.")

    adjustment.is_approved = True
    adjustment.approved_by = admin
    adjustment.approval_date = timezone.now()
    adjustment.save(update_fields=['is_approved', 'approved_by', 'approval_date'])

    log_action(admin, 'APPROVE', 'StockAdjustment', adjustment.pk,
               f"Adjustment of batch {adjustment.batch.batch_number} approved", request=request)
    logger.info(f"[ADJUSTMENT] #{adjustment.pk} approved by {admin.username}")
    return adjustment


def reject_adjustment(adjustment, admin, reason, request=None):
    if not (reason or '').strip():
        raise ValidationError("A reason is required to reject an adjustment.")
    if adjustment.is_approved:
        raise ValidationError("This adjustment has already been approved.")
    if adjustment.approved_by_id:
        raise ValidationError("This adjustment has already been rejected.")

    adjustment.is_approved = False
    adjustment.approved_by = admin
    adjustment.approval_date = timezone.now()
    adjustment.rejection_reason = reason.strip()
    adjustment.save(update_fields=['is_approved', 'approved_by', 'approval_date', 'rejection_reason'])

    log_action(admin, 'REJECT', 'StockAdjustment', adjustment.pk,
               f"Adjustment of batch {adjustment.batch.batch_number} rejected. Reason: {adjustment.rejection_reason}",
               request=request)
    logger.warning(f"[ADJUSTMENT] #{adjustment.pk} rejected by {admin.username}: {adjustment.rejection_reason}")
    return adjustment


def pending_adjustments():
    return StockAdjustment.objects.pending().select_related('batch__product', 'user')


def filter_adjustments(product=None, user=None, start=None, end=None):
    queryset = StockAdjustment.objects.select_related('batch__product', 'user', 'approved_by')
    if product:
        queryset = queryset.for_product(product)
    if user:
        queryset = queryset.by_user(user)
    if start and end:
        queryset = queryset.in_date_range(start, end)
    return queryset
