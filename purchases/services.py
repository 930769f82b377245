import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from inventory.models import ProductBatch
from pharmacy.numbering import next_document_number
from users.audit import log_action

from .models import Purchase, PurchaseItem, Supplier

logger = logging.getLogger(__name__)

SUPPLIER_FIELDS = ('name', 'contact_person', 'phone_number', 'email', 'address', 'is_active')


# ============================================
# SUPPLIERS
# ============================================

def _validate_supplier(data, instance=None):
    errors = {}
    for field in ('name', 'contact_person', 'phone_number'):
        if not str(data.get(field) or '').strip():
            errors[field] = f"{field.replace('_', ' ').capitalize()} is required."

    email = (data.get('email') or '').strip()
    if email:
        try:
            validate_email(email)
        except ValidationError:
            errors['email'] = "Enter a valid email address."

    name = (data.get('name') or '').strip()
    if name:
        clash = Supplier.objects.filter(name__iexact=name)
        if instance is not None:
            clash = clash.exclude(pk=instance.pk)
        if clash.exists():
            errors['name'] = f"Supplier '{name}' already exists."

    if errors:
        raise ValidationError(errors)


def create_supplier(data, user, request=None):
    _validate_supplier(data)
    supplier = Supplier(created_by=user, **{k: v for k, v in data.items() if k in SUPPLIER_FIELDS})
    supplier.save()
    log_action(user, 'CREATE', 'Supplier', supplier.pk, f"Supplier {supplier.name} created", request=request)
    return supplier


def update_supplier(supplier, data, user, request=None):
    _validate_supplier(data, instance=supplier)
    for field, value in data.items():
        if field in SUPPLIER_FIELDS:
            setattr(supplier, field, value)
    supplier.save()
    log_action(user, 'UPDATE', 'Supplier', supplier.pk, f"Supplier {supplier.name} updated", request=request)
    return supplier


def toggle_supplier_status(supplier, user, request=None):
    supplier.is_active = not supplier.is_active
    supplier.save(update_fields=['is_active', 'updated_at'])
    state = 'activated' if supplier.is_active else 'deactivated'
    log_action(user, 'TOGGLE_STATUS', 'Supplier', supplier.pk, f"Supplier {supplier.name} {state}", request=request)
    return supplier


def delete_supplier(supplier, user, request=None):
    if supplier.purchases.exists() or supplier.batches.exists():
        raise ValidationError(
            f"Cannot delete '{supplier.name}': it has purchase orders or batches. Deactivate it instead."
        )
    pk, name = supplier.pk, supplier.name
    supplier.delete()
    log_action(user, 'DELETE', 'Supplier', pk, f"Supplier {name} deleted", request=request)


# ============================================
# PURCHASE ORDERS
# ============================================

def payment_status_for(total, paid):
    if paid <= 0:
        return Purchase.PAYMENT_PENDING
    if paid < total:
        return Purchase.PAYMENT_PARTIAL
    return Purchase.PAYMENT_PAID


def _validate_lines(lines):
    if not lines:
        raise ValidationError("A purchase order requires at least one item.")

    for index, line in enumerate(lines, start=1):
        product = line.get('product')
        if product is None:
            raise ValidationError(f"Line {index}: product is required.")
        if (line.get('quantity') or 0) <= 0:
            raise ValidationError(f"Line {index}: quantity for {product.name} must be greater than 0.")
        if line.get('unit_price') is None or Decimal(line['unit_price']) <= 0:
            raise ValidationError(f"Line {index}: unit price for {product.name} must be greater than 0.")


def create_purchase(supplier, user, lines, expected_delivery_date=None, paid_amount=Decimal('0.00'),
                    notes='', request=None):
    """
    Create a Pending purchase order.

    ``lines`` is a list of dicts with ``product``, ``quantity`` and
    ``unit_price``, optionally ``batch_number`` and ``expiry_date`` for the
    batch that will be created on receipt.
    """
    if supplier is None:
        raise ValidationError("Supplier is required.")
    if not supplier.is_active:
        raise ValidationError(f"Supplier '{supplier.name}' is inactive.")
    _validate_lines(lines)

    total = sum((Decimal(line['unit_price']) * line['quantity'] for line in lines), Decimal('0.00'))
    paid = Decimal(paid_amount or 0)
    if paid < 0 or paid > total:
        raise ValidationError(f"Paid amount must be between 0 and the order total ({total}).")

    with transaction.atomic():
        purchase = Purchase.objects.create(
            order_number=next_document_number(Purchase, 'order_number', settings.PHARMACY_PURCHASE_ORDER_PREFIX),
            supplier=supplier,
            user=user,
            expected_delivery_date=expected_delivery_date,
            total_amount=total,
            paid_amount=paid,
            payment_status=payment_status_for(total, paid),
            notes=notes or '',
        )
        PurchaseItem.objects.bulk_create([
            PurchaseItem(
                purchase=purchase,
                product=line['product'],
                ordered_quantity=line['quantity'],
                unit_price=line['unit_price'],
                batch_number=(line.get('batch_number') or '').strip(),
                expiry_date=line.get('expiry_date'),
            )
            for line in lines
        ])
        log_action(
            user, 'CREATE', 'Purchase', purchase.pk,
            f"Purchase order {purchase.order_number} created for {supplier.name}, total {total}",
            request=request,
        )

    logger.info(f"[PURCHASE] {purchase.order_number} created | Supplier: {supplier.name} | Total: {total}")
    return purchase


def _transition(purchase, allowed_from, new_status, user, action, request=None, details=''):
    with transaction.atomic():
        purchase = Purchase.objects.select_for_update().get(pk=purchase.pk)
        if purchase.status not in allowed_from:
            raise ValidationError(
                f"Purchase order {purchase.order_number} is {purchase.status} and cannot become {new_status}."
            )
        old_status = purchase.status
        purchase.status = new_status
        purchase.save(update_fields=['status'])
        log_action(
            user, action, 'Purchase', purchase.pk,
            details or f"Purchase order {purchase.order_number} moved from {old_status} to {new_status}",
            request=request,
        )
    logger.info(f"[PURCHASE] {purchase.order_number}: {old_status} -> {new_status} by {user.username}")
    return purchase


def approve_purchase(purchase, admin, request=None):
    return _transition(purchase, [Purchase.STATUS_PENDING], Purchase.STATUS_APPROVED, admin, 'APPROVE', request)


def mark_ordered(purchase, user, request=None):
    return _transition(purchase, [Purchase.STATUS_APPROVED], Purchase.STATUS_ORDERED, user, 'ORDER', request)


def cancel_purchase(purchase, user, reason, request=None):
    if not (reason or '').strip():
        raise ValidationError("A reason is required to cancel a purchase order.")
    allowed = [Purchase.STATUS_PENDING, Purchase.STATUS_APPROVED, Purchase.STATUS_ORDERED]
    with transaction.atomic():
        purchase = _transition(
            purchase, allowed, Purchase.STATUS_CANCELLED, user, 'CANCEL', request,
            details=f"Purchase order {purchase.order_number} cancelled. Reason: {reason.strip()}",
        )
        purchase.notes = f"{purchase.notes}\nCancelled: {reason.strip()}".strip()
        purchase.save(update_fields=['notes'])
    return purchase


def receive_purchase(purchase, received, user, request=None):
    """
    Receive a purchase order into stock.

    ``received`` maps PurchaseItem pk to the quantity that arrived; pass
    None to receive every line in full. Each line with a received quantity
    creates a ProductBatch from the order's supplier. A line without an
    expiry defaults to DEFAULT_BATCH_SHELF_LIFE_DAYS from today; a line
    without a batch number gets one derived from the order number.
    """
    today = timezone.localdate()
    default_expiry = today + timedelta(days=settings.PHARMACY_CONFIG['DEFAULT_BATCH_SHELF_LIFE_DAYS'])

    with transaction.atomic():
        # status is checked on the locked row; the caller's copy may be stale
        purchase = Purchase.objects.select_for_update().get(pk=purchase.pk)
        if purchase.status in (Purchase.STATUS_CANCELLED, Purchase.STATUS_DELIVERED):
            raise ValidationError(f"Purchase order {purchase.order_number} is already {purchase.status}.")

        items = list(purchase.items.select_related('product'))
        if received is None:
            received = {item.pk: item.ordered_quantity for item in items}

        batches_created = 0
        for item in items:
            quantity = int(received.get(item.pk, 0) or 0)
            if quantity < 0:
                raise ValidationError(f"Received quantity for {item.product.name} cannot be negative.")
            if quantity == 0:
                continue

            expiry_date = item.expiry_date or default_expiry
            if expiry_date <= today:
                raise ValidationError(f"Expiry date for {item.product.name} must be in the future.")
            batch_number = item.batch_number or f"{purchase.order_number}-{item.pk}"

            batch = (
                ProductBatch.objects.select_for_update()
                .filter(product=item.product, batch_number=batch_number)
                .first()
            )
            if batch is not None:
                if batch.expiry_date != expiry_date:
                    raise ValidationError(
                        f"Batch {batch_number} of {item.product.name} already exists with expiry {batch.expiry_date}."
                    )
                batch.quantity_in_stock += quantity
                batch.save(update_fields=['quantity_in_stock'])
            else:
                batch = ProductBatch.objects.create(
                    product=item.product,
                    supplier=purchase.supplier,
                    batch_number=batch_number,
                    expiry_date=expiry_date,
                    quantity_in_stock=quantity,
                    cost_price=item.unit_price,
                )
                batches_created += 1

            item.batch = batch
            item.batch_number = batch_number
            item.expiry_date = expiry_date
            item.received_quantity = quantity
            item.save(update_fields=['batch', 'batch_number', 'expiry_date', 'received_quantity'])

        purchase.status = Purchase.STATUS_DELIVERED
        purchase.received_date = timezone.now()
        purchase.save(update_fields=['status', 'received_date'])

        log_action(
            user, 'RECEIVE', 'Purchase', purchase.pk,
            f"Purchase order {purchase.order_number} received, {batches_created} batch(es) created",
            request=request,
        )

    logger.info(f"[PURCHASE] {purchase.order_number} received by {user.username} | Batches created: {batches_created}")
    return purchase


def record_payment(purchase, amount, user, request=None):
    amount = Decimal(amount or 0)
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than 0.")

    with transaction.atomic():
        purchase = Purchase.objects.select_for_update().get(pk=purchase.pk)
        if purchase.status == Purchase.STATUS_CANCELLED:
            raise ValidationError(f"Purchase order {purchase.order_number} is cancelled.")
        if purchase.paid_amount + amount > purchase.total_amount:
            raise ValidationError(f"Payment exceeds the amount due ({purchase.due_amount}).")

        purchase.paid_amount += amount
        purchase.payment_status = payment_status_for(purchase.total_amount, purchase.paid_amount)
        purchase.save(update_fields=['paid_amount', 'payment_status'])

        log_action(
            user, 'PAYMENT', 'Purchase', purchase.pk,
            f"Payment of {amount} recorded on {purchase.order_number}, due {purchase.due_amount}",
            request=request,
        )
    return purchase


# ============================================
# QUERIES
# ============================================

def purchases_by_supplier(supplier):
    return Purchase.objects.for_supplier(supplier).select_related('supplier', 'user')


def purchases_by_status(status):
    return Purchase.objects.with_status(status).select_related('supplier', 'user')


def purchases_in_date_range(start, end):
    return Purchase.objects.in_date_range(start, end).select_related('supplier', 'user')


def pending_purchases():
    return purchases_by_status(Purchase.STATUS_PENDING)


def overdue_purchases():
    return Purchase.objects.overdue().select_related('supplier', 'user')


def total_order_value(start, end):
    """Value of non-cancelled orders placed between start and end (dates, inclusive)."""
    total = (
        Purchase.objects.in_date_range(start, end)
        .exclude(status=Purchase.STATUS_CANCELLED)
        .aggregate(total=Sum('total_amount'))['total']
    )
    return total or Decimal('0.00')
