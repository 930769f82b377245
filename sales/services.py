"""
Sale fulfillment and customer records.

create_sale() is the one place stock leaves the pharmacy: it picks
batches first-expiry-first-out, deducts them under row locks and writes
the invoice, its items and any antibiotic dispensing records in a
single transaction.
"""
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from inventory.models import ProductBatch
from pharmacy.numbering import next_document_number
from users.audit import log_action
from users.models import is_admin

from .models import AntibioticLog, Customer, Sale, SaleItem

logger = logging.getLogger(__name__)

CUSTOMER_FIELDS = ('name', 'contact_number', 'email', 'address')
PAYMENT_STATUSES = [choice for choice, _ in Sale.PAYMENT_STATUS_CHOICES]


@dataclass
class Prescription:
    doctor_name: str
    prescription_date: date


@dataclass
class TopProduct:
    product_id: int
    name: str
    quantity: int
    revenue: Decimal


# ============================================
# CUSTOMERS
# ============================================

def _validate_customer(data, instance=None):
    errors = {}
    if not (data.get('name') or '').strip():
        errors['name'] = "Customer name is required."

    contact = (data.get('contact_number') or '').strip()
    if not contact:
        errors['contact_number'] = "Contact number is required."
    else:
        clash = Customer.objects.filter(contact_number=contact)
        if instance is not None:
            clash = clash.exclude(pk=instance.pk)
        if clash.exists():
            errors['contact_number'] = f"A customer with contact number {contact} already exists."

    if errors:
        raise ValidationError(errors)


def create_customer(data, user, request=None):
    _validate_customer(data)
    customer = Customer(**{k: (v.strip() if isinstance(v, str) else v)
                           for k, v in data.items() if k in CUSTOMER_FIELDS})
    customer.save()
    log_action(user, 'CREATE', 'Customer', customer.pk, f"Customer {customer.name} created", request=request)
    return customer


def update_customer(customer, data, user, request=None):
    _validate_customer(data, instance=customer)
    for field, value in data.items():
        if field in CUSTOMER_FIELDS:
            setattr(customer, field, value.strip() if isinstance(value, str) else value)
    customer.save()
    log_action(user, 'UPDATE', 'Customer', customer.pk, f"Customer {customer.name} updated", request=request)
    return customer


def delete_customer(customer, user, request=None):
    if customer.sales.exists():
        raise ValidationError(f"Cannot delete '{customer.name}': the customer has sales on record.")
    pk, name = customer.pk, customer.name
    customer.delete()
    log_action(user, 'DELETE', 'Customer', pk, f"Customer {name} deleted", request=request)


def search_customers(term):
    return Customer.objects.search(term)


# ============================================
# SALE FULFILLMENT
# ============================================

def _validate_lines(lines):
    if not lines:
        raise ValidationError("A sale requires at least one item.")

    for index, line in enumerate(lines, start=1):
        product = line.get('product')
        if product is None:
            raise ValidationError(f"Line {index}: product is required.")
        if not product.is_active:
            raise ValidationError(f"{product.name} is inactive and cannot be sold.")

        quantity = line.get('quantity') or 0
        if quantity <= 0:
            raise ValidationError(f"Quantity for {product.name} must be greater than 0.")

        unit_price = Decimal(line.get('unit_price') or 0)
        if unit_price <= 0:
            raise ValidationError(f"Unit price for {product.name} must be greater than 0.")

        discount = Decimal(line.get('discount') or 0)
        if discount < 0 or discount > unit_price * quantity:
            raise ValidationError(
                f"Discount for {product.name} must be between 0 and {unit_price * quantity}."
            )

        batch = line.get('batch')
        if batch is not None and batch.product_id != product.pk:
            raise ValidationError(f"Batch {batch.batch_number} does not belong to {product.name}.")


def _with_defaults(line):
    line = dict(line)
    product = line.get('product')
    if product is not None and line.get('unit_price') is None:
        line['unit_price'] = product.retail_price
    line['discount'] = Decimal(line.get('discount') or 0)
    return line


def _allocate(line):
    """
    Lock and pick the batches that will cover one line.

    Returns a list of (batch, quantity) pairs. An explicit batch pins the
    allocation; otherwise sellable batches are taken earliest expiry first.
    """
    product = line['product']
    quantity = line['quantity']
    today = timezone.localdate()

    if line.get('batch') is not None:
        batch = ProductBatch.objects.select_for_update().get(pk=line['batch'].pk)
        if batch.expiry_date <= today:
            raise ValidationError(f"Batch {batch.batch_number} of {product.name} has expired.")
        if batch.quantity_in_stock < quantity:
            raise ValidationError(
                f"Insufficient stock for {product.name} in batch {batch.batch_number}: "
                f"requested {quantity}, available {batch.quantity_in_stock}."
            )
        return [(batch, quantity)]

    batches = list(ProductBatch.objects.select_for_update().for_product(product).fefo())
    available = sum(batch.quantity_in_stock for batch in batches)
    if available < quantity:
        raise ValidationError(
            f"Insufficient stock for {product.name}: requested {quantity}, available {available}."
        )

    allocations = []
    remaining = quantity
    for batch in batches:
        if remaining == 0:
            break
        take = min(batch.quantity_in_stock, remaining)
        allocations.append((batch, take))
        remaining -= take
    return allocations


def create_sale(customer, user, lines, payment_status=Sale.PAYMENT_PAID, note="", prescription=None,
                request=None):
    """
    Record a sale and deduct its stock.

    ``lines`` is a list of dicts with ``product``, ``quantity``,
    ``unit_price`` (defaults to the product's retail price), ``discount``
    (defaults to 0) and an optional ``batch``. Prescription-only products
    need a customer and a ``Prescription``.

    Any rule violation raises ValidationError and nothing is written.
    """
    if payment_status not in PAYMENT_STATUSES:
        raise ValidationError(f"Invalid payment status: {payment_status}")

    lines = [_with_defaults(line) for line in lines or []]
    _validate_lines(lines)

    if any(line['product'].requires_prescription for line in lines):
        if customer is None:
            raise ValidationError("A customer is required when selling prescription-only products.")
        if prescription is None or not (prescription.doctor_name or '').strip() or not prescription.prescription_date:
            raise ValidationError("Doctor name and prescription date are required for prescription-only products.")

    touched_products = {}
    with transaction.atomic():
        sale = Sale.objects.create(
            invoice_number=next_document_number(Sale, 'invoice_number', settings.PHARMACY_INVOICE_PREFIX),
            customer=customer,
            user=user,
            payment_status=payment_status,
            note=note or '',
        )

        total = Decimal('0.00')
        for line in lines:
            product = line['product']
            unit_price = Decimal(line['unit_price'])
            discount_left = line['discount']

            for batch, quantity in _allocate(line):
                gross = unit_price * quantity
                discount = min(discount_left, gross)
                discount_left -= discount

                batch.quantity_in_stock -= quantity
                batch.save(update_fields=['quantity_in_stock'])

                item = SaleItem.objects.create(
                    sale=sale,
                    product=product,
                    batch=batch,
                    quantity=quantity,
                    unit_price=unit_price,
                    discount=discount,
                    total_price=gross - discount,
                )
                total += item.total_price

                if product.requires_prescription:
                    AntibioticLog.objects.create(
                        sale=sale,
                        batch=batch,
                        product=product,
                        customer=customer,
                        quantity=quantity,
                        doctor_name=prescription.doctor_name.strip(),
                        prescription_date=prescription.prescription_date,
                    )

            touched_products[product.pk] = product

        sale.total_amount = total
        sale.save(update_fields=['total_amount'])

        log_action(
            user, 'CREATE', 'Sale', sale.pk,
            f"Sale {sale.invoice_number} created for {sale.customer_name}, total {total}",
            request=request,
        )
        transaction.on_commit(lambda: _warn_low_stock(touched_products.values()))

    logger.info(
        f"[SALE] {sale.invoice_number} | Customer: {sale.customer_name} | "
        f"Items: {len(lines)} | Total: {total} | User: {user.username}"
    )
    return sale


def _warn_low_stock(products):
    for product in products:
        stock = product.total_stock
        if stock == 0:
            logger.error(f"OUT OF STOCK: {product.name} is out of stock")
        elif stock <= product.low_stock_threshold:
            logger.warning(f"LOW STOCK ALERT: {product.name} has only {stock} units remaining")


def update_payment_status(sale, status, user, request=None):
    if not is_admin(user):
        raise PermissionDenied("Only administrators can change payment status.")
    if status not in PAYMENT_STATUSES:
        raise ValidationError(f"Invalid payment status: {status}")

    old_status = sale.payment_status
    sale.payment_status = status
    sale.save(update_fields=['payment_status'])
    log_action(
        user, 'UPDATE', 'Sale', sale.pk,
        f"Payment status of {sale.invoice_number} changed from {old_status} to {status}",
        request=request,
    )
    return sale


def delete_sale(sale, user, request=None):
    """
    Delete a sale and put its quantities back on their batches.

    The stock itself is restored by the SaleItem pre_delete signal, so the
    admin site gets the same behaviour.
    """
    if not is_admin(user):
        raise PermissionDenied("Only administrators can delete sales.")

    pk, invoice, total = sale.pk, sale.invoice_number, sale.total_amount
    with transaction.atomic():
        sale.delete()
        log_action(user, 'DELETE', 'Sale', pk, f"Sale {invoice} deleted, stock restored (total {total})",
                   request=request)
    logger.warning(f"[SALE DELETED] {invoice} by {user.username}")


# ============================================
# QUERIES
# ============================================

def sales_in_date_range(start, end):
    return Sale.objects.in_date_range(start, end).select_related('customer', 'user')


def sales_for_customer(customer):
    return Sale.objects.for_customer(customer).select_related('customer', 'user')


def sales_by_user(user):
    return Sale.objects.by_user(user).select_related('customer', 'user')


def total_sales(start, end):
    """Sales value between start and end (dates, inclusive), failed payments excluded."""
    total = (
        Sale.objects.in_date_range(start, end)
        .exclude(payment_status=Sale.PAYMENT_FAILED)
        .aggregate(total=Sum('total_amount'))['total']
    )
    return total or Decimal('0.00')


def top_selling_products(count=None, start=None, end=None):
    """Products ranked by quantity sold."""
    if count is None:
        count = settings.PHARMACY_CONFIG['TOP_PRODUCTS_COUNT']

    items = SaleItem.objects.exclude(sale__payment_status=Sale.PAYMENT_FAILED)
    if start and end:
        items = items.filter(sale__sale_date__date__gte=start, sale__sale_date__date__lte=end)

    rows = (
        items.values('product_id', 'product__name')
        .annotate(quantity=Sum('quantity'), revenue=Sum('total_price'))
        .order_by('-quantity', 'product__name')[:count]
    )
    return [
        TopProduct(
            product_id=row['product_id'],
            name=row['product__name'],
            quantity=row['quantity'],
            revenue=row['revenue'] or Decimal('0.00'),
        )
        for row in rows
    ]
