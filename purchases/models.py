from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone


# ============================================
# SUPPLIER
# ============================================

class Supplier(models.Model):
    name = models.CharField(max_length=200, unique=True)
    contact_person = models.CharField(max_length=200)
    phone_number = models.CharField(max_length=20)
    email = models.EmailField(blank=True)
    address = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='suppliers_created',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


# ============================================
# PURCHASE ORDER
# ============================================

class PurchaseQuerySet(models.QuerySet):

    def for_supplier(self, supplier):
        return self.filter(supplier=supplier)

    def with_status(self, status):
        return self.filter(status=status)

    def in_date_range(self, start, end):
        return self.filter(order_date__date__gte=start, order_date__date__lte=end)

    def open(self):
        return self.exclude(status__in=[Purchase.STATUS_DELIVERED, Purchase.STATUS_CANCELLED])

    def overdue(self, on=None):
        return self.open().filter(expected_delivery_date__lt=on or timezone.localdate())


class Purchase(models.Model):
    STATUS_PENDING = 'Pending'
    STATUS_APPROVED = 'Approved'
    STATUS_ORDERED = 'Ordered'
    STATUS_DELIVERED = 'Delivered'
    STATUS_CANCELLED = 'Cancelled'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_ORDERED, 'Ordered'),
        (STATUS_DELIVERED, 'Delivered'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    PAYMENT_PENDING = 'Pending'
    PAYMENT_PARTIAL = 'Partial'
    PAYMENT_PAID = 'Paid'
    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_PENDING, 'Pending'),
        (PAYMENT_PARTIAL, 'Partial'),
        (PAYMENT_PAID, 'Paid'),
    ]

    order_number = models.CharField(max_length=30, unique=True, editable=False)
    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT, related_name='purchases')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='purchases')
    order_date = models.DateTimeField(default=timezone.now)
    expected_delivery_date = models.DateField(null=True, blank=True)
    received_date = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    paid_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_PENDING)
    notes = models.TextField(blank=True)

    objects = PurchaseQuerySet.as_manager()

    class Meta:
        ordering = ['-order_date', '-id']
        indexes = [
            models.Index(fields=['order_date'], name='idx_purchase_date'),
            models.Index(fields=['status'], name='idx_purchase_status'),
        ]

    def __str__(self):
        return f"{self.order_number} - {self.supplier.name}"

    @property
    def due_amount(self):
        return self.total_amount - self.paid_amount

    @property
    def is_overdue(self):
        return (
            self.expected_delivery_date is not None
            and self.status not in (self.STATUS_DELIVERED, self.STATUS_CANCELLED)
            and self.expected_delivery_date < timezone.localdate()
        )


class PurchaseItem(models.Model):
    purchase = models.ForeignKey(Purchase, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey('inventory.Product', on_delete=models.PROTECT, related_name='purchase_items')
    batch = models.ForeignKey(
        'inventory.ProductBatch',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='purchase_items',
    )
    ordered_quantity = models.PositiveIntegerField()
    received_quantity = models.PositiveIntegerField(default=0)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    batch_number = models.CharField(max_length=100, blank=True)
    expiry_date = models.DateField(null=True, blank=True)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.product.name} x {self.ordered_quantity}"

    @property
    def line_total(self):
        return self.unit_price * self.ordered_quantity
