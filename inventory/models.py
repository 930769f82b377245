from datetime import timedelta

from django.conf import settings
from django.db import models
from django.db.models import Q, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone


# ============================================
# PRODUCT
# ============================================

class ProductQuerySet(models.QuerySet):

    def active(self):
        return self.filter(is_active=True)

    def with_stock(self):
        """Annotate ``stock`` as the sum of non-expired batch quantities."""
        today = timezone.localdate()
        return self.annotate(
            stock=Coalesce(
                Sum('batches__quantity_in_stock', filter=Q(batches__expiry_date__gt=today)),
                0,
            )
        )

    def search(self, term):
        term = (term or '').strip()
        if not term:
            return self
        return self.filter(
            Q(name__icontains=term) |
            Q(generic_name__icontains=term) |
            Q(barcode__icontains=term)
        )


def default_low_stock_threshold():
    return settings.PHARMACY_CONFIG['LOW_STOCK_THRESHOLD']


class Product(models.Model):
    name = models.CharField(max_length=200)
    generic_name = models.CharField(max_length=200)
    manufacturer = models.CharField(max_length=200)
    category = models.CharField(max_length=100)
    description = models.TextField(blank=True)

    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    retail_price = models.DecimalField(max_digits=12, decimal_places=2)
    wholesale_price = models.DecimalField(max_digits=12, decimal_places=2)

    barcode = models.CharField(max_length=100, unique=True, null=True, blank=True)
    low_stock_threshold = models.PositiveIntegerField(default=default_low_stock_threshold)
    requires_prescription = models.BooleanField(
        default=False,
        help_text="Antibiotics and other prescription-only items",
    )

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ProductQuerySet.as_manager()

    class Meta:
        ordering = ['name']
        indexes = [
            models.Index(fields=['name'], name='idx_product_name'),
            models.Index(fields=['is_active'], name='idx_product_active'),
        ]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        # empty barcodes are stored as NULL so the unique index ignores them
        if not self.barcode:
            self.barcode = None
        super().save(*args, **kwargs)

    @property
    def total_stock(self):
        return self.batches.non_expired().aggregate(
            total=Coalesce(Sum('quantity_in_stock'), 0)
        )['total']

    @property
    def is_low_stock(self):
        stock = self.total_stock
        return 0 < stock <= self.low_stock_threshold


# ============================================
# PRODUCT BATCH
# ============================================

class ProductBatchQuerySet(models.QuerySet):

    def in_stock(self):
        return self.filter(quantity_in_stock__gt=0)

    def non_expired(self, on=None):
        return self.filter(expiry_date__gt=on or timezone.localdate())

    def expired(self, on=None):
        return self.in_stock().filter(expiry_date__lte=on or timezone.localdate())

    def expiring_within(self, days, on=None):
        limit = (on or timezone.localdate()) + timedelta(days=days)
        return self.in_stock().filter(expiry_date__lte=limit)

    def for_product(self, product):
        return self.filter(product=product)

    def fefo(self):
        """Sellable batches, earliest expiry first."""
        return self.in_stock().non_expired().order_by('expiry_date', 'id')


class ProductBatch(models.Model):
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='batches')
    supplier = models.ForeignKey('purchases.Supplier', on_delete=models.PROTECT, related_name='batches')
    batch_number = models.CharField(max_length=100)
    expiry_date = models.DateField()
    quantity_in_stock = models.IntegerField(default=0)
    cost_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = ProductBatchQuerySet.as_manager()

    class Meta:
        ordering = ['expiry_date', 'id']
        verbose_name_plural = 'Product batches'
        constraints = [
            models.UniqueConstraint(fields=['product', 'batch_number'], name='uniq_batch_per_product'),
            models.CheckConstraint(condition=Q(quantity_in_stock__gte=0), name='batch_quantity_non_negative'),
        ]
        indexes = [
            models.Index(fields=['expiry_date'], name='idx_batch_expiry'),
        ]

    def __str__(self):
        return f"{self.product.name} - {self.batch_number}"

    @property
    def is_expired(self):
        return self.expiry_date <= timezone.localdate()

    @property
    def days_until_expiry(self):
        return (self.expiry_date - timezone.localdate()).days

    @property
    def stock_value(self):
        return self.quantity_in_stock * self.cost_price


# ============================================
# STOCK ADJUSTMENT
# ============================================

class StockAdjustmentQuerySet(models.QuerySet):

    def pending(self):
        return self.filter(is_approved=False, approved_by__isnull=True)

    def for_product(self, product):
        return self.filter(batch__product=product)

    def by_user(self, user):
        return self.filter(user=user)

    def in_date_range(self, start, end):
        return self.filter(adjustment_date__date__gte=start, adjustment_date__date__lte=end)


class StockAdjustment(models.Model):
    TYPE_INCREASE = 'Increase'
    TYPE_DECREASE = 'Decrease'
    TYPE_CORRECTION = 'Correction'
    TYPE_CHOICES = [
        (TYPE_INCREASE, 'Increase'),
        (TYPE_DECREASE, 'Decrease'),
        (TYPE_CORRECTION, 'Correction'),
    ]

    batch = models.ForeignKey(ProductBatch, on_delete=models.CASCADE, related_name='adjustments')
    previous_quantity = models.IntegerField()
    adjusted_quantity = models.IntegerField()
    quantity_difference = models.IntegerField()
    adjustment_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    reason = models.CharField(max_length=500)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='stock_adjustments',
    )
    adjustment_date = models.DateTimeField(default=timezone.now)

    is_approved = models.BooleanField(default=False)
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='reviewed_adjustments',
    )
    approval_date = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.CharField(max_length=500, blank=True)

    objects = StockAdjustmentQuerySet.as_manager()

    class Meta:
        ordering = ['-adjustment_date', '-id']

    def __str__(self):
        return f"{self.get_adjustment_type_display()} {self.batch} ({self.previous_quantity} -> {self.adjusted_quantity})"

    @property
    def status(self):
        if self.is_approved:
            return 'Approved'
        if self.approved_by_id:
            return 'Rejected'
        return 'Pending'
