from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from users.models import is_admin


# ============================================
# CUSTOMER
# ============================================

class CustomerQuerySet(models.QuerySet):

    def search(self, term):
        term = (term or '').strip()
        if not term:
            return self
        return self.filter(Q(name__icontains=term) | Q(contact_number__icontains=term))


class Customer(models.Model):
    name = models.CharField(max_length=200)
    contact_number = models.CharField(max_length=20, unique=True)
    email = models.EmailField(blank=True)
    address = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = CustomerQuerySet.as_manager()

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.contact_number})"


# ============================================
# SALE
# ============================================

class SaleQuerySet(models.QuerySet):

    def in_date_range(self, start, end):
        return self.filter(sale_date__date__gte=start, sale_date__date__lte=end)

    def for_customer(self, customer):
        return self.filter(customer=customer)

    def by_user(self, user):
        return self.filter(user=user)

    def visible_to(self, user):
        """Admins see every sale, everyone else only their own."""
        if is_admin(user):
            return self
        return self.filter(user=user)


class Sale(models.Model):
    PAYMENT_PAID = 'Paid'
    PAYMENT_PENDING = 'Pending'
    PAYMENT_FAILED = 'Failed'
    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_PAID, 'Paid'),
        (PAYMENT_PENDING, 'Pending'),
        (PAYMENT_FAILED, 'Failed'),
    ]

    invoice_number = models.CharField(max_length=30, unique=True, editable=False)
    customer = models.ForeignKey(
        Customer,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='sales',
        help_text="Leave empty for walk-in sales",
    )
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='sales')
    sale_date = models.DateTimeField(default=timezone.now)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_PAID)
    note = models.TextField(blank=True)

    objects = SaleQuerySet.as_manager()

    class Meta:
        ordering = ['-sale_date', '-id']
        indexes = [
            models.Index(fields=['sale_date'], name='idx_sale_date'),
            models.Index(fields=['payment_status'], name='idx_sale_payment'),
        ]

    def __str__(self):
        return f"{self.invoice_number} - {self.total_amount}"

    @property
    def customer_name(self):
        return self.customer.name if self.customer else 'Walk-in'

    @property
    def total_discount(self):
        return sum((item.discount for item in self.items.all()), Decimal('0.00'))


class SaleItem(models.Model):
    sale = models.ForeignKey(Sale, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey('inventory.Product', on_delete=models.PROTECT, related_name='sale_items')
    batch = models.ForeignKey('inventory.ProductBatch', on_delete=models.PROTECT, related_name='sale_items')
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_price = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        ordering = ['id']
        constraints = [
            models.CheckConstraint(condition=Q(quantity__gt=0), name='sale_item_quantity_positive'),
        ]

    def __str__(self):
        return f"{self.product.name} x {self.quantity} ({self.batch.batch_number})"

    @property
    def gross_amount(self):
        return self.unit_price * self.quantity

    @property
    def cost_amount(self):
        return self.batch.cost_price * self.quantity


# ============================================
# ANTIBIOTIC LOG
# ============================================

class AntibioticLog(models.Model):
    """Dispensing record for prescription-only products."""

    sale = models.ForeignKey(Sale, on_delete=models.CASCADE, related_name='antibiotic_logs')
    batch = models.ForeignKey('inventory.ProductBatch', on_delete=models.PROTECT, related_name='antibiotic_logs')
    product = models.ForeignKey('inventory.Product', on_delete=models.PROTECT, related_name='antibiotic_logs')
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='antibiotic_logs')
    quantity = models.PositiveIntegerField()
    doctor_name = models.CharField(max_length=200)
    prescription_date = models.DateField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.product.name} to {self.customer.name} (Dr. {self.doctor_name})"
