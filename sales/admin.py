from django.contrib import admin
from django.urls import reverse
from django.utils.html import format_html

from inventory.admin import badge, export_to_csv

from .models import AntibioticLog, Customer, Sale, SaleItem


# ============================================
# INLINE ADMIN FOR SALE ITEMS
# ============================================

class SaleItemInline(admin.TabularInline):
    model = SaleItem
    extra = 0
    fields = ['product', 'batch', 'quantity', 'unit_price', 'discount', 'total_price']
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        # items only come from create_sale, which deducts stock
        return False


# ============================================
# SALE ADMIN
# ============================================

@admin.register(Sale)
class SaleAdmin(admin.ModelAdmin):
    inlines = [SaleItemInline]
    list_display = [
        'invoice_number',
        'sale_date',
        'customer_display',
        'user',
        'item_count_display',
        'total_amount',
        'payment_badge',
        'invoice_link',
    ]
    list_filter = ['payment_status', 'sale_date', 'user']
    search_fields = ['invoice_number', 'customer__name', 'customer__contact_number', 'note']
    date_hierarchy = 'sale_date'
    readonly_fields = ['invoice_number', 'customer', 'user', 'sale_date', 'total_amount']
    fields = ['invoice_number', 'customer', 'user', 'sale_date', 'total_amount', 'payment_status', 'note']
    actions = [export_to_csv]

    def has_add_permission(self, request):
        return False

    def customer_display(self, obj):
        return obj.customer_name
    customer_display.short_description = 'Customer'

    def item_count_display(self, obj):
        return obj.items.count()
    item_count_display.short_description = 'Items'

    def payment_badge(self, obj):
        colors = {
            Sale.PAYMENT_PAID: '#28a745',
            Sale.PAYMENT_PENDING: '#ffc107',
            Sale.PAYMENT_FAILED: '#dc3545',
        }
        return badge(colors.get(obj.payment_status, '#6c757d'), obj.get_payment_status_display())
    payment_badge.short_description = 'Payment'

    def invoice_link(self, obj):
        url = reverse('sales:sale-invoice', kwargs={'pk': obj.pk})
        return format_html('<a href="{}" target="_blank">Invoice</a>', url)
    invoice_link.short_description = 'Invoice'


# ============================================
# CUSTOMER ADMIN
# ============================================

@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ['name', 'contact_number', 'email', 'sale_count', 'created_at']
    search_fields = ['name', 'contact_number', 'email']
    actions = [export_to_csv]

    def sale_count(self, obj):
        return obj.sales.count()
    sale_count.short_description = 'Sales'


# ============================================
# ANTIBIOTIC LOG ADMIN
# ============================================

@admin.register(AntibioticLog)
class AntibioticLogAdmin(admin.ModelAdmin):
    list_display = ['created_at', 'product', 'batch', 'customer', 'quantity', 'doctor_name', 'prescription_date', 'sale']
    list_filter = ['prescription_date', 'product']
    search_fields = ['doctor_name', 'customer__name', 'product__name', 'sale__invoice_number']
    date_hierarchy = 'created_at'
    readonly_fields = ['sale', 'batch', 'product', 'customer', 'quantity', 'doctor_name', 'prescription_date', 'created_at']
    actions = [export_to_csv]

    def has_add_permission(self, request):
        return False
