from django.contrib import admin
from django.utils.html import format_html

from inventory.admin import badge, export_to_csv, mark_as_active, mark_as_inactive

from .models import Purchase, PurchaseItem, Supplier


class PurchaseItemInline(admin.TabularInline):
    model = PurchaseItem
    extra = 0
    fields = ['product', 'ordered_quantity', 'received_quantity', 'unit_price', 'batch_number', 'expiry_date', 'batch']
    readonly_fields = ['received_quantity', 'batch']


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    list_display = ['name', 'contact_person', 'phone_number', 'email', 'purchase_count', 'is_active']
    list_filter = ['is_active', 'created_at']
    search_fields = ['name', 'contact_person', 'phone_number', 'email']
    readonly_fields = ['created_by', 'created_at', 'updated_at']
    actions = [export_to_csv, mark_as_active, mark_as_inactive]

    def purchase_count(self, obj):
        return obj.purchases.count()
    purchase_count.short_description = 'Orders'


@admin.register(Purchase)
class PurchaseAdmin(admin.ModelAdmin):
    list_display = [
        'order_number',
        'supplier',
        'order_date',
        'expected_delivery_date',
        'status_badge',
        'total_amount',
        'paid_amount',
        'payment_badge',
    ]
    list_filter = ['status', 'payment_status', 'supplier', 'order_date']
    search_fields = ['order_number', 'supplier__name', 'notes']
    date_hierarchy = 'order_date'
    readonly_fields = ['order_number', 'user', 'order_date', 'received_date', 'total_amount', 'due_display']
    inlines = [PurchaseItemInline]
    actions = [export_to_csv]

    def status_badge(self, obj):
        colors = {
            Purchase.STATUS_PENDING: '#ffc107',
            Purchase.STATUS_APPROVED: '#17a2b8',
            Purchase.STATUS_ORDERED: '#007bff',
            Purchase.STATUS_DELIVERED: '#28a745',
            Purchase.STATUS_CANCELLED: '#6c757d',
        }
        return badge(colors.get(obj.status, '#6c757d'), obj.get_status_display())
    status_badge.short_description = 'Status'

    def payment_badge(self, obj):
        colors = {
            Purchase.PAYMENT_PENDING: '#dc3545',
            Purchase.PAYMENT_PARTIAL: '#ffc107',
            Purchase.PAYMENT_PAID: '#28a745',
        }
        return badge(colors.get(obj.payment_status, '#6c757d'), obj.get_payment_status_display())
    payment_badge.short_description = 'Payment'

    def due_display(self, obj):
        formatted_value = '{:,.2f}'.format(float(obj.due_amount))
        return format_html('<strong>{}</strong>', formatted_value)
    due_display.short_description = 'Amount Due'
