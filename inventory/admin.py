from django.contrib import admin, messages
from django.core.exceptions import ValidationError
from django.utils.html import format_html
from django.http import HttpResponse
import csv

from .models import Product, ProductBatch, StockAdjustment
from . import services

# ============================================
# CUSTOM ACTIONS
# ============================================

def export_to_csv(modeladmin, request, queryset):
    """Export selected items to CSV"""
    opts = modeladmin.model._meta
    response = HttpResponse(content_type='text/csv')
    response['Content-Disposition'] = f'attachment; filename={opts.verbose_name_plural}.csv'

    writer = csv.writer(response)
    fields = [field for field in opts.get_fields() if not field.many_to_many and not field.one_to_many]

    writer.writerow([field.verbose_name for field in fields])
    for obj in queryset:
        writer.writerow([getattr(obj, field.name) for field in fields])

    return response
export_to_csv.short_description = "Export to CSV"


def mark_as_active(modeladmin, request, queryset):
    queryset.update(is_active=True)
mark_as_active.short_description = "Mark as active"


def mark_as_inactive(modeladmin, request, queryset):
    queryset.update(is_active=False)
mark_as_inactive.short_description = "Mark as inactive"


def badge(color, text):
    return format_html(
        '<span style="background-color: {}; color: white; padding: 3px 10px; border-radius: 3px;">{}</span>',
        color,
        text
    )


# ============================================
# INLINE ADMINS
# ============================================

class ProductBatchInline(admin.TabularInline):
    model = ProductBatch
    extra = 0
    fields = ['batch_number', 'supplier', 'expiry_date', 'quantity_in_stock', 'cost_price']
    show_change_link = True


class StockAdjustmentInline(admin.TabularInline):
    model = StockAdjustment
    fk_name = 'batch'
    extra = 0
    can_delete = False
    readonly_fields = [
        'adjustment_type',
        'previous_quantity',
        'adjusted_quantity',
        'quantity_difference',
        'reason',
        'user',
        'adjustment_date',
        'is_approved',
    ]
    fields = readonly_fields

    def has_add_permission(self, request, obj=None):
        return False


# ============================================
# PRODUCT ADMIN
# ============================================

@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = [
        'name',
        'generic_name',
        'category',
        'stock_display',
        'retail_price',
        'prescription_badge',
        'is_active',
    ]
    list_filter = ['is_active', 'requires_prescription', 'category', 'created_at']
    search_fields = ['name', 'generic_name', 'barcode', 'manufacturer']
    readonly_fields = ['created_at', 'updated_at']
    fieldsets = (
        ('Basic Information', {'fields': ('name', 'generic_name', 'manufacturer', 'category', 'description')}),
        ('Pricing', {'fields': ('unit_price', 'retail_price', 'wholesale_price')}),
        ('Stock Control', {'fields': ('barcode', 'low_stock_threshold', 'requires_prescription', 'is_active')}),
        ('Timestamps', {'fields': ('created_at', 'updated_at'), 'classes': ('collapse',)}),
    )
    inlines = [ProductBatchInline]
    actions = [export_to_csv, mark_as_active, mark_as_inactive]

    def get_queryset(self, request):
        return super().get_queryset(request).with_stock()

    def stock_display(self, obj):
        if obj.stock == 0:
            return badge('#dc3545', 'Out of stock')
        if obj.stock <= obj.low_stock_threshold:
            return badge('#ffc107', f'{obj.stock} (low)')
        return obj.stock
    stock_display.short_description = 'Stock'
    stock_display.admin_order_field = 'stock'

    def prescription_badge(self, obj):
        if obj.requires_prescription:
            return badge('#6f42c1', 'Rx')
        return '-'
    prescription_badge.short_description = 'Prescription'


# ============================================
# BATCH ADMIN
# ============================================

@admin.register(ProductBatch)
class ProductBatchAdmin(admin.ModelAdmin):
    list_display = ['batch_number', 'product', 'supplier', 'expiry_badge', 'quantity_in_stock', 'cost_price']
    list_filter = ['expiry_date', 'supplier']
    search_fields = ['batch_number', 'product__name']
    date_hierarchy = 'expiry_date'
    inlines = [StockAdjustmentInline]
    actions = [export_to_csv]

    def expiry_badge(self, obj):
        level = services.alert_level(obj.days_until_expiry)
        if obj.days_until_expiry > services.pharmacy_setting('EXPIRY_ALERT_DAYS'):
            return obj.expiry_date
        colors = {
            services.LEVEL_CRITICAL: '#dc3545',
            services.LEVEL_WARNING: '#ffc107',
            services.LEVEL_INFO: '#17a2b8',
        }
        return badge(colors[level], f'{obj.expiry_date} ({level})')
    expiry_badge.short_description = 'Expiry'
    expiry_badge.admin_order_field = 'expiry_date'


# ============================================
# ADJUSTMENT ADMIN
# ============================================

@admin.action(description="Approve selected adjustments")
def approve_adjustments(modeladmin, request, queryset):
    approved = 0
    for adjustment in queryset.pending():
        try:
            services.approve_adjustment(adjustment, request.user, request=request)
            approved += 1
        except ValidationError as e:
            modeladmin.message_user(request, f"#{adjustment.pk}: {'; '.join(e.messages)}", messages.ERROR)
    modeladmin.message_user(request, f"{approved} adjustment(s) approved.", messages.SUCCESS)


@admin.register(StockAdjustment)
class StockAdjustmentAdmin(admin.ModelAdmin):
    list_display = [
        'adjustment_date',
        'batch',
        'adjustment_type',
        'previous_quantity',
        'adjusted_quantity',
        'quantity_difference',
        'user',
        'status_badge',
    ]
    list_filter = ['adjustment_type', 'is_approved', 'adjustment_date']
    search_fields = ['batch__batch_number', 'batch__product__name', 'reason', 'user__username']
    readonly_fields = [
        'batch',
        'previous_quantity',
        'adjusted_quantity',
        'quantity_difference',
        'adjustment_type',
        'reason',
        'user',
        'adjustment_date',
        'is_approved',
        'approved_by',
        'approval_date',
        'rejection_reason',
    ]
    actions = [approve_adjustments, export_to_csv]

    def has_add_permission(self, request):
        # recorded only through services.adjust_stock
        return False

    def status_badge(self, obj):
        colors = {'Approved': '#28a745', 'Rejected': '#dc3545', 'Pending': '#ffc107'}
        return badge(colors[obj.status], obj.status)
    status_badge.short_description = 'Status'
