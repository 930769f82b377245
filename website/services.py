"""
Read models for the dashboard and reports, and the support ticket
workflow.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import List

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db.models import DecimalField, ExpressionWrapper, F, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from inventory import services as inventory_services
from inventory.models import Product, ProductBatch, StockAdjustment
from pharmacy.numbering import next_document_number
from purchases import services as purchase_services
from purchases.models import Purchase
from sales import services as sales_services
from sales.models import AntibioticLog, Sale, SaleItem
from users.audit import log_action

from .models import SupportTicket

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
MONEY = DecimalField(max_digits=14, decimal_places=2)


def _percent(part, whole):
    if not whole:
        return ZERO
    return (Decimal(part) / Decimal(whole) * 100).quantize(Decimal('0.01'))


def _sum(queryset, expression):
    return queryset.aggregate(total=Coalesce(Sum(expression, output_field=MONEY), ZERO, output_field=MONEY))['total']


def month_bounds(on):
    start = on.replace(day=1)
    previous_end = start - timedelta(days=1)
    return start, previous_end.replace(day=1), previous_end


# ============================================
# DASHBOARD
# ============================================

@dataclass
class DashboardKPIs:
    date: date
    today_sales_count: int
    today_sales_amount: Decimal
    month_sales_count: int
    month_sales_amount: Decimal
    paid_invoice_count: int
    paid_invoice_amount: Decimal
    active_products: int
    stock_value: Decimal
    low_stock_count: int
    expiring_count: int
    pending_adjustments: int
    sales_due: Decimal
    purchase_due: Decimal
    month_purchases: Decimal
    net_profit: Decimal
    sales_growth: Decimal
    profit_margin: Decimal
    open_tickets: int
    top_products: List[sales_services.TopProduct] = field(default_factory=list)
    recent_sales: list = field(default_factory=list)


def stock_value():
    """Value at cost of everything still sellable."""
    return _sum(ProductBatch.objects.non_expired(), F('quantity_in_stock') * F('cost_price'))


def dashboard_kpis(user=None, on=None):
    today = on or timezone.localdate()
    month_start, previous_start, previous_end = month_bounds(today)
    config = settings.PHARMACY_CONFIG

    counted_sales = Sale.objects.exclude(payment_status=Sale.PAYMENT_FAILED)
    today_sales = counted_sales.in_date_range(today, today)
    month_sales = counted_sales.in_date_range(month_start, today)
    paid_sales = month_sales.filter(payment_status=Sale.PAYMENT_PAID)

    month_amount = _sum(month_sales, 'total_amount')
    previous_amount = sales_services.total_sales(previous_start, previous_end)
    month_purchases = purchase_services.total_order_value(month_start, today)
    net_profit = month_amount - month_purchases

    if previous_amount:
        growth = _percent(month_amount - previous_amount, previous_amount)
    else:
        growth = Decimal('100.00') if month_amount else ZERO

    recent = Sale.objects.select_related('customer', 'user')
    if user is not None:
        recent = recent.visible_to(user)

    return DashboardKPIs(
        date=today,
        today_sales_count=today_sales.count(),
        today_sales_amount=_sum(today_sales, 'total_amount'),
        month_sales_count=month_sales.count(),
        month_sales_amount=month_amount,
        paid_invoice_count=paid_sales.count(),
        paid_invoice_amount=_sum(paid_sales, 'total_amount'),
        active_products=Product.objects.active().count(),
        stock_value=stock_value(),
        low_stock_count=len(inventory_services.low_stock_products()),
        expiring_count=inventory_services.expiring_batches().count(),
        pending_adjustments=StockAdjustment.objects.pending().count(),
        sales_due=_sum(Sale.objects.filter(payment_status=Sale.PAYMENT_PENDING), 'total_amount'),
        purchase_due=_sum(
            Purchase.objects.exclude(status=Purchase.STATUS_CANCELLED),
            F('total_amount') - F('paid_amount'),
        ),
        month_purchases=month_purchases,
        net_profit=net_profit,
        sales_growth=growth,
        profit_margin=_percent(net_profit, month_amount),
        open_tickets=SupportTicket.objects.open().count(),
        top_products=sales_services.top_selling_products(config['TOP_PRODUCTS_COUNT'], month_start, today),
        recent_sales=list(recent[:config['RECENT_SALES_COUNT']]),
    )


# ============================================
# REPORTS
# ============================================

@dataclass
class SalesReport:
    start: date
    end: date
    total_sales: Decimal
    transactions: int
    average_sale: Decimal
    total_discount: Decimal
    total_purchases: Decimal
    net_profit: Decimal
    top_products: list
    daily: list


def sales_report(start, end):
    sales = Sale.objects.in_date_range(start, end).exclude(payment_status=Sale.PAYMENT_FAILED)
    total = _sum(sales, 'total_amount')
    transactions = sales.count()
    purchases = purchase_services.total_order_value(start, end)

    daily = (
        sales.values('sale_date__date')
        .annotate(amount=Sum('total_amount'))
        .order_by('sale_date__date')
    )

    return SalesReport(
        start=start,
        end=end,
        total_sales=total,
        transactions=transactions,
        average_sale=(total / transactions).quantize(Decimal('0.01')) if transactions else ZERO,
        total_discount=_sum(SaleItem.objects.filter(sale__in=sales), 'discount'),
        total_purchases=purchases,
        net_profit=total - purchases,
        top_products=sales_services.top_selling_products(
            settings.PHARMACY_CONFIG['TOP_PRODUCTS_COUNT'], start, end
        ),
        daily=[{'date': row['sale_date__date'], 'amount': row['amount']} for row in daily],
    )


@dataclass
class StockRow:
    product_id: int
    name: str
    category: str
    stock: int
    value: Decimal
    is_low: bool


@dataclass
class StockReport:
    rows: List[StockRow]
    total_value: Decimal
    low_stock: list
    out_of_stock: list
    expiry_alerts: list


def stock_report():
    today = timezone.localdate()
    value_per_batch = ExpressionWrapper(F('quantity_in_stock') * F('cost_price'), output_field=MONEY)
    values = dict(
        ProductBatch.objects.filter(expiry_date__gt=today)
        .values('product_id')
        .annotate(value=Sum(value_per_batch))
        .values_list('product_id', 'value')
    )

    rows = [
        StockRow(
            product_id=product.pk,
            name=product.name,
            category=product.category,
            stock=product.stock,
            value=values.get(product.pk) or ZERO,
            is_low=0 < product.stock <= product.low_stock_threshold,
        )
        for product in Product.objects.active().with_stock().order_by('name')
    ]
    return StockReport(
        rows=rows,
        total_value=sum((row.value for row in rows), ZERO),
        low_stock=inventory_services.low_stock_products(),
        out_of_stock=list(inventory_services.out_of_stock_products()),
        expiry_alerts=inventory_services.expiry_alerts(),
    )


@dataclass
class ProfitLoss:
    start: date
    end: date
    revenue: Decimal
    cost_of_goods: Decimal
    gross_profit: Decimal
    margin: Decimal


def profit_loss(start, end):
    items = SaleItem.objects.filter(
        sale__sale_date__date__gte=start,
        sale__sale_date__date__lte=end,
    ).exclude(sale__payment_status=Sale.PAYMENT_FAILED)

    revenue = _sum(items, 'total_price')
    cost = _sum(items, F('quantity') * F('batch__cost_price'))
    gross = revenue - cost
    return ProfitLoss(
        start=start,
        end=end,
        revenue=revenue,
        cost_of_goods=cost,
        gross_profit=gross,
        margin=_percent(gross, revenue),
    )


def antibiotic_report(start, end):
    return (
        AntibioticLog.objects.filter(sale__sale_date__date__gte=start, sale__sale_date__date__lte=end)
        .select_related('product', 'batch', 'customer', 'sale')
        .order_by('-sale__sale_date')
    )


# ============================================
# SUPPORT TICKETS
# ============================================

def create_ticket(data, user, request=None):
    if not (data.get('title') or '').strip():
        raise ValidationError("Title is required.")
    if not (data.get('description') or '').strip():
        raise ValidationError("Description is required.")

    ticket = SupportTicket.objects.create(
        ticket_number=next_document_number(SupportTicket, 'ticket_number', settings.PHARMACY_TICKET_PREFIX),
        title=data['title'].strip(),
        description=data['description'].strip(),
        category=data.get('category') or 'Other',
        priority=data.get('priority') or SupportTicket.PRIORITY_MEDIUM,
        created_by=user,
    )
    log_action(user, 'CREATE', 'SupportTicket', ticket.pk, f"Ticket {ticket.ticket_number} opened", request=request)
    logger.info(f"[TICKET] {ticket.ticket_number} opened by {user.username} ({ticket.priority})")
    return ticket


def assign_ticket(ticket, assignee, admin, request=None):
    if ticket.status in (SupportTicket.STATUS_RESOLVED, SupportTicket.STATUS_CLOSED):
        raise ValidationError(f"Ticket {ticket.ticket_number} is already {ticket.status}.")
    if assignee is None or not assignee.is_active:
        raise ValidationError("Tickets can only be assigned to an active user.")

    ticket.assigned_to = assignee
    ticket.assigned_date = timezone.now()
    ticket.status = SupportTicket.STATUS_IN_PROGRESS
    ticket.save(update_fields=['assigned_to', 'assigned_date', 'status'])
    log_action(admin, 'ASSIGN', 'SupportTicket', ticket.pk,
               f"Ticket {ticket.ticket_number} assigned to {assignee.username}", request=request)
    return ticket


def resolve_ticket(ticket, resolution, user, request=None):
    if not (resolution or '').strip():
        raise ValidationError("A resolution is required.")
    if ticket.status in (SupportTicket.STATUS_RESOLVED, SupportTicket.STATUS_CLOSED):
        raise ValidationError(f"Ticket {ticket.ticket_number} is already {ticket.status}.")

    ticket.resolution = resolution.strip()
    ticket.resolved_date = timezone.now()
    ticket.status = SupportTicket.STATUS_RESOLVED
    ticket.save(update_fields=['resolution', 'resolved_date', 'status'])
    log_action(user, 'RESOLVE', 'SupportTicket', ticket.pk, f"Ticket {ticket.ticket_number} resolved", request=request)
    return ticket


def close_ticket(ticket, user, request=None):
    if ticket.status == SupportTicket.STATUS_CLOSED:
        raise ValidationError(f"Ticket {ticket.ticket_number} is already closed.")

    ticket.status = SupportTicket.STATUS_CLOSED
    ticket.save(update_fields=['status'])
    log_action(user, 'CLOSE', 'SupportTicket', ticket.pk, f"Ticket {ticket.ticket_number} closed", request=request)
    return ticket


def filter_tickets(status=None, priority=None, category=None):
    queryset = SupportTicket.objects.select_related('created_by', 'assigned_to')
    if status:
        queryset = queryset.filter(status=status)
    if priority:
        queryset = queryset.filter(priority=priority)
    if category:
        queryset = queryset.filter(category=category)
    return queryset
