"""Dashboard figures, reports, support tickets and stock alert notifications."""
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest
from django.core import mail
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.utils import timezone

from inventory import notifications
from purchases import services as purchase_services
from sales import services as sales_services
from sales.models import Sale
from website import services
from website.models import SupportTicket


@pytest.fixture
def trading_day(paracetamol, amoxicillin, make_batch, cashier, supplier, manager):
    """Three sales of a 4.00 cost batch at 10.00 each, plus one unpaid order."""
    make_batch(paracetamol, 'PCM-001', quantity=50)
    sales_services.create_sale(None, cashier, [{'product': paracetamol, 'quantity': 2}])
    sales_services.create_sale(None, cashier, [{'product': paracetamol, 'quantity': 1}],
                               payment_status=Sale.PAYMENT_PENDING)
    sales_services.create_sale(None, cashier, [{'product': paracetamol, 'quantity': 3}],
                               payment_status=Sale.PAYMENT_FAILED)
    purchase_services.create_purchase(
        supplier, manager, [{'product': paracetamol, 'quantity': 10, 'unit_price': Decimal('4.50')}],
    )


@pytest.mark.django_db
class TestDashboard:

    def test_kpis(self, trading_day, cashier):
        kpis = services.dashboard_kpis(cashier)

        assert kpis.date == timezone.localdate()
        assert (kpis.today_sales_count, kpis.today_sales_amount) == (2, Decimal('30.00'))
        assert (kpis.paid_invoice_count, kpis.paid_invoice_amount) == (1, Decimal('20.00'))
        assert kpis.sales_due == Decimal('10.00')
        assert kpis.purchase_due == Decimal('45.00')
        assert kpis.month_purchases == Decimal('45.00')
        assert kpis.net_profit == Decimal('-15.00')
        assert kpis.profit_margin == Decimal('-50.00')
        assert kpis.stock_value == Decimal('176.00')
        assert kpis.active_products == 2
        assert kpis.low_stock_count == 0
        assert kpis.open_tickets == 0
        assert len(kpis.recent_sales) == 3

    def test_growth_without_previous_month(self, trading_day):
        assert services.dashboard_kpis().sales_growth == Decimal('100.00')

    def test_empty_pharmacy(self, db):
        kpis = services.dashboard_kpis()
        assert kpis.month_sales_amount == Decimal('0.00')
        assert kpis.sales_growth == Decimal('0.00')
        assert kpis.profit_margin == Decimal('0.00')
        assert kpis.top_products == []

    def test_month_bounds(self):
        assert services.month_bounds(date(2024, 3, 15)) == (date(2024, 3, 1), date(2024, 2, 1), date(2024, 2, 29))


@pytest.mark.django_db
class TestReports:

    def test_profit_loss_uses_batch_cost(self, trading_day):
        today = timezone.localdate()
        report = services.profit_loss(today, today)

        assert report.revenue == Decimal('30.00')
        assert report.cost_of_goods == Decimal('12.00')
        assert report.gross_profit == Decimal('18.00')
        assert report.margin == Decimal('60.00')

    def test_sales_report(self, trading_day):
        today = timezone.localdate()
        report = services.sales_report(today, today)

        assert report.transactions == 2
        assert report.total_sales == Decimal('30.00')
        assert report.average_sale == Decimal('15.00')
        assert report.net_profit == Decimal('-15.00')
        assert [row['amount'] for row in report.daily] == [Decimal('30.00')]

    def test_stock_report(self, trading_day, paracetamol):
        report = services.stock_report()

        row = next(r for r in report.rows if r.product_id == paracetamol.pk)
        assert (row.stock, row.value, row.is_low) == (44, Decimal('176.00'), False)
        assert report.total_value == Decimal('176.00')
        assert [p.name for p in report.out_of_stock] == ['Amoxicillin 250mg']

    def test_antibiotic_report(self, amoxicillin, make_batch, cashier, customer):
        make_batch(amoxicillin, 'AMX-001')
        sales_services.create_sale(
            customer, cashier, [{'product': amoxicillin, 'quantity': 2}],
            prescription=sales_services.Prescription('Dr. Achieng', timezone.localdate()),
        )
        today = timezone.localdate()
        rows = list(services.antibiotic_report(today, today))
        assert [(row.customer.name, row.quantity) for row in rows] == [('Peter Kamau', 2)]


@pytest.mark.django_db
class TestSupportTickets:

    def test_lifecycle(self, cashier, manager):
        ticket = services.create_ticket(
            {'title': 'Receipt printer jammed', 'description': 'Paper stuck', 'priority': 'High'}, cashier,
        )
        assert ticket.ticket_number == f"TKT-{timezone.localdate():%Y%m%d}-0001"
        assert ticket.status == SupportTicket.STATUS_OPEN

        services.assign_ticket(ticket, manager, manager)
        assert ticket.status == SupportTicket.STATUS_IN_PROGRESS
        assert ticket.assigned_date is not None

        services.resolve_ticket(ticket, 'Cleared the paper path', manager)
        assert ticket.status == SupportTicket.STATUS_RESOLVED
        assert ticket.resolved_date is not None

        with pytest.raises(ValidationError):
            services.assign_ticket(ticket, cashier, manager)

        services.close_ticket(ticket, manager)
        ticket.refresh_from_db()
        assert ticket.status == SupportTicket.STATUS_CLOSED
        with pytest.raises(ValidationError):
            services.close_ticket(ticket, manager)

    def test_required_fields(self, cashier):
        with pytest.raises(ValidationError):
            services.create_ticket({'title': 'Something', 'description': ' '}, cashier)

    def test_resolution_required(self, cashier):
        ticket = services.create_ticket({'title': 'Login', 'description': 'Locked out'}, cashier)
        with pytest.raises(ValidationError):
            services.resolve_ticket(ticket, '', cashier)

    def test_inactive_assignee_rejected(self, cashier, manager):
        ticket = services.create_ticket({'title': 'Login', 'description': 'Locked out'}, cashier)
        cashier.is_active = False
        cashier.save()
        with pytest.raises(ValidationError):
            services.assign_ticket(ticket, cashier, manager)

    def test_filter(self, cashier):
        services.create_ticket({'title': 'A', 'description': 'a', 'priority': 'Low', 'category': 'Sales'}, cashier)
        services.create_ticket({'title': 'B', 'description': 'b', 'priority': 'High'}, cashier)

        assert [t.title for t in services.filter_tickets(priority='High')] == ['B']
        assert [t.title for t in services.filter_tickets(category='Sales')] == ['A']
        assert services.filter_tickets(status=SupportTicket.STATUS_OPEN).count() == 2

    def test_numbering_continues_past_four_digits(self, cashier):
        day = f"{timezone.localdate():%Y%m%d}"
        first = services.create_ticket({'title': 'A', 'description': 'a'}, cashier)
        second = services.create_ticket({'title': 'B', 'description': 'b'}, cashier)
        SupportTicket.objects.filter(pk=first.pk).update(ticket_number=f"TKT-{day}-9999")
        SupportTicket.objects.filter(pk=second.pk).update(ticket_number=f"TKT-{day}-10000")

        third = services.create_ticket({'title': 'C', 'description': 'c'}, cashier)

        assert third.ticket_number == f"TKT-{day}-10001"


@pytest.mark.django_db
class TestStockAlerts:

    @pytest.fixture
    def alerts_enabled(self, settings):
        settings.PHARMACY_CONFIG = {
            **settings.PHARMACY_CONFIG,
            'ENABLE_EMAIL_ALERTS': True,
            'ALERT_EMAILS': ['owner@example.com'],
        }

    @pytest.fixture
    def short_dated(self, paracetamol, make_batch):
        return make_batch(paracetamol, 'PCM-SOON', days=5, quantity=5)

    def test_expiry_email(self, alerts_enabled, short_dated):
        assert notifications.send_expiry_alerts() == 1
        assert len(mail.outbox) == 1
        assert '1 batch(es) expiring soon' in mail.outbox[0].subject
        assert 'PCM-SOON' in mail.outbox[0].body
        assert mail.outbox[0].to == ['owner@example.com']

    def test_low_stock_email(self, alerts_enabled, short_dated):
        assert notifications.send_low_stock_alerts() == 1
        assert 'Paracetamol 500mg' in mail.outbox[0].body

    def test_nothing_sent_when_disabled(self, settings, short_dated):
        settings.PHARMACY_CONFIG = {**settings.PHARMACY_CONFIG, 'ENABLE_EMAIL_ALERTS': False}
        assert notifications.send_expiry_alerts() == 0
        assert mail.outbox == []

    def test_command(self, alerts_enabled, short_dated):
        out = StringIO()
        call_command('send_stock_alerts', stdout=out)

        assert 'Expiry alerts emailed: 1' in out.getvalue()
        assert 'Low stock alerts emailed: 1' in out.getvalue()
        assert len(mail.outbox) == 2

    def test_command_expiry_only(self, alerts_enabled, short_dated):
        out = StringIO()
        call_command('send_stock_alerts', '--expiry-only', stdout=out)
        assert 'Low stock' not in out.getvalue()
        assert len(mail.outbox) == 1
