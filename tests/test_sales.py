"""Sale fulfillment: batch allocation, discounts, prescriptions and reversal."""
from datetime import timedelta
from decimal import Decimal

import pytest
from django.core.exceptions import PermissionDenied, ValidationError
from django.utils import timezone

from sales import services
from sales.models import AntibioticLog, Customer, Sale, SaleItem
from users.models import AuditLog


def quantities(*batches):
    for batch in batches:
        batch.refresh_from_db()
    return [batch.quantity_in_stock for batch in batches]


@pytest.mark.django_db
class TestBatchAllocation:

    def test_earliest_expiry_sold_first(self, paracetamol, make_batch, cashier):
        late = make_batch(paracetamol, 'LATE', days=300, quantity=10)
        early = make_batch(paracetamol, 'EARLY', days=60, quantity=4)

        sale = services.create_sale(None, cashier, [{'product': paracetamol, 'quantity': 6}])

        assert quantities(early, late) == [0, 8]
        items = list(sale.items.order_by('id'))
        assert [(item.batch.batch_number, item.quantity) for item in items] == [('EARLY', 4), ('LATE', 2)]
        assert sale.total_amount == Decimal('60.00')
        assert sale.customer_name == 'Walk-in'

    def test_expired_and_empty_batches_skipped(self, paracetamol, make_batch, cashier):
        expired = make_batch(paracetamol, 'EXPIRED', days=-1, quantity=50)
        make_batch(paracetamol, 'EMPTY', days=10, quantity=0)
        good = make_batch(paracetamol, 'GOOD', days=100, quantity=5)

        services.create_sale(None, cashier, [{'product': paracetamol, 'quantity': 5}])

        assert quantities(expired, good) == [50, 0]

    def test_insufficient_stock_rolls_back(self, paracetamol, amoxicillin, make_batch, cashier, customer):
        pcm = make_batch(paracetamol, 'PCM-001', quantity=10)
        make_batch(paracetamol, 'PCM-OLD', days=-5, quantity=100)

        with pytest.raises(ValidationError) as excinfo:
            services.create_sale(customer, cashier, [
                {'product': paracetamol, 'quantity': 5},
                {'product': paracetamol, 'quantity': 6},
            ])

        assert 'Insufficient stock for Paracetamol 500mg' in excinfo.value.messages[0]
        assert quantities(pcm) == [10]
        assert not Sale.objects.exists()
        assert not SaleItem.objects.exists()

    def test_explicit_batch(self, paracetamol, make_batch, cashier):
        early = make_batch(paracetamol, 'EARLY', days=30, quantity=10)
        late = make_batch(paracetamol, 'LATE', days=300, quantity=10)

        services.create_sale(None, cashier, [{'product': paracetamol, 'batch': late, 'quantity': 3}])

        assert quantities(early, late) == [10, 7]

    def test_explicit_batch_must_cover_quantity(self, paracetamol, make_batch, cashier):
        batch = make_batch(paracetamol, 'SMALL', quantity=2)
        make_batch(paracetamol, 'BIG', quantity=100)
        with pytest.raises(ValidationError):
            services.create_sale(None, cashier, [{'product': paracetamol, 'batch': batch, 'quantity': 3}])

    def test_explicit_expired_batch_rejected(self, paracetamol, make_batch, cashier):
        batch = make_batch(paracetamol, 'OLD', days=0, quantity=20)
        with pytest.raises(ValidationError):
            services.create_sale(None, cashier, [{'product': paracetamol, 'batch': batch, 'quantity': 1}])

    def test_batch_of_another_product_rejected(self, paracetamol, amoxicillin, make_batch, cashier):
        wrong = make_batch(amoxicillin, 'AMX-001')
        with pytest.raises(ValidationError):
            services.create_sale(None, cashier, [{'product': paracetamol, 'batch': wrong, 'quantity': 1}])


@pytest.mark.django_db
class TestPricing:

    def test_custom_price_and_discount(self, paracetamol, make_batch, cashier):
        make_batch(paracetamol, 'PCM-001', quantity=10)
        sale = services.create_sale(None, cashier, [
            {'product': paracetamol, 'quantity': 3, 'unit_price': Decimal('9.00'), 'discount': Decimal('2.00')},
        ])
        item = sale.items.get()
        assert item.total_price == Decimal('25.00')
        assert sale.total_amount == Decimal('25.00')
        assert sale.total_discount == Decimal('2.00')

    def test_discount_split_across_batches(self, paracetamol, make_batch, cashier):
        make_batch(paracetamol, 'EARLY', days=30, quantity=1)
        make_batch(paracetamol, 'LATE', days=300, quantity=10)

        sale = services.create_sale(None, cashier, [
            {'product': paracetamol, 'quantity': 3, 'discount': Decimal('15.00')},
        ])

        discounts = [item.discount for item in sale.items.order_by('id')]
        assert discounts == [Decimal('10.00'), Decimal('5.00')]
        assert sale.total_amount == Decimal('15.00')

    def test_discount_above_line_value_rejected(self, paracetamol, make_batch, cashier):
        make_batch(paracetamol, 'PCM-001', quantity=10)
        with pytest.raises(ValidationError):
            services.create_sale(None, cashier, [
                {'product': paracetamol, 'quantity': 1, 'discount': Decimal('11.00')},
            ])

    def test_invoice_numbers_follow_daily_sequence(self, paracetamol, make_batch, cashier):
        make_batch(paracetamol, 'PCM-001', quantity=10)
        first = services.create_sale(None, cashier, [{'product': paracetamol, 'quantity': 1}])
        second = services.create_sale(None, cashier, [{'product': paracetamol, 'quantity': 1}])

        day = timezone.localdate().strftime('%Y%m%d')
        assert first.invoice_number == f'INV-{day}-0001'
        assert second.invoice_number == f'INV-{day}-0002'

    def test_inactive_product_cannot_be_sold(self, paracetamol, make_batch, cashier):
        make_batch(paracetamol, 'PCM-001', quantity=10)
        paracetamol.is_active = False
        paracetamol.save()
        with pytest.raises(ValidationError):
            services.create_sale(None, cashier, [{'product': paracetamol, 'quantity': 1}])


@pytest.mark.django_db
class TestPrescriptionProducts:

    @pytest.fixture
    def prescription(self):
        return services.Prescription(doctor_name='Dr. Mwangi', prescription_date=timezone.localdate())

    def test_requires_customer(self, amoxicillin, make_batch, cashier, prescription):
        make_batch(amoxicillin, 'AMX-001')
        with pytest.raises(ValidationError):
            services.create_sale(None, cashier, [{'product': amoxicillin, 'quantity': 1}], prescription=prescription)

    def test_requires_prescription(self, amoxicillin, make_batch, cashier, customer):
        make_batch(amoxicillin, 'AMX-001')
        with pytest.raises(ValidationError):
            services.create_sale(customer, cashier, [{'product': amoxicillin, 'quantity': 1}])

    def test_logs_each_allocation(self, amoxicillin, make_batch, cashier, customer, prescription):
        make_batch(amoxicillin, 'AMX-EARLY', days=40, quantity=2)
        make_batch(amoxicillin, 'AMX-LATE', days=400, quantity=10)

        sale = services.create_sale(
            customer, cashier, [{'product': amoxicillin, 'quantity': 5}], prescription=prescription,
        )

        logs = AntibioticLog.objects.filter(sale=sale).order_by('id')
        assert [(log.batch.batch_number, log.quantity) for log in logs] == [('AMX-EARLY', 2), ('AMX-LATE', 3)]
        assert all(log.doctor_name == 'Dr. Mwangi' and log.customer == customer for log in logs)


@pytest.mark.django_db
class TestSaleReversal:

    def test_delete_restores_stock(self, paracetamol, make_batch, cashier, manager):
        early = make_batch(paracetamol, 'EARLY', days=30, quantity=3)
        late = make_batch(paracetamol, 'LATE', days=300, quantity=10)
        sale = services.create_sale(None, cashier, [{'product': paracetamol, 'quantity': 5}])
        assert quantities(early, late) == [0, 8]

        services.delete_sale(sale, manager)

        assert quantities(early, late) == [3, 10]
        assert not Sale.objects.exists()
        assert AuditLog.objects.filter(action='DELETE', entity_type='Sale').exists()

    def test_employee_cannot_delete(self, paracetamol, make_batch, cashier):
        make_batch(paracetamol, 'PCM-001')
        sale = services.create_sale(None, cashier, [{'product': paracetamol, 'quantity': 1}])
        with pytest.raises(PermissionDenied):
            services.delete_sale(sale, cashier)
        assert Sale.objects.filter(pk=sale.pk).exists()

    def test_payment_status_admin_only(self, paracetamol, make_batch, cashier, manager):
        make_batch(paracetamol, 'PCM-001')
        sale = services.create_sale(None, cashier, [{'product': paracetamol, 'quantity': 1}],
                                    payment_status=Sale.PAYMENT_PENDING)
        with pytest.raises(PermissionDenied):
            services.update_payment_status(sale, Sale.PAYMENT_PAID, cashier)

        services.update_payment_status(sale, Sale.PAYMENT_PAID, manager)
        sale.refresh_from_db()
        assert sale.payment_status == Sale.PAYMENT_PAID


@pytest.mark.django_db
class TestSalesQueries:

    def test_totals_exclude_failed_payments(self, paracetamol, amoxicillin, make_batch, cashier, customer):
        make_batch(paracetamol, 'PCM-001', quantity=100)
        services.create_sale(None, cashier, [{'product': paracetamol, 'quantity': 2}])
        services.create_sale(None, cashier, [{'product': paracetamol, 'quantity': 5}],
                             payment_status=Sale.PAYMENT_FAILED)
        today = timezone.localdate()

        assert services.total_sales(today, today) == Decimal('20.00')
        assert services.total_sales(today - timedelta(days=10), today - timedelta(days=1)) == Decimal('0.00')

        top = services.top_selling_products(5, today, today)
        assert [(row.name, row.quantity, row.revenue) for row in top] == [('Paracetamol 500mg', 2, Decimal('20.00'))]

    def test_visible_to_limits_employees(self, paracetamol, make_batch, cashier, manager):
        make_batch(paracetamol, 'PCM-001', quantity=100)
        own = services.create_sale(None, cashier, [{'product': paracetamol, 'quantity': 1}])
        services.create_sale(None, manager, [{'product': paracetamol, 'quantity': 1}])

        assert list(Sale.objects.visible_to(cashier)) == [own]
        assert Sale.objects.visible_to(manager).count() == 2


@pytest.mark.django_db
class TestCustomers:

    def test_duplicate_contact_number_rejected(self, customer, cashier):
        with pytest.raises(ValidationError) as excinfo:
            services.create_customer({'name': 'Someone Else', 'contact_number': customer.contact_number}, cashier)
        assert 'contact_number' in excinfo.value.message_dict

    def test_customer_with_sales_cannot_be_deleted(self, customer, paracetamol, make_batch, cashier):
        make_batch(paracetamol, 'PCM-001')
        services.create_sale(customer, cashier, [{'product': paracetamol, 'quantity': 1}])
        with pytest.raises(ValidationError):
            services.delete_customer(customer, cashier)
        assert Customer.objects.filter(pk=customer.pk).exists()
