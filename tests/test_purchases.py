from datetime import timedelta
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError
from django.utils import timezone

from inventory.models import ProductBatch
from purchases import services
from purchases.models import Purchase
from users.models import AuditLog


@pytest.fixture
def order(supplier, paracetamol, amoxicillin, manager):
    expiry = timezone.localdate() + timedelta(days=500)
    return services.create_purchase(supplier, manager, [
        {'product': paracetamol, 'quantity': 100, 'unit_price': Decimal('4.50'),
         'batch_number': 'PCM-NEW', 'expiry_date': expiry},
        {'product': amoxicillin, 'quantity': 20, 'unit_price': Decimal('18.00')},
    ])


@pytest.mark.django_db
class TestCreatePurchase:

    def test_totals_and_numbering(self, order):
        assert order.status == Purchase.STATUS_PENDING
        assert order.total_amount == Decimal('810.00')
        assert order.payment_status == Purchase.PAYMENT_PENDING
        assert order.order_number == f"PO-{timezone.localdate():%Y%m%d}-0001"
        assert order.items.count() == 2

    def test_upfront_payment_sets_status(self, supplier, paracetamol, manager):
        purchase = services.create_purchase(
            supplier, manager, [{'product': paracetamol, 'quantity': 10, 'unit_price': Decimal('5.00')}],
            paid_amount=Decimal('20.00'),
        )
        assert purchase.payment_status == Purchase.PAYMENT_PARTIAL
        assert purchase.due_amount == Decimal('30.00')

    def test_requires_items(self, supplier, manager):
        with pytest.raises(ValidationError):
            services.create_purchase(supplier, manager, [])

    def test_inactive_supplier_rejected(self, supplier, paracetamol, manager):
        supplier.is_active = False
        supplier.save()
        with pytest.raises(ValidationError):
            services.create_purchase(
                supplier, manager, [{'product': paracetamol, 'quantity': 1, 'unit_price': Decimal('1.00')}],
            )

    def test_overpayment_rejected(self, supplier, paracetamol, manager):
        with pytest.raises(ValidationError):
            services.create_purchase(
                supplier, manager, [{'product': paracetamol, 'quantity': 1, 'unit_price': Decimal('1.00')}],
                paid_amount=Decimal('2.00'),
            )


@pytest.mark.django_db
class TestReceivePurchase:

    def test_full_receipt_creates_batches(self, order, manager, paracetamol, amoxicillin, supplier):
        services.receive_purchase(order, None, manager)
        order.refresh_from_db()

        assert order.status == Purchase.STATUS_DELIVERED
        assert order.received_date is not None

        pcm = ProductBatch.objects.get(product=paracetamol)
        assert (pcm.batch_number, pcm.quantity_in_stock, pcm.cost_price) == ('PCM-NEW', 100, Decimal('4.50'))
        assert pcm.supplier == supplier

        amx = ProductBatch.objects.get(product=amoxicillin)
        assert amx.expiry_date == timezone.localdate() + timedelta(days=730)
        assert amx.batch_number.startswith(order.order_number)
        assert AuditLog.objects.filter(action='RECEIVE', entity_id=str(order.pk)).exists()

    def test_partial_receipt(self, order, manager, paracetamol, amoxicillin):
        pcm_item = order.items.get(product=paracetamol)
        services.receive_purchase(order, {pcm_item.pk: 60}, manager)

        pcm_item.refresh_from_db()
        assert pcm_item.received_quantity == 60
        assert paracetamol.total_stock == 60
        assert not ProductBatch.objects.filter(product=amoxicillin).exists()

    def test_merges_into_existing_batch(self, order, manager, paracetamol, make_batch):
        existing = make_batch(paracetamol, 'PCM-NEW', days=500, quantity=10)
        services.receive_purchase(order, None, manager)
        existing.refresh_from_db()
        assert existing.quantity_in_stock == 110
        assert ProductBatch.objects.filter(product=paracetamol).count() == 1

    def test_existing_batch_with_other_expiry_rejected(self, order, manager, paracetamol, make_batch):
        existing = make_batch(paracetamol, 'PCM-NEW', days=90, quantity=10)
        with pytest.raises(ValidationError):
            services.receive_purchase(order, None, manager)

        existing.refresh_from_db()
        order.refresh_from_db()
        assert existing.quantity_in_stock == 10
        assert order.status == Purchase.STATUS_PENDING

    def test_cancelled_order_cannot_be_received(self, order, manager):
        services.cancel_purchase(order, manager, 'Supplier out of stock')
        with pytest.raises(ValidationError):
            services.receive_purchase(order, None, manager)
        assert not ProductBatch.objects.exists()

    def test_second_receipt_through_stale_copy_rejected(self, order, manager):
        first = Purchase.objects.get(pk=order.pk)
        second = Purchase.objects.get(pk=order.pk)

        services.receive_purchase(first, None, manager)
        with pytest.raises(ValidationError):
            services.receive_purchase(second, None, manager)

        assert ProductBatch.objects.get(batch_number='PCM-NEW').quantity_in_stock == 100
        assert AuditLog.objects.filter(action='RECEIVE', entity_id=str(order.pk)).count() == 1


@pytest.mark.django_db
class TestPurchaseWorkflow:

    def test_approve_then_order(self, order, manager):
        services.approve_purchase(order, manager)
        services.mark_ordered(order, manager)
        order.refresh_from_db()
        assert order.status == Purchase.STATUS_ORDERED

    def test_cannot_order_before_approval(self, order, manager):
        with pytest.raises(ValidationError):
            services.mark_ordered(order, manager)

    def test_cancel_needs_reason_and_keeps_it(self, order, manager):
        with pytest.raises(ValidationError):
            services.cancel_purchase(order, manager, ' ')

        services.cancel_purchase(order, manager, 'Duplicate order')
        order.refresh_from_db()
        assert order.status == Purchase.STATUS_CANCELLED
        assert 'Cancelled: Duplicate order' in order.notes

    def test_delivered_order_cannot_be_cancelled(self, order, manager):
        services.receive_purchase(order, None, manager)
        with pytest.raises(ValidationError):
            services.cancel_purchase(order, manager, 'Too late')

    def test_stale_copy_cannot_cancel_received_order(self, order, manager):
        stale = Purchase.objects.get(pk=order.pk)
        services.receive_purchase(order, None, manager)

        with pytest.raises(ValidationError):
            services.cancel_purchase(stale, manager, 'Changed our mind')
        order.refresh_from_db()
        assert order.status == Purchase.STATUS_DELIVERED


@pytest.mark.django_db
class TestPayments:

    def test_partial_then_paid(self, order, manager):
        services.record_payment(order, Decimal('300.00'), manager)
        order.refresh_from_db()
        assert order.payment_status == Purchase.PAYMENT_PARTIAL

        services.record_payment(order, Decimal('510.00'), manager)
        order.refresh_from_db()
        assert order.payment_status == Purchase.PAYMENT_PAID
        assert order.due_amount == Decimal('0.00')

    def test_overpayment_rejected(self, order, manager):
        with pytest.raises(ValidationError):
            services.record_payment(order, Decimal('810.01'), manager)

    def test_order_value_excludes_cancelled(self, order, supplier, paracetamol, manager):
        other = services.create_purchase(
            supplier, manager, [{'product': paracetamol, 'quantity': 1, 'unit_price': Decimal('100.00')}],
        )
        services.cancel_purchase(other, manager, 'Not needed')
        today = timezone.localdate()
        assert services.total_order_value(today, today) == Decimal('810.00')


@pytest.mark.django_db
class TestSuppliers:

    def test_duplicate_name_is_case_insensitive(self, supplier, manager):
        with pytest.raises(ValidationError) as excinfo:
            services.create_supplier(
                {'name': 'medisupply ltd', 'contact_person': 'Tom', 'phone_number': '0700111222'}, manager,
            )
        assert 'name' in excinfo.value.message_dict

    def test_invalid_email_rejected(self, manager):
        with pytest.raises(ValidationError) as excinfo:
            services.create_supplier(
                {'name': 'Pharmaken', 'contact_person': 'Tom', 'phone_number': '0700111222', 'email': 'nope'},
                manager,
            )
        assert 'email' in excinfo.value.message_dict

    def test_supplier_with_batches_cannot_be_deleted(self, supplier, paracetamol, make_batch, manager):
        make_batch(paracetamol, 'PCM-001')
        with pytest.raises(ValidationError):
            services.delete_supplier(supplier, manager)

    def test_toggle_status(self, supplier, manager):
        services.toggle_supplier_status(supplier, manager)
        supplier.refresh_from_db()
        assert supplier.is_active is False
