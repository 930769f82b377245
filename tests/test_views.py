"""Role-based access, login and the main HTML and API entry points."""
from decimal import Decimal

import pytest
from django.urls import reverse
from django.utils import timezone

from inventory import services as inventory_services
from inventory.models import ProductBatch, StockAdjustment
from purchases import services as purchase_services
from purchases.models import Purchase
from sales import services as sales_services
from sales.models import Customer, Sale
from users.models import AuditLog, Profile

AJAX = {'HTTP_X_REQUESTED_WITH': 'XMLHttpRequest'}


@pytest.mark.django_db
class TestLogin:

    def test_anonymous_redirected_to_login(self, client):
        response = client.get(reverse('dashboard'))
        assert response.status_code == 302
        assert response.url.startswith('/login/')

    def test_login_stores_role_in_session(self, client, cashier):
        response = client.post(reverse('login'), {'username': 'cashier', 'password': 'counter-pass-42'})

        assert response.status_code == 302
        assert response.url == reverse('dashboard')
        assert client.session['role'] == Profile.ROLE_EMPLOYEE
        assert client.session['user_name'] == 'Amina Otieno'

        cashier.profile.refresh_from_db()
        assert cashier.profile.last_login_ip == '127.0.0.1'
        assert AuditLog.objects.filter(action='LOGIN', user=cashier).exists()

    def test_admin_role(self, client, manager):
        client.post(reverse('login'), {'username': 'manager', 'password': 'manager-pass-42'})
        assert client.session['role'] == Profile.ROLE_ADMIN

    def test_wrong_password(self, client, cashier):
        response = client.post(reverse('login'), {'username': 'cashier', 'password': 'wrong'})
        assert response.status_code == 200
        assert 'role' not in client.session


@pytest.mark.django_db
class TestAdminOnlyPages:

    @pytest.mark.parametrize('url_name', [
        'reports',
        'users:user-list',
        'users:audit-log',
        'users:user-add',
        'inventory:product-create',
        'inventory:batch-create',
        'purchases:supplier-create',
    ])
    def test_employee_redirected_to_dashboard(self, cashier_client, url_name):
        response = cashier_client.get(reverse(url_name))
        assert response.status_code == 302
        assert response.url == reverse('dashboard')

    def test_ajax_denial_is_json(self, cashier_client, paracetamol, make_batch, cashier):
        batch = make_batch(paracetamol, 'PCM-001')
        adjustment = inventory_services.adjust_stock(batch, StockAdjustment.TYPE_INCREASE, 1, 'Found', cashier)

        response = cashier_client.post(reverse('inventory:adjustment-approve', args=[adjustment.pk]), **AJAX)

        assert response.status_code == 403
        assert response.json()['success'] is False
        adjustment.refresh_from_db()
        assert adjustment.is_approved is False

    def test_admin_approves_adjustment(self, manager_client, paracetamol, make_batch, cashier):
        batch = make_batch(paracetamol, 'PCM-001')
        adjustment = inventory_services.adjust_stock(batch, StockAdjustment.TYPE_INCREASE, 1, 'Found', cashier)

        response = manager_client.post(reverse('inventory:adjustment-approve', args=[adjustment.pk]))

        assert response.status_code == 302
        adjustment.refresh_from_db()
        assert adjustment.is_approved is True

    def test_approve_requires_post(self, manager_client, paracetamol, make_batch, cashier):
        batch = make_batch(paracetamol, 'PCM-001')
        adjustment = inventory_services.adjust_stock(batch, StockAdjustment.TYPE_INCREASE, 1, 'Found', cashier)
        response = manager_client.get(reverse('inventory:adjustment-approve', args=[adjustment.pk]))
        assert response.status_code == 405

    def test_employee_cannot_overwrite_batch_quantity(self, cashier_client, paracetamol, make_batch, supplier):
        batch = make_batch(paracetamol, 'PCM-001', quantity=50)

        response = cashier_client.post(reverse('inventory:batch-edit', args=[batch.pk]), {
            'product': paracetamol.pk,
            'supplier': supplier.pk,
            'batch_number': 'PCM-001',
            'expiry_date': batch.expiry_date.isoformat(),
            'quantity_in_stock': 500,
            'cost_price': '4.00',
        })

        assert response.status_code == 302
        assert response.url == reverse('dashboard')
        batch.refresh_from_db()
        assert batch.quantity_in_stock == 50
        assert not StockAdjustment.objects.exists()

    def test_admin_batch_edit_leaves_quantity_alone(self, manager_client, paracetamol, make_batch, supplier):
        batch = make_batch(paracetamol, 'PCM-001', quantity=50)

        response = manager_client.post(reverse('inventory:batch-edit', args=[batch.pk]), {
            'product': paracetamol.pk,
            'supplier': supplier.pk,
            'batch_number': 'PCM-001B',
            'expiry_date': batch.expiry_date.isoformat(),
            'quantity_in_stock': 500,
            'cost_price': '4.00',
        })

        assert response.status_code == 302
        assert response.url == reverse('inventory:batch-list')
        batch.refresh_from_db()
        assert (batch.batch_number, batch.quantity_in_stock) == ('PCM-001B', 50)

    def test_employee_denied_record_editing(self, cashier_client, paracetamol, make_batch, supplier, manager):
        batch = make_batch(paracetamol, 'PCM-001')
        purchase = purchase_services.create_purchase(
            supplier, manager, [{'product': paracetamol, 'quantity': 10, 'unit_price': Decimal('4.50')}],
        )
        urls = [
            reverse('inventory:product-edit', args=[paracetamol.pk]),
            reverse('inventory:batch-edit', args=[batch.pk]),
            reverse('purchases:supplier-edit', args=[supplier.pk]),
            reverse('purchases:purchase-receive', args=[purchase.pk]),
        ]
        for url in urls:
            response = cashier_client.get(url)
            assert response.status_code == 302
            assert response.url == reverse('dashboard')

    def test_employee_cannot_receive_purchase(self, cashier_client, paracetamol, supplier, manager):
        purchase = purchase_services.create_purchase(
            supplier, manager, [{'product': paracetamol, 'quantity': 10, 'unit_price': Decimal('4.50')}],
        )

        response = cashier_client.post(reverse('purchases:purchase-receive', args=[purchase.pk]), {}, **AJAX)

        assert response.status_code == 403
        purchase.refresh_from_db()
        assert purchase.status == Purchase.STATUS_PENDING
        assert not ProductBatch.objects.filter(product=paracetamol).exists()


@pytest.mark.django_db
class TestPages:

    def test_dashboard(self, cashier_client):
        response = cashier_client.get(reverse('dashboard'))
        assert response.status_code == 200
        assert response.context['is_admin'] is False

    def test_dashboard_json(self, cashier_client, paracetamol, make_batch, cashier):
        make_batch(paracetamol, 'PCM-001')
        sales_services.create_sale(None, cashier, [{'product': paracetamol, 'quantity': 2}])

        data = cashier_client.get(reverse('dashboard'), **AJAX).json()

        assert data['success'] is True
        assert Decimal(data['kpis']['today_sales_amount']) == Decimal('20.00')
        assert 'recent_sales' not in data['kpis']

    @pytest.mark.parametrize('report_type', ['sales', 'stock', 'profit', 'antibiotics'])
    def test_reports(self, manager_client, paracetamol, make_batch, report_type):
        make_batch(paracetamol, 'PCM-001')
        response = manager_client.get(reverse('reports'), {'type': report_type})
        assert response.status_code == 200
        assert response.context['report_type'] == report_type

    def test_antibiotic_csv_export(self, manager_client, amoxicillin, make_batch, customer, manager):
        make_batch(amoxicillin, 'AMX-001')
        sales_services.create_sale(
            customer, manager, [{'product': amoxicillin, 'quantity': 1}],
            prescription=sales_services.Prescription('Dr. Mwangi', timezone.localdate()),
        )

        response = manager_client.get(reverse('reports'), {'type': 'antibiotics', 'export': 'csv'})

        assert response['Content-Type'] == 'text/csv'
        rows = response.content.decode().strip().splitlines()
        assert len(rows) == 2
        assert 'Dr. Mwangi' in rows[1]
        assert AuditLog.objects.filter(action='EXPORT').exists()

    @pytest.mark.parametrize('url_name', [
        'inventory:product-list',
        'inventory:batch-list',
        'inventory:expiring',
        'inventory:low-stock',
        'inventory:adjustment-list',
        'sales:customer-list',
        'purchases:supplier-list',
        'ticket-list',
    ])
    def test_lists_render(self, manager_client, paracetamol, make_batch, url_name):
        make_batch(paracetamol, 'PCM-001', days=10, quantity=3)
        assert manager_client.get(reverse(url_name)).status_code == 200

    def test_list_page_size_from_settings(self, manager_client, settings):
        response = manager_client.get(reverse('inventory:product-list'))
        assert response.context['paginator'].per_page == settings.PHARMACY_CONFIG['LIST_PAGE_SIZE']


@pytest.mark.django_db
class TestSaleViews:

    def sale_data(self, product, quantity):
        return {
            'customer': '',
            'payment_status': Sale.PAYMENT_PAID,
            'note': '',
            'doctor_name': '',
            'prescription_date': '',
            'items-TOTAL_FORMS': '1',
            'items-INITIAL_FORMS': '0',
            'items-MIN_NUM_FORMS': '1',
            'items-MAX_NUM_FORMS': '1000',
            'items-0-product': str(product.pk),
            'items-0-batch': '',
            'items-0-quantity': str(quantity),
            'items-0-unit_price': '',
            'items-0-discount': '',
        }

    def test_create_sale(self, cashier_client, paracetamol, make_batch):
        batch = make_batch(paracetamol, 'PCM-001', quantity=10)

        response = cashier_client.post(reverse('sales:sale-create'), self.sale_data(paracetamol, 4))

        sale = Sale.objects.get()
        assert response.status_code == 302
        assert response.url == reverse('sales:sale-detail', args=[sale.pk])
        assert sale.total_amount == Decimal('40.00')
        batch.refresh_from_db()
        assert batch.quantity_in_stock == 6

    def test_create_sale_insufficient_stock(self, cashier_client, paracetamol, make_batch):
        make_batch(paracetamol, 'PCM-001', quantity=2)

        response = cashier_client.post(reverse('sales:sale-create'), self.sale_data(paracetamol, 3), **AJAX)

        assert response.status_code == 400
        assert 'Insufficient stock' in response.json()['message']
        assert not Sale.objects.exists()

    def test_employees_see_only_their_sales(self, cashier_client, paracetamol, make_batch, cashier, manager):
        make_batch(paracetamol, 'PCM-001')
        own = sales_services.create_sale(None, cashier, [{'product': paracetamol, 'quantity': 1}])
        sales_services.create_sale(None, manager, [{'product': paracetamol, 'quantity': 1}])

        response = cashier_client.get(reverse('sales:sale-list'))

        assert list(response.context['sales']) == [own]

    def test_invoice(self, cashier_client, paracetamol, make_batch, cashier):
        make_batch(paracetamol, 'PCM-001')
        sale = sales_services.create_sale(None, cashier, [{'product': paracetamol, 'quantity': 1}])

        response = cashier_client.get(reverse('sales:sale-invoice', args=[sale.pk]))

        assert response.status_code == 200
        assert sale.invoice_number in response.content.decode()


@pytest.mark.django_db
class TestAdjustmentApi:

    def test_create(self, cashier_client, paracetamol, make_batch):
        batch = make_batch(paracetamol, 'PCM-001', quantity=20)

        response = cashier_client.post('/inventory/api/adjustments/', {
            'batch': batch.pk,
            'adjustment_type': StockAdjustment.TYPE_DECREASE,
            'quantity': 4,
            'reason': 'Broken bottles',
        }, content_type='application/json')

        assert response.status_code == 201
        body = response.json()
        assert (body['previous_quantity'], body['adjusted_quantity'], body['status']) == (20, 16, 'Pending')
        batch.refresh_from_db()
        assert batch.quantity_in_stock == 16

    def test_negative_result_is_400(self, cashier_client, paracetamol, make_batch):
        batch = make_batch(paracetamol, 'PCM-001', quantity=2)
        response = cashier_client.post('/inventory/api/adjustments/', {
            'batch': batch.pk,
            'adjustment_type': StockAdjustment.TYPE_DECREASE,
            'quantity': 4,
            'reason': 'Broken bottles',
        }, content_type='application/json')
        assert response.status_code == 400

    def test_employee_cannot_approve(self, cashier_client, paracetamol, make_batch, cashier):
        batch = make_batch(paracetamol, 'PCM-001')
        adjustment = inventory_services.adjust_stock(batch, StockAdjustment.TYPE_INCREASE, 1, 'Found', cashier)
        response = cashier_client.post(f'/inventory/api/adjustments/{adjustment.pk}/approve/')
        assert response.status_code == 403


@pytest.mark.django_db
class TestCustomerViews:

    def test_create_get_delete(self, manager_client):
        response = manager_client.post(reverse('sales:customer-create'), {
            'name': 'Mary Atieno',
            'contact_number': '0733444555',
            'email': '',
            'address': 'Kisumu',
        })
        assert response.status_code == 302

        customer = Customer.objects.get(contact_number='0733444555')
        detail = reverse('sales:customer-detail', args=[customer.pk])
        assert manager_client.get(detail).status_code == 200

        manager_client.post(reverse('sales:customer-delete', args=[customer.pk]))
        assert manager_client.get(detail).status_code == 404

    def test_duplicate_contact_rejected(self, cashier_client, customer):
        response = cashier_client.post(reverse('sales:customer-create'), {
            'name': 'Other Person',
            'contact_number': customer.contact_number,
        }, **AJAX)
        assert response.status_code == 400
        assert Customer.objects.count() == 1

    def test_search_json(self, cashier_client, customer):
        data = cashier_client.get(reverse('sales:customer-search'), {'q': 'kamau'}).json()
        assert [row['name'] for row in data['results']] == ['Peter Kamau']
