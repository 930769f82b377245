from datetime import timedelta
from decimal import Decimal

import pytest
from django.contrib.auth.models import User
from django.utils import timezone

from inventory.models import Product, ProductBatch
from purchases.models import Supplier
from sales.models import Customer
from users.models import Profile


@pytest.fixture
def cashier(db):
    return User.objects.create_user('cashier', password='counter-pass-42', first_name='Amina', last_name='Otieno')


@pytest.fixture
def manager(db):
    user = User.objects.create_user('manager', password='manager-pass-42')
    user.profile.role = Profile.ROLE_ADMIN
    user.profile.save()
    return user


@pytest.fixture
def cashier_client(client, cashier):
    client.force_login(cashier)
    return client


@pytest.fixture
def manager_client(client, manager):
    client.force_login(manager)
    return client


@pytest.fixture
def supplier(db):
    return Supplier.objects.create(name='MediSupply Ltd', contact_person='Jane Wanjiku', phone_number='0711000000')


@pytest.fixture
def customer(db):
    return Customer.objects.create(name='Peter Kamau', contact_number='0722000111')


@pytest.fixture
def paracetamol(db):
    return Product.objects.create(
        name='Paracetamol 500mg',
        generic_name='Paracetamol',
        manufacturer='Cosmos',
        category='Analgesic',
        unit_price=Decimal('5.00'),
        retail_price=Decimal('10.00'),
        wholesale_price=Decimal('8.00'),
        low_stock_threshold=10,
    )


@pytest.fixture
def amoxicillin(db):
    return Product.objects.create(
        name='Amoxicillin 250mg',
        generic_name='Amoxicillin',
        manufacturer='Dawa',
        category='Antibiotic',
        unit_price=Decimal('20.00'),
        retail_price=Decimal('35.00'),
        wholesale_price=Decimal('30.00'),
        requires_prescription=True,
    )


@pytest.fixture
def make_batch(supplier):
    """Build a batch expiring ``days`` from today."""

    def _make(product, batch_number, days=365, quantity=50, cost_price=Decimal('4.00')):
        return ProductBatch.objects.create(
            product=product,
            supplier=supplier,
            batch_number=batch_number,
            expiry_date=timezone.localdate() + timedelta(days=days),
            quantity_in_stock=quantity,
            cost_price=cost_price,
        )

    return _make
