from rest_framework import serializers
from .models import Customer, Sale, SaleItem


class SaleItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    batch_number = serializers.CharField(source='batch.batch_number', read_only=True)

    class Meta:
        model = SaleItem
        fields = ['id', 'product', 'product_name', 'batch', 'batch_number', 'quantity', 'unit_price', 'discount', 'total_price']
        read_only_fields = fields


class SaleSerializer(serializers.ModelSerializer):
    user_username = serializers.CharField(source='user.username', read_only=True)
    customer_name = serializers.CharField(read_only=True)
    items = SaleItemSerializer(many=True, read_only=True)

    class Meta:
        model = Sale
        fields = ['id', 'invoice_number', 'sale_date', 'customer', 'customer_name', 'user_username',
                  'total_amount', 'payment_status', 'note', 'items']
        read_only_fields = fields


class CustomerSerializer(serializers.ModelSerializer):

    class Meta:
        model = Customer
        fields = ['id', 'name', 'contact_number', 'email', 'address']
