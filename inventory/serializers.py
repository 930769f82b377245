from django.contrib.auth.models import User
from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils import timezone
from rest_framework import serializers

from .models import Product, ProductBatch, StockAdjustment
from . import services


class UserSerializer(serializers.ModelSerializer):
    """Serializer for User model"""

    class Meta:
        model = User
        fields = ['id', 'username', 'first_name', 'last_name']
        read_only_fields = ['id']


class ProductSerializer(serializers.ModelSerializer):
    """Product with its current sellable stock"""

    total_stock = serializers.SerializerMethodField()
    is_low_stock = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            'id',
            'name',
            'generic_name',
            'manufacturer',
            'category',
            'description',
            'unit_price',
            'retail_price',
            'wholesale_price',
            'barcode',
            'low_stock_threshold',
            'requires_prescription',
            'is_active',
            'total_stock',
            'is_low_stock',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def get_total_stock(self, obj):
        # list views annotate stock; fall back to a query for single objects
        stock = getattr(obj, 'stock', None)
        return stock if stock is not None else obj.total_stock

    def get_is_low_stock(self, obj):
        stock = self.get_total_stock(obj)
        return 0 < stock <= obj.low_stock_threshold

    def validate(self, data):
        for field in services.PRODUCT_PRICE_FIELDS:
            value = data.get(field)
            if value is not None and value <= 0:
                raise serializers.ValidationError({field: 'Price must be greater than 0.'})
        return data


class ProductBatchSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    is_expired = serializers.BooleanField(read_only=True)
    days_until_expiry = serializers.IntegerField(read_only=True)

    class Meta:
        model = ProductBatch
        fields = [
            'id',
            'product',
            'product_name',
            'supplier',
            'supplier_name',
            'batch_number',
            'expiry_date',
            'quantity_in_stock',
            'cost_price',
            'is_expired',
            'days_until_expiry',
            'created_at',
        ]
        read_only_fields = ['id', 'created_at']

    def validate_expiry_date(self, value):
        if value <= timezone.localdate():
            raise serializers.ValidationError('Expiry date must be in the future.')
        return value

    def validate_quantity_in_stock(self, value):
        if value < 0:
            raise serializers.ValidationError('Quantity cannot be negative.')
        if self.instance is not None and value != self.instance.quantity_in_stock:
            raise serializers.ValidationError('Use a stock adjustment to change the quantity of a batch.')
        return value


class StockAdjustmentSerializer(serializers.ModelSerializer):
    """
    Read serializer for adjustments. Creating one goes through
    services.adjust_stock, so the quantity sent is the input amount and
    the stored before/after values are computed server side.
    """

    quantity = serializers.IntegerField(write_only=True, min_value=0)
    batch_number = serializers.CharField(source='batch.batch_number', read_only=True)
    product_name = serializers.CharField(source='batch.product.name', read_only=True)
    user_detail = UserSerializer(source='user', read_only=True)
    status = serializers.CharField(read_only=True)

    class Meta:
        model = StockAdjustment
        fields = [
            'id',
            'batch',
            'batch_number',
            'product_name',
            'adjustment_type',
            'quantity',
            'previous_quantity',
            'adjusted_quantity',
            'quantity_difference',
            'reason',
            'user_detail',
            'adjustment_date',
            'is_approved',
            'status',
            'approval_date',
            'rejection_reason',
        ]
        read_only_fields = [
            'id',
            'previous_quantity',
            'adjusted_quantity',
            'quantity_difference',
            'adjustment_date',
            'is_approved',
            'approval_date',
            'rejection_reason',
        ]

    def create(self, validated_data):
        request = self.context['request']
        try:
            return services.adjust_stock(
                validated_data['batch'],
                validated_data['adjustment_type'],
                validated_data['quantity'],
                validated_data['reason'],
                request.user,
                request=request,
            )
        except DjangoValidationError as e:
            raise serializers.ValidationError({'non_field_errors': e.messages})
