from django import forms
from django.utils import timezone

from purchases.models import Supplier

from .models import Product, ProductBatch, StockAdjustment


class ProductForm(forms.ModelForm):

    class Meta:
        model = Product
        fields = [
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
        ]
        widgets = {
            'name': forms.TextInput(attrs={'class': 'form-control', 'placeholder': 'e.g. Amoxil 500mg'}),
            'generic_name': forms.TextInput(attrs={'class': 'form-control', 'placeholder': 'e.g. Amoxicillin'}),
            'manufacturer': forms.TextInput(attrs={'class': 'form-control'}),
            'category': forms.TextInput(attrs={'class': 'form-control', 'placeholder': 'e.g. Antibiotic'}),
            'description': forms.Textarea(attrs={'class': 'form-control', 'rows': 3}),
            'unit_price': forms.NumberInput(attrs={'class': 'form-control', 'step': '0.01', 'min': '0.01'}),
            'retail_price': forms.NumberInput(attrs={'class': 'form-control', 'step': '0.01', 'min': '0.01'}),
            'wholesale_price': forms.NumberInput(attrs={'class': 'form-control', 'step': '0.01', 'min': '0.01'}),
            'barcode': forms.TextInput(attrs={'class': 'form-control', 'placeholder': 'Scan or type barcode'}),
            'low_stock_threshold': forms.NumberInput(attrs={'class': 'form-control', 'min': 0}),
            'requires_prescription': forms.CheckboxInput(attrs={'class': 'form-check-input'}),
            'is_active': forms.CheckboxInput(attrs={'class': 'form-check-input'}),
        }

    def clean(self):
        cleaned_data = super().clean()
        for field in ('unit_price', 'retail_price', 'wholesale_price'):
            value = cleaned_data.get(field)
            if value is not None and value <= 0:
                self.add_error(field, "Price must be greater than 0.")
        return cleaned_data


class ProductBatchForm(forms.ModelForm):

    class Meta:
        model = ProductBatch
        fields = ['product', 'supplier', 'batch_number', 'expiry_date', 'quantity_in_stock', 'cost_price']
        widgets = {
            'product': forms.Select(attrs={'class': 'form-control'}),
            'supplier': forms.Select(attrs={'class': 'form-control'}),
            'batch_number': forms.TextInput(attrs={'class': 'form-control'}),
            'expiry_date': forms.DateInput(attrs={'class': 'form-control', 'type': 'date'}),
            'quantity_in_stock': forms.NumberInput(attrs={'class': 'form-control', 'min': 0}),
            'cost_price': forms.NumberInput(attrs={'class': 'form-control', 'step': '0.01', 'min': 0}),
        }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['product'].queryset = Product.objects.active()
        self.fields['supplier'].queryset = Supplier.objects.filter(is_active=True)
        if self.instance.pk:
            # quantities on an existing batch change through stock adjustments
            self.fields['quantity_in_stock'].disabled = True
            self.fields['quantity_in_stock'].help_text = "Use a stock adjustment to change the count"

    def clean_expiry_date(self):
        expiry_date = self.cleaned_data['expiry_date']
        if expiry_date <= timezone.localdate():
            raise forms.ValidationError("Expiry date must be in the future.")
        return expiry_date


class StockAdjustmentForm(forms.Form):
    adjustment_type = forms.ChoiceField(
        choices=StockAdjustment.TYPE_CHOICES,
        widget=forms.Select(attrs={'class': 'form-control'}),
    )
    quantity = forms.IntegerField(
        min_value=0,
        widget=forms.NumberInput(attrs={'class': 'form-control', 'min': 0}),
        help_text="Units to add or remove, or the counted total for a correction",
    )
    reason = forms.CharField(
        max_length=500,
        widget=forms.Textarea(attrs={'class': 'form-control', 'rows': 2, 'placeholder': 'Why is the count changing?'}),
    )


class RejectAdjustmentForm(forms.Form):
    reason = forms.CharField(
        max_length=500,
        widget=forms.Textarea(attrs={'class': 'form-control', 'rows': 2}),
    )
