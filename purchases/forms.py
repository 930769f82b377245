from decimal import Decimal

from django import forms
from django.forms import inlineformset_factory

from inventory.models import Product

from .models import Purchase, PurchaseItem, Supplier


class SupplierForm(forms.ModelForm):

    class Meta:
        model = Supplier
        fields = ['name', 'contact_person', 'phone_number', 'email', 'address', 'is_active']
        widgets = {
            'name': forms.TextInput(attrs={'class': 'form-control', 'placeholder': 'Supplier name'}),
            'contact_person': forms.TextInput(attrs={'class': 'form-control'}),
            'phone_number': forms.TextInput(attrs={'class': 'form-control', 'placeholder': '0712345678'}),
            'email': forms.EmailInput(attrs={'class': 'form-control'}),
            'address': forms.Textarea(attrs={'class': 'form-control', 'rows': 2}),
            'is_active': forms.CheckboxInput(attrs={'class': 'form-check-input'}),
        }


class PurchaseForm(forms.ModelForm):
    """Order header; the items come from PurchaseItemFormSet."""

    class Meta:
        model = Purchase
        fields = ['supplier', 'expected_delivery_date', 'paid_amount', 'notes']
        widgets = {
            'supplier': forms.Select(attrs={'class': 'form-control'}),
            'expected_delivery_date': forms.DateInput(attrs={'class': 'form-control', 'type': 'date'}),
            'paid_amount': forms.NumberInput(attrs={'class': 'form-control', 'step': '0.01', 'min': 0}),
            'notes': forms.Textarea(attrs={'class': 'form-control', 'rows': 2}),
        }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['supplier'].queryset = Supplier.objects.filter(is_active=True)
        self.fields['paid_amount'].required = False


class PurchaseItemForm(forms.ModelForm):

    class Meta:
        model = PurchaseItem
        fields = ['product', 'ordered_quantity', 'unit_price', 'batch_number', 'expiry_date']
        widgets = {
            'product': forms.Select(attrs={'class': 'form-control'}),
            'ordered_quantity': forms.NumberInput(attrs={'class': 'form-control', 'min': 1, 'value': 1}),
            'unit_price': forms.NumberInput(attrs={'class': 'form-control', 'step': '0.01', 'min': '0.01'}),
            'batch_number': forms.TextInput(attrs={'class': 'form-control', 'placeholder': 'Optional'}),
            'expiry_date': forms.DateInput(attrs={'class': 'form-control', 'type': 'date'}),
        }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['product'].queryset = Product.objects.active()


PurchaseItemFormSet = inlineformset_factory(
    Purchase,
    PurchaseItem,
    form=PurchaseItemForm,
    extra=1,
    can_delete=True,
    min_num=1,
    validate_min=True
)


class ReceivePurchaseForm(forms.Form):
    """One received-quantity field per order line."""

    def __init__(self, *args, purchase=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.items = list(purchase.items.select_related('product'))
        for item in self.items:
            self.fields[f'received_{item.pk}'] = forms.IntegerField(
                label=f'{item.product.name} (ordered {item.ordered_quantity})',
                min_value=0,
                initial=item.ordered_quantity,
                widget=forms.NumberInput(attrs={'class': 'form-control', 'min': 0}),
            )

    def received_quantities(self):
        return {item.pk: self.cleaned_data[f'received_{item.pk}'] for item in self.items}


class PaymentForm(forms.Form):
    amount = forms.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal('0.01'),
        widget=forms.NumberInput(attrs={'class': 'form-control', 'step': '0.01'}),
    )


class CancelPurchaseForm(forms.Form):
    reason = forms.CharField(
        max_length=500,
        widget=forms.Textarea(attrs={'class': 'form-control', 'rows': 2}),
    )
