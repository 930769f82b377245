from django import forms
from django.forms import inlineformset_factory

from inventory.models import Product, ProductBatch

from .models import Customer, Sale, SaleItem


class CustomerForm(forms.ModelForm):

    class Meta:
        model = Customer
        fields = ['name', 'contact_number', 'email', 'address']
        widgets = {
            'name': forms.TextInput(attrs={
                'class': 'form-control',
                'placeholder': 'Customer name'
            }),
            'contact_number': forms.TextInput(attrs={
                'class': 'form-control',
                'placeholder': '0712345678'
            }),
            'email': forms.EmailInput(attrs={
                'class': 'form-control'
            }),
            'address': forms.Textarea(attrs={
                'class': 'form-control',
                'rows': 2
            }),
        }


class SaleForm(forms.ModelForm):
    """
    Sale header. The prescription fields are only checked when one of the
    items is prescription-only, which the service decides.
    """

    doctor_name = forms.CharField(
        max_length=200,
        required=False,
        widget=forms.TextInput(attrs={
            'class': 'form-control',
            'placeholder': 'Prescribing doctor'
        }),
    )
    prescription_date = forms.DateField(
        required=False,
        widget=forms.DateInput(attrs={
            'class': 'form-control',
            'type': 'date'
        }),
    )

    class Meta:
        model = Sale
        fields = ['customer', 'payment_status', 'note']
        widgets = {
            'customer': forms.Select(attrs={
                'class': 'form-control'
            }),
            'payment_status': forms.Select(attrs={
                'class': 'form-control'
            }),
            'note': forms.Textarea(attrs={
                'class': 'form-control',
                'rows': 2
            }),
        }


class SaleItemForm(forms.ModelForm):
    """
    One requested line. Leave the batch empty to sell first-expiry-first-out
    and the unit price empty to use the product's retail price.
    """

    class Meta:
        model = SaleItem
        fields = [
            'product',
            'batch',
            'quantity',
            'unit_price',
            'discount',
        ]
        widgets = {
            'product': forms.Select(attrs={
                'class': 'form-control'
            }),
            'batch': forms.Select(attrs={
                'class': 'form-control'
            }),
            'quantity': forms.NumberInput(attrs={
                'class': 'form-control',
                'min': 1,
                'value': 1
            }),
            'unit_price': forms.NumberInput(attrs={
                'class': 'form-control',
                'step': '0.01',
                'placeholder': 'Retail price'
            }),
            'discount': forms.NumberInput(attrs={
                'class': 'form-control',
                'step': '0.01',
                'min': 0
            }),
        }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['product'].queryset = Product.objects.active()
        self.fields['batch'].queryset = ProductBatch.objects.in_stock().non_expired().select_related('product')
        self.fields['batch'].required = False
        self.fields['unit_price'].required = False
        self.fields['discount'].required = False

    def clean_quantity(self):
        quantity = self.cleaned_data['quantity']
        if quantity is None or quantity < 1:
            raise forms.ValidationError("Quantity must be at least 1.")
        return quantity


# ============================================
# FORMSETS FOR INLINE ITEM EDITING
# ============================================

SaleItemFormSet = inlineformset_factory(
    Sale,
    SaleItem,
    form=SaleItemForm,
    extra=1,
    can_delete=True,
    min_num=1,
    validate_min=True
)


class PaymentStatusForm(forms.Form):
    payment_status = forms.ChoiceField(
        choices=Sale.PAYMENT_STATUS_CHOICES,
        widget=forms.Select(attrs={'class': 'form-control'}),
    )
