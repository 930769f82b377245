import logging
import traceback

from django.conf import settings
from django.contrib import messages
from django.contrib.auth.mixins import LoginRequiredMixin
from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.urls import reverse, reverse_lazy
from django.utils.dateparse import parse_date
from django.views import View
from django.views.decorators.http import require_POST
from django.views.generic import CreateView, DetailView, ListView, UpdateView

from users.permissions import AdminRequiredMixin, admin_required

from . import services
from .forms import (
    CancelPurchaseForm,
    PaymentForm,
    PurchaseForm,
    PurchaseItemFormSet,
    ReceivePurchaseForm,
    SupplierForm,
)
from .models import Purchase, Supplier

logger = logging.getLogger(__name__)


def _is_ajax(request):
    return request.headers.get('X-Requested-With') == 'XMLHttpRequest'


def _error_text(error):
    return "; ".join(error.messages)


# ====================================
# SUPPLIER VIEWS
# ====================================

class SupplierListView(LoginRequiredMixin, ListView):
    model = Supplier
    template_name = "purchases/supplier_list.html"
    context_object_name = "suppliers"
    paginate_by = settings.PHARMACY_CONFIG['LIST_PAGE_SIZE']

    def get_queryset(self):
        queryset = Supplier.objects.all()
        search = self.request.GET.get('search')
        if search:
            queryset = queryset.filter(name__icontains=search)
        if self.request.GET.get('show') != 'all':
            queryset = queryset.filter(is_active=True)
        return queryset


class SupplierDetailView(LoginRequiredMixin, DetailView):
    model = Supplier
    template_name = "purchases/supplier_detail.html"
    context_object_name = "supplier"

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['purchases'] = services.purchases_by_supplier(self.object)[:20]
        context['batches'] = self.object.batches.select_related('product').order_by('expiry_date')[:20]
        return context


class SupplierCreateView(AdminRequiredMixin, CreateView):
    model = Supplier
    form_class = SupplierForm
    template_name = "purchases/supplier_form.html"
    success_url = reverse_lazy("purchases:supplier-list")

    def form_valid(self, form):
        try:
            self.object = services.create_supplier(form.cleaned_data, self.request.user, request=self.request)
        except ValidationError as e:
            form.add_error(None, e)
            return self.form_invalid(form)

        if _is_ajax(self.request):
            return JsonResponse({
                'success': True,
                'message': f'Supplier "{self.object.name}" created successfully',
                'supplier_id': self.object.pk,
            })
        messages.success(self.request, f'Supplier "{self.object.name}" created.')
        return redirect(self.get_success_url())


class SupplierUpdateView(AdminRequiredMixin, UpdateView):
    model = Supplier
    form_class = SupplierForm
    template_name = "purchases/supplier_form.html"
    success_url = reverse_lazy("purchases:supplier-list")

    def form_valid(self, form):
        supplier = Supplier.objects.get(pk=self.object.pk)
        try:
            self.object = services.update_supplier(supplier, form.cleaned_data, self.request.user, request=self.request)
        except ValidationError as e:
            form.add_error(None, e)
            return self.form_invalid(form)
        messages.success(self.request, f'Supplier "{self.object.name}" updated.')
        return redirect(self.get_success_url())


@admin_required
@require_POST
def supplier_toggle_status(request, pk):
    supplier = get_object_or_404(Supplier, pk=pk)
    services.toggle_supplier_status(supplier, request.user, request=request)
    state = 'activated' if supplier.is_active else 'deactivated'
    if _is_ajax(request):
        return JsonResponse({'success': True, 'is_active': supplier.is_active})
    messages.success(request, f'Supplier "{supplier.name}" {state}.')
    return redirect('purchases:supplier-list')


@admin_required
@require_POST
def supplier_delete(request, pk):
    supplier = get_object_or_404(Supplier, pk=pk)
    name = supplier.name
    try:
        services.delete_supplier(supplier, request.user, request=request)
    except ValidationError as e:
        messages.error(request, _error_text(e))
        return redirect('purchases:supplier-detail', pk=pk)
    messages.success(request, f'Supplier "{name}" deleted.')
    return redirect('purchases:supplier-list')


# ====================================
# PURCHASE ORDER VIEWS
# ====================================

class PurchaseListView(LoginRequiredMixin, ListView):
    model = Purchase
    template_name = "purchases/purchase_list.html"
    context_object_name = "purchases"
    paginate_by = settings.PHARMACY_CONFIG['LIST_PAGE_SIZE']

    def get_queryset(self):
        params = self.request.GET
        queryset = Purchase.objects.select_related('supplier', 'user')

        if params.get('status'):
            queryset = queryset.with_status(params['status'])
        if params.get('supplier'):
            queryset = queryset.filter(supplier_id=params['supplier'])
        if params.get('overdue') == '1':
            queryset = queryset.overdue()

        start = parse_date(params.get('start', '') or '')
        end = parse_date(params.get('end', '') or '')
        if start and end:
            queryset = queryset.in_date_range(start, end)

        return queryset

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['status_choices'] = Purchase.STATUS_CHOICES
        context['suppliers'] = Supplier.objects.all()
        context['overdue_count'] = services.overdue_purchases().count()
        return context


class PurchaseCreateView(LoginRequiredMixin, View):
    template_name = "purchases/purchase_form.html"

    def get(self, request):
        return render(request, self.template_name, {
            'form': PurchaseForm(),
            'items': PurchaseItemFormSet(instance=Purchase()),
        })

    def post(self, request):
        form = PurchaseForm(request.POST)
        items = PurchaseItemFormSet(request.POST, instance=Purchase())

        if not (form.is_valid() and items.is_valid()):
            return render(request, self.template_name, {'form': form, 'items': items})

        lines = [
            {
                'product': item['product'],
                'quantity': item['ordered_quantity'],
                'unit_price': item['unit_price'],
                'batch_number': item.get('batch_number', ''),
                'expiry_date': item.get('expiry_date'),
            }
            for item in items.cleaned_data
            if item and not item.get('DELETE')
        ]

        try:
            purchase = services.create_purchase(
                form.cleaned_data['supplier'],
                request.user,
                lines,
                expected_delivery_date=form.cleaned_data.get('expected_delivery_date'),
                paid_amount=form.cleaned_data.get('paid_amount') or 0,
                notes=form.cleaned_data.get('notes', ''),
                request=request,
            )
        except ValidationError as e:
            form.add_error(None, e)
            return render(request, self.template_name, {'form': form, 'items': items})
        except Exception as e:
            logger.error(f"Purchase creation failed: {e}")
            logger.error(traceback.format_exc())
            messages.error(request, "Could not create the purchase order. Please try again.")
            return render(request, self.template_name, {'form': form, 'items': items})

        messages.success(request, f"Purchase order {purchase.order_number} created.")
        return redirect('purchases:purchase-detail', pk=purchase.pk)


class PurchaseDetailView(LoginRequiredMixin, DetailView):
    model = Purchase
    template_name = "purchases/purchase_detail.html"
    context_object_name = "purchase"

    def get_queryset(self):
        return Purchase.objects.select_related('supplier', 'user')

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['items'] = self.object.items.select_related('product', 'batch')
        context['payment_form'] = PaymentForm()
        context['cancel_form'] = CancelPurchaseForm()
        return context


def _run_purchase_action(request, pk, action, success_message):
    purchase = get_object_or_404(Purchase, pk=pk)
    try:
        purchase = action(purchase)
    except ValidationError as e:
        if _is_ajax(request):
            return JsonResponse({'success': False, 'message': _error_text(e)}, status=400)
        messages.error(request, _error_text(e))
        return redirect('purchases:purchase-detail', pk=pk)

    message = success_message.format(order=purchase.order_number)
    if _is_ajax(request):
        return JsonResponse({'success': True, 'message': message, 'status': purchase.status})
    messages.success(request, message)
    return redirect('purchases:purchase-detail', pk=pk)


@admin_required
@require_POST
def purchase_approve(request, pk):
    return _run_purchase_action(
        request, pk,
        lambda purchase: services.approve_purchase(purchase, request.user, request=request),
        "Purchase order {order} approved.",
    )


@admin_required
@require_POST
def purchase_mark_ordered(request, pk):
    return _run_purchase_action(
        request, pk,
        lambda purchase: services.mark_ordered(purchase, request.user, request=request),
        "Purchase order {order} marked as ordered.",
    )


@admin_required
@require_POST
def purchase_cancel(request, pk):
    form = CancelPurchaseForm(request.POST)
    reason = form.cleaned_data['reason'] if form.is_valid() else ''
    return _run_purchase_action(
        request, pk,
        lambda purchase: services.cancel_purchase(purchase, request.user, reason, request=request),
        "Purchase order {order} cancelled.",
    )


@admin_required
@require_POST
def purchase_payment(request, pk):
    form = PaymentForm(request.POST)
    amount = form.cleaned_data['amount'] if form.is_valid() else 0
    return _run_purchase_action(
        request, pk,
        lambda purchase: services.record_payment(purchase, amount, request.user, request=request),
        "Payment recorded on {order}.",
    )


class PurchaseReceiveView(AdminRequiredMixin, View):
    template_name = "purchases/purchase_receive.html"

    def get(self, request, pk):
        purchase = get_object_or_404(Purchase, pk=pk)
        return render(request, self.template_name, {
            'purchase': purchase,
            'form': ReceivePurchaseForm(purchase=purchase),
        })

    def post(self, request, pk):
        purchase = get_object_or_404(Purchase, pk=pk)
        form = ReceivePurchaseForm(request.POST, purchase=purchase)
        if not form.is_valid():
            return render(request, self.template_name, {'purchase': purchase, 'form': form})

        try:
            services.receive_purchase(purchase, form.received_quantities(), request.user, request=request)
        except ValidationError as e:
            form.add_error(None, e)
            return render(request, self.template_name, {'purchase': purchase, 'form': form})

        messages.success(request, f"Purchase order {purchase.order_number} received into stock.")
        return redirect(reverse('purchases:purchase-detail', kwargs={'pk': pk}))
