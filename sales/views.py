import logging
import traceback

from django.conf import settings
from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.contrib.auth.mixins import LoginRequiredMixin
from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.urls import reverse_lazy
from django.utils.dateparse import parse_date
from django.views import View
from django.views.decorators.http import require_POST
from django.views.generic import CreateView, DetailView, ListView, UpdateView

from users.models import is_admin
from users.permissions import AdminRequiredMixin, admin_required

from . import services
from .forms import CustomerForm, PaymentStatusForm, SaleForm, SaleItemFormSet
from .models import Customer, Sale
from .serializers import CustomerSerializer, SaleSerializer
from .utils.invoice_builder import build_invoice_payload

logger = logging.getLogger(__name__)


def _is_ajax(request):
    return request.headers.get('X-Requested-With') == 'XMLHttpRequest'


def _error_text(error):
    return "; ".join(error.messages)


# ============================================
# SALE VIEWS
# ============================================

class SaleListView(LoginRequiredMixin, ListView):
    model = Sale
    template_name = 'sales/sale_list.html'
    context_object_name = 'sales'
    paginate_by = settings.PHARMACY_CONFIG['LIST_PAGE_SIZE']

    def get_queryset(self):
        params = self.request.GET
        queryset = Sale.objects.visible_to(self.request.user).select_related('customer', 'user')

        start = parse_date(params.get('start', '') or '')
        end = parse_date(params.get('end', '') or '')
        if start and end:
            queryset = queryset.in_date_range(start, end)

        if params.get('customer'):
            queryset = queryset.filter(customer_id=params['customer'])

        if params.get('payment_status'):
            queryset = queryset.filter(payment_status=params['payment_status'])

        search = params.get('search')
        if search:
            queryset = queryset.filter(invoice_number__icontains=search)

        return queryset

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['payment_choices'] = Sale.PAYMENT_STATUS_CHOICES
        context['is_admin'] = is_admin(self.request.user)
        return context


class SaleCreateView(LoginRequiredMixin, View):
    template_name = 'sales/sale_form.html'

    def get(self, request):
        initial = {}
        if request.GET.get('customer'):
            initial['customer'] = request.GET['customer']
        return render(request, self.template_name, {
            'form': SaleForm(initial=initial),
            'items': SaleItemFormSet(instance=Sale()),
        })

    def post(self, request):
        form = SaleForm(request.POST)
        items = SaleItemFormSet(request.POST, instance=Sale())
        is_ajax = _is_ajax(request)

        if not (form.is_valid() and items.is_valid()):
            if is_ajax:
                return JsonResponse({
                    'success': False,
                    'errors': form.errors,
                    'item_errors': items.errors,
                    'non_form_errors': items.non_form_errors(),
                }, status=400)
            return render(request, self.template_name, {'form': form, 'items': items})

        lines = [
            {
                'product': item['product'],
                'batch': item.get('batch'),
                'quantity': item['quantity'],
                'unit_price': item.get('unit_price'),
                'discount': item.get('discount'),
            }
            for item in items.cleaned_data
            if item and not item.get('DELETE')
        ]

        prescription = None
        if form.cleaned_data.get('doctor_name') or form.cleaned_data.get('prescription_date'):
            prescription = services.Prescription(
                doctor_name=form.cleaned_data.get('doctor_name', ''),
                prescription_date=form.cleaned_data.get('prescription_date'),
            )

        try:
            sale = services.create_sale(
                form.cleaned_data.get('customer'),
                request.user,
                lines,
                payment_status=form.cleaned_data['payment_status'],
                note=form.cleaned_data.get('note', ''),
                prescription=prescription,
                request=request,
            )
        except ValidationError as e:
            if is_ajax:
                return JsonResponse({'success': False, 'message': _error_text(e)}, status=400)
            form.add_error(None, e)
            return render(request, self.template_name, {'form': form, 'items': items})
        except Exception as e:
            logger.error("=" * 80)
            logger.error(f"ERROR creating sale: {e}")
            logger.error(traceback.format_exc())
            logger.error("=" * 80)
            if is_ajax:
                return JsonResponse({'success': False, 'message': 'Sale could not be completed'}, status=500)
            messages.error(request, "Sale could not be completed. Please try again.")
            return render(request, self.template_name, {'form': form, 'items': items})

        if is_ajax:
            return JsonResponse({
                'success': True,
                'message': f'Sale {sale.invoice_number} completed',
                'sale_id': sale.pk,
                'invoice': build_invoice_payload(sale),
            })
        messages.success(request, f"Sale {sale.invoice_number} completed. Total: {sale.total_amount}")
        return redirect('sales:sale-detail', pk=sale.pk)


class SaleDetailView(LoginRequiredMixin, DetailView):
    model = Sale
    template_name = 'sales/sale_detail.html'
    context_object_name = 'sale'

    def get_queryset(self):
        return Sale.objects.visible_to(self.request.user).select_related('customer', 'user')

    def get(self, request, *args, **kwargs):
        self.object = self.get_object()
        if _is_ajax(request):
            return JsonResponse({'success': True, 'sale': SaleSerializer(self.object).data})
        return self.render_to_response(self.get_context_data(object=self.object))

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['items'] = self.object.items.select_related('product', 'batch')
        context['antibiotic_logs'] = self.object.antibiotic_logs.select_related('product', 'batch')
        context['payment_form'] = PaymentStatusForm(initial={'payment_status': self.object.payment_status})
        context['is_admin'] = is_admin(self.request.user)
        return context


@login_required
def sale_invoice(request, pk):
    sale = get_object_or_404(Sale.objects.visible_to(request.user), pk=pk)
    payload = build_invoice_payload(sale)
    if _is_ajax(request) or request.GET.get('format') == 'json':
        return JsonResponse({'success': True, 'invoice': payload})
    return render(request, 'sales/invoice.html', {'invoice': payload, 'sale': sale})


@admin_required
@require_POST
def sale_update_payment(request, pk):
    sale = get_object_or_404(Sale, pk=pk)
    form = PaymentStatusForm(request.POST)
    status = form.cleaned_data['payment_status'] if form.is_valid() else request.POST.get('payment_status')
    try:
        services.update_payment_status(sale, status, request.user, request=request)
    except ValidationError as e:
        if _is_ajax(request):
            return JsonResponse({'success': False, 'message': _error_text(e)}, status=400)
        messages.error(request, _error_text(e))
        return redirect('sales:sale-detail', pk=pk)

    if _is_ajax(request):
        return JsonResponse({'success': True, 'payment_status': sale.payment_status})
    messages.success(request, f"Payment status of {sale.invoice_number} set to {sale.payment_status}.")
    return redirect('sales:sale-detail', pk=pk)


class SaleDeleteView(AdminRequiredMixin, View):
    template_name = 'sales/sale_confirm_delete.html'

    def get(self, request, pk):
        sale = get_object_or_404(Sale, pk=pk)
        return render(request, self.template_name, {'sale': sale})

    def post(self, request, pk):
        sale = get_object_or_404(Sale, pk=pk)
        invoice = sale.invoice_number
        services.delete_sale(sale, request.user, request=request)

        if _is_ajax(request):
            return JsonResponse({'success': True, 'message': f'Sale {invoice} deleted and stock restored'})
        messages.success(request, f"Sale {invoice} deleted and stock restored.")
        return redirect('sales:sale-list')


# ============================================
# CUSTOMER VIEWS
# ============================================

class CustomerListView(LoginRequiredMixin, ListView):
    model = Customer
    template_name = 'sales/customer_list.html'
    context_object_name = 'customers'
    paginate_by = settings.PHARMACY_CONFIG['LIST_PAGE_SIZE']

    def get_queryset(self):
        return services.search_customers(self.request.GET.get('search'))


class CustomerDetailView(LoginRequiredMixin, DetailView):
    model = Customer
    template_name = 'sales/customer_detail.html'
    context_object_name = 'customer'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['sales'] = services.sales_for_customer(self.object).visible_to(self.request.user)[:20]
        return context


class CustomerCreateView(LoginRequiredMixin, CreateView):
    model = Customer
    form_class = CustomerForm
    template_name = 'sales/customer_form.html'
    success_url = reverse_lazy('sales:customer-list')

    def form_valid(self, form):
        try:
            self.object = services.create_customer(form.cleaned_data, self.request.user, request=self.request)
        except ValidationError as e:
            form.add_error(None, e)
            return self.form_invalid(form)

        if _is_ajax(self.request):
            return JsonResponse({
                'success': True,
                'message': f'Customer "{self.object.name}" created',
                'customer': CustomerSerializer(self.object).data,
            })
        messages.success(self.request, f'Customer "{self.object.name}" created.')
        return redirect(self.get_success_url())

    def form_invalid(self, form):
        if _is_ajax(self.request):
            return JsonResponse({'success': False, 'errors': form.errors}, status=400)
        return super().form_invalid(form)


class CustomerUpdateView(LoginRequiredMixin, UpdateView):
    model = Customer
    form_class = CustomerForm
    template_name = 'sales/customer_form.html'
    success_url = reverse_lazy('sales:customer-list')

    def form_valid(self, form):
        customer = Customer.objects.get(pk=self.object.pk)
        try:
            self.object = services.update_customer(customer, form.cleaned_data, self.request.user, request=self.request)
        except ValidationError as e:
            form.add_error(None, e)
            return self.form_invalid(form)
        messages.success(self.request, f'Customer "{self.object.name}" updated.')
        return redirect(self.get_success_url())


@admin_required
@require_POST
def customer_delete(request, pk):
    customer = get_object_or_404(Customer, pk=pk)
    name = customer.name
    try:
        services.delete_customer(customer, request.user, request=request)
    except ValidationError as e:
        messages.error(request, _error_text(e))
        return redirect('sales:customer-detail', pk=pk)
    messages.success(request, f'Customer "{name}" deleted.')
    return redirect('sales:customer-list')


@login_required
def customer_search_json(request):
    """Customer picker for the sale form."""
    customers = services.search_customers(request.GET.get('q', ''))[:20]
    return JsonResponse({'results': CustomerSerializer(customers, many=True).data})
