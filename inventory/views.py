import logging
import traceback

from django.conf import settings
from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.contrib.auth.mixins import LoginRequiredMixin
from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.urls import reverse, reverse_lazy
from django.utils.dateparse import parse_date
from django.views import View
from django.views.decorators.http import require_POST
from django.views.generic import CreateView, ListView, UpdateView
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from users.audit import log_action
from users.permissions import AdminRequiredMixin, IsPharmacyAdmin, admin_required

from . import services
from .forms import ProductBatchForm, ProductForm, RejectAdjustmentForm, StockAdjustmentForm
from .models import Product, ProductBatch, StockAdjustment
from .serializers import ProductBatchSerializer, ProductSerializer, StockAdjustmentSerializer

logger = logging.getLogger(__name__)


def _is_ajax(request):
    return request.headers.get('X-Requested-With') == 'XMLHttpRequest'


def _error_text(error):
    return "; ".join(error.messages)


# ====================================
# REST API VIEWSETS
# ====================================

class ProductViewSet(viewsets.ModelViewSet):
    """API endpoint for products"""
    serializer_class = ProductSerializer
    permission_classes = [IsPharmacyAdmin]

    def get_queryset(self):
        queryset = Product.objects.with_stock()

        search = self.request.query_params.get('search')
        if search:
            queryset = queryset.search(search)

        category = self.request.query_params.get('category')
        if category:
            queryset = queryset.filter(category__iexact=category)

        active = self.request.query_params.get('active')
        if active in ('true', 'false'):
            queryset = queryset.filter(is_active=(active == 'true'))

        return queryset

    def perform_create(self, serializer):
        product = serializer.save()
        log_action(self.request.user, 'CREATE', 'Product', product.pk,
                   f"Product {product.name} created via API", request=self.request)

    def perform_update(self, serializer):
        product = serializer.save()
        log_action(self.request.user, 'UPDATE', 'Product', product.pk,
                   f"Product {product.name} updated via API", request=self.request)

    def destroy(self, request, *args, **kwargs):
        try:
            services.delete_product(self.get_object(), request.user, request=request)
        except ValidationError as e:
            return Response({'detail': _error_text(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ProductBatchViewSet(viewsets.ModelViewSet):
    """API endpoint for batches"""
    serializer_class = ProductBatchSerializer
    permission_classes = [IsPharmacyAdmin]

    def get_queryset(self):
        queryset = ProductBatch.objects.select_related('product', 'supplier')

        product_id = self.request.query_params.get('product')
        if product_id:
            queryset = queryset.filter(product_id=product_id)

        expiring = self.request.query_params.get('expiring_within')
        if expiring and expiring.isdigit():
            queryset = queryset.expiring_within(int(expiring))

        return queryset

    def perform_create(self, serializer):
        batch = serializer.save()
        log_action(self.request.user, 'CREATE', 'ProductBatch', batch.pk,
                   f"Batch {batch.batch_number} created via API", request=self.request)

    def perform_update(self, serializer):
        batch = serializer.save()
        log_action(self.request.user, 'UPDATE', 'ProductBatch', batch.pk,
                   f"Batch {batch.batch_number} updated via API", request=self.request)

    def destroy(self, request, *args, **kwargs):
        try:
            services.delete_batch(self.get_object(), request.user, request=request)
        except ValidationError as e:
            return Response({'detail': _error_text(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(status=status.HTTP_204_NO_CONTENT)


class StockAdjustmentViewSet(mixins.CreateModelMixin,
                             mixins.ListModelMixin,
                             mixins.RetrieveModelMixin,
                             viewsets.GenericViewSet):
    """
    API endpoint for adjustments. Any authenticated user may record one;
    approve and reject are admin only.
    """
    serializer_class = StockAdjustmentSerializer

    def get_queryset(self):
        queryset = StockAdjustment.objects.select_related('batch__product', 'user')

        product_id = self.request.query_params.get('product')
        if product_id:
            queryset = queryset.filter(batch__product_id=product_id)

        if self.request.query_params.get('pending') == 'true':
            queryset = queryset.pending()

        return queryset

    @action(detail=True, methods=['post'], permission_classes=[IsPharmacyAdmin])
    def approve(self, request, pk=None):
        try:
            adjustment = services.approve_adjustment(self.get_object(), request.user, request=request)
        except ValidationError as e:
            return Response({'detail': _error_text(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(self.get_serializer(adjustment).data)

    @action(detail=True, methods=['post'], permission_classes=[IsPharmacyAdmin])
    def reject(self, request, pk=None):
        try:
            adjustment = services.reject_adjustment(
                self.get_object(), request.user, request.data.get('reason', ''), request=request
            )
        except ValidationError as e:
            return Response({'detail': _error_text(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(self.get_serializer(adjustment).data)


# ====================================
# PRODUCT VIEWS
# ====================================

class ProductListView(LoginRequiredMixin, ListView):
    model = Product
    template_name = "inventory/product_list.html"
    context_object_name = "products"
    paginate_by = settings.PHARMACY_CONFIG['LIST_PAGE_SIZE']

    def get_queryset(self):
        queryset = Product.objects.with_stock()

        if self.request.GET.get('show') != 'all':
            queryset = queryset.active()

        category = self.request.GET.get('category')
        if category:
            queryset = queryset.filter(category__iexact=category)

        search = self.request.GET.get('search')
        if search:
            queryset = queryset.search(search)

        return queryset.order_by('name')

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['categories'] = (
            Product.objects.order_by('category').values_list('category', flat=True).distinct()
        )
        context['search'] = self.request.GET.get('search', '')
        return context


class ProductDetailView(LoginRequiredMixin, View):
    def get(self, request, pk):
        product = get_object_or_404(Product, pk=pk)
        batches = product.batches.select_related('supplier').order_by('expiry_date')

        if _is_ajax(request):
            return JsonResponse({
                'success': True,
                'product': {
                    'id': product.id,
                    'name': product.name,
                    'generic_name': product.generic_name,
                    'category': product.category,
                    'retail_price': str(product.retail_price),
                    'unit_price': str(product.unit_price),
                    'requires_prescription': product.requires_prescription,
                    'total_stock': product.total_stock,
                    'is_active': product.is_active,
                },
                'batches': [
                    {
                        'id': b.id,
                        'batch_number': b.batch_number,
                        'expiry_date': b.expiry_date.isoformat(),
                        'quantity_in_stock': b.quantity_in_stock,
                        'is_expired': b.is_expired,
                    }
                    for b in batches
                ],
            })

        context = {
            'product': product,
            'batches': batches,
            'adjustments': services.filter_adjustments(product=product)[:20],
            'total_stock': product.total_stock,
        }
        return render(request, 'inventory/product_detail.html', context)


class ProductCreateView(AdminRequiredMixin, CreateView):
    model = Product
    form_class = ProductForm
    template_name = "inventory/product_form.html"
    success_url = reverse_lazy("inventory:product-list")

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'Add New Product'
        context['button_text'] = 'Create Product'
        return context

    def form_valid(self, form):
        try:
            self.object = services.create_product(form.cleaned_data, self.request.user, request=self.request)
        except ValidationError as e:
            form.add_error(None, e)
            return self.form_invalid(form)

        logger.info(f"Product created: {self.object.name} by {self.request.user.username}")
        if _is_ajax(self.request):
            return JsonResponse({
                'success': True,
                'message': f'Product "{self.object.name}" created successfully',
                'product_id': self.object.pk,
            })
        messages.success(self.request, f'Product "{self.object.name}" created successfully.')
        return redirect(self.get_success_url())

    def form_invalid(self, form):
        if _is_ajax(self.request):
            return JsonResponse({'success': False, 'errors': form.errors}, status=400)
        return super().form_invalid(form)


class ProductUpdateView(AdminRequiredMixin, UpdateView):
    model = Product
    form_class = ProductForm
    template_name = "inventory/product_form.html"

    def get_success_url(self):
        return reverse('inventory:product-detail', kwargs={'pk': self.object.pk})

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = f'Edit {self.object.name}'
        context['button_text'] = 'Save Changes'
        return context

    def form_valid(self, form):
        # form.instance already carries the posted values; reload before handing to the service
        product = Product.objects.get(pk=self.object.pk)
        try:
            self.object = services.update_product(product, form.cleaned_data, self.request.user, request=self.request)
        except ValidationError as e:
            form.add_error(None, e)
            return self.form_invalid(form)
        messages.success(self.request, f'Product "{self.object.name}" updated.')
        return redirect(self.get_success_url())


@admin_required
@require_POST
def product_toggle_status(request, pk):
    product = get_object_or_404(Product, pk=pk)
    services.toggle_product_status(product, request.user, request=request)
    state = 'activated' if product.is_active else 'deactivated'

    if _is_ajax(request):
        return JsonResponse({'success': True, 'is_active': product.is_active, 'message': f'{product.name} {state}'})
    messages.success(request, f'Product "{product.name}" {state}.')
    return redirect('inventory:product-list')


class ProductDeleteView(AdminRequiredMixin, View):
    template_name = "inventory/product_confirm_delete.html"

    def get(self, request, pk):
        product = get_object_or_404(Product, pk=pk)
        return render(request, self.template_name, {'product': product})

    def post(self, request, pk):
        product = get_object_or_404(Product, pk=pk)
        name = product.name
        try:
            services.delete_product(product, request.user, request=request)
        except ValidationError as e:
            if _is_ajax(request):
                return JsonResponse({'success': False, 'message': _error_text(e)}, status=400)
            messages.error(request, _error_text(e))
            return redirect('inventory:product-detail', pk=pk)

        if _is_ajax(request):
            return JsonResponse({'success': True, 'message': f'Product "{name}" deleted'})
        messages.success(request, f'Product "{name}" deleted.')
        return redirect('inventory:product-list')


@login_required
def product_search_json(request):
    """Product picker for the sale and purchase forms."""
    term = request.GET.get('q', '')
    products = services.search_products(term).active()[:20]
    return JsonResponse({
        'results': [
            {
                'id': p.id,
                'name': p.name,
                'generic_name': p.generic_name,
                'retail_price': str(p.retail_price),
                'stock': p.stock,
                'requires_prescription': p.requires_prescription,
            }
            for p in products
        ]
    })


# ====================================
# BATCH VIEWS
# ====================================

class BatchListView(LoginRequiredMixin, ListView):
    model = ProductBatch
    template_name = "inventory/batch_list.html"
    context_object_name = "batches"
    paginate_by = settings.PHARMACY_CONFIG['LIST_PAGE_SIZE']

    def get_queryset(self):
        queryset = ProductBatch.objects.select_related('product', 'supplier')

        product_id = self.request.GET.get('product')
        if product_id:
            queryset = queryset.filter(product_id=product_id)

        search = self.request.GET.get('search')
        if search:
            queryset = queryset.filter(batch_number__icontains=search)

        if self.request.GET.get('in_stock') == '1':
            queryset = queryset.in_stock()

        return queryset.order_by('expiry_date')


class BatchCreateView(AdminRequiredMixin, CreateView):
    model = ProductBatch
    form_class = ProductBatchForm
    template_name = "inventory/batch_form.html"
    success_url = reverse_lazy("inventory:batch-list")

    def get_initial(self):
        initial = super().get_initial()
        if self.request.GET.get('product'):
            initial['product'] = self.request.GET['product']
        return initial

    def form_valid(self, form):
        try:
            self.object = services.create_batch(form.cleaned_data, self.request.user, request=self.request)
        except ValidationError as e:
            form.add_error(None, e)
            return self.form_invalid(form)
        messages.success(self.request, f'Batch "{self.object.batch_number}" added.')
        return redirect(self.get_success_url())


class BatchUpdateView(AdminRequiredMixin, UpdateView):
    model = ProductBatch
    form_class = ProductBatchForm
    template_name = "inventory/batch_form.html"
    success_url = reverse_lazy("inventory:batch-list")

    def form_valid(self, form):
        batch = ProductBatch.objects.get(pk=self.object.pk)
        try:
            self.object = services.update_batch(batch, form.cleaned_data, self.request.user, request=self.request)
        except ValidationError as e:
            form.add_error(None, e)
            return self.form_invalid(form)
        messages.success(self.request, f'Batch "{self.object.batch_number}" updated.')
        return redirect(self.get_success_url())


@admin_required
@require_POST
def batch_delete(request, pk):
    batch = get_object_or_404(ProductBatch, pk=pk)
    number = batch.batch_number
    try:
        services.delete_batch(batch, request.user, request=request)
    except ValidationError as e:
        messages.error(request, _error_text(e))
        return redirect('inventory:batch-list')
    messages.success(request, f'Batch "{number}" deleted.')
    return redirect('inventory:batch-list')


@login_required
def product_batches_json(request, pk):
    """Sellable batches of a product, earliest expiry first."""
    product = get_object_or_404(Product, pk=pk)
    batches = ProductBatch.objects.for_product(product).fefo()
    return JsonResponse({
        'batches': [
            {
                'id': b.id,
                'batch_number': b.batch_number,
                'expiry_date': b.expiry_date.isoformat(),
                'quantity_in_stock': b.quantity_in_stock,
            }
            for b in batches
        ]
    })


# ====================================
# STOCK STATUS VIEWS
# ====================================

class ExpiringBatchesView(LoginRequiredMixin, View):
    template_name = "inventory/expiring.html"

    def get(self, request):
        days = request.GET.get('days', '')
        days = int(days) if days.isdigit() else None
        alerts = services.expiry_alerts(days)
        return render(request, self.template_name, {
            'alerts': alerts,
            'days': days or settings.PHARMACY_CONFIG['EXPIRY_ALERT_DAYS'],
            'expired_count': len([a for a in alerts if a.level == services.LEVEL_CRITICAL]),
        })


class LowStockView(LoginRequiredMixin, View):
    template_name = "inventory/low_stock.html"

    def get(self, request):
        return render(request, self.template_name, {
            'low_stock': services.low_stock_products(),
            'out_of_stock': services.out_of_stock_products(),
        })


# ====================================
# STOCK ADJUSTMENT VIEWS
# ====================================

class StockAdjustmentCreateView(LoginRequiredMixin, View):
    template_name = "inventory/adjustment_form.html"

    def get(self, request, batch_pk):
        batch = get_object_or_404(ProductBatch.objects.select_related('product'), pk=batch_pk)
        return render(request, self.template_name, {'batch': batch, 'form': StockAdjustmentForm()})

    def post(self, request, batch_pk):
        batch = get_object_or_404(ProductBatch.objects.select_related('product'), pk=batch_pk)
        form = StockAdjustmentForm(request.POST)

        if not form.is_valid():
            if _is_ajax(request):
                return JsonResponse({'success': False, 'errors': form.errors}, status=400)
            return render(request, self.template_name, {'batch': batch, 'form': form})

        try:
            adjustment = services.adjust_stock(
                batch,
                form.cleaned_data['adjustment_type'],
                form.cleaned_data['quantity'],
                form.cleaned_data['reason'],
                request.user,
                request=request,
            )
        except ValidationError as e:
            if _is_ajax(request):
                return JsonResponse({'success': False, 'message': _error_text(e)}, status=400)
            form.add_error(None, e)
            return render(request, self.template_name, {'batch': batch, 'form': form})
        except Exception as e:
            logger.error(f"Stock adjustment failed for batch {batch.pk}: {e}")
            logger.error(traceback.format_exc())
            if _is_ajax(request):
                return JsonResponse({'success': False, 'message': 'Stock adjustment failed'}, status=500)
            messages.error(request, "Stock adjustment failed. Please try again.")
            return redirect('inventory:product-detail', pk=batch.product_id)

        message = (
            f"Batch {batch.batch_number} adjusted from {adjustment.previous_quantity} "
            f"to {adjustment.adjusted_quantity}. Awaiting approval."
        )
        if _is_ajax(request):
            return JsonResponse({
                'success': True,
                'message': message,
                'adjustment_id': adjustment.pk,
                'new_quantity': adjustment.adjusted_quantity,
            })
        messages.success(request, message)
        return redirect('inventory:product-detail', pk=batch.product_id)


class StockAdjustmentListView(LoginRequiredMixin, ListView):
    model = StockAdjustment
    template_name = "inventory/adjustment_list.html"
    context_object_name = "adjustments"
    paginate_by = settings.PHARMACY_CONFIG['LIST_PAGE_SIZE']

    def get_queryset(self):
        params = self.request.GET
        product = None
        if params.get('product'):
            product = Product.objects.filter(pk=params['product']).first()
        user = None
        if params.get('user'):
            user = User.objects.filter(pk=params['user']).first()
        start = parse_date(params.get('start', '') or '')
        end = parse_date(params.get('end', '') or '')

        queryset = services.filter_adjustments(product=product, user=user, start=start, end=end)
        if params.get('status') == 'pending':
            queryset = queryset.pending()
        return queryset

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['pending_count'] = services.pending_adjustments().count()
        context['reject_form'] = RejectAdjustmentForm()
        return context


@admin_required
@require_POST
def adjustment_approve(request, pk):
    adjustment = get_object_or_404(StockAdjustment, pk=pk)
    try:
        services.approve_adjustment(adjustment, request.user, request=request)
    except ValidationError as e:
        if _is_ajax(request):
            return JsonResponse({'success': False, 'message': _error_text(e)}, status=400)
        messages.error(request, _error_text(e))
        return redirect('inventory:adjustment-list')

    if _is_ajax(request):
        return JsonResponse({'success': True, 'message': 'Adjustment approved'})
    messages.success(request, "Adjustment approved.")
    return redirect('inventory:adjustment-list')


@admin_required
@require_POST
def adjustment_reject(request, pk):
    adjustment = get_object_or_404(StockAdjustment, pk=pk)
    form = RejectAdjustmentForm(request.POST)
    reason = form.cleaned_data['reason'] if form.is_valid() else ''
    try:
        services.reject_adjustment(adjustment, request.user, reason, request=request)
    except ValidationError as e:
        if _is_ajax(request):
            return JsonResponse({'success': False, 'message': _error_text(e)}, status=400)
        messages.error(request, _error_text(e))
        return redirect('inventory:adjustment-list')

    if _is_ajax(request):
        return JsonResponse({'success': True, 'message': 'Adjustment rejected'})
    messages.warning(request, "Adjustment rejected.")
    return redirect('inventory:adjustment-list')
