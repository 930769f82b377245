from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

# REST API Router
router = DefaultRouter()
router.register(r'products', views.ProductViewSet, basename='product-api')
router.register(r'batches', views.ProductBatchViewSet, basename='batch-api')
router.register(r'adjustments', views.StockAdjustmentViewSet, basename='adjustment-api')

app_name = 'inventory'

urlpatterns = [
    # ============================================
    # REST API ENDPOINTS
    # ============================================
    path('api/', include(router.urls)),

    # ============================================
    # PRODUCT URLS
    # ============================================
    path('products/', views.ProductListView.as_view(), name='product-list'),
    path('products/create/', views.ProductCreateView.as_view(), name='product-create'),
    path('products/search/', views.product_search_json, name='product-search'),
    path('products/<int:pk>/', views.ProductDetailView.as_view(), name='product-detail'),
    path('products/<int:pk>/edit/', views.ProductUpdateView.as_view(), name='product-edit'),
    path('products/<int:pk>/toggle/', views.product_toggle_status, name='product-toggle'),
    path('products/<int:pk>/delete/', views.ProductDeleteView.as_view(), name='product-delete'),
    path('products/<int:pk>/batches/', views.product_batches_json, name='product-batches'),

    # ============================================
    # BATCH URLS
    # ============================================
    path('batches/', views.BatchListView.as_view(), name='batch-list'),
    path('batches/create/', views.BatchCreateView.as_view(), name='batch-create'),
    path('batches/<int:pk>/edit/', views.BatchUpdateView.as_view(), name='batch-edit'),
    path('batches/<int:pk>/delete/', views.batch_delete, name='batch-delete'),
    path('batches/<int:batch_pk>/adjust/', views.StockAdjustmentCreateView.as_view(), name='batch-adjust'),

    # ============================================
    # STOCK STATUS
    # ============================================
    path('expiring/', views.ExpiringBatchesView.as_view(), name='expiring'),
    path('low-stock/', views.LowStockView.as_view(), name='low-stock'),

    # ============================================
    # ADJUSTMENT URLS
    # ============================================
    path('adjustments/', views.StockAdjustmentListView.as_view(), name='adjustment-list'),
    path('adjustments/<int:pk>/approve/', views.adjustment_approve, name='adjustment-approve'),
    path('adjustments/<int:pk>/reject/', views.adjustment_reject, name='adjustment-reject'),
]
