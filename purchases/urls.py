from django.urls import path
from . import views

app_name = 'purchases'

urlpatterns = [
    # ============================================
    # PURCHASE ORDER URLS
    # ============================================
    path('', views.PurchaseListView.as_view(), name='purchase-list'),
    path('create/', views.PurchaseCreateView.as_view(), name='purchase-create'),
    path('<int:pk>/', views.PurchaseDetailView.as_view(), name='purchase-detail'),
    path('<int:pk>/approve/', views.purchase_approve, name='purchase-approve'),
    path('<int:pk>/ordered/', views.purchase_mark_ordered, name='purchase-ordered'),
    path('<int:pk>/cancel/', views.purchase_cancel, name='purchase-cancel'),
    path('<int:pk>/receive/', views.PurchaseReceiveView.as_view(), name='purchase-receive'),
    path('<int:pk>/payment/', views.purchase_payment, name='purchase-payment'),

    # ============================================
    # SUPPLIER URLS
    # ============================================
    path('suppliers/', views.SupplierListView.as_view(), name='supplier-list'),
    path('suppliers/create/', views.SupplierCreateView.as_view(), name='supplier-create'),
    path('suppliers/<int:pk>/', views.SupplierDetailView.as_view(), name='supplier-detail'),
    path('suppliers/<int:pk>/edit/', views.SupplierUpdateView.as_view(), name='supplier-edit'),
    path('suppliers/<int:pk>/toggle/', views.supplier_toggle_status, name='supplier-toggle'),
    path('suppliers/<int:pk>/delete/', views.supplier_delete, name='supplier-delete'),
]
