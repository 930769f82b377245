from django.urls import path
from . import views

app_name = 'sales'

urlpatterns = [
    # ============================================
    # SALE URLS
    # ============================================
    path('', views.SaleListView.as_view(), name='sale-list'),
    path('create/', views.SaleCreateView.as_view(), name='sale-create'),
    path('<int:pk>/', views.SaleDetailView.as_view(), name='sale-detail'),
    path('<int:pk>/invoice/', views.sale_invoice, name='sale-invoice'),
    path('<int:pk>/payment/', views.sale_update_payment, name='sale-payment'),
    path('<int:pk>/delete/', views.SaleDeleteView.as_view(), name='sale-delete'),

    # ============================================
    # CUSTOMER URLS
    # ============================================
    path('customers/', views.CustomerListView.as_view(), name='customer-list'),
    path('customers/create/', views.CustomerCreateView.as_view(), name='customer-create'),
    path('customers/search/', views.customer_search_json, name='customer-search'),
    path('customers/<int:pk>/', views.CustomerDetailView.as_view(), name='customer-detail'),
    path('customers/<int:pk>/edit/', views.CustomerUpdateView.as_view(), name='customer-edit'),
    path('customers/<int:pk>/delete/', views.customer_delete, name='customer-delete'),
]
