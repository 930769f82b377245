from django.contrib import admin
from django.urls import path, include
from django.contrib.auth.views import LogoutView
from website.views import RoleBasedLoginView

admin.site.site_header = "Pharmacy Administration"
admin.site.site_title = "Pharmacy Admin Portal"

urlpatterns = [
    path('admin/', admin.site.urls),

    # Auth
    path('login/', RoleBasedLoginView.as_view(), name='login'),
    path('logout/', LogoutView.as_view(next_page='/login/'), name='logout'),

    # HTML ROUTES (Django Template Views)
    path('inventory/', include('inventory.urls')),
    path('sales/', include('sales.urls')),
    path('purchases/', include('purchases.urls')),
    path('users/', include('users.urls')),

    # Dashboard, reports, support
    path('', include('website.urls')),
]
