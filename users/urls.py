from django.urls import path

from .views import (
    AuditLogListView,
    GetUsersJSONView,
    RegisterView,
    UserCreateView,
    UserListView,
    UserUpdateView,
    profile,
    toggle_user_active,
)

app_name = 'users'

urlpatterns = [
    path('', UserListView.as_view(), name='user-list'),
    path('add/', UserCreateView.as_view(), name='user-add'),
    path('<int:pk>/edit/', UserUpdateView.as_view(), name='user-edit'),
    path('<int:pk>/toggle/', toggle_user_active, name='user-toggle'),
    path('register/', RegisterView.as_view(), name='register'),
    path('profile/', profile, name='profile'),
    path('audit-log/', AuditLogListView.as_view(), name='audit-log'),
    path('get-users/', GetUsersJSONView.as_view(), name='get-users-json'),
]
