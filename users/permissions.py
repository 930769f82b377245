from functools import wraps

from django.contrib import messages
from django.contrib.auth.mixins import LoginRequiredMixin
from django.contrib.auth.views import redirect_to_login
from django.http import JsonResponse
from django.shortcuts import redirect
from rest_framework.permissions import BasePermission

from .models import is_admin

ADMIN_ONLY_MESSAGE = "Only administrators can perform this action."


def _is_ajax(request):
    return request.headers.get('X-Requested-With') == 'XMLHttpRequest'


def _deny(request):
    if _is_ajax(request):
        return JsonResponse({'success': False, 'message': ADMIN_ONLY_MESSAGE}, status=403)
    messages.error(request, ADMIN_ONLY_MESSAGE)
    return redirect('dashboard')


class AdminRequiredMixin(LoginRequiredMixin):
    """Gate a class-based view to admins (profile role or superuser)."""

    def dispatch(self, request, *args, **kwargs):
        if not request.user.is_authenticated:
            return self.handle_no_permission()
        if not is_admin(request.user):
            return _deny(request)
        return super().dispatch(request, *args, **kwargs)


def admin_required(view_func):
    @wraps(view_func)
    def _wrapped(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return redirect_to_login(request.get_full_path())
        if not is_admin(request.user):
            return _deny(request)
        return view_func(request, *args, **kwargs)
    return _wrapped


class IsPharmacyAdmin(BasePermission):
    """DRF permission: write access for admins only."""

    def has_permission(self, request, view):
        if request.method in ('GET', 'HEAD', 'OPTIONS'):
            return bool(request.user and request.user.is_authenticated)
        return is_admin(request.user)
