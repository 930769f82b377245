import logging

from django.conf import settings
from django.contrib import messages
from django.contrib.auth import get_user_model, login
from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.urls import reverse_lazy
from django.views import View
from django.views.decorators.http import require_POST
from django.views.generic import CreateView, ListView, UpdateView

from .audit import log_action
from .forms import RegistrationForm, StaffUserCreationForm, UserUpdateForm
from .models import AuditLog
from .permissions import AdminRequiredMixin, admin_required

logger = logging.getLogger(__name__)

User = get_user_model()


# List all users
class UserListView(AdminRequiredMixin, ListView):
    model = User
    template_name = 'users/user_list.html'
    context_object_name = 'users'
    paginate_by = settings.PHARMACY_CONFIG['LIST_PAGE_SIZE']

    def get_queryset(self):
        return User.objects.select_related('profile').order_by('username')


# Create a new user
class UserCreateView(AdminRequiredMixin, CreateView):
    model = User
    form_class = StaffUserCreationForm
    template_name = 'users/user_form.html'
    success_url = reverse_lazy('users:user-list')

    def form_valid(self, form):
        response = super().form_valid(form)
        log_action(
            self.request.user, 'CREATE', 'User', self.object.pk,
            f"User {self.object.username} created with role {self.object.profile.role}",
            request=self.request,
        )
        messages.success(self.request, f'User "{self.object.username}" created.')
        return response


# Update an existing user
class UserUpdateView(AdminRequiredMixin, UpdateView):
    model = User
    form_class = UserUpdateForm
    template_name = 'users/user_form.html'
    success_url = reverse_lazy('users:user-list')

    def form_valid(self, form):
        response = super().form_valid(form)
        log_action(
            self.request.user, 'UPDATE', 'User', self.object.pk,
            f"User {self.object.username} updated (role: {self.object.profile.role})",
            request=self.request,
        )
        messages.success(self.request, f'User "{self.object.username}" updated.')
        return response


@admin_required
@require_POST
def toggle_user_active(request, pk):
    user = get_object_or_404(User, pk=pk)
    if user == request.user:
        messages.error(request, "You cannot deactivate your own account.")
        return redirect('users:user-list')

    user.is_active = not user.is_active
    user.save(update_fields=['is_active'])
    state = 'activated' if user.is_active else 'deactivated'
    log_action(request.user, 'TOGGLE_STATUS', 'User', user.pk, f"User {user.username} {state}", request=request)
    messages.success(request, f'User "{user.username}" {state}.')
    return redirect('users:user-list')


class RegisterView(CreateView):
    """Public self-registration; new accounts are employees."""
    form_class = RegistrationForm
    template_name = 'users/register.html'
    success_url = reverse_lazy('dashboard')

    def dispatch(self, request, *args, **kwargs):
        if request.user.is_authenticated:
            return redirect('dashboard')
        return super().dispatch(request, *args, **kwargs)

    def form_valid(self, form):
        response = super().form_valid(form)
        login(self.request, self.object)
        log_action(self.object, 'REGISTER', 'User', self.object.pk, "Self registration", request=self.request)
        logger.info(f"New employee registered: {self.object.username}")
        return response


class AuditLogListView(AdminRequiredMixin, ListView):
    model = AuditLog
    template_name = 'users/auditlog_list.html'
    context_object_name = 'entries'
    paginate_by = 100

    def get_queryset(self):
        queryset = AuditLog.objects.select_related('user')

        entity_type = self.request.GET.get('entity_type')
        if entity_type:
            queryset = queryset.filter(entity_type=entity_type)

        action = self.request.GET.get('action')
        if action:
            queryset = queryset.filter(action=action)

        return queryset


class GetUsersJSONView(View):
    """Active users for assignment dropdowns."""

    def get(self, request):
        if not request.user.is_authenticated:
            return JsonResponse({'users': []}, status=401)
        users = [
            {"id": user.id, "name": user.get_full_name() or user.username}
            for user in User.objects.filter(is_active=True).order_by('username')
        ]
        return JsonResponse({"users": users})


@login_required
def profile(request):
    return render(request, 'users/profile.html', {
        'profile_user': request.user,
        'recent_actions': AuditLog.objects.filter(user=request.user)[:20],
    })
