import csv
import logging
from dataclasses import asdict

from django.conf import settings
from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.contrib.auth.mixins import LoginRequiredMixin
from django.contrib.auth.views import LoginView
from django.core.exceptions import ValidationError
from django.db.models import Q
from django.http import HttpResponse, JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.urls import reverse
from django.utils import timezone
from django.views import View
from django.views.decorators.http import require_POST
from django.views.generic import DetailView, ListView

from users.audit import client_ip, log_action
from users.models import Profile, is_admin, role_for
from users.permissions import AdminRequiredMixin, admin_required

from . import services
from .forms import AssignTicketForm, LoginForm, ReportPeriodForm, ResolveTicketForm, SupportTicketForm
from .models import SupportTicket

logger = logging.getLogger(__name__)

REPORT_TYPES = ('sales', 'stock', 'profit', 'antibiotics')


def _is_ajax(request):
    return request.headers.get('X-Requested-With') == 'XMLHttpRequest'


def _error_text(error):
    return "; ".join(error.messages)


# ============================================
# LOGIN
# ============================================

class RoleBasedLoginView(LoginView):
    template_name = 'registration/login.html'
    authentication_form = LoginForm
    redirect_authenticated_user = True

    def form_valid(self, form):
        response = super().form_valid(form)
        user = form.get_user()

        self.request.session['role'] = role_for(user)
        self.request.session['user_name'] = user.get_full_name() or user.username

        profile, _ = Profile.objects.get_or_create(user=user)
        profile.last_login_ip = client_ip(self.request)
        profile.save(update_fields=['last_login_ip'])

        log_action(user, 'LOGIN', 'User', user.pk, f"{user.username} logged in as {self.request.session['role']}",
                   request=self.request)
        return response

    def get_default_redirect_url(self):
        return reverse('dashboard')


# ============================================
# DASHBOARD
# ============================================

@login_required
def dashboard(request):
    kpis = services.dashboard_kpis(user=request.user)

    if _is_ajax(request):
        data = asdict(kpis)
        data.pop('recent_sales')
        data['date'] = kpis.date.isoformat()
        return JsonResponse({'success': True, 'kpis': data})

    return render(request, 'website/dashboard.html', {'kpis': kpis})


# ============================================
# REPORTS
# ============================================

class ReportsView(AdminRequiredMixin, View):
    template_name = 'website/reports.html'

    def get(self, request):
        today = timezone.localdate()
        report_type = request.GET.get('type', 'sales')
        if report_type not in REPORT_TYPES:
            report_type = 'sales'

        if 'start' in request.GET or 'end' in request.GET:
            form = ReportPeriodForm(request.GET)
        else:
            form = ReportPeriodForm(initial={'start': today.replace(day=1), 'end': today})

        if form.is_bound and form.is_valid():
            start, end = form.cleaned_data['start'], form.cleaned_data['end']
        else:
            start, end = today.replace(day=1), today

        context = {'form': form, 'report_type': report_type, 'start': start, 'end': end}

        if report_type == 'sales':
            context['report'] = services.sales_report(start, end)
        elif report_type == 'stock':
            context['report'] = services.stock_report()
        elif report_type == 'profit':
            context['report'] = services.profit_loss(start, end)
        else:
            logs = services.antibiotic_report(start, end)
            if request.GET.get('export') == 'csv':
                return self._antibiotic_csv(logs, start, end)
            context['logs'] = logs

        return render(request, self.template_name, context)

    def _antibiotic_csv(self, logs, start, end):
        response = HttpResponse(content_type='text/csv')
        response['Content-Disposition'] = f'attachment; filename="antibiotics_{start}_{end}.csv"'
        writer = csv.writer(response)
        writer.writerow(['Date', 'Invoice', 'Product', 'Batch', 'Quantity', 'Customer', 'Contact',
                         'Doctor', 'Prescription Date'])
        for entry in logs:
            writer.writerow([
                entry.sale.sale_date.strftime('%Y-%m-%d %H:%M'),
                entry.sale.invoice_number,
                entry.product.name,
                entry.batch.batch_number,
                entry.quantity,
                entry.customer.name,
                entry.customer.contact_number,
                entry.doctor_name,
                entry.prescription_date,
            ])
        log_action(self.request.user, 'EXPORT', 'AntibioticLog', '', f"Antibiotic register {start} to {end}",
                   request=self.request)
        return response


# ============================================
# SUPPORT TICKETS
# ============================================

def _visible_tickets(user):
    queryset = SupportTicket.objects.select_related('created_by', 'assigned_to')
    if is_admin(user):
        return queryset
    return queryset.filter(Q(created_by=user) | Q(assigned_to=user))


class TicketListView(LoginRequiredMixin, ListView):
    model = SupportTicket
    template_name = 'website/ticket_list.html'
    context_object_name = 'tickets'
    paginate_by = settings.PHARMACY_CONFIG['LIST_PAGE_SIZE']

    def get_queryset(self):
        params = self.request.GET
        tickets = services.filter_tickets(
            status=params.get('status'),
            priority=params.get('priority'),
            category=params.get('category'),
        )
        return tickets.filter(pk__in=_visible_tickets(self.request.user).values('pk'))

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['status_choices'] = SupportTicket.STATUS_CHOICES
        context['priority_choices'] = SupportTicket.PRIORITY_CHOICES
        context['category_choices'] = SupportTicket.CATEGORY_CHOICES
        return context


class TicketCreateView(LoginRequiredMixin, View):
    template_name = 'website/ticket_form.html'

    def get(self, request):
        return render(request, self.template_name, {'form': SupportTicketForm()})

    def post(self, request):
        form = SupportTicketForm(request.POST)
        if not form.is_valid():
            return render(request, self.template_name, {'form': form})

        try:
            ticket = services.create_ticket(form.cleaned_data, request.user, request=request)
        except ValidationError as e:
            form.add_error(None, e)
            return render(request, self.template_name, {'form': form})

        messages.success(request, f"Ticket {ticket.ticket_number} submitted.")
        return redirect('ticket-detail', pk=ticket.pk)


class TicketDetailView(LoginRequiredMixin, DetailView):
    model = SupportTicket
    template_name = 'website/ticket_detail.html'
    context_object_name = 'ticket'

    def get_queryset(self):
        return _visible_tickets(self.request.user)

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['assign_form'] = AssignTicketForm(initial={'assigned_to': self.object.assigned_to})
        context['resolve_form'] = ResolveTicketForm()
        context['can_resolve'] = is_admin(self.request.user) or self.object.assigned_to == self.request.user
        return context


def _ticket_response(request, ticket, message, error=None):
    if _is_ajax(request):
        if error:
            return JsonResponse({'success': False, 'message': error}, status=400)
        return JsonResponse({'success': True, 'message': message, 'status': ticket.status})
    if error:
        messages.error(request, error)
    else:
        messages.success(request, message)
    return redirect('ticket-detail', pk=ticket.pk)


@admin_required
@require_POST
def ticket_assign(request, pk):
    ticket = get_object_or_404(SupportTicket, pk=pk)
    form = AssignTicketForm(request.POST)
    if not form.is_valid():
        return _ticket_response(request, ticket, '', error="Choose a user to assign the ticket to.")
    try:
        services.assign_ticket(ticket, form.cleaned_data['assigned_to'], request.user, request=request)
    except ValidationError as e:
        return _ticket_response(request, ticket, '', error=_error_text(e))
    return _ticket_response(request, ticket, f"Ticket {ticket.ticket_number} assigned to {ticket.assigned_to}.")


@login_required
@require_POST
def ticket_resolve(request, pk):
    ticket = get_object_or_404(_visible_tickets(request.user), pk=pk)
    if not (is_admin(request.user) or ticket.assigned_to == request.user):
        return _ticket_response(request, ticket, '', error="Only the assignee or an administrator can resolve this ticket.")

    form = ResolveTicketForm(request.POST)
    resolution = form.cleaned_data['resolution'] if form.is_valid() else ''
    try:
        services.resolve_ticket(ticket, resolution, request.user, request=request)
    except ValidationError as e:
        return _ticket_response(request, ticket, '', error=_error_text(e))
    return _ticket_response(request, ticket, f"Ticket {ticket.ticket_number} resolved.")


@admin_required
@require_POST
def ticket_close(request, pk):
    ticket = get_object_or_404(SupportTicket, pk=pk)
    try:
        services.close_ticket(ticket, request.user, request=request)
    except ValidationError as e:
        return _ticket_response(request, ticket, '', error=_error_text(e))
    return _ticket_response(request, ticket, f"Ticket {ticket.ticket_number} closed.")
