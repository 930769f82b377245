from django.urls import path

from .views import (
    ReportsView,
    TicketCreateView,
    TicketDetailView,
    TicketListView,
    dashboard,
    ticket_assign,
    ticket_close,
    ticket_resolve,
)

urlpatterns = [
    path('', dashboard, name='dashboard'),
    path('reports/', ReportsView.as_view(), name='reports'),

    # Support
    path('support/', TicketListView.as_view(), name='ticket-list'),
    path('support/new/', TicketCreateView.as_view(), name='ticket-create'),
    path('support/<int:pk>/', TicketDetailView.as_view(), name='ticket-detail'),
    path('support/<int:pk>/assign/', ticket_assign, name='ticket-assign'),
    path('support/<int:pk>/resolve/', ticket_resolve, name='ticket-resolve'),
    path('support/<int:pk>/close/', ticket_close, name='ticket-close'),
]
