from django.urls import path
from .import views

urlpatterns = [
    # CUSTOMER
    path('', views.CustomerListCreateView.as_view(), name='customer-list'),
    path('<int:customer_id>/', views.CustomerDetailView.as_view(), name='customer-detail'),

    # AGENT ASSIGNMENTS
    path('<int:customer_id>/agents/', views.CustomerAgentAssignView.as_view(), name='customer-agent-assign'),
    path('<int:customer_id>/agents/<int:agent_id>/', views.CustomerAgentUnassignView.as_view(), name='customer-agent-unassign'),
]
