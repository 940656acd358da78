from django.urls import path
from . import views

urlpatterns = [
    # Loans
    path('loans/', views.LoanListCreateView.as_view(), name='loan-list'),
    path('loans/<int:loan_id>/', views.LoanDetailView.as_view(), name='loan-detail'),
    path('loans/<int:loan_id>/activate/', views.LoanActivateView.as_view(), name='loan-activate'),

    # Collections
    path('collections/', views.CollectionListCreateView.as_view(), name='collection-list'),

    # Borrowings
    path('borrowings/', views.BorrowingListCreateView.as_view(), name='borrowing-list'),
    path('borrowings/<int:borrowing_id>/repayments/', views.BorrowingRepaymentView.as_view(), name='borrowing-repayments'),

    # Analytics
    path('analytics/', views.FinanceAnalyticsView.as_view(), name='finance-analytics'),
]
