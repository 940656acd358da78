from django.urls import path
from . import views

urlpatterns = [
    # Authentication
    path('token/', views.MyTokenObtainPairView.as_view(), name='token_obtain_pair'),

    # User Profile
    path('profile/', views.UserProfileView.as_view(), name='profile'),

    # User Management
    path('', views.UserListCreateView.as_view(), name='user-list'),
    path('<int:user_id>/', views.UserDetailView.as_view(), name='user-detail'),
    path('<int:user_id>/grants/', views.ManagerGrantView.as_view(), name='user-grants'),
    path('<int:user_id>/deletion-check/', views.UserDeletionCheckView.as_view(), name='user-deletion-check'),
]
