"""
Authentication app URLs - admin login and account management
"""
from django.urls import path
from . import views

app_name = 'authentication'

urlpatterns = [
    # Session
    path('login/', views.LoginView.as_view(), name='login'),
    path('logout/', views.LogoutView.as_view(), name='logout'),
    path('me/', views.CurrentAdminView.as_view(), name='me'),

    # Account management
    path('password/change/', views.ChangePasswordView.as_view(), name='change_password'),
    path('password/forgot/', views.ForgotPasswordView.as_view(), name='forgot_password'),
    path('password/reset/', views.PasswordResetConfirmView.as_view(), name='reset_password'),
    path('email/change/', views.ChangeEmailView.as_view(), name='change_email'),
    path('email/confirm/', views.ConfirmEmailChangeView.as_view(), name='confirm_email'),
]
