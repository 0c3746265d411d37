"""
Django REST Framework serializers for authentication app.

These serializers validate the admin account forms:
- Login
- Change password / change email (both re-check the current password)
- Forgot password / password reset
"""

from django.contrib.auth import get_user_model
from rest_framework import serializers

User = get_user_model()

MIN_PASSWORD_LENGTH = 6


class AdminUserSerializer(serializers.ModelSerializer):
    """
    Public profile of the logged-in admin.
    """
    class Meta:
        model = User
        fields = [
            'id',
            'username',
            'email',
            'first_name',
            'last_name',
            'last_login'
        ]


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField(error_messages={'invalid': 'Invalid email address.'})
    password = serializers.CharField(
        min_length=MIN_PASSWORD_LENGTH,
        trim_whitespace=False,
        error_messages={'min_length': 'Password must be at least 6 characters.'}
    )


class ChangePasswordSerializer(serializers.Serializer):
    current_password = serializers.CharField(
        trim_whitespace=False,
        error_messages={'blank': 'Current password is required.'}
    )
    new_password = serializers.CharField(
        min_length=MIN_PASSWORD_LENGTH,
        trim_whitespace=False,
        error_messages={'min_length': 'New password must be at least 6 characters.'}
    )


class ChangeEmailSerializer(serializers.Serializer):
    new_email = serializers.EmailField(error_messages={'invalid': 'Please enter a valid email address.'})
    password = serializers.CharField(
        trim_whitespace=False,
        error_messages={'blank': 'Password is required to make this change.'}
    )


class ForgotPasswordSerializer(serializers.Serializer):
    email = serializers.EmailField(error_messages={'invalid': 'Please enter a valid email address.'})


class PasswordResetSerializer(serializers.Serializer):
    """
    Completes a reset started by ForgotPassword.
    uid and token come from the emailed link.
    """
    uid = serializers.CharField()
    token = serializers.CharField()
    new_password = serializers.CharField(
        min_length=MIN_PASSWORD_LENGTH,
        trim_whitespace=False,
        error_messages={'min_length': 'New password must be at least 6 characters.'}
    )
