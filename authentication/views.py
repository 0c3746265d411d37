"""
Authentication views - admin login, logout and account management
"""
from django.conf import settings
from django.contrib.auth import authenticate, get_user_model, login, logout, update_session_auth_hash
from django.contrib.auth.tokens import default_token_generator
from django.core.mail import send_mail
from django.template.loader import render_to_string
from django.utils.encoding import force_bytes, force_str
from django.utils.http import urlsafe_base64_decode, urlsafe_base64_encode
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from urllib.parse import urlencode
import jwt
import logging

from .crypto_utils import mask_email, normalize_email
from .serializers import (
    AdminUserSerializer,
    ChangeEmailSerializer,
    ChangePasswordSerializer,
    ForgotPasswordSerializer,
    LoginSerializer,
    PasswordResetSerializer,
)
from .tokens import create_email_change_token, decode_email_change_token

logger = logging.getLogger(__name__)

User = get_user_model()

FORGOT_PASSWORD_MESSAGE = (
    'If an account with the provided email exists, a password reset link has been sent. '
    'Please follow the instructions in the email to reset your password.'
)


def _invalid_response(error, serializer):
    return Response({
        'error': error,
        'detail': serializer.errors
    }, status=status.HTTP_400_BAD_REQUEST)


def _find_user_by_email(email):
    return User.objects.filter(email__iexact=normalize_email(email)).first()


class LoginView(APIView):
    """
    Log an administrator in with email and password.
    Creates a Django session on success.

    Request body:
    - email: str
    - password: str (min 6 characters)
    """

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid_response('Invalid login data', serializer)

        email = serializer.validated_data['email']
        try:
            candidate = _find_user_by_email(email)

            if candidate is not None and not candidate.is_active:
                logger.warning(f"Login attempt on disabled account {mask_email(email)}")
                return Response({
                    'error': 'Login Failed',
                    'detail': 'This user account has been disabled.'
                }, status=status.HTTP_403_FORBIDDEN)

            user = None
            if candidate is not None:
                user = authenticate(
                    request,
                    username=candidate.get_username(),
                    password=serializer.validated_data['password']
                )

            if user is None:
                logger.warning(f"Failed login for {mask_email(email)}")
                return Response({
                    'error': 'Login Failed',
                    'detail': 'Invalid email or password. Please try again.'
                }, status=status.HTTP_401_UNAUTHORIZED)

            if not user.is_staff:
                logger.warning(f"Non-admin account {mask_email(email)} tried to log in")
                return Response({
                    'error': 'Login Failed',
                    'detail': 'This account does not have administrator access.'
                }, status=status.HTTP_403_FORBIDDEN)

            login(request, user)
            logger.info(f"Admin logged in: {user.pk}")

            return Response({
                'success': True,
                'message': 'Login Successful',
                'user': AdminUserSerializer(user).data
            })

        except Exception as e:
            logger.error(f"Login error: {e}", exc_info=True)
            return Response({
                'error': 'Login Failed',
                'detail': str(e)
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


class LogoutView(APIView):

    def post(self, request):
        if request.user.is_authenticated:
            logger.info(f"Admin logged out: {request.user.pk}")
        logout(request)
        return Response({'success': True, 'message': 'Logged out'})


class CurrentAdminView(APIView):
    """Profile of the logged-in admin."""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(AdminUserSerializer(request.user).data)


class ChangePasswordView(APIView):
    """
    Change the admin password after re-checking the current one.
    The session stays valid after the change.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = ChangePasswordSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid_response('Invalid password data', serializer)

        user = request.user
        if not user.check_password(serializer.validated_data['current_password']):
            logger.warning(f"Password change rejected for admin {user.pk}: wrong current password")
            return Response({
                'error': 'Update Failed',
                'detail': 'The current password you entered is incorrect.'
            }, status=status.HTTP_400_BAD_REQUEST)

        try:
            user.set_password(serializer.validated_data['new_password'])
            user.save(update_fields=['password'])
            update_session_auth_hash(request, user)
        except Exception as e:
            logger.error(f"Password change failed for admin {user.pk}: {e}", exc_info=True)
            return Response({
                'error': 'Update Failed',
                'detail': str(e)
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        logger.info(f"Password changed for admin {user.pk}")
        return Response({
            'success': True,
            'message': 'Password Changed Successfully'
        })


class ChangeEmailView(APIView):
    """
    Start an email change. The new address only takes effect once the
    link sent to it is confirmed.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = ChangeEmailSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid_response('Invalid email data', serializer)

        user = request.user
        new_email = normalize_email(serializer.validated_data['new_email'])

        if not user.check_password(serializer.validated_data['password']):
            logger.warning(f"Email change rejected for admin {user.pk}: wrong password")
            return Response({
                'error': 'Update Failed',
                'detail': 'The password you entered is incorrect.'
            }, status=status.HTTP_400_BAD_REQUEST)

        if User.objects.filter(email__iexact=new_email).exclude(pk=user.pk).exists():
            return Response({
                'error': 'Update Failed',
                'detail': 'This email address is already in use by another account.'
            }, status=status.HTTP_400_BAD_REQUEST)

        try:
            token = create_email_change_token(user, new_email)
            confirm_link = f"{settings.FRONTEND_URL}/admin/change-email/confirm?{urlencode({'token': token})}"
            body = render_to_string('authentication/email_change_email.txt', {
                'new_email': new_email,
                'confirm_link': confirm_link,
                'expires_in_hours': settings.EMAIL_CHANGE_TOKEN_TTL_HOURS,
            })
            send_mail(
                'Confirm your new N.E.X.U.S. email address',
                body,
                settings.DEFAULT_FROM_EMAIL,
                [new_email],
                fail_silently=False
            )
        except Exception as e:
            logger.error(f"Email change failed for admin {user.pk}: {e}", exc_info=True)
            return Response({
                'error': 'Update Failed',
                'detail': str(e)
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        logger.info(f"Email change requested for admin {user.pk} -> {mask_email(new_email)}")
        return Response({
            'success': True,
            'message': (
                f'A verification link has been sent to {new_email}. '
                'Please click the link to finalize your email change.'
            )
        })


class ConfirmEmailChangeView(APIView):
    """
    Apply an email change from its confirmation link.

    Query params:
        token (required)
    """

    def get(self, request):
        token = request.GET.get('token')
        if not token:
            return Response({
                'error': 'Invalid link',
                'detail': 'Token parameter is required'
            }, status=status.HTTP_400_BAD_REQUEST)

        try:
            claims = decode_email_change_token(token)
        except jwt.InvalidTokenError:
            return Response({
                'error': 'Invalid link',
                'detail': 'This confirmation link is invalid or has expired.'
            }, status=status.HTTP_400_BAD_REQUEST)

        user = User.objects.filter(pk=claims['user_id']).first()
        if user is None or normalize_email(user.email) != claims.get('current_email'):
            return Response({
                'error': 'Invalid link',
                'detail': 'This confirmation link is no longer valid.'
            }, status=status.HTTP_400_BAD_REQUEST)

        new_email = claims['new_email']
        if User.objects.filter(email__iexact=new_email).exclude(pk=user.pk).exists():
            return Response({
                'error': 'Update Failed',
                'detail': 'This email address is already in use by another account.'
            }, status=status.HTTP_400_BAD_REQUEST)

        user.email = new_email
        user.save(update_fields=['email'])
        logger.info(f"Email changed for admin {user.pk}")

        return Response({
            'success': True,
            'message': 'Your email address has been updated.',
            'email': new_email
        })


class ForgotPasswordView(APIView):
    """
    Send a password reset link. The answer is the same whether or not
    the account exists.
    """

    def post(self, request):
        serializer = ForgotPasswordSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid_response('Invalid email', serializer)

        email = serializer.validated_data['email']
        user = _find_user_by_email(email)

        if user is not None and user.is_active:
            try:
                query = urlencode({
                    'uid': urlsafe_base64_encode(force_bytes(user.pk)),
                    'token': default_token_generator.make_token(user),
                })
                reset_link = f"{settings.FRONTEND_URL}/admin/forgot-password/reset?{query}"
                body = render_to_string('authentication/password_reset_email.txt', {
                    'reset_link': reset_link,
                })
                send_mail(
                    'Reset your N.E.X.U.S. password',
                    body,
                    settings.DEFAULT_FROM_EMAIL,
                    [user.email],
                    fail_silently=False
                )
                logger.info(f"Password reset link sent to {mask_email(email)}")
            except Exception as e:
                logger.error(f"Could not send password reset email: {e}", exc_info=True)
                return Response({
                    'error': 'Error',
                    'detail': 'Could not send password reset email. Please try again.'
                }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        else:
            logger.info(f"Password reset requested for unknown account {mask_email(email)}")

        return Response({
            'success': True,
            'message': FORGOT_PASSWORD_MESSAGE
        })


class PasswordResetConfirmView(APIView):
    """
    Set a new password from a reset link.

    Request body:
    - uid, token: from the emailed link
    - new_password: str (min 6 characters)
    """

    def post(self, request):
        serializer = PasswordResetSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid_response('Invalid reset data', serializer)

        try:
            user_pk = force_str(urlsafe_base64_decode(serializer.validated_data['uid']))
            user = User.objects.filter(pk=user_pk).first()
        except (TypeError, ValueError, OverflowError):
            user = None

        if user is None or not default_token_generator.check_token(user, serializer.validated_data['token']):
            return Response({
                'error': 'Invalid link',
                'detail': 'This password reset link is invalid or has expired.'
            }, status=status.HTTP_400_BAD_REQUEST)

        user.set_password(serializer.validated_data['new_password'])
        user.save(update_fields=['password'])
        logger.info(f"Password reset completed for admin {user.pk}")

        return Response({
            'success': True,
            'message': 'Your password has been reset. You can now log in.'
        })
