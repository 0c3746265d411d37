"""
Signed JWT utilities for email-linked flows.

This module provides functions for:
- Signing invite tokens that bind a voter email to an election room
- Verifying invite tokens when a voter opens the waiting room link
- Signing/verifying email-change confirmation tokens for admin accounts
"""

import jwt
import logging
from datetime import datetime, timedelta, timezone
from django.conf import settings

from .crypto_utils import normalize_email, mask_email

logger = logging.getLogger(__name__)

ALGORITHM = 'HS256'

PURPOSE_INVITE = 'invite'
PURPOSE_EMAIL_CHANGE = 'email_change'


def _encode(payload, lifetime):
    now = datetime.now(timezone.utc)
    claims = dict(payload, iat=now, exp=now + lifetime)
    return jwt.encode(claims, settings.INVITE_TOKEN_SECRET, algorithm=ALGORITHM)


def _decode(token, purpose):
    """
    Verify signature, expiration and purpose of a token.

    Raises:
        jwt.ExpiredSignatureError: If token is expired
        jwt.InvalidTokenError: If signature or purpose is wrong
    """
    try:
        payload = jwt.decode(
            token,
            settings.INVITE_TOKEN_SECRET,
            algorithms=[ALGORITHM],
            options={
                'verify_signature': True,
                'verify_exp': True,
                'require': ['exp', 'purpose'],
            }
        )
    except jwt.ExpiredSignatureError:
        logger.warning(f"Expired {purpose} token presented")
        raise
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid {purpose} token presented: {e}")
        raise

    if payload.get('purpose') != purpose:
        logger.warning(f"Token purpose mismatch: expected {purpose}, got {payload.get('purpose')}")
        raise jwt.InvalidTokenError("Token was not issued for this purpose")

    return payload


def create_invite_token(email, room_id):
    """
    Sign an invite token for a voter.

    Args:
        email (str): Voter email address
        room_id (int): ID of the election room

    Returns:
        str: Encoded JWT, valid for INVITE_TOKEN_TTL_DAYS days

    Example:
        >>> token = create_invite_token("voter@example.com", 12)
        >>> decode_invite_token(token)
        {'email': 'voter@example.com', 'room_id': 12}
    """
    token = _encode(
        {
            'purpose': PURPOSE_INVITE,
            'email': normalize_email(email),
            'room_id': int(room_id),
        },
        timedelta(days=settings.INVITE_TOKEN_TTL_DAYS),
    )
    logger.debug(f"Invite token issued for {mask_email(email)} in room {room_id}")
    return token


def decode_invite_token(token):
    """
    Verify an invite token and extract its claims.

    Returns:
        dict: {'email': str, 'room_id': int}

    Raises:
        jwt.ExpiredSignatureError: If the invite has expired
        jwt.InvalidTokenError: If the token is malformed or tampered with
    """
    payload = _decode(token, PURPOSE_INVITE)

    email = payload.get('email')
    room_id = payload.get('room_id')
    if not email or room_id is None:
        raise jwt.InvalidTokenError("Invite token is missing email or room_id")

    return {'email': email, 'room_id': int(room_id)}


def create_email_change_token(user, new_email):
    """
    Sign a confirmation token for changing an admin account email.
    The current email is embedded so the link dies once the email changes.
    """
    return _encode(
        {
            'purpose': PURPOSE_EMAIL_CHANGE,
            'user_id': user.pk,
            'current_email': normalize_email(user.email),
            'new_email': normalize_email(new_email),
        },
        timedelta(hours=settings.EMAIL_CHANGE_TOKEN_TTL_HOURS),
    )


def decode_email_change_token(token):
    payload = _decode(token, PURPOSE_EMAIL_CHANGE)

    if not payload.get('user_id') or not payload.get('new_email'):
        raise jwt.InvalidTokenError("Email change token is missing claims")

    return payload
