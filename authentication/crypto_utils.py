"""
Voter email protection.

Voter records never store a plain email address. Each one keeps:
- a SHA-256 digest of the normalized address, used for lookups
- a Fernet token of the address, readable only by admins

Ballot selections and reviews carry a random session hash instead of
anything that could lead back to the voter.
"""

import base64
import functools
import hashlib
import secrets

from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from django.conf import settings

KDF_ITERATIONS = 100000


@functools.lru_cache(maxsize=4)
def _fernet_for(secret):
    # Salt comes from the secret itself, so the same ENCRYPTION_KEY always
    # yields the same Fernet key and existing records stay readable.
    secret_bytes = secret.encode()
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=hashlib.sha256(secret_bytes).digest()[:16],
        iterations=KDF_ITERATIONS,
    )
    return Fernet(base64.urlsafe_b64encode(kdf.derive(secret_bytes)))


def _fernet():
    return _fernet_for(settings.ENCRYPTION_KEY)


def encrypt_email(email):
    """
    Encrypt a voter email for storage.

    Args:
        email (str): address to protect

    Returns:
        str: Fernet token, or None for an empty address
    """
    if not email:
        return None
    return _fernet().encrypt(email.encode()).decode()


def decrypt_email(token):
    """
    Reverse encrypt_email(). Raises cryptography.fernet.InvalidToken when
    the token was produced under a different ENCRYPTION_KEY.
    """
    if not token:
        return None
    return _fernet().decrypt(token.encode()).decode()


def normalize_email(email):
    """Lowercase and strip an email address."""
    if not email:
        return None
    return email.strip().lower()


def hash_email(email):
    """
    Lookup key of a voter email.

    "Ann@Example.com " and "ann@example.com" give the same digest, so a
    voter is found whatever casing they type.

    Example:
        >>> len(hash_email("Voter@Example.com"))
        64
    """
    normalized = normalize_email(email)
    if not normalized:
        return None
    return hashlib.sha256(normalized.encode()).hexdigest()


def verify_email_hash(email, stored_hash):
    if not email or not stored_hash:
        return False
    return secrets.compare_digest(hash_email(email), stored_hash)


def generate_session_hash():
    """Random 64-character hex value shared by the entries of one submission."""
    return secrets.token_hex(32)


def mask_email(email):
    """
    Mask an email for log output: "voter@example.com" -> "vo***@example.com".
    """
    if not email or '@' not in email:
        return '***'
    local, domain = email.split('@', 1)
    return f"{local[:2]}***@{domain}"
