"""
Password hashing via ``werkzeug.security`` and payment-token encryption using ``cryptography``.
"""

import base64
from typing import Optional

from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from werkzeug.security import check_password_hash, generate_password_hash

from config import settings


def _get_fernet() -> Fernet:
    """Get Fernet instance from encryption key."""
    key = settings.ENCRYPTION_KEY

    # If key is not 32 bytes, derive a key using PBKDF2
    if len(key) != 32:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=b"marketplace_payment_token_salt",
            iterations=100000,
        )
        key = base64.urlsafe_b64encode(kdf.derive(key.encode()))
    else:
        key = base64.urlsafe_b64encode(key.encode())

    return Fernet(key)


def encrypt_token(token: str) -> str:
    """
    Encrypt a stored payment token.

    Args:
        token: Plain text token

    Returns:
        Base64-encoded encrypted token
    """
    fernet = _get_fernet()
    encrypted = fernet.encrypt(token.encode())
    return encrypted.decode()


def decrypt_token(encrypted_token: str) -> str:
    """Decrypt a token produced by :func:`encrypt_token`."""
    fernet = _get_fernet()
    decrypted = fernet.decrypt(encrypted_token.encode())
    return decrypted.decode()


def hash_password(password: str) -> str:
    """Return a salted hash in werkzeug's ``method$salt$hash`` format."""
    return generate_password_hash(password)


def verify_password(password: str, stored: Optional[str]) -> bool:
    if not stored:
        return False
    return check_password_hash(stored, password)
