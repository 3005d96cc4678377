"""
Utility functions for the auth module.
"""

import hashlib
import hmac


def hash_password(password: str) -> str:
    """
    Return a SHA256 hash of the given password.

    Note:
        This is only for demo purposes.
        In production, use a strong hashing library such as passlib[bcrypt].
    """
    return hashlib.sha256(password.encode()).hexdigest()


def verify_password(stored: str, supplied: str) -> bool:
    """Constant-time match against a plain or SHA-256-hashed stored password."""
    return hmac.compare_digest(stored, supplied) or hmac.compare_digest(stored, hash_password(supplied))
