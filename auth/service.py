"""
Core authentication logic.

Validates HTTP Basic credentials against the configured user store and
returns the caller id used for link ownership checks.
"""

from fastapi import HTTPException, status

from . import config
from .utils import verify_password


def authenticate_user(username: str, password: str) -> str:
    """
    Authenticate a user by validating their username and password.

    Returns:
        str: The authenticated username (caller id).

    Raises:
        HTTPException: If authentication fails (401 Unauthorized).
    """
    stored_password = config.USERS.get(username)

    if stored_password is None or not verify_password(stored_password, password):
        # Same message for both cases so usernames cannot be enumerated
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Basic"},
        )
    return username
