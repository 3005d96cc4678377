"""
Configuration for the auth module.

Users are loaded from LINKHOP_USERS as comma-separated `username:password`
pairs (the password may be plain text or its SHA-256 hex digest). When unset,
a single demo account is provided.
"""

import os
from typing import Dict


def load_users(raw: str) -> Dict[str, str]:
    users: Dict[str, str] = {}
    for pair in raw.split(","):
        username, sep, password = pair.strip().partition(":")
        if sep and username:
            users[username] = password
    return users


USERS: Dict[str, str] = load_users(
    os.getenv("LINKHOP_USERS", f"linkhop_demo:{os.getenv('DEMO_USER_PASSWORD', 'linkhop_demo')}")
)
