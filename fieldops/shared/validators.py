"""Shared validation utilities"""

import re
from typing import Optional

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(email: Optional[str]) -> str:
    return str(email or "").strip().lower()


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email) is not None


def clean_optional(value: Optional[str]) -> Optional[str]:
    """Trim a free-text field; blank becomes None"""
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def display_name(full_name: Optional[str], email: str, fallback: str) -> str:
    """Name to store on profiles and technicians, max 100 chars"""
    name = (full_name or "").strip() or email.split("@")[0] or fallback
    return name[:100]
