"""
Validation utilities for user input (emails, passwords, client IP)
"""
import re
from typing import Tuple
from fastapi import Request

_EMAIL_RE = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')

MIN_PASSWORD_LENGTH = 6


def validate_email(email: str) -> Tuple[bool, str]:
    """
    Validate email address format.
    Returns (is_valid, error_message).
    """
    trimmed = (email or "").strip().lower()
    if not trimmed:
        return False, "Email is required"
    if len(trimmed) > 254 or not _EMAIL_RE.match(trimmed):
        return False, "Invalid email format"
    return True, ""


def validate_password(password: str, confirm: str | None = None) -> Tuple[bool, str]:
    if confirm is not None and password != confirm:
        return False, "Passwords do not match"
    if len(password or "") < MIN_PASSWORD_LENGTH:
        return False, f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    return True, ""


def client_ip(request: Request) -> str:
    ip = request.client.host if request.client else "unknown"
    # Take the first IP in the chain when behind a proxy
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    return ip
