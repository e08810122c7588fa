"""Password strength checks shown before a password is set."""

import re
from dataclasses import dataclass
from typing import Optional

MIN_PASSWORD_LENGTH = 6
STRONG_PASSWORD_LENGTH = 8


@dataclass
class PasswordValidation:
    """Result of a strength check."""

    valid: bool
    strong: bool
    message: Optional[str] = None


def validate_password_strength(
    password: str,
    min_length: int = MIN_PASSWORD_LENGTH,
) -> PasswordValidation:
    """
    Check a candidate password.

    Passwords shorter than ``min_length`` are invalid. A strong password has
    8+ characters and mixes upper case, lower case, digits and symbols;
    anything else that is long enough is valid but weak.

    Args:
        password: Candidate password
        min_length: Minimum accepted length

    Returns:
        PasswordValidation
    """
    if len(password) < min_length:
        return PasswordValidation(
            valid=False,
            strong=False,
            message=f"Password must be at least {min_length} characters",
        )

    missing = []
    if len(password) < STRONG_PASSWORD_LENGTH:
        missing.append(f"{STRONG_PASSWORD_LENGTH}+ characters")
    if not re.search(r"[A-Z]", password):
        missing.append("uppercase letter")
    if not re.search(r"[a-z]", password):
        missing.append("lowercase letter")
    if not re.search(r"[0-9]", password):
        missing.append("number")
    if not re.search(r"[^A-Za-z0-9]", password):
        missing.append("special symbol")

    if not missing:
        return PasswordValidation(valid=True, strong=True, message="Strong password")

    return PasswordValidation(
        valid=True,
        strong=False,
        message=f"Weak password. For strong security, add: {', '.join(missing)}",
    )
