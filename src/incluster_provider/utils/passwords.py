"""Utilities for generating database credentials."""

from __future__ import annotations

import re
import secrets

from ..constants import PASSWORD_LENGTH

_GENERATED = re.compile(rf"[0-9a-f]{{{PASSWORD_LENGTH}}}")


def generate_password() -> str:
    """Generate a random password.

    The password is ``PASSWORD_LENGTH`` lowercase hex characters and never
    contains a ``-``.
    """
    return secrets.token_hex(PASSWORD_LENGTH // 2)


def is_generated_password(value: str) -> bool:
    """Check whether ``value`` has the shape ``generate_password`` produces."""
    return _GENERATED.fullmatch(value) is not None
