"""Policy id generation."""

import secrets
import string

_ALPHABET = string.digits + string.ascii_uppercase


def generate_policy_id(zip_code: str) -> str:
    """Return a policy id of the form ``POL-<zip>-<5 base-36 chars>``."""
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(5))
    return f"POL-{zip_code}-{suffix}"
