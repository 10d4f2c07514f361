"""Admin authentication.

Admin endpoints (catastrophe triggers, alert runs, the AI agent, wallet
status) require ``Authorization: Bearer <ADMIN_SECRET>``. Registration and
user lookups are public.
"""

from __future__ import annotations

import secrets

from fastapi import HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from instarelief.core.config import settings

admin_scheme = HTTPBearer(
    scheme_name="Admin Secret",
    description="Pass the admin secret as: `Authorization: Bearer <ADMIN_SECRET>`",
)


async def require_admin(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Security(admin_scheme),
) -> bool:
    """Validate the admin secret for operator endpoints."""
    if not secrets.compare_digest(credentials.credentials, settings.admin_secret):
        raise HTTPException(
            status_code=403,
            detail={
                "code": "FORBIDDEN",
                "message": "Invalid admin secret.",
            },
        )
    request.state.is_admin = True
    return True
