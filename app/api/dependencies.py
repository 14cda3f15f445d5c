"""
app/api/dependencies.py

Shared FastAPI dependencies for request authorization.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status

from app.config import AuthSettings, get_auth_settings


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: str


def require_principal(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
    auth_settings: AuthSettings = Depends(get_auth_settings),
) -> Principal:
    """
    Resolve the calling principal from gateway-injected identity headers.

    Missing identity is a 401; a role outside the allowed set is a 403.
    """

    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required.",
        )

    role = (x_user_role or "").strip().lower()
    if role not in auth_settings.allowed_roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions. Admin or manager role required.",
        )

    return Principal(user_id=user_id, role=role)
