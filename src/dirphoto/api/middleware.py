"""Middleware: HTTP Basic authentication."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

if TYPE_CHECKING:
    from dirphoto.config import Settings

_basic_scheme = HTTPBasic(auto_error=False)


def _get_settings_from_request(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


async def verify_basic_auth(
    request: Request,
    credentials: Annotated[HTTPBasicCredentials | None, Depends(_basic_scheme)],
) -> None:
    """Check Basic-Auth credentials against the configured account.

    If authentication is disabled in the configuration, all requests pass.
    Username and password are both compared in constant time.
    """
    auth = _get_settings_from_request(request).authentication
    if not auth.enabled:
        return

    if credentials is not None:
        username_ok = secrets.compare_digest(credentials.username.encode(), auth.username.encode())
        password_ok = secrets.compare_digest(credentials.password.encode(), auth.password.encode())
        if username_ok and password_ok:
            return

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": 'Basic realm="Restricted"'},
    )
