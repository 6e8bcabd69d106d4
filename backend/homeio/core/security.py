"""
API key check for the HTTP front end.

Keys come from settings.API_KEYS; an empty list leaves the API open.
"""

import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from .config import Settings, settings


def get_settings(request: Request) -> Settings:
    """Dependency returning the settings the application was built with"""
    return getattr(request.app.state, "settings", settings)


def is_valid_api_key(api_key: Optional[str], allowed_keys: list[str]) -> bool:
    if not allowed_keys:
        return True
    if not api_key:
        return False
    return any(secrets.compare_digest(api_key, key) for key in allowed_keys)


async def require_api_key(
    x_api_key: Optional[str] = Header(default=None),
    current_settings: Settings = Depends(get_settings)
):
    if not is_valid_api_key(x_api_key, current_settings.API_KEYS):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
