"""
Bearer-token identity for the discount API.

Tokens are issued by the platform's auth service; this module only decodes
them. Claims used: `sub` (user id) and `roles` (list, e.g. ["admin"]) or a single `role`.
"""
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from promo_engine.core.logging_config import get_logger
from promo_engine.core.security import decode_access_token
from promo_engine.services.discount_authoring import Actor

logger = get_logger("auth")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)

ADMIN_ROLES = {"admin", "super_admin"}


def get_current_actor(token: Optional[str] = Depends(oauth2_scheme)) -> Actor:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid authentication credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not token:
        logger.warning("get_current_actor: no token")
        raise credentials_exception

    payload = decode_access_token(token)
    if payload is None:
        logger.warning("get_current_actor: token decode failed")
        raise credentials_exception

    user_id = payload.get("sub")
    if user_id is None:
        logger.warning("get_current_actor: no sub in payload")
        raise credentials_exception

    roles = payload.get("roles") or payload.get("role") or []
    if isinstance(roles, str):
        roles = [roles]
    is_admin = any(str(r).lower() in ADMIN_ROLES for r in roles)
    return Actor(user_id=str(user_id), is_admin=is_admin)
