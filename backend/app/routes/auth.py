"""Bearer-token identity resolution for entitlement routes."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

logger = logging.getLogger(__name__)

SUPER_ADMIN_ROLE = "super_admin"

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Actor:
    """Authenticated caller; the core only ever sees ``actor_id``."""

    actor_id: str
    role: Optional[str] = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == SUPER_ADMIN_ROLE


def decode_actor(token: str, secret_key: str, algorithm: str = "HS256") -> Optional[Actor]:
    """Return the actor encoded in ``token`` or ``None`` when it is unusable."""

    try:
        payload = jwt.decode(token, secret_key, algorithms=[algorithm])
    except JWTError:
        return None

    subject = payload.get("userId") or payload.get("sub")
    if subject is None:
        return None
    role = payload.get("role")
    return Actor(actor_id=str(subject), role=str(role) if role is not None else None)


def get_current_actor(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Actor:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    config = request.app.state.config
    actor = decode_actor(credentials.credentials, config.jwt_secret_key, config.jwt_algorithm)
    if actor is None:
        logger.debug("Rejected bearer token for %s", request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return actor


def require_super_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_super_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Super admin access required")
    return actor
