"""
Authentication — Identity from the identity provider's session JWT.

The identity provider signs an HS256 JWT whose ``sub`` claim is the local
account id. Every endpoint that acts on a connection receives an explicit
Identity built from that token; nothing reads "the current user" ambiently.

Include: Authorization: Bearer <jwt>
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from adsconnect.config import get_settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """Authenticated caller. ``subject`` is the local account id that owns connections and logs."""
    subject: str
    claims: dict = field(default_factory=dict, compare=False)


def decode_identity_token(token: str) -> Optional[Identity]:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None
    subject = payload.get("sub")
    if not subject:
        return None
    return Identity(subject=str(subject), claims=payload)


def get_identity(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
) -> Identity:
    """Require a valid session JWT and return the caller's Identity."""
    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Missing authorization. Include header: Authorization: Bearer <token>",
        )

    identity = decode_identity_token(credentials.credentials)
    if identity is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token. Please sign in again.")
    return identity
