from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from samartha.core.config import settings
from samartha.models.actor import Actor

# Tokens are issued by the auth service; this side only verifies them.
bearer_scheme = HTTPBearer(auto_error=False)


def create_token(payload: Dict[str, Any], minutes: int = 30) -> str:
    payload = dict(payload)
    payload["exp"] = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_alg)

def decode_token(token: str):
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_alg])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

async def get_current_actor(creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)) -> Actor:
    if creds is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    data = decode_token(creds.credentials)
    if not data.get("sub"):
        raise HTTPException(status_code=401, detail="Token has no subject")
    return Actor(id=str(data["sub"]), role=data.get("role", "user"))

def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="Admin only")
    return actor
