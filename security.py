import logging
from datetime import timedelta
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from config import Settings, get_settings
from database import utcnow
from errors import AuthError

logger = logging.getLogger(__name__)

ACCESS_TOKEN = "access"
RESET_TOKEN = "password_reset"

# auto_error=False so a missing header gets the same 401 as a bad token
security = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    id: str
    username: str


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_token(settings: Settings, payload: dict, expires: timedelta) -> str:
    to_encode = {**payload, "exp": utcnow() + expires}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(settings: Settings, token: str, token_type: str) -> Optional[dict]:
    """Return the payload, or None if the token is expired, forged or of another type."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected %s token: expired", token_type)
        return None
    except jwt.InvalidTokenError as exc:
        logger.debug("Rejected %s token: %s", token_type, exc)
        return None
    if payload.get("type") != token_type:
        logger.debug("Rejected token: expected type %s, got %s", token_type, payload.get("type"))
        return None
    return payload


def create_access_token(settings: Settings, user_id: str, username: str) -> str:
    return create_token(
        settings,
        {"user_id": user_id, "username": username, "type": ACCESS_TOKEN},
        timedelta(hours=settings.access_token_ttl_hours),
    )


def create_reset_token(settings: Settings, email: str) -> str:
    return create_token(
        settings,
        {"email": email, "type": RESET_TOKEN},
        timedelta(minutes=settings.reset_token_ttl_minutes),
    )


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
) -> CurrentUser:
    if credentials is None:
        logger.debug("Rejected request: no bearer token")
        raise AuthError("Not authenticated")
    payload = decode_token(settings, credentials.credentials, ACCESS_TOKEN)
    if not payload or not payload.get("user_id"):
        raise AuthError("Not authenticated")
    return CurrentUser(id=payload["user_id"], username=payload.get("username", ""))
