"""
User accounts: registration, login, password reset and profile.
"""
import logging
from functools import lru_cache
from typing import Optional

from fastapi import BackgroundTasks
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from config import Settings
from database import create_document, serialize_doc, to_object_id, utcnow
from errors import AuthError, BadRequestError, ConflictError, NotFoundError, ValidationFailed
from notifications import Notifier
from schemas import PasswordReset, ProfileUpdateBody, RegisterBody, User
from security import (
    RESET_TOKEN,
    create_access_token,
    create_reset_token,
    decode_token,
    hash_password,
    verify_password,
)
from validation import (
    check_password,
    normalize_email,
    normalize_username,
    validate_profile_update,
    validate_registration,
)

logger = logging.getLogger(__name__)

CREDENTIAL_FIELDS = ("password", "password_hash", "username", "email")
FORGOT_PASSWORD_MESSAGE = "If an account exists for this email, a password reset link has been sent"


@lru_cache()
def _dummy_hash(rounds: int) -> str:
    return hash_password("not-a-real-password-0", rounds)


def _schedule(background_tasks: Optional[BackgroundTasks], func, *args) -> None:
    if background_tasks is not None:
        background_tasks.add_task(func, *args)
    else:
        func(*args)


def public_user(user: dict) -> dict:
    doc = serialize_doc({k: v for k, v in user.items() if k not in ("password", "password_hash")})
    return doc


def register(
    db: Database,
    body: RegisterBody,
    settings: Settings,
    notifier: Notifier,
    background_tasks: Optional[BackgroundTasks] = None,
) -> dict:
    errors = validate_registration(body)
    if errors:
        raise ValidationFailed(errors)

    username = normalize_username(body.username)
    email = normalize_email(body.email)
    if db["user"].find_one({"$or": [{"username": username}, {"email": email}]}):
        raise ConflictError("Username or email already exists")

    profile = {k: (v.strip() if isinstance(v, str) else v) for k, v in body.model_dump(exclude={"username", "email", "password"}).items()}
    user = User(
        username=username,
        email=email,
        password_hash=hash_password(body.password, settings.bcrypt_rounds),
        **profile,
    )
    try:
        user_id = create_document(db, "user", user)
    except DuplicateKeyError:
        # lost a race with a concurrent registration
        raise ConflictError("Username or email already exists")
    logger.info("Registered user %s", username)

    _schedule(background_tasks, notifier.send_welcome, user.model_dump(exclude={"password_hash"}))
    return {"message": "User registered successfully", "user_id": user_id}


def login(db: Database, username: str, password: str, settings: Settings) -> dict:
    user = db["user"].find_one({"username": normalize_username(username)})
    if not user:
        # keep the response time of an unknown user close to a wrong password
        verify_password(password, _dummy_hash(settings.bcrypt_rounds))
        logger.info("Failed login for unknown user")
        raise AuthError("Invalid credentials")
    if not verify_password(password, user.get("password_hash", "")):
        logger.info("Failed login for %s", user["username"])
        raise AuthError("Invalid credentials")

    user_id = str(user["_id"])
    token = create_access_token(settings, user_id, user["username"])
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"last_login": utcnow()}})
    logger.info("User %s logged in", user["username"])
    return {
        "message": "Login successful",
        "token": token,
        "user": {
            "id": user_id,
            "username": user["username"],
            "email": user["email"],
            "first_name": user.get("first_name"),
            "last_name": user.get("last_name"),
        },
    }


def forgot_password(
    db: Database,
    email: str,
    settings: Settings,
    notifier: Notifier,
    background_tasks: Optional[BackgroundTasks] = None,
) -> dict:
    email = normalize_email(email)
    if db["user"].find_one({"email": email}):
        token = create_reset_token(settings, email)
        ticket = PasswordReset(email=email, token=token).model_dump()
        # one outstanding ticket per email; a new request replaces the old one
        db["password_reset"].update_one(
            {"email": email},
            {"$set": {**ticket, "created_at": utcnow()}},
            upsert=True,
        )
        reset_link = f"{settings.frontend_url}/reset_password.html?token={token}"
        _schedule(background_tasks, notifier.send_password_reset, email, reset_link, settings.reset_token_ttl_minutes)
        logger.info("Password reset requested for %s", email)
    else:
        logger.info("Password reset requested for unregistered email")
    return {"message": FORGOT_PASSWORD_MESSAGE}


def reset_password(db: Database, token: str, new_password: str, settings: Settings) -> dict:
    payload = decode_token(settings, token, RESET_TOKEN)
    if not payload or not payload.get("email"):
        raise BadRequestError("Invalid or expired reset token")
    email = payload["email"]

    errors = check_password(new_password, "new_password")
    if errors:
        raise ValidationFailed(errors)

    # claim the ticket before touching the hash so it can only be spent once
    if not db["password_reset"].find_one_and_delete({"email": email, "token": token}):
        raise BadRequestError("Invalid or expired reset token")

    db["user"].update_one(
        {"email": email},
        {"$set": {"password_hash": hash_password(new_password, settings.bcrypt_rounds), "updated_at": utcnow()}},
    )
    logger.info("Password reset completed for %s", email)
    return {"message": "Password reset successfully"}


def _find_user(db: Database, user_id: str) -> dict:
    _id = to_object_id(user_id)
    user = db["user"].find_one({"_id": _id}, {"password_hash": 0}) if _id else None
    if not user:
        raise NotFoundError("User not found")
    return user


def get_profile(db: Database, user_id: str) -> dict:
    return public_user(_find_user(db, user_id))


def update_profile(db: Database, user_id: str, body: ProfileUpdateBody) -> dict:
    errors = validate_profile_update(body)
    if errors:
        raise ValidationFailed(errors)
    user = _find_user(db, user_id)

    update = {k: v.strip() for k, v in body.model_dump(exclude_none=True).items() if k not in CREDENTIAL_FIELDS}
    update["updated_at"] = utcnow()
    db["user"].update_one({"_id": user["_id"]}, {"$set": update})
    return get_profile(db, user_id)
