"""
Input validation

Each validator returns a list of {"field", "message"} dicts; an empty list
means the input is acceptable. Callers raise ValidationFailed before touching
the database.
"""
import re
from typing import Dict, List, Optional

from email_validator import EmailNotValidError, validate_email

from schemas import PAYMENT_METHODS, OrderCreateBody, ProfileUpdateBody, RegisterBody

Errors = List[Dict[str, str]]

USERNAME_RE = re.compile(r"^[a-z0-9_.]{3,30}$")
PHONE_RE = re.compile(r"^\+?\d{10,15}$")
PINCODE_RE = re.compile(r"^\d{6}$")

# bcrypt ignores everything past 72 bytes
MAX_PASSWORD_BYTES = 72

REQUIRED_PROFILE_FIELDS = (
    "first_name",
    "last_name",
    "phone",
    "state",
    "district",
    "mandal",
    "pincode",
    "address1",
)


def _error(field: str, message: str) -> Dict[str, str]:
    return {"field": field, "message": message}


def normalize_username(username: str) -> str:
    return (username or "").strip().lower()


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def check_email(email: str, field: str = "email") -> Errors:
    if not email:
        return [_error(field, "Email is required")]
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return [_error(field, "Enter a valid email address")]
    return []


def check_password(password: str, field: str = "password") -> Errors:
    errors = []
    if len(password or "") < 8:
        errors.append(_error(field, "Password must be at least 8 characters"))
    elif len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        errors.append(_error(field, f"Password must be at most {MAX_PASSWORD_BYTES} bytes"))
    if not re.search(r"[A-Za-z]", password or "") or not re.search(r"\d", password or ""):
        errors.append(_error(field, "Password must contain a letter and a digit"))
    return errors


def _check_formats(phone: Optional[str], alternate_phone: Optional[str], pincode: Optional[str]) -> Errors:
    errors = []
    if phone and not PHONE_RE.match(phone.strip()):
        errors.append(_error("phone", "Phone must be 10-15 digits"))
    if alternate_phone and not PHONE_RE.match(alternate_phone.strip()):
        errors.append(_error("alternate_phone", "Alternate phone must be 10-15 digits"))
    if pincode and not PINCODE_RE.match(pincode.strip()):
        errors.append(_error("pincode", "Pincode must be 6 digits"))
    return errors


def validate_registration(body: RegisterBody) -> Errors:
    errors = []
    if not USERNAME_RE.match(normalize_username(body.username)):
        errors.append(_error("username", "Username must be 3-30 characters: letters, digits, '_' or '.'"))
    errors.extend(check_email(normalize_email(body.email)))
    errors.extend(check_password(body.password))
    for field in REQUIRED_PROFILE_FIELDS:
        if not (getattr(body, field) or "").strip():
            errors.append(_error(field, f"{field.replace('_', ' ').capitalize()} is required"))
    errors.extend(_check_formats(body.phone, body.alternate_phone, body.pincode))
    return errors


def validate_profile_update(body: ProfileUpdateBody) -> Errors:
    errors = []
    for field in REQUIRED_PROFILE_FIELDS:
        value = getattr(body, field)
        if value is not None and not value.strip():
            errors.append(_error(field, f"{field.replace('_', ' ').capitalize()} cannot be empty"))
    errors.extend(_check_formats(body.phone, body.alternate_phone, body.pincode))
    return errors


def validate_order_request(body: OrderCreateBody) -> Errors:
    errors = []
    if not body.items:
        errors.append(_error("items", "Order must contain at least one item"))
    for i, item in enumerate(body.items):
        if not item.product_id:
            errors.append(_error(f"items[{i}].product_id", "Product is required"))
        if item.quantity < 1:
            errors.append(_error(f"items[{i}].quantity", "Quantity must be at least 1"))
    address = body.delivery_address
    for field in ("name", "phone", "pincode", "address"):
        if not (getattr(address, field) or "").strip():
            errors.append(_error(f"delivery_address.{field}", f"Delivery {field} is required"))
    if address.phone and not PHONE_RE.match(address.phone.strip()):
        errors.append(_error("delivery_address.phone", "Phone must be 10-15 digits"))
    if address.pincode and not PINCODE_RE.match(address.pincode.strip()):
        errors.append(_error("delivery_address.pincode", "Pincode must be 6 digits"))
    if body.payment_method not in PAYMENT_METHODS:
        errors.append(_error("payment_method", f"Payment method must be one of {', '.join(PAYMENT_METHODS)}"))
    return errors
