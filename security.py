import re
from typing import Optional

import bcrypt
from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings

PIN_PATTERN = re.compile(r"^\d{4}$")


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.token_secret, salt="user-token")


def issue_user_token(user_id: str) -> str:
    if not user_id:
        raise ValueError("User id is required")
    return _serializer().dumps({"u": user_id})


def read_user_token(token: str, max_age_hours: Optional[int] = None) -> Optional[str]:
    """Return the user id carried by ``token``, or None if it is not valid."""
    if max_age_hours is None:
        max_age_hours = get_settings().token_max_age_hours
    try:
        data = _serializer().loads(token, max_age=max_age_hours * 3600)
    except BadSignature:
        # SignatureExpired is a BadSignature too.
        return None
    if not isinstance(data, dict):
        return None
    user_id = data.get("u")
    return user_id if isinstance(user_id, str) and user_id else None


def validate_pin(pin: str) -> str:
    if not isinstance(pin, str) or not PIN_PATTERN.match(pin):
        raise ValueError("PIN must be exactly 4 digits")
    return pin


def hash_pin(pin: str) -> str:
    validate_pin(pin)
    return bcrypt.hashpw(pin.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_pin(pin: str, pin_hash: Optional[str]) -> bool:
    if not pin_hash or not isinstance(pin, str) or not PIN_PATTERN.match(pin):
        return False
    try:
        return bcrypt.checkpw(pin.encode("utf-8"), pin_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False
