import logging
import re
from typing import Any

SENSITIVE_FIELDS = (
    "password",
    "token",
    "secret",
    "key",
    "authorization",
    "account_sid",
    "phone_number_id",
)

_PHONE_DIGITS = re.compile(r"\d(?=\d{4})")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def mask_phone(phone: str) -> str:
    """Replace every digit except the last four with '*'."""
    if not phone:
        return ""
    return _PHONE_DIGITS.sub("*", phone)


def sanitize_for_log(data: Any) -> Any:
    """Return a copy of ``data`` with secret-looking keys redacted."""
    if isinstance(data, dict):
        clean = {}
        for k, v in data.items():
            if any(field in str(k).lower() for field in SENSITIVE_FIELDS):
                clean[k] = "[REDACTED]"
            else:
                clean[k] = sanitize_for_log(v)
        return clean
    if isinstance(data, list):
        return [sanitize_for_log(item) for item in data]
    return data
