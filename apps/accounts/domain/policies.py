from __future__ import annotations

import re

from .errors import PhoneInvalidError

_PHONE_RE = re.compile(r"^\+?[0-9]{8,15}$")


def normalize_identifier(raw: str) -> str:
    return (raw or "").strip()


def normalize_phone(raw: str) -> str:
    phone = (raw or "").strip()
    phone = re.sub(r"[\s\-()]+", "", phone)
    if phone.startswith("00"):
        phone = f"+{phone[2:]}"
    return phone


def validate_phone(raw: str) -> str:
    phone = normalize_phone(raw)
    if not phone:
        raise PhoneInvalidError("Phone number is required.", field="phone")
    if len(phone) > 32:
        raise PhoneInvalidError("Phone number is too long.", field="phone")
    if not _PHONE_RE.match(phone):
        raise PhoneInvalidError("Phone must contain digits and may start with '+'.", field="phone")
    return phone
