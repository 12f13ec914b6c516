from __future__ import annotations

import secrets

from django.conf import settings


OTP_DIGITS = 6
OTP_TTL_SECONDS = 600

METHOD_SMS = "SMS"
METHOD_CALL = "CALL"
DELIVERY_METHODS = (METHOD_SMS, METHOD_CALL)


def generate_otp_code() -> str:
    # 000000-999999 inclusive
    return str(secrets.randbelow(10**OTP_DIGITS)).zfill(OTP_DIGITS)


def normalize_code(code: str) -> str:
    code = (code or "").strip()
    return "".join(ch for ch in code if ch.isdigit())


def is_well_formed_code(code: str) -> bool:
    return len(code) == OTP_DIGITS


def otp_ttl_seconds() -> int:
    return int(getattr(settings, "OTP_CODE_TTL_SECONDS", OTP_TTL_SECONDS) or OTP_TTL_SECONDS)


def delivery_method() -> str:
    method = str(getattr(settings, "OTP_DELIVERY_METHOD", METHOD_SMS) or METHOD_SMS).strip().upper()
    if method not in DELIVERY_METHODS:
        raise ValueError(f"Unsupported OTP delivery method '{method}'.")
    return method


def mask_contact_channel(contact_channel: str) -> str:
    value = (contact_channel or "").strip()
    if len(value) <= 4:
        return "*" * len(value)
    return "*" * (len(value) - 4) + value[-4:]
