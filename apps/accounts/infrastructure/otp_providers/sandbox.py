from __future__ import annotations

import hmac
import logging
from uuid import uuid4

from django.core.cache import cache

from apps.accounts.domain.errors import DispatchError
from apps.accounts.domain.otp_policies import generate_otp_code, mask_contact_channel, otp_ttl_seconds
from apps.accounts.domain.policies import normalize_phone
from apps.accounts.domain.ports import DispatchReceipt, OtpCheckResult

logger = logging.getLogger("otp_gate.otp")


class SandboxOtpProvider:
    """In-process provider for local development and tests.

    Codes live in the Django cache, keyed by phone number, and expire with the
    cache entry.
    """

    code = "sandbox"
    _cache_prefix = "otp:sandbox:"

    def __init__(self, *, fixed_code: str = "", ttl_seconds: int | None = None):
        self.fixed_code = (fixed_code or "").strip()
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else otp_ttl_seconds()

    def _key(self, contact_channel: str) -> str:
        return f"{self._cache_prefix}{normalize_phone(contact_channel)}"

    def send(self, *, contact_channel: str, method: str) -> DispatchReceipt:
        if not normalize_phone(contact_channel):
            raise DispatchError()
        code = self.fixed_code or generate_otp_code()
        cache.set(self._key(contact_channel), code, timeout=self.ttl_seconds)
        reference = f"SANDBOX-{uuid4().hex[:12]}"
        if self.fixed_code:
            logger.info(
                "otp_sandbox_sent reference=%s contact_channel=%s",
                reference,
                mask_contact_channel(contact_channel),
                extra={"reference": reference, "contact_channel": mask_contact_channel(contact_channel)},
            )
        else:
            # No real delivery happens, so the generated code is only visible here.
            logger.info(
                "otp_sandbox_sent reference=%s contact_channel=%s code=%s",
                reference,
                mask_contact_channel(contact_channel),
                code,
                extra={"reference": reference, "contact_channel": mask_contact_channel(contact_channel)},
            )
        return DispatchReceipt(reference=reference, contact_channel=contact_channel, method=method)

    def check(self, *, contact_channel: str, code: str) -> OtpCheckResult:
        key = self._key(contact_channel)
        expected = cache.get(key)
        if not expected:
            return OtpCheckResult(matched=False)
        matched = hmac.compare_digest(str(expected), str(code or ""))
        if matched:
            cache.delete(key)
        return OtpCheckResult(matched=matched)
