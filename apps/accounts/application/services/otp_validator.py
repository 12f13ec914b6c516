from __future__ import annotations

from apps.accounts.domain.otp_policies import is_well_formed_code, normalize_code
from apps.accounts.domain.ports import OTPProviderPort, VerificationStatus


class OtpValidator:
    def __init__(self, provider: OTPProviderPort):
        self.provider = provider

    def validate(self, contact_channel: str, submitted_code: str) -> VerificationStatus:
        contact_channel = (contact_channel or "").strip()
        code = normalize_code(submitted_code)
        if not contact_channel or not is_well_formed_code(code):
            return VerificationStatus.DENIED

        result = self.provider.check(contact_channel=contact_channel, code=code)
        return VerificationStatus.VERIFIED if result.matched else VerificationStatus.DENIED
