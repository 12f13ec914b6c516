from __future__ import annotations

import logging

from apps.accounts.domain.errors import DispatchError
from apps.accounts.domain.otp_policies import METHOD_SMS, mask_contact_channel
from apps.accounts.domain.ports import DispatchReceipt, OTPProviderPort

logger = logging.getLogger("otp_gate.otp")


class OtpDispatcher:
    def __init__(self, provider: OTPProviderPort, *, method: str = METHOD_SMS):
        self.provider = provider
        self.method = method

    def dispatch(self, contact_channel: str) -> DispatchReceipt:
        contact_channel = (contact_channel or "").strip()
        if not contact_channel:
            logger.warning(
                "otp_dispatch_skipped reason=no_contact_channel",
                extra={"reason_code": "no_contact_channel"},
            )
            raise DispatchError()

        receipt = self.provider.send(contact_channel=contact_channel, method=self.method)
        logger.info(
            "otp_dispatched method=%s reference=%s status=%s contact_channel=%s",
            self.method,
            receipt.reference,
            receipt.status,
            mask_contact_channel(contact_channel),
            extra={
                "method": self.method,
                "reference": receipt.reference,
                "status": receipt.status,
                "contact_channel": mask_contact_channel(contact_channel),
            },
        )
        return receipt
