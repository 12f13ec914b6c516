from __future__ import annotations

import logging
from dataclasses import dataclass

from apps.accounts.application.services.login_orchestrator import LoginOrchestrator, build_login_orchestrator
from apps.accounts.domain.errors import LoginRejectedError
from apps.accounts.domain.otp_policies import mask_contact_channel
from apps.accounts.domain.state_machine import LoginState
from apps.accounts.services.audit_service import AccountAuditService

logger = logging.getLogger("otp_gate.auth")


@dataclass(frozen=True)
class StartVerificationCommand:
    username: str
    password: str
    ip_address: str | None = None
    user_agent: str = ""


@dataclass(frozen=True)
class StartVerificationResult:
    state: LoginState
    masked_contact_channel: str
    method: str


class StartVerificationUseCase:
    @staticmethod
    def execute(
        cmd: StartVerificationCommand,
        *,
        orchestrator: LoginOrchestrator | None = None,
    ) -> StartVerificationResult:
        orchestrator = orchestrator or build_login_orchestrator()
        try:
            result = orchestrator.start_verification(cmd.username, cmd.password)
        except LoginRejectedError as exc:
            logger.info(
                "auth.verification_failed reason=%s user_id=%s",
                exc.reason_code,
                exc.user_id,
                extra={"reason_code": exc.reason_code},
            )
            AccountAuditService.record_action(
                user_id=exc.user_id,
                action=AccountAuditService.ACTION_LOGIN_FAILED,
                ip_address=cmd.ip_address,
                user_agent=cmd.user_agent,
                metadata={"identifier": cmd.username, "step": "start", "reason_code": exc.reason_code},
            )
            raise

        logger.info(
            "auth.verification_started user_id=%s reference=%s",
            result.identity.user_id,
            result.receipt.reference,
            extra={"user_id": result.identity.user_id},
        )
        AccountAuditService.record_action(
            user_id=result.identity.user_id,
            action=AccountAuditService.ACTION_VERIFICATION_STARTED,
            ip_address=cmd.ip_address,
            user_agent=cmd.user_agent,
            metadata={"method": result.receipt.method, "reference": result.receipt.reference},
        )
        return StartVerificationResult(
            state=result.state,
            masked_contact_channel=mask_contact_channel(result.identity.contact_channel),
            method=result.receipt.method,
        )
