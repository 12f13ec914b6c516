from __future__ import annotations

import logging
from dataclasses import dataclass

from apps.accounts.application.services.login_orchestrator import LoginOrchestrator, build_login_orchestrator
from apps.accounts.domain.errors import LoginRejectedError
from apps.accounts.domain.ports import Session
from apps.accounts.domain.state_machine import LoginState
from apps.accounts.services.audit_service import AccountAuditService

logger = logging.getLogger("otp_gate.auth")


@dataclass(frozen=True)
class CompleteVerificationCommand:
    username: str
    password: str
    code: str
    ip_address: str | None = None
    user_agent: str = ""


@dataclass(frozen=True)
class CompleteVerificationResult:
    state: LoginState
    session: Session


class CompleteVerificationUseCase:
    @staticmethod
    def execute(
        cmd: CompleteVerificationCommand,
        *,
        orchestrator: LoginOrchestrator | None = None,
    ) -> CompleteVerificationResult:
        orchestrator = orchestrator or build_login_orchestrator()
        try:
            result = orchestrator.complete_verification(cmd.username, cmd.password, cmd.code)
        except LoginRejectedError as exc:
            logger.info(
                "auth.login_failed reason=%s user_id=%s",
                exc.reason_code,
                exc.user_id,
                extra={"reason_code": exc.reason_code},
            )
            AccountAuditService.record_action(
                user_id=exc.user_id,
                action=AccountAuditService.ACTION_LOGIN_FAILED,
                ip_address=cmd.ip_address,
                user_agent=cmd.user_agent,
                metadata={"identifier": cmd.username, "step": "complete", "reason_code": exc.reason_code},
            )
            raise

        logger.info(
            "auth.login_succeeded user_id=%s method=otp",
            result.identity.user_id,
            extra={"user_id": result.identity.user_id, "method": "otp"},
        )
        AccountAuditService.record_action(
            user_id=result.identity.user_id,
            action=AccountAuditService.ACTION_LOGIN_SUCCEEDED,
            ip_address=cmd.ip_address,
            user_agent=cmd.user_agent,
            metadata={"method": "otp"},
        )
        return CompleteVerificationResult(state=result.state, session=result.session)
