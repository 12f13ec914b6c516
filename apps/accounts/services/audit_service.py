from __future__ import annotations

from apps.accounts.models import AccountAuditLog


class AccountAuditService:
    ACTION_VERIFICATION_STARTED = AccountAuditLog.ACTION_VERIFICATION_STARTED
    ACTION_LOGIN_SUCCEEDED = AccountAuditLog.ACTION_LOGIN_SUCCEEDED
    ACTION_LOGIN_FAILED = AccountAuditLog.ACTION_LOGIN_FAILED

    @staticmethod
    def record_action(
        *,
        user_id: int | None,
        action: str,
        ip_address: str | None = None,
        user_agent: str = "",
        metadata: dict | None = None,
    ) -> AccountAuditLog:
        return AccountAuditLog.objects.create(
            user_id=user_id,
            action=action,
            ip_address=ip_address,
            user_agent=user_agent or "",
            metadata=metadata or {},
        )
