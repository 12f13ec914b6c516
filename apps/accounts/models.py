from __future__ import annotations

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from apps.accounts.domain.errors import PhoneInvalidError
from apps.accounts.domain.policies import validate_phone


class AccountProfile(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="account_profile",
    )
    phone = models.CharField(max_length=32, unique=True, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def clean(self) -> None:
        super().clean()
        if self.phone:
            try:
                self.phone = validate_phone(self.phone)
            except PhoneInvalidError as exc:
                raise ValidationError({exc.field or "phone": str(exc)}) from exc

    def __str__(self) -> str:
        return f"AccountProfile(user_id={self.user_id}, phone={self.phone})"


class AccountAuditLog(models.Model):
    ACTION_VERIFICATION_STARTED = "verification_started"
    ACTION_LOGIN_SUCCEEDED = "login_succeeded"
    ACTION_LOGIN_FAILED = "login_failed"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="account_audit_logs",
    )
    action = models.CharField(max_length=64)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["action", "created_at"], name="accounts_audit_action_idx"),
            models.Index(fields=["user", "created_at"], name="accounts_audit_user_idx"),
        ]

    def __str__(self) -> str:
        return f"AccountAuditLog(action={self.action}, user_id={self.user_id})"
