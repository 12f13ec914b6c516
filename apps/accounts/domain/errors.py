from __future__ import annotations


class AccountDomainError(ValueError):
    pass


class AccountValidationError(AccountDomainError):
    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.field = field


class PhoneInvalidError(AccountValidationError):
    pass


class LoginRejectedError(AccountDomainError):
    """Terminal failure of a login attempt.

    Every subclass is shown to the client as the same generic rejection;
    `reason_code` is for logs and audit records only.
    """

    reason_code = "rejected"

    def __init__(self, message: str = "Invalid credentials.", *, user_id: int | None = None):
        super().__init__(message)
        self.user_id = user_id


class InvalidCredentialsError(LoginRejectedError):
    reason_code = "invalid_credentials"


class DispatchError(LoginRejectedError):
    reason_code = "dispatch_failed"


class CodeDeniedError(LoginRejectedError):
    reason_code = "code_denied"


class ProviderUnavailableError(LoginRejectedError):
    reason_code = "provider_unavailable"


class InvalidLoginTransitionError(AccountDomainError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move login from '{current}' to '{target}'.")
        self.current = current
        self.target = target
