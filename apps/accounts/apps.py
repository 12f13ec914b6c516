from django.apps import AppConfig
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


SANDBOX_PROVIDER = "apps.accounts.infrastructure.otp_providers.sandbox.SandboxOtpProvider"
HTTP_PROVIDER = "apps.accounts.infrastructure.otp_providers.http_verify.HttpVerifyOtpProvider"


class AccountsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.accounts"
    verbose_name = "Accounts"

    def ready(self) -> None:
        from apps.accounts.domain.otp_policies import delivery_method

        try:
            delivery_method()
        except ValueError as exc:
            raise ImproperlyConfigured(str(exc)) from exc

        provider = (getattr(settings, "OTP_PROVIDER", "") or "").strip()
        options = getattr(settings, "OTP_PROVIDER_OPTIONS", {}) or {}
        if provider == HTTP_PROVIDER and not options.get("api_key"):
            raise ImproperlyConfigured("OTP_PROVIDER_API_KEY is required for the HTTP verification provider.")

        env = (getattr(settings, "ENVIRONMENT", "") or "").strip().lower()
        if env in {"prod", "production"}:
            if getattr(settings, "DEBUG", False):
                raise ImproperlyConfigured("DEBUG must be False in production.")
            if provider == SANDBOX_PROVIDER:
                raise ImproperlyConfigured("Sandbox OTP provider is enabled in production. Set OTP_PROVIDER.")
            if options.get("sandbox"):
                raise ImproperlyConfigured("OTP_PROVIDER_SANDBOX must be off in production.")
