from __future__ import annotations

import importlib

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from apps.accounts.domain.ports import OTPProviderPort


class OTPProviderResolver:
    @staticmethod
    def provider_path() -> str:
        dotted = (getattr(settings, "OTP_PROVIDER", "") or "").strip()
        if not dotted:
            raise ImproperlyConfigured("OTP_PROVIDER is not configured.")
        return dotted

    @staticmethod
    def resolve() -> OTPProviderPort:
        dotted = OTPProviderResolver.provider_path()
        module_path, class_name = dotted.rsplit(".", 1)
        module = importlib.import_module(module_path)
        provider_cls = getattr(module, class_name, None)
        if provider_cls is None:
            raise ImproperlyConfigured(f"OTP provider '{dotted}' does not exist.")
        options = dict(getattr(settings, "OTP_PROVIDER_OPTIONS", {}) or {})
        return provider_cls(**options)
