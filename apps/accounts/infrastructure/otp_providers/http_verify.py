from __future__ import annotations

import logging

import requests

from apps.accounts.domain.errors import DispatchError, ProviderUnavailableError
from apps.accounts.domain.otp_policies import mask_contact_channel
from apps.accounts.domain.ports import DispatchReceipt, OtpCheckResult

logger = logging.getLogger("otp_gate.otp")

DEFAULT_TIMEOUT_SECONDS = 10.0
_CHECK_SUCCESS = "SUCCESS"


class HttpVerifyOtpProvider:
    """
    Hosted verification API (start/check) over HTTPS.

    The provider generates, delivers and expires codes; this client only asks it
    to start a verification for a phone number and later to check a code.
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        sandbox_url: str = "",
        sandbox: bool = False,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ):
        if not api_key:
            raise ValueError("OTP provider API key is required.")
        root = sandbox_url if sandbox and sandbox_url else base_url
        if not root:
            raise ValueError("OTP provider base URL is required.")
        self.base_url = root.rstrip("/")
        self.sandbox = sandbox
        self.timeout = timeout
        self._api_key = api_key
        self._session = session or requests.Session()

    def _post(self, path: str, payload: dict) -> requests.Response:
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Accept": "application/json",
        }
        try:
            response = self._session.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            logger.warning(
                "otp_provider_unreachable path=%s error=%s",
                path,
                exc.__class__.__name__,
                extra={"path": path, "error": exc.__class__.__name__},
            )
            raise ProviderUnavailableError() from exc
        if response.status_code >= 500:
            logger.warning(
                "otp_provider_error path=%s status=%s",
                path,
                response.status_code,
                extra={"path": path, "status_code": response.status_code},
            )
            raise ProviderUnavailableError()
        return response

    @staticmethod
    def _json(response: requests.Response) -> dict:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def send(self, *, contact_channel: str, method: str) -> DispatchReceipt:
        response = self._post(
            "verifications/start",
            {"phoneNumber": contact_channel, "method": method},
        )
        if response.status_code >= 400:
            logger.warning(
                "otp_send_rejected status=%s contact_channel=%s",
                response.status_code,
                mask_contact_channel(contact_channel),
                extra={
                    "status_code": response.status_code,
                    "contact_channel": mask_contact_channel(contact_channel),
                },
            )
            raise DispatchError()

        data = self._json(response)
        return DispatchReceipt(
            reference=str(data.get("id") or data.get("reference") or ""),
            contact_channel=contact_channel,
            method=method,
            status=str(data.get("status") or "pending").lower(),
        )

    def check(self, *, contact_channel: str, code: str) -> OtpCheckResult:
        response = self._post(
            "verifications/check",
            {"phoneNumber": contact_channel, "code": code},
        )
        if response.status_code >= 400:
            # Unknown or expired verification; treated like a wrong code.
            return OtpCheckResult(matched=False)
        status = str(self._json(response).get("status") or "").upper()
        return OtpCheckResult(matched=status == _CHECK_SUCCESS)
