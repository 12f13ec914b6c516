from __future__ import annotations

from django.urls import reverse
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.accounts.application.use_cases.complete_verification import (
    CompleteVerificationCommand,
    CompleteVerificationUseCase,
)
from apps.accounts.application.use_cases.start_verification import (
    StartVerificationCommand,
    StartVerificationUseCase,
)
from apps.accounts.domain.errors import LoginRejectedError
from apps.accounts.interfaces.api.serializers import CompleteVerificationSerializer, StartVerificationSerializer

GENERIC_REJECTION = "Invalid credentials."


def _client_ip(request) -> str | None:
    value = request.META.get("HTTP_X_FORWARDED_FOR") or request.META.get("REMOTE_ADDR")
    if not value:
        return None
    return value.split(",")[0].strip() or None


def _success(*, data: dict, next_step: str, http_status: int = status.HTTP_200_OK) -> Response:
    return Response({"success": True, "data": data, "next_step": next_step}, status=http_status)


def _error(*, message: str, field: str | None = None, http_status: int = 400) -> Response:
    payload: dict = {"success": False, "data": {}, "next_step": "", "error": {"message": message}}
    if field:
        payload["error"]["field"] = field
    return Response(payload, status=http_status)


def _rejected() -> Response:
    return _error(message=GENERIC_REJECTION, http_status=status.HTTP_403_FORBIDDEN)


class StartVerificationAPI(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth"

    def post(self, request):
        serializer = StartVerificationSerializer(data=request.data)
        if not serializer.is_valid():
            return _error(message="Invalid input.", http_status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            result = StartVerificationUseCase.execute(
                StartVerificationCommand(
                    username=data["username"],
                    password=data["password"],
                    ip_address=_client_ip(request),
                    user_agent=request.META.get("HTTP_USER_AGENT", ""),
                )
            )
        except LoginRejectedError:
            return _rejected()

        return _success(
            data={"contact_channel": result.masked_contact_channel, "method": result.method},
            next_step=reverse("api_auth_complete_verification"),
        )


class CompleteVerificationAPI(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth"

    def post(self, request):
        serializer = CompleteVerificationSerializer(data=request.data)
        if not serializer.is_valid():
            return _error(message="Invalid input.", http_status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            result = CompleteVerificationUseCase.execute(
                CompleteVerificationCommand(
                    username=data["username"],
                    password=data["password"],
                    code=data["verificationCode"],
                    ip_address=_client_ip(request),
                    user_agent=request.META.get("HTTP_USER_AGENT", ""),
                )
            )
        except LoginRejectedError:
            return _rejected()

        session = result.session
        return _success(
            data={"user_id": session.user_id, "access": session.access, "refresh": session.refresh},
            next_step="",
        )
