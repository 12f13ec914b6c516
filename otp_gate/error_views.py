from __future__ import annotations

import logging

from django.http import HttpRequest, JsonResponse

logger = logging.getLogger("otp_gate.request")


def _error_response(*, message: str, http_status: int) -> JsonResponse:
    return JsonResponse(
        {"success": False, "data": {}, "next_step": "", "error": {"message": message}},
        status=http_status,
    )


def handle_403(request: HttpRequest, exception=None) -> JsonResponse:
    return _error_response(message="Forbidden.", http_status=403)


def handle_404(request: HttpRequest, exception=None) -> JsonResponse:
    return _error_response(message="Not found.", http_status=404)


def handle_500(request: HttpRequest) -> JsonResponse:
    logger.error(
        "server_error",
        extra={"status_code": 500, "error_code": "server_error", "path": request.path},
    )
    return _error_response(message="Server error.", http_status=500)
