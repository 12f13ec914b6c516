"""
API URL aggregation.

Mounts the two-step login endpoints and the JWT refresh/verify endpoints under `/api/`.
"""

from django.urls import include, path
from rest_framework_simplejwt.views import TokenRefreshView, TokenVerifyView

urlpatterns = [
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("auth/token/verify/", TokenVerifyView.as_view(), name="token_verify"),
    path("", include("apps.accounts.interfaces.api.urls")),
]
