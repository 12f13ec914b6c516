from django.urls import path

from .views import CompleteVerificationAPI, StartVerificationAPI

urlpatterns = [
    path("auth/start-verification/", StartVerificationAPI.as_view(), name="api_auth_start_verification"),
    path(
        "auth/complete-verification/",
        CompleteVerificationAPI.as_view(),
        name="api_auth_complete_verification",
    ),
]
