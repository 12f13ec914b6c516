"""URL configuration for the otp_gate project."""

from django.contrib import admin
from django.urls import include, path

handler403 = "otp_gate.error_views.handle_403"
handler404 = "otp_gate.error_views.handle_404"
handler500 = "otp_gate.error_views.handle_500"

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("otp_gate.api_urls")),
]
