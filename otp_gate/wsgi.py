"""WSGI config for the otp_gate project."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "otp_gate.settings")

application = get_wsgi_application()
