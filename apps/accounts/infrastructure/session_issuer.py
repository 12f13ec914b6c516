from __future__ import annotations

from django.contrib.auth import get_user_model
from rest_framework_simplejwt.tokens import RefreshToken

from apps.accounts.domain.errors import InvalidCredentialsError
from apps.accounts.domain.ports import Identity, Session


class JwtSessionIssuer:
    def issue(self, identity: Identity) -> Session:
        user = get_user_model()._default_manager.filter(pk=identity.user_id, is_active=True).first()
        if user is None:
            # Removed or deactivated after the credential check.
            raise InvalidCredentialsError()
        refresh = RefreshToken.for_user(user)
        return Session(user_id=user.pk, access=str(refresh.access_token), refresh=str(refresh))
