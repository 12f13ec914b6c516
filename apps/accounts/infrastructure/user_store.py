from __future__ import annotations

from django.contrib.auth import get_user_model
from django.db.models import Q

from apps.accounts.domain.policies import normalize_identifier, normalize_phone
from apps.accounts.domain.ports import Identity
from apps.accounts.models import AccountProfile


class DjangoUserStore:
    """
    User store backed by `django.contrib.auth`.

    Looks users up by either:
    - username, or
    - email
    The contact channel comes from `AccountProfile.phone`.
    """

    def _find_user(self, identifier: str):
        UserModel = get_user_model()
        query = Q(**{f"{UserModel.USERNAME_FIELD}__iexact": identifier}) | Q(email__iexact=identifier)
        return UserModel._default_manager.filter(query).order_by("id").first()

    def lookup(self, identifier: str) -> Identity | None:
        identifier = normalize_identifier(identifier)
        if not identifier:
            return None

        user = self._find_user(identifier)
        if user is None or not getattr(user, "is_active", True):
            return None

        profile = AccountProfile.objects.filter(user=user).only("phone").first()
        phone = normalize_phone(profile.phone) if profile and profile.phone else ""
        return Identity(user_id=user.pk, identifier=user.get_username(), contact_channel=phone)

    def check_credential(self, identity: Identity, proof: str) -> bool:
        if not proof:
            return False
        UserModel = get_user_model()
        user = UserModel._default_manager.filter(pk=identity.user_id, is_active=True).first()
        if user is None:
            # Keep timing close to the found-user path.
            UserModel().set_password(proof)
            return False
        return user.check_password(proof)
