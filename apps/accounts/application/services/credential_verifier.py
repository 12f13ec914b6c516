from __future__ import annotations

from apps.accounts.domain.policies import normalize_identifier
from apps.accounts.domain.ports import Identity, UserStorePort


class CredentialVerifier:
    """Primary factor: username/password against the user store.

    Returns the Identity on a match and `None` otherwise. Never raises for a
    mismatch and never writes anything.
    """

    def __init__(self, user_store: UserStorePort):
        self.user_store = user_store

    def verify(self, identifier: str, credential_proof: str) -> Identity | None:
        identifier = normalize_identifier(identifier)
        if not identifier or not credential_proof:
            return None
        identity = self.user_store.lookup(identifier)
        if identity is None:
            return None
        if not self.user_store.check_credential(identity, credential_proof):
            return None
        return identity
