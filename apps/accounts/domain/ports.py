from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol


@dataclass(frozen=True)
class Identity:
    user_id: int
    identifier: str
    contact_channel: str


@dataclass(frozen=True)
class DispatchReceipt:
    reference: str
    contact_channel: str
    method: str
    status: str = "pending"


@dataclass(frozen=True)
class OtpCheckResult:
    matched: bool


class VerificationStatus(StrEnum):
    VERIFIED = "verified"
    DENIED = "denied"


@dataclass(frozen=True)
class Session:
    user_id: int
    access: str
    refresh: str


class UserStorePort(Protocol):
    def lookup(self, identifier: str) -> Identity | None:
        ...

    def check_credential(self, identity: Identity, proof: str) -> bool:
        ...


class OTPProviderPort(Protocol):
    def send(self, *, contact_channel: str, method: str) -> DispatchReceipt:
        ...

    def check(self, *, contact_channel: str, code: str) -> OtpCheckResult:
        ...


class SessionIssuerPort(Protocol):
    def issue(self, identity: Identity) -> Session:
        ...
