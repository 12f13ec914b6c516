from __future__ import annotations

from dataclasses import dataclass

from apps.accounts.application.services.credential_verifier import CredentialVerifier
from apps.accounts.application.services.otp_dispatcher import OtpDispatcher
from apps.accounts.application.services.otp_provider_resolver import OTPProviderResolver
from apps.accounts.application.services.otp_validator import OtpValidator
from apps.accounts.domain.errors import CodeDeniedError, InvalidCredentialsError, LoginRejectedError
from apps.accounts.domain.otp_policies import delivery_method
from apps.accounts.domain.ports import DispatchReceipt, Identity, Session, SessionIssuerPort, VerificationStatus
from apps.accounts.domain.state_machine import LoginState, LoginStateMachine


@dataclass(frozen=True)
class StartedVerification:
    state: LoginState
    identity: Identity
    receipt: DispatchReceipt


@dataclass(frozen=True)
class CompletedVerification:
    state: LoginState
    identity: Identity
    session: Session


class LoginOrchestrator:
    """
    Sequences the two login requests.

    Step 1: credentials -> OTP dispatch to the identity's phone.
    Step 2: credentials again + code -> session.

    No attempt record is kept between the steps, so step 2 re-checks the
    credentials and validates the code against the contact channel of the
    identity it just verified. Every failure raises a `LoginRejectedError`.
    """

    def __init__(
        self,
        *,
        verifier: CredentialVerifier,
        dispatcher: OtpDispatcher,
        validator: OtpValidator,
        session_issuer: SessionIssuerPort,
    ):
        self.verifier = verifier
        self.dispatcher = dispatcher
        self.validator = validator
        self.session_issuer = session_issuer

    def _verify_credentials(self, identifier: str, credential_proof: str) -> Identity:
        identity = self.verifier.verify(identifier, credential_proof)
        if identity is None:
            raise InvalidCredentialsError()
        return identity

    def start_verification(self, identifier: str, credential_proof: str) -> StartedVerification:
        state = LoginState.AWAITING_CREDENTIALS
        identity = self._verify_credentials(identifier, credential_proof)
        state = LoginStateMachine.transition(state, LoginState.AWAITING_CODE)
        try:
            receipt = self.dispatcher.dispatch(identity.contact_channel)
        except LoginRejectedError as exc:
            exc.user_id = identity.user_id
            raise
        return StartedVerification(state=state, identity=identity, receipt=receipt)

    def complete_verification(
        self,
        identifier: str,
        credential_proof: str,
        code: str,
    ) -> CompletedVerification:
        state = LoginState.AWAITING_CREDENTIALS
        identity = self._verify_credentials(identifier, credential_proof)
        state = LoginStateMachine.transition(state, LoginState.AWAITING_CODE)

        try:
            status = self.validator.validate(identity.contact_channel, code)
            if status != VerificationStatus.VERIFIED:
                raise CodeDeniedError()
        except LoginRejectedError as exc:
            exc.user_id = identity.user_id
            raise

        state = LoginStateMachine.transition(state, LoginState.AUTHENTICATED)
        session = self.session_issuer.issue(identity)
        return CompletedVerification(state=state, identity=identity, session=session)


def build_login_orchestrator() -> LoginOrchestrator:
    from apps.accounts.infrastructure.session_issuer import JwtSessionIssuer
    from apps.accounts.infrastructure.user_store import DjangoUserStore

    provider = OTPProviderResolver.resolve()
    return LoginOrchestrator(
        verifier=CredentialVerifier(DjangoUserStore()),
        dispatcher=OtpDispatcher(provider, method=delivery_method()),
        validator=OtpValidator(provider),
        session_issuer=JwtSessionIssuer(),
    )
