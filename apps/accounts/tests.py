from __future__ import annotations

from unittest import mock

import requests
from django.apps import apps as django_apps
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.exceptions import ImproperlyConfigured, ValidationError
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIClient

from apps.accounts.application.services.credential_verifier import CredentialVerifier
from apps.accounts.application.services.login_orchestrator import LoginOrchestrator
from apps.accounts.application.services.otp_dispatcher import OtpDispatcher
from apps.accounts.application.services.otp_provider_resolver import OTPProviderResolver
from apps.accounts.application.services.otp_validator import OtpValidator
from apps.accounts.domain.errors import (
    CodeDeniedError,
    DispatchError,
    InvalidCredentialsError,
    InvalidLoginTransitionError,
    ProviderUnavailableError,
)
from apps.accounts.domain.otp_policies import is_well_formed_code, mask_contact_channel, normalize_code
from apps.accounts.domain.ports import DispatchReceipt, Identity, OtpCheckResult, Session, VerificationStatus
from apps.accounts.domain.state_machine import LoginState, LoginStateMachine
from apps.accounts.infrastructure.otp_providers.http_verify import HttpVerifyOtpProvider
from apps.accounts.infrastructure.otp_providers.sandbox import SandboxOtpProvider
from apps.accounts.infrastructure.session_issuer import JwtSessionIssuer
from apps.accounts.infrastructure.user_store import DjangoUserStore
from apps.accounts.models import AccountAuditLog, AccountProfile

ALICE_PHONE = "+15551234567"
REAL_CODE = "482913"
SANDBOX_PATH = "apps.accounts.infrastructure.otp_providers.sandbox.SandboxOtpProvider"
HTTP_PATH = "apps.accounts.infrastructure.otp_providers.http_verify.HttpVerifyOtpProvider"


class FakeUserStore:
    def __init__(self, users: dict[str, tuple[Identity, str]]):
        self.users = users
        self.lookups: list[str] = []

    def lookup(self, identifier: str) -> Identity | None:
        self.lookups.append(identifier)
        entry = self.users.get(identifier)
        return entry[0] if entry else None

    def check_credential(self, identity: Identity, proof: str) -> bool:
        return self.users[identity.identifier][1] == proof


class RecordingOtpProvider:
    def __init__(self, *, real_code: str = REAL_CODE):
        self.real_code = real_code
        self.sent: list[tuple[str, str]] = []
        self.checked: list[tuple[str, str]] = []

    def send(self, *, contact_channel: str, method: str) -> DispatchReceipt:
        self.sent.append((contact_channel, method))
        return DispatchReceipt(reference=f"R{len(self.sent)}", contact_channel=contact_channel, method=method)

    def check(self, *, contact_channel: str, code: str) -> OtpCheckResult:
        self.checked.append((contact_channel, code))
        return OtpCheckResult(matched=code == self.real_code)


class RecordingSessionIssuer:
    def __init__(self):
        self.issued: list[Identity] = []

    def issue(self, identity: Identity) -> Session:
        self.issued.append(identity)
        return Session(user_id=identity.user_id, access="access-token", refresh="refresh-token")


def _alice_store() -> FakeUserStore:
    alice = Identity(user_id=1, identifier="alice", contact_channel=ALICE_PHONE)
    bob = Identity(user_id=2, identifier="bob", contact_channel="+15550000002")
    return FakeUserStore({"alice": (alice, "correct-pw"), "bob": (bob, "bob-pw")})


class LoginStateMachineTests(SimpleTestCase):
    def test_happy_path_transitions(self):
        state = LoginState.AWAITING_CREDENTIALS
        state = LoginStateMachine.transition(state, LoginState.AWAITING_CODE)
        state = LoginStateMachine.transition(state, LoginState.AUTHENTICATED)
        self.assertEqual(state, LoginState.AUTHENTICATED)
        self.assertTrue(LoginStateMachine.is_terminal(state))

    def test_any_live_state_can_be_rejected(self):
        self.assertTrue(LoginStateMachine.can_transition(LoginState.AWAITING_CREDENTIALS, LoginState.REJECTED))
        self.assertTrue(LoginStateMachine.can_transition(LoginState.AWAITING_CODE, LoginState.REJECTED))
        self.assertTrue(LoginStateMachine.is_terminal(LoginState.REJECTED))

    def test_cannot_skip_the_code_step(self):
        with self.assertRaises(InvalidLoginTransitionError):
            LoginStateMachine.transition(LoginState.AWAITING_CREDENTIALS, LoginState.AUTHENTICATED)

    def test_terminal_states_do_not_move(self):
        with self.assertRaises(InvalidLoginTransitionError):
            LoginStateMachine.transition(LoginState.REJECTED, LoginState.AWAITING_CODE)
        with self.assertRaises(InvalidLoginTransitionError):
            LoginStateMachine.transition(LoginState.AUTHENTICATED, LoginState.REJECTED)


class OtpPolicyTests(SimpleTestCase):
    def test_normalize_code_keeps_digits_only(self):
        self.assertEqual(normalize_code(" 482 913 "), "482913")
        self.assertEqual(normalize_code("48-29-13"), "482913")
        self.assertEqual(normalize_code("48-29-13-99"), "48291399")
        self.assertFalse(is_well_formed_code(normalize_code("4829130")))
        self.assertEqual(normalize_code(None), "")

    def test_mask_contact_channel(self):
        self.assertEqual(mask_contact_channel(ALICE_PHONE), "********4567")
        self.assertEqual(mask_contact_channel("123"), "***")


class CredentialVerifierTests(SimpleTestCase):
    def test_valid_credentials_return_identity(self):
        identity = CredentialVerifier(_alice_store()).verify("alice", "correct-pw")
        self.assertIsNotNone(identity)
        self.assertEqual(identity.contact_channel, ALICE_PHONE)

    def test_wrong_password_and_unknown_user_return_none(self):
        verifier = CredentialVerifier(_alice_store())
        self.assertIsNone(verifier.verify("alice", "wrong-pw"))
        self.assertIsNone(verifier.verify("mallory", "correct-pw"))

    def test_blank_input_skips_the_store(self):
        store = _alice_store()
        verifier = CredentialVerifier(store)
        self.assertIsNone(verifier.verify("", "correct-pw"))
        self.assertIsNone(verifier.verify("alice", ""))
        self.assertEqual(store.lookups, [])

    def test_repeated_verification_is_idempotent(self):
        verifier = CredentialVerifier(_alice_store())
        first = verifier.verify("alice", "correct-pw")
        second = verifier.verify("alice", "correct-pw")
        self.assertEqual(first, second)
        self.assertIsNone(verifier.verify("alice", "nope"))
        self.assertIsNone(verifier.verify("alice", "nope"))


class OtpDispatcherTests(SimpleTestCase):
    def test_dispatch_sends_once_to_channel(self):
        provider = RecordingOtpProvider()
        receipt = OtpDispatcher(provider).dispatch(ALICE_PHONE)
        self.assertEqual(provider.sent, [(ALICE_PHONE, "SMS")])
        self.assertEqual(receipt.contact_channel, ALICE_PHONE)

    def test_blank_channel_raises_without_sending(self):
        provider = RecordingOtpProvider()
        with self.assertRaises(DispatchError):
            OtpDispatcher(provider).dispatch("  ")
        self.assertEqual(provider.sent, [])

    def test_delivery_method_is_passed_through(self):
        provider = RecordingOtpProvider()
        OtpDispatcher(provider, method="CALL").dispatch(ALICE_PHONE)
        self.assertEqual(provider.sent, [(ALICE_PHONE, "CALL")])


class OtpValidatorTests(SimpleTestCase):
    def test_correct_code_is_verified(self):
        self.assertEqual(OtpValidator(RecordingOtpProvider()).validate(ALICE_PHONE, REAL_CODE), VerificationStatus.VERIFIED)

    def test_wrong_code_is_denied(self):
        self.assertEqual(OtpValidator(RecordingOtpProvider()).validate(ALICE_PHONE, "000000"), VerificationStatus.DENIED)

    def test_malformed_code_is_denied_without_provider_call(self):
        provider = RecordingOtpProvider()
        self.assertEqual(OtpValidator(provider).validate(ALICE_PHONE, "12ab"), VerificationStatus.DENIED)
        self.assertEqual(provider.checked, [])

    def test_code_with_extra_digits_is_denied(self):
        provider = RecordingOtpProvider()
        validator = OtpValidator(provider)
        for code in ("4829130", "482913999", "x482913y7"):
            self.assertEqual(validator.validate(ALICE_PHONE, code), VerificationStatus.DENIED, code)
        self.assertEqual(provider.checked, [])

    def test_separators_around_the_real_code_are_accepted(self):
        provider = RecordingOtpProvider()
        self.assertEqual(OtpValidator(provider).validate(ALICE_PHONE, " 482-913 "), VerificationStatus.VERIFIED)
        self.assertEqual(provider.checked, [(ALICE_PHONE, REAL_CODE)])

    def test_unreachable_provider_propagates(self):
        provider = mock.Mock()
        provider.check.side_effect = ProviderUnavailableError()
        with self.assertRaises(ProviderUnavailableError):
            OtpValidator(provider).validate(ALICE_PHONE, REAL_CODE)


class LoginOrchestratorTests(SimpleTestCase):
    def setUp(self):
        super().setUp()
        self.provider = RecordingOtpProvider()
        self.issuer = RecordingSessionIssuer()
        self.orchestrator = LoginOrchestrator(
            verifier=CredentialVerifier(_alice_store()),
            dispatcher=OtpDispatcher(self.provider),
            validator=OtpValidator(self.provider),
            session_issuer=self.issuer,
        )

    def test_alice_logs_in_with_correct_code(self):
        started = self.orchestrator.start_verification("alice", "correct-pw")
        self.assertEqual(started.state, LoginState.AWAITING_CODE)
        self.assertEqual(self.provider.sent, [(ALICE_PHONE, "SMS")])

        completed = self.orchestrator.complete_verification("alice", "correct-pw", REAL_CODE)
        self.assertEqual(completed.state, LoginState.AUTHENTICATED)
        self.assertEqual(self.provider.checked, [(ALICE_PHONE, REAL_CODE)])
        self.assertEqual(len(self.issuer.issued), 1)
        self.assertEqual(self.issuer.issued[0].identifier, "alice")

    def test_invalid_credentials_never_dispatch(self):
        for username, password in [("alice", "wrong"), ("mallory", "correct-pw"), ("", "")]:
            with self.assertRaises(InvalidCredentialsError):
                self.orchestrator.start_verification(username, password)
        self.assertEqual(self.provider.sent, [])

    def test_wrong_code_is_rejected_without_session(self):
        for code in ("000000", "111111"):
            with self.assertRaises(CodeDeniedError):
                self.orchestrator.complete_verification("alice", "correct-pw", code)
        self.assertEqual(self.issuer.issued, [])

    def test_wrong_password_with_correct_code_is_rejected(self):
        with self.assertRaises(InvalidCredentialsError):
            self.orchestrator.complete_verification("alice", "wrong-pw", REAL_CODE)
        self.assertEqual(self.provider.checked, [])
        self.assertEqual(self.issuer.issued, [])

    def test_code_is_checked_against_the_verified_identity(self):
        with self.assertRaises(CodeDeniedError):
            self.orchestrator.complete_verification("bob", "bob-pw", "999999")
        self.assertEqual(self.provider.checked, [("+15550000002", "999999")])

    def test_dispatch_failure_rejects_step_one(self):
        provider = mock.Mock()
        provider.send.side_effect = DispatchError()
        orchestrator = LoginOrchestrator(
            verifier=CredentialVerifier(_alice_store()),
            dispatcher=OtpDispatcher(provider),
            validator=OtpValidator(provider),
            session_issuer=self.issuer,
        )
        with self.assertRaises(DispatchError) as ctx:
            orchestrator.start_verification("alice", "correct-pw")
        self.assertEqual(ctx.exception.user_id, 1)

    def test_denied_code_carries_the_verified_user(self):
        with self.assertRaises(CodeDeniedError) as ctx:
            self.orchestrator.complete_verification("alice", "correct-pw", "000000")
        self.assertEqual(ctx.exception.user_id, 1)

    def test_bad_credentials_carry_no_user(self):
        with self.assertRaises(InvalidCredentialsError) as ctx:
            self.orchestrator.start_verification("alice", "wrong-pw")
        self.assertIsNone(ctx.exception.user_id)


class DjangoUserStoreTests(TestCase):
    def setUp(self):
        super().setUp()
        User = get_user_model()
        self.user = User.objects.create_user(username="alice", email="alice@example.com", password="correct-pw")
        AccountProfile.objects.create(user=self.user, phone=ALICE_PHONE)
        self.store = DjangoUserStore()

    def test_lookup_by_username_or_email(self):
        by_name = self.store.lookup("Alice")
        by_email = self.store.lookup("ALICE@example.com")
        self.assertEqual(by_name, by_email)
        self.assertEqual(by_name.user_id, self.user.pk)
        self.assertEqual(by_name.contact_channel, ALICE_PHONE)

    def test_unknown_and_inactive_users_are_not_found(self):
        self.assertIsNone(self.store.lookup("nobody"))
        self.user.is_active = False
        self.user.save(update_fields=["is_active"])
        self.assertIsNone(self.store.lookup("alice"))

    def test_check_credential(self):
        identity = self.store.lookup("alice")
        self.assertTrue(self.store.check_credential(identity, "correct-pw"))
        self.assertFalse(self.store.check_credential(identity, "wrong-pw"))
        self.assertFalse(self.store.check_credential(identity, ""))

    def test_user_without_profile_has_no_contact_channel(self):
        get_user_model().objects.create_user(username="carol", password="carol-pw")
        self.assertEqual(self.store.lookup("carol").contact_channel, "")

    def test_profile_phone_is_normalized_and_validated(self):
        dave = get_user_model().objects.create_user(username="dave", password="dave-pw")
        profile = AccountProfile(user=dave, phone="00 1 (555) 111-2222")
        profile.full_clean()
        self.assertEqual(profile.phone, "+15551112222")

        profile.phone = "call me"
        with self.assertRaises(ValidationError):
            profile.full_clean()


class JwtSessionIssuerTests(TestCase):
    def setUp(self):
        super().setUp()
        self.user = get_user_model().objects.create_user(username="alice", password="correct-pw")
        self.identity = Identity(user_id=self.user.pk, identifier="alice", contact_channel=ALICE_PHONE)

    def test_issues_token_pair_for_active_user(self):
        session = JwtSessionIssuer().issue(self.identity)
        self.assertEqual(session.user_id, self.user.pk)
        self.assertTrue(session.access)
        self.assertTrue(session.refresh)

    def test_deactivated_user_is_rejected(self):
        self.user.is_active = False
        self.user.save(update_fields=["is_active"])
        with self.assertRaises(InvalidCredentialsError):
            JwtSessionIssuer().issue(self.identity)

    def test_deleted_user_is_rejected(self):
        self.user.delete()
        with self.assertRaises(InvalidCredentialsError) as ctx:
            JwtSessionIssuer().issue(self.identity)
        self.assertIsNone(ctx.exception.user_id)

    def test_orchestrator_rejects_user_removed_after_code_check(self):
        store = FakeUserStore({"alice": (self.identity, "correct-pw")})
        provider = RecordingOtpProvider()
        orchestrator = LoginOrchestrator(
            verifier=CredentialVerifier(store),
            dispatcher=OtpDispatcher(provider),
            validator=OtpValidator(provider),
            session_issuer=JwtSessionIssuer(),
        )
        self.user.delete()
        with self.assertRaises(InvalidCredentialsError) as ctx:
            orchestrator.complete_verification("alice", "correct-pw", REAL_CODE)
        self.assertIsNone(ctx.exception.user_id)
        self.assertEqual(provider.checked, [(ALICE_PHONE, REAL_CODE)])


class SandboxOtpProviderTests(SimpleTestCase):
    def setUp(self):
        super().setUp()
        cache.clear()

    def test_fixed_code_round_trip_consumes_code(self):
        provider = SandboxOtpProvider(fixed_code=REAL_CODE)
        receipt = provider.send(contact_channel=ALICE_PHONE, method="SMS")
        self.assertTrue(receipt.reference.startswith("SANDBOX-"))
        self.assertFalse(provider.check(contact_channel=ALICE_PHONE, code="000000").matched)
        self.assertTrue(provider.check(contact_channel=ALICE_PHONE, code=REAL_CODE).matched)
        self.assertFalse(provider.check(contact_channel=ALICE_PHONE, code=REAL_CODE).matched)

    def test_check_without_dispatch_is_denied(self):
        self.assertFalse(SandboxOtpProvider(fixed_code=REAL_CODE).check(contact_channel=ALICE_PHONE, code=REAL_CODE).matched)

    def test_send_to_blank_channel_fails(self):
        with self.assertRaises(DispatchError):
            SandboxOtpProvider().send(contact_channel="", method="SMS")

    def test_generated_code_is_six_digits(self):
        provider = SandboxOtpProvider()
        provider.send(contact_channel=ALICE_PHONE, method="SMS")
        stored = cache.get(provider._key(ALICE_PHONE))
        self.assertEqual(len(stored), 6)
        self.assertTrue(stored.isdigit())


class HttpVerifyOtpProviderTests(SimpleTestCase):
    def _response(self, status_code: int, payload: dict | None = None):
        response = mock.Mock(status_code=status_code)
        response.json.return_value = payload or {}
        return response

    def _provider(self, session, **kwargs):
        options = {"api_key": "key-123", "base_url": "https://verify.example.com/v1/", "session": session}
        options.update(kwargs)
        return HttpVerifyOtpProvider(**options)

    def test_send_posts_phone_and_method(self):
        session = mock.Mock()
        session.post.return_value = self._response(200, {"id": "ver_1", "status": "PENDING"})
        receipt = self._provider(session).send(contact_channel=ALICE_PHONE, method="SMS")

        self.assertEqual(receipt.reference, "ver_1")
        self.assertEqual(receipt.status, "pending")
        args, kwargs = session.post.call_args
        self.assertEqual(args[0], "https://verify.example.com/v1/verifications/start")
        self.assertEqual(kwargs["json"], {"phoneNumber": ALICE_PHONE, "method": "SMS"})
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer key-123")

    def test_sandbox_flag_uses_sandbox_url(self):
        session = mock.Mock()
        session.post.return_value = self._response(200)
        provider = self._provider(session, sandbox=True, sandbox_url="https://sandbox.example.com")
        provider.send(contact_channel=ALICE_PHONE, method="SMS")
        self.assertEqual(session.post.call_args[0][0], "https://sandbox.example.com/verifications/start")

    def test_send_client_error_is_dispatch_error(self):
        session = mock.Mock()
        session.post.return_value = self._response(422, {"error": "invalid phone"})
        with self.assertRaises(DispatchError):
            self._provider(session).send(contact_channel="+1", method="SMS")

    def test_server_error_and_network_error_are_provider_unavailable(self):
        session = mock.Mock()
        session.post.return_value = self._response(503)
        with self.assertRaises(ProviderUnavailableError):
            self._provider(session).send(contact_channel=ALICE_PHONE, method="SMS")

        session.post.side_effect = requests.exceptions.ConnectionError("down")
        with self.assertRaises(ProviderUnavailableError):
            self._provider(session).check(contact_channel=ALICE_PHONE, code=REAL_CODE)

    def test_check_matches_only_on_success_status(self):
        session = mock.Mock()
        session.post.return_value = self._response(200, {"status": "SUCCESS"})
        self.assertTrue(self._provider(session).check(contact_channel=ALICE_PHONE, code=REAL_CODE).matched)

        session.post.return_value = self._response(200, {"status": "FAILED"})
        self.assertFalse(self._provider(session).check(contact_channel=ALICE_PHONE, code="000000").matched)

        session.post.return_value = self._response(404)
        self.assertFalse(self._provider(session).check(contact_channel=ALICE_PHONE, code=REAL_CODE).matched)

    def test_requires_api_key(self):
        with self.assertRaises(ValueError):
            HttpVerifyOtpProvider(api_key="", base_url="https://verify.example.com")


class OTPProviderResolverTests(SimpleTestCase):
    @override_settings(OTP_PROVIDER=SANDBOX_PATH, OTP_PROVIDER_OPTIONS={"fixed_code": REAL_CODE})
    def test_resolves_configured_provider_with_options(self):
        provider = OTPProviderResolver.resolve()
        self.assertIsInstance(provider, SandboxOtpProvider)
        self.assertEqual(provider.fixed_code, REAL_CODE)

    def test_each_resolve_builds_a_new_instance(self):
        self.assertIsNot(OTPProviderResolver.resolve(), OTPProviderResolver.resolve())

    @override_settings(OTP_PROVIDER="")
    def test_missing_provider_is_improperly_configured(self):
        with self.assertRaises(ImproperlyConfigured):
            OTPProviderResolver.resolve()


class AccountsConfigTests(SimpleTestCase):
    def _ready(self):
        django_apps.get_app_config("accounts").ready()

    @override_settings(ENVIRONMENT="production", DEBUG=False, OTP_PROVIDER=SANDBOX_PATH, OTP_PROVIDER_OPTIONS={})
    def test_sandbox_provider_refused_in_production(self):
        with self.assertRaises(ImproperlyConfigured):
            self._ready()

    @override_settings(ENVIRONMENT="development", OTP_PROVIDER=HTTP_PATH, OTP_PROVIDER_OPTIONS={"api_key": ""})
    def test_http_provider_needs_api_key(self):
        with self.assertRaises(ImproperlyConfigured):
            self._ready()

    @override_settings(ENVIRONMENT="development", OTP_DELIVERY_METHOD="PIGEON")
    def test_unknown_delivery_method(self):
        with self.assertRaises(ImproperlyConfigured):
            self._ready()

    @override_settings(
        ENVIRONMENT="production",
        DEBUG=False,
        OTP_PROVIDER=HTTP_PATH,
        OTP_PROVIDER_OPTIONS={"api_key": "key", "base_url": "https://verify.example.com"},
    )
    def test_production_with_http_provider_is_accepted(self):
        self._ready()


@override_settings(OTP_PROVIDER=SANDBOX_PATH, OTP_PROVIDER_OPTIONS={"fixed_code": REAL_CODE}, OTP_DELIVERY_METHOD="SMS")
class TwoStepLoginApiTests(TestCase):
    start_url = "/api/auth/start-verification/"
    complete_url = "/api/auth/complete-verification/"

    def setUp(self):
        super().setUp()
        cache.clear()
        self.client = APIClient()
        User = get_user_model()
        self.user = User.objects.create_user(username="alice", email="alice@example.com", password="correct-pw")
        AccountProfile.objects.create(user=self.user, phone=ALICE_PHONE)

    def _start(self, username="alice", password="correct-pw"):
        return self.client.post(self.start_url, data={"username": username, "password": password}, format="json")

    def _complete(self, code, username="alice", password="correct-pw"):
        return self.client.post(
            self.complete_url,
            data={"username": username, "password": password, "verificationCode": code},
            format="json",
        )

    def test_alice_two_step_login(self):
        start = self._start()
        self.assertEqual(start.status_code, 200)
        payload = start.json()
        self.assertTrue(payload["success"])
        self.assertEqual(payload["data"], {"contact_channel": "********4567", "method": "SMS"})
        self.assertEqual(payload["next_step"], self.complete_url)

        done = self._complete(REAL_CODE)
        self.assertEqual(done.status_code, 200)
        data = done.json()["data"]
        self.assertEqual(data["user_id"], self.user.pk)
        self.assertTrue(data["access"])
        self.assertTrue(data["refresh"])

        self.assertEqual(
            list(AccountAuditLog.objects.order_by("id").values_list("action", flat=True)),
            [AccountAuditLog.ACTION_VERIFICATION_STARTED, AccountAuditLog.ACTION_LOGIN_SUCCEEDED],
        )

    def test_start_dispatches_exactly_once_to_contact_channel(self):
        provider = RecordingOtpProvider()
        with mock.patch.object(OTPProviderResolver, "resolve", return_value=provider):
            response = self._start()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(provider.sent, [(ALICE_PHONE, "SMS")])

    def test_invalid_credentials_rejected_without_dispatch(self):
        provider = RecordingOtpProvider()
        with mock.patch.object(OTPProviderResolver, "resolve", return_value=provider):
            wrong_password = self._start(password="wrong-pw")
            unknown_user = self._start(username="mallory")
        self.assertEqual(wrong_password.status_code, 403)
        self.assertEqual(unknown_user.status_code, 403)
        self.assertEqual(wrong_password.json(), unknown_user.json())
        self.assertEqual(provider.sent, [])

        failure = AccountAuditLog.objects.filter(action=AccountAuditLog.ACTION_LOGIN_FAILED).first()
        self.assertEqual(failure.metadata["reason_code"], "invalid_credentials")

    def test_wrong_code_is_rejected_without_tokens(self):
        self.assertEqual(self._start().status_code, 200)
        for code in ("000000", "111111"):
            response = self._complete(code)
            self.assertEqual(response.status_code, 403)
            self.assertNotIn("access", response.json()["data"])
        self.assertFalse(AccountAuditLog.objects.filter(action=AccountAuditLog.ACTION_LOGIN_SUCCEEDED).exists())

    def test_wrong_password_with_correct_code_is_rejected(self):
        self.assertEqual(self._start().status_code, 200)
        response = self._complete(REAL_CODE, password="wrong-pw")
        self.assertEqual(response.status_code, 403)
        self.assertNotIn("access", response.json()["data"])

    def test_rejections_do_not_reveal_the_failed_factor(self):
        self._start()
        bad_code = self._complete("000000")
        bad_password = self._complete(REAL_CODE, password="wrong-pw")
        self.assertEqual(bad_code.status_code, bad_password.status_code)
        self.assertEqual(bad_code.json(), bad_password.json())

        reasons = sorted(
            log.metadata["reason_code"]
            for log in AccountAuditLog.objects.filter(action=AccountAuditLog.ACTION_LOGIN_FAILED)
        )
        self.assertEqual(reasons, ["code_denied", "invalid_credentials"])

    def test_provider_outage_is_a_generic_rejection(self):
        provider = mock.Mock()
        provider.send.side_effect = ProviderUnavailableError()
        with mock.patch.object(OTPProviderResolver, "resolve", return_value=provider):
            response = self._start()
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["message"], "Invalid credentials.")

    def test_user_without_phone_cannot_start(self):
        get_user_model().objects.create_user(username="carol", password="carol-pw")
        response = self._start(username="carol", password="carol-pw")
        self.assertEqual(response.status_code, 403)

    def test_malformed_body_is_bad_request(self):
        response = self.client.post(self.start_url, data={"username": "alice"}, format="json")
        self.assertEqual(response.status_code, 400)
        response = self.client.post(
            self.complete_url, data={"username": "alice", "password": "correct-pw"}, format="json"
        )
        self.assertEqual(response.status_code, 400)

    def test_issued_access_token_authenticates(self):
        self._start()
        access = self._complete(REAL_CODE).json()["data"]["access"]
        response = self.client.post("/api/auth/token/verify/", data={"token": access}, format="json")
        self.assertEqual(response.status_code, 200)

    def test_overlong_code_is_rejected_without_tokens(self):
        self.assertEqual(self._start().status_code, 200)
        response = self._complete(REAL_CODE + "0")
        self.assertEqual(response.status_code, 403)
        self.assertNotIn("access", response.json()["data"])
        self.assertFalse(AccountAuditLog.objects.filter(action=AccountAuditLog.ACTION_LOGIN_SUCCEEDED).exists())

        # The real code was not consumed by the rejected attempt.
        self.assertEqual(self._complete(REAL_CODE).status_code, 200)

    def test_failures_after_the_password_check_are_audited_against_the_user(self):
        provider = mock.Mock()
        provider.send.side_effect = ProviderUnavailableError()
        with mock.patch.object(OTPProviderResolver, "resolve", return_value=provider):
            self._start()
        carol = get_user_model().objects.create_user(username="carol", password="carol-pw")
        self._start(username="carol", password="carol-pw")
        self._start(password="wrong-pw")

        failures = [
            (log.user_id, log.metadata["reason_code"])
            for log in AccountAuditLog.objects.filter(action=AccountAuditLog.ACTION_LOGIN_FAILED).order_by("id")
        ]
        self.assertEqual(
            failures,
            [
                (self.user.pk, "provider_unavailable"),
                (carol.pk, "dispatch_failed"),
                (None, "invalid_credentials"),
            ],
        )

    def test_failure_reason_is_in_the_log_message(self):
        with self.assertLogs("otp_gate.auth", level="INFO") as logs:
            self._start(password="wrong-pw")
            self._start()
            self._complete("000000")
        output = "\n".join(logs.output)
        self.assertIn("auth.verification_failed reason=invalid_credentials user_id=None", output)
        self.assertIn(f"auth.login_failed reason=code_denied user_id={self.user.pk}", output)
