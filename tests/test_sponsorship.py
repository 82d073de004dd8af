from datetime import datetime, timezone

import pytest

from conftest import TX_HASH, USER_ADDRESS, WALLET_ID, user_record
from gateway.custody import DelegatedSession, ResolvedWallet, TransactionResult
from gateway.errors import (
    AuthenticationError,
    RequestValidationError,
    SessionExpiredError,
    SponsorshipError,
    SubmissionError,
    WalletResolutionError,
)
from gateway.sponsorship import (
    SponsorshipFlow,
    SponsorshipStage,
    resolve_wallet,
    validate_request,
)


class StubCustody:
    """Records which provider calls the flow makes."""

    def __init__(self, user=None, session=None, result=None, submit_error=None):
        self.user = user if user is not None else user_record()
        self.session = session or DelegatedSession(
            "key", datetime(2100, 1, 1, tzinfo=timezone.utc), (WALLET_ID,)
        )
        self.result = result or TransactionResult(hash=TX_HASH, provider_transaction_id="t1")
        self.submit_error = submit_error
        self.calls = []

    def get_user_by_wallet_address(self, address):
        self.calls.append(("lookup", address))
        return self.user

    def authenticate(self, token):
        self.calls.append(("authenticate", token))
        return self.session

    def send_transaction(self, wallet_id, session, transaction, *, sponsor=True):
        self.calls.append(("send", wallet_id, transaction.data, sponsor))
        if self.submit_error:
            raise self.submit_error
        return self.result

    def names(self):
        return [c[0] for c in self.calls]


# =============================================================================
# Request validation
# =============================================================================


class TestValidateRequest:
    def test_missing_address(self):
        with pytest.raises(RequestValidationError, match="User address is required"):
            validate_request(None, "increment")

    def test_empty_address(self):
        with pytest.raises(RequestValidationError, match="User address is required"):
            validate_request("", "increment")

    def test_mixed_case_address_is_accepted(self):
        assert validate_request(USER_ADDRESS, None) == USER_ADDRESS

    def test_short_address(self):
        with pytest.raises(RequestValidationError, match="Invalid user address"):
            validate_request("0xabc", "increment")

    def test_trailing_newline_is_rejected(self):
        with pytest.raises(RequestValidationError, match="Invalid user address"):
            validate_request("0x" + "a" * 40 + "\n", "increment")

    def test_unsupported_function(self):
        with pytest.raises(RequestValidationError, match="Unsupported function: transfer"):
            validate_request(USER_ADDRESS, "transfer")


# =============================================================================
# Wallet resolution
# =============================================================================


class TestResolveWallet:
    def test_case_insensitive_match(self):
        wallet = resolve_wallet(user_record(), USER_ADDRESS.upper().replace("0X", "0x"))
        assert wallet == ResolvedWallet(wallet_id=WALLET_ID, address=USER_ADDRESS.lower())

    def test_no_user(self):
        with pytest.raises(WalletResolutionError, match="User wallet not found"):
            resolve_wallet(None, USER_ADDRESS)

    def test_non_wallet_accounts_are_ignored(self):
        user = {"linked_accounts": [{"type": "email", "address": USER_ADDRESS}]}
        with pytest.raises(WalletResolutionError, match="Target wallet not found"):
            resolve_wallet(user, USER_ADDRESS)

    def test_first_of_duplicate_matches_wins(self):
        user = {
            "linked_accounts": [
                {"type": "wallet", "address": USER_ADDRESS.lower(), "id": "first"},
                {"type": "wallet", "address": USER_ADDRESS, "id": "second"},
            ]
        }
        assert resolve_wallet(user, USER_ADDRESS).wallet_id == "first"


# =============================================================================
# Flow
# =============================================================================


def test_flow_happy_path():
    custody = StubCustody()
    flow = SponsorshipFlow(custody, USER_ADDRESS, "tok1")

    outcome = flow.run()

    assert outcome.result.hash == TX_HASH
    assert outcome.wallet.wallet_id == WALLET_ID
    assert flow.stage is SponsorshipStage.DONE
    assert custody.calls == [
        ("lookup", USER_ADDRESS),
        ("authenticate", "tok1"),
        ("send", WALLET_ID, "0xd09de08a", True),
    ]
    assert set(outcome.stage_ms) == {"resolving", "authenticating", "submitting"}


def test_flow_resolution_failure_skips_authentication():
    custody = StubCustody(user={"linked_accounts": []})
    flow = SponsorshipFlow(custody, USER_ADDRESS, "tok1")

    with pytest.raises(SponsorshipError) as excinfo:
        flow.run()

    assert excinfo.value.stage == "resolving"
    assert isinstance(excinfo.value.cause, WalletResolutionError)
    assert flow.stage is SponsorshipStage.FAILED
    assert flow.failed_stage is SponsorshipStage.RESOLVING
    assert custody.names() == ["lookup"]


def test_flow_missing_token():
    custody = StubCustody()
    flow = SponsorshipFlow(custody, USER_ADDRESS, None)

    with pytest.raises(SponsorshipError) as excinfo:
        flow.run()

    assert excinfo.value.stage == "authenticating"
    assert str(excinfo.value) == "User access token is required for authorization"
    assert custody.names() == ["lookup"]


def test_flow_wallet_not_in_session():
    session = DelegatedSession("key", None, ("someone-else",))
    custody = StubCustody(session=session)
    flow = SponsorshipFlow(custody, USER_ADDRESS, "tok1")

    with pytest.raises(SponsorshipError) as excinfo:
        flow.run()

    assert isinstance(excinfo.value.cause, AuthenticationError)
    assert str(excinfo.value) == f"Wallet {WALLET_ID} not found in authenticated wallets"
    assert "send" not in custody.names()


def test_flow_expired_session_is_not_submitted():
    session = DelegatedSession("key", datetime(2020, 1, 1, tzinfo=timezone.utc), (WALLET_ID,))
    custody = StubCustody(session=session)
    flow = SponsorshipFlow(custody, USER_ADDRESS, "tok1")

    with pytest.raises(SponsorshipError) as excinfo:
        flow.run()

    assert excinfo.value.stage == "submitting"
    assert isinstance(excinfo.value.cause, SessionExpiredError)
    assert "send" not in custody.names()


def test_flow_uses_injected_clock_for_expiry():
    expires = datetime(2030, 1, 1, tzinfo=timezone.utc)
    custody = StubCustody(session=DelegatedSession("key", expires, (WALLET_ID,)))
    flow = SponsorshipFlow(
        custody, USER_ADDRESS, "tok1", clock=lambda: datetime(2031, 1, 1, tzinfo=timezone.utc)
    )
    with pytest.raises(SponsorshipError):
        flow.run()


def test_flow_submission_failure_propagates_details():
    custody = StubCustody(submit_error=SubmissionError("provider said no"))
    flow = SponsorshipFlow(custody, USER_ADDRESS, "tok1")

    with pytest.raises(SponsorshipError) as excinfo:
        flow.run()

    assert excinfo.value.stage == "submitting"
    assert excinfo.value.details == "SubmissionError: provider said no"
