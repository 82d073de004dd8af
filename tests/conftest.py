"""
Shared fixtures: a scripted stand-in for the custody provider's HTTP API and a
counter-contract stub, so the gateway can be exercised without the network.
"""

import base64
import json
from typing import Any, Dict, List, Optional, Tuple

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi.testclient import TestClient

from gateway.config import Settings
from gateway.custody import CustodyClient
from gateway.main import create_app


# =============================================================================
# Test Constants
# =============================================================================

APP_ID = "test-app-id"
APP_SECRET = "test-app-secret"
API_URL = "https://api.custody.test"
AUTH_URL = "https://auth.custody.test"

USER_ADDRESS = "0xABCdef0000000000000000000000000000000001"
WALLET_ID = "wallet-abc-1"
TX_HASH = "0xfeed" + "0" * 60
PROVIDER_TX_ID = "tx-internal-42"

USER_LOOKUP_URL = f"{AUTH_URL}/api/v1/users/wallet/address"
AUTHENTICATE_URL = f"{API_URL}/v1/wallets/authenticate"
RPC_URL = f"{API_URL}/v1/wallets/{WALLET_ID}/rpc"


def make_authorization_key() -> Tuple[str, ec.EllipticCurvePrivateKey]:
    private_key = ec.generate_private_key(ec.SECP256R1())
    der = private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return "wallet-auth:" + base64.b64encode(der).decode("ascii"), private_key


# =============================================================================
# Fake HTTP session
# =============================================================================


class FakeResponse:
    def __init__(self, status_code: int, body: Any = None, text: Optional[str] = None):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else (json.dumps(body) if body is not None else "")

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("No JSON body")
        return self._body


class FakeSession:
    """Route table keyed by URL; each value is a FakeResponse or an exception to raise."""

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes: Dict[str, Any] = dict(routes or {})
        self.calls: List[Dict[str, Any]] = []
        self.auth = None

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers or {}, "timeout": timeout})
        outcome = self.routes.get(url)
        if outcome is None:
            return FakeResponse(404, {"error": "not found"})
        if isinstance(outcome, list):
            outcome = outcome.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def urls(self) -> List[str]:
        return [c["url"] for c in self.calls]


def user_record(address: str = USER_ADDRESS, wallet_id: str = WALLET_ID) -> Dict[str, Any]:
    return {
        "id": "did:privy:user1",
        "linked_accounts": [
            {"type": "email", "address": "user@example.com"},
            {"type": "wallet", "address": address.lower(), "id": wallet_id, "chain_type": "ethereum"},
        ],
    }


def auth_body(authorization_key: str, wallet_ids=(WALLET_ID,), expires_at: Any = 4102444800000) -> Dict[str, Any]:
    return {
        "authorization_key": authorization_key,
        "expires_at": expires_at,
        "wallets": [{"id": w, "chain_type": "ethereum"} for w in wallet_ids],
    }


def rpc_body(tx_hash: str = TX_HASH) -> Dict[str, Any]:
    return {
        "method": "eth_sendTransaction",
        "data": {"hash": tx_hash, "caip2": "eip155:84532", "transaction_id": PROVIDER_TX_ID},
    }


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def authorization_key():
    return make_authorization_key()


@pytest.fixture
def happy_routes(authorization_key):
    key, _ = authorization_key
    return {
        USER_LOOKUP_URL: FakeResponse(200, user_record()),
        AUTHENTICATE_URL: FakeResponse(200, auth_body(key)),
        RPC_URL: FakeResponse(200, rpc_body()),
    }


@pytest.fixture
def fake_session(happy_routes):
    return FakeSession(happy_routes)


@pytest.fixture
def custody(fake_session):
    return CustodyClient(
        app_id=APP_ID,
        app_secret=APP_SECRET,
        api_url=API_URL,
        auth_url=AUTH_URL,
        timeout=5.0,
        session=fake_session,
    )


class FakeChain:
    def __init__(self, count: int = 7, error: Optional[Exception] = None):
        self.count = count
        self.error = error
        self.calls = 0

    def get_count(self) -> int:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.count


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def settings():
    return Settings(privy_app_id=APP_ID, privy_app_secret=APP_SECRET, cors_origin="http://localhost:5173")


@pytest.fixture
def client(settings, custody, chain):
    app = create_app(settings=settings, custody=custody, chain=chain)
    return TestClient(app)
