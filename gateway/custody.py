"""
Client for the wallet-custody provider (Privy) REST API.

Covers the three calls the sponsorship flow needs: looking a user up by one of
their wallet addresses, exchanging a user session token for a short-lived
authorization key, and relaying a sponsored `eth_sendTransaction` through the
provider's wallet RPC endpoint. Requests that act on a user wallet are signed
with the authorization key (P-256 ECDSA over the canonical request payload).
"""

import base64
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import requests
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from gateway.contract import CAIP2, SponsoredTransaction
from gateway.errors import (
    AuthenticationError,
    CustodyError,
    SubmissionError,
    WalletResolutionError,
)
from gateway.retry import NO_RETRY, RetryPolicy

logger = logging.getLogger(__name__)

AUTHORIZATION_KEY_PREFIX = "wallet-auth:"
SIGNATURE_VERSION = 1


@dataclass(frozen=True)
class ResolvedWallet:
    wallet_id: str
    address: str


@dataclass(frozen=True)
class DelegatedSession:
    authorization_key: str
    expires_at: Optional[datetime]
    wallet_ids: Tuple[str, ...]

    def covers(self, wallet_id: str) -> bool:
        return wallet_id in self.wallet_ids

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at


@dataclass(frozen=True)
class TransactionResult:
    hash: str
    provider_transaction_id: Optional[str]
    sponsored: bool = True


def parse_expiry(value: Any) -> Optional[datetime]:
    """Provider expiry comes back as epoch milliseconds; seconds and ISO-8601 are accepted too."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > 1e12 else float(value)
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str):
        if value.isdigit():
            return parse_expiry(int(value))
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValueError(f"Unrecognised expiry value: {value!r}")


def canonical_json(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sign_request(authorization_key: str, payload: Dict[str, Any]) -> str:
    """Return the base64 DER ECDSA-P256/SHA-256 signature of the canonical payload."""
    raw = authorization_key
    if raw.startswith(AUTHORIZATION_KEY_PREFIX):
        raw = raw[len(AUTHORIZATION_KEY_PREFIX):]
    try:
        private_key = serialization.load_der_private_key(base64.b64decode(raw), password=None)
    except Exception as e:
        raise AuthenticationError(f"Invalid authorization key: {type(e).__name__}") from e
    if not isinstance(private_key, ec.EllipticCurvePrivateKey):
        raise AuthenticationError("Invalid authorization key: not an EC key")

    signature = private_key.sign(
        canonical_json(payload).encode("utf-8"), ec.ECDSA(hashes.SHA256())
    )
    return base64.b64encode(signature).decode("ascii")


def _error_text(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            if body.get(key):
                return str(body[key])
    text = (response.text or "").strip()
    return text or "Unknown error"


def _json_body(response: requests.Response, what: str) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError as e:
        raise CustodyError(f"Invalid {what} response from custody provider") from e
    if not isinstance(data, dict):
        raise CustodyError(f"Invalid {what} response from custody provider")
    return data


class CustodyClient:
    """
    Thin client over the custody provider's HTTP API.

    The app id / secret pair is sent as HTTP basic auth on every call. One
    instance is shared for the process lifetime; it holds no per-user state.
    """

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        api_url: str = "https://api.privy.io",
        auth_url: str = "https://auth.privy.io",
        timeout: float = 15.0,
        retry_policy: RetryPolicy = NO_RETRY,
        session: Optional[requests.Session] = None,
    ):
        if not app_id or not app_secret:
            raise ValueError("Custody provider app id and secret are required")
        self.app_id = app_id
        self.api_url = api_url.rstrip("/")
        self.auth_url = auth_url.rstrip("/")
        self.timeout = timeout
        self.retry_policy = retry_policy
        self.session = session or requests.Session()
        self.session.auth = (app_id, app_secret)

    def _headers(self) -> Dict[str, str]:
        return {"privy-app-id": self.app_id, "Content-Type": "application/json"}

    def _post(self, url: str, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None):
        start = time.perf_counter()
        response = self.session.post(
            url, json=payload, headers=headers or self._headers(), timeout=self.timeout
        )
        logger.debug(
            "Custody: POST %s status=%s ms=%.1f",
            url,
            response.status_code,
            (time.perf_counter() - start) * 1000.0,
        )
        return response

    def get_user_by_wallet_address(self, address: str) -> Optional[Dict[str, Any]]:
        """Return the provider's user record owning `address`, or None if there is none."""
        url = f"{self.auth_url}/api/v1/users/wallet/address"
        response = self.retry_policy.call(
            lambda: self._post(url, {"address": address}), label="get_user_by_wallet_address"
        )
        if response.status_code == 404:
            return None
        if not response.ok:
            raise WalletResolutionError(
                f"User lookup failed: {_error_text(response)}",
                status_code=response.status_code,
            )
        return _json_body(response, "user lookup")

    def authenticate(self, user_jwt: str) -> DelegatedSession:
        """Exchange the user's session token for a delegated authorization key."""
        url = f"{self.api_url}/v1/wallets/authenticate"
        response = self.retry_policy.call(
            lambda: self._post(url, {"user_jwt": user_jwt}), label="authenticate"
        )
        if not response.ok:
            raise AuthenticationError(
                f"Failed to authenticate with custody provider: {_error_text(response)}",
                status_code=response.status_code,
            )

        data = _json_body(response, "authentication")
        authorization_key = data.get("authorization_key")
        if not authorization_key:
            raise AuthenticationError(
                "Custody provider did not return an authorization key"
            )
        wallets: List[Dict[str, Any]] = data.get("wallets") or []
        try:
            expires_at = parse_expiry(data.get("expires_at"))
        except ValueError as e:
            raise AuthenticationError(str(e)) from e

        session = DelegatedSession(
            authorization_key=authorization_key,
            expires_at=expires_at,
            wallet_ids=tuple(str(w.get("id")) for w in wallets if w.get("id")),
        )
        logger.info(
            "Custody: session authenticated wallets=%s expires_at=%s",
            len(session.wallet_ids),
            expires_at.isoformat() if expires_at else None,
        )
        return session

    def send_transaction(
        self,
        wallet_id: str,
        session: DelegatedSession,
        transaction: SponsoredTransaction,
        *,
        sponsor: bool = True,
    ) -> TransactionResult:
        """Relay `eth_sendTransaction` for `wallet_id`; the provider pays gas when `sponsor` is set."""
        url = f"{self.api_url}/v1/wallets/{wallet_id}/rpc"
        body = {
            "method": "eth_sendTransaction",
            "caip2": CAIP2,
            "chain_type": "ethereum",
            "sponsor": sponsor,
            "params": transaction.as_rpc_params(),
        }
        headers = self._headers()
        headers["privy-authorization-signature"] = sign_request(
            session.authorization_key,
            {
                "version": SIGNATURE_VERSION,
                "method": "POST",
                "url": url,
                "body": body,
                "headers": {"privy-app-id": self.app_id},
            },
        )

        try:
            response = self._post(url, body, headers=headers)
        except requests.exceptions.RequestException as e:
            raise SubmissionError(f"Transaction relay request failed: {e}") from e

        if not response.ok:
            raise SubmissionError(
                f"Transaction rejected by custody provider: {_error_text(response)}",
                status_code=response.status_code,
            )

        data = _json_body(response, "transaction").get("data") or {}
        tx_hash = data.get("hash")
        if not tx_hash:
            raise SubmissionError("Custody provider response did not include a transaction hash")
        return TransactionResult(
            hash=tx_hash,
            provider_transaction_id=data.get("transaction_id"),
            sponsored=sponsor,
        )
