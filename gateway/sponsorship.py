import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from gateway.contract import SUPPORTED_FUNCTIONS, build_increment_transaction
from gateway.custody import (
    CustodyClient,
    DelegatedSession,
    ResolvedWallet,
    TransactionResult,
)
from gateway.errors import (
    AuthenticationError,
    RequestValidationError,
    SessionExpiredError,
    SponsorshipError,
    WalletResolutionError,
)

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"0x[0-9a-fA-F]{40}")


class SponsorshipStage(str, Enum):
    PENDING = "pending"
    RESOLVING = "resolving"
    AUTHENTICATING = "authenticating"
    SUBMITTING = "submitting"
    DONE = "done"
    FAILED = "failed"


def validate_request(user_address: Optional[str], function_name: Optional[str]) -> str:
    """Presence/format checks only; returns the address. Never talks to the provider."""
    if not user_address:
        raise RequestValidationError("User address is required")
    if not _ADDRESS_RE.fullmatch(user_address):
        raise RequestValidationError("Invalid user address")
    name = function_name or "increment"
    if name not in SUPPORTED_FUNCTIONS:
        raise RequestValidationError(f"Unsupported function: {name}")
    return user_address


def resolve_wallet(user: Optional[Dict[str, Any]], user_address: str) -> ResolvedWallet:
    """Pick the linked wallet account whose address equals `user_address` (case-insensitive)."""
    if not user:
        raise WalletResolutionError("User wallet not found")

    wanted = user_address.lower()
    matches: List[Dict[str, Any]] = [
        account
        for account in user.get("linked_accounts") or []
        if account.get("type") == "wallet"
        and str(account.get("address") or "").lower() == wanted
    ]
    if not matches:
        raise WalletResolutionError("Target wallet not found in linked accounts")
    if len(matches) > 1:
        logger.warning(
            "Sponsor: %s linked accounts match address %s; using the first",
            len(matches),
            user_address[:10],
        )

    account = matches[0]
    wallet_id = account.get("id")
    if not wallet_id:
        raise WalletResolutionError("Target wallet has no provider wallet id")
    return ResolvedWallet(wallet_id=str(wallet_id), address=str(account["address"]))


@dataclass
class SponsorshipOutcome:
    wallet: ResolvedWallet
    result: TransactionResult
    stage_ms: Dict[str, float] = field(default_factory=dict)


class SponsorshipFlow:
    """
    One sponsorship attempt: resolve wallet -> authenticate session -> submit.

    A flow instance is used for exactly one request. Each stage either advances
    `stage` or records FAILED and raises `SponsorshipError` naming the stage
    that failed, so the HTTP layer never has to guess where things broke.
    """

    def __init__(
        self,
        custody: CustodyClient,
        user_address: str,
        user_token: Optional[str],
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.custody = custody
        self.user_address = user_address
        self.user_token = user_token
        self.clock = clock
        self.stage = SponsorshipStage.PENDING
        self.failed_stage: Optional[SponsorshipStage] = None
        self.stage_ms: Dict[str, float] = {}

    def _enter(self, stage: SponsorshipStage) -> None:
        logger.debug("Sponsor: %s -> %s", self.stage.value, stage.value)
        self.stage = stage

    def _run_stage(self, stage: SponsorshipStage, fn: Callable[[], Any]) -> Any:
        self._enter(stage)
        start = time.perf_counter()
        try:
            return fn()
        except Exception as e:
            self.failed_stage = stage
            self.stage = SponsorshipStage.FAILED
            logger.error(
                "Sponsor: stage %s failed for %s: %s: %s",
                stage.value,
                self.user_address[:10],
                type(e).__name__,
                e,
            )
            raise SponsorshipError(stage.value, e) from e
        finally:
            self.stage_ms[stage.value] = (time.perf_counter() - start) * 1000.0

    def resolve(self) -> ResolvedWallet:
        return resolve_wallet(
            self.custody.get_user_by_wallet_address(self.user_address), self.user_address
        )

    def authenticate(self, wallet: ResolvedWallet) -> DelegatedSession:
        if not self.user_token:
            raise AuthenticationError("User access token is required for authorization")
        session = self.custody.authenticate(self.user_token)
        if not session.covers(wallet.wallet_id):
            raise AuthenticationError(
                f"Wallet {wallet.wallet_id} not found in authenticated wallets"
            )
        return session

    def submit(self, wallet: ResolvedWallet, session: DelegatedSession) -> TransactionResult:
        if session.is_expired(self.clock()):
            raise SessionExpiredError(
                f"Authorization session expired at {session.expires_at.isoformat()}"
            )
        return self.custody.send_transaction(
            wallet.wallet_id, session, build_increment_transaction(), sponsor=True
        )

    def run(self) -> SponsorshipOutcome:
        wallet = self._run_stage(SponsorshipStage.RESOLVING, self.resolve)
        session = self._run_stage(
            SponsorshipStage.AUTHENTICATING, lambda: self.authenticate(wallet)
        )
        result = self._run_stage(
            SponsorshipStage.SUBMITTING, lambda: self.submit(wallet, session)
        )
        self._enter(SponsorshipStage.DONE)
        logger.info(
            "Sponsor: submitted tx=%s wallet=%s provider_id=%s",
            result.hash,
            wallet.wallet_id,
            result.provider_transaction_id,
        )
        return SponsorshipOutcome(wallet=wallet, result=result, stage_ms=dict(self.stage_ms))
