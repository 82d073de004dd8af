import asyncio
import logging
import os
import time
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from typing import List, Optional
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError as FastAPIValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gateway import __version__
from gateway.chain import ChainReader
from gateway.config import Settings
from gateway.custody import CustodyClient
from gateway.errors import ChainReadError, RequestValidationError, SponsorshipError
from gateway.retry import RetryPolicy
from gateway.schemas import (
    ContractCountResponse,
    HealthResponse,
    SponsorRequest,
    SponsorResponse,
)
from gateway.sponsorship import SponsorshipFlow, validate_request


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5


def configure_logging(level_name: str = "INFO", log_file: Optional[str] = None, name: str = "gateway") -> logging.Logger:
    """Attach stream (and optional rotating file) handlers once; later calls are no-ops."""
    gateway_logger = logging.getLogger(name)
    if gateway_logger.handlers:
        return gateway_logger

    gateway_logger.setLevel(getattr(logging, level_name.upper(), logging.INFO))
    gateway_logger.propagate = False

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        handlers.append(RotatingFileHandler(log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT))

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        gateway_logger.addHandler(handler)
    return gateway_logger


logger = logging.getLogger(__name__)


def _failure(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error, **extra})


def create_app(
    settings: Optional[Settings] = None,
    custody: Optional[CustodyClient] = None,
    chain: Optional[ChainReader] = None,
) -> FastAPI:
    """
    Build the gateway app. Clients not passed in are constructed from `settings`
    (or the environment) and live for as long as the app does.
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level, settings.log_file)
    retry_policy = RetryPolicy(
        max_attempts=settings.provider_max_attempts,
        backoff_sec=settings.retry_backoff_sec,
    )
    if custody is None:
        custody = CustodyClient(
            app_id=settings.privy_app_id,
            app_secret=settings.privy_app_secret,
            api_url=settings.privy_api_url,
            auth_url=settings.privy_auth_url,
            timeout=settings.provider_timeout_sec,
            retry_policy=retry_policy,
        )
    if chain is None:
        chain = ChainReader(
            rpc_url=settings.rpc_provider,
            timeout=settings.rpc_timeout_sec,
            retry_policy=retry_policy,
        )

    app = FastAPI(
        title="Sponsored Transaction Gateway",
        description="Relays gas-sponsored increment() calls for embedded wallets",
        version=__version__,
    )
    app.state.settings = settings
    app.state.custody = custody
    app.state.chain = chain

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request.state.request_id = request_id

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "Unhandled exception method=%s path=%s request_id=%s",
                request.method,
                request.url.path,
                request_id,
            )
            response = _failure(500, str(e) or "Internal Server Error")
        duration_ms = (time.perf_counter() - start) * 1000.0

        response.headers["X-Request-ID"] = request_id
        logger.info(
            "HTTP %s %s status=%s ms=%.1f request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request_id,
        )
        return response

    # Outermost, so 500s built by the logging middleware still carry CORS headers.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(FastAPIValidationError)
    async def invalid_body_handler(request: Request, exc: FastAPIValidationError):
        return _failure(400, "Invalid request body", details=str(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        request_id = getattr(getattr(request, "state", None), "request_id", None)
        logger.exception(
            "Unhandled exception (handler) method=%s path=%s request_id=%s",
            request.method,
            request.url.path,
            request_id,
        )
        return _failure(500, str(exc) or "Internal Server Error")

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return HealthResponse(
            status="OK",
            message="Privy Sponsored Transaction Backend",
            timestamp=datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        )

    @app.get("/api/contract-count", response_model=ContractCountResponse)
    async def contract_count(request: Request):
        reader: ChainReader = request.app.state.chain
        try:
            count = await asyncio.wait_for(
                asyncio.to_thread(reader.get_count), timeout=request.app.state.settings.request_timeout_sec
            )
        except ChainReadError as e:
            logger.error("Error reading contract: %s", e)
            return _failure(500, str(e))
        except asyncio.TimeoutError:
            logger.error("Timed out reading contract")
            return _failure(500, "Timed out reading contract")
        return ContractCountResponse(count=str(count))

    @app.post("/api/sponsor-transaction", response_model=SponsorResponse)
    async def sponsor_transaction(request: Request, payload: Optional[SponsorRequest] = None):
        payload = payload or SponsorRequest()
        logger.info(
            "Sponsor: request address=%s token=%s function=%s",
            (payload.userAddress or "")[:10] or None,
            "present" if payload.userAccessToken else "missing",
            payload.functionName,
        )

        try:
            user_address = validate_request(payload.userAddress, payload.functionName)
        except RequestValidationError as e:
            return _failure(400, str(e))

        flow = SponsorshipFlow(
            custody=request.app.state.custody,
            user_address=user_address,
            user_token=payload.userAccessToken,
        )
        try:
            outcome = await asyncio.wait_for(
                asyncio.to_thread(flow.run), timeout=request.app.state.settings.request_timeout_sec
            )
        except SponsorshipError as e:
            return _failure(500, str(e), details=e.details, sponsored=False, stage=e.stage)
        except asyncio.TimeoutError:
            # The worker thread is not cancelled; a submission may still land.
            stage = flow.stage.value
            logger.error("Sponsor: timed out during stage %s for %s", stage, user_address[:10])
            return _failure(
                500,
                "Sponsorship timed out",
                details=f"TimeoutError: no result after {request.app.state.settings.request_timeout_sec}s",
                sponsored=False,
                stage=stage,
            )

        logger.info("Sponsor: stage timings ms=%s", {k: round(v, 1) for k, v in outcome.stage_ms.items()})
        return SponsorResponse(
            txHash=outcome.result.hash,
            message="Transaction sponsored successfully via custody provider",
            sponsored=outcome.result.sponsored,
            serverWallet=request.app.state.settings.server_wallet_address,
            userWallet=outcome.wallet.address,
            privyTransactionId=outcome.result.provider_transaction_id,
        )

    logger.info("Initializing sponsorship gateway (rpc=%s cors=%s)", settings.rpc_provider, settings.cors_origin)
    return app
