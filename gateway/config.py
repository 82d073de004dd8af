import os
from dataclasses import dataclass
from typing import Optional


DEFAULT_RPC_PROVIDER = "https://api.privy.io/v1/rpc/base-sepolia"
DEFAULT_CORS_ORIGIN = "http://localhost:5173"
DEFAULT_PRIVY_API_URL = "https://api.privy.io"
DEFAULT_PRIVY_AUTH_URL = "https://auth.privy.io"
DEFAULT_PORT = 3001


def _env(*names: str, default: str = "") -> str:
    for name in names:
        value = os.getenv(name)
        if value is not None and value.strip():
            return value.strip()
    return default


@dataclass(frozen=True)
class Settings:
    privy_app_id: str
    privy_app_secret: str
    rpc_provider: str = DEFAULT_RPC_PROVIDER
    cors_origin: str = DEFAULT_CORS_ORIGIN
    port: int = DEFAULT_PORT
    privy_api_url: str = DEFAULT_PRIVY_API_URL
    privy_auth_url: str = DEFAULT_PRIVY_AUTH_URL
    provider_timeout_sec: float = 15.0
    rpc_timeout_sec: float = 10.0
    # 1 means a single attempt (no retry) for idempotent provider/RPC calls
    provider_max_attempts: int = 1
    retry_backoff_sec: float = 0.5
    server_wallet_address: Optional[str] = None
    # bounds a whole request, across every provider/RPC call it makes
    request_timeout_sec: float = 60.0
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        # The VITE_ names are shared with the browser build's .env file.
        app_id = _env("PRIVY_APP_ID", "VITE_PRIVY_APP_ID")
        if not app_id:
            raise ValueError("PRIVY_APP_ID environment variable is required")
        app_secret = _env("PRIVY_APP_SECRET", "VITE_PRIVY_APP_SECRET")
        if not app_secret:
            raise ValueError("PRIVY_APP_SECRET environment variable is required")

        max_attempts = int(_env("PROVIDER_MAX_ATTEMPTS", default="1"))
        if max_attempts < 1:
            raise ValueError("PROVIDER_MAX_ATTEMPTS must be >= 1")

        return cls(
            privy_app_id=app_id,
            privy_app_secret=app_secret,
            rpc_provider=_env("RPC_PROVIDER", "VITE_RPC_PROVIDER", default=DEFAULT_RPC_PROVIDER),
            cors_origin=_env("CORS_ORIGIN", default=DEFAULT_CORS_ORIGIN),
            port=int(_env("PORT", default=str(DEFAULT_PORT))),
            privy_api_url=_env("PRIVY_API_URL", default=DEFAULT_PRIVY_API_URL).rstrip("/"),
            privy_auth_url=_env("PRIVY_AUTH_URL", default=DEFAULT_PRIVY_AUTH_URL).rstrip("/"),
            provider_timeout_sec=float(_env("PROVIDER_TIMEOUT_SEC", default="15")),
            rpc_timeout_sec=float(_env("RPC_TIMEOUT_SEC", default="10")),
            provider_max_attempts=max_attempts,
            retry_backoff_sec=float(_env("RETRY_BACKOFF_SEC", default="0.5")),
            server_wallet_address=_env("SERVER_WALLET_ADDRESS") or None,
            request_timeout_sec=float(_env("REQUEST_TIMEOUT_SEC", default="60")),
            log_level=_env("GATEWAY_LOG_LEVEL", "LOG_LEVEL", default="INFO").upper(),
            log_file=_env("GATEWAY_LOG_FILE") or None,
        )
