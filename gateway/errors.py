from typing import Optional


class GatewayError(Exception):
    """Base class for errors raised by the gateway."""


class RequestValidationError(GatewayError):
    """The client sent a request the gateway refuses to act on (HTTP 400)."""


class ChainReadError(GatewayError):
    """A view call against the chain RPC endpoint failed."""


class CustodyError(GatewayError):
    """The custody provider rejected a call or could not be reached."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class WalletResolutionError(CustodyError):
    pass


class AuthenticationError(CustodyError):
    pass


class SessionExpiredError(AuthenticationError):
    pass


class SubmissionError(CustodyError):
    pass


class SponsorshipError(GatewayError):
    """A sponsorship flow failed at a named stage; `cause` is the original error."""

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(str(cause))
        self.stage = stage
        self.cause = cause

    @property
    def details(self) -> str:
        return f"{type(self.cause).__name__}: {self.cause}"
