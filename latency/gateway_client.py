import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class GatewayRequestError(Exception):
    """The gateway answered with `success: false` or could not be reached."""


class GatewayClient:
    """
    Client for the sponsorship gateway's HTTP API.
    """

    def __init__(self, gateway_url: str, timeout: float = 60.0, session: Optional[requests.Session] = None):
        if not gateway_url:
            raise ValueError("Gateway URL cannot be empty")
        self.gateway_url = gateway_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _json(self, response: requests.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            raise GatewayRequestError(
                f"Gateway returned non-JSON response (HTTP {response.status_code})"
            )
        if not isinstance(data, dict):
            raise GatewayRequestError("Gateway returned an unexpected payload")
        return data

    def sponsor_transaction(
        self, user_address: Optional[str], access_token: Optional[str], function_name: str = "increment"
    ) -> Dict[str, Any]:
        """
        Ask the gateway to relay a sponsored call. Returns the success payload;
        any failure (transport, HTTP status, `success: false`) raises GatewayRequestError.
        """
        payload = {
            "userAddress": user_address,
            "userAccessToken": access_token,
            "functionName": function_name,
        }
        try:
            response = self.session.post(
                f"{self.gateway_url}/api/sponsor-transaction", json=payload, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise GatewayRequestError(str(e)) from e

        data = self._json(response)
        if not data.get("success"):
            raise GatewayRequestError(data.get("error") or "Backend transaction failed")
        logger.debug("Gateway response: tx=%s sponsored=%s", data.get("txHash"), data.get("sponsored"))
        return data

    def get_contract_count(self) -> Optional[str]:
        try:
            response = self.session.get(f"{self.gateway_url}/api/contract-count", timeout=self.timeout)
            data = self._json(response)
        except (requests.exceptions.RequestException, GatewayRequestError) as e:
            logger.warning(f"Failed to read contract count: {e}")
            return None
        if not data.get("success"):
            logger.warning(f"Failed to read contract count: {data.get('error')}")
            return None
        return data.get("count")
