import logging
import time
from typing import Optional

from web3 import Web3

from gateway.contract import TEST_CONTRACT_ABI, TEST_CONTRACT_ADDRESS
from gateway.errors import ChainReadError
from gateway.retry import NO_RETRY, RetryPolicy

logger = logging.getLogger(__name__)


class ChainReader:
    """Read-only access to the counter contract over a JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        contract_address: str = TEST_CONTRACT_ADDRESS,
        abi=None,
        timeout: float = 10.0,
        retry_policy: RetryPolicy = NO_RETRY,
        w3: Optional[Web3] = None,
    ):
        self.rpc_url = rpc_url
        self.retry_policy = retry_policy
        self.w3 = w3 or Web3(
            Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout})
        )
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.contract = self.w3.eth.contract(
            address=self.contract_address, abi=abi or TEST_CONTRACT_ABI
        )

    def get_count(self) -> int:
        start = time.perf_counter()
        try:
            value = self.retry_policy.call(
                lambda: self.contract.functions.getCount().call(),
                label="getCount",
            )
        except Exception as e:
            logger.error("Chain: getCount failed %s: %s", type(e).__name__, e)
            raise ChainReadError(str(e) or type(e).__name__) from e

        try:
            count = int(value)
        except (TypeError, ValueError) as e:
            raise ChainReadError(f"Could not decode getCount result: {value!r}") from e

        logger.debug(
            "Chain: getCount=%s ms=%.1f", count, (time.perf_counter() - start) * 1000.0
        )
        return count
