from dataclasses import dataclass
from typing import Any, Dict


TEST_CONTRACT_ADDRESS = "0xDc89dA1e7Ca49b7CcDC8fDB897A32d564Abb8E42"
TEST_CONTRACT_ABI = [
    {
        "inputs": [],
        "name": "increment",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getCount",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]

# Base Sepolia
CHAIN_ID = 84532
CAIP2 = f"eip155:{CHAIN_ID}"

# keccak("increment()")[:4], no arguments
INCREMENT_SELECTOR = "0xd09de08a"
SUPPORTED_FUNCTIONS = {"increment": INCREMENT_SELECTOR}


@dataclass(frozen=True)
class SponsoredTransaction:
    to: str
    data: str
    value: str = "0x0"
    chain_id: int = CHAIN_ID

    def as_rpc_params(self) -> Dict[str, Any]:
        return {
            "transaction": {
                "to": self.to,
                "data": self.data,
                "value": self.value,
                "chain_id": self.chain_id,
            }
        }


def build_increment_transaction() -> SponsoredTransaction:
    return SponsoredTransaction(to=TEST_CONTRACT_ADDRESS, data=INCREMENT_SELECTOR)
