"""
Sponsorship gateway: relays gas-sponsored contract calls for embedded wallets
through the custody provider and exposes a read-only view of the contract.
"""

__version__ = "0.1.0"
