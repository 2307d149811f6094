"""
External collaborator clients.

- JupiterClient: venue (quotes + unsigned swap transactions)
- HeliusClient: balance oracle and direct submission channel
- JitoClient: priority bundle channel
- Wallet: transaction signer
"""

from swapcache.clients.helius import HeliusClient
from swapcache.clients.jito import JitoClient
from swapcache.clients.jupiter import JupiterClient
from swapcache.clients.protocols import BalanceOracle, DirectChannel, PriorityChannel, Signer, VenueClient
from swapcache.clients.wallet import Wallet

__all__ = [
    "HeliusClient",
    "JitoClient",
    "JupiterClient",
    "Wallet",
    "BalanceOracle",
    "DirectChannel",
    "PriorityChannel",
    "Signer",
    "VenueClient",
]
