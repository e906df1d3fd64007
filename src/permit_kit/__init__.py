"""
permit-kit

Off-chain issuing, checking and submission of EIP-712 permits: ERC-2612
deposit permits for the HTToken/TokenBank pair and whitelisted-issuer
purchase permits for the NFTMarket.
"""

from .adapters import (
    EVMPermitGateway,
    PermitIssuer,
    LocalAccountSigner,
    DepositPermit,
    PurchasePermit,
)
from .adapters.evm import PermitContracts
from .engine.exceptions import PermitKitError

__version__ = "0.1.0"

__all__ = [
    "EVMPermitGateway",
    "PermitIssuer",
    "LocalAccountSigner",
    "DepositPermit",
    "PurchasePermit",
    "PermitContracts",
    "PermitKitError",
]
