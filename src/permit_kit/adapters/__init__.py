from .bases import TypedDataSigner, PermitContractGateway
from .evm import (
    EVMPermitGateway,
    PermitIssuer,
    LocalAccountSigner,
    DepositPermit,
    PurchasePermit,
    EVMVerificationResult,
    EVMTransactionConfirmation,
)

__all__ = [
    "TypedDataSigner",
    "PermitContractGateway",
    "EVMPermitGateway",
    "PermitIssuer",
    "LocalAccountSigner",
    "DepositPermit",
    "PurchasePermit",
    "EVMVerificationResult",
    "EVMTransactionConfirmation",
]
