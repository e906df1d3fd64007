from .adapter import EVMPermitGateway
from .constants import PermitContracts, amount_to_value, value_to_amount
from .issuers import PermitIssuer
from .schemas import (
    EVMECDSASignature,
    DepositPermit,
    PurchasePermit,
    Listing,
    EVMVerificationResult,
    EVMTransactionConfirmation,
)
from .signatures import (
    LocalAccountSigner,
    decompose_signature,
    normalize_recovery_id,
    compose_signature,
)
from .standards import (
    EIP712Domain,
    build_domain,
    build_permit_message,
    build_permit_buy_message,
    domain_separator,
    hash_typed_data,
)
from .verifies import (
    recover_typed_data_signer,
    verify_deposit_permit,
    verify_purchase_permit,
    classify_revert,
)

__all__ = [
    "EVMPermitGateway",
    "PermitContracts",
    "amount_to_value",
    "value_to_amount",
    "PermitIssuer",
    "EVMECDSASignature",
    "DepositPermit",
    "PurchasePermit",
    "Listing",
    "EVMVerificationResult",
    "EVMTransactionConfirmation",
    "LocalAccountSigner",
    "decompose_signature",
    "normalize_recovery_id",
    "compose_signature",
    "EIP712Domain",
    "build_domain",
    "build_permit_message",
    "build_permit_buy_message",
    "domain_separator",
    "hash_typed_data",
    "recover_typed_data_signer",
    "verify_deposit_permit",
    "verify_purchase_permit",
    "classify_revert",
]
