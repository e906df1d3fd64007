from .bases import CanonicalModel, BaseSignature, BasePermit, VerificationStatus, BaseVerificationResult, TransactionStatus, BaseTransactionConfirmation

__all__ = [
    "CanonicalModel",
    "BaseSignature",
    "BasePermit",
    "VerificationStatus",
    "BaseVerificationResult",
    "TransactionStatus",
    "BaseTransactionConfirmation",
]
