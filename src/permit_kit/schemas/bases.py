"""
Base Schema Models for permit-kit

Chain-agnostic parents of the EVM permit models: the canonical-JSON base,
the signature and permit-artifact abstractions, and the two outcome records
(pre-submission verification and on-chain confirmation) with their status
enums.
"""

import json
from typing import ClassVar, Optional, Dict, Any
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CanonicalModel(BaseModel):
    """
    Pydantic base model with a deterministic JSON form.

    Keys are sorted and separators compact, after field serializers have run
    (uint256 values are already decimal strings at that point), so two equal
    permits always serialize to the same bytes.
    """

    model_config = ConfigDict(populate_by_name=True)

    def to_canonical_json(self) -> str:
        return json.dumps(
            self.model_dump(mode="json", by_alias=True),
            separators=(",", ":"),
            sort_keys=True,
            ensure_ascii=False,
        )


class BaseSignature(CanonicalModel, ABC):
    """Signature components; ``signature_type`` names the signing standard."""

    signature_type: str = Field(..., description="Signing standard (e.g., EIP712)")

    @abstractmethod
    def validate_format(self) -> bool:
        """Return True for well-formed components, raise ValueError otherwise."""


class BasePermit(CanonicalModel, ABC):
    """
    A signed authorization that someone other than the signer submits.

    Subclasses declare only the wire fields of their artifact; the permit
    kind is a class constant so it never appears in the interchange JSON.
    """

    permit_type: ClassVar[str] = "permit"

    @abstractmethod
    def validate_structure(self) -> bool:
        """Return True for a structurally complete permit, raise ValueError otherwise."""

    @abstractmethod
    def to_message(self) -> Any:
        """Return the typed-data message this permit's signature covers."""


class VerificationStatus(str, Enum):
    """
    Outcome of checking a permit against the consuming contract's rules.

    The rejection values double as the classification of contract reverts.

    Attributes:
        SUCCESS: Structure, deadline, replay state and signer all check out
        INVALID_SIGNATURE: Signature does not recover to the expected signer
        EXPIRED: Deadline is earlier than the current time
        STALE_NONCE: Deposit permit nonce differs from the token's nonce
        ALREADY_CONSUMED: Purchase permit has already been used
        UNAUTHORIZED_SIGNER: Purchase permit signer is not whitelisted
        MALFORMED: Fields fail structural validation
        BLOCKCHAIN_ERROR: Chain state needed for the check could not be read
    """
    SUCCESS = "success"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    STALE_NONCE = "stale_nonce"
    ALREADY_CONSUMED = "already_consumed"
    UNAUTHORIZED_SIGNER = "unauthorized_signer"
    MALFORMED = "malformed"
    BLOCKCHAIN_ERROR = "blockchain_error"


class BaseVerificationResult(CanonicalModel, ABC):
    """
    Result of an advisory pre-submission check.

    Verifiers return this instead of raising, so a rejected permit is
    ordinary data the caller can inspect or log.
    """

    verification_type: str = Field(..., description="Chain family (e.g., evm)")
    status: VerificationStatus = Field(..., description="Check outcome")
    is_valid: bool = Field(..., description="Whether the permit would be accepted")
    message: str = Field(..., description="Human-readable outcome")
    error_details: Optional[Dict[str, Any]] = Field(None, description="Values behind a rejection")
    verified_at: datetime = Field(default_factory=datetime.now, description="When the check ran")

    def is_success(self) -> bool:
        return self.is_valid and self.status == VerificationStatus.SUCCESS

    def get_error_message(self) -> Optional[str]:
        """
        Rejection message with its details, or None for an accepted permit.

        Example:
            result = verify_deposit_permit(permit, domain=domain)
            if not result.is_success():
                logger.info(result.get_error_message())
        """
        if self.is_success():
            return None

        error_msg = f"Verification failed: {self.message}"
        if self.error_details:
            error_msg += f"\nDetails: {json.dumps(self.error_details, indent=2, default=str)}"
        return error_msg


class TransactionStatus(str, Enum):
    """
    State of a submitted permit transaction.

    Attributes:
        SUCCESS: Mined with receipt status 1
        FAILED: Rejected at gas estimation or reverted on-chain
        PENDING: Broadcast, receipt not awaited
        TIMEOUT: No receipt within the polling budget
        NETWORK_ERROR: Node unreachable or refused the transaction
        INVALID_TRANSACTION: Submitting account is not the permit's sender
    """
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    INVALID_TRANSACTION = "invalid_transaction"


class BaseTransactionConfirmation(CanonicalModel, ABC):
    """What is known about a permit transaction after submission."""

    confirmation_type: str = Field(..., description="Chain family (e.g., evm)")
    status: TransactionStatus = Field(..., description="Submission outcome")
    execution_time: Optional[float] = Field(None, ge=0, description="Seconds spent waiting for the receipt")
    confirmations: int = Field(default=0, ge=0, description="Blocks mined on top of the receipt's block")
    error_message: Optional[str] = Field(None, description="Why the transaction did not succeed")
    created_at: datetime = Field(default_factory=datetime.now, description="When the outcome was recorded")

    def is_success(self) -> bool:
        """True only for a mined, non-reverted transaction."""
        return self.status == TransactionStatus.SUCCESS
