"""
EVM Adapter Schema Models

Pydantic models for the two permit artifacts and the results of checking and
submitting them. All classes inherit from the base schema hierarchy in
``schemas.bases``.

Field types:
    - Uint256: arbitrary-precision int; parses from int, decimal string or
      0x-hex string, serializes to a decimal string in JSON.
    - Address: checksummed 20-byte hex address.
    - SignatureWord: r or s as a 0x-prefixed, lowercase, 64-char hex string.

Signature classes:
    - EVMECDSASignature: v/r/s signature of an EIP-712 digest.

Permit classes (flat interchange artifacts):
    - DepositPermit: signed ERC-2612 ``Permit`` for ``TokenBank.permitDeposit``.
    - PurchasePermit: signed ``PermitBuy`` for ``NFTMarket.permitBuy``.

Result / confirmation classes:
    - EVMVerificationResult: outcome of a pre-submission check.
    - EVMTransactionConfirmation: outcome of a submission.

Supporting classes:
    - Listing: one marketplace listing, built by ``zip_listings``.
"""

import json
import re
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Sequence, Type, Union

from eth_keys.constants import SECPK1_N
from eth_utils import is_address, to_checksum_address
from pydantic import AfterValidator, BeforeValidator, ConfigDict, Field, PlainSerializer, ValidationError

from ...engine.exceptions import (
    InconsistentListingsError,
    MalformedArtifactError,
    PermitAlreadyConsumedError,
    PermitExpiredError,
    PermitVerificationError,
    StalePermitNonceError,
    UnauthorizedSignerError,
)
from ...schemas.bases import (
    BasePermit,
    BaseSignature,
    BaseTransactionConfirmation,
    BaseVerificationResult,
    CanonicalModel,
    VerificationStatus,
)
from .constants import UINT256_MAX
from .standards import (
    EIP712Domain,
    PermitBuyMessage,
    PermitBuyTypedData,
    PermitMessage,
    PermitTypedData,
    build_permit_buy_message,
    build_permit_message,
)


# ----------------------------------------------------------------------
# Field types
# ----------------------------------------------------------------------

_DECIMAL_RE = re.compile(r"[0-9]+")
_HEX_RE = re.compile(r"0[xX][0-9a-fA-F]+")
_WORD_RE = re.compile(r"0x[0-9a-f]{64}")

# ECDSA.recover in the consuming contracts rejects s in the upper half of the curve order.
_SECP256K1_HALF_N = SECPK1_N // 2


def _coerce_uint(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("booleans are not integers")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if _DECIMAL_RE.fullmatch(text):
            return int(text)
        if _HEX_RE.fullmatch(text):
            return int(text, 16)
        raise ValueError(f"not a decimal or 0x-hex integer: {value!r}")
    raise ValueError(f"expected an integer or integer string, got {type(value).__name__}")


def _check_uint256(value: int) -> int:
    if value < 0 or value > UINT256_MAX:
        raise ValueError("value is outside the uint256 range")
    return value


def _check_address(value: str) -> str:
    if not is_address(value):
        raise ValueError(f"not a 20-byte hex address: {value!r}")
    return to_checksum_address(value)


def _coerce_word(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 32:
            raise ValueError(f"expected 32 bytes, got {len(value)}")
        return "0x" + bytes(value).hex()
    if isinstance(value, str):
        text = value.strip().lower()
        return text if text.startswith("0x") else "0x" + text
    raise ValueError(f"expected a hex string, got {type(value).__name__}")


def _check_word(value: str) -> str:
    if not _WORD_RE.fullmatch(value):
        raise ValueError("expected 32 bytes as 0x + 64 hex characters")
    if int(value, 16) == 0:
        raise ValueError("signature component must not be zero")
    return value


def _check_low_s(value: str) -> str:
    if int(value, 16) > _SECP256K1_HALF_N:
        raise ValueError("s is in the upper half of the curve order (malleable signature)")
    return value


def _check_recovery_id(value: int) -> int:
    if value not in (27, 28):
        raise ValueError(f"recovery id must be 27 or 28, got {value}")
    return value


Uint256 = Annotated[
    int,
    BeforeValidator(_coerce_uint),
    AfterValidator(_check_uint256),
    PlainSerializer(str, return_type=str, when_used="json"),
]

Address = Annotated[str, AfterValidator(_check_address)]

SignatureWord = Annotated[str, BeforeValidator(_coerce_word), AfterValidator(_check_word)]

LowSWord = Annotated[
    str, BeforeValidator(_coerce_word), AfterValidator(_check_word), AfterValidator(_check_low_s)
]

RecoveryId = Annotated[int, BeforeValidator(_coerce_uint), AfterValidator(_check_recovery_id)]


# ----------------------------------------------------------------------
# Signature
# ----------------------------------------------------------------------

class EVMECDSASignature(BaseSignature):
    """
    EVM ECDSA signature (v, r, s) over an EIP-712 digest.

    Attributes:
        signature_type: Always ``"EIP712"``.
        v: ECDSA recovery ID (27 or 28).
        r: r component, 0x + 64 hex chars, non-zero.
        s: s component, 0x + 64 hex chars, non-zero, at most n/2 (low-s).

    Example::

        sig = EVMECDSASignature(v=27, r="0x" + "a" * 64, s="0x" + "3" * 64)
        sig.to_packed_hex()  # r || s || v
    """

    signature_type: Literal["EIP712"] = Field(default="EIP712", description="Signing standard")
    v: RecoveryId = Field(..., description="ECDSA recovery ID (27 or 28)")
    r: SignatureWord = Field(..., description="Signature r component (32 bytes hex)")
    s: LowSWord = Field(..., description="Signature s component (32 bytes hex, at most n/2)")

    def validate_format(self) -> bool:
        """
        Re-check v/r/s components.

        Construction already validates them; this exists for instances built
        with ``model_construct``.

        Raises:
            ValueError: Descriptive message on the first failed check.
        """
        _check_recovery_id(self.v)
        for name, val in [("r", self.r), ("s", self.s)]:
            try:
                _check_word(val)
            except ValueError as e:
                raise ValueError(f"Invalid {name}: {e}") from e
        _check_low_s(self.s)
        return True

    def to_bytes(self) -> bytes:
        """Encode as the 65-byte ``r || s || v`` layout."""
        self.validate_format()
        return bytes.fromhex(self.r[2:]) + bytes.fromhex(self.s[2:]) + bytes([self.v])

    def to_packed_hex(self) -> str:
        """
        Encode v/r/s into a packed 65-byte hex string (``r || s || v``).

        Returns:
            0x-prefixed 132-character hex string.
        """
        return "0x" + self.to_bytes().hex()


# ----------------------------------------------------------------------
# Permit artifacts
# ----------------------------------------------------------------------

class SignedPermit(BasePermit):
    """
    Shared behaviour of the flat permit artifacts.

    The artifact carries the signed message fields plus ``v``, ``r``, ``s``
    and nothing else; unknown fields are rejected. uint256 fields serialize
    to decimal strings so they survive JSON consumers that use doubles.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    v: RecoveryId = Field(..., description="ECDSA recovery ID (27 or 28)")
    r: SignatureWord = Field(..., description="Signature r component")
    s: LowSWord = Field(..., description="Signature s component, at most n/2")

    @property
    def signature(self) -> EVMECDSASignature:
        return EVMECDSASignature(v=self.v, r=self.r, s=self.s)

    def validate_structure(self) -> bool:
        return self.signature.validate_format()

    def to_artifact_json(self) -> str:
        """Serialize to the interchange JSON text (sorted keys, compact)."""
        return self.to_canonical_json()

    def to_artifact(self) -> Dict[str, Any]:
        """Serialize to a JSON-ready dict (uint256 values as decimal strings)."""
        return self.model_dump(mode="json")

    @classmethod
    def from_artifact(cls, artifact: Union[str, bytes, Dict[str, Any]]):
        """
        Parse an artifact from JSON text or a decoded dict.

        Raises:
            MalformedArtifactError: If the text is not JSON, a field is missing
                or unknown, a value has the wrong type or range, or the
                signature components are malformed.
        """
        if isinstance(artifact, (str, bytes)):
            try:
                artifact = json.loads(artifact)
            except ValueError as e:
                raise MalformedArtifactError(f"{cls.permit_type} permit is not valid JSON: {e}") from e
        if not isinstance(artifact, dict):
            raise MalformedArtifactError(
                f"{cls.permit_type} permit must be a JSON object, got {type(artifact).__name__}"
            )
        try:
            return cls.model_validate(artifact)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in e.errors()
            )
            raise MalformedArtifactError(f"Malformed {cls.permit_type} permit: {problems}") from e


class DepositPermit(SignedPermit):
    """
    Signed ERC-2612 ``Permit`` for ``TokenBank.permitDeposit``.

    Replay protection is the owner's nonce on the token: the permit is valid
    only while ``nonce`` equals the on-chain nonce, and using it increments
    that nonce.

    Attributes:
        owner: Token holder that signed the permit.
        spender: TokenBank address.
        value: Amount in smallest units.
        nonce: Owner nonce the signature commits to.
        deadline: Unix timestamp; rejected once the chain clock passes it.
    """

    permit_type: ClassVar[str] = "deposit"

    owner: Address = Field(..., description="Token owner address")
    spender: Address = Field(..., description="Authorized spender (TokenBank)")
    value: Uint256 = Field(..., description="Amount in the token's smallest unit")
    nonce: Uint256 = Field(..., description="Owner nonce on the token contract")
    deadline: Uint256 = Field(..., description="Unix timestamp after which the permit expires")

    def to_message(self) -> PermitMessage:
        return build_permit_message(self.owner, self.spender, self.value, self.nonce, self.deadline)

    def to_typed_data(self, domain: EIP712Domain) -> PermitTypedData:
        return PermitTypedData(domain=domain, message=self.to_message())


class PurchasePermit(SignedPermit):
    """
    Signed ``PermitBuy`` for ``NFTMarket.permitBuy``.

    Signed by a whitelisted issuer, not by the buyer. There is no nonce; the
    market records each permit as used after the first purchase.

    Attributes:
        buyer: Address allowed to buy; must be the submitting account.
        tokenId: Token id of the listing.
        deadline: Unix timestamp; rejected once the chain clock passes it.
    """

    permit_type: ClassVar[str] = "purchase"

    buyer: Address = Field(..., description="Buyer address")
    tokenId: Uint256 = Field(..., description="Listed token id")
    deadline: Uint256 = Field(..., description="Unix timestamp after which the permit expires")

    def to_message(self) -> PermitBuyMessage:
        return build_permit_buy_message(self.buyer, self.tokenId, self.deadline)

    def to_typed_data(self, domain: EIP712Domain) -> PermitBuyTypedData:
        return PermitBuyTypedData(domain=domain, message=self.to_message())


PermitArtifact = Union[DepositPermit, PurchasePermit]


# ----------------------------------------------------------------------
# Listings
# ----------------------------------------------------------------------

class Listing(CanonicalModel):
    """One NFTMarket listing."""

    tokenId: Uint256
    seller: Address
    price: Uint256
    active: bool


def zip_listings(
    token_ids: Sequence[int],
    sellers: Sequence[str],
    prices: Sequence[int],
    actives: Sequence[bool],
) -> List[Listing]:
    """
    Build listing records from the four parallel arrays of ``getAllListings``.

    Raises:
        InconsistentListingsError: If the sequences differ in length.
    """
    lengths = {len(token_ids), len(sellers), len(prices), len(actives)}
    if len(lengths) != 1:
        raise InconsistentListingsError(
            f"getAllListings returned sequences of unequal length: "
            f"tokenIds={len(token_ids)} sellers={len(sellers)} "
            f"prices={len(prices)} actives={len(actives)}"
        )
    return [
        Listing(tokenId=token_id, seller=seller, price=price, active=active)
        for token_id, seller, price, active in zip(token_ids, sellers, prices, actives)
    ]


# ----------------------------------------------------------------------
# Results
# ----------------------------------------------------------------------

_STATUS_ERRORS: Dict[VerificationStatus, Type[PermitVerificationError]] = {
    VerificationStatus.EXPIRED: PermitExpiredError,
    VerificationStatus.STALE_NONCE: StalePermitNonceError,
    VerificationStatus.ALREADY_CONSUMED: PermitAlreadyConsumedError,
    VerificationStatus.UNAUTHORIZED_SIGNER: UnauthorizedSignerError,
}


class EVMVerificationResult(BaseVerificationResult):
    """
    Outcome of checking a permit before submission.

    Attributes:
        verification_type: Always ``"evm"``.
        permit_type:       ``"deposit"`` or ``"purchase"``.
        signer:            Address recovered from the signature, when recovery succeeded.
        expected_signer:   Address the signature had to recover to, when known.
        digest:            0x-hex EIP-712 digest that was checked.
        blockchain_state:  Optional on-chain snapshot (nonce, block time, whitelist).
    """

    verification_type: Literal["evm"] = Field(default="evm", description="Verification type identifier")
    permit_type: Optional[str] = Field(None, description="Permit kind: deposit or purchase")
    signer: Optional[str] = Field(None, description="Recovered signer address")
    expected_signer: Optional[str] = Field(None, description="Address the signature must recover to")
    digest: Optional[str] = Field(None, description="EIP-712 digest (0x-hex)")
    blockchain_state: Optional[Dict[str, Any]] = Field(None, description="On-chain state snapshot")

    def raise_for_status(self) -> "EVMVerificationResult":
        """
        Raise the matching PermitVerificationError when the check failed.

        Returns:
            self, for chaining, when the check succeeded.
        """
        if self.is_success():
            return self
        error_cls = _STATUS_ERRORS.get(self.status, PermitVerificationError)
        raise error_cls(self.message)


class EVMTransactionConfirmation(BaseTransactionConfirmation):
    """
    EVM-Specific Transaction Confirmation.

    Returned by the gateway's ``permit_deposit`` / ``permit_buy``. A
    ``SUCCESS`` status is only ever set from a mined receipt with status 1.
    When the contract rejects the permit, ``rejection`` classifies why.

    Attributes:
        tx_hash: Transaction hash; None when rejected before broadcast
        block_number: Block number containing transaction
        gas_used: Actual gas consumed by transaction
        from_address: Transaction sender address
        to_address: Contract address
        rejection: Classified reason when the contract reverted

    Example:
        confirmation = await gateway.permit_buy(permit)
        if confirmation.is_success():
            print(f"Purchase confirmed: {confirmation.tx_hash}")
        elif confirmation.rejection == VerificationStatus.ALREADY_CONSUMED:
            print("Permit was already used")
    """

    confirmation_type: Literal["evm"] = Field(default="evm", description="Confirmation type identifier")
    tx_hash: Optional[str] = Field(None, description="Transaction hash (0x-prefixed hex string)")
    block_number: Optional[int] = Field(None, ge=0, description="Block number containing transaction")
    gas_used: Optional[int] = Field(None, ge=0, description="Actual gas consumed by transaction")
    from_address: Optional[str] = Field(None, description="Transaction sender address")
    to_address: Optional[str] = Field(None, description="Contract address")
    rejection: Optional[VerificationStatus] = Field(None, description="Classified revert reason")
