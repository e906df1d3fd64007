"""
EVM Permit Verification Helpers

Off-chain pre-checks for the two permit kinds. They mirror the rules the
consuming contracts enforce so a caller can reject a doomed permit before
paying for a transaction. The contracts remain authoritative: a permit that
passes here can still be rejected on-chain (for example when the nonce moves
between the check and the submission).

All cryptographic operations are performed in-process using ``eth_account``.
On-chain state (nonce, whitelist, used-flag, block time) is supplied by the
caller; ``EVMPermitGateway.preflight_*`` gathers it from the chain.

Current coverage
----------------
recover_typed_data_signer
    Recover the address that signed EIP-712 typed data.

verify_deposit_permit
    Deadline, owner nonce and owner signature of a ``DepositPermit``.

verify_purchase_permit
    Deadline, used-flag and whitelisted issuer signature of a
    ``PurchasePermit``.

classify_revert
    Map a contract revert reason to a ``VerificationStatus``.
"""

import logging
import time
from typing import Any, Callable, Collection, Dict, Optional, Union

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_keys.exceptions import BadSignature, ValidationError as KeyValidationError
from eth_utils import function_signature_to_4byte_selector, is_address, to_checksum_address

from ...schemas.bases import VerificationStatus
from .schemas import DepositPermit, EVMVerificationResult, PurchasePermit
from .standards import EIP712Domain, TypedData, hash_typed_data

logger = logging.getLogger(__name__)

WhitelistCheck = Union[Callable[[str], bool], Collection[str]]

# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _to_int(value: Union[int, str, bytes]) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, bytearray)):
        return int.from_bytes(value, "big")
    return int(value, 16)


def _now(current_time: Optional[int]) -> int:
    return int(time.time()) if current_time is None else int(current_time)


def _whitelist_predicate(is_whitelisted: WhitelistCheck) -> Callable[[str], bool]:
    if callable(is_whitelisted):
        return is_whitelisted
    allowed = {to_checksum_address(addr) for addr in is_whitelisted if is_address(addr)}
    return lambda address: address in allowed


def recover_typed_data_signer(
    typed_data: TypedData,
    v: int,
    r: Union[int, str, bytes],
    s: Union[int, str, bytes],
) -> str:
    """
    Recover the signer of EIP-712 typed data from its (v, r, s) components.

    Args:
        typed_data: Typed-data container or its ``to_dict()`` form.
        v: Recovery id (27/28).
        r, s: Signature components as int, 0x-hex string or 32 bytes.

    Returns:
        str: Checksummed address of the signer.

    Raises:
        ValueError: If the typed data cannot be encoded or the signature does
            not recover to a public key.
    """
    full_message = typed_data if isinstance(typed_data, dict) else typed_data.to_dict()
    signable = encode_typed_data(full_message=full_message)
    try:
        return Account.recover_message(signable, vrs=(v, _to_int(r), _to_int(s)))
    except (BadSignature, KeyValidationError) as e:
        raise ValueError(f"Signature does not recover: {e}") from e


# ---------------------------------------------------------------------------
# Deposit permits (ERC-2612 Permit consumed by TokenBank.permitDeposit)
# ---------------------------------------------------------------------------

def verify_deposit_permit(
    permit: DepositPermit,
    *,
    domain: EIP712Domain,
    on_chain_nonce: Optional[int] = None,
    current_time: Optional[int] = None,
) -> EVMVerificationResult:
    """
    Check a deposit permit the way the token's ``permit`` will.

    Checks, in order:
      1. Structure (signature components well-formed).
      2. ``deadline >= current_time`` (inclusive).
      3. ``nonce == on_chain_nonce`` when the on-chain nonce is supplied.
      4. The signature over ``domain`` recovers to ``owner``.

    Args:
        permit: The artifact to check.
        domain: Token domain (name "HTToken", live chain id, token address).
        on_chain_nonce: ``nonces(owner)`` as read from the token, if known.
        current_time: Reference time (block timestamp); defaults to local time.

    Returns:
        EVMVerificationResult: Never raises for a failed check.
    """
    now = _now(current_time)
    blockchain_state: Dict[str, Any] = {"current_time": now}
    if on_chain_nonce is not None:
        blockchain_state["on_chain_nonce"] = on_chain_nonce

    def _fail(
        status: VerificationStatus,
        message: str,
        error_details: Optional[Dict[str, Any]] = None,
        signer: Optional[str] = None,
        digest: Optional[str] = None,
    ) -> EVMVerificationResult:
        return EVMVerificationResult(
            status=status,
            is_valid=False,
            message=message,
            error_details=error_details,
            permit_type=DepositPermit.permit_type,
            signer=signer,
            expected_signer=permit.owner,
            digest=digest,
            blockchain_state=blockchain_state,
        )

    # ------------------------------------------------------------------
    # 1. Structure
    # ------------------------------------------------------------------
    try:
        permit.validate_structure()
    except ValueError as exc:
        return _fail(VerificationStatus.MALFORMED, f"Malformed permit: {exc}")

    # ------------------------------------------------------------------
    # 2. Deadline
    # ------------------------------------------------------------------
    if permit.deadline < now:
        return _fail(
            VerificationStatus.EXPIRED,
            f"Permit has expired: deadline={permit.deadline} < current_time={now}.",
            {"deadline": permit.deadline, "current_time": now},
        )

    # ------------------------------------------------------------------
    # 3. Nonce
    # ------------------------------------------------------------------
    if on_chain_nonce is not None and permit.nonce != int(on_chain_nonce):
        return _fail(
            VerificationStatus.STALE_NONCE,
            f"Nonce mismatch: permit nonce={permit.nonce}, on-chain nonce={on_chain_nonce}.",
            {"permit_nonce": permit.nonce, "on_chain_nonce": on_chain_nonce},
        )

    # ------------------------------------------------------------------
    # 4. Signature
    # ------------------------------------------------------------------
    typed_data = permit.to_typed_data(domain).to_dict()
    digest = "0x" + hash_typed_data(typed_data).hex()
    try:
        signer = recover_typed_data_signer(typed_data, permit.v, permit.r, permit.s)
    except ValueError as exc:
        return _fail(VerificationStatus.INVALID_SIGNATURE, f"Signature recovery failed: {exc}", digest=digest)

    if signer != permit.owner:
        return _fail(
            VerificationStatus.INVALID_SIGNATURE,
            "Signature invalid: signer does not match owner.",
            {"expected": permit.owner, "recovered": signer},
            signer=signer,
            digest=digest,
        )

    return EVMVerificationResult(
        status=VerificationStatus.SUCCESS,
        is_valid=True,
        message="Deposit permit is valid.",
        permit_type=DepositPermit.permit_type,
        signer=signer,
        expected_signer=permit.owner,
        digest=digest,
        blockchain_state=blockchain_state,
    )


# ---------------------------------------------------------------------------
# Purchase permits (PermitBuy consumed by NFTMarket.permitBuy)
# ---------------------------------------------------------------------------

def verify_purchase_permit(
    permit: PurchasePermit,
    *,
    domain: EIP712Domain,
    is_whitelisted: Optional[WhitelistCheck] = None,
    consumed: Optional[bool] = None,
    current_time: Optional[int] = None,
) -> EVMVerificationResult:
    """
    Check a purchase permit the way the market's ``permitBuy`` will.

    The signer is the whitelisted issuer, not the buyer; the buyer is only
    a field of the message.

    Checks, in order:
      1. Structure.
      2. ``deadline >= current_time`` (inclusive).
      3. Not already consumed, when the used-flag is known.
      4. The signature over ``domain`` recovers to an address.
      5. That address is whitelisted, when a predicate or address set is given.

    Args:
        permit: The artifact to check.
        domain: Market domain (name "NFTMarket", live chain id, market address).
        is_whitelisted: Callable ``address -> bool`` or a collection of
            whitelisted addresses.
        consumed: Whether the market already marked this permit as used.
        current_time: Reference time (block timestamp); defaults to local time.

    Returns:
        EVMVerificationResult: Never raises for a failed check.
    """
    now = _now(current_time)
    blockchain_state: Dict[str, Any] = {"current_time": now}
    if consumed is not None:
        blockchain_state["consumed"] = consumed

    def _fail(
        status: VerificationStatus,
        message: str,
        error_details: Optional[Dict[str, Any]] = None,
        signer: Optional[str] = None,
        digest: Optional[str] = None,
    ) -> EVMVerificationResult:
        return EVMVerificationResult(
            status=status,
            is_valid=False,
            message=message,
            error_details=error_details,
            permit_type=PurchasePermit.permit_type,
            signer=signer,
            digest=digest,
            blockchain_state=blockchain_state,
        )

    try:
        permit.validate_structure()
    except ValueError as exc:
        return _fail(VerificationStatus.MALFORMED, f"Malformed permit: {exc}")

    if permit.deadline < now:
        return _fail(
            VerificationStatus.EXPIRED,
            f"Permit has expired: deadline={permit.deadline} < current_time={now}.",
            {"deadline": permit.deadline, "current_time": now},
        )

    if consumed:
        return _fail(
            VerificationStatus.ALREADY_CONSUMED,
            f"Purchase permit for token {permit.tokenId} has already been used.",
            {"buyer": permit.buyer, "tokenId": permit.tokenId, "deadline": permit.deadline},
        )

    typed_data = permit.to_typed_data(domain).to_dict()
    digest = "0x" + hash_typed_data(typed_data).hex()
    try:
        signer = recover_typed_data_signer(typed_data, permit.v, permit.r, permit.s)
    except ValueError as exc:
        return _fail(VerificationStatus.INVALID_SIGNATURE, f"Signature recovery failed: {exc}", digest=digest)

    if is_whitelisted is not None:
        allowed = _whitelist_predicate(is_whitelisted)
        blockchain_state["signer_whitelisted"] = bool(allowed(signer))
        if not blockchain_state["signer_whitelisted"]:
            return _fail(
                VerificationStatus.UNAUTHORIZED_SIGNER,
                f"Signer {signer} is not whitelisted on the market.",
                {"recovered": signer},
                signer=signer,
                digest=digest,
            )

    return EVMVerificationResult(
        status=VerificationStatus.SUCCESS,
        is_valid=True,
        message="Purchase permit is valid.",
        permit_type=PurchasePermit.permit_type,
        signer=signer,
        digest=digest,
        blockchain_state=blockchain_state,
    )


# ---------------------------------------------------------------------------
# Revert classification
# ---------------------------------------------------------------------------

def _selector(signature: str) -> str:
    return "0x" + function_signature_to_4byte_selector(signature).hex()


# OpenZeppelin ERC20Permit custom errors. The token recomputes the digest with
# its own current nonce, so a stale nonce surfaces as an invalid signer.
ERC2612_EXPIRED_SELECTOR = _selector("ERC2612ExpiredSignature(uint256)")
ERC2612_INVALID_SIGNER_SELECTOR = _selector("ERC2612InvalidSigner(address,address)")

_DEPOSIT_MARKERS = [
    (("erc2612expiredsignature", ERC2612_EXPIRED_SELECTOR, "expired"), VerificationStatus.EXPIRED),
    (("erc2612invalidsigner", ERC2612_INVALID_SIGNER_SELECTOR, "nonce", "invalid signer"), VerificationStatus.STALE_NONCE),
]

_PURCHASE_MARKERS = [
    (("expired",), VerificationStatus.EXPIRED),
    (("already used", "already consumed", "permit used", "used permit"), VerificationStatus.ALREADY_CONSUMED),
    (("whitelist", "not authorized", "unauthorized"), VerificationStatus.UNAUTHORIZED_SIGNER),
]


def classify_revert(reason: Optional[str], permit_type: str) -> VerificationStatus:
    """
    Classify a contract revert reason for a permit submission.

    Matches revert strings and OpenZeppelin custom-error selectors
    case-insensitively. Reasons that match nothing are reported as
    ``INVALID_SIGNATURE``; the submission is never retried.

    ``ERC2612InvalidSigner`` maps to ``STALE_NONCE`` because the token
    rebuilds the digest with its stored nonce, so a consumed or
    ahead-of-chain nonce is the usual cause. The same revert is raised
    for a wrong signer, value or domain, and the contract does not say
    which. Callers needing the distinction should read ``get_nonce`` or
    run ``preflight_deposit`` before submitting.

    Args:
        reason: Revert message or custom-error data from the node.
        permit_type: ``"deposit"`` or ``"purchase"``.

    Returns:
        VerificationStatus describing the rejection.
    """
    text = (reason or "").lower()
    markers = _DEPOSIT_MARKERS if permit_type == DepositPermit.permit_type else _PURCHASE_MARKERS
    for needles, status in markers:
        if any(needle in text for needle in needles):
            return status
    logger.debug("Unclassified revert reason", extra={"reason": reason, "permit_type": permit_type})
    return VerificationStatus.INVALID_SIGNATURE
