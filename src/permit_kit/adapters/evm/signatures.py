"""
EVM Signature Codec and Local Signer

Converts between the packed 65-byte ECDSA signature produced by wallets and
the (v, r, s) components the contracts take as separate arguments, and
provides an in-process ``TypedDataSigner`` backed by ``eth_account``.

Exported helpers
----------------
decompose_signature
    Split ``r || s || v`` into (v, r, s). v is returned as found.

normalize_recovery_id
    Map a trailing v of 0/1 to 27/28; reject anything else.

compose_signature
    Inverse of ``decompose_signature``.

LocalAccountSigner
    Signs EIP-712 typed data with a private key held in-process.
"""

import logging
from typing import Any, Dict, List, Tuple, Union

from eth_abi.exceptions import EncodingError
from eth_account import Account
from eth_utils import decode_hex, to_hex

from ...engine.exceptions import PermitSignatureError, SignatureFormatError, SignerUnavailableError
from ..bases import TypedDataSigner
from .constants import get_private_key_from_env
from .standards import EIP712_DOMAIN_TYPE

logger = logging.getLogger(__name__)

SIGNATURE_LENGTH = 65

SignatureInput = Union[bytes, bytearray, str]


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------

def _to_signature_bytes(signature: SignatureInput) -> bytes:
    if isinstance(signature, (bytes, bytearray)):
        return bytes(signature)
    if isinstance(signature, str):
        try:
            return decode_hex(signature.strip())
        except ValueError as e:
            raise SignatureFormatError(f"Signature is not valid hex: {e}") from e
    raise SignatureFormatError(
        f"Signature must be bytes or a hex string, got {type(signature).__name__}"
    )


def decompose_signature(signature: SignatureInput) -> Tuple[int, bytes, bytes]:
    """
    Split a packed 65-byte signature into its components.

    Layout: r = bytes [0, 32), s = bytes [32, 64), v = byte 64. The 64-byte
    compact form (EIP-2098) is not accepted.

    Args:
        signature: Raw bytes or a 0x-prefixed hex string.

    Returns:
        Tuple[int, bytes, bytes]: (v, r, s) with r and s 32 bytes each.
            v is not normalized; call ``normalize_recovery_id`` first.

    Raises:
        SignatureFormatError: If the input is not exactly 65 bytes.
    """
    raw = _to_signature_bytes(signature)
    if len(raw) != SIGNATURE_LENGTH:
        raise SignatureFormatError(
            f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(raw)}"
        )
    return raw[64], raw[0:32], raw[32:64]


def normalize_recovery_id(signature: SignatureInput) -> bytes:
    """
    Return the signature with its recovery id in {27, 28}.

    Custodians that emit v as 0/1 get 27 added; 27/28 pass through.

    Raises:
        SignatureFormatError: If the signature is not 65 bytes or v is
            any other value.
    """
    raw = _to_signature_bytes(signature)
    if len(raw) != SIGNATURE_LENGTH:
        raise SignatureFormatError(
            f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(raw)}"
        )
    v = raw[64]
    if v in (0, 1):
        v += 27
    elif v not in (27, 28):
        raise SignatureFormatError(f"Invalid recovery id {v}; expected 0, 1, 27 or 28")
    return raw[:64] + bytes([v])


def compose_signature(v: int, r: Union[bytes, str], s: Union[bytes, str]) -> bytes:
    """
    Pack (v, r, s) into ``r || s || v``.

    r and s may be 32 bytes or 0x-hex strings of 32 bytes.

    Raises:
        SignatureFormatError: On wrong component sizes or v outside a byte.
    """
    try:
        r_bytes = decode_hex(r) if isinstance(r, str) else bytes(r)
        s_bytes = decode_hex(s) if isinstance(s, str) else bytes(s)
    except ValueError as e:
        raise SignatureFormatError(f"r and s must be hex: {e}") from e
    if len(r_bytes) != 32 or len(s_bytes) != 32:
        raise SignatureFormatError("r and s must be 32 bytes each")
    if not 0 <= v <= 255:
        raise SignatureFormatError(f"v must fit in one byte, got {v}")
    return r_bytes + s_bytes + bytes([v])


# ---------------------------------------------------------------------------
# Local signer
# ---------------------------------------------------------------------------

class LocalAccountSigner(TypedDataSigner):
    """
    ``TypedDataSigner`` holding a private key in-process.

    Used by the issuer service (the whitelisted issuer key) and by scripts
    and tests. A local key never declines; a missing or unusable key
    surfaces as ``SignerUnavailableError``.

    Example::

        signer = LocalAccountSigner.from_env()   # EVM_PRIVATE_KEY
        signature = await signer.sign_typed_data(domain, types, "PermitBuy", message)
    """

    def __init__(self, private_key: str):
        try:
            self._account = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            # The key itself never goes into the message.
            raise SignerUnavailableError("Private key is not a valid secp256k1 key") from e

    @classmethod
    def from_env(cls) -> "LocalAccountSigner":
        """
        Create a signer from EVM_PRIVATE_KEY.

        Raises:
            SignerUnavailableError: If the variable is not set.
        """
        private_key = get_private_key_from_env()
        if not private_key:
            raise SignerUnavailableError("EVM_PRIVATE_KEY is not set")
        return cls(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    async def sign_typed_data(
        self,
        domain: Dict[str, Any],
        types: Dict[str, List[Dict[str, str]]],
        primary_type: str,
        message: Dict[str, Any],
    ) -> str:
        full_message = {
            "types": {"EIP712Domain": list(EIP712_DOMAIN_TYPE), **types},
            "primaryType": primary_type,
            "domain": domain,
            "message": message,
        }
        try:
            signed = self._account.sign_typed_data(full_message=full_message)
        except (EncodingError, ValueError, TypeError, KeyError) as e:
            raise PermitSignatureError(f"Failed to sign {primary_type} typed data: {e}") from e

        logger.debug(
            "Signed typed data",
            extra={"primary_type": primary_type, "signer": self.address},
        )
        return to_hex(signed.signature)

