"""
Exception and Error Definitions Module

Defines the exception hierarchy for permit issuing, artifact parsing, permit
verification, and contract interactions. Every exception inherits from
PermitKitError so callers can catch the whole family at one seam.

Exception Hierarchy:
    PermitKitError (root)
    ├── InputIncompleteError
    ├── PermitSignatureError
    │   ├── SigningDeclinedError
    │   ├── SignerUnavailableError
    │   └── SignatureFormatError
    ├── MalformedArtifactError
    ├── PermitVerificationError
    │   ├── PermitExpiredError
    │   ├── StalePermitNonceError
    │   ├── PermitAlreadyConsumedError
    │   └── UnauthorizedSignerError
    ├── ConfigurationError
    ├── TokenError
    │   ├── InvalidTokenError
    │   └── TokenExpiredError
    └── BlockchainInteractionError
        └── InconsistentListingsError

Each class carries a short ``error_code`` string. The issuer service sends it
in error bodies and the HTTP client maps it back with ``exception_for_code``.
"""

from typing import Dict, Type


class PermitKitError(Exception):
    """
    Root exception class for all project-specific exceptions.

    All custom exceptions inherit from this class to enable unified
    exception handling and centralized error processing.
    """
    error_code = "permit_kit_error"


class InputIncompleteError(PermitKitError):
    """
    Raised when a required input for building a permit is missing.

    Always raised locally, before any chain read or signing request, e.g.:
    - buyer address or token id not supplied for a purchase permit
    - value not supplied for a deposit permit
    """
    error_code = "input_incomplete"


# ----------------------------------------------------------------------
# Signing
# ----------------------------------------------------------------------

class PermitSignatureError(PermitKitError):
    """
    Raised when signature generation or signature processing fails.

    This includes scenarios such as:
    - The key custodian refusing or failing to sign
    - A signature with an unexpected length or recovery id
    - Encoding errors while preparing typed data for signing
    """
    error_code = "signature_error"


class SigningDeclinedError(PermitSignatureError):
    """
    Raised when the key custodian declines the signing request.

    Recoverable: the caller may ask again, nothing is retried automatically.
    """
    error_code = "signing_declined"


class SignerUnavailableError(PermitSignatureError):
    """Raised when no signing capability is reachable (no wallet, locked key)."""
    error_code = "signer_unavailable"


class SignatureFormatError(PermitSignatureError):
    """Raised when a raw signature is not 65 bytes or carries an invalid v."""
    error_code = "signature_format"


class MalformedArtifactError(PermitKitError):
    """
    Raised when a permit artifact cannot be parsed.

    Covers missing or unknown fields, wrong types, out-of-range integers and
    malformed signature components. Raised before any cryptographic step.
    """
    error_code = "malformed_artifact"


# ----------------------------------------------------------------------
# Verification
# ----------------------------------------------------------------------

class PermitVerificationError(PermitKitError):
    """
    Base exception for permit verification failures.

    Verifiers return results instead of raising; these exceptions exist for
    callers that prefer raising via ``EVMVerificationResult.raise_for_status``.
    """
    error_code = "invalid_signature"


class PermitExpiredError(PermitVerificationError):
    """Raised when the permit deadline is earlier than the current time."""
    error_code = "expired"


class StalePermitNonceError(PermitVerificationError):
    """Raised when a deposit permit nonce no longer matches the on-chain nonce."""
    error_code = "stale_nonce"


class PermitAlreadyConsumedError(PermitVerificationError):
    """Raised when a purchase permit has already been used once."""
    error_code = "already_consumed"


class UnauthorizedSignerError(PermitVerificationError):
    """Raised when a purchase permit is signed by a non-whitelisted address."""
    error_code = "unauthorized_signer"


class ConfigurationError(PermitKitError):
    """
    Raised when required configuration is missing or invalid.

    This includes scenarios such as:
    - Contract addresses not set in the environment
    - Missing private key where a transaction must be sent
    - Unknown chain id without an explicit RPC URL
    """
    error_code = "configuration_error"


# ----------------------------------------------------------------------
# Issuer-service access tokens
# ----------------------------------------------------------------------

class TokenError(PermitKitError):
    """Base exception for issuer-service access token errors."""
    error_code = "token_error"


class InvalidTokenError(TokenError):
    """
    Raised when an access token is invalid or malformed.

    This includes scenarios such as:
    - Token signature verification failure
    - Malformed token structure
    - Token issued with a different key
    """
    error_code = "invalid_token"


class TokenExpiredError(TokenError):
    """Raised when an access token is past its expiration time."""
    error_code = "token_expired"


# ----------------------------------------------------------------------
# Chain interaction
# ----------------------------------------------------------------------

class BlockchainInteractionError(PermitKitError):
    """
    Raised when a contract read fails at the node or transport.

    Submissions never raise it; their confirmation carries the failure.
    """
    error_code = "blockchain_error"


class InconsistentListingsError(BlockchainInteractionError):
    """Raised when the parallel listing sequences have different lengths."""
    error_code = "inconsistent_listings"


def _collect_codes() -> Dict[str, Type[PermitKitError]]:
    codes: Dict[str, Type[PermitKitError]] = {}
    pending = [PermitKitError]
    while pending:
        cls = pending.pop()
        codes.setdefault(cls.error_code, cls)
        pending.extend(cls.__subclasses__())
    return codes


_ERROR_CODES = _collect_codes()


def exception_for_code(code: str) -> Type[PermitKitError]:
    """
    Map an ``error_code`` string back to its exception class.

    Unknown codes map to PermitKitError.
    """
    return _ERROR_CODES.get(code, PermitKitError)
