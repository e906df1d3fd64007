from .exceptions import (
    PermitKitError,
    InputIncompleteError,
    PermitSignatureError,
    SigningDeclinedError,
    SignerUnavailableError,
    SignatureFormatError,
    MalformedArtifactError,
    PermitVerificationError,
    PermitExpiredError,
    StalePermitNonceError,
    PermitAlreadyConsumedError,
    UnauthorizedSignerError,
    ConfigurationError,
    TokenError,
    InvalidTokenError,
    TokenExpiredError,
    BlockchainInteractionError,
    InconsistentListingsError,
    exception_for_code,
)

__all__ = [
    "PermitKitError",
    "InputIncompleteError",
    "PermitSignatureError",
    "SigningDeclinedError",
    "SignerUnavailableError",
    "SignatureFormatError",
    "MalformedArtifactError",
    "PermitVerificationError",
    "PermitExpiredError",
    "StalePermitNonceError",
    "PermitAlreadyConsumedError",
    "UnauthorizedSignerError",
    "ConfigurationError",
    "TokenError",
    "InvalidTokenError",
    "TokenExpiredError",
    "BlockchainInteractionError",
    "InconsistentListingsError",
    "exception_for_code",
]
