"""
Bearer tokens for the permit issuer service.

Tokens are ``<payload>.<signature>``: a base64url JSON payload (issued-at,
expiry, nonce, optional subject) and its HMAC-SHA256 under the service's
API key. Anyone holding the API key can mint tokens; the key is read from
ISSUER_API_KEY by the service.
"""

import base64
import binascii
import json
import hmac
import hashlib
import secrets
import string
import time
from typing import Callable, Dict, Optional

from fastapi import Header

from ..engine.exceptions import InvalidTokenError, TokenExpiredError


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("utf-8")


def _b64decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(private_key: str, payload_b64: str) -> bytes:
    return hmac.new(
        key=private_key.encode(),
        msg=payload_b64.encode(),
        digestmod=hashlib.sha256,
    ).digest()


def create_api_key(*, prefix: str = "", length: int = 32) -> str:
    """
    Generate a random API key for signing service tokens.

    Args:
        prefix: A custom string to prepend to the random key.
        length: The number of random characters to generate.

    Returns:
        A secure key string.
    """
    alphabet = string.ascii_letters + string.digits
    random_part = "".join(secrets.choice(alphabet) for _ in range(length))
    return f"{prefix}{random_part}"


def generate_token(
    *,
    private_key: str,
    expires_in: int = 3600,
    subject: Optional[str] = None,
    nonce_length: int = 16,
) -> str:
    """
    Generate a signed bearer token.

    Args:
        private_key: Secret key used to sign the token (the service API key).
        expires_in: Token lifetime in seconds.
        subject: Optional caller identifier stored as ``sub``.
        nonce_length: Length of random nonce.

    Returns:
        Signed token string.
    """
    now = int(time.time())

    payload: Dict[str, object] = {
        "iat": now,
        "exp": now + expires_in,
        "nonce": secrets.token_urlsafe(nonce_length),
    }
    if subject:
        payload["sub"] = subject

    payload_json = json.dumps(payload, separators=(",", ":"), sort_keys=True)
    payload_b64 = _b64encode(payload_json.encode())

    return f"{payload_b64}.{_b64encode(_sign(private_key, payload_b64))}"


def verify_token(
    *,
    token: str,
    private_key: str,
    leeway: int = 0,
) -> Dict[str, object]:
    """
    Verify token signature and expiration.

    Args:
        token: Token string.
        private_key: Secret key used to verify the token.
        leeway: Allowed clock skew in seconds.

    Returns:
        Decoded payload if valid.

    Raises:
        TokenExpiredError: If token is expired.
        InvalidTokenError: If token is malformed or signature mismatch.
    """
    try:
        payload_b64, signature_b64 = token.split(".")
    except ValueError:
        raise InvalidTokenError("Invalid token format")

    try:
        actual_sig = _b64decode(signature_b64)
    except (binascii.Error, ValueError):
        raise InvalidTokenError("Invalid token signature encoding")

    if not hmac.compare_digest(_sign(private_key, payload_b64), actual_sig):
        raise InvalidTokenError("Signature verification failed")

    try:
        payload = json.loads(_b64decode(payload_b64))
        expires_at = int(payload["exp"])
    except (binascii.Error, ValueError, KeyError, TypeError):
        raise InvalidTokenError("Invalid token payload")

    if int(time.time()) > expires_at + leeway:
        raise TokenExpiredError("Token has expired")

    return payload


def bearer_token_dependency(private_key: Optional[str]) -> Callable[..., Optional[Dict[str, object]]]:
    """
    Build a FastAPI dependency that enforces ``Authorization: Bearer <token>``.

    With no key configured the dependency admits every request and returns None.

    Raises (from the dependency):
        InvalidTokenError / TokenExpiredError: Mapped to 401 by the service.
    """

    def _dependency(authorization: Optional[str] = Header(default=None)) -> Optional[Dict[str, object]]:
        if not private_key:
            return None
        if not authorization:
            raise InvalidTokenError("Missing Authorization header")
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise InvalidTokenError("Authorization header must be 'Bearer <token>'")
        return verify_token(token=token.strip(), private_key=private_key)

    return _dependency
