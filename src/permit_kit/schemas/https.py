"""
HTTP Request/Response Schema Models for the Permit Issuer Service

Pydantic models for the JSON bodies exchanged between the issuer client and
the issuer service. Permit responses are the artifacts themselves
(``PurchasePermit`` / ``DepositPermit``), so only requests, errors and the
listing envelope are defined here.

The flow is:
1. Client obtains a bearer token (minted with the service's API key)
2. Client POSTs a permit request with ``Authorization: Bearer <token>``
3. Service returns the signed artifact, or an error body
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..adapters.evm.schemas import Address, Listing, Uint256


# ============================================================================
# Request Headers
# ============================================================================

class ClientRequestHeader(BaseModel):
    """HTTP request headers sent by client.

    Attributes:
        content_type: MIME type of request body (default: application/json).
        authorization: Optional bearer token for authenticated requests.
    """
    model_config = ConfigDict(populate_by_name=True)
    content_type: str = Field(default="application/json", alias="Content-Type")
    authorization: Optional[str] = Field(default=None, alias="Authorization")


# ============================================================================
# Permit requests
# ============================================================================

class PurchasePermitRequest(BaseModel):
    """Request for a purchase permit signed by the service's issuer key.

    Attributes:
        buyer: Address that will call ``permitBuy``.
        tokenId: Listed token id.
        deadline: Optional Unix deadline; defaults to now + validity window.
    """
    model_config = ConfigDict(extra="forbid")
    buyer: Address = Field(..., description="Buyer address")
    tokenId: Uint256 = Field(..., description="Listed token id")
    deadline: Optional[Uint256] = Field(None, description="Unix deadline")


class DepositPermitRequest(BaseModel):
    """Request for a deposit permit signed by the service's key.

    Exactly one of ``value`` (smallest units) or ``amount`` (human-readable
    decimal string, 18 decimals) is expected.
    """
    model_config = ConfigDict(extra="forbid")
    value: Optional[Uint256] = Field(None, description="Amount in smallest units")
    amount: Optional[str] = Field(None, description="Human-readable amount, e.g. '1.5'")
    deadline: Optional[Uint256] = Field(None, description="Unix deadline")


# ============================================================================
# Responses
# ============================================================================

class ErrorResponse(BaseModel):
    """Error body returned with every non-2xx response.

    Attributes:
        error: Machine-readable code (the exception's ``error_code``).
        message: Human-readable description.
    """
    error: str = Field(..., description="Error code")
    message: str = Field(..., description="Error description")


class ListingsResponse(BaseModel):
    """Marketplace listings as returned by ``GET /listings``."""
    listings: List[Listing] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str = "ok"
    issuer: Optional[str] = None
