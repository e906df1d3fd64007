"""
Permit Issuer Service - FastAPI wrapper around a PermitIssuer.

Issues signed purchase and deposit permits over HTTP and exposes the market
listings. Routes are protected with HMAC bearer tokens minted from the
service's API key.
"""

import json
import logging
import os
from typing import Optional, Type, Union

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from ..adapters.evm.constants import amount_to_value
from ..adapters.evm.issuers import PermitIssuer
from ..engine.exceptions import (
    BlockchainInteractionError,
    ConfigurationError,
    InputIncompleteError,
    MalformedArtifactError,
    PermitKitError,
    SignatureFormatError,
    SignerUnavailableError,
    SigningDeclinedError,
    TokenError,
)
from ..logging_config import setup_logging
from ..schemas.https import (
    DepositPermitRequest,
    ErrorResponse,
    HealthResponse,
    ListingsResponse,
    PurchasePermitRequest,
)
from .security import bearer_token_dependency

logger = logging.getLogger(__name__)

# Most specific class first; the first isinstance match wins.
_STATUS_CODES = (
    (InputIncompleteError, 400),
    (MalformedArtifactError, 400),
    (SignatureFormatError, 400),
    (SigningDeclinedError, 409),
    (SignerUnavailableError, 503),
    (TokenError, 401),
    (BlockchainInteractionError, 502),
    (ConfigurationError, 500),
)


def status_code_for(exc: PermitKitError) -> int:
    for exc_class, status_code in _STATUS_CODES:
        if isinstance(exc, exc_class):
            return status_code
    return 500


def _error_response(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, message=message).model_dump(mode="json"),
    )


class PermitIssuerServer(FastAPI):
    """FastAPI server issuing EIP-712 permits."""

    def __init__(
        self,
        issuer: PermitIssuer,
        api_key: Optional[str] = None,
        log_level: Optional[Union[int, str]] = logging.INFO,
        **fastapi_kwargs
    ):
        """Initialize the issuer service.

        Args:
            issuer: Signs the permits (its signer is the whitelisted issuer for
                    purchases and the token holder for deposits)
            api_key: Secret for bearer tokens (default: ISSUER_API_KEY env var;
                     when neither is set the routes are open)
            log_level: Level passed to ``setup_logging``; None leaves logging alone
            **fastapi_kwargs: FastAPI arguments (title, version, etc.)
        """
        self.issuer = issuer
        self.api_key = api_key if api_key is not None else os.getenv("ISSUER_API_KEY")
        if log_level is not None:
            setup_logging(log_level)

        super().__init__(**fastapi_kwargs)

        if not self.api_key:
            logger.warning("ISSUER_API_KEY is not set; permit routes are unauthenticated")

        self.add_exception_handler(PermitKitError, self._handle_permit_kit_error)
        self.add_exception_handler(ValueError, self._handle_value_error)
        self._setup_routes()

    async def _handle_permit_kit_error(self, request: Request, exc: PermitKitError) -> JSONResponse:
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error("Request failed", extra={"path": request.url.path, "error": exc.error_code})
        else:
            logger.info("Request rejected", extra={"path": request.url.path, "error": exc.error_code})
        return _error_response(status_code, exc.error_code, str(exc))

    async def _handle_value_error(self, request: Request, exc: ValueError) -> JSONResponse:
        logger.info("Invalid request value", extra={"path": request.url.path})
        return _error_response(400, "invalid_request", str(exc))

    @staticmethod
    async def _parse_body(request: Request, model: Type[BaseModel]):
        try:
            payload = await request.json()
        except json.JSONDecodeError:
            raise ValueError("Request body is not valid JSON")
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise ValueError(f"Invalid request body: {e.error_count()} validation error(s)") from e

    def _setup_routes(self) -> None:
        authorized = Depends(bearer_token_dependency(self.api_key))

        @self.get("/health")
        async def health() -> JSONResponse:
            return JSONResponse(
                status_code=200,
                content=HealthResponse(issuer=self.issuer.signer.address).model_dump(mode="json"),
            )

        @self.get("/listings", dependencies=[authorized])
        async def listings() -> JSONResponse:
            records = await self.issuer.gateway.get_listings()
            return JSONResponse(
                status_code=200,
                content=ListingsResponse(listings=records).model_dump(mode="json"),
            )

        @self.post("/permits/purchase", dependencies=[authorized])
        async def purchase_permit(request: Request) -> JSONResponse:
            body: PurchasePermitRequest = await self._parse_body(request, PurchasePermitRequest)
            permit = await self.issuer.issue_purchase_permit(
                body.buyer, body.tokenId, deadline=body.deadline
            )
            return JSONResponse(status_code=200, content=permit.to_artifact())

        @self.post("/permits/deposit", dependencies=[authorized])
        async def deposit_permit(request: Request) -> JSONResponse:
            body: DepositPermitRequest = await self._parse_body(request, DepositPermitRequest)
            if body.value is not None and body.amount is not None:
                raise ValueError("Provide either 'value' or 'amount', not both")
            value = body.value
            if value is None and body.amount:
                value = amount_to_value(body.amount)
            permit = await self.issuer.issue_deposit_permit(value, deadline=body.deadline)
            return JSONResponse(status_code=200, content=permit.to_artifact())
