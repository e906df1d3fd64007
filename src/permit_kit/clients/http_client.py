"""
Permit Issuer Client

httpx client for the permit issuer service. Permits come back as JSON
artifacts and are parsed with the same models the service signs them into,
so a tampered or truncated response fails as ``MalformedArtifactError``
before it reaches a wallet or the chain.
"""

from typing import Any, Dict, List, Optional, Union

import httpx

from ..adapters.evm.schemas import DepositPermit, Listing, PurchasePermit
from ..engine.exceptions import PermitKitError, exception_for_code
from ..schemas.https import ClientRequestHeader, ListingsResponse


class PermitIssuerClient(httpx.AsyncClient):
    """
    Extended httpx.AsyncClient for the permit issuer service.

    Fully compatible with httpx.AsyncClient - supports all methods, properties,
    and can be used as an async context manager. Error bodies returned by the
    service are raised as the matching ``PermitKitError`` subclass.

    Usage:
        ```python
        async with PermitIssuerClient(base_url="http://localhost:8000", api_token=token) as client:
            permit = await client.request_purchase_permit(buyer, 5)
            await gateway.permit_buy(permit)
        ```
    """

    def __init__(
        self,
        api_token: Optional[str] = None,
        **kwargs
    ):
        """
        Initialize client.

        Args:
            api_token: Optional bearer token (from ``generate_token``)
            **kwargs: All standard httpx.AsyncClient arguments (base_url, timeout, headers, etc.)
        """
        super().__init__(**kwargs)
        self._token = api_token

    # =========================================================================
    # Issuer endpoints
    # =========================================================================

    async def request_purchase_permit(
        self,
        buyer: str,
        token_id: int,
        deadline: Optional[int] = None,
    ) -> PurchasePermit:
        """
        Ask the service to sign a purchase permit for ``buyer`` and ``token_id``.

        Returns:
            PurchasePermit parsed from the response artifact.

        Raises:
            PermitKitError subclass matching the service's error code.
            MalformedArtifactError: The response is not a valid permit.
        """
        body: Dict[str, Any] = {"buyer": buyer, "tokenId": str(token_id)}
        if deadline is not None:
            body["deadline"] = str(deadline)
        response = await self.post("/permits/purchase", json=body, headers=self._auth_headers())
        return PurchasePermit.from_artifact(self._checked(response).content)

    async def request_deposit_permit(
        self,
        value: Optional[int] = None,
        amount: Optional[Union[str, int]] = None,
        deadline: Optional[int] = None,
    ) -> DepositPermit:
        """
        Ask the service to sign a deposit permit.

        Args:
            value: Amount in smallest units.
            amount: Human-readable amount (e.g. "1.5"), used when ``value`` is None.
            deadline: Optional Unix deadline.
        """
        body: Dict[str, Any] = {}
        if value is not None:
            body["value"] = str(value)
        if amount is not None:
            body["amount"] = str(amount)
        if deadline is not None:
            body["deadline"] = str(deadline)
        response = await self.post("/permits/deposit", json=body, headers=self._auth_headers())
        return DepositPermit.from_artifact(self._checked(response).content)

    async def get_listings(self) -> List[Listing]:
        response = await self.get("/listings", headers=self._auth_headers())
        return ListingsResponse.model_validate(self._checked(response).json()).listings

    # =========================================================================
    # Utility Methods
    # =========================================================================

    def _auth_headers(self) -> Dict[str, str]:
        """Authorization header for the configured token, if any."""
        if not self._token:
            return {}
        header_model = ClientRequestHeader(authorization=f"Bearer {self._token}")
        return header_model.model_dump(by_alias=True, exclude_none=True)

    @staticmethod
    def _checked(response: httpx.Response) -> httpx.Response:
        """Return ``response`` if it is 2xx, otherwise raise the service's error."""
        if response.is_success:
            return response
        try:
            payload = response.json()
        except ValueError:
            raise PermitKitError(f"Issuer service returned HTTP {response.status_code}")
        if not isinstance(payload, dict):
            raise PermitKitError(f"Issuer service returned HTTP {response.status_code}")
        error_class = exception_for_code(str(payload.get("error", "")))
        raise error_class(payload.get("message") or f"HTTP {response.status_code}")
