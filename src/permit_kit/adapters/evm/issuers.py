"""
Permit Issuer

Builds, signs and packages the two permit kinds:

* Deposit permits: the token holder signs an ERC-2612 ``Permit`` letting the
  TokenBank pull ``value`` tokens. The nonce is read live from the token.
* Purchase permits: a whitelisted issuer signs a ``PermitBuy`` letting
  ``buyer`` purchase ``tokenId`` from the market.

Every issued artifact carries a real signature; there is no unsigned or
zero-signature path.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple, Union

from eth_utils import is_address, to_hex

from ...engine.exceptions import InputIncompleteError, SigningDeclinedError, SignerUnavailableError
from ..bases import PermitContractGateway, TypedDataSigner
from .adapter import EVMPermitGateway
from .constants import DEFAULT_VALIDITY_WINDOW, UINT256_MAX, PermitContracts, get_validity_window_from_env
from .schemas import DepositPermit, PurchasePermit
from .signatures import LocalAccountSigner, decompose_signature, normalize_recovery_id
from .standards import (
    PERMIT_BUY_PRIMARY_TYPE,
    PERMIT_BUY_TYPES,
    PERMIT_PRIMARY_TYPE,
    PERMIT_TYPES,
    PermitBuyTypedData,
    PermitTypedData,
    build_domain,
    build_permit_buy_message,
    build_permit_message,
)

logger = logging.getLogger(__name__)


def _require(**inputs: Any) -> None:
    missing = [name for name, value in inputs.items() if value is None or value == ""]
    if missing:
        raise InputIncompleteError(f"Missing required input(s): {', '.join(missing)}")


def _check_uint256(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {type(value).__name__}")
    if not 0 <= value <= UINT256_MAX:
        raise ValueError(f"{name} is outside the uint256 range: {value}")
    return value


class PermitIssuer:
    """
    Issues signed deposit and purchase permits.

    The issuer never caches the chain id or the owner nonce: both are read
    from the gateway on every call, so a permit is always bound to the
    network and nonce current at signing time.

    Attributes:
        signer: Signing capability (token holder for deposits, whitelisted
            issuer for purchases)
        gateway: Contract reads (chain id, nonces)
        contracts: Token, bank and market addresses plus domain names
        validity_window: Seconds added to ``clock()`` for default deadlines

    Example:
        issuer = PermitIssuer(LocalAccountSigner(issuer_key), gateway, contracts)
        permit = await issuer.issue_purchase_permit(buyer, 5)
        payload = permit.to_artifact_json()
    """

    def __init__(
        self,
        signer: TypedDataSigner,
        gateway: PermitContractGateway,
        contracts: PermitContracts,
        *,
        validity_window: int = DEFAULT_VALIDITY_WINDOW,
        clock: Callable[[], float] = time.time,
    ):
        if validity_window <= 0:
            raise ValueError("validity_window must be positive")
        self.signer = signer
        self.gateway = gateway
        self.contracts = contracts
        self.validity_window = validity_window
        self._clock = clock

    @classmethod
    def from_env(cls, chain_id: int = 31337, **gateway_kwargs: Any) -> "PermitIssuer":
        """
        Build an issuer signing with EVM_PRIVATE_KEY against the contracts
        named in the environment.

        PERMIT_VALIDITY_WINDOW overrides the default one-hour window.

        Raises:
            ConfigurationError: If an address, the RPC URL or the window is invalid.
            SignerUnavailableError: If EVM_PRIVATE_KEY is missing or invalid.
        """
        gateway = EVMPermitGateway.from_env(chain_id, **gateway_kwargs)
        return cls(
            LocalAccountSigner.from_env(),
            gateway,
            gateway.contracts,
            validity_window=get_validity_window_from_env(),
        )

    def default_deadline(self) -> int:
        """``now + validity_window``, in whole seconds."""
        return int(self._clock()) + self.validity_window

    async def issue_deposit_permit(
        self,
        value: Optional[int],
        *,
        deadline: Optional[int] = None,
        owner: Optional[str] = None,
    ) -> DepositPermit:
        """
        Sign a deposit permit for ``value`` tokens to the TokenBank.

        Args:
            value: Amount in smallest units (``amount_to_value("1") == 10**18``).
            deadline: Unix timestamp; defaults to now + validity window.
            owner: Token holder; defaults to the signer's address and must
                equal it, since only the holder's key can sign its permit.

        Returns:
            DepositPermit with the live nonce and a normalized signature.

        Raises:
            InputIncompleteError: ``value`` missing, raised before any call.
            ValueError: ``value`` or ``deadline`` outside uint256, or ``owner``
                differs from the signing account; raised before any call.
            SigningDeclinedError / SignerUnavailableError: From the signer.
        """
        _require(value=value)
        _check_uint256("value", value)
        if deadline is not None:
            _check_uint256("deadline", deadline)
        signer_address = self._signer_address()
        if owner is not None and owner != "":
            if not is_address(owner) or owner.lower() != signer_address.lower():
                raise ValueError(f"Deposit permits for {owner} must be signed by that account")
        owner = signer_address
        deadline = self.default_deadline() if deadline is None else deadline

        chain_id = await self.gateway.get_chain_id()
        nonce = await self.gateway.get_nonce(owner)

        domain = build_domain(chain_id, self.contracts.token, self.contracts.token_name)
        message = build_permit_message(owner, self.contracts.bank, value, nonce, deadline)
        typed_data = PermitTypedData(domain=domain, message=message)

        v, r, s = await self._sign(typed_data.domain.to_dict(), PERMIT_TYPES, PERMIT_PRIMARY_TYPE, message.to_dict())

        logger.info(
            "Issued deposit permit",
            extra={"owner": owner, "nonce": nonce, "deadline": deadline, "chain_id": chain_id},
        )
        return DepositPermit(
            owner=message.owner,
            spender=message.spender,
            value=message.value,
            nonce=message.nonce,
            deadline=message.deadline,
            v=v,
            r=r,
            s=s,
        )

    async def issue_purchase_permit(
        self,
        buyer: Optional[str],
        token_id: Optional[Union[int, str]],
        *,
        deadline: Optional[int] = None,
    ) -> PurchasePermit:
        """
        Sign a purchase permit authorizing ``buyer`` to buy ``token_id``.

        The signer must be whitelisted on the market for the permit to be
        accepted; that is enforced by the contract at purchase time.

        Raises:
            InputIncompleteError: ``buyer`` or ``token_id`` missing, raised
                before any call.
            ValueError: ``buyer`` is not an address, or ``token_id`` or
                ``deadline`` is not a uint256.
            SigningDeclinedError / SignerUnavailableError: From the signer.
        """
        _require(buyer=buyer, token_id=token_id)
        if not is_address(buyer):
            raise ValueError(f"buyer is not a valid address: {buyer!r}")
        token_id = _check_uint256("token_id", int(token_id))
        if deadline is not None:
            _check_uint256("deadline", deadline)
        deadline = self.default_deadline() if deadline is None else deadline

        chain_id = await self.gateway.get_chain_id()

        domain = build_domain(chain_id, self.contracts.market, self.contracts.market_name)
        message = build_permit_buy_message(buyer, token_id, deadline)
        typed_data = PermitBuyTypedData(domain=domain, message=message)

        v, r, s = await self._sign(
            typed_data.domain.to_dict(), PERMIT_BUY_TYPES, PERMIT_BUY_PRIMARY_TYPE, message.to_dict()
        )

        logger.info(
            "Issued purchase permit",
            extra={"buyer": message.buyer, "token_id": token_id, "deadline": deadline, "chain_id": chain_id},
        )
        return PurchasePermit(
            buyer=message.buyer,
            tokenId=message.token_id,
            deadline=message.deadline,
            v=v,
            r=r,
            s=s,
        )

    def _signer_address(self) -> str:
        address = self.signer.address
        if not address:
            raise SignerUnavailableError("No account is connected to the signer")
        return address

    async def _sign(
        self,
        domain: Dict[str, Any],
        types: Dict[str, Any],
        primary_type: str,
        message: Dict[str, Any],
    ) -> Tuple[int, str, str]:
        try:
            signature = await self.signer.sign_typed_data(domain, types, primary_type, message)
        except SigningDeclinedError:
            logger.info("Signing declined by key custodian", extra={"primary_type": primary_type})
            raise
        except SignerUnavailableError:
            logger.warning("Signer unavailable", extra={"primary_type": primary_type})
            raise

        v, r, s = decompose_signature(normalize_recovery_id(signature))
        return v, to_hex(r), to_hex(s)
