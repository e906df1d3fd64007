"""
Abstract Base Classes for the Permit Adapters

Defines the two seams the permit flows depend on, so the issuing and
verification logic never talks to a wallet or node directly.

Core Classes:
    - TypedDataSigner: signing capability for EIP-712 typed data (local key,
      wallet bridge, remote custodian)
    - PermitContractGateway: reads from and writes to the HTToken, TokenBank
      and NFTMarket contracts

Concrete implementations live in ``adapters.evm``; tests substitute
simulated contracts that implement the same gateway interface.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from ..schemas.bases import BaseTransactionConfirmation


class TypedDataSigner(ABC):
    """
    Abstract signing capability for EIP-712 typed data.

    The custodian of the key decides whether to sign. Implementations raise
    ``SigningDeclinedError`` when the request is refused and
    ``SignerUnavailableError`` when no key is reachable; the caller never
    retries automatically.

    Example Implementation:
        class LocalAccountSigner(TypedDataSigner):
            # Signs with an in-process eth_account key
            pass

        class WalletBridgeSigner(TypedDataSigner):
            # Forwards eth_signTypedData_v4 to a browser wallet
            pass
    """

    @property
    @abstractmethod
    def address(self) -> str:
        """Checksummed address of the signing account."""

    @abstractmethod
    async def sign_typed_data(
        self,
        domain: Dict[str, Any],
        types: Dict[str, List[Dict[str, str]]],
        primary_type: str,
        message: Dict[str, Any],
    ) -> str:
        """
        Sign EIP-712 typed data.

        Args:
            domain: Domain fields (name, version, chainId, verifyingContract).
            types: Type descriptors for the primary type (``EIP712Domain`` optional).
            primary_type: Name of the struct being signed.
            message: Message fields keyed by their EIP-712 names.

        Returns:
            str: 0x-prefixed 65-byte signature (r || s || v). v may be 0/1
                or 27/28 depending on the custodian.

        Raises:
            SigningDeclinedError: The custodian refused.
            SignerUnavailableError: No signing capability is reachable.
        """


class PermitContractGateway(ABC):
    """
    Abstract access to the three contracts the permits are bound to.

    Reads are authoritative chain state. Writes submit a permit and report
    the mined outcome; they never assume success and never resubmit.

    Key Responsibilities:
    1. get_chain_id: Live chain id used in every EIP-712 domain
    2. get_nonce: Owner nonce on the token (deposit permits)
    3. is_whitelisted: Issuer authorization on the market (purchase permits)
    4. get_block_timestamp: Chain clock used for deadline checks
    5. get_listings: Marketplace listing projection
    6. permit_deposit / permit_buy: Submit a permit to its consuming contract
    """

    @abstractmethod
    async def get_chain_id(self) -> int:
        """Return the chain id of the connected network."""

    @abstractmethod
    async def get_nonce(self, owner: str) -> int:
        """Return ``HTToken.nonces(owner)``."""

    @abstractmethod
    async def is_whitelisted(self, address: str) -> bool:
        """Return ``NFTMarket.isWhitelisted(address)``."""

    @abstractmethod
    async def get_block_timestamp(self) -> int:
        """Return the timestamp of the latest block."""

    @abstractmethod
    async def get_listings(self) -> List[Any]:
        """
        Return the market listings as records.

        Raises:
            InconsistentListingsError: If the contract's parallel arrays
                differ in length.
        """

    @abstractmethod
    async def permit_deposit(self, permit: Any) -> BaseTransactionConfirmation:
        """
        Submit ``TokenBank.permitDeposit(value, deadline, v, r, s)``.

        Returns:
            BaseTransactionConfirmation: SUCCESS only from a mined receipt
                with status 1; a contract rejection is reported with its
                classified reason.
        """

    @abstractmethod
    async def permit_buy(self, permit: Any) -> BaseTransactionConfirmation:
        """Submit ``NFTMarket.permitBuy(tokenId, deadline, v, r, s)``."""
