"""
Permit Test Mocks Module

Shared mock data and test doubles for the permit-kit test suite. Nothing here
talks to a real node.

Key Components:
    - Mock accounts (well-known Anvil development keys) and contract addresses
    - Factories for really-signed deposit and purchase permits
    - SimulatedPermitContracts: an in-memory HTToken/TokenBank/NFTMarket that
      enforces nonces, used-flags, the whitelist and the block clock
    - Signers that decline, are unavailable, or emit v as 0/1
    - MockWeb3Provider: AsyncWeb3 stand-in for gateway tests

Usage:
    from mocks import (
        MOCK_CONTRACTS,
        SimulatedPermitContracts,
        create_signed_purchase_permit,
    )

    chain = SimulatedPermitContracts(whitelist=[MOCK_ISSUER_ADDRESS])
    permit = create_signed_purchase_permit(MOCK_ISSUER_PRIVATE_KEY, MOCK_BUYER_ADDRESS, 5)
    confirmation = await chain.permit_buy(permit)
"""

import time
from typing import Any, Dict, Iterable, List, Optional, Tuple
from unittest.mock import AsyncMock, Mock

from eth_account import Account
from eth_utils import keccak, to_checksum_address, to_hex
from web3.exceptions import ContractLogicError

from permit_kit.adapters.bases import PermitContractGateway, TypedDataSigner
from permit_kit.adapters.evm.constants import PermitContracts
from permit_kit.adapters.evm.schemas import (
    DepositPermit,
    EVMTransactionConfirmation,
    Listing,
    PurchasePermit,
)
from permit_kit.adapters.evm.signatures import LocalAccountSigner
from permit_kit.adapters.evm.standards import (
    PermitBuyTypedData,
    PermitTypedData,
    build_domain,
    build_permit_buy_message,
    build_permit_message,
)
from permit_kit.adapters.evm.verifies import classify_revert, recover_typed_data_signer
from permit_kit.engine.exceptions import SignerUnavailableError, SigningDeclinedError
from permit_kit.schemas.bases import TransactionStatus


# ========================================================================
# Mock Blockchain Constants
# ========================================================================

# Anvil development keys (public, never use outside tests)
MOCK_OWNER_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
MOCK_ISSUER_PRIVATE_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
MOCK_BUYER_PRIVATE_KEY = "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a"
MOCK_STRANGER_PRIVATE_KEY = "0x7c852118294e51e653712a81e05800f419141751be58f605c371e15141b007a6"

MOCK_OWNER_ADDRESS = to_checksum_address(Account.from_key(MOCK_OWNER_PRIVATE_KEY).address)
MOCK_ISSUER_ADDRESS = to_checksum_address(Account.from_key(MOCK_ISSUER_PRIVATE_KEY).address)
MOCK_BUYER_ADDRESS = to_checksum_address(Account.from_key(MOCK_BUYER_PRIVATE_KEY).address)
MOCK_STRANGER_ADDRESS = to_checksum_address(Account.from_key(MOCK_STRANGER_PRIVATE_KEY).address)

# First three deployments from the first Anvil account
MOCK_TOKEN_ADDRESS = to_checksum_address("0x5fbdb2315678afecb367f032d93f642f64180aa3")
MOCK_BANK_ADDRESS = to_checksum_address("0xe7f1725e7734ce288f8367e1bb143e90bb3f0512")
MOCK_MARKET_ADDRESS = to_checksum_address("0x9fe46736679d2d9a65f0992f2272de9f3c7fa6e0")

MOCK_CONTRACTS = PermitContracts(
    token=MOCK_TOKEN_ADDRESS,
    bank=MOCK_BANK_ADDRESS,
    market=MOCK_MARKET_ADDRESS,
)

MOCK_CHAIN_ID = 31337
MOCK_CHAIN_ID_SEPOLIA = 11155111

# Time constants
MOCK_CURRENT_TIME = int(time.time())
MOCK_DEADLINE_FUTURE = MOCK_CURRENT_TIME + 3600
MOCK_DEADLINE_PAST = MOCK_CURRENT_TIME - 3600

# 1 HTToken in smallest units
MOCK_ONE_TOKEN = 10 ** 18

MOCK_TOKEN_ID = 5

# Transaction and block data
MOCK_BLOCK_NUMBER = 1234
MOCK_GAS_PRICE = 1_000_000_000
MOCK_GAS_USED = 85000
MOCK_GAS_ESTIMATE = 100000
MOCK_TX_HASH = "0x" + "ab" * 32


# ========================================================================
# Signed permit factories
# ========================================================================

def _sign_full_message(private_key: str, full_message: Dict[str, Any]) -> Tuple[int, str, str]:
    signed = Account.from_key(private_key).sign_typed_data(full_message=full_message)
    return (
        signed.v,
        "0x" + signed.r.to_bytes(32, "big").hex(),
        "0x" + signed.s.to_bytes(32, "big").hex(),
    )


def create_signed_deposit_permit(
    private_key: str = MOCK_OWNER_PRIVATE_KEY,
    value: int = MOCK_ONE_TOKEN,
    nonce: int = 0,
    deadline: int = MOCK_DEADLINE_FUTURE,
    chain_id: int = MOCK_CHAIN_ID,
    contracts: PermitContracts = MOCK_CONTRACTS,
    token_name: Optional[str] = None,
) -> DepositPermit:
    """
    Create a deposit permit carrying a real signature.

    Args:
        private_key: Owner key; the owner field is derived from it.
        token_name: Domain name override, for wrong-domain tests.

    Example:
        permit = create_signed_deposit_permit(nonce=1)
    """
    owner = Account.from_key(private_key).address
    domain = build_domain(chain_id, contracts.token, token_name or contracts.token_name)
    message = build_permit_message(owner, contracts.bank, value, nonce, deadline)
    v, r, s = _sign_full_message(private_key, PermitTypedData(domain=domain, message=message).to_dict())
    return DepositPermit(
        owner=message.owner,
        spender=message.spender,
        value=value,
        nonce=nonce,
        deadline=deadline,
        v=v,
        r=r,
        s=s,
    )


def create_signed_purchase_permit(
    private_key: str = MOCK_ISSUER_PRIVATE_KEY,
    buyer: str = MOCK_BUYER_ADDRESS,
    token_id: int = MOCK_TOKEN_ID,
    deadline: int = MOCK_DEADLINE_FUTURE,
    chain_id: int = MOCK_CHAIN_ID,
    contracts: PermitContracts = MOCK_CONTRACTS,
) -> PurchasePermit:
    """Create a purchase permit signed by ``private_key`` (the issuer)."""
    domain = build_domain(chain_id, contracts.market, contracts.market_name)
    message = build_permit_buy_message(buyer, token_id, deadline)
    v, r, s = _sign_full_message(private_key, PermitBuyTypedData(domain=domain, message=message).to_dict())
    return PurchasePermit(buyer=message.buyer, tokenId=token_id, deadline=deadline, v=v, r=r, s=s)


# ========================================================================
# Simulated contracts
# ========================================================================

class SimulatedPermitContracts(PermitContractGateway):
    """
    In-memory HTToken, TokenBank and NFTMarket.

    Mirrors what the contracts enforce when a permit is submitted:

    - permitDeposit: ``block.timestamp <= deadline``, then the token rebuilds
      the Permit digest with the owner's *stored* nonce and compares the
      recovered signer with the owner. On success the nonce increments.
    - permitBuy: deadline, then the used-flag keyed by (buyer, tokenId,
      deadline), then the recovered signer must be whitelisted. On success
      the flag is set and the listing deactivated.

    Reverts use the contracts' reason strings and are classified with
    ``classify_revert``, like the web3 gateway does.

    Attributes:
        nonces: Owner -> current nonce
        used: Consumed purchase permits
        whitelist: Whitelisted issuers
        block_timestamp: Chain clock
        deposits: Owner -> deposited value on the bank
        calls: Names of gateway methods called, in order
    """

    def __init__(
        self,
        contracts: PermitContracts = MOCK_CONTRACTS,
        chain_id: int = MOCK_CHAIN_ID,
        whitelist: Iterable[str] = (),
        block_timestamp: Optional[int] = None,
        listings: Optional[List[Listing]] = None,
    ):
        self.contracts = contracts
        self.chain_id = chain_id
        self.nonces: Dict[str, int] = {}
        self.used: set = set()
        self.whitelist = {to_checksum_address(a) for a in whitelist}
        self.block_timestamp = int(time.time()) if block_timestamp is None else block_timestamp
        self.block_number = MOCK_BLOCK_NUMBER
        self.deposits: Dict[str, int] = {}
        self.listings: List[Listing] = list(listings or [])
        self.calls: List[str] = []

    def advance(self, seconds: int) -> None:
        """Move the chain clock forward."""
        self.block_timestamp += seconds

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_chain_id(self) -> int:
        self.calls.append("get_chain_id")
        return self.chain_id

    async def get_nonce(self, owner: str) -> int:
        self.calls.append("get_nonce")
        return self.nonces.get(to_checksum_address(owner), 0)

    async def is_whitelisted(self, address: str) -> bool:
        self.calls.append("is_whitelisted")
        return to_checksum_address(address) in self.whitelist

    async def get_block_timestamp(self) -> int:
        self.calls.append("get_block_timestamp")
        return self.block_timestamp

    async def get_listings(self) -> List[Listing]:
        self.calls.append("get_listings")
        return list(self.listings)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def permit_deposit(self, permit: DepositPermit, sender: Optional[str] = None) -> EVMTransactionConfirmation:
        self.calls.append("permit_deposit")
        owner = to_checksum_address(sender or permit.owner)

        if self.block_timestamp > permit.deadline:
            return self._revert(f"ERC2612ExpiredSignature({permit.deadline})", "deposit")

        stored_nonce = self.nonces.get(owner, 0)
        domain = build_domain(self.chain_id, self.contracts.token, self.contracts.token_name)
        message = build_permit_message(owner, self.contracts.bank, permit.value, stored_nonce, permit.deadline)
        signer = self._recover(PermitTypedData(domain=domain, message=message), permit)
        if signer != owner:
            return self._revert(f"ERC2612InvalidSigner({signer}, {owner})", "deposit")

        self.nonces[owner] = stored_nonce + 1
        self.deposits[owner] = self.deposits.get(owner, 0) + permit.value
        return self._mined(owner, self.contracts.bank)

    async def permit_buy(self, permit: PurchasePermit, sender: Optional[str] = None) -> EVMTransactionConfirmation:
        self.calls.append("permit_buy")
        buyer = to_checksum_address(sender or permit.buyer)

        if self.block_timestamp > permit.deadline:
            return self._revert("NFTMarket: permit expired", "purchase")

        key = (buyer, permit.tokenId, permit.deadline)
        if key in self.used:
            return self._revert("NFTMarket: permit already used", "purchase")

        domain = build_domain(self.chain_id, self.contracts.market, self.contracts.market_name)
        message = build_permit_buy_message(buyer, permit.tokenId, permit.deadline)
        signer = self._recover(PermitBuyTypedData(domain=domain, message=message), permit)
        if signer not in self.whitelist:
            return self._revert("NFTMarket: signer not whitelisted", "purchase")

        self.used.add(key)
        self.listings = [
            listing.model_copy(update={"active": False}) if listing.tokenId == permit.tokenId else listing
            for listing in self.listings
        ]
        return self._mined(buyer, self.contracts.market)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _recover(typed_data: Any, permit: Any) -> Optional[str]:
        try:
            return recover_typed_data_signer(typed_data, permit.v, permit.r, permit.s)
        except ValueError:
            return None

    def _revert(self, reason: str, permit_type: str) -> EVMTransactionConfirmation:
        return EVMTransactionConfirmation(
            status=TransactionStatus.FAILED,
            error_message=f"execution reverted: {reason}",
            rejection=classify_revert(reason, permit_type),
        )

    def _mined(self, sender: str, to_address: str) -> EVMTransactionConfirmation:
        self.block_number += 1
        return EVMTransactionConfirmation(
            status=TransactionStatus.SUCCESS,
            tx_hash=to_hex(keccak(text=f"{sender}:{to_address}:{self.block_number}")),
            block_number=self.block_number,
            gas_used=MOCK_GAS_USED,
            from_address=sender,
            to_address=to_address,
        )


# ========================================================================
# Signers
# ========================================================================

class DecliningSigner(TypedDataSigner):
    """Key custodian that refuses every request."""

    def __init__(self, address: str = MOCK_OWNER_ADDRESS):
        self._address = address
        self.requests = 0

    @property
    def address(self) -> str:
        return self._address

    async def sign_typed_data(self, domain, types, primary_type, message) -> str:
        self.requests += 1
        raise SigningDeclinedError("User rejected the request")


class UnavailableSigner(TypedDataSigner):
    """No wallet connected."""

    @property
    def address(self) -> str:
        return MOCK_OWNER_ADDRESS

    async def sign_typed_data(self, domain, types, primary_type, message) -> str:
        raise SignerUnavailableError("No wallet connected")


class ZeroBasedRecoverySigner(TypedDataSigner):
    """Real signer that reports v as 0/1, like some hardware wallets."""

    def __init__(self, private_key: str):
        self._inner = LocalAccountSigner(private_key)

    @property
    def address(self) -> str:
        return self._inner.address

    async def sign_typed_data(self, domain, types, primary_type, message) -> str:
        signature = bytes.fromhex((await self._inner.sign_typed_data(domain, types, primary_type, message))[2:])
        return "0x" + (signature[:64] + bytes([signature[64] - 27])).hex()


# ========================================================================
# Mock Web3
# ========================================================================

async def _resolved(value: Any) -> Any:
    if isinstance(value, Exception):
        raise value
    return value


def _call_mock(value: Any) -> Mock:
    """``contract.functions.x(...)`` result whose ``call()`` returns ``value``."""
    fn = Mock()
    fn.call = AsyncMock(return_value=value)
    return fn


class MockContractFunction:
    """Contract write function with ``estimate_gas`` / ``build_transaction``."""

    def __init__(self, address: str, estimate_error: Optional[Exception] = None):
        self.address = address
        self.args: Tuple[Any, ...] = ()
        self.estimate_gas = AsyncMock(side_effect=estimate_error, return_value=MOCK_GAS_ESTIMATE)
        self.build_transaction = AsyncMock(side_effect=self._build_transaction)

    def __call__(self, *args: Any) -> "MockContractFunction":
        self.args = args
        return self

    async def _build_transaction(self, tx_params: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "from": tx_params["from"],
            "gas": tx_params["gas"],
            "gasPrice": tx_params["gasPrice"],
            "nonce": tx_params["nonce"],
            "to": self.address,
            "value": 0,
            "data": "0x" + "ab" * 36,
            "chainId": MOCK_CHAIN_ID,
        }


class MockContract:
    """
    Mock contract exposing the functions the gateway calls.

    Attributes:
        functions: Mock with nonces/isWhitelisted/getAllListings/balances/
            DOMAIN_SEPARATOR reads and permitDeposit/permitBuy writes
    """

    def __init__(
        self,
        address: str,
        nonce: int = 0,
        whitelisted: bool = True,
        listings: Optional[Tuple[list, list, list, list]] = None,
        balance: int = 0,
        domain_separator: bytes = b"\x00" * 32,
        estimate_error: Optional[Exception] = None,
    ):
        self.address = address
        self.functions = Mock()
        self.functions.nonces = Mock(return_value=_call_mock(nonce))
        self.functions.isWhitelisted = Mock(return_value=_call_mock(whitelisted))
        self.functions.getAllListings = Mock(return_value=_call_mock(list(listings or ([], [], [], []))))
        self.functions.balances = Mock(return_value=_call_mock(balance))
        self.functions.DOMAIN_SEPARATOR = Mock(return_value=_call_mock(domain_separator))
        self.functions.permitDeposit = MockContractFunction(address, estimate_error)
        self.functions.permitBuy = MockContractFunction(address, estimate_error)


class MockEth:
    """``web3.eth`` stand-in; awaitable properties return fresh coroutines."""

    def __init__(self, provider: "MockWeb3Provider"):
        self._provider = provider
        self.get_transaction_count = AsyncMock(return_value=0)
        self.get_block = AsyncMock(side_effect=provider._block)
        self.send_raw_transaction = AsyncMock(return_value=bytes.fromhex(MOCK_TX_HASH[2:]))
        self.get_transaction_receipt = AsyncMock(side_effect=provider._receipt)
        self.call = AsyncMock(side_effect=provider._call)
        self.contract = Mock(side_effect=provider._contract)

    @property
    def chain_id(self):
        return _resolved(self._provider.chain_id)

    @property
    def gas_price(self):
        return _resolved(MOCK_GAS_PRICE)

    @property
    def block_number(self):
        return _resolved(self._provider.block_number)


class MockWeb3Provider:
    """
    Mock AsyncWeb3 for gateway tests.

    Attributes:
        contracts: Address -> MockContract; pre-populate to customize reads
        chain_id, block_number: Values served by ``eth``; set an exception
            instance to make the read fail with it
        receipt_status: Status of the mined receipt (1 success, 0 revert),
            or None to keep the transaction pending forever
        revert_reason: Reason ``eth.call`` reverts with when a reverted
            transaction is replayed; None replays without reverting
    """

    def __init__(
        self,
        chain_id: Any = MOCK_CHAIN_ID,
        block_timestamp: int = MOCK_CURRENT_TIME,
        block_number: Any = MOCK_BLOCK_NUMBER + 2,
        receipt_status: Optional[int] = 1,
        revert_reason: Optional[str] = None,
    ):
        self.chain_id = chain_id
        self.block_timestamp = block_timestamp
        self.block_number = block_number
        self.receipt_status = receipt_status
        self.revert_reason = revert_reason
        self.contracts: Dict[str, MockContract] = {}
        self.eth = MockEth(self)

    def _contract(self, address: str, abi: Any) -> MockContract:
        if address not in self.contracts:
            self.contracts[address] = MockContract(address)
        return self.contracts[address]

    async def _block(self, block_identifier: Any) -> Dict[str, Any]:
        return {"number": self.block_number, "timestamp": self.block_timestamp}

    async def _call(self, transaction: Dict[str, Any], block_identifier: Any = "latest") -> bytes:
        if self.revert_reason is not None:
            raise ContractLogicError(f"execution reverted: {self.revert_reason}")
        return b""

    async def _receipt(self, tx_hash: Any) -> Optional[Dict[str, Any]]:
        if self.receipt_status is None:
            return None
        return {
            "transactionHash": tx_hash,
            "blockNumber": MOCK_BLOCK_NUMBER,
            "status": self.receipt_status,
            "gasUsed": MOCK_GAS_USED,
            "from": MOCK_OWNER_ADDRESS,
            "to": MOCK_BANK_ADDRESS,
            "logs": [],
        }


__all__ = [
    "MOCK_OWNER_PRIVATE_KEY",
    "MOCK_ISSUER_PRIVATE_KEY",
    "MOCK_BUYER_PRIVATE_KEY",
    "MOCK_STRANGER_PRIVATE_KEY",
    "MOCK_OWNER_ADDRESS",
    "MOCK_ISSUER_ADDRESS",
    "MOCK_BUYER_ADDRESS",
    "MOCK_STRANGER_ADDRESS",
    "MOCK_TOKEN_ADDRESS",
    "MOCK_BANK_ADDRESS",
    "MOCK_MARKET_ADDRESS",
    "MOCK_CONTRACTS",
    "MOCK_CHAIN_ID",
    "MOCK_CHAIN_ID_SEPOLIA",
    "MOCK_CURRENT_TIME",
    "MOCK_DEADLINE_FUTURE",
    "MOCK_DEADLINE_PAST",
    "MOCK_ONE_TOKEN",
    "MOCK_TOKEN_ID",
    "MOCK_BLOCK_NUMBER",
    "MOCK_GAS_USED",
    "MOCK_TX_HASH",
    "create_signed_deposit_permit",
    "create_signed_purchase_permit",
    "SimulatedPermitContracts",
    "DecliningSigner",
    "UnavailableSigner",
    "ZeroBasedRecoverySigner",
    "MockContract",
    "MockWeb3Provider",
]
