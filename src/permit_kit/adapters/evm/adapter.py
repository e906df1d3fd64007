"""
EVM Permit Contract Gateway

Provides the on-chain half of both permit flows: live reads (chain id,
owner nonce, whitelist, block time, listings) and submission of signed
permits to ``TokenBank.permitDeposit`` and ``NFTMarket.permitBuy``.

Key Features:
    - Live chain id for every EIP-712 domain (never cached)
    - Pre-submission checks combining chain reads with the pure verifiers
    - Submission with receipt polling; success only from a mined receipt
    - Revert classification (stale nonce, expired, consumed, unauthorized)

Dependencies:
    - web3.py: For blockchain RPC interaction
    - eth_account: For transaction signing
"""

from typing import Optional, Dict, Any, Awaitable, List
import asyncio
import logging
import time

from web3 import AsyncWeb3
from eth_account import Account
from eth_utils import to_checksum_address, to_hex
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3Exception

from ...engine.exceptions import BlockchainInteractionError, ConfigurationError, InconsistentListingsError
from ...schemas.bases import VerificationStatus, TransactionStatus
from ..bases import PermitContractGateway
from .constants import PermitContracts, get_private_key_from_env, get_rpc_url_from_env
from .contract_abi import get_bank_abi, get_market_abi, get_token_abi
from .schemas import (
    DepositPermit,
    EVMTransactionConfirmation,
    EVMVerificationResult,
    Listing,
    PurchasePermit,
    zip_listings,
)
from .standards import EIP712Domain, build_domain
from .verifies import (
    classify_revert,
    recover_typed_data_signer,
    verify_deposit_permit,
    verify_purchase_permit,
)

logger = logging.getLogger(__name__)

# Errors raised by the node or transport on reads, builds and sends.
_RPC_ERRORS = (Web3Exception, ValueError, OSError, asyncio.TimeoutError)


def _revert_reason(error: ContractLogicError) -> str:
    message = getattr(error, "message", None) or str(error)
    data = getattr(error, "data", None)
    if isinstance(data, str) and data not in message:
        return f"{message} {data}"
    return message


class EVMPermitGateway(PermitContractGateway):
    """
    Web3-backed gateway to the HTToken, TokenBank and NFTMarket contracts.

    Reads need only an RPC endpoint. Submissions are signed and sent by the
    configured account, which must be the permit's owner (deposit) or buyer
    (purchase) because both contracts take that party from ``msg.sender``.

    Attributes:
        contracts: Contract addresses and EIP-712 domain names
        account: Submitting account, or None for a read-only gateway
        wallet_address: Checksummed address of ``account``

    Environment Variables:
        - EVM_RPC_URL / EVM_INFRA_KEY: RPC endpoint resolution
        - EVM_PRIVATE_KEY: Optional submitting account

    Example:
        gateway = EVMPermitGateway(contracts, rpc_url="http://127.0.0.1:8545", private_key=pk)

        result = await gateway.preflight_purchase(permit)
        if result.is_success():
            confirmation = await gateway.permit_buy(permit)
    """

    def __init__(
        self,
        contracts: PermitContracts,
        *,
        rpc_url: Optional[str] = None,
        private_key: Optional[str] = None,
        web3: Optional[AsyncWeb3] = None,
        request_timeout: int = 60,
        max_attempts: int = 60,
        poll_interval: float = 2.0,
    ):
        """
        Args:
            contracts: Contract addresses and domain names.
            rpc_url: JSON-RPC endpoint; ignored when ``web3`` is given.
            private_key: Submitting account key; falls back to EVM_PRIVATE_KEY.
                Without a key the gateway is read-only.
            web3: Preconfigured AsyncWeb3 instance.
            request_timeout: HTTP timeout for RPC calls (seconds).
            max_attempts: Receipt polls before reporting TIMEOUT.
            poll_interval: Seconds between receipt polls.

        Raises:
            ConfigurationError: If neither ``rpc_url`` nor ``web3`` is given.
        """
        if web3 is None and not rpc_url:
            raise ConfigurationError("An RPC URL or AsyncWeb3 instance is required")

        self.contracts = contracts
        self._rpc_url = rpc_url
        self._web3 = web3
        self._request_timeout = request_timeout
        self._max_attempts = max_attempts
        self._poll_interval = poll_interval

        resolved_pk = private_key if private_key else get_private_key_from_env()
        if resolved_pk:
            try:
                self.account = Account.from_key(resolved_pk)
            except ValueError as e:
                raise ConfigurationError("EVM private key is not a valid secp256k1 key") from e
            self.wallet_address: Optional[str] = to_checksum_address(self.account.address)
        else:
            self.account = None
            self.wallet_address = None

    @classmethod
    def from_env(cls, chain_id: int = 31337, **kwargs: Any) -> "EVMPermitGateway":
        """
        Build a gateway from the environment.

        Contract addresses come from HTTOKEN_ADDRESS / TOKENBANK_ADDRESS /
        NFTMARKET_ADDRESS; the RPC URL from EVM_RPC_URL, or the built-in
        table entry for ``chain_id``.

        Raises:
            ConfigurationError: If any required setting is missing.
        """
        return cls(PermitContracts.from_env(), rpc_url=get_rpc_url_from_env(chain_id), **kwargs)

    def _get_web3_instance(self) -> AsyncWeb3:
        if self._web3 is None:
            self._web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
                self._rpc_url,
                request_kwargs={"timeout": self._request_timeout}
            ))
        return self._web3

    def _token(self):
        return self._get_web3_instance().eth.contract(address=self.contracts.token, abi=get_token_abi())

    def _bank(self):
        return self._get_web3_instance().eth.contract(address=self.contracts.bank, abi=get_bank_abi())

    def _market(self):
        return self._get_web3_instance().eth.contract(address=self.contracts.market, abi=get_market_abi())

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _read(self, what: str, pending: Awaitable[Any]) -> Any:
        """Await an RPC read; node and transport failures become BlockchainInteractionError."""
        try:
            return await pending
        except _RPC_ERRORS as e:
            logger.warning("Chain read failed", extra={"read": what, "error": str(e)})
            raise BlockchainInteractionError(f"Failed to read {what}: {e}") from e

    async def get_chain_id(self) -> int:
        return int(await self._read("chain id", self._get_web3_instance().eth.chain_id))

    async def get_nonce(self, owner: str) -> int:
        call = self._token().functions.nonces(to_checksum_address(owner)).call()
        return int(await self._read("owner nonce", call))

    async def is_whitelisted(self, address: str) -> bool:
        call = self._market().functions.isWhitelisted(to_checksum_address(address)).call()
        return bool(await self._read("whitelist", call))

    async def get_block_timestamp(self) -> int:
        block = await self._read("latest block", self._get_web3_instance().eth.get_block("latest"))
        return int(block["timestamp"])

    async def get_listings(self) -> List[Listing]:
        result = await self._read("listings", self._market().functions.getAllListings().call())
        if len(result) != 4:
            raise InconsistentListingsError(
                f"getAllListings returned {len(result)} arrays, expected 4"
            )
        token_ids, sellers, prices, actives = result
        return zip_listings(token_ids, sellers, prices, actives)

    async def get_bank_balance(self, account: str) -> int:
        """Return ``TokenBank.balances(account)``."""
        call = self._bank().functions.balances(to_checksum_address(account)).call()
        return int(await self._read("bank balance", call))

    async def get_domain_separator(self, contract_address: str) -> bytes:
        """Return ``DOMAIN_SEPARATOR()`` of the token or the market."""
        address = to_checksum_address(contract_address)
        contract = self._token() if address == self.contracts.token else self._market()
        return bytes(await self._read("domain separator", contract.functions.DOMAIN_SEPARATOR().call()))

    async def token_domain(self) -> EIP712Domain:
        """EIP-712 domain of deposit permits, with the live chain id."""
        return build_domain(await self.get_chain_id(), self.contracts.token, self.contracts.token_name)

    async def market_domain(self) -> EIP712Domain:
        """EIP-712 domain of purchase permits, with the live chain id."""
        return build_domain(await self.get_chain_id(), self.contracts.market, self.contracts.market_name)

    # ------------------------------------------------------------------
    # Pre-submission checks
    # ------------------------------------------------------------------

    async def preflight_deposit(self, permit: DepositPermit) -> EVMVerificationResult:
        """
        Check a deposit permit against live chain state.

        Reads the owner's nonce and the latest block time, then applies
        ``verify_deposit_permit``. Advisory only: the nonce can still move
        before the permit is mined.

        Returns:
            EVMVerificationResult; BLOCKCHAIN_ERROR when the reads fail.
        """
        try:
            domain = await self.token_domain()
            nonce = await self.get_nonce(permit.owner)
            now = await self.get_block_timestamp()
        except BlockchainInteractionError as e:
            logger.warning("Deposit preflight reads failed", extra={"owner": permit.owner, "error": str(e)})
            return EVMVerificationResult(
                status=VerificationStatus.BLOCKCHAIN_ERROR,
                is_valid=False,
                message=f"Failed to read chain state: {e}",
                permit_type=DepositPermit.permit_type,
                expected_signer=permit.owner,
            )
        return verify_deposit_permit(permit, domain=domain, on_chain_nonce=nonce, current_time=now)

    async def preflight_purchase(self, permit: PurchasePermit) -> EVMVerificationResult:
        """
        Check a purchase permit against live chain state.

        Recovers the issuer, asks the market whether it is whitelisted, and
        applies ``verify_purchase_permit`` at the latest block time. The
        market exposes no used-flag getter, so consumption is only detected
        on submission.
        """
        try:
            domain = await self.market_domain()
            now = await self.get_block_timestamp()
            whitelist = set()
            try:
                signer = recover_typed_data_signer(permit.to_typed_data(domain), permit.v, permit.r, permit.s)
            except ValueError:
                signer = None
            if signer is not None and await self.is_whitelisted(signer):
                whitelist.add(signer)
        except BlockchainInteractionError as e:
            logger.warning("Purchase preflight reads failed", extra={"buyer": permit.buyer, "error": str(e)})
            return EVMVerificationResult(
                status=VerificationStatus.BLOCKCHAIN_ERROR,
                is_valid=False,
                message=f"Failed to read chain state: {e}",
                permit_type=PurchasePermit.permit_type,
            )
        return verify_purchase_permit(permit, domain=domain, is_whitelisted=whitelist, current_time=now)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def permit_deposit(self, permit: DepositPermit, *, wait: bool = True) -> EVMTransactionConfirmation:
        """
        Submit ``TokenBank.permitDeposit(value, deadline, v, r, s)``.

        The bank uses ``msg.sender`` as the permit owner, so the gateway
        account must be ``permit.owner``.

        Args:
            permit: Signed deposit permit.
            wait: Poll for the receipt; with False a PENDING confirmation
                carrying the tx hash is returned right after broadcast.

        Returns:
            EVMTransactionConfirmation; contract rejections come back as
            FAILED with ``rejection`` set. Nothing is resubmitted.

        Raises:
            ConfigurationError: If the gateway has no private key.
        """
        tx_fn = self._bank().functions.permitDeposit(
            permit.value,
            permit.deadline,
            permit.v,
            bytes.fromhex(permit.r[2:]),
            bytes.fromhex(permit.s[2:]),
        )
        return await self._submit(
            tx_fn,
            permit_type=DepositPermit.permit_type,
            expected_sender=permit.owner,
            to_address=self.contracts.bank,
            wait=wait,
        )

    async def permit_buy(self, permit: PurchasePermit, *, wait: bool = True) -> EVMTransactionConfirmation:
        """
        Submit ``NFTMarket.permitBuy(tokenId, deadline, v, r, s)``.

        The market takes the buyer from ``msg.sender``, so the gateway
        account must be ``permit.buyer``. See ``permit_deposit`` for the
        return contract.
        """
        tx_fn = self._market().functions.permitBuy(
            permit.tokenId,
            permit.deadline,
            permit.v,
            bytes.fromhex(permit.r[2:]),
            bytes.fromhex(permit.s[2:]),
        )
        return await self._submit(
            tx_fn,
            permit_type=PurchasePermit.permit_type,
            expected_sender=permit.buyer,
            to_address=self.contracts.market,
            wait=wait,
        )

    async def _submit(
        self,
        tx_fn: Any,
        *,
        permit_type: str,
        expected_sender: str,
        to_address: str,
        wait: bool,
    ) -> EVMTransactionConfirmation:
        if self.account is None:
            raise ConfigurationError("A private key is required to submit permits")

        if expected_sender != self.wallet_address:
            return EVMTransactionConfirmation(
                status=TransactionStatus.INVALID_TRANSACTION,
                error_message=(
                    f"{permit_type} permit must be submitted by {expected_sender}, "
                    f"gateway account is {self.wallet_address}"
                ),
                from_address=self.wallet_address,
                to_address=to_address,
            )

        web3 = self._get_web3_instance()

        # A revert during estimation is the contract rejecting the permit.
        try:
            gas_estimate = await tx_fn.estimate_gas({"from": self.wallet_address})
        except ContractLogicError as e:
            reason = _revert_reason(e)
            rejection = classify_revert(reason, permit_type)
            logger.info(
                "Permit rejected by contract",
                extra={"permit_type": permit_type, "rejection": rejection.value, "reason": reason},
            )
            return EVMTransactionConfirmation(
                status=TransactionStatus.FAILED,
                error_message=f"Contract rejected {permit_type} permit: {reason}",
                rejection=rejection,
                from_address=self.wallet_address,
                to_address=to_address,
            )
        except _RPC_ERRORS as e:
            return EVMTransactionConfirmation(
                status=TransactionStatus.NETWORK_ERROR,
                error_message=f"Gas estimation failed: {e}",
                from_address=self.wallet_address,
                to_address=to_address,
            )

        try:
            gas_price = await web3.eth.gas_price
            tx_nonce = await web3.eth.get_transaction_count(self.wallet_address)
            tx_dict = await tx_fn.build_transaction({
                "from": self.wallet_address,
                "gas": int(gas_estimate * 1.1),
                "gasPrice": gas_price,
                "nonce": tx_nonce,
            })
            signed_tx = self.account.sign_transaction(tx_dict)
        except _RPC_ERRORS as e:
            return EVMTransactionConfirmation(
                status=TransactionStatus.NETWORK_ERROR,
                error_message=f"Failed to build transaction: {e}",
                from_address=self.wallet_address,
                to_address=to_address,
            )

        replay = {"from": self.wallet_address, "to": to_address, "data": tx_dict["data"]}
        return await self._send_and_confirm(
            signed_tx.raw_transaction,
            permit_type=permit_type,
            replay=replay,
            to_address=to_address,
            wait=wait,
        )

    async def _send_and_confirm(
        self,
        raw_transaction: bytes,
        *,
        permit_type: str,
        replay: Dict[str, Any],
        to_address: str,
        wait: bool,
    ) -> EVMTransactionConfirmation:
        """
        Broadcast a signed transaction and, when ``wait`` is set, poll for
        its receipt via ``wait_for_confirmation``.
        """
        try:
            tx_hash = await self._get_web3_instance().eth.send_raw_transaction(raw_transaction)
            tx_hash_hex = to_hex(tx_hash)
        except _RPC_ERRORS as e:
            return EVMTransactionConfirmation(
                status=TransactionStatus.NETWORK_ERROR,
                error_message=f"Failed to broadcast transaction: {e}",
                from_address=self.wallet_address,
                to_address=to_address,
            )

        logger.info("Permit transaction broadcast", extra={"tx_hash": tx_hash_hex, "to": to_address})

        if not wait:
            return EVMTransactionConfirmation(
                status=TransactionStatus.PENDING,
                tx_hash=tx_hash_hex,
                from_address=self.wallet_address,
                to_address=to_address,
            )
        return await self.wait_for_confirmation(tx_hash_hex, permit_type=permit_type, replay=replay)

    async def wait_for_confirmation(
        self,
        tx_hash: str,
        *,
        permit_type: Optional[str] = None,
        replay: Optional[Dict[str, Any]] = None,
    ) -> EVMTransactionConfirmation:
        """
        Poll ``eth_getTransactionReceipt`` until the transaction is mined.

        Transport errors while polling do not end the wait; the hash is
        always part of the result, so a broadcast permit can be watched
        again instead of being resubmitted.

        Args:
            tx_hash: Hash returned at broadcast.
            permit_type: ``"deposit"`` or ``"purchase"``, used to classify a
                mined revert.
            replay: ``from``/``to``/``data`` of the transaction. A reverted
                receipt carries no reason, so the call is replayed against the
                receipt's parent block to obtain one.

        Returns:
            EVMTransactionConfirmation: SUCCESS for receipt status 1, FAILED
                for a mined revert, NETWORK_ERROR when the last poll could not
                reach the node, TIMEOUT after ``max_attempts`` polls.
        """
        web3 = self._get_web3_instance()
        started = time.monotonic()

        receipt = None
        poll_error: Optional[Exception] = None
        for _ in range(self._max_attempts):
            try:
                receipt = await web3.eth.get_transaction_receipt(tx_hash)
                poll_error = None
                if receipt:
                    break
            except TransactionNotFound:
                poll_error = None  # still pending
            except _RPC_ERRORS as e:
                poll_error = e
                logger.warning("Receipt poll failed", extra={"tx_hash": tx_hash, "error": str(e)})
            await asyncio.sleep(self._poll_interval)

        if not receipt:
            if poll_error is not None:
                return EVMTransactionConfirmation(
                    status=TransactionStatus.NETWORK_ERROR,
                    tx_hash=tx_hash,
                    error_message=f"Transaction was broadcast but its receipt could not be read: {poll_error}",
                )
            return EVMTransactionConfirmation(
                status=TransactionStatus.TIMEOUT,
                tx_hash=tx_hash,
                error_message="Transaction confirmation timed out",
            )

        try:
            current_block = await web3.eth.block_number
            confirmations = max(current_block - receipt["blockNumber"], 0)
        except _RPC_ERRORS as e:
            logger.warning("Block number read failed", extra={"tx_hash": tx_hash, "error": str(e)})
            confirmations = 0

        common: Dict[str, Any] = {
            "tx_hash": tx_hash,
            "block_number": receipt["blockNumber"],
            "gas_used": receipt["gasUsed"],
            "confirmations": confirmations,
            "execution_time": time.monotonic() - started,
            "from_address": receipt.get("from"),
            "to_address": receipt.get("to"),
        }

        if receipt.get("status") == 1:
            logger.info("Permit transaction confirmed", extra={"tx_hash": tx_hash, "block": receipt["blockNumber"]})
            return EVMTransactionConfirmation(status=TransactionStatus.SUCCESS, **common)

        rejection = None
        reason = None
        if permit_type is not None and replay is not None:
            reason = await self._replay_revert_reason(replay, receipt["blockNumber"])
            if reason is not None:
                rejection = classify_revert(reason, permit_type)

        logger.info(
            "Permit transaction reverted",
            extra={"tx_hash": tx_hash, "rejection": rejection.value if rejection else None},
        )
        return EVMTransactionConfirmation(
            status=TransactionStatus.FAILED,
            error_message=f"Transaction reverted on-chain: {reason}" if reason else "Transaction reverted on-chain",
            rejection=rejection,
            **common,
        )

    async def _replay_revert_reason(self, replay: Dict[str, Any], block_number: int) -> Optional[str]:
        """Re-run a reverted call on the state it was mined against and return the revert reason."""
        try:
            await self._get_web3_instance().eth.call(replay, max(block_number - 1, 0))
        except ContractLogicError as e:
            return _revert_reason(e)
        except _RPC_ERRORS as e:
            logger.debug("Revert replay failed", extra={"error": str(e)})
        return None
