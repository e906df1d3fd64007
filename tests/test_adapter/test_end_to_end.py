"""
Permit Flow End-to-End Tests

Drives both permit flows through PermitIssuer, the interchange artifact,
the pure verifiers and the simulated contracts:
- deposit: issue -> submit accepted -> resubmit rejected as stale nonce;
  a permit signed for a nonce ahead of the token is stale as well
- purchase: issue -> submit accepted -> resubmit rejected as consumed;
  non-whitelisted issuer and expiry rejected

Usage:
    pytest tests/test_adapter/test_end_to_end.py -v
"""

import pytest

from mocks import (
    MOCK_BUYER_ADDRESS,
    MOCK_CHAIN_ID,
    MOCK_CONTRACTS,
    MOCK_CURRENT_TIME,
    MOCK_ISSUER_ADDRESS,
    MOCK_ISSUER_PRIVATE_KEY,
    MOCK_MARKET_ADDRESS,
    MOCK_ONE_TOKEN,
    MOCK_OWNER_ADDRESS,
    MOCK_OWNER_PRIVATE_KEY,
    MOCK_STRANGER_PRIVATE_KEY,
    MOCK_TOKEN_ADDRESS,
    SimulatedPermitContracts,
    create_signed_deposit_permit,
)

from permit_kit.adapters.evm.issuers import PermitIssuer
from permit_kit.adapters.evm.schemas import DepositPermit, Listing, PurchasePermit
from permit_kit.adapters.evm.signatures import LocalAccountSigner
from permit_kit.adapters.evm.standards import build_domain
from permit_kit.adapters.evm.verifies import verify_deposit_permit, verify_purchase_permit
from permit_kit.schemas.bases import TransactionStatus, VerificationStatus


@pytest.fixture
def chain():
    return SimulatedPermitContracts(
        whitelist=[MOCK_ISSUER_ADDRESS],
        block_timestamp=MOCK_CURRENT_TIME,
        listings=[Listing(tokenId=5, seller=MOCK_OWNER_ADDRESS, price=MOCK_ONE_TOKEN, active=True)],
    )


def _issuer(private_key, chain):
    return PermitIssuer(LocalAccountSigner(private_key), chain, MOCK_CONTRACTS, clock=lambda: MOCK_CURRENT_TIME)


class TestDepositFlow:
    """Deposit permit: nonce 0 accepted once, replay is stale."""

    @pytest.mark.asyncio
    async def test_accepted_then_stale(self, chain):
        issued = await _issuer(MOCK_OWNER_PRIVATE_KEY, chain).issue_deposit_permit(MOCK_ONE_TOKEN)
        assert issued.nonce == 0

        # Travels as JSON between issuer and submitter
        permit = DepositPermit.from_artifact(issued.to_artifact_json())

        first = await chain.permit_deposit(permit)
        assert first.status == TransactionStatus.SUCCESS
        assert chain.nonces[MOCK_OWNER_ADDRESS] == 1
        assert chain.deposits[MOCK_OWNER_ADDRESS] == MOCK_ONE_TOKEN

        replay = await chain.permit_deposit(permit)
        assert replay.status == TransactionStatus.FAILED
        assert replay.rejection == VerificationStatus.STALE_NONCE
        assert chain.deposits[MOCK_OWNER_ADDRESS] == MOCK_ONE_TOKEN

    @pytest.mark.asyncio
    async def test_future_nonce_rejected_as_stale(self, chain):
        # Correctly signed by the owner, but for nonce 1 while the token still holds 0.
        ahead = create_signed_deposit_permit(MOCK_OWNER_PRIVATE_KEY, nonce=1)
        assert chain.nonces.get(MOCK_OWNER_ADDRESS, 0) == 0

        confirmation = await chain.permit_deposit(DepositPermit.from_artifact(ahead.to_artifact_json()))

        assert confirmation.status == TransactionStatus.FAILED
        assert confirmation.rejection == VerificationStatus.STALE_NONCE
        assert MOCK_OWNER_ADDRESS not in chain.nonces
        assert MOCK_OWNER_ADDRESS not in chain.deposits

        current = await _issuer(MOCK_OWNER_PRIVATE_KEY, chain).issue_deposit_permit(MOCK_ONE_TOKEN)
        assert current.nonce == 0
        assert (await chain.permit_deposit(current)).is_success()

    @pytest.mark.asyncio
    async def test_pure_check_after_nonce_moved(self, chain):
        permit = await _issuer(MOCK_OWNER_PRIVATE_KEY, chain).issue_deposit_permit(MOCK_ONE_TOKEN)
        await chain.permit_deposit(permit)

        domain = build_domain(MOCK_CHAIN_ID, MOCK_TOKEN_ADDRESS, "HTToken")
        result = verify_deposit_permit(
            permit, domain=domain, on_chain_nonce=chain.nonces[MOCK_OWNER_ADDRESS], current_time=MOCK_CURRENT_TIME
        )
        assert result.status == VerificationStatus.STALE_NONCE

    @pytest.mark.asyncio
    async def test_next_permit_uses_next_nonce(self, chain):
        issuer = _issuer(MOCK_OWNER_PRIVATE_KEY, chain)
        await chain.permit_deposit(await issuer.issue_deposit_permit(MOCK_ONE_TOKEN))

        second = await issuer.issue_deposit_permit(2 * MOCK_ONE_TOKEN)
        assert second.nonce == 1
        assert (await chain.permit_deposit(second)).is_success()
        assert chain.deposits[MOCK_OWNER_ADDRESS] == 3 * MOCK_ONE_TOKEN

    @pytest.mark.asyncio
    async def test_expired_deposit_rejected(self, chain):
        permit = await _issuer(MOCK_OWNER_PRIVATE_KEY, chain).issue_deposit_permit(MOCK_ONE_TOKEN)
        chain.advance(3601)
        confirmation = await chain.permit_deposit(permit)
        assert confirmation.rejection == VerificationStatus.EXPIRED
        assert MOCK_OWNER_ADDRESS not in chain.nonces


class TestPurchaseFlow:
    """Purchase permit: accepted once, replay consumed."""

    @pytest.mark.asyncio
    async def test_accepted_then_consumed(self, chain):
        issued = await _issuer(MOCK_ISSUER_PRIVATE_KEY, chain).issue_purchase_permit(MOCK_BUYER_ADDRESS, 5)
        permit = PurchasePermit.from_artifact(issued.to_artifact())

        domain = build_domain(MOCK_CHAIN_ID, MOCK_MARKET_ADDRESS, "NFTMarket")
        pre = verify_purchase_permit(
            permit, domain=domain, is_whitelisted=chain.whitelist, consumed=False, current_time=MOCK_CURRENT_TIME
        )
        assert pre.is_success()

        first = await chain.permit_buy(permit)
        assert first.is_success()
        assert (await chain.get_listings())[0].active is False

        replay = await chain.permit_buy(permit)
        assert replay.status == TransactionStatus.FAILED
        assert replay.rejection == VerificationStatus.ALREADY_CONSUMED

    @pytest.mark.asyncio
    async def test_non_whitelisted_issuer(self, chain):
        permit = await _issuer(MOCK_STRANGER_PRIVATE_KEY, chain).issue_purchase_permit(MOCK_BUYER_ADDRESS, 5)
        confirmation = await chain.permit_buy(permit)
        assert confirmation.rejection == VerificationStatus.UNAUTHORIZED_SIGNER
        assert chain.used == set()

    @pytest.mark.asyncio
    async def test_accepted_at_deadline(self, chain):
        permit = await _issuer(MOCK_ISSUER_PRIVATE_KEY, chain).issue_purchase_permit(MOCK_BUYER_ADDRESS, 5)
        chain.advance(3600)
        assert chain.block_timestamp == permit.deadline
        assert (await chain.permit_buy(permit)).is_success()

    @pytest.mark.asyncio
    async def test_expired_after_deadline(self, chain):
        permit = await _issuer(MOCK_ISSUER_PRIVATE_KEY, chain).issue_purchase_permit(MOCK_BUYER_ADDRESS, 5)
        chain.advance(3601)
        confirmation = await chain.permit_buy(permit)
        assert confirmation.rejection == VerificationStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_permit_is_bound_to_buyer(self, chain):
        permit = await _issuer(MOCK_ISSUER_PRIVATE_KEY, chain).issue_purchase_permit(MOCK_BUYER_ADDRESS, 5)
        confirmation = await chain.permit_buy(permit, sender=MOCK_OWNER_ADDRESS)
        assert confirmation.rejection == VerificationStatus.UNAUTHORIZED_SIGNER
