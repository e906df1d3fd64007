from permit_kit.adapters.evm import EVMPermitGateway
from permit_kit.clients import PermitIssuerClient
import httpx

token = "eyJlxxxxxx"  # Replace with the token printed by issuer_server.py
buyer_pk = "0xxxx"    # Buyer key; permitBuy is sent from this account

# Contract addresses and EVM_RPC_URL come from the environment or .env
gateway = EVMPermitGateway.from_env(chain_id=31337, private_key=buyer_pk)


async def main():
    async with PermitIssuerClient(
        base_url="http://localhost:8000",
        api_token=token,
        timeout=httpx.Timeout(60.0, read=120.0)
    ) as client:
        listings = [listing for listing in await client.get_listings() if listing.active]
        if not listings:
            return None
        permit = await client.request_purchase_permit(gateway.wallet_address, listings[0].tokenId)

    check = await gateway.preflight_purchase(permit)
    if not check.is_success():
        print("Permit rejected before submission:", check.get_error_message())
        return None
    return await gateway.permit_buy(permit)


if __name__ == "__main__":
    import asyncio
    confirmation = asyncio.run(main())
    print("Confirmation:", confirmation)
