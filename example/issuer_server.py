from permit_kit.adapters.evm import PermitIssuer
from permit_kit.servers import PermitIssuerServer, create_api_key, generate_token


# Reads HTTOKEN_ADDRESS / TOKENBANK_ADDRESS / NFTMARKET_ADDRESS, EVM_RPC_URL
# and EVM_PRIVATE_KEY (the whitelisted issuer key) from the environment or .env
issuer = PermitIssuer.from_env(chain_id=31337)

api_key = create_api_key(prefix="issuer_")
token_access = generate_token(
    private_key=api_key,
    expires_in=6000,
)
print("Generated Token:", f"Bearer {token_access}")

app = PermitIssuerServer(
    issuer,
    api_key=api_key,
    title="NFT Market Permit Issuer",
)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="localhost", port=8000, log_level="debug")
