"""
EVM Chain and Contract Configuration

Provides access to the contracts the permits are bound to (HTToken, TokenBank,
NFTMarket), the built-in chain table, environment-aware RPC URL construction,
and the token amount conversions used when issuing deposit permits.
"""

import os
from typing import Dict, Optional, Union
from decimal import Decimal, InvalidOperation, localcontext
from pydantic import BaseModel, Field, field_validator

from eth_utils import is_address, to_checksum_address
import dotenv

from ...engine.exceptions import ConfigurationError

dotenv.load_dotenv()


#: EIP-712 domain version shared by both permit kinds.
DOMAIN_VERSION: str = "1"

#: Domain name of the ERC-2612 token (deposit permits).
TOKEN_DOMAIN_NAME: str = "HTToken"

#: Domain name of the marketplace (purchase permits).
MARKET_DOMAIN_NAME: str = "NFTMarket"

#: Seconds added to "now" when the caller does not choose a deadline.
DEFAULT_VALIDITY_WINDOW: int = 3600

#: HTToken uses the ERC-20 default of 18 decimals.
DEFAULT_TOKEN_DECIMALS: int = 18

UINT256_MAX: int = 2 ** 256 - 1

# Enough significant digits for any uint256 value
_DECIMAL_PRECISION = 100


class EvmChainConfig(BaseModel):
    """EVM network configuration."""
    chain_id: int
    name: str = Field(..., description="Human-readable network name")
    rpc_url: Optional[str] = Field(None, description="JSON-RPC endpoint URL template")
    public_rpc_url: str = Field(..., description="Public RPC endpoint (fallback when no infra key)")


class PermitContracts(BaseModel):
    """
    Addresses and EIP-712 domain names of the three contracts.

    Attributes:
        token: HTToken address; verifying contract of deposit permits
        bank: TokenBank address; spender of deposit permits
        market: NFTMarket address; verifying contract of purchase permits
        token_name: Domain name of the token (default "HTToken")
        market_name: Domain name of the market (default "NFTMarket")
    """
    token: str = Field(..., description="HTToken contract address")
    bank: str = Field(..., description="TokenBank contract address")
    market: str = Field(..., description="NFTMarket contract address")
    token_name: str = Field(default=TOKEN_DOMAIN_NAME)
    market_name: str = Field(default=MARKET_DOMAIN_NAME)

    @field_validator("token", "bank", "market")
    @classmethod
    def _checksum(cls, value: str) -> str:
        if not isinstance(value, str) or not is_address(value):
            raise ValueError(f"Invalid contract address: {value!r}")
        return to_checksum_address(value)

    @classmethod
    def from_env(cls) -> "PermitContracts":
        """
        Load contract addresses from the environment.

        Environment Variables:
            - HTTOKEN_ADDRESS
            - TOKENBANK_ADDRESS
            - NFTMARKET_ADDRESS

        Raises:
            ConfigurationError: If any address is missing or invalid.
        """
        env_names = {
            "token": "HTTOKEN_ADDRESS",
            "bank": "TOKENBANK_ADDRESS",
            "market": "NFTMARKET_ADDRESS",
        }
        values = {}
        for field, env_name in env_names.items():
            value = os.getenv(env_name)
            if not value:
                raise ConfigurationError(f"{env_name} is not set")
            if not is_address(value):
                raise ConfigurationError(f"{env_name} is not a valid address: {value!r}")
            values[field] = value
        return cls(**values)


# Each chain carries an optional premium RPC template (with {RPC_KEYS}
# placeholder) and a public fallback used when no infra key is configured.
_EVM_CHAINS_DATA: Dict[int, Dict] = {
    31337: {
        "name": "Local Anvil/Hardhat",
        "rpc_url": None,
        "public_rpc_url": "http://127.0.0.1:8545",
    },
    11155111: {
        "name": "Sepolia",
        "rpc_url": "https://sepolia.infura.io/v3/{RPC_KEYS}",
        "public_rpc_url": "https://ethereum-sepolia-rpc.publicnode.com",
    },
    1: {
        "name": "Ethereum Mainnet",
        "rpc_url": "https://mainnet.infura.io/v3/{RPC_KEYS}",
        "public_rpc_url": "https://ethereum-rpc.publicnode.com",
    },
}


def get_chain_config(chain_id: int) -> Optional[EvmChainConfig]:
    """
    Look up a built-in chain configuration.

    Returns:
        EvmChainConfig, or None for chains outside the built-in table.
    """
    data = _EVM_CHAINS_DATA.get(chain_id)
    if data is None:
        return None
    return EvmChainConfig(chain_id=chain_id, **data)


def get_rpc_url(chain_id: int, infra_key: Optional[str] = None) -> str:
    """
    Resolve the RPC URL for a built-in chain.

    The premium template is used when an infra key is available; otherwise
    the public endpoint.

    Raises:
        ConfigurationError: If the chain is not in the built-in table.
    """
    config = get_chain_config(chain_id)
    if config is None:
        raise ConfigurationError(
            f"Chain {chain_id} is not configured; pass an explicit RPC URL"
        )
    if infra_key and config.rpc_url:
        return config.rpc_url.replace("{RPC_KEYS}", infra_key)
    return config.public_rpc_url


def get_private_key_from_env() -> Optional[str]:
    """
    Load the EVM private key from the environment.

    Environment Variable:
        - EVM_PRIVATE_KEY: 0x-prefixed hex private key

    Returns:
        str: Private key from environment, or None if not configured

    Note:
        The private key should be stored securely in environment variables
        and never committed to version control.
    """
    return os.getenv("EVM_PRIVATE_KEY")


def get_infra_key_from_env() -> Optional[str]:
    """
    Load the RPC infrastructure API key (e.g., Infura) from EVM_INFRA_KEY.

    If unset, public RPC endpoints are used.
    """
    return os.getenv("EVM_INFRA_KEY")


def get_rpc_url_from_env(chain_id: Optional[int] = None) -> str:
    """
    Resolve the RPC URL from the environment.

    EVM_RPC_URL wins when set; otherwise the built-in table entry for
    ``chain_id`` is used together with EVM_INFRA_KEY.

    Raises:
        ConfigurationError: If neither source yields a URL.
    """
    url = os.getenv("EVM_RPC_URL")
    if url:
        return url
    if chain_id is None:
        raise ConfigurationError("EVM_RPC_URL is not set and no chain id was given")
    return get_rpc_url(chain_id, get_infra_key_from_env())


def get_validity_window_from_env() -> int:
    """
    Read PERMIT_VALIDITY_WINDOW (seconds), defaulting to one hour.

    Raises:
        ConfigurationError: If the value is not a positive integer.
    """
    raw = os.getenv("PERMIT_VALIDITY_WINDOW")
    if not raw:
        return DEFAULT_VALIDITY_WINDOW
    try:
        window = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"PERMIT_VALIDITY_WINDOW must be an integer, got {raw!r}") from exc
    if window <= 0:
        raise ConfigurationError("PERMIT_VALIDITY_WINDOW must be positive")
    return window


def amount_to_value(amount: Union[int, str, Decimal], decimals: int = DEFAULT_TOKEN_DECIMALS) -> int:
    """Convert a human-readable token `amount` into a smallest-unit integer `value`.

    ``amount_to_value("1")`` is ``10**18`` for an 18-decimals token.

    Args:
        amount: Human-readable amount. Accepts int/str/Decimal.
        decimals: Token decimals (default 18).

    Returns:
        int: Smallest-unit integer value.

    Raises:
        ValueError: If inputs are invalid or the amount cannot be represented in smallest units.
    """
    if not isinstance(decimals, int) or decimals < 0:
        raise ValueError("decimals must be a non-negative int")
    if isinstance(amount, (bool, float)):
        raise ValueError("amount must be an int, str or Decimal; floats lose precision")

    try:
        dec_amount = amount if isinstance(amount, Decimal) else Decimal(str(amount).strip())
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Invalid amount: {amount!r}") from e

    if not dec_amount.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")
    if dec_amount < 0:
        raise ValueError("amount must be non-negative")

    with localcontext() as ctx:
        ctx.prec = _DECIMAL_PRECISION
        scaled = dec_amount.scaleb(decimals)

    # Require exact smallest-unit representability (no fractional smallest units)
    if scaled != scaled.to_integral_value():
        raise ValueError(
            f"amount {amount!r} is not representable with decimals={decimals} "
            f"(would create fractional smallest units)"
        )

    value = int(scaled)
    if value > UINT256_MAX:
        raise ValueError("amount exceeds uint256 range")
    return value


def value_to_amount(value: Union[int, str, Decimal], decimals: int = DEFAULT_TOKEN_DECIMALS) -> Decimal:
    """Convert a smallest-unit integer `value` into a human-readable `amount`.

    Args:
        value: Smallest-unit integer value. Accepts int/str/Decimal.
        decimals: Token decimals (default 18).

    Returns:
        Decimal: Human-readable amount, exact.

    Raises:
        ValueError: If inputs are invalid.
    """
    if not isinstance(decimals, int) or decimals < 0:
        raise ValueError("decimals must be a non-negative int")

    try:
        dec_value = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Invalid value: {value!r}") from e

    if not dec_value.is_finite() or dec_value < 0:
        raise ValueError("value must be a non-negative number")

    if dec_value != dec_value.to_integral_value():
        raise ValueError("value must be an integer in smallest units")

    with localcontext() as ctx:
        ctx.prec = _DECIMAL_PRECISION
        return dec_value.scaleb(-decimals)
