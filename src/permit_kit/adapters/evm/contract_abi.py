"""
HTToken / TokenBank / NFTMarket Contract ABI Module

This module provides the minimal ABI fragments the permit flows touch:
the ERC-2612 nonce and domain separator of the token, the bank's
``permitDeposit`` entry point, and the market's ``permitBuy``, listings and
whitelist reads.

Usage:
    from permit_kit.adapters.evm.contract_abi import (
        get_token_abi,
        get_bank_abi,
        get_market_abi,
    )

    token = w3.eth.contract(address=token_address, abi=get_token_abi())
    nonce = await token.functions.nonces(owner).call()
"""

from typing import Dict, Any, List


def get_nonces_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ERC-2612 `nonces(owner)`.

    Returns:
        List[Dict[str, Any]]: ABI for the `nonces` function.
    """
    return [
        {
            "name": "nonces",
            "type": "function",
            "stateMutability": "view",
            "inputs": [{"name": "owner", "type": "address"}],
            "outputs": [{"name": "", "type": "uint256"}],
        }
    ]


def get_domain_separator_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ERC-2612 `DOMAIN_SEPARATOR()`.

    Example:
        contract = w3.eth.contract(address=token_address, abi=get_domain_separator_abi())
        separator = await contract.functions.DOMAIN_SEPARATOR().call()
        assert separator == domain_separator(build_domain(chain_id, token_address, "HTToken"))
    """
    return [
        {
            "name": "DOMAIN_SEPARATOR",
            "type": "function",
            "stateMutability": "view",
            "inputs": [],
            "outputs": [{"name": "", "type": "bytes32"}],
        }
    ]


def get_permit_errors_abi() -> List[Dict[str, Any]]:
    """
    Get ABI entries for the OpenZeppelin ERC-2612 custom errors.

    The token reverts with these from inside ``permitDeposit``.
    """
    return [
        {
            "name": "ERC2612ExpiredSignature",
            "type": "error",
            "inputs": [{"name": "deadline", "type": "uint256"}],
        },
        {
            "name": "ERC2612InvalidSigner",
            "type": "error",
            "inputs": [
                {"name": "signer", "type": "address"},
                {"name": "owner", "type": "address"},
            ],
        },
    ]


def get_permit_deposit_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for TokenBank `permitDeposit(value, deadline, v, r, s)`.

    The bank calls the token's `permit` with `msg.sender` as owner and itself
    as spender, then pulls `value` tokens.

    Returns:
        List[Dict[str, Any]]: ABI for the `permitDeposit` function.
    """
    return [
        {
            "name": "permitDeposit",
            "type": "function",
            "stateMutability": "nonpayable",
            "inputs": [
                {"name": "value", "type": "uint256"},
                {"name": "deadline", "type": "uint256"},
                {"name": "v", "type": "uint8"},
                {"name": "r", "type": "bytes32"},
                {"name": "s", "type": "bytes32"},
            ],
            "outputs": [],
        }
    ]


def get_balances_abi() -> List[Dict[str, Any]]:
    """Get ABI for TokenBank `balances(account)`."""
    return [
        {
            "name": "balances",
            "type": "function",
            "stateMutability": "view",
            "inputs": [{"name": "account", "type": "address"}],
            "outputs": [{"name": "", "type": "uint256"}],
        }
    ]


def get_permit_buy_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for NFTMarket `permitBuy(tokenId, deadline, v, r, s)`.

    The buyer is `msg.sender`; the signature must come from a whitelisted
    issuer.
    """
    return [
        {
            "name": "permitBuy",
            "type": "function",
            "stateMutability": "nonpayable",
            "inputs": [
                {"name": "tokenId", "type": "uint256"},
                {"name": "deadline", "type": "uint256"},
                {"name": "v", "type": "uint8"},
                {"name": "r", "type": "bytes32"},
                {"name": "s", "type": "bytes32"},
            ],
            "outputs": [],
        }
    ]


def get_all_listings_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for NFTMarket `getAllListings()`.

    The call returns four parallel arrays: token ids, sellers, prices and
    active flags.
    """
    return [
        {
            "name": "getAllListings",
            "type": "function",
            "stateMutability": "view",
            "inputs": [],
            "outputs": [
                {"name": "tokenIds", "type": "uint256[]"},
                {"name": "sellers", "type": "address[]"},
                {"name": "prices", "type": "uint256[]"},
                {"name": "actives", "type": "bool[]"},
            ],
        }
    ]


def get_whitelist_abi() -> List[Dict[str, Any]]:
    """Get ABI for NFTMarket `isWhitelisted(account)`."""
    return [
        {
            "name": "isWhitelisted",
            "type": "function",
            "stateMutability": "view",
            "inputs": [{"name": "account", "type": "address"}],
            "outputs": [{"name": "", "type": "bool"}],
        }
    ]


def get_token_abi() -> List[Dict[str, Any]]:
    """ABI fragments used on the HTToken contract."""
    return get_nonces_abi() + get_domain_separator_abi() + get_permit_errors_abi()


def get_bank_abi() -> List[Dict[str, Any]]:
    """ABI fragments used on the TokenBank contract."""
    return get_permit_deposit_abi() + get_balances_abi() + get_permit_errors_abi()


def get_market_abi() -> List[Dict[str, Any]]:
    """ABI fragments used on the NFTMarket contract."""
    return (
        get_permit_buy_abi()
        + get_all_listings_abi()
        + get_whitelist_abi()
        + get_domain_separator_abi()
    )
