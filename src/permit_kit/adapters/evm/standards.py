from dataclasses import dataclass, field
from typing import Dict, Any, List, Union

from eth_abi import encode
from eth_account.messages import encode_typed_data
from eth_utils import is_address, keccak, to_checksum_address

from .constants import DOMAIN_VERSION


# -----------------------------
# EIP-712 Domain
# -----------------------------

EIP712_DOMAIN_TYPE: List[Dict[str, str]] = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

EIP712_DOMAIN_TYPEHASH: bytes = keccak(
    text="EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)


@dataclass
class EIP712Domain:
    """
    EIP-712 domain separator.
    Binds a signature to one contract on one chain, so it cannot be replayed
    against another contract or network.
    """
    name: str
    version: str
    chainId: int
    verifyingContract: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chainId,
            "verifyingContract": self.verifyingContract,
        }


def build_domain(chain_id: int, contract_address: str, contract_name: str) -> EIP712Domain:
    """
    Build the EIP-712 domain for a verifying contract.

    The chain id must be the live one from the connected network; domains are
    never cached across calls. ``contract_name`` is case-sensitive and must
    match the name the contract was deployed with ("HTToken", "NFTMarket").

    Args:
        chain_id: Current EIP-155 chain id.
        contract_address: Verifying contract address (any case).
        contract_name: Domain name declared by the contract.

    Returns:
        EIP712Domain with version "1" and a checksummed verifying contract.

    Raises:
        ValueError: If ``contract_address`` is not a 20-byte hex address.
    """
    if not is_address(contract_address):
        raise ValueError(f"Invalid verifying contract address: {contract_address!r}")
    return EIP712Domain(
        name=contract_name,
        version=DOMAIN_VERSION,
        chainId=int(chain_id),
        verifyingContract=to_checksum_address(contract_address),
    )


def domain_separator(domain: EIP712Domain) -> bytes:
    """
    Compute the 32-byte domain separator, ``hashStruct(EIP712Domain)``.

    This is the value a contract exposes as ``DOMAIN_SEPARATOR()``.
    """
    return keccak(
        encode(
            ["bytes32", "bytes32", "bytes32", "uint256", "address"],
            [
                EIP712_DOMAIN_TYPEHASH,
                keccak(text=domain.name),
                keccak(text=domain.version),
                domain.chainId,
                to_checksum_address(domain.verifyingContract),
            ],
        )
    )


# -----------------------------
# ERC-2612: Permit (deposit permits)
# -----------------------------

PERMIT_PRIMARY_TYPE = "Permit"

PERMIT_TYPES: Dict[str, List[Dict[str, str]]] = {
    "Permit": [
        {"name": "owner", "type": "address"},
        {"name": "spender", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "deadline", "type": "uint256"},
    ]
}


@dataclass
class PermitMessage:
    """
    Message payload of an ERC-2612 ``Permit``.

    Attributes:
        owner: Token holder granting the allowance.
        spender: Address allowed to pull the tokens (the TokenBank).
        value: Allowance in smallest units (uint256).
        nonce: Owner's current nonce on the token contract.
        deadline: Unix timestamp after which the permit is rejected.
    """
    owner: str
    spender: str
    value: int
    nonce: int
    deadline: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "spender": self.spender,
            "value": self.value,
            "nonce": self.nonce,
            "deadline": self.deadline,
        }


def build_permit_message(owner: str, spender: str, value: int, nonce: int, deadline: int) -> PermitMessage:
    """Build a Permit message. No range checks; a zero value or past deadline is legal here."""
    return PermitMessage(
        owner=to_checksum_address(owner),
        spender=to_checksum_address(spender),
        value=int(value),
        nonce=int(nonce),
        deadline=int(deadline),
    )


@dataclass
class PermitTypedData:
    """
    Container for ERC-2612 typed data usable with EIP-712 signing routines.

    ``to_dict()`` produces the { types, primaryType, domain, message } layout
    consumed by ``eth_account`` and ``eth_signTypedData_v4``.
    """
    domain: EIP712Domain
    message: PermitMessage

    primary_type: str = PERMIT_PRIMARY_TYPE

    types: Dict[str, List[Dict[str, str]]] = field(
        default_factory=lambda: {"EIP712Domain": list(EIP712_DOMAIN_TYPE), **PERMIT_TYPES}
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "types": self.types,
            "primaryType": self.primary_type,
            "domain": self.domain.to_dict(),
            "message": self.message.to_dict(),
        }


# -----------------------------
# NFTMarket: PermitBuy (purchase permits)
# -----------------------------

PERMIT_BUY_PRIMARY_TYPE = "PermitBuy"

PERMIT_BUY_TYPES: Dict[str, List[Dict[str, str]]] = {
    "PermitBuy": [
        {"name": "buyer", "type": "address"},
        {"name": "tokenId", "type": "uint256"},
        {"name": "deadline", "type": "uint256"},
    ]
}


@dataclass
class PermitBuyMessage:
    """
    Message payload of an NFTMarket ``PermitBuy``.

    The message carries no nonce: the market marks each permit as used.
    The EIP-712 field name is ``tokenId``; the attribute here is ``token_id``
    and ``to_dict()`` maps it back.

    Attributes:
        buyer: Address allowed to buy.
        token_id: Listed token id (uint256).
        deadline: Unix timestamp after which the permit is rejected.
    """
    buyer: str
    token_id: int
    deadline: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "buyer": self.buyer,
            "tokenId": self.token_id,
            "deadline": self.deadline,
        }


def build_permit_buy_message(buyer: str, token_id: int, deadline: int) -> PermitBuyMessage:
    return PermitBuyMessage(
        buyer=to_checksum_address(buyer),
        token_id=int(token_id),
        deadline=int(deadline),
    )


@dataclass
class PermitBuyTypedData:
    """Container for NFTMarket ``PermitBuy`` typed data; see PermitTypedData."""
    domain: EIP712Domain
    message: PermitBuyMessage

    primary_type: str = PERMIT_BUY_PRIMARY_TYPE

    types: Dict[str, List[Dict[str, str]]] = field(
        default_factory=lambda: {"EIP712Domain": list(EIP712_DOMAIN_TYPE), **PERMIT_BUY_TYPES}
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "types": self.types,
            "primaryType": self.primary_type,
            "domain": self.domain.to_dict(),
            "message": self.message.to_dict(),
        }


# -----------------------------
# Digest
# -----------------------------

TypedData = Union[PermitTypedData, PermitBuyTypedData, Dict[str, Any]]


def hash_typed_data(typed_data: TypedData) -> bytes:
    """
    Compute the EIP-712 digest that is actually signed.

    ``keccak256(0x19 0x01 || domainSeparator || hashStruct(message))``

    Args:
        typed_data: A typed-data container or its ``to_dict()`` form.

    Returns:
        bytes: 32-byte digest.
    """
    full_message = typed_data if isinstance(typed_data, dict) else typed_data.to_dict()
    signable = encode_typed_data(full_message=full_message)
    return keccak(b"\x19" + signable.version + signable.header + signable.body)
