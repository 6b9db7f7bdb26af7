from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional

from solders.pubkey import Pubkey
from spl.token.constants import ACCOUNT_LEN, MINT_LEN
from spl.token.instructions import get_associated_token_address

from .project_constants import DECIMALS

ACCOUNT_STATE_FROZEN = 2


@dataclass(frozen=True)
class MintInfo:
    address: Pubkey
    mint_authority: Optional[Pubkey]
    supply: int
    decimals: int
    is_initialized: bool
    freeze_authority: Optional[Pubkey]


@dataclass(frozen=True)
class TokenAccount:
    address: Pubkey
    mint: Pubkey
    owner: Pubkey
    amount: int
    is_frozen: bool = False


def _optional_key(tag: bytes, key: bytes) -> Optional[Pubkey]:
    (present,) = struct.unpack("<I", tag)
    return Pubkey(key) if present else None


def parse_mint(address: Pubkey, data: bytes) -> MintInfo:
    """
    Mint layout (82 bytes):
    AuthorityOption(0-4) | MintAuthority(4-36) | Supply(36-44) | Decimals(44)
    | Initialized(45) | FreezeOption(46-50) | FreezeAuthority(50-82)
    """
    if len(data) < MINT_LEN:
        raise ValueError(f"Mint {address}: expected {MINT_LEN} bytes, got {len(data)}")

    supply = struct.unpack("<Q", data[36:44])[0]
    return MintInfo(
        address=address,
        mint_authority=_optional_key(data[0:4], data[4:36]),
        supply=supply,
        decimals=data[44],
        is_initialized=bool(data[45]),
        freeze_authority=_optional_key(data[46:50], data[50:82]),
    )


def parse_token_account(address: Pubkey, data: bytes) -> TokenAccount:
    """
    Token account layout (165 bytes, only the fields we read):
    Mint(0-32) | Owner(32-64) | Amount(64-72) | ... | State(108)
    """
    if len(data) < ACCOUNT_LEN:
        raise ValueError(
            f"Token account {address}: expected {ACCOUNT_LEN} bytes, got {len(data)}"
        )

    amount = struct.unpack("<Q", data[64:72])[0]
    return TokenAccount(
        address=address,
        mint=Pubkey(data[0:32]),
        owner=Pubkey(data[32:64]),
        amount=amount,
        is_frozen=data[108] == ACCOUNT_STATE_FROZEN,
    )


def associated_token_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    return get_associated_token_address(owner, mint)


def to_tokens(raw_amount: int, decimals: int = DECIMALS) -> float:
    return raw_amount / (10**decimals)
