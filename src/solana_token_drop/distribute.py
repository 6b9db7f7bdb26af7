from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .explorer import address_url, tx_url
from .ledger import TokenLedger
from .project_constants import (
    DECIMALS,
    DEFAULT_CLUSTER,
    INITIAL_SUPPLY,
    RECEIVERS_AMOUNT,
)
from .token_accounts import MintInfo, TokenAccount

log = logging.getLogger("distribute")


class AddressError(ValueError):
    pass


@dataclass(frozen=True)
class Delivery:
    recipient: Pubkey
    account: Pubkey
    amount: int
    signature: str


@dataclass
class DistributionReport:
    mint: Pubkey
    mint_info: MintInfo
    operator_account: Pubkey
    issued: int
    issue_signature: str
    deliveries: List[Delivery] = field(default_factory=list)


def parse_address(text: str) -> Pubkey:
    try:
        return Pubkey.from_string(text)
    except ValueError as e:
        raise AddressError(f"Invalid address {text!r}: {e}") from e


def create_new_mint(
    ledger: TokenLedger,
    mint_authority: Pubkey,
    freeze_authority: Optional[Pubkey],
    decimals: int,
    cluster: str = DEFAULT_CLUSTER,
) -> Pubkey:
    addr = ledger.create_mint(mint_authority, freeze_authority, decimals)
    print(f"Mint link: {address_url(addr, cluster)}")
    return addr


def create_token_account(
    ledger: TokenLedger,
    mint: Pubkey,
    owner: Pubkey,
    cluster: str = DEFAULT_CLUSTER,
) -> TokenAccount:
    account = ledger.get_or_create_account(mint, owner)
    print(f"Token Account: {address_url(account.address, cluster)}")
    return account


def mint_tokens(
    ledger: TokenLedger,
    mint: Pubkey,
    destination: Pubkey,
    authority: Keypair,
    amount: int,
    cluster: str = DEFAULT_CLUSTER,
) -> str:
    signature = ledger.mint_to(mint, destination, authority, amount)
    print(f"Mint Token Transaction: {tx_url(signature, cluster)}")
    return signature


def transfer_tokens(
    ledger: TokenLedger,
    source: Pubkey,
    destination: Pubkey,
    owner: Keypair,
    amount: int,
    cluster: str = DEFAULT_CLUSTER,
) -> str:
    signature = ledger.transfer(source, destination, owner, amount)
    print(f"Transfer Transaction: {tx_url(signature, cluster)}")
    return signature


def run_distribution(
    ledger: TokenLedger,
    addresses: Sequence[str],
    cluster: str = DEFAULT_CLUSTER,
) -> DistributionReport:
    """
    Create a fresh mint, issue INITIAL_SUPPLY to the operator and send
    RECEIVERS_AMOUNT to each address in order.

    The operator (ledger.payer) pays every fee and is both mint authority and
    transfer authority. Each step is confirmed before the next one starts; the
    first failure aborts the run.
    """
    operator = ledger.payer

    mint = create_new_mint(ledger, operator.pubkey(), None, DECIMALS, cluster)

    mint_info = ledger.get_mint(mint)
    log.debug("Mint decimals=%d supply=%d", mint_info.decimals, mint_info.supply)

    operator_account = create_token_account(ledger, mint, operator.pubkey(), cluster)

    issue_signature = mint_tokens(
        ledger, mint, operator_account.address, operator, INITIAL_SUPPLY, cluster
    )

    report = DistributionReport(
        mint=mint,
        mint_info=mint_info,
        operator_account=operator_account.address,
        issued=INITIAL_SUPPLY,
        issue_signature=issue_signature,
    )

    # TODO: pack several transfers per transaction instead of one each
    for address in addresses:
        print(f"Sending {RECEIVERS_AMOUNT} to {address}")
        recipient = parse_address(address)
        receiver_account = create_token_account(ledger, mint, recipient, cluster)
        signature = transfer_tokens(
            ledger,
            operator_account.address,
            receiver_account.address,
            operator,
            RECEIVERS_AMOUNT,
            cluster,
        )
        report.deliveries.append(
            Delivery(
                recipient=recipient,
                account=receiver_account.address,
                amount=RECEIVERS_AMOUNT,
                signature=signature,
            )
        )

    log.info("Delivered to %d recipient(s)", len(report.deliveries))
    return report
