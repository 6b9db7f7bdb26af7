from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import CreateAccountParams, create_account
from solders.transaction import Transaction
from spl.token.constants import MINT_LEN, TOKEN_PROGRAM_ID
from spl.token.instructions import (
    InitializeMintParams,
    MintToParams,
    TransferParams,
    create_associated_token_account,
    initialize_mint,
    mint_to,
    transfer,
)

from .project_constants import DEFAULT_COMMITMENT
from .rpc import RpcClient
from .token_accounts import (
    MintInfo,
    TokenAccount,
    associated_token_address,
    parse_mint,
    parse_token_account,
)

log = logging.getLogger("ledger")


class OwnerOffCurveError(ValueError):
    pass


def read_mint(
    rpc: RpcClient, mint: Pubkey, commitment: str = DEFAULT_COMMITMENT
) -> MintInfo:
    info = rpc.get_account_info(str(mint), commitment)
    if info is None:
        raise RuntimeError(f"Mint {mint} not found.")
    owner, data = info
    if owner != str(TOKEN_PROGRAM_ID):
        raise RuntimeError(f"Account {mint} is not owned by the token program.")
    return parse_mint(mint, data)


def _unique_signers(signers: Iterable[Keypair]) -> List[Keypair]:
    by_key: Dict[Pubkey, Keypair] = {}
    for kp in signers:
        by_key.setdefault(kp.pubkey(), kp)
    return list(by_key.values())


class TokenLedger:
    """
    SPL Token operations against one RPC endpoint.

    Every write is a single transaction that is signed, sent and confirmed at
    `commitment` before the call returns, so callers always observe the effect
    of the previous call. Nothing is retried.
    """

    def __init__(
        self,
        rpc: RpcClient,
        payer: Keypair,
        commitment: str = DEFAULT_COMMITMENT,
    ) -> None:
        self.rpc = rpc
        self.payer = payer
        self.commitment = commitment

    def _send(self, instructions: List[Instruction], signers: List[Keypair]) -> str:
        latest = self.rpc.get_latest_blockhash(self.commitment)
        blockhash = Hash.from_string(latest.blockhash)
        message = Message.new_with_blockhash(
            instructions, self.payer.pubkey(), blockhash
        )
        tx = Transaction(_unique_signers([self.payer, *signers]), message, blockhash)

        signature = self.rpc.send_transaction(bytes(tx), self.commitment)
        log.debug("Sent %s", signature)
        self.rpc.confirm_transaction(
            signature, latest.last_valid_block_height, self.commitment
        )
        return signature

    def create_mint(
        self,
        mint_authority: Pubkey,
        freeze_authority: Optional[Pubkey],
        decimals: int,
    ) -> Pubkey:
        mint = Keypair()
        lamports = self.rpc.get_minimum_balance_for_rent_exemption(MINT_LEN)
        log.debug("Creating mint %s (%d lamports rent)", mint.pubkey(), lamports)

        self._send(
            [
                create_account(
                    CreateAccountParams(
                        from_pubkey=self.payer.pubkey(),
                        to_pubkey=mint.pubkey(),
                        lamports=lamports,
                        space=MINT_LEN,
                        owner=TOKEN_PROGRAM_ID,
                    )
                ),
                initialize_mint(
                    InitializeMintParams(
                        decimals=decimals,
                        program_id=TOKEN_PROGRAM_ID,
                        mint=mint.pubkey(),
                        mint_authority=mint_authority,
                        freeze_authority=freeze_authority,
                    )
                ),
            ],
            [mint],
        )
        return mint.pubkey()

    def get_mint(self, mint: Pubkey) -> MintInfo:
        return read_mint(self.rpc, mint, self.commitment)

    def get_token_account(self, address: Pubkey) -> Optional[TokenAccount]:
        info = self.rpc.get_account_info(str(address), self.commitment)
        if info is None:
            return None
        owner, data = info
        if owner != str(TOKEN_PROGRAM_ID):
            raise RuntimeError(
                f"Account {address} is not owned by the token program (owner {owner})."
            )
        return parse_token_account(address, data)

    def get_or_create_account(self, mint: Pubkey, owner: Pubkey) -> TokenAccount:
        # Program-derived (off-curve) owners are rejected.
        if not owner.is_on_curve():
            raise OwnerOffCurveError(f"Owner {owner} is not on the ed25519 curve.")

        address = associated_token_address(owner, mint)
        account = self.get_token_account(address)
        if account is not None:
            log.debug("Token account %s already exists", address)
            return account

        log.debug("Creating token account %s for %s", address, owner)
        self._send(
            [create_associated_token_account(self.payer.pubkey(), owner, mint)],
            [],
        )
        account = self.get_token_account(address)
        if account is None:
            raise RuntimeError(f"Token account {address} missing after creation.")
        return account

    def mint_to(
        self,
        mint: Pubkey,
        destination: Pubkey,
        authority: Keypair,
        amount: int,
    ) -> str:
        return self._send(
            [
                mint_to(
                    MintToParams(
                        program_id=TOKEN_PROGRAM_ID,
                        mint=mint,
                        dest=destination,
                        mint_authority=authority.pubkey(),
                        amount=amount,
                    )
                )
            ],
            [authority],
        )

    def transfer(
        self,
        source: Pubkey,
        destination: Pubkey,
        owner: Keypair,
        amount: int,
    ) -> str:
        return self._send(
            [
                transfer(
                    TransferParams(
                        program_id=TOKEN_PROGRAM_ID,
                        source=source,
                        dest=destination,
                        owner=owner.pubkey(),
                        amount=amount,
                    )
                )
            ],
            [owner],
        )
