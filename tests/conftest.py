from __future__ import annotations

import base64
import json
import struct
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID

from solana_token_drop.ledger import TokenLedger
from solana_token_drop.rpc import RpcClient

BLOCKHASH = "11111111111111111111111111111111"
LAST_VALID_BLOCK_HEIGHT = 150
RENT_LAMPORTS = 1461600


def encode_mint(
    authority: Optional[Pubkey],
    supply: int,
    decimals: int,
    freeze: Optional[Pubkey] = None,
) -> bytes:
    return (
        struct.pack("<I", 1 if authority is not None else 0)
        + (bytes(authority) if authority is not None else bytes(32))
        + struct.pack("<Q", supply)
        + bytes([decimals, 1])
        + struct.pack("<I", 1 if freeze is not None else 0)
        + (bytes(freeze) if freeze is not None else bytes(32))
    )


def encode_token_account(
    mint: Pubkey, owner: Pubkey, amount: int, state: int = 1
) -> bytes:
    data = bytes(mint) + bytes(owner) + struct.pack("<Q", amount) + bytes(36)
    data += bytes([state])
    return data + bytes(165 - len(data))


class SimulationFailed(Exception):
    pass


class FakeChain:
    """
    In-memory stand-in for a validator: understands the handful of JSON-RPC
    methods RpcClient uses and executes the SPL Token instructions the ledger
    sends. A failing transaction leaves no trace, like a failed preflight.
    """

    def __init__(self) -> None:
        self.mints: Dict[Pubkey, Dict[str, Any]] = {}
        self.accounts: Dict[Pubkey, Dict[str, Any]] = {}
        self.foreign: Dict[Pubkey, bytes] = {}
        self.signatures: List[str] = []
        self.calls: List[str] = []
        self.applied: List[Tuple[Any, ...]] = []
        self.block_height = 1

    def balance(self, address: Pubkey) -> int:
        return self.accounts[address]["amount"]

    def ops(self, kind: str) -> List[Tuple[Any, ...]]:
        return [op for op in self.applied if op[0] == kind]

    def handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        method = body["method"]
        params = body["params"]
        self.calls.append(method)
        try:
            result = getattr(self, f"_rpc_{method}")(params)
        except SimulationFailed as e:
            return httpx.Response(
                200,
                json={
                    "jsonrpc": "2.0",
                    "id": body["id"],
                    "error": {
                        "code": -32002,
                        "message": f"Transaction simulation failed: {e}",
                    },
                },
            )
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    def _rpc_getLatestBlockhash(self, params):
        return {
            "context": {"slot": 1},
            "value": {
                "blockhash": BLOCKHASH,
                "lastValidBlockHeight": LAST_VALID_BLOCK_HEIGHT,
            },
        }

    def _rpc_getMinimumBalanceForRentExemption(self, params):
        return RENT_LAMPORTS

    def _rpc_getBlockHeight(self, params):
        return self.block_height

    def _rpc_getSignatureStatuses(self, params):
        return {
            "context": {"slot": 1},
            "value": [
                {"slot": 1, "confirmations": None, "err": None, "confirmationStatus": "confirmed"}
                if sig in self.signatures
                else None
                for sig in params[0]
            ],
        }

    def _rpc_getAccountInfo(self, params):
        address = Pubkey.from_string(params[0])
        if address in self.mints:
            m = self.mints[address]
            owner = TOKEN_PROGRAM_ID
            data = encode_mint(m["authority"], m["supply"], m["decimals"], m["freeze"])
        elif address in self.accounts:
            a = self.accounts[address]
            owner = TOKEN_PROGRAM_ID
            data = encode_token_account(a["mint"], a["owner"], a["amount"])
        elif address in self.foreign:
            owner = Pubkey.default()
            data = self.foreign[address]
        else:
            return {"context": {"slot": 1}, "value": None}
        return {
            "context": {"slot": 1},
            "value": {
                "data": [base64.b64encode(data).decode("ascii"), "base64"],
                "owner": str(owner),
                "lamports": RENT_LAMPORTS,
                "executable": False,
                "rentEpoch": 0,
            },
        }

    def _rpc_sendTransaction(self, params):
        tx = Transaction.from_bytes(base64.b64decode(params[0]))
        message = tx.message
        keys = message.account_keys
        signers = set(keys[: message.header.num_required_signatures])

        mints = {k: dict(v) for k, v in self.mints.items()}
        accounts = {k: dict(v) for k, v in self.accounts.items()}
        applied: List[Tuple[Any, ...]] = []

        for ix in message.instructions:
            program = keys[ix.program_id_index]
            accts = [keys[i] for i in ix.accounts]
            data = bytes(ix.data)

            if program == ASSOCIATED_TOKEN_PROGRAM_ID:
                ata, owner, mint = accts[1], accts[2], accts[3]
                if ata in accounts:
                    raise SimulationFailed("account already in use")
                accounts[ata] = {"mint": mint, "owner": owner, "amount": 0}
                applied.append(("create_ata", ata, owner))

            elif program == TOKEN_PROGRAM_ID and data[0] == 0:
                freeze = Pubkey(data[35:67]) if data[34] else None
                mints[accts[0]] = {
                    "decimals": data[1],
                    "authority": Pubkey(data[2:34]),
                    "freeze": freeze,
                    "supply": 0,
                }
                applied.append(("initialize_mint", accts[0]))

            elif program == TOKEN_PROGRAM_ID and data[0] == 7:
                mint, dest, authority = accts[0], accts[1], accts[2]
                amount = struct.unpack("<Q", data[1:9])[0]
                if mints[mint]["authority"] != authority or authority not in signers:
                    raise SimulationFailed("owner does not match")
                mints[mint]["supply"] += amount
                accounts[dest]["amount"] += amount
                applied.append(("mint_to", dest, amount))

            elif program == TOKEN_PROGRAM_ID and data[0] == 3:
                source, dest, owner = accts[0], accts[1], accts[2]
                amount = struct.unpack("<Q", data[1:9])[0]
                if accounts[source]["owner"] != owner or owner not in signers:
                    raise SimulationFailed("owner does not match")
                if accounts[source]["amount"] < amount:
                    raise SimulationFailed("insufficient funds")
                accounts[source]["amount"] -= amount
                accounts[dest]["amount"] += amount
                applied.append(("transfer", source, dest, amount))

        self.mints = mints
        self.accounts = accounts
        self.applied.extend(applied)
        signature = str(tx.signatures[0])
        self.signatures.append(signature)
        return signature


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def make_rpc(chain):
    clients: List[RpcClient] = []

    def factory(rpc_url: str = "http://fake-rpc", timeout_s: float = 60.0) -> RpcClient:
        client = RpcClient(
            rpc_url,
            timeout_s=timeout_s,
            poll_interval_s=0,
            transport=httpx.MockTransport(chain.handle),
        )
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.close()


@pytest.fixture
def operator() -> Keypair:
    return Keypair()


@pytest.fixture
def ledger(make_rpc, operator) -> TokenLedger:
    return TokenLedger(make_rpc(), operator)
