from __future__ import annotations

import base64
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .project_constants import DEFAULT_COMMITMENT

log = logging.getLogger("rpc")

COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}


class RpcError(RuntimeError):
    def __init__(self, code: int | None, message: str, data: Any = None) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data


class TransactionError(RuntimeError):
    pass


class TransactionExpiredError(TransactionError):
    pass


@dataclass(frozen=True)
class LatestBlockhash:
    blockhash: str
    last_valid_block_height: int


class RpcClient:
    def __init__(
        self,
        rpc_url: str,
        timeout_s: float = 60.0,
        poll_interval_s: float = 0.5,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.poll_interval_s = poll_interval_s
        self.client = httpx.Client(timeout=timeout_s, transport=transport)

    def close(self) -> None:
        self.client.close()

    def _post(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        log.debug("-> %s", method)
        resp = self.client.post(self.rpc_url, json=payload)
        resp.raise_for_status()
        data = resp.json()
        if "error" in data:
            err = data["error"] or {}
            raise RpcError(err.get("code"), err.get("message", ""), err.get("data"))
        return data["result"]

    def get_latest_blockhash(
        self, commitment: str = DEFAULT_COMMITMENT
    ) -> LatestBlockhash:
        result = self._post("getLatestBlockhash", [{"commitment": commitment}])
        value = result["value"]
        return LatestBlockhash(
            blockhash=value["blockhash"],
            last_valid_block_height=int(value["lastValidBlockHeight"]),
        )

    def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        return int(self._post("getMinimumBalanceForRentExemption", [size]))

    def get_block_height(self, commitment: str = DEFAULT_COMMITMENT) -> int:
        return int(self._post("getBlockHeight", [{"commitment": commitment}]))

    def get_account_info(
        self, address: str, commitment: str = DEFAULT_COMMITMENT
    ) -> Optional[Tuple[str, bytes]]:
        """
        Returns (owner program, raw account data), or None if the account
        does not exist.
        """
        result = self._post(
            "getAccountInfo",
            [address, {"encoding": "base64", "commitment": commitment}],
        )
        value = result.get("value")
        if value is None:
            return None
        # value['data'] is [base64_str, "base64"]
        return value["owner"], base64.b64decode(value["data"][0])

    def send_transaction(
        self, raw_tx: bytes, commitment: str = DEFAULT_COMMITMENT
    ) -> str:
        encoded = base64.b64encode(raw_tx).decode("ascii")
        return self._post(
            "sendTransaction",
            [encoded, {"encoding": "base64", "preflightCommitment": commitment}],
        )

    def get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        result = self._post(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": False}],
        )
        return result["value"][0]

    def confirm_transaction(
        self,
        signature: str,
        last_valid_block_height: int,
        commitment: str = DEFAULT_COMMITMENT,
    ) -> Dict[str, Any]:
        """
        Blocks until the signature reaches `commitment`. Gives up only when the
        blockhash it was signed with can no longer land.
        """
        wanted = COMMITMENT_RANK[commitment]
        while True:
            status = self.get_signature_status(signature)
            if status is not None:
                if status.get("err") is not None:
                    raise TransactionError(
                        f"Transaction {signature} failed: {status['err']}"
                    )
                level = status.get("confirmationStatus") or "processed"
                if COMMITMENT_RANK.get(level, 0) >= wanted:
                    log.debug("Confirmed %s (%s)", signature, level)
                    return status

            if self.get_block_height(commitment) > last_valid_block_height:
                raise TransactionExpiredError(
                    f"Transaction {signature} expired before reaching {commitment}."
                )
            time.sleep(self.poll_interval_s)
