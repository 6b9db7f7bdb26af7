from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Optional, Tuple

import base58
from dotenv import load_dotenv
from solders.keypair import Keypair

from .project_constants import CLUSTER_URLS, DEFAULT_CLUSTER

KEYPAIR_LEN = 64


class ConfigError(RuntimeError):
    pass


def load_keypair(secret: str | None) -> Keypair:
    """
    Accepts either:
    1) A JSON array of 64 byte values (the Solana CLI keypair file format)
    2) A base58 string encoding the same 64 bytes
    """
    if not secret or not secret.strip():
        raise ConfigError("Missing SECRET_KEY. Put it in .env or export it.")
    secret = secret.strip()

    if secret.startswith("["):
        try:
            raw = bytes(json.loads(secret))
        except (ValueError, TypeError) as e:
            raise ConfigError(f"SECRET_KEY is not a valid JSON byte array: {e}") from e
    else:
        try:
            raw = base58.b58decode(secret)
        except ValueError as e:
            raise ConfigError(f"SECRET_KEY is not valid base58: {e}") from e

    if len(raw) != KEYPAIR_LEN:
        raise ConfigError(
            f"SECRET_KEY must hold {KEYPAIR_LEN} bytes, got {len(raw)}."
        )

    try:
        return Keypair.from_bytes(raw)
    except ValueError as e:
        raise ConfigError(f"SECRET_KEY is not a valid ed25519 keypair: {e}") from e


def parse_address_list(value: str | None) -> Tuple[str, ...]:
    # Order matters and duplicates are kept; format is checked when each is used.
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    rpc_url: str
    cluster: str
    payer: Optional[Keypair] = None
    addresses: Tuple[str, ...] = ()

    @staticmethod
    def from_env(
        rpc_url_override: str | None = None,
        require_payer: bool = True,
    ) -> "Settings":
        load_dotenv()

        cluster = os.getenv("CLUSTER", "").strip() or DEFAULT_CLUSTER

        # --rpc-url wins, then RPC_URL, then the public endpoint for the cluster.
        rpc_url = rpc_url_override or os.getenv("RPC_URL", "").strip()
        if not rpc_url:
            if cluster not in CLUSTER_URLS:
                raise ConfigError(
                    f"Unknown CLUSTER {cluster!r} and no RPC_URL set. "
                    f"Expected one of: {', '.join(sorted(CLUSTER_URLS))}."
                )
            rpc_url = CLUSTER_URLS[cluster]

        payer = load_keypair(os.getenv("SECRET_KEY")) if require_payer else None

        return Settings(
            rpc_url=rpc_url,
            cluster=cluster,
            payer=payer,
            addresses=parse_address_list(os.getenv("ADDRESSES")),
        )
