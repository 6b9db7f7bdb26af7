from __future__ import annotations

from typing import Any

from .project_constants import DEFAULT_CLUSTER, EXPLORER_URL


def _suffix(cluster: str) -> str:
    # Mainnet is the explorer's default view.
    return "" if cluster == "mainnet-beta" else f"?cluster={cluster}"


def address_url(address: Any, cluster: str = DEFAULT_CLUSTER) -> str:
    return f"{EXPLORER_URL}/address/{address}{_suffix(cluster)}"


def tx_url(signature: Any, cluster: str = DEFAULT_CLUSTER) -> str:
    return f"{EXPLORER_URL}/tx/{signature}{_suffix(cluster)}"
