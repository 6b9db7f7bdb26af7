from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from .config import Settings
from .distribute import parse_address, run_distribution
from .ledger import TokenLedger, read_mint
from .project_constants import DECIMALS, DEFAULT_COMMITMENT, RECEIVERS_AMOUNT
from .rpc import RpcClient
from .token_accounts import to_tokens

log = logging.getLogger("token-drop")


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def cmd_run(args: argparse.Namespace) -> int:
    # Fails here, before any network call, if SECRET_KEY is missing or bad.
    settings = Settings.from_env(rpc_url_override=args.rpc_url)
    log.info("Operator          : %s", settings.payer.pubkey())
    log.info("Recipients        : %d", len(settings.addresses))

    rpc = RpcClient(settings.rpc_url, timeout_s=args.timeout)
    try:
        ledger = TokenLedger(rpc, settings.payer, commitment=DEFAULT_COMMITMENT)
        report = run_distribution(ledger, settings.addresses, settings.cluster)
    finally:
        rpc.close()

    print("========================================")
    print("TOKEN DROP COMPLETE")
    print("========================================")
    print(f"Mint          : {report.mint}")
    print(f"Decimals      : {report.mint_info.decimals}")
    print(f"Issued        : {to_tokens(report.issued, DECIMALS):,.{DECIMALS}f}")
    print(f"Recipients    : {len(report.deliveries)}")
    print(f"Per recipient : {to_tokens(RECEIVERS_AMOUNT, DECIMALS):,.{DECIMALS}f}")
    print("----------------------------------------")
    return 0


def cmd_mint_info(args: argparse.Namespace) -> int:
    settings = Settings.from_env(rpc_url_override=args.rpc_url, require_payer=False)
    mint = parse_address(args.mint)

    rpc = RpcClient(settings.rpc_url, timeout_s=args.timeout)
    try:
        info = read_mint(rpc, mint, DEFAULT_COMMITMENT)
    finally:
        rpc.close()

    print(f"Mint             : {info.address}")
    print(f"Decimals         : {info.decimals}")
    print(f"Supply (raw)     : {info.supply}")
    print(f"Supply           : {to_tokens(info.supply, info.decimals)}")
    print(f"Mint authority   : {info.mint_authority if info.mint_authority is not None else '-'}")
    print(f"Freeze authority : {info.freeze_authority if info.freeze_authority is not None else '-'}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="solana-token-drop",
        description="Create an SPL token and drop a fixed amount to a list of wallets.",
    )
    p.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    p.add_argument("--rpc-url", default=None, help="Override RPC URL (else use env).")
    p.add_argument("--timeout", type=float, default=60.0, help="RPC timeout seconds.")

    sub = p.add_subparsers(dest="cmd", required=True)

    r = sub.add_parser(
        "run",
        help="Create a new mint, issue the supply and send to every address in ADDRESSES.",
    )
    r.set_defaults(func=cmd_run)

    m = sub.add_parser("mint-info", help="Show decimals, supply and authorities of a mint.")
    m.add_argument("--mint", required=True, help="Mint address.")
    m.set_defaults(func=cmd_mint_info)

    return p


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    try:
        code = args.func(args)
    except Exception as e:
        log.debug("Command failed", exc_info=True)
        print(f"{type(e).__name__}: {e}", file=sys.stderr)
        raise SystemExit(1)
    raise SystemExit(code)
