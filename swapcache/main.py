"""
Command-line entry point wiring all components.

    swapcache preload <mint> [--hold SEC]
    swapcache buy <mint> <sol_amount> [--preload]
    swapcache sell <mint> <percent> [--preload]
    swapcache balance <mint>
    swapcache wallet
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from swapcache.config.config import Settings
from swapcache.config.config_validator import validate_and_log
from swapcache.core.json_utils import dumps
from swapcache.core.models import Side
from swapcache.core.result import Envelope
from swapcache.infra.logging_cfg import build_logger
from swapcache.monitoring.metrics import SwapMetrics, start_exporter
from swapcache.service import TradeService

log = logging.getLogger("swapcache")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="swapcache", description="Preloaded Solana swap execution")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("preload", help="Build the trade cache for a token")
    p.add_argument("token")
    p.add_argument("--hold", type=float, default=0.0, help="Keep refreshing for this many seconds")

    for name, unit in (("buy", "SOL amount"), ("sell", "percent of balance")):
        p = sub.add_parser(name, help=f"{name.title()} a token")
        p.add_argument("token")
        p.add_argument("amount", type=float, help=unit)
        p.add_argument("--preload", action="store_true", help="Preload the cache before executing")

    p = sub.add_parser("balance", help="Token UI balance of the wallet")
    p.add_argument("token")

    sub.add_parser("wallet", help="Wallet address and SOL balance")
    return parser


async def run(args: argparse.Namespace, cfg: Settings) -> Envelope:
    metrics = SwapMetrics()
    if start_exporter(metrics, cfg.metrics_port):
        log.info(dumps({"event": "metrics_exporter_started", "port": cfg.metrics_port}))
    service = TradeService.from_settings(cfg, metrics=metrics)
    try:
        if args.command == "preload":
            env = await service.preload(args.token)
            if env.ok and args.hold > 0:
                await asyncio.sleep(args.hold)
                env = service.cache_status()
            return env
        if args.command in ("buy", "sell"):
            if args.preload:
                pre = await service.preload(args.token)
                if not pre.ok:
                    return pre
            return await service.execute(args.token, Side(args.command), args.amount)
        if args.command == "balance":
            return await service.token_balance(args.token)
        return await service.wallet_state()
    finally:
        await service.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = Settings.load()
    build_logger("swapcache", level=logging.DEBUG if args.debug else logging.INFO, file_path=cfg.log_file)
    if not validate_and_log(cfg, log):
        log.error("Configuration validation failed, exiting")
        return 1
    try:
        env = asyncio.run(run(args, cfg))
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130
    print(dumps(env.to_dict()))
    return 0 if env.ok else 2


if __name__ == "__main__":
    sys.exit(main())
