"""Remit CLI: command-line interface for the escrow engine.

Usage:
    python -m remit.cli status
    python -m remit.cli fund --identity 0xalice --amount 100
    python -m remit.cli create --caller 0xcreator --recipient 0xrecipient --target 100 --purpose "Rent"
    python -m remit.cli contribute --caller 0xalice --id 0 --amount 60
    python -m remit.cli release --caller 0xrecipient --id 0
    python -m remit.cli cancel --caller 0xcreator --id 0
    python -m remit.cli set-fee --caller 0xowner --bps 100
    python -m remit.cli set-fee-collector --caller 0xowner --collector 0xtreasury
    python -m remit.cli show --id 0

The caller identity is taken as already authenticated.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

from remit.config import EscrowParams
from remit.observability import configure_logging
from remit.persistence.event_log import EventLog
from remit.persistence.state_store import StateStore
from remit.service import RemitService, ServiceResult


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"
DEFAULT_DATA = Path(__file__).resolve().parents[2] / "data"
OWNER_ENV = "REMIT_OWNER"


def _make_service(config_dir: Path, data_dir: Path, owner: str) -> RemitService:
    """Create a RemitService with durable persistence."""
    data_dir.mkdir(parents=True, exist_ok=True)
    params = EscrowParams.from_config_dir(config_dir)
    return RemitService.open(
        owner=owner,
        params=params,
        event_log=EventLog(storage_path=data_dir / "events.jsonl"),
        state_store=StateStore(storage_path=data_dir / "state.json"),
    )


def _report(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2, default=str))
        return 0
    kind = result.data.get("error", "Error")
    print(f"Failed ({kind}): {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_status(args: argparse.Namespace, service: RemitService) -> int:
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_fund(args: argparse.Namespace, service: RemitService) -> int:
    return _report(service.fund_wallet(args.identity, args.amount))


def cmd_create(args: argparse.Namespace, service: RemitService) -> int:
    return _report(
        service.create_remittance(args.caller, args.recipient, args.target, args.purpose)
    )


def cmd_contribute(args: argparse.Namespace, service: RemitService) -> int:
    return _report(service.contribute(args.caller, args.id, args.amount))


def cmd_release(args: argparse.Namespace, service: RemitService) -> int:
    return _report(service.release_funds(args.caller, args.id))


def cmd_cancel(args: argparse.Namespace, service: RemitService) -> int:
    return _report(service.cancel_remittance(args.caller, args.id))


def cmd_set_fee(args: argparse.Namespace, service: RemitService) -> int:
    return _report(service.set_platform_fee(args.caller, args.bps))


def cmd_set_fee_collector(args: argparse.Namespace, service: RemitService) -> int:
    return _report(service.set_fee_collector(args.caller, args.collector))


def cmd_show(args: argparse.Namespace, service: RemitService) -> int:
    return _report(service.describe_remittance(args.id))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="remit",
        description="Pooled remittance escrow",
    )
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG, help="Config directory")
    parser.add_argument("--data", type=Path, default=DEFAULT_DATA, help="Data directory")
    parser.add_argument(
        "--owner",
        default=os.getenv(OWNER_ENV, ""),
        help=f"Owner identity for a fresh deployment (env: {OWNER_ENV})",
    )
    parser.add_argument("--log-format", choices=("production", "development"), default="development")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("status", help="Show deployment status")

    p = sub.add_parser("fund", help="Credit a local wallet on the in-memory rail")
    p.add_argument("--identity", required=True)
    p.add_argument("--amount", type=int, required=True)

    p = sub.add_parser("create", help="Create a remittance")
    p.add_argument("--caller", required=True)
    p.add_argument("--recipient", required=True)
    p.add_argument("--target", type=int, required=True, help="Target in smallest units")
    p.add_argument("--purpose", required=True)

    p = sub.add_parser("contribute", help="Contribute to a remittance")
    p.add_argument("--caller", required=True)
    p.add_argument("--id", type=int, required=True)
    p.add_argument("--amount", type=int, required=True)

    p = sub.add_parser("release", help="Release a funded remittance (recipient only)")
    p.add_argument("--caller", required=True)
    p.add_argument("--id", type=int, required=True)

    p = sub.add_parser("cancel", help="Cancel and refund (creator only)")
    p.add_argument("--caller", required=True)
    p.add_argument("--id", type=int, required=True)

    p = sub.add_parser("set-fee", help="Set platform fee in bps (owner only)")
    p.add_argument("--caller", required=True)
    p.add_argument("--bps", type=int, required=True)

    p = sub.add_parser("set-fee-collector", help="Set fee collector (owner only)")
    p.add_argument("--caller", required=True)
    p.add_argument("--collector", required=True)

    p = sub.add_parser("show", help="Show one remittance")
    p.add_argument("--id", type=int, required=True)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "status": cmd_status,
        "fund": cmd_fund,
        "create": cmd_create,
        "contribute": cmd_contribute,
        "release": cmd_release,
        "cancel": cmd_cancel,
        "set-fee": cmd_set_fee,
        "set-fee-collector": cmd_set_fee_collector,
        "show": cmd_show,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    configure_logging(environment=args.log_format)
    state_path = args.data / "state.json"
    if not args.owner and not state_path.exists():
        print(
            f"Failed: no deployment found; pass --owner or set {OWNER_ENV}",
            file=sys.stderr,
        )
        return 1

    try:
        service = _make_service(args.config, args.data, args.owner or "unused")
    except (OSError, ValueError) as e:
        print(f"Failed to open escrow: {e}", file=sys.stderr)
        return 1
    return handler(args, service)


if __name__ == "__main__":
    raise SystemExit(main())
