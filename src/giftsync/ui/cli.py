from __future__ import annotations

import argparse
import getpass
import json
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from giftsync.app import build_app
from giftsync.config import configure_logging

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from giftsync.app import GiftSyncApp

log = logging.getLogger(__name__)


def _non_negative_int(value: str) -> int:
    try:
        parsed = int(value, 0)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Not an integer: {value}") from exc
    if parsed < 0:
        raise argparse.ArgumentTypeError(f"Must be non-negative: {value}")
    return parsed


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Verify gift claims and reconcile escrow state")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    reconcile = subparsers.add_parser("reconcile", help="Replay escrow logs into the store")
    reconcile.add_argument(
        "--from-block",
        type=_non_negative_int,
        help="First block to read (defaults to the stored checkpoint)",
    )
    reconcile.add_argument(
        "--to-block",
        type=_non_negative_int,
        help="Last block to read (defaults to the confirmed chain head)",
    )

    repair = subparsers.add_parser("repair", help="Merge split records for one gift")
    repair.add_argument("--token-id", type=_non_negative_int, required=True, help="NFT tokenId")
    repair.add_argument("--gift-id", type=_non_negative_int, required=True, help="Escrow giftId")

    rebuild = subparsers.add_parser("rebuild", help="Rebuild campaign roll-ups from the log")
    rebuild.add_argument("--campaign", type=str, help="Only rebuild this campaign")

    verify = subparsers.add_parser("verify-claim", help="Check a claim password")
    verify.add_argument("--token-id", type=_non_negative_int, required=True, help="NFT tokenId")
    verify.add_argument("--salt", type=str, required=True, help="32-byte hex salt")
    verify.add_argument(
        "--password",
        type=str,
        help="Claim password (prompted for when omitted)",
    )
    verify.add_argument("--device-id", type=str, help="Device identifier for view tracking")

    legacy = subparsers.add_parser("import-legacy", help="Import dual-key-era rows (JSON lines)")
    legacy.add_argument("path", type=Path, help="Path to the JSON-lines export")

    track = subparsers.add_parser("track", help="Record a view, expiry or value for a gift")
    target = track.add_mutually_exclusive_group(required=True)
    target.add_argument("--gift-id", type=_non_negative_int, help="Escrow giftId")
    target.add_argument("--token-id", type=_non_negative_int, help="NFT tokenId")
    track.add_argument("--event", choices=("viewed", "expired", "valued"), required=True)
    track.add_argument("--amount-wei", type=_non_negative_int, help="Gift value (valued only)")
    track.add_argument("--device-id", type=str, help="Device identifier for views")

    stats = subparsers.add_parser("stats", help="Show campaign statistics")
    stats.add_argument("campaign", type=str, help="Campaign id")

    return parser.parse_args(list(argv))


def _run(app: GiftSyncApp, args: argparse.Namespace) -> dict[str, object]:
    if args.command == "reconcile":
        return app.trigger_reconciliation({"fromBlock": args.from_block, "toBlock": args.to_block})
    if args.command == "repair":
        return app.repair_gift({"tokenId": args.token_id, "giftId": args.gift_id})
    if args.command == "rebuild":
        rollups = app.rebuild_rollups(args.campaign)
        return {rollup.campaign_id: rollup.counters() for rollup in rollups}
    if args.command == "verify-claim":
        password = args.password if args.password is not None else getpass.getpass("Password: ")
        return app.validate_claim(
            {
                "tokenId": args.token_id,
                "password": password,
                "salt": args.salt,
                "deviceId": args.device_id,
            }
        )
    if args.command == "import-legacy":
        result = app.import_legacy_details(args.path)
        return {"read": result.read, "imported": result.imported, "rejected": result.rejected}
    if args.command == "stats":
        return app.campaign_stats(args.campaign)
    if args.command == "track":
        return app.track_event(
            {
                "giftId": args.gift_id,
                "tokenId": args.token_id,
                "eventType": args.event,
                "amountWei": args.amount_wei,
                "deviceId": args.device_id,
            }
        )
    raise ValueError(f"Unsupported command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)

    configure_logging(level=logging.DEBUG if parsed_args.verbose else None)

    try:
        app = build_app()
        output = _run(app, parsed_args)
    except Exception:
        log.exception(f"Fatal error during {parsed_args.command}")
        sys.exit(1)

    print(json.dumps(output, indent=2, default=str))  # noqa: T201
    if parsed_args.command == "verify-claim" and not output.get("valid"):
        sys.exit(3)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
