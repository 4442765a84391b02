#!/usr/bin/env python3
"""Operate a SwiftRun run sheet from the command line.

Usage
-----
Optionally point at a data directory, then run a subcommand::

    export SWIFTRUN_DATA_DIR=~/.swiftrun
    python scripts/runsheet.py add --customer "Acme" --address "1 Main St" \\
        --contact "0400 000 000" --sales-order SO-1 --cartons 3 --pickup SG
    python scripts/runsheet.py list
    python scripts/runsheet.py move <dragged-id> <target-id>
    python scripts/runsheet.py toggle <id>
    python scripts/runsheet.py deliver <id> [<id> ...]
    python scripts/runsheet.py labels <id>
    python scripts/runsheet.py export --output history.xlsx
    python scripts/runsheet.py sync start
    python scripts/runsheet.py sync join <key>
    python scripts/runsheet.py sync watch

Options::

    --json               Output as machine-readable JSON
    --verbose            Enable DEBUG logging
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from swiftrun import Booking, SwiftRunClient, SwiftRunConfig, SwiftRunError  # noqa: E402
from swiftrun._constants import PICKUP_PRESETS  # noqa: E402

# ── helpers ──────────────────────────────────────────────────


def _section(title: str) -> str:
    line = "=" * 60
    return f"\n{line}\n  {title}\n{line}"


def _pickup_address(value: str) -> str:
    for preset in PICKUP_PRESETS:
        if preset.id.lower() == value.strip().lower():
            return preset.address
    return value


def _format_booking(b: Booking) -> str:
    delivered = f"  delivered {b.delivered_at}" if b.delivered_at else ""
    return f"  #{b.sequence:<3} [{b.status.value:<9}] {b.customer_name} - {b.delivery_address} ({b.cartons} ctn)  id={b.id}{delivered}"


def _emit(args: argparse.Namespace, data: Any, text: str) -> None:
    if args.json:
        print(json.dumps(data, indent=2, ensure_ascii=False, default=str))
    else:
        print(text)


# ── commands ─────────────────────────────────────────────────


async def _cmd_list(client: SwiftRunClient, args: argparse.Namespace) -> int:
    projection = client.project(args.pickup, args.status)
    stats = client.stats()
    if args.json:
        _emit(
            args,
            {
                "active": [b.to_wire() for b in projection.active],
                "history": [b.to_wire() for b in projection.history],
                "stats": dataclasses.asdict(stats),
            },
            "",
        )
        return 0
    lines = [_section("Active run")]
    lines.extend(_format_booking(b) for b in projection.active)
    lines.append(_section("Delivered"))
    lines.extend(_format_booking(b) for b in projection.history)
    lines.append(
        f"\n{stats.total_deliveries} bookings, {stats.delivered_count} delivered, {stats.total_cartons} cartons"
    )
    print("\n".join(lines))
    return 0


async def _cmd_add(client: SwiftRunClient, args: argparse.Namespace) -> int:
    payload = {
        "pickup_location": _pickup_address(args.pickup),
        "customer_name": args.customer,
        "delivery_address": args.address,
        "contact": args.contact,
        "cartons": args.cartons,
        "sales_order": args.sales_order,
        "purchase_order": args.purchase_order,
        "delivery_instructions": args.instructions,
    }
    booking = client.add_booking(payload, save_to_contacts=args.save_contact)
    _emit(args, booking.to_wire(), f"Added {booking.id} at position {booking.sequence}")
    return 0


async def _cmd_move(client: SwiftRunClient, args: argparse.Namespace) -> int:
    moved = client.move_booking(args.dragged, args.target)
    _emit(args, {"moved": moved}, "Moved" if moved else "Nothing to move (ids must both be active)")
    return 0 if moved else 1


async def _cmd_toggle(client: SwiftRunClient, args: argparse.Namespace) -> int:
    booking = client.toggle_status(args.id)
    if booking is None:
        _emit(args, {"found": False}, f"No booking {args.id}")
        return 1
    _emit(args, booking.to_wire(), f"{booking.id} is now {booking.status.value}")
    return 0


async def _cmd_deliver(client: SwiftRunClient, args: argparse.Namespace) -> int:
    delivered = client.bulk_mark_delivered(args.ids)
    _emit(args, [b.id for b in delivered], f"Delivered {len(delivered)} booking(s)")
    return 0


async def _cmd_delete(client: SwiftRunClient, args: argparse.Namespace) -> int:
    deleted = client.delete_booking(args.id)
    _emit(args, {"deleted": deleted}, "Deleted" if deleted else f"No booking {args.id}")
    return 0 if deleted else 1


async def _cmd_archive(client: SwiftRunClient, args: argparse.Namespace) -> int:
    if args.wipe:

        def _confirm() -> bool:
            answer = input(f"Permanently delete {len(client.archive)} archived deliveries? Type 'wipe': ")
            return answer.strip().lower() == "wipe"

        removed = client.wipe_archive(_confirm)
        _emit(args, {"removed": removed}, f"Removed {removed} archived record(s)")
        return 0
    records = client.archive.all()
    _emit(args, [r.to_wire() for r in records], "\n".join(_format_booking(r) for r in records) or "Archive is empty")
    return 0


async def _cmd_export(client: SwiftRunClient, args: argparse.Namespace) -> int:
    output = Path(args.output)
    path = client.export_csv(output) if output.suffix.lower() == ".csv" else client.export_workbook(output)
    _emit(args, {"path": str(path)}, f"Wrote {path}")
    return 0


async def _cmd_labels(client: SwiftRunClient, args: argparse.Namespace) -> int:
    labels = client.labels(args.id)
    if not labels:
        _emit(args, [], f"No booking {args.id}")
        return 1
    lines: list[str] = []
    for label in labels:
        lines.append(_section(f"{label.pickup_code}  carton {label.carton_caption}"))
        lines.append(f"  {label.customer_name}\n  {label.delivery_address}\n  {label.contact}")
        lines.append(f"  SO {label.sales_order}  PO {label.purchase_order}  booked {label.booked_at}")
    _emit(args, [dataclasses.asdict(label) for label in labels], "\n".join(lines))
    return 0


async def _cmd_advise(client: SwiftRunClient, args: argparse.Namespace) -> int:
    result = await client.route_advice()
    text = result.text + "".join(f"\n  - {link.title}: {link.uri}" for link in result.links)
    _emit(args, result.model_dump(), text)
    return 0 if result.ok else 1


async def _cmd_sync(client: SwiftRunClient, args: argparse.Namespace) -> int:
    action = args.action
    if action == "start":
        key = await client.start_sync()
        status = client.sync_status()
        _emit(args, status.model_dump(), f"Sync key: {key}" if key else f"Sync failed: {status.last_error}")
        return 0 if key else 1
    if action == "join":
        if not args.key:
            print("sync join needs a key", file=sys.stderr)
            return 2
        joined = await client.join_sync(args.key)
        status = client.sync_status()
        _emit(args, status.model_dump(), "Joined" if joined else f"Join failed: {status.last_error}")
        return 0 if joined else 1
    if action == "stop":
        await client.disconnect_sync()
        _emit(args, {"state": "disconnected"}, "Disconnected")
        return 0
    if action == "watch":
        print("Watching remote changes (Ctrl+C to stop)...")
        try:
            while True:
                await asyncio.sleep(client.config.poll_interval)
                outcome = await client.poll_now()
                status = client.sync_status()
                print(f"{outcome.value:<10} state={status.state.value} error={status.last_error or '-'}")
        except (KeyboardInterrupt, asyncio.CancelledError):
            return 0
    status = client.sync_status()
    _emit(args, status.model_dump(), f"state={status.state.value} key={status.sync_key or '-'} error={status.last_error or '-'}")
    return 0


_COMMANDS = {
    "list": _cmd_list,
    "add": _cmd_add,
    "move": _cmd_move,
    "toggle": _cmd_toggle,
    "deliver": _cmd_deliver,
    "delete": _cmd_delete,
    "archive": _cmd_archive,
    "export": _cmd_export,
    "labels": _cmd_labels,
    "advise": _cmd_advise,
    "sync": _cmd_sync,
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Operate a SwiftRun delivery run sheet")
    parser.add_argument("--json", action="store_true", help="Output as machine-readable JSON")
    parser.add_argument("--verbose", action="store_true", help="Enable DEBUG logging")
    parser.add_argument("--data-dir", help="Override SWIFTRUN_DATA_DIR")
    sub = parser.add_subparsers(dest="command", required=True)

    p_list = sub.add_parser("list", help="Show the active run and delivered history")
    p_list.add_argument("--pickup", default="All", choices=["All", "SG", "WB", "RF", "Other"])
    p_list.add_argument("--status", default="All", choices=["All", "Pending", "On Board", "Delivered"])

    p_add = sub.add_parser("add", help="Book a delivery")
    p_add.add_argument("--pickup", default="", help="Preset id (SG/WB/RF) or a manual address")
    p_add.add_argument("--customer", required=True)
    p_add.add_argument("--address", required=True)
    p_add.add_argument("--contact", required=True)
    p_add.add_argument("--sales-order", required=True)
    p_add.add_argument("--purchase-order")
    p_add.add_argument("--instructions")
    p_add.add_argument("--cartons", type=int, default=1)
    p_add.add_argument("--save-contact", action="store_true", help="Also save to the address book")

    p_move = sub.add_parser("move", help="Drag one booking onto another's position")
    p_move.add_argument("dragged")
    p_move.add_argument("target")

    p_toggle = sub.add_parser("toggle", help="Advance a booking's status")
    p_toggle.add_argument("id")

    p_deliver = sub.add_parser("deliver", help="Mark bookings delivered")
    p_deliver.add_argument("ids", nargs="+")

    p_delete = sub.add_parser("delete", help="Delete a booking")
    p_delete.add_argument("id")

    p_archive = sub.add_parser("archive", help="Show (or wipe) the delivered archive")
    p_archive.add_argument("--wipe", action="store_true")

    p_export = sub.add_parser("export", help="Export delivered history (.xlsx, or .csv by suffix)")
    p_export.add_argument("--output", default="swiftrun_history.xlsx")

    p_labels = sub.add_parser("labels", help="Print one carton label per carton of a booking")
    p_labels.add_argument("id")

    sub.add_parser("advise", help="Ask for route advice on the active run")

    p_sync = sub.add_parser("sync", help="Manage the shared sync session")
    p_sync.add_argument("action", choices=["start", "join", "stop", "status", "watch"])
    p_sync.add_argument("key", nargs="?")
    return parser


async def _run(args: argparse.Namespace) -> int:
    overrides: dict[str, Any] = {}
    if args.data_dir:
        overrides["data_dir"] = args.data_dir
    config = SwiftRunConfig.from_env(**overrides)
    async with SwiftRunClient(config) as client:
        code = await _COMMANDS[args.command](client, args)
        await client.flush()
        return code


def main() -> int:
    args = _build_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except SwiftRunError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
