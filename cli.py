"""Console entry point for the TyreHero offline emergency queue.

``tyrehero sync`` is meant to be run from a cron job or systemd timer: it is
the desktop counterpart of a browser background-sync wake-up.
"""
from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

from datetime_utils import HOUR_MS, from_ms, to_rfc3339_utc
from services.bootstrap import Services, build_services
from services.legacy_import import import_legacy_json
from services.submission import ValidationError
from services.sync_service import TRIGGER_BACKGROUND, TRIGGER_MANUAL
from storage.config import update_config


def _parse_fields(pairs: List[str]) -> dict:
    fields = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise SystemExit(f"Expected key=value, got {pair!r}")
        fields[key.strip()] = value
    return fields


def _print(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))


def cmd_submit(services: Services, args) -> int:
    try:
        outcome = services.submitter.submit(_parse_fields(args.field))
    except ValidationError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    print(outcome.message)
    return 0 if outcome.sent else 1


def cmd_enqueue(services: Services, args) -> int:
    if args.json:
        payload = json.loads(Path(args.json).read_text(encoding="utf-8"))
    else:
        payload = _parse_fields(args.field)
    entry = services.queue.enqueue(payload)
    print(entry.request_id)
    return 0


def cmd_sync(services: Services, args) -> int:
    trigger = TRIGGER_MANUAL if args.manual else TRIGGER_BACKGROUND
    report = services.coordinator.run_pass(trigger)
    _print(report.as_dict())
    return 0


def cmd_status(services: Services, args) -> int:
    status = services.coordinator.status()
    status["pendingRequests"] = [
        {
            "requestId": entry.request_id,
            "enqueuedAt": to_rfc3339_utc(from_ms(entry.enqueued_at)),
            "attempts": entry.attempts,
            "lastError": entry.last_error,
        }
        for entry in services.queue.list_pending()
    ]
    _print(status)
    return 0


def cmd_purge(services: Services, args) -> int:
    removed = services.queue.purge_old(int(args.hours * HOUR_MS))
    print(f"Purged {removed} synced request(s).")
    return 0


def cmd_dead_letters(services: Services, args) -> int:
    _print(
        [
            {
                "requestId": entry.request_id,
                "attempts": entry.attempts,
                "lastError": entry.last_error,
                "payload": entry.payload,
            }
            for entry in services.queue.list_dead_letters()
        ]
    )
    return 0


def cmd_requeue(services: Services, args) -> int:
    if services.queue.requeue(args.request_id):
        print(f"{args.request_id} requeued.")
        return 0
    print(f"{args.request_id} is not a dead letter.", file=sys.stderr)
    return 1


def cmd_import(services: Services, args) -> int:
    count = import_legacy_json(Path(args.path), services.queue)
    print(f"Imported {count} request(s).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tyrehero", description=__doc__ or "")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("submit", help="Submit an emergency request, queueing it on failure")
    p.add_argument("field", nargs="+", help="Form fields as key=value")
    p.set_defaults(func=cmd_submit)

    p = sub.add_parser("enqueue", help="Queue a request without trying to send it")
    p.add_argument("field", nargs="*", help="Payload fields as key=value")
    p.add_argument("--json", help="Read the payload from a JSON file")
    p.set_defaults(func=cmd_enqueue)

    p = sub.add_parser("sync", help="Run one sync pass over the pending queue")
    p.add_argument("--manual", action="store_true", help="Log the pass as a manual retry")
    p.set_defaults(func=cmd_sync)

    p = sub.add_parser("status", help="Show queue counters and pending requests")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("purge", help="Delete synced requests older than the retention window")
    p.add_argument("--hours", type=float, default=24.0, help="Retention window (default: %(default)s)")
    p.set_defaults(func=cmd_purge)

    p = sub.add_parser("dead-letters", help="List requests that exhausted their retry budget")
    p.set_defaults(func=cmd_dead_letters)

    p = sub.add_parser("requeue", help="Return a dead-lettered request to the queue")
    p.add_argument("request_id")
    p.set_defaults(func=cmd_requeue)

    p = sub.add_parser("import-legacy", help="Import an offlineEmergencyRequests JSON dump")
    p.add_argument("path")
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("config", help="Update persisted settings")
    p.add_argument("--api-url")
    p.add_argument("--max-attempts", type=int)
    p.add_argument("--use-leases", dest="use_leases", action="store_true", default=None)
    p.add_argument("--no-leases", dest="use_leases", action="store_false")
    p.set_defaults(func=None)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "config":
        changes = {
            "api_base_url": args.api_url,
            "max_attempts": args.max_attempts,
            "use_leases": args.use_leases,
        }
        cfg = update_config(**{key: value for key, value in changes.items() if value is not None})
        print(json.dumps(asdict(cfg), indent=2))
        return 0

    services = build_services()
    return args.func(services, args)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
