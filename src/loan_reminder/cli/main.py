from __future__ import annotations

import argparse
import base64
import json
import os
import sys
from typing import Sequence

from ..config import ConfigError, load_settings
from ..domain.normalize import parse_iso_date
from ..extraction.backends import ServiceError
from ..logging import get_logger
from ..orchestrator import IngestionError, LoanService
from ..paths import expand_abs
from ..store import StoreError, SubscriptionError

LOG = get_logger("cli-main")


def _read_image_b64(path: str) -> str:
    with open(expand_abs(path), "rb") as f:
        return base64.b64encode(f.read()).decode("ascii")


def _service() -> LoanService:
    # .env is read from the current working directory upwards
    return LoanService.from_settings(load_settings(os.getcwd()))


def _add_user_arg(p: argparse.ArgumentParser) -> None:
    p.add_argument("--user", help="User id (defaults to DEFAULT_USER_ID, 'defaultUser')")


def _user(ns: argparse.Namespace, svc: LoanService) -> str:
    return ns.user or svc.settings.default_user_id


def _init(_: argparse.Namespace) -> int:
    svc = _service()
    LOG.info(f"Loan DB ready at: {svc.db.db_path}")
    print(svc.db.db_path)
    return 0


def _ingest(ns: argparse.Namespace) -> int:
    svc = _service()
    try:
        image_b64 = _read_image_b64(ns.image)
    except OSError as exc:
        LOG.error(f"Cannot read image {ns.image}: {exc}")
        return 2
    result = svc.ingest(_user(ns, svc), image_b64)
    print(json.dumps({"success": True, "count": result.created_count, "bookIds": result.book_ids}))
    return 0


def _list(ns: argparse.Namespace) -> int:
    svc = _service()
    items = [loan.as_item() for loan in svc.list_loans(_user(ns, svc))]
    print(json.dumps(items, ensure_ascii=False, indent=2))
    return 0


def _delete(ns: argparse.Namespace) -> int:
    svc = _service()
    svc.delete_loan(_user(ns, svc), ns.book_id)
    print(json.dumps({"success": True}))
    return 0


def _subscribe(ns: argparse.Namespace) -> int:
    svc = _service()
    try:
        with open(expand_abs(ns.file), "r", encoding="utf-8") as f:
            subscription = json.load(f)
    except (OSError, ValueError) as exc:
        LOG.error(f"Cannot read subscription JSON from {ns.file}: {exc}")
        return 2
    svc.put_subscription(_user(ns, svc), subscription)
    print(json.dumps({"success": True}))
    return 0


def _scan(ns: argparse.Namespace) -> int:
    ref = None
    if ns.date:
        ref = parse_iso_date(ns.date)
        if ref is None:
            LOG.error(f"--date must be YYYY-MM-DD, got {ns.date!r}")
            return 2
    report = _service().run_scheduled_scan(ref)
    print(json.dumps(vars(report)))
    return 1 if report.failed else 0


def _event(ns: argparse.Namespace) -> int:
    try:
        event = json.loads(ns.json)
    except ValueError as exc:
        LOG.error(f"--json is not valid JSON: {exc}")
        return 2
    response = _service().handle_event(event)
    print(json.dumps(response))
    return 0 if response.get("statusCode") == 200 else 1


def main(argv: Sequence[str] | None = None) -> int:
    provided = list(argv) if argv is not None else sys.argv[1:]
    LOG.debug(f"CLI invoked with arguments: {provided}")

    parser = argparse.ArgumentParser(
        prog="loan-reminder",
        description="Store library loans from lending-slip photos and send due-date reminders.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_cmd = subparsers.add_parser("init", help="Create/ensure the loan DB schema exists")
    init_cmd.set_defaults(handler=_init)

    ingest_cmd = subparsers.add_parser("ingest", help="Extract loans from a lending-slip photo and store them")
    ingest_cmd.add_argument("--image", required=True, help="Path to the lending-slip image (PNG/JPEG)")
    _add_user_arg(ingest_cmd)
    ingest_cmd.set_defaults(handler=_ingest)

    list_cmd = subparsers.add_parser("list", help="List stored loans")
    _add_user_arg(list_cmd)
    list_cmd.set_defaults(handler=_list)

    delete_cmd = subparsers.add_parser("delete", help="Delete one loan by book id")
    delete_cmd.add_argument("--book-id", required=True)
    _add_user_arg(delete_cmd)
    delete_cmd.set_defaults(handler=_delete)

    sub_cmd = subparsers.add_parser("subscribe", help="Store the browser push subscription (JSON file)")
    sub_cmd.add_argument("--file", required=True)
    _add_user_arg(sub_cmd)
    sub_cmd.set_defaults(handler=_subscribe)

    scan_cmd = subparsers.add_parser("scan", help="Send reminders for loans due today or tomorrow")
    scan_cmd.add_argument("--date", help="Reference date YYYY-MM-DD (default: today in TIMEZONE)")
    scan_cmd.set_defaults(handler=_scan)

    event_cmd = subparsers.add_parser("event", help="Handle a scheduler event payload")
    event_cmd.add_argument("--json", default='{"source": "morning_schedule"}')
    event_cmd.set_defaults(handler=_event)

    args = parser.parse_args(provided)
    try:
        code = args.handler(args)
    except (ConfigError, SubscriptionError) as exc:
        LOG.error(str(exc))
        code = 2
    except (IngestionError, ServiceError, StoreError) as exc:
        LOG.error(f"{args.command} failed: {exc}")
        code = 1
    LOG.info(f"Subcommand '{args.command}' finished with exit code {code}.")
    return code


if __name__ == "__main__":
    sys.exit(main())
