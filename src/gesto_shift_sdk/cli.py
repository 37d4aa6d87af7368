from __future__ import annotations

import argparse
import json
from pathlib import Path

from .clients import HealthClient, ShiftClient
from .config import ConfigError, load_config
from .exceptions import ApiError
from .http_client import HttpClient
from .local_store import CASH_BREAKDOWN_KEY, LocalStore
from .logging_setup import configure_logging
from .models import CashBreakdown, FlowKind
from .reconciliation import CLOSE_ACTION, ReconciliationValidator, close_confirmation
from .settings import Selection, ShiftSettings


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gesto-shift", description="Shift counting client utilities")
    parser.add_argument("--env-file", default=None)
    parser.add_argument("--data-dir", default=None, help="Directory of the local store")
    parser.add_argument("--log-level", default=None)
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("health", help="Probe the server once")

    check = commands.add_parser("check-close", help="Evaluate the shift close reconciliation")
    check.add_argument("--area-id", default=None, help="Defaults to the selected area")
    return parser


def _print(payload: dict) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _health(http: HttpClient) -> int:
    try:
        HealthClient(http=http).health()
    except ApiError as exc:
        _print({"ok": False, "error": exc.code, "message": exc.message})
        return 1
    _print({"ok": True, "apiBaseUrl": http.config.api_base_url})
    return 0


def _check_close(http: HttpClient, store: LocalStore, settings: ShiftSettings, area_id: str | None) -> int:
    area_id = area_id or Selection.load(store).area_id
    if not area_id:
        _print({"error": "input", "message": "no area selected; pass --area-id"})
        return 1
    try:
        products = ShiftClient(http=http).products_saved(FlowKind.FINAL, area_id)
    except ApiError as exc:
        _print({"error": exc.code, "message": exc.message})
        return 1
    validator = ReconciliationValidator(store, lambda: products)
    report = validator.refresh()
    pending = close_confirmation(CLOSE_ACTION, lambda: report, pos_mode=settings.pos_mode)
    breakdown = store.read_model_or_none(CASH_BREAKDOWN_KEY, CashBreakdown)
    _print(
        {
            "areaId": area_id,
            "posMode": settings.pos_mode,
            "report": report.as_dict(),
            "breakdown": breakdown.wire() if breakdown else None,
            "confirmation": pending.text,
        }
    )
    return 0 if not pending.is_override else 2


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        config = load_config(args.env_file)
    except ConfigError as exc:
        _print({"error": "config", "message": str(exc)})
        return 1
    store = LocalStore(base_dir=Path(args.data_dir) if args.data_dir else None)
    settings = ShiftSettings.load(store, config)
    http = HttpClient(settings.config)
    if args.command == "health":
        return _health(http)
    return _check_close(http, store, settings, args.area_id)


if __name__ == "__main__":
    raise SystemExit(main())
