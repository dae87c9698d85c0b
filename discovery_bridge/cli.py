"""Command line entry point.

  discovery-bridge sync [--dry-run] [--config sync.yaml] [--json]
  discovery-bridge validate [--config sync.yaml]
  discovery-bridge serve
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from discovery_bridge.config import Settings
from discovery_bridge.services.errors import SyncError


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="discovery-bridge", description=__doc__.splitlines()[0])
    parser.add_argument("--config", help="Path to the sync rules YAML (overrides SYNC_CONFIG_PATH)")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    sync_cmd = sub.add_parser("sync", help="Run one sync and exit")
    sync_cmd.add_argument("--dry-run", action="store_true", help="Decide everything, write nothing")
    sync_cmd.add_argument("--json", action="store_true", help="Print the run summary as JSON")

    sub.add_parser("validate", help="Check the sync rules and the JPD project fields")
    sub.add_parser("serve", help="Run the HTTP API with the periodic scheduler")
    return parser


def _cmd_sync(app_settings: Settings, args) -> int:
    from discovery_bridge.services.runner import SyncRunner

    summary = SyncRunner(app_settings).run(dry_run=args.dry_run or app_settings.dry_run)
    if args.json:
        print(json.dumps(summary.to_dict(), indent=2))
    else:
        print(summary.format_text())
    return 1 if summary.status == "failed" else 0


def _cmd_validate(app_settings: Settings) -> int:
    from discovery_bridge.services.field_validator import FieldValidator
    from discovery_bridge.services.jpd_client import JpdClient
    from discovery_bridge.sync_config import load_sync_config

    config = load_sync_config(app_settings.sync_config_path)
    print(f"Sync rules OK: {len(config.statuses)} statuses, {len(config.mappings)} mappings")
    if not config.fields:
        return 0
    with JpdClient(app_settings.jpd_base_url, app_settings.jpd_email, app_settings.jpd_api_token) as client:
        result = FieldValidator(client, config.fields).ensure_valid(app_settings.jpd_project_key)
    for warning in result.warnings:
        print(f"warning: {warning}")
    print(f"JPD fields OK: {len(config.fields)} checked")
    return 0


def _cmd_serve(app_settings: Settings) -> int:
    import uvicorn

    from discovery_bridge.main import create_app

    uvicorn.run(
        create_app(app_settings),
        host=app_settings.host,
        port=app_settings.port,
        log_level=app_settings.log_level.lower(),
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    overrides = {}
    if args.config:
        overrides["sync_config_path"] = args.config
    if args.log_level:
        overrides["log_level"] = args.log_level
    app_settings = Settings(**overrides)
    _configure_logging(app_settings.log_level)

    try:
        if args.command == "sync":
            return _cmd_sync(app_settings, args)
        if args.command == "validate":
            return _cmd_validate(app_settings)
        return _cmd_serve(app_settings)
    except SyncError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
