#!/usr/bin/env python3
"""Utility CLI for the Dext catalog engine."""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import requests
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent
ENV_FILE = PROJECT_ROOT / ".env"


@dataclass(slots=True)
class CheckResult:
    """Single diagnostic result entry."""

    title: str
    message: str
    status: str  # ok | warn | fail

    @property
    def icon(self) -> str:
        return {"ok": "✅", "warn": "⚠️", "fail": "❌"}.get(self.status, "❓")

    def colorize(self, text: str) -> str:
        colors = {"ok": "\033[32m", "warn": "\033[33m", "fail": "\033[31m"}
        prefix = colors.get(self.status, "")
        suffix = "\033[0m" if prefix else ""
        return f"{prefix}{text}{suffix}"

    def formatted(self) -> str:
        return self.colorize(f"{self.icon} {self.title}: {self.message}")


def _load_env() -> None:
    """Load .env values without overriding existing environment variables."""

    load_dotenv(ENV_FILE, override=False)


def _command_run() -> int:
    from dext.main import main as app_main  # Local import to keep the check command light

    asyncio.run(app_main())
    return 0


def _build_filters(args: argparse.Namespace):
    from dext.models import FilterConfig, SortOption, SortOrder

    return FilterConfig(
        sort_option=SortOption.BY_NAME if args.sort == "name" else SortOption.BY_ID,
        sort_order=SortOrder.DESCENDING if args.order == "desc" else SortOrder.ASCENDING,
        type_filters=frozenset(args.types or ()),
    )


def _command_browse(args: argparse.Namespace) -> int:
    from dext.config import load_config
    from dext.main import render_records, run_session
    from logger import setup_logging

    _load_env()
    config = load_config()
    setup_logging(config.log_level)
    filters = _build_filters(args)
    state = asyncio.run(
        run_session(
            config,
            pages=args.pages,
            filters=filters,
            use_snapshot=not args.no_cache,
        )
    )
    render_records(state.records, title=f"Pokédex ({state.mode.value})")
    if state.error_message:
        print(CheckResult("browse", state.error_message, "fail").formatted())
        return 1
    return 0


def _command_search(args: argparse.Namespace) -> int:
    from dext.config import load_config
    from dext.main import render_records, run_session
    from logger import setup_logging

    _load_env()
    config = load_config()
    setup_logging(config.log_level)
    state = asyncio.run(
        run_session(config, pages=0, search_text=args.text, use_snapshot=True)
    )
    render_records(state.search_results, title=f"Search: {args.text}")
    return 0 if state.search_results else 1


def _command_check() -> int:
    from dext.config import load_config

    _load_env()

    results: List[CheckResult] = []

    def add_result(title: str, status: str, message: str) -> None:
        results.append(CheckResult(title=title, status=status, message=message))

    try:
        config = load_config()
    except RuntimeError as exc:
        add_result("config", "fail", str(exc))
        config = None
    else:
        add_result(
            "config",
            "ok",
            f"page limit {config.page_limit}, fan-out "
            f"{config.fanout_limit or 'unbounded'}, base {config.api_base_url}",
        )

    if config is not None:
        probe_url = f"{config.api_base_url}/pokemon"
        try:
            response = requests.get(
                probe_url,
                params={"limit": 1, "offset": 0},
                headers={"User-Agent": config.user_agent},
                timeout=config.http_timeout_sec,
            )
        except requests.RequestException as exc:
            add_result("api", "fail", f"{probe_url} is unreachable: {exc}")
        else:
            if response.status_code != 200:
                add_result("api", "fail", f"{probe_url} answered {response.status_code}")
            else:
                try:
                    count = response.json().get("count")
                except ValueError:
                    add_result("api", "fail", "Response is not JSON")
                else:
                    add_result("api", "ok", f"Catalog reachable, {count} entries")

        snapshot_dir = config.snapshot_path.parent
        try:
            snapshot_dir.mkdir(parents=True, exist_ok=True)
            probe = snapshot_dir / ".write_test"
            probe.write_text("ok", encoding="utf-8")
            probe.unlink()
        except OSError as exc:
            add_result("snapshot", "fail", f"{snapshot_dir} is not writable: {exc}")
        else:
            from dext.services.snapshot_cache import SnapshotCache

            cached = SnapshotCache(config.snapshot_path).load()
            if cached:
                add_result("snapshot", "ok", f"{len(cached)} cached records")
            else:
                add_result("snapshot", "warn", "No usable snapshot yet")

    print("\n=== Self-check report ===")
    for item in results:
        print(item.formatted())

    has_fail = any(item.status == "fail" for item in results)
    has_warn = any(item.status == "warn" for item in results)

    if has_fail:
        summary = CheckResult(title="Summary", status="fail", message="critical problems found")
    elif has_warn:
        summary = CheckResult(
            title="Summary", status="warn", message="warnings present, nothing critical"
        )
    else:
        summary = CheckResult(title="Summary", status="ok", message="ready to run")
    print(summary.formatted())

    return 1 if has_fail else 0


def main(argv: Optional[List[str]] = None) -> int:
    from dext.models import KNOWN_TYPES

    parser = argparse.ArgumentParser(description="Dext management CLI")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Restore the snapshot and load the first page")
    run_parser.set_defaults(func=lambda _args: _command_run())

    browse_parser = subparsers.add_parser("browse", help="Page through the catalog")
    browse_parser.add_argument("--pages", type=int, default=1)
    browse_parser.add_argument("--sort", choices=("id", "name"), default="id")
    browse_parser.add_argument("--order", choices=("asc", "desc"), default="asc")
    browse_parser.add_argument(
        "--type",
        dest="types",
        action="append",
        type=str.lower,
        choices=KNOWN_TYPES,
        metavar="TYPE",
        help=f"Filter by type, repeatable: {', '.join(KNOWN_TYPES)}",
    )
    browse_parser.add_argument("--no-cache", action="store_true", help="Ignore the snapshot")
    browse_parser.set_defaults(func=_command_browse)

    search_parser = subparsers.add_parser("search", help="Search by name or id")
    search_parser.add_argument("text")
    search_parser.set_defaults(func=_command_search)

    check_parser = subparsers.add_parser("check", help="Run an environment self-check")
    check_parser.set_defaults(func=lambda _args: _command_check())

    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 1
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
