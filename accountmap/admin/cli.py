"""Administrative CLI utilities for the persisted geocode cache."""
from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import List, Optional

from accountmap.admin.status import cache_summary
from accountmap.geo.cache import GEO_CACHE_KEY, FileBlobStore, GeoCache
from accountmap.observability.log import configure_logging


def _open_cache(args: argparse.Namespace) -> GeoCache:
    return GeoCache(FileBlobStore(Path(args.root)), key=args.key)


def cmd_stats(args: argparse.Namespace) -> None:
    print(json.dumps(cache_summary(_open_cache(args)), indent=2))


def cmd_clear(args: argparse.Namespace) -> None:
    cache = _open_cache(args)
    removed = len(cache)
    asyncio.run(cache.clear())
    print(json.dumps({"location": cache.location, "removed": removed}, indent=2))


def cmd_lookup(args: argparse.Namespace) -> None:
    cache = _open_cache(args)
    coordinate = cache.get(args.address)
    print(json.dumps({
        "address": args.address,
        "cached": coordinate is not None,
        "coordinate": coordinate.model_dump() if coordinate else None,
    }, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="accountmap.admin.cli", description="Geocode cache administration")
    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("cache-stats", "Show the number of cached addresses"),
        ("cache-clear", "Remove every cached address"),
        ("cache-lookup", "Show the cached coordinate for one address"),
    ):
        command = sub.add_parser(name, help=help_text)
        command.add_argument("--root", default="data/cache", help="Cache directory")
        command.add_argument("--key", default=GEO_CACHE_KEY, help="Cache blob key")
        if name == "cache-lookup":
            command.add_argument("--address", required=True)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    configure_logging(Path("config/logging.yaml"))
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "cache-stats":
        cmd_stats(args)
        return
    if args.command == "cache-clear":
        cmd_clear(args)
        return
    if args.command == "cache-lookup":
        cmd_lookup(args)
        return


if __name__ == "__main__":
    main()
