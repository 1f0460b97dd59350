"""Command-line entrypoints for the account map pipeline."""
from __future__ import annotations

import argparse
import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from accountmap.encode.visual import color_from_revenue, parse_revenue, radius_from_revenue, revenue_label
from accountmap.fetch.pager import PagedFetcher
from accountmap.fetch.session import create_directory
from accountmap.geo.cache import FileBlobStore, shared_geo_cache
from accountmap.geo.geocoder import create_geocoder
from accountmap.geo.resolver import GeocodeResolver
from accountmap.observability.log import configure_logging
from accountmap.observability.metrics import MetricsRegistry, record_duration
from accountmap.observability.tracing import clear_context, set_context
from accountmap.orchestrator.pipeline import Pipeline, PipelineResult
from accountmap.settings import DEFAULT_SETTINGS_PATH, Settings, load_settings
from accountmap.storage.writers import ExportConsumer

DEFAULT_LOGGING_CONFIG = Path("config/logging.yaml")


def build_arg_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(prog="accountmap", description="Account map ingestion pipeline")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Fetch, resolve and export every account")
    run.add_argument("--zoom", type=float, help="Zoom level used for exported radii")
    run.add_argument("--output", help="Export directory (defaults to output.data_root)")
    run.add_argument("--geocode-delay", type=float, help="Seconds to wait after each geocoding request")

    encode = sub.add_parser("encode", help="Print the visual encoding for one account")
    encode.add_argument("--id", dest="account_id", required=True, help="Account identifier")
    encode.add_argument("--revenue", default=None, help="Raw revenue value")
    encode.add_argument("--zoom", type=float, default=2, help="Map zoom level")

    return parser


def _write_manifest(path: Path, *, run_id: str, result: PipelineResult, consumer: ExportConsumer, metrics: MetricsRegistry) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps({
            "run_id": run_id,
            "records_seen": result.records_seen,
            "entities": len(result.entities),
            "paths": {kind: str(target) for kind, target in consumer.paths.items()},
            "metrics": metrics.snapshot(),
            "error": str(result.error) if result.error else None,
            "exit_code": 0 if result.ok else 1,
        }, indent=2),
        encoding="utf-8",
    )
    return path


async def run_pipeline(args: argparse.Namespace, settings: Settings) -> PipelineResult:
    """Execute one full run and write exports, manifest and metrics."""
    run_id = getattr(args, "run_id", None) or datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
    output_root = Path(args.output) if getattr(args, "output", None) else settings.output.data_root
    zoom = args.zoom if getattr(args, "zoom", None) is not None else settings.output.zoom
    delay = getattr(args, "geocode_delay", None)
    if delay is None:
        delay = settings.geocoder.delay_seconds

    metrics = MetricsRegistry()
    cache = shared_geo_cache(FileBlobStore(settings.cache.root), key=settings.cache.key)
    consumer = ExportConsumer(output_root, zoom=zoom)

    set_context(run_id=run_id)
    try:
        with record_duration(metrics, "run_duration_ms"):
            async with create_directory(
                base_url=settings.directory.base_url,
                access_token=settings.directory.access_token,
                entity_set=settings.directory.entity_set,
                select=settings.directory.select,
                timeout=settings.directory.timeout_seconds,
                max_attempts=settings.directory.max_attempts,
                metrics=metrics,
            ) as directory, create_geocoder(
                endpoint=settings.geocoder.endpoint,
                user_agent=settings.geocoder.user_agent,
                timeout=settings.geocoder.timeout_seconds,
            ) as geocoder:
                pipeline = Pipeline(
                    fetcher=PagedFetcher(directory, max_page_size=settings.directory.max_page_size, metrics=metrics),
                    resolver=GeocodeResolver(cache=cache, geocoder=geocoder, delay_seconds=delay, metrics=metrics),
                    consumer=consumer,
                    metrics=metrics,
                )
                result = await pipeline.run()
    finally:
        clear_context()

    _write_manifest(output_root / "manifests" / f"run-{run_id}.json", run_id=run_id, result=result, consumer=consumer, metrics=metrics)
    metrics.export(path=output_root / "metrics" / f"run_{run_id}.json", run_id=run_id)
    return result


def encode_account(account_id: str, revenue: object, zoom: float) -> dict:
    amount = parse_revenue(revenue)
    return {
        "id": account_id,
        "revenue": amount,
        "zoom": zoom,
        "color": color_from_revenue(account_id),
        "radius_m": radius_from_revenue(amount, zoom),
        "label": revenue_label(amount),
    }


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI."""
    load_dotenv()
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(DEFAULT_LOGGING_CONFIG)

    if args.command == "encode":
        print(json.dumps(encode_account(args.account_id, args.revenue, args.zoom), indent=2))
        return

    try:
        settings = load_settings(DEFAULT_SETTINGS_PATH)
    except (FileNotFoundError, ValidationError) as exc:
        raise SystemExit(f"Failed to load settings: {exc}")

    if args.command == "run":
        result = asyncio.run(run_pipeline(args, settings))
        print(json.dumps({
            "records_seen": result.records_seen,
            "entities": len(result.entities),
            "error": str(result.error) if result.error else None,
        }, indent=2))
        if not result.ok:
            raise SystemExit(1)


if __name__ == "__main__":
    main()
