"""CLI for running the intelligence pipeline."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import replace

from dotenv import load_dotenv

from aggregate_intelligence.models import IntelligenceFilter
from common.cli_helpers import date_to_datetime, setup_logging
from common.serialization import serialize_dataclass
from pipeline_runs.config import load_config, set_config
from pipeline_runs.export import flatten_result, save_local, upload_s3
from pipeline_runs.helpers import build_parser, parse_categories
from pipeline_runs.models import RunStage
from pipeline_runs.service import IntelligencePipeline

load_dotenv()

logger = logging.getLogger(__name__)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str, ensure_ascii=False))


def _run(pipeline: IntelligencePipeline, args) -> int:
    categories = parse_categories(args.categories)
    snapshot = pipeline.run_once(args.mode, categories, timeout=args.timeout)
    _print_json(snapshot.to_dict())

    if snapshot.stage != RunStage.COMPLETE:
        logger.error("Run %s ended in %s: %s", snapshot.run_id, snapshot.stage.value, snapshot.error)
        return 1

    if args.load_local or args.load_s3:
        records = [
            record
            for category in categories or [None]
            for record in flatten_result(pipeline.query_intelligence(IntelligenceFilter(category=category)))
        ]
        if not records:
            logger.warning("No intelligence items to export")
        else:
            if args.load_local:
                save_local(records)
            if args.load_s3:
                upload_s3(records)
    return 0


def _schedule(pipeline: IntelligencePipeline, args) -> int:
    if args.tick_seconds is not None:
        pipeline.config = replace(
            pipeline.config,
            scheduler=replace(pipeline.config.scheduler, tick_seconds=args.tick_seconds),
        )
    stop_event = threading.Event()
    try:
        pipeline.run_scheduler(stop_event)
    except KeyboardInterrupt:
        logger.info("Interrupted; stopping scheduler")
        stop_event.set()
    return 0


def _process(pipeline: IntelligencePipeline, args) -> int:
    result = pipeline.process_backlog(args.category)
    _print_json(serialize_dataclass(result))
    return 0


def _query(pipeline: IntelligencePipeline, args) -> int:
    since = date_to_datetime(args.since) if args.since else None
    result = pipeline.query_intelligence(
        IntelligenceFilter(category=args.category, ticker=args.ticker, since=since)
    )
    _print_json(result.to_dict())
    return 0


def _sources(pipeline: IntelligencePipeline, args) -> int:
    for source, state in pipeline.source_statuses(args.category):
        print(
            f"{source.id:24} {source.category.value:12} {source.tier.value:8} "
            f"{'enabled' if source.enabled else 'disabled':8} {state.status.value:9} "
            f"failures={state.consecutive_failures} next_due={state.next_due_at or '-'}"
        )
    return 0


COMMANDS = {
    "run": _run,
    "schedule": _schedule,
    "process": _process,
    "query": _query,
    "sources": _sources,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    config = load_config(args.config)
    set_config(config)

    pipeline = IntelligencePipeline.from_config(config)
    try:
        return COMMANDS[args.command](pipeline, args)
    finally:
        pipeline.shutdown()


if __name__ == "__main__":
    raise SystemExit(main())
