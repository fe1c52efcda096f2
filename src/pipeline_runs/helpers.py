"""Helper functions for the pipeline CLI."""

from __future__ import annotations

import argparse
import logging

from common.cli_helpers import parse_date
from source_registry.models import Category

logger = logging.getLogger(__name__)


def parse_categories(value: str | None) -> list[Category]:
    '''Parse the --categories argument into a list of categories.'''

    # If no value is provided or if "all" is specified, collect every category
    if not value or value.strip().lower() == "all":
        return []

    parsed = [c.strip() for c in value.split(",") if c.strip() and c.strip().lower() != "all"]

    categories = []
    for name in parsed:
        try:
            categories.append(Category.parse(name))
        except ValueError:
            logger.warning("Invalid category: %s", name)

    # Raise an error if no valid categories were provided
    if not categories:
        valid = ", ".join(c.value for c in Category)
        raise ValueError(f"No valid categories provided. Valid categories: {valid}")

    return categories


def parse_category(value: str) -> Category:
    '''argparse type for a single category.'''
    try:
        return Category.parse(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def parse_since(value: str):
    return parse_date(value, field_name="since")


def build_parser() -> argparse.ArgumentParser:
    '''CLI arguments for the intel-pipeline command.'''

    parser = argparse.ArgumentParser(prog="intel-pipeline")
    parser.add_argument("--config", default=None, help="Config name or YAML path (default: $PIPELINE_CONFIG or prod).")
    parser.add_argument("--log-level", default="INFO")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run one collect/process/analyze cycle.")
    run.add_argument("--categories", default=None, help="Comma-separated categories (default: all).")
    run.add_argument("--mode", choices=["manual", "scheduled"], default="manual")
    run.add_argument("--timeout", type=float, default=None, help="Seconds to wait for the run.")
    run.add_argument("--load-local", action="store_true")
    run.add_argument("--load-s3", action="store_true")

    schedule = subparsers.add_parser("schedule", help="Run the periodic scheduler loop.")
    schedule.add_argument("--tick-seconds", type=float, default=None)

    process = subparsers.add_parser("process", help="Analyze the unprocessed backlog.")
    process.add_argument("--category", type=parse_category, default=None)

    query = subparsers.add_parser("query", help="Print aggregated intelligence.")
    query.add_argument("--category", type=parse_category, default=None)
    query.add_argument("--ticker", default=None)
    query.add_argument("--since", type=parse_since, default=None, help="UTC date (YYYY-MM-DD)")

    sources = subparsers.add_parser("sources", help="List sources and their scheduler status.")
    sources.add_argument("--category", type=parse_category, default=None)

    return parser
