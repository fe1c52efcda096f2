"""Tests for pipeline_runs.helpers module."""

import argparse
from datetime import date

import pytest

from pipeline_runs.helpers import build_parser, parse_categories, parse_category
from source_registry.models import Category


class TestParseCategories:
    @pytest.mark.parametrize("value", [None, "", "all", " ALL "])
    def test_all_categories(self, value) -> None:
        assert parse_categories(value) == []

    def test_parses_list(self) -> None:
        assert parse_categories("news, crypto") == [Category.NEWS, Category.CRYPTO]

    def test_skips_invalid(self) -> None:
        assert parse_categories("news,bogus") == [Category.NEWS]

    def test_no_valid_categories(self) -> None:
        with pytest.raises(ValueError):
            parse_categories("bogus")


class TestParseCategory:
    def test_valid(self) -> None:
        assert parse_category("insider") == Category.INSIDER

    def test_invalid(self) -> None:
        with pytest.raises(argparse.ArgumentTypeError):
            parse_category("bogus")


class TestBuildParser:
    def test_run_command(self) -> None:
        args = build_parser().parse_args(["run", "--categories", "news", "--mode", "scheduled", "--load-local"])
        assert args.command == "run"
        assert args.categories == "news"
        assert args.mode == "scheduled"
        assert args.load_local is True
        assert args.load_s3 is False

    def test_query_command(self) -> None:
        args = build_parser().parse_args(["query", "--category", "social", "--ticker", "aapl", "--since", "2024-01-02"])
        assert args.category == Category.SOCIAL
        assert args.since == date(2024, 1, 2)

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])
