"""Serialization utilities."""

from dataclasses import asdict
from datetime import datetime
from enum import Enum


def _serialize_value(value):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _serialize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, frozenset, set)):
        return [_serialize_value(v) for v in value]
    return value


def serialize_dataclass(obj) -> dict:
    """Serialize a dataclass to dict, converting datetimes to ISO strings and enums to values."""
    data = asdict(obj)
    return {key: _serialize_value(value) for key, value in data.items()}
