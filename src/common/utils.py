"""Common utility functions."""

from typing import Any


def get_value(obj: Any, key: str) -> Any:
    """Get value from dict or object attribute."""
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def get_path(obj: Any, path: str | None) -> Any:
    """Follow a dotted path ("data.children") through dicts, objects and list indexes."""
    if not path:
        return obj
    current = obj
    for part in path.split("."):
        if current is None:
            return None
        if isinstance(current, list):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return None
        else:
            current = get_value(current, part)
    return current
