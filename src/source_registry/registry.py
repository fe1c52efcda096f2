"""Source registry: lookup and filtering over the static source catalog."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from pydantic import ValidationError

from common.config import load_yaml, parse_duration
from source_registry.models import (
    FETCH_PARAM_MODELS,
    Category,
    FetchKind,
    PriorityTier,
    SourceDescriptor,
)
from source_registry.sources import DATA_SOURCES

logger = logging.getLogger(__name__)


class UnknownSource(KeyError):
    """Raised when a source id is not in the registry."""

    def __init__(self, source_id: str):
        super().__init__(source_id)
        self.source_id = source_id

    def __str__(self) -> str:
        return f"Unknown source: {self.source_id}"


class InvalidSourceConfig(ValueError):
    """Raised when the source catalog cannot be turned into descriptors."""


class SourceRegistry:
    """Immutable, declaration-ordered catalog of source descriptors."""

    def __init__(self, sources: Iterable[SourceDescriptor]):
        ordered: list[SourceDescriptor] = []
        by_id: dict[str, SourceDescriptor] = {}
        for source in sources:
            if source.id in by_id:
                raise InvalidSourceConfig(f"Duplicate source id: {source.id}")
            by_id[source.id] = source
            ordered.append(source)
        self._sources = tuple(ordered)
        self._by_id = by_id

    def __len__(self) -> int:
        return len(self._sources)

    def __iter__(self):
        return iter(self._sources)

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._by_id

    def get(self, source_id: str) -> SourceDescriptor:
        try:
            return self._by_id[source_id]
        except KeyError:
            raise UnknownSource(source_id) from None

    def list(
        self,
        category: Category | str | None = None,
        tier_at_or_above: PriorityTier | str | None = None,
        enabled_only: bool = False,
    ) -> tuple[SourceDescriptor, ...]:
        """Sources matching the filter, in declaration order."""
        wanted_category = Category.parse(category) if category is not None else None
        min_tier = PriorityTier.parse(tier_at_or_above) if tier_at_or_above is not None else None
        return tuple(
            source
            for source in self._sources
            if (wanted_category is None or source.category == wanted_category)
            and (min_tier is None or source.tier.at_or_above(min_tier))
            and (not enabled_only or source.enabled)
        )

    def categories(self) -> list[Category]:
        """Categories present in the registry, in declaration order."""
        seen: list[Category] = []
        for source in self._sources:
            if source.category not in seen:
                seen.append(source.category)
        return seen


def build_descriptor(
    raw: Mapping[str, Any],
    category: Category,
    tier: PriorityTier,
    cadence,
) -> SourceDescriptor:
    """Validate one catalog entry and build its descriptor."""
    source_id = raw.get("id")
    if not source_id:
        raise InvalidSourceConfig(f"Source in {category.value} is missing an id: {raw}")

    try:
        fetch_kind = FetchKind(raw.get("kind", "custom"))
    except ValueError as exc:
        raise InvalidSourceConfig(f"Source {source_id}: unknown fetch kind {raw.get('kind')!r}") from exc

    try:
        params = FETCH_PARAM_MODELS[fetch_kind].model_validate(raw.get("params") or {})
    except ValidationError as exc:
        raise InvalidSourceConfig(f"Source {source_id}: invalid {fetch_kind.value} params: {exc}") from exc

    try:
        source_tier = PriorityTier.parse(raw["tier"]) if "tier" in raw else tier
        source_cadence = parse_duration(raw["cadence"]) if "cadence" in raw else cadence
    except ValueError as exc:
        raise InvalidSourceConfig(f"Source {source_id}: {exc}") from exc

    return SourceDescriptor(
        id=source_id,
        name=raw.get("name", source_id),
        category=category,
        tier=source_tier,
        fetch_kind=fetch_kind,
        fetch_params=params.model_dump(exclude_none=True),
        cadence=source_cadence,
        enabled=bool(raw.get("enabled", True)),
    )


def build_registry(catalog: Mapping[str, Mapping[str, Any]] | None = None) -> SourceRegistry:
    """Build a registry from a category-grouped catalog (defaults to DATA_SOURCES)."""
    if catalog is None:
        catalog = DATA_SOURCES

    descriptors = []
    for category_name, group in catalog.items():
        if not group.get("enabled", True):
            logger.info("Skipping disabled category %s", category_name)
            continue
        try:
            category = Category.parse(category_name)
            tier = PriorityTier.parse(group.get("tier", "MEDIUM"))
            cadence = parse_duration(group.get("cadence"))
        except ValueError as exc:
            raise InvalidSourceConfig(f"Category {category_name}: {exc}") from exc

        for raw in group.get("sources", []):
            descriptors.append(build_descriptor(raw, category, tier, cadence))

    registry = SourceRegistry(descriptors)
    logger.info(
        "Loaded %d sources (%d enabled) across %d categories",
        len(registry),
        len(registry.list(enabled_only=True)),
        len(registry.categories()),
    )
    return registry


def load_registry(path: Optional[Path | str] = None) -> SourceRegistry:
    """Load the registry from a YAML catalog file, or the built-in catalog when no path is given."""
    if path is None:
        return build_registry()
    return build_registry(load_yaml(Path(path)))
