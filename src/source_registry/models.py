"""Data models for the source registry."""

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class Category(str, Enum):
    """Domain tag of a data source. Also the aggregation bucket."""

    NEWS = "NEWS"
    CRYPTO = "CRYPTO"
    EXECUTIVES = "EXECUTIVES"
    FILINGS = "FILINGS"
    MERGERS = "MERGERS"
    RATES = "RATES"
    EVENTS = "EVENTS"
    INSIDER = "INSIDER"
    SOCIAL = "SOCIAL"
    TITANS = "TITANS"
    GEOPOLITICAL = "GEOPOLITICAL"
    ECONOMIC = "ECONOMIC"
    OPTIONS = "OPTIONS"
    POLITICAL = "POLITICAL"

    @property
    def bucket(self) -> str:
        return self.value.lower()

    @classmethod
    def parse(cls, value: "str | Category") -> "Category":
        if isinstance(value, Category):
            return value
        try:
            return cls(value.strip().upper())
        except ValueError as exc:
            raise ValueError(f"Unknown category: {value}") from exc


class PriorityTier(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        """0 for CRITICAL up to 3 for LOW; lower ranks are dispatched first."""
        return TIER_ORDER.index(self)

    def at_or_above(self, other: "PriorityTier") -> bool:
        return self.rank <= other.rank

    @classmethod
    def parse(cls, value: "str | PriorityTier") -> "PriorityTier":
        if isinstance(value, PriorityTier):
            return value
        try:
            return cls(value.strip().upper())
        except ValueError as exc:
            raise ValueError(f"Unknown priority tier: {value}") from exc


TIER_ORDER = [PriorityTier.CRITICAL, PriorityTier.HIGH, PriorityTier.MEDIUM, PriorityTier.LOW]

TIER_DEFAULT_CADENCE = {
    PriorityTier.CRITICAL: timedelta(minutes=15),
    PriorityTier.HIGH: timedelta(minutes=30),
    PriorityTier.MEDIUM: timedelta(hours=1),
    PriorityTier.LOW: timedelta(days=1),
}


class FetchKind(str, Enum):
    RSS = "rss"
    SCRAPE = "scrape"
    API = "api"
    EDGAR_FILING = "edgar-filing"
    CUSTOM = "custom"


# Fetch parameter bags, one model per fetch kind.


class _FetchParams(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    timeout_seconds: Optional[float] = Field(default=None, gt=0)
    tickers: list[str] = Field(default_factory=list)


class RssParams(_FetchParams):
    url: str


class ScrapeParams(_FetchParams):
    url: str


class ApiParams(_FetchParams):
    url: str
    api_key_env: Optional[str] = None
    api_key_param: str = "api_key"
    query: dict[str, Any] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    items_path: Optional[str] = None
    title_field: str = "title"
    body_field: Optional[str] = None
    url_field: Optional[str] = None
    ticker_field: Optional[str] = None
    timestamp_field: Optional[str] = None
    title_template: Optional[str] = None


class EdgarParams(_FetchParams):
    form_type: str
    item: Optional[str] = None
    count: int = Field(default=40, ge=1, le=100)


class CustomParams(_FetchParams):
    model_config = ConfigDict(extra="allow", frozen=True)

    handler: Optional[str] = None


FETCH_PARAM_MODELS: dict[FetchKind, type[_FetchParams]] = {
    FetchKind.RSS: RssParams,
    FetchKind.SCRAPE: ScrapeParams,
    FetchKind.API: ApiParams,
    FetchKind.EDGAR_FILING: EdgarParams,
    FetchKind.CUSTOM: CustomParams,
}


def _freeze(value: Any) -> Any:
    """Read-only copy of nested params: mappings become proxies, lists become tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


@dataclass(frozen=True)
class SourceDescriptor:
    """An immutable entry of the source catalog."""
    id: str
    name: str
    category: Category
    tier: PriorityTier
    fetch_kind: FetchKind
    fetch_params: Mapping[str, Any] = field(default_factory=dict)
    cadence: Optional[timedelta] = None
    enabled: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "fetch_params", _freeze(self.fetch_params))

    @property
    def effective_cadence(self) -> timedelta:
        return self.cadence if self.cadence is not None else TIER_DEFAULT_CADENCE[self.tier]

    @property
    def timeout_seconds(self) -> Optional[float]:
        return self.fetch_params.get("timeout_seconds")

    def __hash__(self) -> int:
        return hash(self.id)
