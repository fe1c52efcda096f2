import json
import logging
import os
from typing import Any, Optional, Protocol

from openai import OpenAI, OpenAIError

from item_store.models import StoredItem
from process_items.instructions import ANALYZE_ITEM_INSTRUCTIONS

logger = logging.getLogger(__name__)

SENTIMENTS = ("bullish", "bearish", "neutral")
IMPACTS = ("high", "medium", "low")


class AnalysisError(Exception):
    """The analysis engine could not enrich one item."""


class AnalysisEngine(Protocol):
    def analyze(self, item: StoredItem) -> dict[str, Any]:
        ...


def _format_item_for_prompt(item: StoredItem) -> str:
    """Format a stored item into a text block for the LLM prompt."""
    lines = [
        f"Category: {item.category.value}",
        f"Source: {item.source_id}",
        f"Title: {item.title}",
    ]
    if item.ticker:
        lines.append(f"Known ticker: {item.ticker}")
    if item.body:
        lines.append(f"Body: {item.body[:4000]}")
    return "\n".join(lines)


def parse_enrichment(content: Optional[str]) -> dict[str, Any]:
    """Validate the model's JSON answer into an enrichment dict."""
    if not content:
        raise AnalysisError("Empty response from model")
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise AnalysisError(f"Model returned invalid JSON: {e}") from e

    summary = data.get("summary")
    if not summary:
        raise AnalysisError("Model response has no summary")

    sentiment = str(data.get("sentiment", "neutral")).lower()
    impact = str(data.get("impact", "low")).lower()
    return {
        "summary": summary,
        "sentiment": sentiment if sentiment in SENTIMENTS else "neutral",
        "impact": impact if impact in IMPACTS else "low",
        "tickers": sorted({str(t).strip().lstrip("$").upper() for t in data.get("tickers") or [] if str(t).strip()}),
    }


class OpenAIAnalysisEngine:
    """Enrich an item with a JSON-object chat completion."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        instructions: str = ANALYZE_ITEM_INSTRUCTIONS,
        client: Optional[OpenAI] = None,
    ):
        self.model = model
        self.instructions = instructions
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=os.environ.get("OPENAI_API_KEY"))
        return self._client

    def analyze(self, item: StoredItem) -> dict[str, Any]:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self.instructions},
                    {"role": "user", "content": _format_item_for_prompt(item)},
                ],
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            raise AnalysisError(f"OpenAI request failed: {e}") from e

        content = response.choices[0].message.content
        enrichment = parse_enrichment(content)
        enrichment["model"] = self.model
        return enrichment
