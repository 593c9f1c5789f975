"""Web search tool backed by the Serper (Google search) API."""

import logging
import re
from typing import (
    Any,
    Dict,
    List,
)

import httpx

from tripflow.config import settings
from tripflow.core.arguments import Arguments
from tripflow.core.schema import ToolResult
from tripflow.tools import (
    BaseTool,
    register_tool,
)

logger = logging.getLogger(__name__)

SERPER_ENDPOINT = "https://google.serper.dev/search"


def _clean(value: str | None, max_chars: int = 400) -> str:
    cleaned = re.sub(r"\s+", " ", value or "").strip()
    if len(cleaned) <= max_chars:
        return cleaned
    return cleaned[:max_chars].rstrip() + "..."


@register_tool("web_search")
class WebSearchTool(BaseTool):
    """Search the web and return ranked titles, links and snippets."""

    name = "web_search"
    description = "Search the web for up-to-date information (opening hours, events, prices, ...)."
    parameters = {
        "query": {"type": "string", "description": "Search query text"},
        "count": {"type": "integer", "description": "Number of results (1-10, default 5)"},
    }
    required = ("query",)

    def __init__(self, api_key: str | None = None, endpoint: str = SERPER_ENDPOINT) -> None:
        self.api_key = api_key or settings.SERPER_API_KEY
        self.endpoint = endpoint

    def execute(self, args: Arguments) -> ToolResult:
        query = args.require_str("query")
        count = min(max(args.get_int("count", 5) or 5, 1), 10)
        if not self.api_key:
            return ToolResult.fail("Web search is not configured (SERPER_API_KEY missing).")

        try:
            with httpx.Client(timeout=30.0) as client:
                resp = client.post(
                    self.endpoint,
                    headers={"X-API-KEY": self.api_key},
                    json={"q": query, "num": count},
                )
                resp.raise_for_status()
                payload: Dict[str, Any] = resp.json()
        except httpx.HTTPError as e:
            logger.error("Serper request error: %s", str(e))
            return ToolResult.fail(f"Web search failed: {str(e)}", query=query)

        organic: List[Dict[str, Any]] = payload.get("organic", [])[:count]
        if not organic:
            return ToolResult.ok(f"No results found for: {query}", query=query, results_count=0)

        lines = [f"Search results for: {query}", ""]
        for index, item in enumerate(organic, start=1):
            lines.append(f"{index}. {_clean(item.get('title'), 150)}")
            lines.append(f"   {item.get('link', '')}")
            snippet = _clean(item.get("snippet"))
            if snippet:
                lines.append(f"   {snippet}")
        return ToolResult.ok("\n".join(lines), query=query, results_count=len(organic))
