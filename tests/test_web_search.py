"""Tests for the web search tool that need no network access."""

import httpx

from tripflow.tools.web_search import WebSearchTool


def test_missing_key_is_reported() -> None:
    """Without a Serper key the tool explains what is missing."""

    tool = WebSearchTool(api_key="")
    tool.api_key = None
    result = tool.run({"query": "West Lake opening hours"})

    assert result.error == "Web search is not configured (SERPER_API_KEY missing)."


def test_query_is_required() -> None:
    """The query argument is mandatory."""

    result = WebSearchTool(api_key="key").run({})
    assert "query" in result.error


def test_results_are_formatted(monkeypatch) -> None:
    """Organic results are listed with title, link and snippet."""

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["X-API-KEY"] == "key"
        return httpx.Response(
            200,
            json={
                "organic": [
                    {
                        "title": "West Lake",
                        "link": "https://example.com/west-lake",
                        "snippet": "Open   all day.",
                    }
                ]
            },
        )

    real_client = httpx.Client
    monkeypatch.setattr(
        httpx,
        "Client",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )

    result = WebSearchTool(api_key="key").run({"query": "West Lake", "count": 3})

    assert result.output.splitlines() == [
        "Search results for: West Lake",
        "",
        "1. West Lake",
        "   https://example.com/west-lake",
        "   Open all day.",
    ]
    assert result.metadata == {"query": "West Lake", "results_count": 1}
