"""Unit tests for the Brave web search client"""

import httpx
import pytest
from merchant_discovery.domain.models import SearchResult, WebSearchResponse
from merchant_discovery.domain.prompts import format_search_results_for_prompt
from merchant_discovery.infrastructure.clients.rate_limiter import RateLimitedScheduler
from merchant_discovery.infrastructure.clients.web_search import BraveSearchClient

BRAVE_PAYLOAD = {
    "web": {
        "results": [
            {
                "title": "Zul+ Estacionamento Digital",
                "description": "Pague o estacionamento pelo app",
                "url": "https://zuldigital.com.br",
                "age": "2 days ago",
            },
            {
                "title": "Zul Cartão",
                "description": "Cartão de estacionamento",
                "url": "https://example.com/zul",
            },
        ]
    }
}


def _client(handler, api_key="test-key") -> BraveSearchClient:
    return BraveSearchClient(
        api_key=api_key,
        base_url="https://search.test/res/v1/web/search",
        scheduler=RateLimitedScheduler(0.0),
        transport=httpx.MockTransport(handler),
    )


async def test_search_parses_results_and_sends_headers():
    """Test request shape and result parsing"""
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["query"] = dict(request.url.params)
        seen["token"] = request.headers.get("X-Subscription-Token")
        seen["accept"] = request.headers.get("Accept")
        return httpx.Response(200, json=BRAVE_PAYLOAD)

    response = await _client(handler).search("zul cartao", max_results=5)

    assert seen["query"] == {"q": "zul cartao", "count": "5"}
    assert seen["token"] == "test-key"
    assert seen["accept"] == "application/json"
    assert response.query == "zul cartao"
    assert [r.title for r in response.results] == ["Zul+ Estacionamento Digital", "Zul Cartão"]
    assert response.results[0].age == "2 days ago"
    assert response.results[1].age is None
    assert response.summary.startswith("1. Zul+ Estacionamento Digital\n   Pague o estacionamento")


async def test_search_caps_results():
    """Test max_results truncates the provider answer"""
    client = _client(lambda request: httpx.Response(200, json=BRAVE_PAYLOAD))

    response = await client.search("zul", max_results=1)

    assert len(response.results) == 1


async def test_search_http_error_degrades_to_empty():
    """Test provider errors never raise"""
    client = _client(lambda request: httpx.Response(429, json={"error": "rate limited"}))

    response = await client.search("zul")

    assert response == WebSearchResponse(query="zul")


async def test_search_network_error_degrades_to_empty():
    """Test transport failures never raise"""

    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    response = await _client(handler).search("zul")

    assert response.results == []


async def test_search_invalid_payload_degrades_to_empty():
    """Test non-JSON bodies never raise"""
    client = _client(lambda request: httpx.Response(200, text="<html>oops</html>"))

    assert (await client.search("zul")).results == []


async def test_search_without_api_key_makes_no_request():
    """Test an unconfigured provider returns zero results"""
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=BRAVE_PAYLOAD)

    client = _client(handler)
    client.api_key = None

    response = await client.search("zul")

    assert response.results == []
    assert calls == []


async def test_search_missing_web_section():
    """Test an answer without web results"""
    client = _client(lambda request: httpx.Response(200, json={"query": {"original": "zul"}}))

    assert (await client.search("zul")).results == []


@pytest.mark.parametrize(
    "payload",
    [
        [],
        ["zul"],
        {"web": ["zul"]},
        {"web": {"results": "zul"}},
        {"web": {"results": ["x", 42, None]}},
    ],
)
async def test_search_malformed_payload_degrades_to_empty(payload):
    """Test unexpected JSON shapes never raise"""
    client = _client(lambda request: httpx.Response(200, json=payload))

    assert (await client.search("zul")).results == []


async def test_search_skips_non_object_entries():
    """Test well-formed entries survive next to malformed ones"""
    payload = {"web": {"results": ["x", BRAVE_PAYLOAD["web"]["results"][0], None]}}
    client = _client(lambda request: httpx.Response(200, json=payload))

    response = await client.search("zul")

    assert [r.title for r in response.results] == ["Zul+ Estacionamento Digital"]


def test_format_search_results_for_prompt():
    """Test prompt rendering of results and of an empty search"""
    empty = format_search_results_for_prompt(WebSearchResponse(query="zul"))
    assert empty == "The web search returned no relevant results."

    rendered = format_search_results_for_prompt(
        WebSearchResponse(query="zul", results=[SearchResult(title="Zul", description="Parking", url="https://zul")])
    )
    assert 'WEB SEARCH RESULTS for "zul"' in rendered
    assert "1. Zul\n   URL: https://zul\n   Parking" in rendered
