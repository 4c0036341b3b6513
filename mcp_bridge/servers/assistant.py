"""
Assistant Tool Server — weather, time, currency and Wikipedia tools.

Runs as the bridge's worker subprocess, speaking Content-Length framed
JSON-RPC on stdin/stdout.

Launch:
    python -m mcp_bridge.servers.assistant

Environment:
    WEATHER_API_KEY   OpenWeatherMap API key (getWeather)
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx

from mcp_bridge.server import StdioToolServer, ToolHandler

logger = logging.getLogger(__name__)

USER_AGENT = "MCPToolServer/1.0 (Python; httpx)"
REQUEST_TIMEOUT = 10.0

WEATHER_URL = "https://api.openweathermap.org/data/2.5/weather"
EXCHANGE_URL = "https://open.exchangerate-api.com/v6/latest/{currency}"
WIKI_SUMMARY_URL = "https://en.wikipedia.org/api/rest_v1/page/summary/{topic}"


def _http_error_detail(error: httpx.HTTPError, key: str = "message") -> str:
    """Best-effort error text: the API's own message if it sent one."""
    if isinstance(error, httpx.HTTPStatusError):
        try:
            body = error.response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get(key):
            return str(body[key])
        return f"HTTP {error.response.status_code}"
    return str(error) or error.__class__.__name__


def default_http_client() -> httpx.Client:
    return httpx.Client(
        timeout=REQUEST_TIMEOUT,
        headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
    )


class HttpTool(ToolHandler):
    """A tool that calls an external HTTP API."""

    def __init__(self, client: httpx.Client | None = None):
        self._client = client or default_http_client()


class GetWeatherTool(HttpTool):
    name = "getWeather"
    description = "Get weather of any city using OpenWeatherMap API."
    parameters = {
        "city": {"type": "string", "description": "City name, e.g. 'London'"},
    }
    required = ["city"]

    def __init__(self, client: httpx.Client | None = None, api_key: str | None = None):
        super().__init__(client)
        self._api_key = api_key if api_key is not None else os.environ.get("WEATHER_API_KEY")

    def handle(self, params: dict) -> dict:
        city = str(params.get("city") or "").strip()
        if not city:
            return {"success": False, "error": "City is required."}
        if not self._api_key:
            return {"success": False, "error": "Weather API key is not configured."}

        try:
            response = self._client.get(
                WEATHER_URL,
                params={"q": city, "appid": self._api_key, "units": "metric"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Weather API error for {city!r}: {e}")
            return {"success": False, "error": f"Could not fetch weather: {_http_error_detail(e)}"}

        try:
            data = response.json()
            return {
                "success": True,
                "city": city,
                "temperature": data["main"]["temp"],
                "condition": data["weather"][0]["description"],
                "humidity": data["main"]["humidity"],
                "feels_like": data["main"]["feels_like"],
            }
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"Unexpected weather API response for {city!r}: {e!r}")
            return {"success": False, "error": f"Could not fetch weather: unexpected response ({e!r})"}


class GetCurrentTimeTool(ToolHandler):
    name = "getCurrentTime"
    description = "Returns the current server time."
    parameters = {}

    def handle(self, params: dict) -> dict:
        now = datetime.now().astimezone()
        return {"success": True, "time": now.strftime("%Y-%m-%d %H:%M:%S %Z")}


class GetCurrencyExchangeTool(HttpTool):
    name = "getCurrencyExchange"
    description = "Fetch currency exchange rate from one currency to another."
    parameters = {
        "from": {"type": "string", "description": "Source currency code, e.g. 'USD'"},
        "to": {"type": "string", "description": "Target currency code, e.g. 'EUR'"},
    }
    required = ["from", "to"]

    def handle(self, params: dict) -> dict:
        source = str(params.get("from") or "").strip().upper()
        target = str(params.get("to") or "").strip().upper()
        if not source or not target:
            return {"success": False, "error": "Both 'from' and 'to' currencies are required."}

        try:
            response = self._client.get(EXCHANGE_URL.format(currency=quote(source)))
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Currency API error for {source}: {e}")
            return {
                "success": False,
                "error": f"Error fetching currency exchange: {_http_error_detail(e)}",
            }

        try:
            data = response.json()
        except ValueError:
            return {"success": False, "error": "Invalid API response structure."}
        rates = data.get("rates") if isinstance(data, dict) else None
        if not isinstance(rates, dict) or not rates:
            return {"success": False, "error": "Invalid API response structure."}

        rate = rates.get(target)
        if not rate:
            return {"success": False, "error": f"Currency {target} not found."}

        return {
            "success": True,
            "from": source,
            "to": target,
            "rate": rate,
            "result": rate,
            "date": data.get("time_last_update_utc"),
        }


class GetWikiSummaryTool(HttpTool):
    name = "getWikiSummary"
    description = "Fetch a Wikipedia summary for a topic."
    parameters = {
        "topic": {"type": "string", "description": "Wikipedia topic, e.g. 'Alan Turing'"},
    }
    required = ["topic"]

    def handle(self, params: dict) -> dict:
        topic = str(params.get("topic") or "").strip()
        if not topic:
            return {"success": False, "error": "Topic is required."}

        try:
            response = self._client.get(WIKI_SUMMARY_URL.format(topic=quote(topic, safe="")))
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Wikipedia API error for {topic!r}: {e}")
            return {
                "success": False,
                "error": f"Could not fetch Wikipedia summary: {_http_error_detail(e, key='title')}",
            }

        try:
            data = response.json()
        except ValueError as e:
            logger.warning(f"Wikipedia API returned invalid JSON for {topic!r}: {e}")
            return {"success": False, "error": "Could not fetch Wikipedia summary: invalid response"}
        if not isinstance(data, dict):
            return {"success": False, "error": "Could not fetch Wikipedia summary: invalid response"}

        if data.get("type") == "disambiguation":
            return {"success": False, "error": "Topic is ambiguous. Try a more specific name."}

        return {
            "success": True,
            "title": data.get("title"),
            "summary": data.get("extract"),
            "url": ((data.get("content_urls") or {}).get("desktop") or {}).get("page"),
        }


def build_server(client: httpx.Client | None = None, **kwargs: Any) -> StdioToolServer:
    """Create a server with all assistant tools registered on a shared HTTP client."""
    client = client or default_http_client()
    server = StdioToolServer(**kwargs)
    server.register(GetWeatherTool(client))
    server.register(GetCurrentTimeTool())
    server.register(GetCurrencyExchangeTool(client))
    server.register(GetWikiSummaryTool(client))
    return server


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    build_server().run()
