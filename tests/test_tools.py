import re

import httpx

from mcp_bridge.servers.assistant import (
    GetCurrencyExchangeTool,
    GetCurrentTimeTool,
    GetWeatherTool,
    GetWikiSummaryTool,
)


def _client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_weather(upstream_client):
    result = GetWeatherTool(upstream_client, api_key="k").handle({"city": "London"})
    assert result == {
        "success": True,
        "city": "London",
        "temperature": 14.2,
        "condition": "light rain",
        "humidity": 71,
        "feels_like": 13.5,
    }


def test_weather_sends_city_key_and_metric_units():
    seen = {}

    def handler(request):
        seen.update(request.url.params)
        return httpx.Response(200, json={
            "main": {"temp": 1, "humidity": 2, "feels_like": 3},
            "weather": [{"description": "clear sky"}],
        })

    GetWeatherTool(_client(handler), api_key="secret").handle({"city": "Oslo"})
    assert seen == {"q": "Oslo", "appid": "secret", "units": "metric"}


def test_weather_requires_city_and_key(upstream_client):
    assert GetWeatherTool(upstream_client, api_key="k").handle({}) == {
        "success": False, "error": "City is required.",
    }
    assert GetWeatherTool(upstream_client, api_key="").handle({"city": "Paris"}) == {
        "success": False, "error": "Weather API key is not configured.",
    }


def test_weather_api_error_uses_api_message():
    def handler(request):
        return httpx.Response(404, json={"cod": "404", "message": "city not found"})

    result = GetWeatherTool(_client(handler), api_key="k").handle({"city": "Atlantis"})
    assert result == {"success": False, "error": "Could not fetch weather: city not found"}


def test_current_time_format():
    result = GetCurrentTimeTool().handle({})
    assert result["success"] is True
    assert re.match(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}", result["time"])


def test_currency_exchange(upstream_client):
    result = GetCurrencyExchangeTool(upstream_client).handle({"from": "usd", "to": "eur"})
    assert result == {
        "success": True,
        "from": "USD",
        "to": "EUR",
        "rate": 0.92,
        "result": 0.92,
        "date": "Mon, 19 Oct 2026 00:00:01 +0000",
    }


def test_currency_exchange_errors(upstream_client):
    tool = GetCurrencyExchangeTool(upstream_client)
    assert tool.handle({"from": "USD"})["error"] == "Both 'from' and 'to' currencies are required."
    assert tool.handle({"from": "USD", "to": "XYZ"})["error"] == "Currency XYZ not found."

    broken = GetCurrencyExchangeTool(_client(lambda request: httpx.Response(200, json={"result": "error"})))
    assert broken.handle({"from": "USD", "to": "EUR"})["error"] == "Invalid API response structure."


def test_wiki_summary(upstream_client):
    result = GetWikiSummaryTool(upstream_client).handle({"topic": " Alan Turing "})
    assert result == {
        "success": True,
        "title": "Alan Turing",
        "summary": "Alan Turing was an English mathematician.",
        "url": "https://en.wikipedia.org/wiki/Alan_Turing",
    }


def test_wiki_summary_escapes_topic():
    seen = []

    def handler(request):
        seen.append(request.url.raw_path)
        return httpx.Response(200, json={"type": "standard", "title": "C++"})

    GetWikiSummaryTool(_client(handler)).handle({"topic": "C++ / history"})
    assert seen == [b"/api/rest_v1/page/summary/C%2B%2B%20%2F%20history"]


def test_wiki_summary_errors():
    def handler(request):
        if request.url.path.endswith("Mercury"):
            return httpx.Response(200, json={"type": "disambiguation", "title": "Mercury"})
        return httpx.Response(404, json={"title": "Not found."})

    tool = GetWikiSummaryTool(_client(handler))
    assert tool.handle({"topic": "  "}) == {"success": False, "error": "Topic is required."}
    assert tool.handle({"topic": "Mercury"})["error"] == "Topic is ambiguous. Try a more specific name."
    assert tool.handle({"topic": "Qwxz"})["error"] == "Could not fetch Wikipedia summary: Not found."


def test_build_server_registers_all_tools(tool_server):
    assert tool_server.tool_names == [
        "getWeather",
        "getCurrentTime",
        "getCurrencyExchange",
        "getWikiSummary",
    ]


def test_unexpected_upstream_payloads_return_failure():
    def handler(request):
        if request.url.host == "api.openweathermap.org":
            return httpx.Response(200, json={"cod": 200, "weather": []})
        return httpx.Response(200, content=b"<html>maintenance</html>")

    client = _client(handler)
    weather = GetWeatherTool(client, api_key="k").handle({"city": "Lima"})
    assert weather["success"] is False
    assert weather["error"].startswith("Could not fetch weather:")

    currency = GetCurrencyExchangeTool(client).handle({"from": "USD", "to": "EUR"})
    assert currency == {"success": False, "error": "Invalid API response structure."}

    wiki = GetWikiSummaryTool(client).handle({"topic": "Lima"})
    assert wiki == {"success": False, "error": "Could not fetch Wikipedia summary: invalid response"}
