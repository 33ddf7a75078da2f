# tools/web_tools.py
from __future__ import annotations
from typing import Any, Mapping
from loguru import logger

from tools.tool_schema import get_str

# Demo stand-ins: they succeed with an explanation instead of calling a provider.

def web_search(params: Mapping[str, Any]) -> str:
    query = get_str("web_search", params, "query")
    logger.info("web_search (placeholder): q='{}'", query)
    return (
        f"I would search for '{query}' on the web, but web search functionality "
        "is not implemented in this demo. In a production app, this would integrate "
        "with search APIs like Google Search API or Bing Search API."
    )

def weather(params: Mapping[str, Any]) -> str:
    location = get_str("weather", params, "location")
    logger.info("weather (placeholder): location='{}'", location)
    return (
        f"I would get weather information for '{location}', but weather functionality "
        "is not implemented in this demo. In a production app, this would integrate "
        "with weather APIs like OpenWeatherMap or WeatherAPI."
    )
