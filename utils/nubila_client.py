#!/usr/bin/env python3
"""
Nubila Weather API client.
Fetches current conditions and hourly forecasts, falling back to mock data
when no API key is configured so the server can be demoed offline.
"""

import logging
from datetime import datetime, timedelta, timezone

import httpx

from config import Config
from evmauth.errors import UpstreamFailure
from utils.http_client import get_http_client

logger = logging.getLogger(__name__)

CURRENT_WEATHER_ENDPOINT = "/api/v1/weather"
FORECAST_ENDPOINT = "/api/v1/forecast"

MOCK_CONDITIONS = ["Sunny", "Partly Cloudy", "Cloudy", "Light Rain"]


async def make_nubila_request(endpoint, params=None, client=None):
    """GET a Nubila endpoint and return the decoded JSON body."""
    params = params or {}
    if not Config.has_nubila_api_key():
        logger.warning("No Nubila API key - returning mock data for demo")
        return get_mock_data(endpoint, params)

    client = client or get_http_client()
    headers = {"X-Api-Key": Config.NUBILA_API_KEY, "Content-Type": "application/json"}
    try:
        r = await client.get(
            Config.NUBILA_API_URL.rstrip("/") + endpoint,
            params=params,
            headers=headers,
            timeout=Config.NUBILA_TIMEOUT,
        )
        r.raise_for_status()
        return r.json()
    except httpx.HTTPStatusError as e:
        raise UpstreamFailure(
            f"Nubila API Error: {_error_message(e.response)}",
            status=e.response.status_code,
        ) from e
    except httpx.RequestError as e:
        raise UpstreamFailure("No response from Nubila API", endpoint=endpoint) from e
    except ValueError as e:
        raise UpstreamFailure(f"Request failed: {e}", endpoint=endpoint) from e


def _error_message(response):
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return body["message"]
    return response.reason_phrase or f"HTTP {response.status_code}"


async def fetch_current(lat, lon, client=None):
    """Current conditions for a coordinate pair."""
    data = await make_nubila_request(
        CURRENT_WEATHER_ENDPOINT, {"lat": lat, "lon": lon}, client=client
    )
    # The live API wraps the payload as {"ok": true, "data": {...}}
    if isinstance(data, dict) and "ok" in data:
        if not data.get("ok"):
            return {}
        return data.get("data") or {}
    return data if isinstance(data, dict) else {}


async def fetch_forecast(lat, lon, client=None):
    """Hourly forecast entries for a coordinate pair."""
    data = await make_nubila_request(
        FORECAST_ENDPOINT, {"lat": lat, "lon": lon}, client=client
    )
    return extract_forecast_items(data)


def extract_forecast_items(data):
    """Pull the hourly list out of whichever envelope the API used."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        logger.debug("Forecast data was not a list, keys: %s", list(data.keys()))
        for key in ("data", "forecast", "items"):
            items = data.get(key)
            if isinstance(items, list):
                return items
    logger.error("Could not extract forecast list from response: %r", data)
    return []


def get_mock_data(endpoint, params):
    """Deterministic stand-in data used when NUBILA_API_KEY is unset."""
    if endpoint == CURRENT_WEATHER_ENDPOINT:
        return {
            "location_name": "Demo Location",
            "temperature": 22.5,
            "feels_like": 21.0,
            "humidity": 65,
            "wind_speed": 5.2,
            "condition": "Partly Cloudy",
            "pressure": 1013,
            "uv_index": 3,
        }

    if endpoint == FORECAST_ENDPOINT:
        start = datetime.now(timezone.utc).replace(minute=0, second=0, microsecond=0)
        forecast = []
        for hour in range(48):
            temperature = round(20 + 5 * ((hour % 24) - 12) / 12, 1)
            forecast.append(
                {
                    "hour": hour,
                    "timestamp": (start + timedelta(hours=hour)).isoformat(),
                    "temperature": temperature,
                    "min": round(temperature - 2, 1),
                    "max": round(temperature + 2, 1),
                    "condition": MOCK_CONDITIONS[hour % len(MOCK_CONDITIONS)],
                    "humidity": 50 + (hour * 7) % 30,
                    "wind_speed": 3 + (hour * 3) % 10,
                    "precipitation": (hour * 13) % 100,
                }
            )
        return forecast

    return {}


def format_coordinates(lat, lon):
    """Coordinates as 4-decimal strings."""
    return {"latitude": f"{float(lat):.4f}", "longitude": f"{float(lon):.4f}"}


def convert_temperature(celsius, unit="C"):
    """Convert a Celsius value to the requested unit."""
    if unit == "F":
        return celsius * 9 / 5 + 32
    return celsius
