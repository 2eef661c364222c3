#!/usr/bin/env python3
"""
Weather tools for the Nubila MCP server.
Provides health check, current conditions, hourly forecast and detailed
analysis, each described by a JSON input schema.
"""

import asyncio
from datetime import datetime, timezone

from config import Config
from evmauth.errors import UpstreamFailure
from evmauth.gate import Operation
from tools.analysis import analyze_weather_data, determine_trend
from utils.nubila_client import (
    convert_temperature,
    fetch_current,
    fetch_forecast,
    format_coordinates,
)

UNITS = ("C", "F")
PURPOSES = ("outdoor", "travel", "agriculture", "general")

COORDINATE_PROPERTIES = {
    "latitude": {
        "type": "number",
        "minimum": -90,
        "maximum": 90,
        "description": "Latitude coordinate",
    },
    "longitude": {
        "type": "number",
        "minimum": -180,
        "maximum": 180,
        "description": "Longitude coordinate",
    },
}

UNITS_PROPERTY = {
    "type": "string",
    "enum": list(UNITS),
    "default": Config.DEFAULT_UNITS,
    "description": "Temperature units (C for Celsius, F for Fahrenheit)",
}


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def _number(args, name, low, high, default=None):
    value = args.get(name, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number, got {value!r}")
    if not low <= value <= high:
        raise ValueError(f"{name} must be between {low} and {high}, got {value}")
    return value


def _choice(args, name, choices, default):
    value = args.get(name)
    if value is None:
        return default
    if value not in choices:
        raise ValueError(f"{name} must be one of {', '.join(choices)}, got {value!r}")
    return value


def _coordinates(args):
    return (
        _number(args, "latitude", -90, 90),
        _number(args, "longitude", -180, 180),
    )


def format_temperature(celsius, units, precision=None):
    """Render a Celsius reading in the requested units."""
    if celsius is None:
        return None
    if units == "F":
        return f"{convert_temperature(celsius, 'F'):.1f}°F"
    if precision is not None:
        return f"{celsius:.{precision}f}°C"
    return f"{celsius}°C"


async def ping(args):
    """Check if the Nubila MCP server is running."""
    return {
        "status": "ok",
        "message": "Nubila MCP server is running",
        "timestamp": _now_iso(),
        "service": "Nubila Weather API",
    }


async def get_current_weather(args):
    latitude, longitude = _coordinates(args)
    units = _choice(args, "units", UNITS, Config.DEFAULT_UNITS)
    try:
        weather = await fetch_current(latitude, longitude)
    except UpstreamFailure as e:
        raise UpstreamFailure(f"Failed to get current weather: {e}") from e

    pressure = weather.get("pressure")
    return {
        "location": {
            **format_coordinates(latitude, longitude),
            "name": weather.get("location_name") or "Unknown Location",
        },
        "current": {
            "temperature": format_temperature(weather.get("temperature"), units),
            "feels_like": format_temperature(weather.get("feels_like"), units),
            "humidity": f"{weather.get('humidity')}%",
            "wind_speed": f"{weather.get('wind_speed')} m/s",
            "condition": weather.get("condition"),
            **({"pressure": f"{pressure} hPa"} if pressure else {}),
            "uv_index": weather.get("uv_index"),
        },
        "timestamp": _now_iso(),
    }


def _format_forecast_item(item, units):
    precipitation = item.get("precipitation")
    return {
        "time": item.get("timestamp") or item.get("hour"),
        "temperature": format_temperature(item.get("temperature"), units),
        "min_temp": format_temperature(item.get("min"), units),
        "max_temp": format_temperature(item.get("max"), units),
        "condition": item.get("condition"),
        "humidity": f"{item.get('humidity')}%",
        "wind_speed": f"{item.get('wind_speed')} m/s",
        "precipitation_chance": f"{precipitation}%" if precipitation else "0%",
    }


async def get_forecast(args):
    latitude, longitude = _coordinates(args)
    hours = int(
        _number(args, "hours", 1, Config.MAX_FORECAST_HOURS, Config.DEFAULT_FORECAST_HOURS)
    )
    units = _choice(args, "units", UNITS, Config.DEFAULT_UNITS)
    try:
        forecast = await fetch_forecast(latitude, longitude)
    except UpstreamFailure as e:
        raise UpstreamFailure(f"Failed to get forecast: {e}") from e

    limited = forecast[:hours]
    name = (limited[0].get("location_name") if limited else None) or "Unknown Location"
    return {
        "location": {**format_coordinates(latitude, longitude), "name": name},
        "forecast_hours": hours,
        "forecast": [_format_forecast_item(item, units) for item in limited],
        "generated_at": _now_iso(),
    }


def _forecast_summary(forecast, units):
    next_24 = forecast[:24]
    if not next_24:
        return {"trend": determine_trend(forecast)}
    temps = [h.get("temperature") or 0 for h in next_24]
    avg_temp = sum(temps) / len(temps)
    max_temp = max((h.get("max") or h.get("temperature") or 0) for h in next_24)
    min_temp = min((h.get("min") or h.get("temperature") or 0) for h in next_24)
    precipitation = sum(h.get("precipitation") or 0 for h in next_24) / len(next_24)
    return {
        "next_24h_avg_temp": format_temperature(avg_temp, units, precision=1),
        "next_24h_max_temp": format_temperature(max_temp, units, precision=1),
        "next_24h_min_temp": format_temperature(min_temp, units, precision=1),
        "precipitation_chance": f"{precipitation:.0f}%",
        "trend": determine_trend(forecast),
    }


async def get_detailed_weather_analysis(args):
    latitude, longitude = _coordinates(args)
    purpose = _choice(args, "purpose", PURPOSES, "general")
    units = _choice(args, "units", UNITS, Config.DEFAULT_UNITS)
    try:
        current, forecast = await asyncio.gather(
            fetch_current(latitude, longitude),
            fetch_forecast(latitude, longitude),
        )
    except UpstreamFailure as e:
        raise UpstreamFailure(f"Failed to generate weather analysis: {e}") from e

    return {
        "location": {
            **format_coordinates(latitude, longitude),
            "name": current.get("location_name") or "Unknown Location",
        },
        "current_conditions": {
            "temperature": format_temperature(current.get("temperature"), units),
            "feels_like": format_temperature(current.get("feels_like"), units),
            "humidity": f"{current.get('humidity')}%",
            "wind_speed": f"{current.get('wind_speed')} m/s",
            "condition": current.get("condition"),
            "uv_index": current.get("uv_index"),
        },
        "forecast_summary": _forecast_summary(forecast, units),
        "analysis": analyze_weather_data(current, forecast, purpose),
        "generated_at": _now_iso(),
    }


WEATHER_OPERATIONS = (
    Operation(
        name="ping",
        description="Check if the Nubila MCP server is running",
        parameters={"type": "object", "properties": {}},
        handler=ping,
    ),
    Operation(
        name="getCurrentWeather",
        description="Get current weather data for specific coordinates",
        parameters={
            "type": "object",
            "properties": {**COORDINATE_PROPERTIES, "units": UNITS_PROPERTY},
            "required": ["latitude", "longitude"],
        },
        handler=get_current_weather,
    ),
    Operation(
        name="getForecast",
        description="Get weather forecast for the next 24-48 hours",
        parameters={
            "type": "object",
            "properties": {
                **COORDINATE_PROPERTIES,
                "hours": {
                    "type": "number",
                    "minimum": 1,
                    "maximum": Config.MAX_FORECAST_HOURS,
                    "default": Config.DEFAULT_FORECAST_HOURS,
                    "description": "Number of hours to forecast",
                },
                "units": UNITS_PROPERTY,
            },
            "required": ["latitude", "longitude"],
        },
        handler=get_forecast,
    ),
    Operation(
        name="getDetailedWeatherAnalysis",
        description="Get comprehensive weather analysis with insights and recommendations",
        parameters={
            "type": "object",
            "properties": {
                **COORDINATE_PROPERTIES,
                "purpose": {
                    "type": "string",
                    "enum": list(PURPOSES),
                    "default": "general",
                    "description": "Purpose of the weather analysis",
                },
                "units": UNITS_PROPERTY,
            },
            "required": ["latitude", "longitude"],
        },
        handler=get_detailed_weather_analysis,
    ),
)
