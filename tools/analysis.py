#!/usr/bin/env python3
"""
Weather analysis heuristics for the detailed analysis tool.
Scores current conditions, detects temperature trends and picks the best
hour for outdoor activities from an hourly forecast.
"""

from datetime import datetime, timedelta


def assess_weather_quality(weather):
    """Rate conditions as excellent, good, fair or poor."""
    score = 100
    temperature = weather.get("temperature") or 0
    humidity = weather.get("humidity") or 0
    wind_speed = weather.get("wind_speed") or 0

    if temperature < 0 or temperature > 35:
        score -= 30
    elif temperature < 10 or temperature > 30:
        score -= 15

    if humidity > 80:
        score -= 20
    elif humidity < 20:
        score -= 10

    if wind_speed > 15:
        score -= 25
    elif wind_speed > 10:
        score -= 10

    condition = (weather.get("condition") or "").lower()
    if "storm" in condition or "heavy" in condition:
        score -= 40
    elif "rain" in condition or "snow" in condition:
        score -= 20
    elif "cloud" in condition:
        score -= 5

    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "fair"
    return "poor"


def _mean_temperature(hours):
    return sum(h.get("temperature") or 0 for h in hours) / len(hours)


def determine_trend(forecast):
    """Compare the first and last three hours: warming, cooling or stable."""
    if not forecast or len(forecast) < 6:
        return "stable"

    diff = _mean_temperature(forecast[-3:]) - _mean_temperature(forecast[:3])
    if diff > 3:
        return "warming"
    if diff < -3:
        return "cooling"
    return "stable"


def find_best_outdoor_time(forecast, now=None):
    """Best one-hour window within the next 24 hours."""
    if not forecast:
        return "No forecast data available"

    best_hour = None
    best_score = float("-inf")
    for index, hour in enumerate(forecast[:24]):
        temperature = hour.get("temperature") or 0
        score = 100
        if 18 <= temperature <= 25:
            score += 20
        elif temperature < 10 or temperature > 30:
            score -= 30
        score -= (hour.get("precipitation") or 0) * 0.5
        if (hour.get("wind_speed") or 0) > 10:
            score -= 20
        # forecast index 6..18 roughly covers daylight
        if 6 <= index <= 18:
            score += 10

        if score > best_score:
            best_score = score
            best_hour = index

    start = (now or datetime.now()) + timedelta(hours=best_hour)
    return f"{start.hour}:00 - {start.hour + 1}:00"


def analyze_weather_data(current, forecast, purpose="general", now=None):
    """Insights and purpose-specific recommendations."""
    insights = []
    recommendations = []

    quality = assess_weather_quality(current)
    insights.append(f"Current weather conditions are {quality}")

    temperature = current.get("temperature") or 0
    if purpose == "outdoor":
        if (current.get("uv_index") or 0) > 6:
            recommendations.append(
                "High UV index - wear sunscreen and protective clothing"
            )
        if (current.get("wind_speed") or 0) > 10:
            recommendations.append(
                "Strong winds - secure loose items and dress appropriately"
            )
        if temperature < 10:
            recommendations.append("Cold weather - dress in layers")
        elif temperature > 30:
            recommendations.append("Hot weather - stay hydrated and seek shade")

    elif purpose == "travel":
        if any((f.get("precipitation") or 0) > 50 for f in forecast[:12]):
            recommendations.append("Rain expected in the next 12 hours - pack rain gear")
        visibility = current.get("visibility")
        if visibility and visibility < 5000:
            recommendations.append("Reduced visibility - drive carefully")

    elif purpose == "agriculture":
        if (current.get("humidity") or 0) < 30:
            recommendations.append("Low humidity - consider irrigation")
        if any((f.get("temperature") or 0) < 0 for f in forecast[:24]):
            recommendations.append(
                "Frost risk in next 24 hours - protect sensitive crops"
            )

    else:
        if quality == "excellent":
            recommendations.append("Great day for outdoor activities")
        elif quality == "poor":
            recommendations.append("Consider indoor activities today")

    insights.append(f"Weather trend: {determine_trend(forecast)}")

    return {
        "overall_assessment": quality,
        "insights": insights,
        "recommendations": recommendations,
        "best_time_outdoors": find_best_outdoor_time(forecast, now=now),
    }
