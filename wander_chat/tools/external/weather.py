import logging
from datetime import date
from typing import List, Optional
from urllib.parse import quote

import httpx
from langchain.tools import tool
from pydantic import BaseModel, ConfigDict, Field

from wander_chat.config import get_settings

logger = logging.getLogger(__name__)

USER_AGENT = "WanderChat/1.0"
MAX_ALERTS = 2
OUTLOOK_DAYS = 3

_http_client = httpx.Client(
    timeout=get_settings().weather_timeout_seconds,
    headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
)


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CurrentConditions(_ApiModel):
    temp: Optional[float] = None
    feels_like: Optional[float] = Field(None, alias="feelslike")
    humidity: Optional[float] = None
    wind_speed: Optional[float] = Field(None, alias="windspeed")
    conditions: Optional[str] = None


class ForecastDay(_ApiModel):
    date: Optional[str] = Field(None, alias="datetime", description="Local date, ISO format YYYY-MM-DD.")
    temp_max: Optional[float] = Field(None, alias="tempmax")
    temp_min: Optional[float] = Field(None, alias="tempmin")
    conditions: Optional[str] = None
    description: Optional[str] = None


class WeatherAlert(_ApiModel):
    event: Optional[str] = None
    description: Optional[str] = None


class WeatherApiResponse(_ApiModel):
    """Subset of the Visual Crossing timeline payload the summary needs."""
    resolved_address: Optional[str] = Field(None, alias="resolvedAddress")
    current_conditions: Optional[CurrentConditions] = Field(None, alias="currentConditions")
    days: List[ForecastDay] = Field(default_factory=list)
    alerts: List[WeatherAlert] = Field(default_factory=list)


def normalize_unit_system(unit_system: Optional[str]) -> str:
    """Collapse any unit hint to the provider's ``metric`` / ``us`` groups."""
    value = (unit_system or "").strip().lower()
    if value in ("metric", "celsius"):
        return "metric"
    return "us"


def _fmt(value: Optional[float]) -> str:
    return "n/a" if value is None else f"{value:.1f}"


def _day_label(raw: Optional[str]) -> str:
    try:
        d = date.fromisoformat(raw or "")
    except ValueError:
        return raw or "Unknown day"
    return f"{d.strftime('%a, %b')} {d.day}"


def format_weather_response(weather: WeatherApiResponse, unit_system: str, location: str = "") -> str:
    temp_unit = "°C" if unit_system == "metric" else "°F"
    wind_unit = "km/h" if unit_system == "metric" else "mph"
    lines = [f"🌤️ **Weather for {weather.resolved_address or location}**", ""]

    current = weather.current_conditions
    if current is not None:
        lines.append("**Current Conditions:**")
        lines.append(f"• Temperature: {_fmt(current.temp)}{temp_unit}")
        lines.append(f"• Conditions: {current.conditions or 'Unknown'}")
        if current.feels_like is not None:
            lines.append(f"• Feels like: {_fmt(current.feels_like)}{temp_unit}")
        if current.humidity is not None:
            lines.append(f"• Humidity: {current.humidity:.0f}%")
        if current.wind_speed is not None:
            lines.append(f"• Wind: {_fmt(current.wind_speed)} {wind_unit}")
        lines.append("")

    if weather.days:
        today = weather.days[0]
        lines.append("**Today's Forecast:**")
        lines.append(f"• High: {_fmt(today.temp_max)}{temp_unit} / Low: {_fmt(today.temp_min)}{temp_unit}")
        lines.append(f"• Conditions: {today.conditions or 'Unknown'}")
        if today.description:
            lines.append(f"• {today.description}")
        lines.append("")

    if len(weather.days) > 1:
        lines.append(f"**{OUTLOOK_DAYS}-Day Forecast:**")
        for day in weather.days[1:OUTLOOK_DAYS + 1]:
            lines.append(
                f"• {_day_label(day.date)}: {_fmt(day.temp_max)}/{_fmt(day.temp_min)}{temp_unit}"
                f" - {day.conditions or 'Unknown'}"
            )

    if weather.alerts:
        lines.append("")
        lines.append("⚠️ **Weather Alerts:**")
        for alert in weather.alerts[:MAX_ALERTS]:
            lines.append(f"• {alert.event or 'Alert'}: {alert.description or ''}".rstrip())

    return "\n".join(lines).strip() + "\n"


def _fetch_weather(location: str, unit_system: str) -> WeatherApiResponse:
    settings = get_settings()
    url = f"{settings.weather_base_url}/{quote(location, safe='')}"
    logger.info("Fetching weather for %s (unit_system=%s)", location, unit_system)
    r = _http_client.get(url, params={"unitGroup": unit_system, "key": settings.weather_api_key})
    r.raise_for_status()
    return WeatherApiResponse.model_validate(r.json())


@tool
def get_weather(location: str, unit_system: str = "us") -> str:
    """
    Get current weather and forecast for a specific location.

    Use this when users ask about weather conditions in any city or location,
    or when the weather is relevant to their specific request (packing,
    outdoor plans in the next few days).

    Input:
    - location: The place to get weather for, e.g. "Paris, France", "New York", "Tokyo".
    - unit_system: "metric" for Celsius or "us" for Fahrenheit. Default is "us".

    Output:
    - A short text summary: current conditions, today's high/low, a 3-day
      outlook and up to 2 active weather alerts.
    - If the lookup fails, a short explanation that the weather could not be
      retrieved. Tell the user and fall back to general seasonal guidance.
    """
    if not location or not location.strip():
        return "I need a location to get weather information. Please specify a city or location."

    location = location.strip()
    unit_system = normalize_unit_system(unit_system)

    try:
        weather = _fetch_weather(location, unit_system)
        return format_weather_response(weather, unit_system, location)
    except httpx.TimeoutException:
        logger.error("Weather request timed out for %s", location)
        return "The weather request timed out. Please try again."
    except httpx.HTTPStatusError as e:
        logger.error(
            "Weather call failed for %s: status %d %s",
            location, e.response.status_code, e.response.reason_phrase,
        )
        return (
            f"Sorry, I couldn't get weather information for {location}. "
            "The weather service might be unavailable or the location wasn't found."
        )
    except httpx.HTTPError:
        logger.exception("Error connecting to the weather service for %s", location)
        return "I'm having trouble connecting to the weather service right now. Please try again later."
    except ValueError:
        logger.exception("Couldn't parse the weather data for %s", location)
        return f"Sorry, I couldn't parse the weather data for {location}."
    except Exception:
        logger.exception("Unexpected error in get_weather for '%s'", location)
        return f"Sorry, I encountered an error getting weather information for {location}."
