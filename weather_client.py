"""
weather_client.py: OpenWeatherMap current-weather client.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openweathermap.org"
DEFAULT_ICON_BASE_URL = "https://openweathermap.org"
WEATHER_PATH = "/data/2.5/weather"
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


class FetchError(Exception):
    """Base class for everything that can go wrong in a fetch cycle."""


class InvalidInput(FetchError):
    pass


class NetworkError(FetchError):
    pass


class DecodeError(FetchError):
    pass


@dataclass(frozen=True)
class WeatherSummary:
    city_name: str
    temperature_celsius: float
    condition_description: str
    icon_code: str


@dataclass(frozen=True)
class WeatherDetail:
    humidity_percent: int
    wind_speed_mps: float
    pressure_hpa: int
    visibility_meters: int
    sunrise_epoch_seconds: int
    sunset_epoch_seconds: int


def _require(value, kind, field):
    # bool is an int subclass; the provider never sends booleans for numbers
    if isinstance(value, bool) or not isinstance(value, kind):
        raise DecodeError(f"field {field!r} has unexpected value {value!r}")
    return value


def _require_number(value, field) -> float:
    number = float(_require(value, (int, float), field))
    if not math.isfinite(number):
        raise DecodeError(f"field {field!r} is not a finite number: {value!r}")
    return number


def decode_summary(data) -> WeatherSummary:
    try:
        weather = data["weather"][0]
        return WeatherSummary(
            city_name=_require(data["name"], str, "name"),
            temperature_celsius=_require_number(data["main"]["temp"], "main.temp"),
            condition_description=_require(weather["description"], str, "weather[0].description"),
            icon_code=_require(weather["icon"], str, "weather[0].icon"),
        )
    except (KeyError, IndexError, TypeError, ValueError, OverflowError) as e:
        raise DecodeError(f"malformed weather payload: {e!r}") from e


def decode_detail(data) -> WeatherDetail:
    try:
        main = data["main"]
        return WeatherDetail(
            humidity_percent=_require(main["humidity"], int, "main.humidity"),
            wind_speed_mps=_require_number(data["wind"]["speed"], "wind.speed"),
            pressure_hpa=_require(main["pressure"], int, "main.pressure"),
            visibility_meters=_require(data["visibility"], int, "visibility"),
            sunrise_epoch_seconds=_require(data["sys"]["sunrise"], int, "sys.sunrise"),
            sunset_epoch_seconds=_require(data["sys"]["sunset"], int, "sys.sunset"),
        )
    except (KeyError, TypeError, ValueError, OverflowError) as e:
        raise DecodeError(f"malformed weather payload: {e!r}") from e


class WeatherClient:
    def __init__(self, api_key: str | None, base_url: str = DEFAULT_BASE_URL,
                 icon_base_url: str = DEFAULT_ICON_BASE_URL, timeout: float = 10.0) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.icon_base_url = icon_base_url.rstrip("/")
        self.timeout = timeout

    def weather_url(self, city_name: str) -> str:
        """Build the current-weather URL, percent-encoding the city for the query string."""
        if not self.api_key:
            raise InvalidInput("OPENWEATHER_API_KEY not set")
        city = (city_name or "").strip()
        if not city:
            raise InvalidInput("city name is empty")
        try:
            q = quote(city, safe="")
        except UnicodeEncodeError as e:
            raise InvalidInput(f"city name cannot be encoded: {e}") from e
        return f"{self.base_url}{WEATHER_PATH}?q={q}&appid={quote(self.api_key, safe='')}&units=metric"

    def icon_url(self, icon_code: str) -> str:
        return f"{self.icon_base_url}/img/wn/{quote(icon_code, safe='')}@2x.png"

    def _get_json(self, city_name: str):
        url = self.weather_url(city_name)
        try:
            resp = requests.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise NetworkError(str(e) or e.__class__.__name__) from e

        if not resp.ok:
            try:
                message = resp.json().get("message")
            except (ValueError, AttributeError):
                message = None
            reason = message or resp.reason or "request failed"
            raise NetworkError(f"HTTP {resp.status_code}: {reason}")

        try:
            return resp.json()
        except ValueError as e:
            raise DecodeError(f"response is not JSON: {e}") from e

    def fetch_summary(self, city_name: str) -> WeatherSummary:
        summary = decode_summary(self._get_json(city_name))
        logger.info("Fetched weather for %s: %.1f°C %s", summary.city_name,
                    summary.temperature_celsius, summary.condition_description)
        return summary

    def fetch_detail(self, city_name: str) -> WeatherDetail:
        return decode_detail(self._get_json(city_name))

    def fetch_icon(self, icon_code: str) -> bytes | None:
        url = self.icon_url(icon_code)
        try:
            resp = requests.get(url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.warning("Error fetching weather icon %s: %s", icon_code, e)
            return None
        if not resp.content.startswith(PNG_SIGNATURE):
            logger.warning("Weather icon %s is not a PNG image", icon_code)
            return None
        return resp.content
