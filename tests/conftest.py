"""
Pytest fixtures shared by the weather client, screen and route tests.
"""

from unittest.mock import patch

import pytest

from app import create_app
from tests.utils import InlineExecutor
from weather_client import WeatherClient


@pytest.fixture
def client():
    return WeatherClient("test-key", base_url="https://api.example.test",
                         icon_base_url="https://icons.example.test", timeout=5)


@pytest.fixture
def mockGet():
    with patch("weather_client.requests.get") as mock:
        yield mock


@pytest.fixture
def flaskApp():
    return create_app({
        "OPENWEATHER_API_KEY": "test-key",
        "OPENWEATHER_BASE": "https://api.example.test",
        "OPENWEATHER_ICON_BASE": "https://icons.example.test",
        "WEATHER_SCREEN_VARIANT": "beta",
        "WEATHER_BUSY_POLICY": "ignore",
        "TESTING": True,
    }, executor=InlineExecutor())


@pytest.fixture
def httpClient(flaskApp):
    return flaskApp.test_client()
