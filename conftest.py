"""Configuración de pytest para el Analytics Collector."""

import os

import pytest

# Antes de cualquier import: sin config.yaml local y logs silenciosos
os.environ.setdefault("ANALYTICS_CONFIG_FILE", "/nonexistent/analytics-test-config.yaml")
os.environ.setdefault("ANALYTICS_LOGGING__LEVEL", "error")

from analytics_api.event_collector.config import KafkaConfig, Settings, StreamingConfig
from analytics_api.event_collector.enrichment import GeoLocation, UserAgentInfo
from analytics_api.event_collector.streaming import StreamingBackend


class RecordingBackend(StreamingBackend):
    """Backend en memoria: guarda los eventos enviados o falla con `error`"""

    name = "recording"

    def __init__(self, error=None, health_error=None):
        self.sent = []
        self.error = error
        self.health_error = health_error
        self.closed = False

    async def send_event(self, event):
        if self.error is not None:
            raise self.error
        self.sent.append(event.model_copy(deep=True))

    async def health_check(self):
        if self.health_error is not None:
            raise self.health_error

    async def close(self):
        self.closed = True


class StaticUserAgentParser:
    def __init__(self, info=None):
        self.info = info or UserAgentInfo(
            browser="Chrome", browser_version="120.0.0.0", os="Windows 10",
            os_version="NT 10.0", device="Desktop",
        )
        self.calls = []

    def parse(self, user_agent):
        self.calls.append(user_agent)
        return self.info


class StaticGeoIpLookup:
    def __init__(self, location=None):
        self.location = location or GeoLocation(
            country="United States", region="California", city="San Francisco",
            latitude=37.7749, longitude=-122.4194,
        )
        self.calls = []

    def lookup(self, ip):
        self.calls.append(ip)
        return self.location


def make_settings(**overrides):
    """Settings válidos con la rama kafka configurada"""
    overrides.setdefault(
        "streaming", StreamingConfig(kafka=KafkaConfig(brokers=["localhost:9092"], topic="analytics-events"))
    )
    return Settings(**overrides)


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def user_agent_parser():
    return StaticUserAgentParser()


@pytest.fixture
def geoip_lookup():
    return StaticGeoIpLookup()
