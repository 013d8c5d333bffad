"""
Enriquecimiento de eventos: User-Agent (woothee) y GeoIP (MaxMind)
"""
import ipaddress
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import maxminddb
import woothee

from .models import AnalyticsEvent


logger = logging.getLogger(__name__)

# Categorías de woothee -> tipo de dispositivo
DEVICE_CATEGORIES = {
    "pc": "Desktop",
    "smartphone": "Mobile",
    "mobilephone": "Mobile",
    "appliance": "Mobile",
    "tablet": "Tablet",
}

_WOOTHEE_UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class UserAgentInfo:
    browser: Optional[str] = None
    browser_version: Optional[str] = None
    os: Optional[str] = None
    os_version: Optional[str] = None
    device: Optional[str] = None


@dataclass(frozen=True)
class GeoLocation:
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class GeoIpError(Exception):
    """La base de datos GeoIP configurada no se pudo abrir"""


class UserAgentParser(Protocol):
    def parse(self, user_agent: str) -> UserAgentInfo: ...


class GeoIpLookup(Protocol):
    def lookup(self, ip: str) -> GeoLocation: ...


def _known(value: Optional[str]) -> Optional[str]:
    if not value or value == _WOOTHEE_UNKNOWN:
        return None
    return value


class WootheeParser:
    """Parser de User-Agent basado en woothee. UA vacío o irreconocible -> todo None"""

    def parse(self, user_agent: str) -> UserAgentInfo:
        if not user_agent or not user_agent.strip():
            return UserAgentInfo()

        result = woothee.parse(user_agent)
        info = UserAgentInfo(
            browser=_known(result.get("name")),
            browser_version=_known(result.get("version")),
            os=_known(result.get("os")),
            os_version=_known(result.get("os_version")),
            device=DEVICE_CATEGORIES.get(result.get("category", "")),
        )
        logger.debug(
            "User-Agent parsed",
            extra={"browser": info.browser, "os": info.os, "device": info.device,
                   "category": result.get("category")},
        )
        return info


def _english_name(record: Optional[dict]) -> Optional[str]:
    if not record:
        return None
    return (record.get("names") or {}).get("en")


class MaxMindGeoIpLookup:
    """
    Lookup GeoIP sobre una base MaxMind City (.mmdb) abierta una sola vez.

    Política fail-open: IP inválida, IP ausente o error de lectura devuelven
    GeoLocation vacío, nunca una excepción.
    """

    def __init__(self, database_path: str, mode: int = maxminddb.MODE_AUTO):
        try:
            self._reader = maxminddb.open_database(database_path, mode)
        except (OSError, ValueError, maxminddb.InvalidDatabaseError) as e:
            raise GeoIpError(f"Database error: {e}") from e
        self.database_path = database_path

    def lookup(self, ip: str) -> GeoLocation:
        try:
            address = ipaddress.ip_address(ip)
            record = self._reader.get(address)
        except (ValueError, maxminddb.InvalidDatabaseError) as e:
            logger.debug(f"GeoIP lookup failed for {ip}: {e}")
            return GeoLocation()

        if not record:
            return GeoLocation()

        subdivisions = record.get("subdivisions") or []
        location = record.get("location") or {}
        return GeoLocation(
            country=_english_name(record.get("country")),
            region=_english_name(subdivisions[0]) if subdivisions else None,
            city=_english_name(record.get("city")),
            latitude=location.get("latitude"),
            longitude=location.get("longitude"),
        )

    def close(self):
        self._reader.close()


class EnrichmentCoordinator:
    """Aplica User-Agent y (opcionalmente) GeoIP sobre un evento ya transformado"""

    def __init__(self, user_agent_parser: UserAgentParser, geoip_lookup: Optional[GeoIpLookup] = None):
        self.user_agent_parser = user_agent_parser
        self.geoip_lookup = geoip_lookup

    def enrich(self, event: AnalyticsEvent, user_agent: str, client_ip: str) -> AnalyticsEvent:
        ua_info = self._parse_user_agent(user_agent)
        event.browser = ua_info.browser
        event.browser_version = ua_info.browser_version
        event.os = ua_info.os
        event.os_version = ua_info.os_version
        event.device = ua_info.device

        if self.geoip_lookup is None:
            logger.debug("GeoIP lookup skipped (not configured)")
            return event

        location = self._lookup_location(client_ip)
        event.country = location.country
        event.region = location.region
        event.city = location.city
        event.latitude = location.latitude
        event.longitude = location.longitude
        return event

    def _parse_user_agent(self, user_agent: str) -> UserAgentInfo:
        try:
            return self.user_agent_parser.parse(user_agent)
        except Exception as e:
            logger.warning(f"User-Agent parser failed, skipping: {e}")
            return UserAgentInfo()

    def _lookup_location(self, client_ip: str) -> GeoLocation:
        try:
            return self.geoip_lookup.lookup(client_ip)
        except Exception as e:
            logger.warning(f"GeoIP lookup failed, skipping: {e}")
            return GeoLocation()
