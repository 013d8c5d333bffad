"""
Transformación de parámetros planos a AnalyticsEvent
"""
import logging
import re
import time
from typing import Dict, Mapping, Optional

from .models import AnalyticsEvent, VisitObject


logger = logging.getLogger(__name__)

_INTEGER = re.compile(r"[+-]?[0-9]+")

INT32_RANGE = (-(2 ** 31), 2 ** 31 - 1)
INT64_RANGE = (-(2 ** 63), 2 ** 63 - 1)

EVENT_PARAM_PREFIX = "e_"
PROFILE_PREFIX = "u_"
SESSION_PREFIX = "s_"
PROJECT_PREFIX = "p_"


def parse_int(value: Optional[str], bounds=INT64_RANGE) -> Optional[int]:
    """Entero decimal estricto dentro de `bounds`; cualquier otra cosa -> None"""
    if value is None or not _INTEGER.fullmatch(value):
        return None
    number = int(value)
    low, high = bounds
    if number < low or number > high:
        return None
    return number


def current_millis() -> int:
    return time.time_ns() // 1_000_000


def _strip_prefix(params: Mapping[str, str], prefix: str) -> Dict[str, str]:
    return {
        key[len(prefix):]: value
        for key, value in params.items()
        if key.startswith(prefix)
    }


def transform_params(params: Mapping[str, str]) -> AnalyticsEvent:
    """
    Construir el evento estructurado a partir del mapa plano.

    - project / event / id / timestamp van a la raíz (event="unknown" y
      timestamp=ahora cuando faltan o no parsean)
    - claves conocidas de visita -> `visit`
    - e_* -> event_param, u_* -> profile (None si no hay ninguna)
    - s_* / p_* -> session_properties / project_properties
    Cualquier otra clave se descarta. Nunca lanza excepción.
    """
    timestamp = parse_int(params.get("timestamp"))
    if timestamp is None:
        timestamp = current_millis()

    visit = VisitObject(
        cookie=params.get("cookie"),
        timestamp=parse_int(params.get("timestamp")),
        url=params.get("url"),
        title=params.get("title"),
        domain=params.get("domain"),
        uri=params.get("uri"),
        duration=parse_int(params.get("duration")),
        scroll_depth=parse_int(params.get("scroll_depth"), INT32_RANGE),
        screen=params.get("screen"),
        language=params.get("language"),
        referer=params.get("referer"),
        app=params.get("app"),
    )

    event_params = _strip_prefix(params, EVENT_PARAM_PREFIX)
    profile_props = _strip_prefix(params, PROFILE_PREFIX)
    session_properties = _strip_prefix(params, SESSION_PREFIX)
    project_properties = _strip_prefix(params, PROJECT_PREFIX)

    logger.debug(
        "Parameter transformation",
        extra={
            "param_count": len(params),
            "event_param_count": len(event_params),
            "profile_prop_count": len(profile_props),
            "session_prop_count": len(session_properties),
            "project_prop_count": len(project_properties),
        },
    )

    return AnalyticsEvent(
        project=params.get("project"),
        event=params.get("event", "unknown"),
        id=params.get("id"),
        timestamp=timestamp,
        session_properties=session_properties,
        project_properties=project_properties,
        visit=visit,
        event_param=event_params or None,
        profile=profile_props or None,
    )
