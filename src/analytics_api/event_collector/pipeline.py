"""
Orquestación por endpoint: validar -> transformar -> enriquecer -> publicar
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

from .enrichment import EnrichmentCoordinator
from .models import AnalyticsEvent
from .params import validate_identify_params, validate_track_params, validate_update_params
from .streaming import StreamingBackend
from .transformer import transform_params


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EndpointRule:
    name: str
    path: str
    validate: Callable[[Mapping[str, str]], None]
    default_event: Optional[str] = None


TRACK = EndpointRule("track", "/track/", validate_track_params)
IDENTIFY = EndpointRule("identify", "/identify", validate_identify_params, default_event="identify")
UPDATE = EndpointRule("update", "/update", validate_update_params, default_event="update")

ENDPOINTS = (TRACK, IDENTIFY, UPDATE)


class EventPipeline:
    """Secuencia común a /track/, /identify y /update"""

    def __init__(self, backend: StreamingBackend, enricher: EnrichmentCoordinator):
        self.backend = backend
        self.enricher = enricher

    async def process(
        self,
        endpoint: EndpointRule,
        params: Mapping[str, str],
        user_agent: str,
        client_ip: str,
    ) -> AnalyticsEvent:
        """
        Lanza ParameterValidationError (400) antes de cualquier publicación, o
        StreamingError (500) si el backend falla.
        """
        logger.info(
            f"Incoming {endpoint.name} request",
            extra={"endpoint": endpoint.path, "client_ip": client_ip,
                   "project": params.get("project"), "param_count": len(params)},
        )
        endpoint.validate(params)

        # Solo si la clave no existe: event="" enviado por el cliente se respeta
        params_with_event: Dict[str, str] = dict(params)
        if endpoint.default_event is not None and "event" not in params_with_event:
            params_with_event["event"] = endpoint.default_event

        event = transform_params(params_with_event)
        event = self.enricher.enrich(event, user_agent, client_ip)

        await self.backend.send_event(event)
        logger.info("Event sent successfully", extra={"endpoint": endpoint.path, "event_id": event.id})
        return event
