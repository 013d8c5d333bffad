"""
Analytics Collector
===================

Microservicio Python (FastAPI) que recibe eventos de tracking de clientes web/mobile.

Responsabilidades:
- Recibir parámetros planos por GET (query string) o POST (form body)
- Validar campos obligatorios por endpoint (/track/, /identify, /update)
- Transformar los parámetros en un evento estructurado
- Enriquecer con navegador/SO/dispositivo (User-Agent) y ubicación (GeoIP)
- Publicar el evento en JSON en Kafka, Kinesis o Pulsar
"""

from .app import create_app
from .config import Settings, load_settings
from .models import AnalyticsEvent, VisitObject
from .streaming import StreamingBackend, StreamingError, create_streaming_service
from .transformer import transform_params

__all__ = [
    'create_app',
    'Settings',
    'load_settings',
    'AnalyticsEvent',
    'VisitObject',
    'StreamingBackend',
    'StreamingError',
    'create_streaming_service',
    'transform_params'
]
