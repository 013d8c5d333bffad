"""
Abstracción de streaming: contrato común, taxonomía de errores y factory
"""
import json
import logging
from abc import ABC, abstractmethod

from .config import StreamingConfig, StreamingServiceType
from .models import AnalyticsEvent


logger = logging.getLogger(__name__)


class StreamingError(Exception):
    """Error base del servicio de streaming"""
    kind = "Streaming"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self):
        return f"{self.kind} error: {self.message}"


class ConnectionError(StreamingError):
    """Backend inalcanzable o mal configurado al construirlo (fatal en arranque)"""
    kind = "Connection"


class SerializationError(StreamingError):
    kind = "Serialization"


class SendError(StreamingError):
    """El backend rechazó o no confirmó la publicación"""
    kind = "Send"


class HealthCheckError(StreamingError):
    kind = "Health check"


class ConfigError(StreamingError):
    """Falta la configuración del backend seleccionado (fatal en arranque)"""
    kind = "Configuration"


def serialize_event(event: AnalyticsEvent) -> bytes:
    """Serializar el evento a su JSON canónico (UTF-8)"""
    try:
        return json.dumps(event.to_payload(), allow_nan=False, ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise SerializationError(str(e)) from e


class StreamingBackend(ABC):
    """Contrato común para Kafka, Kinesis y Pulsar"""

    name = "streaming"

    @abstractmethod
    async def send_event(self, event: AnalyticsEvent) -> None:
        """Publicar un evento; lanza SendError / SerializationError"""

    @abstractmethod
    async def health_check(self) -> None:
        """Sonda ligera de conectividad; lanza HealthCheckError"""

    async def close(self) -> None:
        """Liberar recursos del backend (flush incluido)"""


async def create_streaming_service(config: StreamingConfig, send_timeout_ms: int = 5000) -> StreamingBackend:
    """
    Construir el backend configurado. La rama ausente se detecta antes
    de cualquier I/O de red.
    """
    # Imports locales: cada SDK se carga solo si su backend está activo
    if config.service_type == StreamingServiceType.KAFKA:
        if config.kafka is None:
            raise ConfigError("Kafka configuration is missing")
        from .kafka_client import KafkaStreaming
        return KafkaStreaming(config.kafka.brokers, config.kafka.topic, send_timeout_ms=send_timeout_ms)

    if config.service_type == StreamingServiceType.KINESIS:
        if config.kinesis is None:
            raise ConfigError("Kinesis configuration is missing")
        from .kinesis_client import KinesisStreaming
        return KinesisStreaming.from_region(
            config.kinesis.region, config.kinesis.stream_name, send_timeout_ms=send_timeout_ms
        )

    if config.service_type == StreamingServiceType.PULSAR:
        if config.pulsar is None:
            raise ConfigError("Pulsar configuration is missing")
        from .pulsar_client import PulsarStreaming
        return PulsarStreaming(config.pulsar.url, config.pulsar.topic, send_timeout_ms=send_timeout_ms)

    raise ConfigError(f"Unsupported streaming service type: {config.service_type}")
