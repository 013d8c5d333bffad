"""
Configuración del Analytics Collector
"""
import os
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings


VALID_LOG_LEVELS = ("trace", "debug", "info", "warn", "error")
DEFAULT_CONFIG_FILE = "config.yaml"


class ConfigurationError(Exception):
    """Configuración inválida o ilegible (error fatal de arranque)"""


class StreamingServiceType(str, Enum):
    """Backends de streaming soportados"""
    KAFKA = "kafka"
    KINESIS = "kinesis"
    PULSAR = "pulsar"


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080


class KafkaConfig(BaseModel):
    brokers: List[str]
    topic: str


class KinesisConfig(BaseModel):
    region: str
    stream_name: str


class PulsarConfig(BaseModel):
    url: str
    topic: str


class StreamingConfig(BaseModel):
    """
    Unión etiquetada: `service_type` elige el backend y la rama homónima
    trae su configuración. La coherencia se valida en Settings y en la factory.
    """
    service_type: StreamingServiceType = StreamingServiceType.KAFKA
    kafka: Optional[KafkaConfig] = None
    kinesis: Optional[KinesisConfig] = None
    pulsar: Optional[PulsarConfig] = None


class GeoIpConfig(BaseModel):
    # Vacío = enriquecimiento geográfico deshabilitado
    database_path: str = ""


class LoggingConfig(BaseModel):
    level: str = "info"


class Settings(BaseSettings):
    """Configuración del Analytics Collector"""

    # Información del servicio
    service_name: str = "analytics-collector"
    service_version: str = "1.0.0"

    server: ServerConfig = Field(default_factory=ServerConfig)
    streaming: StreamingConfig = Field(default_factory=StreamingConfig)
    geoip: GeoIpConfig = Field(default_factory=GeoIpConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # Security
    allowed_origins: List[str] = ["*"]
    # Solo detrás de un proxy propio: X-Forwarded-For lo fija el cliente
    trust_forwarded_for: bool = False

    # Producer settings
    send_timeout_ms: int = 5000

    model_config = {
        "env_prefix": "ANALYTICS_",
        "env_nested_delimiter": "__",
        "case_sensitive": False
    }

    @model_validator(mode="after")
    def validate_required_fields(self):
        if not self.server.host:
            raise ValueError("server.host is empty")
        if self.server.port == 0:
            raise ValueError("server.port must be non-zero")

        streaming = self.streaming
        if streaming.service_type == StreamingServiceType.KAFKA:
            if streaming.kafka is None:
                raise ValueError("streaming.kafka configuration is required when service_type is kafka")
            if not streaming.kafka.brokers:
                raise ValueError("streaming.kafka.brokers is empty")
            if not streaming.kafka.topic:
                raise ValueError("streaming.kafka.topic is empty")
        elif streaming.service_type == StreamingServiceType.KINESIS:
            if streaming.kinesis is None:
                raise ValueError("streaming.kinesis configuration is required when service_type is kinesis")
            if not streaming.kinesis.region:
                raise ValueError("streaming.kinesis.region is empty")
            if not streaming.kinesis.stream_name:
                raise ValueError("streaming.kinesis.stream_name is empty")
        elif streaming.service_type == StreamingServiceType.PULSAR:
            if streaming.pulsar is None:
                raise ValueError("streaming.pulsar configuration is required when service_type is pulsar")
            if not streaming.pulsar.url:
                raise ValueError("streaming.pulsar.url is empty")
            if not streaming.pulsar.topic:
                raise ValueError("streaming.pulsar.topic is empty")

        if self.logging.level.lower() not in VALID_LOG_LEVELS:
            raise ValueError(f"logging.level must be one of: {list(VALID_LOG_LEVELS)}")
        return self


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Cargar configuración desde YAML + variables de entorno.

    Los valores del archivo tienen precedencia sobre el entorno; si el archivo
    no existe se usan entorno y defaults.
    """
    path = Path(config_path or os.environ.get("ANALYTICS_CONFIG_FILE", DEFAULT_CONFIG_FILE))

    data = {}
    if path.exists():
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML syntax: {exc}") from exc
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration root must be a mapping")
    elif config_path:
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        return Settings(**data)
    except ValidationError as exc:
        raise ConfigurationError(f"Missing required fields: {exc}") from exc


@lru_cache
def get_settings() -> Settings:
    """Obtener configuración (útil para dependency injection en FastAPI)"""
    return load_settings()
