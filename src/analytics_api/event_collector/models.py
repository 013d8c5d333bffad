"""
Modelos Pydantic: evento analítico canónico y responses HTTP
"""
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum


class HealthStatus(str, Enum):
    """Estados de salud del servicio"""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class VisitObject(BaseModel):
    """Datos de la visita: página, sesión y dispositivo del cliente"""
    cookie: Optional[str] = None
    timestamp: Optional[int] = None
    url: Optional[str] = None
    title: Optional[str] = None
    domain: Optional[str] = None
    uri: Optional[str] = None
    duration: Optional[int] = None
    scroll_depth: Optional[int] = None
    screen: Optional[str] = None
    language: Optional[str] = None
    referer: Optional[str] = None
    app: Optional[str] = None


class AnalyticsEvent(BaseModel):
    """
    Evento analítico estructurado.

    `session_properties` (s_*) y `project_properties` (p_*) no se anidan:
    se aplanan en la raíz del JSON serializado. Ver `to_payload`.
    """
    project: Optional[str] = None
    event: str = "unknown"
    id: Optional[str] = None
    timestamp: int

    session_properties: Dict[str, str] = Field(default_factory=dict)
    project_properties: Dict[str, str] = Field(default_factory=dict)

    visit: VisitObject = Field(default_factory=VisitObject)
    event_param: Optional[Dict[str, str]] = None
    profile: Optional[Dict[str, str]] = None

    # Campos de enriquecimiento (User-Agent + GeoIP)
    browser: Optional[str] = None
    browser_version: Optional[str] = None
    os: Optional[str] = None
    os_version: Optional[str] = None
    device: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def to_payload(self) -> Dict[str, Any]:
        """
        Forma canónica del evento. Precedencia ante colisión de claves:
        campos propios > project_properties > session_properties.
        """
        payload: Dict[str, Any] = {}
        payload.update(self.session_properties)
        payload.update(self.project_properties)
        payload.update(self.model_dump(exclude={"session_properties", "project_properties"}))
        return payload

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AnalyticsEvent":
        """
        Inverso de `to_payload`. En la raíz no se distingue s_* de p_*, así
        que las claves desconocidas se cargan en ambos mapas.
        """
        known = set(cls.model_fields) - {"session_properties", "project_properties"}
        fields = {k: v for k, v in payload.items() if k in known}
        extras = {k: str(v) for k, v in payload.items() if k not in known}
        return cls(**fields, session_properties=extras, project_properties=dict(extras))


class HealthCheckResponse(BaseModel):
    """Response del health check"""
    service_name: str
    status: HealthStatus
    version: str
    timestamp: datetime
    checks: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Response de error estándar"""
    error: str
