"""
FastAPI Application - Analytics Collector
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
import time
from datetime import datetime, timezone
from typing import Dict, Optional

from .config import Settings, get_settings
from .enrichment import (
    EnrichmentCoordinator, GeoIpLookup, MaxMindGeoIpLookup, UserAgentParser, WootheeParser
)
from .logging_config import configure_logging
from .models import HealthCheckResponse, HealthStatus, ErrorResponse
from .params import ParameterValidationError, merge_params
from .pipeline import ENDPOINTS, EndpointRule, EventPipeline
from .streaming import StreamingBackend, StreamingError, create_streaming_service


logger = logging.getLogger(__name__)

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def get_client_ip(request: Request, trust_forwarded_for: bool = False) -> str:
    """Obtener IP del cliente considerando proxies"""
    forwarded = request.headers.get("X-Forwarded-For") if trust_forwarded_for else None
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def read_form_params(request: Request) -> Dict[str, str]:
    """Form body de un POST; cuerpo ausente o ilegible = sin parámetros"""
    if request.method != "POST":
        return {}
    content_type = request.headers.get("content-type", "")
    if not content_type.startswith(FORM_CONTENT_TYPES):
        return {}
    try:
        form = await request.form()
    except Exception as e:
        logger.warning(f"Form body ilegible, se ignora: {e}")
        return {}
    return {key: value for key, value in form.items() if isinstance(value, str)}


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


def create_app(
    settings: Optional[Settings] = None,
    backend: Optional[StreamingBackend] = None,
    user_agent_parser: Optional[UserAgentParser] = None,
    geoip_lookup: Optional[GeoIpLookup] = None,
) -> FastAPI:
    """
    Construir la aplicación. Los componentes no inyectados se crean en el
    arranque a partir de la configuración.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Gestión del ciclo de vida de la aplicación"""
        configure_logging(settings.logging.level)
        logger.info(
            "🚀 Iniciando Analytics Collector...",
            extra={"host": settings.server.host, "port": settings.server.port,
                   "streaming_service": settings.streaming.service_type.value,
                   "geoip_database": settings.geoip.database_path},
        )

        geoip = geoip_lookup
        if geoip is None and settings.geoip.database_path:
            logger.info(f"Cargando base GeoIP: {settings.geoip.database_path}")
            geoip = MaxMindGeoIpLookup(settings.geoip.database_path)

        active_backend = backend
        if active_backend is None:
            try:
                active_backend = await create_streaming_service(
                    settings.streaming, send_timeout_ms=settings.send_timeout_ms
                )
            except StreamingError as e:
                logger.error(f"❌ Error iniciando streaming ({settings.streaming.service_type.value}): {e}")
                raise

        enricher = EnrichmentCoordinator(user_agent_parser or WootheeParser(), geoip)
        app.state.pipeline = EventPipeline(active_backend, enricher)
        logger.info(f"✅ Analytics Collector iniciado ({active_backend.name})")

        yield

        # Shutdown: uvicorn ya drenó los requests en curso
        logger.info("🛑 Cerrando Analytics Collector...")
        await active_backend.close()
        if isinstance(geoip, MaxMindGeoIpLookup):
            geoip.close()
        logger.info("✅ Analytics Collector cerrado correctamente")

    app = FastAPI(
        title="Analytics Collector",
        description="Recolector de eventos de tracking con publicación en Kafka, Kinesis o Pulsar",
        version=settings.service_version,
        lifespan=lifespan
    )

    # Los trackers de navegador publican cross-origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.exception_handler(ParameterValidationError)
    async def validation_exception_handler(request: Request, exc: ParameterValidationError):
        logger.warning("Validation failed", extra={"endpoint": request.url.path, "error": exc.message})
        return error_response(400, exc.message)

    @app.exception_handler(StreamingError)
    async def streaming_exception_handler(request: Request, exc: StreamingError):
        logger.error("Failed to send event to streaming service",
                     extra={"endpoint": request.url.path, "error": str(exc)})
        return error_response(500, f"Failed to send event to streaming service: {exc}")

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Manejo global de excepciones"""
        logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
        return error_response(500, "Internal server error")

    def collect_endpoint(rule: EndpointRule):
        async def collect(request: Request):
            start_time = time.time()
            params = merge_params(
                request.method,
                dict(request.query_params),
                await read_form_params(request),
            )
            pipeline: EventPipeline = request.app.state.pipeline
            await pipeline.process(
                rule,
                params,
                user_agent=request.headers.get("user-agent", ""),
                client_ip=get_client_ip(request, settings.trust_forwarded_for),
            )
            processing_time = (time.time() - start_time) * 1000
            logger.debug(f"{rule.name} processed in {processing_time:.2f}ms")
            return Response(status_code=200)

        collect.__name__ = f"{rule.name}_handler"
        return collect

    for rule in ENDPOINTS:
        app.add_api_route(rule.path, collect_endpoint(rule), methods=["GET", "POST"], tags=["collection"])

    # Health Check Endpoints
    @app.get("/health", response_model=HealthCheckResponse, tags=["health"])
    async def health_check(request: Request):
        """Health check: sondea el backend de streaming"""
        pipeline: EventPipeline = request.app.state.pipeline
        backend_name = pipeline.backend.name
        try:
            await pipeline.backend.health_check()
            checks = {backend_name: {"status": HealthStatus.HEALTHY.value}}
            status = HealthStatus.HEALTHY
        except StreamingError as e:
            logger.warning(f"Health check de {backend_name} falló: {e}")
            checks = {backend_name: {"status": HealthStatus.UNHEALTHY.value, "error": str(e)}}
            status = HealthStatus.UNHEALTHY

        body = HealthCheckResponse(
            service_name=settings.service_name,
            status=status,
            version=settings.service_version,
            timestamp=datetime.now(timezone.utc),
            checks=checks,
        )
        return JSONResponse(
            status_code=200 if status == HealthStatus.HEALTHY else 503,
            content=body.model_dump(mode="json"),
        )

    @app.get("/health/ready", tags=["health"])
    async def readiness_check():
        """Readiness check para Kubernetes"""
        return {"status": "ready"}

    @app.get("/health/live", tags=["health"])
    async def liveness_check():
        """Liveness check para Kubernetes"""
        return {"status": "alive"}

    @app.get("/")
    async def root():
        """Información básica del servicio"""
        return {
            "service": settings.service_name,
            "version": settings.service_version,
            "status": "running",
            "endpoints": {
                "track": "GET|POST /track/",
                "identify": "GET|POST /identify",
                "update": "GET|POST /update",
                "health": "/health"
            }
        }

    return app
