"""
Backend de Apache Pulsar con un único producer protegido por lock
"""
import asyncio
import logging
import threading
from typing import Any, Optional

import pulsar
from pulsar.exceptions import PulsarException

from .models import AnalyticsEvent
from .streaming import (
    ConnectionError,
    HealthCheckError,
    SendError,
    StreamingBackend,
    serialize_event,
)


logger = logging.getLogger(__name__)


class PulsarStreaming(StreamingBackend):
    """
    Publica en un topic de Pulsar.

    El producer se comparte entre requests y cada envío toma el lock solo
    durante `send_async`; la confirmación del broker se espera fuera del lock.
    """

    name = "pulsar"

    def __init__(
        self,
        pulsar_url: str,
        topic: str,
        send_timeout_ms: int = 5000,
        client: Optional[Any] = None,
    ):
        self.pulsar_url = pulsar_url
        self.topic = topic
        self.send_timeout_ms = send_timeout_ms
        self._lock = threading.Lock()
        self.client = client or self._connect()
        self.producer = self._create_producer()

    def _connect(self) -> pulsar.Client:
        """Conectar a Pulsar"""
        logger.info(f"Conectando a Pulsar: {self.pulsar_url}")
        try:
            return pulsar.Client(
                self.pulsar_url,
                connection_timeout_ms=10000,
                operation_timeout_seconds=30,
            )
        except (PulsarException, ValueError) as e:
            logger.error(f"Error conectando a Pulsar: {e}")
            raise ConnectionError(str(e)) from e

    def _create_producer(self):
        """Crear el producer del topic configurado"""
        try:
            producer = self.client.create_producer(
                self.topic,
                send_timeout_millis=self.send_timeout_ms,
                block_if_queue_full=False,
                batching_enabled=False,
            )
        except (PulsarException, ValueError) as e:
            logger.error(f"Error creando producer para {self.topic}: {e}")
            self.client.close()
            raise ConnectionError(str(e)) from e
        logger.info(f"Producer creado para topic: {self.topic}")
        return producer

    async def send_event(self, event: AnalyticsEvent) -> None:
        payload = serialize_event(event)

        loop = asyncio.get_running_loop()
        acked = loop.create_future()

        def on_send(result, msg_id):
            try:
                loop.call_soon_threadsafe(_resolve, acked, result)
            except RuntimeError:
                logger.debug("Ack de Pulsar tras cerrar el event loop")

        logger.debug(
            "Sending event to Pulsar",
            extra={"topic": self.topic, "event_id": event.id, "payload_size": len(payload)},
        )
        try:
            with self._lock:
                self.producer.send_async(payload, on_send)
        except PulsarException as e:
            logger.error(f"Error enviando evento a Pulsar: {e}", extra={"event_id": event.id})
            raise SendError(str(e)) from e

        # send_timeout_millis acota el ack; el margen cubre el callback
        timeout = self.send_timeout_ms / 1000 + 1
        try:
            result = await asyncio.wait_for(acked, timeout)
        except asyncio.TimeoutError as e:
            raise SendError(f"no ack received within {timeout:.1f}s") from e

        if result != pulsar.Result.Ok:
            logger.error(f"Pulsar rechazó el evento: {result}", extra={"event_id": event.id})
            raise SendError(str(result))

        logger.info("Event sent to Pulsar", extra={"topic": self.topic, "event_id": event.id})

    async def health_check(self) -> None:
        if not self.producer.is_connected():
            raise HealthCheckError(f"producer for {self.topic} is not connected")

    async def close(self) -> None:
        """Desconectar de Pulsar"""
        try:
            await asyncio.to_thread(self.producer.flush)
            self.producer.close()
            logger.info(f"Producer cerrado para topic: {self.topic}")
        except PulsarException as e:
            logger.error(f"Error cerrando producer {self.topic}: {e}")
        finally:
            self.client.close()
            logger.info("Cliente Pulsar cerrado")


def _resolve(future: asyncio.Future, result: Any):
    if not future.done():
        future.set_result(result)
