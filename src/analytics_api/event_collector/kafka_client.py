"""
Backend de Kafka (confluent-kafka) con un único producer compartido
"""
import asyncio
import logging
import threading
from typing import Any, List, Optional, Protocol

from confluent_kafka import KafkaException, Producer

from .models import AnalyticsEvent
from .streaming import (
    ConnectionError,
    HealthCheckError,
    SendError,
    StreamingBackend,
    serialize_event,
)


logger = logging.getLogger(__name__)


class KafkaProducerProtocol(Protocol):
    """Subconjunto de confluent_kafka.Producer que usa el backend"""

    def produce(self, topic: str, value: bytes = ..., key: Any = ..., on_delivery: Any = ...) -> None: ...

    def poll(self, timeout: float) -> int: ...

    def flush(self, timeout: float) -> int: ...

    def list_topics(self, topic: Optional[str] = None, timeout: float = -1) -> Any: ...


class KafkaStreaming(StreamingBackend):
    """
    Publica en un topic de Kafka. El producer se crea una vez y se reutiliza
    en todos los requests; un hilo de poll atiende los delivery reports.
    """

    name = "kafka"

    def __init__(
        self,
        brokers: List[str],
        topic: str,
        send_timeout_ms: int = 5000,
        producer: Optional[KafkaProducerProtocol] = None,
    ):
        self.topic = topic
        self.send_timeout_ms = send_timeout_ms
        self._producer = producer or self._create_producer(brokers, send_timeout_ms)
        self._closed = threading.Event()
        self._poll_thread = threading.Thread(target=self._poll_loop, name="kafka-poll", daemon=True)
        self._poll_thread.start()

    @staticmethod
    def _create_producer(brokers: List[str], send_timeout_ms: int) -> Producer:
        logger.info(f"Creando producer de Kafka: {','.join(brokers)}")
        try:
            return Producer({
                "bootstrap.servers": ",".join(brokers),
                "message.timeout.ms": send_timeout_ms,
                "queue.buffering.max.messages": 100000,
                "queue.buffering.max.kbytes": 1048576,
                "batch.num.messages": 10000,
            })
        except (KafkaException, ValueError, TypeError) as e:
            raise ConnectionError(str(e)) from e

    def _poll_loop(self):
        while not self._closed.is_set():
            self._producer.poll(0.1)

    async def send_event(self, event: AnalyticsEvent) -> None:
        payload = serialize_event(event)
        key = event.id or ""

        loop = asyncio.get_running_loop()
        delivered = loop.create_future()

        def ack(err, msg):
            error = SendError(str(err)) if err is not None else None
            try:
                loop.call_soon_threadsafe(_resolve, delivered, error)
            except RuntimeError:
                # el loop ya terminó: nadie espera este delivery report
                logger.debug("Delivery report de Kafka tras cerrar el event loop")

        logger.debug(
            "Sending event to Kafka",
            extra={"topic": self.topic, "event_id": event.id, "payload_size": len(payload)},
        )
        try:
            self._producer.produce(self.topic, value=payload, key=key, on_delivery=ack)
        except (BufferError, KafkaException) as e:
            logger.error(f"Error enviando evento a Kafka: {e}")
            raise SendError(str(e)) from e

        # message.timeout.ms ya acota la entrega; el margen cubre el poll
        timeout = self.send_timeout_ms / 1000 + 1
        try:
            await asyncio.wait_for(delivered, timeout)
        except asyncio.TimeoutError as e:
            raise SendError(f"delivery report not received within {timeout:.1f}s") from e
        except SendError as e:
            logger.error(f"Error enviando evento a Kafka: {e.message}", extra={"event_id": event.id})
            raise

        logger.info("Event sent to Kafka", extra={"topic": self.topic, "event_id": event.id})

    async def health_check(self) -> None:
        try:
            metadata = await asyncio.to_thread(self._producer.list_topics, self.topic, 5.0)
        except KafkaException as e:
            raise HealthCheckError(str(e)) from e

        topic_metadata = metadata.topics.get(self.topic)
        if topic_metadata is None or topic_metadata.error is not None:
            error = topic_metadata.error if topic_metadata else "missing"
            raise HealthCheckError(f"topic {self.topic} unavailable: {error}")

    async def close(self) -> None:
        remaining = await asyncio.to_thread(self._producer.flush, self.send_timeout_ms / 1000)
        if remaining:
            logger.warning(f"{remaining} mensajes de Kafka sin confirmar al cerrar")
        self._closed.set()
        self._poll_thread.join(timeout=1.0)
        logger.info("Producer de Kafka cerrado")


def _resolve(future: asyncio.Future, error: Optional[Exception]):
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(None)
