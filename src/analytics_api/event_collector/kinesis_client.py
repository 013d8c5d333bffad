"""
Backend de AWS Kinesis (boto3)
"""
import asyncio
import logging
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .models import AnalyticsEvent
from .streaming import (
    ConnectionError,
    HealthCheckError,
    SendError,
    StreamingBackend,
    serialize_event,
)


logger = logging.getLogger(__name__)

DEFAULT_PARTITION_KEY = "default"


class KinesisStreaming(StreamingBackend):
    """
    Escribe un record por evento en un stream de Kinesis. El cliente boto3 es
    thread-safe y se comparte entre requests; las llamadas bloqueantes se
    ejecutan fuera del event loop.
    """

    name = "kinesis"

    def __init__(self, client: Any, stream_name: str):
        self._client = client
        self.stream_name = stream_name

    @classmethod
    def from_region(cls, region: str, stream_name: str, send_timeout_ms: int = 5000) -> "KinesisStreaming":
        timeout = send_timeout_ms / 1000
        try:
            client = boto3.client(
                "kinesis",
                region_name=region,
                config=Config(
                    connect_timeout=timeout,
                    read_timeout=timeout,
                    # Sin reintentos: un fallo de envío falla el request
                    retries={"total_max_attempts": 1, "mode": "standard"},
                ),
            )
        except (BotoCoreError, ValueError) as e:
            raise ConnectionError(str(e)) from e
        logger.info(f"Cliente Kinesis creado: region={region} stream={stream_name}")
        return cls(client, stream_name)

    async def send_event(self, event: AnalyticsEvent) -> None:
        payload = serialize_event(event)
        partition_key = event.id if event.id is not None else DEFAULT_PARTITION_KEY

        logger.debug(
            "Sending event to Kinesis",
            extra={"stream": self.stream_name, "event_id": event.id,
                   "payload_size": len(payload), "partition_key": partition_key},
        )
        try:
            await asyncio.to_thread(
                self._client.put_record,
                StreamName=self.stream_name,
                Data=payload,
                PartitionKey=partition_key,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error enviando evento a Kinesis: {e}", extra={"event_id": event.id})
            raise SendError(str(e)) from e

        logger.info("Event sent to Kinesis", extra={"stream": self.stream_name, "event_id": event.id})

    async def health_check(self) -> None:
        try:
            await asyncio.to_thread(self._client.describe_stream, StreamName=self.stream_name)
        except (BotoCoreError, ClientError) as e:
            raise HealthCheckError(str(e)) from e

    async def close(self) -> None:
        self._client.close()
        logger.info("Cliente Kinesis cerrado")
