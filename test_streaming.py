"""Backends de streaming, serialización y factory."""

import asyncio
import json
import queue
import threading
import time
from types import SimpleNamespace

import pulsar
import pytest
from botocore.exceptions import ClientError, NoRegionError
from confluent_kafka import KafkaException
from pulsar.exceptions import PulsarException

from analytics_api.event_collector import kafka_client, kinesis_client
from analytics_api.event_collector.config import (
    KafkaConfig,
    KinesisConfig,
    PulsarConfig,
    StreamingConfig,
    StreamingServiceType,
)
from analytics_api.event_collector.kafka_client import KafkaStreaming
from analytics_api.event_collector.kinesis_client import KinesisStreaming
from analytics_api.event_collector.pulsar_client import PulsarStreaming
from analytics_api.event_collector.streaming import (
    ConfigError,
    ConnectionError,
    HealthCheckError,
    SendError,
    SerializationError,
    StreamingError,
    create_streaming_service,
    serialize_event,
)
from analytics_api.event_collector.transformer import transform_params


def _event(**params):
    base = {"project": "p", "event": "click", "timestamp": "1704067200000"}
    base.update(params)
    return transform_params(base)


# ---------------------------------------------------------------- errors

def test_error_messages_name_their_kind():
    assert str(SendError("broker down")) == "Send error: broker down"
    assert str(ConfigError("Kafka configuration is missing")) == (
        "Configuration error: Kafka configuration is missing"
    )
    assert str(HealthCheckError("x")) == "Health check error: x"
    assert isinstance(ConnectionError("x"), StreamingError)


def test_serialize_event_produces_flat_json():
    payload = json.loads(serialize_event(_event(s_sid="s1", e_btn="go")))

    assert payload["event"] == "click"
    assert payload["sid"] == "s1"
    assert payload["event_param"] == {"btn": "go"}


def test_serialize_event_rejects_non_finite_numbers():
    event = _event()
    event.latitude = float("nan")

    with pytest.raises(SerializationError):
        serialize_event(event)


# ---------------------------------------------------------------- factory

@pytest.mark.parametrize(
    "service_type, name",
    [
        (StreamingServiceType.KAFKA, "Kafka"),
        (StreamingServiceType.KINESIS, "Kinesis"),
        (StreamingServiceType.PULSAR, "Pulsar"),
    ],
)
def test_factory_rejects_missing_branch(service_type, name):
    config = StreamingConfig(service_type=service_type, kafka=None, kinesis=None, pulsar=None)

    with pytest.raises(ConfigError) as exc_info:
        asyncio.run(create_streaming_service(config))

    assert f"{name} configuration is missing" in str(exc_info.value)


def test_factory_builds_kafka_backend(monkeypatch):
    created = {}

    def fake_producer(conf):
        created.update(conf)
        return FakeKafkaProducer()

    monkeypatch.setattr(kafka_client, "Producer", fake_producer)
    config = StreamingConfig(
        service_type=StreamingServiceType.KAFKA,
        kafka=KafkaConfig(brokers=["k1:9092", "k2:9092"], topic="events"),
    )

    async def scenario():
        backend = await create_streaming_service(config)
        await backend.close()
        return backend

    backend = asyncio.run(scenario())

    assert isinstance(backend, KafkaStreaming)
    assert backend.topic == "events"
    assert created["bootstrap.servers"] == "k1:9092,k2:9092"
    assert created["message.timeout.ms"] == 5000


def test_factory_builds_kinesis_backend():
    config = StreamingConfig(
        service_type=StreamingServiceType.KINESIS,
        kinesis=KinesisConfig(region="us-east-1", stream_name="events"),
    )

    backend = asyncio.run(create_streaming_service(config))

    assert isinstance(backend, KinesisStreaming)
    assert backend.stream_name == "events"
    asyncio.run(backend.close())


def test_factory_builds_pulsar_backend(monkeypatch):
    client = FakePulsarClient()
    monkeypatch.setattr(pulsar, "Client", lambda url, **kwargs: client)
    config = StreamingConfig(
        service_type=StreamingServiceType.PULSAR,
        pulsar=PulsarConfig(url="pulsar://broker:6650", topic="events"),
    )

    backend = asyncio.run(create_streaming_service(config, send_timeout_ms=2000))

    assert isinstance(backend, PulsarStreaming)
    assert client.producer.topic == "events"
    assert client.producer.options["send_timeout_millis"] == 2000


# ---------------------------------------------------------------- kafka

class FakeKafkaProducer:
    def __init__(self, error=None, produce_error=None):
        self.error = error
        self.produce_error = produce_error
        self.records = []
        self._pending = queue.Queue()
        self.flushed = False

    def produce(self, topic, value=None, key=None, on_delivery=None):
        if self.produce_error is not None:
            raise self.produce_error
        self.records.append((topic, key, value))
        self._pending.put(on_delivery)

    def poll(self, timeout):
        try:
            callback = self._pending.get(timeout=timeout)
        except queue.Empty:
            return 0
        callback(self.error, None)
        return 1

    def flush(self, timeout):
        self.flushed = True
        return 0

    def list_topics(self, topic=None, timeout=-1):
        return SimpleNamespace(topics={"events": SimpleNamespace(error=None)})


def _run_kafka(producer, scenario):
    async def run():
        backend = KafkaStreaming(["localhost:9092"], "events", send_timeout_ms=1000, producer=producer)
        try:
            return await scenario(backend)
        finally:
            await backend.close()

    return asyncio.run(run())


def test_kafka_send_uses_id_as_key():
    producer = FakeKafkaProducer()

    _run_kafka(producer, lambda backend: backend.send_event(_event(id="evt_1")))

    topic, key, value = producer.records[0]
    assert topic == "events"
    assert key == "evt_1"
    assert json.loads(value)["id"] == "evt_1"
    assert producer.flushed


def test_kafka_send_without_id_uses_empty_key():
    producer = FakeKafkaProducer()

    _run_kafka(producer, lambda backend: backend.send_event(_event()))

    assert producer.records[0][1] == ""


def test_kafka_delivery_failure_is_send_error():
    producer = FakeKafkaProducer(error="Broker: Message timed out")

    with pytest.raises(SendError, match="Message timed out"):
        _run_kafka(producer, lambda backend: backend.send_event(_event()))


def test_kafka_full_queue_is_send_error():
    producer = FakeKafkaProducer(produce_error=BufferError("Local: Queue full"))

    with pytest.raises(SendError, match="Queue full"):
        _run_kafka(producer, lambda backend: backend.send_event(_event()))


def test_kafka_producer_failure_is_connection_error(monkeypatch):
    def broken_producer(conf):
        raise KafkaException("No such configuration property: \"bootstrap.servers\"")

    monkeypatch.setattr(kafka_client, "Producer", broken_producer)

    with pytest.raises(ConnectionError, match="bootstrap.servers"):
        KafkaStreaming(["localhost:9092"], "events")


def test_kafka_health_check_requires_topic():
    producer = FakeKafkaProducer()

    async def scenario(backend):
        await backend.health_check()
        backend.topic = "other"
        await backend.health_check()

    with pytest.raises(HealthCheckError, match="other"):
        _run_kafka(producer, scenario)


# ---------------------------------------------------------------- kinesis

class FakeKinesisClient:
    def __init__(self, error=None):
        self.error = error
        self.records = []
        self.described = []
        self.closed = False

    def put_record(self, **kwargs):
        if self.error is not None:
            raise self.error
        self.records.append(kwargs)
        return {"ShardId": "shardId-000000000000", "SequenceNumber": "1"}

    def describe_stream(self, **kwargs):
        if self.error is not None:
            raise self.error
        self.described.append(kwargs)
        return {"StreamDescription": {"StreamStatus": "ACTIVE"}}

    def close(self):
        self.closed = True


def _client_error(operation):
    return ClientError(
        {"Error": {"Code": "ResourceNotFoundException", "Message": "Stream events not found"}},
        operation,
    )


def test_kinesis_send_writes_one_record():
    client = FakeKinesisClient()
    backend = KinesisStreaming(client, "events")

    asyncio.run(backend.send_event(_event(id="evt_9")))

    record = client.records[0]
    assert record["StreamName"] == "events"
    assert record["PartitionKey"] == "evt_9"
    assert json.loads(record["Data"])["event"] == "click"


def test_kinesis_default_partition_key():
    client = FakeKinesisClient()

    asyncio.run(KinesisStreaming(client, "events").send_event(_event()))

    assert client.records[0]["PartitionKey"] == "default"


def test_kinesis_empty_id_is_kept_as_key():
    client = FakeKinesisClient()

    asyncio.run(KinesisStreaming(client, "events").send_event(_event(id="")))

    assert client.records[0]["PartitionKey"] == ""


def test_kinesis_client_failure_is_connection_error(monkeypatch):
    def broken_client(*args, **kwargs):
        raise NoRegionError()

    monkeypatch.setattr(kinesis_client.boto3, "client", broken_client)

    with pytest.raises(ConnectionError, match="region"):
        KinesisStreaming.from_region("", "events")


def test_kinesis_failures_map_to_typed_errors():
    backend = KinesisStreaming(FakeKinesisClient(error=_client_error("PutRecord")), "events")

    with pytest.raises(SendError, match="ResourceNotFoundException"):
        asyncio.run(backend.send_event(_event()))
    with pytest.raises(HealthCheckError):
        asyncio.run(backend.health_check())


def test_kinesis_health_check_describes_stream():
    client = FakeKinesisClient()

    asyncio.run(KinesisStreaming(client, "events").health_check())

    assert client.described == [{"StreamName": "events"}]


# ---------------------------------------------------------------- pulsar

class FakePulsarProducer:
    def __init__(self, topic, options, result=pulsar.Result.Ok):
        self.topic = topic
        self.options = options
        self.result = result
        self.sent = []
        self.lock_states = []
        self.backend = None
        self.connected = True
        self.closed = False

    def send_async(self, content, callback):
        self.sent.append(content)

        def deliver():
            # el ack llega cuando el envío ya soltó el lock
            time.sleep(0.01)
            self.lock_states.append(self.backend._lock.locked())
            callback(self.result, None)

        threading.Thread(target=deliver).start()

    def is_connected(self):
        return self.connected

    def flush(self):
        pass

    def close(self):
        self.closed = True


class FakePulsarClient:
    def __init__(self, result=pulsar.Result.Ok, create_error=None):
        self.result = result
        self.create_error = create_error
        self.producer = None
        self.closed = False

    def create_producer(self, topic, **options):
        if self.create_error is not None:
            raise self.create_error
        self.producer = FakePulsarProducer(topic, options, self.result)
        return self.producer

    def close(self):
        self.closed = True


def _pulsar_backend(client):
    backend = PulsarStreaming("pulsar://localhost:6650", "events", send_timeout_ms=1000, client=client)
    client.producer.backend = backend
    return backend


def test_pulsar_send_publishes_json_outside_lock():
    client = FakePulsarClient()
    backend = _pulsar_backend(client)

    asyncio.run(backend.send_event(_event(id="evt_2")))

    assert json.loads(client.producer.sent[0])["id"] == "evt_2"
    assert client.producer.lock_states == [False]


def test_pulsar_concurrent_sends_all_complete():
    client = FakePulsarClient()
    backend = _pulsar_backend(client)

    async def scenario():
        await asyncio.gather(*(backend.send_event(_event(id=f"evt_{i}")) for i in range(10)))

    asyncio.run(scenario())

    assert len(client.producer.sent) == 10


def test_pulsar_rejected_send_is_send_error():
    backend = _pulsar_backend(FakePulsarClient(result=pulsar.Result.Timeout))

    with pytest.raises(SendError):
        asyncio.run(backend.send_event(_event()))


def test_pulsar_producer_failure_is_connection_error():
    client = FakePulsarClient(create_error=PulsarException("Topic not found"))

    with pytest.raises(ConnectionError):
        PulsarStreaming("pulsar://localhost:6650", "events", client=client)
    assert client.closed


def test_pulsar_health_check_and_close():
    client = FakePulsarClient()
    backend = _pulsar_backend(client)

    asyncio.run(backend.health_check())
    client.producer.connected = False
    with pytest.raises(HealthCheckError):
        asyncio.run(backend.health_check())

    asyncio.run(backend.close())
    assert client.producer.closed
    assert client.closed
