"""
Unit tests for EventPublisher.

Tests cover:
- Connection state machine and exchange declaration
- Publish contract (advisory, persistent JSON)
- Reconnect loop with fixed delay
- Subscribe path (ack / nack without requeue)
"""

import json
import threading
import time
from datetime import date, datetime
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from pika.exceptions import AMQPChannelError, AMQPConnectionError, StreamLostError

from exceptions import EventBusUnavailable
from services.event_publisher import (
    EventPublisher,
    PublisherState,
    RoutingKey,
    encode_body,
)


def make_connection():
    connection = MagicMock(name="connection")
    connection.is_open = True
    channel = MagicMock(name="channel")
    channel.is_open = True
    connection.channel.return_value = channel
    return connection, channel


def wait_for(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def broker():
    connection, channel = make_connection()
    factory = MagicMock(return_value=connection)
    return SimpleNamespace(factory=factory, connection=connection, channel=channel)


@pytest.fixture
def publisher(broker):
    pub = EventPublisher(
        exchange="test.events",
        reconnect_delay=0.01,
        connection_factory=broker.factory,
    )
    yield pub
    pub.close()


class TestConnect:
    def test_starts_disconnected(self, publisher):
        assert publisher.state is PublisherState.DISCONNECTED
        assert publisher.is_connected is False

    def test_connect_declares_durable_topic_exchange(self, publisher, broker):
        assert publisher.connect() is True

        assert publisher.state is PublisherState.CONNECTED
        broker.channel.exchange_declare.assert_called_once_with(
            exchange="test.events", exchange_type="topic", durable=True
        )

    def test_exchange_declared_again_on_reconnect(self, publisher, broker):
        publisher.connect()
        broker.channel.basic_publish.side_effect = StreamLostError("lost")
        publisher.publish(RoutingKey.CREATED, {"id": 1})
        assert publisher.state is PublisherState.DISCONNECTED

        assert publisher.connect() is True
        assert broker.channel.exchange_declare.call_count == 2

    def test_failed_connect_returns_false(self, publisher, broker):
        broker.factory.side_effect = AMQPConnectionError("refused")

        assert publisher.connect() is False
        assert publisher.state is PublisherState.DISCONNECTED

    def test_failed_declare_closes_connection(self, publisher, broker):
        broker.channel.exchange_declare.side_effect = AMQPChannelError("PRECONDITION_FAILED")

        assert publisher.connect() is False
        broker.connection.close.assert_called_once()
        assert publisher.state is PublisherState.DISCONNECTED


class TestPublish:
    def test_disconnected_returns_false_without_raising(self, publisher, broker):
        assert publisher.publish(RoutingKey.CREATED, {"id": 1}) is False

        broker.channel.basic_publish.assert_not_called()

    def test_connected_publishes_persistent_json(self, publisher, broker):
        publisher.connect()
        payload = {"id": 1, "data": {"prenom": "Jean", "ville": "Orléans"}}

        before = int(time.time())
        assert publisher.publish(RoutingKey.CREATED, payload) is True

        kwargs = broker.channel.basic_publish.call_args.kwargs
        assert kwargs["exchange"] == "test.events"
        assert kwargs["routing_key"] == "antenne.created"
        assert kwargs["body"] == encode_body(payload)
        assert json.loads(kwargs["body"].decode("utf-8")) == payload
        properties = kwargs["properties"]
        assert properties.content_type == "application/json"
        assert properties.delivery_mode == 2
        assert before <= properties.timestamp <= int(time.time())

    def test_transport_failure_marks_disconnected(self, publisher, broker):
        publisher.connect()
        broker.channel.basic_publish.side_effect = StreamLostError("lost")

        assert publisher.publish(RoutingKey.UPDATED, {"antenneId": 1}) is False
        assert publisher.state is PublisherState.DISCONNECTED
        broker.connection.close.assert_called_once()

        assert publisher.publish(RoutingKey.UPDATED, {"antenneId": 1}) is False
        assert broker.channel.basic_publish.call_count == 1

    def test_pending_handshake_does_not_block_publish(self):
        release = threading.Event()

        def slow_factory(parameters):
            release.wait(5)
            raise OSError("connection timed out")

        pub = EventPublisher(reconnect_delay=0.01, connection_factory=slow_factory)
        pub.start()
        try:
            assert wait_for(lambda: pub.state is PublisherState.CONNECTING)

            started = time.monotonic()
            assert pub.publish(RoutingKey.CREATED, {"id": 1}) is False
            assert time.monotonic() - started < 0.5
        finally:
            release.set()
            pub.close()

    def test_close_during_handshake_discards_new_connection(self, broker):
        pub = EventPublisher(reconnect_delay=0.01, connection_factory=broker.factory)

        def closing_factory(parameters):
            pub._stopping.set()
            return broker.connection

        pub._connection_factory = closing_factory

        assert pub.connect() is False
        assert pub.state is PublisherState.DISCONNECTED
        broker.connection.close.assert_called_once()

    def test_unserializable_payload_returns_false(self, publisher, broker):
        publisher.connect()

        assert publisher.publish(RoutingKey.CREATED, {"obj": object()}) is False
        broker.channel.basic_publish.assert_not_called()

    def test_concurrent_publishers(self, publisher, broker):
        publisher.connect()
        results = []

        def worker(n):
            results.append(publisher.publish(RoutingKey.UPDATED, {"antenneId": n}))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results == [True] * 20
        assert broker.channel.basic_publish.call_count == 20


class TestEncodeBody:
    def test_dates_are_iso_formatted(self):
        body = encode_body({"at": datetime(2024, 1, 15, 10, 30), "born": date(1990, 5, 1)})

        assert body == b'{"at": "2024-01-15T10:30:00", "born": "1990-05-01"}'

    def test_utf8_is_not_escaped(self):
        assert encode_body({"ville": "Orléans"}) == '{"ville": "Orléans"}'.encode("utf-8")


class TestReconnectLoop:
    def test_retries_until_connected(self, broker):
        broker.factory.side_effect = [
            AMQPConnectionError("refused"),
            AMQPConnectionError("refused"),
            broker.connection,
        ]
        pub = EventPublisher(reconnect_delay=0.01, connection_factory=broker.factory)

        pub.start()
        try:
            assert wait_for(lambda: pub.is_connected)
            assert broker.factory.call_count == 3
        finally:
            pub.close()

    def test_reconnects_after_drop(self):
        dropped, _ = make_connection()
        dropped.process_data_events.side_effect = StreamLostError("connection reset")
        healthy, _ = make_connection()
        factory = MagicMock(side_effect=[dropped, healthy])
        pub = EventPublisher(reconnect_delay=0.01, connection_factory=factory)

        pub.start()
        try:
            assert wait_for(lambda: factory.call_count == 2 and pub.is_connected)
            dropped.close.assert_called()
        finally:
            pub.close()

    def test_close_stops_supervisor_and_closes_connection(self, broker):
        pub = EventPublisher(reconnect_delay=0.01, connection_factory=broker.factory)
        pub.start()
        assert wait_for(lambda: pub.is_connected)

        pub.close()

        assert pub.state is PublisherState.DISCONNECTED
        broker.channel.close.assert_called_once()
        broker.connection.close.assert_called_once()
        assert pub.publish(RoutingKey.DELETED, {"antenneId": 1}) is False

    def test_close_never_raises(self, publisher, broker):
        publisher.connect()
        broker.connection.close.side_effect = AMQPConnectionError("already closed")

        publisher.close()

        assert publisher.state is PublisherState.DISCONNECTED

    def test_context_manager(self, broker):
        with EventPublisher(reconnect_delay=0.01, connection_factory=broker.factory) as pub:
            assert wait_for(lambda: pub.is_connected)

        assert pub.state is PublisherState.DISCONNECTED


class TestSubscribe:
    def _callback(self, channel):
        return channel.basic_consume.call_args.kwargs["on_message_callback"]

    def test_declares_and_binds_queue(self, publisher, broker):
        sub = publisher.subscribe(
            "crm.antennes", [RoutingKey.CREATED, RoutingKey.DELETED], MagicMock()
        )
        sub.stop(timeout=1)

        broker.channel.queue_declare.assert_called_once_with(queue="crm.antennes", durable=True)
        bound = [c.kwargs["routing_key"] for c in broker.channel.queue_bind.call_args_list]
        assert bound == ["antenne.created", "antenne.deleted"]
        broker.channel.start_consuming.assert_called_once()

    def test_handler_success_acks(self, publisher, broker):
        handler = MagicMock()
        publisher.subscribe("q", ["antenne.*"], handler).stop(timeout=1)
        method = SimpleNamespace(routing_key="antenne.created", delivery_tag=7)

        self._callback(broker.channel)(broker.channel, method, None, b'{"id": 3}')

        handler.assert_called_once_with("antenne.created", {"id": 3})
        broker.channel.basic_ack.assert_called_once_with(delivery_tag=7)
        broker.channel.basic_nack.assert_not_called()

    def test_handler_failure_nacks_without_requeue(self, publisher, broker):
        handler = MagicMock(side_effect=RuntimeError("boom"))
        publisher.subscribe("q", ["antenne.*"], handler).stop(timeout=1)
        method = SimpleNamespace(routing_key="antenne.updated", delivery_tag=8)

        self._callback(broker.channel)(broker.channel, method, None, b'{"id": 3}')

        broker.channel.basic_nack.assert_called_once_with(delivery_tag=8, requeue=False)
        broker.channel.basic_ack.assert_not_called()

    def test_invalid_json_is_dropped(self, publisher, broker):
        handler = MagicMock()
        publisher.subscribe("q", ["antenne.*"], handler).stop(timeout=1)
        method = SimpleNamespace(routing_key="antenne.updated", delivery_tag=9)

        self._callback(broker.channel)(broker.channel, method, None, b"not json")

        handler.assert_not_called()
        broker.channel.basic_nack.assert_called_once_with(delivery_tag=9, requeue=False)

    def test_unreachable_broker(self, publisher, broker):
        broker.factory.side_effect = AMQPConnectionError("refused")

        with pytest.raises(EventBusUnavailable):
            publisher.subscribe("q", ["antenne.*"], MagicMock())
