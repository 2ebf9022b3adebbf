"""
services/event_publisher.py
----------------------------
Publishes antenne change notifications to a RabbitMQ topic exchange.

Event delivery is advisory: publish() never raises and reports with a
boolean whether the message was handed to the broker. The connection is
owned by one EventPublisher instance and kept alive by a supervisor thread:

    DISCONNECTED -> CONNECTING -> CONNECTED -> (failure) DISCONNECTED

After a failed attempt or a dropped connection the supervisor waits a fixed
delay and tries again, forever.

Usage:
    publisher = EventPublisher()
    publisher.start()
    publisher.publish(RoutingKey.CREATED, {"id": 1})
    publisher.close()
"""

import json
import threading
import time
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Iterable, Optional

import pika
from pika.exceptions import AMQPError

from config import RABBITMQ_EXCHANGE, RABBITMQ_RECONNECT_DELAY, RABBITMQ_URL
from exceptions import EventBusUnavailable
from utils.logger import get_logger

logger = get_logger(__name__)

# How often the supervisor services the open connection (heartbeats, close detection).
POLL_INTERVAL_SECONDS = 1.0

EventHandler = Callable[[str, Any], None]


class RoutingKey:
    """Routing keys emitted after successful mutations."""
    CREATED = "antenne.created"
    UPDATED = "antenne.updated"
    DEACTIVATED = "antenne.deactivated"
    DELETED = "antenne.deleted"


class PublisherState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def _json_default(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_body(payload: Any) -> bytes:
    """Serialize a payload to the UTF-8 JSON message body."""
    return json.dumps(payload, default=_json_default, ensure_ascii=False).encode("utf-8")


class EventPublisher:
    """
    RabbitMQ publisher with a fixed-delay reconnect loop.

    One connection and one channel are shared by every caller; publishing
    and connection servicing are serialized with a lock, so publish() can be
    called from concurrent request threads.
    """

    def __init__(
        self,
        url: str = RABBITMQ_URL,
        exchange: str = RABBITMQ_EXCHANGE,
        reconnect_delay: float = RABBITMQ_RECONNECT_DELAY,
        connection_factory: Optional[Callable[[pika.URLParameters], Any]] = None,
    ):
        self.exchange = exchange
        self.reconnect_delay = reconnect_delay
        self._parameters = pika.URLParameters(url)
        self._connection_factory = connection_factory or pika.BlockingConnection

        self._lock = threading.Lock()
        self._stopping = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._connection = None
        self._channel = None
        self.state = PublisherState.DISCONNECTED

    @property
    def is_connected(self) -> bool:
        return self.state is PublisherState.CONNECTED

    # ── LIFECYCLE ─────────────────────────────────────────

    def start(self) -> None:
        """Start the supervisor thread. Connection happens in the background."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stopping.clear()
        self._thread = threading.Thread(
            target=self._supervise, name="event-publisher", daemon=True
        )
        self._thread.start()

    def close(self) -> None:
        """Stop reconnecting and close the channel and connection. Never raises."""
        self._stopping.set()
        if self._thread is not None:
            self._thread.join(timeout=self.reconnect_delay + POLL_INTERVAL_SECONDS)
            self._thread = None

        with self._lock:
            channel, connection = self._channel, self._connection
            self._channel = self._connection = None
            self.state = PublisherState.DISCONNECTED
            try:
                if channel is not None and channel.is_open:
                    channel.close()
                if connection is not None and connection.is_open:
                    connection.close()
                logger.info("RabbitMQ connection closed gracefully")
            except AMQPError as e:
                logger.error(f"Error closing RabbitMQ connection: {e}")

    def __enter__(self) -> "EventPublisher":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ── CONNECTION ────────────────────────────────────────

    def connect(self) -> bool:
        """
        Open the connection and channel and declare the exchange.

        Declaring a durable topic exchange is idempotent, so this is safe on
        every reconnect. The handshake runs outside the lock: publish() keeps
        returning False immediately while a connection attempt is pending.

        Returns:
            True if connected, False if the attempt failed.
        """
        with self._lock:
            previous = self._connection
            self._connection = self._channel = None
            self.state = PublisherState.CONNECTING
        self._discard(previous)

        connection = None
        try:
            connection = self._connection_factory(self._parameters)
            channel = connection.channel()
            channel.exchange_declare(
                exchange=self.exchange, exchange_type="topic", durable=True
            )
        except (AMQPError, OSError) as e:
            logger.error(f"Failed to connect to RabbitMQ: {e}")
            self._discard(connection)
            with self._lock:
                self.state = PublisherState.DISCONNECTED
            return False

        with self._lock:
            if self._stopping.is_set():
                # close() ran while the handshake was in flight.
                self._discard(connection)
                self.state = PublisherState.DISCONNECTED
                return False
            self._connection, self._channel = connection, channel
            self.state = PublisherState.CONNECTED
        logger.info("RabbitMQ connected successfully")
        return True

    def _supervise(self) -> None:
        while not self._stopping.is_set():
            if not self.connect():
                logger.info(f"Retrying RabbitMQ connection in {self.reconnect_delay:g}s")
                self._stopping.wait(self.reconnect_delay)
                continue

            self._service_connection()
            if self._stopping.is_set():
                break
            logger.warning(
                f"RabbitMQ connection closed, reconnecting in {self.reconnect_delay:g}s..."
            )
            self._stopping.wait(self.reconnect_delay)

    def _service_connection(self) -> None:
        """Process I/O on the open connection until it drops or we stop."""
        while not self._stopping.is_set():
            with self._lock:
                if self.state is not PublisherState.CONNECTED:
                    return
                try:
                    self._connection.process_data_events(time_limit=0)
                except AMQPError as e:
                    logger.error(f"RabbitMQ connection error: {e}")
                    self._mark_disconnected()
                    return
            self._stopping.wait(POLL_INTERVAL_SECONDS)

    def _mark_disconnected(self) -> None:
        # Caller holds the lock.
        connection = self._connection
        self._connection = self._channel = None
        self.state = PublisherState.DISCONNECTED
        self._discard(connection)

    @staticmethod
    def _discard(connection) -> None:
        if connection is None or not connection.is_open:
            return
        try:
            connection.close()
        except AMQPError as e:
            logger.debug(f"Ignoring error while discarding RabbitMQ connection: {e}")

    # ── PUBLISH ───────────────────────────────────────────

    def publish(self, routing_key: str, payload: Any) -> bool:
        """
        Publish a persistent JSON message on the exchange.

        Args:
            routing_key: Topic routing key, e.g. 'antenne.created'.
            payload: JSON-serializable data (dates and datetimes allowed).

        Returns:
            True once the message is handed to the broker, False if the
            publisher is not connected or publishing failed.
        """
        try:
            body = encode_body(payload)
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to serialize event {routing_key}: {e}")
            return False

        if self.state is not PublisherState.CONNECTED:
            logger.warning(f"RabbitMQ channel not available, event not published: {routing_key}")
            return False

        with self._lock:
            if self.state is not PublisherState.CONNECTED or self._channel is None:
                logger.warning(f"RabbitMQ channel not available, event not published: {routing_key}")
                return False

            properties = pika.BasicProperties(
                content_type="application/json",
                delivery_mode=pika.DeliveryMode.Persistent,
                timestamp=int(time.time()),
            )
            try:
                self._channel.basic_publish(
                    exchange=self.exchange,
                    routing_key=routing_key,
                    body=body,
                    properties=properties,
                )
            except AMQPError as e:
                logger.error(f"Failed to publish event {routing_key}: {e}")
                self._mark_disconnected()
                return False

        logger.info(f"Event published: {routing_key}")
        return True

    # ── SUBSCRIBE ─────────────────────────────────────────

    def subscribe(
        self,
        queue_name: str,
        routing_keys: Iterable[str],
        handler: EventHandler,
    ) -> "EventSubscription":
        """
        Consume events from a durable queue bound to the exchange.

        A dedicated connection is opened for the consumer. Each message is
        decoded as JSON and passed to ``handler(routing_key, data)``; it is
        acked when the handler returns and nacked without requeue when it
        raises, so a poison message is dropped rather than redelivered.

        Raises:
            EventBusUnavailable: If the broker cannot be reached.
        """
        routing_keys = list(routing_keys)
        connection = None
        try:
            connection = self._connection_factory(self._parameters)
            channel = connection.channel()
            channel.exchange_declare(
                exchange=self.exchange, exchange_type="topic", durable=True
            )
            channel.queue_declare(queue=queue_name, durable=True)
            for routing_key in routing_keys:
                channel.queue_bind(
                    queue=queue_name, exchange=self.exchange, routing_key=routing_key
                )
        except (AMQPError, OSError) as e:
            self._discard(connection)
            raise EventBusUnavailable(f"RabbitMQ channel not available: {e}") from e

        subscription = EventSubscription(connection, channel, queue_name, handler)
        subscription.start()
        logger.info(f"Subscribed to events: {', '.join(routing_keys)}")
        return subscription


class EventSubscription:
    """A running consumer on its own connection and thread."""

    def __init__(self, connection, channel, queue_name: str, handler: EventHandler):
        self.queue_name = queue_name
        self._connection = connection
        self._channel = channel
        self._handler = handler
        self._thread: Optional[threading.Thread] = None
        channel.basic_consume(queue=queue_name, on_message_callback=self._on_message)

    def _on_message(self, channel, method, properties, body: bytes) -> None:
        routing_key = method.routing_key
        try:
            data = json.loads(body.decode("utf-8"))
            self._handler(routing_key, data)
        except Exception as e:
            logger.error(f"Error processing message {routing_key}: {e}")
            channel.basic_nack(delivery_tag=method.delivery_tag, requeue=False)
            return
        channel.basic_ack(delivery_tag=method.delivery_tag)

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._consume, name=f"consumer-{self.queue_name}", daemon=True
        )
        self._thread.start()

    def _consume(self) -> None:
        try:
            self._channel.start_consuming()
        except AMQPError as e:
            logger.error(f"Consumer for '{self.queue_name}' stopped: {e}")
        finally:
            EventPublisher._discard(self._connection)

    def stop(self, timeout: float = 5.0) -> None:
        """Stop consuming and close the consumer connection."""
        if self._connection.is_open:
            self._connection.add_callback_threadsafe(self._channel.stop_consuming)
        if self._thread is not None:
            self._thread.join(timeout=timeout)
