"""Kafka producer for publishing created orders."""

import json
from typing import Any

from confluent_kafka import Producer

from .logger import logger


class OrderEventProducer:
    """Publishes committed orders so downstream services (confirmation email,
    fulfilment) can react without blocking checkout.

    Messages are keyed by order id so all events for one order land on the same
    partition.

    Attributes:
        _producer: The underlying Kafka producer instance.
        topic: Topic receiving created orders.
    """

    def __init__(self, bootstrap_servers: str, topic: str = "orders.created"):
        """Initialize the Kafka producer with the given bootstrap servers.

        Args:
            bootstrap_servers (str): Comma-separated list of Kafka broker addresses.
            topic (str): Topic receiving created orders.
        """
        self.topic = topic
        self._producer = Producer(
            {
                "bootstrap.servers": bootstrap_servers,
                "client.id": "storefront-service",
                "message.timeout.ms": 5000,
                "partitioner": "consistent_random",
            }
        )

    @property
    def producer(self):
        return self._producer

    def _delivery_callback(self, err, msg):
        if err:
            logger.error(f"Order event failed delivery: {err} | topic={msg.topic()} | key={msg.key()}")
        else:
            logger.debug(f"Order event delivered to {msg.topic()} [p:{msg.partition()}] offset={msg.offset()}")

    def publish_order(self, order: dict[str, Any]) -> bool:
        """Publish a created order.

        Publishing is best effort: failures are logged and reported through the
        return value, never raised, because the order is already committed.

        Args:
            order (dict): Order in its public shape.

        Returns:
            bool: True if the message was handed to the producer.
        """
        try:
            self._producer.produce(
                topic=self.topic,
                key=str(order["id"]).encode("utf-8"),
                value=json.dumps(order, default=str),
                on_delivery=self._delivery_callback,
            )
            self._producer.poll(0)
            return True
        except BufferError:
            logger.warning("Producer buffer full, flushing...")
            self._producer.flush()
            return False
        except Exception as e:
            logger.error(f"Failed to publish order {order.get('id')}: {e}")
            return False

    def close(self, timeout: float = 10.0) -> None:
        """Flush pending messages before shutdown."""
        remaining = self._producer.flush(timeout)
        if remaining > 0:
            logger.warning(f"{remaining} order events still pending delivery")
