"""Unit tests for the OrderEventProducer class."""

import json
from unittest.mock import MagicMock, patch

import pytest

from storefront_service.producer import OrderEventProducer

ORDER = {"_id": "row-1", "id": "order-1700000000000-abc123def", "userId": "user-1", "total": 990}


@pytest.fixture
def order_producer():
    with patch("storefront_service.producer.Producer"):
        yield OrderEventProducer("localhost:9092")


def test_producer_initialization():
    """OrderEventProducer configures the Kafka producer for keyed, bounded delivery."""
    mock_producer_instance = MagicMock()
    mock_producer_class = MagicMock(return_value=mock_producer_instance)

    with patch("storefront_service.producer.Producer", new=mock_producer_class):
        producer = OrderEventProducer("dump:9092")

        mock_producer_class.assert_called_once_with(
            {
                "bootstrap.servers": "dump:9092",
                "client.id": "storefront-service",
                "message.timeout.ms": 5000,
                "partitioner": "consistent_random",
            }
        )
        assert producer.producer == mock_producer_instance


def test_publish_order_success(order_producer):
    """The order is keyed by its public id and serialized as JSON."""
    with patch.object(order_producer, "_producer") as mock_producer:
        assert order_producer.publish_order(ORDER) is True

        kwargs = mock_producer.produce.call_args.kwargs
        assert kwargs["topic"] == "orders.created"
        assert kwargs["key"] == ORDER["id"].encode("utf-8")
        assert json.loads(kwargs["value"]) == ORDER
        assert kwargs["on_delivery"] == order_producer._delivery_callback
        mock_producer.poll.assert_called_once_with(0)


def test_publish_order_buffer_full_flushes(order_producer):
    """A full buffer is flushed and reported without raising."""
    with patch.object(order_producer, "_producer") as mock_producer:
        mock_producer.produce.side_effect = BufferError()

        assert order_producer.publish_order(ORDER) is False
        mock_producer.flush.assert_called_once()


def test_publish_order_swallows_errors(order_producer):
    """Broker errors never escape into checkout."""
    with patch.object(order_producer, "_producer") as mock_producer:
        mock_producer.produce.side_effect = RuntimeError("broker down")

        assert order_producer.publish_order(ORDER) is False
