import json
import logging
from typing import Dict, Any
import pika
import pika.exceptions

from .config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


class EventPublisher:
    """Publishes task lifecycle events to a RabbitMQ topic exchange"""

    def __init__(
        self,
        host: str = "rabbitmq",
        port: int = 5672,
        user: str = "admin",
        password: str = "admin123",
        exchange: str = "task_exchange",
        enabled: bool = True
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.exchange = exchange
        self.enabled = enabled
        self.connection = None
        self.channel = None

    def connect(self) -> bool:
        """Establish connection to RabbitMQ"""
        try:
            credentials = pika.PlainCredentials(self.user, self.password)
            parameters = pika.ConnectionParameters(
                host=self.host,
                port=self.port,
                credentials=credentials,
                heartbeat=600,
                blocked_connection_timeout=300,
            )

            self.connection = pika.BlockingConnection(parameters)
            self.channel = self.connection.channel()
            self.channel.exchange_declare(
                exchange=self.exchange,
                exchange_type='topic',
                durable=True
            )

            logger.info(f"Connected to RabbitMQ at {self.host}:{self.port}")
            return True

        except pika.exceptions.AMQPConnectionError as e:
            logger.warning(f"Could not connect to RabbitMQ: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error connecting to RabbitMQ: {e}")
            return False

    def publish_event(self, routing_key: str, data: Dict[str, Any]) -> bool:
        """
        Publish an event such as ``task.created``.

        Never raises: a broker outage must not fail the request that
        triggered the event.
        """
        if not self.enabled:
            logger.debug(f"Event publishing disabled, dropping {routing_key}")
            return False

        if not self.connection or self.connection.is_closed:
            if not self.connect():
                logger.warning(f"Failed to publish {routing_key} - no connection")
                return False

        try:
            message = {
                'event_type': routing_key,
                'data': data
            }

            self.channel.basic_publish(
                exchange=self.exchange,
                routing_key=routing_key,
                body=json.dumps(message, default=str),
                properties=pika.BasicProperties(
                    delivery_mode=2,  # Persistent
                    content_type='application/json'
                )
            )

            logger.info(f"Published {routing_key} event to RabbitMQ")
            return True

        except Exception as e:
            logger.error(f"Error publishing {routing_key} event: {e}")
            return False

    def close(self):
        """Close connection"""
        try:
            if self.connection and not self.connection.is_closed:
                self.connection.close()
                logger.info("RabbitMQ connection closed")
        except Exception as e:
            logger.error(f"Error closing connection: {e}")


# Global publisher instance
event_publisher = EventPublisher(
    host=settings.rabbitmq_host,
    port=settings.rabbitmq_port,
    user=settings.rabbitmq_user,
    password=settings.rabbitmq_password,
    exchange=settings.events_exchange,
    enabled=settings.enable_events
)
