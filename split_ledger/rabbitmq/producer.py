import json
import logging
from datetime import datetime, timezone
from typing import Optional
import pika
from split_ledger.core.config import settings

logger = logging.getLogger(__name__)


class RabbitMQProducer:
    """Publishes ledger alerts to RabbitMQ"""

    def __init__(self, url: str = None):
        self.url = url or settings.RABBITMQ_URL
        self.connection: Optional[pika.BlockingConnection] = None
        self.channel = None

    def connect(self) -> None:
        """Establish connection to RabbitMQ"""
        try:
            self.connection = pika.BlockingConnection(pika.URLParameters(self.url))
            self.channel = self.connection.channel()
            self.channel.exchange_declare(
                exchange=settings.LEDGER_ALERT_EXCHANGE,
                exchange_type="topic",
                durable=True
            )
            logger.info("RabbitMQ producer connected successfully")
        except Exception as e:
            logger.error(f"Failed to connect RabbitMQ producer: {e}")
            raise

    def disconnect(self) -> None:
        """Close RabbitMQ connection"""
        if self.channel and not self.channel.is_closed:
            self.channel.close()
        if self.connection and not self.connection.is_closed:
            self.connection.close()
        logger.info("RabbitMQ producer disconnected")

    def publish_compensation_failure(self, expense_id: str, group_id: str, reason: str) -> bool:
        """
        Publish an alert for an expense whose rollback failed.

        Args:
            expense_id: Expense left without its full set of shares
            group_id: Group owning the expense
            reason: Error that triggered the compensation

        Returns:
            bool: True if message published successfully, False otherwise
        """
        try:
            if not self.connection or self.connection.is_closed:
                self.connect()

            message_data = {
                "event": "expense.compensation_failed",
                "expense_id": expense_id,
                "group_id": group_id,
                "reason": reason,
                "timestamp": datetime.now(timezone.utc).isoformat()
            }

            self.channel.basic_publish(
                exchange=settings.LEDGER_ALERT_EXCHANGE,
                routing_key=settings.LEDGER_ALERT_ROUTING_KEY,
                body=json.dumps(message_data),
                properties=pika.BasicProperties(
                    delivery_mode=2,  # Make message persistent
                    content_type='application/json',
                    correlation_id=expense_id
                )
            )

            logger.info(f"Published compensation failure alert for expense {expense_id}")
            return True

        except Exception as e:
            logger.error(f"Failed to publish compensation failure alert for expense {expense_id}: {e}")
            return False


# Global producer instance
_rabbitmq_producer: Optional[RabbitMQProducer] = None


def get_rabbitmq_producer() -> RabbitMQProducer:
    """Get or create RabbitMQ producer instance"""
    global _rabbitmq_producer
    if _rabbitmq_producer is None:
        _rabbitmq_producer = RabbitMQProducer()
    return _rabbitmq_producer


def close_rabbitmq_producer() -> None:
    """Close RabbitMQ producer connection"""
    global _rabbitmq_producer
    if _rabbitmq_producer:
        _rabbitmq_producer.disconnect()
        _rabbitmq_producer = None


def report_compensation_failure(expense_id: str, group_id: str, reason: str) -> bool:
    """Alert operators about an inconsistent store, if alerts are enabled."""
    if not settings.RABBITMQ_ALERTS_ENABLED:
        logger.warning(f"RabbitMQ alerts disabled; expense {expense_id} in group {group_id} needs manual cleanup")
        return False
    return get_rabbitmq_producer().publish_compensation_failure(expense_id, group_id, reason)
