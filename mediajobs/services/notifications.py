import enum
import json
from typing import Any, Protocol

import pika
import structlog

logger = structlog.get_logger()


class JobEvent(str, enum.Enum):
    QUEUED = "queued"
    PROCESSING_STARTED = "processing_started"
    REPROCESS_STARTED = "reprocess_started"
    COMPLETED = "completed"
    FAILED = "failed"
    DELETED = "deleted"
    PERSISTENCE_FAILED = "persistence_failed"


class Notifier(Protocol):
    def notify(self, job_id: str, event: JobEvent, details: dict[str, Any] | None = None) -> None: ...


def completion_message(title: str, features: list[str], reprocessed: bool = False) -> str:
    verb = "Reprocessing" if reprocessed else "Processing"
    suffix = f" with {', '.join(features)}" if features else ""
    return f'{verb} completed for "{title}"{suffix}'


class LogNotifier:
    """Reports job events as structured log lines."""

    def notify(self, job_id: str, event: JobEvent, details: dict[str, Any] | None = None) -> None:
        logger.info("job_event", job_id=job_id, event=JobEvent(event).value, **(details or {}))


class RabbitMQNotifier:
    """Publishes job events to the notification queue."""

    def __init__(self, rabbitmq_url: str, queue: str = "notification.send") -> None:
        self.rabbitmq_url = rabbitmq_url
        self.queue = queue

    def notify(self, job_id: str, event: JobEvent, details: dict[str, Any] | None = None) -> None:
        try:
            params = pika.URLParameters(self.rabbitmq_url)
            connection = pika.BlockingConnection(params)
            channel = connection.channel()

            channel.queue_declare(queue=self.queue, durable=True)

            message = {
                "job_id": job_id,
                "type": JobEvent(event).value,
                "details": details or {},
            }

            channel.basic_publish(
                exchange="",
                routing_key=self.queue,
                body=json.dumps(message, default=str),
                properties=pika.BasicProperties(
                    delivery_mode=2,  # persistent
                    content_type="application/json",
                ),
            )

            connection.close()
            logger.info("notification_published", job_id=job_id, type=message["type"])

        except Exception as e:
            logger.error("notification_publish_failed", job_id=job_id, error=str(e))


def build_notifier(settings) -> Notifier:
    if settings.notifier_backend == "rabbitmq":
        return RabbitMQNotifier(settings.rabbitmq_url, settings.notification_queue)
    return LogNotifier()
