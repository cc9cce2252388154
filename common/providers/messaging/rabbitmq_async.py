from typing import Awaitable, Callable, Dict, Any, Optional
import json
import asyncio
import aio_pika
from aio_pika import connect_robust, Message
from urllib.parse import quote

from opentelemetry import trace
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from common.core.config import settings
from .interface import MessageQueueInterface
from common.core.otel_axiom_exporter import get_logger, inject_trace_context

logger = get_logger(__name__)

tracer = trace.get_tracer(__name__)
propagator = TraceContextTextMapPropagator()


class QueueConfig:
    DLQ_MESSAGE_TTL_MS = 86400000  # 24 hours
    DLQ_MAX_LENGTH = 10000
    DLX_SUFFIX = ".dlx"
    DLQ_SUFFIX = ".dlq"


class RabbitMQClient(MessageQueueInterface):
    def __init__(self):
        self.connection: Optional[aio_pika.abc.AbstractRobustConnection] = None
        self.channel: Optional[aio_pika.abc.AbstractChannel] = None
        self.host = settings.rabbitmq_host
        self.port = settings.rabbitmq_port
        self.username = settings.rabbitmq_username
        self.password = settings.rabbitmq_password
        self.vhost = settings.rabbitmq_vhost

    async def _ensure_channel(self) -> None:
        if not self.channel or self.channel.is_closed:
            await self.connect()

    async def _setup_dead_letter_queue(self, queue_name: str) -> Dict[str, str]:
        """Declare `<queue>.dlx` / `<queue>.dlq` and return the main queue's DLX arguments."""
        dlx_name = f"{queue_name}{QueueConfig.DLX_SUFFIX}"
        dlq_name = f"{queue_name}{QueueConfig.DLQ_SUFFIX}"

        await self.channel.declare_exchange(
            name=dlx_name, type=aio_pika.ExchangeType.DIRECT, durable=True
        )
        dlq = await self.channel.declare_queue(
            dlq_name,
            durable=True,
            arguments={
                "x-message-ttl": QueueConfig.DLQ_MESSAGE_TTL_MS,
                "x-max-length": QueueConfig.DLQ_MAX_LENGTH,
            },
        )
        await dlq.bind(dlx_name, routing_key=queue_name)

        return {
            "x-dead-letter-exchange": dlx_name,
            "x-dead-letter-routing-key": queue_name,
        }

    async def connect(self) -> bool:
        try:
            url = f"amqp://{quote(self.username)}:{quote(self.password)}@{self.host}:{self.port}/{quote(self.vhost, safe='')}"
            self.connection = await connect_robust(url)
            self.channel = await self.connection.channel(publisher_confirms=True)
            logger.info("Connected to RabbitMQ")
            return True
        except Exception as e:
            logger.error(f"Failed to connect to RabbitMQ: {e}")
            return False

    async def disconnect(self) -> None:
        try:
            if self.channel and not self.channel.is_closed:
                await self.channel.close()
            if self.connection and not self.connection.is_closed:
                await self.connection.close()
            logger.info("Disconnected from RabbitMQ")
        except Exception as e:
            logger.error(f"Error disconnecting from RabbitMQ: {e}")

    async def publish(self, queue: str, message: Dict[str, Any]) -> bool:
        try:
            await self._ensure_channel()
            await self.declare_queue(queue, durable=True, dlq_enabled=True)

            headers = inject_trace_context()

            msg = Message(
                body=json.dumps(message).encode(),
                delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
                content_type="application/json",
                headers=headers,
            )
            await self.channel.default_exchange.publish(
                msg, routing_key=queue, mandatory=True
            )
            logger.info(f"Published message to queue {queue}")
            return True
        except Exception as e:
            logger.error(f"Failed to publish message: {e}")
            return False

    async def consume(
        self,
        queue: str,
        callback: Callable[[Dict[str, Any]], Awaitable[None]],
        auto_ack: bool = True,
        prefetch_count: int = 1,
    ) -> None:
        await self._ensure_channel()
        await self.channel.set_qos(prefetch_count=prefetch_count)
        await self.declare_queue(queue, durable=True, dlq_enabled=True)
        queue_obj = await self.channel.get_queue(queue)

        active_tasks: set = set()

        async def _handle_message(message: aio_pika.abc.AbstractIncomingMessage):
            ctx = propagator.extract(message.headers or {})
            is_redelivered = bool(message.redelivered)

            with tracer.start_as_current_span("consume_message", context=ctx) as span:
                span.set_attribute("messaging.system", "rabbitmq")
                span.set_attribute("messaging.source", queue)
                span.set_attribute("messaging.redelivered", is_redelivered)
                try:
                    payload = json.loads(message.body.decode())
                except json.JSONDecodeError as e:
                    logger.error(f"Failed to decode message body as JSON: {e}")
                    if not auto_ack:
                        await message.reject(requeue=False)
                    return

                try:
                    await callback(payload)
                except Exception as e:
                    span.record_exception(e)
                    span.set_status(trace.Status(trace.StatusCode.ERROR))
                    logger.error(f"Error processing message: {e}", exc_info=True)
                    if not auto_ack:
                        # One redelivery, then the dead-letter queue
                        await message.reject(requeue=not is_redelivered)
                    return

                if not auto_ack:
                    await message.ack()

        async def on_message(message: aio_pika.abc.AbstractIncomingMessage):
            task = asyncio.create_task(_handle_message(message))
            active_tasks.add(task)
            task.add_done_callback(active_tasks.discard)

        logger.info(
            f"Consuming from queue {queue} with prefetch={prefetch_count}, auto_ack={auto_ack}"
        )
        await queue_obj.consume(on_message, no_ack=auto_ack)

        try:
            await asyncio.Future()  # Run until cancelled
        except asyncio.CancelledError:
            logger.info(f"Consumer cancelled for queue {queue}")
            if active_tasks:
                await asyncio.gather(*active_tasks, return_exceptions=True)
            raise

    async def declare_queue(
        self, queue: str, durable: bool = True, dlq_enabled: bool = True
    ) -> bool:
        try:
            await self._ensure_channel()

            queue_arguments = {}
            if dlq_enabled:
                queue_arguments.update(await self._setup_dead_letter_queue(queue))

            await self.channel.declare_queue(
                queue,
                durable=durable,
                arguments=queue_arguments or None,
            )
            logger.info(f"Declared queue: {queue} (DLQ enabled: {dlq_enabled})")
            return True
        except Exception as e:
            logger.error(f"Failed to declare queue {queue}: {e}")
            return False
