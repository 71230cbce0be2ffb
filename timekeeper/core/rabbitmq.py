import logging

import aio_pika
from aio_pika import ExchangeType, Message
from fastapi import FastAPI

from timekeeper.core.config import settings
from timekeeper.schemas.message import StatusChangedMessage

logger = logging.getLogger(__name__)


async def init_rabbitmq(app: FastAPI) -> None:
    """
    RABBITMQ_URL이 없으면 이벤트 publish 없이 동작한다.
    """
    app.state.rabbit_exchange = None
    if not settings.RABBITMQ_URL:
        logger.info("RABBITMQ_URL not set, status events are disabled")
        return

    connection = await aio_pika.connect_robust(settings.RABBITMQ_URL)
    channel = await connection.channel()

    exchange = await channel.declare_exchange(
        settings.RABBITMQ_EXCHANGE,
        ExchangeType.DIRECT,
        durable=True,
    )

    app.state.rabbit_connection = connection
    app.state.rabbit_channel = channel
    app.state.rabbit_exchange = exchange


async def close_rabbitmq(app: FastAPI) -> None:
    connection = getattr(app.state, "rabbit_connection", None)
    if connection:
        await connection.close()


async def publish_status_change(app: FastAPI, msg: StatusChangedMessage) -> None:
    """
    StatusChangedMessage를 RabbitMQ로 publish.
    """
    exchange = app.state.rabbit_exchange
    body = msg.model_dump_json().encode("utf-8")

    message = Message(
        body=body,
        content_type="application/json",
        delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
    )

    await exchange.publish(message, routing_key=settings.RABBITMQ_ROUTING_KEY)
    logger.info(
        "Published status change kind=%s recordId=%s status=%s",
        msg.kind,
        msg.recordId,
        msg.status,
    )
