from typing import Optional
from aio_pika import connect_robust, Message, ExchangeType, DeliveryMode
from inviteflow.cache import redis_client
from inviteflow.core.config import settings
from inviteflow.core.logging import logger
from inviteflow.events.changes import Change, cache_patterns_for

_connection = None
_channel = None
_exchange = None


async def get_rabbit_exchange():
    global _connection, _channel, _exchange
    if _connection and not _connection.is_closed and _exchange is not None:
        return _exchange
    _connection = await connect_robust(settings.RABBITMQ_URL, timeout=settings.REALTIME_CONNECT_TIMEOUT)
    _channel = await _connection.channel()
    _exchange = await _channel.declare_exchange(settings.CHANGES_EXCHANGE, ExchangeType.TOPIC, durable=True)
    return _exchange


async def publish_change(change: Change):
    exchange = await get_rabbit_exchange()
    message = Message(
        change.to_json(),
        content_type="application/json",
        delivery_mode=DeliveryMode.NOT_PERSISTENT,
    )
    await exchange.publish(message, routing_key=change.routing_key)


async def notify_change(table: str, op: str, event_id, row_id: Optional[object] = None) -> Change:
    """
    Announce a committed mutation.

    Local caches are dropped right away so this process never serves a view
    older than its own write; the notice then goes to the change stream for
    listeners elsewhere. The mutation is already committed, so a broker
    failure is logged and not raised.
    """
    change = Change(table=table, op=op, event_id=str(event_id), row_id=str(row_id) if row_id else None)
    await redis_client.cache.invalidate(cache_patterns_for(change))
    try:
        await publish_change(change)
    except Exception as e:
        logger.error(f"Could not publish change {change.routing_key}: {e}")
    return change


async def close_publisher():
    global _connection, _channel, _exchange
    if _connection and not _connection.is_closed:
        await _connection.close()
    _connection = _channel = _exchange = None
