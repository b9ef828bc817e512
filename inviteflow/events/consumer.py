"""
Realtime change listener for host dashboards.

Change notices arrive from the ``inviteflow.changes`` exchange. Each one drops
the cached views it made stale and tells the dashboards of that event which
views to reload. Guests and events are always followed; wishes only for events
a dashboard is currently watching.
"""
import asyncio
import enum
from typing import Awaitable, Callable, List, Optional, Set

from aio_pika import connect_robust, ExchangeType
from aio_pika.abc import AbstractIncomingMessage

from inviteflow.cache import redis_client
from inviteflow.core.config import settings
from inviteflow.core.logging import logger
from inviteflow.events.changes import Change, cache_patterns_for
from inviteflow.websocket.manager import ConnectionManager, manager

ALWAYS_BOUND = ("guests.#", "events.#")


class ChannelState(str, enum.Enum):
    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"


StatusCallback = Callable[["ConnectionStatus"], Awaitable[None]]


def log_task_result(task: asyncio.Task):
    """Done-callback that reports a background task's failure."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.opt(exception=exc).error(f"Background task {task.get_name()} failed: {exc}")


class ConnectionStatus:
    """
    Connection health as dashboards see it.

    ``is_connected`` follows the channel state directly. ``show_warning`` only
    turns on once the connection has stayed down for the grace period, so a
    quick reconnect never flashes a warning. Before the first state report the
    connection counts as up.
    """

    def __init__(self, grace: Optional[float] = None, on_change: Optional[StatusCallback] = None):
        self.grace = settings.REALTIME_DISCONNECT_GRACE if grace is None else grace
        self.on_change = on_change
        self.state: Optional[ChannelState] = None
        self.show_warning = False
        self._warning_task: Optional[asyncio.Task] = None

    @property
    def is_connected(self) -> bool:
        return self.state is None or self.state is ChannelState.SUBSCRIBED

    def to_dict(self) -> dict:
        return {
            "state": self.state.value if self.state else None,
            "is_connected": self.is_connected,
            "show_warning": self.show_warning,
        }

    async def update(self, state: ChannelState):
        previous = self.state
        self.state = state
        if state is ChannelState.SUBSCRIBED:
            self._cancel_warning()
            self.show_warning = False
            logger.info("Realtime connection established")
        else:
            logger.warning(f"Realtime connection state: {state.value}")
            if self._warning_task is None and not self.show_warning:
                self._warning_task = asyncio.create_task(self._raise_warning())
        if previous is not state:
            await self._emit()

    async def _raise_warning(self):
        try:
            await asyncio.sleep(self.grace)
        except asyncio.CancelledError:
            return
        self._warning_task = None
        if not self.is_connected:
            self.show_warning = True
            await self._emit()

    def _cancel_warning(self):
        if self._warning_task is not None:
            self._warning_task.cancel()
            self._warning_task = None

    async def _emit(self):
        if self.on_change is None:
            return
        try:
            await self.on_change(self)
        except Exception as e:
            logger.error(f"Connection status callback failed: {e}")

    def close(self):
        self._cancel_warning()


def query_keys_for(change: Change) -> List[str]:
    """Dashboard views to reload after ``change``."""
    keys = ["events", "analytics"]
    if change.table in ("guests", "wishes"):
        keys.append(change.table)
    return keys


class RealtimeChangeListener:
    def __init__(self, connections: ConnectionManager = manager, grace: Optional[float] = None):
        self.connections = connections
        self.status = ConnectionStatus(grace=grace, on_change=self._broadcast_status)
        self.watched: Set[str] = set()
        self._connection = None
        self._exchange = None
        self._queue = None
        self._tasks: Set[asyncio.Task] = set()

    @staticmethod
    def wish_binding(event_id) -> str:
        return f"wishes.*.{event_id}"

    async def handle_change(self, change: Change) -> dict:
        await redis_client.cache.invalidate(cache_patterns_for(change))
        message = {
            "type": "INVALIDATE",
            "payload": {"keys": query_keys_for(change), "event_id": change.event_id},
        }
        await self.connections.send_to_event(change.event_id, message)
        logger.debug(f"Applied change {change.routing_key}")
        return message

    async def handle_message(self, body: bytes):
        try:
            change = Change.from_json(body)
        except ValueError as e:
            logger.warning(f"Ignoring change notice: {e}")
            return
        await self.handle_change(change)

    async def watch_event(self, event_id):
        event_id = str(event_id)
        if event_id in self.watched:
            return
        self.watched.add(event_id)
        if self._queue is not None:
            await self._queue.bind(self._exchange, routing_key=self.wish_binding(event_id))
        logger.info(f"Watching wish changes for event {event_id}")

    async def unwatch_event(self, event_id):
        event_id = str(event_id)
        if event_id not in self.watched:
            return
        self.watched.discard(event_id)
        if self._queue is not None:
            await self._queue.unbind(self._exchange, routing_key=self.wish_binding(event_id))
        logger.info(f"Stopped watching wish changes for event {event_id}")

    async def _broadcast_status(self, status: ConnectionStatus):
        await self.connections.broadcast({"type": "CONNECTION_STATUS", "payload": status.to_dict()})

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(log_task_result)
        return task

    def _on_close(self, sender, exc=None, *args):
        state = ChannelState.CLOSED if exc is None else ChannelState.CHANNEL_ERROR
        self._spawn(self.status.update(state))

    def _on_reconnect(self, sender, *args):
        self._spawn(self.status.update(ChannelState.SUBSCRIBED))

    async def connect(self):
        try:
            self._connection = await connect_robust(
                settings.RABBITMQ_URL, timeout=settings.REALTIME_CONNECT_TIMEOUT
            )
        except asyncio.TimeoutError:
            await self.status.update(ChannelState.TIMED_OUT)
            raise
        except Exception:
            await self.status.update(ChannelState.CHANNEL_ERROR)
            raise
        self._connection.close_callbacks.add(self._on_close)
        self._connection.reconnect_callbacks.add(self._on_reconnect)

        channel = await self._connection.channel()
        self._exchange = await channel.declare_exchange(
            settings.CHANGES_EXCHANGE, ExchangeType.TOPIC, durable=True
        )
        # One private queue per process; every process needs its own copy
        self._queue = await channel.declare_queue(exclusive=True, auto_delete=True)
        for key in ALWAYS_BOUND:
            await self._queue.bind(self._exchange, routing_key=key)
        for event_id in self.watched:
            await self._queue.bind(self._exchange, routing_key=self.wish_binding(event_id))
        await self.status.update(ChannelState.SUBSCRIBED)

    async def run(self, max_retries: int = 10, delay: float = 5):
        for attempt in range(1, max_retries + 1):
            try:
                await self.connect()
                break
            except Exception as e:
                logger.error(f"Realtime listener connection failed (attempt {attempt}/{max_retries}): {e}")
                if attempt == max_retries:
                    raise
                await asyncio.sleep(delay)

        async with self._queue.iterator() as queue_iter:
            async for message in queue_iter:
                await self._process(message)

    async def _process(self, message: AbstractIncomingMessage):
        async with message.process():
            try:
                await self.handle_message(message.body)
            except Exception as e:
                logger.exception(f"Error handling change notice: {e}")

    async def close(self):
        self.status.close()
        for task in list(self._tasks):
            task.cancel()
        if self._connection is not None and not self._connection.is_closed:
            self._connection.close_callbacks.discard(self._on_close)
            await self._connection.close()
        self._connection = self._exchange = self._queue = None


listener = RealtimeChangeListener()
