"""
Registry of template channels.

A registration binds a mounted template frame to an event, together with an
optional observer callback that receives every refreshed wish list. The
component that mounts frames owns the registry and scopes each registration to
the frame's lifetime with ``attach``.
"""
import asyncio
import enum
import inspect
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union

from inviteflow.core.logging import logger

WishObserver = Callable[[List[dict]], Union[None, Awaitable[None]]]


class Audience(str, enum.Enum):
    guest = "guest"
    admin = "admin"


class TemplateFrame(Protocol):
    """Anything a reply can be posted to."""

    async def send(self, message: dict) -> None:
        ...


@dataclass(eq=False)
class Registration:
    event_id: str
    frame: TemplateFrame
    on_update: Optional[WishObserver] = None
    audience: Audience = Audience.guest
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    active: bool = True

    @property
    def is_admin(self) -> bool:
        return self.audience is Audience.admin

    async def reply(self, message: dict) -> bool:
        """
        Post ``message`` to the frame. A frame that has unmounted in the
        meantime simply does not get it.
        """
        if not self.active:
            logger.debug(f"Discarding {message.get('type')} for unmounted frame of event {self.event_id}")
            return False
        try:
            await self.frame.send(message)
            return True
        except Exception as e:
            logger.warning(f"Could not post {message.get('type')} to frame of event {self.event_id}: {e}")
            return False

    async def notify(self, wishes: List[dict]):
        if self.on_update is None or not self.active:
            return
        try:
            result = self.on_update(wishes)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Wish observer for event {self.event_id} failed: {e}")


class ChannelRegistry:
    def __init__(self):
        self._channels: Dict[str, List[Registration]] = {}

    def register(
        self,
        event_id: str,
        frame: TemplateFrame,
        on_update: Optional[WishObserver] = None,
        audience: Audience = Audience.guest,
    ) -> Registration:
        registration = Registration(event_id=str(event_id), frame=frame, on_update=on_update, audience=audience)
        self._channels.setdefault(registration.event_id, []).append(registration)
        logger.info(f"Registered {audience.value} template channel for event {event_id}")
        return registration

    def unregister(self, registration: Registration):
        registration.active = False
        channels = self._channels.get(registration.event_id, [])
        if registration in channels:
            channels.remove(registration)
        if not channels:
            self._channels.pop(registration.event_id, None)
        logger.info(f"Unregistered template channel for event {registration.event_id}")

    def channel_count(self, event_id: str) -> int:
        return len(self._channels.get(str(event_id), []))

    def lookup(self, event_id: str, source: Optional[Any] = None) -> Optional[Registration]:
        """
        Find the registration a message belongs to. With a ``source`` handle
        it must be one of the event's live registrations; without one the
        event must have exactly one.
        """
        channels = self._channels.get(str(event_id), [])
        if source is not None:
            return source if source in channels else None
        if len(channels) == 1:
            return channels[0]
        return None

    def event_ids(self) -> List[str]:
        return list(self._channels.keys())

    @asynccontextmanager
    async def attach(
        self,
        event_id: str,
        frame: TemplateFrame,
        on_update: Optional[WishObserver] = None,
        audience: Audience = Audience.guest,
    ):
        registration = self.register(event_id, frame, on_update, audience)
        try:
            yield registration
        finally:
            self.unregister(registration)
