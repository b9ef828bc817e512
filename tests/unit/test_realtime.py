"""
Unit tests for the realtime change listener and connection status.
"""
import asyncio
import pytest

from inviteflow.events.changes import Change
from inviteflow.core.logging import logger
from inviteflow.events.consumer import ChannelState, ConnectionStatus, RealtimeChangeListener, log_task_result
from inviteflow.websocket.manager import ConnectionManager


class FakeSocket:
    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def accept(self):
        pass

    async def send_text(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)


@pytest.mark.unit
@pytest.mark.asyncio
class TestConnectionStatus:
    """Warning only after the connection stays down for the grace period."""

    async def test_connected_before_first_report(self):
        status = ConnectionStatus(grace=0.01)

        assert status.is_connected is True
        assert status.show_warning is False

    async def test_warning_after_grace(self):
        status = ConnectionStatus(grace=0.01)
        await status.update(ChannelState.CHANNEL_ERROR)

        assert status.is_connected is False
        assert status.show_warning is False

        await asyncio.sleep(0.05)
        assert status.show_warning is True

    async def test_quick_reconnect_cancels_warning(self):
        status = ConnectionStatus(grace=0.05)
        await status.update(ChannelState.CLOSED)
        await status.update(ChannelState.SUBSCRIBED)

        await asyncio.sleep(0.1)
        assert status.is_connected is True
        assert status.show_warning is False

    async def test_recovery_clears_warning(self):
        status = ConnectionStatus(grace=0.01)
        await status.update(ChannelState.TIMED_OUT)
        await asyncio.sleep(0.05)
        await status.update(ChannelState.SUBSCRIBED)

        assert status.show_warning is False

    async def test_changes_are_emitted(self):
        seen = []

        async def on_change(status):
            seen.append(status.to_dict())

        status = ConnectionStatus(grace=0.01, on_change=on_change)
        await status.update(ChannelState.SUBSCRIBED)
        await status.update(ChannelState.CLOSED)
        await asyncio.sleep(0.05)

        assert [s["state"] for s in seen] == ["SUBSCRIBED", "CLOSED", "CLOSED"]
        assert seen[-1]["show_warning"] is True


@pytest.mark.unit
@pytest.mark.asyncio
class TestRealtimeChangeListener:
    """Change notices invalidate caches and reach the event's dashboards."""

    async def test_handle_change_invalidates_and_notifies(self, fake_cache):
        connections = ConnectionManager()
        watching, elsewhere = FakeSocket(), FakeSocket()
        await connections.connect("evt", watching)
        await connections.connect("other", elsewhere)
        fake_cache.store["wishes:evt:1"] = []
        fake_cache.store["wishes:other:1"] = []

        listener = RealtimeChangeListener(connections=connections, grace=0.01)
        message = await listener.handle_change(Change("wishes", "insert", "evt", "w1"))

        assert message["type"] == "INVALIDATE"
        assert message["payload"] == {"keys": ["events", "analytics", "wishes"], "event_id": "evt"}
        assert len(watching.sent) == 1
        assert elsewhere.sent == []
        assert list(fake_cache.store) == ["wishes:other:1"]

    async def test_malformed_notice_is_ignored(self, fake_cache):
        listener = RealtimeChangeListener(connections=ConnectionManager(), grace=0.01)

        await listener.handle_message(b'{"table": "nope"}')

        assert fake_cache.invalidated == []

    async def test_watch_tracks_events_without_broker(self):
        listener = RealtimeChangeListener(connections=ConnectionManager(), grace=0.01)
        await listener.watch_event("evt")
        await listener.watch_event("evt")

        assert listener.watched == {"evt"}
        assert listener.wish_binding("evt") == "wishes.*.evt"

        await listener.unwatch_event("evt")
        assert listener.watched == set()

    async def test_status_is_broadcast_to_dashboards(self):
        connections = ConnectionManager()
        socket = FakeSocket()
        await connections.connect("evt", socket)
        listener = RealtimeChangeListener(connections=connections, grace=0.01)

        await listener.status.update(ChannelState.SUBSCRIBED)

        assert '"CONNECTION_STATUS"' in socket.sent[0]

    async def test_broken_dashboard_socket_is_dropped(self):
        connections = ConnectionManager()
        await connections.connect("evt", FakeSocket(fail=True))

        assert await connections.send_to_event("evt", {"type": "INVALIDATE"}) == 0
        assert connections.event_ids() == []

    async def test_connection_callbacks_keep_their_tasks(self):
        listener = RealtimeChangeListener(connections=ConnectionManager(), grace=10)

        listener._on_close(None, ConnectionError("broker gone"))

        assert len(listener._tasks) == 1
        await asyncio.gather(*listener._tasks)
        assert listener.status.state is ChannelState.CHANNEL_ERROR
        assert listener._tasks == set()

        await listener.close()

    async def test_close_cancels_pending_status_tasks(self):
        listener = RealtimeChangeListener(connections=ConnectionManager(), grace=10)
        listener._on_reconnect(None)
        task = next(iter(listener._tasks))

        await listener.close()
        with pytest.raises(asyncio.CancelledError):
            await task


@pytest.mark.unit
@pytest.mark.asyncio
class TestBackgroundTasks:
    """Failed background tasks are reported through the logger."""

    async def test_failure_is_logged(self):
        errors = []
        sink = logger.add(lambda m: errors.append(m.record["message"]), level="ERROR")

        async def fails():
            raise RuntimeError("listener gave up")

        task = asyncio.create_task(fails(), name="realtime-listener")
        task.add_done_callback(log_task_result)
        try:
            with pytest.raises(RuntimeError):
                await task
            await asyncio.sleep(0)
        finally:
            logger.remove(sink)

        assert any("realtime-listener" in e and "listener gave up" in e for e in errors)

    async def test_cancellation_is_silent(self):
        errors = []
        sink = logger.add(lambda m: errors.append(m.record["message"]), level="ERROR")
        task = asyncio.create_task(asyncio.sleep(10))
        task.add_done_callback(log_task_result)
        task.cancel()
        try:
            with pytest.raises(asyncio.CancelledError):
                await task
            await asyncio.sleep(0)
        finally:
            logger.remove(sink)

        assert errors == []
