import asyncio
import json
from fastapi import FastAPI, WebSocket, WebSocketDisconnect, status, APIRouter
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from inviteflow.api.v1.routes import events as events_router, health as health_router, wishes as wishes_router
from inviteflow.cache.redis_client import cache
from inviteflow.core.config import settings
from inviteflow.core.errors import ResolutionError
from inviteflow.core.logging import logger
from inviteflow.db.session import engine, Base
from inviteflow.events.consumer import listener, log_task_result
from inviteflow.events.publisher import close_publisher
from inviteflow.protocol.messages import InboundMessage
from inviteflow.protocol.registry import Audience, ChannelRegistry
from inviteflow.protocol.router import MessageRouter
from inviteflow.services.id_resolver import IdResolver
from inviteflow.websocket.manager import WebSocketFrame, manager

app = FastAPI(title="Inviteflow")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(events_router.router)
api_router.include_router(wishes_router.router)
api_router.include_router(health_router.router)

app.include_router(api_router)

if settings.MEDIA_BASE_URL.startswith("/"):
    app.mount(
        settings.MEDIA_BASE_URL.rstrip("/"),
        StaticFiles(directory=settings.MEDIA_ROOT, check_dir=False),
        name="media",
    )

registry = ChannelRegistry()
template_router = MessageRouter(registry)


@app.on_event("startup")
async def on_startup():
    # create tables (no migrations yet)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if settings.START_REALTIME_LISTENER:
        app.state.listener_task = asyncio.create_task(listener.run(), name="realtime-listener")
        app.state.listener_task.add_done_callback(log_task_result)


@app.on_event("shutdown")
async def on_shutdown():
    task = getattr(app.state, "listener_task", None)
    if task is not None:
        task.cancel()
    await listener.close()
    await close_publisher()
    await cache.close()


async def serve_template(websocket: WebSocket, event_id: str, audience: Audience):
    """
    Pump messages from one template frame into the router.

    The handshake ``Origin`` header is the origin of every message on the
    socket. Messages are handled one at a time in arrival order.
    """
    origin = websocket.headers.get("origin")
    await websocket.accept()
    frame = WebSocketFrame(websocket)
    async with registry.attach(event_id, frame, audience=audience) as registration:
        try:
            while True:
                text = await websocket.receive_text()
                try:
                    data = json.loads(text)
                except ValueError:
                    logger.debug(f"Ignoring non-JSON frame on template channel {event_id}")
                    continue
                message = InboundMessage(origin=origin, data=data, source=registration)
                await template_router.handle(message, event_id)
        except WebSocketDisconnect:
            logger.info(f"Template frame for event {event_id} disconnected")


@app.websocket("/ws/templates/{event_id}")
async def template_endpoint(websocket: WebSocket, event_id: str):
    await serve_template(websocket, event_id, Audience.guest)


@app.websocket("/ws/admin/templates/{event_id}")
async def admin_template_endpoint(websocket: WebSocket, event_id: str):
    """
    Host preview of a template with moderation rights.
    Access control for this path belongs to the deployment in front of the app.
    """
    await serve_template(websocket, event_id, Audience.admin)


@app.websocket("/ws/dashboard/{event_id}")
async def dashboard_endpoint(websocket: WebSocket, event_id: str):
    """
    Dashboard feed for one event: INVALIDATE notices and CONNECTION_STATUS.
    """
    async with template_router.session_factory() as session:
        try:
            internal_id = str(await IdResolver(session).resolve_event(event_id))
        except ResolutionError as e:
            logger.warning(f"Dashboard connection rejected: {e}")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

    await manager.connect(internal_id, websocket)
    await listener.watch_event(internal_id)
    logger.info(f"Dashboard connected for event {internal_id}")
    try:
        await websocket.send_json({"type": "CONNECTION_STATUS", "payload": listener.status.to_dict()})
        while True:
            # Dashboards only listen
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"Dashboard disconnected for event {internal_id}")
    finally:
        await manager.disconnect(internal_id, websocket)
        if internal_id not in manager.event_ids():
            await listener.unwatch_event(internal_id)
