import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Request, WebSocket
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError as PydanticValidationError

from inoutboard import __version__
from inoutboard.auth import require_admin
from inoutboard.auth import router as admin_router
from inoutboard.broadcaster import Broadcaster, Connection, SleepFn
from inoutboard.config import Settings
from inoutboard.database import Store, create_db_engine, init_db
from inoutboard.errors import InOutBoardError, NotFoundError, ValidationError
from inoutboard.logo import save_logo
from inoutboard.models import (
    Group,
    InitMessage,
    LogoUpload,
    NameBody,
    Person,
    PersonAdded,
    PersonCreate,
    PersonRemoved,
    PersonUpdate,
    PersonUpdated,
    Pong,
    Resource,
    ResourceAdded,
    ResourceRemoved,
    ResourceUpdated,
)
from inoutboard.rules import (
    apply_person_patch,
    group_fields,
    new_person_fields,
    resource_fields,
)

logger = logging.getLogger(__name__)

router = APIRouter()

admin_only = [Depends(require_admin)]


def _store(request: Request) -> Store:
    return request.app.state.store


def _broadcaster(request: Request) -> Broadcaster:
    return request.app.state.broadcaster


def _check_resource(store: Store, resource_id: int | None) -> None:
    if resource_id is not None and store.get_resource(resource_id) is None:
        raise ValidationError(f"Unknown resource: {resource_id}")


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/version")
async def version() -> dict[str, str]:
    return {"version": __version__}


# persons


@router.get("/persons")
async def list_persons(request: Request) -> list[Person]:
    return _store(request).list_persons()


@router.post("/persons", status_code=201, dependencies=admin_only)
async def create_person(body: PersonCreate, request: Request) -> Person:
    person = _store(request).create_person(new_person_fields(body))
    _broadcaster(request).broadcast(PersonAdded(person=person))
    return person


@router.put("/persons/{person_id}")
async def update_person(person_id: int, body: PersonUpdate, request: Request) -> Person:
    store = _store(request)
    current = store.get_person(person_id)
    fields = apply_person_patch(current, body.model_dump(exclude_unset=True))
    if current is None:
        raise NotFoundError("Person not found")
    _check_resource(store, fields.get("resource_id"))

    person = store.update_person(person_id, fields)
    if person is None:
        raise NotFoundError("Person not found")
    _broadcaster(request).broadcast(PersonUpdated(person=person))
    return person


@router.delete("/persons/{person_id}", dependencies=admin_only)
async def delete_person(person_id: int, request: Request) -> dict:
    if not _store(request).delete_person(person_id):
        raise NotFoundError("Person not found")
    _broadcaster(request).broadcast(PersonRemoved(id=person_id))
    return {"success": True, "id": person_id}


# resources


@router.get("/resources")
async def list_resources(request: Request) -> list[Resource]:
    return _store(request).list_resources()


@router.post("/resources", status_code=201, dependencies=admin_only)
async def create_resource(body: NameBody, request: Request) -> Resource:
    resource = _store(request).create_resource(resource_fields(body))
    _broadcaster(request).broadcast(ResourceAdded(resource=resource))
    return resource


@router.put("/resources/{resource_id}", dependencies=admin_only)
async def update_resource(resource_id: int, body: NameBody, request: Request) -> Resource:
    resource = _store(request).update_resource(resource_id, resource_fields(body))
    if resource is None:
        raise NotFoundError("Resource not found")
    _broadcaster(request).broadcast(ResourceUpdated(resource=resource))
    return resource


@router.delete("/resources/{resource_id}", dependencies=admin_only)
async def delete_resource(resource_id: int, request: Request) -> dict:
    store = _store(request)
    broadcaster = _broadcaster(request)

    affected = store.delete_resource(resource_id)
    if affected is None:
        raise NotFoundError("Resource not found")

    broadcaster.broadcast(ResourceRemoved(id=resource_id))
    for person_id in affected:
        person = store.get_person(person_id)
        if person is not None:
            broadcaster.broadcast(PersonUpdated(person=person))
    return {"success": True, "id": resource_id}


# groups


@router.get("/groups")
async def list_groups(request: Request) -> list[Group]:
    return _store(request).list_groups()


@router.post("/groups", status_code=201, dependencies=admin_only)
async def create_group(body: NameBody, request: Request) -> Group:
    store = _store(request)
    fields = group_fields(body)
    if store.group_exists(fields["name"]):
        raise ValidationError(f"Group already exists: {fields['name']}")
    return store.create_group(fields)


@router.delete("/groups/{group_id}", dependencies=admin_only)
async def delete_group(group_id: int, request: Request) -> dict:
    if not _store(request).delete_group(group_id):
        raise NotFoundError("Group not found")
    return {"success": True, "id": group_id}


@router.post("/logo", dependencies=admin_only)
async def upload_logo(body: LogoUpload, request: Request) -> dict:
    settings: Settings = request.app.state.settings
    save_logo(body.image, settings.logo_path)
    return {"success": True}


# push channel


@router.websocket("/ws")
async def observe(websocket: WebSocket) -> None:
    store: Store = websocket.app.state.store
    broadcaster: Broadcaster = websocket.app.state.broadcaster
    settings: Settings = websocket.app.state.settings

    await websocket.accept()
    conn = Connection(websocket, queue_size=settings.send_queue_size)

    # no await between the snapshot and register: init is always first
    snapshot = InitMessage(
        persons=store.list_persons(), resources=store.list_resources()
    )
    conn.send(snapshot.model_dump_json())
    broadcaster.register(conn)

    pump = asyncio.create_task(conn.pump())
    try:
        await _receive_pongs(websocket, conn)
    finally:
        broadcaster.unregister(conn)
        pump.cancel()
        (result,) = await asyncio.gather(pump, return_exceptions=True)
        if isinstance(result, Exception):
            logger.debug("observer %s delivery failed: %r", conn.client_id, result)


async def _receive_pongs(websocket: WebSocket, conn: Connection) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
        text = message.get("text")
        if text is None:
            continue
        try:
            Pong.model_validate_json(text)
        except PydanticValidationError:
            logger.debug("observer %s sent unexpected message", conn.client_id)
            continue
        conn.mark_alive()


# errors


async def _board_error(_request: Request, exc: InOutBoardError) -> JSONResponse:
    detail = str(exc) or exc.kind
    if exc.status_code >= 500:
        logger.error("internal error: %s", exc)
        detail = "Internal error"
    return JSONResponse(
        status_code=exc.status_code, content={"error": exc.kind, "detail": detail}
    )


async def _request_validation_error(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "validation", "detail": jsonable_encoder(exc.errors())},
    )


def create_app(
    settings: Settings | None = None,
    *,
    store: Store | None = None,
    sleep_fn: SleepFn | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    if store is None:
        engine = create_db_engine(settings.database_url)
        init_db(engine)
        store = Store(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.broadcaster.start(
            settings.heartbeat_interval, sleep_fn=app.state.sleep_fn
        )
        logger.info("board ready, heartbeat every %ss", settings.heartbeat_interval)
        try:
            yield
        finally:
            await app.state.broadcaster.stop()
            app.state.store.engine.dispose()

    app = FastAPI(title="In/Out Board", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.broadcaster = Broadcaster()
    app.state.sleep_fn = sleep_fn or asyncio.sleep

    app.add_exception_handler(InOutBoardError, _board_error)
    app.add_exception_handler(RequestValidationError, _request_validation_error)

    app.include_router(router)
    app.include_router(admin_router)

    if settings.static_dir.is_dir():
        app.mount(
            "/", StaticFiles(directory=settings.static_dir, html=True), name="static"
        )
    return app
