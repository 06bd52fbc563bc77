"""
Case API endpoints.

Every mutation goes through the Case Lifecycle Engine, which validates,
writes the case and appends to the Activity Ledger. Reads always return
the resolved canonical stage.

WebSocket streams push the full case (or the full ledger) on connect and
again after every write.
"""

import asyncio
import logging
from typing import Any, Callable, List, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool

from ..core.auth import get_current_actor, actor_from_token
from ..core.errors import ValidationError
from ..models.enums import Stage
from ..schemas.activity import ActivityCreated, ActivityRecord
from ..schemas.case import (
    Actor,
    CaseCreate,
    CaseRecord,
    ContactUpdate,
    NoteCreate,
    ProjectFlipResponse,
    ReminderCreate,
    StatusUpdateRequest,
    TaskAssignmentResponse,
    TaskCreate,
    TaskRecord,
)
from ..services.case_lifecycle import CaseLifecycleEngine
from ..services.document_store import SqlDocumentStore, Subscription
from ..services.status_resolver import as_stage
from .dependencies import get_document_store, get_lifecycle_engine


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cases", tags=["Cases"])


# =============================================================================
# Cases
# =============================================================================

@router.post(
    "",
    response_model=CaseRecord,
    status_code=status.HTTP_201_CREATED,
    summary="Create Case",
    description="Create a new case in the LEAD stage.",
)
def create_case(
    data: CaseCreate,
    actor: Actor = Depends(get_current_actor),
    engine: CaseLifecycleEngine = Depends(get_lifecycle_engine),
) -> CaseRecord:
    case_id = engine.create_case(data, actor)
    return engine.get_case(case_id)


@router.get(
    "",
    response_model=List[CaseRecord],
    summary="List Cases",
    description="List cases newest first, optionally filtered.",
)
def list_cases(
    is_project: Optional[bool] = Query(default=None, description="Only projects / only leads"),
    assigned_sales: Optional[str] = Query(default=None, description="Sales rep id"),
    stage: Optional[str] = Query(default=None, alias="status", description="Resolved stage"),
    actor: Actor = Depends(get_current_actor),
    engine: CaseLifecycleEngine = Depends(get_lifecycle_engine),
) -> List[CaseRecord]:
    stage_filter: Optional[Stage] = None
    if stage is not None:
        stage_filter = as_stage(stage)
        if stage_filter is None:
            raise ValidationError(f"Invalid stage: {stage!r}")
    return engine.list_cases(is_project=is_project, assigned_sales=assigned_sales, status=stage_filter)


@router.get(
    "/{case_id}",
    response_model=CaseRecord,
    summary="Get Case",
)
def get_case(
    case_id: str,
    actor: Actor = Depends(get_current_actor),
    engine: CaseLifecycleEngine = Depends(get_lifecycle_engine),
) -> CaseRecord:
    return engine.get_case(case_id)


@router.patch(
    "/{case_id}/status",
    response_model=CaseRecord,
    summary="Update Case Stage",
    description="Move a case to a stage and record the change.",
)
def update_case_status(
    case_id: str,
    body: StatusUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    engine: CaseLifecycleEngine = Depends(get_lifecycle_engine),
) -> CaseRecord:
    engine.update_status(case_id, body.status, actor, notes=body.notes)
    return engine.get_case(case_id)


@router.patch(
    "/{case_id}/contact",
    response_model=CaseRecord,
    summary="Update Contact Details",
)
def update_case_contact(
    case_id: str,
    body: ContactUpdate,
    actor: Actor = Depends(get_current_actor),
    engine: CaseLifecycleEngine = Depends(get_lifecycle_engine),
) -> CaseRecord:
    engine.update_contact(case_id, body, actor)
    return engine.get_case(case_id)


@router.post(
    "/{case_id}/project",
    response_model=ProjectFlipResponse,
    summary="Convert To Project",
    description="One-way flip of the case to a project. Repeating it is not an error.",
)
def flip_to_project(
    case_id: str,
    actor: Actor = Depends(get_current_actor),
    engine: CaseLifecycleEngine = Depends(get_lifecycle_engine),
) -> ProjectFlipResponse:
    changed = engine.flip_to_project(case_id, actor)
    return ProjectFlipResponse(case_id=case_id, is_project=True, changed=changed)


# =============================================================================
# Tasks
# =============================================================================

@router.post(
    "/{case_id}/tasks",
    response_model=TaskAssignmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Assign Task",
    description="Create a task and move the case to the stage its title implies.",
)
def assign_task(
    case_id: str,
    task: TaskCreate,
    actor: Actor = Depends(get_current_actor),
    engine: CaseLifecycleEngine = Depends(get_lifecycle_engine),
) -> TaskAssignmentResponse:
    task_id = engine.assign_task(case_id, task, actor)
    return TaskAssignmentResponse(
        task_id=task_id,
        case_id=case_id,
        status=engine.get_case(case_id).status,
    )


@router.get(
    "/{case_id}/tasks",
    response_model=List[TaskRecord],
    summary="List Tasks",
)
def list_tasks(
    case_id: str,
    actor: Actor = Depends(get_current_actor),
    engine: CaseLifecycleEngine = Depends(get_lifecycle_engine),
) -> List[TaskRecord]:
    return engine.list_tasks(case_id)


# =============================================================================
# Activity Ledger
# =============================================================================

@router.post(
    "/{case_id}/notes",
    response_model=ActivityCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Add Note",
    description="Append a note, or a file upload record when attachments are included.",
)
def add_note(
    case_id: str,
    body: NoteCreate,
    actor: Actor = Depends(get_current_actor),
    engine: CaseLifecycleEngine = Depends(get_lifecycle_engine),
) -> ActivityCreated:
    record_id = engine.log_note(case_id, body.text, actor, attachments=body.attachments)
    return ActivityCreated(case_id=case_id, activity_id=record_id)


@router.post(
    "/{case_id}/reminders",
    response_model=ActivityCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule Reminder",
)
def schedule_reminder(
    case_id: str,
    body: ReminderCreate,
    actor: Actor = Depends(get_current_actor),
    engine: CaseLifecycleEngine = Depends(get_lifecycle_engine),
) -> ActivityCreated:
    record_id = engine.schedule_reminder(case_id, body, actor)
    return ActivityCreated(case_id=case_id, activity_id=record_id)


@router.get(
    "/{case_id}/activities",
    response_model=List[ActivityRecord],
    summary="Get Case History",
    description="All ledger records for a case, newest first by default.",
)
def list_activities(
    case_id: str,
    order: str = Query(default="desc", pattern="^(asc|desc)$"),
    actor: Actor = Depends(get_current_actor),
    engine: CaseLifecycleEngine = Depends(get_lifecycle_engine),
) -> List[ActivityRecord]:
    engine.get_case(case_id)
    return engine.ledger.list(case_id, newest_first=order == "desc")


# =============================================================================
# Live Streams
# =============================================================================

async def _drain(websocket: WebSocket) -> None:
    """Consume client frames until the socket closes."""
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


async def _stream(
    websocket: WebSocket,
    open_subscription: Callable[[Callable[[Any], None]], Subscription],
) -> None:
    """
    Bridge a store subscription to a WebSocket.

    Store callbacks run on the writer's thread; payloads are handed to the
    event loop through a queue.
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def push(payload: Any) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, payload)

    subscription = await run_in_threadpool(open_subscription, push)
    receiver = asyncio.create_task(_drain(websocket))
    try:
        while True:
            getter = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
            if receiver in done:
                getter.cancel()
                break
            await websocket.send_json(getter.result())
    except WebSocketDisconnect:
        pass
    finally:
        subscription.close()
        receiver.cancel()


async def _accept(websocket: WebSocket, token: Optional[str]) -> Optional[Actor]:
    actor = actor_from_token(token)
    if actor is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None
    await websocket.accept()
    return actor


@router.websocket("/{case_id}/stream")
async def stream_case(
    websocket: WebSocket,
    case_id: str,
    token: Optional[str] = Query(default=None),
    store: SqlDocumentStore = Depends(get_document_store),
):
    """Push the resolved case on connect and after every write to it."""
    actor = await _accept(websocket, token)
    if actor is None:
        return
    engine = CaseLifecycleEngine(store)
    logger.info(f"Case stream opened: case={case_id} actor={actor.id}")

    def open_subscription(push: Callable[[Any], None]) -> Subscription:
        def deliver(record: Optional[CaseRecord]) -> None:
            push({
                "event": "case",
                "data": record.model_dump(by_alias=True, mode="json") if record else None,
            })
        return engine.subscribe_case(case_id, deliver)

    await _stream(websocket, open_subscription)
    logger.info(f"Case stream closed: case={case_id} actor={actor.id}")


@router.websocket("/{case_id}/activities/stream")
async def stream_activities(
    websocket: WebSocket,
    case_id: str,
    token: Optional[str] = Query(default=None),
    store: SqlDocumentStore = Depends(get_document_store),
):
    """Push the full ledger (newest first) on connect and after every append."""
    actor = await _accept(websocket, token)
    if actor is None:
        return
    engine = CaseLifecycleEngine(store)
    logger.info(f"Activity stream opened: case={case_id} actor={actor.id}")

    def open_subscription(push: Callable[[Any], None]) -> Subscription:
        def deliver(records: List[ActivityRecord]) -> None:
            push({
                "event": "activities",
                "data": [record.model_dump(by_alias=True, mode="json") for record in records],
            })
        return engine.subscribe_activities(case_id, deliver)

    await _stream(websocket, open_subscription)
    logger.info(f"Activity stream closed: case={case_id} actor={actor.id}")
