"""REST API routes for PagePick.

Provides endpoints for:
- Loading a page and driving selection on it
- Template replication ("find similar")
- Managing extracted records and exporting them
- Streaming engine events over WebSocket
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Response, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from pagepick.api.auth import require_api_auth, token_is_valid
from pagepick.api.validators import normalize_page_url, validate_page_url
from pagepick.api.workbench import ElementNotFoundError, EmptyItemError, Workbench
from pagepick.export.formats import ExportError
from pagepick.extraction.models import ExtractionMode, FieldKind, Record, RecordPatch
from pagepick.selection.controller import PageNotLoadedError
from pagepick.selection.session import SelectionError
from pagepick.signals.types import Event
from pagepick.store.repository import RecordNotFoundError
from pagepick.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

router = APIRouter()

_websocket_connections: list[WebSocket] = []


async def _broadcast(event: Event) -> None:
    data = event.model_dump_json()
    disconnected = []
    for ws in list(_websocket_connections):
        try:
            await ws.send_text(data)
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.API_WEBSOCKET_SEND_FAILED,
                message=str(exc),
                suppressed=True,
                details={"sequence": event.sequence},
            )
            disconnected.append(ws)
    for ws in disconnected:
        if ws in _websocket_connections:
            _websocket_connections.remove(ws)


def set_workbench(workbench: Workbench) -> Workbench:
    """Install the workbench the routes drive and stream its events."""
    global _workbench
    workbench.emitter.subscribe(_broadcast)
    _workbench = workbench
    return workbench


_workbench = set_workbench(Workbench())


def get_workbench() -> Workbench:
    return _workbench


# --- Request/Response Models ---


class PageRequest(BaseModel):
    url: str
    html: str | None = None


class SelectionRequest(BaseModel):
    field_kind: FieldKind


class ModeRequest(BaseModel):
    mode: ExtractionMode


class PointerRequest(BaseModel):
    """Pointer target: child-index path from the root element, or a selector."""

    path: list[int] | None = None
    selector: str | None = None


class ClickResponse(BaseModel):
    prevent_default: bool
    field_kind: FieldKind | None = None
    value: str | None = None
    selector: str | None = None


def _dump(record: Record) -> dict[str, Any]:
    return record.model_dump(mode="json")


def _page_required(exc: PageNotLoadedError) -> HTTPException:
    return HTTPException(status_code=409, detail=str(exc) or "No page is loaded")


# --- Page & selection ---


@router.post("/page")
async def load_page(request: PageRequest, _: str = Depends(require_api_auth)) -> dict[str, Any]:
    """Load a page: parse the supplied HTML, or render the URL in the browser."""
    workbench = get_workbench()
    url = normalize_page_url(request.url)
    validate_page_url(url, workbench.config.url_policy)
    try:
        page = await workbench.load_page(url, request.html)
    except PageNotLoadedError as exc:
        raise HTTPException(status_code=502, detail=f"Page could not be loaded: {exc}") from exc
    return {"url": page.url, "generation": page.generation}


@router.post("/selection")
async def start_selection(
    request: SelectionRequest, _: str = Depends(require_api_auth)
) -> dict[str, str]:
    controller = get_workbench().controller
    try:
        kind = await controller.start_selection(request.field_kind)
    except PageNotLoadedError as exc:
        raise _page_required(exc) from exc
    except SelectionError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"state": "SELECTING", "field_kind": kind.value}


@router.delete("/selection")
async def stop_selection(_: str = Depends(require_api_auth)) -> dict[str, str]:
    try:
        await get_workbench().controller.stop_selection()
    except PageNotLoadedError as exc:
        raise _page_required(exc) from exc
    return {"state": "IDLE"}


@router.put("/mode")
async def set_mode(request: ModeRequest, _: str = Depends(require_api_auth)) -> dict[str, str]:
    mode = await get_workbench().controller.set_mode(request.mode)
    return {"mode": mode.value}


@router.post("/highlights/clear")
async def clear_highlights(_: str = Depends(require_api_auth)) -> dict[str, int]:
    try:
        restored = await get_workbench().controller.clear_highlights()
    except PageNotLoadedError as exc:
        raise _page_required(exc) from exc
    return {"restored": restored}


@router.post("/find-similar")
async def find_similar(_: str = Depends(require_api_auth)) -> dict[str, Any]:
    """Replicate the bound template across sibling containers and save the batch."""
    try:
        records = await get_workbench().controller.find_similar()
    except PageNotLoadedError as exc:
        raise _page_required(exc) from exc
    return {"count": len(records), "records": [_dump(record) for record in records]}


@router.post("/pointer/{action}")
async def pointer_event(
    action: Literal["hover", "out", "click"],
    request: PointerRequest,
    _: str = Depends(require_api_auth),
) -> dict[str, Any]:
    """Forward a pointer event from the embedded page to the selection session."""
    workbench = get_workbench()
    controller = workbench.controller
    try:
        element = workbench.locate(request.path, request.selector)
        if action == "hover":
            return {"highlighted": await controller.hover(element)}
        if action == "out":
            await controller.hover_out(element)
            return {"highlighted": False}
        outcome = await controller.click(element)
    except PageNotLoadedError as exc:
        raise _page_required(exc) from exc
    except ElementNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    candidate = outcome.candidate
    response = ClickResponse(prevent_default=outcome.prevent_default)
    if candidate is not None:
        response = ClickResponse(
            prevent_default=outcome.prevent_default,
            field_kind=candidate.field_kind,
            value=candidate.raw_value,
            selector=candidate.selector,
        )
    return response.model_dump(mode="json")


# --- Records ---


@router.get("/records")
async def list_records(_: str = Depends(require_api_auth)) -> list[dict[str, Any]]:
    return [_dump(record) for record in get_workbench().repository.list()]


@router.post("/records", status_code=201)
async def create_record(
    request: RecordPatch, _: str = Depends(require_api_auth)
) -> dict[str, Any]:
    return _dump(get_workbench().repository.create(request))


@router.put("/records/{record_id}")
async def update_record(
    record_id: int, request: RecordPatch, _: str = Depends(require_api_auth)
) -> dict[str, Any]:
    try:
        return _dump(get_workbench().repository.update(record_id, request))
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.delete("/records/{record_id}")
async def delete_record(record_id: int, _: str = Depends(require_api_auth)) -> dict[str, Any]:
    workbench = get_workbench()
    try:
        workbench.repository.delete(record_id)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if workbench.current_item_id == record_id:
        workbench.current_item_id = None
    return {"id": record_id, "deleted": True}


@router.delete("/records")
async def clear_records(_: str = Depends(require_api_auth)) -> dict[str, int]:
    return {"deleted": await get_workbench().clear_all()}


@router.post("/records/verify-all")
async def verify_all(_: str = Depends(require_api_auth)) -> dict[str, int]:
    return {"verified": get_workbench().verify_all()}


@router.post("/items", status_code=201)
async def new_item(_: str = Depends(require_api_auth)) -> dict[str, Any]:
    """Start a new manual item; subsequent manual picks fill it in."""
    return _dump(await get_workbench().new_item())


@router.post("/items/finish")
async def finish_item(_: str = Depends(require_api_auth)) -> dict[str, Any]:
    try:
        return _dump(get_workbench().finish_item())
    except EmptyItemError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.get("/export")
async def export_records(
    format: str = Query(default="json"), _: str = Depends(require_api_auth)
) -> Response:
    try:
        content = get_workbench().export_text(format)
    except ExportError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    media_type = "text/csv" if format.lower() == "csv" else "application/json"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="records.{format.lower()}"'},
    )


@router.get("/statistics")
async def statistics(_: str = Depends(require_api_auth)) -> dict[str, Any]:
    return get_workbench().statistics()


# --- WebSocket for real-time event streaming ---


@router.websocket("/ws/events")
async def websocket_events(websocket: WebSocket, token: str = Query(default="")) -> None:
    """Stream engine events to the host UI.

    Pass the API token as a query parameter when authentication is enabled.
    """
    if not token_is_valid(token):
        await websocket.close(code=4001, reason="Unauthorized")
        return

    await websocket.accept()
    _websocket_connections.append(websocket)

    try:
        while True:
            try:
                data = await asyncio.wait_for(websocket.receive_text(), timeout=30)
                if data == "ping":
                    await websocket.send_text("pong")
            except asyncio.TimeoutError:
                try:
                    await websocket.send_text('{"type":"keepalive"}')
                except Exception:
                    break
            except WebSocketDisconnect:
                break
    finally:
        if websocket in _websocket_connections:
            _websocket_connections.remove(websocket)
