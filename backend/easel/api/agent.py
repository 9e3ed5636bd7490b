"""
Agent workflow API endpoints
"""

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse
from pydantic import ValidationError
from typing import AsyncIterator
import logging

from ..agent.events import ErrorData, ErrorEvent
from ..agent.workflow import CancellationToken, WorkflowEngine
from .models import ChatRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agent", tags=["agent"])


def get_engine(request: Request) -> WorkflowEngine:
    """Workflow engine of the running application"""
    return request.app.state.services.engine


@router.post("/chat")
async def chat(
    chat_request: ChatRequest,
    request: Request,
    engine: WorkflowEngine = Depends(get_engine),
):
    """
    Run the workflow and stream its events as server-sent events.

    The stream stops after the current stage when the client goes away.
    """
    cancel_token = CancellationToken()
    execution = engine.start(
        chat_request.to_user_input(),
        session_id=chat_request.session_id,
        cancel_token=cancel_token,
    )
    logger.info(f"Chat request for session {execution.session_id}")

    async def event_stream() -> AsyncIterator[str]:
        async for event in execution.events():
            if await request.is_disconnected():
                logger.info(f"Client left session {execution.session_id}, cancelling")
                cancel_token.cancel()
                continue
            yield event.to_sse()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.websocket("/stream")
async def chat_stream(websocket: WebSocket):
    """
    Run the workflow with streaming updates via WebSocket

    The client sends one ChatRequest as JSON and receives every event as a
    JSON message until ``stream_end``.
    """
    await websocket.accept()
    engine: WorkflowEngine = websocket.app.state.services.engine
    cancel_token = CancellationToken()

    try:
        payload = await websocket.receive_json()
        try:
            chat_request = ChatRequest.model_validate(payload)
        except ValidationError as e:
            error = ErrorEvent(
                data=ErrorData(code="INVALID_REQUEST", message="Invalid request", details=str(e))
            )
            await websocket.send_json(error.to_wire())
            await websocket.close()
            return

        execution = engine.start(
            chat_request.to_user_input(),
            session_id=chat_request.session_id,
            cancel_token=cancel_token,
        )
        async for event in execution.events():
            await websocket.send_json(event.to_wire())

        await websocket.close()

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected by client")
        cancel_token.cancel()
