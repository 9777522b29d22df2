"""
WebSocket endpoint bridging a viewer to the delivery channel.

Inbound: {"event": "join", "data": {"sessionId": "..."}} (data may also be the
bare session id string). Outbound: validated channel envelopes.
"""

import asyncio
from typing import Any, Dict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from lecturecast.agents.generation.orchestration import LectureOrchestrator
from lecturecast.api.dependencies import get_ws_orchestrator
from lecturecast.logging_config import get_logger
from lecturecast.models.events import JoinPayload
from lecturecast.services.delivery_channel import Subscriber

logger = get_logger(__name__)

router = APIRouter(tags=["Stream"])


def _parse_join(message: Dict[str, Any]) -> JoinPayload:
    data = message.get("data")
    if isinstance(data, str):
        data = {"sessionId": data}
    return JoinPayload.model_validate(data or {})


async def _pump_inbound(websocket: WebSocket, subscriber: Subscriber, orchestrator: LectureOrchestrator) -> None:
    while True:
        message = await websocket.receive_json()
        if not isinstance(message, dict) or message.get("event") != "join":
            logger.debug(f"[WS] Ignoring inbound message from {subscriber}: {message!r}")
            continue
        try:
            join = _parse_join(message)
        except PydanticValidationError as e:
            logger.warning(f"[WS] Invalid join from {subscriber}: {e}")
            continue
        await orchestrator.handle_join(subscriber, join.sessionId)


async def _pump_outbound(websocket: WebSocket, subscriber: Subscriber) -> None:
    while True:
        envelope = await subscriber.get()
        await websocket.send_json(envelope)


@router.websocket("/ws")
async def lecture_stream(websocket: WebSocket, orchestrator: LectureOrchestrator = Depends(get_ws_orchestrator)):
    await websocket.accept()
    subscriber = orchestrator.channel.connect()
    tasks = [
        asyncio.create_task(_pump_inbound(websocket, subscriber, orchestrator)),
        asyncio.create_task(_pump_outbound(websocket, subscriber)),
    ]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.error(f"[WS] Stream for {subscriber} ended with error: {error}")
    finally:
        for task in tasks:
            task.cancel()
        orchestrator.channel.disconnect(subscriber)
