"""
Live session WebSocket.

  WS /ws/session?session_id=<id>

Inbound:
  {"type": "transcript", "text": str, "isFinal": bool}
  {"type": "verify-claim", "claim": str}

Outbound ({"type": <event>, "data": {...}}):
  claims-verified, claim-processing, claim-result, error, live-update
"""

import uuid
from typing import Any, Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from app.core.config import settings
from app.core.container import Services, get_services
from app.core.logger import get_logger
from app.core.observability import claim_jobs_rejected_total
from app.services.delivery.channel import CLAIM_PROCESSING, CLAIM_RESULT
from app.services.dispatch.runner import TERMINAL_ERROR_MESSAGE

logger = get_logger(__name__)

router = APIRouter()


async def handle_message(services: Services, session_id: str, message: Dict[str, Any]) -> None:
    hub = services.hub
    kind = message.get("type")

    if kind == "transcript":
        text = str(message.get("text") or "")
        if not message.get("isFinal"):
            previews = services.verifier.preview(text)
            if previews:
                await hub.emit(session_id, CLAIM_PROCESSING, {"claims": previews})
            return

        if len(text.strip()) < settings.MIN_TRANSCRIPT_CHARS:
            logger.debug(f"[SessionWS] Ignoring short transcript from {session_id}")
            return
        context = hub.context(session_id)
        hub.remember(session_id, text.strip())
        await services.orchestrator.submit(session_id, text.strip(), context)
        return

    if kind == "verify-claim":
        claim = str(message.get("claim") or "").strip()
        if not claim:
            await hub.deliver_error(session_id, "Missing claim")
            return
        if not services.limiter.allow(session_id):
            claim_jobs_rejected_total.inc()
            logger.info(f"[SessionWS] Rate limit hit, dropping verify-claim from {session_id}")
            return
        result = await services.verifier.verify_single(claim, hub.context(session_id))
        await hub.emit(session_id, CLAIM_RESULT, result.model_dump(mode="json"))
        return

    await hub.deliver_error(session_id, f"Unknown message type: {kind!r}")


@router.websocket("/ws/session")
async def session_socket(websocket: WebSocket):
    services = get_services()
    if services is None:
        await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
        return

    await websocket.accept()
    session_id = websocket.query_params.get("session_id") or uuid.uuid4().hex
    services.hub.register(session_id, websocket)

    try:
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                await services.hub.deliver_error(session_id, "Invalid JSON message")
                continue
            if not isinstance(message, dict):
                await services.hub.deliver_error(session_id, "Message must be a JSON object")
                continue
            try:
                await handle_message(services, session_id, message)
            except WebSocketDisconnect:
                raise
            except Exception as e:
                logger.error(f"[SessionWS] Failed to handle {message.get('type')!r} from {session_id}: {e}")
                await services.hub.deliver_error(session_id, TERMINAL_ERROR_MESSAGE)
    except WebSocketDisconnect:
        logger.info(f"[SessionWS] Client disconnected: {session_id}")
    finally:
        services.hub.unregister(session_id)
