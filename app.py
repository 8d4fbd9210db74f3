"""HTTP API for the Cupid Co-Pilot backend."""

import os
import time
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.responses import JSONResponse

from config.settings import Settings
from memory.conversation_store import get_memory_summary
from orchestrator import AnalysisOrchestrator
from push.expo_client import NotificationError
from schemas.responses import AnalysisRequest, PushTokenData

logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Cupid Co-Pilot API", version="1.0.0")

STARTED_AT = time.monotonic()


@lru_cache(maxsize=1)
def get_orchestrator() -> AnalysisOrchestrator:
    return AnalysisOrchestrator(settings=Settings())


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_int(value: Optional[str], field: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Invalid {field}: {value!r} is not an integer")


def _failure(message: str, error: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": message, "error": str(error)},
    )


@app.post("/api/message")
def analyze_message(
    request: Request,
    frame: Optional[UploadFile] = File(None),
    timestamp: Optional[str] = Form(None),
    frameNumber: Optional[str] = Form(None),
    format: Optional[str] = Form(None),
    conversationId: Optional[str] = Form(None),
    deviceId: Optional[str] = Form(None),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    received_at = _now_iso()
    if frame is None:
        return JSONResponse(status_code=400, content={"error": "No frame uploaded"})

    try:
        image = frame.file.read()
        logger.info(
            f"POST /api/message frame={frameNumber} timestamp={timestamp} "
            f"format={format} size={len(image)} type={frame.content_type}"
        )
        analysis_request = AnalysisRequest(
            image=image,
            timestamp=_parse_int(timestamp, "timestamp"),
            frame_number=_parse_int(frameNumber, "frameNumber") or 0,
            format=format,
            media_type=frame.content_type or "image/jpeg",
            conversation_id=conversationId,
            device_id=deviceId,
            headers=dict(request.headers),
        )
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    try:
        result = orchestrator.analyze(analysis_request)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    except Exception as e:
        logger.exception(f"POST /api/message failed: {e}")
        return _failure("Failed to process request", e)

    if result.tool_calls:
        logger.info(f"Notifications delivered: {[t.tool for t in result.tool_calls]}")

    body = result.model_dump(by_alias=True, exclude_none=True)
    body.update({"receivedSize": len(image), "format": format, "receivedAt": received_at})
    return body


@app.get("/api/notifications")
def device_notifications(
    deviceId: Optional[str] = Query(None),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    if not deviceId:
        return JSONResponse(status_code=400, content={"error": "deviceId parameter is required"})

    try:
        notifications = orchestrator.get_device_notifications(deviceId)
    except Exception as e:
        logger.exception(f"GET /api/notifications failed: {e}")
        return JSONResponse(status_code=500, content={"error": "Failed to fetch notifications"})

    return {"notifications": notifications, "count": len(notifications)}


@app.post("/api/push-tokens")
def register_push_token(
    payload: Dict[str, Any] = Body(...),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    if not payload.get("token"):
        return JSONResponse(status_code=400, content={"error": "Token is required"})

    try:
        token_data = PushTokenData.model_validate(payload)
        logger.info(
            f"POST /api/push-tokens token={token_data.token[:20]}... "
            f"device={token_data.device_id} platform={token_data.platform}"
        )
        count = orchestrator.register_push_token(token_data)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    except Exception as e:
        logger.exception(f"POST /api/push-tokens failed: {e}")
        return _failure("Failed to save token", e)

    return {"success": True, "message": "Token saved successfully", "tokenCount": count}


@app.get("/api/push-tokens")
def list_push_tokens(orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)):
    try:
        tokens = orchestrator.list_push_tokens()
    except Exception as e:
        logger.exception(f"GET /api/push-tokens failed: {e}")
        return _failure("Failed to read tokens", e)

    return {
        "success": True,
        "count": len(tokens),
        "tokens": [t.model_dump(by_alias=True) for t in tokens],
    }


@app.post("/api/send-notification")
def send_notification(
    payload: Dict[str, Any] = Body(...),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    if not payload.get("title") or not payload.get("body"):
        return JSONResponse(
            status_code=400,
            content={"error": "Missing required fields", "required": ["title", "body"]},
        )

    try:
        result = orchestrator.send_notification(
            to=payload.get("to", "all"),
            title=payload["title"],
            body=payload["body"],
            data=payload.get("data"),
        )
    except NotificationError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    except Exception as e:
        logger.exception(f"POST /api/send-notification failed: {e}")
        return _failure("Failed to send notification", e)

    body = result.model_dump(by_alias=True, exclude_none=True)
    body["success"] = True
    return body


@app.get("/api/conversations")
def list_conversations(
    limit: int = Query(50, ge=1, le=500),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    try:
        memories = orchestrator.list_conversations(limit=limit)
    except Exception as e:
        logger.exception(f"GET /api/conversations failed: {e}")
        return _failure("Failed to list conversations", e)

    return {
        "count": len(memories),
        "conversations": [
            {**m.model_dump(by_alias=True), "summary": get_memory_summary(m)}
            for m in memories
        ],
    }


@app.get("/api/health")
def health():
    return {
        "status": "healthy",
        "timestamp": _now_iso(),
        "uptime": time.monotonic() - STARTED_AT,
        "environment": os.getenv("APP_ENV", "development"),
    }
