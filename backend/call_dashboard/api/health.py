import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from ..schemas.pydantic_schemas import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": time.monotonic() - request.app.state.started_at,
    }
