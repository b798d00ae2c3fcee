from fastapi import APIRouter
from .calls import router as calls_router
from .health import router as health_router
from .twilio_webhooks import router as twilio_router
from .ws import router as ws_router

api_router = APIRouter()
api_router.include_router(twilio_router, tags=["twilio"])
# The dashboard reaches the list both directly and through its /api proxy
api_router.include_router(calls_router, prefix="/api/calls", tags=["calls"])
api_router.include_router(calls_router, prefix="/calls", tags=["calls"])
api_router.include_router(health_router, tags=["health"])
api_router.include_router(ws_router, tags=["ws"])
