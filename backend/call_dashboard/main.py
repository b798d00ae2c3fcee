from contextlib import asynccontextmanager
from typing import Optional
import logging
import pathlib
import sys
import time

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import api_router
from .config import Settings
from .db import SQLDB
from .errors import ConfigError
from .services.broadcaster import DashboardBroadcaster
from .services.call_workflow import CallWorkflow
from .services.twilio_client import TwilioClient
from .services.voice_runtime import VoiceRuntimeClient

logger = logging.getLogger(__name__)

# .env at the project root wins over one in the current directory
project_root = pathlib.Path(__file__).parent.parent.parent
env_path = project_root / ".env"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
        ]
    )


def load_settings() -> Settings:
    return Settings.from_env(str(env_path) if env_path.exists() else None)


def create_app(
    settings: Optional[Settings] = None,
    db: Optional[SQLDB] = None,
    twilio: Optional[TwilioClient] = None,
    voice_runtime: Optional[VoiceRuntimeClient] = None,
) -> FastAPI:
    settings = settings or load_settings()

    if db is None:
        db = SQLDB(settings.database_url)
    db.init_schema()

    twilio = twilio or TwilioClient(
        settings.twilio_account_sid,
        settings.twilio_auth_token,
        settings.twilio_service_sid,
    )
    voice_runtime = voice_runtime or VoiceRuntimeClient(settings.voice_runtime_url)
    broadcaster = DashboardBroadcaster()
    workflow = CallWorkflow(settings, db, twilio, broadcaster)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Call dashboard listening on port {settings.port}")
        yield
        await workflow.shutdown()
        db.close()
        logger.info("Server closed")

    app = FastAPI(title="Call Recording Dashboard", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.db = db
    app.state.broadcaster = broadcaster
    app.state.workflow = workflow
    app.state.voice_runtime = voice_runtime
    app.state.started_at = time.monotonic()

    app.include_router(api_router)
    return app


def run() -> None:
    configure_logging()
    try:
        settings = load_settings()
    except ConfigError as e:
        logger.error(str(e))
        sys.exit(1)

    logging.getLogger().setLevel(settings.log_level)

    import uvicorn

    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
