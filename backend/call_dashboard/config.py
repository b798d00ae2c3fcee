import logging
import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .errors import ConfigError


REQUIRED_VARS = ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_SERVICE_SID")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseModel):
    """
    Runtime configuration, read once at startup.
    Tests build this directly; the server uses Settings.from_env().
    """

    # Twilio credentials
    twilio_account_sid: str
    twilio_auth_token: str
    twilio_service_sid: str

    # Recording behavior
    pii_redaction: bool = False
    public_url: str = ""
    record_directions: List[str] = Field(default_factory=lambda: ["inbound"])

    # Server
    host: str = "0.0.0.0"
    port: int = 3902
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    # Storage
    database_url: str = "sqlite:///data/calls.sqlite"

    # Upstream voice assistant runtime
    voice_runtime_url: str = "https://runtime-api.voiceflow.com"

    # Polling budgets (seconds / attempts)
    call_status_interval: float = 1.0
    call_status_max_attempts: int = 30
    recording_max_attempts: int = 3
    recording_backoff: float = 1.0
    transcript_poll_interval: float = 2.0
    transcript_max_attempts: int = 10

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        load_dotenv(env_file)

        missing = [name for name in REQUIRED_VARS if not os.getenv(name)]
        if missing:
            raise ConfigError(f"Missing Twilio credentials: {', '.join(missing)}")

        try:
            return cls(
                twilio_account_sid=os.environ["TWILIO_ACCOUNT_SID"],
                twilio_auth_token=os.environ["TWILIO_AUTH_TOKEN"],
                twilio_service_sid=os.environ["TWILIO_SERVICE_SID"],
                pii_redaction=_env_bool("PII_REDACTION"),
                public_url=os.getenv("PUBLIC_URL", "").rstrip("/"),
                record_directions=_env_list("RECORD_DIRECTIONS", "inbound"),
                host=os.getenv("HOST", "0.0.0.0"),
                port=int(os.getenv("PORT", "3902")),
                cors_origins=_env_list("CORS_ORIGINS", "*"),
                log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
                database_url=os.getenv("DATABASE_URL", "sqlite:///data/calls.sqlite"),
                voice_runtime_url=os.getenv("VOICE_RUNTIME_URL", "https://runtime-api.voiceflow.com").rstrip("/"),
                call_status_interval=float(os.getenv("CALL_STATUS_INTERVAL", "1.0")),
                call_status_max_attempts=int(os.getenv("CALL_STATUS_MAX_ATTEMPTS", "30")),
                recording_max_attempts=int(os.getenv("RECORDING_MAX_ATTEMPTS", "3")),
                recording_backoff=float(os.getenv("RECORDING_BACKOFF", "1.0")),
                transcript_poll_interval=float(os.getenv("TRANSCRIPT_POLL_INTERVAL", "2.0")),
                transcript_max_attempts=int(os.getenv("TRANSCRIPT_MAX_ATTEMPTS", "10")),
            )
        except ValueError as e:
            raise ConfigError(f"Invalid configuration value: {e}") from e

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    def recording_callback_url(self, pii_redaction: bool) -> str:
        url = f"{self.public_url}/recording-status"
        if pii_redaction:
            url += "?piiRedaction=true"
        return url
