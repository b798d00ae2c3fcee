from typing import Any, Optional


class ConfigError(Exception):
    """Required configuration is missing or invalid."""


class GatewayError(Exception):
    """An upstream HTTP call (Twilio or the voice runtime) failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is None:
            return base
        return f"{base} (status {self.status_code}): {self.body}"


class StorageError(Exception):
    """A database read or write failed. Writes are rolled back before this is raised."""


class CallNotFound(Exception):
    def __init__(self, call_id: str) -> None:
        super().__init__(f"Call not found: {call_id}")
        self.call_id = call_id


class WorkflowTimeout(Exception):
    """A polling loop ran out of attempts before reaching the expected status."""
