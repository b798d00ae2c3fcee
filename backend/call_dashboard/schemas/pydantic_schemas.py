from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


Speaker = Literal["customer", "assistant"]
RecordingType = Literal["regular", "redacted"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TranscriptLine(BaseModel):
    speaker: Speaker
    text: str


class CallRecord(BaseModel):
    id: str
    from_number: str = ""
    to_number: str = ""
    duration: str = "0"
    recording_url: str = ""
    pii_url: str = ""
    transcript_sid: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    transcript: List[TranscriptLine] = Field(default_factory=list)

    @property
    def recording_type(self) -> RecordingType:
        return "redacted" if self.pii_url else "regular"

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict, including the derived recording type."""
        data = self.model_dump(mode="json")
        data["recording_type"] = self.recording_type
        return data


class CallRead(BaseModel):
    id: str
    from_number: str
    to_number: str
    duration: str
    recording_url: str
    pii_url: str
    recording_type: RecordingType
    transcript_sid: str
    created_at: Optional[str]
    transcript: List[TranscriptLine] = Field(default_factory=list)


class Pagination(BaseModel):
    total: int
    totalPages: int
    page: int
    limit: int


class CallListResponse(BaseModel):
    data: List[CallRead]
    pagination: Pagination


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    uptime: float

