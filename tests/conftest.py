from collections import deque
from typing import Any, Dict, List

import httpx
import pytest
from starlette.websockets import WebSocketState

from call_dashboard.config import Settings
from call_dashboard.db import SQLDB
from call_dashboard.errors import GatewayError
from call_dashboard.services.broadcaster import DashboardBroadcaster
from call_dashboard.services.call_workflow import CallWorkflow


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        twilio_account_sid="AC123",
        twilio_auth_token="secret",
        twilio_service_sid="GA123",
        public_url="https://dash.example.com",
        database_url="sqlite://",
        call_status_interval=0,
        call_status_max_attempts=5,
        recording_max_attempts=3,
        recording_backoff=0,
        transcript_poll_interval=0,
        transcript_max_attempts=4,
    )


@pytest.fixture
def db(settings) -> SQLDB:
    store = SQLDB(settings.database_url)
    store.init_schema()
    yield store
    store.close()


class FakeTwilio:
    """Scripted stand-in for TwilioClient. Queue entries may be values or exceptions."""

    def __init__(self) -> None:
        self.call_statuses: deque = deque()
        self.recording_results: deque = deque()
        self.transcript_statuses: deque = deque(["completed"])
        self.sentences: List[Dict[str, Any]] = []
        self.media_url = "https://media.twilio.com/redacted.mp3"
        self.fetch_call_count = 0
        self.recording_requests: List[Dict[str, str]] = []
        self.created_transcripts: List[str] = []

    @staticmethod
    def _next(queue: deque, default: Any) -> Any:
        item = queue.popleft() if queue else default
        if isinstance(item, Exception):
            raise item
        return item

    async def fetch_call(self, call_sid: str) -> Dict[str, Any]:
        self.fetch_call_count += 1
        return {"sid": call_sid, "status": self._next(self.call_statuses, "ringing")}

    async def start_recording(self, call_sid: str, callback_url: str) -> Dict[str, Any]:
        self.recording_requests.append({"call_sid": call_sid, "callback_url": callback_url})
        return self._next(self.recording_results, {"sid": "RE0000000001"})

    async def create_transcript(self, recording_sid: str) -> Dict[str, Any]:
        self.created_transcripts.append(recording_sid)
        return {"sid": "GT0000000001"}

    async def fetch_transcript(self, transcript_sid: str) -> Dict[str, Any]:
        status = self._next(self.transcript_statuses, "in-progress")
        return {
            "sid": transcript_sid,
            "status": status,
            "links": {
                "media": f"https://intelligence.twilio.com/v2/Transcripts/{transcript_sid}/Media",
                "sentences": f"https://intelligence.twilio.com/v2/Transcripts/{transcript_sid}/Sentences",
            },
        }

    async def fetch_media(self, media_link: str) -> Dict[str, Any]:
        return {"media_url": self.media_url}

    async def fetch_sentences(self, sentences_link: str) -> List[Dict[str, Any]]:
        return list(self.sentences)


def gateway_error(status: int = 503) -> GatewayError:
    return GatewayError("Twilio unavailable", status, {"code": 20500, "message": "Service unavailable"})


class FakeSocket:
    def __init__(self, open_: bool = True, fail: bool = False) -> None:
        state = WebSocketState.CONNECTED if open_ else WebSocketState.DISCONNECTED
        self.client_state = state
        self.application_state = state
        self.fail = fail
        self.sent: List[str] = []

    async def accept(self) -> None:
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("socket write failed")
        self.sent.append(text)


@pytest.fixture
def fake_twilio() -> FakeTwilio:
    return FakeTwilio()


@pytest.fixture
def broadcaster() -> DashboardBroadcaster:
    return DashboardBroadcaster()


@pytest.fixture
def workflow(settings, db, fake_twilio, broadcaster) -> CallWorkflow:
    return CallWorkflow(settings, db, fake_twilio, broadcaster)


def mock_http(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def twiml_requests() -> List[httpx.Request]:
    return []


@pytest.fixture
def voice_runtime_http(twiml_requests) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        twiml_requests.append(request)
        if "broken" in request.url.path:
            return httpx.Response(502, text="Bad Gateway")
        return httpx.Response(
            200,
            text="<Response><Say>Hello</Say></Response>",
            headers={"content-type": "application/xml"},
        )

    return mock_http(handler)


def make_sentences(*pairs) -> List[Dict[str, Any]]:
    return [{"media_channel": channel, "transcript": text} for channel, text in pairs]
