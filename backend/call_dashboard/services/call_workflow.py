import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from ..config import Settings
from ..db import SQLDB
from ..errors import GatewayError, WorkflowTimeout
from ..schemas.pydantic_schemas import CallRecord, TranscriptLine
from .broadcaster import DashboardBroadcaster
from .twilio_client import TwilioClient

logger = logging.getLogger(__name__)

IN_PROGRESS = "in-progress"
# Statuses after which a call can no longer reach in-progress
TERMINAL_CALL_STATUSES = {"completed", "failed", "busy", "no-answer", "canceled"}


@dataclass
class CallDetails:
    from_number: str = ""
    to_number: str = ""


@dataclass
class TranscriptResult:
    transcript_sid: str
    media_url: str
    sentences: List[Dict[str, Any]]


def speaker_for_channel(media_channel: Any) -> str:
    """Channel 1 carries the caller; every other channel is the assistant."""
    try:
        return "customer" if int(media_channel) == 1 else "assistant"
    except (TypeError, ValueError):
        return "assistant"


def _short(sid: Optional[str]) -> str:
    return (sid or "")[-8:]


class CallWorkflow:
    """
    Drives a call from the answer webhook to a persisted record:
    wait for in-progress, start recording, optionally transcribe with PII redaction,
    save, and notify dashboards.
    """

    def __init__(self, settings: Settings, db: SQLDB, twilio: TwilioClient, broadcaster: DashboardBroadcaster) -> None:
        self.settings = settings
        self.db = db
        self.twilio = twilio
        self.broadcaster = broadcaster
        self.call_details: Dict[str, CallDetails] = {}
        self.deleted_calls: Set[str] = set()
        self._watchers: Set[asyncio.Task] = set()

    # Ringing
    def register_call(self, call_sid: str, from_number: Optional[str], to_number: Optional[str]) -> None:
        if not call_sid or not from_number or not to_number:
            return
        self.call_details[call_sid] = CallDetails(from_number=from_number, to_number=to_number)

    def should_record(self, direction: Optional[str]) -> bool:
        return bool(direction) and direction in self.settings.record_directions

    # Awaiting in-progress
    def spawn_watch(self, call_sid: str, pii_redaction: bool) -> asyncio.Task:
        task = asyncio.create_task(self.watch_call(call_sid, pii_redaction))
        self._watchers.add(task)
        task.add_done_callback(self._watch_done)
        return task

    def _watch_done(self, task: asyncio.Task) -> None:
        self._watchers.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Call watcher crashed: {exc!r}", exc_info=exc)

    async def watch_call(self, call_sid: str, pii_redaction: bool) -> Optional[Dict[str, Any]]:
        """
        Poll the call until it is in-progress, then start recording.
        Returns the recording resource, or None when the call never went live
        or recording could not be started.
        """
        recording = None
        try:
            recording = await self._wait_then_record(call_sid, pii_redaction)
        finally:
            # No recording means no status callback will ever claim the cached numbers
            if recording is None:
                self.call_details.pop(call_sid, None)
        return recording

    async def _wait_then_record(self, call_sid: str, pii_redaction: bool) -> Optional[Dict[str, Any]]:
        for attempt in range(1, self.settings.call_status_max_attempts + 1):
            try:
                call = await self.twilio.fetch_call(call_sid)
            except GatewayError as e:
                logger.warning(f"Call status poll {attempt} failed for {_short(call_sid)}: {e}")
            else:
                status = call.get("status")
                if status == IN_PROGRESS:
                    logger.info(f"Call in progress: {_short(call_sid)} (piiRedaction={'enabled' if pii_redaction else 'disabled'})")
                    return await self.start_recording(call_sid, pii_redaction)
                if status in TERMINAL_CALL_STATUSES:
                    logger.info(f"Call ended before recording: {_short(call_sid)} status={status}")
                    return None
            await asyncio.sleep(self.settings.call_status_interval)

        logger.warning(f"Max polling attempts reached for call: {_short(call_sid)}")
        return None

    # Recording
    async def start_recording(self, call_sid: str, pii_redaction: bool) -> Optional[Dict[str, Any]]:
        callback_url = self.settings.recording_callback_url(pii_redaction)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.settings.recording_max_attempts),
                wait=wait_exponential(multiplier=self.settings.recording_backoff, min=0),
                retry=retry_if_exception_type(GatewayError),
                reraise=True,
            ):
                with attempt:
                    recording = await self.twilio.start_recording(call_sid, callback_url)
        except GatewayError as e:
            logger.error(f"Failed to start recording for {_short(call_sid)} after retries: {e}")
            return None

        logger.info(f"Recording started: call={_short(call_sid)} recording={_short(recording['sid'])}")
        return recording

    # Recording complete
    async def handle_recording_completed(
        self,
        call_sid: str,
        recording_sid: str,
        recording_url: str,
        duration: Optional[str],
        pii_redaction: bool,
    ) -> CallRecord:
        # Claimed up front so a failed transcription does not leave the entry behind
        details = self.call_details.pop(call_sid, None)
        if details is None:
            logger.warning(f"No cached call details for {_short(call_sid)}; saving without numbers")
            details = CallDetails()

        transcript_sid = ""
        pii_url = ""
        lines: List[TranscriptLine] = []

        if pii_redaction:
            logger.info(f"Processing PII redaction for: {_short(call_sid)}")
            result = await self.transcribe(recording_sid)
            transcript_sid = result.transcript_sid
            pii_url = result.media_url
            lines = [
                TranscriptLine(speaker=speaker_for_channel(s.get("media_channel")), text=s.get("transcript") or "")
                for s in result.sentences
            ]

        call = CallRecord(
            id=call_sid,
            from_number=details.from_number,
            to_number=details.to_number,
            duration=duration or "0",
            recording_url=recording_url or "",
            pii_url=pii_url,
            transcript_sid=transcript_sid,
            transcript=lines,
        )

        self.db.save_call(call)
        logger.info(f"Call saved: {_short(call_sid)} ({call.recording_type})")

        await self.broadcaster.new_call(call)
        return call

    # Transcribing
    async def transcribe(self, recording_sid: str) -> TranscriptResult:
        transcript = await self.twilio.create_transcript(recording_sid)
        return await self.wait_for_transcript(transcript["sid"])

    async def wait_for_transcript(self, transcript_sid: str) -> TranscriptResult:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.settings.transcript_max_attempts),
                wait=wait_fixed(self.settings.transcript_poll_interval),
                retry=retry_if_exception_type(GatewayError) | retry_if_result(lambda t: t.get("status") != "completed"),
                reraise=True,
            ):
                with attempt:
                    transcript = await self.twilio.fetch_transcript(transcript_sid)
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(transcript)
        except RetryError as e:
            raise WorkflowTimeout(f"Transcript {transcript_sid} was not completed in time") from e

        links = transcript.get("links") or {}
        media = await self.twilio.fetch_media(links.get("media", ""))
        sentences = await self.twilio.fetch_sentences(links.get("sentences", ""))
        logger.info(f"Transcript ready: {_short(transcript_sid)} ({len(sentences)} sentences)")
        return TranscriptResult(transcript_sid=transcript_sid, media_url=media["media_url"], sentences=sentences)

    # Deletion
    async def delete_call(self, call_id: str) -> None:
        if call_id in self.deleted_calls:
            logger.info(f"Call was already deleted: {call_id}")
            return
        # CallNotFound propagates for ids this process never deleted
        self.db.delete_call(call_id)
        self.deleted_calls.add(call_id)
        await self.broadcaster.delete_call(call_id)

    async def shutdown(self) -> None:
        for task in list(self._watchers):
            task.cancel()
        if self._watchers:
            await asyncio.gather(*self._watchers, return_exceptions=True)
