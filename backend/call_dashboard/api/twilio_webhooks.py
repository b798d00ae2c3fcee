import logging
from typing import Mapping

from fastapi import APIRouter, Depends, Request, Response

from ..errors import GatewayError
from ..services.call_workflow import CallWorkflow
from ..services.voice_runtime import VoiceRuntimeClient
from .deps import get_voice_runtime, get_workflow

# Set up logger
logger = logging.getLogger(__name__)

router = APIRouter()


async def _webhook_params(request: Request) -> Mapping[str, str]:
    # Twilio sends GET webhooks as query params and POST webhooks as a form body
    if request.method == "GET":
        return request.query_params
    return await request.form()


def _flag(value) -> bool:
    return str(value).lower() == "true"


@router.api_route("/v1/twilio/webhooks/{project_id}/answer", methods=["GET", "POST"])
async def answer_call(
    project_id: str,
    request: Request,
    workflow: CallWorkflow = Depends(get_workflow),
    voice_runtime: VoiceRuntimeClient = Depends(get_voice_runtime),
):
    params = await _webhook_params(request)
    call_sid = params.get("CallSid")
    direction = params.get("Direction")
    raw_pii = request.query_params.get("piiRedaction")
    pii_redaction = _flag(raw_pii) if raw_pii is not None else workflow.settings.pii_redaction

    logger.info(
        f"New call: project={project_id} from={params.get('From')} to={params.get('To')} "
        f"direction={direction} callSid={(call_sid or '')[-4:]} piiRedaction={pii_redaction} method={request.method}"
    )

    # Numbers are only kept for calls that will produce a recording callback
    if call_sid and workflow.should_record(direction):
        workflow.register_call(call_sid, params.get("From"), params.get("To"))
        workflow.spawn_watch(call_sid, pii_redaction)

    try:
        form = params if request.method != "GET" else None
        twiml = await voice_runtime.forward_answer(project_id, request.method, request.query_params, form)
    except GatewayError as e:
        logger.error(f"Error handling voice webhook: {e}")
        return Response(content="Internal Server Error", status_code=500, media_type="text/plain")

    return Response(content=twiml, media_type="application/xml")


@router.api_route("/recording-status", methods=["GET", "POST"])
async def recording_status(request: Request, workflow: CallWorkflow = Depends(get_workflow)):
    """
    Twilio recording status callback.
    When a recording completes, optionally runs PII-redacted transcription,
    then stores the call and pushes it to connected dashboards.
    """
    params = await _webhook_params(request)
    call_sid = params.get("CallSid")
    recording_status = params.get("RecordingStatus")
    pii_redaction = _flag(request.query_params.get("piiRedaction"))

    logger.info(
        f"Recording update: callSid={(call_sid or '')[-8:]} status={recording_status} "
        f"duration={params.get('RecordingDuration')} piiRedaction={'enabled' if pii_redaction else 'disabled'}"
    )

    if recording_status != "completed":
        return Response(content="OK", media_type="text/plain")

    if not call_sid:
        logger.error("Recording callback missing CallSid")
        return Response(content="Internal Server Error", status_code=500, media_type="text/plain")

    try:
        await workflow.handle_recording_completed(
            call_sid=call_sid,
            recording_sid=params.get("RecordingSid") or "",
            recording_url=params.get("RecordingUrl") or "",
            duration=params.get("RecordingDuration"),
            pii_redaction=pii_redaction,
        )
    except Exception:
        logger.exception(f"Error handling recording status for {call_sid[-8:]}")
        return Response(content="Internal Server Error", status_code=500, media_type="text/plain")

    return Response(content="OK", media_type="text/plain")
