import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..errors import GatewayError

# Set up logger
logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.twilio.com/2010-04-01"
INTELLIGENCE_BASE_URL = "https://intelligence.twilio.com/v2"


class TwilioClient:
    """
    Thin wrapper over the Twilio Voice, Recording and Voice Intelligence REST APIs.
    Each method performs one authenticated request and raises GatewayError on failure.
    Retrying is left to the caller.
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        service_sid: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        self.account_sid = account_sid
        self.auth = (account_sid, auth_token)
        self.service_sid = service_sid
        self.timeout = timeout
        self._http = http_client

    async def _request(self, method: str, url: str, data: Optional[Dict[str, str]] = None) -> Any:
        try:
            if self._http is not None:
                response = await self._http.request(method, url, auth=self.auth, data=data, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.request(method, url, auth=self.auth, data=data, timeout=self.timeout)
        except httpx.RequestError as e:
            logger.error(f"Twilio request error: {method} {url}: {e}")
            raise GatewayError(f"Request to Twilio failed: {e}") from e

        if response.is_error:
            body = _error_body(response)
            logger.error(f"Twilio API HTTP error: {response.status_code} - {body}")
            raise GatewayError(f"Twilio returned an error for {method} {url}", response.status_code, body)

        try:
            return response.json()
        except ValueError as e:
            raise GatewayError(f"Twilio returned a non-JSON body for {url}", response.status_code, response.text) from e

    async def fetch_call(self, call_sid: str) -> Dict[str, Any]:
        data = await self._request("GET", f"{API_BASE_URL}/Accounts/{self.account_sid}/Calls/{call_sid}.json")
        _require(data, "status", "call")
        return data

    async def start_recording(self, call_sid: str, callback_url: str) -> Dict[str, Any]:
        """Start a dual-channel recording on a live call."""
        data = await self._request(
            "POST",
            f"{API_BASE_URL}/Accounts/{self.account_sid}/Calls/{call_sid}/Recordings.json",
            data={
                "RecordingStatusCallback": callback_url,
                "RecordingStatusCallbackMethod": "POST",
                "RecordingChannels": "dual",
                "RecordingTrack": "both",
                "Trim": "trim-silence",
            },
        )
        _require(data, "sid", "recording")
        return data

    async def create_transcript(self, recording_sid: str) -> Dict[str, Any]:
        data = await self._request(
            "POST",
            f"{INTELLIGENCE_BASE_URL}/Transcripts",
            data={
                "ServiceSid": self.service_sid,
                "Channel": json.dumps({"media_properties": {"source_sid": recording_sid}}),
            },
        )
        _require(data, "sid", "transcript")
        return data

    async def fetch_transcript(self, transcript_sid: str) -> Dict[str, Any]:
        data = await self._request("GET", f"{INTELLIGENCE_BASE_URL}/Transcripts/{transcript_sid}")
        _require(data, "sid", "transcript")
        return data

    async def fetch_media(self, media_link: str) -> Dict[str, Any]:
        data = await self._request("GET", media_link)
        _require(data, "media_url", "media")
        return data

    async def fetch_sentences(self, sentences_link: str) -> List[Dict[str, Any]]:
        """Fetch every sentence of a transcript, following pagination."""
        sentences: List[Dict[str, Any]] = []
        url: Optional[str] = sentences_link
        while url:
            data = await self._request("GET", url)
            page = data.get("sentences") if isinstance(data, dict) else None
            if not isinstance(page, list):
                raise GatewayError("Invalid sentences response format", None, data)
            sentences.extend(page)
            url = (data.get("meta") or {}).get("next_page_url")
        return sentences


def _require(data: Any, key: str, resource: str) -> None:
    if not isinstance(data, dict) or not data.get(key):
        raise GatewayError(f"Invalid {resource} response format: missing '{key}'", None, data)


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
