import logging
from typing import Mapping, Optional

import httpx

from ..errors import GatewayError

logger = logging.getLogger(__name__)


class VoiceRuntimeClient:
    """Forwards Twilio answer webhooks to the voice assistant runtime and returns its TwiML."""

    def __init__(self, base_url: str, http_client: Optional[httpx.AsyncClient] = None, timeout: float = 15.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = http_client

    async def forward_answer(
        self,
        project_id: str,
        method: str,
        query: Mapping[str, str],
        form: Optional[Mapping[str, str]] = None,
    ) -> str:
        url = f"{self.base_url}/v1/twilio/webhooks/{project_id}/answer"
        kwargs = {
            "params": dict(query),
            "headers": {"Accept": "application/xml"},
            "timeout": self.timeout,
        }
        if method.upper() != "GET" and form is not None:
            kwargs["data"] = dict(form)

        try:
            if self._http is not None:
                response = await self._http.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            logger.error(f"Voice runtime request error: {e}")
            raise GatewayError(f"Request to voice runtime failed: {e}") from e

        logger.info(f"Voice runtime response: {response.status_code}")
        if response.is_error:
            raise GatewayError("Voice runtime returned an error", response.status_code, response.text)
        return response.text
