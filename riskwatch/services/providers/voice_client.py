"""Voice provider client: call metadata, recordings and transcript messages.

Every operation is a single timeout-bounded round-trip. Retrying is the
caller's concern (see risk_engine.retry).
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiohttp

from .config import VoiceProviderConfig
from .errors import InvalidResponse, LocatorExpired, MissingCredentials, ProviderError
from .http import ProviderResponse, SessionFactory, raise_for_status, send_request
from .models import CallMetadata, RecordingLocator, TranscriptMessage

logger = logging.getLogger(__name__)

PROVIDER_NAME = "voice_provider"

_REDIRECT_STATUSES = (301, 302, 303, 307, 308)
_USER_ROLES = ("MESSAGE_ROLE_USER", "USER", "user")


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class VoiceProviderClient:
    """Typed client for the recording/voice provider REST API."""

    def __init__(
        self,
        config: VoiceProviderConfig,
        session_factory: SessionFactory = aiohttp.ClientSession,
    ):
        self.config = config
        self._session_factory = session_factory

        logger.info(
            "VOICE_CLIENT_INITIALIZED",
            extra={"api_url": config.api_url, "configured": self.configured}
        )

    @property
    def configured(self) -> bool:
        return bool(self.config.api_key)

    def _auth_headers(self) -> Dict[str, str]:
        if not self.config.api_key:
            raise MissingCredentials("VOICE_PROVIDER_API_KEY is required", PROVIDER_NAME)
        return {"X-API-Key": self.config.api_key, "Accept": "application/json"}

    async def _get(
        self,
        url: str,
        timeout_seconds: float,
        resource: str,
        allow_redirects: bool = True,
    ) -> ProviderResponse:
        response = await send_request(
            self._session_factory,
            "GET",
            url,
            provider=PROVIDER_NAME,
            timeout_seconds=timeout_seconds,
            headers=self._auth_headers(),
            allow_redirects=allow_redirects,
        )
        raise_for_status(response, PROVIDER_NAME, resource)
        return response

    async def fetch_call_metadata(self, call_id: str) -> CallMetadata:
        """Fetch the provider's call object.

        Raises:
            NotFound: The provider does not know this call
        """
        response = await self._get(
            f"{self.config.api_url}/{call_id}",
            self.config.metadata_timeout_seconds,
            resource=f"call {call_id}",
        )
        data = response.json(PROVIDER_NAME)
        if not isinstance(data, dict):
            raise InvalidResponse(f"Unexpected call payload for {call_id}", PROVIDER_NAME)

        metadata = data.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}
        return CallMetadata(
            call_id=data.get("callId") or call_id,
            originator=data.get("from") or metadata.get("from") or metadata.get("caller"),
            created_at=_parse_timestamp(data.get("created")),
            ended_at=_parse_timestamp(data.get("ended")),
            end_reason=data.get("endReason"),
            raw=data,
        )

    async def fetch_fresh_recording_locator(self, call_id: str) -> RecordingLocator:
        """Ask the provider for a newly signed recording URL.

        The provider normally answers with a redirect whose Location is the
        signed URL; some deployments answer with a JSON body instead.
        """
        response = await self._get(
            f"{self.config.api_url}/{call_id}/recording",
            self.config.locator_timeout_seconds,
            resource=f"recording for call {call_id}",
            allow_redirects=False,
        )

        if response.status in _REDIRECT_STATUSES:
            if not response.location:
                raise InvalidResponse("Redirect response without location header", PROVIDER_NAME)
            url = response.location
        else:
            data = response.json(PROVIDER_NAME)
            url = None
            if isinstance(data, dict):
                url = data.get("recordingUrl") or data.get("url") or data.get("location")
            if not isinstance(url, str) or not url:
                raise InvalidResponse(
                    f"Unexpected recording response format for call {call_id}", PROVIDER_NAME
                )

        logger.info(
            "RECORDING_LOCATOR_FETCHED",
            extra={"call_id": call_id, "redirect": response.status in _REDIRECT_STATUSES}
        )
        return RecordingLocator(url=url)

    async def download_recording(self, locator: RecordingLocator) -> bytes:
        """Download audio behind a signed locator.

        Raises:
            LocatorExpired: The signed URL was rejected (expired or revoked)
        """
        response = await send_request(
            self._session_factory,
            "GET",
            locator.url,
            provider=PROVIDER_NAME,
            timeout_seconds=self.config.download_timeout_seconds,
        )
        if response.status in (403, 404, 410):
            raise LocatorExpired(
                f"Recording locator rejected with status {response.status}", PROVIDER_NAME
            )
        raise_for_status(response, PROVIDER_NAME, "recording download")
        if not response.body:
            raise InvalidResponse("Recording download returned no audio", PROVIDER_NAME)

        logger.info("RECORDING_DOWNLOADED", extra={"size_bytes": len(response.body)})
        return response.body

    async def fetch_transcript_messages(self, call_id: str) -> List[TranscriptMessage]:
        """Ordered (speaker, text) messages for a call; empty texts dropped."""
        response = await self._get(
            f"{self.config.api_url}/{call_id}/messages",
            self.config.metadata_timeout_seconds,
            resource=f"messages for call {call_id}",
        )
        data = response.json(PROVIDER_NAME)
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            return []

        messages = []
        for item in results:
            if not isinstance(item, dict):
                continue
            text = str(item.get("text") or "").strip()
            if not text:
                continue
            role = "user" if item.get("role") in _USER_ROLES else "agent"
            messages.append(TranscriptMessage(speaker_role=role, text=text))
        return messages

    async def list_calls(self, limit: int = 50) -> List[Dict[str, Any]]:
        """List up to `limit` calls, newest first as the provider orders them."""
        response = await self._get(
            f"{self.config.api_url}?limit={int(limit)}",
            self.config.metadata_timeout_seconds,
            resource="call list",
        )
        data = response.json(PROVIDER_NAME)
        results = data.get("results") if isinstance(data, dict) else data
        if not isinstance(results, list):
            raise InvalidResponse("Call list response has no results", PROVIDER_NAME)
        return [call for call in results if isinstance(call, dict)][:limit]

    async def check_connection(self) -> bool:
        """Cheap reachability probe used by the readiness endpoint."""
        if not self.configured:
            return False
        try:
            response = await send_request(
                self._session_factory,
                "GET",
                f"{self.config.api_url}?limit=1",
                provider=PROVIDER_NAME,
                timeout_seconds=self.config.health_timeout_seconds,
                headers=self._auth_headers(),
            )
            raise_for_status(response, PROVIDER_NAME, "call list")
        except ProviderError as e:
            logger.warning("VOICE_PROVIDER_UNREACHABLE", extra={"error": str(e)})
            return False
        return True
