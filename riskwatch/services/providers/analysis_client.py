"""AI analysis provider client.

One call does the whole job: given audio it transcribes and assesses,
given text it assesses only. The provider is asked for a bare JSON object
and the decoded object is returned untouched; clamping it to the internal
vocabulary is the risk engine's job.
"""
import base64
import json
import logging
import re
import time
from typing import Any, Dict, List

import aiohttp

from .config import AnalysisProviderConfig
from .errors import InvalidResponse, MissingCredentials
from .http import SessionFactory, raise_for_status, send_request
from .models import AnalysisContent, AudioSource, TextSource

logger = logging.getLogger(__name__)

PROVIDER_NAME = "analysis_provider"

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$")


def strip_code_fences(text: str) -> str:
    """Remove a markdown code fence the model sometimes wraps JSON in."""
    return _FENCE_PATTERN.sub("", text.strip()).strip()


def _extract_text(payload: Any) -> str:
    if not isinstance(payload, dict):
        raise InvalidResponse("Analysis response is not an object", PROVIDER_NAME)

    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        raise InvalidResponse("Analysis response has no candidates", PROVIDER_NAME)

    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        raise InvalidResponse("Analysis response has no content parts", PROVIDER_NAME)

    text = "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict))
    if not text.strip():
        raise InvalidResponse("Analysis response is empty", PROVIDER_NAME)
    return text


def parse_assessment_json(text: str) -> Dict[str, Any]:
    """Decode the model's JSON answer.

    Raises:
        InvalidResponse: Not JSON, or JSON that is not an object
    """
    cleaned = strip_code_fences(text)
    try:
        parsed = json.loads(cleaned)
    except ValueError as e:
        logger.warning(
            "ANALYSIS_RESPONSE_UNPARSEABLE",
            extra={"preview": cleaned[:200], "error": str(e)}
        )
        raise InvalidResponse(f"Invalid JSON response from analysis provider: {e}", PROVIDER_NAME) from e

    if not isinstance(parsed, dict):
        raise InvalidResponse("Analysis JSON is not an object", PROVIDER_NAME)
    return parsed


class AnalysisProviderClient:
    """Client for the generative analysis REST API."""

    def __init__(
        self,
        config: AnalysisProviderConfig,
        session_factory: SessionFactory = aiohttp.ClientSession,
    ):
        self.config = config
        self._session_factory = session_factory

        logger.info(
            "ANALYSIS_CLIENT_INITIALIZED",
            extra={
                "text_model": config.text_model,
                "audio_model": config.audio_model,
                "configured": self.configured,
            }
        )

    @property
    def configured(self) -> bool:
        return bool(self.config.api_key)

    def _build_parts(self, content: AnalysisContent, instructions: str) -> List[Dict[str, Any]]:
        parts: List[Dict[str, Any]] = [{"text": instructions}]
        if isinstance(content, AudioSource):
            parts.append({
                "inline_data": {
                    "mime_type": content.mime_type or self.config.audio_mime_type,
                    "data": base64.b64encode(content.data).decode("ascii"),
                }
            })
        elif isinstance(content, TextSource):
            parts.append({"text": f'Transcript: "{content.text}"'})
        else:
            raise TypeError(f"Unsupported analysis content: {type(content).__name__}")
        return parts

    async def submit_for_analysis(
        self,
        content: AnalysisContent,
        instructions: str,
    ) -> Dict[str, Any]:
        """Submit audio or text with the instruction template.

        Returns:
            Decoded provider JSON (unvalidated)

        Raises:
            MissingCredentials: No API key configured
            InvalidResponse: Response missing or not a JSON object
            ProviderTimeout / RateLimited / ProviderUnavailable: transient
        """
        if not self.config.api_key:
            raise MissingCredentials("ANALYSIS_API_KEY is required", PROVIDER_NAME)

        is_audio = isinstance(content, AudioSource)
        model = self.config.audio_model if is_audio else self.config.text_model
        timeout = self.config.audio_timeout_seconds if is_audio else self.config.text_timeout_seconds

        body = {
            "contents": [{"role": "user", "parts": self._build_parts(content, instructions)}],
            "generationConfig": {
                "temperature": self.config.temperature,
                "responseMimeType": "application/json",
            },
        }

        start_time = time.time()
        response = await send_request(
            self._session_factory,
            "POST",
            f"{self.config.base_url}/models/{model}:generateContent",
            provider=PROVIDER_NAME,
            timeout_seconds=timeout,
            headers={"x-goog-api-key": self.config.api_key},
            json_body=body,
        )
        raise_for_status(response, PROVIDER_NAME, f"model {model}")

        parsed = parse_assessment_json(_extract_text(response.json(PROVIDER_NAME)))

        logger.info(
            "ANALYSIS_SUBMISSION_COMPLETED",
            extra={
                "model": model,
                "content_type": "audio" if is_audio else "text",
                "latency_ms": (time.time() - start_time) * 1000,
            }
        )
        return parsed
