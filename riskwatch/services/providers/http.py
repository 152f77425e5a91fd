"""Shared aiohttp request helper for provider clients.

Translates transport exceptions and HTTP status codes into the typed
provider errors so no client leaks aiohttp details to its callers.
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import aiohttp

from .errors import (
    InvalidResponse,
    MissingCredentials,
    NotFound,
    ProviderTimeout,
    ProviderUnavailable,
    RateLimited,
)

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], aiohttp.ClientSession]


@dataclass(frozen=True)
class ProviderResponse:
    status: int
    body: bytes
    location: Optional[str] = None
    content_type: str = ""

    def json(self, provider: str) -> Any:
        """Decode the body as JSON or fail with InvalidResponse."""
        if not self.body:
            return {}
        try:
            return json.loads(self.body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise InvalidResponse(f"{provider} returned malformed JSON: {e}", provider) from e


def raise_for_status(response: ProviderResponse, provider: str, resource: str) -> None:
    """Map an HTTP error status onto the provider error taxonomy."""
    status = response.status
    if status < 400:
        return

    snippet = response.body[:200].decode("utf-8", errors="replace")
    if status == 404:
        raise NotFound(f"{resource} not found", provider)
    if status == 429:
        raise RateLimited(f"{provider} rate limited request for {resource}", provider)
    if status in (401, 403):
        raise MissingCredentials(f"{provider} rejected credentials ({status})", provider)
    if status >= 500:
        raise ProviderUnavailable(f"{provider} error {status}: {snippet}", provider)
    raise InvalidResponse(f"{provider} error {status}: {snippet}", provider)


async def send_request(
    session_factory: SessionFactory,
    method: str,
    url: str,
    *,
    provider: str,
    timeout_seconds: float,
    headers: Optional[Dict[str, str]] = None,
    json_body: Optional[Dict[str, Any]] = None,
    allow_redirects: bool = True,
) -> ProviderResponse:
    """Perform one timeout-bounded round-trip.

    Raises:
        ProviderTimeout: The request exceeded timeout_seconds
        ProviderUnavailable: Connection-level failure
    """
    try:
        async with session_factory() as session:
            async with session.request(
                method,
                url,
                headers=headers,
                json=json_body,
                allow_redirects=allow_redirects,
                timeout=aiohttp.ClientTimeout(total=timeout_seconds),
            ) as response:
                body = await response.read()
                return ProviderResponse(
                    status=response.status,
                    body=body,
                    location=response.headers.get("Location"),
                    content_type=response.headers.get("Content-Type", ""),
                )
    except asyncio.TimeoutError as e:
        logger.warning(
            "PROVIDER_REQUEST_TIMEOUT",
            extra={"provider": provider, "method": method, "timeout_seconds": timeout_seconds}
        )
        raise ProviderTimeout(
            f"{provider} request timed out after {timeout_seconds}s", provider
        ) from e
    except aiohttp.ClientError as e:
        logger.warning(
            "PROVIDER_REQUEST_FAILED",
            extra={"provider": provider, "method": method, "error": str(e)}
        )
        raise ProviderUnavailable(f"{provider} request failed: {e}", provider) from e
