"""SIEMSYNC — Mimecast SIEM API Client.

Issues signed requests for one page of the MTA log stream and wraps the
raw HTTP response into a SiemPage for the pagination engine to classify.
"""

import json
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import BaseModel

from siemsync.config import MimecastCredentials, settings
from siemsync.connectors.mimecast.auth import RequestSigner
from siemsync.core.logging import get_logger

logger = get_logger("mimecast.client")

TOKEN_HEADER = "mc-siem-token"
RATE_LIMIT_RESET_HEADER = "X-RateLimit-Reset"
STREAM_TYPE = "MTA"


class MimecastAPIError(Exception):
    """Raised when the Mimecast API cannot be reached."""


class SiemPage(BaseModel):
    """One response from the SIEM log endpoint."""

    status_code: int
    content_type: str = ""
    next_token: Optional[str] = None
    rate_limit_reset: Optional[str] = None
    body: str = ""
    payload: Optional[Any] = None
    malformed: bool = False
    events: List[Dict[str, Any]] = []
    skipped_items: int = 0

    @property
    def is_json(self) -> bool:
        return self.content_type.split(";")[0].strip().lower() == "application/json"

    @property
    def is_last_token(self) -> bool:
        if not isinstance(self.payload, dict):
            return False
        meta = self.payload.get("meta") or {}
        return bool(isinstance(meta, dict) and meta.get("isLastToken"))


def build_request_body(token: str) -> Dict[str, Any]:
    return {
        "data": [
            {
                "type": STREAM_TYPE,
                "token": token,
                "fileFormat": "json",
                "compress": False,
            }
        ]
    }


def extract_events(payload: Any) -> Tuple[List[Dict[str, Any]], int]:
    """Split the page's ``data`` list into event records and a count of unusable items."""
    if not isinstance(payload, dict):
        return [], 0
    data = payload.get("data") or []
    if not isinstance(data, list):
        return [], 1
    events = [item for item in data if isinstance(item, dict)]
    return events, len(data) - len(events)


def parse_page(resp: httpx.Response) -> SiemPage:
    """Turn an HTTP response into a SiemPage without raising on bad bodies."""
    body = resp.text
    payload = None
    malformed = False
    if body.strip():
        try:
            payload = json.loads(body)
        except ValueError:
            malformed = True

    events, skipped = extract_events(payload)
    if skipped:
        logger.warning(
            f"Skipped {skipped} SIEM data items that are not event objects",
            extra={"status_code": resp.status_code},
        )

    return SiemPage(
        status_code=resp.status_code,
        content_type=resp.headers.get("content-type", ""),
        next_token=resp.headers.get(TOKEN_HEADER) or None,
        rate_limit_reset=resp.headers.get(RATE_LIMIT_RESET_HEADER),
        body=body,
        payload=payload,
        malformed=malformed,
        events=events,
        skipped_items=skipped,
    )


class MimecastClient:
    """Async HTTP client for the Mimecast SIEM log endpoint."""

    def __init__(
        self,
        credentials: MimecastCredentials,
        base_url: str | None = None,
        uri: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.signer = RequestSigner(credentials)
        self.base_url = base_url if base_url is not None else settings.mimecast_base_url
        self.uri = uri if uri is not None else settings.mimecast_uri
        self.timeout = timeout or settings.sync_request_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.uri}"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def validate_config(self) -> None:
        """Fail fast with ConfigurationError before any network call."""
        self.signer.validate(self.uri)

    async def fetch_page(self, token: str = "") -> SiemPage:
        """POST one signed request for the page after ``token``.

        Non-2xx statuses are returned, not raised; only transport failures
        become MimecastAPIError.
        """
        # Signed before the client is touched so bad config never reaches the network
        headers = self.signer.sign(self.uri)
        client = await self._get_client()
        try:
            resp = await client.post(
                self.url, json=build_request_body(token), headers=headers
            )
        except httpx.RequestError as e:
            raise MimecastAPIError(f"Request to {self.url} failed: {e}") from e

        page = parse_page(resp)
        logger.debug(
            f"Fetched SIEM page ({len(page.events)} events)",
            extra={"endpoint": self.uri, "status_code": page.status_code},
        )
        return page
