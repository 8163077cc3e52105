"""HTTP client for the upstream travel-data API."""
import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class UpstreamHTTPClient:
    """Thin async JSON client for the upstream API.

    Retries, deadlines and caching live in ResilientExecutor; this client only
    performs one request and raises on error statuses so failures can be
    classified from the response.
    """

    def __init__(
        self,
        base_url: str,
        access_token: Optional[str] = None,
        timeout_s: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Base URL for upstream
            access_token: Bearer token (obtained by the caller)
            timeout_s: Transport-level timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.timeout_s = timeout_s

        # Create HTTP client with connection pooling
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout_s, connect=5.0),
            limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
            transport=transport,
        )

    def _prepare_headers(self, headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Prepare headers with authentication."""
        result = headers.copy() if headers else {}
        result.setdefault("Accept", "application/json")
        if self.access_token:
            result["Authorization"] = f"Bearer {self.access_token}"
        return result

    async def get_json(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        GET path and decode the JSON body.

        Args:
            path: Path (will be appended to base_url)
            params: Query parameters; None values are dropped
            headers: Extra request headers

        Returns:
            Decoded JSON body

        Raises:
            httpx.HTTPStatusError: On 4xx/5xx responses
            httpx.HTTPError: On network/timeout errors
        """
        query = {k: v for k, v in (params or {}).items() if v is not None}
        response = await self.client.get(path, params=query, headers=self._prepare_headers(headers))

        if response.status_code == 429:
            raise httpx.HTTPStatusError(
                f"Rate limited: {response.status_code}",
                request=response.request,
                response=response,
            )
        if response.is_error:
            logger.warning(f"Upstream {path} returned {response.status_code}")
            raise httpx.HTTPStatusError(
                f"Upstream error: {response.status_code} {_error_detail(response)}".rstrip(),
                request=response.request,
                response=response,
            )

        return response.json()

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()


def _error_detail(response: httpx.Response) -> str:
    """Best-effort detail text from an upstream error body."""
    try:
        body = response.json()
    except ValueError:
        return ""
    errors = body.get("errors") if isinstance(body, dict) else None
    if errors and isinstance(errors, list) and isinstance(errors[0], dict):
        first = errors[0]
        return str(first.get("detail") or first.get("title") or "")
    return ""
