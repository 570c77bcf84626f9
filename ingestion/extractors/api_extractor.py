"""
API data source extractor.

Issues a single GET against a configured endpoint and decodes a JSON array of
objects into records. Field names are matched case-insensitively by the
record schema.

Error behaviour:
- Non-success HTTP status: empty result, warning, recorded error
- Empty or ``null`` body: empty result
- Transport failures, invalid JSON, non-array payload: APIExtractionError
"""

import httpx
from typing import List, Optional, Type
from ingestion.base import Extractor, T
from models.base import SourceType
from core.exceptions import APIExtractionError
import logging

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"


def build_api_url(base_url: str, endpoint: str) -> str:
    """Join base URL and endpoint path; absolute endpoints are used as-is"""
    if endpoint.startswith(("http://", "https://")) or not base_url:
        return endpoint
    return f"{base_url.rstrip('/')}/{endpoint.lstrip('/')}"


class APIExtractor(Extractor[T]):
    """
    Extract records from a REST endpoint returning a JSON array.

    Attributes:
        api_url: Full request URL
        api_key: Sent as the ``X-API-Key`` header when set
        timeout: Request timeout in seconds (default: 30.0)
        client: Optional shared ``httpx.AsyncClient``; a short-lived client is
            created per extraction when omitted
    """

    source_type = SourceType.API
    error_class = APIExtractionError

    def __init__(
        self,
        name: str,
        record_type: Type[T],
        base_url: str,
        endpoint: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(name=name, record_type=record_type)
        self.api_url = build_api_url(base_url, endpoint)
        self.api_key = api_key
        self.timeout = timeout
        self.client = client

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers[API_KEY_HEADER] = self.api_key
        return headers

    async def _get(self) -> httpx.Response:
        if self.client is not None:
            return await self.client.get(self.api_url, headers=self._headers(), timeout=self.timeout)

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(self.api_url, headers=self._headers())

    async def fetch_records(self) -> List[T]:
        """
        Fetch and decode the endpoint payload.

        Raises:
            APIExtractionError: For transport errors and undecodable payloads
        """
        logger.info(f"Fetching {self.api_url} for {self.name}")

        try:
            response = await self._get()
        except httpx.HTTPError as e:
            raise APIExtractionError(
                self.name,
                f"HTTP error requesting {self.api_url}",
                context={"api_url": self.api_url},
                original_exception=e
            )

        if not response.is_success:
            return self.record_error(
                APIExtractionError(
                    self.name,
                    f"API request failed with status {response.status_code}",
                    context={
                        "api_url": self.api_url,
                        "status_code": response.status_code,
                        "response_body": response.text[:500]  # Truncate
                    }
                )
            )

        if not response.content.strip():
            logger.info(f"Empty response body from {self.api_url}")
            return []

        try:
            data = response.json()
        except ValueError as e:
            raise APIExtractionError(
                self.name,
                "Failed to parse JSON response",
                context={
                    "api_url": self.api_url,
                    "response_body": response.text[:500]
                },
                original_exception=e
            )

        if data is None:
            return []

        if not isinstance(data, list):
            raise APIExtractionError(
                self.name,
                f"Expected a JSON array, got {type(data).__name__}",
                context={"api_url": self.api_url}
            )

        rows = [item for item in data if isinstance(item, dict)]
        self.rows_skipped += len(data) - len(rows)

        return self.validate_rows(rows)
