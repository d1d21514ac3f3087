"""
HTTP data producer for memoizing cache accessors.
"""

from typing import Any, Optional, TYPE_CHECKING
from urllib.parse import quote

import httpx

from shared.errors import ConfigurationError, ExternalServiceError
from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.config import CacheConfig


class HttpJsonProducer:
    """Fetch a JSON document for a cache key over HTTP.

    ``await producer(key)`` issues ``GET {base_url}{path_template}`` with the
    URL-quoted key substituted for ``{key}``. A 200 response yields the decoded
    body; anything else raises ExternalServiceError so the accessor caches
    nothing for the key.
    """

    def __init__(
        self,
        base_url: str,
        path_template: str = "/{key}",
        *,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        service: str = "data_source",
    ):
        self.base_url = base_url.rstrip('/')
        self.path_template = path_template
        self.timeout = timeout
        self.service = service
        self.logger = get_logger("memo_cache.http_producer")
        self._client = client

    @classmethod
    def from_config(cls, config: "CacheConfig", path_template: str = "/{key}") -> "HttpJsonProducer":
        """Build a producer from cache settings."""
        if not config.producer_base_url:
            raise ConfigurationError("producer_base_url is not configured")
        return cls(config.producer_base_url, path_template, timeout=config.producer_timeout)

    def url_for(self, key: Any) -> str:
        return f"{self.base_url}{self.path_template.format(key=quote(str(key), safe=''))}"

    async def __call__(self, key: Any) -> Any:
        url = self.url_for(key)
        try:
            if self._client is not None:
                response = await self._client.get(url)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url)
        except httpx.HTTPError as exc:
            self.logger.error("Producer request error", url=url, error=str(exc))
            raise ExternalServiceError(
                service=self.service,
                message=str(exc),
                details={"url": url}
            ) from exc

        if response.status_code == 200:
            try:
                data = response.json()
            except ValueError as exc:
                self.logger.error("Producer returned invalid JSON", url=url, error=str(exc))
                raise ExternalServiceError(
                    service=self.service,
                    message="Invalid JSON body",
                    details={"url": url}
                ) from exc
            self.logger.debug("Producer value retrieved", url=url)
            return data

        self.logger.error(
            "Producer request failed",
            url=url,
            status_code=response.status_code,
            response=response.text
        )
        raise ExternalServiceError(
            service=self.service,
            message=f"Unexpected status {response.status_code}",
            details={"status_code": response.status_code, "body": response.text, "url": url}
        )
