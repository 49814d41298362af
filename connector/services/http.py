"""Shared request handling for the upstream HTTP clients."""
import time
from typing import Any, Optional

import httpx

from connector.config import settings
from connector.errors import UpstreamApiError
from connector.logging import get_logger
from connector import metrics

logger = get_logger(__name__)


class HttpApiClient:
    """
    Base class for the Algoan and Bridge clients.

    Every call opens a short-lived httpx.AsyncClient, logs and times the
    request, and converts transport or status failures into the client's
    error class.
    """

    service = "upstream"
    error_class: type[UpstreamApiError] = UpstreamApiError

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Base URL of the API
            timeout: Per-request timeout in seconds. Defaults to settings.http_timeout.
            transport: Optional httpx transport, used to stub the API in tests
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or settings.http_timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _request(
        self,
        operation: str,
        method: str,
        url: str,
        *,
        ignore_status: tuple[int, ...] = (),
        **kwargs: Any,
    ) -> Any:
        """
        Send a request and decode its JSON body.

        Args:
            operation: Short name used in logs and metrics
            method: HTTP method
            url: Path relative to base_url, or an absolute URL
            ignore_status: Error statuses returned as None instead of raised

        Returns:
            Decoded JSON body, or None for empty and ignored responses

        Raises:
            UpstreamApiError: (subclass) if the API returns an error or is unreachable
        """
        start_time = time.perf_counter()

        logger.debug(f"{self.service.lower()}_request_started", operation=operation, method=method, url=url)

        async with self._client() as client:
            try:
                response = await client.request(method, url, **kwargs)
                duration_seconds = time.perf_counter() - start_time

                if response.status_code in ignore_status:
                    logger.info(
                        f"{self.service.lower()}_request_status_ignored",
                        operation=operation,
                        status_code=response.status_code,
                        duration_ms=round(duration_seconds * 1000, 2),
                    )
                    metrics.record_upstream_call(self.service, operation, duration_seconds)
                    return None

                response.raise_for_status()
                body = self._decode(operation, response, duration_seconds)

                logger.debug(
                    f"{self.service.lower()}_request_completed",
                    operation=operation,
                    status_code=response.status_code,
                    duration_ms=round(duration_seconds * 1000, 2),
                )
                metrics.record_upstream_call(self.service, operation, duration_seconds)

                return body

            except httpx.HTTPStatusError as e:
                duration_seconds = time.perf_counter() - start_time

                logger.error(
                    f"{self.service.lower()}_http_error",
                    operation=operation,
                    status_code=e.response.status_code,
                    duration_ms=round(duration_seconds * 1000, 2),
                    error=str(e),
                )
                metrics.record_upstream_call(self.service, operation, duration_seconds, error_type="http_error")

                raise self.error_class(e.response.status_code, e.response.text or str(e))

            except httpx.RequestError as e:
                duration_seconds = time.perf_counter() - start_time

                logger.error(
                    f"{self.service.lower()}_request_error",
                    operation=operation,
                    duration_ms=round(duration_seconds * 1000, 2),
                    error=str(e),
                )
                error_type = "timeout" if isinstance(e, httpx.TimeoutException) else "connection_error"
                metrics.record_upstream_call(self.service, operation, duration_seconds, error_type=error_type)

                raise self.error_class(500, f"Request failed: {e}")

    def _decode(self, operation: str, response: httpx.Response, duration_seconds: float) -> Any:
        """JSON body of a successful response; an undecodable body is an upstream error."""
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error(
                f"{self.service.lower()}_invalid_response",
                operation=operation,
                status_code=response.status_code,
                content_type=response.headers.get("content-type"),
                error=str(e),
            )
            metrics.record_upstream_call(self.service, operation, duration_seconds, error_type="invalid_response")
            raise self.error_class(response.status_code, f"Invalid JSON response: {e}")
