"""Shared async HTTP plumbing for the remote APIs (credentials, retries, error mapping)."""

import asyncio
from typing import Any, Dict, Optional

import httpx

from common_py.error_codes import ErrorCode, error_code_for_status
from common_py.logging_config import configure_logging
from aweme_sync.config_loader import config
from aweme_sync.services.exceptions import RemoteApiError

logger = configure_logging("aweme-sync:base_client", log_level=config.LOG_LEVEL)


def extract_error_message(response: httpx.Response) -> str:
    """Pull `detail` or `message` out of an error body, falling back to the raw text."""
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        detail = data.get("detail") or data.get("message")
        if detail:
            return str(detail)
    return response.text or f"HTTP {response.status_code}"


class BaseApiClient:
    """POSTs JSON to the remote API with exponential backoff on transient failures."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        username: Optional[str] = None,
        passtoken: Optional[str] = None,
        timeout_s: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_base_s: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url if base_url is not None else config.API_BASE_URL).rstrip("/")
        self.username = username if username is not None else config.API_USERNAME
        self.passtoken = passtoken if passtoken is not None else config.API_PASSTOKEN
        self.max_attempts = max(1, max_attempts if max_attempts is not None else config.HTTP_MAX_ATTEMPTS)
        self.backoff_base_s = backoff_base_s if backoff_base_s is not None else config.HTTP_BACKOFF_BASE_S
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s if timeout_s is not None else config.HTTP_TIMEOUT_S),
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
        )

    @property
    def credentials(self) -> Dict[str, str]:
        return {"username": self.username, "passtoken": self.passtoken}

    async def _backoff(self, attempt: int) -> None:
        delay = self.backoff_base_s * (2 ** attempt)
        logger.info(f"Waiting {delay:.1f}s before retrying...")
        await asyncio.sleep(delay)

    async def post_json(self, path: str, payload: Dict[str, Any]) -> Any:
        """
        POST a JSON body and return the decoded response.

        Args:
            path: Endpoint path relative to the base URL
            payload: Request body

        Raises:
            RemoteApiError: non-retryable status, malformed body, or retries exhausted
        """
        url = f"{self.base_url}{path}"
        last_error: Optional[RemoteApiError] = None

        for attempt in range(self.max_attempts):
            is_last = attempt == self.max_attempts - 1
            try:
                logger.debug("POST", url=url, attempt=attempt + 1, max_attempts=self.max_attempts)
                response = await self.client.post(
                    url, json=payload, headers={"Content-Type": "application/json"}
                )
            except httpx.TimeoutException:
                logger.warning("Request timed out", url=url, attempt=attempt + 1)
                last_error = RemoteApiError(
                    f"Timeout after {attempt + 1} attempts calling {path}",
                    endpoint=path,
                    error_code=ErrorCode.NETWORK_TIMEOUT,
                )
                if not is_last:
                    await self._backoff(attempt)
                continue
            except httpx.RequestError as e:
                logger.warning("Request error", url=url, attempt=attempt + 1, error=str(e))
                last_error = RemoteApiError(
                    f"Request error calling {path}: {e}",
                    endpoint=path,
                    error_code=ErrorCode.NETWORK_TRANSPORT,
                )
                if not is_last:
                    await self._backoff(attempt)
                continue

            if 200 <= response.status_code < 300:
                try:
                    return response.json()
                except ValueError as e:
                    logger.error("Invalid JSON response", url=url, body=response.text[:500])
                    raise RemoteApiError(
                        f"Invalid JSON response from {path}: {e}",
                        endpoint=path,
                        status_code=response.status_code,
                        error_code=ErrorCode.MALFORMED_RESPONSE,
                    ) from e

            error_code = error_code_for_status(response.status_code)
            message = extract_error_message(response)
            error = RemoteApiError(
                f"{path} returned status {response.status_code}: {message}",
                endpoint=path,
                status_code=response.status_code,
                error_code=error_code,
            )
            if not error_code.is_retryable:
                logger.error("Remote API rejected request", url=url, status=response.status_code, error=message)
                raise error

            logger.warning("Retryable status", url=url, status=response.status_code, attempt=attempt + 1)
            last_error = error
            if not is_last:
                await self._backoff(attempt)

        raise last_error or RemoteApiError(f"Failed to call {path} after {self.max_attempts} attempts", endpoint=path)

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
