"""HTTP client service with retry logic for fetching signature snapshots."""

import asyncio
import time
from pathlib import Path
from typing import Any

import httpx
import structlog

log = structlog.stdlib.get_logger()

USER_AGENT = "ROMnibus/0.1 (+catalog builder)"


class HttpClientService:
    """HTTP client with exponential backoff, rate limiting and streamed downloads."""

    def __init__(
        self,
        timeout: float = 60.0,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        rate_limit_delay: float = 0.0,
    ) -> None:
        """Initialize the HTTP client service.

        Args:
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts
            base_delay: Base delay for exponential backoff in seconds
            max_delay: Maximum delay between retries in seconds
            rate_limit_delay: Minimum delay between requests in seconds
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.rate_limit_delay = rate_limit_delay
        self._last_request_time: float = 0.0

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
        )

        log.debug(
            "HTTP client service initialized",
            timeout=timeout,
            max_retries=max_retries,
        )

    def _retry_delay(self, error: Exception, attempt: int) -> float | None:
        """Delay before the next attempt, or None when the error must not be retried."""
        if isinstance(error, httpx.HTTPStatusError):
            status_code = error.response.status_code
            if status_code == 429:
                retry_after = error.response.headers.get("retry-after")
                if retry_after:
                    try:
                        return float(retry_after)
                    except ValueError:
                        pass
            elif 400 <= status_code < 500:
                log.error("Client error, not retrying", status_code=status_code)
                return None

        if attempt >= self.max_retries:
            return None
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    async def get(self, url: str, params: dict[str, str] | None = None) -> httpx.Response:
        """Make a GET request with retry logic.

        Raises:
            httpx.HTTPError: If all retry attempts fail
        """
        for attempt in range(self.max_retries + 1):
            await self._enforce_rate_limit()
            try:
                log.debug("Making HTTP GET request", url=url, attempt=attempt + 1)
                response = await self._client.get(url, params=params)
                response.raise_for_status()
                log.info("HTTP GET request successful", url=url, status_code=response.status_code)
                return response

            except (httpx.HTTPStatusError, httpx.RequestError) as e:
                log.warning(
                    "HTTP GET request failed",
                    url=url,
                    attempt=attempt + 1,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                delay = self._retry_delay(e, attempt)
                if delay is None:
                    log.error("HTTP GET request failed after all retries", url=url, total_attempts=attempt + 1)
                    raise
                log.info("Retrying after delay", delay=delay)
                await asyncio.sleep(delay)

        raise RuntimeError("Unexpected end of retry loop")

    async def download_file(self, url: str, path: Path, chunk_size: int = 64 * 1024) -> int:
        """Stream a URL to a file, retrying transient failures.

        Args:
            url: The URL to download from
            path: Local path to save the file
            chunk_size: Size of chunks to read/write in bytes

        Returns:
            Number of bytes written

        Raises:
            httpx.HTTPError: If all retry attempts fail
            OSError: If the file cannot be written
        """
        path.parent.mkdir(parents=True, exist_ok=True)

        for attempt in range(self.max_retries + 1):
            await self._enforce_rate_limit()
            try:
                log.debug("Starting file download", url=url, path=str(path), attempt=attempt + 1)

                async with self._client.stream("GET", url) as response:
                    response.raise_for_status()
                    expected = int(response.headers.get("content-length", 0))
                    downloaded = 0

                    with open(path, "wb") as f:
                        async for chunk in response.aiter_bytes(chunk_size):
                            f.write(chunk)
                            downloaded += len(chunk)

                if expected > 0 and downloaded != expected:
                    raise httpx.RequestError(
                        f"File size mismatch: expected {expected}, got {downloaded}"
                    )

                log.info("File download completed", url=url, path=str(path), size=downloaded)
                return downloaded

            except (httpx.HTTPStatusError, httpx.RequestError, OSError) as e:
                log.warning(
                    "File download failed",
                    url=url,
                    path=str(path),
                    attempt=attempt + 1,
                    error=str(e),
                    error_type=type(e).__name__,
                )

                if path.exists():
                    try:
                        path.unlink()
                    except OSError:
                        log.warning("Failed to clean up partial download", path=str(path))

                if isinstance(e, OSError):
                    log.error("File system error during download, not retrying", error=str(e))
                    raise

                delay = self._retry_delay(e, attempt)
                if delay is None:
                    log.error("File download failed after all retries", url=url, total_attempts=attempt + 1)
                    raise
                log.info("Retrying download after delay", delay=delay)
                await asyncio.sleep(delay)

        raise RuntimeError("Unexpected end of retry loop")

    async def _enforce_rate_limit(self) -> None:
        """Enforce a minimum delay between requests."""
        elapsed = time.monotonic() - self._last_request_time
        if elapsed < self.rate_limit_delay:
            await asyncio.sleep(self.rate_limit_delay - elapsed)
        self._last_request_time = time.monotonic()

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._client.aclose()
        log.debug("HTTP client closed")

    async def __aenter__(self) -> "HttpClientService":
        return self

    async def __aexit__(self, exc_type: type[Exception] | None, exc_val: Exception | None, exc_tb: Any) -> None:
        await self.close()
