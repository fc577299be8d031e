"""Tests for the retrying HTTP client."""

import tempfile
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
from hypothesis import given, settings, strategies as st

from romnibus.services.http_client import HttpClientService

URL = "https://example.com/snapshot.zip"


def _client(handler, max_retries: int = 2) -> HttpClientService:
    client = HttpClientService(timeout=5.0, max_retries=max_retries, base_delay=0.0)
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


class TestRetries:

    @pytest.mark.asyncio
    async def test_server_errors_are_retried(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, content=b"ok")

        async with _client(handler) as client:
            response = await client.get(URL)

        assert response.content == b"ok"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(404)

        async with _client(handler) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.get(URL)

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler, max_retries=2) as client:
            with patch("romnibus.services.http_client.log") as mock_logger:
                with pytest.raises(httpx.ConnectError):
                    await client.get(URL)

        assert len(calls) == 3
        warnings = mock_logger.warning.call_args_list
        assert len(warnings) == 3
        assert all(call.kwargs["error_type"] == "ConnectError" for call in warnings)
        assert mock_logger.error.called

    @given(attempt=st.integers(min_value=0, max_value=20))
    @settings(max_examples=25)
    def test_backoff_is_capped(self, attempt: int) -> None:
        client = HttpClientService(max_retries=100, base_delay=1.0, max_delay=30.0)
        error = httpx.ConnectError("boom")

        delay = client._retry_delay(error, attempt)

        assert delay == min(2 ** attempt, 30.0)

    def test_retry_after_header_is_honoured(self) -> None:
        client = HttpClientService(max_retries=3)
        request = httpx.Request("GET", URL)
        response = httpx.Response(429, headers={"retry-after": "7"}, request=request)
        error = httpx.HTTPStatusError("slow down", request=request, response=response)

        assert client._retry_delay(error, 0) == 7.0


class TestDownloadFile:

    @pytest.mark.asyncio
    async def test_download_writes_file(self) -> None:
        payload = b"PK" + bytes(range(256)) * 64

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=payload)

        with tempfile.TemporaryDirectory() as temp_dir:
            target = Path(temp_dir) / "nested" / "snapshot.zip"
            async with _client(handler) as client:
                size = await client.download_file(URL, target, chunk_size=1000)

            assert size == len(payload)
            assert target.read_bytes() == payload

    @pytest.mark.asyncio
    async def test_failed_download_leaves_no_partial_file(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, content=b"error page")

        with tempfile.TemporaryDirectory() as temp_dir:
            target = Path(temp_dir) / "snapshot.zip"
            async with _client(handler, max_retries=1) as client:
                with pytest.raises(httpx.HTTPStatusError):
                    await client.download_file(URL, target)

            assert not target.exists()
