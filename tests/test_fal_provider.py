import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import fal_client
import httpx
import pytest

from kontextai.config import FalConfig
from kontextai.errors import (
    ConfigurationError,
    NetworkError,
    StorageError,
    UpstreamGenerationError,
)
from kontextai.providers.fal_provider import FalImageBackend

ENDPOINT = "fal-ai/flux-pro/kontext"


@pytest.fixture
def fal():
    with patch("kontextai.providers.fal_provider.fal_client.AsyncClient") as client_cls:
        client = MagicMock()
        client.subscribe = AsyncMock(
            return_value={"images": [{"url": "https://fal.media/a.jpg"}], "seed": 7}
        )
        client.upload = AsyncMock(return_value="https://fal.media/files/up.png")
        client.submit = AsyncMock(return_value=SimpleNamespace(request_id="req-9"))
        client.status = AsyncMock()
        client.result = AsyncMock(return_value={"images": [], "seed": 1})
        client_cls.return_value = client
        yield client_cls, client


@pytest.fixture
def backend():
    return FalImageBackend(FalConfig(api_key="fal-key", timeout=5.0))


class TestGenerate:
    @pytest.mark.asyncio
    async def test_passes_arguments_through(self, fal, backend):
        client_cls, client = fal
        output = await backend.generate(ENDPOINT, {"prompt": "a cat", "sync_mode": True})

        assert output["seed"] == 7
        client_cls.assert_called_once_with(key="fal-key", default_timeout=5.0)
        args, kwargs = client.subscribe.call_args
        assert args == (ENDPOINT,)
        assert kwargs["arguments"] == {"prompt": "a cat", "sync_mode": True}
        assert kwargs["with_logs"] is False

    @pytest.mark.asyncio
    async def test_reports_the_queue_request_id(self, fal, backend):
        _, client = fal

        async def subscribe(endpoint, arguments, with_logs, on_enqueue):
            on_enqueue("req-1")
            return {"images": []}

        client.subscribe.side_effect = subscribe
        output = await backend.generate(ENDPOINT, {"prompt": "a cat"})
        assert output["request_id"] == "req-1"

    @pytest.mark.asyncio
    async def test_missing_key_is_a_configuration_error(self, fal):
        client_cls, _ = fal
        with pytest.raises(ConfigurationError):
            await FalImageBackend(FalConfig()).generate(ENDPOINT, {"prompt": "x"})
        client_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_upstream_message_is_kept(self, fal, backend):
        _, client = fal
        client.subscribe.side_effect = RuntimeError("Image violates content policy")
        with pytest.raises(UpstreamGenerationError) as exc_info:
            await backend.generate(ENDPOINT, {"prompt": "x"})
        assert exc_info.value.message == "Image violates content policy"

    @pytest.mark.asyncio
    async def test_timeout(self, fal):
        _, client = fal

        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        client.subscribe.side_effect = slow
        backend = FalImageBackend(FalConfig(api_key="fal-key", timeout=0.01))
        with pytest.raises(UpstreamGenerationError) as exc_info:
            await backend.generate(ENDPOINT, {"prompt": "x"})
        assert "timed out" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_error_is_a_network_error(self, fal, backend):
        _, client = fal
        client.subscribe.side_effect = httpx.ConnectError("connection refused")
        with pytest.raises(NetworkError) as exc_info:
            await backend.generate(ENDPOINT, {"prompt": "x"})
        assert "connection" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_http_timeout_is_a_timeout(self, fal, backend):
        _, client = fal
        client.subscribe.side_effect = httpx.ReadTimeout("slow")
        with pytest.raises(UpstreamGenerationError) as exc_info:
            await backend.generate(ENDPOINT, {"prompt": "x"})
        assert "timed out" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_closes_the_sdk_http_client(self, fal, backend):
        _, client = fal
        http_client = MagicMock(spec=httpx.AsyncClient)
        http_client.is_closed = False
        http_client.aclose = AsyncMock()
        client.__dict__["_client"] = http_client
        await backend.generate(ENDPOINT, {"prompt": "x"})
        http_client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_closes_the_sdk_http_client_on_failure(self, fal, backend):
        _, client = fal
        http_client = MagicMock(spec=httpx.AsyncClient)
        http_client.is_closed = False
        http_client.aclose = AsyncMock()
        client.__dict__["_client"] = http_client
        client.subscribe.side_effect = RuntimeError("boom")
        with pytest.raises(UpstreamGenerationError):
            await backend.generate(ENDPOINT, {"prompt": "x"})
        http_client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_non_dict_output(self, fal, backend):
        _, client = fal
        client.subscribe.return_value = ["unexpected"]
        with pytest.raises(UpstreamGenerationError):
            await backend.generate(ENDPOINT, {"prompt": "x"})


class TestUpload:
    @pytest.mark.asyncio
    async def test_returns_public_url(self, fal, backend):
        _, client = fal
        url = await backend.upload(b"png-bytes", "image/png", file_name="cat.png")
        assert url == "https://fal.media/files/up.png"
        client.upload.assert_awaited_once_with(
            b"png-bytes", "image/png", file_name="cat.png"
        )

    @pytest.mark.asyncio
    async def test_failure_is_a_storage_error(self, fal, backend):
        _, client = fal
        client.upload.side_effect = RuntimeError("bucket unavailable")
        with pytest.raises(StorageError) as exc_info:
            await backend.upload(b"png-bytes", "image/png")
        assert exc_info.value.message == "bucket unavailable"

    @pytest.mark.asyncio
    async def test_transport_error_is_a_network_error(self, fal, backend):
        _, client = fal
        client.upload.side_effect = httpx.ConnectError("connection refused")
        with pytest.raises(NetworkError):
            await backend.upload(b"png-bytes", "image/png")


class TestQueue:
    @pytest.mark.asyncio
    async def test_submit_returns_request_id(self, fal, backend):
        assert await backend.submit(ENDPOINT, {"prompt": "x"}) == "req-9"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "upstream, expected",
        [
            (fal_client.Queued(position=3), "IN_QUEUE"),
            (fal_client.InProgress(logs=[{"message": "step 1"}]), "IN_PROGRESS"),
            (fal_client.Completed(logs=None, metrics={}), "COMPLETED"),
        ],
    )
    async def test_status_mapping(self, fal, backend, upstream, expected):
        _, client = fal
        client.status.return_value = upstream
        status = await backend.status(ENDPOINT, "req-9")
        assert status.status == expected

    @pytest.mark.asyncio
    async def test_status_failure_is_reported_not_raised(self, fal, backend):
        _, client = fal
        client.status.side_effect = RuntimeError("not found")
        status = await backend.status(ENDPOINT, "req-9")
        assert status.status == "FAILED"

    @pytest.mark.asyncio
    async def test_result_carries_the_request_id(self, fal, backend):
        output = await backend.result(ENDPOINT, "req-9")
        assert output == {"images": [], "seed": 1, "request_id": "req-9"}
