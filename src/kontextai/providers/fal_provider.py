import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import fal_client
import httpx

from kontextai.config import FalConfig
from kontextai.errors import (
    ConfigurationError,
    NetworkError,
    StorageError,
    UpstreamGenerationError,
)
from kontextai.models import QueueStatus
from kontextai.providers.base_provider import BaseImageProvider

logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = "Network connection error, please check your connection"


async def close_client(client: fal_client.AsyncClient) -> None:
    """Close the httpx pools the SDK client opened lazily, if any."""
    for value in list(vars(client).values()):
        if isinstance(value, httpx.AsyncClient) and not value.is_closed:
            await value.aclose()


class FalImageBackend(BaseImageProvider):
    """FLUX.1 Kontext endpoints and file storage on fal.ai."""

    def __init__(self, config: FalConfig):
        self.config = config

    @property
    def configured(self) -> bool:
        return self.config.configured

    def _client(self) -> fal_client.AsyncClient:
        if not self.configured:
            raise ConfigurationError(
                "Image service is not configured, please contact the administrator"
            )
        return fal_client.AsyncClient(
            key=self.config.api_key, default_timeout=self.config.timeout
        )

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[fal_client.AsyncClient]:
        client = self._client()
        try:
            yield client
        finally:
            await close_client(client)

    async def generate(
        self, endpoint: str, arguments: Dict[str, Any]
    ) -> Dict[str, Any]:
        request_ids = []
        logger.info(
            f"Submitting generation to {endpoint} "
            f"({arguments.get('num_images', 1)} image(s))"
        )
        async with self._session() as client:
            try:
                output = await asyncio.wait_for(
                    client.subscribe(
                        endpoint,
                        arguments=arguments,
                        with_logs=False,
                        on_enqueue=request_ids.append,
                    ),
                    timeout=self.config.timeout,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                logger.error(
                    f"Generation on {endpoint} timed out after {self.config.timeout}s"
                )
                raise UpstreamGenerationError(
                    "Image generation timed out, please try again later"
                ) from e
            except httpx.TransportError as e:
                logger.error(f"Could not reach the image service at {endpoint}: {e}")
                raise NetworkError(NETWORK_ERROR_MESSAGE) from e
            except Exception as e:
                logger.error(f"Error generating image with endpoint {endpoint}: {e}")
                raise UpstreamGenerationError(str(e) or "Image generation failed") from e
        if not isinstance(output, dict):
            raise UpstreamGenerationError("Image service returned an unexpected response")
        if request_ids:
            output = {**output, "request_id": request_ids[0]}
        return output

    async def upload(
        self, data: bytes, content_type: str, file_name: Optional[str] = None
    ) -> str:
        async with self._session() as client:
            try:
                url = await asyncio.wait_for(
                    client.upload(data, content_type, file_name=file_name),
                    timeout=self.config.timeout,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                raise StorageError("File upload timed out, please try again") from e
            except httpx.TransportError as e:
                logger.error(f"Could not reach the storage service: {e}")
                raise NetworkError(NETWORK_ERROR_MESSAGE) from e
            except Exception as e:
                logger.error(f"File upload failed: {e}")
                raise StorageError(str(e) or "File upload failed") from e
        return url

    async def submit(self, endpoint: str, arguments: Dict[str, Any]) -> str:
        async with self._session() as client:
            try:
                handle = await client.submit(endpoint, arguments=arguments)
            except httpx.TransportError as e:
                logger.error(f"Could not reach the queue at {endpoint}: {e}")
                raise NetworkError(NETWORK_ERROR_MESSAGE) from e
            except Exception as e:
                logger.error(f"Queue submission to {endpoint} failed: {e}")
                raise UpstreamGenerationError(str(e) or "Queue submission failed") from e
        return handle.request_id

    async def status(self, endpoint: str, request_id: str) -> QueueStatus:
        async with self._session() as client:
            try:
                status = await client.status(endpoint, request_id, with_logs=False)
            except Exception as e:
                logger.error(f"Checking status of {request_id} failed: {e}")
                return QueueStatus(status="FAILED")
        if isinstance(status, fal_client.Queued):
            return QueueStatus(status="IN_QUEUE")
        if isinstance(status, fal_client.InProgress):
            return QueueStatus(status="IN_PROGRESS", logs=status.logs or [])
        if isinstance(status, fal_client.Completed):
            return QueueStatus(status="COMPLETED", progress=1.0)
        return QueueStatus(status="FAILED")

    async def result(self, endpoint: str, request_id: str) -> Dict[str, Any]:
        async with self._session() as client:
            try:
                output = await client.result(endpoint, request_id)
            except httpx.TransportError as e:
                logger.error(f"Could not reach the queue for {request_id}: {e}")
                raise NetworkError(NETWORK_ERROR_MESSAGE) from e
            except Exception as e:
                logger.error(f"Fetching result of {request_id} failed: {e}")
                raise UpstreamGenerationError(
                    str(e) or "Fetching the result failed"
                ) from e
        return {**output, "request_id": request_id}
