import httpx
import pytest

from kontextai.config import FalConfig, LLMConfig, Settings
from kontextai.services import Services
from kontextai.utils import ImageFetcher

from _helpers import FakeChatProvider, FakeImageBackend, image_handler


@pytest.fixture
def transport():
    return httpx.MockTransport(image_handler)


@pytest.fixture
def fetcher(transport):
    return ImageFetcher(timeout=5.0, transport=transport)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        llm=LLMConfig(api_key="test-llm-key"),
        fal=FalConfig(api_key="test-fal-key"),
    )


@pytest.fixture
def llm():
    return FakeChatProvider()


@pytest.fixture
def backend():
    return FakeImageBackend()


@pytest.fixture
def services(settings, llm, backend, transport):
    return Services.build(settings, llm=llm, backend=backend, transport=transport)
