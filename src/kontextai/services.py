from dataclasses import dataclass
from typing import Optional

import httpx

from kontextai.config import Settings, load_settings
from kontextai.core import GenerationOrchestrator
from kontextai.optimizer import PromptOptimizer
from kontextai.providers.base_provider import BaseChatProvider, BaseImageProvider
from kontextai.providers.fal_provider import FalImageBackend
from kontextai.providers.llm_provider import OpenAIChatProvider
from kontextai.utils import ImageFetcher


@dataclass
class Services:
    """Stateless collaborators shared by every request; built once per process."""

    settings: Settings
    llm: BaseChatProvider
    backend: BaseImageProvider
    fetcher: ImageFetcher
    optimizer: PromptOptimizer
    generator: GenerationOrchestrator

    @classmethod
    def build(
        cls,
        settings: Optional[Settings] = None,
        *,
        llm: Optional[BaseChatProvider] = None,
        backend: Optional[BaseImageProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "Services":
        settings = settings or load_settings()
        llm = llm or OpenAIChatProvider(settings.llm)
        backend = backend or FalImageBackend(settings.fal)
        fetcher = ImageFetcher(timeout=settings.download_timeout, transport=transport)
        return cls(
            settings=settings,
            llm=llm,
            backend=backend,
            fetcher=fetcher,
            optimizer=PromptOptimizer(llm, fetcher),
            generator=GenerationOrchestrator(
                backend,
                max_upload_bytes=settings.max_upload_bytes,
                allowed_upload_types=settings.allowed_upload_types,
            ),
        )
