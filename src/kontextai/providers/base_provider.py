from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from kontextai.errors import KontextError
from kontextai.models import QueueStatus


class BaseImageProvider(ABC):
    @abstractmethod
    async def generate(
        self, endpoint: str, arguments: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Runs one generation call against ``endpoint`` and waits for the output.
        The returned dict is the upstream output (images, seed, flags, prompt),
        plus ``request_id`` when the provider knows it.
        """
        pass

    @abstractmethod
    async def upload(
        self, data: bytes, content_type: str, file_name: Optional[str] = None
    ) -> str:
        """Stores ``data`` and returns a public URL the backend can fetch."""
        pass

    async def submit(self, endpoint: str, arguments: Dict[str, Any]) -> str:
        raise NotImplementedError

    async def status(self, endpoint: str, request_id: str) -> QueueStatus:
        raise NotImplementedError

    async def result(self, endpoint: str, request_id: str) -> Dict[str, Any]:
        raise NotImplementedError


class BaseChatProvider(ABC):
    @property
    @abstractmethod
    def configured(self) -> bool:
        pass

    @abstractmethod
    async def chat(
        self,
        messages: List[Dict[str, Any]],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
        reasoning_effort: Optional[str] = None,
    ) -> str:
        """Returns the trimmed text of the first choice or raises UpstreamLLMError."""
        pass

    async def health_check(self) -> Dict[str, Any]:
        """Round-trips a trivial prompt; never raises for upstream failures."""
        report: Dict[str, Any] = {"configured": self.configured}
        try:
            report["reply"] = await self.chat(
                [
                    {"role": "system", "content": "You are a test assistant. Reply briefly."},
                    {"role": "user", "content": 'Reply with "test ok"'},
                ],
                temperature=0.1,
            )
            report["ok"] = True
        except KontextError as e:
            report["ok"] = False
            report["error"] = e.message
        return report
