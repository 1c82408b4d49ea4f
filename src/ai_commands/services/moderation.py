"""
内容审核服务
"""

import logging
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModerationVerdict:
    """单条消息的审核结论"""

    flagged: bool
    categories: frozenset[str] = field(default_factory=frozenset)


@runtime_checkable
class ModerationService(Protocol):
    async def check(self, text: str) -> ModerationVerdict: ...


class OpenAIModerationService:
    """OpenAI moderations 接口"""

    def __init__(self, client: AsyncOpenAI, model: str | None = None):
        self._client = client
        self._model = model

    async def check(self, text: str) -> ModerationVerdict:
        kwargs = {"input": text}
        if self._model:
            kwargs["model"] = self._model
        response = await self._client.moderations.create(**kwargs)
        result = response.results[0]
        categories = result.categories.model_dump(by_alias=True)
        return ModerationVerdict(
            flagged=bool(result.flagged),
            categories=frozenset(name for name, hit in categories.items() if hit),
        )
