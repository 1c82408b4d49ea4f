"""
向量化服务
"""

from typing import Protocol, runtime_checkable

from openai import AsyncOpenAI


@runtime_checkable
class EmbeddingService(Protocol):
    async def embed(self, text: str) -> list[float]: ...


class OpenAIEmbeddingService:
    """OpenAI embeddings 接口"""

    def __init__(self, client: AsyncOpenAI, model: str = "text-embedding-ada-002"):
        self._client = client
        self.model = model

    async def embed(self, text: str) -> list[float]:
        response = await self._client.embeddings.create(model=self.model, input=text)
        return list(response.data[0].embedding)
