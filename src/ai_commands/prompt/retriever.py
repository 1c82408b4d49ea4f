"""
Embedding Retriever - 从知识库检索相关片段

流程：最近一条 user 消息 → 向量化 → 排序检索。
两次外部调用串行（检索依赖向量结果），失败时保留出错阶段（embedding / retrieval），
不合并成笼统的错误。
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from ..errors import NoUserMessageError, PipelineStage, UpstreamUnavailableError
from ..llm.types import Message, MessageRole
from ..services.embedding import EmbeddingService
from ..services.search import RankedRetrievalService, RetrievedPassage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetrievalConfig:
    """检索参数"""

    similarity_threshold: float = 0.78
    min_content_length: int = 50
    limit: int = 10


def latest_user_message(conversation: Sequence[Message]) -> Message:
    """
    最近一条 user 消息（审核锚点和检索查询）

    Raises:
        NoUserMessageError: 对话中没有 user 消息
    """
    for message in reversed(conversation):
        if message.role == MessageRole.USER:
            return message
    raise NoUserMessageError()


def normalize_query(text: str) -> str:
    """换行折叠为空格"""
    return text.replace("\n", " ")


class EmbeddingRetriever:
    """向量化 + 排序检索"""

    def __init__(self, embedder: EmbeddingService, config: RetrievalConfig | None = None):
        self._embedder = embedder
        self.config = config or RetrievalConfig()

    async def embed_query(self, conversation: Sequence[Message]) -> list[float]:
        query = normalize_query(latest_user_message(conversation).content)
        try:
            return await self._embedder.embed(query)
        except Exception as e:
            logger.error(f"[Retriever] embedding failed: {type(e).__name__}: {e}")
            raise UpstreamUnavailableError(
                PipelineStage.EMBEDDING,
                "Failed to create embedding for query",
                payload=str(e),
            ) from e

    async def retrieve(
        self,
        conversation: Sequence[Message],
        knowledge_source: RankedRetrievalService,
    ) -> list[RetrievedPassage]:
        """
        检索与最近一条 user 消息相关的片段

        Args:
            conversation: 已校验的对话
            knowledge_source: 排序检索服务

        Returns:
            按相似度降序排列的片段（已排除标记为 ignore 的来源）

        Raises:
            NoUserMessageError: 对话中没有 user 消息
            UpstreamUnavailableError: stage=embedding 或 stage=retrieval
        """
        vector = await self.embed_query(conversation)

        try:
            passages = await knowledge_source.search(
                vector,
                similarity_threshold=self.config.similarity_threshold,
                min_length=self.config.min_content_length,
                exclude_ignored=True,
                limit=self.config.limit,
            )
        except UpstreamUnavailableError:
            raise
        except Exception as e:
            logger.error(f"[Retriever] retrieval failed: {type(e).__name__}: {e}")
            raise UpstreamUnavailableError(
                PipelineStage.RETRIEVAL,
                "Failed to match page sections",
                payload=str(e),
            ) from e

        logger.info(f"[Retriever] {len(passages)} passages retrieved")
        return list(passages)[: self.config.limit]
