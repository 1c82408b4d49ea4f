"""Embedding Retriever 测试: 查询选取, 检索参数, 失败阶段区分."""

import pytest

from ai_commands.errors import NoUserMessageError, PipelineStage, UpstreamUnavailableError
from ai_commands.llm.types import Message
from ai_commands.prompt.retriever import (
    EmbeddingRetriever,
    RetrievalConfig,
    latest_user_message,
    normalize_query,
)

from tests.fixtures.stubs import StubEmbeddingService, StubSearch, passages


CONVERSATION = [
    Message.user("first question"),
    Message.assistant("an answer"),
    Message.user("how do I\nenable RLS?"),
    Message.assistant("trailing"),
]


def test_latest_user_message():
    assert latest_user_message(CONVERSATION).content == "how do I\nenable RLS?"


def test_latest_user_message_missing():
    with pytest.raises(NoUserMessageError):
        latest_user_message([Message.assistant("hi")])


def test_normalize_query():
    assert normalize_query("a\nb\nc") == "a b c"


class TestEmbeddingRetriever:
    @pytest.mark.asyncio
    async def test_retrieve(self, embedder, knowledge_source):
        result = await EmbeddingRetriever(embedder).retrieve(CONVERSATION, knowledge_source)
        assert embedder.call_log == ["how do I enable RLS?"]
        assert knowledge_source.call_log == [{
            "vector": embedder.vector,
            "similarity_threshold": 0.78,
            "min_length": 50,
            "exclude_ignored": True,
            "limit": 10,
        }]
        assert result == knowledge_source.passages

    @pytest.mark.asyncio
    async def test_custom_config(self, embedder):
        search = StubSearch(passages(5, tokens_each=10))
        config = RetrievalConfig(similarity_threshold=0.5, min_content_length=10, limit=2)
        result = await EmbeddingRetriever(embedder, config).retrieve(CONVERSATION, search)
        assert len(result) == 2
        assert search.call_log[0]["similarity_threshold"] == 0.5

    @pytest.mark.asyncio
    async def test_embedding_failure(self, knowledge_source):
        embedder = StubEmbeddingService(error=TimeoutError("slow"))
        with pytest.raises(UpstreamUnavailableError) as exc:
            await EmbeddingRetriever(embedder).retrieve(CONVERSATION, knowledge_source)
        assert exc.value.stage == PipelineStage.EMBEDDING
        assert knowledge_source.call_log == []

    @pytest.mark.asyncio
    async def test_search_failure(self, embedder):
        search = StubSearch(error=ConnectionError("db gone"))
        with pytest.raises(UpstreamUnavailableError) as exc:
            await EmbeddingRetriever(embedder).retrieve(CONVERSATION, search)
        assert exc.value.stage == PipelineStage.RETRIEVAL

    @pytest.mark.asyncio
    async def test_search_error_passthrough(self, embedder):
        error = UpstreamUnavailableError(PipelineStage.RETRIEVAL, "rpc failed", payload={"code": "42883"})
        search = StubSearch(error=error)
        with pytest.raises(UpstreamUnavailableError) as exc:
            await EmbeddingRetriever(embedder).retrieve(CONVERSATION, search)
        assert exc.value is error

    @pytest.mark.asyncio
    async def test_no_user_message(self, embedder, knowledge_source):
        with pytest.raises(NoUserMessageError):
            await EmbeddingRetriever(embedder).retrieve([Message.assistant("hi")], knowledge_source)
        assert embedder.call_log == []
