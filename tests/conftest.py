"""共享 fixtures"""

import pytest

from ai_commands.config import PipelineConfig
from ai_commands.pipeline import ChatPipeline

from tests.fixtures.stubs import (
    StubEmbeddingService,
    StubModerationService,
    StubProvider,
    StubSearch,
    WordTokenizer,
    passages,
)


@pytest.fixture
def tokenizer():
    return WordTokenizer()


@pytest.fixture
def moderation():
    return StubModerationService(flag_markers={"forbidden": {"violence"}})


@pytest.fixture
def embedder():
    return StubEmbeddingService()


@pytest.fixture
def knowledge_source():
    return StubSearch(passages(3, tokens_each=20))


@pytest.fixture
def provider():
    return StubProvider()


@pytest.fixture
def retrieval_provider():
    return StubProvider(chunks=[b"data: {}\n\n", b"data: [DONE]\n\n"])


@pytest.fixture
def pipeline_config():
    return PipelineConfig(
        policy_model="gpt-4o",
        query_model="gpt-3.5-turbo-0125",
        retrieval_model="test-4k",
    )


@pytest.fixture
def pipeline(provider, retrieval_provider, tokenizer, moderation, embedder, pipeline_config):
    return ChatPipeline(
        provider=provider,
        tokenizer=tokenizer,
        moderation=moderation,
        embedder=embedder,
        config=pipeline_config,
        retrieval_provider=retrieval_provider,
    )
