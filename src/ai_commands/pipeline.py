"""
Chat 管线

三个流程，每个都返回一个已打开的字节流，或者在流打开前抛出错误:

- build_policy_chat:    RLS 策略生成（无检索，无主动裁剪，依赖服务商报告上下文超长）
- build_query_chat:     SQL 生成（同上）
- build_retrieval_chat: 完整管线
    审核 → 向量化 → 检索 → 上下文组装 → 预算裁剪 → 流式补全

数据只向前流动；除只读的模型档案表和 tokenizer 外，请求之间不共享可变状态。

Usage:
    pipeline = create_pipeline(settings)
    stream = await pipeline.build_query_chat(
        [{"role": "user", "content": "create a books table"}],
    )
    async for chunk in stream:
        ...
"""

import logging
from collections.abc import Iterable, Sequence
from typing import Any

import httpx
from openai import AsyncOpenAI

from .config import PipelineConfig, Settings
from .llm.profiles import load_model_profiles
from .llm.providers.base import CompletionProvider
from .llm.providers.openai import OpenAIHTTPProvider
from .llm.providers.openai_sdk import OpenAISDKProvider
from .llm.streaming import CompletionStream
from .llm.tokenizer import TokenCounter, Tokenizer
from .llm.types import CompletionRequest, Message
from .prompt.budget import apply_budget
from .prompt.builder import (
    PromptPlan,
    build_policy_prompt,
    build_query_prompt,
    build_retrieval_prompt,
    validate_conversation,
)
from .prompt.context import assemble_context
from .prompt.guard import ContentModerator
from .prompt.retriever import EmbeddingRetriever, latest_user_message
from .prompt.templates import DEFAULT_INSTRUCTIONS, InstructionSet
from .services.embedding import EmbeddingService, OpenAIEmbeddingService
from .services.moderation import ModerationService, OpenAIModerationService
from .services.search import RankedRetrievalService, SupabaseSectionSearch

logger = logging.getLogger(__name__)

Conversation = Iterable[Message | dict[str, Any]]


class ChatPipeline:
    """Token 预算约束下的检索增强 chat 补全管线"""

    def __init__(
        self,
        provider: CompletionProvider,
        tokenizer: TokenCounter,
        moderation: ModerationService,
        embedder: EmbeddingService,
        config: PipelineConfig | None = None,
        instructions: InstructionSet = DEFAULT_INSTRUCTIONS,
        retrieval_provider: CompletionProvider | None = None,
    ):
        """
        Args:
            provider: 策略/SQL 流程使用的 Provider
            tokenizer: Tokenizer 适配器
            moderation: 审核服务
            embedder: 向量化服务
            config: 管线参数
            instructions: 各流程固定指令
            retrieval_provider: 检索流程使用的 Provider（默认同 provider）
        """
        self.provider = provider
        self.retrieval_provider = retrieval_provider or provider
        self.tokenizer = tokenizer
        self.config = config or PipelineConfig()
        self.instructions = instructions
        self.moderator = ContentModerator(moderation)
        self.retriever = EmbeddingRetriever(embedder, self.config.retrieval)

    def completion_tokens(self, model: str) -> int:
        """补全 token 上限，同时作为预算裁剪的预留额度"""
        if self.config.max_completion_tokens is not None:
            return self.config.max_completion_tokens
        return self.tokenizer.reserved_completion_tokens(model)

    async def _complete(
        self,
        provider: CompletionProvider,
        messages: Sequence[Message],
        model: str,
    ) -> CompletionStream:
        request = CompletionRequest(
            messages=list(messages),
            model=model,
            max_tokens=self.completion_tokens(model),
            temperature=self.config.temperature,
        )
        logger.info(f"[Pipeline] completion via {provider.name}: model={model}, messages={len(messages)}")
        return await provider.stream_complete(request)

    async def build_policy_chat(
        self,
        conversation: Conversation,
        schema_definitions: Sequence[str] | None = None,
        existing_policy: str | None = None,
    ) -> CompletionStream:
        """就 RLS 策略进行对话"""
        plan = build_policy_prompt(
            self.instructions.policy, conversation, schema_definitions, existing_policy
        )
        return await self._complete(self.provider, plan.messages, self.config.policy_model)

    async def build_query_chat(
        self,
        conversation: Conversation,
        existing_query: str | None = None,
        schema_definitions: Sequence[str] | None = None,
    ) -> CompletionStream:
        """就编写 SQL 查询进行对话"""
        plan = build_query_prompt(
            self.instructions.query, conversation, existing_query, schema_definitions
        )
        return await self._complete(self.provider, plan.messages, self.config.query_model)

    async def build_retrieval_chat(
        self,
        conversation: Conversation,
        knowledge_source: RankedRetrievalService,
    ) -> CompletionStream:
        """
        基于知识库回答问题

        Raises:
            InvalidRoleError: 对话包含 user / assistant 以外的角色
            NoUserMessageError: 对话中没有 user 消息
            ContentPolicyError: 审核未通过（此时不发起任何向量化/检索/补全调用）
            UpstreamUnavailableError: 任一外部服务失败（携带阶段）
            ContextLengthError: 服务商报告上下文超长
        """
        messages = validate_conversation(conversation, strip=True)
        latest_user_message(messages)

        await self.moderator.screen(messages)
        passages = await self.retriever.retrieve(messages, knowledge_source)

        model = self.config.retrieval_model
        context = assemble_context(
            passages,
            lambda text: self.tokenizer.count_text(text, model),
            cap=self.config.context_token_cap,
            delimiter=self.config.context_delimiter,
        )
        plan: PromptPlan = build_retrieval_prompt(
            self.instructions.retrieval_persona,
            self.instructions.retrieval_rules,
            context.text,
            messages,
            knowledge_label=self.instructions.knowledge_label,
        )
        budget_config = self.config.budget_for(self.completion_tokens(model))
        budget = apply_budget(plan, model, self.tokenizer, budget_config)
        return await self._complete(self.retrieval_provider, budget.messages, model)

    async def close(self) -> None:
        await self.provider.close()
        if self.retrieval_provider is not self.provider:
            await self.retrieval_provider.close()


def create_pipeline(settings: Settings) -> ChatPipeline:
    """按配置装配默认（OpenAI）协作者"""
    client = AsyncOpenAI(
        api_key=settings.openai_api_key or None,
        base_url=settings.openai_base_url,
        timeout=settings.request_timeout,
    )
    profiles = load_model_profiles(settings.model_profiles_path or None)
    return ChatPipeline(
        provider=OpenAISDKProvider(client),
        tokenizer=Tokenizer(profiles),
        moderation=OpenAIModerationService(client),
        embedder=OpenAIEmbeddingService(client, model=settings.embedding_model),
        config=PipelineConfig.from_settings(settings),
        retrieval_provider=OpenAIHTTPProvider(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=settings.request_timeout,
        ),
    )


def create_knowledge_source(
    settings: Settings,
    client: httpx.AsyncClient | None = None,
) -> SupabaseSectionSearch:
    """按配置创建 Supabase 文档检索服务"""
    return SupabaseSectionSearch(
        url=settings.supabase_url,
        api_key=settings.supabase_key,
        function=settings.supabase_match_function,
        timeout=settings.request_timeout,
        client=client,
    )
