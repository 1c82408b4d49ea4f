"""
Prompt 管线模块

模块组成:
- templates.py: 各流程固定指令
- builder.py: 组装有序消息序列
- guard.py: 内容审核守门
- retriever.py: 向量化 + 排序检索
- context.py: 检索片段 → 有上限的上下文块
- budget.py: Token 预算裁剪
"""

from .budget import BudgetConfig, BudgetResult, ExhaustedPolicy, apply_budget
from .builder import (
    PromptPlan,
    build_policy_prompt,
    build_prompt,
    build_query_prompt,
    build_retrieval_prompt,
    validate_conversation,
)
from .context import ContextBlock, assemble_context
from .guard import ContentModerator
from .retriever import EmbeddingRetriever, RetrievalConfig, latest_user_message
from .templates import DEFAULT_INSTRUCTIONS, InstructionSet

__all__ = [
    # Builder
    "PromptPlan",
    "build_prompt",
    "build_policy_prompt",
    "build_query_prompt",
    "build_retrieval_prompt",
    "validate_conversation",
    # Guard
    "ContentModerator",
    # Retriever
    "EmbeddingRetriever",
    "RetrievalConfig",
    "latest_user_message",
    # Context
    "ContextBlock",
    "assemble_context",
    # Budget
    "apply_budget",
    "BudgetConfig",
    "BudgetResult",
    "ExhaustedPolicy",
    # Templates
    "DEFAULT_INSTRUCTIONS",
    "InstructionSet",
]
