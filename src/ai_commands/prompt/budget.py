"""
Prompt Budget - Token 预算裁剪模块

保证 prompt token + 预留补全 token 严格小于模型上下文窗口。

裁剪策略（单次请求内的"最久未用"淘汰）:
- 只从 trimmable_messages 头部移除，每次一条（最旧的一轮先移除）
- fixed_messages（系统指令 + 上下文）从不裁剪、从不重排
- 每次移除后对剩余完整消息重新调用 tokenizer 计数，
  消息框架开销由 tokenizer 整体计入，不按单条消息累加估算

可裁剪消息耗尽仍超预算时:
- 固定消息本身已超出窗口 → BudgetConfigurationError（配置错误，不截断系统指令）
- 否则按 BudgetConfig.exhausted_policy 处理：
  "proceed" 只带固定消息继续；"fail" 抛出 BudgetExhaustedError
"""

import logging
from dataclasses import dataclass
from enum import StrEnum

from ..errors import BudgetConfigurationError, BudgetExhaustedError
from ..llm.tokenizer import TokenCounter
from ..llm.types import Message
from .builder import PromptPlan

logger = logging.getLogger(__name__)


class ExhaustedPolicy(StrEnum):
    """可裁剪消息耗尽时的处理策略"""

    PROCEED = "proceed"
    FAIL = "fail"


@dataclass(frozen=True)
class BudgetConfig:
    """Token 预算配置"""

    reserved_completion_tokens: int = 1024
    exhausted_policy: ExhaustedPolicy = ExhaustedPolicy.PROCEED


@dataclass(frozen=True)
class BudgetResult:
    """预算裁剪结果"""

    plan: PromptPlan
    total_tokens: int  # prompt token + 预留补全 token
    max_tokens: int
    removed_count: int
    exhausted: bool = False  # 可裁剪消息耗尽且仍未满足预算

    @property
    def messages(self) -> list[Message]:
        return self.plan.messages

    @property
    def within_budget(self) -> bool:
        return self.total_tokens < self.max_tokens


def apply_budget(
    plan: PromptPlan,
    model: str,
    tokenizer: TokenCounter,
    config: BudgetConfig | None = None,
) -> BudgetResult:
    """
    裁剪最旧的对话消息直到满足模型上下文窗口

    最多迭代 len(plan.trimmable_messages) 次。

    Args:
        plan: Prompt Builder 的组装结果
        model: 模型标识
        tokenizer: TokenCounter
        config: 预算配置

    Returns:
        BudgetResult

    Raises:
        BudgetConfigurationError: 固定消息本身已超出上下文窗口
        BudgetExhaustedError: 耗尽且 exhausted_policy=fail
    """
    config = config or BudgetConfig()
    reserved = config.reserved_completion_tokens
    max_tokens = tokenizer.max_context(model)

    original_count = len(plan.trimmable_messages)
    total = tokenizer.count(plan.messages, model) + reserved

    while total >= max_tokens and plan.trimmable_messages:
        plan = plan.drop_oldest()
        total = tokenizer.count(plan.messages, model) + reserved

    removed = original_count - len(plan.trimmable_messages)
    if removed:
        logger.info(
            f"[Budget] {model}: removed {removed}/{original_count} oldest messages "
            f"({total} tokens incl. {reserved} reserved, window: {max_tokens})"
        )
    else:
        logger.debug(f"[Budget] {model}: {total} tokens (window: {max_tokens}, headroom: {max_tokens - total})")

    if total < max_tokens:
        return BudgetResult(plan=plan, total_tokens=total, max_tokens=max_tokens, removed_count=removed)

    fixed_tokens = total - reserved
    if fixed_tokens >= max_tokens:
        raise BudgetConfigurationError(
            f"Fixed instructions alone need {fixed_tokens} tokens, "
            f"exceeding the {max_tokens}-token window of {model}",
            details={"fixed_tokens": fixed_tokens, "max_tokens": max_tokens, "model": model},
        )

    if config.exhausted_policy == ExhaustedPolicy.FAIL:
        raise BudgetExhaustedError(total, max_tokens)

    logger.warning(
        f"[Budget] {model}: all {original_count} conversation messages trimmed, "
        f"still {total} tokens (window: {max_tokens}); proceeding with fixed messages only"
    )
    return BudgetResult(
        plan=plan,
        total_tokens=total,
        max_tokens=max_tokens,
        removed_count=removed,
        exhausted=True,
    )
