"""
Tokenizer 适配器

纯函数式接口：消息列表 + 模型 → token 数；模型 → 最大上下文。
使用 tiktoken（Rust BPE 实现）计数，按模型档案计入每条消息的框架开销，
调用方不应自行累加单条消息的 token 数。
"""

import logging
from collections.abc import Sequence
from functools import lru_cache
from typing import Protocol, runtime_checkable

import tiktoken

from .profiles import DEFAULT_PROFILE_TABLE, ModelProfileTable
from .types import Message

logger = logging.getLogger(__name__)

# 未知模型使用的编码
DEFAULT_ENCODING = "cl100k_base"

# 每次回复都以 <|start|>assistant<|message|> 开头
REPLY_PRIMING_TOKENS = 3


@runtime_checkable
class TokenCounter(Protocol):
    """Token 计数接口（Token Budget Manager / Context Assembler 依赖）"""

    def count(self, messages: Sequence[Message], model: str) -> int: ...

    def max_context(self, model: str) -> int: ...

    def count_text(self, text: str, model: str | None = None) -> int: ...

    def reserved_completion_tokens(self, model: str) -> int: ...


@lru_cache(maxsize=16)
def _get_encoding(model: str | None) -> "tiktoken.Encoding":
    """获取（并缓存）模型对应的编码"""
    if model:
        try:
            return tiktoken.encoding_for_model(model)
        except KeyError:
            logger.debug(f"[Tokenizer] no encoding registered for {model}, using {DEFAULT_ENCODING}")
    return tiktoken.get_encoding(DEFAULT_ENCODING)


class Tokenizer:
    """基于 tiktoken 的 TokenCounter 实现（无状态，可跨请求共享）"""

    def __init__(self, profiles: ModelProfileTable | None = None):
        self.profiles = profiles or DEFAULT_PROFILE_TABLE

    def count_text(self, text: str, model: str | None = None) -> int:
        if not text:
            return 0
        return len(_get_encoding(model).encode(text, disallowed_special=()))

    def count(self, messages: Sequence[Message], model: str) -> int:
        """
        计算一次 chat 请求的 prompt token 数

        Args:
            messages: 完整消息列表
            model: 模型标识

        Returns:
            token 数（含每条消息的框架开销和回复引导）
        """
        profile = self.profiles.get(model)
        encoding = _get_encoding(model)

        total = 0
        for message in messages:
            total += profile.tokens_per_message
            total += len(encoding.encode(message.role.value, disallowed_special=()))
            total += len(encoding.encode(message.content, disallowed_special=()))
        return total + REPLY_PRIMING_TOKENS

    def max_context(self, model: str) -> int:
        return self.profiles.max_context(model)

    def reserved_completion_tokens(self, model: str) -> int:
        return self.profiles.get(model).reserved_completion_tokens
