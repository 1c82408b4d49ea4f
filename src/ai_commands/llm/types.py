"""
LLM 统一类型定义

对话消息是封闭的标签变体 {system | user | assistant}，构造后不可变。
调用方传入的 dict 在 Prompt Builder 边界处校验并转换为 Message。
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from ..errors import InvalidRoleError


class MessageRole(StrEnum):
    """消息角色"""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


# 调用方可以提交的角色；system 只由管线内部生成
CONVERSATION_ROLES = frozenset({MessageRole.USER, MessageRole.ASSISTANT})


@dataclass(frozen=True)
class Message:
    """消息"""

    role: MessageRole
    content: str

    def __post_init__(self):
        if not isinstance(self.role, MessageRole):
            try:
                object.__setattr__(self, "role", MessageRole(self.role))
            except ValueError:
                raise InvalidRoleError(str(self.role)) from None

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=content)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls(role=data.get("role", ""), content=data.get("content") or "")

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class ModelProfile:
    """模型档案（只读，进程级静态表中查询）"""

    identifier: str
    max_context_tokens: int  # 上下文窗口 (输入+输出总 token 上限)
    reserved_completion_tokens: int = 1024  # 为补全预留的 token
    tokens_per_message: int = 3  # 每条消息的框架开销

    @classmethod
    def from_dict(cls, data: dict) -> "ModelProfile":
        return cls(
            identifier=data["identifier"],
            max_context_tokens=int(data["max_context_tokens"]),
            reserved_completion_tokens=int(data.get("reserved_completion_tokens", 1024)),
            tokens_per_message=int(data.get("tokens_per_message", 3)),
        )

    def to_dict(self) -> dict:
        return {
            "identifier": self.identifier,
            "max_context_tokens": self.max_context_tokens,
            "reserved_completion_tokens": self.reserved_completion_tokens,
            "tokens_per_message": self.tokens_per_message,
        }


@dataclass
class CompletionRequest:
    """统一补全请求格式"""

    messages: list[Message]
    model: str
    max_tokens: int = 1024
    temperature: float = 0.0

    def to_dict(self) -> dict:
        """OpenAI chat/completions 请求体（流式）"""
        return {
            "model": self.model,
            "messages": [msg.to_dict() for msg in self.messages],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "stream": True,
        }
