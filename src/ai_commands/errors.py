"""
结构化管线错误

所有错误都在流打开之前同步抛出（流中途的上游故障除外，它作为流的终止事件抛出）。
调用方根据错误类型决定：提示用户 / 缩短对话 / 稍后重试。

Usage:
    from ai_commands.errors import ContextLengthError, UpstreamUnavailableError

    try:
        stream = await pipeline.build_query_chat(conversation)
    except ContextLengthError:
        ...  # 提示 "对话过长"
    except UpstreamUnavailableError as e:
        logger.error(f"{e.stage} failed: {e.payload}")
"""

from enum import StrEnum
from typing import Any


class PipelineStage(StrEnum):
    """调用外部服务的管线阶段"""

    MODERATION = "moderation"
    EMBEDDING = "embedding"
    RETRIEVAL = "retrieval"
    COMPLETION = "completion"


class AICommandsError(Exception):
    """管线错误基类"""

    code = "ai_commands_error"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """序列化为字典（供 HTTP 层直接返回）"""
        result: dict[str, Any] = {
            "error": True,
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class ConfigurationError(AICommandsError):
    """配置错误"""

    code = "configuration_error"


class AuthenticationError(ConfigurationError):
    """缺少或无效的 API Key"""

    code = "authentication_error"


class UnknownModelError(ConfigurationError):
    """模型不在 ModelProfile 表中"""

    code = "unknown_model"

    def __init__(self, model: str) -> None:
        self.model = model
        super().__init__(f"No model profile for '{model}'", details={"model": model})


class BudgetConfigurationError(ConfigurationError):
    """固定消息本身已超出上下文窗口，无法通过裁剪对话满足预算"""

    code = "budget_configuration_error"


class InvalidRoleError(AICommandsError):
    """对话消息的角色不是 user / assistant"""

    code = "invalid_role"

    def __init__(self, role: str) -> None:
        self.role = role
        super().__init__(f"Invalid message role '{role}'", details={"role": role})


class NoUserMessageError(AICommandsError):
    """检索流程需要至少一条 user 消息"""

    code = "no_user_message"

    def __init__(self) -> None:
        super().__init__("No message with role 'user'")


class ContentPolicyError(AICommandsError):
    """内容审核未通过（重试同样的内容不会改变结论）"""

    code = "content_policy"

    def __init__(self, categories: set[str] | frozenset[str], message_index: int | None = None) -> None:
        self.categories = frozenset(categories)
        self.message_index = message_index
        super().__init__(
            "Flagged content",
            details={
                "flagged": True,
                "categories": sorted(self.categories),
                "message_index": message_index,
            },
        )


class UpstreamUnavailableError(AICommandsError):
    """外部服务（审核/向量化/检索/补全）在传输层或应用层失败"""

    code = "upstream_unavailable"

    def __init__(self, stage: PipelineStage, message: str, payload: Any = None) -> None:
        self.stage = PipelineStage(stage)
        self.payload = payload
        super().__init__(message, details={"stage": self.stage.value, "payload": payload})


class ContextLengthError(AICommandsError):
    """服务商报告请求超出模型上下文窗口（调用方应缩短对话）"""

    code = "context_length_exceeded"

    def __init__(self, payload: Any = None) -> None:
        self.payload = payload
        super().__init__(
            "Your message is too long. Please shorten the conversation and try again.",
            details={"payload": payload} if payload is not None else None,
        )


class BudgetExhaustedError(AICommandsError):
    """裁剪掉全部对话后仍无法满足预算（仅在 budget_exhausted_policy=fail 时抛出）"""

    code = "budget_exhausted"

    def __init__(self, total_tokens: int, max_tokens: int) -> None:
        self.total_tokens = total_tokens
        self.max_tokens = max_tokens
        super().__init__(
            f"Prompt needs {total_tokens} tokens but model window is {max_tokens}",
            details={"total_tokens": total_tokens, "max_tokens": max_tokens},
        )
