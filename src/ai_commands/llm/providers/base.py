"""
补全 Provider 基类

定义所有 Provider 必须实现的接口，以及服务商错误分类。
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from ...errors import AICommandsError, ContextLengthError, PipelineStage, UpstreamUnavailableError
from ..streaming import CompletionStream
from ..types import CompletionRequest

logger = logging.getLogger(__name__)

CONTEXT_LENGTH_CODE = "context_length_exceeded"


def _error_object(payload: Any) -> dict:
    """从服务商返回体中取出 error 对象（兼容 {"error": {...}} 和裸 {...}）"""
    if isinstance(payload, dict):
        inner = payload.get("error")
        if isinstance(inner, dict):
            return inner
        return payload
    return {}


def is_context_length_error(payload: Any, code: str | None = None) -> bool:
    """服务商是否报告了上下文超长"""
    if code == CONTEXT_LENGTH_CODE:
        return True
    return _error_object(payload).get("code") == CONTEXT_LENGTH_CODE


def classify_provider_error(
    status_code: int | None,
    payload: Any,
    code: str | None = None,
) -> AICommandsError:
    """
    将服务商错误分类为管线错误

    - context_length_exceeded → ContextLengthError（调用方可操作：缩短对话）
    - 其他 → UpstreamUnavailableError（携带原始 payload）
    """
    if is_context_length_error(payload, code):
        return ContextLengthError(payload=payload)

    err = _error_object(payload)
    message = err.get("message") or "Failed to generate completion"
    if status_code is not None:
        message = f"API error ({status_code}): {message}"
    return UpstreamUnavailableError(PipelineStage.COMPLETION, message, payload=payload)


class CompletionProvider(ABC):
    """补全 Provider 基类"""

    name: str = "provider"

    @abstractmethod
    async def stream_complete(self, request: CompletionRequest) -> CompletionStream:
        """
        发起流式补全请求

        连接建立和状态检查在返回前完成：返回时流已打开，
        请求级错误（含上下文超长）在此同步抛出。

        Args:
            request: 统一请求格式

        Returns:
            已打开的 CompletionStream

        Raises:
            ContextLengthError: 服务商报告上下文超长
            UpstreamUnavailableError: 其他非 2xx 或传输失败
        """
        pass

    async def close(self) -> None:
        """释放客户端资源"""
        return None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name}>"
