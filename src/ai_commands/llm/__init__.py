"""
LLM 模块

- types.py: 消息与请求类型
- profiles.py: 模型档案表
- tokenizer.py: Tokenizer 适配器
- streaming.py: 补全流
- providers/: 补全 Provider（SDK / 原始 SSE）
"""

from .profiles import DEFAULT_PROFILE_TABLE, ModelProfileTable, load_model_profiles
from .streaming import CompletionStream, StreamState, decode_sse_text
from .tokenizer import TokenCounter, Tokenizer
from .types import CompletionRequest, Message, MessageRole, ModelProfile

__all__ = [
    "CompletionRequest",
    "CompletionStream",
    "DEFAULT_PROFILE_TABLE",
    "Message",
    "MessageRole",
    "ModelProfile",
    "ModelProfileTable",
    "StreamState",
    "TokenCounter",
    "Tokenizer",
    "decode_sse_text",
    "load_model_profiles",
]
