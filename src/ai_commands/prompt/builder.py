"""
Prompt Builder - 组装有序消息序列

顺序固定：
[系统指令] + [可选上下文消息: schema → 草稿/已有产物] + [对话消息，保持原序]

上下文消息以 user 角色注入（它们是补充依据，不是系统策略），原文包裹在代码块中，
不做摘要或改写。Builder 从不丢弃或重排对话消息，裁剪交给 Token Budget Manager。
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..errors import InvalidRoleError
from ..llm.types import CONVERSATION_ROLES, Message

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptPlan:
    """
    组装结果

    fixed_messages 永不裁剪；trimmable_messages 只能从头部（最旧的一轮）开始移除。
    """

    fixed_messages: tuple[Message, ...]
    trimmable_messages: tuple[Message, ...] = field(default_factory=tuple)

    @property
    def messages(self) -> list[Message]:
        return [*self.fixed_messages, *self.trimmable_messages]

    def drop_oldest(self) -> "PromptPlan":
        """移除最旧的一条可裁剪消息"""
        return PromptPlan(self.fixed_messages, self.trimmable_messages[1:])


def code_block(text: str) -> str:
    """原文包裹为 markdown 代码块"""
    return f"```\n{text}\n```"


def validate_conversation(
    conversation: Iterable[Message | dict[str, Any]],
    strip: bool = False,
) -> list[Message]:
    """
    校验调用方提交的对话

    Args:
        conversation: Message 或 {"role", "content"} 字典序列
        strip: 是否去除内容首尾空白

    Returns:
        Message 列表（顺序不变）

    Raises:
        InvalidRoleError: 角色不是 user / assistant（包括调用方伪造的 system）
    """
    messages = []
    for item in conversation:
        message = item if isinstance(item, Message) else Message.from_dict(item)
        if message.role not in CONVERSATION_ROLES:
            raise InvalidRoleError(message.role.value)
        if strip:
            message = Message(role=message.role, content=message.content.strip())
        messages.append(message)
    return messages


def schema_message(schema_definitions: Sequence[str]) -> Message:
    definitions = code_block("\n\n".join(schema_definitions))
    return Message.user(f"Here is my database schema for reference: {definitions}")


def policy_message(policy_definition: str) -> Message:
    return Message.user(f"Here is my policy definition for reference:\n{code_block(policy_definition)}")


def query_message(existing_query: str) -> Message:
    return Message.user(f"Here is the existing SQL I wrote for reference:\n{code_block(existing_query)}")


def build_prompt(
    instructions: str,
    conversation: Iterable[Message | dict[str, Any]],
    context_messages: Sequence[Message] = (),
) -> PromptPlan:
    """通用组装：系统指令 + 上下文消息为固定部分，对话为可裁剪部分"""
    messages = validate_conversation(conversation)
    fixed = (Message.system(instructions), *context_messages)
    logger.debug(f"[Builder] {len(fixed)} fixed + {len(messages)} conversation messages")
    return PromptPlan(fixed_messages=fixed, trimmable_messages=tuple(messages))


def build_policy_prompt(
    instructions: str,
    conversation: Iterable[Message | dict[str, Any]],
    schema_definitions: Sequence[str] | None = None,
    existing_policy: str | None = None,
) -> PromptPlan:
    """RLS 策略流程：已有策略只要提供（即使为空）就注入"""
    context = []
    if schema_definitions:
        context.append(schema_message(schema_definitions))
    if existing_policy is not None:
        context.append(policy_message(existing_policy))
    return build_prompt(instructions, conversation, context)


def build_query_prompt(
    instructions: str,
    conversation: Iterable[Message | dict[str, Any]],
    existing_query: str | None = None,
    schema_definitions: Sequence[str] | None = None,
) -> PromptPlan:
    """SQL 生成流程：已有 SQL 非空时才注入"""
    context = []
    if schema_definitions:
        context.append(schema_message(schema_definitions))
    if existing_query:
        context.append(query_message(existing_query))
    return build_prompt(instructions, conversation, context)


def build_retrieval_prompt(
    persona: str,
    rules: str,
    context_block: str,
    conversation: Sequence[Message],
    knowledge_label: str = "Here is the Supabase documentation:",
) -> PromptPlan:
    """检索增强流程：人设 + 文档上下文 + 回答规则为固定部分"""
    context = [
        Message.user(f"{knowledge_label}\n{context_block}"),
        Message.user(rules),
    ]
    return build_prompt(persona, conversation, context)
