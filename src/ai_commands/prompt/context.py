"""
Context Assembler - 把检索片段折叠为有上限的上下文块

严格按检索排名顺序准入：某片段加入后累计 token 会达到或超过上限时即停止，
该片段及其后所有片段都被排除（即使后面的片段单独放得下）。片段从不被截断。
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from ..services.search import RetrievedPassage

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_TOKEN_CAP = 1500
DEFAULT_DELIMITER = "---"


@dataclass(frozen=True)
class ContextBlock:
    """上下文块"""

    text: str
    token_count: int
    passages: tuple[RetrievedPassage, ...] = field(default_factory=tuple)

    def __str__(self) -> str:
        return self.text


def assemble_context(
    passages: Sequence[RetrievedPassage],
    count_tokens: Callable[[str], int],
    cap: int = DEFAULT_CONTEXT_TOKEN_CAP,
    delimiter: str = DEFAULT_DELIMITER,
) -> ContextBlock:
    """
    组装上下文块

    每个入选片段输出为 "片段原文(去首尾空白)\\n<分隔行>\\n"，
    计数覆盖实际追加的整段文本（含分隔行）。

    Args:
        passages: 按相关度降序排列的片段
        count_tokens: 文本 → token 数
        cap: token 上限
        delimiter: 分隔行

    Returns:
        ContextBlock（没有片段入选时 text 为空字符串）
    """
    segments = []
    included = []
    token_count = 0

    for passage in passages:
        segment = f"{passage.text.strip()}\n{delimiter}\n"
        segment_tokens = count_tokens(segment)
        if token_count + segment_tokens >= cap:
            break
        segments.append(segment)
        included.append(passage)
        token_count += segment_tokens

    excluded = len(passages) - len(included)
    logger.info(
        f"[Context] {len(included)} passages admitted ({token_count} tokens, cap: {cap})"
        + (f", {excluded} excluded" if excluded else "")
    )
    return ContextBlock(text="".join(segments), token_count=token_count, passages=tuple(included))
